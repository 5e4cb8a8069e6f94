"""
Session-Aware Abandonment Predictor

Extends the heuristic predictor with:
- Per-session prediction history (bounded, lossy)
- Score boosting when a session's risk keeps rising
- Confidence bonus for consistent predictions
- Retrospective evaluation against labelled sessions

Evaluation never changes the scoring weights; it only reports how well the
fixed heuristic separates completed from abandoned sessions.
"""

from datetime import datetime
from typing import Callable, List, Optional

import structlog

from boltx.core.models.config import EnhancementConfig, ScoringWeights
from boltx.core.models.features import (
    AbandonmentPrediction,
    HistoricalTrainingData,
    ModelMetrics,
    PredictionFeatures,
    SessionOutcome,
    risk_level_for,
)
from boltx.core.predictors.abandonment import AbandonmentPredictor
from boltx.core.stores.history import InMemoryHistoryStore, PredictionHistoryStore
from boltx.core.utils.metrics import HISTORY_BOOSTS, MODEL_QUALITY, TRAINING_SAMPLES
from boltx.training.scheduler import RetrainScheduler

logger = structlog.get_logger(__name__)

FetchFunction = Callable[[int], List[HistoricalTrainingData]]


class EnhancedAbandonmentPredictor(AbandonmentPredictor):
    """Abandonment predictor with session history smoothing.

    The history store is read and then appended without a transaction, so
    concurrent predictions for the same session may each miss the other's
    entry. Use a shared store (e.g. Redis) when running several instances.
    """

    def __init__(self,
                 weights: Optional[ScoringWeights] = None,
                 config: Optional[EnhancementConfig] = None,
                 history_store: Optional[PredictionHistoryStore] = None):
        super().__init__(weights)
        self.config = config or EnhancementConfig()
        self.history_store = history_store or InMemoryHistoryStore(limit=self.config.history_limit)
        self.model_metrics: Optional[ModelMetrics] = None

    def predict(self, features: PredictionFeatures, session_id: Optional[str] = None) -> AbandonmentPrediction:
        """Predict abandonment risk, smoothing with the session's history."""
        prediction = super().predict(features)

        if not session_id:
            return prediction

        history = self.history_store.get(session_id)
        if history:
            prediction = self.enhance_with_history(prediction, history)

        self.history_store.append(session_id, prediction)
        return prediction

    def enhance_with_history(self,
                             prediction: AbandonmentPrediction,
                             history: List[AbandonmentPrediction]) -> AbandonmentPrediction:
        """Boost rising risk and reward consistency with earlier predictions."""
        if not history:
            return prediction

        cfg = self.config
        score = prediction.risk_score
        risk_level = prediction.risk_level

        recent_scores = [p.risk_score for p in history[-cfg.trend_window:]]
        avg_recent = sum(recent_scores) / len(recent_scores)

        if score > avg_recent and score > cfg.boost_floor:
            boost = min(cfg.max_boost, (score - avg_recent) * cfg.boost_multiplier)
            score = round(min(100.0, score + boost), 1)

            # Levels only move up
            boosted_level = risk_level_for(score)
            if boosted_level.rank > risk_level.rank:
                risk_level = boosted_level

            HISTORY_BOOSTS.inc()
            logger.debug("Rising session risk boosted",
                         base_score=prediction.risk_score,
                         boosted_score=score,
                         recent_average=round(avg_recent, 2))

        consistent = sum(1 for p in history if abs(p.risk_score - score) < cfg.consistency_threshold)
        consistency_ratio = consistent / len(history)
        confidence = min(1.0, prediction.confidence + consistency_ratio * cfg.consistency_bonus)

        return prediction.model_copy(update={
            "risk_score": score,
            "risk_level": risk_level,
            "confidence": confidence,
        })

    # === Evaluation ===

    def train(self, data: List[HistoricalTrainingData]) -> None:
        """Evaluate the base heuristic against labelled sessions."""
        if not data:
            logger.warning("No training data provided")
            return

        metrics = self.calculate_metrics(data)
        self.model_metrics = metrics

        for name in ("accuracy", "precision", "recall", "f1_score"):
            MODEL_QUALITY.labels(metric=name).set(getattr(metrics, name))
        TRAINING_SAMPLES.set(metrics.training_size)

        logger.info("Model evaluated",
                    samples=metrics.training_size,
                    accuracy=round(metrics.accuracy, 4),
                    precision=round(metrics.precision, 4),
                    recall=round(metrics.recall, 4),
                    f1_score=round(metrics.f1_score, 4))

    def calculate_metrics(self, data: List[HistoricalTrainingData]) -> ModelMetrics:
        """Confusion-matrix statistics of the un-smoothed predictor."""
        tp = fp = tn = fn = 0

        for sample in data:
            # Base scoring only: evaluation must not read or write session history.
            prediction = AbandonmentPredictor.predict(self, sample.features)
            is_high_risk = prediction.risk_score >= self.config.classification_threshold
            actually_abandoned = sample.outcome == SessionOutcome.ABANDONED

            if is_high_risk and actually_abandoned:
                tp += 1
            elif is_high_risk:
                fp += 1
            elif not actually_abandoned:
                tn += 1
            else:
                fn += 1

        total = len(data)
        accuracy = (tp + tn) / total if total > 0 else 0.0
        precision = tp / (tp + fp) if tp + fp > 0 else 0.0
        recall = tp / (tp + fn) if tp + fn > 0 else 0.0
        f1_score = 2 * precision * recall / (precision + recall) if precision + recall > 0 else 0.0

        return ModelMetrics(
            accuracy=accuracy,
            precision=precision,
            recall=recall,
            f1_score=f1_score,
            last_trained=datetime.now(),
            training_size=total,
            true_positives=tp,
            false_positives=fp,
            true_negatives=tn,
            false_negatives=fn,
        )

    def get_metrics(self) -> Optional[ModelMetrics]:
        return self.model_metrics

    def load_training_data(self, fetch_function: FetchFunction, limit: Optional[int] = None) -> bool:
        """Fetch labelled sessions and evaluate. Returns False when nothing was evaluated."""
        limit = limit or self.config.training_fetch_limit
        try:
            data = fetch_function(limit)
        except Exception as e:
            logger.error("Failed to load training data", error=str(e))
            return False

        if not data:
            logger.warning("Training data source returned no samples")
            return False

        self.train(data)
        return True

    def retrain_model(self, fetch_function: FetchFunction, interval_seconds: float = 24 * 60 * 60) -> RetrainScheduler:
        """Evaluate now, then every `interval_seconds` until the returned scheduler is stopped."""
        scheduler = RetrainScheduler(
            lambda: self.load_training_data(fetch_function),
            interval_seconds=interval_seconds
        )
        return scheduler.start()

    # === Session history ===

    def clear_session_history(self, session_id: str) -> None:
        self.history_store.clear(session_id)

    def get_session_history(self, session_id: str) -> List[AbandonmentPrediction]:
        return self.history_store.get(session_id)
