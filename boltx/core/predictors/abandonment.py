"""
Checkout Abandonment Risk Predictor

Weighted heuristic that maps a checkout-session feature snapshot to a
0-100 abandonment risk score with:
- Explainable per-signal contributions
- Risk level bucketing
- Data-quality based confidence
- Recommendation and intervention rule tables

Scoring is pure arithmetic: no I/O and no exceptions for well-typed input.
"""

import math
from typing import List, Optional

import structlog

from boltx.core.models.config import ScoringWeights
from boltx.core.models.features import (
    AbandonmentPrediction,
    CheckoutStep,
    InterventionType,
    PredictionFeatures,
    RiskFactor,
    RiskLevel,
    risk_level_for,
)

logger = structlog.get_logger(__name__)

MODEL_VERSION = "v1"

# Signal names, also used as factor names
TIME_PRESSURE = "time_pressure"
ERROR_PRESSURE = "error_pressure"
FUNNEL_POSITION = "funnel_position"
STEP_STALL = "step_stall"
RETURNED = "returned"
CONVERSION_PRIOR = "conversion_prior"
ABANDONMENT_PRIOR = "abandonment_prior"
DEVICE_TYPE = "device_type"
LOCATION = "location"


class AbandonmentPredictor:
    """Heuristic abandonment risk model."""

    def __init__(self, weights: Optional[ScoringWeights] = None):
        self.weights = weights or ScoringWeights()
        self.model_version = MODEL_VERSION

    def predict(self, features: PredictionFeatures) -> AbandonmentPrediction:
        """
        Predict abandonment risk for a checkout session.

        Args:
            features: Behavioral snapshot of the session

        Returns:
            AbandonmentPrediction with score, level, factors and interventions
        """
        factors = self._score_signals(features)

        raw_score = sum(f.contribution for f in factors)
        risk_score = round(max(0.0, min(100.0, raw_score)), 1)
        risk_level = risk_level_for(risk_score)

        factors.extend(self._context_factors(features))
        factors.sort(key=lambda f: abs(f.contribution), reverse=True)

        prediction = AbandonmentPrediction(
            risk_score=risk_score,
            risk_level=risk_level,
            confidence=self.calculate_confidence(features),
            factors=factors,
            recommendations=self.generate_recommendations(risk_level, features),
            intervention_suggested=risk_score >= self.weights.intervention_threshold,
            intervention_type=self.get_intervention_type(risk_level, features, factors),
            model_version=self.model_version,
        )

        logger.debug("Abandonment risk scored",
                     risk_score=risk_score,
                     risk_level=risk_level.value,
                     raw_score=round(raw_score, 3),
                     current_step=features.current_step.value)

        return prediction

    def _score_signals(self, features: PredictionFeatures) -> List[RiskFactor]:
        """Compute the contribution of every scored signal."""
        w = self.weights
        factors = [
            RiskFactor(name=TIME_PRESSURE, value=features.time_exceeded,
                       contribution=self.calculate_time_risk(features.time_exceeded)),
            RiskFactor(name=ERROR_PRESSURE, value=features.error_count,
                       contribution=self.calculate_error_risk(features.error_count)),
            RiskFactor(name=FUNNEL_POSITION, value=features.step_progress,
                       contribution=self.calculate_progress_risk(features.step_progress)),
            RiskFactor(name=STEP_STALL, value=features.step_duration,
                       contribution=self.calculate_stall_risk(features.current_step, features.step_duration)),
        ]

        # Coming back to an earlier step reads as engagement, so it lowers risk.
        if features.has_returned:
            factors.append(RiskFactor(name=RETURNED, value=True, contribution=w.returned_adjustment))

        if features.historical_conversion_rate is not None:
            shift = (w.conversion_baseline - features.historical_conversion_rate) * w.conversion_weight
            factors.append(RiskFactor(name=CONVERSION_PRIOR,
                                      value=features.historical_conversion_rate,
                                      contribution=shift))

        if features.historical_abandonments is not None:
            counted = min(features.historical_abandonments, w.abandonment_cap)
            factors.append(RiskFactor(name=ABANDONMENT_PRIOR,
                                      value=features.historical_abandonments,
                                      contribution=counted * w.abandonment_step))

        return factors

    def _context_factors(self, features: PredictionFeatures) -> List[RiskFactor]:
        """Contextual tags are reported for explainability but never scored."""
        context = []
        if features.device_type:
            context.append(RiskFactor(name=DEVICE_TYPE, value=features.device_type))
        if features.location:
            context.append(RiskFactor(name=LOCATION, value=features.location))
        return context

    def calculate_time_risk(self, time_exceeded: float) -> float:
        risk = min(1.0, time_exceeded) * self.weights.time_weight
        if time_exceeded > 1.0:
            risk += min(1.0, time_exceeded - 1.0) * self.weights.overtime_weight
        return risk

    def calculate_error_risk(self, error_count: int) -> float:
        cap = max(1, self.weights.error_cap)
        return min(1.0, error_count / cap) * self.weights.error_weight

    def calculate_progress_risk(self, step_progress: float) -> float:
        return (1.0 - min(1.0, step_progress)) * self.weights.progress_weight

    def calculate_stall_risk(self, step: CheckoutStep, step_duration: float) -> float:
        """Sub-linear penalty for time on a step beyond its typical duration."""
        typical = self.weights.typical_step_seconds.get(step)
        if not typical:
            return 0.0
        excess = max(0.0, step_duration / typical - 1.0)
        span = max(self.weights.stall_saturation - 1.0, 1e-9)
        return min(1.0, math.sqrt(excess / span)) * self.weights.stall_weight

    def calculate_confidence(self, features: PredictionFeatures) -> float:
        """More account context means a more trustworthy score."""
        confidence = 0.5

        if features.historical_abandonments is not None:
            confidence += 0.2
        if features.avg_checkout_time is not None:
            confidence += 0.1
        if features.historical_conversion_rate is not None:
            confidence += 0.1
        if features.device_type:
            confidence += 0.05
        if features.location:
            confidence += 0.05

        return min(1.0, round(confidence, 4))

    def generate_recommendations(self, risk_level: RiskLevel, features: PredictionFeatures) -> List[str]:
        recommendations: List[str] = []

        if risk_level in (RiskLevel.HIGH, RiskLevel.CRITICAL):
            recommendations += ["offer_discount", "send_recovery_email", "simplify_checkout"]

        if features.error_count > 0:
            recommendations += ["improve_error_feedback", "simplify_validation"]

        if features.time_exceeded > 1.0:
            recommendations += ["reduce_checkout_time", "enable_autofill"]

        if features.current_step == CheckoutStep.PAYMENT:
            recommendations += ["offer_payment_options", "show_trust_badges"]

        if features.step_duration > self.weights.long_step_seconds:
            recommendations += ["show_progress_indicator", "clarify_next_steps"]

        # Preserve rule order, drop repeats
        return list(dict.fromkeys(recommendations))

    def get_intervention_type(self,
                              risk_level: RiskLevel,
                              features: PredictionFeatures,
                              factors: List[RiskFactor]) -> Optional[InterventionType]:
        if risk_level == RiskLevel.LOW:
            return None

        if features.current_step == CheckoutStep.PAYMENT:
            return InterventionType.SECURITY

        if risk_level in (RiskLevel.HIGH, RiskLevel.CRITICAL):
            dominant = self.dominant_factor(factors)
            if dominant == ERROR_PRESSURE:
                return InterventionType.SIMPLIFY
            if dominant == STEP_STALL:
                return InterventionType.PROGRESS
            return InterventionType.DISCOUNT

        if features.error_count > 0 or features.step_duration > self.weights.long_step_seconds:
            return InterventionType.SIMPLIFY

        return InterventionType.PROGRESS

    @staticmethod
    def dominant_factor(factors: List[RiskFactor]) -> Optional[str]:
        """Name of the signal adding the most risk, if any adds risk."""
        positive = [f for f in factors if f.contribution > 0]
        if not positive:
            return None
        return max(positive, key=lambda f: f.contribution).name
