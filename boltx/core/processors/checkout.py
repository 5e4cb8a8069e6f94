"""
Checkout feature processors.

Turns raw checkout analytics events into the feature snapshot consumed by
the abandonment predictors, plus account-level priors and session labels
for evaluation.
"""

from collections import defaultdict
from datetime import datetime, timezone
from typing import Dict, List, Optional

import structlog

from boltx.core.models.config import FeatureBuilderConfig
from boltx.core.models.events import AccountHistory, AnalyticsEvent, as_utc
from boltx.core.models.features import (
    CheckoutStep,
    HistoricalTrainingData,
    PredictionFeatures,
    SessionOutcome,
)

logger = structlog.get_logger(__name__)

ERROR_OCCURRED = "error_occurred"
CHECKOUT_STARTED = "checkout_started"


def _parse_step(value: Optional[str]) -> Optional[CheckoutStep]:
    if not value:
        return None
    try:
        return CheckoutStep(value.lower())
    except ValueError:
        return None


def _group_by_session(events: List[AnalyticsEvent]) -> Dict[str, List[AnalyticsEvent]]:
    sessions: Dict[str, List[AnalyticsEvent]] = defaultdict(list)
    for event in sorted(events, key=lambda e: e.timestamp):
        sessions[event.session_id].append(event)
    return sessions


class CheckoutFeatureBuilder:
    """Build prediction features from a session's events."""

    def __init__(self, config: Optional[FeatureBuilderConfig] = None):
        self.config = config or FeatureBuilderConfig()

    def build_features(self,
                       events: List[AnalyticsEvent],
                       now: Optional[datetime] = None,
                       history: Optional[AccountHistory] = None) -> PredictionFeatures:
        """
        Build a feature snapshot for one checkout session.

        Args:
            events: The session's events, any order
            now: Evaluation time; defaults to the current time
            history: Account priors to attach

        Returns:
            PredictionFeatures measured up to `now`
        """
        ordered = sorted(events, key=lambda e: e.timestamp)
        now = as_utc(now) or datetime.now(timezone.utc)
        session_start = ordered[0].timestamp if ordered else now

        current_step = CheckoutStep.CART
        step_start = session_start
        error_count = 0
        has_returned = False
        steps_visited = set()

        for event in ordered:
            if event.step:
                steps_visited.add(event.step)

            # Furthest step reached; going back never lowers it.
            # Unrecognised step names are tracked as visited but never become current.
            step = _parse_step(event.step)
            if step is not None and step.index > current_step.index:
                current_step = step
                step_start = event.timestamp

            if event.event_type == ERROR_OCCURRED:
                error_count += 1

            if event.event_type == CHECKOUT_STARTED and len(steps_visited) > 1:
                has_returned = True

        total_duration = max(0.0, (now - session_start).total_seconds())
        step_duration = max(0.0, (now - step_start).total_seconds())
        steps = CheckoutStep.ordered()
        typical = self.config.typical_checkout_seconds

        metadata = ordered[0].metadata if ordered else {}
        device_type = metadata.get("deviceType") or metadata.get("device_type")
        location = metadata.get("location")

        features = PredictionFeatures(
            time_exceeded=total_duration / typical if typical > 0 else 0.0,
            error_count=error_count,
            current_step=current_step,
            step_duration=step_duration,
            total_duration=total_duration,
            has_returned=has_returned,
            step_progress=(current_step.index + 1) / len(steps),
            device_type=str(device_type) if device_type else None,
            location=str(location) if location else None,
        )

        if history is not None:
            features = features.model_copy(update={
                "historical_abandonments": history.abandonments,
                "avg_checkout_time": history.avg_checkout_time,
                "historical_conversion_rate": history.conversion_rate,
            })

        return features

    def build_account_history(self,
                              events: List[AnalyticsEvent],
                              exclude_session_id: Optional[str] = None) -> AccountHistory:
        """Priors from previous sessions of the same account."""
        cfg = self.config
        defaults = AccountHistory(
            abandonments=cfg.default_abandonments,
            avg_checkout_time=cfg.default_avg_checkout_seconds,
            conversion_rate=cfg.default_conversion_rate,
        )

        lifecycle_types = set(cfg.start_event_types + cfg.complete_event_types + cfg.abandon_event_types)
        relevant = [
            e for e in events
            if e.session_id != exclude_session_id and e.event_type in lifecycle_types
        ]
        if not relevant:
            return defaults

        sessions = _group_by_session(relevant)
        completed = 0
        abandoned = 0
        checkout_times = []

        for session_events in sessions.values():
            start = next((e for e in session_events if e.event_type in cfg.start_event_types), None)
            complete = next((e for e in session_events if e.event_type in cfg.complete_event_types), None)
            abandon = next((e for e in session_events if e.event_type in cfg.abandon_event_types), None)

            if start and complete:
                completed += 1
                duration = (complete.timestamp - start.timestamp).total_seconds()
                if duration > 0:
                    checkout_times.append(duration)
            elif abandon:
                abandoned += 1

        total = len(sessions)
        history = AccountHistory(
            abandonments=abandoned,
            avg_checkout_time=sum(checkout_times) / len(checkout_times) if checkout_times else cfg.default_avg_checkout_seconds,
            conversion_rate=completed / total,
            sessions=total,
        )
        logger.debug("Account history built",
                     sessions=total,
                     completed=completed,
                     abandoned=abandoned)
        return history

    def session_outcomes(self, events: List[AnalyticsEvent]) -> Dict[str, SessionOutcome]:
        """Label sessions that reached an outcome. Completion wins over abandonment."""
        cfg = self.config
        outcomes = {}
        for session_id, session_events in _group_by_session(events).items():
            types = {e.event_type for e in session_events}
            if types & set(cfg.complete_event_types):
                outcomes[session_id] = SessionOutcome.COMPLETED
            elif types & set(cfg.abandon_event_types):
                outcomes[session_id] = SessionOutcome.ABANDONED
        return outcomes

    def build_training_samples(self, events: List[AnalyticsEvent]) -> List[HistoricalTrainingData]:
        """Labelled samples with features measured at each session's last event."""
        outcomes = self.session_outcomes(events)
        samples = []
        for session_id, session_events in _group_by_session(events).items():
            outcome = outcomes.get(session_id)
            if outcome is None:
                continue
            last_seen = session_events[-1].timestamp
            samples.append(HistoricalTrainingData(
                session_id=session_id,
                features=self.build_features(session_events, now=last_seen),
                outcome=outcome,
                timestamp=last_seen,
            ))
        return samples
