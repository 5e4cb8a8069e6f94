"""
Configuration models for checkout scoring and forecasting.

The heuristic constants below have no documented derivation; dashboards
have been tuned against them, so they are exposed as overridable fields
rather than re-derived.
"""

from dataclasses import dataclass
from typing import Dict, Tuple

from pydantic import BaseModel, Field

from boltx.core.models.features import CheckoutStep


class ScoringWeights(BaseModel):
    """Point weights for the abandonment risk score (0-100 scale)."""

    # Time pressure
    time_weight: float = Field(default=25.0, description="Points at 100% of typical checkout time")
    overtime_weight: float = Field(default=15.0, description="Extra points once over typical time")

    # Error pressure
    error_weight: float = Field(default=25.0, description="Points at the error cap")
    error_cap: int = Field(default=3, description="Errors for full error pressure")

    # Funnel position
    progress_weight: float = Field(default=20.0, description="Points at zero funnel progress")

    # Step stall
    stall_weight: float = Field(default=15.0, description="Points for a fully stalled step")
    stall_saturation: float = Field(default=4.0, description="Step time / typical at which stall saturates")
    typical_step_seconds: Dict[CheckoutStep, float] = Field(
        default_factory=lambda: {
            CheckoutStep.CART: 60.0,
            CheckoutStep.LOGIN: 45.0,
            CheckoutStep.PROFILE: 90.0,
            CheckoutStep.SHIPPING: 90.0,
            CheckoutStep.PAYMENT: 120.0,
        },
        description="Typical seconds spent on each step"
    )

    # Behavior and priors
    returned_adjustment: float = Field(default=-5.0, description="Applied when the user came back to an earlier step")
    conversion_weight: float = Field(default=10.0, description="Points per unit of conversion rate below baseline")
    conversion_baseline: float = Field(default=0.5, description="Neutral historical conversion rate")
    abandonment_step: float = Field(default=1.0, description="Points per prior abandonment")
    abandonment_cap: int = Field(default=5, description="Prior abandonments counted at most")

    # Rule thresholds
    intervention_threshold: float = Field(default=50.0, description="Score at which an intervention is suggested")
    long_step_seconds: float = Field(default=180.0, description="Step duration treated as stuck")


class EnhancementConfig(BaseModel):
    """Session-history smoothing constants."""

    history_limit: int = Field(default=10, description="Predictions kept per session")
    trend_window: int = Field(default=3, description="Recent scores averaged for the trend")
    boost_floor: float = Field(default=50.0, description="Scores at or below this are never boosted")
    boost_multiplier: float = Field(default=0.2, description="Share of the rise over the recent average added")
    max_boost: float = Field(default=10.0, description="Largest boost applied")
    consistency_threshold: float = Field(default=15.0, description="Score distance counted as consistent")
    consistency_bonus: float = Field(default=0.1, description="Confidence added at full consistency")
    classification_threshold: float = Field(default=50.0, description="Score treated as predicted abandonment")
    training_fetch_limit: int = Field(default=1000, description="Samples requested per training load")


class ForecastConfig(BaseModel):
    """Revenue forecast configuration."""

    default_days: int = Field(default=30, description="Forecast horizon when not specified")
    min_history_points: int = Field(default=2, description="Points needed for a projection")
    trend_epsilon: float = Field(default=1e-9, description="Relative growth per day treated as float noise")
    interval_z: float = Field(default=1.96, description="z-score for the confidence interval")
    max_confidence: float = Field(default=0.9, description="Confidence of the first projected day")
    confidence_decay: float = Field(default=0.4, description="Confidence lost across the horizon")
    min_confidence: float = Field(default=0.3, description="Confidence floor")
    apply_seasonality: bool = Field(default=False, description="Scale projections by seasonal multipliers")
    min_seasonality_days: int = Field(default=14, description="History span needed to apply seasonality")

    # Flat-average fallback
    fallback_lower_ratio: float = Field(default=0.5)
    fallback_upper_ratio: float = Field(default=1.5)
    fallback_confidence: float = Field(default=0.5)


@dataclass
class FeatureBuilderConfig:
    """Configuration for building features from raw checkout events."""

    typical_checkout_seconds: float = 180.0

    # Account priors when nothing is known
    default_abandonments: int = 0
    default_avg_checkout_seconds: float = 180.0
    default_conversion_rate: float = 0.5

    start_event_types: Tuple[str, ...] = ("checkout_start", "checkout_started")
    complete_event_types: Tuple[str, ...] = ("checkout_complete", "order_confirmed")
    abandon_event_types: Tuple[str, ...] = ("step_abandoned",)
    revenue_keys: Tuple[str, ...] = ("revenue", "value", "orderValue", "totalValue", "amount")
