"""
Prediction data models for checkout abandonment scoring.

These models define the features consumed by the abandonment predictors
and the predictions they produce. Shared by the API layer, the retraining
job and the history stores.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class CheckoutStep(str, Enum):
    """Checkout funnel steps, in funnel order."""
    CART = "cart"
    LOGIN = "login"
    PROFILE = "profile"
    SHIPPING = "shipping"
    PAYMENT = "payment"

    @classmethod
    def ordered(cls) -> List["CheckoutStep"]:
        return [cls.CART, cls.LOGIN, cls.PROFILE, cls.SHIPPING, cls.PAYMENT]

    @property
    def index(self) -> int:
        return CheckoutStep.ordered().index(self)


class RiskLevel(str, Enum):
    """Risk level buckets. The dashboard color-codes on these values."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return [RiskLevel.LOW, RiskLevel.MEDIUM, RiskLevel.HIGH, RiskLevel.CRITICAL].index(self)


class InterventionType(str, Enum):
    """Interventions that can be applied to an at-risk checkout."""
    DISCOUNT = "discount"
    SECURITY = "security"  # trust badges and security indicators
    SIMPLIFY = "simplify"
    PROGRESS = "progress"


class SessionOutcome(str, Enum):
    COMPLETED = "completed"
    ABANDONED = "abandoned"


def risk_level_for(score: float) -> RiskLevel:
    """Map a 0-100 risk score to its risk level."""
    if score >= 70:
        return RiskLevel.CRITICAL
    elif score >= 50:
        return RiskLevel.HIGH
    elif score >= 30:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


class PredictionFeatures(BaseModel):
    """Behavioral snapshot of a checkout session.

    Numeric fields are expected to be finite and non-negative. Callers clamp
    before scoring; the predictors do not reject out-of-range values.
    """
    time_exceeded: float = Field(description="Elapsed checkout time / typical checkout time")
    error_count: int = Field(default=0, description="Validation and payment errors so far")
    current_step: CheckoutStep = Field(default=CheckoutStep.CART)
    step_duration: float = Field(default=0.0, description="Seconds spent on the current step")
    total_duration: float = Field(default=0.0, description="Seconds since checkout start")
    has_returned: bool = Field(default=False, description="Session revisited an earlier step")
    step_progress: float = Field(default=0.0, description="Fraction of the funnel completed (0-1)")

    # Contextual tags, surfaced as factors only
    device_type: Optional[str] = None
    location: Optional[str] = None

    # Account-level priors
    historical_abandonments: Optional[int] = None
    avg_checkout_time: Optional[float] = None
    historical_conversion_rate: Optional[float] = None


class RiskFactor(BaseModel):
    """A single signal and its contribution to the risk score."""
    name: str
    value: Union[float, int, bool, str, None] = None
    contribution: float = 0.0


class AbandonmentPrediction(BaseModel):
    """Abandonment risk prediction for a checkout session."""
    risk_score: float = Field(ge=0.0, le=100.0)
    risk_level: RiskLevel
    confidence: float = Field(ge=0.0, le=1.0)
    factors: List[RiskFactor] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    intervention_suggested: bool = False
    intervention_type: Optional[InterventionType] = None
    model_version: str = "v1"

    model_config = ConfigDict(protected_namespaces=())


class HistoricalTrainingData(BaseModel):
    """A labelled checkout session used to evaluate the predictor."""
    session_id: str
    features: PredictionFeatures
    outcome: SessionOutcome
    timestamp: datetime


class ModelMetrics(BaseModel):
    """Retrospective quality of the abandonment heuristic."""
    accuracy: float
    precision: float
    recall: float
    f1_score: float
    last_trained: datetime
    training_size: int

    true_positives: int = 0
    false_positives: int = 0
    true_negatives: int = 0
    false_negatives: int = 0
