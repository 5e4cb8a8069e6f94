#!/usr/bin/env python3
"""
Request and Response Schemas for the Scoring API

Pydantic models for the abandonment scoring, revenue forecasting and model
evaluation endpoints.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from boltx.core.models.events import AccountHistory, AnalyticsEvent, as_utc
from boltx.core.models.features import (
    AbandonmentPrediction,
    HistoricalTrainingData,
    ModelMetrics,
    PredictionFeatures,
)
from boltx.core.models.forecast import (
    ForecastAccuracy,
    ForecastDataPoint,
    ForecastResult,
    Seasonality,
    TrendDirection,
)


# === Base Models ===

class BaseRequest(BaseModel):
    """Base request model with common fields."""

    request_id: Optional[str] = Field(
        default=None,
        description="Unique request identifier for tracing"
    )

    model_config = ConfigDict(extra="ignore")


class BaseResponse(BaseModel):
    """Base response model with common fields."""

    request_id: Optional[str] = Field(description="Request identifier")
    timestamp: datetime = Field(description="Response timestamp")
    model_version: str = Field(description="Scoring heuristic version")
    latency_ms: float = Field(description="Request latency in milliseconds")

    model_config = ConfigDict(protected_namespaces=())


# === Abandonment Scoring ===

class AbandonmentScoreRequest(BaseRequest):
    """Score a prepared feature snapshot."""

    features: PredictionFeatures = Field(description="Checkout session features")
    session_id: Optional[str] = Field(
        default=None,
        description="Session identifier; enables history smoothing",
        min_length=1,
        max_length=128
    )


class SessionScoreRequest(BaseRequest):
    """Score a session from its raw analytics events."""

    session_id: str = Field(..., description="Checkout session identifier", min_length=1, max_length=128)
    events: List[AnalyticsEvent] = Field(..., description="Events of this session", min_length=1)
    account_events: List[AnalyticsEvent] = Field(
        default_factory=list,
        description="Lifecycle events of earlier sessions of the same account"
    )
    evaluated_at: Optional[datetime] = Field(
        default=None,
        description="Evaluation time (defaults to now)"
    )

    @field_validator('evaluated_at')
    @classmethod
    def normalize_evaluated_at(cls, v: Optional[datetime]) -> Optional[datetime]:
        return as_utc(v)


class AbandonmentScoreResponse(BaseResponse):
    """Abandonment scoring response."""

    session_id: Optional[str] = Field(default=None, description="Session identifier")
    prediction: AbandonmentPrediction = Field(description="Risk prediction")
    features: PredictionFeatures = Field(description="Features that were scored")
    account_history: Optional[AccountHistory] = Field(default=None, description="Account priors applied")


class SessionHistoryResponse(BaseModel):
    session_id: str
    count: int
    predictions: List[AbandonmentPrediction]


# === Revenue Forecast ===

class RevenueForecastRequest(BaseRequest):
    """Forecast from daily totals or from raw completed-checkout events."""

    historical: Optional[List[ForecastDataPoint]] = Field(
        default=None,
        description="Observed daily revenue"
    )
    events: Optional[List[AnalyticsEvent]] = Field(
        default=None,
        description="Completed-checkout events to aggregate into daily revenue"
    )
    days: Optional[int] = Field(default=None, description="Days to forecast", ge=1, le=365)
    actuals: Optional[List[ForecastDataPoint]] = Field(
        default=None,
        description="Observed revenue for forecast dates, for accuracy scoring"
    )

    @model_validator(mode="after")
    def require_history_source(self):
        if self.historical is None and self.events is None:
            raise ValueError("Either historical or events must be provided")
        return self


class RevenueForecastSummary(BaseModel):
    total_historical_revenue: float
    avg_daily_revenue: float
    total_forecast_revenue: float
    avg_forecast_revenue: float
    forecast_7_revenue: float
    forecast_30_revenue: float
    forecast_90_revenue: float
    trend: TrendDirection
    avg_growth: float


class RevenueForecastResponse(BaseModel):
    """Revenue forecast response."""

    request_id: Optional[str] = None
    summary: RevenueForecastSummary
    historical: List[ForecastDataPoint] = Field(description="Most recent 30 observed days")
    forecast: List[ForecastResult]
    seasonality: Seasonality
    accuracy: Optional[ForecastAccuracy] = None
    fallback_used: bool = False
    forecast_days: int


# === Model Evaluation ===

class TrainRequest(BaseRequest):
    samples: List[HistoricalTrainingData] = Field(..., description="Labelled sessions", min_length=1)


class ModelMetricsResponse(BaseModel):
    """Latest evaluation of the scoring heuristic."""

    model_version: str
    metrics: Optional[ModelMetrics] = None

    model_config = ConfigDict(protected_namespaces=())


# === Health and Errors ===

class HealthStatus(str, Enum):
    """Service health status."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class HealthResponse(BaseModel):
    """Health check response."""

    status: HealthStatus = Field(description="Overall health status")
    timestamp: datetime = Field(description="Health check timestamp")
    version: str = Field(description="Service version")
    components: Dict[str, Dict[str, Any]] = Field(
        description="Health status of individual components"
    )
    uptime_seconds: float = Field(description="Service uptime in seconds")


class ErrorDetail(BaseModel):
    """Detailed error information."""

    error_code: str = Field(description="Error code")
    error_message: str = Field(description="Human-readable error message")
    error_type: str = Field(description="Error type/category")
    timestamp: datetime = Field(description="Error timestamp")
    request_id: Optional[str] = Field(default=None, description="Request ID where error occurred")


class ErrorResponse(BaseModel):
    """Error response model."""

    success: bool = Field(default=False, description="Request success status")
    error: ErrorDetail = Field(description="Error details")

    model_config = ConfigDict(extra="forbid")
