"""
Revenue forecast data models.
"""

import datetime
from enum import Enum
from typing import Dict, List

from pydantic import BaseModel, Field


class TrendDirection(str, Enum):
    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"


class ForecastDataPoint(BaseModel):
    """Observed revenue for one calendar day."""
    date: datetime.date
    revenue: float = Field(ge=0.0)


class ForecastResult(BaseModel):
    """Projected revenue for one future day."""
    date: datetime.date
    forecast: float = Field(ge=0.0)
    lower_bound: float = Field(ge=0.0)
    upper_bound: float = Field(ge=0.0)
    confidence: float = Field(ge=0.0, le=1.0)


class Seasonality(BaseModel):
    """Revenue multipliers relative to the historical mean (1.0 = average)."""
    weekly: Dict[int, float] = Field(default_factory=dict, description="Keyed by weekday, Monday=0")
    monthly: Dict[int, float] = Field(default_factory=dict, description="Keyed by month, January=1")


class ForecastSummary(BaseModel):
    forecasts: List[ForecastResult] = Field(default_factory=list)
    trend: TrendDirection = TrendDirection.STABLE
    avg_growth: float = 0.0
    seasonality: Seasonality = Field(default_factory=Seasonality)


class ForecastAccuracy(BaseModel):
    mae: float = 0.0
    mape: float = 0.0
    rmse: float = 0.0
