"""
Revenue Forecast Model

Projects daily revenue from a short history of daily totals:
- Least-squares trend over calendar-day offsets (gaps honoured)
- Widening 95% confidence interval
- Weekly and monthly seasonality multipliers
- Flat-average fallback and accuracy scoring for the dashboard

Deterministic: identical history always yields an identical forecast.
"""

import math
from datetime import timedelta
from typing import List, Optional, Tuple

import numpy as np
import pandas as pd
import structlog

from boltx.core.models.config import ForecastConfig
from boltx.core.models.forecast import (
    ForecastAccuracy,
    ForecastDataPoint,
    ForecastResult,
    ForecastSummary,
    Seasonality,
    TrendDirection,
)
from boltx.core.utils.metrics import FORECAST_FALLBACKS, FORECASTS_GENERATED

logger = structlog.get_logger(__name__)


class ForecastModel:
    """Linear-trend revenue forecaster."""

    def __init__(self, config: Optional[ForecastConfig] = None):
        self.config = config or ForecastConfig()

    def generate_forecast(self,
                          historical_data: List[ForecastDataPoint],
                          days: Optional[int] = None) -> ForecastSummary:
        """
        Generate a daily revenue forecast.

        Args:
            historical_data: Observed daily revenue, any order
            days: Days to project after the last observed day

        Returns:
            ForecastSummary; empty forecasts when history is too short
        """
        cfg = self.config
        days = cfg.default_days if days is None else days
        history = sorted(historical_data, key=lambda p: p.date)

        if len(history) < cfg.min_history_points or days <= 0:
            logger.debug("Not enough history to forecast", points=len(history), days=days)
            return ForecastSummary()

        revenues = np.array([p.revenue for p in history], dtype=float)
        offsets = np.array([(p.date - history[0].date).days for p in history], dtype=float)

        slope = self.calculate_trend(offsets, revenues)
        trend = self.trend_direction(slope, scale=float(np.mean(np.abs(revenues))))
        seasonality = self.calculate_seasonality(history)
        apply_seasonality = cfg.apply_seasonality and self.history_span_days(history) >= cfg.min_seasonality_days

        n = len(history)
        std = float(np.std(revenues))
        last_date = history[-1].date
        last_revenue = float(revenues[-1])

        forecasts = []
        for i in range(1, days + 1):
            forecast_date = last_date + timedelta(days=i)
            forecast = max(0.0, last_revenue + slope * i)

            if apply_seasonality:
                forecast *= self.seasonal_multiplier(seasonality, forecast_date)

            interval = cfg.interval_z * std * math.sqrt(1 + i / n)
            confidence = max(cfg.min_confidence, cfg.max_confidence - (i / days) * cfg.confidence_decay)

            forecasts.append(ForecastResult(
                date=forecast_date,
                forecast=forecast,
                lower_bound=max(0.0, forecast - interval),
                upper_bound=forecast + interval,
                confidence=confidence,
            ))

        FORECASTS_GENERATED.labels(trend=trend.value).inc()
        logger.debug("Revenue forecast generated",
                     points=n,
                     days=days,
                     trend=trend.value,
                     avg_growth=round(slope, 4),
                     seasonal=apply_seasonality)

        return ForecastSummary(
            forecasts=forecasts,
            trend=trend,
            avg_growth=slope,
            seasonality=seasonality,
        )

    @staticmethod
    def calculate_trend(offsets: np.ndarray, revenues: np.ndarray) -> float:
        """Least-squares slope in revenue per day."""
        x_centered = offsets - offsets.mean()
        denominator = float(np.sum(x_centered ** 2))
        if denominator == 0:
            return 0.0
        return float(np.sum(x_centered * (revenues - revenues.mean())) / denominator)

    def trend_direction(self, slope: float, scale: float = 1.0) -> TrendDirection:
        """Sign of the slope, ignoring float noise relative to the revenue scale."""
        tolerance = self.config.trend_epsilon * max(1.0, scale)
        if slope > tolerance:
            return TrendDirection.INCREASING
        elif slope < -tolerance:
            return TrendDirection.DECREASING
        return TrendDirection.STABLE

    @staticmethod
    def calculate_seasonality(history: List[ForecastDataPoint]) -> Seasonality:
        """Mean revenue per weekday and per month relative to the overall mean."""
        if not history:
            return Seasonality()

        df = pd.DataFrame({
            'date': pd.to_datetime([p.date for p in history]),
            'revenue': [p.revenue for p in history],
        })
        overall_mean = df['revenue'].mean()
        if overall_mean <= 0:
            return Seasonality()

        weekly = df.groupby(df['date'].dt.dayofweek)['revenue'].mean() / overall_mean
        monthly = df.groupby(df['date'].dt.month)['revenue'].mean() / overall_mean

        return Seasonality(
            weekly={int(k): float(v) for k, v in weekly.items()},
            monthly={int(k): float(v) for k, v in monthly.items()},
        )

    @staticmethod
    def seasonal_multiplier(seasonality: Seasonality, day) -> float:
        weekly = seasonality.weekly.get(day.weekday(), 1.0)
        monthly = seasonality.monthly.get(day.month, 1.0)
        return (weekly + monthly) / 2

    @staticmethod
    def history_span_days(history: List[ForecastDataPoint]) -> int:
        if not history:
            return 0
        return (history[-1].date - history[0].date).days + 1


def generate_forecast(historical_data: List[ForecastDataPoint],
                      days: int = 30,
                      config: Optional[ForecastConfig] = None) -> ForecastSummary:
    """Convenience wrapper around ForecastModel.generate_forecast."""
    return ForecastModel(config).generate_forecast(historical_data, days)


def average_daily_change(historical_data: List[ForecastDataPoint]) -> float:
    """Mean change per day between consecutive points."""
    history = sorted(historical_data, key=lambda p: p.date)
    if len(history) < 2:
        return 0.0

    changes = []
    for prev, curr in zip(history, history[1:]):
        gap_days = max(1, (curr.date - prev.date).days)
        changes.append((curr.revenue - prev.revenue) / gap_days)
    return float(np.mean(changes))


def fallback_forecast(historical_data: List[ForecastDataPoint],
                      days: int = 30,
                      config: Optional[ForecastConfig] = None) -> ForecastSummary:
    """Flat projection of the average daily revenue."""
    cfg = config or ForecastConfig()
    if not historical_data or days <= 0:
        return ForecastSummary()

    last_date = max(p.date for p in historical_data)
    average = float(np.mean([p.revenue for p in historical_data]))

    forecasts = [
        ForecastResult(
            date=last_date + timedelta(days=i),
            forecast=average,
            lower_bound=max(0.0, average * cfg.fallback_lower_ratio),
            upper_bound=average * cfg.fallback_upper_ratio,
            confidence=cfg.fallback_confidence,
        )
        for i in range(1, days + 1)
    ]

    return ForecastSummary(
        forecasts=forecasts,
        trend=TrendDirection.STABLE,
        avg_growth=average_daily_change(historical_data),
    )


def forecast_with_fallback(model: ForecastModel,
                           historical_data: List[ForecastDataPoint],
                           days: Optional[int] = None) -> Tuple[ForecastSummary, bool]:
    """Run the model, falling back to a flat average when it projects nothing.

    Returns the summary and whether the fallback was used. The reported growth
    is the average day-normalised change so dashboards show the same figure
    regardless of which path produced the projection.
    """
    days = model.config.default_days if days is None else days
    summary = model.generate_forecast(historical_data, days)
    used_fallback = False

    if not summary.forecasts and historical_data:
        summary = fallback_forecast(historical_data, days, model.config)
        used_fallback = True
        FORECAST_FALLBACKS.inc()
        logger.warning("Using fallback revenue forecast", points=len(historical_data), days=days)
    elif len(historical_data) >= 2:
        summary = summary.model_copy(update={"avg_growth": average_daily_change(historical_data)})

    return summary, used_fallback


def calculate_forecast_accuracy(forecasts: List[ForecastResult],
                                actuals: List[ForecastDataPoint]) -> ForecastAccuracy:
    """MAE, MAPE (percent) and RMSE over the dates present in both lists."""
    if not forecasts or not actuals:
        return ForecastAccuracy()

    actual_by_date = {a.date: a.revenue for a in actuals}
    errors = []
    percentages = []

    for forecast in forecasts:
        actual = actual_by_date.get(forecast.date)
        if actual is None:
            continue
        error = abs(forecast.forecast - actual)
        errors.append(error)
        # Zero actuals have no defined percentage error
        if actual > 0:
            percentages.append(error / actual * 100)

    if not errors:
        return ForecastAccuracy()

    errors_arr = np.array(errors)
    return ForecastAccuracy(
        mae=float(errors_arr.mean()),
        mape=float(np.mean(percentages)) if percentages else 0.0,
        rmse=float(np.sqrt(np.mean(errors_arr ** 2))),
    )
