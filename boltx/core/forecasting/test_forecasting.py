#!/usr/bin/env python3
"""
Tests for the revenue forecast model and its service helpers.
"""

from datetime import date, timedelta

import pytest

from boltx.core.forecasting.revenue import (
    ForecastModel,
    average_daily_change,
    calculate_forecast_accuracy,
    fallback_forecast,
    forecast_with_fallback,
    generate_forecast,
)
from boltx.core.models.config import ForecastConfig
from boltx.core.models.forecast import ForecastDataPoint, ForecastResult, TrendDirection

START = date(2025, 1, 6)  # a Monday


def series(revenues, start=START, step_days=1):
    return [
        ForecastDataPoint(date=start + timedelta(days=i * step_days), revenue=r)
        for i, r in enumerate(revenues)
    ]


def assert_bounds_ordered(summary):
    for f in summary.forecasts:
        assert 0 <= f.lower_bound <= f.forecast <= f.upper_bound


def test_flat_history_is_stable():
    print("🧪 Testing flat revenue series...")
    summary = generate_forecast(series([250.0] * 10), days=14)

    assert summary.trend == TrendDirection.STABLE
    assert summary.avg_growth == pytest.approx(0.0)
    assert len(summary.forecasts) == 14
    for f in summary.forecasts:
        assert f.forecast == pytest.approx(250.0)
        assert f.lower_bound <= 250.0 <= f.upper_bound
    print(f"  ✅ {len(summary.forecasts)} flat forecasts at 250.0")


def test_increasing_history_has_positive_growth():
    revenues = [100.0 + 10 * i for i in range(10)]
    summary = generate_forecast(series(revenues), days=5)

    assert summary.trend == TrendDirection.INCREASING
    assert summary.avg_growth > 0
    assert summary.avg_growth == pytest.approx(10.0)
    assert summary.forecasts[0].date == START + timedelta(days=10)
    assert summary.forecasts[0].forecast == pytest.approx(200.0)
    assert summary.forecasts[4].forecast == pytest.approx(240.0)


def test_tiny_growth_is_still_increasing():
    summary = generate_forecast(series([1.0, 1.0000001]), days=3)
    assert summary.trend == TrendDirection.INCREASING

    summary = generate_forecast(series([5000.0, 4999.9999]), days=3)
    assert summary.trend == TrendDirection.DECREASING


def test_decreasing_history_is_floored_at_zero():
    revenues = [500.0, 400.0, 300.0, 200.0, 100.0]
    summary = generate_forecast(series(revenues), days=10)

    assert summary.trend == TrendDirection.DECREASING
    assert summary.avg_growth == pytest.approx(-100.0)
    assert summary.forecasts[-1].forecast == 0.0
    assert_bounds_ordered(summary)


def test_noisy_history_keeps_bounds_ordered():
    revenues = [120.0, 0.0, 340.0, 15.0, 90.0, 410.0, 5.0, 260.0, 0.0, 180.0, 75.0, 30.0]
    summary = generate_forecast(series(revenues), days=30)

    assert_bounds_ordered(summary)
    widths = [f.upper_bound - f.lower_bound for f in summary.forecasts if f.lower_bound > 0]
    assert widths == sorted(widths)


def test_gaps_use_calendar_days():
    # 0, 20, 40 two days apart grows 10 per day, not 20
    summary = generate_forecast(series([0.0, 20.0, 40.0], step_days=2), days=3)

    assert summary.avg_growth == pytest.approx(10.0)
    assert summary.forecasts[0].date == START + timedelta(days=5)
    assert summary.forecasts[0].forecast == pytest.approx(50.0)


def test_unsorted_history_is_ordered_by_date():
    points = list(reversed(series([10.0, 20.0, 30.0])))
    summary = generate_forecast(points, days=1)

    assert summary.trend == TrendDirection.INCREASING
    assert summary.forecasts[0].forecast == pytest.approx(40.0)


def test_short_history_yields_empty_forecast():
    for history in ([], series([100.0])):
        summary = generate_forecast(history, days=30)
        assert summary.forecasts == []
        assert summary.trend == TrendDirection.STABLE
        assert summary.avg_growth == 0.0


def test_confidence_decays_over_horizon():
    summary = generate_forecast(series([100.0, 110.0, 105.0]), days=30)

    confidences = [f.confidence for f in summary.forecasts]
    assert confidences[0] == pytest.approx(0.9 - 0.4 / 30)
    assert confidences[-1] == pytest.approx(0.5)
    assert confidences == sorted(confidences, reverse=True)
    assert min(confidences) >= 0.3


def test_forecast_is_deterministic():
    history = series([100.0, 140.0, 90.0, 160.0, 120.0])
    assert generate_forecast(history, days=7) == generate_forecast(history, days=7)


def test_seasonality_reported_and_optionally_applied():
    # Weekends earn double for two weeks
    revenues = [200.0 if (START + timedelta(days=i)).weekday() >= 5 else 100.0 for i in range(14)]
    history = series(revenues)

    plain = ForecastModel().generate_forecast(history, days=7)
    assert set(plain.seasonality.weekly) == set(range(7))
    assert plain.seasonality.weekly[5] > plain.seasonality.weekly[0]
    assert plain.seasonality.monthly[1] == pytest.approx(1.0)

    seasonal = ForecastModel(ForecastConfig(apply_seasonality=True)).generate_forecast(history, days=7)
    by_weekday = {f.date.weekday(): f.forecast for f in seasonal.forecasts}
    assert by_weekday[5] > by_weekday[0]
    assert_bounds_ordered(seasonal)


def test_seasonality_needs_enough_history():
    history = series([100.0, 200.0, 100.0, 200.0, 100.0])
    config = ForecastConfig(apply_seasonality=True)

    adjusted = ForecastModel(config).generate_forecast(history, days=3)
    unadjusted = ForecastModel().generate_forecast(history, days=3)

    assert [f.forecast for f in adjusted.forecasts] == [f.forecast for f in unadjusted.forecasts]


# === Service helpers ===

def test_average_daily_change():
    assert average_daily_change(series([0.0, 20.0, 40.0], step_days=2)) == pytest.approx(10.0)
    assert average_daily_change(series([100.0, 50.0, 80.0])) == pytest.approx(-10.0)
    assert average_daily_change(series([100.0])) == 0.0


def test_fallback_forecast_is_flat_average():
    summary = fallback_forecast(series([80.0, 120.0]), days=5)

    assert len(summary.forecasts) == 5
    first = summary.forecasts[0]
    assert first.date == START + timedelta(days=2)
    assert first.forecast == pytest.approx(100.0)
    assert first.lower_bound == pytest.approx(50.0)
    assert first.upper_bound == pytest.approx(150.0)
    assert first.confidence == 0.5
    assert summary.trend == TrendDirection.STABLE


def test_forecast_with_fallback_uses_fallback_for_single_point():
    model = ForecastModel()
    summary, used_fallback = forecast_with_fallback(model, series([300.0]), days=7)

    assert used_fallback is True
    assert len(summary.forecasts) == 7
    assert all(f.forecast == pytest.approx(300.0) for f in summary.forecasts)

    summary, used_fallback = forecast_with_fallback(model, [], days=7)
    assert used_fallback is False
    assert summary.forecasts == []


def test_forecast_with_fallback_reports_daily_change():
    summary, used_fallback = forecast_with_fallback(ForecastModel(), series([100.0, 50.0, 80.0]), days=3)

    assert used_fallback is False
    assert summary.avg_growth == pytest.approx(-10.0)
    assert len(summary.forecasts) == 3


def test_forecast_accuracy():
    day1, day2, day3 = START, START + timedelta(days=1), START + timedelta(days=2)
    forecasts = [
        ForecastResult(date=day1, forecast=110.0, lower_bound=90.0, upper_bound=130.0, confidence=0.9),
        ForecastResult(date=day2, forecast=90.0, lower_bound=70.0, upper_bound=110.0, confidence=0.8),
        ForecastResult(date=day3, forecast=10.0, lower_bound=0.0, upper_bound=30.0, confidence=0.7),
    ]
    actuals = [
        ForecastDataPoint(date=day1, revenue=100.0),
        ForecastDataPoint(date=day2, revenue=100.0),
        ForecastDataPoint(date=day3, revenue=0.0),
    ]

    accuracy = calculate_forecast_accuracy(forecasts[:2], actuals)
    assert accuracy.mae == pytest.approx(10.0)
    assert accuracy.mape == pytest.approx(10.0)
    assert accuracy.rmse == pytest.approx(10.0)

    # Zero actuals count toward MAE but not MAPE
    accuracy = calculate_forecast_accuracy(forecasts, actuals)
    assert accuracy.mae == pytest.approx(10.0)
    assert accuracy.mape == pytest.approx(10.0)


def test_forecast_accuracy_without_overlap_is_zero():
    forecasts = generate_forecast(series([100.0, 120.0]), days=3).forecasts

    accuracy = calculate_forecast_accuracy(forecasts, series([100.0, 120.0]))
    assert (accuracy.mae, accuracy.mape, accuracy.rmse) == (0.0, 0.0, 0.0)

    accuracy = calculate_forecast_accuracy([], [])
    assert (accuracy.mae, accuracy.mape, accuracy.rmse) == (0.0, 0.0, 0.0)
