"""
Revenue aggregation from completed-checkout events.
"""

import math
from typing import Any, List, Optional, Sequence

import pandas as pd
import structlog

from boltx.core.models.config import FeatureBuilderConfig
from boltx.core.models.events import AnalyticsEvent
from boltx.core.models.forecast import ForecastDataPoint

logger = structlog.get_logger(__name__)

REVENUE_KEYS = FeatureBuilderConfig().revenue_keys


def _to_amount(value: Any) -> float:
    if isinstance(value, bool):
        return 0.0
    try:
        amount = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(amount) or math.isinf(amount) or amount < 0:
        return 0.0
    return amount


def extract_revenue(event: AnalyticsEvent, keys: Optional[Sequence[str]] = None) -> float:
    """Revenue carried by an event; 0 when missing, non-numeric or negative."""
    for key in keys or REVENUE_KEYS:
        value = event.metadata.get(key)
        if value is not None:
            return _to_amount(value)
    return 0.0


def aggregate_daily_revenue(events: List[AnalyticsEvent],
                            keys: Optional[Sequence[str]] = None) -> List[ForecastDataPoint]:
    """Sum positive revenue per UTC calendar day, oldest first."""
    rows = []
    for event in events:
        revenue = extract_revenue(event, keys)
        if revenue > 0:
            rows.append({'timestamp': event.timestamp, 'revenue': revenue})

    if not rows:
        return []

    df = pd.DataFrame(rows)
    df['date'] = pd.to_datetime(df['timestamp'], utc=True).dt.date
    daily = df.groupby('date')['revenue'].sum().sort_index()

    logger.debug("Daily revenue aggregated",
                 events=len(events),
                 events_with_revenue=len(rows),
                 days=len(daily))

    return [ForecastDataPoint(date=day, revenue=float(total)) for day, total in daily.items()]
