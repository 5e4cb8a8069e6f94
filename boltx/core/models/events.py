"""
Analytics event model.

Checkout events as delivered by the event store, already filtered to one
account. Used by the feature and revenue processors.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Timezone-aware UTC datetime; naive values are taken to be UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class AnalyticsEvent(BaseModel):
    """A checkout analytics event."""
    session_id: str
    event_type: str
    timestamp: datetime
    step: Optional[str] = None
    order_form_id: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="ignore")

    @field_validator('timestamp')
    @classmethod
    def normalize_timestamp(cls, v: datetime) -> datetime:
        return as_utc(v)


class AccountHistory(BaseModel):
    """Account-level priors derived from earlier checkout sessions."""
    abandonments: int = 0
    avg_checkout_time: float = 180.0
    conversion_rate: float = 0.5
    sessions: int = Field(default=0, description="Previous sessions considered")
