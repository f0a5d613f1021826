from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Literal

Priority = Literal["high", "medium", "low"]
RecommendationType = Literal["alert", "weather", "crop", "seasonal"]
AlertType = Literal["helada", "lluvia_intensa", "sequia", "granizo", "viento_fuerte"]

PRIORITY_ORDER = {"high": 3, "medium": 2, "low": 1}


def as_utc(dt: datetime) -> datetime:
    # Naive timestamps coming from JSON files are taken as UTC
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass(frozen=True)
class Crop:
    id: str
    name: str
    type: str
    location: str
    planting_date: datetime | None = None


@dataclass(frozen=True)
class Alert:
    id: str
    type: AlertType
    severity: Priority
    title: str
    description: str
    is_active: bool
    valid_until: datetime


@dataclass(frozen=True)
class Weather:
    temperature: float
    humidity: float
    wind_speed: float
    rainfall: float
    last_updated: datetime


@dataclass(frozen=True)
class Recommendation:
    """
    One piece of advice shown on the dashboard.

    Only ``is_read`` changes after creation, and only through an explicit
    user acknowledgement. ``related_crop`` / ``related_alert`` are lookup
    keys (crop name, alert id), never embedded objects.
    """
    id: str
    title: str
    description: str
    type: RecommendationType
    priority: Priority
    actions: tuple[str, ...]
    created_at: datetime
    related_crop: str | None = None
    related_alert: str | None = None
    is_read: bool = False
    valid_until: datetime | None = None

    def is_expired(self, now: datetime) -> bool:
        return self.valid_until is not None and as_utc(self.valid_until) <= as_utc(now)
