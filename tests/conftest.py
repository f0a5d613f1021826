from datetime import datetime, timedelta, timezone

import pytest

from models import Alert, Crop, Recommendation, Weather

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Wall clock and monotonic milliseconds that only move when told to."""

    def __init__(self, now: datetime = NOW):
        self.now = now
        self.ms = 1_000_000

    def __call__(self) -> datetime:
        return self.now

    def monotonic_ms(self) -> int:
        return self.ms

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)
        self.ms += int(seconds * 1000)


def make_crop(cid="c1", name="Papa Norte", type="papa", location="Acobamba", days_ago=50, now=NOW):
    return Crop(id=cid, name=name, type=type, location=location,
                planting_date=now - timedelta(days=days_ago))


def make_alert(aid="helada-2026-10-19", type="helada", severity="high", title="Helada intensa",
               description="Se espera una mínima de -4.0°C el 2026-10-19.", is_active=True,
               valid_until=NOW + timedelta(hours=12)):
    return Alert(id=aid, type=type, severity=severity, title=title, description=description,
                 is_active=is_active, valid_until=valid_until)


def make_weather(humidity=65.0, wind_speed=10.0, last_updated=NOW):
    return Weather(temperature=12.5, humidity=humidity, wind_speed=wind_speed,
                   rainfall=0.0, last_updated=last_updated)


def make_rec(rid="r1", title="Alta humedad detectada", related_crop=None, priority="medium",
             created_at=NOW, valid_until=None, is_read=False, type="weather"):
    return Recommendation(id=rid, title=title, description="d", type=type, priority=priority,
                          actions=("a",), created_at=created_at, related_crop=related_crop,
                          is_read=is_read, valid_until=valid_until)


@pytest.fixture
def clock():
    return FakeClock()
