from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo
import logging

import pandas as pd

from config import (
    ALERT_LOOKAHEAD_DAYS,
    DRY_SPELL_DAYS,
    HEAVY_RAIN_MM,
    SEVERE_FROST_TEMP_C,
    SEVERE_RAIN_MM,
    SEVERE_WIND_KMH,
    STRONG_WIND_KMH,
    TIMEZONE,
)
from features import dry_spell_starts, frost_days, hail_days
from models import PRIORITY_ORDER, Alert, as_utc

logger = logging.getLogger(__name__)


def _as_date(value) -> date:
    return pd.to_datetime(str(value)).date()


def _make_alert(kind: str, day, severity: str, title: str, description: str,
                now: datetime, tz: ZoneInfo) -> Alert:
    d = _as_date(day)
    valid_until = datetime.combine(d + timedelta(days=1), time.min, tzinfo=tz)
    today = as_utc(now).astimezone(tz).date()
    active = d <= today + timedelta(days=ALERT_LOOKAHEAD_DAYS) and valid_until > as_utc(now)
    return Alert(
        id=f"{kind}-{d.isoformat()}",
        type=kind,
        severity=severity,
        title=title,
        description=description,
        is_active=active,
        valid_until=valid_until,
    )


def generate_alerts(daily: pd.DataFrame, now: datetime, tz: str = TIMEZONE) -> list[Alert]:
    """Climate alerts for every forecast day that crosses a threshold."""
    zone = ZoneInfo(tz)
    alerts = []

    # Frost
    for _, r in frost_days(daily).iterrows():
        tmin = r["temperature_2m_min"]
        severe = tmin <= SEVERE_FROST_TEMP_C
        alerts.append(_make_alert(
            "helada", r["date"], "high" if severe else "medium",
            "Helada intensa" if severe else "Riesgo de helada moderada",
            f"Se espera una mínima de {tmin:.1f}°C el {r['date']}.",
            now, zone,
        ))

    # Heavy rain
    heavy = daily[daily["precipitation_sum"] >= HEAVY_RAIN_MM]
    for _, r in heavy.iterrows():
        mm = r["precipitation_sum"]
        alerts.append(_make_alert(
            "lluvia_intensa", r["date"], "high" if mm >= SEVERE_RAIN_MM else "medium",
            "Lluvias intensas en la región",
            f"Se esperan {mm:.0f} mm de lluvia el {r['date']}. Riesgo de inundaciones.",
            now, zone,
        ))

    # Dry spell, one alert per run
    for i in dry_spell_starts(daily):
        d = daily.loc[i, "date"]
        alerts.append(_make_alert(
            "sequia", d, "medium",
            "Alerta por sequía prolongada",
            f"{DRY_SPELL_DAYS} días consecutivos sin lluvia hasta el {d}.",
            now, zone,
        ))

    # Strong wind
    windy = daily[daily["wind_speed_10m_max"] >= STRONG_WIND_KMH]
    for _, r in windy.iterrows():
        kmh = r["wind_speed_10m_max"]
        alerts.append(_make_alert(
            "viento_fuerte", r["date"], "high" if kmh >= SEVERE_WIND_KMH else "medium",
            "Vientos fuertes en zonas altas",
            f"Vientos de hasta {kmh:.0f} km/h el {r['date']}.",
            now, zone,
        ))

    # Hail (WMO thunderstorm with hail)
    for _, r in hail_days(daily).iterrows():
        alerts.append(_make_alert(
            "granizo", r["date"], "high",
            "Tormenta de granizo pronosticada",
            f"Posibilidad de granizo el {r['date']}.",
            now, zone,
        ))

    logger.info(f"Derived {len(alerts)} alerts from {len(daily)} forecast days")
    return alerts


def active_alerts(alerts: list[Alert], now: datetime) -> list[Alert]:
    return [a for a in alerts if a.is_active and as_utc(a.valid_until) > as_utc(now)]


def get_alert(alerts: list[Alert], alert_id: str) -> Alert | None:
    return next((a for a in alerts if a.id == alert_id), None)


def filter_alerts(alerts: list[Alert], type: str | None = None, severity: str | None = None,
                  active: bool | None = None, search: str | None = None,
                  sort_by: str = "date") -> list[Alert]:
    out = [
        a for a in alerts
        if (type is None or a.type == type)
        and (severity is None or a.severity == severity)
        and (active is None or a.is_active == active)
        and (not search or search.lower() in a.title.lower())
    ]
    if sort_by == "severity":
        out.sort(key=lambda a: PRIORITY_ORDER[a.severity], reverse=True)
    else:
        # newest first
        out.sort(key=lambda a: as_utc(a.valid_until), reverse=True)
    return out


def alert_stats(alerts: list[Alert]) -> dict:
    by_type: dict[str, int] = {}
    for a in alerts:
        by_type[a.type] = by_type.get(a.type, 0) + 1
    return {
        "total": len(alerts),
        "active": sum(1 for a in alerts if a.is_active),
        "high_severity": sum(1 for a in alerts if a.severity == "high"),
        "by_type": by_type,
    }
