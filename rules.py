import random
from datetime import datetime
from zoneinfo import ZoneInfo

from config import (
    EARLY_STAGE_DAYS,
    HUMIDITY_THRESHOLD,
    PLANTING_SEASON_MONTHS,
    POTATO_CROP_TYPE,
    POTATO_HILLING_DAYS,
    TIMEZONE,
    WIND_SPEED_THRESHOLD_KMH,
)
from models import Alert, Crop, Recommendation, Weather, as_utc

# Rule table: every function maps one observed condition to at most one
# recommendation. No state, no I/O.

ALERT_ACTIONS: dict[str, tuple[str, ...]] = {
    "helada": (
        "Aplicar riego por aspersión durante la madrugada",
        "Cubrir cultivos jóvenes con mantas térmicas",
        "Revisar sistemas de calefacción si están disponibles",
        "Monitorear temperaturas durante la noche",
    ),
    "lluvia_intensa": (
        "Verificar y limpiar sistemas de drenaje",
        "Evitar aplicaciones de fertilizantes o pesticidas",
        "Proteger plantas jóvenes con coberturas",
        "Revisar estructuras de soporte de cultivos",
    ),
    "sequia": (
        "Implementar riego eficiente (goteo o microaspersión)",
        "Aplicar mulch para conservar humedad",
        "Revisar y optimizar programación de riego",
        "Considerar cultivos resistentes a sequía",
    ),
    "granizo": (
        "Instalar mallas antigranizo si es posible",
        "Refugiar cultivos en invernaderos móviles",
        "Preparar seguros agrícolas",
        "Monitorear pronósticos cada 2 horas",
    ),
    "viento_fuerte": (
        "Reforzar tutores y estructuras de soporte",
        "Podar ramas que puedan quebrar",
        "Proteger cultivos con barreras cortaviento",
        "Asegurar elementos sueltos en el campo",
    ),
}

# Cosmetic only; never part of the title, so deduplication is unaffected
ALERT_CLOSINGS = (
    "Toma medidas preventivas inmediatas.",
    "Actúa hoy para reducir las pérdidas.",
    "Revisa tu parcela lo antes posible.",
)

HUMIDITY_ACTIONS = (
    "Mejorar ventilación en cultivos bajo cubierta",
    "Aplicar fungicidas preventivos si es necesario",
    "Evitar riego en las próximas horas",
    "Monitorear signos de enfermedades fúngicas",
)

WIND_ACTIONS = (
    "Revisar y reforzar estructuras de soporte",
    "Postergar aplicaciones de pesticidas",
    "Asegurar herramientas y equipos",
    "Monitorear daños en cultivos altos",
)

EARLY_STAGE_ACTIONS = (
    "Mantener humedad constante del suelo",
    "Proteger de vientos fuertes",
    "Aplicar fertilizante de arranque si no se hizo",
    "Monitorear plagas iniciales",
)

HILLING_ACTIONS = (
    "Realizar aporque cuando las plantas tengan 15-20 cm",
    "Aplicar fertilizante antes del aporque",
    "Revisar presencia de gusano blanco",
    "Mantener suelo húmedo pero no encharcado",
)

PLANTING_SEASON_ACTIONS = (
    "Verificar calidad de semillas",
    "Preparar terrenos para siembra",
    "Revisar sistemas de riego",
    "Planificar calendario de cultivos",
)


def stamp(now: datetime) -> int:
    """Millisecond freshness suffix appended to generated ids."""
    return int(as_utc(now).timestamp() * 1000)


def days_since_planting(crop: Crop, now: datetime) -> int | None:
    if crop.planting_date is None:
        return None
    # timedelta.days floors, which is whole-day truncation for positive spans
    return (as_utc(now) - as_utc(crop.planting_date)).days


def alert_for_crop(alert: Alert, crop: Crop, now: datetime, rng: random.Random) -> Recommendation:
    closing = rng.choice(ALERT_CLOSINGS)
    return Recommendation(
        id=f"alert-{alert.id}-{crop.id}-{stamp(now)}",
        title=f"Protección para {crop.name} - {alert.title}",
        description=(
            f"Tu cultivo de {crop.name} en {crop.location} está en riesgo: "
            f"{alert.description} {closing}"
        ),
        type="alert",
        priority=alert.severity,
        actions=ALERT_ACTIONS.get(alert.type, ()),
        created_at=now,
        related_crop=crop.name,
        related_alert=alert.id,
        valid_until=alert.valid_until,
    )


def high_humidity(weather: Weather, now: datetime) -> Recommendation | None:
    if weather.humidity <= HUMIDITY_THRESHOLD:
        return None
    return Recommendation(
        id=f"humidity-{stamp(now)}",
        title="Alta humedad detectada",
        description=(
            f"La humedad actual es del {weather.humidity:.0f}%. Esto puede favorecer "
            "el desarrollo de enfermedades fúngicas en tus cultivos."
        ),
        type="weather",
        priority="medium",
        actions=HUMIDITY_ACTIONS,
        created_at=now,
    )


def strong_wind(weather: Weather, now: datetime) -> Recommendation | None:
    if weather.wind_speed <= WIND_SPEED_THRESHOLD_KMH:
        return None
    return Recommendation(
        id=f"wind-{stamp(now)}",
        title="Vientos fuertes",
        description=(
            f"Se detectan vientos de {weather.wind_speed:.0f} km/h. "
            "Esto puede afectar tus cultivos y estructuras."
        ),
        type="weather",
        priority="medium",
        actions=WIND_ACTIONS,
        created_at=now,
    )


def early_stage(crop: Crop, now: datetime) -> Recommendation | None:
    days = days_since_planting(crop, now)
    lo, hi = EARLY_STAGE_DAYS
    if days is None or not lo <= days <= hi:
        return None
    return Recommendation(
        id=f"early-stage-{crop.id}-{stamp(now)}",
        title=f"Cuidados iniciales - {crop.name}",
        description=(
            f"Tu cultivo de {crop.name} está en etapa inicial ({days} días desde siembra). "
            "Es crucial mantener condiciones óptimas."
        ),
        type="crop",
        priority="medium",
        actions=EARLY_STAGE_ACTIONS,
        created_at=now,
        related_crop=crop.name,
    )


def potato_hilling(crop: Crop, now: datetime) -> Recommendation | None:
    if crop.type != POTATO_CROP_TYPE:
        return None
    days = days_since_planting(crop, now)
    lo, hi = POTATO_HILLING_DAYS
    if days is None or not lo <= days <= hi:
        return None
    return Recommendation(
        id=f"potato-hilling-{crop.id}-{stamp(now)}",
        title=f"Tiempo de aporque - {crop.name}",
        description=(
            "Tu cultivo de papa está listo para el aporque. "
            "Esta práctica es esencial para un buen desarrollo."
        ),
        type="crop",
        priority="high",
        actions=HILLING_ACTIONS,
        created_at=now,
        related_crop=crop.name,
    )


def planting_season(now: datetime) -> Recommendation | None:
    # calendar month where the farm is, not UTC
    month = as_utc(now).astimezone(ZoneInfo(TIMEZONE)).month
    if month not in PLANTING_SEASON_MONTHS:
        return None
    return Recommendation(
        id=f"season-planting-{stamp(now)}",
        title="Temporada de siembra",
        description=(
            "Estamos en época óptima de siembra para muchos cultivos. "
            "Asegúrate de estar preparado."
        ),
        type="seasonal",
        priority="low",
        actions=PLANTING_SEASON_ACTIONS,
        created_at=now,
    )


WEATHER_RULES = (high_humidity, strong_wind)
CROP_RULES = (early_stage, potato_hilling)
