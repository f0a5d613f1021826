import logging
import random
from datetime import datetime
from typing import Iterable

from models import Alert, Crop, Recommendation, Weather
from rules import CROP_RULES, WEATHER_RULES, alert_for_crop, planting_season

logger = logging.getLogger(__name__)


def generate_recommendations(
    crops: Iterable[Crop],
    active_alerts: Iterable[Alert],
    weather: Weather | None,
    now: datetime,
    rng: random.Random | None = None,
) -> list[Recommendation]:
    """
    Apply the rule table to one consistent snapshot.

    Every active alert is crossed with every crop; relevance is left to the
    dashboard. Missing weather just means no weather rule fires. ``rng`` only
    picks cosmetic wording; pass a seeded ``random.Random`` for reproducible
    output.
    """
    rng = rng or random.Random()
    crops = list(crops)
    out: list[Recommendation] = []

    for alert in active_alerts:
        for crop in crops:
            out.append(alert_for_crop(alert, crop, now, rng))

    if weather is not None:
        for rule in WEATHER_RULES:
            rec = rule(weather, now)
            if rec is not None:
                out.append(rec)

    for crop in crops:
        for rule in CROP_RULES:
            rec = rule(crop, now)
            if rec is not None:
                out.append(rec)

    seasonal = planting_season(now)
    if seasonal is not None:
        out.append(seasonal)

    logger.info(f"Generated {len(out)} candidate recommendations")
    return out
