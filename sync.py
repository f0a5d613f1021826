"""
Recommendation synchronisation engine.

Decides when advice is recomputed (change detection + throttle), and merges
each fresh candidate batch into the persisted set without losing read state,
duplicating advice or resurrecting expired entries.
"""
import logging
import random
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Iterable, Sequence

from config import THROTTLE_INTERVAL_MS
from models import Alert, Crop, Recommendation, Weather
from recommender import generate_recommendations
from store import RecommendationStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Snapshot:
    """Crops, active alerts and weather read at the same instant."""
    crops: tuple[Crop, ...] = ()
    alerts: tuple[Alert, ...] = ()
    weather: Weather | None = None

    @classmethod
    def of(cls, crops: Iterable[Crop], alerts: Iterable[Alert], weather: Weather | None) -> "Snapshot":
        return cls(tuple(crops), tuple(alerts), weather)


def has_meaningful_change(
    prev_crops: Sequence[Crop] | None,
    cur_crops: Sequence[Crop],
    prev_alerts: Sequence[Alert] | None,
    cur_alerts: Sequence[Alert],
    prev_weather: Weather | None,
    cur_weather: Weather | None,
) -> bool:
    # Value comparison: upstream hands over new containers on every refresh.
    # prev_crops/prev_alerts of None means nothing was observed yet.
    if prev_crops is None or prev_alerts is None:
        return True
    return (
        tuple(prev_crops) != tuple(cur_crops)
        or tuple(prev_alerts) != tuple(cur_alerts)
        or prev_weather != cur_weather
    )


def try_acquire(now_ms: int, last_fire_ms: int | None, min_interval_ms: int = THROTTLE_INTERVAL_MS) -> bool:
    """True when at least ``min_interval_ms`` passed since the last generation.

    The caller stores ``now_ms`` as its new ``last_fire_ms`` on success.
    """
    if last_fire_ms is None:
        return True
    return now_ms - last_fire_ms >= min_interval_ms


def _dedup_key(rec: Recommendation) -> tuple[str, str | None]:
    return (rec.title, rec.related_crop)


def reconcile(
    existing: Iterable[Recommendation],
    candidates: Iterable[Recommendation],
    now: datetime,
) -> list[Recommendation]:
    """
    Merge a candidate batch into the stored set.

    1. drop stored entries whose ``valid_until`` is at or before ``now``
    2. drop candidates with the same (title, related_crop) as a survivor,
       or as an earlier candidate of the same batch
    3. survivors (untouched) + new candidates, newest first
    """
    survivors = [rec for rec in existing if not rec.is_expired(now)]
    seen = {_dedup_key(rec) for rec in survivors}

    fresh = []
    for rec in candidates:
        key = _dedup_key(rec)
        if key in seen:
            continue
        seen.add(key)
        fresh.append(rec)

    merged = survivors + fresh
    merged.sort(key=lambda r: r.created_at, reverse=True)
    return merged


def _monotonic_ms() -> int:
    return time.monotonic_ns() // 1_000_000


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class RecommendationSync:
    """
    Wires change detection, throttling, generation and reconciliation onto
    a store. ``previous`` and ``last_fired_ms`` are the only state, and
    both only move when a generation actually runs.
    """
    store: RecommendationStore
    min_interval_ms: int = THROTTLE_INTERVAL_MS
    clock: Callable[[], datetime] = _utcnow
    monotonic_ms: Callable[[], int] = _monotonic_ms
    rng: random.Random = field(default_factory=random.Random)
    previous: Snapshot | None = None
    last_fired_ms: int | None = None

    def observe(self, snapshot: Snapshot) -> bool:
        """Run one cycle for ``snapshot``. Returns True when the store was rewritten."""
        if not snapshot.crops and not snapshot.alerts:
            logger.debug("No crops or alerts loaded yet, skipping cycle")
            return False

        prev = self.previous
        changed = has_meaningful_change(
            prev.crops if prev else None, snapshot.crops,
            prev.alerts if prev else None, snapshot.alerts,
            prev.weather if prev else None, snapshot.weather,
        )
        if not changed:
            return False

        now_ms = self.monotonic_ms()
        if not try_acquire(now_ms, self.last_fired_ms, self.min_interval_ms):
            logger.info(f"Change detected but last generation was {now_ms - self.last_fired_ms} ms ago, skipping")
            return False
        self.last_fired_ms = now_ms

        now = self.clock()
        candidates = generate_recommendations(
            snapshot.crops, snapshot.alerts, snapshot.weather, now, rng=self.rng
        )
        merged = reconcile(self.store.entries(), candidates, now)
        self.store.replace(merged)
        self.previous = snapshot
        logger.info(f"Recommendations synchronised: {len(merged)} stored")
        return True
