import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Awaitable, Callable

from alerts import active_alerts, generate_alerts
from config import (
    ALERTS_POLL_SECONDS,
    CROPS_FILE,
    CROPS_POLL_SECONDS,
    FARM_LAT,
    FARM_LON,
    WEATHER_POLL_SECONDS,
)
from crops import load_crops
from models import Alert, Crop, Weather
from sync import RecommendationSync, Snapshot
from weather import WeatherServiceError, fetch_current, fetch_forecast

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UpstreamPoller:
    """
    Keeps the latest crops / alerts / weather and feeds the sync engine.

    Each source refreshes on its own timer. Blocking HTTP calls run in a
    worker thread; the snapshot handed to the engine is taken in one step on
    the event loop, so it never mixes a half-applied refresh.
    """

    def __init__(self, sync: RecommendationSync, lat: float = FARM_LAT, lon: float = FARM_LON,
                 crops_file: Path = CROPS_FILE,
                 forecast_fn=fetch_forecast, current_fn=fetch_current, crops_fn=load_crops,
                 clock: Callable[[], datetime] = _utcnow):
        self.sync = sync
        self.lat = lat
        self.lon = lon
        self.crops_file = crops_file
        self._forecast_fn = forecast_fn
        self._current_fn = current_fn
        self._crops_fn = crops_fn
        self.clock = clock

        self.crops: list[Crop] = []
        self.alerts: list[Alert] = []
        self.weather: Weather | None = None
        self.alerts_updated: datetime | None = None
        self._tasks: list[asyncio.Task] = []

    def snapshot(self) -> Snapshot:
        return Snapshot.of(self.crops, active_alerts(self.alerts, self.clock()), self.weather)

    def observe(self) -> bool:
        return self.sync.observe(self.snapshot())

    async def refresh_crops(self) -> None:
        self.crops = await asyncio.to_thread(self._crops_fn, self.crops_file)

    async def refresh_alerts(self) -> None:
        try:
            daily = await asyncio.to_thread(self._forecast_fn, self.lat, self.lon)
        except WeatherServiceError as e:
            logger.warning(f"Keeping previous alerts, forecast refresh failed: {e}")
            return
        self.alerts = generate_alerts(daily, self.clock())
        self.alerts_updated = self.clock()

    async def refresh_weather(self) -> None:
        try:
            self.weather = await asyncio.to_thread(self._current_fn, self.lat, self.lon)
        except WeatherServiceError as e:
            logger.warning(f"Keeping previous weather reading, refresh failed: {e}")

    async def refresh_all(self) -> None:
        await asyncio.gather(self.refresh_crops(), self.refresh_alerts(), self.refresh_weather())
        self.observe()

    async def _every(self, seconds: float, refresh: Callable[[], Awaitable[None]]) -> None:
        while True:
            await asyncio.sleep(seconds)
            try:
                await refresh()
                self.observe()
            except Exception:
                # one bad cycle must not stop the timer; cancellation still propagates
                logger.exception(f"Refresh cycle {refresh.__name__} failed, retrying in {seconds}s")

    async def start(self) -> None:
        await self.refresh_all()
        self._tasks = [
            asyncio.create_task(self._every(CROPS_POLL_SECONDS, self.refresh_crops)),
            asyncio.create_task(self._every(ALERTS_POLL_SECONDS, self.refresh_alerts)),
            asyncio.create_task(self._every(WEATHER_POLL_SECONDS, self.refresh_weather)),
        ]
        logger.info("Upstream polling started")

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("Upstream polling stopped")
