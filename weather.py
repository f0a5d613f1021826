import httpx
import pandas as pd
from datetime import datetime
from zoneinfo import ZoneInfo
import logging

from config import DEFAULT_FORECAST_DAYS, TIMEZONE
from models import Weather

logger = logging.getLogger(__name__)

OPEN_METEO_URL = "https://api.open-meteo.com/v1/forecast"


class WeatherServiceError(Exception):
    pass


def _get_json(params: dict, lat: float, lon: float, timeout: float = 30) -> dict:
    try:
        r = httpx.get(OPEN_METEO_URL, params=params, timeout=timeout)
        r.raise_for_status()
        return r.json()
    except httpx.HTTPStatusError as e:
        logger.error(f"Weather API returned error {e.response.status_code} for lat={lat}, lon={lon}")
        raise WeatherServiceError(f"Weather service unavailable: {e.response.status_code}") from e
    except httpx.RequestError as e:
        logger.error(f"Network error when fetching weather data for lat={lat}, lon={lon}: {e}")
        raise WeatherServiceError(f"Failed to connect to weather service: {e}") from e
    except ValueError as e:
        # 200 with a body that is not JSON, e.g. a proxy error page
        logger.error(f"Unreadable weather payload for lat={lat}, lon={lon}: {e}")
        raise WeatherServiceError(f"Weather data processing failed: {e}") from e


def fetch_forecast(lat: float, lon: float, days: int = DEFAULT_FORECAST_DAYS, tz: str = TIMEZONE) -> pd.DataFrame:
    params = {
        "latitude": lat,
        "longitude": lon,
        "daily": ",".join([
            "temperature_2m_max","temperature_2m_min","precipitation_sum",
            "wind_speed_10m_max","wind_gusts_10m_max","weather_code"
        ]),
        "forecast_days": days,
        "timezone": tz,
    }
    js = _get_json(params, lat, lon)
    try:
        daily = pd.DataFrame(js["daily"])
        daily["date"] = pd.to_datetime(daily["time"]).dt.date
        return daily.drop(columns=["time"])
    except (KeyError, ValueError) as e:
        logger.error(f"Unexpected forecast payload for lat={lat}, lon={lon}: {e}")
        raise WeatherServiceError(f"Weather data processing failed: {e}") from e


def fetch_current(lat: float, lon: float, tz: str = TIMEZONE) -> Weather:
    """Point-in-time reading; wind speed in km/h, rainfall in mm."""
    params = {
        "latitude": lat,
        "longitude": lon,
        "current": "temperature_2m,relative_humidity_2m,wind_speed_10m,precipitation",
        "timezone": tz,
    }
    js = _get_json(params, lat, lon)
    try:
        cur = js["current"]
        observed = datetime.fromisoformat(cur["time"])
        if observed.tzinfo is None:
            observed = observed.replace(tzinfo=ZoneInfo(tz))
        return Weather(
            temperature=float(cur["temperature_2m"]),
            humidity=float(cur["relative_humidity_2m"]),
            wind_speed=float(cur["wind_speed_10m"]),
            rainfall=float(cur["precipitation"]),
            last_updated=observed,
        )
    except (KeyError, TypeError, ValueError) as e:
        logger.error(f"Unexpected current-weather payload for lat={lat}, lon={lon}: {e}")
        raise WeatherServiceError(f"Weather data processing failed: {e}") from e
