import os
from pathlib import Path

DEFAULT_FORECAST_DAYS = 7
TIMEZONE = os.getenv("AGRO_TIMEZONE", "America/Lima")

# Huancavelica centro
FARM_LAT = float(os.getenv("AGRO_FARM_LAT", "-12.787"))
FARM_LON = float(os.getenv("AGRO_FARM_LON", "-74.976"))

DATA_DIR = Path(os.getenv("AGRO_DATA_DIR", Path(__file__).resolve().parent / "data"))
CROPS_FILE = DATA_DIR / "crops.json"
STORAGE_KEY = "recommendations"

# Regeneration policy
THROTTLE_INTERVAL_MS = 30_000
HUMIDITY_THRESHOLD = 80
WIND_SPEED_THRESHOLD_KMH = 25
EARLY_STAGE_DAYS = (0, 30)
POTATO_HILLING_DAYS = (45, 60)
POTATO_CROP_TYPE = "papa"
PLANTING_SEASON_MONTHS = (3, 4, 5)

# Alert feed thresholds (daily forecast)
FROST_TEMP_C = 0.0
SEVERE_FROST_TEMP_C = -3.0
HEAVY_RAIN_MM = 20.0
SEVERE_RAIN_MM = 40.0
STRONG_WIND_KMH = 40.0
SEVERE_WIND_KMH = 60.0
DRY_SPELL_DAYS = 7
HAIL_WEATHER_CODES = (96, 99)
ALERT_LOOKAHEAD_DAYS = 1

# Upstream polling (seconds)
POLLING_ENABLED = os.getenv("AGRO_POLLING", "1") not in ("0", "false", "no")
CROPS_POLL_SECONDS = 60
ALERTS_POLL_SECONDS = 5 * 60
WEATHER_POLL_SECONDS = 15 * 60
