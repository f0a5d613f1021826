import pandas as pd

from config import DRY_SPELL_DAYS, FROST_TEMP_C, HAIL_WEATHER_CODES


def rolling_dry_spell(daily: pd.DataFrame, k: int = DRY_SPELL_DAYS) -> pd.Series:
    dry = (daily["precipitation_sum"] <= 1.0).astype(int)
    return dry.rolling(k).sum()


def dry_spell_starts(daily: pd.DataFrame, k: int = DRY_SPELL_DAYS) -> list:
    """Index of the day each run of ``k`` dry days is first completed (one per run)."""
    full = rolling_dry_spell(daily, k) == k
    first = full & ~full.shift(1, fill_value=False)
    return list(daily.index[first])


def frost_days(daily: pd.DataFrame, threshold: float = FROST_TEMP_C) -> pd.DataFrame:
    return daily[daily["temperature_2m_min"] <= threshold]


def hail_days(daily: pd.DataFrame) -> pd.DataFrame:
    if "weather_code" not in daily:
        return daily.iloc[0:0]
    return daily[daily["weather_code"].isin(HAIL_WEATHER_CODES)]
