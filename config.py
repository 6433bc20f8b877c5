import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        lookback_months: int,
        min_confidence: float,
        history_months: int,
        feature_flags: frozenset[str],
        detection_hour: int,
        detection_minute: int,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.lookback_months = lookback_months
        self.min_confidence = min_confidence
        self.history_months = history_months
        self.feature_flags = feature_flags
        self.detection_hour = detection_hour
        self.detection_minute = detection_minute

    def is_enabled(self, flag: str) -> bool:
        return flag in self.feature_flags


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("HOUSEHOLD_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


def _parse_flags(raw: str) -> frozenset[str]:
    return frozenset(part.strip().lower() for part in raw.split(",") if part.strip())


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "household.db"
    database_url = os.getenv("HOUSEHOLD_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("HOUSEHOLD_TIMEZONE", "Europe/Amsterdam")
    lookback_months = int(os.getenv("HOUSEHOLD_LOOKBACK_MONTHS", "36"))
    min_confidence = float(os.getenv("HOUSEHOLD_MIN_CONFIDENCE", "0"))
    history_months = int(os.getenv("HOUSEHOLD_HISTORY_MONTHS", "12"))
    feature_flags = _parse_flags(
        os.getenv("HOUSEHOLD_FEATURE_FLAGS", "recurring_detection")
    )
    detection_hour = int(os.getenv("HOUSEHOLD_DETECTION_HOUR", "3"))
    detection_minute = int(os.getenv("HOUSEHOLD_DETECTION_MINUTE", "15"))
    return Settings(
        database_url=database_url,
        timezone=timezone,
        lookback_months=lookback_months,
        min_confidence=min_confidence,
        history_months=history_months,
        feature_flags=feature_flags,
        detection_hour=detection_hour,
        detection_minute=detection_minute,
    )
