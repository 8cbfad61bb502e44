from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


_COLLECTION_ENV = "READINGS_COLLECTION"
_PERSISTENCE_PATH_ENV = "READINGS_PERSISTENCE_PATH"
_WINDOW_SIZE_ENV = "READINGS_WINDOW_SIZE"
_COOLDOWN_ENV = "ALERT_COOLDOWN_MS"
_TEMP_MIN_ENV = "TEMP_MIN"
_TEMP_MAX_ENV = "TEMP_MAX"
_PH_MIN_ENV = "PH_MIN"
_PH_MAX_ENV = "PH_MAX"
_HISTORY_SIZE_ENV = "ALERT_HISTORY_SIZE"
_WEBHOOK_URL_ENV = "ALERT_WEBHOOK_URL"
_LOG_LEVEL_ENV = "LOG_LEVEL"


@dataclass(frozen=True)
class Settings:
    collection: str
    persistence_path: Optional[str]
    window_size: int
    alert_cooldown_ms: int
    temp_min: float
    temp_max: float
    ph_min: float
    ph_max: float
    alert_history_size: int
    alert_webhook_url: Optional[str]
    log_level: str


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_positive_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_non_negative_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed >= 0 else default


def _read_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        return float(candidate)
    except ValueError:
        return default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    level = candidate.upper()
    if not isinstance(logging.getLevelName(level), int):
        return default
    return level


@lru_cache
def get_settings() -> Settings:
    return Settings(
        collection=_read_str_env(_COLLECTION_ENV, "biogas"),
        persistence_path=_read_optional_env(_PERSISTENCE_PATH_ENV, "./tmp/readings.json"),
        window_size=_read_positive_int(_WINDOW_SIZE_ENV, 200),
        alert_cooldown_ms=_read_non_negative_int(_COOLDOWN_ENV, 30 * 60 * 1000),
        temp_min=_read_float(_TEMP_MIN_ENV, 32.0),
        temp_max=_read_float(_TEMP_MAX_ENV, 40.0),
        ph_min=_read_float(_PH_MIN_ENV, 6.8),
        ph_max=_read_float(_PH_MAX_ENV, 8.0),
        alert_history_size=_read_positive_int(_HISTORY_SIZE_ENV, 100),
        alert_webhook_url=_read_optional_env(_WEBHOOK_URL_ENV, None),
        log_level=_read_log_level("INFO"),
    )
