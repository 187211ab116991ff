from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


_DB_PATH_ENV = "SENSORSTORE_DB_PATH"
_ROOT_BUCKET_ENV = "SENSORSTORE_ROOT_BUCKET"
_RESOLUTION_ENV = "SENSORSTORE_RESOLUTION_SECONDS"
_SENSOR_ID_ENV = "SENSOR_ID"
_DRIVER_ENV = "SENSOR_DRIVER"
_INTERVAL_ENV = "SAMPLING_INTERVAL_SECONDS"
_FAIL_FAST_ENV = "SAMPLING_FAIL_FAST"
_QUEUE_SIZE_ENV = "INGESTION_QUEUE_SIZE"
_LOG_LEVEL_ENV = "LOG_LEVEL"

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class Settings:
    database_path: str
    root_bucket: str
    resolution_seconds: int
    sensor_id: str
    driver: str
    sampling_interval: float
    fail_fast: bool
    queue_size: int
    log_level: str


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


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


def _read_positive_float(name: str, default: Optional[float]) -> Optional[float]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip().lower()
    if candidate in _TRUTHY:
        return True
    if candidate in _FALSY:
        return False
    return default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    resolution = _read_positive_int(_RESOLUTION_ENV, 600)
    interval = _read_positive_float(_INTERVAL_ENV, None)
    return Settings(
        database_path=_read_str_env(_DB_PATH_ENV, "./tmp/sensorstore.db"),
        root_bucket=_read_str_env(_ROOT_BUCKET_ENV, "sensors"),
        resolution_seconds=resolution,
        sensor_id=_read_str_env(_SENSOR_ID_ENV, "cellar"),
        driver=_read_str_env(_DRIVER_ENV, "simulated"),
        sampling_interval=interval if interval is not None else float(resolution),
        fail_fast=_read_bool(_FAIL_FAST_ENV, True),
        queue_size=_read_positive_int(_QUEUE_SIZE_ENV, 1),
        log_level=_read_log_level("INFO"),
    )
