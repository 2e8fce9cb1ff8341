from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from functools import lru_cache
from typing import Optional

from services.state import MAX_CADENCE_MILLIS


_DEVICE_ID_ENV = "DEVICE_ID"
_INITIAL_READING_ENV = "DEVICE_INITIAL_READING"
_CADENCE_ENV = "DEVICE_CADENCE_MS"
_ALERT_THRESHOLD_ENV = "DEVICE_ALERT_THRESHOLD"
_WALK_MODE_ENV = "DEVICE_WALK_MODE"
_RECEIVE_TIMEOUT_ENV = "DEVICE_RECEIVE_TIMEOUT_S"
_LOCK_TIMEOUT_ENV = "DEVICE_STATE_LOCK_TIMEOUT_S"
_UPLOAD_SOURCE_ENV = "DEVICE_UPLOAD_SOURCE"
_INBOUND_ENCODING_ENV = "DEVICE_INBOUND_ENCODING"
_COMMAND_WORKERS_ENV = "HUB_COMMAND_WORKERS"
_TELEMETRY_HISTORY_ENV = "HUB_TELEMETRY_HISTORY"
_CONTAINER_NAME_ENV = "MOCK_BLOB_CONTAINER_NAME"
_CONTAINER_ROOT_ENV = "MOCK_BLOB_ROOT_PATH"
_TWIN_PATH_ENV = "MOCK_TWIN_PERSISTENCE_PATH"
_LOG_LEVEL_ENV = "LOG_LEVEL"

WALK_MODES = ("signed", "parity")


@dataclass(frozen=True)
class Settings:
    device_id: str
    initial_reading: Decimal
    cadence_millis: int
    alert_threshold: Decimal
    walk_mode: str
    receive_timeout: float
    state_lock_timeout: float
    upload_source: str
    inbound_encoding: str
    command_workers: int
    telemetry_history: int
    container_name: str
    container_root_path: Optional[str]
    twin_persistence_path: Optional[str]
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


def _read_positive_int(name: str, default: int, maximum: Optional[int] = None) -> int:
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
    if maximum is not None and parsed > maximum:
        return default
    return parsed if parsed > 0 else default


def _read_positive_float(name: str, default: float) -> float:
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


def _read_decimal(name: str, default: str) -> Decimal:
    candidate = _read_str_env(name, default)
    try:
        parsed = Decimal(candidate)
    except InvalidOperation:
        return Decimal(default)
    return parsed if parsed.is_finite() else Decimal(default)


def _read_walk_mode(default: str) -> str:
    candidate = _read_str_env(_WALK_MODE_ENV, default).lower()
    return candidate if candidate in WALK_MODES else default


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
    return Settings(
        device_id=_read_str_env(_DEVICE_ID_ENV, "DevSim01"),
        initial_reading=_read_decimal(_INITIAL_READING_ENV, "26"),
        cadence_millis=_read_positive_int(_CADENCE_ENV, 5000, maximum=MAX_CADENCE_MILLIS),
        alert_threshold=_read_decimal(_ALERT_THRESHOLD_ENV, "30"),
        walk_mode=_read_walk_mode("signed"),
        receive_timeout=_read_positive_float(_RECEIVE_TIMEOUT_ENV, 10.0),
        state_lock_timeout=_read_positive_float(_LOCK_TIMEOUT_ENV, 5.0),
        upload_source=_read_str_env(_UPLOAD_SOURCE_ENV, "image1.jpg"),
        inbound_encoding=_read_str_env(_INBOUND_ENCODING_ENV, "utf-8"),
        command_workers=_read_positive_int(_COMMAND_WORKERS_ENV, 4),
        telemetry_history=_read_positive_int(_TELEMETRY_HISTORY_ENV, 1000),
        container_name=_read_str_env(_CONTAINER_NAME_ENV, "uploads"),
        container_root_path=_read_optional_env(_CONTAINER_ROOT_ENV, "./tmp/mock_blob"),
        twin_persistence_path=_read_optional_env(_TWIN_PATH_ENV, None),
        log_level=_read_log_level("INFO"),
    )
