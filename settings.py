from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from importlib.resources import files
from pathlib import Path
from typing import Iterable

from models.records import MalformedRowPolicy
from models.schemas import TimeGranularity

_DATA_PATH_ENV = "ANOMALY_DETECTOR_DATA_PATH"
_GRANULARITY_ENV = "ANOMALY_DETECTOR_GRANULARITY"
_SENSITIVITY_ENV = "ANOMALY_DETECTOR_SENSITIVITY"
_MALFORMED_ROWS_ENV = "SERIES_MALFORMED_ROWS"
_LOG_LEVEL_ENV = "LOG_LEVEL"

DEFAULT_DATA_PATH = Path(str(files("services") / "data" / "adx_cost_change_row_count.csv"))


@dataclass(frozen=True)
class Settings:
    data_path: Path
    granularity: str
    sensitivity: int
    malformed_rows: str
    log_level: str


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_path_env(name: str, default: Path) -> Path:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return Path(candidate) if candidate else default


def _read_sensitivity(default: int) -> int:
    value = os.getenv(_SENSITIVITY_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if 0 <= parsed <= 99 else default


def _read_choice_env(name: str, choices: Iterable[str], default: str) -> str:
    candidate = _read_str_env(name, default).lower()
    return candidate if candidate in set(choices) else default


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
        data_path=_read_path_env(_DATA_PATH_ENV, DEFAULT_DATA_PATH),
        granularity=_read_choice_env(
            _GRANULARITY_ENV, (item.value for item in TimeGranularity), "daily"
        ),
        sensitivity=_read_sensitivity(25),
        malformed_rows=_read_choice_env(
            _MALFORMED_ROWS_ENV, (item.value for item in MalformedRowPolicy), "skip"
        ),
        log_level=_read_log_level("WARNING"),
    )
