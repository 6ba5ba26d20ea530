from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

DEFAULT_API_VERSION = "v1.1"
DEFAULT_TIMEOUT = 30.0

_ENDPOINT_ENV = "ANOMALY_DETECTOR_ENDPOINT"
_API_KEY_ENV = "ANOMALY_DETECTOR_API_KEY"
_API_VERSION_ENV = "ANOMALY_DETECTOR_API_VERSION"
_TIMEOUT_ENV = "ANOMALY_DETECTOR_TIMEOUT"


@dataclass(frozen=True)
class DetectorConfig:
    endpoint: Optional[str] = None
    api_key: Optional[str] = None
    api_version: str = DEFAULT_API_VERSION
    timeout: float = DEFAULT_TIMEOUT

    @property
    def base_url(self) -> str:
        if not self.endpoint:
            raise ValueError("Anomaly detector endpoint is not configured.")
        return f"{self.endpoint}/anomalydetector/{self.api_version}"

    def missing(self) -> list[str]:
        """Names of the settings that must be supplied before a request can be sent."""
        names = []
        if not self.endpoint:
            names.append(_ENDPOINT_ENV)
        if not self.api_key:
            names.append(_API_KEY_ENV)
        return names


def _read_optional(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    candidate = value.strip()
    return candidate or None


def _read_float(value: Optional[str], default: float) -> float:
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


def load_config(
    endpoint: Optional[str] = None,
    api_key: Optional[str] = None,
    api_version: Optional[str] = None,
    timeout: Optional[float] = None,
) -> DetectorConfig:
    url = _read_optional(endpoint) or _read_optional(os.getenv(_ENDPOINT_ENV))
    key = _read_optional(api_key) or _read_optional(os.getenv(_API_KEY_ENV))
    version = (
        _read_optional(api_version)
        or _read_optional(os.getenv(_API_VERSION_ENV))
        or DEFAULT_API_VERSION
    )
    if timeout is None:
        timeout = _read_float(os.getenv(_TIMEOUT_ENV), DEFAULT_TIMEOUT)
    return DetectorConfig(
        endpoint=url.rstrip("/") if url else None,
        api_key=key,
        api_version=version,
        timeout=timeout,
    )
