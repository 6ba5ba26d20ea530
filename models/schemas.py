"""Pydantic schemas for the anomaly detector REST payloads."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class TimeGranularity(str, Enum):
    """Sampling interval of a series as understood by the service."""

    yearly = "yearly"
    monthly = "monthly"
    weekly = "weekly"
    daily = "daily"
    hourly = "hourly"
    minutely = "minutely"
    secondly = "secondly"
    microsecond = "microsecond"
    none = "none"


class ImputeMode(str, Enum):
    """How the service fills gaps in the series before detection."""

    auto = "auto"
    previous = "previous"
    linear = "linear"
    fixed = "fixed"
    zero = "zero"
    notFill = "notFill"


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TimeSeriesPointPayload(_CamelModel):
    timestamp: datetime
    value: float


class DetectRequest(_CamelModel):
    """Request body shared by the entire-series and last-point operations."""

    model_config = ConfigDict(frozen=True)

    series: List[TimeSeriesPointPayload]
    granularity: Optional[TimeGranularity] = None
    custom_interval: Optional[int] = Field(default=None, ge=1)
    period: Optional[int] = Field(default=None, ge=0)
    max_anomaly_ratio: Optional[float] = Field(default=None, gt=0, lt=0.5)
    sensitivity: Optional[int] = Field(
        default=None,
        ge=0,
        le=99,
        description="Lower values widen the margin and flag fewer anomalies.",
    )
    impute_mode: Optional[ImputeMode] = None
    impute_fixed_value: Optional[float] = None

    @model_validator(mode="after")
    def check_chronological(self) -> "DetectRequest":
        for previous, current in zip(self.series, self.series[1:]):
            if current.timestamp < previous.timestamp:
                raise ValueError(
                    f"Series must be sorted by timestamp; {current.timestamp.isoformat()} "
                    f"follows {previous.timestamp.isoformat()}."
                )
        return self

    def to_payload(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class EntireDetectResponse(_CamelModel):
    """Per-point results, index-aligned with the request series."""

    is_anomaly: List[bool]
    period: Optional[int] = None
    expected_values: List[float] = Field(default_factory=list)
    upper_margins: List[float] = Field(default_factory=list)
    lower_margins: List[float] = Field(default_factory=list)
    is_negative_anomaly: List[bool] = Field(default_factory=list)
    is_positive_anomaly: List[bool] = Field(default_factory=list)
    severity: List[float] = Field(default_factory=list)


class LastDetectResponse(_CamelModel):
    """Verdict for the final point, modelled from the points before it."""

    is_anomaly: bool
    period: Optional[int] = None
    suggested_window: Optional[int] = None
    expected_value: Optional[float] = None
    upper_margin: Optional[float] = None
    lower_margin: Optional[float] = None
    is_negative_anomaly: Optional[bool] = None
    is_positive_anomaly: Optional[bool] = None
    severity: Optional[float] = None
