"""Issue entire-series and last-point detection for a loaded time series."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Optional, Protocol, Sequence, Tuple

from models.records import TimeSeriesPoint
from models.schemas import (
    DetectRequest,
    EntireDetectResponse,
    ImputeMode,
    LastDetectResponse,
    TimeGranularity,
    TimeSeriesPointPayload,
)

logger = logging.getLogger(__name__)


class DetectorClient(Protocol):
    def detect_entire_series(self, request: DetectRequest) -> EntireDetectResponse: ...

    def detect_last_point(self, request: DetectRequest) -> LastDetectResponse: ...


class ResponseMismatchError(RuntimeError):
    """The service returned a result that does not line up with the request."""


@dataclass(frozen=True)
class SeriesDetection:
    flags: Tuple[bool, ...]
    anomaly_indices: Tuple[int, ...]

    @property
    def anomaly_count(self) -> int:
        return len(self.anomaly_indices)


@dataclass(frozen=True)
class LatestDetection:
    point: TimeSeriesPoint
    is_anomaly: bool


@dataclass(frozen=True)
class DetectionReport:
    series: SeriesDetection
    latest: LatestDetection


def build_request(
    points: Sequence[TimeSeriesPoint],
    granularity: TimeGranularity,
    sensitivity: int,
    *,
    max_anomaly_ratio: Optional[float] = None,
    period: Optional[int] = None,
    custom_interval: Optional[int] = None,
    impute_mode: Optional[ImputeMode] = None,
    impute_fixed_value: Optional[float] = None,
) -> DetectRequest:
    return DetectRequest(
        series=[
            TimeSeriesPointPayload(timestamp=point.timestamp, value=point.value)
            for point in points
        ],
        granularity=granularity,
        sensitivity=sensitivity,
        max_anomaly_ratio=max_anomaly_ratio,
        period=period,
        custom_interval=custom_interval,
        impute_mode=impute_mode,
        impute_fixed_value=impute_fixed_value,
    )


class DetectionService:
    """Runs both detection modes against an injected client."""

    def __init__(self, client: DetectorClient) -> None:
        self.client = client

    def detect_entire_series(self, request: DetectRequest) -> SeriesDetection:
        response = self.client.detect_entire_series(request)
        if len(response.is_anomaly) != len(request.series):
            raise ResponseMismatchError(
                f"Expected {len(request.series)} anomaly flags, "
                f"received {len(response.is_anomaly)}."
            )

        flags = tuple(response.is_anomaly)
        indices = tuple(index for index, flagged in enumerate(flags) if flagged)
        logger.info(
            "Entire series detection finished",
            extra={"point_count": len(flags), "anomaly_count": len(indices)},
        )
        return SeriesDetection(flags=flags, anomaly_indices=indices)

    def detect_latest_point(self, request: DetectRequest) -> LatestDetection:
        if not request.series:
            raise ValueError("Cannot detect the latest point of an empty series.")

        response = self.client.detect_last_point(request)
        last = request.series[-1]
        logger.info(
            "Latest point detection finished",
            extra={"point_count": len(request.series), "anomaly_count": int(response.is_anomaly)},
        )
        return LatestDetection(
            point=TimeSeriesPoint(timestamp=last.timestamp, value=last.value),
            is_anomaly=response.is_anomaly,
        )

    def run(self, request: DetectRequest, parallel: bool = False) -> DetectionReport:
        """Run both detections, one after the other or side by side."""
        if not parallel:
            return DetectionReport(
                series=self.detect_entire_series(request),
                latest=self.detect_latest_point(request),
            )

        with ThreadPoolExecutor(max_workers=2) as executor:
            series_future = executor.submit(self.detect_entire_series, request)
            latest_future = executor.submit(self.detect_latest_point, request)
            return DetectionReport(
                series=series_future.result(),
                latest=latest_future.result(),
            )
