from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from models.records import TimeSeriesPoint
from models.schemas import (
    DetectRequest,
    EntireDetectResponse,
    LastDetectResponse,
    TimeGranularity,
)
from services.detection import DetectionService, ResponseMismatchError, build_request
from services.loader import SeriesLoader
from settings import DEFAULT_DATA_PATH

_START = datetime(2021, 9, 1, tzinfo=timezone.utc)


def _series(values: list[float]) -> list[TimeSeriesPoint]:
    return [
        TimeSeriesPoint(timestamp=_START + timedelta(days=offset), value=value)
        for offset, value in enumerate(values)
    ]


class FixedResponseClient:
    def __init__(self, flags: list[bool], latest: bool = False) -> None:
        self.flags = flags
        self.latest = latest

    def detect_entire_series(self, request: DetectRequest) -> EntireDetectResponse:
        return EntireDetectResponse(is_anomaly=self.flags)

    def detect_last_point(self, request: DetectRequest) -> LastDetectResponse:
        return LastDetectResponse(is_anomaly=self.latest)


def test_build_request_carries_parameters() -> None:
    points = _series([1.0, 2.0, 3.0])

    request = build_request(points, TimeGranularity.daily, 25, max_anomaly_ratio=0.25)

    assert [point.value for point in request.series] == [1.0, 2.0, 3.0]
    assert request.granularity is TimeGranularity.daily
    assert request.sensitivity == 25
    assert request.max_anomaly_ratio == 0.25
    assert request.period is None


def test_entire_series_counts_flagged_indices() -> None:
    service = DetectionService(FixedResponseClient([False, True, False, True]))
    request = build_request(_series([1, 9, 1, 9]), TimeGranularity.daily, 25)

    detection = service.detect_entire_series(request)

    assert detection.flags == (False, True, False, True)
    assert detection.anomaly_indices == (1, 3)
    assert detection.anomaly_count == 2


def test_entire_series_without_anomalies() -> None:
    service = DetectionService(FixedResponseClient([False, False]))
    request = build_request(_series([1, 1]), TimeGranularity.daily, 25)

    detection = service.detect_entire_series(request)

    assert detection.anomaly_count == 0
    assert detection.anomaly_indices == ()


def test_misaligned_response_is_rejected() -> None:
    service = DetectionService(FixedResponseClient([True]))
    request = build_request(_series([1, 2, 3]), TimeGranularity.daily, 25)

    with pytest.raises(ResponseMismatchError):
        service.detect_entire_series(request)


def test_latest_point_reports_final_point() -> None:
    service = DetectionService(FixedResponseClient([], latest=True))
    points = _series([1, 2, 30])

    detection = service.detect_latest_point(build_request(points, TimeGranularity.daily, 25))

    assert detection.is_anomaly is True
    assert detection.point == points[-1]


def test_latest_point_on_empty_series_raises() -> None:
    service = DetectionService(FixedResponseClient([]))

    with pytest.raises(ValueError):
        service.detect_latest_point(build_request([], TimeGranularity.daily, 25))


def test_flags_align_with_loaded_series(stub_client) -> None:
    series = SeriesLoader().load(DEFAULT_DATA_PATH)
    service = DetectionService(stub_client)

    detection = service.detect_entire_series(
        build_request(series.points, TimeGranularity.daily, 25)
    )

    assert len(detection.flags) == len(series.points)


def test_seed_data_scenario(stub_client) -> None:
    series = SeriesLoader().load(DEFAULT_DATA_PATH)
    request = build_request(series.points, TimeGranularity.daily, 25)

    report = DetectionService(stub_client).run(request)

    flagged = [series.points[index] for index in report.series.anomaly_indices]
    assert report.series.anomaly_count == 3
    assert [(point.timestamp.date().isoformat(), point.value) for point in flagged] == [
        ("2021-10-04", 5208.0),
        ("2021-12-16", 500.0),
        ("2022-01-30", 1000.0),
    ]
    assert report.latest.is_anomaly is True
    assert report.latest.point.value == 1000.0


def test_parallel_run_matches_sequential(stub_client) -> None:
    series = SeriesLoader().load(DEFAULT_DATA_PATH)
    request = build_request(series.points, TimeGranularity.daily, 25)
    service = DetectionService(stub_client)

    sequential = service.run(request)
    parallel = service.run(request, parallel=True)

    assert parallel == sequential
    assert len(stub_client.entire_requests) == 2
    assert len(stub_client.last_requests) == 2


def test_lower_sensitivity_never_flags_more(stub_client) -> None:
    values = [100 + (index % 7) * 3 for index in range(60)]
    values[10] = 160
    values[25] = 40
    values[40] = 130
    values[55] = 210
    points = _series(values)
    service = DetectionService(stub_client)

    counts = [
        service.detect_entire_series(
            build_request(points, TimeGranularity.daily, sensitivity)
        ).anomaly_count
        for sensitivity in (0, 10, 25, 50, 75, 95, 99)
    ]

    assert counts == sorted(counts)
    assert counts[0] < counts[-1]


@pytest.mark.parametrize("sensitivity", [-1, 100])
def test_sensitivity_outside_range_is_rejected(sensitivity: int) -> None:
    with pytest.raises(ValidationError):
        build_request(_series([1, 2]), TimeGranularity.daily, sensitivity)


def test_service_error_propagates(stub_client_factory) -> None:
    error = RuntimeError("boom")
    service = DetectionService(stub_client_factory(error=error))
    request = build_request(_series([1, 2, 3]), TimeGranularity.daily, 25)

    with pytest.raises(RuntimeError, match="boom"):
        service.run(request, parallel=True)
