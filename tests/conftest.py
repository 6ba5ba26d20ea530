from __future__ import annotations

from statistics import median
from typing import List, Optional, Sequence

import pytest

from models.schemas import DetectRequest, EntireDetectResponse, LastDetectResponse


def _is_outlier(value: float, reference: Sequence[float], sensitivity: Optional[int]) -> bool:
    center = median(reference)
    spread = median(abs(item - center) for item in reference) or 1.0
    margin = spread * (100 - (25 if sensitivity is None else sensitivity)) / 10
    return abs(value - center) > margin


class StubDetectorClient:
    """Stands in for the remote service with a median/MAD margin that narrows as sensitivity rises."""

    def __init__(self, config=None, error: Optional[Exception] = None) -> None:
        self.config = config
        self.error = error
        self.entire_requests: List[DetectRequest] = []
        self.last_requests: List[DetectRequest] = []
        self.closed = False

    def detect_entire_series(self, request: DetectRequest) -> EntireDetectResponse:
        self.entire_requests.append(request)
        if self.error is not None:
            raise self.error
        values = [point.value for point in request.series]
        return EntireDetectResponse(
            is_anomaly=[_is_outlier(value, values, request.sensitivity) for value in values]
        )

    def detect_last_point(self, request: DetectRequest) -> LastDetectResponse:
        self.last_requests.append(request)
        if self.error is not None:
            raise self.error
        values = [point.value for point in request.series]
        history = values[:-1] or values
        return LastDetectResponse(
            is_anomaly=_is_outlier(values[-1], history, request.sensitivity)
        )

    def close(self) -> None:
        self.closed = True


@pytest.fixture()
def stub_client() -> StubDetectorClient:
    return StubDetectorClient()


@pytest.fixture()
def stub_client_factory():
    return StubDetectorClient
