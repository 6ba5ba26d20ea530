from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional

import httpx

from cli.config import DetectorConfig
from models.schemas import DetectRequest, EntireDetectResponse, LastDetectResponse

logger = logging.getLogger(__name__)

_SUBSCRIPTION_KEY_HEADER = "Ocp-Apim-Subscription-Key"
_ENTIRE_SERIES_PATH = "/timeseries/entire/detect"
_LAST_POINT_PATH = "/timeseries/last/detect"


class RequestFailedError(Exception):
    """The service rejected a request (bad input, auth, quota, throttling)."""

    def __init__(
        self, status_code: int, message: str, error_code: Optional[str] = None
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code
        self.message = message


class AnomalyDetectorClient:
    """Blocking HTTP client for the univariate anomaly detector operations."""

    def __init__(
        self,
        config: DetectorConfig,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._config = config
        self._client = httpx.Client(
            base_url=config.base_url,
            headers={_SUBSCRIPTION_KEY_HEADER: config.api_key or ""},
            timeout=config.timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "AnomalyDetectorClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def detect_entire_series(self, request: DetectRequest) -> EntireDetectResponse:
        """Model the whole series at once and flag every anomalous point."""
        payload = self._post(_ENTIRE_SERIES_PATH, request, operation="entire")
        return EntireDetectResponse.model_validate(payload)

    def detect_last_point(self, request: DetectRequest) -> LastDetectResponse:
        """Judge only the final point against a model of the points before it."""
        payload = self._post(_LAST_POINT_PATH, request, operation="last")
        return LastDetectResponse.model_validate(payload)

    def _post(self, path: str, request: DetectRequest, operation: str) -> Dict[str, Any]:
        start = time.perf_counter()
        response = self._client.post(path, json=request.to_payload())
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise self._request_failed(exc, operation) from exc
        logger.info(
            "Detection request completed",
            extra={
                "operation": operation,
                "status_code": response.status_code,
                "point_count": len(request.series),
                "elapsed_ms": int((time.perf_counter() - start) * 1000),
            },
        )
        return response.json()

    @staticmethod
    def _request_failed(exc: httpx.HTTPStatusError, operation: str) -> RequestFailedError:
        response = exc.response
        error_code: str | None = None
        detail: str | None = None
        try:
            data = response.json()
        except ValueError:
            data = None
        if isinstance(data, dict):
            body = data.get("error") if isinstance(data.get("error"), dict) else data
            error_code = body.get("code")
            detail = body.get("message")
        if not detail:
            detail = response.text.strip() or response.reason_phrase
        if error_code is None:
            error_code = response.headers.get("x-ms-error-code")

        logger.warning(
            "Detection request rejected",
            extra={
                "operation": operation,
                "status_code": response.status_code,
                "error_code": error_code,
            },
        )
        return RequestFailedError(
            status_code=response.status_code,
            message=f"Service returned {response.status_code}: {detail or 'no detail provided.'}",
            error_code=str(error_code) if error_code is not None else None,
        )
