"""Load a two-column (timestamp, value) CSV into an ordered time series."""

from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path
from typing import Iterable, Optional

from models.records import LoadedSeries, MalformedRowPolicy, SkippedRow, TimeSeriesPoint
from settings import get_settings

logger = logging.getLogger(__name__)

_EXPECTED_FIELDS = 2


class SeriesParseError(ValueError):
    """A CSV line could not be turned into a time-series point."""

    def __init__(self, row_number: int, reason: str, line: str) -> None:
        super().__init__(f"Row {row_number}: {reason} ({line.strip()!r})")
        self.row_number = row_number
        self.reason = reason
        self.line = line


class SeriesLoader:
    """Parses CSV text into ``TimeSeriesPoint`` records in file order."""

    def __init__(self, policy: MalformedRowPolicy = MalformedRowPolicy.skip) -> None:
        self.policy = policy

    def load(self, path: Path, encoding: str = "utf-8-sig") -> LoadedSeries:
        with path.open("r", encoding=encoding) as handle:
            series = self.parse_lines(handle)
        logger.info(
            "Loaded time series",
            extra={"path": str(path), "point_count": len(series.points)},
        )
        return series

    def parse_lines(self, lines: Iterable[str]) -> LoadedSeries:
        points: list[TimeSeriesPoint] = []
        skipped: list[SkippedRow] = []

        for row_number, line in enumerate(lines, start=1):
            if not line.strip():
                continue

            fields = line.split(",")
            if len(fields) != _EXPECTED_FIELDS:
                reason = "unexpected field count"
                if self.policy is MalformedRowPolicy.fail:
                    raise SeriesParseError(row_number, reason, line)
                skipped.append(SkippedRow(row_number=row_number, reason=reason))
                continue

            timestamp_raw, value_raw = (field.strip() for field in fields)

            try:
                timestamp = self._parse_timestamp(timestamp_raw)
            except ValueError as exc:
                raise SeriesParseError(row_number, "invalid timestamp", line) from exc

            try:
                value = float(value_raw)
            except ValueError as exc:
                raise SeriesParseError(row_number, "invalid numeric value", line) from exc
            if not math.isfinite(value):
                raise SeriesParseError(row_number, "invalid numeric value", line)

            points.append(TimeSeriesPoint(timestamp=timestamp, value=value))

        return LoadedSeries(points=tuple(points), skipped=tuple(skipped))

    @staticmethod
    def _parse_timestamp(value: str) -> datetime:
        candidate = value.strip()
        if not candidate:
            raise ValueError("Timestamp is empty.")

        if candidate.endswith("Z"):
            candidate = candidate[:-1] + "+00:00"

        try:
            parsed = datetime.fromisoformat(candidate)
        except ValueError as exc:
            raise ValueError("Invalid timestamp format") from exc

        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)

        return parsed.astimezone(timezone.utc)


@lru_cache
def build_default_loader(policy: Optional[str] = None) -> SeriesLoader:
    """Factory that wires the loader with the configured malformed-row policy."""
    settings = get_settings()
    return SeriesLoader(MalformedRowPolicy(policy or settings.malformed_rows))
