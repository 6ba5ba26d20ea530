"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Tuple


@dataclass(frozen=True, slots=True)
class TimeSeriesPoint:
    """A single (timestamp, value) observation parsed from the CSV."""

    timestamp: datetime
    value: float


@dataclass(frozen=True, slots=True)
class SkippedRow:
    """A line left out of the series because it did not have two fields."""

    row_number: int
    reason: str


@dataclass(frozen=True)
class LoadedSeries:
    points: Tuple[TimeSeriesPoint, ...] = ()
    skipped: Tuple[SkippedRow, ...] = field(default_factory=tuple)

    def __len__(self) -> int:
        return len(self.points)


class MalformedRowPolicy(str, Enum):
    """What to do with a non-blank line that does not have exactly two fields.

    ``skip`` drops the line and keeps going; the dropped row is recorded on the
    returned ``LoadedSeries`` but is neither logged nor reported. ``fail``
    aborts the load with ``services.loader.SeriesParseError``. Lines that have
    the right shape but an unparsable timestamp or value always abort, whatever the policy.
    """

    skip = "skip"
    fail = "fail"
