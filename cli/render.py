from __future__ import annotations

from typing import Any, Iterable, Sequence

import typer

from models.records import LoadedSeries, TimeSeriesPoint
from services.detection import LatestDetection, SeriesDetection


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def render_series_detection(
    detection: SeriesDetection, points: Sequence[TimeSeriesPoint]
) -> None:
    for index in detection.anomaly_indices:
        point = points[index]
        typer.echo(
            f"An anomaly was detected at index: {index} "
            f"({point.timestamp.isoformat()}, value={point.value:g})."
        )
    if not detection.anomaly_indices:
        typer.echo("No anomalies detected in the series.")
    typer.echo(
        f"Detected a total of {detection.anomaly_count} anomalies in the entire time series."
    )


def render_latest_detection(detection: LatestDetection) -> None:
    typer.echo(
        f"Latest value ({detection.point.timestamp.isoformat()}) "
        f"is an anomaly: {detection.is_anomaly}."
    )


def render_loaded_series(series: LoadedSeries) -> None:
    echo_heading("Time Series")
    points = series.points
    echo_key_values(
        [
            ("point_count", len(points)),
            ("first_timestamp", points[0].timestamp.isoformat() if points else None),
            ("last_timestamp", points[-1].timestamp.isoformat() if points else None),
        ]
    )

    typer.echo()
    echo_heading("Skipped Rows")
    if series.skipped:
        for row in series.skipped:
            typer.echo(f"  - row {row.row_number}: {row.reason}")
    else:
        typer.echo("No rows skipped.")
