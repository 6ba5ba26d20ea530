from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated, Iterator, Optional

import typer

from cli.client import AnomalyDetectorClient, RequestFailedError
from cli.config import DetectorConfig, load_config
from cli.render import render_latest_detection, render_loaded_series, render_series_detection
from logging_config import configure_logging
from models.records import LoadedSeries
from models.schemas import DetectRequest, ImputeMode, TimeGranularity
from services.detection import DetectionService, build_request
from services.loader import MalformedRowPolicy, build_default_loader
from settings import get_settings

logger = logging.getLogger(__name__)


@dataclass
class CLIState:
    config: DetectorConfig
    client: Optional[AnomalyDetectorClient] = None


app = typer.Typer(
    help="Detect anomalies in a (timestamp, value) CSV with a cloud anomaly detector.",
    context_settings={"help_option_names": ["-h", "--help"]},
)

DataPath = Annotated[
    Optional[Path],
    typer.Argument(
        exists=True,
        dir_okay=False,
        readable=True,
        show_default=False,
        help=(
            "CSV of timestamp,value lines; timestamps must be ISO-8601 (e.g. 2021-10-04 or "
            "2021-10-04T00:00:00Z). Defaults to the bundled sample or ANOMALY_DETECTOR_DATA_PATH."
        ),
    ),
]
GranularityOption = Annotated[
    Optional[TimeGranularity],
    typer.Option("--granularity", "-g", help="Sampling interval of the series (default: daily)."),
]
SensitivityOption = Annotated[
    Optional[int],
    typer.Option(
        "--sensitivity",
        "-s",
        min=0,
        max=99,
        help="0-99; lower values widen the margin and flag fewer anomalies (default: 25).",
    ),
]
MaxAnomalyRatioOption = Annotated[
    Optional[float],
    typer.Option("--max-anomaly-ratio", help="Upper bound on the share of points flagged (0 < r < 0.5)."),
]
PeriodOption = Annotated[
    Optional[int],
    typer.Option("--period", min=0, help="Known period of the series; detected by the service when omitted."),
]
CustomIntervalOption = Annotated[
    Optional[int],
    typer.Option("--custom-interval", min=1, help="Multiple of the granularity between points."),
]
ImputeModeOption = Annotated[
    Optional[ImputeMode],
    typer.Option("--impute-mode", help="How the service fills gaps in the series."),
]
ImputeFixedValueOption = Annotated[
    Optional[float],
    typer.Option("--impute-fixed-value", help="Fill value used with --impute-mode fixed."),
]
MalformedRowsOption = Annotated[
    Optional[MalformedRowPolicy],
    typer.Option(
        "--malformed-rows",
        help="Skip lines without exactly two fields, or fail on them (default: skip).",
    ),
]


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        raise typer.Exit(code=1)
    return state


def _get_client(ctx: typer.Context) -> AnomalyDetectorClient:
    state = _get_state(ctx)
    if state.client is None:
        missing = state.config.missing()
        if missing:
            raise typer.BadParameter(
                f"Set {' and '.join(missing)} or pass --endpoint/--api-key."
            )
        state.client = AnomalyDetectorClient(state.config)
        ctx.call_on_close(state.client.close)
    return state.client


@contextmanager
def _report_failures() -> Iterator[None]:
    try:
        yield
    except RequestFailedError as exc:
        logger.error(
            "Detection request failed",
            extra={"status_code": exc.status_code, "error_code": exc.error_code},
        )
        typer.secho(f"Detection request failed: {exc.message}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc
    except Exception as exc:
        logger.exception("Detection error", extra={"reason": str(exc)})
        typer.secho(f"Detection error. {exc}", fg=typer.colors.RED, err=True)
        raise


def _load_series(
    path: Optional[Path], malformed_rows: Optional[MalformedRowPolicy]
) -> LoadedSeries:
    settings = get_settings()
    loader = build_default_loader(malformed_rows.value if malformed_rows else None)
    return loader.load(path or settings.data_path)


def _build_request(
    series: LoadedSeries,
    granularity: Optional[TimeGranularity],
    sensitivity: Optional[int],
    **options: object,
) -> DetectRequest:
    settings = get_settings()
    return build_request(
        series.points,
        granularity=granularity or TimeGranularity(settings.granularity),
        sensitivity=settings.sensitivity if sensitivity is None else sensitivity,
        **options,
    )


@app.callback()
def main(
    ctx: typer.Context,
    endpoint: Optional[str] = typer.Option(
        None,
        "--endpoint",
        "-e",
        help="Anomaly detector resource endpoint (defaults to ANOMALY_DETECTOR_ENDPOINT env).",
    ),
    api_key: Optional[str] = typer.Option(
        None,
        "--api-key",
        "-k",
        help="Subscription key (defaults to ANOMALY_DETECTOR_API_KEY env).",
    ),
    api_version: Optional[str] = typer.Option(
        None,
        "--api-version",
        help="REST API version segment, e.g. v1.1.",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Seconds to wait for each detection request.",
    ),
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        help="Logging level for diagnostics written to stderr (defaults to LOG_LEVEL env).",
    ),
) -> None:
    """Entry point for the CLI."""
    configure_logging(log_level.upper() if log_level else None)
    config = load_config(
        endpoint=endpoint,
        api_key=api_key,
        api_version=api_version,
        timeout=timeout,
    )
    ctx.obj = CLIState(config=config)


@app.command("detect")
def detect_command(
    ctx: typer.Context,
    path: DataPath = None,
    granularity: GranularityOption = None,
    sensitivity: SensitivityOption = None,
    max_anomaly_ratio: MaxAnomalyRatioOption = None,
    period: PeriodOption = None,
    custom_interval: CustomIntervalOption = None,
    impute_mode: ImputeModeOption = None,
    impute_fixed_value: ImputeFixedValueOption = None,
    malformed_rows: MalformedRowsOption = None,
    parallel: bool = typer.Option(
        False,
        "--parallel/--sequential",
        help="Issue both detection requests at the same time.",
    ),
) -> None:
    """Detect anomalies across the whole series and for its latest point."""
    service = DetectionService(_get_client(ctx))
    with _report_failures():
        series = _load_series(path, malformed_rows)
        request = _build_request(
            series,
            granularity,
            sensitivity,
            max_anomaly_ratio=max_anomaly_ratio,
            period=period,
            custom_interval=custom_interval,
            impute_mode=impute_mode,
            impute_fixed_value=impute_fixed_value,
        )
        if parallel:
            report = service.run(request, parallel=True)
            render_series_detection(report.series, series.points)
            render_latest_detection(report.latest)
            return
        render_series_detection(service.detect_entire_series(request), series.points)
        render_latest_detection(service.detect_latest_point(request))


@app.command("entire")
def entire_command(
    ctx: typer.Context,
    path: DataPath = None,
    granularity: GranularityOption = None,
    sensitivity: SensitivityOption = None,
    max_anomaly_ratio: MaxAnomalyRatioOption = None,
    period: PeriodOption = None,
    custom_interval: CustomIntervalOption = None,
    impute_mode: ImputeModeOption = None,
    impute_fixed_value: ImputeFixedValueOption = None,
    malformed_rows: MalformedRowsOption = None,
) -> None:
    """Flag every anomalous point using the whole series."""
    service = DetectionService(_get_client(ctx))
    with _report_failures():
        series = _load_series(path, malformed_rows)
        request = _build_request(
            series,
            granularity,
            sensitivity,
            max_anomaly_ratio=max_anomaly_ratio,
            period=period,
            custom_interval=custom_interval,
            impute_mode=impute_mode,
            impute_fixed_value=impute_fixed_value,
        )
        render_series_detection(service.detect_entire_series(request), series.points)


@app.command("last")
def last_command(
    ctx: typer.Context,
    path: DataPath = None,
    granularity: GranularityOption = None,
    sensitivity: SensitivityOption = None,
    max_anomaly_ratio: MaxAnomalyRatioOption = None,
    period: PeriodOption = None,
    custom_interval: CustomIntervalOption = None,
    impute_mode: ImputeModeOption = None,
    impute_fixed_value: ImputeFixedValueOption = None,
    malformed_rows: MalformedRowsOption = None,
) -> None:
    """Check whether the latest point is an anomaly given the points before it."""
    service = DetectionService(_get_client(ctx))
    with _report_failures():
        series = _load_series(path, malformed_rows)
        request = _build_request(
            series,
            granularity,
            sensitivity,
            max_anomaly_ratio=max_anomaly_ratio,
            period=period,
            custom_interval=custom_interval,
            impute_mode=impute_mode,
            impute_fixed_value=impute_fixed_value,
        )
        render_latest_detection(service.detect_latest_point(request))


@app.command("inspect")
def inspect_command(
    path: DataPath = None,
    malformed_rows: MalformedRowsOption = None,
) -> None:
    """Load the CSV and summarise it without contacting the service."""
    with _report_failures():
        render_loaded_series(_load_series(path, malformed_rows))
