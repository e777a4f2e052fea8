from __future__ import annotations

import asyncio
from pathlib import Path

import typer
from pydantic import ValidationError

from pdm_reports.config import DEFAULT_CONFIG_PATH, AppConfig, PlaybackConfig, load_config
from pdm_reports.ingest import ingest_upload
from pdm_reports.insights import insights_for_values
from pdm_reports.logging import configure_logging
from pdm_reports.playback import PlaybackDriver
from pdm_reports.report.models import Parameter, Report
from pdm_reports.report.store import FileKeyValueStore, ReportStore
from pdm_reports.stats import SeriesSummary, summarize_series
from pdm_reports.viz.chart import plot_series

app = typer.Typer(no_args_is_help=True, add_completion=False)


def _load_app_config(config_path: Path) -> AppConfig:
    cfg = load_config(config_path)
    configure_logging(cfg.logging.level, cfg.logging.file)
    return cfg


def _build_store(cfg: AppConfig) -> ReportStore:
    store = ReportStore(
        FileKeyValueStore(Path(cfg.store.directory)),
        key=cfg.store.key,
        fingerprint_mode=cfg.fingerprint.mode,
    )
    store.load()
    return store


def _resolve_report(store: ReportStore, parameter: Parameter, report_id: int | None) -> Report:
    report = store.latest(parameter) if report_id is None else store.find(parameter, report_id)
    if report is None:
        target = "any report" if report_id is None else f"report {report_id}"
        raise typer.BadParameter(f"No {parameter.value} history contains {target}.")
    return report


def _fmt_stat(value: float | None) -> str:
    return "N/A" if value is None else f"{value:.2f}"


def _echo_summary(summary: SeriesSummary) -> None:
    typer.echo(f"- data_points: {summary.data_points}")
    typer.echo(f"- min: {_fmt_stat(summary.minimum)}")
    typer.echo(f"- max: {_fmt_stat(summary.maximum)}")
    typer.echo(f"- average: {_fmt_stat(summary.average)}")
    typer.echo(f"- variation: {_fmt_stat(summary.variation)}")
    typer.echo(f"- threshold: {summary.threshold:.1f}")
    typer.echo(f"- normal: {summary.normal_count} ({summary.normal_percent:.1f}%)")
    typer.echo(f"- notify: {summary.notify_count} ({summary.notify_percent:.1f}%)")
    typer.echo(f"- trend: {summary.trend.direction} ({summary.trend.difference:+.2f})")


@app.command()
def upload(
    file: Path = typer.Option(..., exists=True, readable=True, resolve_path=True),
    parameter: Parameter = typer.Option(Parameter.Temperature),
    name: str | None = typer.Option(None, help="Report name. Generated when omitted."),
    chart: Path | None = typer.Option(
        None, resolve_path=True, help="Also render the upload, predicted values included, as a PNG."
    ),
    config: Path = typer.Option(DEFAULT_CONFIG_PATH, exists=True, readable=True, resolve_path=True),
) -> None:
    """Parse an uploaded CSV/XLSX/XLS export and store it as a report."""
    cfg = _load_app_config(config)
    store = _build_store(cfg)
    outcome = ingest_upload(file.read_bytes(), file.name, parameter, store, cfg, name=name)
    if not outcome.ok:
        typer.echo(f"Upload failed ({outcome.status}): {outcome.message}", err=True)
        raise typer.Exit(code=1)

    typer.echo(outcome.message)
    if outcome.preview is not None:
        typer.echo(f"- status: {outcome.status}")
        typer.echo(f"- time_range: {outcome.preview.time_range}")
        _echo_summary(outcome.preview.summary)
        if chart is not None:
            parsed = outcome.preview.upload
            plot_series(parsed.series, chart, title=parsed.file_name, predicted=parsed.predicted)
            typer.echo(f"Chart written to: {chart}")


@app.command("list")
def list_reports(
    parameter: Parameter = typer.Option(Parameter.Temperature),
    config: Path = typer.Option(DEFAULT_CONFIG_PATH, exists=True, readable=True, resolve_path=True),
) -> None:
    """List stored reports for one parameter, oldest first."""
    store = _build_store(_load_app_config(config))
    reports = store.list(parameter)
    if not reports:
        typer.echo(f"No {parameter.value} reports stored.")
        return
    for report in reports:
        typer.echo(
            f"{report.id}\t{report.name}\t{report.file_name}\t{report.data_points} points"
        )


@app.command()
def delete(
    report_id: int = typer.Option(..., "--id"),
    parameter: Parameter = typer.Option(Parameter.Temperature),
    config: Path = typer.Option(DEFAULT_CONFIG_PATH, exists=True, readable=True, resolve_path=True),
) -> None:
    """Delete a stored report by id. Unknown ids leave the history untouched."""
    store = _build_store(_load_app_config(config))
    removed = store.remove(parameter, report_id)
    typer.echo(f"Deleted report {report_id}" if removed else f"No report {report_id}; unchanged")


@app.command()
def summary(
    parameter: Parameter = typer.Option(Parameter.Temperature),
    report_id: int | None = typer.Option(None, "--id", help="Defaults to the latest report."),
    config: Path = typer.Option(DEFAULT_CONFIG_PATH, exists=True, readable=True, resolve_path=True),
) -> None:
    """Print descriptive statistics and the trend signal for a stored report."""
    store = _build_store(_load_app_config(config))
    report = _resolve_report(store, parameter, report_id)
    typer.echo(f"{report.name} ({report.file_name})")
    _echo_summary(summarize_series(report.values, report.threshold))


@app.command()
def chart(
    out: Path = typer.Option(..., resolve_path=True),
    parameter: Parameter = typer.Option(Parameter.Temperature),
    report_id: int | None = typer.Option(None, "--id", help="Defaults to the latest report."),
    config: Path = typer.Option(DEFAULT_CONFIG_PATH, exists=True, readable=True, resolve_path=True),
) -> None:
    """Render a stored report as a PNG line chart with its threshold."""
    store = _build_store(_load_app_config(config))
    report = _resolve_report(store, parameter, report_id)
    chart_path = plot_series(report.series(), out, title=report.name)
    typer.echo(f"Chart written to: {chart_path}")


@app.command()
def play(
    parameter: Parameter = typer.Option(Parameter.Temperature),
    ticks: int = typer.Option(10, min=1),
    tick_seconds: float | None = typer.Option(None),
    config: Path = typer.Option(DEFAULT_CONFIG_PATH, exists=True, readable=True, resolve_path=True),
) -> None:
    """Replay the latest stored report, printing one status line per tick."""
    cfg = _load_app_config(config)
    store = _build_store(cfg)
    playback_config = cfg.playback
    if tick_seconds is not None:
        try:
            playback_config = PlaybackConfig.model_validate(
                {**cfg.playback.model_dump(), "tick_seconds": tick_seconds}
            )
        except ValidationError as exc:
            raise typer.BadParameter(
                "must be greater than 0", param_hint="--tick-seconds"
            ) from exc

    driver = PlaybackDriver(playback_config, on_tick=lambda snap: typer.echo(snap.status_line()))
    latest = store.latest(parameter)
    if latest is not None:
        driver.apply_series(latest.series())
    else:
        typer.echo(f"No {parameter.value} reports stored; running fallback simulation.")

    async def _play() -> None:
        try:
            await driver.start(ticks)
        finally:
            await driver.stop()

    asyncio.run(_play())


@app.command()
def insights(
    parameter: Parameter = typer.Option(Parameter.Temperature),
    report_id: int | None = typer.Option(None, "--id", help="Defaults to the latest report."),
    config: Path = typer.Option(DEFAULT_CONFIG_PATH, exists=True, readable=True, resolve_path=True),
) -> None:
    """Ask the insight service for three short maintenance insights."""
    cfg = _load_app_config(config)
    store = _build_store(cfg)
    latest = store.latest(parameter) if report_id is None else store.find(parameter, report_id)
    values = latest.values if latest is not None else []
    payload, status = insights_for_values(values, cfg.insights)
    if status != 200:
        typer.echo(f"Insights unavailable ({payload.get('error')})", err=True)
    for line in payload.get("insights", []):
        typer.echo(f"- {line}")


if __name__ == "__main__":
    app()
