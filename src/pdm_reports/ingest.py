from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Literal

from pdm_reports.config import AppConfig
from pdm_reports.errors import FormatError, ParseError
from pdm_reports.io.read import load_upload_async, parse_upload
from pdm_reports.playback import PlaybackDriver
from pdm_reports.report.models import Parameter, ParsedUpload, Report, coerce_parameter
from pdm_reports.report.store import ReportStore
from pdm_reports.stats import SeriesSummary, summarize_series

LOGGER = logging.getLogger(__name__)

UploadStatus = Literal["created", "duplicate", "format_error", "parse_error"]


@dataclass(frozen=True)
class UploadPreview:
    parameter: Parameter
    upload: ParsedUpload
    summary: SeriesSummary

    @property
    def file_name(self) -> str:
        return self.upload.file_name

    @property
    def time_range(self) -> str:
        return self.upload.series.time_range

    def to_dict(self) -> dict[str, Any]:
        return {
            "fileName": self.file_name,
            "parameter": self.parameter.value,
            "dataPoints": self.summary.data_points,
            "min": self.summary.minimum,
            "max": self.summary.maximum,
            "avg": self.summary.average,
            "threshold": self.summary.threshold,
            "timeRange": self.time_range,
        }


@dataclass(frozen=True)
class UploadOutcome:
    status: UploadStatus
    message: str
    preview: UploadPreview | None = None
    report: Report | None = None

    @property
    def ok(self) -> bool:
        return self.status in ("created", "duplicate")


def _default_threshold(config: AppConfig, parameter: Parameter) -> float:
    override = config.thresholds.for_parameter(parameter)
    return override if override is not None else config.parser.default_threshold


def preview_upload(
    data: bytes,
    file_name: str,
    parameter: Parameter | str,
    config: AppConfig,
) -> UploadPreview:
    category = coerce_parameter(parameter)
    upload = parse_upload(
        data,
        file_name,
        config=config.parser,
        default_threshold=_default_threshold(config, category),
    )
    summary = summarize_series(upload.series.values, upload.series.threshold)
    return UploadPreview(parameter=category, upload=upload, summary=summary)


def apply_upload(
    preview: UploadPreview,
    store: ReportStore,
    *,
    name: str | None = None,
    player: PlaybackDriver | None = None,
    uploaded_at: datetime | None = None,
) -> UploadOutcome:
    report = Report.from_series(
        parameter=preview.parameter,
        file_name=preview.file_name,
        series=preview.upload.series,
        name=name,
        uploaded_at=uploaded_at,
    )
    created = store.add(preview.parameter, report)
    if player is not None:
        player.apply_series(preview.upload.series)

    if not created:
        return UploadOutcome(
            status="duplicate",
            message=f"{preview.file_name} is already stored; no new report created.",
            preview=preview,
        )
    return UploadOutcome(
        status="created",
        message=f"Saved {report.name} with {report.data_points} data points.",
        preview=preview,
        report=report,
    )


def _failed(exc: FormatError | ParseError) -> UploadOutcome:
    status: UploadStatus = "format_error" if isinstance(exc, FormatError) else "parse_error"
    LOGGER.warning("Upload rejected (%s): %s", status, exc)
    return UploadOutcome(status=status, message=str(exc))


def ingest_upload(
    data: bytes,
    file_name: str,
    parameter: Parameter | str,
    store: ReportStore,
    config: AppConfig,
    *,
    name: str | None = None,
    player: PlaybackDriver | None = None,
) -> UploadOutcome:
    """Parse, summarize and persist an upload, reporting failures as outcomes."""
    try:
        preview = preview_upload(data, file_name, parameter, config)
    except (FormatError, ParseError) as exc:
        return _failed(exc)
    return apply_upload(preview, store, name=name, player=player)


async def ingest_path_async(
    path: Path,
    parameter: Parameter | str,
    store: ReportStore,
    config: AppConfig,
    *,
    name: str | None = None,
    player: PlaybackDriver | None = None,
) -> UploadOutcome:
    category = coerce_parameter(parameter)
    try:
        upload = await load_upload_async(
            path,
            config=config.parser,
            default_threshold=_default_threshold(config, category),
        )
    except (FormatError, ParseError) as exc:
        return _failed(exc)
    preview = UploadPreview(
        parameter=category,
        upload=upload,
        summary=summarize_series(upload.series.values, upload.series.threshold),
    )
    return apply_upload(preview, store, name=name, player=player)
