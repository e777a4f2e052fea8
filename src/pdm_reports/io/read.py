from __future__ import annotations

import asyncio
import io
import logging
import math
import numbers
import re
from datetime import datetime, time
from pathlib import Path
from typing import Any, Callable, Literal, Sequence

import pandas as pd

from pdm_reports.config import ParserConfig
from pdm_reports.errors import FormatError, ParseError
from pdm_reports.io.columns import resolve_columns
from pdm_reports.report.models import ParsedUpload, Series

LOGGER = logging.getLogger(__name__)

UploadFormat = Literal["csv", "spreadsheet"]

FORMAT_BY_EXTENSION: dict[str, UploadFormat] = {
    ".csv": "csv",
    ".xlsx": "spreadsheet",
    ".xls": "spreadsheet",
}

_LEADING_FLOAT_RE = re.compile(r"^\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")


def detect_format(
    file_name: str,
    supported_extensions: Sequence[str] | None = None,
) -> UploadFormat:
    allowed = [ext.lower() for ext in (supported_extensions or FORMAT_BY_EXTENSION)]
    suffix = Path(file_name).suffix.lower()
    if suffix not in allowed or suffix not in FORMAT_BY_EXTENSION:
        raise FormatError(
            "Unsupported file format. Please upload "
            + ", ".join(ext for ext in allowed if ext in FORMAT_BY_EXTENSION)
            + " file"
        )
    return FORMAT_BY_EXTENSION[suffix]


def parse_number(raw: Any) -> float | None:
    """Parse a cell the way a lenient float reader would: leading numeric prefix wins."""
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, numbers.Real):
        value = float(raw)
        return value if math.isfinite(value) else None
    match = _LEADING_FLOAT_RE.match(str(raw))
    if not match:
        return None
    value = float(match.group(1))
    return value if math.isfinite(value) else None


def serial_to_clock(serial: float) -> str:
    fractional_day = serial - math.floor(serial)
    total_minutes = math.floor(fractional_day * 24 * 60 + 0.5)
    hours, minutes = divmod(total_minutes, 60)
    return f"{hours:02d}:{minutes:02d}"


def _spreadsheet_time_label(raw: Any) -> str:
    if raw is None:
        return ""
    if isinstance(raw, bool):
        return str(raw)
    if isinstance(raw, numbers.Real):
        if math.isnan(float(raw)):
            return ""
        return serial_to_clock(float(raw))
    # Date-formatted cells come back decoded; reduce them to the same clock label.
    if isinstance(raw, (datetime, time)):
        if isinstance(raw, pd.Timestamp) and pd.isna(raw):
            return ""
        seconds = raw.hour * 3600 + raw.minute * 60 + raw.second + raw.microsecond / 1e6
        return serial_to_clock(seconds / 86400.0)
    return str(raw)


def _csv_time_label(raw: Any) -> str:
    return "" if raw is None else str(raw)


def _column_values(frame: pd.DataFrame, column: str | None) -> list[Any]:
    if column is None:
        return [None] * len(frame)
    return [None if _is_missing(value) else value for value in frame[column].tolist()]


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def _upload_from_frame(
    frame: pd.DataFrame,
    *,
    file_name: str,
    config: ParserConfig,
    default_threshold: float,
    time_label: Callable[[Any], str],
) -> ParsedUpload:
    columns = resolve_columns(frame.columns, config.columns)
    LOGGER.debug("Resolved columns for %s: %s", file_name, columns)

    raw_times = _column_values(frame, columns.time)
    raw_values = _column_values(frame, columns.value)

    timestamps: list[str] = []
    values: list[float] = []
    for raw_time, raw_value in zip(raw_times, raw_values):
        value = parse_number(raw_value)
        if value is None:
            continue
        timestamps.append(time_label(raw_time))
        values.append(value)

    predicted = tuple(
        value
        for value in (parse_number(raw) for raw in _column_values(frame, columns.predicted))
        if value is not None
    )
    threshold_override = next(
        (
            value
            for value in (parse_number(raw) for raw in _column_values(frame, columns.threshold))
            if value is not None
        ),
        None,
    )

    dropped = len(frame) - len(values)
    if dropped:
        LOGGER.debug("Dropped %s rows without a parseable value from %s", dropped, file_name)

    series = Series(
        timestamps=tuple(timestamps),
        values=tuple(values),
        threshold=threshold_override if threshold_override is not None else default_threshold,
    )
    return ParsedUpload(
        file_name=file_name,
        series=series,
        predicted=predicted,
        threshold_override=threshold_override,
    )


def read_csv_frame(data: bytes) -> pd.DataFrame:
    try:
        # utf-8-sig strips BOM-prefixed headers commonly found in exported CSV files.
        text = data.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise ParseError(f"Could not decode CSV file as UTF-8: {exc}") from exc

    text = text.strip()
    if not text:
        return pd.DataFrame()

    try:
        return pd.read_csv(
            io.StringIO(text),
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
            engine="python",
            # Rows with extra or trailing fields keep their leading columns; the first
            # column is never taken as an index.
            index_col=False,
        )
    except pd.errors.EmptyDataError:
        return pd.DataFrame()
    except pd.errors.ParserError as exc:
        raise ParseError(f"Error parsing CSV file: {exc}") from exc


def read_spreadsheet_frame(data: bytes, file_name: str) -> pd.DataFrame:
    engine = "xlrd" if Path(file_name).suffix.lower() == ".xls" else "openpyxl"
    try:
        return pd.read_excel(io.BytesIO(data), sheet_name=0, dtype=object, engine=engine)
    except Exception as exc:
        raise ParseError(f"Error parsing spreadsheet file: {exc}") from exc


def parse_upload(
    data: bytes,
    file_name: str,
    *,
    config: ParserConfig | None = None,
    default_threshold: float | None = None,
) -> ParsedUpload:
    """Turn raw upload bytes into a normalized series.

    Raises FormatError before touching the content when the extension is not
    supported, and ParseError when the content cannot be decoded. A file with no
    parseable value rows yields an empty series.
    """
    parser_config = config or ParserConfig()
    fmt = detect_format(file_name, parser_config.supported_extensions)
    fallback_threshold = (
        default_threshold if default_threshold is not None else parser_config.default_threshold
    )

    if fmt == "csv":
        frame = read_csv_frame(data)
        time_label = _csv_time_label
    else:
        frame = read_spreadsheet_frame(data, file_name)
        time_label = _spreadsheet_time_label

    parsed = _upload_from_frame(
        frame,
        file_name=file_name,
        config=parser_config,
        default_threshold=fallback_threshold,
        time_label=time_label,
    )
    LOGGER.info(
        "Parsed %s (%s): %s values, threshold %.1f",
        file_name,
        fmt,
        len(parsed.series),
        parsed.series.threshold,
    )
    return parsed


def load_upload(
    path: Path,
    *,
    config: ParserConfig | None = None,
    default_threshold: float | None = None,
) -> ParsedUpload:
    parser_config = config or ParserConfig()
    detect_format(path.name, parser_config.supported_extensions)
    return parse_upload(
        path.read_bytes(),
        path.name,
        config=parser_config,
        default_threshold=default_threshold,
    )


async def load_upload_async(
    path: Path,
    *,
    config: ParserConfig | None = None,
    default_threshold: float | None = None,
) -> ParsedUpload:
    return await asyncio.to_thread(
        load_upload,
        path,
        config=config,
        default_threshold=default_threshold,
    )
