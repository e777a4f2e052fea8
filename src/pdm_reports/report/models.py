from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator

from pdm_reports.config import DEFAULT_THRESHOLD


class Parameter(str, Enum):
    Temperature = "Temperature"
    Pressure = "Pressure"
    Humidity = "Humidity"
    Vibration = "Vibration"


PARAMETERS: tuple[Parameter, ...] = tuple(Parameter)


@dataclass(frozen=True)
class Series:
    timestamps: tuple[str, ...] = ()
    values: tuple[float, ...] = ()
    threshold: float = DEFAULT_THRESHOLD

    def __post_init__(self) -> None:
        if len(self.timestamps) != len(self.values):
            raise ValueError(
                "series timestamps and values must have equal length "
                f"({len(self.timestamps)} != {len(self.values)})"
            )

    def __len__(self) -> int:
        return len(self.values)

    @property
    def is_empty(self) -> bool:
        return not self.values

    @property
    def time_range(self) -> str:
        if not self.timestamps:
            return "N/A"
        return f"{self.timestamps[0]} - {self.timestamps[-1]}"


@dataclass(frozen=True)
class ParsedUpload:
    file_name: str
    series: Series
    predicted: tuple[float, ...] = field(default_factory=tuple)
    threshold_override: float | None = None


class _ReportIdSource:
    """Millisecond ids that stay strictly increasing within a process."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._last = 0

    def next_id(self) -> int:
        with self._lock:
            candidate = time.time_ns() // 1_000_000
            self._last = max(candidate, self._last + 1)
            return self._last


_ID_SOURCE = _ReportIdSource()


def next_report_id() -> int:
    return _ID_SOURCE.next_id()


def default_report_name(parameter: Parameter | str, when: datetime | None = None) -> str:
    moment = when or datetime.now()
    label = Parameter(parameter).value
    return f"{label} Report - {moment:%b} {moment.day}, {moment:%I:%M %p}"


class Report(BaseModel):
    """A persisted, immutable snapshot of one uploaded series."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: int
    name: str
    parameter: Parameter
    file_name: str = Field(
        validation_alias=AliasChoices("fileName", "file_name"),
        serialization_alias="fileName",
    )
    upload_timestamp: str = Field(
        default="",
        validation_alias=AliasChoices("uploadTimestamp", "uploadDate", "upload_timestamp"),
        serialization_alias="uploadTimestamp",
    )
    data_points: int = Field(
        default=0,
        ge=0,
        validation_alias=AliasChoices("dataPoints", "data_points"),
        serialization_alias="dataPoints",
    )
    timestamps: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("timestamps", "times"),
    )
    values: list[float] = Field(default_factory=list)
    threshold: float = DEFAULT_THRESHOLD

    @model_validator(mode="before")
    @classmethod
    def _align_legacy_payload(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        payload = dict(data)
        times_key = "timestamps" if "timestamps" in payload else "times"
        raw_values = payload.get("values") or []
        raw_times = payload.get(times_key) or []
        # Leave non-list fields untouched so field validation rejects the entry.
        if not isinstance(raw_values, list) or not isinstance(raw_times, list):
            return payload
        values = list(raw_values)
        times = ["" if stamp is None else str(stamp) for stamp in raw_times]
        # NaN readings serialize as null; drop them with their labels.
        if len(times) == len(values):
            kept = [(stamp, value) for stamp, value in zip(times, values) if value is not None]
            times = [stamp for stamp, _ in kept]
            values = [value for _, value in kept]
        else:
            values = [value for value in values if value is not None]
        # Older payloads kept a label for every row, including rows whose value was dropped.
        if len(times) > len(values):
            times = times[: len(values)]
        elif len(times) < len(values):
            times = times + [""] * (len(values) - len(times))
        payload[times_key] = times
        payload["values"] = values
        if payload.get("dataPoints") is None and payload.get("data_points") is None:
            payload["dataPoints"] = len(values)
        if payload.get("threshold") is None:
            payload.pop("threshold", None)
        return payload

    @classmethod
    def from_series(
        cls,
        *,
        parameter: Parameter | str,
        file_name: str,
        series: Series,
        name: str | None = None,
        uploaded_at: datetime | None = None,
        report_id: int | None = None,
    ) -> Report:
        moment = uploaded_at or datetime.now(timezone.utc)
        return cls(
            id=report_id if report_id is not None else next_report_id(),
            name=name or default_report_name(parameter, moment.astimezone()),
            parameter=Parameter(parameter),
            file_name=file_name,
            upload_timestamp=moment.isoformat(),
            data_points=len(series.values),
            timestamps=list(series.timestamps),
            values=list(series.values),
            threshold=series.threshold,
        )

    def series(self) -> Series:
        return Series(
            timestamps=tuple(self.timestamps),
            values=tuple(float(value) for value in self.values),
            threshold=float(self.threshold),
        )

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


def empty_mapping() -> dict[Parameter, list[Report]]:
    return {parameter: [] for parameter in PARAMETERS}


def coerce_parameter(value: Parameter | str) -> Parameter:
    try:
        return Parameter(value)
    except ValueError:
        lowered = str(value).strip().lower()
        for parameter in PARAMETERS:
            if parameter.value.lower() == lowered:
                return parameter
        raise ValueError(
            f"Unknown parameter: {value}. Expected one of: "
            + ", ".join(parameter.value for parameter in PARAMETERS)
        ) from None
