from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any, Protocol

from pydantic import ValidationError

from pdm_reports.errors import PersistenceReadError
from pdm_reports.features.dedup import (
    DEFAULT_FINGERPRINT_MODE,
    FingerprintMode,
    dedupe_reports,
    has_fingerprint,
    report_fingerprint,
)
from pdm_reports.report.models import (
    PARAMETERS,
    Parameter,
    Report,
    coerce_parameter,
    empty_mapping,
)

LOGGER = logging.getLogger(__name__)

DEFAULT_STORE_KEY = "predictive_reports"


class KeyValueStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...


class InMemoryKeyValueStore:
    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self.data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value


class FileKeyValueStore:
    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def get(self, key: str) -> str | None:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(".json.tmp")
        tmp_path.write_text(value, encoding="utf-8")
        tmp_path.replace(path)


def _decode_mapping(raw: str) -> dict[Parameter, list[Report]]:
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise PersistenceReadError(f"stored reports are not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise PersistenceReadError("stored reports must be a mapping of parameter to reports")

    mapping = empty_mapping()
    for raw_category, entries in payload.items():
        try:
            category = coerce_parameter(raw_category)
        except ValueError:
            LOGGER.warning("Ignoring stored reports under unknown parameter %r", raw_category)
            continue
        if not isinstance(entries, list):
            raise PersistenceReadError(f"stored reports for {category.value} must be a list")
        for entry in entries:
            if not isinstance(entry, dict):
                LOGGER.warning("Skipping malformed %s report entry", category.value)
                continue
            payload_entry = {**entry, "parameter": category.value}
            try:
                mapping[category].append(Report.model_validate(payload_entry))
            except (ValidationError, TypeError, ValueError) as exc:
                reason = (
                    exc.errors()[0].get("msg")
                    if isinstance(exc, ValidationError) and exc.errors()
                    else exc
                )
                LOGGER.warning(
                    "Skipping invalid %s report %r: %s", category.value, entry.get("id"), reason
                )
    return mapping


class ReportStore:
    """Category-keyed report history persisted as one JSON document.

    The whole mapping is read on ``load`` and rewritten after every mutation.
    Mutations hold a lock so concurrent uploads cannot drop each other.
    """

    def __init__(
        self,
        backend: KeyValueStore,
        *,
        key: str = DEFAULT_STORE_KEY,
        fingerprint_mode: FingerprintMode = DEFAULT_FINGERPRINT_MODE,
    ) -> None:
        self.backend = backend
        self.key = key
        self.fingerprint_mode = fingerprint_mode
        self._reports: dict[Parameter, list[Report]] = empty_mapping()
        self._loaded = False
        self._lock = threading.RLock()

    def _read(self) -> dict[Parameter, list[Report]]:
        try:
            raw = self.backend.get(self.key)
            if raw is None:
                return empty_mapping()
            return _decode_mapping(raw)
        except (PersistenceReadError, OSError, UnicodeDecodeError):
            LOGGER.exception("Could not read stored reports; starting with no prior data")
            return empty_mapping()

    def _persist(self) -> None:
        self.backend.set(self.key, self.serialize())

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self.load()

    def load(self) -> dict[Parameter, list[Report]]:
        """Read stored state, drop legacy duplicates, and write the result back."""
        with self._lock:
            mapping = self._read()
            for category in PARAMETERS:
                kept, dropped = dedupe_reports(mapping[category], self.fingerprint_mode)
                if dropped:
                    LOGGER.info(
                        "Removed %s duplicate %s report(s) from stored history",
                        dropped,
                        category.value,
                    )
                mapping[category] = kept
            self._reports = mapping
            self._loaded = True
            self._persist()
            return self.snapshot()

    def add(self, category: Parameter | str, report: Report) -> bool:
        parameter = coerce_parameter(category)
        with self._lock:
            self._ensure_loaded()
            if report.parameter != parameter:
                report = report.model_copy(update={"parameter": parameter})
            fingerprint = report_fingerprint(report, self.fingerprint_mode)
            if has_fingerprint(self._reports[parameter], fingerprint, self.fingerprint_mode):
                LOGGER.info("Report already exists, skipping duplicate: %s", report.file_name)
                return False
            self._reports[parameter].append(report)
            self._persist()
            LOGGER.info(
                "New report saved: %s with %s data points", report.name, report.data_points
            )
            return True

    def remove(self, category: Parameter | str, report_id: int) -> bool:
        parameter = coerce_parameter(category)
        with self._lock:
            self._ensure_loaded()
            remaining = [report for report in self._reports[parameter] if report.id != report_id]
            if len(remaining) == len(self._reports[parameter]):
                return False
            self._reports[parameter] = remaining
            self._persist()
            return True

    def find(self, category: Parameter | str, report_id: int) -> Report | None:
        parameter = coerce_parameter(category)
        with self._lock:
            self._ensure_loaded()
            return next(
                (report for report in self._reports[parameter] if report.id == report_id), None
            )

    def latest(self, category: Parameter | str) -> Report | None:
        parameter = coerce_parameter(category)
        with self._lock:
            self._ensure_loaded()
            reports = self._reports[parameter]
            return reports[-1] if reports else None

    def snapshot(self) -> dict[Parameter, list[Report]]:
        with self._lock:
            return {category: list(reports) for category, reports in self._reports.items()}

    def to_payload(self) -> dict[str, list[dict[str, Any]]]:
        with self._lock:
            return {
                category.value: [report.to_payload() for report in self._reports[category]]
                for category in PARAMETERS
            }

    def serialize(self) -> str:
        return json.dumps(self.to_payload())

    def list(self, category: Parameter | str) -> list[Report]:
        parameter = coerce_parameter(category)
        with self._lock:
            self._ensure_loaded()
            return list(self._reports[parameter])
