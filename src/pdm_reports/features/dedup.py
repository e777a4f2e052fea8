from __future__ import annotations

import json
import logging
from hashlib import sha256
from typing import Iterable, Literal, Sequence

from pdm_reports.report.models import Report

LOGGER = logging.getLogger(__name__)

FingerprintMode = Literal["legacy", "content_sha256"]

DEFAULT_FINGERPRINT_MODE: FingerprintMode = "legacy"
FINGERPRINT_PREFIX_VALUES = 3


def format_number(value: float) -> str:
    """Render numbers the way stored keys were written: integral floats drop ``.0``."""
    number = float(value)
    if number.is_integer():
        return str(int(number))
    return repr(number)


def legacy_fingerprint(file_name: str, values: Sequence[float], count: int) -> str:
    """Weak key: file name, first three values and the value count.

    Two different datasets sharing all three collide.
    """
    head = "_".join(format_number(value) for value in values[:FINGERPRINT_PREFIX_VALUES])
    return f"{file_name}_{head}_{count}"


def content_fingerprint(
    file_name: str, values: Sequence[float], timestamps: Sequence[str]
) -> str:
    hasher = sha256()
    hasher.update(file_name.encode("utf-8"))
    hasher.update(
        json.dumps(
            {
                "values": [format_number(value) for value in values],
                "timestamps": list(timestamps),
            },
            sort_keys=True,
        ).encode("utf-8")
    )
    return hasher.hexdigest()


def report_fingerprint(report: Report, mode: FingerprintMode = DEFAULT_FINGERPRINT_MODE) -> str:
    if mode == "content_sha256":
        return content_fingerprint(report.file_name, report.values, report.timestamps)
    return legacy_fingerprint(report.file_name, report.values, report.data_points)


def has_fingerprint(
    reports: Iterable[Report],
    fingerprint: str,
    mode: FingerprintMode = DEFAULT_FINGERPRINT_MODE,
) -> bool:
    return any(report_fingerprint(report, mode) == fingerprint for report in reports)


def dedupe_reports(
    reports: Iterable[Report],
    mode: FingerprintMode = DEFAULT_FINGERPRINT_MODE,
) -> tuple[list[Report], int]:
    seen: set[str] = set()
    kept: list[Report] = []
    dropped = 0
    for report in reports:
        key = report_fingerprint(report, mode)
        if key in seen:
            dropped += 1
            LOGGER.debug("Dropping duplicate report %s (%s)", report.id, report.file_name)
            continue
        seen.add(key)
        kept.append(report)
    return kept, dropped
