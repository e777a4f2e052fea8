from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from pdm_reports.config import ColumnsConfig

# Resolution order: earlier roles claim a header first.
ROLES: tuple[str, ...] = ("time", "value", "predicted", "threshold")


@dataclass(frozen=True)
class ResolvedColumns:
    time: str | None = None
    value: str | None = None
    predicted: str | None = None
    threshold: str | None = None


def _candidates_for(policy: ColumnsConfig, role: str) -> list[str]:
    return [candidate.strip().lower() for candidate in getattr(policy, role) if candidate.strip()]


def resolve_columns(headers: Iterable[object], policy: ColumnsConfig) -> ResolvedColumns:
    """Map source headers onto semantic roles.

    Exact (case-insensitive) header matches are resolved for every role before any
    substring match, so a ``Predicted`` column is never taken as the value axis just
    because a ``Predicted Value`` header contains ``value``. A header is claimed by at
    most one role.
    """
    originals = [str(header) for header in headers]
    lowered = [header.strip().lower() for header in originals]
    claimed: set[int] = set()
    resolved: dict[str, str] = {}

    for role in ROLES:
        for candidate in _candidates_for(policy, role):
            match = next(
                (
                    idx
                    for idx, header in enumerate(lowered)
                    if idx not in claimed and header == candidate
                ),
                None,
            )
            if match is not None:
                resolved[role] = originals[match]
                claimed.add(match)
                break

    for role in ROLES:
        if role in resolved:
            continue
        for candidate in _candidates_for(policy, role):
            match = next(
                (
                    idx
                    for idx, header in enumerate(lowered)
                    if idx not in claimed and candidate in header
                ),
                None,
            )
            if match is not None:
                resolved[role] = originals[match]
                claimed.add(match)
                break

    return ResolvedColumns(**resolved)
