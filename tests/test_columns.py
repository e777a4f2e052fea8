from __future__ import annotations

from pdm_reports.config import ColumnsConfig
from pdm_reports.io.columns import resolve_columns


def test_resolve_columns_matches_canonical_headers_case_insensitively() -> None:
    resolved = resolve_columns(
        ["Timestamp", "CURRENT", "predicted", " Threshold "], ColumnsConfig()
    )

    assert resolved.time == "Timestamp"
    assert resolved.value == "CURRENT"
    assert resolved.predicted == "predicted"
    assert resolved.threshold == " Threshold "


def test_resolve_columns_falls_back_to_substring_matches() -> None:
    resolved = resolve_columns(["Date/Time", "Temperature (C)"], ColumnsConfig())

    assert resolved.time == "Date/Time"
    assert resolved.value == "Temperature (C)"
    assert resolved.predicted is None
    assert resolved.threshold is None


def test_exact_matches_win_over_substring_matches_and_headers_are_claimed_once() -> None:
    resolved = resolve_columns(["Time", "Predicted Value", "Value"], ColumnsConfig())

    assert resolved.time == "Time"
    assert resolved.value == "Value"
    assert resolved.predicted == "Predicted Value"


def test_candidate_order_decides_between_substring_matches() -> None:
    resolved = resolve_columns(["Reading Time", "Timestamp Local", "Temp"], ColumnsConfig())

    # "timestamp" is the first time candidate, so it beats the plain "time" match.
    assert resolved.time == "Timestamp Local"
    assert resolved.value == "Temp"


def test_resolve_columns_honours_custom_policy() -> None:
    policy = ColumnsConfig(time=["recorded"], value=["reading"])

    resolved = resolve_columns(["Recorded At", "Sensor Reading", "Current"], policy)

    assert resolved.time == "Recorded At"
    assert resolved.value == "Sensor Reading"


def test_resolve_columns_returns_empty_mapping_without_matches() -> None:
    resolved = resolve_columns([0, "notes"], ColumnsConfig())

    assert resolved.time is None
    assert resolved.value is None
