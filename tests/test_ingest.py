from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from pathlib import Path

from pdm_reports.config import AppConfig
from pdm_reports.ingest import apply_upload, ingest_path_async, ingest_upload, preview_upload
from pdm_reports.playback import PlaybackDriver, PlaybackState
from pdm_reports.report.models import Parameter
from pdm_reports.report.store import InMemoryKeyValueStore, ReportStore

CSV = b"Timestamp,Current\n00:00,40.0\n00:01,38.0\n00:02,36.0\n"


def _store() -> ReportStore:
    store = ReportStore(InMemoryKeyValueStore())
    store.load()
    return store


def test_first_upload_creates_report_and_second_is_duplicate() -> None:
    store = _store()
    config = AppConfig()

    first = ingest_upload(CSV, "a.csv", Parameter.Temperature, store, config)
    second = ingest_upload(CSV, "a.csv", Parameter.Temperature, store, config)

    assert first.status == "created"
    assert first.ok
    assert first.report is not None
    assert first.report.data_points == 3
    assert second.status == "duplicate"
    assert second.ok
    assert second.report is None
    assert len(store.list(Parameter.Temperature)) == 1


def test_preview_reports_summary_without_persisting() -> None:
    store = _store()

    preview = preview_upload(CSV, "a.csv", "temperature", AppConfig())

    assert store.list(Parameter.Temperature) == []
    assert preview.to_dict() == {
        "fileName": "a.csv",
        "parameter": "Temperature",
        "dataPoints": 3,
        "min": 36.0,
        "max": 40.0,
        "avg": 38.0,
        "threshold": 31.7,
        "timeRange": "00:00 - 00:02",
    }


def test_apply_upload_uses_given_name_and_timestamp() -> None:
    store = _store()
    preview = preview_upload(CSV, "a.csv", Parameter.Temperature, AppConfig())
    moment = datetime(2025, 6, 4, 10, 0, tzinfo=timezone.utc)

    outcome = apply_upload(preview, store, name="Line 3 oven", uploaded_at=moment)

    report = store.latest(Parameter.Temperature)
    assert outcome.report == report
    assert report.name == "Line 3 oven"
    assert report.upload_timestamp == "2025-06-04T10:00:00+00:00"
    assert outcome.message == "Saved Line 3 oven with 3 data points."


def test_unsupported_extension_is_reported_as_format_error() -> None:
    store = _store()

    outcome = ingest_upload(
        b"Timestamp,Current\n00:00,1\n", "a.txt", "Temperature", store, AppConfig()
    )

    assert outcome.status == "format_error"
    assert not outcome.ok
    assert "Unsupported file format" in outcome.message
    assert store.list(Parameter.Temperature) == []


def test_unparseable_content_is_reported_as_parse_error() -> None:
    outcome = ingest_upload(b"not a workbook", "a.xlsx", "Temperature", _store(), AppConfig())

    assert outcome.status == "parse_error"
    assert outcome.preview is None


def test_upload_without_rows_stores_empty_report() -> None:
    store = _store()

    outcome = ingest_upload(b"Timestamp,Current\n", "empty.csv", "Temperature", store, AppConfig())

    assert outcome.status == "created"
    assert outcome.preview.summary.is_empty
    assert outcome.preview.time_range == "N/A"
    assert store.latest("Temperature").data_points == 0


def test_configured_parameter_threshold_is_used_without_threshold_column() -> None:
    store = _store()
    config = AppConfig.model_validate({"thresholds": {"Pressure": 2.5}})

    outcome = ingest_upload(
        b"Timestamp,Value\n00:00,2.4\n00:01,2.7\n", "p.csv", Parameter.Pressure, store, config
    )

    assert outcome.preview.summary.threshold == 2.5
    assert outcome.preview.summary.notify_count == 1
    assert store.latest(Parameter.Pressure).threshold == 2.5


def test_threshold_column_wins_over_configured_threshold() -> None:
    config = AppConfig.model_validate({"thresholds": {"Temperature": 35.0}})
    data = b"Timestamp,Current,Threshold\n00:00,40,33\n"

    preview = preview_upload(data, "t.csv", Parameter.Temperature, config)

    assert preview.summary.threshold == 33.0


def test_player_receives_series_for_created_and_duplicate_uploads() -> None:
    store = _store()
    player = PlaybackDriver()

    ingest_upload(CSV, "a.csv", Parameter.Temperature, store, AppConfig(), player=player)
    player.tick()
    duplicate = ingest_upload(
        CSV, "a.csv", Parameter.Temperature, store, AppConfig(), player=player
    )

    assert duplicate.status == "duplicate"
    assert player.state is PlaybackState.playing
    assert player.series.values == (40.0, 38.0, 36.0)
    assert player.cursor == 0


def test_ingest_path_async_persists_upload(tmp_path: Path) -> None:
    path = tmp_path / "a.csv"
    path.write_bytes(CSV)
    store = _store()

    outcome = asyncio.run(ingest_path_async(path, "Temperature", store, AppConfig()))

    assert outcome.status == "created"
    assert store.latest(Parameter.Temperature).file_name == "a.csv"


def test_ingest_path_async_reports_format_error(tmp_path: Path) -> None:
    path = tmp_path / "a.pdf"
    path.write_bytes(b"%PDF")

    outcome = asyncio.run(ingest_path_async(path, "Temperature", _store(), AppConfig()))

    assert outcome.status == "format_error"
