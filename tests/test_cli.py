from __future__ import annotations

import json
from pathlib import Path

import yaml
from typer.testing import CliRunner

from pdm_reports.cli import app

CSV = "Timestamp,Current\n00:00,40.0\n00:01,38.0\n00:02,36.0\n"


def _write_config(tmp_path: Path, **sections) -> Path:
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        yaml.safe_dump({"store": {"directory": "state"}, **sections}), encoding="utf-8"
    )
    return config_path


def _write_upload(tmp_path: Path, name: str = "a.csv", text: str = CSV) -> Path:
    path = tmp_path / name
    path.write_text(text, encoding="utf-8")
    return path


def _stored(tmp_path: Path) -> dict:
    return json.loads((tmp_path / "state" / "predictive_reports.json").read_text(encoding="utf-8"))


def test_cli_help() -> None:
    runner = CliRunner()
    result = runner.invoke(app, ["--help"])

    assert result.exit_code == 0
    for command in ("upload", "list", "delete", "summary", "chart", "play", "insights"):
        assert command in result.stdout


def test_upload_then_duplicate_upload(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path)
    upload_path = _write_upload(tmp_path)
    runner = CliRunner()
    args = ["upload", "--file", str(upload_path), "--config", str(config_path)]

    first = runner.invoke(app, args + ["--name", "Oven A"])
    second = runner.invoke(app, args)

    assert first.exit_code == 0
    assert "Saved Oven A with 3 data points." in first.stdout
    assert "- trend: decreasing (-3.00)" in first.stdout
    assert second.exit_code == 0
    assert "already stored" in second.stdout
    assert len(_stored(tmp_path)["Temperature"]) == 1


def test_upload_with_unsupported_extension_fails(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path)
    upload_path = _write_upload(tmp_path, "a.txt")

    result = CliRunner().invoke(
        app, ["upload", "--file", str(upload_path), "--config", str(config_path)]
    )

    assert result.exit_code == 1
    assert _stored(tmp_path)["Temperature"] == []


def test_list_summary_and_delete(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path)
    upload_path = _write_upload(tmp_path)
    runner = CliRunner()
    runner.invoke(
        app,
        [
            "upload",
            "--file",
            str(upload_path),
            "--parameter",
            "Pressure",
            "--config",
            str(config_path),
        ],
    )
    report_id = _stored(tmp_path)["Pressure"][0]["id"]

    listed = runner.invoke(app, ["list", "--parameter", "Pressure", "--config", str(config_path)])
    summary = runner.invoke(
        app, ["summary", "--parameter", "Pressure", "--config", str(config_path)]
    )
    missing = runner.invoke(
        app, ["delete", "--id", "1", "--parameter", "Pressure", "--config", str(config_path)]
    )
    deleted = runner.invoke(
        app,
        ["delete", "--id", str(report_id), "--parameter", "Pressure", "--config", str(config_path)],
    )

    assert listed.exit_code == 0
    assert f"{report_id}\t" in listed.stdout
    assert "a.csv\t3 points" in listed.stdout
    assert summary.exit_code == 0
    assert "- min: 36.00" in summary.stdout
    assert "- normal: 3 (100.0%)" in summary.stdout
    assert "unchanged" in missing.stdout
    assert f"Deleted report {report_id}" in deleted.stdout
    assert _stored(tmp_path)["Pressure"] == []


def test_summary_without_reports_is_a_usage_error(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path)

    result = CliRunner().invoke(app, ["summary", "--config", str(config_path)])

    assert result.exit_code != 0


def test_chart_writes_png(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path)
    upload_path = _write_upload(tmp_path)
    runner = CliRunner()
    runner.invoke(app, ["upload", "--file", str(upload_path), "--config", str(config_path)])
    out_path = tmp_path / "out" / "chart.png"

    result = runner.invoke(
        app, ["chart", "--out", str(out_path), "--config", str(config_path)]
    )

    assert result.exit_code == 0
    assert out_path.exists()


def test_play_prints_one_line_per_tick(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path)
    upload_path = _write_upload(tmp_path)
    runner = CliRunner()
    runner.invoke(app, ["upload", "--file", str(upload_path), "--config", str(config_path)])

    result = runner.invoke(
        app,
        ["play", "--ticks", "4", "--tick-seconds", "0.001", "--config", str(config_path)],
    )

    assert result.exit_code == 0
    lines = [line for line in result.stdout.splitlines() if line.startswith("Playing")]
    assert lines == [
        "Playing 1/3 | 40.0 | normal | 00:01",
        "Playing 2/3 | 38.0 | normal | 00:02",
        "Playing 0/3 | 36.0 | normal | 00:03",
        "Playing 1/3 | 40.0 | normal | 00:04",
    ]


def test_play_without_reports_runs_fallback(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path)

    result = CliRunner().invoke(
        app, ["play", "--ticks", "2", "--tick-seconds", "0.001", "--config", str(config_path)]
    )

    assert result.exit_code == 0
    assert "fallback simulation" in result.stdout
    assert "Idle | 44.5 | normal | 00:01" in result.stdout


def test_insights_without_api_key_prints_fallback(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.delenv("PDM_REPORTS_INSIGHTS_API_KEY", raising=False)
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    config_path = _write_config(tmp_path)

    result = CliRunner().invoke(app, ["insights", "--config", str(config_path)])

    assert result.exit_code == 0
    assert "- Insight API key is not configured on the server." in result.stdout


def test_play_rejects_non_positive_tick_seconds(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path)

    result = CliRunner().invoke(
        app, ["play", "--ticks", "1", "--tick-seconds", "0", "--config", str(config_path)]
    )

    assert result.exit_code != 0
    assert "Idle" not in result.stdout


def test_upload_chart_includes_predicted_values(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path)
    upload_path = _write_upload(
        tmp_path,
        text="Timestamp,Current,Predicted\n00:00,40.0,39.5\n00:01,38.0,37.5\n",
    )
    chart_path = tmp_path / "charts" / "upload.png"

    result = CliRunner().invoke(
        app,
        [
            "upload",
            "--file",
            str(upload_path),
            "--chart",
            str(chart_path),
            "--config",
            str(config_path),
        ],
    )

    assert result.exit_code == 0
    assert "Chart written to:" in result.stdout
    assert chart_path.read_bytes()[:8] == b"\x89PNG\r\n\x1a\n"


def test_content_fingerprint_mode_from_config_reaches_the_store(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path, fingerprint={"mode": "content_sha256"})
    runner = CliRunner()
    upload_path = tmp_path / "a.csv"
    for tail in ("30.0", "45.0"):
        upload_path.write_text(CSV + f"00:03,{tail}\n", encoding="utf-8")
        result = runner.invoke(
            app, ["upload", "--file", str(upload_path), "--config", str(config_path)]
        )
        assert result.exit_code == 0

    assert len(_stored(tmp_path)["Temperature"]) == 2
