from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field

DEFAULT_THRESHOLD = 31.7
SUPPORTED_EXTENSIONS = [".csv", ".xlsx", ".xls"]


class ColumnsConfig(BaseModel):
    """Ordered candidate header fragments per semantic column, matched case-insensitively."""

    time: list[str] = Field(default_factory=lambda: ["timestamp", "date", "time"])
    value: list[str] = Field(default_factory=lambda: ["current", "value", "temp"])
    predicted: list[str] = Field(default_factory=lambda: ["predicted"])
    threshold: list[str] = Field(default_factory=lambda: ["threshold"])


class ParserConfig(BaseModel):
    default_threshold: float = DEFAULT_THRESHOLD
    columns: ColumnsConfig = Field(default_factory=ColumnsConfig)
    supported_extensions: list[str] = Field(
        default_factory=lambda: list(SUPPORTED_EXTENSIONS)
    )


class ThresholdsConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    Temperature: float | None = None
    Pressure: float | None = None
    Humidity: float | None = None
    Vibration: float | None = None

    def for_parameter(self, parameter: str) -> float | None:
        return getattr(self, str(getattr(parameter, "value", parameter)), None)


class StoreConfig(BaseModel):
    directory: str = "state"
    key: str = "predictive_reports"


class FingerprintConfig(BaseModel):
    mode: Literal["legacy", "content_sha256"] = "legacy"


class PlaybackConfig(BaseModel):
    tick_seconds: float = Field(default=1.0, gt=0.0)
    decay_step: float = Field(default=0.02, ge=0.0)
    decay_floor: float = 35.0
    initial_value: float = 44.5


class InsightsConfig(BaseModel):
    api_key: str | None = None
    endpoint: str = (
        "https://generativelanguage.googleapis.com/v1/models/gemini-pro:generateContent"
    )
    timeout_seconds: float = Field(default=30.0, gt=0.0)


class LoggingConfig(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    file: str | None = None


class AppConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    parser: ParserConfig = Field(default_factory=ParserConfig)
    thresholds: ThresholdsConfig = Field(default_factory=ThresholdsConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    fingerprint: FingerprintConfig = Field(default_factory=FingerprintConfig)
    playback: PlaybackConfig = Field(default_factory=PlaybackConfig)
    insights: InsightsConfig = Field(default_factory=InsightsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


DEFAULT_CONFIG_PATH = Path("configs/default.yaml")


def _resolve_optional_path(path_value: str | None, base_dir: Path) -> str | None:
    if not path_value:
        return None
    candidate = Path(path_value)
    if candidate.is_absolute():
        return str(candidate)
    return str((base_dir / candidate).resolve())


def load_config(path: Path) -> AppConfig:
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}

    config = AppConfig.model_validate(data)
    base_dir = path.resolve().parent

    config.store.directory = (
        _resolve_optional_path(config.store.directory, base_dir) or config.store.directory
    )
    config.logging.file = _resolve_optional_path(config.logging.file, base_dir)
    config.insights.api_key = (
        config.insights.api_key
        or os.getenv("PDM_REPORTS_INSIGHTS_API_KEY")
        or os.getenv("GEMINI_API_KEY")
    )
    return config
