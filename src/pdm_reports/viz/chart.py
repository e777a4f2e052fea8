from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Sequence

import matplotlib.pyplot as plt
import numpy as np

from pdm_reports.report.models import Series

CHART_WIDTH = 600
CHART_HEIGHT = 150
DEFAULT_THRESHOLD_OFFSET = "85%"
DEFAULT_Y_TICKS = (65.0, 60.0, 55.0, 50.0, 45.0, 40.0, 35.0)
X_LABEL_FRACTIONS = (0.0, 0.2, 0.4, 0.6, 0.8)
Y_TICK_STEPS = 6


def _fmt(value: float) -> str:
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return "0" if text in ("", "-0") else text


def build_svg_path(
    values: Sequence[float],
    width: float = CHART_WIDTH,
    height: float = CHART_HEIGHT,
) -> str:
    """Linear ``M``/``L`` path over a ``width`` x ``height`` box, top = max."""
    if len(values) == 0:
        return ""
    array = np.asarray(values, dtype=float)
    low, high = float(array.min()), float(array.max())
    span = (high - low) or 1.0
    x_step = width / max(array.size - 1, 1)

    def y_of(value: float) -> float:
        return height - ((value - low) / span) * height

    commands = [f"M 0,{_fmt(y_of(array[0]))}"]
    for idx in range(1, array.size):
        commands.append(f"L {_fmt(idx * x_step)},{_fmt(y_of(array[idx]))}")
    return " ".join(commands)


def threshold_offset(values: Sequence[float], threshold: float | None) -> str:
    if len(values) == 0 or threshold is None or not math.isfinite(threshold):
        return DEFAULT_THRESHOLD_OFFSET
    low = min(min(values), threshold)
    high = max(max(values), threshold)
    span = (high - low) or 1.0
    return f"{_fmt(100 - ((threshold - low) / span) * 100)}%"


def axis_label_indices(length: int) -> list[int]:
    if length <= 0:
        return []
    picks = [math.floor(length * fraction) for fraction in X_LABEL_FRACTIONS] + [length - 1]
    return [min(idx, length - 1) for idx in picks]


def y_axis_ticks(values: Sequence[float]) -> list[float]:
    if len(values) == 0:
        return list(DEFAULT_Y_TICKS)
    high, low = max(values), min(values)
    step = (high - low) / Y_TICK_STEPS
    ticks = [high - idx * step for idx in range(Y_TICK_STEPS)] + [low]
    return [round(tick, 1) for tick in ticks]


@dataclass(frozen=True)
class ChartPayload:
    path: str
    predicted_path: str
    threshold_offset: str
    y_ticks: list[float] = field(default_factory=list)
    x_labels: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def build_chart_payload(series: Series, predicted: Sequence[float] = ()) -> ChartPayload:
    return ChartPayload(
        path=build_svg_path(series.values),
        predicted_path=build_svg_path(predicted),
        threshold_offset=threshold_offset(series.values, series.threshold),
        y_ticks=y_axis_ticks(series.values),
        x_labels=[series.timestamps[idx] for idx in axis_label_indices(len(series.timestamps))],
    )


def plot_series(
    series: Series,
    output_path: Path,
    *,
    title: str = "Readings",
    predicted: Sequence[float] = (),
) -> Path:
    plt.figure(figsize=(12, 4))
    positions = np.arange(len(series.values))
    if len(series.values):
        plt.plot(positions, series.values, color="#0071CE", linewidth=2.0, label="Current")
        ticks = axis_label_indices(len(series.timestamps))
        plt.xticks(ticks, [series.timestamps[idx] for idx in ticks])
    if len(predicted):
        plt.plot(
            np.arange(len(predicted)),
            predicted,
            color="#00D9C0",
            linewidth=2.0,
            linestyle=":",
            label="Predicted",
        )
    plt.axhline(
        series.threshold, color="#FF6B35", linewidth=1.5, linestyle="--", label="Threshold"
    )
    plt.title(title)
    plt.xlabel("Time")
    plt.ylabel("Value")
    plt.legend(loc="upper right")

    output_path.parent.mkdir(parents=True, exist_ok=True)
    plt.tight_layout()
    plt.savefig(output_path)
    plt.close()
    return output_path
