from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Literal, Sequence

import numpy as np

Trend = Literal["increasing", "decreasing", "stable"]
Reading = Literal["normal", "notify"]


@dataclass(frozen=True)
class TrendSignal:
    direction: Trend
    difference: float
    first_half_mean: float | None
    second_half_mean: float | None


@dataclass(frozen=True)
class SeriesSummary:
    """Descriptive statistics for one series.

    ``minimum``, ``maximum``, ``average`` and ``variation`` are ``None`` for an empty
    series; counts and percentages are zero.
    """

    data_points: int
    threshold: float
    minimum: float | None
    maximum: float | None
    average: float | None
    variation: float | None
    normal_count: int
    notify_count: int
    normal_percent: float
    notify_percent: float
    trend: TrendSignal

    @property
    def is_empty(self) -> bool:
        return self.data_points == 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _as_array(values: Sequence[float] | np.ndarray) -> np.ndarray:
    return np.asarray(values, dtype=float).reshape(-1)


def classify_reading(value: float, threshold: float) -> Reading:
    return "normal" if value >= threshold else "notify"


def percentage(count: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return round(count / total * 100.0, 1)


def trend_signal(values: Sequence[float] | np.ndarray) -> TrendSignal:
    """Compare the mean of the first half against the second half.

    The split is at ``len // 2``; an odd middle element belongs to the second half.
    """
    array = _as_array(values)
    midpoint = array.size // 2
    first, second = array[:midpoint], array[midpoint:]
    if first.size == 0 or second.size == 0:
        return TrendSignal(
            direction="stable",
            difference=0.0,
            first_half_mean=None,
            second_half_mean=float(second.mean()) if second.size else None,
        )

    first_mean = float(first.mean())
    second_mean = float(second.mean())
    delta = second_mean - first_mean
    if delta > 0:
        direction: Trend = "increasing"
    elif delta < 0:
        direction = "decreasing"
    else:
        direction = "stable"
    return TrendSignal(
        direction=direction,
        difference=round(delta, 2),
        first_half_mean=first_mean,
        second_half_mean=second_mean,
    )


def summarize_series(values: Sequence[float] | np.ndarray, threshold: float) -> SeriesSummary:
    array = _as_array(values)
    total = int(array.size)
    normal_count = int(np.count_nonzero(array >= threshold))
    notify_count = total - normal_count

    if total == 0:
        minimum = maximum = average = variation = None
    else:
        minimum = float(array.min())
        maximum = float(array.max())
        # Clamp guards float summation drift so min <= average <= max holds.
        average = min(max(float(array.mean()), minimum), maximum)
        variation = maximum - minimum

    return SeriesSummary(
        data_points=total,
        threshold=float(threshold),
        minimum=minimum,
        maximum=maximum,
        average=average,
        variation=variation,
        normal_count=normal_count,
        notify_count=notify_count,
        normal_percent=percentage(normal_count, total),
        notify_percent=percentage(notify_count, total),
        trend=trend_signal(array),
    )
