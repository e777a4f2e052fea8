from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from pdm_reports.config import PlaybackConfig
from pdm_reports.report.models import Series
from pdm_reports.stats import Reading, classify_reading

LOGGER = logging.getLogger(__name__)


class PlaybackState(str, Enum):
    idle = "idle"
    playing = "playing"
    fallback = "fallback"


@dataclass
class ElapsedClock:
    hours: int = 0
    minutes: int = 0
    seconds: int = 0

    def advance(self) -> None:
        self.seconds += 1
        if self.seconds >= 60:
            self.seconds = 0
            self.minutes += 1
        if self.minutes >= 60:
            self.minutes = 0
            self.hours += 1

    def reset(self) -> None:
        self.hours = self.minutes = self.seconds = 0

    @property
    def total_seconds(self) -> int:
        return self.hours * 3600 + self.minutes * 60 + self.seconds

    def label(self) -> str:
        return f"{self.minutes:02d}:{self.seconds:02d}"


@dataclass(frozen=True)
class PlaybackSnapshot:
    state: PlaybackState
    cursor: int
    series_length: int
    current_value: float
    reading: Reading
    elapsed_seconds: int
    elapsed_label: str

    def status_line(self) -> str:
        if self.state is PlaybackState.playing:
            progress = f"Playing {self.cursor}/{self.series_length}"
        else:
            progress = self.state.value.capitalize()
        return (
            f"{progress} | {self.current_value:.1f} | {self.reading} | {self.elapsed_label}"
        )


class PlaybackDriver:
    """Looping replay of a loaded series, one tick per ``tick_seconds``.

    States: ``idle`` before any series, ``playing`` while a non-empty series is
    loaded, ``fallback`` after the series is explicitly cleared. Without a series
    each tick decays the current value towards ``decay_floor``. The elapsed clock
    advances on every tick regardless of state. Once ``stop``/``close`` runs, ticks
    have no effect.
    """

    def __init__(
        self,
        config: PlaybackConfig | None = None,
        *,
        on_tick: Callable[[PlaybackSnapshot], None] | None = None,
    ) -> None:
        self.config = config or PlaybackConfig()
        self.on_tick = on_tick
        self.state = PlaybackState.idle
        self.series = Series()
        self.cursor = 0
        self.current_value = float(self.config.initial_value)
        self.is_playing = False
        self.clock = ElapsedClock()
        self._alive = True
        self._task: asyncio.Task[None] | None = None

    @property
    def alive(self) -> bool:
        return self._alive

    def snapshot(self) -> PlaybackSnapshot:
        return PlaybackSnapshot(
            state=self.state,
            cursor=self.cursor,
            series_length=len(self.series),
            current_value=self.current_value,
            reading=classify_reading(self.current_value, self.series.threshold),
            elapsed_seconds=self.clock.total_seconds,
            elapsed_label=self.clock.label(),
        )

    def apply_series(self, series: Series) -> None:
        if not self._alive:
            return
        if series.is_empty:
            self.clear_series()
            return
        self.series = series
        self.cursor = 0
        self.current_value = float(series.values[0])
        self.is_playing = True
        self.clock.reset()
        self.state = PlaybackState.playing
        LOGGER.info("Playback started over %s values", len(series))

    def clear_series(self) -> None:
        if not self._alive:
            return
        threshold = self.series.threshold
        self.series = Series(threshold=threshold)
        self.cursor = 0
        self.is_playing = False
        self.state = PlaybackState.fallback

    def tick(self) -> PlaybackSnapshot:
        if not self._alive:
            return self.snapshot()

        values = self.series.values
        if self.is_playing and values:
            self.current_value = float(values[self.cursor])
            self.cursor += 1
            if self.cursor >= len(values):
                self.cursor = 0
        else:
            decayed = round(self.current_value - self.config.decay_step, 2)
            self.current_value = max(self.config.decay_floor, decayed)

        self.clock.advance()
        return self.snapshot()

    async def run(self, ticks: int | None = None) -> None:
        completed = 0
        while self._alive and (ticks is None or completed < ticks):
            await asyncio.sleep(self.config.tick_seconds)
            if not self._alive:
                break
            snapshot = self.tick()
            completed += 1
            if self.on_tick is not None:
                self.on_tick(snapshot)

    def start(self, ticks: int | None = None) -> asyncio.Task[None]:
        if self._task is not None and not self._task.done():
            return self._task
        self._task = asyncio.get_running_loop().create_task(self.run(ticks))
        return self._task

    def close(self) -> None:
        self._alive = False
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def stop(self) -> None:
        self.close()
        if self._task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
        self._task = None
