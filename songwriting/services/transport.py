"""Metronome transport.

One ``Transport`` owns at most one pending timer. Beats are delivered through
``on_beat(total_count)``; the first beat of every bar is the accented downbeat.
Timers come from any object with ``call_later(delay, callback)`` returning a
handle with ``cancel()``, which an asyncio event loop already provides.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import Callable, Protocol

from songwriting.logging_utils import log_event
from songwriting.settings import clamp_tempo

logger = logging.getLogger(__name__)

ACCENT_FREQUENCY_HZ = 800.0
BEAT_FREQUENCY_HZ = 600.0
CLICK_DURATION_S = 0.1
STOPPED_BEAT = -1

BeatCallback = Callable[[int], None]
CompleteCallback = Callable[[], None]


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...


@dataclass(frozen=True)
class BeatPosition:
    count: int
    bar_index: int
    beat_in_bar: int
    is_downbeat: bool


@dataclass(frozen=True)
class ClickRequest:
    beat: int
    accent: bool
    frequency_hz: float
    duration_s: float = CLICK_DURATION_S


@dataclass
class TransportState:
    is_running: bool = False
    tempo: int = 120
    beats_per_bar: int = 4
    elapsed_beat_count: int = STOPPED_BEAT


def beat_position(count: int, beats_per_bar: int) -> BeatPosition:
    beat_in_bar = count % beats_per_bar
    return BeatPosition(
        count=count,
        bar_index=count // beats_per_bar,
        beat_in_bar=beat_in_bar,
        is_downbeat=beat_in_bar == 0,
    )


def click_for(position: BeatPosition) -> ClickRequest:
    accent = position.is_downbeat
    return ClickRequest(
        beat=position.count,
        accent=accent,
        frequency_hz=ACCENT_FREQUENCY_HZ if accent else BEAT_FREQUENCY_HZ,
    )


class Transport:
    def __init__(self, scheduler: Scheduler | None = None, click: Callable[[ClickRequest], None] | None = None) -> None:
        self._scheduler = scheduler
        self._click = click
        self._state = TransportState()
        self._active: Scheduler | None = None
        self._handle: TimerHandle | None = None
        self._generation = 0
        self._on_beat: BeatCallback | None = None
        self._on_complete: CompleteCallback | None = None

    @property
    def state(self) -> TransportState:
        return replace(self._state)

    @property
    def is_running(self) -> bool:
        return self._state.is_running

    @property
    def beat_duration(self) -> float:
        return 60.0 / self._state.tempo

    def start(
        self,
        tempo: float,
        beats_per_bar: int,
        on_beat: BeatCallback,
        on_complete: CompleteCallback | None = None,
    ) -> None:
        if self._state.is_running:
            self.stop()
        if beats_per_bar < 1:
            raise ValueError("beats_per_bar must be at least 1.")

        self._active = self._scheduler or asyncio.get_running_loop()
        self._generation += 1
        self._state = TransportState(
            is_running=True,
            tempo=clamp_tempo(tempo),
            beats_per_bar=beats_per_bar,
            elapsed_beat_count=0,
        )
        self._on_beat = on_beat
        self._on_complete = on_complete
        log_event(logger, "transport_started", tempo=self._state.tempo, beats_per_bar=beats_per_bar)

        generation = self._generation
        self._schedule(generation)
        self._emit(0)

    def stop(self) -> None:
        if not self._state.is_running:
            return
        if self._handle is not None:
            self._handle.cancel()
        self._handle = None
        self._generation += 1

        on_beat, on_complete = self._on_beat, self._on_complete
        beats = self._state.elapsed_beat_count + 1
        self._state = replace(self._state, is_running=False, elapsed_beat_count=STOPPED_BEAT)
        self._on_beat = None
        self._on_complete = None
        self._active = None
        log_event(logger, "transport_stopped", beats_played=beats)

        if on_complete is not None:
            on_complete()
        if on_beat is not None:
            on_beat(STOPPED_BEAT)

    def _schedule(self, generation: int) -> None:
        if self._active is None:
            return
        self._handle = self._active.call_later(self.beat_duration, lambda: self._tick(generation))

    def _tick(self, generation: int) -> None:
        # A tick queued before stop() or a restart belongs to an old run.
        if generation != self._generation or not self._state.is_running:
            return
        count = self._state.elapsed_beat_count + 1
        self._state.elapsed_beat_count = count
        self._schedule(generation)
        self._emit(count)

    def _emit(self, count: int) -> None:
        position = beat_position(count, self._state.beats_per_bar)
        if self._click is not None:
            try:
                self._click(click_for(position))
            except Exception:
                logger.exception("click_failed", extra={"event": "click_failed", "beat": count})
        if self._on_beat is not None:
            self._on_beat(count)
