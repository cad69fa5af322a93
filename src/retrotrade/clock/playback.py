from __future__ import annotations

import logging
import math
from collections.abc import Callable
from dataclasses import dataclass, replace
from enum import Enum

from retrotrade.errors import InvalidTransition

from .scheduler import Scheduler, TimerHandle

logger = logging.getLogger(__name__)

BASE_INTERVAL_S = 10.0
SPEED_PRESETS = (1.0, 2.0, 5.0)


class ClockStatus(str, Enum):
    IDLE = "IDLE"
    RUNNING = "RUNNING"
    PAUSED = "PAUSED"
    FINISHED = "FINISHED"


@dataclass(frozen=True, slots=True)
class ClockConfig:
    base_interval_s: float = BASE_INTERVAL_S
    speed: float = 1.0

    def __post_init__(self) -> None:
        if not math.isfinite(self.base_interval_s) or self.base_interval_s < 0.0:
            raise ValueError("base_interval_s must be finite and non-negative")
        _check_speed(self.speed)


@dataclass(frozen=True, slots=True)
class ClockState:
    status: ClockStatus
    cursor: int
    speed: float
    series_length: int

    @property
    def last_index(self) -> int:
        return self.series_length - 1

    @property
    def revealed_length(self) -> int:
        """Number of bars revealed so far (0 while idle)."""
        if self.status is ClockStatus.IDLE:
            return 0
        return self.cursor + 1


def _check_speed(multiplier: float) -> float:
    if not math.isfinite(multiplier) or multiplier <= 0.0:
        raise ValueError("speed multiplier must be finite and positive")
    return float(multiplier)


def tick_period_s(state: ClockState, base_interval_s: float = BASE_INTERVAL_S) -> float:
    return base_interval_s / state.speed


def idle(speed: float = 1.0) -> ClockState:
    return ClockState(
        status=ClockStatus.IDLE, cursor=0, speed=_check_speed(speed), series_length=0
    )


def load(state: ClockState, series_length: int) -> ClockState:
    """Attach a series; the clock always lands in PAUSED at the first bar."""
    if state.status is not ClockStatus.IDLE:
        raise InvalidTransition(f"cannot load a series while {state.status.value}")
    if series_length <= 0:
        raise ValueError("series_length must be positive")
    return replace(state, status=ClockStatus.PAUSED, cursor=0, series_length=series_length)


def play(state: ClockState) -> ClockState:
    if state.status is ClockStatus.RUNNING:
        return state
    if state.status is not ClockStatus.PAUSED:
        raise InvalidTransition(f"cannot play while {state.status.value}")
    return replace(state, status=ClockStatus.RUNNING)


def pause(state: ClockState) -> ClockState:
    if state.status is not ClockStatus.RUNNING:
        return state
    return replace(state, status=ClockStatus.PAUSED)


def tick(state: ClockState) -> ClockState:
    """Advance the cursor by one bar.

    The tick that lands on the last bar also finishes the clock, so an
    ``N``-bar series finishes after exactly ``N - 1`` ticks from cursor 0.
    """
    if state.status is not ClockStatus.RUNNING:
        return state
    if state.cursor >= state.last_index:
        return replace(state, status=ClockStatus.FINISHED)
    cursor = state.cursor + 1
    status = ClockStatus.FINISHED if cursor >= state.last_index else ClockStatus.RUNNING
    return replace(state, cursor=cursor, status=status)


def set_speed(state: ClockState, multiplier: float) -> ClockState:
    if state.status is ClockStatus.FINISHED:
        raise InvalidTransition("cannot change speed after the replay finished")
    return replace(state, speed=_check_speed(multiplier))


def seek(state: ClockState, index: int) -> ClockState:
    """Jump the cursor forward while paused. Landing on the last bar does not finish."""
    if state.status is not ClockStatus.PAUSED:
        raise InvalidTransition(f"cannot seek while {state.status.value}")
    if index < state.cursor:
        raise InvalidTransition("seek only moves forward through revealed history")
    return replace(state, cursor=min(index, state.last_index))


def reset(state: ClockState) -> ClockState:
    return idle(state.speed)


class PlaybackClock:
    """Drives ``ClockState`` with a scheduler.

    At most one timer is armed at a time. It is cancelled on pause, reset,
    finish and close, and when the tick listener raises.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        config: ClockConfig | None = None,
        *,
        on_tick: Callable[[ClockState], None] | None = None,
    ) -> None:
        self._scheduler = scheduler
        self._cfg = config if config is not None else ClockConfig()
        self._on_tick = on_tick
        self._state = idle(self._cfg.speed)
        self._handle: TimerHandle | None = None

    @property
    def state(self) -> ClockState:
        return self._state

    @property
    def config(self) -> ClockConfig:
        return self._cfg

    @property
    def armed(self) -> bool:
        return self._handle is not None

    def period_s(self) -> float:
        return tick_period_s(self._state, self._cfg.base_interval_s)

    def load(self, series_length: int) -> ClockState:
        self._state = load(self._state, series_length)
        return self._state

    def play(self) -> ClockState:
        was_running = self._state.status is ClockStatus.RUNNING
        self._state = play(self._state)
        if not was_running:
            self._arm()
            logger.debug(
                "clock running at %.2fx (%.3fs per bar)", self._state.speed, self.period_s()
            )
        return self._state

    def pause(self) -> ClockState:
        self._state = pause(self._state)
        if self._state.status is not ClockStatus.RUNNING:
            self._disarm()
        return self._state

    def set_speed(self, multiplier: float) -> ClockState:
        # An armed wait completes at the old period; the next one uses the new speed.
        self._state = set_speed(self._state, multiplier)
        return self._state

    def seek(self, index: int) -> ClockState:
        self._state = seek(self._state, index)
        return self._state

    def reset(self) -> ClockState:
        self._disarm()
        self._state = reset(self._state)
        return self._state

    def close(self) -> None:
        self._disarm()

    def __enter__(self) -> PlaybackClock:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _arm(self) -> None:
        self._disarm()
        self._handle = self._scheduler.call_later(self.period_s(), self._fire)

    def _disarm(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        if self._state.status is not ClockStatus.RUNNING:
            return
        self._state = tick(self._state)
        try:
            if self._on_tick is not None:
                self._on_tick(self._state)
        except Exception:
            logger.exception("tick listener failed at cursor %d; pausing", self._state.cursor)
            self._state = pause(self._state)
            raise
        if self._state.status is ClockStatus.RUNNING:
            self._arm()
        elif self._state.status is ClockStatus.FINISHED:
            logger.info("replay finished at cursor %d", self._state.cursor)
