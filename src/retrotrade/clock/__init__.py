"""Playback clock: replay cursor state machine and its timers."""

from .playback import (
    BASE_INTERVAL_S,
    SPEED_PRESETS,
    ClockConfig,
    ClockState,
    ClockStatus,
    PlaybackClock,
)
from .scheduler import AsyncioScheduler, ManualScheduler, Scheduler, TimerHandle

__all__ = [
    "BASE_INTERVAL_S",
    "SPEED_PRESETS",
    "AsyncioScheduler",
    "ClockConfig",
    "ClockState",
    "ClockStatus",
    "ManualScheduler",
    "PlaybackClock",
    "Scheduler",
    "TimerHandle",
]
