"""Cancellable one-shot timers for the playback clock.

``AsyncioScheduler`` arms real timers on the running event loop.
``ManualScheduler`` keeps a virtual clock that only moves when ``advance`` is
called, which makes replay ticks deterministic in tests and lets headless
runs fast-forward without sleeping.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
import math
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Protocol


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(ABC):
    @abstractmethod
    def call_later(self, delay_s: float, callback: Callable[[], None]) -> TimerHandle:
        raise NotImplementedError


class AsyncioScheduler(Scheduler):
    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> TimerHandle:
        loop = self._loop if self._loop is not None else asyncio.get_running_loop()
        return loop.call_later(delay_s, callback)


class _ManualHandle:
    __slots__ = ("due", "seq", "callback", "cancelled")

    def __init__(self, due: float, seq: int, callback: Callable[[], None]) -> None:
        self.due = due
        self.seq = seq
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True

    def __lt__(self, other: _ManualHandle) -> bool:
        return (self.due, self.seq) < (other.due, other.seq)


class ManualScheduler(Scheduler):
    def __init__(self) -> None:
        self._now = 0.0
        self._queue: list[_ManualHandle] = []
        self._seq = itertools.count()

    @property
    def now(self) -> float:
        return self._now

    @property
    def pending(self) -> int:
        return sum(1 for h in self._queue if not h.cancelled)

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> TimerHandle:
        if not math.isfinite(delay_s) or delay_s < 0.0:
            raise ValueError("delay_s must be finite and non-negative")
        handle = _ManualHandle(self._now + delay_s, next(self._seq), callback)
        heapq.heappush(self._queue, handle)
        return handle

    def next_due(self) -> float | None:
        self._drop_cancelled()
        return self._queue[0].due if self._queue else None

    def advance(self, seconds: float) -> int:
        """Move virtual time forward, running every timer that falls due. Returns the count run."""
        if seconds < 0.0:
            raise ValueError("seconds must be non-negative")
        target = self._now + seconds
        fired = 0
        while True:
            self._drop_cancelled()
            if not self._queue or self._queue[0].due > target:
                break
            handle = heapq.heappop(self._queue)
            self._now = handle.due
            handle.callback()
            fired += 1
        self._now = target
        return fired

    def run_next(self) -> bool:
        """Jump to the next due timer and run it."""
        due = self.next_due()
        if due is None:
            return False
        self.advance(due - self._now)
        return True

    def _drop_cancelled(self) -> None:
        while self._queue and self._queue[0].cancelled:
            heapq.heappop(self._queue)
