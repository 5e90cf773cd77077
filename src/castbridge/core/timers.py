"""
Timers — injectable clock and delayed-callback abstraction.

Debounced persistence and cache TTL checks both depend on time. Production
code uses the asyncio event loop; tests use ManualTimerFactory and advance
time explicitly, so nothing sleeps on the wall clock.

Usage:
    timers = AsyncioTimerFactory()
    handle = timers.call_later(0.3, flush)   # flush is an async callable
    handle.cancel()

    manual = ManualTimerFactory()
    manual.call_later(0.3, flush)
    await manual.advance(0.3)                # runs flush
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

Clock = Callable[[], float]
TimerCallback = Callable[[], Awaitable[None]]


def system_clock() -> float:
    """Wall-clock time in epoch seconds."""
    return time.time()


class TimerHandle(ABC):
    """A pending delayed callback."""

    @abstractmethod
    def cancel(self) -> None:
        """Cancel the callback if it has not started running."""


class TimerFactory(ABC):
    """Creates delayed callbacks."""

    @abstractmethod
    def call_later(self, delay: float, callback: TimerCallback) -> TimerHandle:
        """Run `callback` once after `delay` seconds."""


class _TaskTimer(TimerHandle):
    def __init__(self, delay: float, callback: TimerCallback) -> None:
        self._fired = False
        self._task = asyncio.get_running_loop().create_task(self._run(delay, callback))

    async def _run(self, delay: float, callback: TimerCallback) -> None:
        await asyncio.sleep(delay)
        # Past this point the callback runs to completion; cancel() is a no-op
        self._fired = True
        try:
            await callback()
        except Exception:
            logger.exception("Timer callback failed")

    def cancel(self) -> None:
        if not self._fired:
            self._task.cancel()


class AsyncioTimerFactory(TimerFactory):
    """Timers backed by the running asyncio event loop."""

    def call_later(self, delay: float, callback: TimerCallback) -> TimerHandle:
        return _TaskTimer(delay, callback)


@dataclass
class _ManualTimer(TimerHandle):
    due: float
    seq: int
    callback: TimerCallback
    cancelled: bool = False
    fired: bool = False

    def cancel(self) -> None:
        if not self.fired:
            self.cancelled = True


@dataclass
class ManualTimerFactory(TimerFactory):
    """Deterministic timers driven by advance(); also usable as a Clock."""

    now: float = 0.0
    _timers: list[_ManualTimer] = field(default_factory=list)
    _seq: int = 0

    def __call__(self) -> float:
        return self.now

    def call_later(self, delay: float, callback: TimerCallback) -> TimerHandle:
        self._seq += 1
        timer = _ManualTimer(due=self.now + delay, seq=self._seq, callback=callback)
        self._timers.append(timer)
        return timer

    @property
    def pending(self) -> int:
        """Number of timers that are neither fired nor cancelled."""
        return sum(1 for t in self._timers if not t.cancelled and not t.fired)

    async def advance(self, seconds: float) -> None:
        """Move time forward, running every timer that falls due in order."""
        target = self.now + seconds
        while True:
            due = [
                t
                for t in self._timers
                if not t.cancelled and not t.fired and t.due <= target
            ]
            if not due:
                break
            timer = min(due, key=lambda t: (t.due, t.seq))
            self.now = max(self.now, timer.due)
            timer.fired = True
            await timer.callback()
        self.now = target
        self._timers = [t for t in self._timers if not t.cancelled and not t.fired]
