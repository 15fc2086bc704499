"""Delayed-callback capability injected into the session controller.

Two implementations share the ``schedule``/``cancel`` surface:

- :class:`ManualScheduler` keeps a virtual clock. Tests and the console
  host advance it explicitly, so no wall-clock time ever passes.
- :class:`AsyncioScheduler` delegates to ``loop.call_later`` for hosts that
  run an asyncio event loop.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
from dataclasses import dataclass, field
from typing import Callable, Optional, Protocol

__all__ = [
    "AsyncioScheduler",
    "Callback",
    "ManualScheduler",
    "Scheduler",
    "TimerHandle",
]

Callback = Callable[[], None]


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def schedule(self, delay: float, callback: Callback) -> TimerHandle: ...

    def cancel(self, handle: TimerHandle) -> None: ...


@dataclass(order=True)
class _ManualTimer:
    due: float
    seq: int
    callback: Callback = field(compare=False)
    cancelled: bool = field(default=False, compare=False)

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Virtual-clock scheduler; callbacks fire only from :meth:`advance`."""

    def __init__(self) -> None:
        self._now = 0.0
        self._queue: list[_ManualTimer] = []
        self._seq = itertools.count()

    @property
    def now(self) -> float:
        return self._now

    @property
    def pending(self) -> int:
        return sum(1 for timer in self._queue if not timer.cancelled)

    def schedule(self, delay: float, callback: Callback) -> _ManualTimer:
        if delay < 0:
            raise ValueError("delay must be >= 0")
        timer = _ManualTimer(self._now + delay, next(self._seq), callback)
        heapq.heappush(self._queue, timer)
        return timer

    def cancel(self, handle: TimerHandle) -> None:
        handle.cancel()

    def advance(self, seconds: float) -> int:
        """Move the clock forward, firing due callbacks in order."""

        target = self._now + seconds
        fired = 0
        while self._queue and self._queue[0].due <= target:
            timer = heapq.heappop(self._queue)
            self._now = max(self._now, timer.due)
            if timer.cancelled:
                continue
            timer.callback()
            fired += 1
        self._now = target
        return fired

    def run_all(self) -> int:
        """Fire everything pending, including callbacks scheduled meanwhile."""

        fired = 0
        while self._queue:
            fired += self.advance(max(0.0, self._queue[0].due - self._now))
        return fired


class AsyncioScheduler:
    """Schedule callbacks on an asyncio event loop."""

    def __init__(
        self, loop: Optional[asyncio.AbstractEventLoop] = None
    ) -> None:
        self._loop = loop

    def _event_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def schedule(self, delay: float, callback: Callback) -> asyncio.TimerHandle:
        return self._event_loop().call_later(delay, callback)

    def cancel(self, handle: TimerHandle) -> None:
        handle.cancel()
