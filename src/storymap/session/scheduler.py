"""Scheduling - fire-and-forget coroutines and debounced writes.

The controller and synchronizer never await store calls themselves; they
hand coroutines to a ``Scheduler``. ``AsyncioScheduler`` runs them on the
event loop. ``ManualScheduler`` keeps a virtual clock so tests decide
exactly when timers fire and when spawned work runs.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
import logging
from collections.abc import Awaitable, Callable, Coroutine
from dataclasses import dataclass, field
from typing import Any, Protocol

logger = logging.getLogger(__name__)

CoroutineFactory = Callable[[], Coroutine[Any, Any, Any]]


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def now(self) -> float:
        """Current time in seconds on the scheduler's clock."""
        ...

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        """Run a coroutine without awaiting it."""
        ...

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        """Invoke ``callback`` after ``delay`` seconds."""
        ...


class AsyncioScheduler:
    """Scheduler bound to an asyncio event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now(self) -> float:
        return self.loop.time()

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = self.loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        return self.loop.call_later(delay, callback)

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Background task failed", exc_info=task.exception())

    async def drain(self) -> None:
        """Wait for every spawned task, including ones spawned meanwhile."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


@dataclass(order=True)
class _ManualTimer:
    due: float
    seq: int
    callback: Callable[[], None] = field(compare=False)
    cancelled: bool = field(default=False, compare=False)

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Deterministic scheduler with a virtual clock.

    Timers fire only inside ``advance``; spawned coroutines run only
    inside ``run_pending``, each to completion with ``asyncio.run``.
    """

    def __init__(self) -> None:
        self._time = 0.0
        self._timers: list[_ManualTimer] = []
        self._seq = itertools.count()
        self._spawned: list[Coroutine[Any, Any, Any]] = []
        self.results: list[Any] = []

    def now(self) -> float:
        return self._time

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        self._spawned.append(coro)

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        timer = _ManualTimer(self._time + max(delay, 0.0), next(self._seq), callback)
        heapq.heappush(self._timers, timer)
        return timer

    @property
    def pending_timers(self) -> int:
        return sum(1 for t in self._timers if not t.cancelled)

    @property
    def pending_tasks(self) -> int:
        return len(self._spawned)

    def advance(self, seconds: float) -> None:
        """Move the clock forward, firing due timers in order."""
        target = self._time + seconds
        while self._timers and self._timers[0].due <= target:
            timer = heapq.heappop(self._timers)
            if timer.cancelled:
                continue
            self._time = timer.due
            timer.callback()
        self._time = target

    def run_pending(self) -> list[Any]:
        """Run spawned coroutines (and any they spawn) to completion."""
        finished = []
        while self._spawned:
            coro = self._spawned.pop(0)
            finished.append(asyncio.run(_as_coroutine(coro)))
        self.results.extend(finished)
        return finished

    def settle(self, seconds: float = 0.0) -> list[Any]:
        """Advance the clock, then run everything that was spawned."""
        self.advance(seconds)
        return self.run_pending()

    def discard_pending(self) -> None:
        """Drop spawned work without running it."""
        for coro in self._spawned:
            coro.close()
        self._spawned.clear()


async def _as_coroutine(awaitable: Awaitable[Any]) -> Any:
    return await awaitable


class Debouncer:
    """Keyed, cancellable quiet-period timers.

    Scheduling a key again restarts its timer; when the timer finally
    fires the latest factory is spawned once.
    """

    def __init__(self, scheduler: Scheduler, quiet_period: float = 0.5) -> None:
        self.scheduler = scheduler
        self.quiet_period = quiet_period
        self._handles: dict[str, TimerHandle] = {}
        self._factories: dict[str, CoroutineFactory] = {}

    def schedule(self, key: str, factory: CoroutineFactory) -> None:
        handle = self._handles.pop(key, None)
        if handle is not None:
            handle.cancel()
        self._factories[key] = factory
        self._handles[key] = self.scheduler.call_later(self.quiet_period, lambda: self._fire(key))

    def _fire(self, key: str) -> None:
        self._handles.pop(key, None)
        factory = self._factories.pop(key, None)
        if factory is not None:
            self.scheduler.spawn(factory())

    def is_pending(self, key: str) -> bool:
        return key in self._handles

    def cancel(self, key: str) -> None:
        handle = self._handles.pop(key, None)
        self._factories.pop(key, None)
        if handle is not None:
            handle.cancel()

    def cancel_all(self) -> None:
        for key in list(self._handles):
            self.cancel(key)
