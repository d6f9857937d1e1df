"""Deferred task queue for delayed single-record checks.

Jobs are coroutine factories scheduled against a clock. `run_due()` awaits
every job whose due time has passed; `run(stop_event)` polls it until stopped.
A failing job is logged and dropped; it never stops the queue.

Jobs pending at `shutdown()` are discarded. The records they would have
confirmed are picked up by the next sweep.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Protocol

from observability.logging_config import get_logger

logger = get_logger("deferred_tasks")

Job = Callable[[], Awaitable[None]]


class Clock(Protocol):
    def now(self) -> float: ...


class MonotonicClock:
    def now(self) -> float:
        return time.monotonic()


class ManualClock:
    """Clock that only moves when told to."""

    def __init__(self, start: float = 0.0):
        self._now = float(start)

    def now(self) -> float:
        return self._now

    def advance(self, seconds: float) -> float:
        self._now += float(seconds)
        return self._now


@dataclass(order=True)
class _Scheduled:
    due_at: float
    seq: int
    name: str = field(compare=False)
    job: Job = field(compare=False)


class DeferredTaskQueue:
    def __init__(self, *, clock: Clock | None = None, poll_interval_s: float = 1.0):
        self._clock = clock or MonotonicClock()
        self._poll_interval_s = poll_interval_s
        self._heap: list[_Scheduled] = []
        self._seq = itertools.count()
        self._closed = False

    @property
    def pending(self) -> int:
        return len(self._heap)

    def schedule(self, job: Job, delay_s: float, *, name: str = "job") -> bool:
        """Queue `job` to run `delay_s` seconds from now. Returns False once shut down."""
        if self._closed:
            logger.warning("Task queue is shut down; dropping job", extra={"job": name})
            return False
        due_at = self._clock.now() + max(0.0, float(delay_s))
        heapq.heappush(self._heap, _Scheduled(due_at, next(self._seq), name, job))
        return True

    def _pop_due(self) -> list[_Scheduled]:
        now = self._clock.now()
        due: list[_Scheduled] = []
        while self._heap and self._heap[0].due_at <= now:
            due.append(heapq.heappop(self._heap))
        return due

    async def run_due(self) -> int:
        """Run every job whose due time has passed, in due order. Returns the count run."""
        ran = 0
        for item in self._pop_due():
            try:
                await item.job()
            except Exception as exc:  # noqa: BLE001
                logger.error(
                    "Deferred job failed",
                    extra={"job": item.name, "error": str(exc), "error_type": type(exc).__name__},
                )
            ran += 1
        return ran

    async def run(self, stop_event: asyncio.Event) -> None:
        while not stop_event.is_set():
            await self.run_due()
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self._poll_interval_s)
            except asyncio.TimeoutError:
                continue
        self.shutdown()

    def shutdown(self) -> int:
        """Stop accepting jobs and drop the pending ones. Returns the number dropped."""
        dropped = len(self._heap)
        self._heap.clear()
        self._closed = True
        if dropped:
            logger.info("Dropped pending deferred jobs", extra={"dropped": dropped})
        return dropped


__all__ = ["Clock", "DeferredTaskQueue", "ManualClock", "MonotonicClock"]
