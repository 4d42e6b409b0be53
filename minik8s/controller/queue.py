"""Keyed, deduplicating work queue with per-key backoff.

A key is queued at most once, and a key being processed is never handed
to a second consumer. Enqueuing a key that is in flight marks it dirty;
it goes back on the queue when the consumer calls :meth:`done`.
"""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Hashable
from typing import Protocol

from minik8s.core.exceptions import QueueShutDownError


class WorkQueue[K: Hashable](Protocol):
    def enqueue(self, key: K) -> None: ...

    def enqueue_after(self, key: K, delay: float) -> None: ...

    def enqueue_rate_limited(self, key: K) -> None: ...

    def forget(self, key: K) -> None: ...

    async def dequeue(self) -> K: ...

    def done(self, key: K) -> None: ...

    def shutdown(self) -> None: ...

    def __len__(self) -> int: ...


class KeyedWorkQueue[K: Hashable]:
    def __init__(self, *, backoff_base: float = 1.0, backoff_max: float = 300.0) -> None:
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self._queue: deque[K] = deque()
        self._dirty: set[K] = set()
        self._processing: set[K] = set()
        self._failures: dict[K, int] = {}
        self._timers: dict[K, asyncio.TimerHandle] = {}
        self._waiters: deque[asyncio.Future[None]] = deque()
        self._shut_down = False

    def __len__(self) -> int:
        return len(self._queue)

    @property
    def shutting_down(self) -> bool:
        return self._shut_down

    def enqueue(self, key: K) -> None:
        if self._shut_down or key in self._dirty:
            return
        self._dirty.add(key)
        if key in self._processing:
            return
        self._queue.append(key)
        self._wake()

    def enqueue_after(self, key: K, delay: float) -> None:
        """Enqueue ``key`` once ``delay`` seconds have passed.

        Only the earliest pending deadline per key is kept.
        """
        if self._shut_down:
            return
        if delay <= 0:
            self.enqueue(key)
            return
        loop = asyncio.get_running_loop()
        when = loop.time() + delay
        if (pending := self._timers.get(key)) is not None:
            if pending.when() <= when:
                return
            pending.cancel()
        self._timers[key] = loop.call_at(when, self._fire, key)

    def enqueue_rate_limited(self, key: K) -> None:
        failures = self._failures.get(key, 0)
        self._failures[key] = failures + 1
        self.enqueue_after(key, self.backoff(failures))

    def backoff(self, failures: int) -> float:
        return min(self.backoff_base * 2 ** failures, self.backoff_max)

    def forget(self, key: K) -> None:
        self._failures.pop(key, None)

    def requeues(self, key: K) -> int:
        return self._failures.get(key, 0)

    async def dequeue(self) -> K:
        while True:
            if self._shut_down:
                raise QueueShutDownError("work queue is shut down")
            if self._queue:
                break
            waiter = asyncio.get_running_loop().create_future()
            self._waiters.append(waiter)
            try:
                await waiter
            except asyncio.CancelledError:
                if self._queue:
                    self._wake()
                raise
            finally:
                if waiter in self._waiters:
                    self._waiters.remove(waiter)

        key = self._queue.popleft()
        self._dirty.discard(key)
        self._processing.add(key)
        return key

    def done(self, key: K) -> None:
        self._processing.discard(key)
        if key in self._dirty and not self._shut_down:
            self._queue.append(key)
            self._wake()

    def shutdown(self) -> None:
        self._shut_down = True
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(None)

    def _fire(self, key: K) -> None:
        self._timers.pop(key, None)
        self.enqueue(key)

    def _wake(self) -> None:
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(None)
                return
