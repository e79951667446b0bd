from __future__ import annotations

import heapq
import itertools
import time
from collections import deque
from threading import Condition, Lock
from typing import Callable, Hashable


class WorkQueue:
    """De-duplicating work queue with delayed adds.

    A key handed out by `get` stays "processing" until `done`; adding it again
    in the meantime only marks it dirty, and it is re-queued on `done`. That
    gives per-key serialization across any number of worker threads.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._cond = Condition()
        self._queue: deque[Hashable] = deque()
        self._dirty: set[Hashable] = set()
        self._processing: set[Hashable] = set()
        self._waiting: list[tuple[float, int, Hashable]] = []
        self._due: dict[Hashable, float] = {}
        self._seq = itertools.count()
        self._shutdown = False

    def _add_locked(self, key: Hashable) -> None:
        if key in self._dirty:
            return
        self._dirty.add(key)
        if key in self._processing:
            return
        self._queue.append(key)
        self._cond.notify()

    def add(self, key: Hashable) -> None:
        with self._cond:
            if self._shutdown:
                return
            self._add_locked(key)

    def add_after(self, key: Hashable, delay_s: float) -> None:
        if delay_s <= 0:
            self.add(key)
            return
        with self._cond:
            if self._shutdown:
                return
            due = self._clock() + delay_s
            current = self._due.get(key)
            if current is not None and current <= due:
                return
            self._due[key] = due
            heapq.heappush(self._waiting, (due, next(self._seq), key))
            self._cond.notify()

    def _promote_due(self) -> None:
        now = self._clock()
        while self._waiting and self._waiting[0][0] <= now:
            due, _, key = heapq.heappop(self._waiting)
            if self._due.get(key) != due:
                continue  # superseded by an earlier schedule
            del self._due[key]
            self._add_locked(key)

    def get(self, timeout: float | None = None) -> Hashable | None:
        """Block until a key is ready; None on timeout or shutdown."""
        deadline = None if timeout is None else self._clock() + timeout
        with self._cond:
            while True:
                self._promote_due()
                if self._queue:
                    key = self._queue.popleft()
                    self._dirty.discard(key)
                    self._processing.add(key)
                    return key
                if self._shutdown:
                    return None

                wait: float | None = None
                if self._waiting:
                    wait = max(0.0, self._waiting[0][0] - self._clock())
                if deadline is not None:
                    remaining = deadline - self._clock()
                    if remaining <= 0:
                        return None
                    wait = remaining if wait is None else min(wait, remaining)
                self._cond.wait(wait)

    def done(self, key: Hashable) -> None:
        with self._cond:
            self._processing.discard(key)
            if key in self._dirty and not self._shutdown:
                self._queue.append(key)
                self._cond.notify()

    def shutdown(self) -> None:
        with self._cond:
            self._shutdown = True
            self._cond.notify_all()

    @property
    def is_shutdown(self) -> bool:
        with self._cond:
            return self._shutdown

    def scheduled(self) -> int:
        """Number of keys waiting on a delay."""
        with self._cond:
            return len(self._due)

    def __len__(self) -> int:
        with self._cond:
            return len(self._queue)


class ExponentialBackoff:
    """Per-key retry delay: base * 2**failures, capped."""

    def __init__(self, base_s: float, max_s: float):
        self.base_s = max(0.001, float(base_s))
        self.max_s = max(self.base_s, float(max_s))
        self._lock = Lock()
        self._failures: dict[Hashable, int] = {}

    def when(self, key: Hashable) -> float:
        with self._lock:
            n = self._failures.get(key, 0)
            self._failures[key] = n + 1
        return min(self.max_s, self.base_s * (2 ** min(n, 32)))

    def failures(self, key: Hashable) -> int:
        with self._lock:
            return self._failures.get(key, 0)

    def forget(self, key: Hashable) -> None:
        with self._lock:
            self._failures.pop(key, None)
