"""Deduplicating, rate-limited work queue.

Keys (``"namespace/name"``) are processed by at most one worker at a
time:

- adding a key that is already queued is a no-op;
- adding a key that is being processed marks it *dirty*; it is
  re-queued when the worker calls :meth:`WorkQueue.done`.

Failed keys are retried with per-key exponential backoff through
:meth:`WorkQueue.add_rate_limited`; :meth:`WorkQueue.forget` resets
the failure count once a key succeeds.
"""

from __future__ import annotations

import heapq
import itertools
import threading
import time
from collections import deque

_DEFAULT_BASE_DELAY = 0.005
_DEFAULT_MAX_DELAY = 1000.0


class WorkQueue:
    """Thread-safe work queue with in-flight coalescing.

    Parameters
    ----------
    base_delay:
        Backoff for the first rate-limited retry, in seconds.
    max_delay:
        Cap for the exponential backoff, in seconds.

    """

    def __init__(
        self,
        base_delay: float = _DEFAULT_BASE_DELAY,
        max_delay: float = _DEFAULT_MAX_DELAY,
    ) -> None:
        self._base_delay = base_delay
        self._max_delay = max_delay

        self._cond = threading.Condition()
        self._queue: deque[str] = deque()
        self._dirty: set[str] = set()
        self._processing: set[str] = set()
        self._failures: dict[str, int] = {}
        self._shutting_down = False

        # (ready_at, seq, key) min-heap drained by the delay thread
        self._waiting: list[tuple[float, int, str]] = []
        self._seq = itertools.count()
        self._delay_thread = threading.Thread(
            target=self._delay_loop,
            name="workqueue-delay",
            daemon=True,
        )
        self._delay_thread.start()

    # -- queueing -----------------------------------------------------------

    def add(self, key: str) -> None:
        with self._cond:
            if self._shutting_down or key in self._dirty:
                return
            self._dirty.add(key)
            if key in self._processing:
                return
            self._queue.append(key)
            self._cond.notify_all()

    def add_after(self, key: str, delay: float) -> None:
        """Add *key* once *delay* seconds have passed."""
        if delay <= 0:
            self.add(key)
            return
        with self._cond:
            if self._shutting_down:
                return
            heapq.heappush(self._waiting, (time.monotonic() + delay, next(self._seq), key))
            self._cond.notify_all()

    def add_rate_limited(self, key: str) -> float:
        """Re-add *key* after its backoff; returns the delay used."""
        with self._cond:
            failures = self._failures.get(key, 0)
            self._failures[key] = failures + 1
        delay = min(self._base_delay * (2**failures), self._max_delay)
        self.add_after(key, delay)
        return delay

    def forget(self, key: str) -> None:
        with self._cond:
            self._failures.pop(key, None)

    def num_requeues(self, key: str) -> int:
        with self._cond:
            return self._failures.get(key, 0)

    # -- consuming ----------------------------------------------------------

    def get(self, timeout: float | None = None) -> str | None:
        """Block until a key is available.

        Returns ``None`` on timeout or once the queue is shut down and
        drained.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            while not self._queue:
                if self._shutting_down:
                    return None
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    return None
                self._cond.wait(timeout=remaining)
            key = self._queue.popleft()
            self._processing.add(key)
            self._dirty.discard(key)
            return key

    def done(self, key: str) -> None:
        """Mark *key* finished; re-queue it if it was added meanwhile."""
        with self._cond:
            self._processing.discard(key)
            if key in self._dirty:
                self._queue.append(key)
                self._cond.notify_all()

    # -- lifecycle ----------------------------------------------------------

    def shut_down(self) -> None:
        with self._cond:
            self._shutting_down = True
            self._waiting.clear()
            self._cond.notify_all()
        self._delay_thread.join(timeout=5)

    @property
    def shutting_down(self) -> bool:
        with self._cond:
            return self._shutting_down

    def __len__(self) -> int:
        with self._cond:
            return len(self._queue)

    def _delay_loop(self) -> None:
        """Move keys whose delay expired from the waiting heap to the queue."""
        while True:
            with self._cond:
                if self._shutting_down:
                    return
                now = time.monotonic()
                ready: list[str] = []
                while self._waiting and self._waiting[0][0] <= now:
                    ready.append(heapq.heappop(self._waiting)[2])
                if not ready:
                    wait = self._waiting[0][0] - now if self._waiting else None
                    self._cond.wait(timeout=wait)
                    continue
            for key in ready:
                self.add(key)
