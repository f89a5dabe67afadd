"""Per-pass processing context carrying a deadline and a cancel flag."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field

from certreq.core.errors import DeadlineExceededError


@dataclass
class Context:
    """Deadline and cancellation for a single processing pass.

    ``deadline`` is a :func:`time.monotonic` timestamp, or ``None``
    for no deadline.  Setting ``cancelled`` aborts a backend call that
    is waiting on the network.
    """

    deadline: float | None = None
    cancelled: threading.Event = field(default_factory=threading.Event)

    @classmethod
    def with_timeout(cls, seconds: float | None) -> Context:
        if seconds is None:
            return cls()
        return cls(deadline=time.monotonic() + seconds)

    def cancel(self) -> None:
        self.cancelled.set()

    def remaining(self) -> float | None:
        """Seconds left before the deadline, or ``None`` when unbounded."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def done(self) -> bool:
        if self.cancelled.is_set():
            return True
        return self.deadline is not None and time.monotonic() >= self.deadline

    def check(self) -> None:
        """Raise :class:`DeadlineExceededError` if the pass must stop."""
        if self.cancelled.is_set():
            msg = "processing cancelled"
            raise DeadlineExceededError(msg)
        if self.deadline is not None and time.monotonic() >= self.deadline:
            msg = "processing deadline exceeded"
            raise DeadlineExceededError(msg)

    def timeout(self, default: float) -> float:
        """Timeout for one blocking call: the smaller of *default* and the time left."""
        left = self.remaining()
        if left is None:
            return default
        return min(default, left)
