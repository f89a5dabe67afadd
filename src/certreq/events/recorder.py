"""Kubernetes-style event recorder.

Events are appended to a bounded in-memory history and emitted on the
``certreq.events`` logger, one structured record per event.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from certreq.core.types import EventType

events_log = logging.getLogger("certreq.events")

_DEFAULT_HISTORY = 1000


@dataclass(frozen=True)
class Event:
    object_kind: str
    namespace: str
    name: str
    type: EventType
    reason: str
    message: str
    timestamp: datetime


class EventRecorder:
    """Thread-safe recorder of events about processed objects."""

    def __init__(self, history: int = _DEFAULT_HISTORY) -> None:
        self._lock = threading.Lock()
        self._events: deque[Event] = deque(maxlen=history)

    def event(
        self,
        obj: Any,  # noqa: ANN401
        event_type: EventType,
        reason: str,
        message: str,
    ) -> Event:
        """Record an event about *obj* (anything with ``namespace``/``name``)."""
        ev = Event(
            object_kind=type(obj).__name__,
            namespace=getattr(obj, "namespace", None) or "",
            name=obj.name,
            type=event_type,
            reason=reason,
            message=message,
            timestamp=datetime.now(UTC),
        )
        with self._lock:
            self._events.append(ev)

        level = logging.WARNING if event_type == EventType.WARNING else logging.INFO
        events_log.log(
            level,
            "%s %s/%s: %s",
            reason,
            ev.namespace,
            ev.name,
            message,
            extra={
                "event_type": str(event_type),
                "event_reason": reason,
                "resource_kind": ev.object_kind,
                "resource_namespace": ev.namespace,
                "resource_name": ev.name,
            },
        )
        return ev

    def events_for(self, namespace: str, name: str) -> list[Event]:
        with self._lock:
            return [e for e in self._events if e.namespace == namespace and e.name == name]

    @property
    def events(self) -> list[Event]:
        with self._lock:
            return list(self._events)
