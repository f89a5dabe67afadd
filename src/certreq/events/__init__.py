"""Event recording and request status reporting."""

from certreq.events.recorder import Event, EventRecorder
from certreq.events.reporter import Reporter

__all__ = ["Event", "EventRecorder", "Reporter"]
