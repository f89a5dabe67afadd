"""Application wiring."""

from certreq.app.context import Container

__all__ = ["Container"]
