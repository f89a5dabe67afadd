"""Logging subsystem for certreq.

Public API::

    from certreq.logging import configure_logging

    configure_logging(settings.logging)
"""

from certreq.logging.setup import configure_logging

__all__ = ["configure_logging"]
