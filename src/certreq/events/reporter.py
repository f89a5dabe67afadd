"""Status and event reporting for one certificate request.

A :class:`Reporter` writes the ``Ready`` condition on the request
status, records a matching event and logs the error that caused it.
The signer calls exactly one of :meth:`pending`, :meth:`failed` or
:meth:`ready` per processing pass.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from certreq.core.types import ConditionReason, ConditionStatus, ConditionType, EventType

if TYPE_CHECKING:
    from certreq.events.recorder import EventRecorder
    from certreq.models.request import CertificateRequest


class Reporter:
    """Report the outcome of a pass over *request*.

    Parameters
    ----------
    request:
        The request being processed; its ``status`` is updated.
    recorder:
        Event sink.
    logger:
        Logger (or adapter) carrying the request's context fields.

    """

    def __init__(
        self,
        request: CertificateRequest,
        recorder: EventRecorder,
        logger: logging.Logger | logging.LoggerAdapter,
    ) -> None:
        self._request = request
        self._recorder = recorder
        self._log = logger

    def with_log(self, logger: logging.Logger | logging.LoggerAdapter) -> Reporter:
        return Reporter(self._request, self._recorder, logger)

    @staticmethod
    def _now() -> datetime:
        return datetime.now(UTC)

    def pending(self, err: Exception | None, reason: str, message: str) -> None:
        """Request is not ready yet; the condition may resolve later."""
        self._log.info("%s: %s", message, err)
        self._recorder.event(self._request, EventType.NORMAL, reason, message)
        self._request.status.set_condition(
            ConditionType.READY,
            ConditionStatus.FALSE,
            ConditionReason.PENDING,
            message,
            self._now(),
        )

    def failed(self, err: Exception | None, reason: str, message: str) -> None:
        """Request failed for good; records the failure time."""
        now = self._now()
        self._log.error("%s: %s", message, err)
        self._recorder.event(self._request, EventType.WARNING, reason, message)
        self._request.status.set_condition(
            ConditionType.READY,
            ConditionStatus.FALSE,
            ConditionReason.FAILED,
            message,
            now,
        )
        self._request.status.failure_time = now

    def ready(self, reason: str, message: str) -> None:
        """Certificate issued."""
        self._log.info(message)
        self._recorder.event(self._request, EventType.NORMAL, reason, message)
        self._request.status.set_condition(
            ConditionType.READY,
            ConditionStatus.TRUE,
            ConditionReason.ISSUED,
            message,
            self._now(),
        )
