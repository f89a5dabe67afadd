"""Issuance result and the tri-state processing outcome."""

from __future__ import annotations

from dataclasses import dataclass

from certreq.core.types import OutcomeStatus


@dataclass(frozen=True)
class IssueResult:
    """PEM certificate and issuer chain returned on success."""

    certificate: bytes
    ca: bytes


@dataclass(frozen=True)
class Outcome:
    """Exactly one per processing pass.

    ``result`` is set only for :attr:`OutcomeStatus.ISSUED`; ``requeue``
    tells the scheduler whether to retry with backoff.
    """

    status: OutcomeStatus
    reason: str
    message: str
    requeue: bool = False
    result: IssueResult | None = None

    def __post_init__(self) -> None:
        if (self.status == OutcomeStatus.ISSUED) != (self.result is not None):
            msg = "an issue result is carried by, and only by, an issued outcome"
            raise ValueError(msg)

    @classmethod
    def issued(cls, result: IssueResult, reason: str, message: str) -> Outcome:
        return cls(OutcomeStatus.ISSUED, reason, message, requeue=False, result=result)

    @classmethod
    def pending(cls, reason: str, message: str, *, requeue: bool) -> Outcome:
        return cls(OutcomeStatus.PENDING, reason, message, requeue=requeue)

    @classmethod
    def failed(cls, reason: str, message: str, *, requeue: bool = False) -> Outcome:
        return cls(OutcomeStatus.FAILED, reason, message, requeue=requeue)
