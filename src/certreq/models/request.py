"""CertificateRequest entity and its mutable status."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta

from certreq.core.types import (
    CLUSTER_ISSUER_KIND,
    ISSUER_GROUP,
    ISSUER_KIND,
    ConditionStatus,
    ConditionType,
)

DEFAULT_DURATION = timedelta(days=90)


@dataclass(frozen=True)
class IssuerRef:
    name: str
    kind: str = ISSUER_KIND
    group: str = ISSUER_GROUP

    @property
    def display_kind(self) -> str:
        """Kind name used in user-facing messages."""
        if self.kind == CLUSTER_ISSUER_KIND:
            return CLUSTER_ISSUER_KIND
        return ISSUER_KIND


@dataclass
class Condition:
    type: ConditionType
    status: ConditionStatus
    reason: str
    message: str
    last_transition_time: datetime


@dataclass
class RequestStatus:
    """Status written back by the reporter and the controller."""

    conditions: list[Condition] = field(default_factory=list)
    failure_time: datetime | None = None
    certificate: bytes | None = None
    ca: bytes | None = None

    def get_condition(self, cond_type: ConditionType) -> Condition | None:
        for cond in self.conditions:
            if cond.type == cond_type:
                return cond
        return None

    def set_condition(
        self,
        cond_type: ConditionType,
        status: ConditionStatus,
        reason: str,
        message: str,
        now: datetime,
    ) -> None:
        """Set or replace a condition.

        ``last_transition_time`` only moves when ``status`` changes.
        """
        existing = self.get_condition(cond_type)
        if existing is None:
            self.conditions.append(Condition(cond_type, status, reason, message, now))
            return
        if existing.status != status:
            existing.last_transition_time = now
        existing.status = status
        existing.reason = reason
        existing.message = message

    @property
    def is_terminal(self) -> bool:
        """Issued or failed; nothing more to do for this request."""
        return bool(self.certificate) or self.failure_time is not None


@dataclass(frozen=True)
class CertificateRequest:
    namespace: str
    name: str
    issuer_ref: IssuerRef
    csr_pem: bytes
    duration: timedelta = DEFAULT_DURATION
    uid: str = ""
    status: RequestStatus = field(default_factory=RequestStatus, compare=False)

    @property
    def key(self) -> str:
        return f"{self.namespace}/{self.name}"
