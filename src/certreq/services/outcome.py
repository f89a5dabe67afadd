"""Outcome classification: the error-to-outcome policy table.

Every pipeline step raises one error kind from
:mod:`certreq.core.errors`.  :data:`POLICY` maps each kind to the
outcome reported for it and whether the scheduler must requeue:

=======================  ========  ======================  =======
Error kind               Outcome   Reason                  Requeue
=======================  ========  ======================  =======
NotFoundError            pending   Pending                 no
TransientLookupError     pending   Pending                 yes
InvalidRequestError      failed    ErrorParsingCSR         no
BackendInitError         pending   ErrorVaultInit          no
SigningError             failed    ErrorSigning            no
DeadlineExceededError    pending   ErrorSigningDeadline    yes
(success)                issued    Issued                  no
=======================  ========  ======================  =======

A missing issuer is left to the issuer watch to re-trigger rather than
retried in a loop.  Backend construction failures are not requeued
either, even where the cause (e.g. a credential read) may be transient;
the next resync or issuer update picks the request up again.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from certreq.core.errors import (
    BackendInitError,
    CertreqError,
    DeadlineExceededError,
    InvalidRequestError,
    NotFoundError,
    SigningError,
    TransientLookupError,
)
from certreq.core.types import ConditionReason, OutcomeStatus
from certreq.models.result import IssueResult, Outcome

if TYPE_CHECKING:
    from certreq.models.request import IssuerRef

REASON_PENDING = str(ConditionReason.PENDING)
REASON_ISSUED = str(ConditionReason.ISSUED)
REASON_PARSING_CSR = "ErrorParsingCSR"
REASON_VAULT_INIT = "ErrorVaultInit"
REASON_SIGNING = "ErrorSigning"
REASON_SIGNING_DEADLINE = "ErrorSigningDeadline"

MESSAGE_ISSUED = "Certificate fetched from issuer successfully"


@dataclass(frozen=True)
class Rule:
    """One row of the policy table.

    ``message`` is a format string; ``{kind}`` is the issuer kind and
    ``{error}`` the error detail.
    """

    status: OutcomeStatus
    reason: str
    message: str
    requeue: bool


POLICY: dict[type[CertreqError], Rule] = {
    NotFoundError: Rule(
        OutcomeStatus.PENDING,
        REASON_PENDING,
        "Referenced {kind} not found",
        requeue=False,
    ),
    TransientLookupError: Rule(
        OutcomeStatus.PENDING,
        REASON_PENDING,
        "Failed to look up referenced {kind}: {error}",
        requeue=True,
    ),
    InvalidRequestError: Rule(
        OutcomeStatus.FAILED,
        REASON_PARSING_CSR,
        "Failed to decode CSR in spec: {error}",
        requeue=False,
    ),
    BackendInitError: Rule(
        OutcomeStatus.PENDING,
        REASON_VAULT_INIT,
        "Failed to initialise vault client for signing: {error}",
        requeue=False,
    ),
    SigningError: Rule(
        OutcomeStatus.FAILED,
        REASON_SIGNING,
        "Vault failed to sign certificate: {error}",
        requeue=False,
    ),
    DeadlineExceededError: Rule(
        OutcomeStatus.PENDING,
        REASON_SIGNING_DEADLINE,
        "Signing did not complete before the deadline: {error}",
        requeue=True,
    ),
}


def rule_for(error: CertreqError) -> Rule:
    """Return the policy row for *error*, matching subclasses too."""
    for cls in type(error).__mro__:
        rule = POLICY.get(cls)
        if rule is not None:
            return rule
    msg = f"no outcome policy for {type(error).__name__}"
    raise TypeError(msg)


def classify_error(error: CertreqError, issuer_ref: IssuerRef) -> Outcome:
    """Map a pipeline error to its :class:`Outcome`."""
    rule = rule_for(error)
    message = rule.message.format(kind=issuer_ref.display_kind, error=error.detail)
    if rule.status == OutcomeStatus.FAILED:
        return Outcome.failed(rule.reason, message, requeue=rule.requeue)
    return Outcome.pending(rule.reason, message, requeue=rule.requeue)


def classify_success(result: IssueResult) -> Outcome:
    return Outcome.issued(result, REASON_ISSUED, MESSAGE_ISSUED)
