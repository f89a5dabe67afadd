"""Entity models for certreq.

Identity-bearing models are frozen dataclasses.  Only
:class:`RequestStatus` is mutable; it is written by the reporter and
the controller.
"""

from certreq.models.issuer import (
    Issuer,
    IssuerSpec,
    SecretKeySelector,
    VaultAppRole,
    VaultAuth,
    VaultIssuer,
    VaultKubernetesAuth,
)
from certreq.models.request import CertificateRequest, Condition, IssuerRef, RequestStatus
from certreq.models.result import IssueResult, Outcome
from certreq.models.secret import Secret

__all__ = [
    "CertificateRequest",
    "Condition",
    "IssueResult",
    "Issuer",
    "IssuerRef",
    "IssuerSpec",
    "Outcome",
    "RequestStatus",
    "Secret",
    "SecretKeySelector",
    "VaultAppRole",
    "VaultAuth",
    "VaultIssuer",
    "VaultKubernetesAuth",
]
