"""Enumerated types for certreq.

All enums inherit from :class:`enum.StrEnum` so their ``.value`` is a
plain string that YAML and JSON round-trip naturally.
"""

from __future__ import annotations

from enum import StrEnum

# ---------------------------------------------------------------------------
# Issuers
# ---------------------------------------------------------------------------

ISSUER_KIND = "Issuer"
CLUSTER_ISSUER_KIND = "ClusterIssuer"
ISSUER_GROUP = "cert-manager.io"


class IssuerScope(StrEnum):
    NAMESPACED = "namespaced"
    CLUSTER = "cluster"


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------


class OutcomeStatus(StrEnum):
    ISSUED = "issued"
    PENDING = "pending"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Conditions and events
# ---------------------------------------------------------------------------


class ConditionType(StrEnum):
    READY = "Ready"


class ConditionStatus(StrEnum):
    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


class ConditionReason(StrEnum):
    PENDING = "Pending"
    FAILED = "Failed"
    ISSUED = "Issued"


class EventType(StrEnum):
    NORMAL = "Normal"
    WARNING = "Warning"
