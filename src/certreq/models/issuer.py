"""Issuer and ClusterIssuer entities (Vault configuration only)."""

from __future__ import annotations

from dataclasses import dataclass, field

DEFAULT_APPROLE_PATH = "approle"
DEFAULT_KUBERNETES_MOUNT_PATH = "/v1/auth/kubernetes"
DEFAULT_KUBERNETES_TOKEN_KEY = "token"


@dataclass(frozen=True)
class SecretKeySelector:
    name: str
    key: str = ""


@dataclass(frozen=True)
class VaultAppRole:
    role_id: str
    secret_ref: SecretKeySelector
    path: str = DEFAULT_APPROLE_PATH


@dataclass(frozen=True)
class VaultKubernetesAuth:
    role: str
    secret_ref: SecretKeySelector
    mount_path: str = DEFAULT_KUBERNETES_MOUNT_PATH


@dataclass(frozen=True)
class VaultAuth:
    token_secret_ref: SecretKeySelector | None = None
    app_role: VaultAppRole | None = None
    kubernetes: VaultKubernetesAuth | None = None


@dataclass(frozen=True)
class VaultIssuer:
    server: str
    path: str
    auth: VaultAuth = field(default_factory=VaultAuth)
    ca_bundle: bytes | None = None


@dataclass(frozen=True)
class IssuerSpec:
    vault: VaultIssuer | None = None


@dataclass(frozen=True)
class Issuer:
    """A resolved issuer.  ``namespace`` is ``None`` for cluster issuers."""

    name: str
    spec: IssuerSpec
    namespace: str | None = None

    @property
    def is_cluster_scoped(self) -> bool:
        return self.namespace is None
