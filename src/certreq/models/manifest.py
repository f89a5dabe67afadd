"""Load Kubernetes-style YAML manifests into model objects.

Each YAML document carries a ``kind`` (``Issuer``, ``ClusterIssuer``,
``Secret`` or ``CertificateRequest``), a ``metadata`` mapping and the
kind-specific body.  Field names follow the cert-manager API::

    kind: Issuer
    metadata: {name: vault, namespace: default}
    spec:
      vault:
        server: https://vault.example.com:8200
        path: pki/sign/example-dot-com
        auth:
          tokenSecretRef: {name: vault-token, key: token}

Binary fields (``Secret.data``, ``spec.csr``, ``caBundle``) are base64,
as in the Kubernetes API.  ``Secret.stringData`` takes plain strings.
"""

from __future__ import annotations

import base64
import binascii
import re
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any

import yaml

from certreq.core.types import CLUSTER_ISSUER_KIND, ISSUER_GROUP, ISSUER_KIND
from certreq.models.issuer import (
    DEFAULT_APPROLE_PATH,
    DEFAULT_KUBERNETES_MOUNT_PATH,
    Issuer,
    IssuerSpec,
    SecretKeySelector,
    VaultAppRole,
    VaultAuth,
    VaultIssuer,
    VaultKubernetesAuth,
)
from certreq.models.request import DEFAULT_DURATION, CertificateRequest, IssuerRef
from certreq.models.secret import Secret

_DURATION_RE = re.compile(r"(\d+(?:\.\d+)?)(h|ms|m|s)")
_DURATION_UNITS = {"h": 3600.0, "m": 60.0, "s": 1.0, "ms": 0.001}


class ManifestError(Exception):
    """Raised when a manifest document cannot be turned into a model."""


@dataclass
class Manifests:
    issuers: list[Issuer] = field(default_factory=list)
    cluster_issuers: list[Issuer] = field(default_factory=list)
    secrets: list[Secret] = field(default_factory=list)
    requests: list[CertificateRequest] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Scalars
# ---------------------------------------------------------------------------


def parse_duration(value: Any) -> timedelta:  # noqa: ANN401
    """Parse a Go-style duration (``"2160h"``, ``"1h30m"``) or integer seconds."""
    if isinstance(value, bool):
        msg = f"invalid duration {value!r}"
        raise ManifestError(msg)
    if isinstance(value, (int, float)):
        return timedelta(seconds=value)
    text = str(value).strip()
    pos = 0
    total = 0.0
    for match in _DURATION_RE.finditer(text):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if not text or pos != len(text):
        msg = f"invalid duration {value!r}"
        raise ManifestError(msg)
    return timedelta(seconds=total)


def _b64(value: str, path: str) -> bytes:
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as exc:
        msg = f"{path}: invalid base64 data"
        raise ManifestError(msg) from exc


def _require(data: dict, key: str, path: str) -> Any:  # noqa: ANN401
    value = data.get(key)
    if value in (None, ""):
        msg = f"{path}.{key} is required"
        raise ManifestError(msg)
    return value


def _mapping(value: Any, path: str) -> dict:  # noqa: ANN401
    if value is None:
        return {}
    if not isinstance(value, dict):
        msg = f"{path} must be a mapping"
        raise ManifestError(msg)
    return value


# ---------------------------------------------------------------------------
# Kinds
# ---------------------------------------------------------------------------


def _secret_ref(data: Any, path: str, default_key: str = "") -> SecretKeySelector:  # noqa: ANN401
    d = _mapping(data, path)
    return SecretKeySelector(
        name=_require(d, "name", path),
        key=d.get("key") or default_key,
    )


def _vault_auth(data: dict, path: str) -> VaultAuth:
    token_ref = data.get("tokenSecretRef")
    app_role = _mapping(data.get("appRole"), f"{path}.appRole")
    kubernetes = _mapping(data.get("kubernetes"), f"{path}.kubernetes")
    return VaultAuth(
        token_secret_ref=(
            _secret_ref(token_ref, f"{path}.tokenSecretRef") if token_ref else None
        ),
        app_role=(
            VaultAppRole(
                role_id=_require(app_role, "roleId", f"{path}.appRole"),
                secret_ref=_secret_ref(
                    app_role.get("secretRef"),
                    f"{path}.appRole.secretRef",
                ),
                path=app_role.get("path") or DEFAULT_APPROLE_PATH,
            )
            if app_role
            else None
        ),
        kubernetes=(
            VaultKubernetesAuth(
                role=_require(kubernetes, "role", f"{path}.kubernetes"),
                secret_ref=_secret_ref(
                    kubernetes.get("secretRef"),
                    f"{path}.kubernetes.secretRef",
                ),
                mount_path=kubernetes.get("mountPath") or DEFAULT_KUBERNETES_MOUNT_PATH,
            )
            if kubernetes
            else None
        ),
    )


def _issuer(doc: dict, *, cluster: bool) -> Issuer:
    meta = _mapping(doc.get("metadata"), "metadata")
    name = _require(meta, "name", "metadata")
    spec = _mapping(doc.get("spec"), "spec")
    vault = None
    if spec.get("vault"):
        v = _mapping(spec["vault"], "spec.vault")
        ca_bundle = v.get("caBundle")
        vault = VaultIssuer(
            server=_require(v, "server", "spec.vault"),
            path=_require(v, "path", "spec.vault"),
            auth=_vault_auth(_mapping(v.get("auth"), "spec.vault.auth"), "spec.vault.auth"),
            ca_bundle=_b64(ca_bundle, "spec.vault.caBundle") if ca_bundle else None,
        )
    return Issuer(
        name=name,
        spec=IssuerSpec(vault=vault),
        namespace=None if cluster else meta.get("namespace") or "default",
    )


def _secret(doc: dict) -> Secret:
    meta = _mapping(doc.get("metadata"), "metadata")
    data: dict[str, bytes] = {}
    for key, value in _mapping(doc.get("data"), "data").items():
        data[key] = _b64(str(value), f"data.{key}")
    for key, value in _mapping(doc.get("stringData"), "stringData").items():
        data[key] = str(value).encode("utf-8")
    return Secret(
        namespace=meta.get("namespace") or "default",
        name=_require(meta, "name", "metadata"),
        data=data,
    )


def _request(doc: dict) -> CertificateRequest:
    meta = _mapping(doc.get("metadata"), "metadata")
    spec = _mapping(doc.get("spec"), "spec")
    ref = _mapping(spec.get("issuerRef"), "spec.issuerRef")
    duration = spec.get("duration")
    return CertificateRequest(
        namespace=meta.get("namespace") or "default",
        name=_require(meta, "name", "metadata"),
        issuer_ref=IssuerRef(
            name=_require(ref, "name", "spec.issuerRef"),
            kind=ref.get("kind") or ISSUER_KIND,
            group=ref.get("group") or ISSUER_GROUP,
        ),
        csr_pem=_b64(str(spec.get("csr") or ""), "spec.csr"),
        duration=parse_duration(duration) if duration is not None else DEFAULT_DURATION,
        uid=str(meta.get("uid") or ""),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def parse_manifests(documents: list[Any]) -> Manifests:
    """Convert already-parsed YAML documents into :class:`Manifests`."""
    result = Manifests()
    for idx, doc in enumerate(documents):
        if doc is None:
            continue
        if not isinstance(doc, dict):
            msg = f"document {idx}: expected a mapping"
            raise ManifestError(msg)
        kind = doc.get("kind")
        try:
            if kind == ISSUER_KIND:
                result.issuers.append(_issuer(doc, cluster=False))
            elif kind == CLUSTER_ISSUER_KIND:
                result.cluster_issuers.append(_issuer(doc, cluster=True))
            elif kind == "Secret":
                result.secrets.append(_secret(doc))
            elif kind == "CertificateRequest":
                result.requests.append(_request(doc))
            else:
                msg = f"unsupported kind {kind!r}"
                raise ManifestError(msg)
        except ManifestError as exc:
            msg = f"document {idx} ({kind}): {exc}"
            raise ManifestError(msg) from exc
    return result


def load_manifests(path: str | Path) -> Manifests:
    """Read a multi-document YAML file and return its objects."""
    try:
        with Path(path).open(encoding="utf-8") as fh:
            documents = list(yaml.safe_load_all(fh))
    except yaml.YAMLError as exc:
        msg = f"{path}: invalid YAML: {exc}"
        raise ManifestError(msg) from exc
    return parse_manifests(documents)
