"""Tests for YAML manifest parsing."""

from __future__ import annotations

import base64
from datetime import timedelta

import pytest

from certreq.models.manifest import ManifestError, load_manifests, parse_duration, parse_manifests


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


class TestParseDuration:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("2160h", timedelta(hours=2160)),
            ("2160h0m0s", timedelta(hours=2160)),
            ("1h30m", timedelta(minutes=90)),
            ("90s", timedelta(seconds=90)),
            ("1.5h", timedelta(minutes=90)),
            ("500ms", timedelta(milliseconds=500)),
            (3600, timedelta(hours=1)),
        ],
    )
    def test_valid(self, value, expected):
        assert parse_duration(value) == expected

    @pytest.mark.parametrize("value", ["", "abc", "10d", "1h x", True])
    def test_invalid(self, value):
        with pytest.raises(ManifestError, match="invalid duration"):
            parse_duration(value)


class TestParseManifests:
    def test_full_set(self, csr_pem):
        docs = [
            {
                "kind": "Secret",
                "metadata": {"name": "vault-token", "namespace": "team-a"},
                "data": {"token": _b64(b"s.abc")},
                "stringData": {"other": "plain"},
            },
            {
                "kind": "Issuer",
                "metadata": {"name": "vault", "namespace": "team-a"},
                "spec": {
                    "vault": {
                        "server": "https://vault:8200",
                        "path": "pki/sign/role",
                        "caBundle": _b64(b"PEM"),
                        "auth": {"tokenSecretRef": {"name": "vault-token", "key": "token"}},
                    },
                },
            },
            {
                "kind": "ClusterIssuer",
                "metadata": {"name": "shared", "namespace": "ignored"},
                "spec": {
                    "vault": {
                        "server": "https://vault:8200",
                        "path": "pki/sign/role",
                        "auth": {
                            "appRole": {
                                "roleId": "rid",
                                "secretRef": {"name": "approle", "key": "secretId"},
                            },
                        },
                    },
                },
            },
            {
                "kind": "CertificateRequest",
                "metadata": {"name": "req", "namespace": "team-a", "uid": "abc-123"},
                "spec": {
                    "issuerRef": {"name": "shared", "kind": "ClusterIssuer"},
                    "csr": _b64(csr_pem),
                    "duration": "24h",
                },
            },
            None,
        ]
        m = parse_manifests(docs)

        assert m.secrets[0].data == {"token": b"s.abc", "other": b"plain"}
        issuer = m.issuers[0]
        assert issuer.namespace == "team-a"
        assert issuer.spec.vault.ca_bundle == b"PEM"
        assert issuer.spec.vault.auth.token_secret_ref.key == "token"

        cluster = m.cluster_issuers[0]
        assert cluster.is_cluster_scoped
        assert cluster.spec.vault.auth.app_role.role_id == "rid"
        assert cluster.spec.vault.auth.app_role.path == "approle"

        req = m.requests[0]
        assert req.key == "team-a/req"
        assert req.issuer_ref.kind == "ClusterIssuer"
        assert req.csr_pem == csr_pem
        assert req.duration == timedelta(hours=24)
        assert req.uid == "abc-123"

    def test_kubernetes_auth_defaults(self):
        docs = [
            {
                "kind": "Issuer",
                "metadata": {"name": "vault"},
                "spec": {
                    "vault": {
                        "server": "https://vault:8200",
                        "path": "pki/sign/role",
                        "auth": {"kubernetes": {"role": "r", "secretRef": {"name": "sa"}}},
                    },
                },
            },
        ]
        issuer = parse_manifests(docs).issuers[0]
        assert issuer.namespace == "default"
        k8s = issuer.spec.vault.auth.kubernetes
        assert k8s.mount_path == "/v1/auth/kubernetes"
        assert k8s.secret_ref.key == ""

    def test_request_defaults(self):
        docs = [
            {
                "kind": "CertificateRequest",
                "metadata": {"name": "req"},
                "spec": {"issuerRef": {"name": "vault"}, "csr": ""},
            },
        ]
        req = parse_manifests(docs).requests[0]
        assert req.namespace == "default"
        assert req.issuer_ref.kind == "Issuer"
        assert req.csr_pem == b""
        assert req.duration == timedelta(days=90)

    @pytest.mark.parametrize(
        ("doc", "match"),
        [
            ({"kind": "Pod", "metadata": {"name": "x"}}, "unsupported kind"),
            ({"kind": "Secret", "metadata": {}}, "metadata.name is required"),
            (
                {"kind": "Secret", "metadata": {"name": "s"}, "data": {"k": "!!!"}},
                "invalid base64",
            ),
            (
                {"kind": "Issuer", "metadata": {"name": "v"}, "spec": {"vault": {"path": "p"}}},
                "spec.vault.server is required",
            ),
            (
                {"kind": "CertificateRequest", "metadata": {"name": "r"}, "spec": {}},
                "spec.issuerRef.name is required",
            ),
        ],
    )
    def test_errors_name_document(self, doc, match):
        with pytest.raises(ManifestError, match=match) as exc_info:
            parse_manifests([doc])
        assert str(exc_info.value).startswith("document 0")

    def test_non_mapping_document(self):
        with pytest.raises(ManifestError, match="expected a mapping"):
            parse_manifests(["just a string"])


class TestLoadManifests:
    def test_multi_document_file(self, tmp_path):
        path = tmp_path / "m.yaml"
        path.write_text(
            "kind: Secret\n"
            "metadata: {name: a}\n"
            "stringData: {token: t}\n"
            "---\n"
            "kind: Secret\n"
            "metadata: {name: b, namespace: other}\n",
            encoding="utf-8",
        )
        m = load_manifests(path)
        assert [s.name for s in m.secrets] == ["a", "b"]

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("kind: [unclosed\n", encoding="utf-8")
        with pytest.raises(ManifestError, match="invalid YAML"):
            load_manifests(path)
