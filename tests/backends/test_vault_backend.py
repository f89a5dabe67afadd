"""Tests for the Vault PKI signing backend."""

from __future__ import annotations

import json
import ssl
import threading
import time
import urllib.error
from datetime import timedelta
from io import BytesIO
from unittest.mock import MagicMock, patch

import pytest

from certreq.backends.vault import VaultClient, new_client
from certreq.config.settings import VaultSettings
from certreq.core.context import Context
from certreq.core.errors import BackendInitError, DeadlineExceededError, SigningError
from certreq.models.issuer import (
    Issuer,
    IssuerSpec,
    SecretKeySelector,
    VaultAppRole,
    VaultAuth,
    VaultIssuer,
    VaultKubernetesAuth,
)
from certreq.models.secret import Secret

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _issuer(auth: VaultAuth, **overrides) -> Issuer:
    vault = {
        "server": "https://vault.example.com:8200",
        "path": "pki/sign/example-dot-com",
        "auth": auth,
    }
    vault.update(overrides)
    return Issuer(name="vault", namespace="default", spec=IssuerSpec(vault=VaultIssuer(**vault)))


def _mock_response(body: dict, status: int = 200) -> MagicMock:
    resp = MagicMock()
    resp.__enter__.return_value = resp
    resp.status = status
    resp.read.return_value = json.dumps(body).encode("utf-8")
    return resp


def _mock_opener(*responses) -> MagicMock:
    opener = MagicMock()
    opener.open.side_effect = list(responses)
    return opener


def _sent_json(opener: MagicMock, call: int = 0) -> dict:
    req = opener.open.call_args_list[call].args[0]
    return json.loads(req.data.decode("utf-8"))


def _sign_response(certificate: str, **data) -> dict:
    return {"data": {"certificate": certificate, **data}}


@pytest.fixture()
def client() -> VaultClient:
    return VaultClient(
        "https://vault.example.com:8200",
        "/pki/sign/example-dot-com/",
        "s.token",
        ssl.create_default_context(),
        timeout_seconds=15,
    )


# ---------------------------------------------------------------------------
# new_client: authentication
# ---------------------------------------------------------------------------


class TestTokenAuth:
    def test_token_read_from_secret(self, secrets, vault_issuer, token_secret):
        secrets.add(token_secret)
        with patch("urllib.request.build_opener") as build:
            client = new_client("default", secrets, vault_issuer)
        build.assert_not_called()
        assert client.sign_url == "https://vault.example.com:8200/v1/pki/sign/example-dot-com"
        assert client._token == "s.root-token"

    def test_default_token_key(self, secrets):
        secrets.add(Secret("default", "vault-token", {"token": b"abc"}))
        issuer = _issuer(VaultAuth(token_secret_ref=SecretKeySelector("vault-token")))
        assert new_client("default", secrets, issuer)._token == "abc"

    def test_secret_read_from_request_namespace(self, secrets, vault_issuer):
        secrets.add(Secret("team-a", "vault-token", {"token": b"team-token"}))
        assert new_client("team-a", secrets, vault_issuer)._token == "team-token"

    def test_missing_secret(self, secrets, vault_issuer):
        with pytest.raises(BackendInitError, match='error reading secret "default/vault-token"'):
            new_client("default", secrets, vault_issuer)

    def test_missing_key(self, secrets, vault_issuer):
        secrets.add(Secret("default", "vault-token", {"other": b"x"}))
        with pytest.raises(BackendInitError, match='no data for "token"'):
            new_client("default", secrets, vault_issuer)

    def test_empty_value(self, secrets, vault_issuer):
        secrets.add(Secret("default", "vault-token", {"token": b"  \n"}))
        with pytest.raises(BackendInitError, match="empty value"):
            new_client("default", secrets, vault_issuer)

    def test_non_utf8_value(self, secrets, vault_issuer):
        secrets.add(Secret("default", "vault-token", {"token": b"\xff\xfe"}))
        with pytest.raises(BackendInitError, match="not valid UTF-8"):
            new_client("default", secrets, vault_issuer)


class TestAppRoleAuth:
    def _issuer(self) -> Issuer:
        return _issuer(
            VaultAuth(
                app_role=VaultAppRole(
                    role_id="role-123",
                    secret_ref=SecretKeySelector("approle"),
                    path="approle",
                ),
            ),
        )

    def test_login_exchanges_secret_id(self, secrets):
        secrets.add(Secret("default", "approle", {"secretId": b"secret-456"}))
        opener = _mock_opener(_mock_response({"auth": {"client_token": "s.approle"}}))
        with patch("urllib.request.build_opener", return_value=opener):
            client = new_client("default", secrets, self._issuer())

        req = opener.open.call_args.args[0]
        assert req.full_url == "https://vault.example.com:8200/v1/auth/approle/login"
        assert req.get_header("X-vault-token") is None
        assert _sent_json(opener) == {"role_id": "role-123", "secret_id": "secret-456"}
        assert client._token == "s.approle"

    def test_login_without_client_token(self, secrets):
        secrets.add(Secret("default", "approle", {"secretId": b"secret-456"}))
        opener = _mock_opener(_mock_response({"auth": None}))
        with (
            patch("urllib.request.build_opener", return_value=opener),
            pytest.raises(BackendInitError, match="no client token"),
        ):
            new_client("default", secrets, self._issuer())

    def test_login_http_error(self, secrets):
        secrets.add(Secret("default", "approle", {"secretId": b"secret-456"}))
        err = urllib.error.HTTPError(
            "https://vault.example.com:8200/v1/auth/approle/login",
            400,
            "Bad Request",
            {},
            BytesIO(b'{"errors":["invalid role or secret ID"]}'),
        )
        opener = _mock_opener(err)
        with (
            patch("urllib.request.build_opener", return_value=opener),
            pytest.raises(BackendInitError, match="HTTP 400.*invalid role"),
        ):
            new_client("default", secrets, self._issuer())


class TestKubernetesAuth:
    def test_login_with_service_account_jwt(self, secrets):
        secrets.add(Secret("default", "sa-token", {"token": b"eyJhbGciOi..."}))
        issuer = _issuer(
            VaultAuth(
                kubernetes=VaultKubernetesAuth(
                    role="cert-manager",
                    secret_ref=SecretKeySelector("sa-token"),
                    mount_path="/v1/auth/kubernetes",
                ),
            ),
        )
        opener = _mock_opener(_mock_response({"auth": {"client_token": "s.k8s"}}))
        with patch("urllib.request.build_opener", return_value=opener):
            client = new_client("default", secrets, issuer)

        req = opener.open.call_args.args[0]
        assert req.full_url == "https://vault.example.com:8200/v1/auth/kubernetes/login"
        assert _sent_json(opener) == {"role": "cert-manager", "jwt": "eyJhbGciOi..."}
        assert client._token == "s.k8s"


class TestNewClientErrors:
    def test_no_auth_configured(self, secrets):
        with pytest.raises(BackendInitError, match="tokenSecretRef, appRoleSecretRef"):
            new_client("default", secrets, _issuer(VaultAuth()))

    def test_issuer_without_vault(self, secrets):
        issuer = Issuer(name="empty", namespace="default", spec=IssuerSpec())
        with pytest.raises(BackendInitError, match="no Vault configuration"):
            new_client("default", secrets, issuer)

    @pytest.mark.parametrize("server", ["vault.example.com", "ftp://vault", "https://"])
    def test_invalid_server_url(self, secrets, server):
        issuer = _issuer(VaultAuth(token_secret_ref=SecretKeySelector("t")), server=server)
        with pytest.raises(BackendInitError, match="invalid Vault server URL"):
            new_client("default", secrets, issuer)

    def test_unusable_ca_bundle(self, secrets, token_secret):
        secrets.add(token_secret)
        issuer = _issuer(
            VaultAuth(token_secret_ref=SecretKeySelector("vault-token")),
            ca_bundle=b"not a certificate",
        )
        with pytest.raises(BackendInitError, match="CA bundle"):
            new_client("default", secrets, issuer)

    def test_ca_bundle_is_loaded(self, secrets, token_secret, ca_pem):
        secrets.add(token_secret)
        issuer = _issuer(
            VaultAuth(token_secret_ref=SecretKeySelector("vault-token")),
            ca_bundle=ca_pem,
        )
        client = new_client("default", secrets, issuer)
        assert client._ssl_ctx.cert_store_stats()["x509"] >= 1

    def test_settings_applied(self, secrets, vault_issuer, token_secret):
        secrets.add(token_secret)
        client = new_client(
            "default",
            secrets,
            vault_issuer,
            settings=VaultSettings(timeout_seconds=5, verify_tls=False),
        )
        assert client._timeout == 5
        assert client._ssl_ctx.verify_mode == ssl.CERT_NONE


# ---------------------------------------------------------------------------
# VaultClient.sign
# ---------------------------------------------------------------------------


class TestSign:
    def test_request_payload(self, client, make_csr):
        pem = make_csr(
            common_name="app.example.com",
            dns_names=("app.example.com", "www.example.com"),
            ip_addresses=("192.0.2.1",),
            uris=("spiffe://example/app",),
        )
        opener = _mock_opener(_mock_response(_sign_response("CERT\n", issuing_ca="CA\n")))
        with patch("urllib.request.build_opener", return_value=opener):
            client.sign(pem, timedelta(hours=2))

        req = opener.open.call_args.args[0]
        assert req.full_url == "https://vault.example.com:8200/v1/pki/sign/example-dot-com"
        assert req.get_method() == "POST"
        assert req.get_header("X-vault-token") == "s.token"
        assert opener.open.call_args.kwargs["timeout"] == 15
        assert _sent_json(opener) == {
            "common_name": "app.example.com",
            "alt_names": "app.example.com,www.example.com",
            "ip_sans": "192.0.2.1",
            "uri_sans": "spiffe://example/app",
            "ttl": "7200s",
            "csr": pem.decode("ascii"),
            "exclude_cn_from_sans": True,
        }

    def test_ca_chain_preferred_over_issuing_ca(self, client, csr_pem):
        body = _sign_response(
            "LEAF\n",
            issuing_ca="ISSUING\n",
            ca_chain=["INTERMEDIATE", "ROOT\n"],
        )
        opener = _mock_opener(_mock_response(body))
        with patch("urllib.request.build_opener", return_value=opener):
            certificate, ca = client.sign(csr_pem, timedelta(days=1))
        assert certificate == b"LEAF\n"
        assert ca == b"INTERMEDIATE\nROOT\n"

    def test_issuing_ca_fallback(self, client, csr_pem):
        opener = _mock_opener(_mock_response(_sign_response("LEAF\n", issuing_ca="ISSUING\n")))
        with patch("urllib.request.build_opener", return_value=opener):
            _, ca = client.sign(csr_pem, timedelta(days=1))
        assert ca == b"ISSUING\n"

    def test_missing_certificate(self, client, csr_pem):
        opener = _mock_opener(_mock_response({"data": {"issuing_ca": "CA"}}))
        with (
            patch("urllib.request.build_opener", return_value=opener),
            pytest.raises(SigningError, match="data.certificate"),
        ):
            client.sign(csr_pem, timedelta(days=1))

    def test_http_error_is_signing_error(self, client, csr_pem):
        err = urllib.error.HTTPError(
            client.sign_url,
            400,
            "Bad Request",
            {},
            BytesIO(b'{"errors":["common name not allowed by this role"]}'),
        )
        opener = _mock_opener(err)
        with (
            patch("urllib.request.build_opener", return_value=opener),
            pytest.raises(SigningError, match="HTTP 400.*not allowed"),
        ):
            client.sign(csr_pem, timedelta(days=1))

    def test_unexpected_status(self, client, csr_pem):
        opener = _mock_opener(_mock_response({}, status=202))
        with (
            patch("urllib.request.build_opener", return_value=opener),
            pytest.raises(SigningError, match="unexpected HTTP 202"),
        ):
            client.sign(csr_pem, timedelta(days=1))

    def test_invalid_json(self, client, csr_pem):
        resp = MagicMock()
        resp.__enter__.return_value = resp
        resp.status = 200
        resp.read.return_value = b"<html>"
        opener = _mock_opener(resp)
        with (
            patch("urllib.request.build_opener", return_value=opener),
            pytest.raises(SigningError, match="invalid JSON"),
        ):
            client.sign(csr_pem, timedelta(days=1))

    def test_connection_error_without_deadline(self, client, csr_pem):
        opener = _mock_opener(urllib.error.URLError(TimeoutError("timed out")))
        with (
            patch("urllib.request.build_opener", return_value=opener),
            pytest.raises(SigningError, match="failed to reach Vault"),
        ):
            client.sign(csr_pem, timedelta(days=1), context=Context())

    def test_undecodable_csr(self, client):
        with pytest.raises(SigningError, match="failed to decode CSR"):
            client.sign(b"junk", timedelta(days=1))


class TestSignDeadline:
    def test_expired_context_skips_call(self, client, csr_pem):
        ctx = Context(deadline=time.monotonic() - 1)
        with (
            patch("urllib.request.build_opener") as build,
            pytest.raises(DeadlineExceededError, match="deadline exceeded"),
        ):
            client.sign(csr_pem, timedelta(days=1), context=ctx)
        build.assert_not_called()

    def test_cancelled_context(self, client, csr_pem):
        ctx = Context()
        ctx.cancel()
        with pytest.raises(DeadlineExceededError, match="cancelled"):
            client.sign(csr_pem, timedelta(days=1), context=ctx)

    def test_timeout_bounded_by_deadline(self, client, csr_pem):
        opener = _mock_opener(_mock_response(_sign_response("LEAF\n")))
        with patch("urllib.request.build_opener", return_value=opener):
            client.sign(csr_pem, timedelta(days=1), context=Context.with_timeout(2))
        assert opener.open.call_args.kwargs["timeout"] <= 2

    def test_timeout_after_deadline_is_deadline_error(self, client, csr_pem):
        ctx = Context.with_timeout(60)

        def _expire(*_args, **_kwargs):
            ctx.cancel()
            raise urllib.error.URLError(TimeoutError("timed out"))

        opener = MagicMock()
        opener.open.side_effect = _expire
        with (
            patch("urllib.request.build_opener", return_value=opener),
            pytest.raises(DeadlineExceededError),
        ):
            client.sign(csr_pem, timedelta(days=1), context=ctx)

    def test_response_is_closed(self, client, csr_pem):
        resp = _mock_response(_sign_response("LEAF\n"))
        opener = _mock_opener(resp)
        with patch("urllib.request.build_opener", return_value=opener):
            client.sign(csr_pem, timedelta(days=1), context=Context.with_timeout(5))
        resp.__exit__.assert_called_once()

    def test_body_read_timeout_after_deadline_is_deadline_error(self, client, csr_pem):
        ctx = Context.with_timeout(60)
        resp = _mock_response({})

        def _stall():
            ctx.deadline = time.monotonic() - 1
            raise TimeoutError("timed out")

        resp.read.side_effect = _stall
        opener = _mock_opener(resp)
        with (
            patch("urllib.request.build_opener", return_value=opener),
            pytest.raises(DeadlineExceededError),
        ):
            client.sign(csr_pem, timedelta(days=1), context=ctx)

    def test_body_read_timeout_before_deadline_is_signing_error(self, client, csr_pem):
        resp = _mock_response({})
        resp.read.side_effect = TimeoutError("timed out")
        opener = _mock_opener(resp)
        with (
            patch("urllib.request.build_opener", return_value=opener),
            pytest.raises(SigningError, match="failed to reach Vault.*timed out"),
        ):
            client.sign(csr_pem, timedelta(days=1), context=Context.with_timeout(60))

    def test_cancel_aborts_call_in_flight(self, client, csr_pem):
        ctx = Context()
        release = threading.Event()

        def _hang(*_args, **_kwargs):
            release.wait(5)
            raise urllib.error.URLError(TimeoutError("timed out"))

        opener = MagicMock()
        opener.open.side_effect = _hang
        timer = threading.Timer(0.1, ctx.cancel)
        timer.start()
        started = time.monotonic()
        try:
            with (
                patch("urllib.request.build_opener", return_value=opener),
                pytest.raises(DeadlineExceededError, match="cancelled"),
            ):
                client.sign(csr_pem, timedelta(days=1), context=ctx)
        finally:
            release.set()
            timer.cancel()
        assert time.monotonic() - started < 2

    def test_deadline_aborts_call_in_flight(self, client, csr_pem):
        release = threading.Event()

        def _hang(*_args, **_kwargs):
            release.wait(5)
            raise urllib.error.URLError(TimeoutError("timed out"))

        opener = MagicMock()
        opener.open.side_effect = _hang
        started = time.monotonic()
        try:
            with (
                patch("urllib.request.build_opener", return_value=opener),
                pytest.raises(DeadlineExceededError, match="deadline exceeded"),
            ):
                client.sign(csr_pem, timedelta(days=1), context=Context.with_timeout(0.2))
        finally:
            release.set()
        assert time.monotonic() - started < 2
