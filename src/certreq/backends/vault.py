r"""Vault PKI signing backend.

Talks to HashiCorp Vault over HTTPS.  A client is built per request by
:func:`new_client`, which authenticates using exactly one of:

- **Token**: read from ``auth.tokenSecretRef``
- **AppRole**: ``role_id`` from the issuer plus ``secret_id`` from
  ``auth.appRole.secretRef``, exchanged at ``/v1/auth/<path>/login``
- **Kubernetes**: a service-account JWT from
  ``auth.kubernetes.secretRef``, exchanged at ``<mountPath>/login``

An optional ``caBundle`` pins the TLS trust anchor for the Vault server.

API contract
------------
**Sign** -- ``POST {server}/v1/{path}`` with ``X-Vault-Token``

Request body (JSON)::

    {
        "common_name": "example.com",
        "alt_names": "example.com,www.example.com",
        "ip_sans": "",
        "uri_sans": "",
        "ttl": "7776000s",
        "csr": "-----BEGIN CERTIFICATE REQUEST-----\\n...",
        "exclude_cn_from_sans": true
    }

Response body (JSON, HTTP 200)::

    {
        "data": {
            "certificate": "-----BEGIN CERTIFICATE-----\\n...",
            "issuing_ca": "-----BEGIN CERTIFICATE-----\\n...",
            "ca_chain": ["-----BEGIN CERTIFICATE-----\\n..."]
        }
    }

The returned CA is the concatenated ``ca_chain`` when present,
otherwise ``issuing_ca``.
"""

from __future__ import annotations

import contextlib
import functools
import json
import logging
import ssl
import threading
import urllib.error
import urllib.request
from typing import TYPE_CHECKING, Any
from urllib.parse import urlparse

from certreq.backends.base import SigningBackend
from certreq.core.errors import (
    BackendInitError,
    CertreqError,
    DeadlineExceededError,
    InvalidRequestError,
    SigningError,
)
from certreq.models.issuer import DEFAULT_KUBERNETES_TOKEN_KEY
from certreq.services.csr_validator import csr_subject_names, decode_csr

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import timedelta

    from certreq.cache.lister import Lister
    from certreq.config.settings import VaultSettings
    from certreq.core.context import Context
    from certreq.models.issuer import Issuer, SecretKeySelector, VaultIssuer
    from certreq.models.secret import Secret

log = logging.getLogger(__name__)

_DEFAULT_TIMEOUT_SECONDS = 30.0
_DEFAULT_APPROLE_SECRET_KEY = "secretId"
_ERROR_BODY_LIMIT = 500
_CANCEL_POLL_SECONDS = 0.05


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------


def _exchange(
    opener: urllib.request.OpenerDirector,
    req: urllib.request.Request,
    *,
    timeout: float,
    error_cls: type[CertreqError],
    context: Context | None,
) -> dict:
    """Send *req* and decode the JSON body, mapping every failure."""
    url = req.full_url
    try:
        with opener.open(req, timeout=timeout) as resp:
            status = getattr(resp, "status", 200)
            if status not in (200, 204):
                msg = f"Vault returned unexpected HTTP {status}"
                raise error_cls(msg)
            raw = resp.read()
    except urllib.error.HTTPError as exc:
        body = ""
        with contextlib.suppress(Exception):
            body = exc.read().decode("utf-8", errors="replace")[:_ERROR_BODY_LIMIT]
        msg = f"Vault returned HTTP {exc.code}: {body}"
        raise error_cls(msg) from exc
    except (urllib.error.URLError, OSError) as exc:
        reason = getattr(exc, "reason", exc)
        if context is not None and context.done() and isinstance(reason, TimeoutError):
            msg = f"deadline exceeded waiting for Vault at {url}"
            raise DeadlineExceededError(msg) from exc
        msg = f"failed to reach Vault at {url}: {reason}"
        raise error_cls(msg) from exc

    try:
        return json.loads(raw.decode("utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        msg = f"Vault returned an invalid JSON response: {exc}"
        raise error_cls(msg) from exc


def _run_cancellable(func: Callable[[], dict], context: Context) -> dict:
    """Run *func* on a helper thread and stop waiting once *context* is done.

    An abandoned exchange finishes in the background when its socket
    timeout fires; its result is discarded.
    """
    outcome: dict[str, Any] = {}
    finished = threading.Event()

    def _target() -> None:
        try:
            outcome["value"] = func()
        except Exception as exc:
            outcome["error"] = exc
        finally:
            finished.set()

    threading.Thread(target=_target, name="certreq-vault-http", daemon=True).start()
    while not finished.wait(_CANCEL_POLL_SECONDS):
        context.check()

    if "error" in outcome:
        raise outcome["error"]
    return outcome["value"]


def _post_json(
    url: str,
    payload: dict,
    *,
    ssl_ctx: ssl.SSLContext,
    timeout: float,
    token: str | None,
    error_cls: type[CertreqError],
    context: Context | None = None,
) -> dict:
    """POST *payload* as JSON and return the decoded JSON response.

    Every failure is raised as *error_cls*, except a timeout that
    coincides with an expired *context*, which becomes
    :class:`DeadlineExceededError`.  With a *context* the call is
    abandoned as soon as it is cancelled or its deadline passes.
    """
    data = json.dumps(payload).encode("utf-8")
    req = urllib.request.Request(
        url,
        data=data,
        method="POST",
        headers={
            "Content-Type": "application/json",
            "Accept": "application/json",
        },
    )
    if token:
        req.add_header("X-Vault-Token", token)

    handler = urllib.request.HTTPSHandler(context=ssl_ctx)
    opener = urllib.request.build_opener(handler)

    exchange = functools.partial(
        _exchange,
        opener,
        req,
        timeout=timeout,
        error_cls=error_cls,
        context=context,
    )
    if context is None:
        return exchange()
    return _run_cancellable(exchange, context)


def _format_ttl(duration: timedelta) -> str:
    return f"{int(duration.total_seconds())}s"


# ---------------------------------------------------------------------------
# Construction helpers
# ---------------------------------------------------------------------------


def _build_ssl_context(vault: VaultIssuer, *, verify_tls: bool) -> ssl.SSLContext:
    ctx = ssl.create_default_context()
    if vault.ca_bundle:
        try:
            ctx.load_verify_locations(cadata=vault.ca_bundle.decode("ascii"))
        except (ssl.SSLError, ValueError) as exc:
            msg = f"no Vault CA bundle certificates could be loaded: {exc}"
            raise BackendInitError(msg) from exc
    if not verify_tls:
        ctx.check_hostname = False
        ctx.verify_mode = ssl.CERT_NONE
    return ctx


def _read_secret_key(
    secrets: Lister[Secret],
    namespace: str,
    ref: SecretKeySelector,
    default_key: str,
) -> str:
    """Return the stripped string value of ``ref.key`` in secret ``ref.name``."""
    key = ref.key or default_key
    try:
        secret = secrets.get(namespace, ref.name)
    except Exception as exc:
        msg = f'error reading secret "{namespace}/{ref.name}": {exc}'
        raise BackendInitError(msg) from exc

    raw = secret.data.get(key)
    if raw is None:
        msg = f'no data for "{key}" in secret "{namespace}/{ref.name}"'
        raise BackendInitError(msg)
    try:
        value = raw.decode("utf-8").strip()
    except UnicodeDecodeError as exc:
        msg = f'data for "{key}" in secret "{namespace}/{ref.name}" is not valid UTF-8'
        raise BackendInitError(msg) from exc
    if not value:
        msg = f'empty value for "{key}" in secret "{namespace}/{ref.name}"'
        raise BackendInitError(msg)
    return value


def _login(
    url: str,
    payload: dict,
    *,
    ssl_ctx: ssl.SSLContext,
    timeout: float,
) -> str:
    resp = _post_json(
        url,
        payload,
        ssl_ctx=ssl_ctx,
        timeout=timeout,
        token=None,
        error_cls=BackendInitError,
    )
    token = (resp.get("auth") or {}).get("client_token")
    if not token:
        msg = f"Vault login at {url} returned no client token"
        raise BackendInitError(msg)
    return token


def _authenticate(
    server: str,
    vault: VaultIssuer,
    namespace: str,
    secrets: Lister[Secret],
    *,
    ssl_ctx: ssl.SSLContext,
    timeout: float,
) -> str:
    auth = vault.auth
    if auth.token_secret_ref is not None:
        return _read_secret_key(secrets, namespace, auth.token_secret_ref, "token")

    if auth.app_role is not None:
        secret_id = _read_secret_key(
            secrets,
            namespace,
            auth.app_role.secret_ref,
            _DEFAULT_APPROLE_SECRET_KEY,
        )
        path = auth.app_role.path.strip("/")
        log.debug("Logging in to Vault with AppRole at %s", path)
        return _login(
            f"{server}/v1/auth/{path}/login",
            {"role_id": auth.app_role.role_id, "secret_id": secret_id},
            ssl_ctx=ssl_ctx,
            timeout=timeout,
        )

    if auth.kubernetes is not None:
        jwt = _read_secret_key(
            secrets,
            namespace,
            auth.kubernetes.secret_ref,
            DEFAULT_KUBERNETES_TOKEN_KEY,
        )
        mount = "/" + auth.kubernetes.mount_path.strip("/")
        log.debug("Logging in to Vault with Kubernetes auth at %s", mount)
        return _login(
            f"{server}{mount}/login",
            {"role": auth.kubernetes.role, "jwt": jwt},
            ssl_ctx=ssl_ctx,
            timeout=timeout,
        )

    msg = (
        "error initializing Vault client: tokenSecretRef, appRoleSecretRef, "
        "or Kubernetes auth role not set"
    )
    raise BackendInitError(msg)


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class VaultClient(SigningBackend):
    """An authenticated Vault PKI client bound to one issuer.

    Use :func:`new_client` rather than instantiating directly.
    """

    def __init__(
        self,
        server: str,
        path: str,
        token: str,
        ssl_ctx: ssl.SSLContext,
        timeout_seconds: float = _DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._server = server
        self._path = path.strip("/")
        self._token = token
        self._ssl_ctx = ssl_ctx
        self._timeout = timeout_seconds

    @property
    def sign_url(self) -> str:
        return f"{self._server}/v1/{self._path}"

    def _sign_payload(self, csr_pem: bytes, duration: timedelta) -> dict[str, Any]:
        try:
            names = csr_subject_names(decode_csr(csr_pem))
        except InvalidRequestError as exc:
            msg = f"failed to decode CSR for signing: {exc.detail}"
            raise SigningError(msg) from exc

        return {
            "common_name": names.common_name,
            "alt_names": ",".join(names.dns_names),
            "ip_sans": ",".join(names.ip_addresses),
            "uri_sans": ",".join(names.uris),
            "ttl": _format_ttl(duration),
            "csr": csr_pem.decode("ascii"),
            "exclude_cn_from_sans": True,
        }

    def sign(
        self,
        csr_pem: bytes,
        duration: timedelta,
        *,
        context: Context | None = None,
    ) -> tuple[bytes, bytes]:
        """Ask Vault to sign *csr_pem* and return ``(certificate, ca)``."""
        payload = self._sign_payload(csr_pem, duration)

        timeout = self._timeout
        if context is not None:
            context.check()
            timeout = context.timeout(self._timeout)

        log.debug("Forwarding CSR to Vault: %s", self.sign_url)
        resp = _post_json(
            self.sign_url,
            payload,
            ssl_ctx=self._ssl_ctx,
            timeout=timeout,
            token=self._token,
            error_cls=SigningError,
            context=context,
        )

        data = resp.get("data") or {}
        certificate = data.get("certificate")
        if not certificate:
            msg = "Vault response missing 'data.certificate' field"
            raise SigningError(msg)

        ca_chain = data.get("ca_chain") or []
        if ca_chain:
            ca = "".join(c if c.endswith("\n") else c + "\n" for c in ca_chain)
        else:
            ca = data.get("issuing_ca") or ""

        log.info("Vault signed certificate via %s", self._path)
        return certificate.encode("utf-8"), ca.encode("utf-8")


def new_client(
    namespace: str,
    secrets: Lister[Secret],
    issuer: Issuer,
    *,
    settings: VaultSettings | None = None,
) -> VaultClient:
    """Build an authenticated :class:`VaultClient` for *issuer*.

    Credentials are read from *secrets* in *namespace*.

    Raises
    ------
    BackendInitError
        For every construction failure: issuer without Vault
        configuration, malformed server URL, unusable CA bundle,
        missing auth configuration or credential, failed login.

    """
    vault = issuer.spec.vault
    if vault is None:
        msg = f"issuer {issuer.name!r} has no Vault configuration"
        raise BackendInitError(msg)

    parsed = urlparse(vault.server)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        msg = f"invalid Vault server URL {vault.server!r}"
        raise BackendInitError(msg)
    server = vault.server.rstrip("/")

    timeout = settings.timeout_seconds if settings is not None else _DEFAULT_TIMEOUT_SECONDS
    verify_tls = settings.verify_tls if settings is not None else True

    ssl_ctx = _build_ssl_context(vault, verify_tls=verify_tls)
    token = _authenticate(
        server,
        vault,
        namespace,
        secrets,
        ssl_ctx=ssl_ctx,
        timeout=timeout,
    )
    return VaultClient(server, vault.path, token, ssl_ctx, timeout_seconds=timeout)
