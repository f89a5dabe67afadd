"""Root conftest for the certreq test suite."""

from __future__ import annotations

import logging
import sys
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
import yaml

# ---------------------------------------------------------------------------
# Make ``src/`` importable without installing the package
# ---------------------------------------------------------------------------
_SRC = str(Path(__file__).resolve().parent.parent / "src")
if _SRC not in sys.path:
    sys.path.insert(0, _SRC)

from cryptography import x509  # noqa: E402
from cryptography.hazmat.primitives import hashes, serialization  # noqa: E402
from cryptography.hazmat.primitives.asymmetric import ec  # noqa: E402
from cryptography.x509.oid import NameOID  # noqa: E402

from certreq.backends.base import SigningBackend  # noqa: E402
from certreq.cache.lister import Lister, cluster_key, namespaced_key  # noqa: E402
from certreq.events.recorder import EventRecorder  # noqa: E402
from certreq.models.issuer import (  # noqa: E402
    Issuer,
    IssuerSpec,
    SecretKeySelector,
    VaultAuth,
    VaultIssuer,
)
from certreq.models.request import CertificateRequest, IssuerRef  # noqa: E402
from certreq.models.secret import Secret  # noqa: E402

# ---------------------------------------------------------------------------
# Crypto material
# ---------------------------------------------------------------------------


def _build_csr_pem(
    common_name: str = "example.com",
    dns_names: tuple[str, ...] = ("example.com", "www.example.com"),
    ip_addresses: tuple[str, ...] = (),
    uris: tuple[str, ...] = (),
) -> bytes:
    import ipaddress

    key = ec.generate_private_key(ec.SECP256R1())
    builder = x509.CertificateSigningRequestBuilder().subject_name(
        x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    )
    sans: list[x509.GeneralName] = [x509.DNSName(n) for n in dns_names]
    sans += [x509.IPAddress(ipaddress.ip_address(ip)) for ip in ip_addresses]
    sans += [x509.UniformResourceIdentifier(u) for u in uris]
    if sans:
        builder = builder.add_extension(x509.SubjectAlternativeName(sans), critical=False)
    csr = builder.sign(key, hashes.SHA256())
    return csr.public_bytes(serialization.Encoding.PEM)


def _build_cert_pem(common_name: str = "Test CA") -> bytes:
    key = ec.generate_private_key(ec.SECP256R1())
    subject = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    cert = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(subject)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(datetime.now(UTC))
        .not_valid_after(datetime.now(UTC) + timedelta(days=90))
        .sign(key, hashes.SHA256())
    )
    return cert.public_bytes(serialization.Encoding.PEM)


@pytest.fixture()
def make_csr():
    """Factory: ``make_csr(common_name=..., dns_names=..., ...) -> PEM bytes``."""
    return _build_csr_pem


@pytest.fixture()
def make_cert():
    """Factory: ``make_cert(common_name) -> self-signed PEM bytes``."""
    return _build_cert_pem


@pytest.fixture(scope="session")
def csr_pem() -> bytes:
    return _build_csr_pem()


@pytest.fixture(scope="session")
def leaf_pem() -> bytes:
    return _build_cert_pem("example.com")


@pytest.fixture(scope="session")
def ca_pem() -> bytes:
    return _build_cert_pem("Test CA")


# ---------------------------------------------------------------------------
# Stub signing backend
# ---------------------------------------------------------------------------


class StubBackend(SigningBackend):
    """Deterministic backend: returns fixed PEMs or raises ``error``."""

    def __init__(self, certificate: bytes, ca: bytes, error: Exception | None = None) -> None:
        self.certificate = certificate
        self.ca = ca
        self.error = error
        self.calls: list[tuple[bytes, timedelta]] = []

    def sign(self, csr_pem, duration, *, context=None):
        self.calls.append((csr_pem, duration))
        if self.error is not None:
            raise self.error
        return self.certificate, self.ca


@pytest.fixture()
def stub_backend(leaf_pem, ca_pem) -> StubBackend:
    return StubBackend(leaf_pem, ca_pem)


@pytest.fixture()
def stub_factory(stub_backend):
    """Backend factory returning :func:`stub_backend`; records its calls."""
    calls: list[tuple[str, object, Issuer]] = []

    def factory(namespace, secrets, issuer):
        calls.append((namespace, secrets, issuer))
        return stub_backend

    factory.calls = calls
    return factory


# ---------------------------------------------------------------------------
# Caches and objects
# ---------------------------------------------------------------------------


@pytest.fixture()
def issuers() -> Lister[Issuer]:
    return Lister("Issuer", key_func=namespaced_key)


@pytest.fixture()
def cluster_issuers() -> Lister[Issuer]:
    return Lister("ClusterIssuer", key_func=cluster_key)


@pytest.fixture()
def secrets() -> Lister[Secret]:
    return Lister("Secret", key_func=namespaced_key)


@pytest.fixture()
def recorder() -> EventRecorder:
    return EventRecorder()


@pytest.fixture()
def vault_issuer() -> Issuer:
    return Issuer(
        name="vault",
        namespace="default",
        spec=IssuerSpec(
            vault=VaultIssuer(
                server="https://vault.example.com:8200",
                path="pki/sign/example-dot-com",
                auth=VaultAuth(token_secret_ref=SecretKeySelector("vault-token", "token")),
            ),
        ),
    )


@pytest.fixture()
def token_secret() -> Secret:
    return Secret(namespace="default", name="vault-token", data={"token": b"s.root-token\n"})


@pytest.fixture()
def make_request(csr_pem):
    """Factory for :class:`CertificateRequest` with sensible defaults."""

    def _make(
        name: str = "req-1",
        namespace: str = "default",
        issuer_name: str = "vault",
        issuer_kind: str = "Issuer",
        csr: bytes | None = None,
        duration: timedelta = timedelta(days=30),
    ) -> CertificateRequest:
        return CertificateRequest(
            namespace=namespace,
            name=name,
            issuer_ref=IssuerRef(name=issuer_name, kind=issuer_kind),
            csr_pem=csr_pem if csr is None else csr,
            duration=duration,
        )

    return _make


# ---------------------------------------------------------------------------
# Config files
# ---------------------------------------------------------------------------


@pytest.fixture()
def minimal_config_data() -> dict:
    """Return a small but complete config dict."""
    return {
        "logging": {"level": "INFO", "format": "text"},
        "controller": {"workers": 1, "resync_seconds": 0},
        "vault": {"timeout_seconds": 10},
    }


@pytest.fixture()
def tmp_config_file(tmp_path: Path, minimal_config_data: dict) -> Path:
    """Write *minimal_config_data* to a temp YAML file and return its path."""
    cfg = tmp_path / "config.yaml"
    cfg.write_text(
        yaml.safe_dump(minimal_config_data, default_flow_style=False, sort_keys=False),
        encoding="utf-8",
    )
    return cfg


@pytest.fixture(autouse=True)
def fresh_logging():
    """Undo any ``configure_logging`` call so caplog keeps seeing records."""
    yield
    for name in ("certreq", "certreq.events"):
        logger = logging.getLogger(name)
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
        logger.setLevel(logging.NOTSET)
        logger.propagate = True
