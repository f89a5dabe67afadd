"""CSR decoding and subject extraction.

:func:`decode_csr` is the request validator of the signing pipeline:
it turns the raw ``spec.csr`` payload into a
``cryptography.x509.CertificateSigningRequest`` or raises
:class:`InvalidRequestError`.  There is no partial success.

:func:`csr_subject_names` collects the names a signing backend needs
to build its request (common name and SANs by type).
"""

from __future__ import annotations

from dataclasses import dataclass

from cryptography import x509
from cryptography.x509.oid import NameOID

from certreq.core.errors import InvalidRequestError

_PEM_CSR_MARKERS = (
    b"-----BEGIN CERTIFICATE REQUEST-----",
    b"-----BEGIN NEW CERTIFICATE REQUEST-----",
)


@dataclass(frozen=True)
class SubjectNames:
    common_name: str
    dns_names: tuple[str, ...] = ()
    ip_addresses: tuple[str, ...] = ()
    uris: tuple[str, ...] = ()


def decode_csr(payload: bytes) -> x509.CertificateSigningRequest:
    """Decode a PEM CSR and verify its self-signature.

    Raises
    ------
    InvalidRequestError
        If the payload is empty, is not a PEM certificate request,
        cannot be parsed, or carries an invalid signature.

    """
    if not payload:
        msg = "error decoding certificate request PEM block: empty payload"
        raise InvalidRequestError(msg)
    if not any(marker in payload for marker in _PEM_CSR_MARKERS):
        msg = "error decoding certificate request PEM block"
        raise InvalidRequestError(msg)

    try:
        csr = x509.load_pem_x509_csr(payload)
    except Exception as exc:  # noqa: BLE001
        msg = f"error parsing certificate request: {exc}"
        raise InvalidRequestError(msg) from exc

    try:
        signature_ok = csr.is_signature_valid
    except Exception as exc:  # noqa: BLE001
        msg = f"error checking certificate request signature: {exc}"
        raise InvalidRequestError(msg) from exc
    if not signature_ok:
        msg = "certificate request signature is invalid"
        raise InvalidRequestError(msg)

    return csr


def _extract_cn_values(csr: x509.CertificateSigningRequest) -> list[str]:
    """Extract all Common Name values from the CSR subject."""
    return [str(attr.value) for attr in csr.subject.get_attributes_for_oid(NameOID.COMMON_NAME)]


def csr_subject_names(csr: x509.CertificateSigningRequest) -> SubjectNames:
    """Return the CN and SAN values of *csr*.

    Only the first Common Name is used; a CSR without one yields an
    empty string.
    """
    cn_values = _extract_cn_values(csr)
    try:
        san = csr.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
    except x509.ExtensionNotFound:
        return SubjectNames(common_name=cn_values[0] if cn_values else "")

    return SubjectNames(
        common_name=cn_values[0] if cn_values else "",
        dns_names=tuple(san.get_values_for_type(x509.DNSName)),
        ip_addresses=tuple(str(ip) for ip in san.get_values_for_type(x509.IPAddress)),
        uris=tuple(san.get_values_for_type(x509.UniformResourceIdentifier)),
    )
