"""Abstract base class for signing backends.

A backend client is constructed once per processing pass from the
resolved issuer and a credential source (the secrets lister), then
asked to :meth:`SigningBackend.sign` exactly one CSR.

Construction failures must raise :class:`BackendInitError`; signing
failures must raise :class:`SigningError`, or
:class:`DeadlineExceededError` when the pass deadline cut the call
short.
"""

from __future__ import annotations

import abc
from collections.abc import Callable
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from datetime import timedelta

    from certreq.cache.lister import Lister
    from certreq.core.context import Context
    from certreq.models.issuer import Issuer
    from certreq.models.secret import Secret


class SigningBackend(abc.ABC):
    """Base class for all signing backend clients."""

    @abc.abstractmethod
    def sign(
        self,
        csr_pem: bytes,
        duration: timedelta,
        *,
        context: Context | None = None,
    ) -> tuple[bytes, bytes]:
        """Sign a PEM CSR for *duration*.

        Parameters
        ----------
        csr_pem:
            PEM-encoded PKCS#10 certificate signing request, already
            validated by the caller.
        duration:
            Requested certificate lifetime.
        context:
            Optional deadline/cancellation for the call.

        Returns
        -------
        tuple[bytes, bytes]
            ``(certificate, ca)``: the PEM leaf certificate and the PEM
            issuer chain.

        Raises
        ------
        SigningError
            If the backend rejects or cannot process the request.
        DeadlineExceededError
            If *context* expired before the backend answered.

        """


BackendFactory = Callable[[str, "Lister[Secret]", "Issuer"], SigningBackend]
"""``factory(namespace, secrets, issuer) -> SigningBackend``."""
