"""Error taxonomy for the signing pipeline.

Every failure a processing pass can hit is raised as one of the
:class:`CertreqError` subclasses below.  The outcome classifier keys
its policy table on these classes, so each kind belongs to exactly one
pipeline step:

- :class:`NotFoundError` -- issuer (and cache) lookups
- :class:`TransientLookupError` -- any other issuer lookup failure
- :class:`InvalidRequestError` -- CSR decoding
- :class:`BackendInitError` -- signing backend construction
- :class:`SigningError` -- signing backend ``sign``
- :class:`DeadlineExceededError` -- ``sign`` interrupted by the deadline
"""

from __future__ import annotations


class CertreqError(Exception):
    """Base class for all pipeline errors.

    Parameters
    ----------
    detail:
        Human-readable description of the failure.
    retryable:
        Whether the failure is transient and the scheduler should
        retry the request with backoff.  Defaults per subclass.

    """

    retryable_default = False

    def __init__(self, detail: str, *, retryable: bool | None = None) -> None:
        self.detail = detail
        self.retryable = self.retryable_default if retryable is None else retryable
        super().__init__(detail)


class NotFoundError(CertreqError):
    """The referenced object does not exist."""

    def __init__(self, kind: str, name: str, namespace: str | None = None) -> None:
        self.kind = kind
        self.name = name
        self.namespace = namespace
        where = f"{namespace}/{name}" if namespace else name
        super().__init__(f'{kind} "{where}" not found')


class TransientLookupError(CertreqError):
    """An issuer lookup failed for a reason other than not-found."""

    retryable_default = True


class InvalidRequestError(CertreqError):
    """The signing-request payload could not be decoded or validated."""


class BackendInitError(CertreqError):
    """The signing backend client could not be constructed."""


class SigningError(CertreqError):
    """The signing backend rejected or could not process the request."""


class DeadlineExceededError(CertreqError):
    """The processing deadline expired, or the pass was cancelled."""

    retryable_default = True
