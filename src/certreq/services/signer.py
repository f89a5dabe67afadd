"""Certificate request signer: one processing pass per call.

Pipeline::

    resolve issuer -> decode CSR -> build backend client -> sign

Each step short-circuits on its first failure.  The failure is mapped
through :mod:`certreq.services.outcome` and reported exactly once via
:class:`~certreq.events.reporter.Reporter`; success is reported as
``Ready``.

Return contract of :meth:`CertificateRequestSigner.sign`:

- the :class:`IssueResult` on success;
- ``None`` for every non-requeue outcome;
- the caught error re-raised, after reporting, for the outcomes the
  scheduler must retry with backoff.

Usage::

    signer = CertificateRequestSigner(issuers, cluster_issuers, secrets, recorder)
    try:
        result = signer.sign(request, Context.with_timeout(30))
    except CertreqError:
        queue.add_rate_limited(request.key)
"""

from __future__ import annotations

import functools
import logging
from typing import TYPE_CHECKING

from certreq.backends.vault import new_client
from certreq.core.context import Context
from certreq.core.errors import (
    BackendInitError,
    CertreqError,
    DeadlineExceededError,
    InvalidRequestError,
    NotFoundError,
    SigningError,
    TransientLookupError,
)
from certreq.core.types import OutcomeStatus
from certreq.events.reporter import Reporter
from certreq.models.result import IssueResult, Outcome
from certreq.services.csr_validator import decode_csr
from certreq.services.issuer_resolver import IssuerResolver
from certreq.services.outcome import classify_error, classify_success

if TYPE_CHECKING:
    from certreq.backends.base import BackendFactory, SigningBackend
    from certreq.cache.lister import Lister
    from certreq.config.settings import VaultSettings
    from certreq.events.recorder import EventRecorder
    from certreq.metrics.collector import MetricsCollector
    from certreq.models.issuer import Issuer
    from certreq.models.request import CertificateRequest
    from certreq.models.secret import Secret

log = logging.getLogger(__name__)


class CertificateRequestSigner:
    """Sign certificate requests against their Vault issuers.

    Holds no per-request state; one instance serves any number of
    worker threads.

    Parameters
    ----------
    issuers, cluster_issuers:
        Listers the issuer reference is resolved against.
    secrets:
        Credential source handed to the backend factory.
    recorder:
        Event sink for outcome reports.
    backend_factory:
        ``factory(namespace, secrets, issuer)`` building the signing
        client.  Defaults to :func:`certreq.backends.vault.new_client`.
    vault_settings:
        Passed to the default factory; ignored with a custom one.
    sign_timeout_seconds:
        Deadline applied when :meth:`sign` is called without a context.
    metrics:
        Optional collector; counts outcomes by status and reason.

    """

    def __init__(  # noqa: PLR0913
        self,
        issuers: Lister[Issuer],
        cluster_issuers: Lister[Issuer],
        secrets: Lister[Secret],
        recorder: EventRecorder,
        *,
        backend_factory: BackendFactory | None = None,
        vault_settings: VaultSettings | None = None,
        sign_timeout_seconds: float | None = None,
        metrics: MetricsCollector | None = None,
    ) -> None:
        self._resolver = IssuerResolver(issuers, cluster_issuers)
        self._secrets = secrets
        self._recorder = recorder
        self._backend_factory = backend_factory or functools.partial(
            new_client,
            settings=vault_settings,
        )
        self._sign_timeout = sign_timeout_seconds
        self._metrics = metrics

    # -- public API ---------------------------------------------------------

    def sign(
        self,
        request: CertificateRequest,
        context: Context | None = None,
    ) -> IssueResult | None:
        """Run one pass over *request*.

        Raises
        ------
        TransientLookupError, DeadlineExceededError
            After reporting, when the request must be requeued.

        """
        outcome, error = self._process(request, context)
        if outcome.requeue and error is not None:
            raise error
        return outcome.result

    def classify_request(
        self,
        request: CertificateRequest,
        context: Context | None = None,
    ) -> Outcome:
        """Run one pass over *request* and return its :class:`Outcome`.

        Same side effects as :meth:`sign`, but never raises pipeline
        errors.
        """
        outcome, _ = self._process(request, context)
        return outcome

    # -- pipeline -----------------------------------------------------------

    def _process(
        self,
        request: CertificateRequest,
        context: Context | None,
    ) -> tuple[Outcome, CertreqError | None]:
        if context is None:
            context = Context.with_timeout(self._sign_timeout)

        req_log = logging.LoggerAdapter(
            log,
            {
                "resource_kind": "CertificateRequest",
                "resource_namespace": request.namespace,
                "resource_name": request.name,
            },
        )
        reporter = Reporter(request, self._recorder, req_log)

        try:
            issuer = self._resolver.resolve(request.issuer_ref, request.namespace)
        except (NotFoundError, TransientLookupError) as exc:
            issuer_log = logging.LoggerAdapter(
                log,
                {
                    **req_log.extra,
                    "related_resource_name": request.issuer_ref.name,
                    "related_resource_kind": request.issuer_ref.display_kind,
                },
            )
            return self._fail(reporter.with_log(issuer_log), request, exc)

        try:
            decode_csr(request.csr_pem)
        except InvalidRequestError as exc:
            return self._fail(reporter, request, exc)

        try:
            client = self._build_client(request, issuer)
        except BackendInitError as exc:
            return self._fail(reporter, request, exc)

        try:
            certificate, ca = self._invoke_sign(client, request, context)
        except (SigningError, DeadlineExceededError) as exc:
            return self._fail(reporter, request, exc)

        outcome = classify_success(IssueResult(certificate=certificate, ca=ca))
        reporter.ready(outcome.reason, outcome.message)
        self._count(outcome)
        return outcome, None

    def _build_client(self, request: CertificateRequest, issuer: Issuer) -> SigningBackend:
        try:
            return self._backend_factory(request.namespace, self._secrets, issuer)
        except BackendInitError:
            raise
        except Exception as exc:
            detail = exc.detail if isinstance(exc, CertreqError) else str(exc)
            raise BackendInitError(detail) from exc

    @staticmethod
    def _invoke_sign(
        client: SigningBackend,
        request: CertificateRequest,
        context: Context,
    ) -> tuple[bytes, bytes]:
        try:
            return client.sign(request.csr_pem, request.duration, context=context)
        except (SigningError, DeadlineExceededError):
            raise
        except Exception as exc:
            detail = exc.detail if isinstance(exc, CertreqError) else str(exc)
            raise SigningError(detail) from exc

    def _fail(
        self,
        reporter: Reporter,
        request: CertificateRequest,
        error: CertreqError,
    ) -> tuple[Outcome, CertreqError]:
        outcome = classify_error(error, request.issuer_ref)
        if outcome.status == OutcomeStatus.FAILED:
            reporter.failed(error, outcome.reason, outcome.message)
        else:
            reporter.pending(error, outcome.reason, outcome.message)
        self._count(outcome)
        return outcome, error

    def _count(self, outcome: Outcome) -> None:
        if self._metrics is not None:
            self._metrics.increment(
                "certreq_outcomes_total",
                labels={"status": str(outcome.status), "reason": outcome.reason},
            )
