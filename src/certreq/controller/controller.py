"""Certificate request controller.

Runs worker threads that pull request keys from a :class:`WorkQueue`
and hand each request to a :class:`CertificateRequestSigner`.  The
controller supplies the re-triggers the signer's outcome policy relies
on:

- a raised (requeue) error puts the key back with exponential backoff;
- an issuer being added or updated re-enqueues every request that
  references it, so requests pending on a missing issuer resume;
- a periodic resync re-enqueues every request that is neither issued
  nor failed.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

from certreq.core.context import Context
from certreq.core.errors import NotFoundError, TransientLookupError
from certreq.core.types import IssuerScope
from certreq.services.issuer_resolver import scope_for_kind

if TYPE_CHECKING:
    from collections.abc import Callable

    from certreq.cache.lister import Lister
    from certreq.controller.workqueue import WorkQueue
    from certreq.metrics.collector import MetricsCollector
    from certreq.models.issuer import Issuer
    from certreq.models.request import CertificateRequest
    from certreq.models.result import IssueResult
    from certreq.services.signer import CertificateRequestSigner

log = logging.getLogger(__name__)

_GET_TIMEOUT_SECONDS = 1.0


class CertificateRequestController:
    """Drive certificate requests through the signer.

    Parameters
    ----------
    signer:
        The per-request signer.
    requests:
        Lister holding the requests to process.
    queue:
        Work queue keyed by ``"namespace/name"``.
    workers:
        Number of worker threads.
    resync_seconds:
        Interval of the periodic resync; ``0`` disables it.
    sign_timeout_seconds:
        Deadline for each processing pass; ``None`` for none.
    metrics:
        Optional metrics collector.
    on_issued:
        Called with the request and its result after a successful pass.

    """

    def __init__(  # noqa: PLR0913
        self,
        signer: CertificateRequestSigner,
        requests: Lister[CertificateRequest],
        queue: WorkQueue,
        *,
        workers: int = 2,
        resync_seconds: float = 300,
        sign_timeout_seconds: float | None = None,
        metrics: MetricsCollector | None = None,
        on_issued: Callable[[CertificateRequest, IssueResult], None] | None = None,
    ) -> None:
        self._signer = signer
        self._requests = requests
        self._queue = queue
        self._workers = workers
        self._resync_seconds = resync_seconds
        self._sign_timeout = sign_timeout_seconds
        self._metrics = metrics
        self._on_issued = on_issued
        self._stop_event = threading.Event()
        self._threads: list[threading.Thread] = []

    # -- event handlers -----------------------------------------------------

    def enqueue(self, request: CertificateRequest) -> None:
        if request.status.is_terminal:
            return
        self._queue.add(request.key)

    def on_request_change(self, request: CertificateRequest) -> None:
        self.enqueue(request)

    def on_issuer_change(self, issuer: Issuer) -> None:
        """Re-enqueue every request that references *issuer*."""
        for request in self._requests.list():
            if self._references(request, issuer):
                log.debug(
                    "Issuer %s changed, enqueueing %s",
                    issuer.name,
                    request.key,
                )
                self.enqueue(request)

    @staticmethod
    def _references(request: CertificateRequest, issuer: Issuer) -> bool:
        if request.issuer_ref.name != issuer.name:
            return False
        try:
            scope = scope_for_kind(request.issuer_ref.kind)
        except TransientLookupError:
            return False
        if issuer.is_cluster_scoped:
            return scope == IssuerScope.CLUSTER
        return scope == IssuerScope.NAMESPACED and request.namespace == issuer.namespace

    # -- lifecycle ----------------------------------------------------------

    def start(self) -> None:
        """Start the worker threads and the resync loop."""
        if self._threads:
            return
        self._stop_event.clear()
        for idx in range(self._workers):
            thread = threading.Thread(
                target=self._worker_loop,
                name=f"certreq-worker-{idx}",
                daemon=True,
            )
            thread.start()
            self._threads.append(thread)
        if self._resync_seconds > 0:
            thread = threading.Thread(
                target=self._resync_loop,
                name="certreq-resync",
                daemon=True,
            )
            thread.start()
            self._threads.append(thread)
        log.info(
            "Certificate request controller started (workers=%d, resync=%ss)",
            self._workers,
            self._resync_seconds,
        )

    def stop(self, timeout: float = 10.0) -> None:
        """Signal the workers to stop, shut the queue down and wait."""
        self._stop_event.set()
        self._queue.shut_down()
        for thread in self._threads:
            thread.join(timeout=timeout)
        self._threads.clear()
        log.info("Certificate request controller stopped")

    def resync(self) -> None:
        for request in self._requests.list():
            self.enqueue(request)

    # -- processing ---------------------------------------------------------

    def _worker_loop(self) -> None:
        while not self._stop_event.is_set():
            if not self.process_next(timeout=_GET_TIMEOUT_SECONDS) and self._queue.shutting_down:
                return

    def _resync_loop(self) -> None:
        while not self._stop_event.wait(timeout=self._resync_seconds):
            try:
                self.resync()
            except Exception:
                log.exception("Resync failed")

    def process_next(self, timeout: float | None = None) -> bool:
        """Process one key from the queue.

        Returns ``False`` if no key arrived within *timeout*.
        """
        key = self._queue.get(timeout=timeout)
        if key is None:
            return False
        try:
            self.sync(key)
        except Exception as exc:  # noqa: BLE001
            delay = self._queue.add_rate_limited(key)
            log.info(
                "Requeueing %s in %.3fs after error: %s",
                key,
                delay,
                exc,
            )
            if self._metrics:
                self._metrics.increment("certreq_controller_requeues_total")
        else:
            self._queue.forget(key)
        finally:
            self._queue.done(key)
        return True

    def sync(self, key: str) -> None:
        """Run one signing pass for the request stored under *key*.

        Raises whatever the signer raises for requeue outcomes.
        """
        namespace, _, name = key.partition("/")
        try:
            request = self._requests.get(namespace, name)
        except NotFoundError:
            log.debug("Request %s no longer exists, skipping", key)
            return

        if request.status.is_terminal:
            log.debug("Request %s already issued or failed, skipping", key)
            return

        try:
            result = self._signer.sign(request, Context.with_timeout(self._sign_timeout))
        except Exception:
            if self._metrics:
                self._metrics.increment("certreq_controller_sync_errors_total")
            raise

        if result is None:
            return

        request.status.certificate = result.certificate
        request.status.ca = result.ca
        if self._on_issued is not None:
            try:
                self._on_issued(request, result)
            except Exception:
                log.exception("on_issued callback failed for %s", key)
                if self._metrics:
                    self._metrics.increment("certreq_controller_callback_errors_total")
