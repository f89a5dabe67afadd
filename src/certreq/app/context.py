"""Dependency container for certreq.

Created once at startup from the typed settings.  Owns the caches, the
event recorder, the metrics collector, the signer and the controller,
all wired to each other.

Usage::

    from certreq.app import Container

    c = Container(settings)
    c.load(manifests)
    c.controller.start()
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from certreq.cache.lister import Lister, cluster_key, namespaced_key
from certreq.controller.controller import CertificateRequestController
from certreq.controller.workqueue import WorkQueue
from certreq.core.types import CLUSTER_ISSUER_KIND, ISSUER_KIND
from certreq.events.recorder import EventRecorder
from certreq.metrics.collector import MetricsCollector
from certreq.services.signer import CertificateRequestSigner

if TYPE_CHECKING:
    from collections.abc import Callable

    from certreq.backends.base import BackendFactory
    from certreq.config.settings import CertreqSettings
    from certreq.models.issuer import Issuer
    from certreq.models.manifest import Manifests
    from certreq.models.request import CertificateRequest
    from certreq.models.result import IssueResult
    from certreq.models.secret import Secret


class Container:
    """Application-wide dependency container.

    Parameters
    ----------
    settings:
        The typed settings tree.
    backend_factory:
        Optional signing backend factory; defaults to Vault.
    on_issued:
        Optional callback for the controller on each issued request.

    """

    def __init__(
        self,
        settings: CertreqSettings,
        *,
        backend_factory: BackendFactory | None = None,
        on_issued: Callable[[CertificateRequest, IssueResult], None] | None = None,
    ) -> None:
        self.settings = settings
        ctl = settings.controller

        self.issuers: Lister[Issuer] = Lister(ISSUER_KIND, key_func=namespaced_key)
        self.cluster_issuers: Lister[Issuer] = Lister(CLUSTER_ISSUER_KIND, key_func=cluster_key)
        self.secrets: Lister[Secret] = Lister("Secret", key_func=namespaced_key)
        self.requests: Lister[CertificateRequest] = Lister(
            "CertificateRequest",
            key_func=namespaced_key,
        )

        self.recorder = EventRecorder()
        self.metrics = MetricsCollector()

        self.signer = CertificateRequestSigner(
            self.issuers,
            self.cluster_issuers,
            self.secrets,
            self.recorder,
            backend_factory=backend_factory,
            vault_settings=settings.vault,
            sign_timeout_seconds=ctl.sign_timeout_seconds,
            metrics=self.metrics,
        )

        self.queue = WorkQueue(
            base_delay=ctl.base_delay_seconds,
            max_delay=ctl.max_delay_seconds,
        )
        self.controller = CertificateRequestController(
            self.signer,
            self.requests,
            self.queue,
            workers=ctl.workers,
            resync_seconds=ctl.resync_seconds,
            sign_timeout_seconds=ctl.sign_timeout_seconds,
            metrics=self.metrics,
            on_issued=on_issued,
        )

        self.issuers.on_change(self.controller.on_issuer_change)
        self.cluster_issuers.on_change(self.controller.on_issuer_change)
        self.requests.on_change(self.controller.on_request_change)

    def load(self, manifests: Manifests) -> None:
        """Seed the caches.  Secrets and issuers go in before requests."""
        for secret in manifests.secrets:
            self.secrets.add(secret)
        for issuer in manifests.issuers:
            self.issuers.add(issuer)
        for issuer in manifests.cluster_issuers:
            self.cluster_issuers.add(issuer)
        for request in manifests.requests:
            self.requests.add(request)
