"""Work-queue controller driving the signer."""

from certreq.controller.controller import CertificateRequestController
from certreq.controller.workqueue import WorkQueue

__all__ = ["CertificateRequestController", "WorkQueue"]
