"""Shared helpers for the signing subcommands."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from certreq.metrics.collector import MetricsCollector
    from certreq.models.request import CertificateRequest
    from certreq.models.result import IssueResult

log = logging.getLogger(__name__)


def write_result(output_dir: str | None, request: CertificateRequest, result: IssueResult) -> None:
    """Write ``<namespace>.<name>.crt`` and ``<namespace>.<name>.ca.crt``."""
    if not output_dir:
        return
    out = Path(output_dir)
    out.mkdir(parents=True, exist_ok=True)
    stem = f"{request.namespace}.{request.name}"
    (out / f"{stem}.crt").write_bytes(result.certificate)
    (out / f"{stem}.ca.crt").write_bytes(result.ca)
    log.info("Wrote %s/%s.crt", out, stem)


def describe(request: CertificateRequest) -> str:
    """One line summarising the request's ``Ready`` condition."""
    from certreq.core.types import ConditionType

    cond = request.status.get_condition(ConditionType.READY)
    if cond is None:
        return f"{request.key}\tUnknown\t-"
    return f"{request.key}\t{cond.reason}\t{cond.message}"


def write_metrics(path: str | None, metrics: MetricsCollector) -> None:
    """Write the counters to *path*; a failure is logged, not raised."""
    if not path:
        return
    try:
        metrics.write(path)
    except OSError as exc:
        log.error("Cannot write metrics to %s: %s", path, exc)  # noqa: TRY400
        return
    log.info("Wrote metrics to %s", path)
