"""``certreq sign``: one signing pass per request, no retries."""

from __future__ import annotations

import logging

from certreq.core.types import OutcomeStatus

log = logging.getLogger(__name__)


def run_sign(config, args) -> int:
    """Classify every request in the manifest file once.

    Returns the process exit status: 0 when every request was issued.
    """
    from certreq.app import Container
    from certreq.cli.commands._output import write_metrics, write_result
    from certreq.models.manifest import ManifestError, load_manifests

    try:
        manifests = load_manifests(args.file)
    except (ManifestError, OSError) as exc:
        log.error("Cannot load manifests: %s", exc)  # noqa: TRY400
        return 1

    container = Container(config.settings)
    try:
        container.load(manifests)
        all_issued = True
        for request in manifests.requests:
            outcome = container.signer.classify_request(request)
            print(f"{request.key}\t{outcome.status}\t{outcome.reason}\t{outcome.message}")  # noqa: T201
            if outcome.status != OutcomeStatus.ISSUED:
                all_issued = False
                continue
            write_result(args.output_dir, request, outcome.result)
    finally:
        container.queue.shut_down()
    write_metrics(args.metrics_file, container.metrics)
    return 0 if all_issued else 1
