"""``certreq run``: drive requests through the controller until settled."""

from __future__ import annotations

import logging
import time

log = logging.getLogger(__name__)

_POLL_SECONDS = 0.2


def run_controller(config, args) -> int:
    """Start the controller and wait until every request is issued or failed.

    Pending requests keep being retried (backoff, resync, issuer
    updates) until ``--timeout`` elapses.  Returns 0 when every
    request was issued.
    """
    from certreq.app import Container
    from certreq.cli.commands._output import describe, write_metrics, write_result
    from certreq.models.manifest import ManifestError, load_manifests

    try:
        manifests = load_manifests(args.file)
    except (ManifestError, OSError) as exc:
        log.error("Cannot load manifests: %s", exc)  # noqa: TRY400
        return 1

    container = Container(
        config.settings,
        on_issued=lambda req, result: write_result(args.output_dir, req, result),
    )
    container.controller.start()
    try:
        container.load(manifests)
        deadline = time.monotonic() + args.timeout
        while time.monotonic() < deadline:
            if all(r.status.is_terminal for r in manifests.requests):
                break
            time.sleep(_POLL_SECONDS)
        else:
            log.warning("Timed out after %ss with requests still pending", args.timeout)
    except KeyboardInterrupt:
        log.warning("Interrupted")
    finally:
        container.controller.stop()
    write_metrics(args.metrics_file, container.metrics)

    for request in manifests.requests:
        print(describe(request))  # noqa: T201
    return 0 if all(r.status.certificate for r in manifests.requests) else 1
