"""certreq command-line entry point.

Usage::

    certreq -c config.yaml --validate-only
    certreq -c config.yaml sign -f manifests.yaml --output-dir out/
    certreq -c config.yaml run -f manifests.yaml --timeout 120
    certreq -c config.yaml run -f manifests.yaml --metrics-file certreq.prom
    python -m certreq -c config.yaml sign -f manifests.yaml
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

log = logging.getLogger(__name__)


def _get_version() -> str:
    from certreq import __version__

    return __version__


def _add_metrics_option(subparser: argparse.ArgumentParser) -> None:
    subparser.add_argument(
        "--metrics-file",
        metavar="PATH",
        default=None,
        help="Write counters in Prometheus text format here on exit",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="certreq",
        description="certreq: sign certificate requests with Vault issuers",
    )
    parser.add_argument(
        "-c",
        "--config",
        required=True,
        metavar="PATH",
        help="Path to the configuration file (YAML or JSON).",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        default=False,
        help="Enable debug output (full tracebacks, verbose logging).",
    )
    parser.add_argument(
        "--validate-only",
        action="store_true",
        default=False,
        help="Validate the configuration file and exit.",
    )
    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"%(prog)s {_get_version()}",
    )

    subparsers = parser.add_subparsers(dest="command")

    # sign
    sign_parser = subparsers.add_parser(
        "sign",
        help="Run one signing pass over every request in a manifest file",
    )
    sign_parser.add_argument("-f", "--file", required=True, metavar="PATH", help="Manifest file")
    sign_parser.add_argument(
        "--output-dir",
        metavar="DIR",
        default=None,
        help="Write issued certificates and CA chains here",
    )
    _add_metrics_option(sign_parser)

    # run
    run_parser = subparsers.add_parser(
        "run",
        help="Run the controller until every request is issued or failed",
    )
    run_parser.add_argument("-f", "--file", required=True, metavar="PATH", help="Manifest file")
    run_parser.add_argument(
        "--output-dir",
        metavar="DIR",
        default=None,
        help="Write issued certificates and CA chains here",
    )
    _add_metrics_option(run_parser)
    run_parser.add_argument(
        "--timeout",
        type=float,
        default=300.0,
        help="Give up after this many seconds (default 300)",
    )

    return parser


def _print_error(message: str) -> None:
    """Print a user-facing error to stderr."""
    print(f"certreq: error: {message}", file=sys.stderr)  # noqa: T201


def main(argv: list[str] | None = None) -> None:
    """CLI entry point.  Parses arguments, loads config, dispatches."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    # -- resolve config path ---
    config_path = Path(args.config)
    if not config_path.is_file():
        _print_error(f"configuration file not found: {config_path}")
        sys.exit(1)

    # -- bootstrap logging early (basic stderr until config is loaded) ---
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
    )

    # -- load & validate config ---
    try:
        from certreq.config import CertreqConfig, ConfigValidationError

        config = CertreqConfig(config_file=config_path)
    except ConfigValidationError as exc:
        _print_error(str(exc))
        sys.exit(1)
    except Exception as exc:
        if args.debug:
            raise
        _print_error(f"failed to load configuration: {exc}")
        sys.exit(1)

    # -- replace bootstrap logging with structured logging ---
    from certreq.logging import configure_logging

    configure_logging(config.settings.logging)

    if args.validate_only:
        _print_settings_summary(config)
        sys.exit(0)

    command = args.command
    if command == "sign":
        from certreq.cli.commands.sign import run_sign

        sys.exit(run_sign(config, args))
    elif command == "run":
        from certreq.cli.commands.run import run_controller

        sys.exit(run_controller(config, args))
    else:
        parser.print_help(sys.stderr)
        sys.exit(2)


def _print_settings_summary(config) -> None:
    """Print a short summary of the loaded configuration."""
    s = config.settings
    lines = [
        f"config:      {config!r}",
        f"logging:     level={s.logging.level} format={s.logging.format}",
        (
            f"controller:  workers={s.controller.workers} "
            f"resync={s.controller.resync_seconds}s "
            f"sign_timeout={s.controller.sign_timeout_seconds}s"
        ),
        f"vault:       timeout={s.vault.timeout_seconds}s verify_tls={s.vault.verify_tls}",
    ]
    print("\n".join(lines))  # noqa: T201
