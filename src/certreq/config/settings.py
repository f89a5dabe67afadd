"""Typed, frozen dataclasses for every configuration section.

This module is the **single source of truth** for default values.
JSON Schema defaults exist only for documentation; these builders are
what the application actually reads.

Access pattern::

    from certreq.config import CertreqConfig

    ctl = CertreqConfig(config_file=path).settings.controller
    print(ctl.workers, ctl.resync_seconds)
"""

from __future__ import annotations

from dataclasses import dataclass

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LoggingSettings:
    """Log level and output format (``text`` or ``json``)."""

    level: str
    format: str


def _build_logging(data: dict | None) -> LoggingSettings:
    d = data or {}
    return LoggingSettings(
        level=d.get("level", "INFO"),
        format=d.get("format", "text"),
    )


# ---------------------------------------------------------------------------
# Controller
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ControllerSettings:
    """Worker pool, resync and retry backoff."""

    workers: int
    resync_seconds: float
    base_delay_seconds: float
    max_delay_seconds: float
    sign_timeout_seconds: float | None


def _build_controller(data: dict | None) -> ControllerSettings:
    d = data or {}
    return ControllerSettings(
        workers=d.get("workers", 2),
        resync_seconds=d.get("resync_seconds", 300),
        base_delay_seconds=d.get("base_delay_seconds", 0.005),
        max_delay_seconds=d.get("max_delay_seconds", 1000),
        sign_timeout_seconds=d.get("sign_timeout_seconds", 60),
    )


# ---------------------------------------------------------------------------
# Vault
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class VaultSettings:
    """HTTP behaviour of the Vault client."""

    timeout_seconds: float
    verify_tls: bool


def _build_vault(data: dict | None) -> VaultSettings:
    d = data or {}
    return VaultSettings(
        timeout_seconds=d.get("timeout_seconds", 30),
        verify_tls=d.get("verify_tls", True),
    )


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CertreqSettings:
    logging: LoggingSettings
    controller: ControllerSettings
    vault: VaultSettings


def build_settings(data: dict | None) -> CertreqSettings:
    """Materialise the typed settings tree from raw config data."""
    d = data or {}
    return CertreqSettings(
        logging=_build_logging(d.get("logging")),
        controller=_build_controller(d.get("controller")),
        vault=_build_vault(d.get("vault")),
    )
