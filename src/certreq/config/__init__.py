"""Configuration subsystem for certreq.

Public API::

    from certreq.config import CertreqConfig

    cfg = CertreqConfig(config_file="config.yaml")
    workers = cfg.settings.controller.workers
"""

from certreq.config.certreq_config import CertreqConfig, ConfigValidationError
from certreq.config.settings import (
    CertreqSettings,
    ControllerSettings,
    LoggingSettings,
    VaultSettings,
    build_settings,
)

__all__ = [
    "CertreqConfig",
    "CertreqSettings",
    "ConfigValidationError",
    "ControllerSettings",
    "LoggingSettings",
    "VaultSettings",
    "build_settings",
]
