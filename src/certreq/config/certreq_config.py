"""certreq configuration loader.

Usage::

    cfg = CertreqConfig(config_file="/etc/certreq/config.yaml")
    cfg.settings.controller.workers  # typed access

Loading runs in three stages: ``${VAR}`` / ``${VAR:-default}``
references are resolved, the result is validated against the bundled
JSON schema, then :meth:`CertreqConfig.additional_checks` runs the
cross-field rules.  All problems of a stage are reported together in a
single :class:`ConfigValidationError`.
"""

from __future__ import annotations

import json
import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml
from jsonschema import Draft202012Validator

from certreq.config.settings import CertreqSettings, build_settings

_SCHEMA_PATH = Path(__file__).parent / "schema.json"

_ENV_RE = re.compile(
    r"^\$\{([^}:]+?)(?::-(.*))?\}$",
    re.DOTALL,
)

_MAX_WORKERS = 64

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Validation error collector
# ---------------------------------------------------------------------------


class ConfigValidationError(Exception):
    """Raised when schema or cross-field validation finds problems."""

    def __init__(self, errors: list[str]) -> None:
        """Store *errors* and build a human-readable message."""
        self.errors = errors
        body = "\n".join(f"  - {e}" for e in errors)
        super().__init__(f"Configuration validation failed:\n{body}")


# ---------------------------------------------------------------------------
# Environment variable resolution
# ---------------------------------------------------------------------------


def _resolve_value(value: str, path: str) -> str:
    """Replace ``${VAR}`` or ``${VAR:-default}`` with env var value."""
    match = _ENV_RE.match(value)
    if match is None:
        return value
    var_name = match.group(1)
    fallback = match.group(2)
    resolved = os.environ.get(var_name)
    if resolved is not None:
        return resolved
    if fallback is not None:
        return fallback
    raise ConfigValidationError(
        [
            f"Environment variable '${{{var_name}}}' referenced "
            f"at '{path}' is not set and has no default",
        ],
    )


def _resolve_env_vars(
    data: Any,  # noqa: ANN401
    path: str = "",
) -> None:
    """Walk *data* in-place and resolve ``${VAR}``/``${VAR:-default}`` strings."""
    if isinstance(data, dict):
        for key in data:
            child_path = f"{path}.{key}" if path else key
            if isinstance(data[key], str):
                data[key] = _resolve_value(data[key], child_path)
            elif isinstance(data[key], (dict, list)):
                _resolve_env_vars(data[key], child_path)
    elif isinstance(data, list):
        for idx, item in enumerate(data):
            child_path = f"{path}[{idx}]"
            if isinstance(item, str):
                data[idx] = _resolve_value(item, child_path)
            elif isinstance(item, (dict, list)):
                _resolve_env_vars(item, child_path)


def _read_file(path: Path) -> dict:
    with path.open(encoding="utf-8") as f:
        if path.suffix in (".yaml", ".yml"):
            data = yaml.safe_load(f)
        else:
            data = json.load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        msg = f"{path}: top level must be a mapping"
        raise ConfigValidationError([msg])
    return data


def _schema_errors(data: dict) -> list[str]:
    schema = json.loads(_SCHEMA_PATH.read_text(encoding="utf-8"))
    validator = Draft202012Validator(schema)
    errors = []
    for err in sorted(validator.iter_errors(data), key=lambda e: list(e.absolute_path)):
        where = ".".join(str(p) for p in err.absolute_path) or "<root>"
        errors.append(f"{where}: {err.message}")
    return errors


# ---------------------------------------------------------------------------
# Config class
# ---------------------------------------------------------------------------


class CertreqConfig:
    """Central configuration for certreq.

    After construction the typed settings tree is available at
    :pyattr:`settings`.
    """

    def __init__(self, *, config_file: str | Path) -> None:
        """Load and validate the configuration file.

        Parameters
        ----------
        config_file:
            Path to the YAML/JSON configuration file.

        """
        self._source = Path(config_file)
        self._data = self._load()

        errors = _schema_errors(self._data)
        if errors:
            raise ConfigValidationError(errors)
        self.additional_checks()

        self._settings: CertreqSettings = build_settings(self._data)

    def _load(self) -> dict:
        """Read the config file then resolve ``${VAR}`` env-var references.

        Resolution runs **before** schema validation so that substituted
        values (e.g. ``${LOG_LEVEL:-INFO}``) are checked against the
        schema's enum constraints.
        """
        data = _read_file(self._source)
        _resolve_env_vars(data)
        return data

    # -- access -------------------------------------------------------------

    @property
    def settings(self) -> CertreqSettings:
        """Fully-typed, frozen settings tree."""
        return self._settings

    # -- cross-field validation ---------------------------------------------

    def additional_checks(self) -> None:
        """Semantic and cross-field validation, after the schema passes."""
        errors: list[str] = []
        warnings: list[str] = []

        controller = self._data.get("controller") or {}
        vault = self._data.get("vault") or {}

        base = controller.get("base_delay_seconds", 0.005)
        cap = controller.get("max_delay_seconds", 1000)
        if base > cap:
            errors.append(
                f"controller.base_delay_seconds ({base}) must be <= "
                f"controller.max_delay_seconds ({cap})",
            )

        workers = controller.get("workers", 2)
        if workers > _MAX_WORKERS:
            warnings.append(
                f"controller.workers={workers} is unusually high; "
                "every worker may hold an open connection to Vault",
            )

        sign_timeout = controller.get("sign_timeout_seconds", 60)
        vault_timeout = vault.get("timeout_seconds", 30)
        if sign_timeout is not None and sign_timeout < vault_timeout:
            warnings.append(
                f"controller.sign_timeout_seconds ({sign_timeout}) is shorter than "
                f"vault.timeout_seconds ({vault_timeout}); slow Vault calls will "
                "be cut off and requeued",
            )

        if vault.get("verify_tls") is False:
            warnings.append("vault.verify_tls is false; Vault server certificates are not checked")

        for w in warnings:
            log.warning("Config warning: %s", w)

        if errors:
            raise ConfigValidationError(errors)

    def __repr__(self) -> str:
        """Return a developer-friendly representation."""
        return f"<CertreqConfig config_file={self._source}>"
