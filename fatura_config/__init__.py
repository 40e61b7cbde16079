"""
fatura_config -- single public entrypoint for runtime configuration.

Responsibility:
    ``get_active_config()`` is the only way to obtain configuration.  It
    loads a YAML set (``fatura_config/sets/default.yaml`` unless a path or
    the ``FATURA_CONFIG`` environment variable names another), applies
    overrides, and returns frozen ``FaturaSettings``.

Architecture position:
    Sits above ``fatura_kernel``.  The kernel MUST NEVER import from
    ``fatura_config``; services receive ``settings.policy`` (a kernel
    ``LedgerPolicy``) from whoever wires them.

Audit relevance:
    Every successful call emits a ``FATURA_CONFIG_TRACE`` log entry with
    the config id and checksum.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

from fatura_config.loader import load_yaml_file, merge, parse_settings
from fatura_config.schema import (
    ConfigurationError,
    DatabaseSettings,
    FaturaSettings,
    LoggingSettings,
)

_logger = logging.getLogger("fatura_kernel.config")

_DEFAULT_CONFIG_FILE = Path(__file__).parent / "sets" / "default.yaml"
CONFIG_ENV_VAR = "FATURA_CONFIG"


def get_active_config(
    path: Path | str | None = None,
    overrides: dict[str, Any] | None = None,
) -> FaturaSettings:
    """
    Load the active configuration.

    Args:
        path: YAML file to load.  Defaults to ``$FATURA_CONFIG``, then to
            the bundled ``sets/default.yaml``.
        overrides: Nested mapping deep-merged over the file contents.

    Raises:
        FileNotFoundError: the configuration file does not exist.
        ConfigurationError: a value is malformed or out of range.
    """
    config_path = Path(path or os.environ.get(CONFIG_ENV_VAR) or _DEFAULT_CONFIG_FILE)
    data = load_yaml_file(config_path)
    if overrides:
        data = merge(data, overrides)

    settings = parse_settings(data)

    _logger.info(
        "FATURA_CONFIG_TRACE",
        extra={
            "trace_type": "FATURA_CONFIG_TRACE",
            "config_id": settings.config_id,
            "config_path": str(config_path),
            "checksum": settings.checksum,
            "payment_tolerance": str(settings.policy.payment_tolerance),
            "max_conflict_retries": settings.policy.max_conflict_retries,
        },
    )
    return settings


__all__ = [
    "CONFIG_ENV_VAR",
    "ConfigurationError",
    "DatabaseSettings",
    "FaturaSettings",
    "LoggingSettings",
    "get_active_config",
]
