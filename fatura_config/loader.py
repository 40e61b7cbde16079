"""
Configuration loader (``fatura_config.loader``).

Responsibility
--------------
Loads a YAML configuration file, applies overrides, and parses the result
into ``fatura_config.schema`` dataclasses.  Callers use
``fatura_config.get_active_config()``; this module is its implementation.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Wrong type or out-of-range value  -> ``ConfigurationError``.
"""

from __future__ import annotations

import copy
import hashlib
import json
import logging
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from fatura_config.schema import (
    ConfigurationError,
    DatabaseSettings,
    FaturaSettings,
    LoggingSettings,
)
from fatura_kernel.domain.policy import LedgerPolicy

_LOG_LEVELS = frozenset(logging.getLevelNamesMapping())


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML file; an empty file yields an empty dict."""
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigurationError(str(path), "top level must be a mapping")
    return data


def merge(base: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    """Deep-merge ``overrides`` into a copy of ``base``."""
    merged = copy.deepcopy(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def compute_checksum(data: dict[str, Any]) -> str:
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def parse_settings(data: dict[str, Any]) -> FaturaSettings:
    """Build FaturaSettings from a merged configuration document."""
    database = _section(data, "database")
    log_section = _section(data, "logging")
    payments = _section(data, "payments")
    storage = _section(data, "storage")
    invoices = _section(data, "invoices")

    level = str(log_section.get("level", "INFO")).upper()
    if level not in _LOG_LEVELS:
        raise ConfigurationError("logging.level", f"unknown level {level!r}")

    try:
        policy = LedgerPolicy(
            payment_tolerance=_decimal(payments, "tolerance", "0.00", "payments"),
            max_conflict_retries=_int(storage, "max_conflict_retries", 3, "storage"),
            track_payable_forecast=_bool(
                invoices, "track_payable_forecast", True, "invoices"
            ),
            payable_description=str(
                invoices.get("payable_description", LedgerPolicy.payable_description)
            ),
            payment_description=str(
                invoices.get("payment_description", LedgerPolicy.payment_description)
            ),
        )
    except ValueError as exc:
        if isinstance(exc, ConfigurationError):
            raise
        raise ConfigurationError("policy", str(exc)) from exc

    return FaturaSettings(
        config_id=str(data.get("config_id", "default")),
        database=DatabaseSettings(
            url=str(database.get("url", DatabaseSettings.url)),
            echo=_bool(database, "echo", False, "database"),
            pool_size=_int(database, "pool_size", 10, "database"),
            max_overflow=_int(database, "max_overflow", 5, "database"),
        ),
        logging=LoggingSettings(level=level),
        policy=policy,
        checksum=compute_checksum(data),
    )


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigurationError(name, "must be a mapping")
    return section


def _bool(section: dict[str, Any], key: str, default: bool, prefix: str) -> bool:
    value = section.get(key, default)
    if not isinstance(value, bool):
        raise ConfigurationError(f"{prefix}.{key}", f"expected true/false, got {value!r}")
    return value


def _int(section: dict[str, Any], key: str, default: int, prefix: str) -> int:
    value = section.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(f"{prefix}.{key}", f"expected an integer, got {value!r}")
    return value


def _decimal(section: dict[str, Any], key: str, default: str, prefix: str) -> Decimal:
    value = section.get(key, default)
    try:
        result = Decimal(str(value))
    except InvalidOperation:
        raise ConfigurationError(
            f"{prefix}.{key}", f"expected a decimal, got {value!r}"
        ) from None
    if not result.is_finite():
        raise ConfigurationError(f"{prefix}.{key}", f"expected a decimal, got {value!r}")
    return result
