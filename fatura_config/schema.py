"""
Configuration schema (``fatura_config.schema``).

Frozen dataclasses describing a loaded configuration set.  The kernel
never sees these types; it receives the ``LedgerPolicy`` built from them.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from fatura_kernel.domain.policy import LedgerPolicy


class ConfigurationError(ValueError):
    """A configuration value is missing, malformed or out of range."""

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Invalid configuration {key}: {reason}")


@dataclass(frozen=True)
class DatabaseSettings:
    url: str = "sqlite:///fatura.db"
    echo: bool = False
    pool_size: int = 10
    max_overflow: int = 5


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"


@dataclass(frozen=True)
class FaturaSettings:
    """
    A fully loaded configuration set.

    Guarantees:
        - Every field has been type-checked by the loader.
        - ``checksum`` is the SHA-256 of the canonical merged document, so
          two processes can confirm they run on identical configuration.
    """

    config_id: str
    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    policy: LedgerPolicy = field(default_factory=LedgerPolicy)
    checksum: str = ""
