"""
Weighbridge configuration schema.

Frozen dataclasses the loader builds from YAML.  Every runtime setting the
system reads is one of these fields; nothing reads the YAML or the
environment directly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal


@dataclass(frozen=True)
class DatabaseSettings:
    url: str
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30
    statement_timeout_ms: int = 5000
    echo: bool = False


@dataclass(frozen=True)
class CacheSettings:
    key_version: str = "v1"
    short_ttl: int = 300
    long_ttl: int = 3600


@dataclass(frozen=True)
class VarianceSettings:
    """Deviation (percent of expected weight) above which variance_flag is raised."""

    tolerance_pct: Decimal


@dataclass(frozen=True)
class InvoiceSettings:
    due_days: int = 30
    number_padding: int = 7


@dataclass(frozen=True)
class NumberingSettings:
    padding: dict[str, int] = field(
        default_factory=lambda: {"ENT": 7, "INV": 7, "VEN": 4, "VEH": 4, "PLT": 2}
    )


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"


@dataclass(frozen=True)
class WeighbridgeConfig:
    database: DatabaseSettings
    cache: CacheSettings
    variance: VarianceSettings
    invoice: InvoiceSettings
    numbering: NumberingSettings
    logging: LoggingSettings
    source: str | None = None
