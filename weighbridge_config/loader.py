"""
Configuration loader.

Reads a YAML document with PyYAML, applies environment overrides, and
parses the result into ``WeighbridgeConfig``.

* Missing required key  -> ``ConfigurationError``.
* Invalid value         -> ``ConfigurationError``.
* Malformed YAML        -> ``yaml.YAMLError`` propagates.
"""

from __future__ import annotations

import os
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Mapping

import yaml

from weighbridge_config.schema import (
    CacheSettings,
    DatabaseSettings,
    InvoiceSettings,
    LoggingSettings,
    NumberingSettings,
    VarianceSettings,
    WeighbridgeConfig,
)
from weighbridge_kernel.exceptions import ConfigurationError

ENV_DATABASE_URL = "WEIGHBRIDGE_DATABASE_URL"
ENV_LOG_LEVEL = "WEIGHBRIDGE_LOG_LEVEL"
ENV_VARIANCE_TOLERANCE = "WEIGHBRIDGE_VARIANCE_TOLERANCE_PCT"

_VALID_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _section(data: Mapping[str, Any], name: str) -> dict[str, Any]:
    value = data.get(name)
    if value is None:
        raise ConfigurationError(f"Missing configuration section: {name}")
    if not isinstance(value, dict):
        raise ConfigurationError(f"Configuration section {name} must be a mapping")
    return value


def _required(section: Mapping[str, Any], name: str, key: str) -> Any:
    if key not in section or section[key] is None:
        raise ConfigurationError(f"Missing configuration key: {name}.{key}")
    return section[key]


def _positive_int(value: Any, label: str) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{label} must be an integer, got {value!r}") from exc
    if number <= 0:
        raise ConfigurationError(f"{label} must be positive, got {number}")
    return number


def parse_tolerance(value: Any) -> Decimal:
    try:
        tolerance = Decimal(str(value))
    except InvalidOperation as exc:
        raise ConfigurationError(f"variance.tolerance_pct is not a number: {value!r}") from exc
    if tolerance < 0 or tolerance > 100:
        raise ConfigurationError(f"variance.tolerance_pct must be within 0-100, got {tolerance}")
    return tolerance


def apply_env_overrides(data: dict[str, Any], environ: Mapping[str, str]) -> dict[str, Any]:
    """Return a copy of ``data`` with environment overrides applied."""
    merged = {k: dict(v) if isinstance(v, dict) else v for k, v in data.items()}
    if environ.get(ENV_DATABASE_URL):
        merged.setdefault("database", {})["url"] = environ[ENV_DATABASE_URL]
    if environ.get(ENV_LOG_LEVEL):
        merged.setdefault("logging", {})["level"] = environ[ENV_LOG_LEVEL]
    if environ.get(ENV_VARIANCE_TOLERANCE):
        merged.setdefault("variance", {})["tolerance_pct"] = environ[ENV_VARIANCE_TOLERANCE]
    return merged


def parse_config(data: Mapping[str, Any], source: str | None = None) -> WeighbridgeConfig:
    """Build a ``WeighbridgeConfig`` from a parsed YAML mapping."""
    db = _section(data, "database")
    database = DatabaseSettings(
        url=str(_required(db, "database", "url")),
        pool_size=_positive_int(db.get("pool_size", 20), "database.pool_size"),
        max_overflow=int(db.get("max_overflow", 10)),
        pool_timeout=_positive_int(db.get("pool_timeout", 30), "database.pool_timeout"),
        statement_timeout_ms=_positive_int(
            db.get("statement_timeout_ms", 5000), "database.statement_timeout_ms"
        ),
        echo=bool(db.get("echo", False)),
    )

    cache_data = data.get("cache") or {}
    cache = CacheSettings(
        key_version=str(cache_data.get("key_version", "v1")),
        short_ttl=_positive_int(cache_data.get("short_ttl", 300), "cache.short_ttl"),
        long_ttl=_positive_int(cache_data.get("long_ttl", 3600), "cache.long_ttl"),
    )

    variance = VarianceSettings(
        tolerance_pct=parse_tolerance(
            _required(_section(data, "variance"), "variance", "tolerance_pct")
        )
    )

    invoice_data = data.get("invoice") or {}
    invoice = InvoiceSettings(
        due_days=_positive_int(invoice_data.get("due_days", 30), "invoice.due_days"),
        number_padding=_positive_int(
            invoice_data.get("number_padding", 7), "invoice.number_padding"
        ),
    )

    numbering_data = data.get("numbering") or {}
    padding = dict(NumberingSettings().padding)
    for prefix, width in (numbering_data.get("padding") or {}).items():
        padding[str(prefix)] = _positive_int(width, f"numbering.padding.{prefix}")
    padding["INV"] = invoice.number_padding
    numbering = NumberingSettings(padding=padding)

    level = str((data.get("logging") or {}).get("level", "INFO")).upper()
    if level not in _VALID_LEVELS:
        raise ConfigurationError(f"logging.level must be one of {sorted(_VALID_LEVELS)}, got {level}")

    return WeighbridgeConfig(
        database=database,
        cache=cache,
        variance=variance,
        invoice=invoice,
        numbering=numbering,
        logging=LoggingSettings(level=level),
        source=source,
    )


def load_config(path: Path, environ: Mapping[str, str] | None = None) -> WeighbridgeConfig:
    """Load, override and parse one configuration file."""
    data = load_yaml_file(path)
    data = apply_env_overrides(data, os.environ if environ is None else environ)
    return parse_config(data, source=str(path))
