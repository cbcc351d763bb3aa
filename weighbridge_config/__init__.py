"""
weighbridge_config -- single public entrypoint for runtime configuration.

Responsibility:
    ``get_active_config()`` is the ONLY way to obtain configuration.  No
    other component reads configuration files or environment variables.

Architecture position:
    Sits above ``weighbridge_kernel``.  The kernel never imports this
    package; ``bridges`` translates the config into kernel constructor
    arguments.

Failure modes:
    - ``ConfigurationError`` -- missing required key or invalid value.
    - ``FileNotFoundError`` -- the given file does not exist.
    - ``yaml.YAMLError`` -- malformed YAML.
"""

from __future__ import annotations

from pathlib import Path
from typing import Mapping

from weighbridge_config.loader import load_config
from weighbridge_config.schema import WeighbridgeConfig
from weighbridge_kernel.logging_config import get_logger

_logger = get_logger("config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"


def get_active_config(
    path: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> WeighbridgeConfig:
    """The ONLY public configuration entrypoint."""
    config = load_config(Path(path) if path else DEFAULT_CONFIG_PATH, environ)
    _logger.info(
        "config_loaded",
        extra={
            "config_source": config.source,
            "variance_tolerance_pct": config.variance.tolerance_pct,
            "cache_key_version": config.cache.key_version,
        },
    )
    return config


__all__ = ["get_active_config", "WeighbridgeConfig", "DEFAULT_CONFIG_PATH"]
