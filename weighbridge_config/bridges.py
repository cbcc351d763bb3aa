"""
Config -> Kernel bridges.

Turn a ``WeighbridgeConfig`` into the objects kernel services take as
constructor arguments.  These live here because the kernel never imports
``weighbridge_config``.

Usage:
    config = get_active_config()
    init_database(config)
    cache = build_cache_service(config)
    entries = EntryService(session, cache, tolerance_pct=config.variance.tolerance_pct)
"""

from __future__ import annotations

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from weighbridge_config.schema import WeighbridgeConfig
from weighbridge_kernel.db.engine import init_engine_from_url
from weighbridge_kernel.domain.cache_keys import CacheKeys
from weighbridge_kernel.domain.clock import Clock
from weighbridge_kernel.logging_config import configure_logging
from weighbridge_kernel.services.cache_service import (
    CacheBackend,
    CacheService,
    CacheTtl,
    InMemoryCacheBackend,
)
from weighbridge_kernel.services.sequence_service import SequenceService


def init_database(config: WeighbridgeConfig) -> Engine:
    db = config.database
    return init_engine_from_url(
        db.url,
        echo=db.echo,
        pool_size=db.pool_size,
        max_overflow=db.max_overflow,
        pool_timeout=db.pool_timeout,
        statement_timeout_ms=db.statement_timeout_ms,
    )


def init_logging(config: WeighbridgeConfig) -> None:
    configure_logging(level=config.logging.level)


def build_cache_service(
    config: WeighbridgeConfig,
    backend: CacheBackend | None = None,
    clock: Clock | None = None,
) -> CacheService:
    return CacheService(
        backend or InMemoryCacheBackend(clock),
        keys=CacheKeys(config.cache.key_version),
        ttl=CacheTtl(short=config.cache.short_ttl, long=config.cache.long_ttl),
    )


def build_sequence_service(config: WeighbridgeConfig, session: Session) -> SequenceService:
    return SequenceService(session, padding=dict(config.numbering.padding))
