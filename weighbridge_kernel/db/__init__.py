"""Database layer - engine, declarative base, and column types."""

from weighbridge_kernel.db.base import UUID, Base, TrackedBase, UUIDString, enum_type
from weighbridge_kernel.db.engine import (
    configure_sqlite_engine,
    create_tables,
    drop_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
)

__all__ = [
    "init_engine_from_url",
    "configure_sqlite_engine",
    "get_engine",
    "get_session",
    "get_session_factory",
    "session_scope",
    "create_tables",
    "drop_tables",
    "reset_engine",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "enum_type",
]
