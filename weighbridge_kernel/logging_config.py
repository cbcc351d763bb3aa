"""
Structured logging -- one JSON object per line under the ``weighbridge`` logger.

Every record carries the fields bound in ``LogContext`` for the operation in
progress, so a service only passes the facts of the event itself in
``extra``:

    with LogContext.bind(entry_id=entry_id, actor_id=ctx.user_id) as log_ctx:
        entry = load(entry_id)
        log_ctx.update(entry_number=entry.entry_number)
        logger.info("entry_settled", extra={"quantity": result.quantity})

Context fields:
    correlation_id   caller-supplied request id
    actor_id         user performing the operation
    plant_id         plant the document belongs to
    entry_id         entry being written
    entry_number     its human number (ENT-2024-0000042)
    invoice_id       invoice being written
    invoice_number   its human number (INV-2024-0042)
    series_key       counter being advanced (ENT-2024)
"""

__all__ = [
    "CONTEXT_FIELDS",
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
import sys
import threading
from contextvars import ContextVar, Token
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

LOGGER_ROOT = "weighbridge"

CONTEXT_FIELDS = (
    "correlation_id",
    "actor_id",
    "plant_id",
    "entry_id",
    "entry_number",
    "invoice_id",
    "invoice_number",
    "series_key",
)

_VARS: dict[str, ContextVar[str | None]] = {
    name: ContextVar(f"weighbridge_log_{name}", default=None) for name in CONTEXT_FIELDS
}


def _var(name: str) -> ContextVar[str | None]:
    try:
        return _VARS[name]
    except KeyError:
        raise ValueError(f"unknown log context field: {name}") from None


class LogContext:
    """Operation-scoped log fields held in context variables (thread and task local)."""

    @staticmethod
    def set(**fields: Any) -> None:
        """Set fields for the rest of the current context.  None values are skipped."""
        for name, value in fields.items():
            if value is not None:
                _var(name).set(str(value))

    @staticmethod
    def get_all() -> dict[str, str]:
        return {
            name: value
            for name, var in _VARS.items()
            if (value := var.get()) is not None
        }

    @staticmethod
    def clear() -> None:
        for var in _VARS.values():
            var.set(None)

    @staticmethod
    def bind(**fields: Any) -> "_Binding":
        """Set fields for the duration of a ``with`` block, restoring them on exit."""
        return _Binding(fields)


class _Binding:
    def __init__(self, fields: dict[str, Any]):
        self._initial = fields
        self._tokens: list[tuple[ContextVar[str | None], Token]] = []

    def __enter__(self) -> "_Binding":
        self.update(**self._initial)
        return self

    def update(self, **fields: Any) -> None:
        """Add fields learned inside the block; they are restored with the rest."""
        for name, value in fields.items():
            if value is None:
                continue
            var = _var(name)
            self._tokens.append((var, var.set(str(value))))

    def __exit__(self, *exc: Any) -> None:
        while self._tokens:
            var, token = self._tokens.pop()
            var.reset(token)


def _plain(value: Any) -> Any:
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return str(value)


# Attributes every LogRecord has; anything else came in through ``extra``.
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}


class StructuredFormatter(logging.Formatter):
    """
    Render a record as a single JSON line.

    Key order: ts, level, logger, message, bound context, extras, then the
    exception block.  A context field wins over an ``extra`` of the same name.
    Kernel exceptions contribute their ``code`` and public attributes as
    ``exc_<name>`` keys, e.g. ``exc_series_key`` for SequenceUnavailableError.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(LogContext.get_all())
        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS:
                payload.setdefault(key, value)

        if record.exc_info and record.exc_info[1] is not None:
            exc = record.exc_info[1]
            payload["exc_type"] = type(exc).__name__
            payload["exc_message"] = str(exc)
            code = getattr(exc, "code", None)
            if code is not None:
                payload["exc_code"] = code
            for key, value in vars(exc).items():
                if not key.startswith("_") and key != "code":
                    payload[f"exc_{key}"] = value
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_plain)


def get_logger(name: str) -> logging.Logger:
    """Logger for a kernel component, e.g. ``get_logger("services.entry")``."""
    return logging.getLogger(f"{LOGGER_ROOT}.{name}")


_configured = False
_lock = threading.Lock()


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach a JSON handler to the ``weighbridge`` logger.

    Only the first call takes effect; the engine factory and the config
    bridge both call it.  ``handler`` replaces the default stderr stream
    handler.
    """
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    root = logging.getLogger(LOGGER_ROOT)
    root.setLevel(level)
    root.propagate = False
    target = handler or logging.StreamHandler(stream or sys.stderr)
    target.setFormatter(StructuredFormatter())
    root.addHandler(target)


def reset_logging() -> None:
    """Undo ``configure_logging``.  Tests only."""
    global _configured
    with _lock:
        _configured = False
    root = logging.getLogger(LOGGER_ROOT)
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.setLevel(logging.WARNING)
    root.propagate = True
