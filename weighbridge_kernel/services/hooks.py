"""
Transaction hooks -- run callbacks when the owning transaction finishes.

Services flush and never commit, so anything that must only happen once
the data is durable (event delivery) is queued with ``on_commit`` and
drained by SQLAlchemy's ``after_commit`` event.  When the outermost
transaction ends without committing, that queue is discarded.

``on_transaction_end`` callbacks run when the outermost transaction ends
either way.  Cache invalidation uses them: a view cached from flushed but
uncommitted rows must be dropped after a rollback just as after a commit.
Savepoint rollbacks leave both queues alone.
"""

from typing import Callable

from sqlalchemy import event
from sqlalchemy.orm import Session, SessionTransaction

_PENDING = "weighbridge_after_commit"
_PENDING_END = "weighbridge_after_transaction_end"
_INSTALLED = "weighbridge_hooks_installed"


def _drain(session: Session) -> None:
    callbacks = session.info.pop(_PENDING, [])
    for callback in callbacks:
        callback()


def _end(session: Session, transaction: SessionTransaction) -> None:
    if transaction.parent is not None:
        return
    session.info.pop(_PENDING, None)
    for callback in session.info.pop(_PENDING_END, []):
        callback()


def _install(session: Session) -> None:
    if not session.info.get(_INSTALLED):
        event.listen(session, "after_commit", _drain)
        event.listen(session, "after_transaction_end", _end)
        session.info[_INSTALLED] = True


def on_commit(session: Session, callback: Callable[[], None]) -> None:
    """Queue ``callback`` to run after ``session`` next commits."""
    _install(session)
    session.info.setdefault(_PENDING, []).append(callback)


def on_transaction_end(session: Session, callback: Callable[[], None]) -> None:
    """Queue ``callback`` to run when the outermost transaction commits or rolls back."""
    _install(session)
    session.info.setdefault(_PENDING_END, []).append(callback)


def pending_count(session: Session) -> int:
    return len(session.info.get(_PENDING, [])) + len(session.info.get(_PENDING_END, []))
