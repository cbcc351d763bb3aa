"""
SequenceService -- collision-free sequence allocation via atomic upsert.

Responsibility:
    Hands out strictly increasing integers per series key (``ENT-2025``,
    ``INV-2025``, ...) and formats them into document numbers.  The counter
    row lives only in the store; the process keeps no counter state.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by EntryService, InvoiceService and the reference-entity
    services before they persist a numbered document.

Invariants enforced:
    - Each allocation is ONE statement:
      ``INSERT .. ON CONFLICT (key) DO UPDATE SET seq = seq + 1 RETURNING seq``.
      The store serializes concurrent upserts on the row, so no two callers
      ever receive the same value.  Read-then-write and max(number) + 1 are
      never used.
    - Allocation runs inside the caller's transaction.  A value whose
      document rolls back is never observable, so committed numbers are
      unique and increasing (a later commit may still carry a lower value).

Failure modes:
    - SequenceUnavailableError (DEPENDENCY): any store error during the
      upsert.  The owning create fails; no document is persisted without
      its number.
"""

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from weighbridge_kernel.domain.numbering import format_document_number, series_key
from weighbridge_kernel.exceptions import SequenceUnavailableError
from weighbridge_kernel.logging_config import LogContext, get_logger
from weighbridge_kernel.models.counter import Counter
from weighbridge_kernel.services.base import BaseService

logger = get_logger("services.sequence")

_UPSERT_DIALECTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}

DEFAULT_PADDING = {"ENT": 7, "INV": 7, "VEN": 4, "VEH": 4, "PLT": 2}


class SequenceService(BaseService[Counter]):
    """
    Allocator for document-number series.

    Usage:
        with session_scope() as session:
            number = SequenceService(session).next_document_number("INV", 2025)
            # 'INV-2025-0000001'; persisted only if the transaction commits
    """

    def __init__(self, session: Session, padding: dict[str, int] | None = None):
        super().__init__(session)
        self._padding = dict(DEFAULT_PADDING)
        if padding:
            self._padding.update(padding)

    def next_value(self, key: str) -> int:
        """
        Atomically increment the counter for ``key`` and return the new value.

        The first allocation for a key returns 1.

        Raises:
            SequenceUnavailableError: the store rejected or failed the upsert.
        """
        dialect = self.session.get_bind().dialect.name
        insert = _UPSERT_DIALECTS.get(dialect)
        if insert is None:
            raise SequenceUnavailableError(key)

        stmt = (
            insert(Counter)
            .values(key=key, seq=1)
            .on_conflict_do_update(
                index_elements=[Counter.key],
                set_={"seq": Counter.seq + 1},
            )
            .returning(Counter.seq)
        )
        with LogContext.bind(series_key=key):
            try:
                value = self.session.execute(stmt).scalar_one()
            except SQLAlchemyError as exc:
                logger.error("sequence_allocation_failed", extra={"error": type(exc).__name__})
                raise SequenceUnavailableError(key) from exc
            logger.debug("sequence_allocated", extra={"value": value})
        return value

    def current_value(self, key: str) -> int | None:
        """Peek at the last allocated value without incrementing."""
        return self.session.execute(
            select(Counter.seq).where(Counter.key == key)
        ).scalar_one_or_none()

    def padding_for(self, prefix: str) -> int:
        return self._padding.get(prefix, 4)

    def next_document_number(self, prefix: str, year: int) -> str:
        """Allocate the next value of ``<prefix>-<year>`` and format it."""
        key = series_key(prefix, year)
        seq = self.next_value(key)
        number = format_document_number(prefix, year, seq, self.padding_for(prefix))
        logger.info("document_number_allocated", extra={"series_key": key, "number": number})
        return number
