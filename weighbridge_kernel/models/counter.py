"""
Module: weighbridge_kernel.models.counter
Responsibility: Persistent counters backing every document-number series.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - One row per series key (uq_counter_key).
    - ``seq`` changes only through SequenceService's single-statement
      increment-and-fetch.  No code reads it, adds one, and writes it back.
"""

from sqlalchemy import BigInteger, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from weighbridge_kernel.db.base import Base


class Counter(Base):
    __tablename__ = "counters"

    __table_args__ = (UniqueConstraint("key", name="uq_counter_key"),)

    key: Mapped[str] = mapped_column(String(64), nullable=False)
    seq: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<Counter {self.key}={self.seq}>"
