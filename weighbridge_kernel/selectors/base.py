"""
Module: weighbridge_kernel.selectors.base
Responsibility: Abstract base class for read-only projections over entries
    and invoices.
Architecture position: Kernel > Selectors.  May import from models/, domain/
    and the cache service.  Selectors never create, modify or delete rows.

Invariants enforced:
    - Read-only access: no session.add(), session.delete(), session.flush()
      or session.commit().
    - Selectors return frozen DTOs, never ORM instances.
    - The caller owns the session and its transaction scope.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from weighbridge_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):
    """
    Abstract base class for all selectors.

    Guarantees:
        - session is stored as a public attribute for subclass query use.
        - No commit, flush, add, or delete operations are performed.
    """

    def __init__(self, session: Session):
        self.session = session
