"""
BaseService -- base for all kernel services.

Responsibility:
    Common constructor and session contract.  Services receive a SQLAlchemy
    ``Session`` and persist with ``session.flush()`` -- never
    ``session.commit()``.  The caller owns the transaction, so a service call
    and everything it allocated or claimed commits or rolls back as one.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from weighbridge_kernel.db.base import Base
from weighbridge_kernel.domain.dtos import Page

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all kernel services.

    Guarantees:
        - The service never calls ``session.commit()`` or
          ``session.rollback()``.

    Non-goals:
        - Does NOT manage transaction lifecycle.
        - Does NOT host read-only projections; those live in ``selectors/``.
    """

    def __init__(self, session: Session):
        self.session = session


def paginate(session: Session, stmt, query, to_dto) -> Page:
    """
    Run ``stmt`` for one page of ``query`` (any filter with page/limit).

    ``stmt`` must already be ordered.  The total counts every matching row.
    """
    total = session.execute(
        select(func.count()).select_from(stmt.order_by(None).subquery())
    ).scalar_one()
    rows = session.execute(stmt.offset(query.offset).limit(query.limit)).scalars().all()
    return Page(
        items=tuple(to_dto(row) for row in rows),
        total=total,
        page=query.page,
        limit=query.limit,
    )
