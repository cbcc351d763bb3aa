"""
Module: weighbridge_kernel.selectors.dashboard_selector
Responsibility: Cached dashboard summary over active entries and invoices.
Architecture position: Kernel > Selectors.

Every figure is derived from the rows at query time and cached under the
dashboard prefix with the short TTL.  Entry and invoice writes clear that
prefix, so a summary never outlives the data it was computed from by more
than one commit.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import case, func, select

from weighbridge_kernel.domain.auth import EVERYONE, AuthContext
from weighbridge_kernel.domain.dtos import DashboardSummary
from weighbridge_kernel.domain.filters import DashboardFilter
from weighbridge_kernel.domain.values import (
    EntryStatus,
    EntryType,
    quantize_money,
    quantize_weight,
)
from weighbridge_kernel.models.entry import Entry
from weighbridge_kernel.models.invoice import Invoice
from weighbridge_kernel.selectors.base import BaseSelector
from weighbridge_kernel.services.cache_service import CacheService

ZERO = Decimal("0")


def _count_if(condition):
    return func.coalesce(func.sum(case((condition, 1), else_=0)), 0)


def _sum_if(condition, column):
    return func.coalesce(func.sum(case((condition, column), else_=0)), 0)


class DashboardSelector(BaseSelector[Entry]):
    """
    Dashboard projection.

    Usage:
        summary = DashboardSelector(session, cache).summary(ctx, DashboardFilter())
    """

    def __init__(self, session, cache: CacheService):
        super().__init__(session)
        self.cache = cache

    def summary(self, ctx: AuthContext, query: DashboardFilter | None = None) -> DashboardSummary:
        """Entry and invoice totals; non-admins only see their own plant."""
        ctx.require_role(EVERYONE, "view the dashboard")
        query = query or DashboardFilter()
        query = query.with_changes(plant_id=ctx.resolve_plant(query.plant_id))
        return self.cache.get_or_set(
            self.cache.keys.dashboard(query),
            self.cache.ttl.short,
            lambda: self._compute(query),
        )

    def _compute(self, query: DashboardFilter) -> DashboardSummary:
        settled = Entry.status == EntryStatus.SETTLED
        entry_stmt = select(
            func.count(Entry.id),
            _count_if(Entry.status == EntryStatus.OPEN),
            _count_if(settled),
            _count_if(Entry.entry_type == EntryType.PURCHASE),
            _count_if(Entry.entry_type == EntryType.SALE),
            _sum_if(settled & (Entry.entry_type == EntryType.PURCHASE), Entry.quantity),
            _sum_if(settled & (Entry.entry_type == EntryType.SALE), Entry.quantity),
            _count_if(Entry.flagged.is_(True)),
            _count_if(Entry.variance_flag.is_(True)),
            _count_if(Entry.is_reviewed.is_(True)),
        ).where(Entry.is_active.is_(True))
        if query.plant_id is not None:
            entry_stmt = entry_stmt.where(Entry.plant_id == query.plant_id)
        if query.date_from is not None:
            entry_stmt = entry_stmt.where(Entry.entry_date >= query.date_from)
        if query.date_to is not None:
            entry_stmt = entry_stmt.where(Entry.entry_date <= query.date_to)
        (
            total,
            open_count,
            settled_count,
            purchases,
            sales,
            purchase_qty,
            sale_qty,
            flagged,
            variance_flagged,
            reviewed,
        ) = self.session.execute(entry_stmt).one()

        invoice_stmt = (
            select(Invoice.status, func.count(Invoice.id), func.sum(Invoice.final_amount))
            .where(Invoice.is_active.is_(True))
            .group_by(Invoice.status)
        )
        if query.plant_id is not None:
            invoice_stmt = invoice_stmt.where(Invoice.plant_id == query.plant_id)
        if query.date_from is not None:
            invoice_stmt = invoice_stmt.where(Invoice.invoice_date >= query.date_from.date())
        if query.date_to is not None:
            invoice_stmt = invoice_stmt.where(Invoice.invoice_date <= query.date_to.date())

        by_status: dict[str, Decimal] = {}
        invoice_count = 0
        for status, count, amount in self.session.execute(invoice_stmt):
            invoice_count += count
            by_status[status.value] = quantize_money(amount or ZERO)

        return DashboardSummary(
            total_entries=int(total),
            open_entries=int(open_count),
            settled_entries=int(settled_count),
            purchase_entries=int(purchases),
            sale_entries=int(sales),
            purchase_quantity=quantize_weight(purchase_qty or ZERO),
            sale_quantity=quantize_weight(sale_qty or ZERO),
            flagged_entries=int(flagged),
            variance_flagged_entries=int(variance_flagged),
            reviewed_entries=int(reviewed),
            invoice_count=invoice_count,
            invoiced_amount=quantize_money(sum(by_status.values(), ZERO)),
            invoice_amount_by_status=by_status,
        )
