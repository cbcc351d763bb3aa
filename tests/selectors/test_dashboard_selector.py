"""
DashboardSelector tests (weighbridge_kernel/selectors/dashboard_selector.py).
"""

from decimal import Decimal

import pytest

from weighbridge_kernel.domain.dtos import EntryDraft, ExitWeighment, InvoiceDraft
from weighbridge_kernel.domain.filters import DashboardFilter
from weighbridge_kernel.domain.values import EntryType
from weighbridge_kernel.exceptions import PlantScopeError
from weighbridge_kernel.selectors.dashboard_selector import DashboardSelector


@pytest.fixture
def dashboard(session, cache):
    return DashboardSelector(session, cache)


def open_purchase(entry_service, ref):
    return entry_service.create_entry(
        ref.supervisor,
        EntryDraft(
            entry_type=EntryType.PURCHASE,
            vendor_id=ref.vendor.id,
            vehicle_id=ref.vehicle.id,
            entry_weight=Decimal("1000"),
            plant_id=ref.plant.id,
            material_id=ref.material.id,
        ),
    )


class TestDashboardSummary:
    def test_empty(self, dashboard, ref):
        summary = dashboard.summary(ref.supervisor)
        assert summary.total_entries == 0
        assert summary.purchase_quantity == Decimal("0")
        assert summary.invoice_count == 0
        assert summary.invoice_amount_by_status == {}

    def test_entry_counts_and_quantities(self, dashboard, entry_service, settled_purchase, ref, session):
        settled_purchase()
        settled_purchase()
        open_purchase(entry_service, ref)
        session.commit()

        summary = dashboard.summary(ref.supervisor)
        assert summary.total_entries == 3
        assert summary.open_entries == 1
        assert summary.settled_entries == 2
        assert summary.purchase_entries == 3
        assert summary.sale_entries == 0
        assert summary.purchase_quantity == Decimal("1368")
        assert summary.sale_quantity == Decimal("0")

    def test_flags_and_reviews(self, dashboard, entry_service, settled_purchase, ref):
        clean = settled_purchase()
        settled_purchase(vehicle=ref.tared_vehicle, entry_weight="1100")
        entry_service.review_entry(ref.supervisor, clean.id)
        summary = dashboard.summary(ref.supervisor)
        assert summary.variance_flagged_entries == 1
        assert summary.reviewed_entries == 1
        assert summary.flagged_entries == 0

    def test_invoice_totals_by_status(self, dashboard, invoice_service, settled_purchase, ref):
        entry = settled_purchase()
        invoice_service.create_invoice(
            ref.supervisor,
            InvoiceDraft(vendor_id=ref.vendor.id, plant_id=ref.plant.id, entry_ids=(entry.id,)),
        )
        summary = dashboard.summary(ref.supervisor)
        assert summary.invoice_count == 1
        assert summary.invoice_amount_by_status == {"draft": Decimal("1710.00")}
        assert summary.invoiced_amount == Decimal("1710.00")

    def test_refreshed_after_entry_write(self, dashboard, entry_service, settled_purchase, ref):
        assert dashboard.summary(ref.supervisor).total_entries == 0
        info = open_purchase(entry_service, ref)
        assert dashboard.summary(ref.supervisor).open_entries == 1
        entry_service.finalize_entry(ref.supervisor, info.id, ExitWeighment(Decimal("1800")))
        summary = dashboard.summary(ref.supervisor)
        assert (summary.open_entries, summary.settled_entries) == (0, 1)

    def test_scoped_to_plant(self, dashboard, settled_purchase, ref):
        settled_purchase()
        assert dashboard.summary(ref.other_supervisor).total_entries == 0
        assert dashboard.summary(ref.admin).total_entries == 1
        assert dashboard.summary(ref.admin, DashboardFilter(plant_id=ref.other_plant.id)).total_entries == 0
        with pytest.raises(PlantScopeError):
            dashboard.summary(ref.supervisor, DashboardFilter(plant_id=ref.other_plant.id))

    def test_operator_may_view(self, dashboard, settled_purchase, ref):
        settled_purchase()
        assert dashboard.summary(ref.operator).settled_entries == 1
