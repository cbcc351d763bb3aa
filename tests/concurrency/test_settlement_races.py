"""
Races on settlement and invoicing.

Two patterns against a shared file-backed database:

- Stale session: a second session loaded the entry before the first
  committed, so its in-memory copy still passes every pre-check.  The
  guarded UPDATE is what must stop it.
- Threads: several workers race on the same entry.  Exactly one wins.
"""

from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from tests.conftest import TOLERANCE_PCT, build_reference
from weighbridge_kernel.domain.clock import DeterministicClock
from weighbridge_kernel.domain.dtos import EntryChanges, EntryDraft, ExitWeighment, InvoiceDraft
from weighbridge_kernel.domain.values import EntryType
from weighbridge_kernel.exceptions import (
    EntryAlreadyInvoicedError,
    EntryAlreadySettledError,
    EntryLockedError,
)
from weighbridge_kernel.models.entry import Entry
from weighbridge_kernel.models.invoice import Invoice
from weighbridge_kernel.services.cache_service import CacheService, InMemoryCacheBackend
from weighbridge_kernel.services.entry_service import EntryService
from weighbridge_kernel.services.invoice_service import InvoiceService
from weighbridge_kernel.services.sequence_service import SequenceService

pytestmark = pytest.mark.slow_locks

WORKERS = 6


@pytest.fixture
def shared_cache():
    clock = DeterministicClock()
    return CacheService(InMemoryCacheBackend(clock))


def _entry_service(session, cache) -> EntryService:
    return EntryService(session, cache, tolerance_pct=TOLERANCE_PCT, clock=DeterministicClock())


def _invoice_service(session, cache) -> InvoiceService:
    return InvoiceService(session, cache, clock=DeterministicClock())


@pytest.fixture
def race_setup(session_factory, shared_cache):
    """Reference data plus one open purchase, all committed."""
    with session_factory() as session:
        ref = build_reference(session)
        info = _entry_service(session, shared_cache).create_entry(
            ref.supervisor,
            EntryDraft(
                entry_type=EntryType.PURCHASE,
                vendor_id=ref.vendor.id,
                vehicle_id=ref.vehicle.id,
                entry_weight=Decimal("1000"),
                plant_id=ref.plant.id,
                material_id=ref.material.id,
                rate=Decimal("2.5"),
            ),
        )
        session.commit()
    return ref, info.id


def _settle(session_factory, cache, ref, entry_id) -> None:
    with session_factory() as session:
        _entry_service(session, cache).finalize_entry(
            ref.supervisor, entry_id, ExitWeighment(Decimal("1800"))
        )
        session.commit()


def _invoice_draft(ref, entry_id) -> InvoiceDraft:
    return InvoiceDraft(vendor_id=ref.vendor.id, plant_id=ref.plant.id, entry_ids=(entry_id,))


class TestFinalizeRace:
    def test_stale_session_cannot_settle_twice(self, session_factory, shared_cache, race_setup):
        ref, entry_id = race_setup
        stale = session_factory()
        try:
            assert stale.get(Entry, entry_id).exit_weight is None
            stale.commit()

            _settle(session_factory, shared_cache, ref, entry_id)

            with pytest.raises(EntryAlreadySettledError):
                _entry_service(stale, shared_cache).finalize_entry(
                    ref.supervisor, entry_id, ExitWeighment(Decimal("2000"))
                )
            stale.rollback()
        finally:
            stale.close()

        with session_factory() as session:
            assert session.get(Entry, entry_id).exit_weight == Decimal("1800")

    def test_concurrent_finalize_has_one_winner(self, session_factory, shared_cache, race_setup):
        ref, entry_id = race_setup

        def attempt(i: int) -> str:
            with session_factory() as session:
                try:
                    _entry_service(session, shared_cache).finalize_entry(
                        ref.supervisor, entry_id, ExitWeighment(Decimal(1800 + i))
                    )
                    session.commit()
                    return f"won:{1800 + i}"
                except EntryAlreadySettledError:
                    session.rollback()
                    return "conflict"

        with ThreadPoolExecutor(max_workers=WORKERS) as pool:
            outcomes = list(pool.map(attempt, range(WORKERS)))

        winners = [o for o in outcomes if o.startswith("won:")]
        assert len(winners) == 1
        assert outcomes.count("conflict") == WORKERS - 1
        with session_factory() as session:
            stored = session.get(Entry, entry_id).exit_weight
        assert f"won:{int(stored)}" == winners[0]


class TestInvoiceClaimRace:
    def test_stale_session_cannot_claim_invoiced_entry(
        self, session_factory, shared_cache, race_setup
    ):
        ref, entry_id = race_setup
        _settle(session_factory, shared_cache, ref, entry_id)

        stale = session_factory()
        try:
            assert stale.get(Entry, entry_id).invoice_id is None
            stale.commit()

            with session_factory() as session:
                first = _invoice_service(session, shared_cache).create_invoice(
                    ref.supervisor, _invoice_draft(ref, entry_id)
                )
                session.commit()

            with pytest.raises(EntryAlreadyInvoicedError) as exc_info:
                _invoice_service(stale, shared_cache).create_invoice(
                    ref.supervisor, _invoice_draft(ref, entry_id)
                )
            assert exc_info.value.entry_ids == [str(entry_id)]
            stale.commit()
        finally:
            stale.close()

        with session_factory() as session:
            assert session.execute(select(func.count()).select_from(Invoice)).scalar_one() == 1
            assert session.get(Entry, entry_id).invoice_id == first.id
            # The losing attempt's number allocation rolled back with its savepoint
            assert SequenceService(session).current_value("INV-2024") == 1

    def test_concurrent_invoicing_has_one_winner(self, session_factory, shared_cache, race_setup):
        ref, entry_id = race_setup
        _settle(session_factory, shared_cache, ref, entry_id)

        def attempt(_) -> str:
            with session_factory() as session:
                try:
                    info = _invoice_service(session, shared_cache).create_invoice(
                        ref.supervisor, _invoice_draft(ref, entry_id)
                    )
                    session.commit()
                    return info.invoice_number
                except EntryAlreadyInvoicedError:
                    session.rollback()
                    return "conflict"

        with ThreadPoolExecutor(max_workers=WORKERS) as pool:
            outcomes = list(pool.map(attempt, range(WORKERS)))

        assert outcomes.count("conflict") == WORKERS - 1
        with session_factory() as session:
            assert session.execute(select(func.count()).select_from(Invoice)).scalar_one() == 1


class TestCorrectionVersusInvoice:
    @pytest.fixture
    def flagged_entry(self, session_factory, shared_cache, race_setup):
        """Settled purchase on the tared vehicle whose variance flag is raised."""
        ref, _ = race_setup
        with session_factory() as session:
            service = _entry_service(session, shared_cache)
            info = service.create_entry(
                ref.supervisor,
                EntryDraft(
                    entry_type=EntryType.PURCHASE,
                    vendor_id=ref.vendor.id,
                    vehicle_id=ref.tared_vehicle.id,
                    entry_weight=Decimal("1100"),
                    plant_id=ref.plant.id,
                    material_id=ref.material.id,
                    rate=Decimal("2"),
                ),
            )
            settled = service.finalize_entry(ref.supervisor, info.id, ExitWeighment(Decimal("1800")))
            session.commit()
        assert settled.variance_flag is True
        return ref, settled.id

    def _invoice(self, session_factory, cache, ref, entry_id):
        with session_factory() as session:
            info = _invoice_service(session, cache).create_invoice(
                ref.supervisor, _invoice_draft(ref, entry_id)
            )
            session.commit()
        return info

    def test_stale_session_cannot_correct_invoiced_entry(
        self, session_factory, shared_cache, flagged_entry
    ):
        ref, entry_id = flagged_entry
        stale = session_factory()
        try:
            assert stale.get(Entry, entry_id).invoice_id is None
            stale.commit()

            invoice = self._invoice(session_factory, shared_cache, ref, entry_id)

            with pytest.raises(EntryLockedError, match="invoiced"):
                _entry_service(stale, shared_cache).update_entry(
                    ref.supervisor, entry_id, EntryChanges(rate=Decimal("10"))
                )
            stale.rollback()
        finally:
            stale.close()

        with session_factory() as session:
            entry = session.get(Entry, entry_id)
            assert entry.rate == Decimal("2")
            assert session.get(Invoice, invoice.id).total_amount == entry.total_amount

    def test_stale_session_cannot_delete_invoiced_entry(
        self, session_factory, shared_cache, flagged_entry
    ):
        ref, entry_id = flagged_entry
        stale = session_factory()
        try:
            assert stale.get(Entry, entry_id).is_active
            stale.commit()

            self._invoice(session_factory, shared_cache, ref, entry_id)

            with pytest.raises(EntryLockedError):
                _entry_service(stale, shared_cache).delete_entry(ref.supervisor, entry_id)
            stale.rollback()
        finally:
            stale.close()

        with session_factory() as session:
            assert session.get(Entry, entry_id).is_active
