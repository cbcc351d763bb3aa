"""
Pytest fixtures for the weighbridge kernel test suite.

Provides:
- In-memory SQLite sessions for regular tests (one fresh schema per test)
- A file-backed SQLite database and session factory for tests that need
  several connections (concurrency, stale sessions)
- Deterministic clock, in-memory cache, auth contexts
- Reference data builders (plants, vendors, vehicles, materials)
- Structured log capture

SQLite is driven through ``configure_sqlite_engine`` so transactions and
savepoints behave as they do on PostgreSQL.
"""

import json
import logging
from dataclasses import dataclass
from decimal import Decimal
from io import StringIO
from unittest.mock import patch
from uuid import uuid4

import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import weighbridge_kernel.models  # noqa: F401
from weighbridge_kernel.db.base import Base
from weighbridge_kernel.db.engine import configure_sqlite_engine
from weighbridge_kernel.domain.auth import AuthContext, Role
from weighbridge_kernel.domain.clock import DeterministicClock
from weighbridge_kernel.domain.dtos import EntryDraft, ExitWeighment
from weighbridge_kernel.domain.values import EntryType, VehicleType
from weighbridge_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from weighbridge_kernel.models.counter import Counter
from weighbridge_kernel.models.material import Material
from weighbridge_kernel.models.plant import Plant
from weighbridge_kernel.models.vehicle import Vehicle
from weighbridge_kernel.models.vendor import Vendor
from weighbridge_kernel.services.cache_service import CacheService, InMemoryCacheBackend
from weighbridge_kernel.services.entry_service import EntryService
from weighbridge_kernel.services.event_publisher import EventPublisher
from weighbridge_kernel.services.invoice_service import InvoiceService

# Actor recorded as creator of reference rows built directly
TEST_ACTOR_ID = uuid4()

TOLERANCE_PCT = Decimal("1.0")


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture weighbridge logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, entry_service):
            entry_service.finalize_entry(...)
            logs = captured_logs()
            assert any(r["message"] == "entry_settled" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("weighbridge")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def engine():
    """Fresh in-memory database with the full schema."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    configure_sqlite_engine(engine)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine, expire_on_commit=False) as session:
        yield session
        session.rollback()


@pytest.fixture
def file_engine(tmp_path):
    """
    File-backed database for tests that open several connections.

    Writers are serialized with BEGIN IMMEDIATE; readers and writers wait on
    the busy timeout instead of failing.
    """
    engine = create_engine(
        f"sqlite:///{tmp_path / 'weighbridge.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    configure_sqlite_engine(engine, begin_statement="BEGIN IMMEDIATE")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(file_engine):
    return sessionmaker(bind=file_engine, expire_on_commit=False)


def fail_counter_writes(session: Session):
    """
    Patch ``session.execute`` so every statement against the counters table
    fails the way a dropped database connection does.  Use as a context
    manager around the call under test.
    """
    real_execute = session.execute

    def execute(statement, *args, **kwargs):
        table = getattr(statement, "table", None)
        if getattr(table, "name", None) == Counter.__tablename__:
            raise OperationalError("INSERT INTO counters", {}, Exception("connection lost"))
        return real_execute(statement, *args, **kwargs)

    return patch.object(session, "execute", side_effect=execute)


# =============================================================================
# Clock, cache, events
# =============================================================================


@pytest.fixture
def clock():
    return DeterministicClock()


@pytest.fixture
def cache_backend(clock):
    return InMemoryCacheBackend(clock)


@pytest.fixture
def cache(cache_backend):
    return CacheService(cache_backend)


@pytest.fixture
def events():
    return EventPublisher()


# =============================================================================
# Reference data
# =============================================================================


def make_plant(session: Session, name: str, code: str | None = None) -> Plant:
    plant = Plant(code=code or f"PLT-{uuid4().hex[:6]}", name=name, created_by_id=TEST_ACTOR_ID)
    session.add(plant)
    session.flush()
    return plant


def make_vendor(session: Session, name: str, plants: list[Plant]) -> Vendor:
    vendor = Vendor(
        code=f"VEN-{uuid4().hex[:6]}",
        name=name,
        linked_plants=list(plants),
        created_by_id=TEST_ACTOR_ID,
    )
    session.add(vendor)
    session.flush()
    return vendor


def make_vehicle(session: Session, number: str, tare_weight: Decimal | None = None) -> Vehicle:
    vehicle = Vehicle(
        code=f"VEH-{uuid4().hex[:6]}",
        vehicle_number=number,
        vehicle_type=VehicleType.TRUCK,
        tare_weight=tare_weight,
        created_by_id=TEST_ACTOR_ID,
    )
    session.add(vehicle)
    session.flush()
    return vehicle


def make_material(session: Session, name: str) -> Material:
    material = Material(name=name, created_by_id=TEST_ACTOR_ID)
    session.add(material)
    session.flush()
    return material


@dataclass
class Reference:
    """One plant with a linked vendor, a second plant, vehicles and a material."""

    plant: Plant
    other_plant: Plant
    vendor: Vendor
    other_vendor: Vendor
    vehicle: Vehicle
    tared_vehicle: Vehicle
    material: Material
    admin: AuthContext
    supervisor: AuthContext
    operator: AuthContext
    other_supervisor: AuthContext


def build_reference(session: Session) -> Reference:
    plant = make_plant(session, "North Plant", code="PLT-2024-01")
    other_plant = make_plant(session, "South Plant", code="PLT-2024-02")
    reference = Reference(
        plant=plant,
        other_plant=other_plant,
        vendor=make_vendor(session, "Agro Traders", [plant]),
        other_vendor=make_vendor(session, "Delta Fuels", [plant, other_plant]),
        vehicle=make_vehicle(session, "MH12AB1234"),
        tared_vehicle=make_vehicle(session, "MH14CD5678", tare_weight=Decimal("1000")),
        material=make_material(session, "Rice Husk"),
        admin=AuthContext(uuid4(), Role.ADMIN),
        supervisor=AuthContext(uuid4(), Role.SUPERVISOR, plant.id),
        operator=AuthContext(uuid4(), Role.OPERATOR, plant.id),
        other_supervisor=AuthContext(uuid4(), Role.SUPERVISOR, other_plant.id),
    )
    session.commit()
    return reference


@pytest.fixture
def ref(session) -> Reference:
    return build_reference(session)


# =============================================================================
# Services
# =============================================================================


@pytest.fixture
def entry_service(session, cache, clock, events):
    return EntryService(session, cache, tolerance_pct=TOLERANCE_PCT, clock=clock, events=events)


@pytest.fixture
def invoice_service(session, cache, clock, events):
    return InvoiceService(session, cache, clock=clock, events=events)


@pytest.fixture
def settled_purchase(entry_service, ref):
    """
    Create and settle a purchase entry.

    Defaults give the reference case: 1000 in, 1800 out, 10% moisture,
    5% dust, for a net quantity of 684.
    """

    def _settle(
        ctx: AuthContext | None = None,
        entry_weight: str = "1000",
        exit_weight: str = "1800",
        moisture: str | None = "10",
        dust: str | None = "5",
        rate: str | None = "2.5",
        vendor: Vendor | None = None,
        vehicle: Vehicle | None = None,
    ):
        ctx = ctx or ref.supervisor
        info = entry_service.create_entry(
            ctx,
            EntryDraft(
                entry_type=EntryType.PURCHASE,
                vendor_id=(vendor or ref.vendor).id,
                vehicle_id=(vehicle or ref.vehicle).id,
                entry_weight=Decimal(entry_weight),
                plant_id=ref.plant.id,
                material_id=ref.material.id,
                moisture=Decimal(moisture) if moisture is not None else None,
                dust=Decimal(dust) if dust is not None else None,
                rate=Decimal(rate) if rate is not None else None,
            ),
        )
        settled = entry_service.finalize_entry(ctx, info.id, ExitWeighment(Decimal(exit_weight)))
        entry_service.session.commit()
        return settled

    return _settle
