"""SequenceService tests (weighbridge_kernel/services/sequence_service.py)."""

from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from weighbridge_kernel.exceptions import DependencyError, SequenceUnavailableError
from weighbridge_kernel.services.sequence_service import SequenceService


class TestNextValue:
    def test_first_value_is_one(self, session):
        assert SequenceService(session).next_value("ENT-2024") == 1

    def test_values_strictly_increase(self, session):
        sequences = SequenceService(session)
        values = [sequences.next_value("ENT-2024") for _ in range(5)]
        assert values == [1, 2, 3, 4, 5]

    def test_series_are_independent(self, session):
        sequences = SequenceService(session)
        sequences.next_value("ENT-2024")
        sequences.next_value("ENT-2024")
        assert sequences.next_value("ENT-2025") == 1
        assert sequences.next_value("INV-2024") == 1

    def test_current_value_peeks_without_incrementing(self, session):
        sequences = SequenceService(session)
        assert sequences.current_value("INV-2024") is None
        sequences.next_value("INV-2024")
        assert sequences.current_value("INV-2024") == 1
        assert sequences.current_value("INV-2024") == 1

    def test_rolled_back_allocation_is_not_observed(self, session):
        sequences = SequenceService(session)
        sequences.next_value("ENT-2024")
        session.commit()
        sequences.next_value("ENT-2024")
        session.rollback()
        assert sequences.next_value("ENT-2024") == 2


class TestDocumentNumbers:
    def test_entry_number(self, session):
        assert SequenceService(session).next_document_number("ENT", 2024) == "ENT-2024-0000001"

    def test_vendor_padding(self, session):
        assert SequenceService(session).next_document_number("VEN", 2024) == "VEN-2024-0001"

    def test_plant_padding(self, session):
        assert SequenceService(session).next_document_number("PLT", 2024) == "PLT-2024-01"

    def test_padding_override(self, session):
        sequences = SequenceService(session, padding={"INV": 5})
        assert sequences.next_document_number("INV", 2024) == "INV-2024-00001"


class TestStoreFailure:
    def test_store_error_becomes_dependency_error(self, session, captured_logs):
        sequences = SequenceService(session)
        with patch.object(
            session, "execute", side_effect=OperationalError("upsert", {}, Exception("down"))
        ):
            with pytest.raises(SequenceUnavailableError) as exc_info:
                sequences.next_value("ENT-2024")
        assert isinstance(exc_info.value, DependencyError)
        assert exc_info.value.series_key == "ENT-2024"
        failures = [r for r in captured_logs() if r["message"] == "sequence_allocation_failed"]
        assert failures and failures[0]["level"] == "ERROR"
        assert failures[0]["series_key"] == "ENT-2024"
