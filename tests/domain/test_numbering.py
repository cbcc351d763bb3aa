"""Document number formatting tests (weighbridge_kernel/domain/numbering.py)."""

import pytest

from weighbridge_kernel.domain.numbering import (
    format_document_number,
    parse_document_number,
    series_key,
)
from weighbridge_kernel.exceptions import ValidationError


class TestDocumentNumbers:
    def test_entry_number_padding(self):
        assert format_document_number("ENT", 2025, 42, 7) == "ENT-2025-0000042"

    def test_plant_number_padding(self):
        assert format_document_number("PLT", 2025, 3, 2) == "PLT-2025-03"

    def test_overflow_is_not_truncated(self):
        assert format_document_number("VEN", 2025, 123456, 4) == "VEN-2025-123456"

    def test_series_key(self):
        assert series_key("INV", 2025) == "INV-2025"

    def test_invalid_prefix(self):
        with pytest.raises(ValidationError):
            series_key("inv", 2025)

    def test_sequence_starts_at_one(self):
        with pytest.raises(ValidationError):
            format_document_number("ENT", 2025, 0, 7)

    def test_parse_roundtrip(self):
        assert parse_document_number("INV-2025-0000007") == ("INV", 2025, 7)

    def test_parse_rejects_garbage(self):
        with pytest.raises(ValidationError):
            parse_document_number("INV2025")
