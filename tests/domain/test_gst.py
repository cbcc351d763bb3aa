"""GST computation tests (weighbridge_kernel/domain/gst.py)."""

from decimal import Decimal

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from weighbridge_kernel.domain.gst import calculate_gst
from weighbridge_kernel.domain.values import GstType
from weighbridge_kernel.exceptions import PercentageOutOfRangeError, ValidationError


class TestGst:
    def test_igst_on_10000_at_18_percent(self):
        b = calculate_gst(Decimal("10000"), Decimal("18"), GstType.IGST)
        assert b.igst == Decimal("1800.00")
        assert b.cgst == Decimal("0")
        assert b.sgst == Decimal("0")
        assert b.final_amount == Decimal("11800.00")

    def test_cgst_sgst_on_10000_at_18_percent(self):
        b = calculate_gst(Decimal("10000"), Decimal("18"), GstType.CGST_SGST)
        assert b.cgst == Decimal("900.00")
        assert b.sgst == Decimal("900.00")
        assert b.igst == Decimal("0")
        assert b.total_gst == Decimal("1800.00")
        assert b.final_amount == Decimal("11800.00")

    def test_odd_paisa_split_sums_exactly(self):
        # 0.05 * 18% = 0.009 -> 0.01 total, which cannot halve evenly
        b = calculate_gst(Decimal("0.05"), Decimal("18"), GstType.CGST_SGST)
        assert b.total_gst == Decimal("0.01")
        assert b.cgst + b.sgst == Decimal("0.01")

    def test_not_applicable_is_zero_tax(self):
        b = calculate_gst(Decimal("10000"), Decimal("18"), GstType.IGST, gst_applicable=False)
        assert b.total_gst == Decimal("0")
        assert b.gst_type is None
        assert b.final_amount == Decimal("10000.00")

    def test_string_gst_type_accepted(self):
        assert calculate_gst(Decimal("100"), Decimal("5"), "IGST").igst == Decimal("5.00")

    def test_rate_out_of_range(self):
        with pytest.raises(PercentageOutOfRangeError):
            calculate_gst(Decimal("100"), Decimal("120"), GstType.IGST)

    def test_type_required_when_applicable(self):
        with pytest.raises(ValidationError):
            calculate_gst(Decimal("100"), Decimal("18"), None)

    def test_negative_amount_rejected(self):
        with pytest.raises(ValidationError):
            calculate_gst(Decimal("-1"), Decimal("18"), GstType.IGST)

    @given(
        amount=st.decimals(min_value=Decimal("0"), max_value=Decimal("10000000"), places=2),
        rate=st.decimals(min_value=Decimal("0"), max_value=Decimal("28"), places=2),
    )
    @settings(max_examples=300, deadline=None)
    def test_split_always_matches_igst_total(self, amount, rate):
        igst = calculate_gst(amount, rate, GstType.IGST)
        split = calculate_gst(amount, rate, GstType.CGST_SGST)
        assert split.cgst + split.sgst == igst.igst
        assert abs(split.cgst - split.sgst) <= Decimal("0.01")
        assert split.final_amount == igst.final_amount
