"""
Settlement arithmetic tests (weighbridge_kernel/domain/weighment.py).

Pure functions: no database.  Covers weighment ordering, quality deductions,
packed and loose sales, tare-based expectation and the variance verdict.
"""

from decimal import Decimal

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from weighbridge_kernel.domain.values import EntryType, PalletteType
from weighbridge_kernel.domain.weighment import (
    WeighmentInput,
    check_percentage,
    packed_weight_for,
    quality_deductions,
    settle,
    validate_weighments,
    variance,
)
from weighbridge_kernel.exceptions import (
    InvalidWeighmentError,
    PercentageOutOfRangeError,
    ValidationError,
)

TOLERANCE = Decimal("1.0")


class TestWeighmentOrdering:
    def test_purchase_requires_exit_above_entry(self):
        with pytest.raises(InvalidWeighmentError) as exc_info:
            validate_weighments(EntryType.PURCHASE, Decimal("1800"), Decimal("1000"))
        assert "exit weight must be greater" in str(exc_info.value)

    def test_sale_requires_exit_below_entry(self):
        with pytest.raises(InvalidWeighmentError) as exc_info:
            validate_weighments(EntryType.SALE, Decimal("1000"), Decimal("1800"))
        assert "exit weight must be less" in str(exc_info.value)

    def test_equal_weighments_rejected(self):
        with pytest.raises(InvalidWeighmentError):
            validate_weighments(EntryType.PURCHASE, Decimal("1000"), Decimal("1000"))

    def test_non_positive_weight_rejected(self):
        with pytest.raises(InvalidWeighmentError):
            validate_weighments(EntryType.SALE, Decimal("1000"), Decimal("0"))

    def test_error_is_validation_kind(self):
        with pytest.raises(ValidationError):
            settle(WeighmentInput(EntryType.SALE, Decimal("500"), Decimal("900")), TOLERANCE)


class TestPurchaseSettlement:
    def test_reference_case_nets_684(self):
        result = settle(
            WeighmentInput(
                EntryType.PURCHASE,
                Decimal("1000"),
                Decimal("1800"),
                moisture=Decimal("10"),
                dust=Decimal("5"),
            ),
            TOLERANCE,
        )
        assert result.gross_weight == Decimal("800")
        assert result.moisture_weight == Decimal("80")
        assert result.dust_weight == Decimal("36")
        assert result.quantity == Decimal("684.000")
        assert result.net_weight == result.quantity

    def test_no_quality_figures_means_no_deduction(self):
        result = settle(
            WeighmentInput(EntryType.PURCHASE, Decimal("1000"), Decimal("1800")), TOLERANCE
        )
        assert result.quantity == Decimal("800")
        assert result.moisture_weight == Decimal("0")
        assert result.dust_weight == Decimal("0")

    def test_rate_prices_net_quantity(self):
        result = settle(
            WeighmentInput(
                EntryType.PURCHASE,
                Decimal("1000"),
                Decimal("1800"),
                moisture=Decimal("10"),
                dust=Decimal("5"),
                rate=Decimal("2.5"),
            ),
            TOLERANCE,
        )
        assert result.total_amount == Decimal("1710.00")

    def test_without_expectation_variance_is_unknown(self):
        result = settle(
            WeighmentInput(EntryType.PURCHASE, Decimal("1000"), Decimal("1800")), TOLERANCE
        )
        assert result.expected_weight is None
        assert result.variance_flag is None
        assert result.variance_pct is None

    def test_unladen_weighment_is_entry_weight(self):
        result = settle(
            WeighmentInput(EntryType.PURCHASE, Decimal("1000"), Decimal("1800")), TOLERANCE
        )
        assert result.unladen_weight == Decimal("1000")

    def test_percentage_out_of_range_rejected(self):
        with pytest.raises(PercentageOutOfRangeError):
            settle(
                WeighmentInput(
                    EntryType.PURCHASE, Decimal("1000"), Decimal("1800"), moisture=Decimal("101")
                ),
                TOLERANCE,
            )


class TestSaleSettlement:
    def test_packed_sale_within_tolerance(self):
        result = settle(
            WeighmentInput(
                EntryType.SALE,
                Decimal("5000"),
                Decimal("1000"),
                pallette_type=PalletteType.PACKED,
                no_of_bags=80,
                weight_per_bag=Decimal("50"),
            ),
            TOLERANCE,
        )
        assert result.gross_weight == Decimal("4000")
        assert result.packed_weight == Decimal("4000")
        assert result.expected_weight == Decimal("4000")
        assert result.quantity == Decimal("4000")
        assert result.variance_pct == Decimal("0")
        assert result.variance_flag is False

    def test_packed_sale_outside_tolerance_is_flagged(self):
        result = settle(
            WeighmentInput(
                EntryType.SALE,
                Decimal("5000"),
                Decimal("1000"),
                pallette_type=PalletteType.PACKED,
                no_of_bags=80,
                weight_per_bag=Decimal("48"),
            ),
            TOLERANCE,
        )
        # 3840 expected against 4000 measured
        assert result.variance_pct == Decimal("4.1667")
        assert result.variance_flag is True
        assert "3840" in result.variance_reason
        assert result.quantity == Decimal("3840")

    def test_loose_sale_quantity_is_gross(self):
        result = settle(
            WeighmentInput(
                EntryType.SALE, Decimal("5000"), Decimal("1000"), pallette_type=PalletteType.LOOSE
            ),
            TOLERANCE,
        )
        assert result.quantity == Decimal("4000")
        assert result.packed_weight is None
        assert result.variance_flag is None

    def test_packed_sale_requires_bag_data(self):
        with pytest.raises(ValidationError):
            settle(
                WeighmentInput(
                    EntryType.SALE, Decimal("5000"), Decimal("1000"), pallette_type=PalletteType.PACKED
                ),
                TOLERANCE,
            )

    def test_sale_unladen_weighment_is_exit_weight(self):
        result = settle(
            WeighmentInput(EntryType.SALE, Decimal("5000"), Decimal("1000")), TOLERANCE
        )
        assert result.unladen_weight == Decimal("1000")


class TestTareExpectation:
    def test_tare_sets_expected_payload(self):
        result = settle(
            WeighmentInput(
                EntryType.PURCHASE,
                Decimal("1000"),
                Decimal("1800"),
                tare_weight=Decimal("1000"),
            ),
            TOLERANCE,
        )
        assert result.expected_weight == Decimal("800")
        assert result.variance_flag is False

    def test_tare_mismatch_is_flagged(self):
        result = settle(
            WeighmentInput(
                EntryType.PURCHASE,
                Decimal("1100"),
                Decimal("1800"),
                tare_weight=Decimal("1000"),
            ),
            TOLERANCE,
        )
        assert result.expected_weight == Decimal("800")
        assert result.variance_pct == Decimal("12.5")
        assert result.variance_flag is True

    def test_bag_expectation_wins_over_tare(self):
        result = settle(
            WeighmentInput(
                EntryType.SALE,
                Decimal("5000"),
                Decimal("1000"),
                pallette_type=PalletteType.PACKED,
                no_of_bags=80,
                weight_per_bag=Decimal("50"),
                tare_weight=Decimal("900"),
            ),
            TOLERANCE,
        )
        assert result.expected_weight == Decimal("4000")

    def test_fixed_expectation_wins_over_tare(self):
        result = settle(
            WeighmentInput(
                EntryType.PURCHASE,
                Decimal("1000"),
                Decimal("1800"),
                tare_weight=Decimal("500"),
                expected_weight=Decimal("800"),
            ),
            TOLERANCE,
        )
        assert result.expected_weight == Decimal("800")
        assert result.variance_flag is False

    def test_quality_deductions_do_not_raise_variance(self):
        result = settle(
            WeighmentInput(
                EntryType.PURCHASE,
                Decimal("1000"),
                Decimal("1800"),
                moisture=Decimal("40"),
                dust=Decimal("40"),
                tare_weight=Decimal("1000"),
            ),
            TOLERANCE,
        )
        assert result.variance_flag is False


class TestVariance:
    def test_exactly_at_tolerance_is_not_flagged(self):
        pct, flag, reason = variance(Decimal("101"), Decimal("100"), Decimal("1"))
        assert pct == Decimal("1")
        assert flag is False
        assert reason is None

    def test_non_positive_expectation_is_flagged(self):
        pct, flag, reason = variance(Decimal("100"), Decimal("0"), Decimal("1"))
        assert pct is None
        assert flag is True
        assert reason

    def test_no_expectation(self):
        assert variance(Decimal("100"), None, Decimal("1")) == (None, None, None)


class TestHelpers:
    def test_quality_deductions_sequential(self):
        assert quality_deductions(Decimal("800"), Decimal("10"), Decimal("5")) == (
            Decimal("80.000"),
            Decimal("36.000"),
            Decimal("684.000"),
        )

    def test_check_percentage_passes_none(self):
        assert check_percentage("dust", None) is None

    def test_check_percentage_bounds(self):
        assert check_percentage("dust", Decimal("0")) == Decimal("0")
        assert check_percentage("dust", Decimal("100")) == Decimal("100")
        with pytest.raises(PercentageOutOfRangeError):
            check_percentage("dust", Decimal("-0.1"))

    def test_packed_weight_requires_positive_values(self):
        assert packed_weight_for(10, Decimal("25.5")) == Decimal("255")
        with pytest.raises(ValidationError):
            packed_weight_for(0, Decimal("25"))


weights = st.decimals(min_value=Decimal("1"), max_value=Decimal("100000"), places=3)
percentages = st.decimals(min_value=Decimal("0"), max_value=Decimal("100"), places=2)


class TestSettlementProperties:
    @given(entry=weights, load=weights, moisture=percentages, dust=percentages)
    @settings(max_examples=200, deadline=None)
    def test_purchase_quantity_never_exceeds_gross(self, entry, load, moisture, dust):
        result = settle(
            WeighmentInput(
                EntryType.PURCHASE, entry, entry + load, moisture=moisture, dust=dust
            ),
            TOLERANCE,
        )
        assert result.gross_weight == load
        assert Decimal("0") <= result.quantity <= result.gross_weight
        assert result.quantity + result.moisture_weight + result.dust_weight == result.gross_weight

    @given(unladen=weights, load=weights)
    @settings(max_examples=200, deadline=None)
    def test_gross_is_symmetric_across_entry_types(self, unladen, load):
        purchase = settle(WeighmentInput(EntryType.PURCHASE, unladen, unladen + load), TOLERANCE)
        sale = settle(WeighmentInput(EntryType.SALE, unladen + load, unladen), TOLERANCE)
        assert purchase.gross_weight == sale.gross_weight == load
        assert purchase.unladen_weight == sale.unladen_weight == unladen

    @given(unladen=weights, load=weights)
    @settings(max_examples=100, deadline=None)
    def test_exact_tare_never_flags(self, unladen, load):
        result = settle(
            WeighmentInput(EntryType.PURCHASE, unladen, unladen + load, tare_weight=unladen),
            TOLERANCE,
        )
        assert result.variance_flag is False
