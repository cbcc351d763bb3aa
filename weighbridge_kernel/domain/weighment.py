"""
Weighment -- pure settlement arithmetic for a two-weighment entry.

Responsibility:
    Turns the first (entry) and second (exit) weighments of a vehicle into
    the settled figures of an entry: gross weight, quality deductions,
    billable quantity, expected weight and the variance verdict.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Called by
    EntryService on finalization and on post-settlement corrections.

Invariants enforced:
    - Weighment ordering: a purchase vehicle arrives empty and leaves
      loaded (exit > entry); a sale vehicle arrives loaded and leaves empty
      (exit < entry).  Anything else is rejected before any computation.
    - gross = |exit - entry|.
    - Purchase net quantity deducts moisture first, then dust from what
      remains: net = gross * (1 - m/100) * (1 - d/100).
    - Sale quantity is the packed weight for packed sales, gross otherwise.
    - variance_flag is raised only when the deviation of the measured load
      from the expected load exceeds the configured tolerance percentage.
      It never reflects the manual ``flagged`` marker or quality deductions.

Failure modes:
    - InvalidWeighmentError: non-positive weight or wrong ordering.
    - PercentageOutOfRangeError: moisture or dust outside 0-100.
    - ValidationError: packed sale without positive bag count and weight.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from weighbridge_kernel.domain.values import (
    HUNDRED,
    EntryType,
    PalletteType,
    quantize_money,
    quantize_percent,
    quantize_weight,
    to_decimal,
)
from weighbridge_kernel.exceptions import (
    InvalidWeighmentError,
    PercentageOutOfRangeError,
    ValidationError,
)


@dataclass(frozen=True)
class WeighmentInput:
    """Everything settlement needs, detached from the ORM row."""

    entry_type: EntryType
    entry_weight: Decimal
    exit_weight: Decimal
    moisture: Decimal | None = None
    dust: Decimal | None = None
    pallette_type: PalletteType | None = None
    no_of_bags: int | None = None
    weight_per_bag: Decimal | None = None
    rate: Decimal | None = None
    tare_weight: Decimal | None = None
    # Expectation fixed at settlement; takes precedence over tare on recompute
    expected_weight: Decimal | None = None


@dataclass(frozen=True)
class WeighmentResult:
    """Derived figures written onto a settled entry."""

    gross_weight: Decimal
    moisture_weight: Decimal | None
    dust_weight: Decimal | None
    quantity: Decimal
    packed_weight: Decimal | None
    expected_weight: Decimal | None
    variance_pct: Decimal | None
    variance_flag: bool | None
    variance_reason: str | None
    total_amount: Decimal | None
    unladen_weight: Decimal

    @property
    def net_weight(self) -> Decimal:
        return self.quantity


def check_percentage(field: str, value) -> Decimal | None:
    """Validate a 0-100 percentage, passing None through."""
    if value is None:
        return None
    pct = to_decimal(value)
    if pct < 0 or pct > HUNDRED:
        raise PercentageOutOfRangeError(field, value)
    return pct


def validate_weighments(entry_type: EntryType, entry_weight, exit_weight) -> None:
    """Reject non-positive weights and weighments in the wrong order."""
    entry_w = to_decimal(entry_weight)
    exit_w = to_decimal(exit_weight)
    if entry_w <= 0 or exit_w <= 0:
        raise InvalidWeighmentError(
            entry_type.value, entry_w, exit_w, "Weights must be positive"
        )
    if entry_type == EntryType.PURCHASE and exit_w <= entry_w:
        raise InvalidWeighmentError(
            entry_type.value,
            entry_w,
            exit_w,
            "Invalid weights: for purchase, exit weight must be greater than entry weight",
        )
    if entry_type == EntryType.SALE and exit_w >= entry_w:
        raise InvalidWeighmentError(
            entry_type.value,
            entry_w,
            exit_w,
            "Invalid weights: for sale, exit weight must be less than entry weight",
        )


def loaded_and_unladen(entry_type: EntryType, entry_weight: Decimal, exit_weight: Decimal):
    """Return ``(loaded, unladen)`` weighments for the entry type."""
    if entry_type == EntryType.PURCHASE:
        return exit_weight, entry_weight
    return entry_weight, exit_weight


def quality_deductions(gross: Decimal, moisture: Decimal | None, dust: Decimal | None):
    """
    Apply moisture then dust deductions to ``gross``.

    Returns ``(moisture_weight, dust_weight, net)``.

    >>> quality_deductions(Decimal("800"), Decimal("10"), Decimal("5"))
    (Decimal('80.000'), Decimal('36.000'), Decimal('684.000'))
    """
    moisture_weight = quantize_weight(gross * (moisture or 0) / HUNDRED)
    remaining = gross - moisture_weight
    dust_weight = quantize_weight(remaining * (dust or 0) / HUNDRED)
    net = quantize_weight(gross - moisture_weight - dust_weight)
    return moisture_weight, dust_weight, net


def variance(measured: Decimal, expected: Decimal | None, tolerance_pct: Decimal):
    """
    Compare ``measured`` against ``expected``.

    Returns ``(variance_pct, variance_flag, reason)``.  With no expectation
    all three are None.  A non-positive expectation cannot be compared and
    is flagged outright.
    """
    if expected is None:
        return None, None, None
    if expected <= 0:
        return None, True, f"Expected weight {expected} is not positive"
    pct = quantize_percent(abs(measured - expected) / expected * HUNDRED)
    if pct > tolerance_pct:
        return (
            pct,
            True,
            f"Measured {measured} deviates {pct}% from expected {expected} "
            f"(tolerance {tolerance_pct}%)",
        )
    return pct, False, None


def settle(data: WeighmentInput, tolerance_pct) -> WeighmentResult:
    """
    Compute the settled figures of an entry.

    >>> r = settle(WeighmentInput(EntryType.PURCHASE, Decimal("1000"),
    ...     Decimal("1800"), Decimal("10"), Decimal("5")), Decimal("1"))
    >>> r.gross_weight, r.quantity
    (Decimal('800.000'), Decimal('684.000'))
    """
    tolerance = to_decimal(tolerance_pct)
    entry_w = to_decimal(data.entry_weight)
    exit_w = to_decimal(data.exit_weight)
    validate_weighments(data.entry_type, entry_w, exit_w)

    gross = quantize_weight(abs(exit_w - entry_w))
    loaded, unladen = loaded_and_unladen(data.entry_type, entry_w, exit_w)

    moisture_weight = dust_weight = packed_weight = None
    expected = None

    if data.entry_type == EntryType.PURCHASE:
        moisture = check_percentage("moisture", data.moisture)
        dust = check_percentage("dust", data.dust)
        moisture_weight, dust_weight, quantity = quality_deductions(gross, moisture, dust)
    else:
        pallette = PalletteType(data.pallette_type) if data.pallette_type else PalletteType.LOOSE
        if pallette == PalletteType.PACKED:
            packed_weight = packed_weight_for(data.no_of_bags, data.weight_per_bag)
            expected = packed_weight
            quantity = packed_weight
        else:
            quantity = gross

    if expected is None and data.expected_weight is not None:
        expected = quantize_weight(data.expected_weight)
    elif expected is None and data.tare_weight is not None:
        expected = quantize_weight(loaded - to_decimal(data.tare_weight))

    variance_pct, variance_flag, reason = variance(gross, expected, tolerance)

    total_amount = None
    if data.rate is not None:
        total_amount = quantize_money(quantity * to_decimal(data.rate))

    return WeighmentResult(
        gross_weight=gross,
        moisture_weight=moisture_weight,
        dust_weight=dust_weight,
        quantity=quantity,
        packed_weight=packed_weight,
        expected_weight=expected,
        variance_pct=variance_pct,
        variance_flag=variance_flag,
        variance_reason=reason,
        total_amount=total_amount,
        unladen_weight=quantize_weight(unladen),
    )


def packed_weight_for(no_of_bags, weight_per_bag) -> Decimal:
    """Bags times weight per bag; both must be positive."""
    if no_of_bags is None or weight_per_bag is None:
        raise ValidationError("no_of_bags and weight_per_bag are required for packed sale")
    bags = int(no_of_bags)
    per_bag = to_decimal(weight_per_bag)
    if bags <= 0 or per_bag <= 0:
        raise ValidationError("no_of_bags and weight_per_bag must be positive")
    return quantize_weight(bags * per_bag)
