"""
GST -- goods and services tax on invoice totals.

IGST applies to inter-state supply and is charged whole.  Intra-state supply
splits the same tax into CGST and SGST.  The split always sums exactly to
the tax total: CGST takes the rounded half and SGST takes the remainder.
"""

from dataclasses import dataclass
from decimal import Decimal

from weighbridge_kernel.domain.values import HUNDRED, GstType, quantize_money, to_decimal
from weighbridge_kernel.exceptions import PercentageOutOfRangeError, ValidationError

ZERO = Decimal("0.00")


@dataclass(frozen=True)
class GstBreakdown:
    """Tax lines for one invoice."""

    taxable_amount: Decimal
    gst_type: GstType | None
    gst_rate: Decimal
    igst: Decimal
    cgst: Decimal
    sgst: Decimal

    @property
    def total_gst(self) -> Decimal:
        return self.igst + self.cgst + self.sgst

    @property
    def final_amount(self) -> Decimal:
        return self.taxable_amount + self.total_gst


def calculate_gst(
    amount,
    gst_rate,
    gst_type: GstType | str | None,
    gst_applicable: bool = True,
) -> GstBreakdown:
    """
    Compute tax on ``amount`` at ``gst_rate`` percent.

    >>> b = calculate_gst(Decimal("10000"), Decimal("18"), GstType.IGST)
    >>> b.igst, b.final_amount
    (Decimal('1800.00'), Decimal('11800.00'))

    Raises:
        PercentageOutOfRangeError: rate outside 0-100.
        ValidationError: negative amount, or GST applicable without a type.
    """
    taxable = quantize_money(amount)
    if taxable < 0:
        raise ValidationError(f"Taxable amount cannot be negative: {taxable}")

    if not gst_applicable:
        return GstBreakdown(taxable, None, ZERO, ZERO, ZERO, ZERO)

    rate = to_decimal(gst_rate if gst_rate is not None else 0)
    if rate < 0 or rate > HUNDRED:
        raise PercentageOutOfRangeError("gst_rate", rate)
    if gst_type is None:
        raise ValidationError("gst_type is required when GST is applicable")
    kind = GstType(gst_type)

    total_gst = quantize_money(taxable * rate / HUNDRED)
    if kind == GstType.IGST:
        return GstBreakdown(taxable, kind, rate, total_gst, ZERO, ZERO)

    cgst = quantize_money(total_gst / 2)
    sgst = total_gst - cgst
    return GstBreakdown(taxable, kind, rate, ZERO, cgst, sgst)
