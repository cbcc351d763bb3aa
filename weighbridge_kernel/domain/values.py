"""
Values -- enumerations and decimal quantization shared across the kernel.

Weights are carried to three decimal places (kilogram grams), money to two,
percentages to four.  Every rounding goes through these helpers so the
persisted values and the values used in comparisons are identical.
"""

from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

WEIGHT_QUANTUM = Decimal("0.001")
MONEY_QUANTUM = Decimal("0.01")
PERCENT_QUANTUM = Decimal("0.0001")
HUNDRED = Decimal("100")


class EntryType(str, Enum):
    PURCHASE = "purchase"
    SALE = "sale"


class EntryStatus(str, Enum):
    """Open until the exit weighment lands, then settled for good."""

    OPEN = "open"
    SETTLED = "settled"


class PalletteType(str, Enum):
    LOOSE = "loose"
    PACKED = "packed"


class VehicleType(str, Enum):
    TRUCK = "truck"
    TEMPO = "tempo"
    TRACTOR = "tractor"
    PICKUP = "pickup"
    TRAILER = "trailer"
    OTHER = "other"


class InvoiceStatus(str, Enum):
    """Stored invoice status.  ``overdue`` is derived, never stored."""

    DRAFT = "draft"
    SENT = "sent"
    PAID = "paid"
    OVERDUE = "overdue"


class GstType(str, Enum):
    IGST = "IGST"
    CGST_SGST = "CGST_SGST"


def to_decimal(value) -> Decimal:
    """Convert int/str/Decimal to Decimal.  Floats go through str()."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def quantize_weight(value) -> Decimal:
    return to_decimal(value).quantize(WEIGHT_QUANTUM, rounding=ROUND_HALF_UP)


def quantize_money(value) -> Decimal:
    return to_decimal(value).quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)


def quantize_percent(value) -> Decimal:
    return to_decimal(value).quantize(PERCENT_QUANTUM, rounding=ROUND_HALF_UP)
