"""
Document numbering -- pure formatting of allocated sequence values.

Every document number has the shape ``<PREFIX>-<YYYY>-<zero padded seq>``
and is built from a value the sequence allocator handed out.  Nothing here
touches the store; allocation lives in ``services.sequence_service``.
"""

import re

from weighbridge_kernel.exceptions import ValidationError

ENTRY_PREFIX = "ENT"
INVOICE_PREFIX = "INV"
VENDOR_PREFIX = "VEN"
VEHICLE_PREFIX = "VEH"
PLANT_PREFIX = "PLT"

_PREFIX_RE = re.compile(r"^[A-Z]{2,8}$")


def series_key(prefix: str, year: int) -> str:
    """Counter key for one numbering series, e.g. ``INV-2025``."""
    if not _PREFIX_RE.match(prefix):
        raise ValidationError(f"Invalid document prefix: {prefix!r}")
    return f"{prefix}-{year:04d}"


def format_document_number(prefix: str, year: int, seq: int, padding: int) -> str:
    """
    Format an allocated value as a document number.

    >>> format_document_number("ENT", 2025, 42, 7)
    'ENT-2025-0000042'

    A value wider than ``padding`` is written in full rather than truncated.
    """
    if seq < 1:
        raise ValidationError(f"Sequence values start at 1, got {seq}")
    if padding < 1:
        raise ValidationError(f"Padding must be positive, got {padding}")
    return f"{series_key(prefix, year)}-{seq:0{padding}d}"


def parse_document_number(number: str) -> tuple[str, int, int]:
    """Split a document number back into ``(prefix, year, seq)``."""
    parts = number.split("-")
    if len(parts) != 3 or not parts[1].isdigit() or not parts[2].isdigit():
        raise ValidationError(f"Malformed document number: {number!r}")
    return parts[0], int(parts[1]), int(parts[2])
