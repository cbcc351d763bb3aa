"""Pure domain core: values, weighment and GST arithmetic, keys, DTOs, events."""

from weighbridge_kernel.domain.auth import AuthContext, Role
from weighbridge_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from weighbridge_kernel.domain.values import (
    EntryStatus,
    EntryType,
    GstType,
    InvoiceStatus,
    PalletteType,
    VehicleType,
)

__all__ = [
    "AuthContext",
    "Role",
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "EntryStatus",
    "EntryType",
    "GstType",
    "InvoiceStatus",
    "PalletteType",
    "VehicleType",
]
