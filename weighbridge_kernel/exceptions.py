"""
Typed Exception Hierarchy for the Weighbridge Kernel.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from WeighbridgeError and belong to exactly one
ErrorKind.  Callers catch by type; transports map by ``kind`` and ``code``.

    WeighbridgeError (base)
    |
    +-- NotFoundError                      kind=NOT_FOUND
    |   +-- EntryNotFoundError
    |   +-- InvoiceNotFoundError
    |   +-- VendorNotFoundError
    |   +-- PlantNotFoundError
    |   +-- VehicleNotFoundError
    |   +-- MaterialNotFoundError
    |
    +-- ConflictError                      kind=CONFLICT
    |   +-- EntryAlreadySettledError
    |   +-- EntryNotSettledError
    |   +-- EntryAlreadyInvoicedError
    |   +-- EntryLockedError
    |   +-- InvalidStatusTransitionError
    |   +-- DuplicateCodeError
    |
    +-- ValidationError                    kind=VALIDATION
    |   +-- InvalidWeighmentError
    |   +-- PercentageOutOfRangeError
    |   +-- InvalidPeriodError
    |   +-- EntryMismatchError
    |   +-- ConfigurationError
    |
    +-- UnauthorizedError                  kind=UNAUTHORIZED
    |
    +-- ForbiddenError                     kind=FORBIDDEN
    |   +-- PlantScopeError
    |   +-- ReceiptWithheldError
    |
    +-- DependencyError                    kind=DEPENDENCY
        +-- SequenceUnavailableError
        +-- CacheUnavailableError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Kind          | Code                        | When Raised
--------------|-----------------------------|-----------------------------------
NOT_FOUND     | ENTRY_NOT_FOUND             | Entry id absent or soft-deleted
              | INVOICE_NOT_FOUND           | Invoice id absent or soft-deleted
              | VENDOR_NOT_FOUND            | Vendor id absent
              | PLANT_NOT_FOUND             | Plant id absent
              | VEHICLE_NOT_FOUND           | Vehicle id absent
              | MATERIAL_NOT_FOUND          | Material id absent
--------------|-----------------------------|-----------------------------------
CONFLICT      | ENTRY_ALREADY_SETTLED       | Exit weight submitted twice
              | ENTRY_NOT_SETTLED           | Review/flag/bill an open entry
              | ENTRY_ALREADY_INVOICED      | Entry claimed by an active invoice
              | ENTRY_LOCKED                | Reviewed/invoiced entry mutated
              | INVALID_STATUS_TRANSITION   | Invoice status moved backwards
              | DUPLICATE_CODE              | Unique code/number/name reused
--------------|-----------------------------|-----------------------------------
VALIDATION    | INVALID_WEIGHMENT           | Weights violate physical ordering
              | PERCENTAGE_OUT_OF_RANGE     | Moisture/dust/GST outside 0-100
              | INVALID_PERIOD              | start_date after end_date
              | ENTRY_MISMATCH              | Entry vendor/plant/type mismatch
              | INVALID_INPUT               | Any other malformed input
              | CONFIGURATION_ERROR         | Missing/invalid config value
--------------|-----------------------------|-----------------------------------
UNAUTHORIZED  | UNAUTHORIZED                | No authenticated actor
FORBIDDEN     | FORBIDDEN                   | Role not allowed for operation
              | PLANT_SCOPE_VIOLATION       | Resource outside caller's plant
              | RECEIPT_WITHHELD            | Receipt for variance-flagged entry
--------------|-----------------------------|-----------------------------------
DEPENDENCY    | SEQUENCE_UNAVAILABLE        | Counter store unreachable
              | CACHE_UNAVAILABLE           | Cache backend unreachable

===============================================================================
HANDLING PATTERNS
===============================================================================

NOT_FOUND, CONFLICT and VALIDATION are detected at the component boundary
and surfaced with enough structured data to correct the input.  They are
never retried by the kernel.  DEPENDENCY errors abort the owning mutation.
``error_payload`` is the single mapping from an exception to the
caller-visible ``{"kind", "code", "message"}`` triple; non-kernel exceptions
are reported as a generic internal error without detail.
"""

from enum import Enum
from typing import Any, Iterable


class ErrorKind(str, Enum):
    """Stable, caller-visible error categories."""

    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    VALIDATION = "validation"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    DEPENDENCY = "dependency"
    INTERNAL = "internal"


class WeighbridgeError(Exception):
    """
    Base exception for all weighbridge kernel errors.

    All subclasses carry a ``code`` class attribute for machine-readable
    identification and a ``kind`` naming their category.
    """

    code: str = "WEIGHBRIDGE_ERROR"
    kind: ErrorKind = ErrorKind.INTERNAL


# Category bases


class NotFoundError(WeighbridgeError):
    """Referenced resource does not exist (or is soft-deleted)."""

    code: str = "NOT_FOUND"
    kind: ErrorKind = ErrorKind.NOT_FOUND
    resource: str = "resource"

    def __init__(self, resource_id: Any):
        self.resource_id = str(resource_id)
        super().__init__(f"{self.resource.capitalize()} not found: {resource_id}")


class ConflictError(WeighbridgeError):
    """Operation conflicts with the current state of a resource."""

    code: str = "CONFLICT"
    kind: ErrorKind = ErrorKind.CONFLICT


class ValidationError(WeighbridgeError):
    """Input is malformed or violates a domain rule."""

    code: str = "INVALID_INPUT"
    kind: ErrorKind = ErrorKind.VALIDATION


class UnauthorizedError(WeighbridgeError):
    """No authenticated actor was supplied."""

    code: str = "UNAUTHORIZED"
    kind: ErrorKind = ErrorKind.UNAUTHORIZED

    def __init__(self, message: str = "User not authenticated"):
        super().__init__(message)


class ForbiddenError(WeighbridgeError):
    """Actor is authenticated but not allowed to perform the operation."""

    code: str = "FORBIDDEN"
    kind: ErrorKind = ErrorKind.FORBIDDEN


class DependencyError(WeighbridgeError):
    """A backing store required for the operation is unavailable."""

    code: str = "DEPENDENCY_UNAVAILABLE"
    kind: ErrorKind = ErrorKind.DEPENDENCY


# Not found


class EntryNotFoundError(NotFoundError):
    code: str = "ENTRY_NOT_FOUND"
    resource = "entry"


class InvoiceNotFoundError(NotFoundError):
    code: str = "INVOICE_NOT_FOUND"
    resource = "invoice"


class VendorNotFoundError(NotFoundError):
    code: str = "VENDOR_NOT_FOUND"
    resource = "vendor"


class PlantNotFoundError(NotFoundError):
    code: str = "PLANT_NOT_FOUND"
    resource = "plant"


class VehicleNotFoundError(NotFoundError):
    code: str = "VEHICLE_NOT_FOUND"
    resource = "vehicle"


class MaterialNotFoundError(NotFoundError):
    code: str = "MATERIAL_NOT_FOUND"
    resource = "material"


# Conflict


class EntryAlreadySettledError(ConflictError):
    """Exit weight was already recorded for this entry."""

    code: str = "ENTRY_ALREADY_SETTLED"

    def __init__(self, entry_id: Any):
        self.entry_id = str(entry_id)
        super().__init__(f"Exit weight already recorded for entry {entry_id}")


class EntryNotSettledError(ConflictError):
    """Operation requires a settled entry."""

    code: str = "ENTRY_NOT_SETTLED"

    def __init__(self, entry_id: Any, operation: str):
        self.entry_id = str(entry_id)
        self.operation = operation
        super().__init__(f"Cannot {operation} entry {entry_id}: entry is not settled")


class EntryAlreadyInvoicedError(ConflictError):
    """One or more entries are already claimed by an active invoice."""

    code: str = "ENTRY_ALREADY_INVOICED"

    def __init__(self, entry_ids: Iterable[Any]):
        self.entry_ids = sorted(str(e) for e in entry_ids)
        super().__init__(
            f"Entries already billed on an active invoice: {', '.join(self.entry_ids)}"
        )


class EntryLockedError(ConflictError):
    """Entry can no longer be changed in the requested way."""

    code: str = "ENTRY_LOCKED"

    def __init__(self, entry_id: Any, reason: str):
        self.entry_id = str(entry_id)
        self.reason = reason
        super().__init__(f"Entry {entry_id} cannot be modified: {reason}")


class InvalidStatusTransitionError(ConflictError):
    """Invoice status transition is not allowed."""

    code: str = "INVALID_STATUS_TRANSITION"

    def __init__(self, invoice_id: Any, from_status: str, to_status: str):
        self.invoice_id = str(invoice_id)
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Invoice {invoice_id} cannot move from {from_status} to {to_status}"
        )


class DuplicateCodeError(ConflictError):
    """A unique code, number or name is already taken."""

    code: str = "DUPLICATE_CODE"

    def __init__(self, field: str, value: Any):
        self.field = field
        self.value = str(value)
        super().__init__(f"{field} already exists: {value}")


# Validation


class InvalidWeighmentError(ValidationError):
    """Weighments violate the physical ordering for the entry type."""

    code: str = "INVALID_WEIGHMENT"

    def __init__(self, entry_type: str, entry_weight: Any, exit_weight: Any, message: str):
        self.entry_type = entry_type
        self.entry_weight = str(entry_weight)
        self.exit_weight = str(exit_weight)
        super().__init__(message)


class PercentageOutOfRangeError(ValidationError):
    """A percentage field is outside 0-100."""

    code: str = "PERCENTAGE_OUT_OF_RANGE"

    def __init__(self, field: str, value: Any):
        self.field = field
        self.value = str(value)
        super().__init__(f"{field} must be between 0 and 100, got {value}")


class InvalidPeriodError(ValidationError):
    """Billing period is malformed."""

    code: str = "INVALID_PERIOD"

    def __init__(self, start_date: Any, end_date: Any):
        self.start_date = str(start_date)
        self.end_date = str(end_date)
        super().__init__(f"Invalid period: {start_date} is after {end_date}")


class EntryMismatchError(ValidationError):
    """Entry does not match the vendor, plant or type of the invoice."""

    code: str = "ENTRY_MISMATCH"

    def __init__(self, entry_id: Any, reason: str):
        self.entry_id = str(entry_id)
        self.reason = reason
        super().__init__(f"Entry {entry_id} cannot be billed: {reason}")


class ConfigurationError(ValidationError):
    """Configuration is missing a required value or holds an invalid one."""

    code: str = "CONFIGURATION_ERROR"


# Forbidden


class PlantScopeError(ForbiddenError):
    """Resource belongs to a plant outside the caller's assignment."""

    code: str = "PLANT_SCOPE_VIOLATION"

    def __init__(self, plant_id: Any):
        self.plant_id = str(plant_id)
        super().__init__("Forbidden: resource is not in your plant")


class ReceiptWithheldError(ForbiddenError):
    """Receipt is not issued for unsettled or variance-flagged entries."""

    code: str = "RECEIPT_WITHHELD"

    def __init__(self, entry_id: Any, reason: str):
        self.entry_id = str(entry_id)
        self.reason = reason
        super().__init__(f"Receipt not available for entry {entry_id}: {reason}")


# Dependency


class SequenceUnavailableError(DependencyError):
    """Counter store failed during sequence allocation."""

    code: str = "SEQUENCE_UNAVAILABLE"

    def __init__(self, series_key: str):
        self.series_key = series_key
        super().__init__(f"Sequence allocation failed for series {series_key}")


class CacheUnavailableError(DependencyError):
    """Cache backend failed."""

    code: str = "CACHE_UNAVAILABLE"


_INTERNAL_MESSAGE = "Internal server error"


def error_payload(exc: BaseException) -> dict[str, str]:
    """
    Map an exception to the caller-visible error triple.

    Kernel errors keep their kind, code and message.  Dependency errors and
    anything that is not a kernel error are reported without detail.
    """
    if isinstance(exc, DependencyError):
        return {
            "kind": exc.kind.value,
            "code": exc.code,
            "message": "A backing service is unavailable, please retry later",
        }
    if isinstance(exc, WeighbridgeError):
        return {"kind": exc.kind.value, "code": exc.code, "message": str(exc)}
    return {
        "kind": ErrorKind.INTERNAL.value,
        "code": "INTERNAL_ERROR",
        "message": _INTERNAL_MESSAGE,
    }
