"""
Filters -- structured list/aggregate query parameters.

Each list read takes one of these frozen dataclasses instead of a loose
mapping so that the cache key derived from it is canonical: the same
logical filter always yields the same key no matter how it was assembled.
"""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from datetime import date, datetime
from typing import Any
from uuid import UUID

from weighbridge_kernel.domain.values import EntryStatus, EntryType, InvoiceStatus, VehicleType
from weighbridge_kernel.exceptions import ValidationError

MAX_PAGE_SIZE = 200


class _Paged:
    page: int
    limit: int

    def __post_init__(self) -> None:
        if self.page < 1:
            raise ValidationError(f"page must be >= 1, got {self.page}")
        if self.limit < 1 or self.limit > MAX_PAGE_SIZE:
            raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}, got {self.limit}")

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    def cache_params(self) -> dict[str, Any]:
        """Field values keyed by name, for cache key construction."""
        return {f.name: getattr(self, f.name) for f in fields(self)}

    def with_changes(self, **changes):
        return replace(self, **changes)


@dataclass(frozen=True)
class EntryFilter(_Paged):
    entry_type: EntryType | None = None
    status: EntryStatus | None = None
    vendor_id: UUID | None = None
    plant_id: UUID | None = None
    vehicle_id: UUID | None = None
    created_by_id: UUID | None = None
    is_reviewed: bool | None = None
    flagged: bool | None = None
    variance_flag: bool | None = None
    invoiced: bool | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None
    page: int = 1
    limit: int = 50


@dataclass(frozen=True)
class InvoiceFilter(_Paged):
    vendor_id: UUID | None = None
    plant_id: UUID | None = None
    status: InvoiceStatus | None = None
    invoice_type: EntryType | None = None
    date_from: date | None = None
    date_to: date | None = None
    # Reference day for the derived overdue status
    as_of: date | None = None
    page: int = 1
    limit: int = 50


@dataclass(frozen=True)
class VendorFilter(_Paged):
    plant_id: UUID | None = None
    search: str | None = None
    page: int = 1
    limit: int = 50


@dataclass(frozen=True)
class VehicleFilter(_Paged):
    vehicle_type: VehicleType | None = None
    search: str | None = None
    page: int = 1
    limit: int = 50


@dataclass(frozen=True)
class MaterialFilter(_Paged):
    search: str | None = None
    page: int = 1
    limit: int = 50


@dataclass(frozen=True)
class PlantFilter(_Paged):
    search: str | None = None
    page: int = 1
    limit: int = 50


@dataclass(frozen=True)
class DashboardFilter:
    plant_id: UUID | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None

    def cache_params(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    def with_changes(self, **changes):
        return replace(self, **changes)
