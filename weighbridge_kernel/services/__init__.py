"""Services for the weighbridge kernel (write side)."""

from weighbridge_kernel.services.cache_service import (
    CacheBackend,
    CacheService,
    CacheTtl,
    InMemoryCacheBackend,
)
from weighbridge_kernel.services.entry_service import EntryService
from weighbridge_kernel.services.event_publisher import EventPublisher
from weighbridge_kernel.services.invoice_service import InvoiceService
from weighbridge_kernel.services.material_service import MaterialService
from weighbridge_kernel.services.plant_service import PlantService
from weighbridge_kernel.services.sequence_service import SequenceService
from weighbridge_kernel.services.static_data_service import StaticDataService
from weighbridge_kernel.services.vehicle_service import VehicleService
from weighbridge_kernel.services.vendor_service import VendorService

__all__ = [
    "CacheBackend",
    "CacheService",
    "CacheTtl",
    "EntryService",
    "EventPublisher",
    "InMemoryCacheBackend",
    "InvoiceService",
    "MaterialService",
    "PlantService",
    "SequenceService",
    "StaticDataService",
    "VehicleService",
    "VendorService",
]
