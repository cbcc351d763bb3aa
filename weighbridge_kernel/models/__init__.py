"""ORM models.  Importing this package registers every table on Base.metadata."""

from weighbridge_kernel.models.counter import Counter
from weighbridge_kernel.models.entry import Entry
from weighbridge_kernel.models.invoice import Invoice
from weighbridge_kernel.models.material import Material
from weighbridge_kernel.models.plant import Plant
from weighbridge_kernel.models.vehicle import Vehicle
from weighbridge_kernel.models.vendor import Vendor, vendor_plants

__all__ = [
    "Counter",
    "Entry",
    "Invoice",
    "Material",
    "Plant",
    "Vehicle",
    "Vendor",
    "vendor_plants",
]
