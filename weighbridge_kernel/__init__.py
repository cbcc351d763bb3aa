"""
Weighbridge Kernel

Transaction core for a multi-plant biofuel weighbridge:
- Two-weighment entry capture and finalization with variance checks
- Invoice generation over settled entries with GST
- Atomic, store-backed document numbering
- Cache-aside read views with write-path invalidation
"""

__version__ = "0.1.0"
