"""
Cache keys -- canonical, versioned keys for every cached read view.

Responsibility:
    Builds cache keys from structured filters.  Keys are canonical: field
    order, None-valued fields and value representation (UUID, datetime,
    Decimal, Enum) never change the key for the same logical query.  Aware
    datetimes are keyed by their UTC instant.

Architecture position:
    Kernel > Domain -- pure, zero I/O.

Key layout:
    <version>:<namespace>:item:<id>
    <version>:<namespace>:list:<canonical json>
    <version>:vendors:by_plant:<plant id>
    <version>:static:<lookup>[:<arg>]
    <version>:dashboard:<canonical json>
    <version>:reports:...

Every list key of a namespace shares the ``list_prefix`` so one prefix delete
clears all filtered variants.
"""

import json
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping
from uuid import UUID

ENTRIES = "entries"
INVOICES = "invoices"
VENDORS = "vendors"
VEHICLES = "vehicles"
MATERIALS = "materials"
PLANTS = "plants"
STATIC = "static"
DASHBOARD = "dashboard"
REPORTS = "reports"


def _normalize(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value.normalize())
    if isinstance(value, (list, tuple, set, frozenset)):
        items = [_normalize(v) for v in value]
        if isinstance(value, (set, frozenset)):
            items.sort(key=str)
        return items
    if isinstance(value, Mapping):
        return {str(k): _normalize(v) for k, v in value.items() if v is not None}
    return value


def canonical_params(params: Mapping[str, Any]) -> str:
    """Serialize query parameters deterministically (sorted, None dropped)."""
    cleaned = {str(k): _normalize(v) for k, v in params.items() if v is not None}
    return json.dumps(cleaned, sort_keys=True, separators=(",", ":"))


class CacheKeys:
    """Key builder bound to one key version."""

    def __init__(self, version: str = "v1"):
        self.version = version

    def _ns(self, namespace: str) -> str:
        return f"{self.version}:{namespace}:"

    def item(self, namespace: str, item_id: Any) -> str:
        return f"{self._ns(namespace)}item:{_normalize(item_id)}"

    def list_prefix(self, namespace: str) -> str:
        return f"{self._ns(namespace)}list:"

    def list(self, namespace: str, query) -> str:
        params = query.cache_params() if hasattr(query, "cache_params") else query
        return f"{self.list_prefix(namespace)}{canonical_params(params)}"

    def namespace_prefix(self, namespace: str) -> str:
        return self._ns(namespace)

    # Derived and aggregate views

    def vendors_by_plant_prefix(self) -> str:
        return f"{self._ns(VENDORS)}by_plant:"

    def vendors_by_plant(self, plant_id: Any) -> str:
        return f"{self.vendors_by_plant_prefix()}{_normalize(plant_id)}"

    def static(self, lookup: str, arg: Any = None) -> str:
        key = f"{self._ns(STATIC)}{lookup}"
        if arg is not None:
            key = f"{key}:{_normalize(arg)}"
        return key

    def static_prefix(self, lookup: str = "") -> str:
        return f"{self._ns(STATIC)}{lookup}"

    def dashboard(self, query) -> str:
        return f"{self._ns(DASHBOARD)}{canonical_params(query.cache_params())}"

    def dashboard_prefix(self) -> str:
        return self._ns(DASHBOARD)

    def reports_prefix(self) -> str:
        return self._ns(REPORTS)
