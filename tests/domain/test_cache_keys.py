"""Canonical cache key tests (weighbridge_kernel/domain/cache_keys.py)."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

from hypothesis import given, settings
from hypothesis import strategies as st

from weighbridge_kernel.domain.cache_keys import ENTRIES, VENDORS, CacheKeys, canonical_params
from weighbridge_kernel.domain.filters import DashboardFilter, EntryFilter, VendorFilter
from weighbridge_kernel.domain.values import EntryStatus, EntryType


class TestCanonicalParams:
    def test_none_values_dropped(self):
        assert canonical_params({"a": 1, "b": None}) == canonical_params({"a": 1})

    def test_decimal_representation_normalized(self):
        assert canonical_params({"w": Decimal("10.0")}) == canonical_params({"w": Decimal("10")})

    def test_enum_and_uuid_serialized_by_value(self):
        plant_id = uuid4()
        assert canonical_params({"t": EntryType.SALE, "p": plant_id}) == (
            f'{{"p":"{plant_id}","t":"sale"}}'
        )

    def test_same_instant_at_different_offsets_same_key(self):
        utc = datetime(2024, 4, 1, 6, 30, tzinfo=timezone.utc)
        ist = utc.astimezone(timezone(timedelta(hours=5, minutes=30)))
        assert canonical_params({"since": ist}) == canonical_params({"since": utc})
        assert canonical_params({"since": utc}) == '{"since":"2024-04-01T06:30:00+00:00"}'

    def test_naive_datetime_kept_as_given(self):
        assert canonical_params({"since": datetime(2024, 4, 1, 12, 0)}) == (
            '{"since":"2024-04-01T12:00:00"}'
        )

    @given(
        st.dictionaries(
            st.text(min_size=1, max_size=8),
            st.one_of(st.integers(), st.text(max_size=8), st.booleans()),
            max_size=8,
        )
    )
    @settings(max_examples=200)
    def test_key_order_never_changes_result(self, params):
        reordered = dict(reversed(list(params.items())))
        assert canonical_params(params) == canonical_params(reordered)


class TestCacheKeys:
    def test_item_key_layout(self):
        keys = CacheKeys("v3")
        entry_id = uuid4()
        assert keys.item(ENTRIES, entry_id) == f"v3:entries:item:{entry_id}"

    def test_same_filter_same_key(self):
        keys = CacheKeys()
        plant_id = uuid4()
        a = EntryFilter(plant_id=plant_id, status=EntryStatus.OPEN)
        b = EntryFilter(status=EntryStatus.OPEN).with_changes(plant_id=plant_id)
        assert keys.list(ENTRIES, a) == keys.list(ENTRIES, b)

    def test_different_filters_different_keys(self):
        keys = CacheKeys()
        assert keys.list(ENTRIES, EntryFilter(page=1)) != keys.list(ENTRIES, EntryFilter(page=2))

    def test_list_keys_share_prefix(self):
        keys = CacheKeys()
        key = keys.list(VENDORS, VendorFilter(search="agro"))
        assert key.startswith(keys.list_prefix(VENDORS))
        assert key.startswith(keys.namespace_prefix(VENDORS))

    def test_vendors_by_plant_under_vendor_namespace(self):
        keys = CacheKeys()
        plant_id = uuid4()
        assert keys.vendors_by_plant(plant_id).startswith(keys.namespace_prefix(VENDORS))
        assert not keys.vendors_by_plant(plant_id).startswith(keys.list_prefix(VENDORS))

    def test_version_isolates_keys(self):
        assert CacheKeys("v1").static("plants") != CacheKeys("v2").static("plants")

    def test_dashboard_key_uses_filter(self):
        keys = CacheKeys()
        day = datetime(2024, 1, 1, tzinfo=timezone.utc)
        key = keys.dashboard(DashboardFilter(date_from=day))
        assert key.startswith(keys.dashboard_prefix())
        assert day.isoformat() in key
