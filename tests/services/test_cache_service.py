"""
Cache-aside tests (weighbridge_kernel/services/cache_service.py).

Covers hit/miss semantics, TTL expiry against the deterministic clock,
prefix invalidation, after-commit invalidation and degraded behaviour when
the backend fails.
"""

from uuid import uuid4

import pytest

from weighbridge_kernel.services.cache_service import (
    CacheService,
    CacheTtl,
    InMemoryCacheBackend,
)
from weighbridge_kernel.services.hooks import pending_count


class FailingBackend:
    """Backend whose every operation raises."""

    def get(self, key):
        raise ConnectionError("cache down")

    def set(self, key, value, ttl_seconds):
        raise ConnectionError("cache down")

    def delete(self, key):
        raise ConnectionError("cache down")

    def delete_by_prefix(self, prefix):
        raise ConnectionError("cache down")


class Counter:
    def __init__(self, value="computed"):
        self.calls = 0
        self.value = value

    def __call__(self):
        self.calls += 1
        return self.value


class TestGetOrSet:
    def test_miss_computes_once_and_stores(self, cache, cache_backend):
        compute = Counter()
        assert cache.get_or_set("v1:k", 60, compute) == "computed"
        assert compute.calls == 1
        assert cache_backend.get("v1:k") == (True, "computed")

    def test_hit_skips_compute(self, cache):
        cache.get_or_set("v1:k", 60, Counter("first"))
        second = Counter("second")
        assert cache.get_or_set("v1:k", 60, second) == "first"
        assert second.calls == 0

    def test_delete_forces_recompute(self, cache):
        cache.get_or_set("v1:k", 60, Counter("first"))
        cache.delete("v1:k")
        second = Counter("second")
        assert cache.get_or_set("v1:k", 60, second) == "second"
        assert second.calls == 1

    def test_cached_none_is_a_hit(self, cache):
        cache.get_or_set("v1:k", 60, Counter(None))
        second = Counter("second")
        assert cache.get_or_set("v1:k", 60, second) is None
        assert second.calls == 0

    def test_ttl_expiry(self, cache, clock):
        cache.get_or_set("v1:k", 60, Counter("first"))
        clock.advance(61)
        second = Counter("second")
        assert cache.get_or_set("v1:k", 60, second) == "second"

    def test_expired_keys_swept_on_write(self, cache, cache_backend, clock):
        cache.get_or_set("v1:entries:list:minute-1", 60, Counter())
        cache.get_or_set("v1:entries:item:1", 600, Counter())
        clock.advance(61)
        cache.get_or_set("v1:entries:list:minute-2", 60, Counter())
        assert cache_backend.keys() == ["v1:entries:item:1", "v1:entries:list:minute-2"]

    def test_compute_errors_propagate_and_nothing_is_stored(self, cache, cache_backend):
        def boom():
            raise ValueError("nope")

        with pytest.raises(ValueError):
            cache.get_or_set("v1:k", 60, boom)
        assert len(cache_backend) == 0


class TestPrefixInvalidation:
    def test_delete_by_prefix_removes_only_matching(self, cache, cache_backend):
        for key in ("v1:entries:list:a", "v1:entries:list:b", "v1:entries:item:1"):
            cache.get_or_set(key, 60, Counter())
        cache.delete_by_prefix("v1:entries:list:")
        assert cache_backend.keys() == ["v1:entries:item:1"]

    def test_invalidate_clears_keys_and_prefixes_now(self, cache, cache_backend):
        cache.get_or_set("v1:vendors:item:1", 60, Counter())
        cache.get_or_set("v1:vendors:list:{}", 60, Counter())
        cache.invalidate(None, keys=["v1:vendors:item:1"], prefixes=["v1:vendors:list:"])
        assert len(cache_backend) == 0


class TestAfterCommitInvalidation:
    def test_invalidation_runs_again_after_commit(self, cache, cache_backend, session):
        session.connection()
        cache.invalidate(session, keys=["v1:entries:item:1"])
        assert pending_count(session) == 1
        # A reader repopulates between the write and the commit
        cache.get_or_set("v1:entries:item:1", 60, Counter("stale"))
        session.commit()
        assert cache_backend.get("v1:entries:item:1") == (False, None)
        assert pending_count(session) == 0

    def test_rollback_runs_pending_invalidation(self, cache, cache_backend, session):
        session.connection()
        cache.invalidate(session, keys=["v1:entries:item:1"])
        # A reader caches the uncommitted state before the write is abandoned
        cache.get_or_set("v1:entries:item:1", 60, Counter("phantom"))
        session.rollback()
        assert cache_backend.get("v1:entries:item:1") == (False, None)
        assert pending_count(session) == 0
        cache.get_or_set("v1:entries:item:1", 60, Counter("fresh"))
        session.commit()
        assert cache_backend.get("v1:entries:item:1") == (True, "fresh")

    def test_savepoint_rollback_keeps_outer_invalidation(self, cache, cache_backend, session):
        session.connection()
        cache.invalidate(session, keys=["v1:entries:item:1"])
        with pytest.raises(RuntimeError):
            with session.begin_nested():
                raise RuntimeError("inner failure")
        assert pending_count(session) == 1
        cache.get_or_set("v1:entries:item:1", 60, Counter("stale"))
        session.commit()
        assert cache_backend.get("v1:entries:item:1") == (False, None)


class TestDegradedBackend:
    def test_read_failure_computes_directly(self, captured_logs):
        cache = CacheService(FailingBackend())
        compute = Counter()
        assert cache.get_or_set("v1:k", 60, compute) == "computed"
        assert compute.calls == 1
        warnings = [r for r in captured_logs() if r["message"] == "cache_read_failed"]
        assert warnings and warnings[0]["level"] == "WARNING"

    def test_write_failure_still_returns_value(self, captured_logs):
        class WriteFails(InMemoryCacheBackend):
            def set(self, key, value, ttl_seconds):
                raise ConnectionError("read only")

        cache = CacheService(WriteFails())
        assert cache.get_or_set("v1:k", 60, Counter()) == "computed"
        assert any(r["message"] == "cache_write_failed" for r in captured_logs())

    def test_invalidation_failure_is_logged_and_counted(self, captured_logs):
        cache = CacheService(FailingBackend())
        cache.invalidate(None, keys=["v1:a", "v1:b"], prefixes=["v1:list:"])
        assert cache.invalidation_failures == 3
        errors = [r for r in captured_logs() if r["message"] == "cache_invalidation_failed"]
        assert len(errors) == 3
        assert all(r["level"] == "ERROR" for r in errors)
        assert {r["cache_target"] for r in errors} == {"v1:a", "v1:b", "v1:list:"}


class TestConfiguration:
    def test_ttl_classes(self):
        cache = CacheService(InMemoryCacheBackend(), ttl=CacheTtl(short=10, long=20))
        assert cache.ttl.short == 10
        assert cache.ttl.long == 20

    def test_default_key_version(self):
        cache = CacheService(InMemoryCacheBackend())
        assert cache.keys.item("entries", uuid4()).startswith("v1:")
