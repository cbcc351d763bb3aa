"""
CacheService -- cache-aside store over a pluggable backend.

Responsibility:
    Serves derived read views (entry and invoice lists, reference lookups,
    dashboard summaries) from a key/value cache and keeps them coherent with
    the store by explicit invalidation on every write path.  There is no
    invalidation bus: each mutation names the keys and prefixes it affects.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.  Entry, invoice,
    reference and static-data services and the dashboard selector read
    through ``get_or_set``; their write paths call ``invalidate``.

Invariants enforced:
    - Hit: the cached value is returned and ``compute`` is not called.
    - Miss: ``compute`` runs exactly once and its result is stored.
    - Invalidation deletes immediately AND again when the owning session's
      transaction ends, whether it commits or rolls back.  A reader that
      recomputed between the two deletes from uncommitted data cannot leave
      a stale or phantom entry behind.

Failure modes:
    - Backend failure on read or write: logged at WARNING and the value is
      computed directly.  Reads never fail because the cache is down.
    - Backend failure on invalidation: logged at ERROR as
      ``cache_invalidation_failed`` and counted in ``invalidation_failures``.
      The mutation stands; the entry expires by TTL.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Protocol, TypeVar

from sqlalchemy.orm import Session

from weighbridge_kernel.domain.cache_keys import CacheKeys
from weighbridge_kernel.domain.clock import Clock, SystemClock
from weighbridge_kernel.logging_config import get_logger
from weighbridge_kernel.services.hooks import on_transaction_end

logger = get_logger("services.cache")

T = TypeVar("T")


class CacheBackend(Protocol):
    """Minimal key/value contract the service needs from a cache."""

    def get(self, key: str) -> tuple[bool, Any]: ...

    def set(self, key: str, value: Any, ttl_seconds: int) -> None: ...

    def delete(self, key: str) -> None: ...

    def delete_by_prefix(self, prefix: str) -> int: ...


class InMemoryCacheBackend:
    """
    Process-local backend with TTL expiry against an injected clock.

    Thread-safe.  Values are stored as given; callers cache immutable DTOs.
    """

    def __init__(self, clock: Clock | None = None):
        self._clock = clock or SystemClock()
        self._data: dict[str, tuple[float, Any]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> tuple[bool, Any]:
        now = self._clock.monotonic()
        with self._lock:
            item = self._data.get(key)
            if item is None:
                return False, None
            expires_at, value = item
            if expires_at <= now:
                del self._data[key]
                return False, None
            return True, value

    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        now = self._clock.monotonic()
        with self._lock:
            self._sweep(now)
            self._data[key] = (now + ttl_seconds, value)

    def _sweep(self, now: float) -> None:
        # Keys that are never read again (per-minute operator lists) expire here.
        expired = [k for k, (expires_at, _) in self._data.items() if expires_at <= now]
        for k in expired:
            del self._data[k]

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def delete_by_prefix(self, prefix: str) -> int:
        with self._lock:
            doomed = [k for k in self._data if k.startswith(prefix)]
            for k in doomed:
                del self._data[k]
        return len(doomed)

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._data)

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)


@dataclass(frozen=True)
class CacheTtl:
    short: int = 300
    long: int = 3600


class CacheService:
    """
    Cache-aside access plus invalidation for the whole kernel.

    Usage:
        cache = CacheService(InMemoryCacheBackend())
        info = cache.get_or_set(cache.keys.item("entries", entry_id),
                                cache.ttl.short, lambda: load(entry_id))
        cache.invalidate(session, keys=[...], prefixes=[cache.keys.list_prefix("entries")])
    """

    def __init__(
        self,
        backend: CacheBackend,
        keys: CacheKeys | None = None,
        ttl: CacheTtl | None = None,
    ):
        self.backend = backend
        self.keys = keys or CacheKeys()
        self.ttl = ttl or CacheTtl()
        self._failures = 0
        self._failures_lock = threading.Lock()

    @property
    def invalidation_failures(self) -> int:
        return self._failures

    def get_or_set(self, key: str, ttl_seconds: int, compute: Callable[[], T]) -> T:
        """Return the cached value for ``key``, computing and storing it on a miss."""
        try:
            hit, value = self.backend.get(key)
        except Exception as exc:
            logger.warning(
                "cache_read_failed",
                extra={"cache_key": key, "error": type(exc).__name__},
            )
            return compute()

        if hit:
            logger.debug("cache_hit", extra={"cache_key": key})
            return value

        value = compute()
        try:
            self.backend.set(key, value, ttl_seconds)
        except Exception as exc:
            logger.warning(
                "cache_write_failed",
                extra={"cache_key": key, "error": type(exc).__name__},
            )
        logger.debug("cache_miss", extra={"cache_key": key, "ttl": ttl_seconds})
        return value

    def delete(self, key: str) -> None:
        self._run_invalidation(keys=[key], prefixes=[])

    def delete_by_prefix(self, prefix: str) -> None:
        self._run_invalidation(keys=[], prefixes=[prefix])

    def invalidate(
        self,
        session: Session | None,
        keys: Iterable[str] = (),
        prefixes: Iterable[str] = (),
    ) -> None:
        """
        Delete ``keys`` and every key under ``prefixes`` now, and again once
        ``session``'s outermost transaction commits or rolls back.
        """
        keys = list(keys)
        prefixes = list(prefixes)
        self._run_invalidation(keys, prefixes)
        if session is not None:
            on_transaction_end(
                session, lambda: self._run_invalidation(keys, prefixes, phase="transaction_end")
            )

    def _run_invalidation(self, keys: list[str], prefixes: list[str], phase: str = "immediate") -> None:
        for key in keys:
            try:
                self.backend.delete(key)
            except Exception:
                self._record_failure(key, phase)
        for prefix in prefixes:
            try:
                self.backend.delete_by_prefix(prefix)
            except Exception:
                self._record_failure(prefix, phase)

    def _record_failure(self, target: str, phase: str) -> None:
        with self._failures_lock:
            self._failures += 1
        logger.error(
            "cache_invalidation_failed",
            extra={"cache_target": target, "phase": phase},
            exc_info=True,
        )
