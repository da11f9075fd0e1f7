"""Two-level cache: shared Redis level (preferred) over a local bounded level.

The shared level is best-effort. Any failure there is logged and treated as a
miss; the local level is always written so it can serve reads while Redis is
unreachable. Keys are namespaced on the shared level so pattern invalidation
never touches keys owned by other applications on the same Redis.
"""

from __future__ import annotations

import json
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from redis.asyncio import Redis

from memory_hub.core.base import ServiceErrorDetails
from memory_hub.core.circuit_breaker import CircuitBreaker
from memory_hub.core.errors import CacheError
from memory_hub.core.logging import get_logger
from memory_hub.infrastructure.cache.local import LocalCache
from memory_hub.infrastructure.cache.wildcard import (
    escape_redis_literal,
    to_redis_pattern,
    wildcard_match,
)

logger = get_logger(__name__)

T = TypeVar("T")

# Keys deleted per DEL round trip during pattern invalidation
_DELETE_CHUNK = 500


class TieredCache:
    """Shared + local cache with TTL and glob invalidation."""

    def __init__(
        self,
        shared: Redis | None = None,
        *,
        namespace: str = "memory-hub",
        max_size: int = 1000,
        default_ttl: int = 3600,
        enabled: bool = True,
        breaker: CircuitBreaker | None = None,
        local: LocalCache | None = None,
    ):
        self.shared = shared
        self.namespace = namespace
        self.default_ttl = default_ttl
        self.enabled = enabled
        self.local = local if local is not None else LocalCache(max_size=max_size)
        self.breaker = breaker or CircuitBreaker(name="shared_cache")
        self.stats = {"shared_hits": 0, "local_hits": 0, "misses": 0, "shared_errors": 0}

    @classmethod
    def from_url(cls, url: str | None, **kwargs: Any) -> TieredCache:
        """Build a cache whose shared level talks to the Redis at ``url`` (None: local only)."""
        shared = None
        if url:
            shared = Redis.from_url(url)
        return cls(shared, **kwargs)

    def _shared_key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    async def _on_shared(self, operation: str, call: Callable[[], Awaitable[T]]) -> T | None:
        """Run a shared-level call, containing every failure."""
        if self.shared is None or not self.breaker.allow():
            return None
        try:
            result = await call()
        except Exception as e:
            self.breaker.record_failure(e)
            self.stats["shared_errors"] += 1
            error = CacheError(
                message=f"Shared cache {operation} failed: {e}",
                details=ServiceErrorDetails(
                    source="tiered_cache",
                    operation=operation,
                    service_name="redis",
                ),
            )
            logger.warning(str(error), error_code=error.code.value, error_type=type(e).__name__)
            return None
        self.breaker.record_success()
        return result

    async def get(self, key: str) -> Any | None:
        if not self.enabled:
            return None

        raw = await self._on_shared("get", lambda: self.shared.get(self._shared_key(key)))
        if raw is not None:
            try:
                value = json.loads(raw)
            except ValueError:
                logger.warning("Discarding undecodable shared cache entry", key=key)
            else:
                self.stats["shared_hits"] += 1
                return value

        value = self.local.get(key)
        if value is None:
            self.stats["misses"] += 1
            return None
        self.stats["local_hits"] += 1
        return value

    async def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        if not self.enabled:
            return
        ttl = ttl_seconds or self.default_ttl
        payload = json.dumps(value, default=str)
        await self._on_shared("set", lambda: self.shared.set(self._shared_key(key), payload, ex=ttl))
        self.local.set(key, value, ttl)

    async def delete(self, key: str) -> None:
        self.local.delete(key)
        await self._on_shared("delete", lambda: self.shared.delete(self._shared_key(key)))

    async def invalidate_pattern(self, pattern: str) -> int:
        """Drop every key matching ``pattern`` from both levels.

        Local matching runs against the local key set directly so it is correct
        even when the shared level is down.
        """
        removed = self.local.delete_where(lambda key: wildcard_match(pattern, key))
        match = escape_redis_literal(f"{self.namespace}:") + to_redis_pattern(pattern)
        shared_removed = await self._on_shared("invalidate_pattern", lambda: self._delete_matching(match))
        logger.debug("Cache pattern invalidated", pattern=pattern, local=removed, shared=shared_removed)
        return removed

    async def invalidate_prefix(self, prefix: str) -> int:
        """Drop every key starting with ``prefix``. Used by cache regions."""
        removed = self.local.delete_where(lambda key: key.startswith(prefix))
        match = escape_redis_literal(f"{self.namespace}:{prefix}") + "*"
        await self._on_shared("invalidate_prefix", lambda: self._delete_matching(match))
        return removed

    async def flush(self) -> None:
        """Clear this namespace on both levels."""
        self.local.clear()
        match = escape_redis_literal(f"{self.namespace}:") + "*"
        await self._on_shared("flush", lambda: self._delete_matching(match))

    async def _delete_matching(self, match: str) -> int:
        deleted = 0
        batch: list[bytes | str] = []
        async for key in self.shared.scan_iter(match=match, count=_DELETE_CHUNK):
            batch.append(key)
            if len(batch) >= _DELETE_CHUNK:
                deleted += await self.shared.delete(*batch)
                batch = []
        if batch:
            deleted += await self.shared.delete(*batch)
        return deleted

    async def close(self) -> None:
        if self.shared is not None:
            await self.shared.aclose()
