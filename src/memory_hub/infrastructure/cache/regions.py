"""Named cache regions: one handle per logical view, invalidated as a unit."""

from typing import Any

from memory_hub.infrastructure.cache.tiered import TieredCache


class CacheRegion:
    """A key prefix (``<name>:``) on a tiered cache with its own TTL.

    ``generation`` advances on every ``clear()``. A reader that captured it
    before querying storage passes it back to ``set()``; if a clear happened in
    between, the value is dropped instead of caching a row that may be stale.
    """

    def __init__(self, cache: TieredCache, name: str, ttl_seconds: int):
        self.cache = cache
        self.name = name
        self.ttl_seconds = ttl_seconds
        self.generation = 0

    @property
    def prefix(self) -> str:
        return f"{self.name}:"

    def key(self, suffix: str) -> str:
        return f"{self.prefix}{suffix}"

    async def get(self, suffix: str) -> Any | None:
        return await self.cache.get(self.key(suffix))

    async def set(self, suffix: str, value: Any, generation: int | None = None) -> bool:
        if generation is not None and generation != self.generation:
            return False
        await self.cache.set(self.key(suffix), value, self.ttl_seconds)
        if generation is not None and generation != self.generation:
            # Cleared while the write was in flight
            await self.cache.delete(self.key(suffix))
            return False
        return True

    async def delete(self, suffix: str) -> None:
        await self.cache.delete(self.key(suffix))

    async def clear(self) -> int:
        self.generation += 1
        return await self.cache.invalidate_prefix(self.prefix)

    def __repr__(self) -> str:
        return f"CacheRegion({self.name!r}, ttl={self.ttl_seconds})"
