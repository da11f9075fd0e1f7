"""In-process doubles for the storage engine, vectorizer backend and Redis."""

from __future__ import annotations

import copy
import math
import re
import zlib
from collections.abc import Sequence
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

import pytest

from memory_hub.domain.models import ORDERABLE_COLUMNS, ListParams, Memory, MemoryCreate, MemoryLink, SearchParams
from memory_hub.infrastructure.cache import TieredCache
from memory_hub.infrastructure.cache.wildcard import wildcard_match
from memory_hub.infrastructure.embeddings import EmbeddingCache, Vectorizer
from memory_hub.infrastructure.postgres import QueryResult
from memory_hub.services import MemoryService

DIMENSION = 16


class BagOfWordsBackend:
    """Deterministic embedding: hashed word counts, L2-normalised."""

    model_name = "bag-of-words"

    def __init__(self, dimension: int = DIMENSION):
        self.dimension = dimension
        self.loads = 0
        self.calls: list[list[str]] = []
        self.failing_texts: set[str] = set()
        self.fail_load = False

    async def load(self) -> None:
        if self.fail_load:
            raise RuntimeError("weights missing")
        self.loads += 1

    def vector(self, text: str) -> list[float]:
        values = [0.0] * self.dimension
        for token in re.findall(r"[a-z0-9]+", text.lower()):
            values[zlib.crc32(token.encode()) % self.dimension] += 1.0
        if not any(values):
            values[0] = 1.0
        norm = math.sqrt(sum(v * v for v in values))
        return [v / norm for v in values]

    async def embed(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        for text in texts:
            if text in self.failing_texts:
                raise RuntimeError(f"cannot embed {text!r}")
        return [self.vector(text) for text in texts]

    @property
    def embedded_texts(self) -> int:
        return sum(len(batch) for batch in self.calls)


class FakeStore:
    def __init__(self) -> None:
        self.memories: dict[UUID, dict[str, Any]] = {}
        self.links: dict[tuple[UUID, UUID, str], dict[str, Any]] = {}


class FakeTransaction:
    def __init__(self, engine: FakeEngine):
        self.engine = engine

    async def execute(self, query: str, params: Sequence[Any] = ()) -> QueryResult:
        return await self.engine.execute(query, params)


class FakeEngine:
    """Storage engine double. Transactions snapshot the store and restore it on error."""

    def __init__(self) -> None:
        self.store = FakeStore()
        self.writes: list[str] = []
        self.transactions = 0
        self.rollbacks = 0
        # operation name -> exception raised on the next write of that kind
        self.poison: dict[str, Exception] = {}
        self.healthy = True

    async def execute(self, query: str, params: Sequence[Any] = ()) -> QueryResult:
        return QueryResult(rows=[{"ok": 1}], row_count=1)

    @asynccontextmanager
    async def transaction(self):
        self.transactions += 1
        snapshot = copy.deepcopy(self.store)
        try:
            yield FakeTransaction(self)
        except BaseException:
            self.store = snapshot
            self.rollbacks += 1
            raise

    async def ping(self) -> bool:
        return self.healthy

    def record_write(self, operation: str) -> None:
        if operation in self.poison:
            raise self.poison.pop(operation)
        self.writes.append(operation)


def _cosine(a: Sequence[float], b: Sequence[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b, strict=True))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


class FakeRepository:
    """Same surface as MemoryRepository, over the fake store."""

    def __init__(self, executor: FakeEngine | FakeTransaction):
        self.engine = executor.engine if isinstance(executor, FakeTransaction) else executor

    @property
    def store(self) -> FakeStore:
        return self.engine.store

    async def insert(self, memory_id: UUID, data: MemoryCreate, embedding: Sequence[float]) -> Memory:
        self.engine.record_write("insert")
        now = datetime.now(UTC)
        row = {
            **data.model_dump(),
            "id": memory_id,
            "embedding": list(embedding),
            "created_at": now,
            "updated_at": now,
        }
        self.store.memories[memory_id] = row
        return Memory.model_validate(row)

    async def get_by_id(self, memory_id: UUID) -> Memory | None:
        row = self.store.memories.get(memory_id)
        return Memory.model_validate(row) if row else None

    async def update(self, memory_id: UUID, changes: dict[str, Any]) -> Memory | None:
        self.engine.record_write("update")
        row = self.store.memories.get(memory_id)
        if row is None:
            return None
        row.update(copy.deepcopy(changes))
        row["updated_at"] = datetime.now(UTC)
        return Memory.model_validate(row)

    async def delete(self, memory_id: UUID) -> bool:
        self.engine.record_write("delete")
        if self.store.memories.pop(memory_id, None) is None:
            return False
        for key in [k for k in self.store.links if memory_id in (k[0], k[1])]:
            del self.store.links[key]
        return True

    def _filtered(self, memory_type: str | None, tags: list[str] | None) -> list[dict[str, Any]]:
        rows = list(self.store.memories.values())
        if memory_type:
            rows = [row for row in rows if row["type"] == memory_type]
        if tags:
            rows = [row for row in rows if set(row["tags"]) & set(tags)]
        return rows

    async def search(self, embedding: Sequence[float], params: SearchParams) -> list[Memory]:
        scored = []
        for row in self._filtered(params.type, params.tags):
            similarity = _cosine(embedding, row["embedding"])
            if similarity >= params.threshold:
                data = {k: v for k, v in row.items() if k != "embedding"}
                if not params.include_content:
                    data.pop("content")
                scored.append(Memory.model_validate({**data, "similarity": similarity}))
        scored.sort(key=lambda memory: memory.similarity, reverse=True)
        return scored[: params.limit]

    async def list(self, params: ListParams) -> tuple[list[Memory], int]:
        assert params.order_by in ORDERABLE_COLUMNS
        rows = self._filtered(params.type, params.tags)
        if params.since:
            rows = [row for row in rows if row["created_at"] >= params.since]
        if params.until:
            rows = [row for row in rows if row["created_at"] <= params.until]
        rows.sort(key=lambda row: row[params.order_by], reverse=params.order == "DESC")
        page = rows[params.offset : params.offset + params.limit]
        memories = [Memory.model_validate({k: v for k, v in row.items() if k != "embedding"}) for row in page]
        return memories, len(rows)

    async def upsert_link(self, source_id, target_id, relationship, strength, metadata) -> MemoryLink | None:
        if source_id not in self.store.memories or target_id not in self.store.memories:
            return None
        self.engine.record_write("link")
        key = (source_id, target_id, relationship)
        existing = self.store.links.get(key)
        row = {
            "source_id": source_id,
            "target_id": target_id,
            "relationship": relationship,
            "strength": strength,
            "metadata": metadata,
            "created_at": existing["created_at"] if existing else datetime.now(UTC),
        }
        self.store.links[key] = row
        return MemoryLink.model_validate(row)

    async def get_links(self, memory_id: UUID) -> list[MemoryLink]:
        links = []
        for (source_id, target_id, _), row in self.store.links.items():
            if memory_id == source_id:
                links.append(MemoryLink.model_validate({**row, "direction": "outgoing"}))
            elif memory_id == target_id:
                links.append(MemoryLink.model_validate({**row, "direction": "incoming"}))
        return links


class FakeRedis:
    """Dict-backed subset of ``redis.asyncio.Redis``. TTLs are recorded, not enforced."""

    def __init__(self) -> None:
        self.data: dict[str, bytes] = {}
        self.ttls: dict[str, int] = {}
        self.down = False
        self.calls = 0
        self.closed = False

    def _check(self) -> None:
        self.calls += 1
        if self.down:
            raise ConnectionError("redis unavailable")

    async def get(self, key: str) -> bytes | None:
        self._check()
        return self.data.get(key)

    async def set(self, key: str, value: str, ex: int | None = None) -> bool:
        self._check()
        self.data[key] = value.encode()
        if ex is not None:
            self.ttls[key] = ex
        return True

    async def delete(self, *keys: str) -> int:
        self._check()
        removed = 0
        for key in keys:
            key = key.decode() if isinstance(key, bytes) else key
            if self.data.pop(key, None) is not None:
                removed += 1
        return removed

    async def scan_iter(self, match: str = "*", count: int | None = None):
        self._check()
        pattern = match.replace("\\", "")
        for key in list(self.data):
            if wildcard_match(pattern, key):
                yield key.encode()

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def backend() -> BagOfWordsBackend:
    return BagOfWordsBackend()


@pytest.fixture
def vectorizer(backend: BagOfWordsBackend) -> Vectorizer:
    return Vectorizer(backend, dimension=DIMENSION, batch_size=4, cache=EmbeddingCache(100))


@pytest.fixture
def engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def cache(redis: FakeRedis) -> TieredCache:
    return TieredCache(redis, namespace="test", max_size=100, default_ttl=60)


@pytest.fixture
def service(engine: FakeEngine, vectorizer: Vectorizer, cache: TieredCache) -> MemoryService:
    return MemoryService(engine, vectorizer, cache, repository_factory=FakeRepository, stream_buffer_size=4)
