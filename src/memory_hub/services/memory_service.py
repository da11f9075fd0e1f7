"""Memory service: validated input in, embedded, persisted, cached and searchable records out.

Coordinates three collaborators that fail independently:

- the vectorizer, whose errors abort the single operation that needed an embedding,
- the storage engine, whose errors propagate and roll back batch transactions,
- the tiered cache, whose errors never surface here (it degrades to a miss).
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any, TypeVar
from uuid import UUID, uuid4

import pydantic

from memory_hub.core.base import ErrorLevel
from memory_hub.core.decorators import error_context, with_error_handling
from memory_hub.core.errors import StorageError, ValidationError, VectorizerError
from memory_hub.core.locks import KeyedLock
from memory_hub.core.logging import get_logger
from memory_hub.domain.models import (
    BatchOperation,
    BatchResult,
    ListParams,
    ListResponse,
    Memory,
    MemoryCreate,
    MemoryEvent,
    MemoryLink,
    MemoryUpdate,
    SearchParams,
    SearchResponse,
    StreamFilter,
    content_to_text,
)
from memory_hub.infrastructure.cache import CacheRegion, TieredCache
from memory_hub.infrastructure.postgres import QueryExecutor
from memory_hub.infrastructure.repositories import MemoryRepository
from memory_hub.services.protocols import StorageEngine, Vectorizer
from memory_hub.services.streaming import MemoryEventBus, MemorySubscription

logger = get_logger(__name__)

M = TypeVar("M", bound=pydantic.BaseModel)

BATCH_OPERATIONS = frozenset({"create", "update", "delete"})
MAX_RELATIONSHIP_LENGTH = 50


def validation_error_from(error: pydantic.ValidationError, subject: str) -> ValidationError:
    """Turn the first pydantic error into our ValidationError."""
    first = error.errors()[0] if error.errors() else {}
    field = ".".join(str(part) for part in first.get("loc", ())) or None
    reason = first.get("msg", str(error))
    message = f"Validation failed for {subject}: {field}: {reason}" if field else f"Validation failed for {subject}: {reason}"
    return ValidationError(message, field=field, actual_value=first.get("input"), constraint=first.get("type"))


def coerce(model: type[M], value: Any, subject: str) -> M:
    if isinstance(value, model):
        return value
    if value is None:
        value = {}
    if not isinstance(value, Mapping):
        raise ValidationError(f"Validation failed for {subject}: expected an object", field=subject)
    try:
        return model.model_validate(dict(value))
    except pydantic.ValidationError as e:
        raise validation_error_from(e, subject) from e


def parse_id(value: Any) -> UUID | None:
    """Ids that are not valid UUIDs cannot exist, so they resolve to not-found."""
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        return None


@dataclass
class _PlannedOperation:
    """A batch item after validation, before it touches storage."""

    operation: str
    id: str | None = None
    memory_id: UUID | None = None
    create: MemoryCreate | None = None
    update: MemoryUpdate | None = None
    text: str | None = None
    embedding: list[float] | None = None
    error: str | None = None

    def failed(self, error: str) -> BatchResult:
        return BatchResult(success=False, operation=self.operation, id=self.id, error=error)


class MemoryService:
    """Create/read/update/delete/search/list/batch/stream over memories."""

    def __init__(
        self,
        engine: StorageEngine,
        vectorizer: Vectorizer,
        cache: TieredCache,
        repository_factory: Callable[[QueryExecutor], MemoryRepository] = MemoryRepository,
        *,
        stream_buffer_size: int = 100,
        search_ttl: int = 300,
        list_ttl: int = 60,
        memory_ttl: int = 3600,
    ):
        self.engine = engine
        self.vectorizer = vectorizer
        self.cache = cache
        self.repository_factory = repository_factory
        self.events = MemoryEventBus(stream_buffer_size)
        self.search_cache = CacheRegion(cache, "search", search_ttl)
        self.list_cache = CacheRegion(cache, "list", list_ttl)
        self.memory_cache = CacheRegion(cache, "memory", memory_ttl)
        self._row_locks = KeyedLock()

    def _repository(self, executor: QueryExecutor | None = None) -> MemoryRepository:
        return self.repository_factory(executor or self.engine)

    async def _invalidate_all(self) -> None:
        # List/search keys encode arbitrary filters, so any mutation clears every region
        for region in (self.list_cache, self.search_cache, self.memory_cache):
            await region.clear()

    @with_error_handling(error_level=ErrorLevel.ERROR, reraise=True, expected=(ValidationError,))
    async def create(self, params: MemoryCreate | Mapping[str, Any]) -> Memory:
        data = coerce(MemoryCreate, params, "memory")
        embedding = await self.vectorizer.embed(content_to_text(data.content))
        memory = await self._repository().insert(uuid4(), data, embedding)

        self.events.publish(MemoryEvent(memory=memory))
        await self.list_cache.clear()
        logger.info("Memory created", memory_id=str(memory.id), type=memory.type)
        return memory

    @with_error_handling(error_level=ErrorLevel.ERROR, reraise=True, expected=(ValidationError,))
    async def search(self, params: SearchParams | Mapping[str, Any]) -> SearchResponse:
        search = coerce(SearchParams, params, "search")
        key = search.cache_key()
        generation = self.search_cache.generation
        cached = await self.search_cache.get(key)
        if cached is not None:
            return SearchResponse.model_validate(cached)

        embedding = await self.vectorizer.embed(search.query)
        memories = await self._repository().search(embedding, search)
        response = SearchResponse(memories=memories, query=search.query, total=len(memories))
        await self.search_cache.set(key, response.model_dump(mode="json"), generation)
        return response

    @with_error_handling(error_level=ErrorLevel.ERROR, reraise=True, expected=(ValidationError,))
    async def list(self, params: ListParams | Mapping[str, Any] | None = None) -> ListResponse:
        listing = coerce(ListParams, params, "list")
        key = listing.cache_key()
        generation = self.list_cache.generation
        cached = await self.list_cache.get(key)
        if cached is not None:
            return ListResponse.model_validate(cached)

        memories, total = await self._repository().list(listing)
        response = ListResponse(memories=memories, total=total, limit=listing.limit, offset=listing.offset)
        await self.list_cache.set(key, response.model_dump(mode="json"), generation)
        return response

    async def get_by_id(self, memory_id: UUID | str) -> Memory | None:
        parsed = parse_id(memory_id)
        if parsed is None:
            return None
        generation = self.memory_cache.generation
        cached = await self.memory_cache.get(str(parsed))
        if cached is not None:
            return Memory.model_validate(cached)

        memory = await self._repository().get_by_id(parsed)
        if memory is not None:
            await self.memory_cache.set(str(parsed), memory.model_dump(mode="json"), generation)
        return memory

    @with_error_handling(error_level=ErrorLevel.ERROR, reraise=True, expected=(ValidationError,))
    async def update(self, memory_id: UUID | str, params: MemoryUpdate | Mapping[str, Any]) -> Memory | None:
        """Apply a partial update. The embedding is recomputed only when ``content`` is present."""
        changes = coerce(MemoryUpdate, params, "update")
        parsed = parse_id(memory_id)
        if parsed is None:
            return None

        async with self._row_locks.hold(str(parsed)):
            repository = self._repository()
            existing = await repository.get_by_id(parsed)
            if existing is None:
                return None
            values = changes.changes()
            if not values:
                return existing
            if changes.has_content:
                values["embedding"] = await self.vectorizer.embed(content_to_text(changes.content))
            updated = await repository.update(parsed, values)

        if updated is not None:
            await self._invalidate_all()
            logger.info("Memory updated", memory_id=str(parsed), fields=sorted(values))
        return updated

    async def delete(self, memory_id: UUID | str) -> bool:
        parsed = parse_id(memory_id)
        if parsed is None:
            return False
        async with self._row_locks.hold(str(parsed)):
            deleted = await self._repository().delete(parsed)
        if deleted:
            await self._invalidate_all()
            logger.info("Memory deleted", memory_id=str(parsed))
        return deleted

    def _plan(self, raw: Any) -> _PlannedOperation:
        try:
            item = coerce(BatchOperation, raw, "batch operation")
        except ValidationError as e:
            operation = raw.get("operation") if isinstance(raw, Mapping) else None
            return _PlannedOperation(operation=str(operation or "unknown"), error=e.message)

        plan = _PlannedOperation(operation=item.operation, id=item.id)
        if item.operation not in BATCH_OPERATIONS:
            plan.error = f"Unknown operation: {item.operation}"
            return plan

        try:
            if item.operation == "create":
                plan.create = coerce(MemoryCreate, item.data, "memory")
                plan.text = content_to_text(plan.create.content)
                return plan

            if not item.id:
                raise ValidationError(f"Validation failed for {item.operation}: id is required", field="id")
            plan.memory_id = parse_id(item.id)
            if item.operation == "update":
                plan.update = coerce(MemoryUpdate, item.data, "update")
                if plan.update.has_content:
                    plan.text = content_to_text(plan.update.content)
        except ValidationError as e:
            plan.error = e.message
        return plan

    async def _embed_planned(self, plans: list[_PlannedOperation]) -> None:
        pending = [plan for plan in plans if plan.error is None and plan.text is not None]
        if not pending:
            return
        vectors = await self.vectorizer.embed_batch([plan.text for plan in pending])
        for plan, vector in zip(pending, vectors, strict=True):
            if vector is None:
                plan.error = "Embedding generation failed"
            else:
                plan.embedding = vector

    async def _apply(self, repository: MemoryRepository, plan: _PlannedOperation) -> BatchResult:
        if plan.error is not None:
            return plan.failed(plan.error)

        if plan.operation == "create":
            memory = await repository.insert(uuid4(), plan.create, plan.embedding)
            return BatchResult(success=True, operation="create", result=memory, id=str(memory.id))

        if plan.memory_id is None:
            return plan.failed("Memory not found")

        if plan.operation == "update":
            values = plan.update.changes()
            if plan.embedding is not None:
                values["embedding"] = plan.embedding
            if values:
                memory = await repository.update(plan.memory_id, values)
            else:
                memory = await repository.get_by_id(plan.memory_id)
            if memory is None:
                return plan.failed("Memory not found")
            return BatchResult(success=True, operation="update", result=memory, id=plan.id)

        if not await repository.delete(plan.memory_id):
            return plan.failed("Memory not found")
        return BatchResult(success=True, operation="delete", id=plan.id)

    async def batch(self, operations: Iterable[Any]) -> list[BatchResult]:
        """Run create/update/delete items in order inside one transaction.

        Validation failures, embedding failures, unknown operations and missing
        rows are recorded per item and do not stop later items. Any other
        exception rolls back the whole transaction, discarding earlier items
        that had succeeded, and propagates.
        """
        if isinstance(operations, (str, bytes, Mapping)) or not isinstance(operations, Iterable):
            raise ValidationError("Validation failed for batch: operations must be a list", field="operations")

        plans = [self._plan(raw) for raw in operations]
        if not plans:
            return []
        await self._embed_planned(plans)

        results: list[BatchResult] = []
        try:
            async with self.engine.transaction() as transaction:
                repository = self._repository(transaction)
                for plan in plans:
                    try:
                        results.append(await self._apply(repository, plan))
                    except (ValidationError, VectorizerError) as e:
                        results.append(plan.failed(e.message))
        except Exception as e:
            logger.error(
                "Batch rolled back",
                operations=len(plans),
                applied=len(results),
                error=str(e),
                error_type=type(e).__name__,
            )
            raise

        if any(result.success for result in results):
            for result in results:
                if result.success and result.operation == "create" and result.result is not None:
                    self.events.publish(MemoryEvent(memory=result.result))
            await self._invalidate_all()

        logger.info(
            "Batch committed",
            operations=len(results),
            succeeded=sum(result.success for result in results),
        )
        return results

    def create_stream(self, event_filter: StreamFilter | Mapping[str, Any] | None = None) -> MemorySubscription:
        """Attach a live subscription to ``created`` events matching ``event_filter``."""
        return self.events.subscribe(coerce(StreamFilter, event_filter, "stream filter"))

    async def link(
        self,
        source_id: UUID | str,
        target_id: UUID | str,
        relationship: str,
        strength: float = 0.5,
        metadata: Mapping[str, Any] | None = None,
    ) -> MemoryLink | None:
        """Create or refresh a directed link. Returns None if either memory does not exist."""
        relationship = (relationship or "").strip() if isinstance(relationship, str) else ""
        if not relationship:
            raise ValidationError("Validation failed for link: relationship is required", field="relationship")
        if len(relationship) > MAX_RELATIONSHIP_LENGTH:
            raise ValidationError(
                f"Validation failed for link: relationship longer than {MAX_RELATIONSHIP_LENGTH} characters",
                field="relationship",
                actual_value=relationship,
            )
        if isinstance(strength, bool) or not isinstance(strength, int | float) or not 0.0 <= strength <= 1.0:
            raise ValidationError(
                "Validation failed for link: strength must be between 0 and 1",
                field="strength",
                actual_value=strength,
                constraint="0 <= strength <= 1",
            )

        source, target = parse_id(source_id), parse_id(target_id)
        if source is None or target is None:
            return None
        return await self._repository().upsert_link(source, target, relationship, float(strength), dict(metadata or {}))

    async def get_links(self, memory_id: UUID | str) -> list[MemoryLink]:
        parsed = parse_id(memory_id)
        if parsed is None:
            return []
        return await self._repository().get_links(parsed)

    @error_context(component="memory_service", operation="check_ready")
    async def check_ready(self) -> bool:
        """True when storage answers and the vectorizer can embed; raises otherwise."""
        if not await self.engine.ping():
            raise StorageError("Storage engine did not answer the readiness probe")
        await self.vectorizer.ready()
        return True

    def close(self) -> None:
        self.events.close()
