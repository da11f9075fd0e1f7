"""All SQL for memories and memory links.

A repository is bound to a query executor: the engine itself for single
statements, or a ``TransactionClient`` when running inside a batch.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any
from uuid import UUID

from memory_hub.core.base import ErrorLevel
from memory_hub.core.decorators import with_error_handling
from memory_hub.core.logging import get_logger
from memory_hub.domain.models import (
    ORDERABLE_COLUMNS,
    ListParams,
    Memory,
    MemoryCreate,
    MemoryLink,
    SearchParams,
)
from memory_hub.infrastructure.postgres import QueryExecutor, SQLQueryBuilder

logger = get_logger(__name__)

MEMORY_COLUMNS = (
    "id",
    "type",
    "content",
    "source",
    "embedding",
    "tags",
    "confidence",
    "metadata",
    "created_at",
    "updated_at",
)
# Embeddings are large and never part of search/list results
SUMMARY_COLUMNS = tuple(column for column in MEMORY_COLUMNS if column != "embedding")
UPDATABLE_COLUMNS = frozenset({"content", "tags", "confidence", "metadata", "embedding"})


def _vector_to_list(value: Any) -> list[float] | None:
    if value is None:
        return None
    if hasattr(value, "to_list"):
        return [float(x) for x in value.to_list()]
    return [float(x) for x in value]


def row_to_memory(row: dict[str, Any]) -> Memory:
    data = dict(row)
    data["embedding"] = _vector_to_list(data.get("embedding"))
    data["tags"] = list(data.get("tags") or [])
    data["metadata"] = data.get("metadata") or {}
    return Memory.model_validate(data)


def row_to_link(row: dict[str, Any]) -> MemoryLink:
    data = dict(row)
    data["metadata"] = data.get("metadata") or {}
    return MemoryLink.model_validate(data)


class MemoryRepository:
    """Repository for memories and links over Postgres + pgvector."""

    def __init__(self, executor: QueryExecutor):
        self.executor = executor

    @with_error_handling(error_level=ErrorLevel.ERROR, reraise=True)
    async def insert(self, memory_id: UUID, data: MemoryCreate, embedding: Sequence[float]) -> Memory:
        query = f"""
            INSERT INTO memories (id, type, content, source, embedding, tags, confidence, metadata)
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
            RETURNING {", ".join(MEMORY_COLUMNS)}
        """
        result = await self.executor.execute(
            query,
            [
                memory_id,
                data.type,
                data.content,
                data.source,
                list(embedding),
                list(data.tags),
                data.confidence,
                data.metadata,
            ],
        )
        return row_to_memory(result.rows[0])

    async def get_by_id(self, memory_id: UUID) -> Memory | None:
        sql, params = (
            SQLQueryBuilder("memories").select(*MEMORY_COLUMNS).where_equals("id", memory_id).build()
        )
        result = await self.executor.execute(sql, params)
        return row_to_memory(result.rows[0]) if result.rows else None

    @with_error_handling(error_level=ErrorLevel.ERROR, reraise=True)
    async def update(self, memory_id: UUID, changes: dict[str, Any]) -> Memory | None:
        """Write the given columns and bump ``updated_at``. Returns None when no row matched."""
        unknown = set(changes) - UPDATABLE_COLUMNS
        if unknown:
            raise ValueError(f"Columns not updatable: {sorted(unknown)}")

        params: list[Any] = []
        assignments: list[str] = []
        for column in sorted(changes):
            value = changes[column]
            if column in ("tags", "embedding"):
                value = list(value)
            params.append(value)
            assignments.append(f"{column} = ${len(params)}")
        assignments.append("updated_at = now()")
        params.append(memory_id)

        query = (
            f"UPDATE memories SET {', '.join(assignments)} WHERE id = ${len(params)} "
            f"RETURNING {', '.join(MEMORY_COLUMNS)}"
        )
        result = await self.executor.execute(query, params)
        return row_to_memory(result.rows[0]) if result.rows else None

    async def delete(self, memory_id: UUID) -> bool:
        result = await self.executor.execute("DELETE FROM memories WHERE id = $1", [memory_id])
        return result.row_count > 0

    @with_error_handling(error_level=ErrorLevel.ERROR, reraise=True)
    async def search(self, embedding: Sequence[float], params: SearchParams) -> list[Memory]:
        """Cosine similarity search; rows below ``threshold`` never come back."""
        builder = SQLQueryBuilder("memories")
        columns = [c for c in SUMMARY_COLUMNS if params.include_content or c != "content"]
        vector = builder.add_parameter(list(embedding))
        builder.select(*columns, f"1 - (embedding <=> {vector}) AS similarity")
        builder.where(f"1 - (embedding <=> {vector}) >= {{}}", params.threshold)
        if params.type:
            builder.where_equals("type", params.type)
        if params.tags:
            builder.where_overlaps("tags", params.tags)
        sql, values = builder.order_by_expression("similarity DESC").limit(params.limit).build()

        result = await self.executor.execute(sql, values)
        logger.debug("Similarity search", rows=len(result.rows), threshold=params.threshold)
        return [row_to_memory(row) for row in result.rows]

    @staticmethod
    def _filtered(params: ListParams) -> SQLQueryBuilder:
        builder = SQLQueryBuilder("memories")
        if params.type:
            builder.where_equals("type", params.type)
        if params.tags:
            builder.where_overlaps("tags", params.tags)
        if params.since:
            builder.where("created_at >= {}", params.since)
        if params.until:
            builder.where("created_at <= {}", params.until)
        return builder

    @with_error_handling(error_level=ErrorLevel.ERROR, reraise=True)
    async def list(self, params: ListParams) -> tuple[list[Memory], int]:
        """One page of memories plus the total matching the same filters."""
        sql, values = (
            self._filtered(params)
            .select(*SUMMARY_COLUMNS)
            .order_by(params.order_by, params.order, allowed=ORDERABLE_COLUMNS)
            .limit(params.limit)
            .offset(params.offset)
            .build()
        )
        count_sql, count_values = self._filtered(params).build_count()

        page = await self.executor.execute(sql, values)
        count = await self.executor.execute(count_sql, count_values)
        total = int(count.rows[0]["total"]) if count.rows else 0
        return [row_to_memory(row) for row in page.rows], total

    async def upsert_link(
        self,
        source_id: UUID,
        target_id: UUID,
        relationship: str,
        strength: float,
        metadata: dict[str, Any],
    ) -> MemoryLink | None:
        """Insert or refresh a link. Returns None when either endpoint does not exist."""
        query = """
            INSERT INTO memory_links (source_id, target_id, relationship, strength, metadata)
            SELECT $1, $2, $3, $4, $5
            WHERE EXISTS (SELECT 1 FROM memories WHERE id = $1)
              AND EXISTS (SELECT 1 FROM memories WHERE id = $2)
            ON CONFLICT (source_id, target_id, relationship)
            DO UPDATE SET strength = EXCLUDED.strength, metadata = EXCLUDED.metadata
            RETURNING source_id, target_id, relationship, strength, metadata, created_at
        """
        result = await self.executor.execute(query, [source_id, target_id, relationship, strength, metadata])
        return row_to_link(result.rows[0]) if result.rows else None

    async def get_links(self, memory_id: UUID) -> list[MemoryLink]:
        query = """
            SELECT source_id, target_id, relationship, strength, metadata, created_at,
                   CASE WHEN source_id = $1 THEN 'outgoing' ELSE 'incoming' END AS direction
            FROM memory_links
            WHERE source_id = $1 OR target_id = $1
            ORDER BY created_at DESC
        """
        result = await self.executor.execute(query, [memory_id])
        return [row_to_link(row) for row in result.rows]
