"""SQL generation for the repository, builder and schema, checked against a recording executor."""

from datetime import UTC, datetime
from uuid import uuid4

import pytest

from memory_hub.domain.models import ListParams, MemoryCreate, SearchParams
from memory_hub.infrastructure.postgres import QueryResult, SQLQueryBuilder, schema_statements
from memory_hub.infrastructure.postgres.engine import _row_count
from memory_hub.infrastructure.repositories import MemoryRepository


class RecordingExecutor:
    def __init__(self, results: list[QueryResult] | None = None):
        self.queries: list[tuple[str, list]] = []
        self.results = list(results or [])

    async def execute(self, query, params=()):
        self.queries.append((" ".join(query.split()), list(params)))
        return self.results.pop(0) if self.results else QueryResult()


def memory_row(**overrides):
    now = datetime.now(UTC)
    row = {
        "id": uuid4(),
        "type": "note",
        "content": {"text": "hi"},
        "source": None,
        "embedding": [0.1, 0.2],
        "tags": ["a"],
        "confidence": 0.5,
        "metadata": {},
        "created_at": now,
        "updated_at": now,
    }
    row.update(overrides)
    return row


def test_builder_numbers_parameters_in_order():
    sql, params = (
        SQLQueryBuilder("memories")
        .select("id")
        .where_equals("type", "note")
        .where_overlaps("tags", ["a", "b"])
        .order_by("created_at", "sideways", allowed={"created_at"})
        .limit(5)
        .offset(10)
        .build()
    )

    assert sql == (
        "SELECT id FROM memories WHERE type = $1 AND tags && $2::text[] ORDER BY created_at DESC LIMIT $3 OFFSET $4"
    )
    assert params == ["note", ["a", "b"], 5, 10]


def test_builder_rejects_unlisted_order_column():
    with pytest.raises(ValueError):
        SQLQueryBuilder("memories").order_by("content", "ASC", allowed={"created_at"})


def test_builder_count_shares_filters():
    builder = SQLQueryBuilder("memories").where_equals("type", "note")
    assert builder.build_count() == ("SELECT COUNT(*) AS total FROM memories WHERE type = $1", ["note"])


@pytest.mark.asyncio
async def test_search_sql():
    executor = RecordingExecutor([QueryResult(rows=[{**memory_row(), "similarity": 0.9}])])
    repository = MemoryRepository(executor)

    params = SearchParams(query="q", type="note", tags=["a"], limit=3, threshold=0.6)
    results = await repository.search([0.1, 0.2], params)

    sql, values = executor.queries[0]
    assert "1 - (embedding <=> $1) AS similarity" in sql
    assert "WHERE 1 - (embedding <=> $1) >= $2 AND type = $3 AND tags && $4::text[]" in sql
    assert sql.endswith("ORDER BY similarity DESC LIMIT $5")
    assert " embedding," not in sql.split("FROM")[0]
    assert values == [[0.1, 0.2], 0.6, "note", ["a"], 3]
    assert results[0].similarity == 0.9


@pytest.mark.asyncio
async def test_search_without_content_omits_column():
    executor = RecordingExecutor()
    await MemoryRepository(executor).search([0.1], SearchParams(query="q", include_content=False))

    select_list = executor.queries[0][0].split("FROM")[0]
    assert "content" not in select_list


@pytest.mark.asyncio
async def test_list_sql_and_count():
    since = datetime(2024, 1, 1, tzinfo=UTC)
    executor = RecordingExecutor([QueryResult(rows=[memory_row()]), QueryResult(rows=[{"total": 7}])])

    memories, total = await MemoryRepository(executor).list(
        ListParams(type="note", since=since, limit=2, offset=4, orderBy="confidence", order="ASC")
    )

    (page_sql, page_values), (count_sql, count_values) = executor.queries
    assert "WHERE type = $1 AND created_at >= $2 ORDER BY confidence ASC LIMIT $3 OFFSET $4" in page_sql
    assert page_values == ["note", since, 2, 4]
    assert count_sql == "SELECT COUNT(*) AS total FROM memories WHERE type = $1 AND created_at >= $2"
    assert count_values == ["note", since]
    assert total == 7
    assert len(memories) == 1


@pytest.mark.asyncio
async def test_insert_sql():
    memory_id = uuid4()
    executor = RecordingExecutor([QueryResult(rows=[memory_row(id=memory_id)], row_count=1)])
    data = MemoryCreate(type="note", content={"text": "hi"}, tags=["a"], confidence=0.9)

    memory = await MemoryRepository(executor).insert(memory_id, data, [0.1, 0.2])

    sql, values = executor.queries[0]
    assert sql.startswith("INSERT INTO memories (id, type, content, source, embedding, tags, confidence, metadata)")
    assert values == [memory_id, "note", {"text": "hi"}, None, [0.1, 0.2], ["a"], 0.9, {}]
    assert memory.id == memory_id


@pytest.mark.asyncio
async def test_update_sql_sets_only_given_columns():
    memory_id = uuid4()
    executor = RecordingExecutor([QueryResult(rows=[memory_row(id=memory_id, tags=["b"])], row_count=1)])

    memory = await MemoryRepository(executor).update(memory_id, {"tags": ("b",), "confidence": 0.2})

    sql, values = executor.queries[0]
    assert sql.startswith("UPDATE memories SET confidence = $1, tags = $2, updated_at = now() WHERE id = $3")
    assert values == [0.2, ["b"], memory_id]
    assert memory.tags == ["b"]


@pytest.mark.asyncio
async def test_update_rejects_unknown_columns():
    with pytest.raises(ValueError):
        await MemoryRepository(RecordingExecutor()).update(uuid4(), {"id": uuid4()})


@pytest.mark.asyncio
async def test_update_and_get_missing_row():
    repository = MemoryRepository(RecordingExecutor())
    assert await repository.update(uuid4(), {"confidence": 0.3}) is None
    assert await repository.get_by_id(uuid4()) is None


@pytest.mark.asyncio
async def test_delete_uses_row_count():
    executor = RecordingExecutor([QueryResult(row_count=1), QueryResult(row_count=0)])
    repository = MemoryRepository(executor)

    assert await repository.delete(uuid4()) is True
    assert await repository.delete(uuid4()) is False
    assert executor.queries[0][0] == "DELETE FROM memories WHERE id = $1"


@pytest.mark.asyncio
async def test_upsert_link_sql():
    source, target = uuid4(), uuid4()
    executor = RecordingExecutor()

    assert await MemoryRepository(executor).upsert_link(source, target, "cites", 0.4, {}) is None

    sql, values = executor.queries[0]
    assert "ON CONFLICT (source_id, target_id, relationship)" in sql
    assert "WHERE EXISTS (SELECT 1 FROM memories WHERE id = $1)" in sql
    assert values == [source, target, "cites", 0.4, {}]


def test_row_count_parsing():
    assert _row_count("DELETE 3", 0) == 3
    assert _row_count("INSERT 0 1", 1) == 1
    assert _row_count(None, 2) == 2
    assert _row_count("BEGIN", 0) == 0


def test_schema_uses_dimension_and_cascade():
    statements = "\n".join(schema_statements(384))
    assert "vector(384)" in statements
    assert statements.count("ON DELETE CASCADE") == 2
    assert "CREATE EXTENSION IF NOT EXISTS vector" in statements
    assert "USING ivfflat (embedding vector_cosine_ops)" in statements

    with pytest.raises(ValueError):
        schema_statements(0)
