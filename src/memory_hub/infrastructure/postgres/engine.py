"""Postgres storage engine and transactional client.

Both expose the same ``execute(query, params) -> QueryResult`` surface so
repositories can be bound to either the pool or an open transaction.
"""

from __future__ import annotations

import json
import time
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, Protocol

import asyncpg
from pgvector.asyncpg import register_vector

from memory_hub.core.base import DatabaseErrorDetails
from memory_hub.core.errors import StorageError
from memory_hub.core.logging import get_logger
from memory_hub.infrastructure.postgres.schema import ensure_schema

logger = get_logger(__name__)


@dataclass(slots=True)
class QueryResult:
    rows: list[dict[str, Any]] = field(default_factory=list)
    row_count: int = 0


class QueryExecutor(Protocol):
    async def execute(self, query: str, params: Sequence[Any] = ()) -> QueryResult: ...


def _storage_error(e: Exception, query: str, operation: str, started: float) -> StorageError:
    return StorageError(
        message=f"Storage {operation} failed: {e}",
        details=DatabaseErrorDetails(
            source="postgres_engine",
            operation=operation,
            service_name="postgres",
            query_type=query.lstrip().split(" ", 1)[0].upper() if query.strip() else None,
            sqlstate=getattr(e, "sqlstate", None),
            latency_ms=(time.perf_counter() - started) * 1000,
        ),
    )


def _row_count(status: str | None, fetched: int) -> int:
    # Status messages look like "INSERT 0 1", "UPDATE 3", "SELECT 5"
    if status:
        tail = status.rsplit(" ", 1)[-1]
        if tail.isdigit():
            return int(tail)
    return fetched


async def _run(conn: asyncpg.Connection, query: str, params: Sequence[Any], operation: str) -> QueryResult:
    started = time.perf_counter()
    try:
        statement = await conn.prepare(query)
        records = await statement.fetch(*params)
        status = statement.get_statusmsg()
    except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
        raise _storage_error(e, query, operation, started) from e
    rows = [dict(record) for record in records]
    return QueryResult(rows=rows, row_count=_row_count(status, len(rows)))


async def _init_connection(conn: asyncpg.Connection) -> None:
    await register_vector(conn)
    await conn.set_type_codec("jsonb", encoder=json.dumps, decoder=json.loads, schema="pg_catalog")


class TransactionClient:
    """A checked-out connection with explicit begin/commit/rollback."""

    def __init__(self, conn: asyncpg.Connection):
        self._conn = conn
        self._transaction: Any = None

    @property
    def active(self) -> bool:
        return self._transaction is not None

    async def begin(self) -> None:
        started = time.perf_counter()
        try:
            self._transaction = self._conn.transaction()
            await self._transaction.start()
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
            self._transaction = None
            raise _storage_error(e, "BEGIN", "begin", started) from e

    async def commit(self) -> None:
        started = time.perf_counter()
        try:
            await self._transaction.commit()
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
            raise _storage_error(e, "COMMIT", "commit", started) from e
        finally:
            self._transaction = None

    async def rollback(self) -> None:
        if self._transaction is None:
            return
        started = time.perf_counter()
        try:
            await self._transaction.rollback()
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
            raise _storage_error(e, "ROLLBACK", "rollback", started) from e
        finally:
            self._transaction = None

    async def execute(self, query: str, params: Sequence[Any] = ()) -> QueryResult:
        return await _run(self._conn, query, params, "transaction_query")


class PostgresEngine:
    """Pool-backed storage engine."""

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    @classmethod
    async def connect(
        cls,
        dsn: str,
        *,
        min_size: int = 1,
        max_size: int = 10,
        command_timeout: float | None = None,
        bootstrap_dimension: int | None = None,
    ) -> PostgresEngine:
        """Open a pool. With ``bootstrap_dimension`` the schema is created first.

        Schema bootstrap runs on a plain connection because the pool's
        connection init registers the ``vector`` codec, which needs the
        extension to exist already.
        """
        logger.info("Creating Postgres pool", min_size=min_size, max_size=max_size)
        try:
            if bootstrap_dimension is not None:
                conn = await asyncpg.connect(dsn)
                try:
                    await ensure_schema(conn, bootstrap_dimension)
                finally:
                    await conn.close()

            pool = await asyncpg.create_pool(
                dsn,
                min_size=min_size,
                max_size=max_size,
                command_timeout=command_timeout,
                init=_init_connection,
            )
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
            raise StorageError(
                message=f"Could not connect to Postgres: {e}",
                details=DatabaseErrorDetails(source="postgres_engine", operation="connect", service_name="postgres"),
            ) from e
        logger.info("Postgres pool ready")
        return cls(pool)

    async def execute(self, query: str, params: Sequence[Any] = ()) -> QueryResult:
        async with self.pool.acquire() as conn:
            return await _run(conn, query, params, "query")

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[TransactionClient]:
        """Check out a connection inside BEGIN; commit on clean exit, roll back on any exception."""
        async with self.pool.acquire() as conn:
            client = TransactionClient(conn)
            await client.begin()
            try:
                yield client
            except BaseException:
                await client.rollback()
                raise
            await client.commit()

    async def ping(self) -> bool:
        result = await self.execute("SELECT 1 AS ok")
        return bool(result.rows and result.rows[0]["ok"] == 1)

    async def close(self) -> None:
        await self.pool.close()
        logger.info("Postgres pool closed")
