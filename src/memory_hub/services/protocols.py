"""Narrow interfaces of the collaborators the memory service consumes."""

from collections.abc import Sequence
from contextlib import AbstractAsyncContextManager
from typing import Any, Protocol

from memory_hub.infrastructure.postgres import QueryExecutor, QueryResult


class Vectorizer(Protocol):
    dimension: int

    async def embed(self, text: str) -> list[float]: ...

    async def embed_batch(self, texts: list[str]) -> list[list[float] | None]: ...

    async def ready(self) -> bool: ...


class StorageEngine(Protocol):
    async def execute(self, query: str, params: Sequence[Any] = ()) -> QueryResult: ...

    def transaction(self) -> AbstractAsyncContextManager[QueryExecutor]: ...

    async def ping(self) -> bool: ...
