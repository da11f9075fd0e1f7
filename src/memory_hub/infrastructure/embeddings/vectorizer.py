"""Vectorizer adapter consumed by the memory service.

Wraps an embedding backend with lazy one-time model loading, a content
addressed cache, bounded chunking for batches and a continue-on-error policy.
"""

from __future__ import annotations

import anyio
import numpy as np

from memory_hub.core.base import EmbeddingErrorDetails, ErrorLevel
from memory_hub.core.decorators import with_error_handling
from memory_hub.core.errors import VectorizerError
from memory_hub.core.logging import get_logger
from memory_hub.infrastructure.embeddings.backends import EmbeddingBackend
from memory_hub.infrastructure.embeddings.cache import EmbeddingCache

logger = get_logger(__name__)


class Vectorizer:
    """text -> fixed-dimension float vector."""

    def __init__(
        self,
        backend: EmbeddingBackend,
        dimension: int,
        batch_size: int = 32,
        cache: EmbeddingCache | None = None,
    ):
        self.backend = backend
        self.dimension = dimension
        self.batch_size = batch_size
        self.cache = cache
        self._loaded = False
        self._load_lock = anyio.Lock()

    @property
    def model_name(self) -> str:
        return self.backend.model_name

    def _error(self, message: str, operation: str, text: str | None = None) -> VectorizerError:
        return VectorizerError(
            message=message,
            details=EmbeddingErrorDetails(
                source="vectorizer",
                operation=operation,
                service_name=type(self.backend).__name__,
                model_name=self.model_name,
                text_length=len(text) if text is not None else None,
            ),
        )

    async def load(self) -> None:
        """Load the model once; concurrent callers wait for the same load."""
        if self._loaded:
            return
        async with self._load_lock:
            if self._loaded:
                return
            logger.info("Loading embedding model", model=self.model_name)
            try:
                await self.backend.load()
            except Exception as e:
                raise self._error(f"Embedding model {self.model_name} failed to load: {e}", "load") from e
            self._loaded = True
            logger.info("Embedding model loaded", model=self.model_name)

    def _coerce(self, vector: object) -> list[float]:
        array = np.asarray(vector, dtype=np.float32)
        if array.ndim != 1 or array.size == 0:
            raise ValueError(f"expected a non-empty 1-d vector, got shape {array.shape}")
        if array.size != self.dimension:
            logger.warning(
                "Embedding dimension mismatch",
                expected=self.dimension,
                actual=int(array.size),
                model=self.model_name,
            )
        return array.tolist()

    @with_error_handling(error_level=ErrorLevel.ERROR, reraise=True)
    async def embed(self, text: str) -> list[float]:
        """Embed a single text. Raises VectorizerError on any failure."""
        if not isinstance(text, str) or not text:
            raise self._error("Text is required for embedding generation", "embed")

        if self.cache is not None:
            cached = self.cache.get_cached(text, self.model_name)
            if cached is not None:
                return cached

        await self.load()
        try:
            vectors = await self.backend.embed([text])
            embedding = self._coerce(vectors[0])
        except Exception as e:
            raise self._error(f"Embedding inference failed: {e}", "embed", text) from e

        if self.cache is not None:
            self.cache.store(text, self.model_name, embedding)
        return embedding

    async def embed_batch(self, texts: list[str]) -> list[list[float] | None]:
        """Embed many texts in chunks of ``batch_size``.

        A failing item yields ``None`` at its position; other items in the same
        chunk and later chunks are still processed. Only a model that cannot be
        loaded at all raises.
        """
        if not texts:
            return []
        await self.load()

        results: list[list[float] | None] = []
        for start in range(0, len(texts), self.batch_size):
            chunk = texts[start : start + self.batch_size]
            results.extend(await self._embed_chunk(chunk, chunk_number=start // self.batch_size + 1))
        return results

    async def _embed_chunk(self, chunk: list[str], chunk_number: int) -> list[list[float] | None]:
        try:
            vectors = await self.backend.embed(chunk)
            embeddings = [self._coerce(vector) for vector in vectors]
            if len(embeddings) != len(chunk):
                raise ValueError(f"backend returned {len(embeddings)} vectors for {len(chunk)} texts")
        except Exception as e:
            logger.warning(
                "Batch chunk failed, embedding items individually",
                chunk=chunk_number,
                size=len(chunk),
                error=str(e),
            )
        else:
            if self.cache is not None:
                for text, embedding in zip(chunk, embeddings, strict=True):
                    self.cache.store(text, self.model_name, embedding)
            return list(embeddings)

        outcome: list[list[float] | None] = []
        for text in chunk:
            try:
                outcome.append(await self.embed(text))
            except VectorizerError:
                outcome.append(None)
        return outcome

    async def ready(self) -> bool:
        """Smoke-test the model. The first call may block while the model loads."""
        embedding = await self.embed("test")
        if not embedding:
            raise self._error("Embedding service not ready", "ready")
        return True
