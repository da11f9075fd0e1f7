"""Embedding model backends.

A backend owns the model and turns a list of texts into a list of vectors. It
knows nothing about caching, chunking or error policy; the vectorizer does.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import anyio
import numpy as np
import voyageai

if TYPE_CHECKING:
    from pydantic import SecretStr


@runtime_checkable
class EmbeddingBackend(Protocol):
    """Protocol for embedding model backends."""

    model_name: str

    async def load(self) -> None:
        """Load the model (may be slow on first call)."""
        ...

    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Embed every text, in order."""
        ...


class SentenceTransformerBackend:
    """Local model through sentence-transformers, run on a worker thread.

    Loading downloads the weights on first use; this blocks whichever request
    triggers it.
    """

    def __init__(self, model_name: str, device: str | None = None):
        self.model_name = model_name
        self.device = device
        self._model: Any = None

    async def load(self) -> None:
        if self._model is not None:
            return
        from sentence_transformers import SentenceTransformer

        self._model = await anyio.to_thread.run_sync(
            lambda: SentenceTransformer(self.model_name, device=self.device)
        )

    async def embed(self, texts: list[str]) -> list[list[float]]:
        if self._model is None:
            raise RuntimeError(f"Model {self.model_name} is not loaded")
        vectors: np.ndarray = await anyio.to_thread.run_sync(
            lambda: self._model.encode(texts, convert_to_numpy=True, normalize_embeddings=True)
        )
        return vectors.astype(np.float32).tolist()


class VoyageBackend:
    """Voyage AI hosted embeddings."""

    def __init__(self, model_name: str, api_key: SecretStr | str):
        self.model_name = model_name
        self._api_key = api_key.get_secret_value() if hasattr(api_key, "get_secret_value") else str(api_key)
        self._client: Any = None

    async def load(self) -> None:
        if self._client is not None:
            return
        self._client = voyageai.AsyncClient(api_key=self._api_key)

    async def embed(self, texts: list[str]) -> list[list[float]]:
        if self._client is None:
            raise RuntimeError("Voyage client is not initialised")
        response = await self._client.embed(texts=texts, model=self.model_name)
        embeddings = getattr(response, "embeddings", None) or []
        if len(embeddings) != len(texts):
            raise RuntimeError(f"Voyage returned {len(embeddings)} embeddings for {len(texts)} texts")
        return [list(map(float, vector)) for vector in embeddings]
