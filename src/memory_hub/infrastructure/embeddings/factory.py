"""Construction of a configured vectorizer from settings."""

from __future__ import annotations

import importlib.util
from typing import TYPE_CHECKING

from memory_hub.core.errors import ConfigurationError
from memory_hub.core.logging import get_logger
from memory_hub.infrastructure.embeddings.backends import (
    EmbeddingBackend,
    SentenceTransformerBackend,
    VoyageBackend,
)
from memory_hub.infrastructure.embeddings.cache import EmbeddingCache
from memory_hub.infrastructure.embeddings.vectorizer import Vectorizer

if TYPE_CHECKING:
    from memory_hub.core.config import Settings

logger = get_logger(__name__)


def local_backend_available() -> bool:
    return importlib.util.find_spec("sentence_transformers") is not None


class VectorizerBuilder:
    """Builder for properly configured vectorizer instances.

    Example:
        >>> vectorizer = VectorizerBuilder(settings).with_cache(False).build()
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self._use_cache = settings.embedding_cache_enabled
        self._backend: EmbeddingBackend | None = None

    def with_cache(self, enabled: bool = True) -> VectorizerBuilder:
        self._use_cache = enabled
        return self

    def with_backend(self, backend: EmbeddingBackend) -> VectorizerBuilder:
        """Use an explicit backend instead of the one named in settings."""
        self._backend = backend
        return self

    def _backend_from_settings(self) -> EmbeddingBackend:
        name = self.settings.embedding_backend
        if name == "local":
            if not local_backend_available():
                raise ConfigurationError(
                    "EMBEDDING_BACKEND=local needs sentence-transformers; install memory-hub[local]",
                    details={"source": "vectorizer_builder", "operation": "build"},
                )
            return SentenceTransformerBackend(self.settings.embedding_model)
        if name == "voyage":
            if not self.settings.voyage_api_key.get_secret_value():
                raise ConfigurationError(
                    "VOYAGE_API_KEY is required when EMBEDDING_BACKEND=voyage",
                    details={"source": "vectorizer_builder", "operation": "build"},
                )
            return VoyageBackend(self.settings.embedding_model, self.settings.voyage_api_key)
        raise ConfigurationError(
            f"Unknown embedding backend: {name}",
            details={"source": "vectorizer_builder", "operation": "build"},
        )

    def build(self) -> Vectorizer:
        backend = self._backend or self._backend_from_settings()
        cache = EmbeddingCache(self.settings.embedding_cache_size) if self._use_cache else None
        logger.info(
            "Vectorizer configured",
            backend=type(backend).__name__,
            model=backend.model_name,
            dimension=self.settings.embedding_dimension,
            cache=cache is not None,
        )
        return Vectorizer(
            backend=backend,
            dimension=self.settings.embedding_dimension,
            batch_size=self.settings.embedding_batch_size,
            cache=cache,
        )
