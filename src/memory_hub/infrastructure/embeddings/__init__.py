from .backends import EmbeddingBackend, SentenceTransformerBackend, VoyageBackend
from .cache import EmbeddingCache
from .factory import VectorizerBuilder
from .vectorizer import Vectorizer

__all__ = [
    "EmbeddingBackend",
    "EmbeddingCache",
    "SentenceTransformerBackend",
    "Vectorizer",
    "VectorizerBuilder",
    "VoyageBackend",
]
