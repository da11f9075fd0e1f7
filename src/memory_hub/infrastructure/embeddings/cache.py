import hashlib
from collections import OrderedDict


class EmbeddingCache:
    """Content-addressed cache of embedding vectors, separate from the tiered cache.

    Keys are derived from the model name and the exact input text so switching
    models never serves a stale vector. Bounded: the oldest inserted entry is
    evicted first once ``max_size`` is exceeded.
    """

    def __init__(self, max_size: int = 10000):
        self.max_size = max_size
        self._vectors: OrderedDict[str, list[float]] = OrderedDict()
        self.hits = 0
        self.misses = 0

    @staticmethod
    def _key(text: str, model: str) -> str:
        return hashlib.sha256(f"{model}::{text}".encode()).hexdigest()

    def get_cached(self, text: str, model: str) -> list[float] | None:
        vector = self._vectors.get(self._key(text, model))
        if vector is None:
            self.misses += 1
            return None
        self.hits += 1
        return vector

    def store(self, text: str, model: str, embedding: list[float]) -> None:
        key = self._key(text, model)
        if key in self._vectors:
            return
        self._vectors[key] = embedding
        if len(self._vectors) > self.max_size:
            self._vectors.popitem(last=False)

    def clear(self) -> None:
        self._vectors.clear()

    def __len__(self) -> int:
        return len(self._vectors)
