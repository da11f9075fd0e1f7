from .memory_service import MemoryService
from .protocols import StorageEngine, Vectorizer
from .streaming import MemoryEventBus, MemorySubscription

__all__ = ["MemoryEventBus", "MemoryService", "MemorySubscription", "StorageEngine", "Vectorizer"]
