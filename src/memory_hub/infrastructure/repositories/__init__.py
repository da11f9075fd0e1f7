from .memory import MemoryRepository, row_to_link, row_to_memory

__all__ = ["MemoryRepository", "row_to_link", "row_to_memory"]
