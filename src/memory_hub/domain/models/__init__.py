from .memory import (
    ORDERABLE_COLUMNS,
    BatchOperation,
    BatchResult,
    LinkDirection,
    ListParams,
    ListResponse,
    Memory,
    MemoryCreate,
    MemoryEvent,
    MemoryLink,
    MemoryUpdate,
    SearchParams,
    SearchResponse,
    StreamFilter,
    content_to_text,
)

__all__ = [
    "ORDERABLE_COLUMNS",
    "BatchOperation",
    "BatchResult",
    "LinkDirection",
    "ListParams",
    "ListResponse",
    "Memory",
    "MemoryCreate",
    "MemoryEvent",
    "MemoryLink",
    "MemoryUpdate",
    "SearchParams",
    "SearchResponse",
    "StreamFilter",
    "content_to_text",
]
