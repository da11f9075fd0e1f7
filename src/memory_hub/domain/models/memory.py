"""Memory and link entities plus the parameter/response shapes of the memory service."""

from __future__ import annotations

import json
from datetime import datetime
from enum import Enum
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, JsonValue, field_validator

# Columns accepted by ORDER BY in list(). Nothing else ever reaches the query layer.
ORDERABLE_COLUMNS: frozenset[str] = frozenset({"created_at", "updated_at", "confidence", "type"})

# Keys rendered first (and labelled) when deriving embedding text from object content
_LEADING_CONTENT_KEYS = ("title", "description", "topic", "summary", "text")


def content_to_text(content: JsonValue) -> str:
    """Derive the canonical text that gets embedded for a content document."""
    if isinstance(content, str):
        return content
    if not isinstance(content, dict):
        return json.dumps(content, ensure_ascii=False)

    parts: list[str] = []
    for key in _LEADING_CONTENT_KEYS:
        value = content.get(key)
        if value is None:
            continue
        text = value if isinstance(value, str) else json.dumps(value, ensure_ascii=False)
        parts.append(text if key == "text" else f"{key.capitalize()}: {text}")

    for key, value in content.items():
        if key not in _LEADING_CONTENT_KEYS:
            parts.append(f"{key}: {json.dumps(value, ensure_ascii=False)}")

    return " ".join(parts)


class Memory(BaseModel):
    """A stored memory as returned to callers."""

    id: UUID
    type: str
    content: JsonValue = None
    source: str | None = None
    embedding: list[float] | None = None
    tags: list[str] = Field(default_factory=list)
    confidence: float = Field(ge=0.0, le=1.0)
    metadata: dict[str, Any] = Field(default_factory=dict)
    similarity: float | None = None
    created_at: datetime
    updated_at: datetime

    def __str__(self) -> str:
        return f"Memory(id={self.id}, type={self.type}, tags={self.tags})"


class LinkDirection(str, Enum):
    OUTGOING = "outgoing"
    INCOMING = "incoming"


class MemoryLink(BaseModel):
    """Directed edge between two memories, unique per (source, target, relationship)."""

    source_id: UUID
    target_id: UUID
    relationship: str
    strength: float = Field(default=0.5, ge=0.0, le=1.0)
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime | None = None
    direction: LinkDirection | None = None


class MemoryCreate(BaseModel):
    """Input of MemoryService.create()."""

    model_config = ConfigDict(extra="ignore")

    type: str = Field(min_length=1)
    content: JsonValue
    source: str | None = None
    tags: list[str] = Field(default_factory=list)
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("content")
    @classmethod
    def content_not_empty(cls, value: JsonValue) -> JsonValue:
        if value is None or value == "":
            raise ValueError("content is required")
        return value


class MemoryUpdate(BaseModel):
    """Partial update. Only fields explicitly present are written."""

    model_config = ConfigDict(extra="ignore")

    content: JsonValue = None
    tags: list[str] | None = None
    confidence: float | None = Field(default=None, ge=0.0, le=1.0)
    metadata: dict[str, Any] | None = None

    @field_validator("content")
    @classmethod
    def content_not_empty(cls, value: JsonValue) -> JsonValue:
        if value is None or value == "":
            raise ValueError("content cannot be empty")
        return value

    @property
    def has_content(self) -> bool:
        return "content" in self.model_fields_set

    def changes(self) -> dict[str, Any]:
        """Fields explicitly supplied by the caller, nulls for optional columns dropped."""
        return {
            name: getattr(self, name)
            for name in self.model_fields_set
            if name == "content" or getattr(self, name) is not None
        }


class SearchParams(BaseModel):
    model_config = ConfigDict(extra="ignore")

    query: str = Field(min_length=1)
    type: str | None = None
    tags: list[str] | None = None
    limit: int = Field(default=10, ge=1, le=100)
    threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    include_content: bool = True

    def cache_key(self) -> str:
        return json.dumps(self.model_dump(mode="json"), sort_keys=True, separators=(",", ":"))


class ListParams(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    type: str | None = None
    tags: list[str] | None = None
    since: datetime | None = None
    until: datetime | None = None
    limit: int = Field(default=20, ge=1, le=100)
    offset: int = Field(default=0, ge=0)
    order_by: str = Field(default="created_at", alias="orderBy")
    order: str = "DESC"

    @field_validator("order_by")
    @classmethod
    def order_by_allowed(cls, value: str) -> str:
        if value not in ORDERABLE_COLUMNS:
            raise ValueError(f"orderBy must be one of {sorted(ORDERABLE_COLUMNS)}")
        return value

    @field_validator("order")
    @classmethod
    def normalise_order(cls, value: str) -> str:
        return "ASC" if str(value).upper() == "ASC" else "DESC"

    def cache_key(self) -> str:
        return json.dumps(self.model_dump(mode="json"), sort_keys=True, separators=(",", ":"))


class SearchResponse(BaseModel):
    memories: list[Memory]
    query: str
    total: int


class ListResponse(BaseModel):
    memories: list[Memory]
    total: int
    limit: int
    offset: int


class BatchOperation(BaseModel):
    """One item of a batch. ``operation`` is kept loose so unknown verbs are reported per item."""

    model_config = ConfigDict(extra="ignore")

    operation: str
    id: str | None = None
    data: dict[str, Any] | None = None


class BatchResult(BaseModel):
    success: bool
    operation: str
    result: Memory | None = None
    id: str | None = None
    error: str | None = None


class StreamFilter(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: str | None = None
    tags: list[str] | None = None

    def matches(self, memory: Memory) -> bool:
        if self.type and memory.type != self.type:
            return False
        if self.tags and not set(self.tags) & set(memory.tags):
            return False
        return True


class MemoryEvent(BaseModel):
    """Event delivered to stream subscribers."""

    kind: Literal["created"] = "created"
    memory: Memory
