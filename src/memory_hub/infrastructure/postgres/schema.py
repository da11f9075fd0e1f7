"""Idempotent schema bootstrap for memories and links.

This only creates what is missing; it is not a migration system.
"""

from typing import Any

from memory_hub.core.logging import get_logger

logger = get_logger(__name__)


def schema_statements(dimension: int) -> list[str]:
    if dimension <= 0:
        raise ValueError("embedding dimension must be positive")
    return [
        "CREATE EXTENSION IF NOT EXISTS vector",
        f"""
        CREATE TABLE IF NOT EXISTS memories (
            id UUID PRIMARY KEY,
            type VARCHAR(255) NOT NULL,
            content JSONB NOT NULL,
            source VARCHAR(255),
            embedding vector({int(dimension)}) NOT NULL,
            tags TEXT[] NOT NULL DEFAULT '{{}}',
            confidence REAL NOT NULL DEFAULT 0.5 CHECK (confidence >= 0 AND confidence <= 1),
            metadata JSONB NOT NULL DEFAULT '{{}}',
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS memory_links (
            source_id UUID NOT NULL REFERENCES memories(id) ON DELETE CASCADE,
            target_id UUID NOT NULL REFERENCES memories(id) ON DELETE CASCADE,
            relationship VARCHAR(50) NOT NULL,
            strength REAL NOT NULL DEFAULT 0.5 CHECK (strength >= 0 AND strength <= 1),
            metadata JSONB NOT NULL DEFAULT '{}',
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            CONSTRAINT unique_source_target_relationship UNIQUE (source_id, target_id, relationship)
        )
        """,
        "CREATE INDEX IF NOT EXISTS idx_memories_type ON memories (type)",
        "CREATE INDEX IF NOT EXISTS idx_memories_tags ON memories USING GIN (tags)",
        "CREATE INDEX IF NOT EXISTS idx_memories_created_at ON memories (created_at DESC)",
        "CREATE INDEX IF NOT EXISTS idx_memories_embedding ON memories USING ivfflat (embedding vector_cosine_ops)",
        "CREATE INDEX IF NOT EXISTS idx_memory_links_source ON memory_links (source_id)",
        "CREATE INDEX IF NOT EXISTS idx_memory_links_target ON memory_links (target_id)",
    ]


async def ensure_schema(conn: Any, dimension: int) -> None:
    """Create the extension, tables and indexes if they do not exist."""
    for statement in schema_statements(dimension):
        await conn.execute(statement)
    logger.info("Schema ensured", dimension=dimension)
