"""Static tool catalog.

The input schemas are descriptive. The dispatcher only enforces each tool's
``required`` list before delegating; the memory service does the real validation.
"""

from typing import Any

import mcp.types as types

_TAGS = {"type": "array", "items": {"type": "string"}}

INPUT_SCHEMAS: dict[str, dict[str, Any]] = {}


def _tool(name: str, description: str, input_schema: dict[str, Any]) -> types.Tool:
    INPUT_SCHEMAS[name] = input_schema
    return types.Tool(name=name, description=description, inputSchema=input_schema)


TOOLS: list[types.Tool] = [
    _tool(
        "memory_create",
        "Create a new memory with automatic embedding generation",
        {
            "type": "object",
            "properties": {
                "type": {"type": "string", "description": "Memory type (e.g., learning, experience, fact)"},
                "content": {"type": "object", "description": "Memory content as JSON object"},
                "source": {"type": "string", "description": "Source of the memory"},
                "tags": {**_TAGS, "description": "Tags for categorization"},
                "confidence": {
                    "type": "number",
                    "minimum": 0,
                    "maximum": 1,
                    "description": "Confidence score (0-1)",
                },
                "metadata": {"type": "object", "description": "Arbitrary key/value metadata"},
            },
            "required": ["type", "content"],
        },
    ),
    _tool(
        "memory_search",
        "Search memories using semantic similarity",
        {
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "Search query"},
                "type": {"type": "string", "description": "Filter by memory type"},
                "tags": {**_TAGS, "description": "Filter by tags"},
                "limit": {"type": "integer", "minimum": 1, "maximum": 100, "description": "Maximum results to return"},
                "threshold": {"type": "number", "minimum": 0, "maximum": 1, "description": "Similarity threshold"},
                "include_content": {"type": "boolean", "description": "Include memory content in results"},
            },
            "required": ["query"],
        },
    ),
    _tool(
        "memory_list",
        "List memories with optional filters",
        {
            "type": "object",
            "properties": {
                "type": {"type": "string", "description": "Filter by memory type"},
                "tags": {**_TAGS, "description": "Filter by tags"},
                "since": {"type": "string", "format": "date-time", "description": "Created at or after"},
                "until": {"type": "string", "format": "date-time", "description": "Created at or before"},
                "limit": {"type": "integer", "minimum": 1, "maximum": 100, "description": "Maximum results"},
                "offset": {"type": "integer", "minimum": 0, "description": "Pagination offset"},
                "orderBy": {
                    "type": "string",
                    "enum": ["created_at", "updated_at", "confidence", "type"],
                    "description": "Sort column",
                },
                "order": {"type": "string", "enum": ["ASC", "DESC"], "description": "Sort direction"},
            },
        },
    ),
]

TOOLS_BY_NAME: dict[str, types.Tool] = {tool.name: tool for tool in TOOLS}


def tool_catalog() -> list[dict[str, Any]]:
    return [tool.model_dump(by_alias=True, exclude_none=True) for tool in TOOLS]


def required_arguments(name: str) -> list[str]:
    return list(INPUT_SCHEMAS[name].get("required", []))
