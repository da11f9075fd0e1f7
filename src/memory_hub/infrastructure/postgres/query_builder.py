"""Fluent SQL builder for parameterized Postgres queries.

Values only ever travel as positional ``$n`` parameters. Identifiers come from
code constants, and ORDER BY columns must pass an explicit allow-list.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any


class SQLQueryBuilder:
    """Builds a single SELECT with WHERE/ORDER BY/LIMIT/OFFSET clauses.

    Example:
        >>> sql, params = (
        ...     SQLQueryBuilder("memories")
        ...     .select("id", "type")
        ...     .where_equals("type", "note")
        ...     .order_by("created_at", "DESC", allowed={"created_at"})
        ...     .limit(20)
        ...     .build()
        ... )
    """

    def __init__(self, table: str):
        self._table = table
        self._columns: list[str] = []
        self._conditions: list[str] = []
        self._params: list[Any] = []
        self._order: str | None = None
        self._limit: str | None = None
        self._offset: str | None = None

    @property
    def params(self) -> list[Any]:
        return list(self._params)

    def add_parameter(self, value: Any) -> str:
        """Register a value and return its placeholder."""
        self._params.append(value)
        return f"${len(self._params)}"

    def select(self, *columns: str) -> SQLQueryBuilder:
        self._columns.extend(columns)
        return self

    def where(self, template: str, *values: Any) -> SQLQueryBuilder:
        """Add a condition; each ``{}`` in the template is replaced by a placeholder."""
        placeholders = [self.add_parameter(value) for value in values]
        self._conditions.append(template.format(*placeholders))
        return self

    def where_equals(self, column: str, value: Any) -> SQLQueryBuilder:
        return self.where(f"{column} = {{}}", value)

    def where_overlaps(self, column: str, values: Iterable[str]) -> SQLQueryBuilder:
        return self.where(f"{column} && {{}}::text[]", list(values))

    def order_by(self, column: str, direction: str, *, allowed: Iterable[str]) -> SQLQueryBuilder:
        if column not in set(allowed):
            raise ValueError(f"Column {column!r} is not orderable")
        direction = "ASC" if direction.upper() == "ASC" else "DESC"
        self._order = f"{column} {direction}"
        return self

    def order_by_expression(self, expression: str) -> SQLQueryBuilder:
        """Order by a fixed expression written in code, such as ``similarity DESC``."""
        self._order = expression
        return self

    def limit(self, value: int) -> SQLQueryBuilder:
        self._limit = self.add_parameter(int(value))
        return self

    def offset(self, value: int) -> SQLQueryBuilder:
        self._offset = self.add_parameter(int(value))
        return self

    def _where_clause(self) -> str:
        return f" WHERE {' AND '.join(self._conditions)}" if self._conditions else ""

    def build(self) -> tuple[str, list[Any]]:
        columns = ", ".join(self._columns) or "*"
        query = f"SELECT {columns} FROM {self._table}{self._where_clause()}"
        if self._order:
            query += f" ORDER BY {self._order}"
        if self._limit:
            query += f" LIMIT {self._limit}"
        if self._offset:
            query += f" OFFSET {self._offset}"
        return query, self.params

    def build_count(self) -> tuple[str, list[Any]]:
        """COUNT(*) over the same filters. Ignores columns, ordering and paging.

        Must be called on a builder that has no select expressions or paging
        parameters, since those would shift the placeholder numbering.
        """
        return f"SELECT COUNT(*) AS total FROM {self._table}{self._where_clause()}", self.params
