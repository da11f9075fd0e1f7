from .engine import PostgresEngine, QueryExecutor, QueryResult, TransactionClient
from .query_builder import SQLQueryBuilder
from .schema import ensure_schema, schema_statements

__all__ = [
    "PostgresEngine",
    "QueryExecutor",
    "QueryResult",
    "SQLQueryBuilder",
    "TransactionClient",
    "ensure_schema",
    "schema_statements",
]
