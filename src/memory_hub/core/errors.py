"""Specific error types for the memory hub."""

from typing import Any

import mcp.types as types

from .base import (
    ApplicationError,
    DatabaseErrorDetails,
    EmbeddingErrorDetails,
    ErrorCode,
    ErrorDetails,
    ErrorLevel,
    ServiceErrorDetails,
    ValidationErrorDetails,
)


class ValidationError(ApplicationError):
    """Missing or out-of-range input. Never reaches a collaborator."""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        actual_value: Any = None,
        constraint: str | None = None,
        details: ErrorDetails | None = None,
    ):
        self.field = field
        super().__init__(
            message=message,
            code=ErrorCode.INVALID_INPUT,
            level=ErrorLevel.WARNING,
            details=details
            or ValidationErrorDetails(
                source="validation",
                operation="validate",
                field=field,
                actual_value=actual_value,
                constraint=constraint,
            ),
        )


class StorageError(ApplicationError):
    """Query or transaction failure in the storage engine."""

    def __init__(self, message: str, details: DatabaseErrorDetails | dict | None = None):
        super().__init__(
            message=message,
            code=ErrorCode.DB_QUERY,
            level=ErrorLevel.ERROR,
            details=details
            or DatabaseErrorDetails(source="storage", operation="query", service_name="postgres"),
        )


class VectorizerError(ApplicationError):
    """Embedding model not loaded or inference failed."""

    def __init__(self, message: str, details: EmbeddingErrorDetails | dict | None = None):
        super().__init__(
            message=message,
            code=ErrorCode.EMBEDDING_FAILED,
            level=ErrorLevel.ERROR,
            details=details
            or EmbeddingErrorDetails(source="vectorizer", operation="embed", service_name="vectorizer"),
        )


class CacheError(ApplicationError):
    """Shared cache level failure. Always contained by the tiered cache."""

    def __init__(self, message: str, details: ServiceErrorDetails | dict | None = None):
        super().__init__(
            message=message,
            code=ErrorCode.CACHE_UNAVAILABLE,
            level=ErrorLevel.WARNING,
            details=details
            or ServiceErrorDetails(source="cache", operation="shared_level", service_name="redis"),
        )


class ConfigurationError(ApplicationError):
    """Invalid or incomplete settings."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(
            message=message,
            code=ErrorCode.CONFIG_INVALID,
            level=ErrorLevel.CRITICAL,
            details=details,
        )


class ProtocolError(ApplicationError):
    """Error that maps onto a JSON-RPC error object."""

    rpc_code: int = types.INTERNAL_ERROR
    rpc_message: str = "Internal error"

    def __init__(self, message: str, code: ErrorCode = ErrorCode.INVALID_REQUEST, data: Any = None):
        self.data = data
        super().__init__(
            message=message,
            code=code,
            level=ErrorLevel.WARNING,
            details={"source": "dispatcher", "operation": "dispatch"},
        )


class InvalidRequestError(ProtocolError):
    """Malformed request envelope."""

    rpc_code = types.INVALID_REQUEST
    rpc_message = "Invalid Request"


class MethodNotFoundError(ProtocolError):
    """Unroutable method or tool name."""

    rpc_code = types.METHOD_NOT_FOUND
    rpc_message = "Method not found"

    def __init__(self, message: str, data: Any = None):
        super().__init__(message, code=ErrorCode.METHOD_NOT_FOUND, data=data)


class InvalidParamsError(ProtocolError):
    """Structurally valid request with unusable parameters."""

    rpc_code = types.INVALID_PARAMS
    rpc_message = "Invalid params"

    def __init__(self, message: str, data: Any = None):
        super().__init__(message, code=ErrorCode.INVALID_PARAMS, data=data)
