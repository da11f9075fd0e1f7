from .base import ApplicationError, ErrorCode, ErrorLevel
from .circuit_breaker import CircuitBreaker, CircuitState
from .errors import (
    CacheError,
    ConfigurationError,
    InvalidParamsError,
    InvalidRequestError,
    MethodNotFoundError,
    ProtocolError,
    StorageError,
    ValidationError,
    VectorizerError,
)
from .locks import KeyedLock
