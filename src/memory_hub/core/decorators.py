"""Error handling decorators"""

import inspect
from collections.abc import Awaitable, Callable
from functools import wraps
from typing import Any, ParamSpec, TypeVar, cast

from .base import ApplicationError, ErrorLevel
from .error_context import ErrorContext
from .logging import get_logger

logger = get_logger(__name__)
P = ParamSpec("P")
T = TypeVar("T")


def _log_failure(func_name: str, error: Exception, fallback_level: ErrorLevel) -> None:
    level = error.level if isinstance(error, ApplicationError) else fallback_level
    ctx = ErrorContext(error)
    logger.log(
        level.to_logging_level(),
        f"Error in {func_name}: {error!s}",
        function=func_name,
        error_context=ctx.to_dict(),
        exc_info=level in (ErrorLevel.ERROR, ErrorLevel.CRITICAL),
    )


def with_error_handling(
    error_level: ErrorLevel = ErrorLevel.ERROR,
    reraise: bool = True,
    expected: tuple[type[Exception], ...] = (),
) -> Callable[[Callable[P, T]], Callable[P, T]]:
    """Decorator for handling errors in functions.

    ApplicationErrors are logged at their own level, anything else at
    ``error_level``. Exceptions listed in ``expected`` pass through untouched
    (they are part of the callee's contract, e.g. validation failures).

    Args:
        error_level: Severity level for logging non-application errors
        reraise: Whether to re-raise the error after logging
        expected: Exception types re-raised without logging

    Returns:
        Decorated function with error handling
    """

    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        original_signature = inspect.signature(func)

        if inspect.iscoroutinefunction(func):

            @wraps(func)
            async def async_wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
                try:
                    return await cast("Callable[P, Awaitable[T]]", func)(*args, **kwargs)
                except expected:
                    raise
                except Exception as e:
                    _log_failure(func.__qualname__, e, error_level)
                    if reraise:
                        raise
                    return cast("T", None)

            async_wrapper.__signature__ = original_signature  # type: ignore[attr-defined]
            return cast("Callable[P, T]", async_wrapper)

        @wraps(func)
        def sync_wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            try:
                return func(*args, **kwargs)
            except expected:
                raise
            except Exception as e:
                _log_failure(func.__qualname__, e, error_level)
                if reraise:
                    raise
                return cast("T", None)

        sync_wrapper.__signature__ = original_signature  # type: ignore[attr-defined]
        return sync_wrapper

    return decorator


def error_context(**static_context: Any) -> Callable[[Callable[P, T]], Callable[P, T]]:
    """Decorator that attaches static context to errors raised by an async function.

    The exception is re-raised unchanged; the context lands in the log record.
    """

    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            try:
                return await cast("Callable[P, Awaitable[T]]", func)(*args, **kwargs)
            except Exception as e:
                ctx = ErrorContext(e, **static_context)
                logger.debug(f"Error context for {func.__qualname__}", error_context=ctx.to_dict())
                raise

        return cast("Callable[P, T]", wrapper)

    return decorator
