"""
Contextual logging for repository operations.

Two context variables travel with the current thread or task: a correlation
id, opened per DI request scope, and the repository context (collection,
entity, operation, unit of work) pushed by repositories and units of work
while they talk to the store. Loggers from get_logger() copy both onto every
record they emit.
"""

import contextlib
import contextvars
import logging
import uuid
from collections.abc import Iterator
from typing import Any

_correlation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "mdb_repository_correlation_id", default=None
)

_repository_context: contextvars.ContextVar[dict[str, Any]] = contextvars.ContextVar(
    "mdb_repository_context", default={}
)


def get_correlation_id() -> str | None:
    return _correlation_id.get()


def set_correlation_id(correlation_id: str | None = None) -> contextvars.Token:
    """
    Make ``correlation_id`` (or a fresh uuid4) current.

    Returns:
        Token for reset_correlation_id()
    """
    return _correlation_id.set(correlation_id or uuid.uuid4().hex)


def reset_correlation_id(token: contextvars.Token) -> None:
    _correlation_id.reset(token)


@contextlib.contextmanager
def repository_context(**fields: Any) -> Iterator[dict[str, Any]]:
    """
    Push fields onto the repository context for the duration of the block.

    Nested blocks see the outer fields as well; None values are dropped.

    Example:
        with repository_context(collection="Product", operation="add"):
            logger.info("writing")  # record.collection == "Product"
    """
    merged = {**_repository_context.get(), **{k: v for k, v in fields.items() if v is not None}}
    token = _repository_context.set(merged)
    try:
        yield merged
    finally:
        _repository_context.reset(token)


def get_logging_context() -> dict[str, Any]:
    """Correlation id plus the active repository context, as log ``extra`` fields."""
    context = dict(_repository_context.get())
    correlation_id = _correlation_id.get()
    if correlation_id:
        context["correlation_id"] = correlation_id
    return context


class ContextualLoggerAdapter(logging.LoggerAdapter):
    """Adds get_logging_context() to each record; explicit ``extra`` wins."""

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        kwargs["extra"] = {**get_logging_context(), **kwargs.get("extra", {})}
        return msg, kwargs


def get_logger(name: str) -> ContextualLoggerAdapter:
    return ContextualLoggerAdapter(logging.getLogger(name), {})


def log_operation(
    logger: logging.Logger | logging.LoggerAdapter,
    operation: str,
    level: int = logging.DEBUG,
    success: bool = True,
    duration_ms: float | None = None,
    **context: Any,
) -> None:
    """
    Log the outcome of one store operation.

    Args:
        logger: Logger or adapter to emit through
        operation: Repository operation name
        level: Log level
        success: Whether the operation completed
        duration_ms: Elapsed time, rounded to two decimals on the record
        **context: Extra fields such as ``count``
    """
    extra = {**get_logging_context(), "operation": operation, "success": success, **context}
    message = f"Operation {'succeeded' if success else 'failed'}: {operation}"
    if duration_ms is not None:
        extra["duration_ms"] = round(duration_ms, 2)
        message += f" ({duration_ms:.2f}ms)"
    logger.log(level, message, extra=extra)
