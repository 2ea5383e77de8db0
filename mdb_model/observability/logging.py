"""
Contextual logging for MDB_MODEL.

Model operations run with a model context (model name, collection) and an
optional correlation id held in context variables. Records emitted through
`get_logger()` loggers or `log_operation()` carry both as extra attributes,
so concurrent requests can be told apart in structured log output.

Usage:
    contextual_logger = get_logger(__name__)

    with model_context("User", collection="user"):
        contextual_logger.info("Synchronizing indexes")
"""

import contextlib
import contextvars
import logging
import uuid
from datetime import datetime
from typing import Any, Iterator

_correlation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "mdb_model_correlation_id", default=None
)

_model_context: contextvars.ContextVar[dict[str, Any] | None] = contextvars.ContextVar(
    "mdb_model_context", default=None
)


def get_correlation_id() -> str | None:
    return _correlation_id.get()


def set_correlation_id(correlation_id: str | None = None) -> str:
    """
    Bind a correlation id to the current task, generating one if omitted.

    Returns:
        The correlation id now in effect
    """
    correlation_id = correlation_id or str(uuid.uuid4())
    _correlation_id.set(correlation_id)
    return correlation_id


def clear_correlation_id() -> None:
    _correlation_id.set(None)


def set_model_context(model_name: str | None = None, **kwargs: Any) -> None:
    """Replace the model context of the current task."""
    _model_context.set({"model_name": model_name, **kwargs})


def clear_model_context() -> None:
    _model_context.set(None)


@contextlib.contextmanager
def model_context(model_name: str, **kwargs: Any) -> Iterator[None]:
    """
    Scope a model context to a block, restoring the enclosing one on exit.

    Nested blocks (a model operation started from inside another model's
    hook) see their own context and hand the outer one back afterwards.
    """
    token = _model_context.set({"model_name": model_name, **kwargs})
    try:
        yield
    finally:
        _model_context.reset(token)


def get_logging_context() -> dict[str, Any]:
    """Correlation id and model context as a dict of log record extras."""
    context: dict[str, Any] = {"timestamp": datetime.now().isoformat()}

    correlation_id = _correlation_id.get()
    if correlation_id:
        context["correlation_id"] = correlation_id

    current = _model_context.get()
    if current:
        context.update(current)
    return context


class ContextualLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that merges the logging context into every record."""

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        extra = get_logging_context()
        extra.update(kwargs.get("extra") or {})
        kwargs["extra"] = extra
        return msg, kwargs


def get_logger(name: str) -> ContextualLoggerAdapter:
    return ContextualLoggerAdapter(logging.getLogger(name), {})


def log_operation(
    logger: logging.Logger | logging.LoggerAdapter,
    operation: str,
    level: int = logging.INFO,
    success: bool = True,
    duration_ms: float | None = None,
    **context: Any,
) -> None:
    """
    Log one completed operation with its outcome and duration.

    Returns immediately when `level` is disabled for `logger`.

    Args:
        logger: Logger or adapter to emit through
        operation: Operation name (e.g. "model.find")
        level: Log level
        success: Whether the operation succeeded
        duration_ms: Operation duration in milliseconds
        **context: Extra record attributes (collection, ...)
    """
    if not logger.isEnabledFor(level):
        return

    extra = get_logging_context()
    extra.update(operation=operation, success=success, **context)

    message = f"Operation: {operation}" if success else f"Operation failed: {operation}"
    if duration_ms is not None:
        extra["duration_ms"] = round(duration_ms, 2)
        message += f" (duration: {duration_ms:.2f}ms)"

    if isinstance(logger, ContextualLoggerAdapter):
        logger = logger.logger
    logger.log(level, message, extra=extra)
