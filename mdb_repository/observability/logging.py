"""
Structured logging for repository operations.

Each public repository operation runs inside ``operation_context``, which
records the database, collection and entity type in a context variable.
Loggers obtained from ``get_logger`` copy that context onto every record, so
provisioning, retry and store messages emitted while an operation runs name
the repository they serve. Concurrent tasks each see their own context.

Usage:
    logger = get_logger(__name__)

    with operation_context(database="people_db", collection="Person"):
        logger.info("Provisioned collection")   # record.collection == "Person"
"""

import contextvars
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

_operation_context: contextvars.ContextVar[dict[str, Any]] = contextvars.ContextVar(
    "mdb_repository_operation_context", default={}
)


def get_logging_context() -> dict[str, Any]:
    """Return a copy of the fields of the operation currently running."""
    return dict(_operation_context.get())


@contextmanager
def operation_context(**fields: Any) -> Iterator[dict[str, Any]]:
    """
    Add ``fields`` to the logging context until the block exits.

    Nested blocks extend the outer context; fields set to None are left out.
    """
    context = {**_operation_context.get()}
    context.update({key: value for key, value in fields.items() if value is not None})
    token = _operation_context.set(context)
    try:
        yield context
    finally:
        _operation_context.reset(token)


class ContextualLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that attaches the current operation context to records."""

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        extra = get_logging_context()
        extra.update(kwargs.get("extra") or {})
        kwargs["extra"] = extra
        return msg, kwargs


def get_logger(name: str) -> ContextualLoggerAdapter:
    """Module logger whose records carry the current operation context."""
    return ContextualLoggerAdapter(logging.getLogger(name), {})


def log_operation(
    logger: logging.Logger | logging.LoggerAdapter,
    operation: str,
    level: int = logging.INFO,
    success: bool = True,
    duration_ms: float | None = None,
    **fields: Any,
) -> None:
    """
    Log the outcome of one repository operation.

    The record's ``extra`` holds the operation context, ``operation``,
    ``success``, ``duration_ms`` (rounded to two places) and ``fields``.

    Args:
        logger: Logger or adapter to emit on
        operation: Operation name, e.g. ``repository.add_or_update``
        level: Log level
        success: Whether the operation completed
        duration_ms: Wall time of the operation
        **fields: Operation-specific values such as the document id
    """
    extra = get_logging_context()
    extra["operation"] = operation
    extra["success"] = success
    if duration_ms is not None:
        extra["duration_ms"] = round(duration_ms, 2)
    extra.update(fields)

    message = f"{operation} {'succeeded' if success else 'failed'}"
    if duration_ms is not None:
        message += f" in {duration_ms:.2f}ms"

    logger.log(level, message, extra=extra)
