"""Logging helpers for mycontext.

Provides get_logger and track_performance on top of Python's standard
logging library, plus ``configure_logging`` for the process entry point and
a ``workflow_id`` context variable that tags every record emitted while a
workflow is running.
"""

import inspect
import functools
import json
import logging
import time
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Callable, Optional

# Set by the orchestrator for the duration of a workflow run
workflow_id_context: ContextVar[Optional[str]] = ContextVar("workflow_id", default=None)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


class WorkflowContextFilter(logging.Filter):
    """Copies the current workflow id onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.workflow_id = workflow_id_context.get() or "-"
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        workflow_id = getattr(record, "workflow_id", None)
        if workflow_id and workflow_id != "-":
            entry["workflow_id"] = workflow_id
        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


TEXT_FORMAT = "%(asctime)s %(levelname)-8s %(name)s [%(workflow_id)s] %(message)s"


def configure_logging(settings: Any = None, stream: Any = None) -> logging.Handler:
    """Install a single handler on the ``mycontext`` logger.

    Level and format (``json`` or ``text``) come from settings.  Calling it
    again replaces the previously installed handler.
    """
    if settings is None:
        from mycontext.config.settings import get_settings
        settings = get_settings()

    handler = logging.StreamHandler(stream)
    if settings.log_format == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))
    handler.addFilter(WorkflowContextFilter())

    root = logging.getLogger("mycontext")
    for existing in list(root.handlers):
        if getattr(existing, "_mycontext_handler", False):
            root.removeHandler(existing)
    handler._mycontext_handler = True  # type: ignore[attr-defined]
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if settings.debug else settings.get_log_level())
    return handler


def track_performance(func: Optional[Callable] = None, *, operation: str = ""):
    """Decorator that logs execution time of a function."""
    def decorator(fn: Callable) -> Callable:
        op = operation or fn.__qualname__

        @functools.wraps(fn)
        def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
            start = time.perf_counter()
            try:
                return fn(*args, **kwargs)
            finally:
                elapsed = time.perf_counter() - start
                logging.getLogger(fn.__module__).debug(
                    "%s completed in %.3fs", op, elapsed
                )

        @functools.wraps(fn)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            start = time.perf_counter()
            try:
                return await fn(*args, **kwargs)
            finally:
                elapsed = time.perf_counter() - start
                logging.getLogger(fn.__module__).debug(
                    "%s completed in %.3fs", op, elapsed
                )

        if inspect.iscoroutinefunction(fn):
            return async_wrapper
        return sync_wrapper

    if func is not None:
        return decorator(func)
    return decorator
