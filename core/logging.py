# PATH: core/logging.py
"""
Structured logging for TRADEWIRE.

Contextual fields travel only via extra={"context": {...}}. Fields that
hold for a whole process (service, chain) are set with
set_global_context(); fields that hold for one dispatcher run (run_id)
are bound with bind_context() and dropped when the run ends. A record's
own context wins over both.
"""

import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional

CONSOLE_CONTEXT_FIELDS = 3

_global_context: Dict[str, Any] = {}
_bound_context: ContextVar[Dict[str, Any]] = ContextVar("tradewire_log_context", default={})


def record_context(record: logging.LogRecord) -> Dict[str, Any]:
    """Global, then bound, then per-record fields."""
    context = {**_global_context, **_bound_context.get()}
    context.update(getattr(record, "context", None) or {})
    return context


class StructuredFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        context = record_context(record)
        if context:
            entry["context"] = context
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class ConsoleFormatter(logging.Formatter):
    """
    Human-readable single line. Shows the record's own context first,
    truncated after a few fields; bound run fields are appended in
    brackets.
    """

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S")
        line = f"{timestamp} | {record.levelname:<9} | {record.name} | {record.getMessage()}"

        own = getattr(record, "context", None) or {}
        if own:
            items = list(own.items())
            shown = ", ".join(f"{k}={v}" for k, v in items[:CONSOLE_CONTEXT_FIELDS])
            if len(items) > CONSOLE_CONTEXT_FIELDS:
                shown += f", ... (+{len(items) - CONSOLE_CONTEXT_FIELDS} more)"
            line += f" | {shown}"

        bound = {k: v for k, v in _bound_context.get().items() if k not in own}
        if bound:
            line += " [" + " ".join(f"{k}={v}" for k, v in bound.items()) + "]"

        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def set_global_context(**kwargs: Any) -> None:
    """
    Fields added to every log entry for the rest of the process.

    Example:
        set_global_context(service="tradewire-encode", chain="ethereum")
    """
    _global_context.update(kwargs)


def clear_global_context() -> None:
    _global_context.clear()


@contextmanager
def bind_context(**kwargs: Any) -> Iterator[Dict[str, Any]]:
    """Bind fields to every entry logged inside the block; nests."""
    token = _bound_context.set({**_bound_context.get(), **kwargs})
    try:
        yield _bound_context.get()
    finally:
        _bound_context.reset(token)


def setup_logging(
    level: int = logging.INFO,
    log_file: Optional[str] = None,
    json_format: bool = False,
) -> None:
    """
    Setup logging configuration.

    Args:
        level: Logging level
        log_file: Optional file path; always JSON lines
        json_format: JSON on stderr instead of the console format
    """
    # stderr keeps CLI stdout machine-readable
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(StructuredFormatter() if json_format else ConsoleFormatter())
    handlers = [console_handler]

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(StructuredFormatter())
        handlers.append(file_handler)

    logging.basicConfig(level=level, handlers=handlers, force=True)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
