"""
Structured logging for the repository dashboard.

Every record is stamped with the repository and resource being loaded
(tracked in contextvars, set with log_context()). Records go to a rich
console handler and, when a log file is configured, to a JSON Lines file.

Keyword arguments passed to a ContextLogger call become structured fields:

    logger.warning("Load failed", key=key, error=str(e))
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from pathlib import Path
from typing import Any, Generator

import orjson
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

ROOT_LOGGER = "repodash"
CONTEXT_FIELDS = ("repo", "resource")

_context: dict[str, ContextVar[str | None]] = {
    name: ContextVar(name, default=None) for name in CONTEXT_FIELDS
}


def current_context() -> dict[str, str]:
    """Context fields currently set, e.g. ``{"repo": "acme/widget"}``."""
    values = {name: var.get() for name, var in _context.items()}
    return {name: value for name, value in values.items() if value}


@contextmanager
def log_context(
    repo: str | None = None,
    resource: str | None = None,
) -> Generator[None, None, None]:
    """Set the repository and/or resource for records logged inside the block."""
    tokens = [
        _context[name].set(value)
        for name, value in (("repo", repo), ("resource", resource))
        if value is not None
    ]
    try:
        yield
    finally:
        for token in reversed(tokens):
            token.var.reset(token)


class ContextFilter(logging.Filter):
    """Copies the current context fields onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        for name in CONTEXT_FIELDS:
            if not hasattr(record, name):
                setattr(record, name, _context[name].get())
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per line: level, logger, message, context and fields."""

    def format(self, record: logging.LogRecord) -> str:
        doc: dict[str, Any] = {
            "time": self.formatTime(record, "%Y-%m-%dT%H:%M:%S%z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value:
                doc[name] = value
        fields = getattr(record, "fields", None)
        if fields:
            doc["fields"] = fields
        if record.exc_info:
            doc["exception"] = self.formatException(record.exc_info)
        return orjson.dumps(doc, default=str).decode("utf-8")


class ContextRichHandler(RichHandler):
    """Console handler prefixing messages with context and suffixing fields."""

    def render_message(self, record: logging.LogRecord, message: str) -> Any:
        prefix = " ".join(
            escape(str(value))
            for value in (getattr(record, name, None) for name in CONTEXT_FIELDS)
            if value
        )
        fields = getattr(record, "fields", None) or {}
        suffix = " ".join(f"{k}={escape(str(v))}" for k, v in fields.items())

        message = escape(message)
        if prefix:
            message = f"[cyan]{prefix}[/cyan] {message}"
        if suffix:
            message = f"{message} [dim]{suffix}[/dim]"
        return super().render_message(record, message)


class ContextLogger:
    """Thin wrapper turning keyword arguments into structured fields."""

    def __init__(self, logger: logging.Logger) -> None:
        self._logger = logger

    def _log(self, level: int, msg: str, exc_info: bool = False, **fields: Any) -> None:
        if self._logger.isEnabledFor(level):
            self._logger.log(level, msg, exc_info=exc_info, extra={"fields": fields})

    def debug(self, msg: str, **fields: Any) -> None:
        self._log(logging.DEBUG, msg, **fields)

    def info(self, msg: str, **fields: Any) -> None:
        self._log(logging.INFO, msg, **fields)

    def warning(self, msg: str, **fields: Any) -> None:
        self._log(logging.WARNING, msg, **fields)

    def error(self, msg: str, exc_info: bool = False, **fields: Any) -> None:
        self._log(logging.ERROR, msg, exc_info=exc_info, **fields)


_configured = False


def setup_logging(log_level: str = "INFO", log_file: Path | None = None) -> None:
    """Configure the ``repodash`` logger tree.

    Args:
        log_level: Console level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: JSON Lines file receiving every record at DEBUG and above.
    """
    global _configured

    root = logging.getLogger(ROOT_LOGGER)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    level = getattr(logging, log_level.upper())
    root.setLevel(logging.DEBUG if log_file else level)
    root.propagate = False

    console = ContextRichHandler(
        console=Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
        markup=True,
    )
    console.setLevel(level)
    console.addFilter(ContextFilter())
    root.addHandler(console)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(JSONFormatter())
        file_handler.addFilter(ContextFilter())
        root.addHandler(file_handler)

    for name in ("httpx", "httpcore", "aiosqlite"):
        logging.getLogger(name).setLevel(logging.WARNING)

    _configured = True


def get_logger(name: str) -> ContextLogger:
    """Context-aware logger under the ``repodash`` tree."""
    if not _configured:
        setup_logging()
    if name != ROOT_LOGGER and not name.startswith(f"{ROOT_LOGGER}."):
        name = f"{ROOT_LOGGER}.{name}"
    return ContextLogger(logging.getLogger(name))
