"""
Structured logging for the minimizer.

Records carry the run id, the run phase and the tree path being walked,
taken from context variables set with ``log_context()``. Loggers from
``get_logger()`` accept keyword fields:

    logger.info("Shrunk document", document="about/index.html", gzip="31%")

The console gets a rich handler that appends those fields to the message.
During a run, ``attach_log_file()`` adds a JSON-lines file handler that
records everything down to DEBUG, and ``detach_log_file()`` undoes it.
"""

from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Generator

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.text import Text

ROOT_LOGGER = "minimizer"

_run_id_var: ContextVar[str | None] = ContextVar("run_id", default=None)
_phase_var: ContextVar[str | None] = ContextVar("phase", default=None)
_path_var: ContextVar[str | None] = ContextVar("path", default=None)

_CONTEXT_VARS = {"run_id": _run_id_var, "phase": _phase_var, "path": _path_var}


def context_fields() -> dict[str, str]:
    """Context variables currently set, by field name."""
    fields = {}
    for name, var in _CONTEXT_VARS.items():
        value = var.get()
        if value:
            fields[name] = value
    return fields


@contextmanager
def log_context(
    run_id: str | None = None,
    phase: str | None = None,
    path: str | None = None,
) -> Generator[None, None, None]:
    """Set context fields for the duration of the block.

    Fields passed as None keep their current value.
    """
    tokens = [
        var.set(value)
        for var, value in ((_run_id_var, run_id), (_phase_var, phase), (_path_var, path))
        if value is not None
    ]
    try:
        yield
    finally:
        for token in reversed(tokens):
            token.var.reset(token)


class JSONFormatter(logging.Formatter):
    """One JSON object per line: level, logger, message, context and fields."""

    def format(self, record: logging.LogRecord) -> str:
        log_obj: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **context_fields(),
        }

        fields = getattr(record, "fields", None)
        if fields:
            log_obj["fields"] = fields

        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_obj, default=str)


class ContextRichHandler(RichHandler):
    """Rich handler showing phase and tree path before each message."""

    def get_level_text(self, record: logging.LogRecord) -> Text:
        level_text = super().get_level_text(record)
        context = context_fields()

        prefix = []
        if "phase" in context:
            prefix.append(Text(context["phase"], style="cyan"))
        if "path" in context:
            prefix.append(Text(context["path"], style="magenta"))
        if not prefix:
            return level_text
        return Text(" ").join([level_text, *prefix])

    def render_message(self, record: logging.LogRecord, message: str) -> Any:
        fields = getattr(record, "fields", None)
        if fields:
            rendered = " ".join(f"{k}={escape(str(v))}" for k, v in fields.items())
            message = f"{message} [dim]{rendered}[/dim]"
        return super().render_message(record, message)


class ContextLogger:
    """Logger wrapper whose methods take structured fields as keywords."""

    def __init__(self, logger: logging.Logger) -> None:
        self._logger = logger

    def _log(self, level: int, msg: str, *args: Any, exc_info: bool = False, **fields: Any) -> None:
        self._logger.log(level, msg, *args, exc_info=exc_info, extra={"fields": fields})

    def debug(self, msg: str, *args: Any, **fields: Any) -> None:
        self._log(logging.DEBUG, msg, *args, **fields)

    def info(self, msg: str, *args: Any, **fields: Any) -> None:
        self._log(logging.INFO, msg, *args, **fields)

    def warning(self, msg: str, *args: Any, **fields: Any) -> None:
        self._log(logging.WARNING, msg, *args, **fields)

    def error(self, msg: str, *args: Any, exc_info: bool = False, **fields: Any) -> None:
        self._log(logging.ERROR, msg, *args, exc_info=exc_info, **fields)


_setup_done = False
# Active run log handler and the logger level it replaced
_run_log: tuple[logging.Handler, int] | None = None


def setup_logging(log_level: str = "INFO") -> None:
    """Route minimizer logs to a rich console handler on stderr.

    Args:
        log_level: Console level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    """
    global _setup_done, _run_log

    level = getattr(logging, log_level.upper())
    root_logger = logging.getLogger(ROOT_LOGGER)
    for handler in root_logger.handlers:
        handler.close()
    root_logger.handlers.clear()
    _run_log = None

    rich_handler = ContextRichHandler(
        console=Console(stderr=True),
        show_time=True,
        show_path=False,
        rich_tracebacks=True,
        markup=True,
    )
    rich_handler.setLevel(level)
    root_logger.addHandler(rich_handler)
    root_logger.setLevel(level)
    root_logger.propagate = False

    _setup_done = True


def attach_log_file(log_file: Path) -> None:
    """Write every minimizer record, DEBUG included, to a JSON-lines file.

    Replaces a previously attached file. The logger level drops to DEBUG
    until ``detach_log_file()`` restores it.
    """
    global _run_log

    detach_log_file()
    root_logger = logging.getLogger(ROOT_LOGGER)

    log_file.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
    handler.setFormatter(JSONFormatter())
    handler.setLevel(logging.DEBUG)
    root_logger.addHandler(handler)

    _run_log = (handler, root_logger.level)
    root_logger.setLevel(logging.DEBUG)


def detach_log_file() -> None:
    """Close the run log file, if any, and restore the logger level."""
    global _run_log

    if _run_log is None:
        return
    handler, previous_level = _run_log
    _run_log = None

    root_logger = logging.getLogger(ROOT_LOGGER)
    root_logger.removeHandler(handler)
    handler.close()
    root_logger.setLevel(previous_level)


def get_logger(name: str) -> ContextLogger:
    """Get a context-aware logger under the minimizer namespace."""
    if not _setup_done:
        setup_logging()

    if not name.startswith(ROOT_LOGGER):
        name = f"{ROOT_LOGGER}.{name}"
    return ContextLogger(logging.getLogger(name))
