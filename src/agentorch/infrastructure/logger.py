"""Structured logging for agent processes sharing one coordination store.

Console output goes to stderr so stdout stays clean for CLI tables. When a
log directory is given, the same records are appended as JSON lines to
``agentorch.log``; several agent processes may append to that file.
"""

import logging
import sys
from pathlib import Path
from typing import Any, cast

import structlog

LOG_FILE_NAME = "agentorch.log"

# Marks handlers installed here so repeated setup replaces rather than stacks them
_HANDLER_TAG = "_agentorch_handler"

_SHARED_PROCESSORS: list[Any] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.stdlib.PositionalArgumentsFormatter(),
    structlog.processors.TimeStamper(fmt="iso", utc=True),
    structlog.processors.StackInfoRenderer(),
]


def _make_handler(handler: logging.Handler, renderer: Any, level: int) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=_SHARED_PROCESSORS,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        )
    )
    setattr(handler, _HANDLER_TAG, True)
    return handler


def setup_logging(log_level: str = "INFO", log_dir: Path | None = None) -> None:
    """Route structlog and stdlib logging through stderr and an optional JSON file.

    Args:
        log_level: Logging level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_dir: Directory for ``agentorch.log``; None logs to the console only

    Calling this again (e.g. once per CLI invocation in one process) replaces
    the handlers installed by the previous call.
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    root = logging.getLogger()
    for handler in [h for h in root.handlers if getattr(h, _HANDLER_TAG, False)]:
        root.removeHandler(handler)
        handler.close()

    root.addHandler(
        _make_handler(
            logging.StreamHandler(sys.stderr),
            structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
            level,
        )
    )
    if log_dir:
        log_dir.mkdir(parents=True, exist_ok=True)
        root.addHandler(
            _make_handler(
                logging.FileHandler(log_dir / LOG_FILE_NAME, encoding="utf-8"),
                structlog.processors.JSONRenderer(),
                level,
            )
        )
    root.setLevel(level)

    structlog.configure(
        processors=[
            *_SHARED_PROCESSORS,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger (``name`` is typically ``__name__``)."""
    return cast(structlog.stdlib.BoundLogger, structlog.get_logger(name))
