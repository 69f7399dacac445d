# src/runjournal/core/logging.py
"""Structured logging configuration for runjournal.

structlog events and stdlib records (SQLAlchemy, pluggy, dynaconf) share
one processor chain through ProcessorFormatter, so both render as the same
JSON lines or console output.

Journal cycles bind ``journal_channel`` and ``journal_cycle`` with
cycle_context(); every event emitted while a cycle runs carries them.
"""

import logging
import sys
from contextlib import AbstractContextManager
from typing import Any, TextIO

import structlog
from structlog.stdlib import ProcessorFormatter

# Chatty at DEBUG (SQL echo, pool checkouts, HTTP connection reuse).
# Never more verbose than WARNING, never less strict than the root level.
_NOISY_LOGGERS: tuple[str, ...] = (
    "sqlalchemy",
    "sqlalchemy.engine",
    "sqlalchemy.pool",
    "sqlalchemy.dialects",
    "urllib3",
)


def _remove_internal_fields(
    logger: logging.Logger | None,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Drop ProcessorFormatter bookkeeping keys from rendered output.

    Both keys are always present on records ProcessorFormatter handles; a
    KeyError here means the structlog wiring is broken.
    """
    del event_dict["_record"]
    del event_dict["_from_structlog"]
    return event_dict


def _pre_chain() -> list[Any]:
    """Processors run on every event before rendering, whatever its origin."""
    return [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
    ]


def _render_chain(json_output: bool, stream: TextIO) -> list[Any]:
    if json_output:
        return [
            _remove_internal_fields,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    colors = hasattr(stream, "isatty") and stream.isatty()
    return [_remove_internal_fields, structlog.dev.ConsoleRenderer(colors=colors)]


def configure_logging(
    *,
    json_output: bool = False,
    level: str = "INFO",
    stream: TextIO | None = None,
) -> None:
    """Configure structlog and stdlib logging.

    Args:
        json_output: Render JSON lines instead of console output
        level: Root log level (DEBUG, INFO, WARNING, ERROR)
        stream: Destination, sys.stdout when None. The CLI passes
            sys.stderr so command output stays machine-readable.
    """
    log_level = getattr(logging, level.upper())
    target = stream if stream is not None else sys.stdout
    pre_chain = _pre_chain()

    structlog.configure(
        processors=[*pre_chain, ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        # Tests reconfigure logging; cached loggers would keep the old chain
        cache_logger_on_first_use=False,
    )

    handler = logging.StreamHandler(target)
    handler.setFormatter(ProcessorFormatter(processors=_render_chain(json_output, target), foreign_pre_chain=pre_chain))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(log_level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))


def cycle_context(channel: str, cycle: int) -> AbstractContextManager[None]:
    """Bind journal cycle identifiers to every log event in the block.

    Usage:
        with cycle_context("journal.collect", 3):
            logger.info("Journal collected")  # carries journal_cycle=3
    """
    return structlog.contextvars.bound_contextvars(journal_channel=channel, journal_cycle=cycle)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return the structlog logger for ``name`` (typically __name__)."""
    logger: structlog.stdlib.BoundLogger = structlog.get_logger(name)
    return logger
