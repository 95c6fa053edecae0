"""structlog setup for ledgersync.

Log lines from the engine carry a ``component`` key; request handlers add
``actor`` and ``entity_type`` through LogContext.
"""

import logging
import sys
import time
from contextlib import contextmanager
from typing import Optional

import structlog


def _drop_none_values(logger, method_name, event_dict):
    """Omit keys bound to None (anonymous actor, unset entity type)."""
    return {k: v for k, v in event_dict.items() if v is not None}


def _processor_chain(include_timestamp: bool, json_format: bool) -> list:
    chain = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        _drop_none_values,
    ]
    if include_timestamp:
        chain.append(structlog.processors.TimeStamper(fmt="iso", utc=True))
    chain += [
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    chain.append(
        structlog.processors.JSONRenderer(default=str)
        if json_format
        else structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    )
    return chain


def configure_logging(
    level: str = "INFO",
    json_format: bool = False,
    include_timestamp: bool = True,
) -> None:
    """Route structlog through the stdlib root logger.

    Args:
        level: Root log level name, e.g. "DEBUG"
        json_format: One JSON object per line instead of console output
        include_timestamp: Stamp each line with a UTC ISO timestamp
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=logging.getLevelName(level.upper()),
        force=True,
    )

    structlog.configure(
        processors=_processor_chain(include_timestamp, json_format),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: Optional[str] = None, **context) -> structlog.BoundLogger:
    """Return a logger, bound to ``context`` when given."""
    logger = structlog.get_logger(name)
    return logger.bind(**context) if context else logger


class LogContext:
    """Bind request-scoped keys for every log line emitted inside the block.

    Usage:
        with LogContext(actor="user-7", entity_type="supplier"):
            await service.sync_batch(items)
    """

    def __init__(self, **context):
        self.context = {k: v for k, v in context.items() if v is not None}

    def __enter__(self) -> "LogContext":
        structlog.contextvars.bind_contextvars(**self.context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        structlog.contextvars.unbind_contextvars(*self.context)


@contextmanager
def log_operation(
    operation: str,
    logger: Optional[structlog.BoundLogger] = None,
    **context,
):
    """Log the outcome and duration of an operation.

    Yields a dict the caller may fill in; its contents are added to the
    completion line.

    Example:
        with log_operation("init_db", logger=logger) as op:
            await store.ensure_schema()
            op["table"] = "sync_records"
    """
    log = (logger or get_logger()).bind(operation=operation, **context)
    details: dict = {}
    started = time.perf_counter()

    try:
        yield details
    except Exception as e:
        log.error(
            f"{operation} failed",
            error=str(e),
            duration_ms=round((time.perf_counter() - started) * 1000, 1),
            **details,
        )
        raise

    log.info(
        f"{operation} completed",
        duration_ms=round((time.perf_counter() - started) * 1000, 1),
        **details,
    )
