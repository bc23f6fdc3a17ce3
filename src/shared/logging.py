"""Structured logging setup for the knowledge-base agent.

Uses structlog for consistent, machine-parseable log output.
"""

import logging
import sys
import uuid
from contextlib import contextmanager
from typing import Any, Iterator

import structlog
from structlog.types import Processor


# Third-party loggers that log every request at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "openai", "llama_index")


def setup_logging(
    log_level: str = "INFO",
    json_output: bool = False,
    service: str = "kb-agent"
) -> None:
    """
    Configure structured logging for the agent.

    Every event carries the service name; events emitted while an intent is
    being handled also carry its request id and sender (see intent_context).

    Args:
        log_level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: If True, output JSON; otherwise, use colored console output
        service: Value of the `service` field on every event
    """
    level = getattr(logging, log_level.upper())

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.ExtraAdder(),
    ]

    if json_output:
        processors: list[Processor] = [
            *shared_processors,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = [
            *shared_processors,
            structlog.dev.ConsoleRenderer(colors=True),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
    clear_context()
    bind_context(service=service)

    # Standard library logging for uvicorn and the HTTP/LLM clients
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def get_logger(name: str | None = None, **initial_context: Any) -> structlog.BoundLogger:
    """
    Get a configured logger instance.

    Args:
        name: Logger name (typically module name)
        **initial_context: Initial context values to bind to logger

    Returns:
        A bound structlog logger instance
    """
    logger = structlog.get_logger(name)
    if initial_context:
        logger = logger.bind(**initial_context)
    return logger


def bind_context(**context: Any) -> None:
    """Bind context values to all loggers in the current context."""
    structlog.contextvars.bind_contextvars(**context)


def clear_context() -> None:
    """Clear all bound context values."""
    structlog.contextvars.clear_contextvars()


@contextmanager
def intent_context(sender_id: str, **extra: Any) -> Iterator[str]:
    """
    Bind a fresh request id and the sender for the duration of one intent.

    Values bound before entering are restored on exit, so context from one
    intent never leaks into the next one handled by the same task.

    Args:
        sender_id: Sender the intent belongs to
        **extra: Additional values to bind, e.g. notebook_id; None values are skipped

    Yields:
        The request id
    """
    request_id = str(uuid.uuid4())
    values = {k: v for k, v in extra.items() if v is not None}
    with structlog.contextvars.bound_contextvars(request_id=request_id, sender=sender_id, **values):
        yield request_id
