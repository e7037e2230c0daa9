"""
Structured logging configuration using structlog wrapping stdlib.

Provides JSON-formatted structured log output in production and
human-readable console output in development.

Records logged while a request is handled carry its request_id, method
and path.

Usage:
    from farmpass.logging_config import setup_logging
    setup_logging()
"""

from __future__ import annotations

import logging
import os
import sys
import uuid

import structlog


REQUEST_ID_HEADER = "X-Request-ID"
NOISY_LOGGERS = ("urllib3", "pywebpush", "httpx")


def setup_logging(level: str | None = None, json_output: bool | None = None) -> None:
    if level is None:
        level = os.environ.get("FARMPASS_LOG_LEVEL", "INFO")

    if json_output is None:
        json_output = os.environ.get("FARMPASS_LOG_FORMAT", "").lower() == "json"

    numeric_level = getattr(logging, level.upper(), logging.INFO)

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if json_output:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(numeric_level)

    # Push service HTTP chatter
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def new_request_id() -> str:
    return uuid.uuid4().hex


def bind_request_context(request_id: str | None = None, **fields) -> str:
    """
    Attach a request id and extra fields to every log record in this context.

    Returns:
        The request id in use, generated when none was given
    """
    request_id = request_id or new_request_id()
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id, **fields)
    return request_id


def clear_request_context() -> None:
    structlog.contextvars.clear_contextvars()


__all__ = [
    "bind_request_context",
    "clear_request_context",
    "get_logger",
    "new_request_id",
    "setup_logging",
]
