"""Structured logging setup."""

import logging
import sys
from typing import Optional

import structlog

from ..config import LoggingConfig, settings


def setup_logging(config: Optional[LoggingConfig] = None) -> None:
    """Configure structlog and the standard library root logger.

    Console output is human readable; ``json`` emits one JSON object per line.
    When ``log_file`` is set, records are also appended to that file.
    """
    config = config or settings.logging
    level = getattr(logging, config.log_level)

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    if config.log_format == "json":
        renderer = structlog.processors.JSONRenderer()
        shared_processors.append(structlog.processors.format_exc_info)
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=shared_processors
        + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
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

    handlers = [logging.StreamHandler(sys.stderr)]
    if config.log_file:
        handlers.append(logging.FileHandler(config.log_file, encoding="utf-8"))

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)
    root.setLevel(level)

    # The docker SDK logs every HTTP request at DEBUG through urllib3.
    logging.getLogger("urllib3").setLevel(max(level, logging.WARNING))
    logging.getLogger("docker").setLevel(max(level, logging.INFO))


def get_logger(name: Optional[str] = None):
    """Get a structured logger."""
    return structlog.get_logger(name)
