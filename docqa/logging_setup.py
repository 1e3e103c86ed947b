"""Structured logging configuration."""
import logging

import structlog

from docqa import config


def configure_logging(level: str = None, json_output: bool = True) -> None:
    """Configure structlog on top of the stdlib logging module.

    Args:
        level: Log level name (default from config)
        json_output: Render JSON lines (server) or human-readable console output (CLI)
    """
    level = (level or config.LOG_LEVEL).upper()
    logging.basicConfig(format="%(message)s", level=getattr(logging, level, logging.INFO))

    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
    )
