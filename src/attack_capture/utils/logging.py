"""Structured logging utilities."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import structlog


def configure_logging(level: str = "INFO", json: bool = True) -> None:
    """Configure structlog for console-friendly JSON logging."""

    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        numeric = logging.INFO
    renderer = structlog.processors.JSONRenderer() if json else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric),
        context_class=dict,
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(level=numeric)


def get_logger(name: Optional[str] = None) -> structlog.stdlib.BoundLogger:
    """Return a structured logger, configuring defaults on first use."""

    if not structlog.is_configured():
        configure_logging()
    return structlog.get_logger(name)


def log_config(logger: structlog.stdlib.BoundLogger, config: Dict[str, Any]) -> None:
    """Log a configuration snapshot."""

    logger.info("config", **config)
