"""Structured logging setup."""

import logging
from typing import Optional

import structlog

from tripflow.core.config import ConfigManager, get_config


def configure_logging(config_manager: Optional[ConfigManager] = None) -> None:
    """
    Configure structlog from environment settings.

    TRIPFLOW_LOG_FORMAT=json renders one JSON object per line; anything else
    uses the console renderer.
    """
    env = (config_manager or get_config()).env
    level = logging.getLevelName(env.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    renderer = (
        structlog.processors.JSONRenderer()
        if env.log_format.lower() == "json"
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=False,
    )
