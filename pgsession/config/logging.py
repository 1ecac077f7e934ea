"""structlog setup shared by every process that opens sessions."""

import logging
from typing import Optional

import structlog


def configure_logging(level: Optional[str] = None, json_output: Optional[bool] = None) -> None:
    """Configure structlog level filtering and rendering.

    Args:
        level: Minimum level name. If None, uses settings.
        json_output: Render JSON lines instead of console output. If None, uses settings.
    """
    if level is None or json_output is None:
        from pgsession.config.settings import get_settings

        settings = get_settings()
        level = level or settings.LOG_LEVEL
        json_output = settings.LOG_JSON if json_output is None else json_output

    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=False)
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level.upper())
        ),
        cache_logger_on_first_use=False,
    )
