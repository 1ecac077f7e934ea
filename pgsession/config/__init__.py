"""Configuration module for pgsession.

Provides settings loading and logging setup.
"""

from pgsession.config.logging import configure_logging
from pgsession.config.settings import (
    ConnectionConfig,
    RetryPolicy,
    Settings,
    get_settings,
    load_settings,
    reload_settings,
)

__all__ = [
    # Settings
    "Settings",
    "ConnectionConfig",
    "RetryPolicy",
    "get_settings",
    "load_settings",
    "reload_settings",
    # Logging
    "configure_logging",
]
