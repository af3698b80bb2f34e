"""Core configuration and infrastructure helpers."""

from .config import (
    ConfigurationError,
    ProviderConfig,
    Settings,
    get_settings,
    load_settings,
)
from .database import create_db_engine, get_session
from .logging import configure_logging
from .time import utcnow

__all__ = [
    "ConfigurationError",
    "ProviderConfig",
    "Settings",
    "configure_logging",
    "create_db_engine",
    "get_session",
    "get_settings",
    "load_settings",
    "utcnow",
]
