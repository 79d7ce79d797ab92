"""Core application utilities.

FastAPI dependencies live in `core.dependencies`, which depends on the
service layer and is imported by the routers directly.
"""

from .config import Settings, get_settings
from .database import (
    async_session_factory,
    build_engine,
    build_session_factory,
    close_db,
    engine,
    get_session,
    init_db,
)

__all__ = [
    # Config
    "Settings",
    "get_settings",
    # Database
    "engine",
    "async_session_factory",
    "build_engine",
    "build_session_factory",
    "get_session",
    "init_db",
    "close_db",
]
