"""Core module initialization."""

from app.core.config import Settings, get_settings
from app.core.database import (
    Base,
    SessionLocal,
    check_connection,
    init_db,
)

__all__ = [
    # Config
    "Settings",
    "get_settings",
    # Database
    "Base",
    "SessionLocal",
    "check_connection",
    "init_db",
]
