"""Core app configuration, database, security and errors."""

from inventory.core.config import get_settings, settings
from inventory.core.database import get_db
from inventory.core.errors import ApiError, ErrorCode

__all__ = ["ApiError", "ErrorCode", "get_settings", "settings", "get_db"]
