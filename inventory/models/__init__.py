"""SQLAlchemy ORM models."""

from inventory.models.base import Base
from inventory.models.permission import Permission, RolePermission
from inventory.models.refresh_token import RefreshToken
from inventory.models.user import User, UserRole

__all__ = ["Base", "Permission", "RefreshToken", "RolePermission", "User", "UserRole"]
