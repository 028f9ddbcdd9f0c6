"""Request/response schemas for user profiles and user administration."""

import uuid
from datetime import datetime

from pydantic import Field

from inventory.models.user import UserRole
from inventory.schemas.common import CamelModel

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+$"


class UserDto(CamelModel):
    """Public user profile (never includes the password hash)."""

    id: uuid.UUID
    username: str
    email: str
    role: UserRole
    is_active: bool
    created_at: datetime
    updated_at: datetime


class CreateUserRequest(CamelModel):
    username: str = Field(..., min_length=1, max_length=50)
    email: str = Field(..., min_length=3, max_length=100, pattern=EMAIL_PATTERN)
    password: str = Field(..., min_length=8, max_length=128)
    role: UserRole = UserRole.USER


class UpdateUserRequest(CamelModel):
    """Partial update; omitted fields are left unchanged."""

    username: str | None = Field(default=None, min_length=1, max_length=50)
    email: str | None = Field(default=None, min_length=3, max_length=100, pattern=EMAIL_PATTERN)
    password: str | None = Field(default=None, min_length=8, max_length=128)
    role: UserRole | None = None
    is_active: bool | None = None
