"""Pydantic request/response schemas."""

from inventory.schemas.auth import (
    LoginRequest,
    LoginResponse,
    RefreshTokenRequest,
    RefreshTokenResponse,
)
from inventory.schemas.common import ErrorResponse, SuccessResponse
from inventory.schemas.health import HealthResponse
from inventory.schemas.user import CreateUserRequest, UpdateUserRequest, UserDto

__all__ = [
    "CreateUserRequest",
    "ErrorResponse",
    "HealthResponse",
    "LoginRequest",
    "LoginResponse",
    "RefreshTokenRequest",
    "RefreshTokenResponse",
    "SuccessResponse",
    "UpdateUserRequest",
    "UserDto",
]
