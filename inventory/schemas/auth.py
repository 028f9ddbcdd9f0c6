"""Request/response schemas for auth endpoints."""

from pydantic import Field

from inventory.schemas.common import CamelModel
from inventory.schemas.user import UserDto


class LoginRequest(CamelModel):
    """Credentials for login."""

    username: str = Field(..., min_length=1, max_length=255, description="Username")
    password: str = Field(..., min_length=1, max_length=128, description="Password")


class LoginResponse(CamelModel):
    """Access and refresh tokens plus the user's public profile."""

    access_token: str = Field(..., description="JWT access token (Bearer)")
    refresh_token: str = Field(..., description="Opaque refresh token")
    user: UserDto


class RefreshTokenRequest(CamelModel):
    refresh_token: str = Field(..., min_length=1, max_length=255)


class RefreshTokenResponse(CamelModel):
    """New token pair; the refresh token sent in the request is no longer usable."""

    access_token: str
    refresh_token: str
