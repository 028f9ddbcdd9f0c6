"""Login/refresh/logout/me routes and auth dependencies (get_current_principal, require_permission)."""

from collections.abc import Callable
from typing import Annotated

from fastapi import APIRouter, Depends, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from inventory.core.database import get_db
from inventory.core.errors import ApiError, ErrorCode, unauthorized
from inventory.core.security import TokenPayload
from inventory.schemas.auth import (
    LoginRequest,
    LoginResponse,
    RefreshTokenRequest,
    RefreshTokenResponse,
)
from inventory.schemas.common import ErrorResponse, SuccessResponse
from inventory.schemas.user import UserDto
from inventory.services.auth import AuthFailure, AuthService
from inventory.services.permissions import check_permission

router = APIRouter()
security = HTTPBearer(auto_error=False)


def get_auth_service(request: Request) -> AuthService:
    """Dependency: the AuthService built at startup."""
    return request.app.state.auth_service


def _device_info(request: Request) -> str | None:
    return request.headers.get("user-agent")


def get_current_principal(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    auth: Annotated[AuthService, Depends(get_auth_service)],
) -> TokenPayload:
    """Dependency: require a valid Bearer access token; attaches the principal to request.state."""
    if credentials is None:
        raise unauthorized("Authentication required")
    principal = auth.authenticate(credentials.credentials)
    if principal is None:
        raise unauthorized("Invalid or expired token")
    request.state.principal = principal
    return principal


def require_permission(permission: str) -> Callable[..., TokenPayload]:
    """
    Build a dependency that allows the request only if the caller's role grants permission.

    Authentication runs first, so a missing or invalid token is a 401 and never
    reaches the permission lookup.
    """

    def dependency(
        principal: Annotated[TokenPayload, Depends(get_current_principal)],
        db: Annotated[Session, Depends(get_db)],
    ) -> TokenPayload:
        if not check_permission(db, principal, permission):
            raise ApiError(
                status.HTTP_403_FORBIDDEN,
                ErrorCode.INSUFFICIENT_PERMISSIONS,
                "Insufficient permissions",
            )
        return principal

    dependency.__name__ = f"require_{permission.replace('.', '_')}"
    return dependency


_UNAUTHORIZED = {401: {"model": ErrorResponse, "description": "Authentication failed"}}


@router.post(
    "/login",
    response_model=LoginResponse,
    responses={
        **_UNAUTHORIZED,
        403: {"model": ErrorResponse, "description": "Account disabled"},
    },
)
def login(
    body: LoginRequest,
    request: Request,
    db: Annotated[Session, Depends(get_db)],
    auth: Annotated[AuthService, Depends(get_auth_service)],
) -> LoginResponse:
    """
    Authenticate with username and password; returns an access token, a refresh token
    and the user's profile. Logging in revokes every other refresh token of the user.
    Include the access token in the Authorization header as: Bearer <accessToken>
    """
    result = auth.login(db, body.username, body.password, _device_info(request))
    if isinstance(result, AuthFailure):
        raise result.to_api_error()
    return LoginResponse(
        access_token=result.access_token,
        refresh_token=result.refresh_token,
        user=UserDto.model_validate(result.user),
    )


@router.post("/refresh", response_model=RefreshTokenResponse, responses=_UNAUTHORIZED)
def refresh(
    body: RefreshTokenRequest,
    request: Request,
    db: Annotated[Session, Depends(get_db)],
    auth: Annotated[AuthService, Depends(get_auth_service)],
) -> RefreshTokenResponse:
    """Exchange a refresh token for a new access/refresh pair. The old refresh token stops working."""
    result = auth.refresh(db, body.refresh_token, _device_info(request))
    if isinstance(result, AuthFailure):
        raise result.to_api_error()
    return RefreshTokenResponse(
        access_token=result.access_token,
        refresh_token=result.refresh_token,
    )


@router.post("/logout", response_model=SuccessResponse)
def logout(
    body: RefreshTokenRequest,
    db: Annotated[Session, Depends(get_db)],
    auth: Annotated[AuthService, Depends(get_auth_service)],
) -> SuccessResponse:
    """Revoke the refresh token. Always succeeds, even for unknown or revoked tokens."""
    auth.logout(db, body.refresh_token)
    return SuccessResponse(message="Logged out successfully")


@router.get(
    "/me",
    response_model=UserDto,
    responses={
        **_UNAUTHORIZED,
        404: {"model": ErrorResponse, "description": "User not found"},
    },
)
def me(
    principal: Annotated[TokenPayload, Depends(get_current_principal)],
    db: Annotated[Session, Depends(get_db)],
    auth: Annotated[AuthService, Depends(get_auth_service)],
) -> UserDto:
    """Current user's profile, read fresh from the database."""
    result = auth.current_user(db, principal)
    if isinstance(result, AuthFailure):
        raise result.to_api_error()
    return UserDto.model_validate(result)
