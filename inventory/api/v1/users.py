"""User administration routes, each guarded by a user.* permission."""

import logging
import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, status
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from inventory.api.v1.auth import get_auth_service, require_permission
from inventory.core.database import get_db
from inventory.core.errors import ApiError, ErrorCode
from inventory.core.security import TokenPayload
from inventory.models import User
from inventory.models.user import utcnow
from inventory.schemas.common import ErrorResponse, SuccessResponse
from inventory.schemas.user import CreateUserRequest, UpdateUserRequest, UserDto
from inventory.services.auth import AuthService

logger = logging.getLogger(__name__)
router = APIRouter()

_ERRORS = {
    401: {"model": ErrorResponse, "description": "Authentication required"},
    403: {"model": ErrorResponse, "description": "Insufficient permissions"},
}
_NOT_FOUND = {404: {"model": ErrorResponse, "description": "User not found"}}
_CONFLICT = {409: {"model": ErrorResponse, "description": "Username or email already exists"}}


def _user_not_found() -> ApiError:
    return ApiError(status.HTTP_404_NOT_FOUND, ErrorCode.USER_NOT_FOUND, "User not found")


def _user_exists() -> ApiError:
    return ApiError(
        status.HTTP_409_CONFLICT, ErrorCode.USER_EXISTS, "Username or email already exists"
    )


def _get_user_or_404(db: Session, user_id: uuid.UUID) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise _user_not_found()
    return user


def _identity_taken(
    db: Session,
    username: str | None,
    email: str | None,
    exclude_id: uuid.UUID | None = None,
) -> bool:
    clauses = []
    if username is not None:
        clauses.append(User.username == username)
    if email is not None:
        clauses.append(User.email == email)
    if not clauses:
        return False
    query = select(User.id).where(or_(*clauses))
    if exclude_id is not None:
        query = query.where(User.id != exclude_id)
    return db.scalars(query).first() is not None


@router.get("", response_model=list[UserDto], responses=_ERRORS)
def list_users(
    _principal: Annotated[TokenPayload, Depends(require_permission("user.read"))],
    db: Annotated[Session, Depends(get_db)],
) -> list[UserDto]:
    """List all users."""
    users = db.scalars(select(User).order_by(User.username)).all()
    return [UserDto.model_validate(u) for u in users]


@router.post(
    "",
    response_model=SuccessResponse,
    status_code=status.HTTP_201_CREATED,
    responses={**_ERRORS, **_CONFLICT},
)
def create_user(
    body: CreateUserRequest,
    principal: Annotated[TokenPayload, Depends(require_permission("user.create"))],
    db: Annotated[Session, Depends(get_db)],
    auth: Annotated[AuthService, Depends(get_auth_service)],
) -> SuccessResponse:
    """Create a user account. Username and email must both be unused."""
    if _identity_taken(db, body.username, body.email):
        raise _user_exists()
    user = User(
        username=body.username,
        email=body.email,
        password_hash=auth.hasher.hash(body.password),
        role=body.role,
        is_active=True,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise _user_exists() from e
    logger.info(
        "User created: user_id=%s role=%s created_by=%s",
        user.id,
        body.role.value,
        principal.user_id,
    )
    return SuccessResponse(message="User created successfully")


@router.get("/{user_id}", response_model=UserDto, responses={**_ERRORS, **_NOT_FOUND})
def get_user(
    user_id: uuid.UUID,
    _principal: Annotated[TokenPayload, Depends(require_permission("user.read"))],
    db: Annotated[Session, Depends(get_db)],
) -> UserDto:
    """Get a user by id."""
    return UserDto.model_validate(_get_user_or_404(db, user_id))


@router.patch(
    "/{user_id}",
    response_model=SuccessResponse,
    responses={**_ERRORS, **_NOT_FOUND, **_CONFLICT},
)
def update_user(
    user_id: uuid.UUID,
    body: UpdateUserRequest,
    _principal: Annotated[TokenPayload, Depends(require_permission("user.update"))],
    db: Annotated[Session, Depends(get_db)],
    auth: Annotated[AuthService, Depends(get_auth_service)],
) -> SuccessResponse:
    """
    Partially update a user.

    Deactivating the account, changing its password or changing its role revokes
    all of its refresh tokens; the user has to log in again once the current
    access token expires.
    """
    user = _get_user_or_404(db, user_id)
    if _identity_taken(db, body.username, body.email, exclude_id=user.id):
        raise _user_exists()

    revoke = False
    if body.username is not None:
        user.username = body.username
    if body.email is not None:
        user.email = body.email
    if body.password is not None:
        user.password_hash = auth.hasher.hash(body.password)
        revoke = True
    if body.role is not None and body.role != user.role:
        user.role = body.role
        revoke = True
    if body.is_active is not None:
        if user.is_active and not body.is_active:
            revoke = True
        user.is_active = body.is_active
    user.updated_at = utcnow()
    try:
        # Token revocation commits together with the account change.
        if revoke:
            auth.revoke_sessions(db, user_id, commit=False)
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise _user_exists() from e
    except SQLAlchemyError:
        db.rollback()
        raise
    return SuccessResponse(message="User updated successfully")


@router.delete("/{user_id}", response_model=SuccessResponse, responses={**_ERRORS, **_NOT_FOUND})
def delete_user(
    user_id: uuid.UUID,
    principal: Annotated[TokenPayload, Depends(require_permission("user.delete"))],
    db: Annotated[Session, Depends(get_db)],
) -> SuccessResponse:
    """Delete a user and its refresh tokens."""
    user = _get_user_or_404(db, user_id)
    db.delete(user)
    db.commit()
    logger.info("User deleted: user_id=%s deleted_by=%s", user_id, principal.user_id)
    return SuccessResponse(message="User deleted successfully")


@router.post(
    "/{user_id}/revoke-sessions",
    response_model=SuccessResponse,
    responses={**_ERRORS, **_NOT_FOUND},
)
def revoke_user_sessions(
    user_id: uuid.UUID,
    _principal: Annotated[TokenPayload, Depends(require_permission("user.update"))],
    db: Annotated[Session, Depends(get_db)],
    auth: Annotated[AuthService, Depends(get_auth_service)],
) -> SuccessResponse:
    """Force-logout: revoke every refresh token of the user."""
    _get_user_or_404(db, user_id)
    count = auth.revoke_sessions(db, user_id)
    return SuccessResponse(message=f"Revoked {count} session(s)")
