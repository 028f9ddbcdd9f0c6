"""Login, refresh, logout and current-user orchestration."""

import logging
import secrets
import uuid
from dataclasses import dataclass

from fastapi import status
from sqlalchemy import select
from sqlalchemy.orm import Session

from inventory.core.config import Settings
from inventory.core.errors import ApiError, ErrorCode
from inventory.core.security import (
    Clock,
    PasswordHasher,
    TokenPayload,
    TokenSigner,
    utc_now,
)
from inventory.models import User
from inventory.services.refresh_tokens import RefreshTokenStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthFailure:
    """Expected, named failure of an auth operation."""

    code: ErrorCode
    message: str
    status_code: int

    def to_api_error(self) -> ApiError:
        headers = None
        if self.status_code == status.HTTP_401_UNAUTHORIZED:
            headers = {"WWW-Authenticate": "Bearer"}
        return ApiError(self.status_code, self.code, self.message, headers=headers)


INVALID_CREDENTIALS = AuthFailure(
    ErrorCode.INVALID_CREDENTIALS,
    "Invalid username or password",
    status.HTTP_401_UNAUTHORIZED,
)
ACCOUNT_DISABLED = AuthFailure(
    ErrorCode.ACCOUNT_DISABLED,
    "Account is disabled",
    status.HTTP_403_FORBIDDEN,
)
INVALID_REFRESH_TOKEN = AuthFailure(
    ErrorCode.INVALID_REFRESH_TOKEN,
    "Invalid or expired refresh token",
    status.HTTP_401_UNAUTHORIZED,
)
USER_NOT_FOUND_OR_INACTIVE = AuthFailure(
    ErrorCode.USER_NOT_FOUND,
    "User not found or inactive",
    status.HTTP_401_UNAUTHORIZED,
)
USER_NOT_FOUND = AuthFailure(
    ErrorCode.USER_NOT_FOUND,
    "User not found",
    status.HTTP_404_NOT_FOUND,
)


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


@dataclass(frozen=True)
class LoginResult:
    access_token: str
    refresh_token: str
    user: User


class AuthService:
    """
    Session lifecycle on top of PasswordHasher, TokenSigner and RefreshTokenStore.

    One instance is built at startup and shared by all requests; it holds no
    per-session state. Methods take the request's database session.
    """

    def __init__(
        self,
        settings: Settings,
        hasher: PasswordHasher | None = None,
        signer: TokenSigner | None = None,
        store: RefreshTokenStore | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self.settings = settings
        self.hasher = hasher or PasswordHasher(settings.BCRYPT_ROUNDS)
        self.signer = signer or TokenSigner(settings, clock=clock)
        self.store = store or RefreshTokenStore(settings, clock=clock)
        # Verified against when the username is unknown, so both paths cost one bcrypt check.
        self._dummy_hash = self.hasher.hash(secrets.token_urlsafe(16))

    def login(
        self,
        db: Session,
        username: str,
        password: str,
        device_info: str | None = None,
    ) -> LoginResult | AuthFailure:
        """Verify credentials and open a new session, superseding any previous one."""
        user = db.scalars(select(User).where(User.username == username)).first()
        if user is None:
            self.hasher.verify(password, self._dummy_hash)
            logger.info("Login failed: reason=unknown_user")
            return INVALID_CREDENTIALS
        if not self.hasher.verify(password, user.password_hash):
            logger.info("Login failed: reason=bad_password user_id=%s", user.id)
            return INVALID_CREDENTIALS
        if not user.is_active:
            logger.info("Login failed: reason=disabled user_id=%s", user.id)
            return ACCOUNT_DISABLED

        access_token = self.signer.issue_access_token(user.id, user.username, user.role)
        refresh_token = self.store.issue(db, user.id, device_info)
        db.refresh(user)
        logger.info("Login succeeded: user_id=%s", user.id)
        return LoginResult(access_token=access_token, refresh_token=refresh_token, user=user)

    def refresh(
        self,
        db: Session,
        refresh_token: str,
        device_info: str | None = None,
    ) -> TokenPair | AuthFailure:
        """
        Exchange a refresh token for a new pair.

        The presented token is consumed and its replacement inserted in one
        transaction, so each refresh token can be exchanged at most once even
        under concurrent requests.
        """
        rotated = self.store.rotate(db, refresh_token, device_info)
        if rotated is None:
            return INVALID_REFRESH_TOKEN
        user_id, new_refresh_token = rotated
        user = db.get(User, user_id)
        if user is None or not user.is_active:
            return USER_NOT_FOUND_OR_INACTIVE
        access_token = self.signer.issue_access_token(user.id, user.username, user.role)
        return TokenPair(access_token=access_token, refresh_token=new_refresh_token)

    def logout(self, db: Session, refresh_token: str) -> None:
        """Revoke refresh_token. Succeeds whether or not the token was valid."""
        self.store.revoke(db, refresh_token)

    def current_user(self, db: Session, principal: TokenPayload) -> User | AuthFailure:
        """Re-read the principal's user row; claims in the token may be stale."""
        user = db.get(User, principal.user_id)
        if user is None:
            return USER_NOT_FOUND
        return user

    def revoke_sessions(self, db: Session, user_id: uuid.UUID, commit: bool = True) -> int:
        """
        Force-logout: revoke every refresh token of user_id.

        Pass commit=False to make the revocation part of the caller's transaction.

        Access tokens already issued stay valid until they expire; there is no
        access-token blocklist.
        """
        return self.store.revoke_all_for_user(db, user_id, commit=commit)

    def authenticate(self, token: str | None) -> TokenPayload | None:
        return self.signer.verify_access_token(token)
