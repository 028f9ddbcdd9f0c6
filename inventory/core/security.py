"""Password hashing and JWT access-token creation/verification."""

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

import bcrypt
import jwt

from inventory.core.config import Settings
from inventory.models.user import UserRole

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

# bcrypt only looks at the first 72 bytes of the password.
BCRYPT_MAX_BYTES = 72

ACCESS_TOKEN_TYPE = "access"


def utc_now() -> datetime:
    return datetime.now(UTC)


class PasswordHasher:
    """Salted bcrypt hashing with a fixed work factor."""

    def __init__(self, rounds: int = 12) -> None:
        self.rounds = rounds

    def hash(self, plain_password: str) -> str:
        """Hash a plain-text password for storage. Do not store plain passwords."""
        pw_bytes = plain_password.encode("utf-8")[:BCRYPT_MAX_BYTES]
        return bcrypt.hashpw(pw_bytes, bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def verify(self, plain_password: str, hashed: str | None) -> bool:
        """Verify a plain password against a stored hash; malformed hashes never match."""
        if not hashed:
            return False
        pw_bytes = plain_password.encode("utf-8")[:BCRYPT_MAX_BYTES]
        try:
            return bcrypt.checkpw(pw_bytes, hashed.encode("utf-8"))
        except (ValueError, TypeError):
            return False


@dataclass(frozen=True)
class TokenPayload:
    """Identity carried by a verified access token (the request principal)."""

    user_id: uuid.UUID
    username: str
    role: UserRole


class TokenSigner:
    """
    Issues and verifies short-lived HMAC-signed access tokens.

    The key, issuer and audience are fixed for the lifetime of the process.
    Tokens signed with an earlier key fail verification, forcing a new login.
    """

    def __init__(self, settings: Settings, clock: Clock = utc_now) -> None:
        self._secret = settings.JWT_SECRET.get_secret_value()
        self._algorithm = settings.JWT_ALGORITHM
        self._issuer = settings.JWT_ISSUER
        self._audience = settings.JWT_AUDIENCE
        self._lifetime = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
        self._clock = clock

    @property
    def lifetime(self) -> timedelta:
        return self._lifetime

    def issue_access_token(self, user_id: uuid.UUID | str, username: str, role: UserRole) -> str:
        """Create a signed access token with sub, username, role, type, iss, aud, iat and exp."""
        now = self._clock()
        payload: dict[str, Any] = {
            "sub": str(user_id),
            "username": username,
            "role": UserRole(role).value,
            "type": ACCESS_TOKEN_TYPE,
            "iss": self._issuer,
            "aud": self._audience,
            "iat": now,
            "exp": now + self._lifetime,
        }
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    def verify_access_token(self, token: str | None) -> TokenPayload | None:
        """
        Return the principal for a valid access token, or None.

        Signature, issuer and audience are checked by PyJWT; expiry is checked
        against the injected clock so that it can be controlled in tests.
        """
        if not token:
            return None
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                issuer=self._issuer,
                audience=self._audience,
                options={
                    "require": ["exp", "sub", "iss", "aud"],
                    "verify_exp": False,
                    "verify_iat": False,
                },
            )
        except jwt.PyJWTError as e:
            logger.debug("Access token rejected: %s", type(e).__name__)
            return None

        exp = payload.get("exp")
        if not isinstance(exp, (int, float)) or exp <= self._clock().timestamp():
            logger.debug("Access token rejected: expired")
            return None
        if payload.get("type") != ACCESS_TOKEN_TYPE:
            logger.debug("Access token rejected: wrong token type")
            return None

        username = payload.get("username")
        if not isinstance(username, str) or not username:
            return None
        try:
            user_id = uuid.UUID(str(payload["sub"]))
            role = UserRole(payload.get("role"))
        except (TypeError, ValueError):
            return None
        return TokenPayload(user_id=user_id, username=username, role=role)
