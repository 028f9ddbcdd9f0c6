"""Refresh-token storage: issue with single-session rotation, validate, revoke, sweep."""

import base64
import logging
import secrets
import uuid
from datetime import datetime, timedelta

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from inventory.core.config import Settings
from inventory.core.security import Clock, utc_now
from inventory.models import RefreshToken, User

logger = logging.getLogger(__name__)

# 32 random bytes = 256 bits of entropy before base64 encoding.
TOKEN_BYTES = 32
DEVICE_INFO_MAX_LEN = 512


def generate_token_value() -> str:
    return base64.b64encode(secrets.token_bytes(TOKEN_BYTES)).decode("ascii")


class RefreshTokenStore:
    """
    Persists opaque refresh tokens and enforces one active session per user.

    A token is Active until it is revoked (logout, supersession, consumption,
    force-logout) or its expiry passes; both end states are terminal. Every
    method takes the caller's session and commits its own unit of work unless
    told otherwise.
    """

    def __init__(self, settings: Settings, clock: Clock = utc_now) -> None:
        self._lifetime = timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)
        self._clock = clock

    @property
    def lifetime(self) -> timedelta:
        return self._lifetime

    def _insert_superseding(
        self,
        db: Session,
        user_id: uuid.UUID,
        device_info: str | None,
        now: datetime,
    ) -> tuple[str, int]:
        """Lock the owner, revoke its live tokens and add a new one. Does not commit."""
        token = generate_token_value()
        if device_info:
            device_info = device_info[:DEVICE_INFO_MAX_LEN]
        db.execute(select(User.id).where(User.id == user_id).with_for_update())
        revoked = db.execute(
            update(RefreshToken)
            .where(RefreshToken.user_id == user_id, RefreshToken.is_revoked.is_(False))
            .values(is_revoked=True)
            .execution_options(synchronize_session=False)
        ).rowcount
        db.add(
            RefreshToken(
                token=token,
                user_id=user_id,
                expires_at=now + self._lifetime,
                is_revoked=False,
                created_at=now,
                device_info=device_info or None,
            )
        )
        return token, revoked

    def _consume(self, db: Session, token: str, now: datetime) -> uuid.UUID | None:
        """
        Atomically revoke token if it is usable and return its owner. Does not commit.

        The guard lives in the UPDATE's WHERE clause, so of two callers racing on
        the same token only one matches a row.
        """
        active_owner = select(User.id).where(User.is_active.is_(True))
        consumed = db.execute(
            update(RefreshToken)
            .where(
                RefreshToken.token == token,
                RefreshToken.is_revoked.is_(False),
                RefreshToken.expires_at > now,
                RefreshToken.user_id.in_(active_owner),
            )
            .values(is_revoked=True, last_used_at=now)
            .execution_options(synchronize_session=False)
        ).rowcount
        if consumed == 1:
            return db.scalar(select(RefreshToken.user_id).where(RefreshToken.token == token))
        self._log_rejection(db, token, now)
        return None

    def _log_rejection(self, db: Session, token: str, now: datetime) -> None:
        row = db.execute(
            select(
                RefreshToken.user_id,
                RefreshToken.is_revoked,
                (RefreshToken.expires_at > now).label("unexpired"),
                User.is_active,
            )
            .join(User, User.id == RefreshToken.user_id)
            .where(RefreshToken.token == token)
        ).first()
        if row is None:
            reason = "unknown"
        elif row.is_revoked:
            reason = "revoked"
        elif not row.unexpired:
            reason = "expired"
        else:
            reason = "inactive_user"
        logger.info(
            "Refresh token rejected: reason=%s user_id=%s",
            reason,
            row.user_id if row else None,
        )

    def issue(self, db: Session, user_id: uuid.UUID, device_info: str | None = None) -> str:
        """
        Create a new refresh token for user_id and revoke every other one.

        The owner row is locked first so that concurrent issues for the same user
        serialize; the revoke and the insert commit together or not at all.
        """
        try:
            token, revoked = self._insert_superseding(db, user_id, device_info, self._clock())
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            raise
        logger.info("Refresh token issued: user_id=%s superseded=%s", user_id, revoked)
        return token

    def validate_and_consume(self, db: Session, token: str) -> uuid.UUID | None:
        """
        Return the owner's id if token is usable, else None.

        Usable means known, not revoked, not expired and owned by an active user.
        Success revokes the token and records last_used_at, so it is accepted
        at most once.
        """
        if not token:
            return None
        try:
            user_id = self._consume(db, token, self._clock())
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            raise
        return user_id

    def rotate(
        self, db: Session, token: str, device_info: str | None = None
    ) -> tuple[uuid.UUID, str] | None:
        """
        Consume token and issue its replacement in one transaction.

        Returns (owner id, new token), or None when token is not usable. If the
        insert fails the consumption is rolled back with it.
        """
        if not token:
            return None
        now = self._clock()
        try:
            user_id = self._consume(db, token, now)
            if user_id is None:
                db.commit()
                return None
            new_token, _ = self._insert_superseding(db, user_id, device_info, now)
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            raise
        logger.info("Refresh token rotated: user_id=%s", user_id)
        return user_id, new_token

    def revoke(self, db: Session, token: str) -> None:
        """Mark token revoked; unknown or already revoked tokens are a no-op."""
        if not token:
            return
        try:
            db.execute(
                update(RefreshToken)
                .where(RefreshToken.token == token)
                .values(is_revoked=True)
                .execution_options(synchronize_session=False)
            )
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            raise

    def revoke_all_for_user(self, db: Session, user_id: uuid.UUID, commit: bool = True) -> int:
        """
        Revoke every outstanding token of user_id; returns the number revoked.

        With commit=False the revocation joins the caller's transaction and the
        caller commits or rolls back.
        """
        statement = (
            update(RefreshToken)
            .where(RefreshToken.user_id == user_id, RefreshToken.is_revoked.is_(False))
            .values(is_revoked=True)
            .execution_options(synchronize_session=False)
        )
        if not commit:
            return db.execute(statement).rowcount
        try:
            count = db.execute(statement).rowcount
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            raise
        logger.info("Revoked all refresh tokens: user_id=%s count=%s", user_id, count)
        return count

    def sweep_expired(self, db: Session) -> int:
        """Delete tokens whose expiry has passed. Storage reclamation only."""
        now = self._clock()
        try:
            deleted = db.execute(
                delete(RefreshToken)
                .where(RefreshToken.expires_at <= now)
                .execution_options(synchronize_session=False)
            ).rowcount
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            raise
        return deleted

    def active_tokens_for_user(self, db: Session, user_id: uuid.UUID) -> list[RefreshToken]:
        """Tokens of user_id that are neither revoked nor expired."""
        now = self._clock()
        return list(
            db.scalars(
                select(RefreshToken).where(
                    RefreshToken.user_id == user_id,
                    RefreshToken.is_revoked.is_(False),
                    RefreshToken.expires_at > now,
                )
            )
        )
