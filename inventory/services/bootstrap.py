"""Startup database initialization: schema (optional), permission catalog, first admin."""

import logging

from sqlalchemy import Engine, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from inventory.core.config import Settings
from inventory.core.security import PasswordHasher
from inventory.models import Base, User, UserRole
from inventory.services.permissions import sync_permission_catalog

logger = logging.getLogger(__name__)


def seed_default_admin(db: Session, settings: Settings, hasher: PasswordHasher) -> bool:
    """Create the default admin unless a user with that username exists. Returns True if created."""
    username = settings.DEFAULT_ADMIN_USERNAME
    if db.scalars(select(User.id).where(User.username == username)).first() is not None:
        return False
    try:
        db.add(
            User(
                username=username,
                email=settings.DEFAULT_ADMIN_EMAIL,
                password_hash=hasher.hash(settings.DEFAULT_ADMIN_PASSWORD.get_secret_value()),
                role=UserRole.ADMIN,
                is_active=True,
            )
        )
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    logger.info("Default admin account created: username=%s", username)
    if settings.APP_ENV == "prod":
        logger.warning("Default admin created in prod; change its password immediately.")
    return True


def initialize_database(
    engine: Engine,
    session_factory: sessionmaker[Session],
    settings: Settings,
    hasher: PasswordHasher,
) -> None:
    """Run before the app accepts requests; the permission policy must be in place first."""
    if settings.DB_CREATE_TABLES:
        Base.metadata.create_all(bind=engine)
    db = session_factory()
    try:
        sync_permission_catalog(db)
        if settings.SEED_DEFAULT_ADMIN:
            seed_default_admin(db, settings, hasher)
    finally:
        db.close()
