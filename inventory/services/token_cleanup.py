"""Storage reclamation: delete refresh tokens whose expiry has passed."""

import logging
from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

from inventory.services.refresh_tokens import RefreshTokenStore

if TYPE_CHECKING:
    from inventory.core.config import Settings

logger = logging.getLogger(__name__)


def run_token_cleanup(
    session: Session,
    settings: "Settings",
    store: RefreshTokenStore | None = None,
) -> int:
    """
    Delete expired refresh tokens. Returns the number of rows deleted.

    Expired tokens are already rejected at validation time, so this only frees
    storage. Idempotent: safe to run repeatedly.
    """
    if not settings.TOKEN_CLEANUP_ENABLED:
        logger.info("Token cleanup is disabled (TOKEN_CLEANUP_ENABLED=false); skipping.")
        return 0

    store = store or RefreshTokenStore(settings)
    deleted_count = store.sweep_expired(session)
    if deleted_count > 0:
        logger.info("Token cleanup run: tokens_deleted=%s", deleted_count)
    return deleted_count
