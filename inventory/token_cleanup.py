"""
Cron entrypoint that deletes expired refresh tokens:

  python -m inventory.token_cleanup    (or the inventory-token-cleanup script)
"""

import logging
import sys

from inventory.core.config import get_settings
from inventory.core.database import build_engine, build_session_factory
from inventory.services.token_cleanup import run_token_cleanup

logger = logging.getLogger(__name__)


def main() -> int:
    settings = get_settings()
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%SZ",
    )
    engine = build_engine(settings)
    session = build_session_factory(engine)()
    try:
        deleted = run_token_cleanup(session, settings)
    except Exception:
        logger.exception("Refresh-token cleanup failed")
        return 1
    finally:
        session.close()
        engine.dispose()
    logger.info("Refresh-token cleanup finished: tokens_deleted=%s", deleted)
    return 0


if __name__ == "__main__":
    sys.exit(main())
