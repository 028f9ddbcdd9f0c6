"""ASGI entrypoint: loads .env, configures logging and builds the app.

  uvicorn inventory.main:app
"""

from dotenv import load_dotenv

load_dotenv()

import logging

from inventory.application import create_app
from inventory.core.config import get_settings


def _configure_logging() -> None:
    logging.basicConfig(
        level=get_settings().LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%SZ",
    )


_configure_logging()
app = create_app()
