"""Logging setup for the API process."""

import logging
import logging.config

from artbid.core.config import settings


def setup_logging(level: str | None = None) -> None:
    """Configure the root logger once at startup.

    Modules log through ``logging.getLogger(__name__)``; this only decides
    format and level.
    """
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
                },
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                },
            },
            "root": {
                "handlers": ["console"],
                "level": (level or settings.LOG_LEVEL).upper(),
            },
            # SQL echo is controlled by DEBUG, keep the engine logger quieter
            "loggers": {
                "sqlalchemy.engine": {"level": "WARNING"},
            },
        }
    )
