import logging
from logging.config import dictConfig

from marketplace.core.config import settings


def configure_logging() -> None:
    """Configure application-wide logging once during startup.

    A second call is a no-op so importing the app under uvicorn's own
    logging setup does not add duplicate handlers.
    """
    if logging.getLogger().handlers:
        return

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
                }
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                }
            },
            "root": {"handlers": ["console"], "level": settings.LOG_LEVEL},
        }
    )
