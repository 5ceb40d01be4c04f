import logging
from logging.config import dictConfig

from .config import settings


def setup_logging(level: str | None = None) -> None:
    """Configure the root logger."""
    level_name = (level or settings.log_level).upper()
    numeric_level = getattr(logging, level_name, logging.INFO)

    config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": "[%(asctime)s] [%(levelname)s] %(name)s - %(message)s"
            }
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "standard",
                "level": numeric_level,
            }
        },
        "root": {
            "handlers": ["console"],
            "level": numeric_level,
        },
        "loggers": {
            # matplotlib font discovery is chatty at DEBUG
            "matplotlib": {"level": "WARNING"},
            "PIL": {"level": "WARNING"},
        },
    }

    dictConfig(config)
    logging.getLogger(__name__).debug(
        "Logging configured at %s for the %s environment", level_name, settings.environment
    )


__all__ = ["setup_logging"]
