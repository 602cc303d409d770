"""Logging setup for the monitor process."""

from __future__ import annotations

import logging.config

from .config import LoggingSettings

# worker threads are named, so every line carries the thread
_PLAIN_FORMAT = {"format": "%(asctime)s %(levelname)s [%(threadName)s] %(name)s %(message)s"}
_STRUCTURED_FORMAT = {
    "format": "ts={asctime} level={levelname} logger={name} thread={threadName} msg={message}",
    "style": "{",
}

# googleapiclient logs every discovery lookup at INFO
_QUIET_LOGGERS = {
    "googleapiclient.discovery_cache": "ERROR",
    "httpx": "WARNING",
}


def configure_logging(settings: LoggingSettings) -> None:
    """Route all records to stderr at ``settings.level``."""
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": dict(_STRUCTURED_FORMAT if settings.structured else _PLAIN_FORMAT),
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                },
            },
            "loggers": {name: {"level": level} for name, level in _QUIET_LOGGERS.items()},
            "root": {"handlers": ["console"], "level": settings.level},
        }
    )


__all__ = ["configure_logging"]
