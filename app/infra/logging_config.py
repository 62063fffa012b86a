"""Logging setup shared by the API process and scripts."""

from __future__ import annotations

import logging
import logging.config
from typing import Optional

import rollbar
from rollbar.logger import RollbarHandler

from app.config import Settings, get_settings

ROOT_LOGGER_NAME = "cobra_relay"


class LoggingConfig:
    """Configure stdlib logging once; optionally forward errors to Rollbar."""

    _configured = False

    def __init__(self, settings: Optional[Settings] = None) -> None:
        if LoggingConfig._configured:
            return
        self.settings = settings or get_settings()
        self._configure()
        LoggingConfig._configured = True

    def _configure(self) -> None:
        level = self.settings.log_level.upper()
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
                "loggers": {
                    ROOT_LOGGER_NAME: {
                        "handlers": ["console"],
                        "level": level,
                        "propagate": True,
                    },
                    "app": {
                        "handlers": ["console"],
                        "level": level,
                        "propagate": True,
                    },
                },
            }
        )

        if self.settings.rollbar_access_token:
            rollbar.init(
                self.settings.rollbar_access_token,
                environment=self.settings.environment,
            )
            handler = RollbarHandler()
            handler.setLevel(logging.ERROR)
            logging.getLogger(ROOT_LOGGER_NAME).addHandler(handler)
            logging.getLogger("app").addHandler(handler)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a logger under the service namespace."""
    if not name:
        return logging.getLogger(ROOT_LOGGER_NAME)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
