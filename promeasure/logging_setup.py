"""
promeasure/logging_setup.py

Stdlib logging bootstrap, called once by create_app() (skipped under TESTING so
pytest's log capture stays in charge).
"""

from __future__ import annotations

import logging
import os

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

# Loggers that follow the configured level even when a host process set its own root level.
APP_LOGGERS = ("promeasure", "werkzeug")


def _env(name: str, default: str) -> str:
    value = os.getenv(name)
    return default if value is None or value == "" else value


def configure_logging(*, default_level: str = "INFO", force: bool = True) -> int:
    """
    Configure root logging and return the effective level.

    Environment variables:
    - LOG_LEVEL: overrides default_level (e.g. DEBUG shows clamp and rejected-move details)
    - LOG_FORCE: 0/false keeps handlers already installed by a WSGI server
    """
    level_name = _env("LOG_LEVEL", default_level).upper()
    level = getattr(logging, level_name, logging.INFO)

    env_force = _env("LOG_FORCE", "1").lower() not in {"0", "false", "no"}
    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt=LOG_DATEFMT, force=(force and env_force))

    for name in APP_LOGGERS:
        logging.getLogger(name).setLevel(level)
    return level
