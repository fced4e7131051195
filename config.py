"""
Application configuration.
This module defines the configuration settings for the Flask application: database connection, secret key,
logging level and the default BDI for new projects. It uses environment variables for anything deployment
specific and defaults for development. In production, set the appropriate environment variables.
"""

import os
from decimal import Decimal
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent


class Config:
    """Base configuration shared by all environments."""

    # IMPORTANT: change this in production
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-change-me-please")

    # Database: SQLite for development (simple file in project folder)
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        f"sqlite:///{BASE_DIR / 'promeasure.db'}"
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Markup applied to new projects when the request does not send one
    DEFAULT_BDI = Decimal(os.environ.get("DEFAULT_BDI", "0"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    APP_NAME = "ProMeasure"


class TestConfig(Config):
    """In-memory database, no logging reconfiguration."""

    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
