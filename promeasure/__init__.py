"""
promeasure/__init__.py

Flask application factory for ProMeasure (WBS measurement / reconciliation service).

Requirements:
- Clear architecture: routes -> services -> pure engine (promeasure.wbs).
- PostgreSQL-ready (SQLAlchemy + migrations) but SQLite is used for dev.
- Input is never trusted; every rule is enforced server-side.

Errors:
- Engine and service errors derive from WbsError and carry only a machine code.
  The HTTP status is chosen here (ERROR_STATUS, first match wins) and one
  handler turns them into the JSON error envelope.
"""

from __future__ import annotations

import logging

import click
from flask import Flask

from .extensions import db, migrate
from .http import error, error_from, ok
from .logging_setup import configure_logging
from .services.projects import ProjectNotFoundError
from .wbs.errors import (
    ItemNotFoundError,
    MeasurementConflictError,
    SnapshotNotFoundError,
    SnapshotReopenError,
    StructuralError,
    WbsError,
)

logger = logging.getLogger(__name__)

# Engine error class -> HTTP status. Anything else derived from WbsError is a 400.
ERROR_STATUS = (
    (ProjectNotFoundError, 404),
    (ItemNotFoundError, 404),
    (SnapshotNotFoundError, 404),
    (StructuralError, 409),
    (SnapshotReopenError, 409),
    (MeasurementConflictError, 409),
)


def error_status(exc: WbsError) -> int:
    for error_cls, status in ERROR_STATUS:
        if isinstance(exc, error_cls):
            return status
    return 400


def create_app(config_object: object = "config.Config") -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    if not app.config.get("TESTING"):
        configure_logging(default_level=app.config.get("LOG_LEVEL", "INFO"))

    # Extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # ----------------------------------------------------------------------
    # Blueprints
    # ----------------------------------------------------------------------
    from .blueprints.projects import projects_bp

    app.register_blueprint(projects_bp)

    # ----------------------------------------------------------------------
    # Error handling
    # ----------------------------------------------------------------------
    @app.errorhandler(WbsError)
    def handle_wbs_error(exc: WbsError):
        status = error_status(exc)
        logger.debug("Rejected request (%s, %s): %s", status, exc.code, exc)
        return error_from(exc, status)

    @app.errorhandler(404)
    def handle_not_found(_exc):
        return error(message="Resource not found", status_code=404, code="not_found")

    @app.errorhandler(405)
    def handle_method_not_allowed(_exc):
        return error(message="Method not allowed", status_code=405, code="method_not_allowed")

    # ----------------------------------------------------------------------
    # CLI
    # ----------------------------------------------------------------------
    @app.cli.command("seed-demo")
    def seed_demo_command():
        """Seed the demo project (idempotent)."""
        from .seed import seed_demo_project

        project = seed_demo_project()
        click.echo(f"Demo project seeded (id={project.id}).")

    # ----------------------------------------------------------------------
    # Home
    # ----------------------------------------------------------------------
    @app.route("/")
    def index():
        """Service banner."""
        return ok(data={"name": app.config.get("APP_NAME", "ProMeasure")})

    return app
