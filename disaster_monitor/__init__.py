"""
Application factory for the Natural Disaster Monitor backend.

This module provides a function to create and configure the Flask
application. Extensions (SQLAlchemy, Migrate) and the process-wide
Live Activity dispatcher are initialised here, and the report
blueprint is registered.

Environment variables control the database connection, the location
of the legacy ``db.json`` store and the APNs signing key. A default
configuration is provided for development, using SQLite when no
database URL is available and leaving push delivery disabled until
``APNS_KEY_PATH`` is set.

Unless ``PREPARE_STORE_ON_START`` is turned off, the factory creates
missing tables and imports the legacy store before it returns, so the
import has finished before any request can be served.
"""

from __future__ import annotations

import atexit
import logging
import os

import click
from flask import Flask
from flask_migrate import Migrate

# instantiate extensions without binding them to an app yet.  They will
# be bound in create_app().  This pattern avoids issues with circular
# imports and makes testing easier.
from .db import db  # use shared db object from db.py
migrate = Migrate()

logger = logging.getLogger(__name__)


def _env_flag(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def prepare_store(app: Flask):
    """Create missing tables and import the legacy store, if present."""
    from .models import Account, Report
    from .services import migrate_legacy_store

    with app.app_context():
        db.create_all()
        return migrate_legacy_store(app.config["LEGACY_DB_PATH"], Account, Report)


def create_app(test_config: dict | None = None) -> Flask:
    """Create and configure a Flask application.

    Parameters
    ----------
    test_config: dict | None, optional
        Optional configuration overrides used when running tests.

    Returns
    -------
    Flask
        A configured Flask application instance.
    """
    app = Flask(__name__)

    # Default configuration. Override using environment variables or
    # by passing a ``test_config`` mapping.
    key_path = os.environ.get("APNS_KEY_PATH")
    app.config.update(
        SQLALCHEMY_DATABASE_URI=os.environ.get("DATABASE_URL", "sqlite:///disaster_monitor.db"),
        SQLALCHEMY_TRACK_MODIFICATIONS=False,
        LEGACY_DB_PATH=os.environ.get("LEGACY_DB_PATH", "db.json"),
        PREPARE_STORE_ON_START=True,
        LIVE_ACTIVITY_ENABLED=_env_flag("LIVE_ACTIVITY_ENABLED", bool(key_path)),
        APNS_KEY_PATH=key_path,
        APNS_KEY_ID=os.environ.get("APNS_KEY_ID", "4P8H3V8HA4"),
        APNS_TEAM_ID=os.environ.get("APNS_TEAM_ID", "3P763V36ZR"),
        APNS_BUNDLE_ID=os.environ.get("APNS_BUNDLE_ID", "org.eraser.NaturalDisasterMonitor"),
        APNS_REQUEST_TIMEOUT=float(os.environ.get("APNS_REQUEST_TIMEOUT", "10")),
        APNS_MAX_WORKERS=int(os.environ.get("APNS_MAX_WORKERS", "4")),
        SEVERITY_TABLE=None,
    )

    if test_config:
        app.config.update(test_config)

    # Initialise extensions with the app
    db.init_app(app)
    migrate.init_app(app, db)

    from .services import create_dispatcher
    dispatcher = app.config.get("LIVE_ACTIVITY_DISPATCHER") or create_dispatcher(app.config)
    app.extensions["live_activity"] = dispatcher
    atexit.register(dispatcher.close)

    # Register custom error handlers
    from .errors import register_error_handlers
    register_error_handlers(app)

    # Register blueprints. Importing here avoids circular imports.
    from .routes.reports import reports_bp

    app.register_blueprint(reports_bp, url_prefix="/api")

    # Provide a simple health check route
    @app.route("/api/health")
    def health_check() -> dict[str, str]:
        """Return a simple health check response.

        This endpoint can be used by deployment platforms to verify
        that the application has started correctly.
        """
        return {"status": "ok"}

    @app.cli.command("migrate-legacy")
    def migrate_legacy_command() -> None:
        """Import the legacy db.json store now."""
        summary = prepare_store(app)
        click.echo(f"Migrated {summary.accounts} accounts and {summary.reports} reports.")

    if app.config["PREPARE_STORE_ON_START"]:
        summary = prepare_store(app)
        if summary.accounts or summary.reports:
            logger.info("Startup migration imported %d accounts and %d reports",
                        summary.accounts, summary.reports)

    return app
