"""
Construction Progress Engine
Flask Application Factory.

Usage:
    from buildtrack import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask, request
from flask_cors import CORS
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event

from buildtrack.config import config
from buildtrack.middleware.logging_config import configure_logging
from buildtrack.middleware.timing import init_request_timing
from buildtrack.models import db

logger = logging.getLogger(__name__)

migrate = Migrate()


# ── SQLite FK enforcement (global engine event) ─────────────────────────
@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """ON DELETE CASCADE only fires on SQLite with foreign_keys=ON."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: One of "development", "testing", "production".
                     Defaults to the APP_ENV env var, or "development".

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    cfg = config[config_name]
    app.config.from_object(cfg() if config_name == "production" else cfg)

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    init_request_timing(app)

    @app.before_request
    def _require_json():
        if request.method in ("POST", "PUT", "PATCH") and request.path.startswith("/api/"):
            ct = request.content_type or ""
            if request.data and "json" not in ct:
                return {"error": "Content-Type must be application/json"}, 415
        return None

    # ── Import all models so Alembic can detect them ─────────────────────
    from buildtrack.models import activity as _activity_models        # noqa: F401
    from buildtrack.models import measurement as _measurement_models  # noqa: F401
    from buildtrack.models import project as _project_models          # noqa: F401
    from buildtrack.models import template as _template_models        # noqa: F401

    if config_name == "development":
        os.makedirs(app.instance_path, exist_ok=True)
        with app.app_context():
            db.create_all()

    # ── Blueprints ───────────────────────────────────────────────────────
    from buildtrack.blueprints.activity_bp import activity_bp
    from buildtrack.blueprints.measurement_bp import measurement_bp
    from buildtrack.blueprints.project_bp import project_bp
    from buildtrack.blueprints.template_bp import template_bp

    app.register_blueprint(project_bp)
    app.register_blueprint(template_bp)
    app.register_blueprint(activity_bp)
    app.register_blueprint(measurement_bp)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("seed-default-template")
    def seed_default_template_cmd():
        """Seed the standard residential construction template."""
        from buildtrack.services.default_template import seed_default_template
        template, created = seed_default_template()
        logger.info("Default template id=%s %s.", template.id, "created" if created else "already present")

    # ── Health check ─────────────────────────────────────────────────────
    @app.route("/api/v1/health")
    def health():
        return {"status": "ok", "app": "buildtrack"}

    @app.errorhandler(404)
    def not_found(e):
        return {"error": "Not found", "path": request.path}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return {"error": "Internal server error"}, 500

    return app
