"""
Site Progress Tracker
Flask Application Factory.

Usage:
    from sitetrack import create_app
    app = create_app()           # defaults to APP_ENV or "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask, g, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine, event as _sa_event

from sitetrack.config import config
from sitetrack.core.exceptions import (
    AuthError,
    ConflictError,
    NotFoundError,
    PartialMutationError,
    PermissionDeniedError,
    ValidationError,
)
from sitetrack.middleware.jwt_auth import init_jwt_middleware
from sitetrack.middleware.logging_config import configure_logging
from sitetrack.middleware.rate_limiter import init_rate_limits
from sitetrack.models import db
from sitetrack.utils.errors import E, api_error

logger = logging.getLogger(__name__)


@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],  # no global limit, applied per blueprint
    storage_uri=os.getenv("RATELIMIT_STORAGE_URI", "memory://"),
)


def _register_error_handlers(app):
    """Map the platform exception hierarchy to the standard error body."""

    def _log_denied(error, status):
        user = getattr(g, "current_user", None)
        logger.warning(
            "%s %s -> %d: %s", request.method, request.path, status, error,
            extra={"user_id": getattr(user, "id", None), "event_type": f"http.{status}"},
        )

    @app.errorhandler(NotFoundError)
    def _not_found(error):
        return api_error(E.NOT_FOUND, str(error))

    @app.errorhandler(ValidationError)
    def _validation(error):
        return api_error(E.VALIDATION_INVALID, str(error), details=error.details)

    @app.errorhandler(ConflictError)
    def _conflict(error):
        return api_error(E.CONFLICT_DUPLICATE, str(error), details={"field": error.field})

    @app.errorhandler(PermissionDeniedError)
    def _forbidden(error):
        _log_denied(error, 403)
        return api_error(E.FORBIDDEN, str(error), details={"action": error.action} if error.action else None)

    @app.errorhandler(AuthError)
    def _auth(error):
        _log_denied(error, 401)
        return api_error(error.code, str(error), status=401)

    @app.errorhandler(PartialMutationError)
    def _partial(error):
        return api_error(
            E.PARTIAL_FAILURE,
            "The operation could not be completed. Some steps were already applied.",
            details={"operation": error.operation, "completed": error.completed,
                     "failed_step": error.failed_step},
        )

    @app.errorhandler(404)
    def _route_not_found(e):
        return api_error(E.NOT_FOUND, "Not found", details={"path": request.path})

    @app.errorhandler(405)
    def _method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(413)
    def _too_large(e):
        return {"error": "Request body too large"}, 413

    @app.errorhandler(429)
    def _rate_limited(e):
        return {"error": "Too many requests", "retry_after": e.description}, 429

    @app.errorhandler(500)
    def _server_error(e):
        db.session.rollback()
        logger.error("500 error on %s: %s", request.path, e, exc_info=True)
        return api_error(E.INTERNAL, "Internal server error")


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: One of "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    cfg = config[config_name]
    # ProductionConfig validates required env vars on instantiation
    app.config.from_object(cfg() if config_name == "production" else cfg)

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    init_jwt_middleware(app)
    _register_error_handlers(app)

    # ── Import all models so Alembic can detect them ─────────────────────
    from sitetrack.models import auth as _auth_models        # noqa: F401
    from sitetrack.models import project as _project_models  # noqa: F401
    from sitetrack.models import report as _report_models    # noqa: F401

    if app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite:///") and ":memory:" not in app.config["SQLALCHEMY_DATABASE_URI"]:
        os.makedirs(app.instance_path, exist_ok=True)

    with app.app_context():
        try:
            db.create_all()
            app.logger.info("db.create_all() completed successfully")
        except Exception as e:
            app.logger.warning("db.create_all() failed: %s", e)

    # ── Blueprints ───────────────────────────────────────────────────────
    from sitetrack.blueprints.ai_bp import ai_bp
    from sitetrack.blueprints.auth_bp import auth_bp
    from sitetrack.blueprints.dashboard_bp import dashboard_bp
    from sitetrack.blueprints.project_bp import project_bp
    from sitetrack.blueprints.report_bp import report_bp
    from sitetrack.blueprints.user_bp import user_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(dashboard_bp)
    app.register_blueprint(project_bp)
    app.register_blueprint(report_bp)
    app.register_blueprint(user_bp)
    app.register_blueprint(ai_bp)

    @app.route("/api/v1/health")
    @limiter.exempt
    def health():
        return {"status": "ok", "app": "Site Progress Tracker"}

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app
