"""
Strategy Planner
Flask Application Factory.

Usage:
    from stratplan import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

import click
from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate

from stratplan.config import config
from stratplan.models import db
from stratplan.middleware.logging_config import configure_logging
from stratplan.middleware.rate_limiter import init_rate_limits
from stratplan.middleware.tenant_context import init_tenant_context
from stratplan.middleware.timing import init_request_timing

logger = logging.getLogger(__name__)

# ── SQLite FK enforcement (global engine event) ─────────────────────────
from sqlalchemy import event as _sa_event, engine as _sa_engine


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
    default_limits=[],                     # limits are applied per blueprint
    storage_uri=os.getenv("REDIS_URL", "memory://"),  # Redis in production, memory for dev
)


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name]())

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

    # ── Request timing middleware ────────────────────────────────────────
    init_request_timing(app)

    # ── Request guards (input length + Content-Type) ─────────────────────
    app.config.setdefault("MAX_CONTENT_LENGTH", 2 * 1024 * 1024)  # 2 MB

    @app.before_request
    def _guard_request():
        from flask import abort
        max_len = app.config.get("MAX_CONTENT_LENGTH")
        if max_len and request.content_length and request.content_length > max_len:
            abort(413, description="Request body too large")
        if request.method in ("POST", "PUT", "PATCH") and request.path.startswith("/api/"):
            ct = request.content_type or ""
            if request.get_data(cache=True) and "json" not in ct:
                abort(415, description="Content-Type must be application/json")

    # ── Tenant context middleware (sets g.tenant / g.tenant_id) ──────────
    init_tenant_context(app)

    # ── Import all models so Alembic can detect them ─────────────────────
    from stratplan.models import organization as _organization_models  # noqa: F401
    from stratplan.models import strategy as _strategy_models          # noqa: F401
    from stratplan.models import action as _action_models              # noqa: F401
    from stratplan.models import dependency as _dependency_models      # noqa: F401
    from stratplan.models import snapshot as _snapshot_models          # noqa: F401
    from stratplan.models import activity as _activity_models          # noqa: F401
    from stratplan.models import notification as _notification_models  # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ──
    with app.app_context():
        try:
            db.create_all()
            app.logger.info("db.create_all() completed successfully")
        except Exception as e:
            app.logger.warning("db.create_all() failed: %s", e)

    # ── Blueprints ───────────────────────────────────────────────────────
    from stratplan.blueprints.dependency_bp import dependency_bp
    from stratplan.blueprints.health_bp import health_bp
    from stratplan.blueprints.hierarchy_bp import hierarchy_bp
    from stratplan.blueprints.notification_bp import notification_bp
    from stratplan.blueprints.organization_bp import organization_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(organization_bp)
    app.register_blueprint(hierarchy_bp)
    app.register_blueprint(dependency_bp)
    app.register_blueprint(notification_bp)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("recalculate-progress")
    @click.option("--tenant-id", type=int, default=None,
                  help="Only recalculate this organization (default: all).")
    def recalculate_progress_cmd(tenant_id):
        """Recompute every project and strategy aggregate from its children."""
        from stratplan.services.cascade import recalculate_all
        summary = recalculate_all(tenant_id)
        click.echo(
            f"Recalculated {summary['projects']} project(s) and "
            f"{summary['strategies']} strategy(ies); {len(summary['warnings'])} warning(s)."
        )
        for warning in summary["warnings"]:
            click.echo(f"  {warning['entity_type']} {warning['entity_id']}: {warning['message']}")

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        return {"error": "Not found", "path": request.path}, 404

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return {"error": "Internal server error"}, 500

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(413)
    def too_large(e):
        return {"error": "Request body too large"}, 413

    @app.errorhandler(415)
    def unsupported_media_type(e):
        return {"error": "Content-Type must be application/json"}, 415

    @app.errorhandler(429)
    def rate_limited(e):
        return {"error": "Too many requests", "retry_after": e.description}, 429

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app
