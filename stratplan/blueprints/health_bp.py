"""
Health check blueprint.

Endpoints:
    GET /api/v1/health        — summary (status + database)
    GET /api/v1/health/ready  — simple 200 for load balancers
    GET /api/v1/health/live   — detailed system health (DB, rate-limit storage)
"""

import logging
import time

from flask import Blueprint, current_app, jsonify

from stratplan.models import db

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/api/v1/health")


def _check_database() -> dict:
    try:
        t0 = time.perf_counter()
        db.session.execute(db.text("SELECT 1"))
        db_ms = (time.perf_counter() - t0) * 1000
        return {"status": "ok", "latency_ms": round(db_ms, 1)}
    except Exception as exc:
        db.session.rollback()
        logger.error("Health check — database failed: %s", exc)
        return {"status": "error", "detail": str(exc)}


@health_bp.route("", methods=["GET"])
def health():
    database = _check_database()
    healthy = database["status"] == "ok"
    return jsonify({
        "status": "ok" if healthy else "degraded",
        "database": database["status"],
    }), 200 if healthy else 503


@health_bp.route("/ready", methods=["GET"])
def ready():
    """Simple readiness probe — always 200 if app is running."""
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    """Detailed liveness check with dependency status."""
    checks = {"database": _check_database()}
    overall = checks["database"]["status"] == "ok"

    # Rate-limit storage is optional; in-memory storage is reported as such
    storage = current_app.config.get("REDIS_URL", "memory://")
    checks["rate_limit_storage"] = {
        "status": "ok",
        "backend": storage.split("://", 1)[0],
    }

    checks["app"] = {
        "name": "Strategy Planner",
        "debug": current_app.debug,
        "testing": current_app.testing,
    }

    status_code = 200 if overall else 503
    return jsonify({
        "status": "healthy" if overall else "degraded",
        "checks": checks,
    }), status_code
