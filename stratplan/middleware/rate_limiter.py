"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter. The Limiter instance
is created in stratplan/__init__.py with no default limits; this module
applies limits per route category, keyed by organization when the request
carries one.

Plan-based quotas (Organization.plan):
    - free:         100 requests/minute
    - team:         300 requests/minute
    - enterprise:  1000 requests/minute

Usage:
    from stratplan.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

from flask import g, request as flask_request

logger = logging.getLogger(__name__)

PLAN_RATE_LIMITS = {
    "free": "100/minute",
    "team": "300/minute",
    "enterprise": "1000/minute",
}

DEFAULT_PLAN_LIMIT = "100/minute"


def tenant_rate_limit_key():
    """Dynamic rate limit key: tenant_id if available, else remote IP."""
    tenant_id = getattr(g, "tenant_id", None)
    if tenant_id:
        return f"tenant:{tenant_id}"
    return flask_request.remote_addr or "unknown"


def tenant_plan_limit():
    """Return the rate limit string for the current organization's plan."""
    tenant = getattr(g, "tenant", None)
    if tenant is not None:
        return PLAN_RATE_LIMITS.get(getattr(tenant, "plan", None) or "free", DEFAULT_PLAN_LIMIT)
    return DEFAULT_PLAN_LIMIT


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits:
        - Hierarchy + dependency writes: organization plan quota
        - Notifications (polled by the UI): 200/minute
        - Health check: exempt

    Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    for bp_name in ("hierarchy", "dependency"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(tenant_plan_limit, key_func=tenant_rate_limit_key)(bp)

    bp = app.blueprints.get("notification")
    if bp:
        limiter.limit("200/minute", key_func=tenant_rate_limit_key)(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info(
        "Rate limiter configured: plans free=100/min team=300/min enterprise=1000/min, "
        "notifications 200/min"
    )
