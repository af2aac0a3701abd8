"""
Strategy Planner
Request helpers shared by the API blueprints.
"""

from flask import current_app, g, request


def pagination_args(default_limit=None, max_limit=None):
    """Read ``limit`` / ``offset`` from the query string.

    Defaults come from ``DEFAULT_PAGE_SIZE`` / ``MAX_PAGE_SIZE``. Garbage
    values fall back to the defaults instead of failing the request.

    Returns:
        (limit, offset)
    """
    default_limit = default_limit or current_app.config.get("DEFAULT_PAGE_SIZE", 50)
    max_limit = max_limit or current_app.config.get("MAX_PAGE_SIZE", 200)
    try:
        limit = min(int(request.args.get("limit", default_limit)), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    return max(limit, 1), offset


def current_actor() -> str:
    """User id of the caller, recorded on activities and snapshots."""
    header = current_app.config.get("ACTOR_HEADER", "X-User-ID")
    return request.headers.get(header) or "system"


def current_tenant_id() -> int:
    """Organization resolved by the tenant context middleware."""
    return g.tenant_id
