"""
Tenant Context Middleware — resolves the organization for API requests.

Resolution order:
  1. X-Tenant-ID header
  2. ?tenant_id= query parameter
  3. "tenant_id" key of a JSON body

The organization must exist and be active. On success ``g.tenant_id`` and
``g.tenant`` are set; every service call downstream is scoped by
``g.tenant_id``.

Chain order:
  timing.py  →  tenant_context.py  →  route handler
"""

import logging

from flask import current_app, g, request

from stratplan.models import db
from stratplan.models.organization import Organization
from stratplan.utils.errors import E, api_error

logger = logging.getLogger(__name__)

# Paths that do not belong to a single organization
TENANT_SKIP_PREFIXES = (
    "/api/v1/health",
    "/api/v1/organizations",
    "/static/",
)


def resolve_tenant_id():
    """Return the raw tenant id supplied with the current request, or None."""
    header = current_app.config.get("TENANT_HEADER", "X-Tenant-ID")
    raw = request.headers.get(header)
    if raw in (None, ""):
        raw = request.args.get("tenant_id")
    if raw in (None, "") and request.is_json:
        payload = request.get_json(silent=True)
        if isinstance(payload, dict):
            raw = payload.get("tenant_id")
    return raw


def init_tenant_context(app):
    """Register tenant context middleware as a before_request hook."""

    @app.before_request
    def _tenant_context():
        g.tenant = None
        g.tenant_id = None

        if not request.path.startswith("/api/v1/"):
            return None
        for prefix in TENANT_SKIP_PREFIXES:
            if request.path.startswith(prefix):
                return None

        raw = resolve_tenant_id()
        if raw in (None, ""):
            return api_error(E.VALIDATION_REQUIRED, "tenant_id is required (X-Tenant-ID header)")
        try:
            tenant_id = int(raw)
        except (TypeError, ValueError):
            return api_error(E.VALIDATION_INVALID, "tenant_id must be an integer")

        tenant = db.session.get(Organization, tenant_id)
        if tenant is None:
            logger.warning("Request for unknown organization %s", tenant_id)
            return api_error(E.FORBIDDEN, "Organization not found")
        if not tenant.is_active:
            logger.warning("Request for deactivated organization %s", tenant_id,
                           extra={"tenant_id": tenant_id})
            return api_error(E.FORBIDDEN, "Organization account is deactivated")

        g.tenant = tenant
        g.tenant_id = tenant.id
        return None

    logger.info("Tenant context middleware installed")
