"""
Strategy Planner
Organization blueprint — tenant registration.

Organizations are the isolation boundary, so these routes sit outside the
tenant context middleware.

Endpoints:
    GET  /api/v1/organizations          list
    POST /api/v1/organizations          create
    GET  /api/v1/organizations/<id>     detail
"""

import logging
import re

from flask import Blueprint, jsonify
from sqlalchemy import select

from stratplan.middleware.rate_limiter import PLAN_RATE_LIMITS
from stratplan.models import db
from stratplan.models.organization import Organization
from stratplan.utils.errors import E, api_error
from stratplan.utils.helpers import request_json

logger = logging.getLogger(__name__)

organization_bp = Blueprint("organization", __name__, url_prefix="/api/v1/organizations")

_SLUG_RE = re.compile(r"^[a-z0-9][a-z0-9-]{1,98}[a-z0-9]$")


@organization_bp.route("", methods=["GET"])
def list_organizations():
    items = db.session.execute(select(Organization).order_by(Organization.id)).scalars().all()
    return jsonify({"items": [o.to_dict() for o in items], "total": len(items)})


@organization_bp.route("", methods=["POST"])
def create_organization():
    data, err = request_json()
    if err:
        return err
    name = str(data.get("name") or "").strip()
    slug = str(data.get("slug") or "").strip().lower()
    if not name or not slug:
        return api_error(E.VALIDATION_REQUIRED, "name and slug are required")
    if not _SLUG_RE.match(slug):
        return api_error(E.VALIDATION_INVALID, "slug must be 3-100 lowercase letters, digits or dashes")
    plan = data.get("plan") or "free"
    if plan not in PLAN_RATE_LIMITS:
        return api_error(E.VALIDATION_INVALID, f"plan must be one of {sorted(PLAN_RATE_LIMITS)}")

    exists = db.session.execute(
        select(Organization.id).where(Organization.slug == slug)
    ).scalar_one_or_none()
    if exists is not None:
        return api_error(E.CONFLICT_DUPLICATE, f"Organization slug {slug!r} already exists")

    org = Organization(name=name[:200], slug=slug, plan=plan, is_active=True)
    db.session.add(org)
    db.session.commit()
    logger.info("Organization created: %s", slug, extra={"tenant_id": org.id})
    return jsonify(org.to_dict()), 201


@organization_bp.route("/<int:org_id>", methods=["GET"])
def get_organization(org_id):
    org = db.session.get(Organization, org_id)
    if org is None:
        return api_error(E.NOT_FOUND, "Organization not found")
    return jsonify(org.to_dict())
