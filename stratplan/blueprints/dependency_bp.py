"""
Strategy Planner
Dependency blueprint — advisory edges between projects and actions.

Endpoints:
    GET    /api/v1/dependencies                 list (?entity_type=&entity_id=)
    POST   /api/v1/dependencies                 create edge
    DELETE /api/v1/dependencies/<id>            delete edge
    POST   /api/v1/dependencies/cleanup         remove every edge touching the given ids
"""

import logging

from flask import Blueprint, jsonify, request

from stratplan.blueprints import current_actor, current_tenant_id
from stratplan.models import db
from stratplan.services import dependency_service
from stratplan.utils.errors import E, api_error, register_service_error_handlers
from stratplan.utils.helpers import request_json

logger = logging.getLogger(__name__)

dependency_bp = Blueprint("dependency", __name__, url_prefix="/api/v1/dependencies")
register_service_error_handlers(dependency_bp)


@dependency_bp.route("", methods=["GET"])
def list_dependencies():
    items = dependency_service.list_dependencies(
        current_tenant_id(),
        entity_type=(request.args.get("entity_type") or "").strip().lower() or None,
        entity_id=request.args.get("entity_id", type=int),
    )
    return jsonify({"items": [d.to_dict() for d in items], "total": len(items)})


@dependency_bp.route("", methods=["POST"])
def create_dependency():
    data, err = request_json()
    if err:
        return err
    missing = [k for k in ("source_type", "source_id", "target_type", "target_id") if data.get(k) in (None, "")]
    if missing:
        return api_error(
            E.VALIDATION_REQUIRED,
            f"Missing required fields: {', '.join(missing)}",
            details={k: "required" for k in missing},
        )
    try:
        source_id = int(data["source_id"])
        target_id = int(data["target_id"])
    except (TypeError, ValueError):
        return api_error(E.VALIDATION_INVALID, "source_id and target_id must be integers")

    dep = dependency_service.create_dependency(
        current_tenant_id(),
        data["source_type"],
        source_id,
        data["target_type"],
        target_id,
        created_by=current_actor(),
    )
    return jsonify(dep.to_dict()), 201


@dependency_bp.route("/<int:dependency_id>", methods=["DELETE"])
def delete_dependency(dependency_id):
    dependency_service.delete_dependency(current_tenant_id(), dependency_id)
    return jsonify({"message": "Dependency deleted"})


@dependency_bp.route("/cleanup", methods=["POST"])
def cleanup_dependencies():
    """Remove every edge whose source or target is one of the given entities."""
    data, err = request_json()
    if err:
        return err
    for key in ("project_ids", "action_ids"):
        if key in data and not isinstance(data[key], list):
            return api_error(
                E.VALIDATION_INVALID, f"{key} must be a JSON array", details={key: "not an array"},
            )

    tenant_id = current_tenant_id()
    removed = dependency_service.delete_dependencies_for_entities(
        data.get("project_ids") or [], data.get("action_ids") or [], tenant_id=tenant_id,
    )
    db.session.commit()
    return jsonify({"removed": removed})
