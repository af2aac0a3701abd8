"""
Strategy Planner
Hierarchy blueprint — Strategy / Project / Action endpoints.

All routes are scoped to the organization resolved by the tenant context
middleware (X-Tenant-ID). Progress values are never accepted as input;
responses that trigger a roll-up carry the roll-up's ``warnings``.

Endpoints summary:
    STRATEGY  /api/v1/strategies                              GET, POST
              /api/v1/strategies/<id>                         GET, PUT, DELETE
              /api/v1/strategies/<id>/complete                POST
              /api/v1/strategies/<id>/archive                 POST
              /api/v1/strategies/<id>/recalculate             POST
              /api/v1/strategies/<id>/projects                GET, POST
              /api/v1/strategies/<id>/activity                GET

    PROJECT   /api/v1/projects/<id>                           GET, PUT, DELETE
              /api/v1/projects/<id>/archive                   POST
              /api/v1/projects/<id>/unarchive                 POST
              /api/v1/projects/<id>/copy                      POST
              /api/v1/projects/<id>/snapshots                 GET
              /api/v1/projects/<id>/barriers                  GET, POST
              /api/v1/projects/<id>/actions                   GET

    ACTION    /api/v1/actions                                 GET, POST
              /api/v1/actions/<id>                            GET, PUT, DELETE
              /api/v1/actions/<id>/documents                  POST
              /api/v1/actions/<id>/checklist                  POST

    MISC      /api/v1/activity                                GET
              /api/v1/recalculate                             POST
"""

import logging

from flask import Blueprint, jsonify, request

from stratplan.blueprints import current_actor, current_tenant_id, pagination_args
from stratplan.services import cascade, copy_service, hierarchy_service
from stratplan.services.snapshot import SnapshotService
from stratplan.utils.errors import register_service_error_handlers
from stratplan.utils.helpers import request_json

logger = logging.getLogger(__name__)

hierarchy_bp = Blueprint("hierarchy", __name__, url_prefix="/api/v1")
register_service_error_handlers(hierarchy_bp)


def _flag(name: str) -> bool:
    return request.args.get(name, "").lower() in ("1", "true", "yes")


def _with_warnings(body: dict, result) -> dict:
    body["warnings"] = [w.to_dict() for w in result.warnings]
    return body


# ═══════════════════════════════════════════════════════════════════════════
#  STRATEGY
# ═══════════════════════════════════════════════════════════════════════════

@hierarchy_bp.route("/strategies", methods=["GET"])
def list_strategies():
    items = hierarchy_service.list_strategies(current_tenant_id(), status=request.args.get("status"))
    return jsonify({"items": [s.to_dict() for s in items], "total": len(items)})


@hierarchy_bp.route("/strategies", methods=["POST"])
def create_strategy():
    data, err = request_json()
    if err:
        return err
    strategy = hierarchy_service.create_strategy(current_tenant_id(), data, actor=current_actor())
    return jsonify(strategy.to_dict()), 201


@hierarchy_bp.route("/strategies/<int:strategy_id>", methods=["GET"])
def get_strategy(strategy_id):
    strategy = hierarchy_service.get_strategy(current_tenant_id(), strategy_id)
    return jsonify(strategy.to_dict(include_children=_flag("include_children")))


@hierarchy_bp.route("/strategies/<int:strategy_id>", methods=["PUT"])
def update_strategy(strategy_id):
    data, err = request_json()
    if err:
        return err
    strategy = hierarchy_service.update_strategy(
        current_tenant_id(), strategy_id, data, actor=current_actor(),
    )
    return jsonify(strategy.to_dict())


@hierarchy_bp.route("/strategies/<int:strategy_id>", methods=["DELETE"])
def delete_strategy(strategy_id):
    result = cascade.delete_strategy(strategy_id, current_actor(), tenant_id=current_tenant_id())
    return jsonify({
        "message": "Strategy deleted",
        "removed_dependencies": result.removed_dependencies,
    })


@hierarchy_bp.route("/strategies/<int:strategy_id>/complete", methods=["POST"])
def complete_strategy(strategy_id):
    result = cascade.complete_strategy(strategy_id, current_actor(), tenant_id=current_tenant_id())
    return jsonify(result.to_dict())


@hierarchy_bp.route("/strategies/<int:strategy_id>/archive", methods=["POST"])
def archive_strategy(strategy_id):
    result = cascade.archive_strategy(strategy_id, current_actor(), tenant_id=current_tenant_id())
    return jsonify(result.to_dict())


@hierarchy_bp.route("/strategies/<int:strategy_id>/recalculate", methods=["POST"])
def recalculate_strategy(strategy_id):
    tenant_id = current_tenant_id()
    hierarchy_service.get_strategy(tenant_id, strategy_id)
    result = cascade.refresh_strategy(strategy_id, tenant_id=tenant_id)
    return jsonify(result.to_dict())


@hierarchy_bp.route("/strategies/<int:strategy_id>/projects", methods=["GET"])
def list_strategy_projects(strategy_id):
    tenant_id = current_tenant_id()
    hierarchy_service.get_strategy(tenant_id, strategy_id)
    items = hierarchy_service.list_projects(
        tenant_id, strategy_id=strategy_id, include_archived=_flag("include_archived"),
    )
    return jsonify({"items": [p.to_dict() for p in items], "total": len(items)})


@hierarchy_bp.route("/strategies/<int:strategy_id>/projects", methods=["POST"])
def create_project(strategy_id):
    data, err = request_json()
    if err:
        return err
    project = hierarchy_service.create_project(
        current_tenant_id(), strategy_id, data, actor=current_actor(),
    )
    return jsonify(project.to_dict()), 201


@hierarchy_bp.route("/strategies/<int:strategy_id>/activity", methods=["GET"])
def strategy_activity(strategy_id):
    tenant_id = current_tenant_id()
    hierarchy_service.get_strategy(tenant_id, strategy_id)
    limit, _ = pagination_args()
    items = hierarchy_service.list_activity(tenant_id, strategy_id=strategy_id, limit=limit)
    return jsonify({"items": [a.to_dict() for a in items], "total": len(items)})


# ═══════════════════════════════════════════════════════════════════════════
#  PROJECT
# ═══════════════════════════════════════════════════════════════════════════

@hierarchy_bp.route("/projects/<int:project_id>", methods=["GET"])
def get_project(project_id):
    project = hierarchy_service.get_project(current_tenant_id(), project_id)
    return jsonify(project.to_dict(include_children=_flag("include_children")))


@hierarchy_bp.route("/projects/<int:project_id>", methods=["PUT"])
def update_project(project_id):
    data, err = request_json()
    if err:
        return err
    project, result = hierarchy_service.update_project(
        current_tenant_id(), project_id, data, actor=current_actor(),
    )
    return jsonify(_with_warnings(project.to_dict(), result))


@hierarchy_bp.route("/projects/<int:project_id>", methods=["DELETE"])
def delete_project(project_id):
    result = cascade.delete_project(project_id, current_actor(), tenant_id=current_tenant_id())
    return jsonify(_with_warnings({
        "message": "Project deleted",
        "removed_dependencies": result.removed_dependencies,
    }, result))


@hierarchy_bp.route("/projects/<int:project_id>/archive", methods=["POST"])
def archive_project(project_id):
    data, err = request_json()
    if err:
        return err
    result = cascade.archive_project(
        project_id,
        current_actor(),
        reason=data.get("reason"),
        wake_up_date=data.get("wake_up_date"),
        tenant_id=current_tenant_id(),
    )
    return jsonify(result.to_dict())


@hierarchy_bp.route("/projects/<int:project_id>/unarchive", methods=["POST"])
def unarchive_project(project_id):
    data, err = request_json()
    if err:
        return err
    result = cascade.unarchive_project(
        project_id, current_actor(), reason=data.get("reason"), tenant_id=current_tenant_id(),
    )
    return jsonify(result.to_dict())


@hierarchy_bp.route("/projects/<int:project_id>/copy", methods=["POST"])
def copy_project(project_id):
    data, err = request_json()
    if err:
        return err
    project = copy_service.copy_project(
        project_id,
        data.get("title"),
        current_actor(),
        as_template=bool(data.get("as_template", False)),
        tenant_id=current_tenant_id(),
    )
    return jsonify(project.to_dict(include_children=True)), 201


@hierarchy_bp.route("/projects/<int:project_id>/snapshots", methods=["GET"])
def list_project_snapshots(project_id):
    tenant_id = current_tenant_id()
    hierarchy_service.get_project(tenant_id, project_id)
    limit, _ = pagination_args(default_limit=100)
    items = SnapshotService.list_snapshots(project_id, "project", tenant_id=tenant_id, limit=limit)
    return jsonify({"items": [s.to_dict() for s in items], "total": len(items)})


@hierarchy_bp.route("/projects/<int:project_id>/barriers", methods=["GET"])
def list_barriers(project_id):
    project = hierarchy_service.get_project(current_tenant_id(), project_id)
    items = project.barriers.all()
    return jsonify({"items": [b.to_dict() for b in items], "total": len(items)})


@hierarchy_bp.route("/projects/<int:project_id>/barriers", methods=["POST"])
def create_barrier(project_id):
    data, err = request_json()
    if err:
        return err
    barrier = hierarchy_service.add_barrier(current_tenant_id(), project_id, data)
    return jsonify(barrier.to_dict()), 201


@hierarchy_bp.route("/projects/<int:project_id>/actions", methods=["GET"])
def list_project_actions(project_id):
    tenant_id = current_tenant_id()
    hierarchy_service.get_project(tenant_id, project_id)
    items = hierarchy_service.list_actions(
        tenant_id, project_id=project_id, include_archived=_flag("include_archived"),
    )
    return jsonify({"items": [a.to_dict() for a in items], "total": len(items)})


# ═══════════════════════════════════════════════════════════════════════════
#  ACTION
# ═══════════════════════════════════════════════════════════════════════════

@hierarchy_bp.route("/actions", methods=["GET"])
def list_actions():
    project_id = request.args.get("project_id", type=int)
    strategy_id = request.args.get("strategy_id", type=int)
    items = hierarchy_service.list_actions(
        current_tenant_id(),
        project_id=project_id,
        strategy_id=strategy_id,
        include_archived=_flag("include_archived"),
    )
    return jsonify({"items": [a.to_dict() for a in items], "total": len(items)})


@hierarchy_bp.route("/actions", methods=["POST"])
def create_action():
    data, err = request_json()
    if err:
        return err
    action, result = hierarchy_service.create_action(current_tenant_id(), data, actor=current_actor())
    return jsonify(_with_warnings(action.to_dict(), result)), 201


@hierarchy_bp.route("/actions/<int:action_id>", methods=["GET"])
def get_action(action_id):
    action = hierarchy_service.get_action(current_tenant_id(), action_id)
    return jsonify(action.to_dict())


@hierarchy_bp.route("/actions/<int:action_id>", methods=["PUT"])
def update_action(action_id):
    data, err = request_json()
    if err:
        return err
    action, result = hierarchy_service.update_action(
        current_tenant_id(), action_id, data, actor=current_actor(),
    )
    return jsonify(_with_warnings(action.to_dict(), result))


@hierarchy_bp.route("/actions/<int:action_id>", methods=["DELETE"])
def delete_action(action_id):
    result = cascade.delete_action(action_id, current_actor(), tenant_id=current_tenant_id())
    return jsonify(_with_warnings({
        "message": "Action deleted",
        "removed_dependencies": result.removed_dependencies,
    }, result))


@hierarchy_bp.route("/actions/<int:action_id>/documents", methods=["POST"])
def create_action_document(action_id):
    data, err = request_json()
    if err:
        return err
    doc = hierarchy_service.add_action_document(current_tenant_id(), action_id, data)
    return jsonify(doc.to_dict()), 201


@hierarchy_bp.route("/actions/<int:action_id>/checklist", methods=["POST"])
def create_checklist_item(action_id):
    data, err = request_json()
    if err:
        return err
    item = hierarchy_service.add_checklist_item(current_tenant_id(), action_id, data)
    return jsonify(item.to_dict()), 201


# ═══════════════════════════════════════════════════════════════════════════
#  ACTIVITY / RECONCILIATION
# ═══════════════════════════════════════════════════════════════════════════

@hierarchy_bp.route("/activity", methods=["GET"])
def list_activity():
    limit, _ = pagination_args()
    items = hierarchy_service.list_activity(
        current_tenant_id(), strategy_id=request.args.get("strategy_id", type=int), limit=limit,
    )
    return jsonify({"items": [a.to_dict() for a in items], "total": len(items)})


@hierarchy_bp.route("/recalculate", methods=["POST"])
def recalculate_all():
    """Recompute every project and strategy of the organization."""
    summary = cascade.recalculate_all(current_tenant_id())
    return jsonify(summary)
