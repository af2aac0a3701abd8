"""
Hierarchy Service: Strategy / Project / Action CRUD.

Every mutation that can move an aggregate is followed by the matching
cascade trigger, so progress and strategy status never go stale through
this module. Aggregate fields (``progress`` on both levels, strategy
auto-status) are rejected as input.

Functions:
    - create_strategy / update_strategy / get_strategy / list_strategies
    - create_project / update_project / get_project / list_projects
    - create_action / update_action / get_action / list_actions
    - add_action_document / add_checklist_item / add_barrier
    - list_activity

Deletes, archive/unarchive and strategy completion live in ``cascade``.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import select

from stratplan.core.exceptions import CrossTenantViolationError, NotFoundError, ValidationError
from stratplan.models import db
from stratplan.models.action import Action, ActionChecklistItem, ActionDocument
from stratplan.models.activity import Activity, write_activity
from stratplan.models.strategy import Barrier, Project, Strategy
from stratplan.services import cascade
from stratplan.services.helpers.scoped_queries import get_scoped
from stratplan.services.notification import NotificationService, notify_status_change
from stratplan.services.status import (
    ActionStatus,
    ProjectStatus,
    StrategyStatus,
    normalize_action_status,
    normalize_project_status,
    normalize_strategy_status,
)
from stratplan.utils.helpers import parse_date

logger = logging.getLogger(__name__)

_DERIVED_FIELDS = ("progress",)

_STRATEGY_FIELDS = ("description", "goal", "readiness_rating", "risk_exposure", "color_code")
_PROJECT_FIELDS = ("description", "kpi", "kpi_tracking", "resources_required", "document_folder_url")
_ACTION_FIELDS = ("description", "target_value", "current_value", "measurement_unit", "notes")


# ── Input helpers ────────────────────────────────────────────────────────────


def _reject_derived(data: dict) -> None:
    for name in _DERIVED_FIELDS:
        if name in data:
            raise ValidationError(
                f"{name} is calculated from child items and cannot be set",
                details={name: "read-only"},
            )


def _title(data: dict, required: bool = True) -> str | None:
    if "title" not in data and not required:
        return None
    title = str(data.get("title") or "").strip()
    if not title:
        raise ValidationError("title is required", details={"title": "required"})
    return title[:200]


def _date(data: dict, name: str):
    raw = data.get(name)
    if raw in (None, ""):
        return None
    value = parse_date(raw)
    if value is None:
        raise ValidationError(f"{name} is not a valid date", details={name: raw})
    return value


def _user_ids(data: dict, name: str) -> list[str]:
    value = data.get(name) or []
    if not isinstance(value, list):
        raise ValidationError(f"{name} must be an array", details={name: "not an array"})
    return [str(v) for v in value if v not in (None, "")]


def _int_value(value, name: str) -> int:
    """Parse a client-supplied integer (id, order); ValidationError when malformed."""
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be an integer", details={name: "invalid id"})
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be an integer", details={name: "invalid id"})


def _int_field(data: dict, name: str, default: int = 0) -> int:
    value = data.get(name)
    if value in (None, ""):
        return default
    return _int_value(value, name)


def _load_for_assignment(model, pk, tenant_id):
    """Load a parent row for an assignment; a foreign tenant is a violation."""
    obj = db.session.get(model, pk)
    if obj is None:
        raise NotFoundError(resource=model.__name__, resource_id=pk)
    if not obj.belongs_to(tenant_id):
        logger.warning(
            "Rejected cross-tenant assignment to %s id=%s", model.__name__, pk,
            extra={"tenant_id": tenant_id},
        )
        raise CrossTenantViolationError(
            f"{model.__name__} belongs to another organization",
            tenant_ids=(tenant_id, obj.tenant_id),
        )
    return obj


def _notify_safely(notify, **kwargs) -> None:
    try:
        notify_status_change(notify, **kwargs)
    except Exception:
        db.session.rollback()
        logger.exception("Notify callback failed for %s", kwargs.get("event_type"))


# ── Strategy ─────────────────────────────────────────────────────────────────


def create_strategy(tenant_id: int, data: dict, actor: str = "system") -> Strategy:
    """Create an Active strategy with progress 0."""
    _reject_derived(data)
    title = _title(data)
    if "status" in data:
        try:
            initial = normalize_strategy_status(data["status"])
        except ValueError as exc:
            raise ValidationError(str(exc), details={"status": data["status"]})
        if initial is not StrategyStatus.ACTIVE:
            raise ValidationError("New strategies start Active", details={"status": data["status"]})

    strategy = Strategy(
        tenant_id=tenant_id,
        title=title,
        status=StrategyStatus.ACTIVE.value,
        progress=0,
        start_date=_date(data, "start_date"),
        target_date=_date(data, "target_date"),
        display_order=_int_field(data, "display_order"),
        created_by=actor or "system",
        **{f: data.get(f) for f in _STRATEGY_FIELDS if f in data},
    )
    db.session.add(strategy)
    db.session.flush()
    write_activity(
        type="strategy_created",
        description=f'Strategy "{title}" created',
        actor=actor,
        tenant_id=tenant_id,
        strategy_id=strategy.id,
    )
    db.session.commit()
    logger.info(
        "Strategy created",
        extra={"tenant_id": tenant_id, "strategy_id": strategy.id},
    )
    return strategy


def get_strategy(tenant_id: int, strategy_id: int) -> Strategy:
    return get_scoped(Strategy, strategy_id, tenant_id=tenant_id)


def list_strategies(tenant_id: int, status: str | None = None) -> list[Strategy]:
    stmt = Strategy.for_tenant(tenant_id)
    if status:
        try:
            wanted = normalize_strategy_status(status)
        except ValueError as exc:
            raise ValidationError(str(exc), details={"status": status})
        stmt = stmt.where(Strategy.status == wanted.value)
    stmt = stmt.order_by(Strategy.display_order, Strategy.id)
    return list(db.session.execute(stmt).scalars())


def update_strategy(tenant_id: int, strategy_id: int, data: dict, actor: str = "system") -> Strategy:
    """Update descriptive fields.

    Status moves only through complete_strategy / archive_strategy and the
    automatic roll-up, so a differing ``status`` is rejected.
    """
    _reject_derived(data)
    strategy = get_scoped(Strategy, strategy_id, tenant_id=tenant_id)
    if "status" in data:
        try:
            wanted = normalize_strategy_status(data["status"])
        except ValueError as exc:
            raise ValidationError(str(exc), details={"status": data["status"]})
        if wanted.value != strategy.status:
            raise ValidationError(
                "Use the complete or archive operation to change strategy status",
                details={"status": data["status"]},
            )

    title = _title(data, required=False)
    if title is not None:
        strategy.title = title
    for name in _STRATEGY_FIELDS:
        if name in data:
            setattr(strategy, name, data.get(name))
    for name in ("start_date", "target_date"):
        if name in data:
            setattr(strategy, name, _date(data, name))
    if "display_order" in data:
        strategy.display_order = _int_field(data, "display_order")

    db.session.commit()
    logger.info("Strategy updated", extra={"tenant_id": tenant_id, "strategy_id": strategy.id})
    return strategy


# ── Project ──────────────────────────────────────────────────────────────────


def _project_status(raw) -> str:
    try:
        return normalize_project_status(raw).value
    except ValueError as exc:
        raise ValidationError(str(exc), details={"status": raw})


def create_project(tenant_id: int, strategy_id: int, data: dict, actor: str = "system",
                   *, notify=None) -> Project:
    """Create a project under a non-archived strategy and roll the strategy up."""
    _reject_derived(data)
    title = _title(data)
    strategy = _load_for_assignment(Strategy, strategy_id, tenant_id)
    if strategy.status == StrategyStatus.ARCHIVED.value:
        raise ValidationError("Cannot add projects to an archived strategy")
    status = _project_status(data.get("status") or ProjectStatus.NOT_YET_STARTED)

    project = Project(
        tenant_id=tenant_id,
        strategy_id=strategy.id,
        title=title,
        status=status,
        progress=0,
        start_date=_date(data, "start_date"),
        due_date=_date(data, "due_date"),
        accountable_leaders=_user_ids(data, "accountable_leaders"),
        created_by=actor or "system",
        **{f: data.get(f) for f in _PROJECT_FIELDS if f in data},
    )
    db.session.add(project)
    db.session.flush()
    write_activity(
        type="project_created",
        description=f'Project "{title}" created',
        actor=actor,
        tenant_id=tenant_id,
        strategy_id=strategy.id,
        project_id=project.id,
    )
    db.session.commit()
    logger.info("Project created", extra={"tenant_id": tenant_id, "project_id": project.id})

    cascade.refresh_strategy(strategy.id, tenant_id=tenant_id, notify=notify)
    return project


def get_project(tenant_id: int, project_id: int) -> Project:
    return get_scoped(Project, project_id, tenant_id=tenant_id)


def list_projects(tenant_id: int, strategy_id: int | None = None,
                  include_archived: bool = False) -> list[Project]:
    stmt = Project.for_tenant(tenant_id)
    if strategy_id is not None:
        stmt = stmt.where(Project.strategy_id == strategy_id)
    if not include_archived:
        stmt = stmt.where(Project.is_archived.is_(False))
    return list(db.session.execute(stmt.order_by(Project.id)).scalars())


def update_project(tenant_id: int, project_id: int, data: dict, actor: str = "system",
                   *, notify=None) -> tuple[Project, "cascade.CascadeResult"]:
    """Update a project, then recompute it and its strategy.

    A status change notifies the project's accountable leaders.
    """
    _reject_derived(data)
    project = get_scoped(Project, project_id, tenant_id=tenant_id)
    if "strategy_id" in data and _int_value(data["strategy_id"], "strategy_id") != project.strategy_id:
        raise ValidationError("strategy_id cannot be changed", details={"strategy_id": "read-only"})
    if project.is_archived:
        raise ValidationError("Archived projects are read-only; unarchive first")

    old_status = project.status
    if "status" in data:
        project.status = _project_status(data["status"])
    title = _title(data, required=False)
    if title is not None:
        project.title = title
    for name in _PROJECT_FIELDS:
        if name in data:
            setattr(project, name, data.get(name))
    for name in ("start_date", "due_date"):
        if name in data:
            setattr(project, name, _date(data, name))
    if "accountable_leaders" in data:
        project.accountable_leaders = _user_ids(data, "accountable_leaders")

    db.session.commit()
    logger.info("Project updated", extra={"tenant_id": tenant_id, "project_id": project.id})

    if project.status != old_status:
        _notify_safely(
            notify or NotificationService.notifier_for(tenant_id),
            event_type="project_status_changed",
            entity_id=project.id,
            title=project.title,
            old_status=old_status,
            new_status=project.status,
            recipients=project.accountable_leaders,
        )

    result = cascade.on_project_changed(project.id, tenant_id=tenant_id, notify=notify)
    return project, result


def add_barrier(tenant_id: int, project_id: int, data: dict) -> Barrier:
    project = get_scoped(Project, project_id, tenant_id=tenant_id)
    barrier = Barrier(
        tenant_id=tenant_id,
        project_id=project.id,
        title=_title(data),
        description=data.get("description") or "",
        severity=data.get("severity") or "medium",
        status=data.get("status") or "active",
        owner=data.get("owner"),
        target_resolution_date=_date(data, "target_resolution_date"),
    )
    db.session.add(barrier)
    db.session.commit()
    return barrier


# ── Action ───────────────────────────────────────────────────────────────────


def _action_status(raw) -> ActionStatus:
    try:
        return normalize_action_status(raw)
    except ValueError as exc:
        raise ValidationError(str(exc), details={"status": raw})


def _apply_status(action: Action, new_status: ActionStatus) -> bool:
    """Set status and maintain achieved_date. Returns True on entry into achieved."""
    old_status = normalize_action_status(action.status, default=ActionStatus.NOT_STARTED)
    action.status = new_status.value
    if new_status is ActionStatus.ACHIEVED and old_status is not ActionStatus.ACHIEVED:
        action.achieved_date = datetime.now(timezone.utc)
        return True
    if new_status is not ActionStatus.ACHIEVED:
        action.achieved_date = None
    return False


def _resolve_parents(tenant_id: int, data: dict, current: Action | None = None):
    """Return (strategy, project) for an action, enforcing tenant and hierarchy."""
    project = None
    project_id = data.get("project_id", current.project_id if current else None)
    if project_id is not None:
        project = _load_for_assignment(Project, _int_value(project_id, "project_id"), tenant_id)
        if project.is_archived:
            raise ValidationError("Cannot assign actions to an archived project")

    strategy_id = data.get("strategy_id")
    if strategy_id is None:
        if project is not None:
            strategy_id = project.strategy_id
        elif current is not None:
            strategy_id = current.strategy_id
    if strategy_id is None:
        raise ValidationError("strategy_id or project_id is required",
                              details={"strategy_id": "required"})
    strategy = _load_for_assignment(Strategy, _int_value(strategy_id, "strategy_id"), tenant_id)
    if project is not None and project.strategy_id != strategy.id:
        raise ValidationError("Project does not belong to the given strategy",
                              details={"project_id": project.id, "strategy_id": strategy.id})
    return strategy, project


def _notify_achieved(notify, tenant_id, action: Action) -> None:
    _notify_safely(
        notify or NotificationService.notifier_for(tenant_id),
        event_type="action_achieved",
        entity_id=action.id,
        title=action.title,
        old_status=None,
        new_status=ActionStatus.ACHIEVED,
        recipients=action.assigned_user_ids,
    )


def create_action(tenant_id: int, data: dict, actor: str = "system",
                  *, notify=None) -> tuple[Action, "cascade.CascadeResult"]:
    """Create an action and roll its project and strategy up."""
    title = _title(data)
    strategy, project = _resolve_parents(tenant_id, data)
    status = _action_status(data.get("status") or ActionStatus.NOT_STARTED)

    action = Action(
        tenant_id=tenant_id,
        strategy_id=strategy.id,
        project_id=project.id if project else None,
        title=title,
        due_date=_date(data, "due_date"),
        assigned_user_ids=_user_ids(data, "assigned_user_ids"),
        created_by=actor or "system",
        **{f: data.get(f) for f in _ACTION_FIELDS if f in data},
    )
    entered_achieved = _apply_status(action, status)
    db.session.add(action)
    db.session.flush()
    write_activity(
        type="action_created",
        description=f'Action "{title}" created',
        actor=actor,
        tenant_id=tenant_id,
        strategy_id=strategy.id,
        project_id=action.project_id,
        action_id=action.id,
    )
    db.session.commit()
    logger.info("Action created", extra={"tenant_id": tenant_id, "action_id": action.id})

    if entered_achieved:
        _notify_achieved(notify, tenant_id, action)
    result = cascade.on_action_changed(action.id, tenant_id=tenant_id, notify=notify)
    return action, result


def get_action(tenant_id: int, action_id: int) -> Action:
    return get_scoped(Action, action_id, tenant_id=tenant_id)


def list_actions(tenant_id: int, project_id: int | None = None, strategy_id: int | None = None,
                 include_archived: bool = False) -> list[Action]:
    stmt = Action.for_tenant(tenant_id)
    if project_id is not None:
        stmt = stmt.where(Action.project_id == project_id)
    if strategy_id is not None:
        stmt = stmt.where(Action.strategy_id == strategy_id)
    if not include_archived:
        stmt = stmt.where(Action.is_archived.is_(False))
    return list(db.session.execute(stmt.order_by(Action.id)).scalars())


def update_action(tenant_id: int, action_id: int, data: dict, actor: str = "system",
                  *, notify=None) -> tuple[Action, "cascade.CascadeResult"]:
    """Update an action, maintain achieved_date and roll up.

    When the action moves to another project both the old and the new
    project are recomputed.
    """
    action = get_scoped(Action, action_id, tenant_id=tenant_id)
    if action.is_archived:
        raise ValidationError("Archived actions are read-only")

    old_project_id = action.project_id
    strategy, project = _resolve_parents(tenant_id, data, current=action)
    new_status = _action_status(data["status"]) if "status" in data else None

    title = _title(data, required=False)
    if title is not None:
        action.title = title
    for name in _ACTION_FIELDS:
        if name in data:
            setattr(action, name, data.get(name))
    if "due_date" in data:
        action.due_date = _date(data, "due_date")
    if "assigned_user_ids" in data:
        action.assigned_user_ids = _user_ids(data, "assigned_user_ids")
    action.strategy_id = strategy.id
    action.project_id = project.id if project else None

    entered_achieved = _apply_status(action, new_status) if new_status is not None else False
    if entered_achieved:
        write_activity(
            type="action_achieved",
            description=f'Action "{action.title}" achieved',
            actor=actor,
            tenant_id=tenant_id,
            strategy_id=action.strategy_id,
            project_id=action.project_id,
            action_id=action.id,
        )
    db.session.commit()
    logger.info("Action updated", extra={"tenant_id": tenant_id, "action_id": action.id})

    if entered_achieved:
        _notify_achieved(notify, tenant_id, action)
    result = cascade.on_action_changed(action.id, tenant_id=tenant_id, notify=notify)
    if old_project_id is not None and old_project_id != action.project_id:
        previous = cascade.on_project_changed(old_project_id, tenant_id=tenant_id, notify=notify)
        result.warnings.extend(previous.warnings)
    return action, result


def add_action_document(tenant_id: int, action_id: int, data: dict) -> ActionDocument:
    action = get_scoped(Action, action_id, tenant_id=tenant_id)
    name = str(data.get("name") or "").strip()
    url = str(data.get("url") or "").strip()
    if not name or not url:
        raise ValidationError("name and url are required", details={"name": name, "url": url})
    doc = ActionDocument(tenant_id=tenant_id, action_id=action.id, name=name[:200], url=url[:1000])
    db.session.add(doc)
    db.session.commit()
    return doc


def add_checklist_item(tenant_id: int, action_id: int, data: dict) -> ActionChecklistItem:
    action = get_scoped(Action, action_id, tenant_id=tenant_id)
    title = _title(data)
    item = ActionChecklistItem(
        tenant_id=tenant_id,
        action_id=action.id,
        title=title,
        is_completed=bool(data.get("is_completed", False)),
        order_index=_int_field(data, "order_index", default=action.checklist_items.count()),
    )
    db.session.add(item)
    db.session.commit()
    return item


# ── Activity feed ────────────────────────────────────────────────────────────


def list_activity(tenant_id: int, strategy_id: int | None = None, limit: int = 50) -> list[Activity]:
    stmt = select(Activity).where(Activity.tenant_id == tenant_id)
    if strategy_id is not None:
        stmt = stmt.where(Activity.strategy_id == strategy_id)
    stmt = stmt.order_by(Activity.created_at.desc(), Activity.id.desc()).limit(limit)
    return list(db.session.execute(stmt).scalars())
