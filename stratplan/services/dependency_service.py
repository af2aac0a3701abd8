"""
Strategy Planner
Dependency service: tenant-checked edge creation and garbage collection.

Dependency edges are advisory links between projects and actions. An edge
must never span two organizations, and it is removed as soon as either
endpoint is archived, deleted or finalized by a strategy completion.

Transaction handling: ``create_dependency`` and ``delete_dependency``
commit. ``delete_dependencies_for_entities`` only flushes, so the archive,
complete and delete cascades can run it inside their own unit of work.
"""

import logging

from sqlalchemy import and_, delete, or_, select
from sqlalchemy.exc import IntegrityError

from stratplan.core.exceptions import (
    ConflictError,
    CrossTenantViolationError,
    NotFoundError,
    ValidationError,
)
from stratplan.models import db
from stratplan.models.action import Action
from stratplan.models.dependency import DEPENDENCY_ENTITY_TYPES, Dependency
from stratplan.models.strategy import Project
from stratplan.services.helpers.scoped_queries import get_scoped

logger = logging.getLogger(__name__)

_ENDPOINT_MODELS = {"project": Project, "action": Action}


def coerce_id_list(value, field: str) -> list[int]:
    """Validate that *value* is a list of integer ids.

    Raises:
        ValidationError: if *value* is not a list/tuple/set, or an element is
            not an integer id.
    """
    if value is None:
        return []
    if isinstance(value, (str, bytes, dict)) or not isinstance(value, (list, tuple, set, frozenset)):
        raise ValidationError(f"{field} must be an array of ids", details={field: "not an array"})
    ids = []
    for item in value:
        if isinstance(item, bool) or not isinstance(item, int):
            try:
                item = int(str(item).strip())
            except ValueError:
                raise ValidationError(
                    f"{field} contains a non-integer id: {item!r}",
                    details={field: "invalid id"},
                )
        ids.append(item)
    return ids


# ── Garbage collection ───────────────────────────────────────────────────────


def delete_dependencies_for_entities(project_ids, action_ids, tenant_id=None) -> int:
    """Remove every edge touching any of the given projects or actions.

    An edge matches when its source OR its target is one of the given
    (type, id) pairs. With *tenant_id* the delete is restricted to that
    organization. Both sets empty ⇒ 0 and no statement is issued.
    Calling twice with the same ids removes nothing the second time.

    Returns:
        Number of edges removed.
    """
    project_ids = sorted(set(coerce_id_list(project_ids, "project_ids")))
    action_ids = sorted(set(coerce_id_list(action_ids, "action_ids")))
    if not project_ids and not action_ids:
        return 0

    conditions = []
    for entity_type, ids in (("project", project_ids), ("action", action_ids)):
        if not ids:
            continue
        conditions.append(and_(Dependency.source_type == entity_type, Dependency.source_id.in_(ids)))
        conditions.append(and_(Dependency.target_type == entity_type, Dependency.target_id.in_(ids)))

    stmt = delete(Dependency).where(or_(*conditions))
    if tenant_id is not None:
        stmt = stmt.where(Dependency.tenant_id == tenant_id)
    result = db.session.execute(stmt.execution_options(synchronize_session="fetch"))
    db.session.flush()

    removed = result.rowcount or 0
    logger.info(
        "Removed %d dependency edge(s) for %d project(s) / %d action(s)",
        removed, len(project_ids), len(action_ids),
        extra={"tenant_id": tenant_id},
    )
    return removed


# ── CRUD ─────────────────────────────────────────────────────────────────────


def _load_endpoint(entity_type: str, entity_id: int):
    # Unscoped; create_dependency compares tenants after both loads.
    obj = db.session.get(_ENDPOINT_MODELS[entity_type], entity_id)
    if obj is None:
        raise NotFoundError(resource=entity_type.capitalize(), resource_id=entity_id)
    return obj


def create_dependency(tenant_id, source_type, source_id, target_type, target_id,
                      created_by="system") -> Dependency:
    """Create a dependency edge inside one organization.

    Raises:
        ValidationError: unknown endpoint type or self-reference.
        NotFoundError: either endpoint does not exist.
        CrossTenantViolationError: endpoints do not both belong to *tenant_id*.
        ConflictError: the same edge already exists.
    """
    source_type = (source_type or "").strip().lower()
    target_type = (target_type or "").strip().lower()
    for field, value in (("source_type", source_type), ("target_type", target_type)):
        if value not in DEPENDENCY_ENTITY_TYPES:
            raise ValidationError(
                f"{field} must be one of {sorted(DEPENDENCY_ENTITY_TYPES)}",
                details={field: value},
            )
    if source_type == target_type and source_id == target_id:
        raise ValidationError("An entity cannot depend on itself")

    source = _load_endpoint(source_type, source_id)
    target = _load_endpoint(target_type, target_id)

    tenants = {tenant_id, source.tenant_id, target.tenant_id}
    if len(tenants) > 1:
        logger.warning(
            "Rejected cross-tenant dependency %s/%s -> %s/%s",
            source_type, source_id, target_type, target_id,
            extra={"tenant_id": tenant_id},
        )
        raise CrossTenantViolationError(
            "Dependency endpoints must belong to the same organization",
            tenant_ids=tuple(sorted(t for t in tenants if t is not None)),
        )

    existing = db.session.execute(
        select(Dependency).where(
            Dependency.source_type == source_type,
            Dependency.source_id == source_id,
            Dependency.target_type == target_type,
            Dependency.target_id == target_id,
        )
    ).scalar_one_or_none()
    if existing is not None:
        raise ConflictError(
            "Dependency", "edge", f"{source_type}/{source_id}->{target_type}/{target_id}",
        )

    dep = Dependency(
        tenant_id=tenant_id,
        source_type=source_type,
        source_id=source_id,
        target_type=target_type,
        target_id=target_id,
        created_by=created_by or "system",
    )
    db.session.add(dep)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(
            "Dependency", "edge", f"{source_type}/{source_id}->{target_type}/{target_id}",
        )

    logger.info(
        "Dependency created %s/%s -> %s/%s",
        source_type, source_id, target_type, target_id,
        extra={"tenant_id": tenant_id},
    )
    return dep


def list_dependencies(tenant_id, entity_type=None, entity_id=None) -> list[Dependency]:
    """Edges of an organization, optionally only those touching one entity."""
    stmt = Dependency.for_tenant(tenant_id)
    entity_type = (entity_type or "").strip().lower()
    if entity_type and entity_id is not None:
        stmt = stmt.where(or_(
            and_(Dependency.source_type == entity_type, Dependency.source_id == entity_id),
            and_(Dependency.target_type == entity_type, Dependency.target_id == entity_id),
        ))
    stmt = stmt.order_by(Dependency.id)
    return list(db.session.execute(stmt).scalars())


def delete_dependency(tenant_id, dependency_id) -> None:
    dep = get_scoped(Dependency, dependency_id, tenant_id=tenant_id)
    db.session.delete(dep)
    db.session.commit()
    logger.info("Dependency %s deleted", dependency_id, extra={"tenant_id": tenant_id})
