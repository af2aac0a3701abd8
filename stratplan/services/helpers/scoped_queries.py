"""
Tenant-scoped lookups by primary key.

Every get-by-id in the planner goes through ``get_scoped`` rather than
``db.session.get``: a strategy, project or action id is only meaningful
inside one organization (or under one already-scoped parent).

    strategy = get_scoped(Strategy, strategy_id, tenant_id=tenant_id)
    action = get_scoped(Action, action_id, project_id=project.id)
    project = get_scoped_or_none(Project, action.project_id, tenant_id=tid)

A scope keyword that names a column the model does not have is logged and
ignored; if none of the given scopes applies the lookup is refused with
ValueError so an unscoped read cannot slip through.
"""

import logging

from sqlalchemy import select

from stratplan.core.exceptions import NotFoundError
from stratplan.models import db

logger = logging.getLogger(__name__)

SCOPE_FIELDS = ("tenant_id", "strategy_id", "project_id")


def _scope_filters(model, pk, scopes: dict) -> dict:
    given = {name: value for name, value in scopes.items() if value is not None}
    if not given:
        raise ValueError(
            f"{model.__name__} id={pk} requires at least one scope filter "
            f"({', '.join(SCOPE_FIELDS)}). Unscoped lookups are forbidden."
        )

    usable = {name: value for name, value in given.items() if hasattr(model, name)}
    ignored = sorted(set(given) - set(usable))
    if ignored:
        logger.warning(
            "get_scoped(%s, %s): %s is not a column of the model, filter not applied",
            model.__name__, pk, ", ".join(ignored),
        )
    if not usable:
        raise ValueError(
            f"{model.__name__} id={pk}: none of {sorted(given)} is a column of "
            f"{model.__name__}. Refusing to perform an unscoped lookup."
        )
    return usable


def get_scoped(model, pk: int, *, tenant_id: int | None = None,
               strategy_id: int | None = None, project_id: int | None = None):
    """Return the row with primary key *pk* inside the given scope.

    Raises:
        ValueError: no usable scope was given.
        NotFoundError: the row is missing or lives outside the scope; the
            two cases raise the same error.
    """
    filters = _scope_filters(
        model, pk,
        {"tenant_id": tenant_id, "strategy_id": strategy_id, "project_id": project_id},
    )
    stmt = select(model).where(model.id == pk).filter_by(**filters)
    row = db.session.execute(stmt).scalar_one_or_none()
    if row is None:
        logger.debug("%s id=%s not found in scope %s", model.__name__, pk, filters)
        raise NotFoundError(resource=model.__name__, resource_id=pk)
    return row


def get_scoped_or_none(model, pk: int, **scopes):
    """``get_scoped`` that returns None for a missing row; scope errors still raise."""
    try:
        return get_scoped(model, pk, **scopes)
    except NotFoundError:
        return None
