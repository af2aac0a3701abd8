"""
Strategy Planner
Project duplication: copy a project as a dated duplicate or as a template.

Duplicate (as_template=False):
    every date moves forward by the same whole-day offset
    (today − source.start_date), so the project starts today and the
    spacing between its dates is preserved. Action values and notes are kept.

Template (as_template=True):
    project start = today, due = today + 30 days, every action due =
    today + 14 days. Action current values and notes are cleared.

Either way the copy starts fresh: status NYS, progress 0, not archived,
and every copied action is ``not_started``. Archived actions are not copied.
"""

import logging
from datetime import date, timedelta

from stratplan.core.exceptions import ValidationError
from stratplan.models import db
from stratplan.models.action import Action
from stratplan.models.activity import write_activity
from stratplan.models.strategy import Project
from stratplan.services import cascade
from stratplan.services.helpers.scoped_queries import get_scoped
from stratplan.services.repository import SqlAlchemyHierarchyRepository
from stratplan.services.status import ActionStatus, ProjectStatus

logger = logging.getLogger(__name__)

TEMPLATE_PROJECT_DAYS = 30
TEMPLATE_ACTION_DAYS = 14


def _shift(value: date | None, days: int) -> date | None:
    return value + timedelta(days=days) if value else None


def copy_project(source_project_id, new_title, actor, as_template=False, tenant_id=None,
                 *, notify=None) -> Project:
    """Copy a project and its non-archived actions under the same strategy.

    Raises:
        NotFoundError: source project absent (or in another tenant).
        ValidationError: new_title is blank, or the strategy is archived.
    """
    if tenant_id is not None:
        source = get_scoped(Project, source_project_id, tenant_id=tenant_id)
    else:
        source = SqlAlchemyHierarchyRepository().get_project(source_project_id)

    title = (new_title or "").strip()
    if not title:
        raise ValidationError("new_title is required", details={"new_title": "required"})
    cascade.ensure_strategy_open(
        SqlAlchemyHierarchyRepository(source.tenant_id), source.strategy_id, "copy project",
    )

    today = date.today()
    if as_template:
        day_offset = 0
        start_date = today
        due_date = today + timedelta(days=TEMPLATE_PROJECT_DAYS)
    else:
        day_offset = (today - source.start_date).days if source.start_date else 0
        start_date = _shift(source.start_date, day_offset)
        due_date = _shift(source.due_date, day_offset)

    project = Project(
        tenant_id=source.tenant_id,
        strategy_id=source.strategy_id,
        title=title,
        description=source.description,
        kpi=source.kpi,
        kpi_tracking=source.kpi_tracking,
        accountable_leaders=list(source.accountable_leaders or []),
        resources_required=source.resources_required,
        document_folder_url=source.document_folder_url,
        start_date=start_date,
        due_date=due_date,
        status=ProjectStatus.NOT_YET_STARTED.value,
        progress=0,
        is_archived=False,
        created_by=actor or "system",
    )
    db.session.add(project)
    db.session.flush()

    copied = 0
    for src in list(source.actions.filter_by(is_archived=False)):
        if as_template:
            action_due = today + timedelta(days=TEMPLATE_ACTION_DAYS)
        else:
            action_due = _shift(src.due_date, day_offset)
        db.session.add(Action(
            tenant_id=source.tenant_id,
            strategy_id=source.strategy_id,
            project_id=project.id,
            title=src.title,
            description=src.description,
            target_value=src.target_value,
            current_value=None if as_template else src.current_value,
            measurement_unit=src.measurement_unit,
            notes=None if as_template else src.notes,
            status=ActionStatus.NOT_STARTED.value,
            due_date=action_due,
            assigned_user_ids=list(src.assigned_user_ids or []),
            created_by=actor or "system",
        ))
        copied += 1

    write_activity(
        type="project_copied",
        description=f'Project "{source.title}" copied as "{title}"',
        actor=actor,
        tenant_id=source.tenant_id,
        strategy_id=source.strategy_id,
        project_id=project.id,
        details={
            "source_project_id": source.id,
            "as_template": bool(as_template),
            "day_offset": day_offset,
            "actions": copied,
        },
    )
    db.session.commit()
    logger.info(
        "Project %s copied (%s) with %d action(s)",
        source.id, "template" if as_template else "duplicate", copied,
        extra={"tenant_id": source.tenant_id, "project_id": project.id},
    )

    cascade.refresh_strategy(source.strategy_id, tenant_id=source.tenant_id, notify=notify)
    return project
