"""
Strategy Planner
Cascade service: progress roll-up and lifecycle cascades.

Roll-up (bottom-up, strictly sequential):
    action changed  → project progress recomputed + committed
                    → strategy progress/status recomputed + committed
    project changed → project, then strategy
    strategy status → strategy only

The project commit always happens before the strategy reads its children,
so a strategy never aggregates stale project values.

Failure policy:
    - Loading the triggering entity fails  → NotFoundError propagates.
    - An ancestor roll-up fails after the triggering write was committed →
      the write stays, the error is logged at WARNING and returned as an
      ``AggregationWarning`` on the CascadeResult. ``recalculate_all``
      repairs any drift left behind.

Lifecycle cascades:
    archive_project / unarchive_project   snapshot + action flags + dependency GC
    complete_strategy / archive_strategy  status + dependency GC over the subtree
    delete_action / delete_project / delete_strategy

Aggregate fields (Project.progress, Strategy.progress, Strategy.status
auto-transitions) are written from this module only.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from stratplan.core.exceptions import AggregationWarning, ValidationError
from stratplan.models.activity import write_activity
from stratplan.models.snapshot import ArchiveSnapshot
from stratplan.services.dependency_service import delete_dependencies_for_entities
from stratplan.services.notification import (
    NotificationService,
    notify_progress_milestone,
    notify_status_change,
    unique_recipients,
)
from stratplan.services.progress import (
    compute_project_progress,
    compute_strategy_progress,
    evaluate_strategy_status,
)
from stratplan.services.repository import HierarchyRepository, SqlAlchemyHierarchyRepository
from stratplan.services.snapshot import SnapshotService
from stratplan.services.status import StrategyStatus
from stratplan.utils.helpers import parse_date

logger = logging.getLogger(__name__)


@dataclass
class CascadeResult:
    """Outcome of one cascade: the touched entities plus non-fatal warnings."""

    action: object | None = None
    project: object | None = None
    strategy: object | None = None
    snapshot: ArchiveSnapshot | None = None
    removed_dependencies: int = 0
    warnings: list[AggregationWarning] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.warnings

    def to_dict(self) -> dict:
        return {
            "action": self.action.to_dict() if self.action is not None else None,
            "project": self.project.to_dict() if self.project is not None else None,
            "strategy": self.strategy.to_dict() if self.strategy is not None else None,
            "snapshot": self.snapshot.to_dict() if self.snapshot is not None else None,
            "removed_dependencies": self.removed_dependencies,
            "warnings": [w.to_dict() for w in self.warnings],
        }


# ── Plumbing ─────────────────────────────────────────────────────────────────


def _repo(repo: HierarchyRepository | None, tenant_id) -> HierarchyRepository:
    return repo if repo is not None else SqlAlchemyHierarchyRepository(tenant_id)


def _guarded(notify, tenant_id, repo: HierarchyRepository):
    """Wrap the notify callback so a delivery failure never undoes a roll-up."""
    target = notify if notify is not None else NotificationService.notifier_for(tenant_id)

    def _call(event_type, entity_id, title, old_value, new_value, recipient_ids):
        try:
            target(event_type, entity_id, title, old_value, new_value, recipient_ids)
        except Exception:
            repo.rollback()
            logger.exception(
                "Notify callback failed for %s on entity %s", event_type, entity_id,
                extra={"tenant_id": tenant_id},
            )

    return _call


def _warn(result: CascadeResult, repo: HierarchyRepository, entity_type: str,
          entity_id, exc: Exception, tenant_id) -> None:
    repo.rollback()
    warning = AggregationWarning(entity_type, entity_id, str(exc) or exc.__class__.__name__)
    result.warnings.append(warning)
    logger.warning(
        "%s roll-up failed after committed child write: %s",
        entity_type.capitalize(), warning.message,
        extra={"tenant_id": tenant_id, f"{entity_type}_id": entity_id},
        exc_info=True,
    )


def _now():
    return datetime.now(timezone.utc)


def _strategy_recipients(repo: HierarchyRepository, strategy_id) -> list[str]:
    leaders = []
    for project in repo.list_projects(strategy_id):
        leaders.extend(project.accountable_leaders or [])
    return unique_recipients(leaders)


# ── Recompute steps ──────────────────────────────────────────────────────────


def _recompute_project(repo: HierarchyRepository, project, notify) -> int:
    old_progress = int(project.progress or 0)
    new_progress = compute_project_progress(repo.action_states(project.id))
    repo.save_project_progress(project, new_progress)
    logger.info(
        "Project progress %d → %d", old_progress, new_progress,
        extra={"tenant_id": project.tenant_id, "project_id": project.id},
    )
    if notify is not None and new_progress != old_progress:
        notify_progress_milestone(
            notify,
            project_id=project.id,
            title=project.title,
            old_progress=old_progress,
            new_progress=new_progress,
            recipients=project.accountable_leaders,
        )
    return new_progress


def _recompute_strategy(repo: HierarchyRepository, strategy, notify) -> None:
    current = repo.strategy_status(strategy)
    if current is StrategyStatus.ARCHIVED:
        logger.debug(
            "Strategy is archived; roll-up skipped",
            extra={"tenant_id": strategy.tenant_id, "strategy_id": strategy.id},
        )
        return

    states = repo.project_states(strategy.id)
    avg = compute_strategy_progress(states)
    new_status = evaluate_strategy_status(current, avg, [s.status for s in states])

    if new_status is not current:
        write_activity(
            type="strategy_completed" if new_status is StrategyStatus.COMPLETED else "strategy_reopened",
            description=f'Strategy "{strategy.title}" moved from {current.value} to {new_status.value}',
            tenant_id=strategy.tenant_id,
            strategy_id=strategy.id,
            details={"progress": avg, "automatic": True},
        )
        if new_status is StrategyStatus.COMPLETED and strategy.completion_date is None:
            strategy.completion_date = _now()

    repo.save_strategy_aggregate(strategy, avg, new_status)
    logger.info(
        "Strategy progress %d, status %s", avg, new_status.value,
        extra={"tenant_id": strategy.tenant_id, "strategy_id": strategy.id},
    )
    if notify is not None and new_status is not current:
        notify_status_change(
            notify,
            event_type="strategy_status_changed",
            entity_id=strategy.id,
            title=strategy.title,
            old_status=current,
            new_status=new_status,
            recipients=_strategy_recipients(repo, strategy.id),
        )


def _roll_up_strategy(repo, strategy_id, result: CascadeResult, notify, tenant_id) -> None:
    try:
        strategy = repo.get_strategy(strategy_id)
        _recompute_strategy(repo, strategy, notify)
        result.strategy = strategy
    except Exception as exc:
        _warn(result, repo, "strategy", strategy_id, exc, tenant_id)


def _roll_up_project(repo, project_id, result: CascadeResult, notify, tenant_id) -> None:
    try:
        project = repo.get_project(project_id)
        _recompute_project(repo, project, notify)
        result.project = project
    except Exception as exc:
        _warn(result, repo, "project", project_id, exc, tenant_id)
        return
    _roll_up_strategy(repo, project.strategy_id, result, notify, tenant_id)


# ── Roll-up triggers ─────────────────────────────────────────────────────────


def on_action_changed(action_id, *, tenant_id=None, repo=None, notify=None) -> CascadeResult:
    """Roll an action change up to its project and strategy.

    The action write itself must already be committed by the caller.
    Unassigned actions (no project) do not feed any aggregate.
    """
    repo = _repo(repo, tenant_id)
    action = repo.get_action(action_id)
    result = CascadeResult(action=action)
    if action.project_id is None:
        return result
    notify = _guarded(notify, action.tenant_id, repo)
    _roll_up_project(repo, action.project_id, result, notify, action.tenant_id)
    return result


def on_project_changed(project_id, *, tenant_id=None, repo=None, notify=None) -> CascadeResult:
    """Recompute the project, then its strategy.

    The project's own recompute is part of the primary operation and its
    failure propagates; only the strategy step is best-effort.
    """
    repo = _repo(repo, tenant_id)
    project = repo.get_project(project_id)
    notify = _guarded(notify, project.tenant_id, repo)
    _recompute_project(repo, project, notify)
    result = CascadeResult(project=project)
    _roll_up_strategy(repo, project.strategy_id, result, notify, project.tenant_id)
    return result


def on_strategy_status_changed(strategy_id, *, tenant_id=None, repo=None, notify=None) -> CascadeResult:
    """Recompute progress and re-evaluate the auto status of one strategy."""
    repo = _repo(repo, tenant_id)
    strategy = repo.get_strategy(strategy_id)
    notify = _guarded(notify, strategy.tenant_id, repo)
    _recompute_strategy(repo, strategy, notify)
    return CascadeResult(strategy=strategy)


def recalculate_all(tenant_id=None, *, repo=None, notify=None) -> dict:
    """Recompute every project, then every strategy.

    Reconciliation path for aggregates left stale by an AggregationWarning.
    No notifications are sent unless *notify* is given. A failure on one
    entity is logged and the pass continues with the next one.
    """
    repo = _repo(repo, tenant_id)
    if notify is not None:
        notify = _guarded(notify, tenant_id, repo)
    result = CascadeResult()
    projects = strategies = 0
    for strategy in repo.list_strategies():
        for project in repo.list_projects(strategy.id):
            try:
                _recompute_project(repo, project, notify)
                projects += 1
            except Exception as exc:
                _warn(result, repo, "project", project.id, exc, project.tenant_id)
        try:
            _recompute_strategy(repo, strategy, notify)
            strategies += 1
        except Exception as exc:
            _warn(result, repo, "strategy", strategy.id, exc, strategy.tenant_id)

    logger.info(
        "Recalculated %d project(s) and %d strategy(ies), %d warning(s)",
        projects, strategies, len(result.warnings),
        extra={"tenant_id": tenant_id},
    )
    return {
        "projects": projects,
        "strategies": strategies,
        "warnings": [w.to_dict() for w in result.warnings],
    }


# ── Archive / unarchive ──────────────────────────────────────────────────────


def ensure_strategy_open(repo: HierarchyRepository, strategy_id, operation: str):
    """Return the strategy, or raise ValidationError when it is Archived."""
    strategy = repo.get_strategy(strategy_id)
    if repo.strategy_status(strategy) is StrategyStatus.ARCHIVED:
        raise ValidationError(
            f"Cannot {operation}: strategy is archived",
            details={"strategy_id": strategy.id, "status": strategy.status},
        )
    return strategy


def _project_subtree(project, actions) -> dict:
    return {
        "project": project.to_dict(),
        "actions": [a.to_dict() for a in actions],
    }


def archive_project(project_id, actor, reason=None, wake_up_date=None, *,
                    tenant_id=None, repo=None, notify=None) -> CascadeResult:
    """Archive a project and every action under it.

    Order: snapshot(kind=archive) → archive actions → dependency GC →
    archive fields on the project → commit → strategy roll-up.
    ``progress_at_archive`` captures the project's progress at this moment.
    """
    repo = _repo(repo, tenant_id)
    project = repo.get_project(project_id)
    if project.is_archived:
        raise ValidationError("Project is already archived", details={"project_id": project.id})
    wake_up = parse_date(wake_up_date)
    if wake_up_date and wake_up is None:
        raise ValidationError("wake_up_date is not a valid date", details={"wake_up_date": wake_up_date})

    actions = repo.list_actions(project.id, include_archived=True)
    snapshot = SnapshotService.record(
        "project", project.id, _project_subtree(project, actions), "archive",
        reason=reason, actor=actor, tenant_id=project.tenant_id,
    )
    for action in actions:
        action.is_archived = True
    removed = delete_dependencies_for_entities(
        [project.id], [a.id for a in actions], tenant_id=project.tenant_id,
    )

    project.is_archived = True
    project.archive_reason = reason
    project.archived_at = _now()
    project.archived_by = actor
    project.progress_at_archive = int(project.progress or 0)
    project.wake_up_date = wake_up
    write_activity(
        type="project_archived",
        description=f'Project "{project.title}" archived',
        actor=actor,
        tenant_id=project.tenant_id,
        strategy_id=project.strategy_id,
        project_id=project.id,
        details={"reason": reason, "actions": len(actions), "dependencies_removed": removed},
    )
    repo.commit()
    logger.info(
        "Project archived with %d action(s), %d dependency edge(s) removed",
        len(actions), removed,
        extra={"tenant_id": project.tenant_id, "project_id": project.id},
    )

    result = CascadeResult(project=project, snapshot=snapshot, removed_dependencies=removed)
    _roll_up_strategy(repo, project.strategy_id, result,
                      _guarded(notify, project.tenant_id, repo), project.tenant_id)
    return result


def unarchive_project(project_id, actor, reason=None, *,
                      tenant_id=None, repo=None, notify=None) -> CascadeResult:
    """Restore an archived project and its actions.

    The unarchive snapshot is recorded before anything is restored.
    ``progress_at_archive`` is kept as history.
    """
    repo = _repo(repo, tenant_id)
    project = repo.get_project(project_id)
    if not project.is_archived:
        raise ValidationError("Project is not archived", details={"project_id": project.id})
    ensure_strategy_open(repo, project.strategy_id, "unarchive project")

    actions = repo.list_actions(project.id, include_archived=True)
    snapshot = SnapshotService.record(
        "project", project.id, _project_subtree(project, actions), "unarchive",
        reason=reason, actor=actor, tenant_id=project.tenant_id,
    )
    for action in actions:
        action.is_archived = False

    project.is_archived = False
    project.archive_reason = None
    project.archived_at = None
    project.archived_by = None
    project.wake_up_date = None
    write_activity(
        type="project_unarchived",
        description=f'Project "{project.title}" restored',
        actor=actor,
        tenant_id=project.tenant_id,
        strategy_id=project.strategy_id,
        project_id=project.id,
        details={"reason": reason, "actions": len(actions)},
    )
    repo.commit()
    logger.info(
        "Project unarchived with %d action(s)", len(actions),
        extra={"tenant_id": project.tenant_id, "project_id": project.id},
    )

    result = CascadeResult(snapshot=snapshot)
    _roll_up_project(repo, project.id, result,
                     _guarded(notify, project.tenant_id, repo), project.tenant_id)
    result.project = project
    return result


# ── Strategy lifecycle ───────────────────────────────────────────────────────


def _subtree_ids(repo: HierarchyRepository, strategy_id):
    projects = repo.list_projects(strategy_id, include_archived=True)
    actions = repo.list_strategy_actions(strategy_id)
    return projects, actions


def complete_strategy(strategy_id, actor, *, tenant_id=None, repo=None, notify=None) -> CascadeResult:
    """Finalize a strategy: status=Completed, completion_date=now, dependency GC."""
    repo = _repo(repo, tenant_id)
    strategy = repo.get_strategy(strategy_id)
    current = repo.strategy_status(strategy)
    if current is StrategyStatus.ARCHIVED:
        raise ValidationError("Archived strategies cannot be completed",
                              details={"status": strategy.status})

    projects, actions = _subtree_ids(repo, strategy.id)
    recipients = _strategy_recipients(repo, strategy.id)
    removed = delete_dependencies_for_entities(
        [p.id for p in projects], [a.id for a in actions], tenant_id=strategy.tenant_id,
    )
    strategy.status = StrategyStatus.COMPLETED.value
    strategy.completion_date = _now()
    write_activity(
        type="strategy_completed",
        description=f'Strategy "{strategy.title}" completed',
        actor=actor,
        tenant_id=strategy.tenant_id,
        strategy_id=strategy.id,
        details={"dependencies_removed": removed, "automatic": False},
    )
    repo.commit()
    logger.info(
        "Strategy completed, %d dependency edge(s) removed", removed,
        extra={"tenant_id": strategy.tenant_id, "strategy_id": strategy.id},
    )
    notify_status_change(
        _guarded(notify, strategy.tenant_id, repo),
        event_type="strategy_status_changed",
        entity_id=strategy.id,
        title=strategy.title,
        old_status=current,
        new_status=StrategyStatus.COMPLETED,
        recipients=recipients,
    )
    return CascadeResult(strategy=strategy, removed_dependencies=removed)


def archive_strategy(strategy_id, actor, *, tenant_id=None, repo=None, notify=None) -> CascadeResult:
    """Archive a Completed strategy together with all its projects and actions.

    Projects and actions only receive the archive flag; no per-project
    snapshot is taken. Any other starting status raises ValidationError
    before anything is written.
    """
    repo = _repo(repo, tenant_id)
    strategy = repo.get_strategy(strategy_id)
    current = repo.strategy_status(strategy)
    if current is not StrategyStatus.COMPLETED:
        raise ValidationError(
            "Only completed strategies can be archived",
            details={"status": strategy.status},
        )

    projects, actions = _subtree_ids(repo, strategy.id)
    recipients = _strategy_recipients(repo, strategy.id)
    for project in projects:
        project.is_archived = True
    for action in actions:
        action.is_archived = True
    removed = delete_dependencies_for_entities(
        [p.id for p in projects], [a.id for a in actions], tenant_id=strategy.tenant_id,
    )
    strategy.status = StrategyStatus.ARCHIVED.value
    write_activity(
        type="strategy_archived",
        description=f'Strategy "{strategy.title}" archived',
        actor=actor,
        tenant_id=strategy.tenant_id,
        strategy_id=strategy.id,
        details={
            "projects": len(projects),
            "actions": len(actions),
            "dependencies_removed": removed,
        },
    )
    repo.commit()
    logger.info(
        "Strategy archived with %d project(s), %d action(s)", len(projects), len(actions),
        extra={"tenant_id": strategy.tenant_id, "strategy_id": strategy.id},
    )
    notify_status_change(
        _guarded(notify, strategy.tenant_id, repo),
        event_type="strategy_status_changed",
        entity_id=strategy.id,
        title=strategy.title,
        old_status=current,
        new_status=StrategyStatus.ARCHIVED,
        recipients=recipients,
    )
    return CascadeResult(strategy=strategy, removed_dependencies=removed)


# ── Deletes ──────────────────────────────────────────────────────────────────


def delete_action(action_id, actor, *, tenant_id=None, repo=None, notify=None) -> CascadeResult:
    """Delete an action (documents and checklist items first), then roll up."""
    repo = _repo(repo, tenant_id)
    action = repo.get_action(action_id)
    project_id, strategy_id, tid = action.project_id, action.strategy_id, action.tenant_id

    removed = delete_dependencies_for_entities([], [action.id], tenant_id=tid)
    write_activity(
        type="action_deleted",
        description=f'Action "{action.title}" deleted',
        actor=actor,
        tenant_id=tid,
        strategy_id=strategy_id,
        project_id=project_id,
        action_id=action.id,
    )
    repo.delete_action(action)
    repo.commit()
    logger.info("Action deleted", extra={"tenant_id": tid, "action_id": action_id})

    result = CascadeResult(removed_dependencies=removed)
    if project_id is not None:
        _roll_up_project(repo, project_id, result, _guarded(notify, tid, repo), tid)
    return result


def delete_project(project_id, actor, *, tenant_id=None, repo=None, notify=None) -> CascadeResult:
    """Delete a project with its actions and barriers, then roll up the strategy."""
    repo = _repo(repo, tenant_id)
    project = repo.get_project(project_id)
    strategy_id, tid = project.strategy_id, project.tenant_id

    actions = repo.list_actions(project.id, include_archived=True)
    removed = delete_dependencies_for_entities(
        [project.id], [a.id for a in actions], tenant_id=tid,
    )
    write_activity(
        type="project_deleted",
        description=f'Project "{project.title}" deleted',
        actor=actor,
        tenant_id=tid,
        strategy_id=strategy_id,
        project_id=project.id,
        details={"actions": len(actions)},
    )
    repo.delete_project(project)
    repo.commit()
    logger.info("Project deleted", extra={"tenant_id": tid, "project_id": project_id})

    result = CascadeResult(removed_dependencies=removed)
    _roll_up_strategy(repo, strategy_id, result, _guarded(notify, tid, repo), tid)
    return result


def delete_strategy(strategy_id, actor, *, tenant_id=None, repo=None) -> CascadeResult:
    """Delete a strategy and its whole subtree. Snapshots are kept."""
    repo = _repo(repo, tenant_id)
    strategy = repo.get_strategy(strategy_id)
    tid = strategy.tenant_id

    projects, actions = _subtree_ids(repo, strategy.id)
    removed = delete_dependencies_for_entities(
        [p.id for p in projects], [a.id for a in actions], tenant_id=tid,
    )
    write_activity(
        type="strategy_deleted",
        description=f'Strategy "{strategy.title}" deleted',
        actor=actor,
        tenant_id=tid,
        strategy_id=strategy.id,
        details={"projects": len(projects), "actions": len(actions)},
    )
    repo.delete_strategy(strategy)
    repo.commit()
    logger.info("Strategy deleted", extra={"tenant_id": tid, "strategy_id": strategy_id})
    return CascadeResult(removed_dependencies=removed)


def refresh_strategy(strategy_id, *, tenant_id=None, repo=None, notify=None) -> CascadeResult:
    """Best-effort strategy roll-up after a committed structural change.

    Used when a project is created or copied under the strategy. Failures
    become AggregationWarnings on the result instead of propagating.
    """
    repo = _repo(repo, tenant_id)
    result = CascadeResult()
    _roll_up_strategy(repo, strategy_id, result, _guarded(notify, tenant_id, repo), tenant_id)
    return result
