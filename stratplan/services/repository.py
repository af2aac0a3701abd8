"""
Strategy Planner
Hierarchy repository: read/write access to Strategy, Project and Action rows.

The cascade service talks only to ``HierarchyRepository``. Raw status
strings are normalized to enums here, at the boundary, so the aggregation
calculator never sees a string.

Two implementations:
    - SqlAlchemyHierarchyRepository: the application's session-backed store.
    - Tests may subclass HierarchyRepository (or the SQLAlchemy one) to
      inject failures into individual steps.

Each ``save_*`` call is its own commit: the project write is durable
before the strategy roll-up reads it.
"""

import logging
from abc import ABC, abstractmethod

from sqlalchemy import delete, select

from stratplan.core.exceptions import NotFoundError
from stratplan.models import db
from stratplan.models.action import Action, ActionChecklistItem, ActionDocument
from stratplan.models.strategy import Barrier, Project, Strategy
from stratplan.services.helpers.scoped_queries import get_scoped
from stratplan.services.progress import ActionState, ProjectState
from stratplan.services.status import (
    ProjectStatus,
    StrategyStatus,
    normalize_action_status,
    normalize_project_status,
    normalize_strategy_status,
)

logger = logging.getLogger(__name__)


class HierarchyRepository(ABC):
    """Abstract access to the Strategy → Project → Action hierarchy."""

    # ── Loads ────────────────────────────────────────────────────────────

    @abstractmethod
    def get_strategy(self, strategy_id: int) -> Strategy:
        """Return the strategy or raise NotFoundError."""
        ...

    @abstractmethod
    def get_project(self, project_id: int) -> Project:
        """Return the project or raise NotFoundError."""
        ...

    @abstractmethod
    def get_action(self, action_id: int) -> Action:
        """Return the action or raise NotFoundError."""
        ...

    @abstractmethod
    def list_strategies(self) -> list[Strategy]:
        ...

    @abstractmethod
    def list_projects(self, strategy_id: int, include_archived: bool = False) -> list[Project]:
        ...

    @abstractmethod
    def list_actions(self, project_id: int, include_archived: bool = False) -> list[Action]:
        ...

    @abstractmethod
    def list_strategy_actions(self, strategy_id: int) -> list[Action]:
        """Every action under the strategy, assigned to a project or not."""
        ...

    # ── Normalized views ─────────────────────────────────────────────────

    def action_states(self, project_id: int) -> list[ActionState]:
        """Non-archived actions of a project, statuses normalized."""
        return [
            ActionState(status=normalize_action_status(a.status))
            for a in self.list_actions(project_id)
        ]

    def project_states(self, strategy_id: int) -> list[ProjectState]:
        """Non-archived projects of a strategy, statuses normalized."""
        states = []
        for p in self.list_projects(strategy_id):
            status = normalize_project_status(p.status, default=ProjectStatus.NOT_YET_STARTED)
            states.append(ProjectState(status=status, progress=int(p.progress or 0)))
        return states

    def strategy_status(self, strategy: Strategy) -> StrategyStatus:
        return normalize_strategy_status(strategy.status)

    # ── Writes ───────────────────────────────────────────────────────────

    @abstractmethod
    def save_project_progress(self, project: Project, progress: int) -> None:
        """Persist and commit the project's aggregate progress."""
        ...

    @abstractmethod
    def save_strategy_aggregate(self, strategy: Strategy, progress: int,
                                status: StrategyStatus) -> None:
        """Persist and commit the strategy's progress and status."""
        ...

    @abstractmethod
    def delete_action(self, action: Action) -> None:
        """Remove documents and checklist items, then the action (flush only)."""
        ...

    @abstractmethod
    def delete_project(self, project: Project) -> None:
        """Remove the project's actions and barriers, then the project (flush only)."""
        ...

    @abstractmethod
    def delete_strategy(self, strategy: Strategy) -> None:
        """Remove every project and action of the strategy, then the strategy (flush only)."""
        ...

    @abstractmethod
    def commit(self) -> None:
        ...

    @abstractmethod
    def rollback(self) -> None:
        ...


class SqlAlchemyHierarchyRepository(HierarchyRepository):
    """Session-backed repository.

    When *tenant_id* is given every load goes through ``get_scoped`` and a
    row from another tenant is reported as NotFound. ``tenant_id=None`` is
    reserved for system-level callers (the reconciliation command).
    """

    def __init__(self, tenant_id: int | None = None):
        self.tenant_id = tenant_id

    def _load(self, model, pk):
        if self.tenant_id is not None:
            return get_scoped(model, pk, tenant_id=self.tenant_id)
        obj = db.session.get(model, pk)
        if obj is None:
            raise NotFoundError(resource=model.__name__, resource_id=pk)
        return obj

    def _scoped(self, stmt, model):
        if self.tenant_id is not None:
            stmt = stmt.where(model.tenant_id == self.tenant_id)
        return stmt

    def get_strategy(self, strategy_id):
        return self._load(Strategy, strategy_id)

    def get_project(self, project_id):
        return self._load(Project, project_id)

    def get_action(self, action_id):
        return self._load(Action, action_id)

    def list_strategies(self):
        stmt = self._scoped(select(Strategy), Strategy).order_by(Strategy.id)
        return list(db.session.execute(stmt).scalars())

    def list_projects(self, strategy_id, include_archived=False):
        stmt = select(Project).where(Project.strategy_id == strategy_id)
        if not include_archived:
            stmt = stmt.where(Project.is_archived.is_(False))
        stmt = self._scoped(stmt, Project).order_by(Project.id)
        return list(db.session.execute(stmt).scalars())

    def list_actions(self, project_id, include_archived=False):
        stmt = select(Action).where(Action.project_id == project_id)
        if not include_archived:
            stmt = stmt.where(Action.is_archived.is_(False))
        stmt = self._scoped(stmt, Action).order_by(Action.id)
        return list(db.session.execute(stmt).scalars())

    def list_strategy_actions(self, strategy_id):
        stmt = self._scoped(
            select(Action).where(Action.strategy_id == strategy_id), Action,
        ).order_by(Action.id)
        return list(db.session.execute(stmt).scalars())

    def save_project_progress(self, project, progress):
        project.progress = progress
        db.session.commit()
        logger.debug(
            "Project progress persisted",
            extra={"tenant_id": project.tenant_id, "project_id": project.id},
        )

    def save_strategy_aggregate(self, strategy, progress, status):
        strategy.progress = progress
        strategy.status = StrategyStatus(status).value
        db.session.commit()
        logger.debug(
            "Strategy aggregate persisted",
            extra={"tenant_id": strategy.tenant_id, "strategy_id": strategy.id},
        )

    def delete_action(self, action):
        db.session.execute(delete(ActionDocument).where(ActionDocument.action_id == action.id))
        db.session.execute(
            delete(ActionChecklistItem).where(ActionChecklistItem.action_id == action.id)
        )
        db.session.delete(action)
        db.session.flush()

    def delete_project(self, project):
        for action in self.list_actions(project.id, include_archived=True):
            self.delete_action(action)
        db.session.execute(delete(Barrier).where(Barrier.project_id == project.id))
        db.session.delete(project)
        db.session.flush()

    def delete_strategy(self, strategy):
        for action in self.list_strategy_actions(strategy.id):
            self.delete_action(action)
        for project in self.list_projects(strategy.id, include_archived=True):
            self.delete_project(project)
        db.session.delete(strategy)
        db.session.flush()

    def commit(self):
        db.session.commit()

    def rollback(self):
        db.session.rollback()
