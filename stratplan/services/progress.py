"""
Aggregation calculator for the Strategy → Project → Action hierarchy.

Pure functions only: no session access, no logging, no side effects. The
cascade service feeds them already-normalized child state loaded through the
hierarchy repository and persists whatever they return.

Rules:
    - Project progress  = round(100 × achieved / total) over non-archived actions
    - Strategy progress = round(mean(child project progress)), unweighted
    - Both are 0 when there are no children
    - Rounding is half-up (12.5 → 13), never banker's rounding

Strategy status auto-transition (evaluated after recomputation):
    Active    + avg == 100 + every child project completed → Completed
    Completed + avg  < 100                                 → Active
    anything else                                          → unchanged
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass

from stratplan.services.status import ActionStatus, ProjectStatus, StrategyStatus

PROGRESS_MILESTONES = (25, 50, 75, 100)


@dataclass(frozen=True)
class ActionState:
    """Progress-relevant view of one action."""

    status: ActionStatus


@dataclass(frozen=True)
class ProjectState:
    """Progress-relevant view of one project."""

    status: ProjectStatus
    progress: int


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _clamp(value: int) -> int:
    return max(0, min(100, value))


def compute_project_progress(actions: Iterable[ActionState]) -> int:
    """Percentage of actions that are achieved, 0 when there are none."""
    statuses = [a.status for a in actions]
    if not statuses:
        return 0
    achieved = sum(1 for s in statuses if s is ActionStatus.ACHIEVED)
    return _clamp(round_half_up(achieved * 100 / len(statuses)))


def compute_strategy_progress(projects: Iterable[ProjectState]) -> int:
    """Rounded mean of child project progress, 0 when there are none."""
    values = [_clamp(int(p.progress or 0)) for p in projects]
    if not values:
        return 0
    return _clamp(round_half_up(sum(values) / len(values)))


def evaluate_strategy_status(
    current: StrategyStatus,
    avg_progress: int,
    project_statuses: Iterable[ProjectStatus],
) -> StrategyStatus:
    """Return the strategy status implied by its freshly computed progress.

    Archived strategies never move. An Active strategy with no projects stays
    Active because its average is 0.
    """
    statuses = list(project_statuses)
    if (
        current is StrategyStatus.ACTIVE
        and avg_progress == 100
        and statuses
        and all(s is ProjectStatus.COMPLETED for s in statuses)
    ):
        return StrategyStatus.COMPLETED
    if current is StrategyStatus.COMPLETED and avg_progress < 100:
        return StrategyStatus.ACTIVE
    return current


def crossed_milestone(old_progress: int | None, new_progress: int) -> int | None:
    """Highest milestone reached by *new_progress* that *old_progress* had not.

    >>> crossed_milestone(40, 60)
    50
    >>> crossed_milestone(10, 80)
    75
    >>> crossed_milestone(60, 40) is None
    True
    """
    old = old_progress or 0
    reached = [m for m in PROGRESS_MILESTONES if old < m <= new_progress]
    return reached[-1] if reached else None
