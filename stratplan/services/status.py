"""
Status normalization for the Strategy → Project → Action hierarchy.

Raw status strings arrive in several spellings ("C", "completed",
"Completed", "achieved" all mean a finished project). They are mapped to a
closed enum once, at the repository / input boundary, so that the progress
calculator only ever compares enum members.

Usage:
    from stratplan.services.status import ProjectStatus, normalize_project_status

    normalize_project_status("completed")   # -> ProjectStatus.COMPLETED
    normalize_project_status("bogus")        # -> ValueError
    normalize_project_status("bogus", default=ProjectStatus.NOT_YET_STARTED)
"""

from __future__ import annotations

from enum import Enum


class StrategyStatus(str, Enum):
    ACTIVE = "Active"
    COMPLETED = "Completed"
    ARCHIVED = "Archived"


class ProjectStatus(str, Enum):
    NOT_YET_STARTED = "NYS"
    ON_TRACK = "OT"
    ON_HOLD = "OH"
    BEHIND = "B"
    COMPLETED = "C"


class ActionStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    ACHIEVED = "achieved"
    AT_RISK = "at_risk"


# Lower-cased, whitespace/underscore-collapsed spellings → canonical member.
_STRATEGY_ALIASES: dict[str, StrategyStatus] = {
    "active": StrategyStatus.ACTIVE,
    "completed": StrategyStatus.COMPLETED,
    "archived": StrategyStatus.ARCHIVED,
}

_PROJECT_ALIASES: dict[str, ProjectStatus] = {
    "nys": ProjectStatus.NOT_YET_STARTED,
    "not yet started": ProjectStatus.NOT_YET_STARTED,
    "not started": ProjectStatus.NOT_YET_STARTED,
    "ot": ProjectStatus.ON_TRACK,
    "on track": ProjectStatus.ON_TRACK,
    "oh": ProjectStatus.ON_HOLD,
    "on hold": ProjectStatus.ON_HOLD,
    "b": ProjectStatus.BEHIND,
    "behind": ProjectStatus.BEHIND,
    "c": ProjectStatus.COMPLETED,
    "completed": ProjectStatus.COMPLETED,
    "achieved": ProjectStatus.COMPLETED,
}

_ACTION_ALIASES: dict[str, ActionStatus] = {
    "not started": ActionStatus.NOT_STARTED,
    "in progress": ActionStatus.IN_PROGRESS,
    "achieved": ActionStatus.ACHIEVED,
    "at risk": ActionStatus.AT_RISK,
}


def _key(raw) -> str:
    return " ".join(str(raw).replace("_", " ").replace("-", " ").lower().split())


def _normalize(raw, aliases: dict, enum_cls, default):
    if isinstance(raw, enum_cls):
        return raw
    if raw is not None:
        member = aliases.get(_key(raw))
        if member is not None:
            return member
    if default is not None:
        return default
    valid = ", ".join(m.value for m in enum_cls)
    raise ValueError(f"Unknown {enum_cls.__name__} {raw!r}; expected one of: {valid}")


def normalize_strategy_status(raw, default: StrategyStatus | None = None) -> StrategyStatus:
    return _normalize(raw, _STRATEGY_ALIASES, StrategyStatus, default)


def normalize_project_status(raw, default: ProjectStatus | None = None) -> ProjectStatus:
    return _normalize(raw, _PROJECT_ALIASES, ProjectStatus, default)


def normalize_action_status(raw, default: ActionStatus | None = None) -> ActionStatus:
    return _normalize(raw, _ACTION_ALIASES, ActionStatus, default)
