"""
Strategy Planner
Activity feed model.

Models:
    - Activity: append-only feed of lifecycle events on the hierarchy
      (strategy_created, project_archived, action_achieved, ...).
"""

import json
from datetime import UTC, datetime

from stratplan.models import db

ACTIVITY_TYPES = {
    "strategy_created",
    "strategy_completed",
    "strategy_reopened",
    "strategy_archived",
    "strategy_deleted",
    "project_created",
    "project_archived",
    "project_unarchived",
    "project_copied",
    "project_deleted",
    "action_created",
    "action_achieved",
    "action_deleted",
}


class Activity(db.Model):
    """One row per lifecycle event. Never updated."""

    __tablename__ = "activities"
    __table_args__ = (
        db.Index("idx_activity_strategy", "strategy_id"),
        db.Index("idx_activity_ts", "created_at"),
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(
        db.Integer,
        db.ForeignKey("organizations.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    type = db.Column(db.String(40), nullable=False)
    description = db.Column(db.Text, nullable=False, default="")
    actor = db.Column(db.String(150), nullable=False, default="system")
    # Plain integer references: the feed outlives the entities it describes.
    strategy_id = db.Column(db.Integer, nullable=True)
    project_id = db.Column(db.Integer, nullable=True)
    action_id = db.Column(db.Integer, nullable=True)
    details_json = db.Column(db.Text, default="{}")

    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(UTC),
    )

    @property
    def details(self) -> dict:
        try:
            return json.loads(self.details_json or "{}")
        except (json.JSONDecodeError, TypeError):
            return {}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "type": self.type,
            "description": self.description,
            "actor": self.actor,
            "strategy_id": self.strategy_id,
            "project_id": self.project_id,
            "action_id": self.action_id,
            "details": self.details,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Activity {self.id}: {self.type}>"


# ── Convenience writer ───────────────────────────────────────────────────────

def write_activity(
    *,
    type: str,
    description: str,
    actor: str = "system",
    tenant_id: int | None = None,
    strategy_id: int | None = None,
    project_id: int | None = None,
    action_id: int | None = None,
    details: dict | None = None,
) -> Activity:
    """
    Append a single activity row.  Uses ``flush`` so callers keep
    transaction control.

    Returns the (flushed) Activity instance.
    """
    activity = Activity(
        tenant_id=tenant_id,
        type=type,
        description=description,
        actor=actor or "system",
        strategy_id=strategy_id,
        project_id=project_id,
        action_id=action_id,
        details_json=json.dumps(details or {}, default=str),
    )
    db.session.add(activity)
    db.session.flush()
    return activity
