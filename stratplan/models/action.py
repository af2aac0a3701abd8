"""
Strategy Planner
Action domain models.

Models:
    - Action: measurable unit of work, optionally attached to a Project
    - ActionDocument: link to a supporting document
    - ActionChecklistItem: ordered checklist entry
"""

from datetime import datetime, timezone

from stratplan.models import db
from stratplan.models.base import TenantModel

ACTION_STATUSES = {"not_started", "in_progress", "achieved", "at_risk"}


class Action(TenantModel):
    """
    Action under a Strategy, optionally assigned to a Project.

    ``achieved_date`` is set exactly when status transitions into
    "achieved" and cleared on transition out.
    """

    __tablename__ = "actions"

    id = db.Column(db.Integer, primary_key=True)
    strategy_id = db.Column(
        db.Integer,
        db.ForeignKey("strategies.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
        comment="NULL for unassigned actions",
    )
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")
    target_value = db.Column(db.String(100), nullable=True)
    current_value = db.Column(db.String(100), nullable=True)
    measurement_unit = db.Column(db.String(50), nullable=True)
    status = db.Column(
        db.String(20),
        nullable=False,
        default="not_started",
        comment="not_started | in_progress | achieved | at_risk",
    )
    notes = db.Column(db.Text, nullable=True)
    due_date = db.Column(db.Date, nullable=True)
    achieved_date = db.Column(db.DateTime(timezone=True), nullable=True)
    assigned_user_ids = db.Column(db.JSON, default=list)
    is_archived = db.Column(db.Boolean, nullable=False, default=False, index=True)

    created_by = db.Column(db.String(150), nullable=False, default="system")
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # ── Relationships ────────────────────────────────────────────────────
    documents = db.relationship(
        "ActionDocument", backref="action", lazy="dynamic",
        cascade="all, delete-orphan",
    )
    checklist_items = db.relationship(
        "ActionChecklistItem", backref="action", lazy="dynamic",
        cascade="all, delete-orphan", order_by="ActionChecklistItem.order_index",
    )

    __table_args__ = (
        db.Index("ix_actions_tenant_project", "tenant_id", "project_id"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "strategy_id": self.strategy_id,
            "project_id": self.project_id,
            "title": self.title,
            "description": self.description,
            "target_value": self.target_value,
            "current_value": self.current_value,
            "measurement_unit": self.measurement_unit,
            "status": self.status,
            "notes": self.notes,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "achieved_date": self.achieved_date.isoformat() if self.achieved_date else None,
            "assigned_user_ids": list(self.assigned_user_ids or []),
            "is_archived": bool(self.is_archived),
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Action {self.id}: {self.title}>"


class ActionDocument(TenantModel):
    __tablename__ = "action_documents"

    id = db.Column(db.Integer, primary_key=True)
    action_id = db.Column(
        db.Integer, db.ForeignKey("actions.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    url = db.Column(db.String(1000), nullable=False)
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "action_id": self.action_id,
            "name": self.name,
            "url": self.url,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class ActionChecklistItem(TenantModel):
    __tablename__ = "action_checklist_items"

    id = db.Column(db.Integer, primary_key=True)
    action_id = db.Column(
        db.Integer, db.ForeignKey("actions.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    title = db.Column(db.String(300), nullable=False)
    is_completed = db.Column(db.Boolean, default=False)
    order_index = db.Column(db.Integer, default=0)

    def to_dict(self):
        return {
            "id": self.id,
            "action_id": self.action_id,
            "title": self.title,
            "is_completed": bool(self.is_completed),
            "order_index": self.order_index,
        }
