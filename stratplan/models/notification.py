"""
Strategy Planner
Notification domain model.

Models:
    - Notification: in-app notification record with read tracking
"""

from datetime import datetime, timezone

from stratplan.models import db


# ── Constants ────────────────────────────────────────────────────────────────

NOTIFICATION_TYPES = {
    "project_progress_25",
    "project_progress_50",
    "project_progress_75",
    "project_progress_100",
    "project_status_changed",
    "strategy_status_changed",
    "action_achieved",
}


class Notification(db.Model):
    """
    In-app notification entity.

    One record per recipient per event.
    """

    __tablename__ = "notifications"

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(
        db.Integer, db.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=True, index=True,
    )
    recipient = db.Column(db.String(150), nullable=False, index=True, comment="User id")
    type = db.Column(db.String(50), nullable=False)
    title = db.Column(db.String(300), nullable=False)
    message = db.Column(db.Text, default="")

    # Link to source entity
    related_entity_type = db.Column(db.String(20), default="", comment="strategy | project | action")
    related_entity_id = db.Column(db.Integer, nullable=True)

    # Read tracking
    is_read = db.Column(db.Boolean, default=False)
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def mark_read(self):
        self.is_read = True
        self.read_at = datetime.now(timezone.utc)

    def to_dict(self):
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "recipient": self.recipient,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "related_entity_type": self.related_entity_type,
            "related_entity_id": self.related_entity_id,
            "is_read": self.is_read,
            "read_at": self.read_at.isoformat() if self.read_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Notification {self.id}: {self.title[:40]}>"
