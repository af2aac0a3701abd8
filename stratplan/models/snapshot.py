"""
Strategy Planner
Archive snapshot model.

Models:
    - ArchiveSnapshot: immutable, append-only copy of an entity subtree taken
      before an archive or unarchive operation.

Snapshots hold no FK to the entity they describe and outlive the project or
strategy they were taken from.
"""

import json
from datetime import UTC, datetime

from stratplan.models import db

SNAPSHOT_KINDS = {"archive", "unarchive"}


class ArchiveSnapshot(db.Model):
    __tablename__ = "archive_snapshots"
    __table_args__ = (
        db.Index("idx_snapshot_entity", "entity_type", "entity_id"),
        db.Index("idx_snapshot_created", "created_at"),
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(
        db.Integer,
        db.ForeignKey("organizations.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    entity_type = db.Column(db.String(20), nullable=False, default="project")
    entity_id = db.Column(db.Integer, nullable=False)
    kind = db.Column(db.String(20), nullable=False, comment="archive | unarchive")
    reason = db.Column(db.Text, nullable=True)
    actor = db.Column(db.String(150), nullable=False, default="system")
    snapshot_json = db.Column(db.Text, nullable=False, default="{}")

    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(UTC),
    )

    @property
    def state(self) -> dict:
        """Deserialise *snapshot_json* to a Python dict."""
        try:
            return json.loads(self.snapshot_json or "{}")
        except (json.JSONDecodeError, TypeError):
            return {}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "kind": self.kind,
            "reason": self.reason,
            "actor": self.actor,
            "state": self.state,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<ArchiveSnapshot {self.id}: {self.kind} {self.entity_type}/{self.entity_id}>"


from sqlalchemy import event as _sa_event  # noqa: E402


@_sa_event.listens_for(ArchiveSnapshot, "before_update")
def _block_snapshot_update(mapper, connection, target) -> None:  # noqa: ANN001
    """Raise RuntimeError on any ORM UPDATE of a snapshot row (write-once)."""
    raise RuntimeError(
        f"ArchiveSnapshot id={target.id} is immutable; record a new snapshot instead."
    )
