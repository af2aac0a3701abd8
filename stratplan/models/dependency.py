"""
Strategy Planner
Dependency domain model.

A Dependency is a directed, advisory edge between two hierarchy entities
(project or action). Endpoints are polymorphic (type + id), so there is no FK
to the referenced rows; the dependency service enforces existence and tenant
membership on create and removes edges when an endpoint is archived,
deleted or finalized.
"""

from datetime import datetime, timezone

from stratplan.models import db
from stratplan.models.base import TenantModel

DEPENDENCY_ENTITY_TYPES = {"project", "action"}


class Dependency(TenantModel):
    __tablename__ = "dependencies"

    id = db.Column(db.Integer, primary_key=True)
    source_type = db.Column(db.String(20), nullable=False, comment="project | action")
    source_id = db.Column(db.Integer, nullable=False)
    target_type = db.Column(db.String(20), nullable=False, comment="project | action")
    target_id = db.Column(db.Integer, nullable=False)
    created_by = db.Column(db.String(150), nullable=False, default="system")
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.UniqueConstraint(
            "source_type", "source_id", "target_type", "target_id",
            name="uq_dependencies_edge",
        ),
        db.Index("ix_dependencies_source", "source_type", "source_id"),
        db.Index("ix_dependencies_target", "target_type", "target_id"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "source_type": self.source_type,
            "source_id": self.source_id,
            "target_type": self.target_type,
            "target_id": self.target_id,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return (
            f"<Dependency {self.id}: {self.source_type}/{self.source_id}"
            f" -> {self.target_type}/{self.target_id}>"
        )
