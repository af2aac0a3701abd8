"""
Strategy Planner
Hierarchy domain models — Strategy → Project (+ Barrier).

Models:
    - Strategy: top-level strategic objective of an organization
    - Project: execution unit under a Strategy, owns Actions and Barriers
    - Barrier: impediment logged against a Project

Derived fields (``progress`` on both levels, ``status`` auto-transitions on
Strategy) are written by the cascade service only.
"""

from datetime import datetime, timezone

from stratplan.models import db
from stratplan.models.base import TenantModel


def _iso(value):
    return value.isoformat() if value else None


# ── Strategy ─────────────────────────────────────────────────────────────────


class Strategy(TenantModel):
    """Strategic objective. Status: Active → Completed → Archived (terminal)."""

    __tablename__ = "strategies"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")
    goal = db.Column(db.Text, nullable=True)
    status = db.Column(
        db.String(20),
        nullable=False,
        default="Active",
        comment="Active | Completed | Archived",
    )
    progress = db.Column(db.Integer, nullable=False, default=0, comment="0-100, derived")
    readiness_rating = db.Column(db.String(20), nullable=True, comment="green | amber | red")
    risk_exposure = db.Column(db.String(20), nullable=True, comment="low | medium | high")
    start_date = db.Column(db.Date, nullable=True)
    target_date = db.Column(db.Date, nullable=True)
    completion_date = db.Column(db.DateTime(timezone=True), nullable=True)
    color_code = db.Column(db.String(10), nullable=False, default="#3B82F6")
    display_order = db.Column(db.Integer, nullable=False, default=0)
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
    projects = db.relationship(
        "Project", backref="strategy", lazy="dynamic",
        cascade="all, delete-orphan", order_by="Project.id",
    )

    __table_args__ = (
        db.Index("ix_strategies_tenant_status", "tenant_id", "status"),
    )

    def to_dict(self, include_children=False):
        result = {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "title": self.title,
            "description": self.description,
            "goal": self.goal,
            "status": self.status,
            "progress": self.progress,
            "readiness_rating": self.readiness_rating,
            "risk_exposure": self.risk_exposure,
            "start_date": _iso(self.start_date),
            "target_date": _iso(self.target_date),
            "completion_date": _iso(self.completion_date),
            "color_code": self.color_code,
            "display_order": self.display_order,
            "created_by": self.created_by,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if include_children:
            result["projects"] = [p.to_dict() for p in self.projects]
        return result

    def __repr__(self):
        return f"<Strategy {self.id}: {self.title}>"


# ── Project ──────────────────────────────────────────────────────────────────


class Project(TenantModel):
    """
    Execution unit under a Strategy.

    Status codes: NYS (not yet started), OT (on track), OH (on hold),
    B (behind), C (completed).
    """

    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    strategy_id = db.Column(
        db.Integer,
        db.ForeignKey("strategies.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")
    kpi = db.Column(db.Text, nullable=True)
    kpi_tracking = db.Column(db.Text, nullable=True)
    accountable_leaders = db.Column(db.JSON, default=list, comment="JSON list of user ids")
    resources_required = db.Column(db.Text, nullable=True)
    start_date = db.Column(db.Date, nullable=True)
    due_date = db.Column(db.Date, nullable=True)
    status = db.Column(
        db.String(10),
        nullable=False,
        default="NYS",
        comment="NYS | OT | OH | B | C",
    )
    progress = db.Column(db.Integer, nullable=False, default=0, comment="0-100, derived")
    document_folder_url = db.Column(db.String(500), nullable=True)

    # ── Archive metadata ──
    is_archived = db.Column(db.Boolean, nullable=False, default=False, index=True)
    archive_reason = db.Column(db.Text, nullable=True)
    archived_at = db.Column(db.DateTime(timezone=True), nullable=True)
    archived_by = db.Column(db.String(150), nullable=True)
    wake_up_date = db.Column(db.Date, nullable=True)
    progress_at_archive = db.Column(
        db.Integer, nullable=True,
        comment="Progress captured at archive time; kept after unarchive",
    )

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
    actions = db.relationship(
        "Action", backref="project", lazy="dynamic",
        cascade="all, delete-orphan", order_by="Action.id",
        foreign_keys="Action.project_id",
    )
    barriers = db.relationship(
        "Barrier", backref="project", lazy="dynamic",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        db.Index("ix_projects_tenant_strategy", "tenant_id", "strategy_id"),
    )

    def to_dict(self, include_children=False):
        result = {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "strategy_id": self.strategy_id,
            "title": self.title,
            "description": self.description,
            "kpi": self.kpi,
            "kpi_tracking": self.kpi_tracking,
            "accountable_leaders": list(self.accountable_leaders or []),
            "resources_required": self.resources_required,
            "start_date": _iso(self.start_date),
            "due_date": _iso(self.due_date),
            "status": self.status,
            "progress": self.progress,
            "document_folder_url": self.document_folder_url,
            "is_archived": bool(self.is_archived),
            "archive_reason": self.archive_reason,
            "archived_at": _iso(self.archived_at),
            "archived_by": self.archived_by,
            "wake_up_date": _iso(self.wake_up_date),
            "progress_at_archive": self.progress_at_archive,
            "created_by": self.created_by,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if include_children:
            result["actions"] = [a.to_dict() for a in self.actions]
            result["barriers"] = [b.to_dict() for b in self.barriers]
        return result

    def __repr__(self):
        return f"<Project {self.id}: {self.title}>"


# ── Barrier ──────────────────────────────────────────────────────────────────


class Barrier(TenantModel):
    """Impediment blocking a Project. Deleted together with its Project."""

    __tablename__ = "barriers"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")
    severity = db.Column(db.String(20), default="medium", comment="low | medium | high")
    status = db.Column(db.String(20), default="active", comment="active | mitigated | resolved")
    owner = db.Column(db.String(150), nullable=True)
    target_resolution_date = db.Column(db.Date, nullable=True)
    resolution_notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "project_id": self.project_id,
            "title": self.title,
            "description": self.description,
            "severity": self.severity,
            "status": self.status,
            "owner": self.owner,
            "target_resolution_date": _iso(self.target_resolution_date),
            "resolution_notes": self.resolution_notes,
            "created_at": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<Barrier {self.id}: {self.title}>"
