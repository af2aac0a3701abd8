"""
SnapshotService: append-only archive/unarchive snapshots.

Captures the serialized state of an entity subtree (for a project:
``{"project": {...}, "actions": [...]}``) immediately before an archive
or unarchive. The recorder never interprets the state; it only stores it.

Snapshots are never overwritten or deleted, including when the entity
they describe is deleted.
"""

import json
import logging

from sqlalchemy import select

from stratplan.core.exceptions import ValidationError
from stratplan.models import db
from stratplan.models.snapshot import SNAPSHOT_KINDS, ArchiveSnapshot

logger = logging.getLogger(__name__)


class SnapshotService:
    """Records and retrieves archive snapshots."""

    # ── Capture ───────────────────────────────────────────────────────

    @staticmethod
    def record(entity_type: str, entity_id: int, subtree_state, kind: str,
               reason: str | None = None, actor: str = "system",
               tenant_id: int | None = None) -> ArchiveSnapshot:
        """
        Append a snapshot row.  Uses ``flush`` so the surrounding archive
        cascade commits it together with its own changes.

        Returns the (flushed) ArchiveSnapshot instance.
        """
        if kind not in SNAPSHOT_KINDS:
            raise ValidationError(
                f"Snapshot kind must be one of {sorted(SNAPSHOT_KINDS)}",
                details={"kind": kind},
            )
        snapshot = ArchiveSnapshot(
            tenant_id=tenant_id,
            entity_type=entity_type,
            entity_id=entity_id,
            kind=kind,
            reason=reason,
            actor=actor or "system",
            snapshot_json=json.dumps(subtree_state, default=str),
        )
        db.session.add(snapshot)
        db.session.flush()
        logger.info(
            "Snapshot %s recorded for %s/%s",
            kind, entity_type, entity_id,
            extra={"tenant_id": tenant_id},
        )
        return snapshot

    # ── Query ─────────────────────────────────────────────────────────

    @staticmethod
    def list_snapshots(entity_id: int, entity_type: str = "project",
                       tenant_id: int | None = None, limit: int = 100) -> list[ArchiveSnapshot]:
        """Return snapshots for an entity, newest first."""
        stmt = select(ArchiveSnapshot).where(
            ArchiveSnapshot.entity_type == entity_type,
            ArchiveSnapshot.entity_id == entity_id,
        )
        if tenant_id is not None:
            stmt = stmt.where(ArchiveSnapshot.tenant_id == tenant_id)
        stmt = stmt.order_by(
            ArchiveSnapshot.created_at.desc(), ArchiveSnapshot.id.desc(),
        ).limit(limit)
        return list(db.session.execute(stmt).scalars())

    @staticmethod
    def latest(entity_id: int, entity_type: str = "project",
               tenant_id: int | None = None) -> ArchiveSnapshot | None:
        """Return the most recent snapshot."""
        snaps = SnapshotService.list_snapshots(
            entity_id, entity_type=entity_type, tenant_id=tenant_id, limit=1,
        )
        return snaps[0] if snaps else None
