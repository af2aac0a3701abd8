"""
Tests — lifecycle cascades: archive / unarchive / complete / delete.

Covers:
    - Project archive: snapshot first, actions archived, dependency GC,
      progress_at_archive captured, strategy rolled up
    - Project unarchive: unarchive snapshot, actions restored, history kept
    - Strategy completion and archival (Completed-only), subtree GC
    - Deletes: children removed, dependencies removed, snapshots survive
"""

import pytest

from stratplan.core.exceptions import NotFoundError, ValidationError
from stratplan.models import db
from stratplan.models.action import Action, ActionChecklistItem, ActionDocument
from stratplan.models.activity import Activity
from stratplan.models.dependency import Dependency
from stratplan.models.snapshot import ArchiveSnapshot
from stratplan.models.strategy import Barrier, Project, Strategy
from stratplan.services import cascade
from stratplan.services.snapshot import SnapshotService


def _edge(tenant_id, source, target):
    dep = Dependency(
        tenant_id=tenant_id,
        source_type=source[0], source_id=source[1],
        target_type=target[0], target_id=target[1],
    )
    db.session.add(dep)
    db.session.commit()
    return dep


# ═════════════════════════════════════════════════════════════════════════════
# PROJECT ARCHIVE / UNARCHIVE
# ═════════════════════════════════════════════════════════════════════════════


class TestArchiveProject:
    def test_archive_flags_project_and_actions(
        self, org, make_strategy, make_project, make_action, recorder,
    ):
        strategy = make_strategy()
        project = make_project(strategy, progress=50)
        a1 = make_action(project, status="achieved")
        a2 = make_action(project, title="Two")

        result = cascade.archive_project(
            project.id, "u-lead", reason="Budget cut", wake_up_date="2030-01-15",
            tenant_id=org.id, notify=recorder,
        )

        fresh = db.session.get(Project, project.id)
        assert fresh.is_archived is True
        assert fresh.archive_reason == "Budget cut"
        assert fresh.archived_by == "u-lead"
        assert fresh.archived_at is not None
        assert fresh.wake_up_date.isoformat() == "2030-01-15"
        assert fresh.progress_at_archive == 50
        assert db.session.get(Action, a1.id).is_archived is True
        assert db.session.get(Action, a2.id).is_archived is True
        assert result.snapshot.kind == "archive"
        assert result.ok

    def test_snapshot_captures_pre_archive_subtree(self, org, make_strategy, make_project, make_action):
        project = make_project(make_strategy(), progress=50)
        make_action(project, title="Alpha", status="achieved")

        result = cascade.archive_project(project.id, "u-lead", tenant_id=org.id)

        state = result.snapshot.state
        assert state["project"]["id"] == project.id
        assert state["project"]["is_archived"] is False
        assert [a["title"] for a in state["actions"]] == ["Alpha"]
        assert state["actions"][0]["is_archived"] is False

    def test_archive_removes_dependencies_of_project_and_actions(
        self, org, make_strategy, make_project, make_action,
    ):
        strategy = make_strategy()
        project = make_project(strategy)
        other = make_project(strategy, title="Other")
        action = make_action(project)
        other_action = make_action(other, title="Other action")
        _edge(org.id, ("project", project.id), ("project", other.id))
        _edge(org.id, ("action", other_action.id), ("action", action.id))
        keep = _edge(org.id, ("project", other.id), ("action", other_action.id))

        result = cascade.archive_project(project.id, "u-lead", tenant_id=org.id)

        assert result.removed_dependencies == 2
        assert [d.id for d in Dependency.query.all()] == [keep.id]

    def test_archive_rolls_up_strategy_without_archived_project(
        self, org, make_strategy, make_project, make_action,
    ):
        strategy = make_strategy()
        live = make_project(strategy, title="Live", progress=100)
        make_action(live, status="achieved")
        shelved = make_project(strategy, title="Shelved", progress=0)
        make_action(shelved)
        cascade.recalculate_all(org.id)
        assert db.session.get(Strategy, strategy.id).progress == 50

        cascade.archive_project(shelved.id, "u-lead", tenant_id=org.id)

        assert db.session.get(Strategy, strategy.id).progress == 100

    def test_archive_writes_activity(self, org, make_strategy, make_project):
        project = make_project(make_strategy())
        cascade.archive_project(project.id, "u-lead", reason="Paused", tenant_id=org.id)
        activity = Activity.query.filter_by(project_id=project.id, type="project_archived").one()
        assert activity.actor == "u-lead"
        assert activity.details["reason"] == "Paused"

    def test_archiving_twice_is_rejected(self, org, make_strategy, make_project):
        project = make_project(make_strategy())
        cascade.archive_project(project.id, "u-lead", tenant_id=org.id)
        with pytest.raises(ValidationError, match="already archived"):
            cascade.archive_project(project.id, "u-lead", tenant_id=org.id)
        assert ArchiveSnapshot.query.count() == 1

    def test_invalid_wake_up_date_writes_nothing(self, org, make_strategy, make_project):
        project = make_project(make_strategy())
        with pytest.raises(ValidationError):
            cascade.archive_project(project.id, "u-lead", wake_up_date="someday", tenant_id=org.id)
        db.session.rollback()
        assert ArchiveSnapshot.query.count() == 0
        assert db.session.get(Project, project.id).is_archived is False

    def test_missing_project(self, org):
        with pytest.raises(NotFoundError):
            cascade.archive_project(404, "u-lead", tenant_id=org.id)


class TestUnarchiveProject:
    def test_archive_then_unarchive_pairs_snapshots(
        self, org, make_strategy, make_project, make_action,
    ):
        project = make_project(make_strategy(), progress=0)
        make_action(project, status="achieved")
        make_action(project, title="Two")
        make_action(project, title="Three")
        make_action(project, title="Four")
        cascade.on_project_changed(project.id, tenant_id=org.id)
        assert db.session.get(Project, project.id).progress == 25

        cascade.archive_project(project.id, "u-lead", reason="Hold", tenant_id=org.id)
        assert db.session.get(Project, project.id).progress_at_archive == 25

        result = cascade.unarchive_project(project.id, "u-lead", reason="Back on", tenant_id=org.id)

        snaps = SnapshotService.list_snapshots(project.id, tenant_id=org.id)
        assert [s.kind for s in snaps] == ["unarchive", "archive"]
        assert snaps[0].id > snaps[1].id
        assert snaps[0].reason == "Back on"

        fresh = db.session.get(Project, project.id)
        assert fresh.is_archived is False
        assert fresh.archive_reason is None
        assert fresh.archived_at is None
        assert fresh.wake_up_date is None
        assert fresh.progress_at_archive == 25
        assert fresh.progress == 25
        assert Action.query.filter_by(project_id=project.id, is_archived=True).count() == 0
        assert result.snapshot.kind == "unarchive"

    def test_unarchive_snapshot_shows_archived_state(self, org, make_strategy, make_project, make_action):
        project = make_project(make_strategy())
        make_action(project)
        cascade.archive_project(project.id, "u-lead", tenant_id=org.id)

        result = cascade.unarchive_project(project.id, "u-lead", tenant_id=org.id)

        assert result.snapshot.state["project"]["is_archived"] is True
        assert result.snapshot.state["actions"][0]["is_archived"] is True

    def test_unarchive_rolls_up_strategy(self, org, make_strategy, make_project, make_action):
        strategy = make_strategy()
        project = make_project(strategy)
        make_action(project, status="achieved")
        cascade.archive_project(project.id, "u-lead", tenant_id=org.id)
        cascade.refresh_strategy(strategy.id, tenant_id=org.id)
        assert db.session.get(Strategy, strategy.id).progress == 0

        cascade.unarchive_project(project.id, "u-lead", tenant_id=org.id)

        assert db.session.get(Strategy, strategy.id).progress == 100

    def test_unarchive_of_live_project_is_rejected(self, org, make_strategy, make_project):
        project = make_project(make_strategy())
        with pytest.raises(ValidationError, match="not archived"):
            cascade.unarchive_project(project.id, "u-lead", tenant_id=org.id)

    def test_unarchive_under_archived_strategy_is_rejected(
        self, org, make_strategy, make_project, make_action,
    ):
        strategy = make_strategy(status="Completed", progress=100)
        project = make_project(strategy, status="C", progress=100)
        make_action(project, status="achieved")
        cascade.archive_strategy(strategy.id, "u-lead", tenant_id=org.id)

        with pytest.raises(ValidationError, match="strategy is archived"):
            cascade.unarchive_project(project.id, "u-lead", tenant_id=org.id)

        db.session.rollback()
        assert db.session.get(Project, project.id).is_archived is True
        assert Action.query.filter_by(project_id=project.id, is_archived=False).count() == 0
        assert SnapshotService.list_snapshots(project.id, tenant_id=org.id) == []


# ═════════════════════════════════════════════════════════════════════════════
# STRATEGY LIFECYCLE
# ═════════════════════════════════════════════════════════════════════════════


class TestCompleteStrategy:
    def test_complete_sets_status_date_and_removes_edges(
        self, org, make_strategy, make_project, make_action, recorder,
    ):
        strategy = make_strategy()
        project = make_project(strategy, leaders=["u1"])
        action = make_action(project)
        loose = make_action(strategy=strategy, title="Loose")
        _edge(org.id, ("project", project.id), ("action", loose.id))
        _edge(org.id, ("action", action.id), ("action", loose.id))

        result = cascade.complete_strategy(strategy.id, "u-lead", tenant_id=org.id, notify=recorder)

        fresh = db.session.get(Strategy, strategy.id)
        assert fresh.status == "Completed"
        assert fresh.completion_date is not None
        assert result.removed_dependencies == 2
        assert Dependency.query.count() == 0
        event = recorder.of_type("strategy_status_changed")[0]
        assert (event["old_value"], event["new_value"]) == ("Active", "Completed")
        assert event["recipient_ids"] == ["u1"]

    def test_archived_strategy_cannot_be_completed(self, org, make_strategy):
        strategy = make_strategy(status="Archived")
        with pytest.raises(ValidationError):
            cascade.complete_strategy(strategy.id, "u-lead", tenant_id=org.id)


class TestArchiveStrategy:
    def test_archive_completed_strategy_flags_subtree(
        self, org, make_strategy, make_project, make_action, recorder,
    ):
        strategy = make_strategy(status="Completed", progress=100)
        p1 = make_project(strategy, status="C", progress=100)
        p2 = make_project(strategy, title="Two", status="C", progress=100)
        a1 = make_action(p1, status="achieved")
        a2 = make_action(strategy=strategy, title="Unassigned")
        _edge(org.id, ("project", p1.id), ("project", p2.id))

        result = cascade.archive_strategy(strategy.id, "u-lead", tenant_id=org.id, notify=recorder)

        assert db.session.get(Strategy, strategy.id).status == "Archived"
        assert db.session.get(Project, p1.id).is_archived is True
        assert db.session.get(Project, p2.id).is_archived is True
        assert db.session.get(Action, a1.id).is_archived is True
        assert db.session.get(Action, a2.id).is_archived is True
        assert result.removed_dependencies == 1
        assert ArchiveSnapshot.query.count() == 0
        assert recorder.of_type("strategy_status_changed")[0]["new_value"] == "Archived"

    @pytest.mark.parametrize("status", ["Active", "Archived"])
    def test_only_completed_strategies_can_be_archived(
        self, org, make_strategy, make_project, status,
    ):
        strategy = make_strategy(status=status)
        project = make_project(strategy)
        _edge(org.id, ("project", project.id), ("project", project.id + 1000))

        with pytest.raises(ValidationError, match="Only completed"):
            cascade.archive_strategy(strategy.id, "u-lead", tenant_id=org.id)

        db.session.rollback()
        assert db.session.get(Strategy, strategy.id).status == status
        assert db.session.get(Project, project.id).is_archived is False
        assert Dependency.query.count() == 1


# ═════════════════════════════════════════════════════════════════════════════
# DELETES
# ═════════════════════════════════════════════════════════════════════════════


class TestDeletes:
    def test_delete_action_removes_children_and_rolls_up(
        self, org, make_strategy, make_project, make_action,
    ):
        strategy = make_strategy()
        project = make_project(strategy)
        keep = make_action(project, status="achieved")
        doomed = make_action(project, title="Doomed")
        db.session.add(ActionDocument(tenant_id=org.id, action_id=doomed.id, name="Plan", url="https://x"))
        db.session.add(ActionChecklistItem(tenant_id=org.id, action_id=doomed.id, title="Step"))
        db.session.commit()
        _edge(org.id, ("action", keep.id), ("action", doomed.id))
        cascade.on_project_changed(project.id, tenant_id=org.id)
        assert db.session.get(Project, project.id).progress == 50

        result = cascade.delete_action(doomed.id, "u-lead", tenant_id=org.id)

        assert result.removed_dependencies == 1
        assert db.session.get(Action, doomed.id) is None
        assert ActionDocument.query.count() == 0
        assert ActionChecklistItem.query.count() == 0
        assert db.session.get(Project, project.id).progress == 100
        assert db.session.get(Strategy, strategy.id).progress == 100

    def test_delete_project_removes_actions_barriers_and_rolls_up(
        self, org, make_strategy, make_project, make_action,
    ):
        strategy = make_strategy()
        keep = make_project(strategy, title="Keep", progress=100)
        doomed = make_project(strategy, title="Doomed", progress=0)
        make_action(doomed)
        db.session.add(Barrier(tenant_id=org.id, project_id=doomed.id, title="Blocked"))
        db.session.commit()
        _edge(org.id, ("project", keep.id), ("project", doomed.id))

        result = cascade.delete_project(doomed.id, "u-lead", tenant_id=org.id)

        assert result.removed_dependencies == 1
        assert db.session.get(Project, doomed.id) is None
        assert Action.query.filter_by(project_id=doomed.id).count() == 0
        assert Barrier.query.count() == 0
        assert db.session.get(Strategy, strategy.id).progress == 100

    def test_delete_strategy_keeps_snapshots(self, org, make_strategy, make_project, make_action):
        strategy = make_strategy()
        project = make_project(strategy)
        make_action(project)
        make_action(strategy=strategy, title="Loose")
        cascade.archive_project(project.id, "u-lead", tenant_id=org.id)

        cascade.delete_strategy(strategy.id, "u-lead", tenant_id=org.id)

        assert db.session.get(Strategy, strategy.id) is None
        assert Project.query.count() == 0
        assert Action.query.count() == 0
        assert ArchiveSnapshot.query.filter_by(entity_id=project.id).count() == 1
        assert Activity.query.filter_by(type="strategy_deleted").count() == 1

    def test_delete_in_other_tenant_is_not_found(self, other_org, make_strategy):
        strategy = make_strategy()
        with pytest.raises(NotFoundError):
            cascade.delete_strategy(strategy.id, "u-other", tenant_id=other_org.id)
        assert db.session.get(Strategy, strategy.id) is not None
