"""
Tests — cascade service roll-up.

Covers:
    - Action change → project → strategy, project committed before strategy read
    - Strategy auto-complete / auto-revert with completion_date + activity
    - Archived actions and archived projects excluded from aggregates
    - Best-effort ancestor step: AggregationWarning instead of failure
    - Notify callback failures never undo a roll-up
    - recalculate_all reconciliation
"""

import pytest

from stratplan.core.exceptions import AggregationWarning, NotFoundError
from stratplan.models import db
from stratplan.models.activity import Activity
from stratplan.models.notification import Notification
from stratplan.models.strategy import Project, Strategy
from stratplan.services import cascade, hierarchy_service
from stratplan.services.repository import SqlAlchemyHierarchyRepository


class RecordingRepo(SqlAlchemyHierarchyRepository):
    """Records the order of aggregate writes and reads."""

    def __init__(self, tenant_id=None):
        super().__init__(tenant_id)
        self.calls = []

    def save_project_progress(self, project, progress):
        self.calls.append(("save_project", progress))
        super().save_project_progress(project, progress)

    def project_states(self, strategy_id):
        states = super().project_states(strategy_id)
        self.calls.append(("read_projects", [s.progress for s in states]))
        return states

    def save_strategy_aggregate(self, strategy, progress, status):
        self.calls.append(("save_strategy", progress))
        super().save_strategy_aggregate(strategy, progress, status)


class FailingStrategyRepo(SqlAlchemyHierarchyRepository):
    """Strategy store is down; project writes still succeed."""

    def save_strategy_aggregate(self, strategy, progress, status):
        raise RuntimeError("strategy store unavailable")


class FailingProjectRepo(SqlAlchemyHierarchyRepository):
    def save_project_progress(self, project, progress):
        raise RuntimeError("project store unavailable")


# ═════════════════════════════════════════════════════════════════════════════
# ROLL-UP ORDERING
# ═════════════════════════════════════════════════════════════════════════════


class TestActionRollUp:
    def test_achieving_action_updates_project_then_strategy(
        self, org, make_strategy, make_project, make_action, recorder,
    ):
        strategy = make_strategy()
        project = make_project(strategy)
        first = make_action(project)
        make_action(project, title="Second")

        action, result = hierarchy_service.update_action(
            org.id, first.id, {"status": "achieved"}, actor="u-lead", notify=recorder,
        )

        assert result.ok
        assert db.session.get(Project, project.id).progress == 50
        assert db.session.get(Strategy, strategy.id).progress == 50
        assert action.achieved_date is not None

    def test_project_is_committed_before_strategy_reads_it(
        self, org, make_strategy, make_project, make_action, recorder,
    ):
        strategy = make_strategy()
        project = make_project(strategy)
        action = make_action(project, status="achieved")

        repo = RecordingRepo(org.id)
        result = cascade.on_action_changed(action.id, repo=repo, notify=recorder)

        assert result.ok
        assert repo.calls == [
            ("save_project", 100),
            ("read_projects", [100]),
            ("save_strategy", 100),
        ]
        assert result.project.id == project.id
        assert result.strategy.id == strategy.id

    def test_unassigned_action_touches_no_aggregate(
        self, org, make_strategy, make_action, recorder,
    ):
        strategy = make_strategy(progress=0)
        action = make_action(strategy=strategy, status="achieved")

        repo = RecordingRepo(org.id)
        result = cascade.on_action_changed(action.id, repo=repo, notify=recorder)

        assert result.action.id == action.id
        assert result.project is None
        assert repo.calls == []

    def test_archived_actions_do_not_count(
        self, org, make_strategy, make_project, make_action, recorder,
    ):
        strategy = make_strategy()
        project = make_project(strategy)
        achieved = make_action(project, status="achieved")
        make_action(project, title="Old", status="not_started", is_archived=True)

        cascade.on_action_changed(achieved.id, tenant_id=org.id, notify=recorder)

        assert db.session.get(Project, project.id).progress == 100

    def test_unknown_action_raises_not_found(self, org):
        with pytest.raises(NotFoundError):
            cascade.on_action_changed(9999, tenant_id=org.id)

    def test_other_tenants_action_is_not_found(
        self, other_org, make_strategy, make_project, make_action,
    ):
        project = make_project(make_strategy())
        action = make_action(project)
        with pytest.raises(NotFoundError):
            cascade.on_action_changed(action.id, tenant_id=other_org.id)


# ═════════════════════════════════════════════════════════════════════════════
# STRATEGY AUTO STATUS
# ═════════════════════════════════════════════════════════════════════════════


class TestStrategyAutoStatus:
    def test_all_projects_completed_completes_strategy(
        self, org, make_strategy, make_project, recorder,
    ):
        strategy = make_strategy()
        make_project(strategy, title="A", status="C", progress=100, leaders=["u1"])
        make_project(strategy, title="B", status="completed", progress=100, leaders=["u2", "u1"])

        cascade.on_strategy_status_changed(strategy.id, tenant_id=org.id, notify=recorder)

        fresh = db.session.get(Strategy, strategy.id)
        assert fresh.status == "Completed"
        assert fresh.progress == 100
        assert fresh.completion_date is not None
        events = recorder.of_type("strategy_status_changed")
        assert len(events) == 1
        assert events[0]["old_value"] == "Active"
        assert events[0]["new_value"] == "Completed"
        assert events[0]["recipient_ids"] == ["u1", "u2"]
        assert Activity.query.filter_by(strategy_id=strategy.id, type="strategy_completed").count() == 1

    def test_progress_drop_reverts_completed_strategy(
        self, org, make_strategy, make_project, recorder,
    ):
        strategy = make_strategy(status="Completed", progress=100)
        make_project(strategy, title="A", status="C", progress=100)
        make_project(strategy, title="B", status="OT", progress=60)

        cascade.on_strategy_status_changed(strategy.id, tenant_id=org.id, notify=recorder)

        fresh = db.session.get(Strategy, strategy.id)
        assert fresh.status == "Active"
        assert fresh.progress == 80
        assert Activity.query.filter_by(strategy_id=strategy.id, type="strategy_reopened").count() == 1
        assert recorder.of_type("strategy_status_changed")[0]["new_value"] == "Active"

    def test_strategy_without_projects_stays_active_at_zero(self, org, make_strategy, recorder):
        strategy = make_strategy(progress=40)
        cascade.on_strategy_status_changed(strategy.id, tenant_id=org.id, notify=recorder)
        fresh = db.session.get(Strategy, strategy.id)
        assert fresh.status == "Active"
        assert fresh.progress == 0
        assert recorder.events == []

    def test_archived_projects_are_excluded(self, org, make_strategy, make_project, recorder):
        strategy = make_strategy()
        make_project(strategy, title="Live", status="OT", progress=40)
        make_project(strategy, title="Shelved", status="OT", progress=0, is_archived=True)

        cascade.on_strategy_status_changed(strategy.id, tenant_id=org.id, notify=recorder)

        assert db.session.get(Strategy, strategy.id).progress == 40

    def test_archived_strategy_is_not_rolled_up(
        self, org, make_strategy, make_project, make_action, recorder,
    ):
        strategy = make_strategy(status="Archived", progress=100)
        project = make_project(strategy, status="C", progress=100)
        action = make_action(project, status="not_started")

        result = cascade.on_action_changed(action.id, tenant_id=org.id, notify=recorder)

        assert result.ok
        fresh = db.session.get(Strategy, strategy.id)
        assert fresh.status == "Archived"
        assert fresh.progress == 100


# ═════════════════════════════════════════════════════════════════════════════
# FAILURE POLICY
# ═════════════════════════════════════════════════════════════════════════════


class TestBestEffortAncestors:
    def test_strategy_failure_keeps_child_writes_and_warns(
        self, org, make_strategy, make_project, make_action, recorder, caplog,
    ):
        strategy = make_strategy(progress=0)
        project = make_project(strategy)
        action = make_action(project)

        action.status = "achieved"
        db.session.commit()

        with caplog.at_level("WARNING", logger="stratplan.services.cascade"):
            result = cascade.on_action_changed(
                action.id, repo=FailingStrategyRepo(org.id), notify=recorder,
            )

        assert not result.ok
        assert len(result.warnings) == 1
        warning = result.warnings[0]
        assert isinstance(warning, AggregationWarning)
        assert warning.entity_type == "strategy"
        assert warning.entity_id == strategy.id
        assert "strategy store unavailable" in warning.message
        assert any("roll-up failed" in r.getMessage() for r in caplog.records)

        assert db.session.get(Project, project.id).progress == 100
        assert db.session.get(Strategy, strategy.id).progress == 0

    def test_project_step_failure_in_action_cascade_is_a_warning(
        self, org, make_strategy, make_project, make_action, recorder,
    ):
        project = make_project(make_strategy())
        action = make_action(project, status="achieved")

        result = cascade.on_action_changed(action.id, repo=FailingProjectRepo(org.id), notify=recorder)

        assert [w.entity_type for w in result.warnings] == ["project"]
        assert db.session.get(Project, project.id).progress == 0

    def test_project_step_failure_propagates_from_project_trigger(
        self, org, make_strategy, make_project,
    ):
        project = make_project(make_strategy())
        with pytest.raises(RuntimeError):
            cascade.on_project_changed(project.id, repo=FailingProjectRepo(org.id))

    def test_notify_failure_does_not_undo_roll_up(
        self, org, make_strategy, make_project, make_action,
    ):
        def broken_notify(*args):
            raise ConnectionError("mail relay down")

        strategy = make_strategy()
        project = make_project(strategy)
        action = make_action(project, status="achieved")

        result = cascade.on_action_changed(action.id, tenant_id=org.id, notify=broken_notify)

        assert result.ok
        assert db.session.get(Project, project.id).progress == 100
        assert db.session.get(Strategy, strategy.id).progress == 100

    def test_default_notifier_stores_in_app_notifications(
        self, org, make_strategy, make_project, make_action,
    ):
        project = make_project(make_strategy(), leaders=["u-lead"])
        action = make_action(project, status="achieved")

        cascade.on_action_changed(action.id, tenant_id=org.id)

        rows = Notification.query.filter_by(tenant_id=org.id).all()
        assert [n.type for n in rows] == ["project_progress_100"]
        assert rows[0].recipient == "u-lead"


# ═════════════════════════════════════════════════════════════════════════════
# RECONCILIATION
# ═════════════════════════════════════════════════════════════════════════════


class TestRecalculateAll:
    def test_repairs_drift(self, org, make_strategy, make_project, make_action):
        strategy = make_strategy(progress=3)
        project = make_project(strategy, progress=7)
        make_action(project, status="achieved")
        make_action(project, status="in_progress")

        summary = cascade.recalculate_all(org.id)

        assert summary == {"projects": 1, "strategies": 1, "warnings": []}
        assert db.session.get(Project, project.id).progress == 50
        assert db.session.get(Strategy, strategy.id).progress == 50

    def test_sends_no_notifications_by_default(self, org, make_strategy, make_project, make_action):
        project = make_project(make_strategy(), progress=0)
        make_action(project, status="achieved")

        cascade.recalculate_all(org.id)

        assert Notification.query.count() == 0

    def test_scoped_to_tenant(self, org, other_org, make_strategy, make_project):
        mine = make_project(make_strategy(), progress=55)
        theirs = make_project(make_strategy(tenant_id=other_org.id), progress=55)

        summary = cascade.recalculate_all(org.id)

        assert summary["projects"] == 1
        assert db.session.get(Project, mine.id).progress == 0
        assert db.session.get(Project, theirs.id).progress == 55

    def test_without_tenant_covers_everyone(self, org, other_org, make_strategy, make_project):
        make_project(make_strategy())
        make_project(make_strategy(tenant_id=other_org.id))

        summary = cascade.recalculate_all()

        assert summary["projects"] == 2
        assert summary["strategies"] == 2

    def test_failure_on_one_entity_is_reported_and_skipped(
        self, org, make_strategy, make_project,
    ):
        make_project(make_strategy())

        summary = cascade.recalculate_all(org.id, repo=FailingStrategyRepo(org.id))

        assert summary["projects"] == 1
        assert summary["strategies"] == 0
        assert summary["warnings"][0]["entity_type"] == "strategy"


class TestCliCommand:
    def test_recalculate_progress_command(self, app, org, make_strategy, make_project, make_action):
        project = make_project(make_strategy(), progress=0)
        make_action(project, status="achieved")

        runner = app.test_cli_runner()
        result = runner.invoke(args=["recalculate-progress", "--tenant-id", str(org.id)])

        assert result.exit_code == 0
        assert "Recalculated 1 project(s)" in result.output
        assert db.session.get(Project, project.id).progress == 100
