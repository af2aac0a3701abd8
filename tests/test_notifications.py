"""
Tests — notify callback contract and in-app notification store.

Covers:
    - Milestone detection fires once per crossing, highest milestone only
    - Recipients are de-duplicated (one notification per recipient)
    - Status-change events only fire on an actual flip
    - NotificationService inbox: list / unread count / mark read
"""

import pytest

from stratplan.core.exceptions import NotFoundError
from stratplan.models.notification import Notification
from stratplan.services import cascade, hierarchy_service
from stratplan.services.notification import (
    NotificationService,
    notify_progress_milestone,
    notify_status_change,
    unique_recipients,
)
from stratplan.services.status import ProjectStatus


class TestMilestones:
    def test_crossing_fifty_notifies_each_recipient_once(
        self, org, make_strategy, make_project, make_action, recorder,
    ):
        project = make_project(make_strategy(), leaders=["u1", "u2", "u1", ""])
        first = make_action(project)
        make_action(project, title="Second")

        hierarchy_service.update_action(org.id, first.id, {"status": "achieved"}, notify=recorder)

        events = recorder.of_type("project_progress_50")
        assert len(events) == 1
        assert events[0]["recipient_ids"] == ["u1", "u2"]
        assert (events[0]["old_value"], events[0]["new_value"]) == (0, 50)
        assert len([e for e in recorder.events if e["event_type"].startswith("project_progress_")]) == 1

    def test_default_store_writes_one_row_per_recipient(
        self, org, make_strategy, make_project, make_action,
    ):
        project = make_project(make_strategy(), leaders=["u1", "u2", "u1"])
        first = make_action(project)
        make_action(project, title="Second")

        hierarchy_service.update_action(org.id, first.id, {"status": "achieved"})

        rows = Notification.query.filter_by(type="project_progress_50").all()
        assert sorted(n.recipient for n in rows) == ["u1", "u2"]
        assert rows[0].related_entity_type == "project"
        assert rows[0].related_entity_id == project.id

    def test_unchanged_progress_sends_nothing(
        self, org, make_strategy, make_project, make_action, recorder,
    ):
        project = make_project(make_strategy(), progress=50)
        make_action(project, status="achieved")
        other = make_action(project, title="Other")

        cascade.on_action_changed(other.id, tenant_id=org.id, notify=recorder)

        assert not [e for e in recorder.events if e["event_type"].startswith("project_progress_")]

    def test_falling_progress_sends_nothing(self, recorder):
        fired = notify_progress_milestone(
            recorder, project_id=1, title="P", old_progress=80, new_progress=40, recipients=["u1"],
        )
        assert fired is None
        assert recorder.events == []

    def test_jump_fires_highest_milestone_only(self, recorder):
        fired = notify_progress_milestone(
            recorder, project_id=1, title="P", old_progress=10, new_progress=100, recipients=["u1"],
        )
        assert fired == 100
        assert [e["event_type"] for e in recorder.events] == ["project_progress_100"]

    def test_no_recipients_no_event(self, recorder):
        assert notify_progress_milestone(
            recorder, project_id=1, title="P", old_progress=0, new_progress=60, recipients=[],
        ) is None
        assert recorder.events == []


class TestStatusChange:
    def test_fires_on_flip_with_plain_values(self, recorder):
        assert notify_status_change(
            recorder,
            event_type="project_status_changed",
            entity_id=3,
            title="P",
            old_status=ProjectStatus.ON_TRACK,
            new_status=ProjectStatus.BEHIND,
            recipients=["u1"],
        )
        event = recorder.events[0]
        assert (event["old_value"], event["new_value"]) == ("OT", "B")

    def test_no_flip_no_event(self, recorder):
        assert not notify_status_change(
            recorder,
            event_type="project_status_changed",
            entity_id=3,
            title="P",
            old_status="OT",
            new_status=ProjectStatus.ON_TRACK,
            recipients=["u1"],
        )
        assert recorder.events == []

    def test_project_update_notifies_leaders(self, org, make_strategy, make_project, recorder):
        project = make_project(make_strategy(), status="OT", leaders=["u9"])

        hierarchy_service.update_project(org.id, project.id, {"status": "behind"}, notify=recorder)

        (event,) = recorder.of_type("project_status_changed")
        assert event["entity_id"] == project.id
        assert (event["old_value"], event["new_value"]) == ("OT", "B")
        assert event["recipient_ids"] == ["u9"]


class TestUniqueRecipients:
    def test_order_preserved_blanks_dropped(self):
        assert unique_recipients(["b", "a", None, "", "b", 7]) == ["b", "a", "7"]

    def test_none(self):
        assert unique_recipients(None) == []


class TestInbox:
    def _seed(self, tenant_id):
        NotificationService.broadcast(
            tenant_id=tenant_id, type="project_progress_25", title="P 25%",
            recipients=["u1", "u2"], entity_type="project", entity_id=1,
        )
        NotificationService.broadcast(
            tenant_id=tenant_id, type="project_progress_50", title="P 50%",
            recipients=["u1"], entity_type="project", entity_id=1,
        )

    def test_list_newest_first_and_count(self, org):
        self._seed(org.id)
        items, total = NotificationService.list_for_recipient(org.id, "u1")
        assert total == 2
        assert [n.type for n in items] == ["project_progress_50", "project_progress_25"]
        assert NotificationService.unread_count(org.id, "u1") == 2
        assert NotificationService.unread_count(org.id, "u2") == 1

    def test_mark_read_and_mark_all(self, org):
        self._seed(org.id)
        items, _ = NotificationService.list_for_recipient(org.id, "u1")
        NotificationService.mark_read(org.id, items[0].id)
        assert NotificationService.unread_count(org.id, "u1") == 1
        unread, total = NotificationService.list_for_recipient(org.id, "u1", unread_only=True)
        assert total == 1

        assert NotificationService.mark_all_read(org.id, "u1") == 1
        assert NotificationService.unread_count(org.id, "u1") == 0
        assert NotificationService.unread_count(org.id, "u2") == 1

    def test_inbox_is_tenant_scoped(self, org, other_org):
        self._seed(org.id)
        items, total = NotificationService.list_for_recipient(other_org.id, "u1")
        assert (items, total) == ([], 0)
        mine, _ = NotificationService.list_for_recipient(org.id, "u1")
        with pytest.raises(NotFoundError):
            NotificationService.mark_read(other_org.id, mine[0].id)
