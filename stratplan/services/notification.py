"""
Strategy Planner
Notification Service.

Two responsibilities:
    1. The notify callback contract used by the cascade service. The cascade
       only detects transitions (progress milestones, status flips) and calls
       ``notify(event_type, entity_id, title, old_value, new_value, recipient_ids)``.
    2. The default callback: store one in-app Notification row per recipient.
       Delivery beyond the in-app feed (email, push) happens elsewhere.
"""

import logging
from collections.abc import Callable, Iterable
from datetime import datetime, timezone

from stratplan.core.exceptions import NotFoundError
from stratplan.models import db
from stratplan.models.notification import Notification
from stratplan.services.progress import crossed_milestone

logger = logging.getLogger(__name__)

# (event_type, entity_id, title, old_value, new_value, recipient_ids) -> None
NotifyCallback = Callable[[str, int, str, object, object, list], None]


def unique_recipients(recipient_ids: Iterable | None) -> list[str]:
    """Drop blanks and duplicates, keep first-seen order."""
    seen: list[str] = []
    for rid in recipient_ids or []:
        if rid is None or str(rid).strip() == "":
            continue
        rid = str(rid)
        if rid not in seen:
            seen.append(rid)
    return seen


def _describe(event_type: str, title: str, old_value, new_value) -> tuple[str, str, str]:
    """Map an event to (heading, message, related_entity_type)."""
    if event_type.startswith("project_progress_"):
        pct = event_type.rsplit("_", 1)[-1]
        return (
            f"Project {pct}% Complete",
            f'Project "{title}" has reached {pct}% completion',
            "project",
        )
    if event_type == "project_status_changed":
        return (
            "Project Status Updated",
            f'Project "{title}" status changed from {old_value} to {new_value}',
            "project",
        )
    if event_type == "strategy_status_changed":
        return (
            "Strategy Status Updated",
            f'Strategy "{title}" status changed from {old_value} to {new_value}',
            "strategy",
        )
    if event_type == "action_achieved":
        return (
            "Action Achieved",
            f'Action "{title}" has been marked as achieved',
            "action",
        )
    return (title, f"{event_type}: {old_value} → {new_value}", "")


class NotificationService:
    """Stateless service class for notification operations."""

    # ── Create ────────────────────────────────────────────────────────────

    @staticmethod
    def broadcast(*, tenant_id, type, title, message="", recipients=None,
                  entity_type="", entity_id=None):
        """
        Create one notification per recipient.

        Args:
            recipients: list of user ids. Duplicates are collapsed.

        Returns:
            List of created Notification instances (already committed).
        """
        notifications = []
        for r in unique_recipients(recipients):
            notif = Notification(
                tenant_id=tenant_id,
                recipient=r,
                type=type,
                title=title,
                message=message,
                related_entity_type=entity_type,
                related_entity_id=entity_id,
            )
            db.session.add(notif)
            notifications.append(notif)
        if notifications:
            db.session.commit()
        return notifications

    @staticmethod
    def notifier_for(tenant_id) -> NotifyCallback:
        """Return the default notify callback bound to *tenant_id*.

        The returned callable stores in-app notifications for the event.
        """

        def _notify(event_type, entity_id, title, old_value, new_value, recipient_ids):
            heading, message, entity_type = _describe(event_type, title, old_value, new_value)
            created = NotificationService.broadcast(
                tenant_id=tenant_id,
                type=event_type,
                title=heading,
                message=message,
                recipients=recipient_ids,
                entity_type=entity_type,
                entity_id=entity_id,
            )
            logger.info(
                "Notification %s stored for %d recipient(s)",
                event_type, len(created),
                extra={"tenant_id": tenant_id},
            )

        return _notify

    # ── Query ─────────────────────────────────────────────────────────────

    @staticmethod
    def list_for_recipient(tenant_id, recipient, unread_only=False, limit=50, offset=0):
        """Retrieve notifications for a recipient, newest first."""
        q = Notification.query.filter_by(tenant_id=tenant_id, recipient=str(recipient))
        if unread_only:
            q = q.filter_by(is_read=False)
        total = q.count()
        items = (
            q.order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(offset).limit(limit).all()
        )
        return items, total

    @staticmethod
    def unread_count(tenant_id, recipient):
        return Notification.query.filter_by(
            tenant_id=tenant_id, recipient=str(recipient), is_read=False,
        ).count()

    # ── Actions ───────────────────────────────────────────────────────────

    @staticmethod
    def mark_read(tenant_id, notification_id):
        """Mark a single notification as read."""
        notif = Notification.query.filter_by(id=notification_id, tenant_id=tenant_id).first()
        if notif is None:
            raise NotFoundError(resource="Notification", resource_id=notification_id)
        notif.mark_read()
        db.session.commit()
        return notif

    @staticmethod
    def mark_all_read(tenant_id, recipient):
        """Mark all notifications for a recipient as read."""
        q = Notification.query.filter_by(
            tenant_id=tenant_id, recipient=str(recipient), is_read=False,
        )
        now = datetime.now(timezone.utc)
        count = q.update({"is_read": True, "read_at": now}, synchronize_session="fetch")
        db.session.commit()
        return count


# ── Transition detectors ─────────────────────────────────────────────────────


def notify_progress_milestone(notify: NotifyCallback, *, project_id, title,
                              old_progress, new_progress, recipients) -> int | None:
    """Fire ``project_progress_<N>`` when a milestone is crossed upward.

    Only the highest milestone crossed fires, so a jump from 10 to 80 yields
    a single ``project_progress_75`` event. Returns the milestone or None.
    """
    milestone = crossed_milestone(old_progress, new_progress)
    recipients = unique_recipients(recipients)
    if milestone is None or not recipients:
        return None
    notify(
        f"project_progress_{milestone}", project_id, title,
        old_progress, new_progress, recipients,
    )
    return milestone


def notify_status_change(notify: NotifyCallback, *, event_type, entity_id, title,
                         old_status, new_status, recipients) -> bool:
    """Fire *event_type* when a status actually flipped."""
    old_value = getattr(old_status, "value", old_status)
    new_value = getattr(new_status, "value", new_status)
    recipients = unique_recipients(recipients)
    if old_value == new_value or not recipients:
        return False
    notify(event_type, entity_id, title, old_value, new_value, recipients)
    return True
