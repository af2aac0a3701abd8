"""
Strategy Planner
Notification blueprint — in-app inbox for milestone and status events.

Notifications are written by the cascade service through the notify
callback; this blueprint only reads and acknowledges them. The recipient is
the caller (X-User-ID header) unless ``?recipient=`` is given.

Endpoints:
    GET   /api/v1/notifications                  list (?unread_only=&limit=&offset=)
    GET   /api/v1/notifications/unread-count     unread badge count
    PATCH /api/v1/notifications/<id>/read        mark one read
    POST  /api/v1/notifications/mark-all-read    mark all read
"""

import logging

from flask import Blueprint, jsonify, request

from stratplan.blueprints import current_actor, current_tenant_id, pagination_args
from stratplan.services.notification import NotificationService
from stratplan.utils.errors import register_service_error_handlers

logger = logging.getLogger(__name__)

notification_bp = Blueprint("notification", __name__, url_prefix="/api/v1/notifications")
register_service_error_handlers(notification_bp)


def _recipient() -> str:
    return request.args.get("recipient") or current_actor()


@notification_bp.route("", methods=["GET"])
def list_notifications():
    limit, offset = pagination_args()
    unread_only = request.args.get("unread_only", "").lower() in ("1", "true", "yes")
    items, total = NotificationService.list_for_recipient(
        current_tenant_id(), _recipient(), unread_only=unread_only, limit=limit, offset=offset,
    )
    return jsonify({"items": [n.to_dict() for n in items], "total": total})


@notification_bp.route("/unread-count", methods=["GET"])
def unread_count():
    count = NotificationService.unread_count(current_tenant_id(), _recipient())
    return jsonify({"unread_count": count})


@notification_bp.route("/<int:notification_id>/read", methods=["PATCH"])
def mark_read(notification_id):
    notif = NotificationService.mark_read(current_tenant_id(), notification_id)
    return jsonify(notif.to_dict())


@notification_bp.route("/mark-all-read", methods=["POST"])
def mark_all_read():
    count = NotificationService.mark_all_read(current_tenant_id(), _recipient())
    return jsonify({"marked_read": count})
