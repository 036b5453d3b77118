from __future__ import annotations

from flask import Blueprint, Response, current_app

from .app_authz import current_user, require_admin, require_user
from .context import get_request_context
from .envelope import created, no_content, paged, success
from .notification_service import NOTIFICATION_TYPES, NotificationService
from .parsing import ArgParser
from .validators import object_id

bp = Blueprint("notification_api", __name__, url_prefix="/notifications")

_INVALID_ID = "Invalid notification ID format"


def _service() -> NotificationService:
    return current_app.services.notifications  # type: ignore[attr-defined]


@bp.get("")
@require_user
async def list_notifications() -> Response:
    args = ArgParser.query()
    page = args.page(default_limit=20)
    unread_only = args.boolean("unreadOnly", default=False)
    args.finish()
    result = await _service().list_notifications(
        current_user().id, bool(unread_only), page, get_request_context().request_id
    )
    return paged(result, key="notifications")


@bp.get("/unread-count")
@require_user
async def unread_count() -> Response:
    count = await _service().unread_count(current_user().id, get_request_context().request_id)
    return success({"count": count})


@bp.patch("/read-all")
@require_user
async def mark_all_read() -> Response:
    count = await _service().mark_all_read(current_user().id, get_request_context().request_id)
    return success({"count": count}, message="All notifications marked as read")


@bp.patch("/<notification_id>/read")
@require_user
async def mark_read(notification_id: str) -> Response:
    nid = object_id(notification_id, message=_INVALID_ID)
    item = await _service().mark_read(current_user().id, nid, get_request_context().request_id)
    return success(item, message="Notification marked as read")


@bp.delete("/<notification_id>")
@require_user
async def delete_notification(notification_id: str) -> Response:
    nid = object_id(notification_id, message=_INVALID_ID)
    await _service().delete(current_user().id, nid, get_request_context().request_id)
    return no_content()


@bp.post("")
@require_admin
async def create_notification() -> Response:
    args = ArgParser.body()
    user_id = args.string("userId", required=True, required_message="User ID is required")
    type_ = args.choice(
        "type", NOTIFICATION_TYPES, required=True,
        message=f"Invalid notification type. Must be one of: {', '.join(NOTIFICATION_TYPES)}",
        required_message="Notification type is required",
    )
    title = args.string("title", required=True, max_length=200, required_message="Title is required")
    message = args.string("message", required=True, max_length=2000, required_message="Message is required")
    data = args.json_object("data")
    args.finish()
    item = await _service().create(
        user_id or "", type_ or "system", title or "", message or "", data, get_request_context().request_id
    )
    return created(item, message="Notification created successfully")
