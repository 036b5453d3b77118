"""In-app notifications. Every read and write is scoped to the owning user."""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

from .errors import NotFoundError
from .ids import iso, new_object_id, utcnow
from .pagination import Page, PageRequest, paginate_sequence

logger = logging.getLogger(__name__)

NOTIFICATION_TYPES: tuple[str, ...] = ("order", "loyalty", "promotion", "system")


class NotificationService(Protocol):
    async def list_notifications(self, user_id: str, unread_only: bool, page: PageRequest, request_id: str) -> Page[dict[str, Any]]: ...
    async def unread_count(self, user_id: str, request_id: str) -> int: ...
    async def mark_read(self, user_id: str, notification_id: str, request_id: str) -> dict[str, Any]: ...
    async def mark_all_read(self, user_id: str, request_id: str) -> int: ...
    async def delete(self, user_id: str, notification_id: str, request_id: str) -> None: ...
    async def create(self, user_id: str, type_: str, title: str, message: str, data: dict[str, Any] | None, request_id: str) -> dict[str, Any]: ...


@dataclass
class _Notification:
    id: str
    user_id: str
    type: str
    title: str
    message: str
    created_at: datetime
    data: dict[str, Any] = field(default_factory=dict)
    read: bool = False
    read_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "data": dict(self.data),
            "isRead": self.read,
            "readAt": iso(self.read_at) if self.read_at else None,
            "createdAt": iso(self.created_at),
        }


class InMemoryNotificationService:
    def __init__(self) -> None:
        self._items: dict[str, _Notification] = {}
        self._lock = threading.RLock()

    def _owned(self, user_id: str, notification_id: str) -> _Notification:
        item = self._items.get(notification_id)
        if item is None or item.user_id != user_id:
            raise NotFoundError(message_key="notificationNotFound")
        return item

    async def list_notifications(
        self, user_id: str, unread_only: bool, page: PageRequest, request_id: str
    ) -> Page[dict[str, Any]]:
        logger.info("[%s] Getting notifications for user %s", request_id, user_id)
        with self._lock:
            rows = [n for n in self._items.values() if n.user_id == user_id and (not unread_only or not n.read)]
        rows.sort(key=lambda n: n.created_at, reverse=True)
        return paginate_sequence([n.to_dict() for n in rows], page)

    async def unread_count(self, user_id: str, request_id: str) -> int:
        with self._lock:
            return sum(1 for n in self._items.values() if n.user_id == user_id and not n.read)

    async def mark_read(self, user_id: str, notification_id: str, request_id: str) -> dict[str, Any]:
        logger.info("[%s] Marking notification %s as read for user %s", request_id, notification_id, user_id)
        with self._lock:
            item = self._owned(user_id, notification_id)
            if not item.read:
                item.read = True
                item.read_at = utcnow()
            return item.to_dict()

    async def mark_all_read(self, user_id: str, request_id: str) -> int:
        now = utcnow()
        count = 0
        with self._lock:
            for item in self._items.values():
                if item.user_id == user_id and not item.read:
                    item.read = True
                    item.read_at = now
                    count += 1
        logger.info("[%s] Marked %d notifications as read for user %s", request_id, count, user_id)
        return count

    async def delete(self, user_id: str, notification_id: str, request_id: str) -> None:
        logger.info("[%s] Deleting notification %s for user %s", request_id, notification_id, user_id)
        with self._lock:
            self._owned(user_id, notification_id)
            del self._items[notification_id]

    async def create(
        self,
        user_id: str,
        type_: str,
        title: str,
        message: str,
        data: dict[str, Any] | None,
        request_id: str,
    ) -> dict[str, Any]:
        item = _Notification(
            id=new_object_id(),
            user_id=user_id,
            type=type_,
            title=title,
            message=message,
            data=dict(data or {}),
            created_at=utcnow(),
        )
        with self._lock:
            self._items[item.id] = item
        logger.info("[%s] Created %s notification %s for user %s", request_id, type_, item.id, user_id)
        return item.to_dict()


__all__ = ["NotificationService", "InMemoryNotificationService", "NOTIFICATION_TYPES"]
