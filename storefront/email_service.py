"""Outbound email: a priority queue in front of a pluggable transport.

Templated emails are rendered and queued; ``process_queue`` drains them through
the transport, re-queueing failures until ``MAX_ATTEMPTS`` is reached. Test
emails bypass the queue and are sent immediately.
"""
from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

from .errors import InternalError
from .email_templates import TemplateRenderer
from .ids import iso, new_uuid, utcnow

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 3
HIGH_PRIORITY_BELOW = 5


@dataclass
class EmailMessage:
    to: str
    subject: str
    html: str
    sender: str
    id: str = field(default_factory=new_uuid)
    priority: int = 5
    attempts: int = 0
    scheduled_for: datetime | None = None
    created_at: datetime = field(default_factory=utcnow)


class EmailTransport(Protocol):
    def send(self, message: EmailMessage) -> str: ...


class LoggingTransport:
    """Delivers nothing; records each message in the log and keeps the last ones for inspection."""

    def __init__(self, keep: int = 100) -> None:
        self.sent: deque[EmailMessage] = deque(maxlen=keep)

    def send(self, message: EmailMessage) -> str:
        logger.info("email to=%s subject=%r id=%s", message.to, message.subject, message.id)
        self.sent.append(message)
        return f"<{message.id}@storefront.local>"


class EmailService(Protocol):
    async def send_now(self, to: str, subject: str, html: str, request_id: str) -> dict[str, Any]: ...
    async def queue_email(self, to: str, subject: str, html: str, request_id: str, *, priority: int = 5) -> str: ...
    async def queue_template(self, template: str, to: str, context: dict[str, Any], language: str | None, request_id: str, *, priority: int = 5) -> str: ...
    async def process_queue(self, limit: int, request_id: str) -> int: ...
    async def queue_length(self, request_id: str) -> dict[str, int]: ...
    async def clear_queue(self, request_id: str) -> int: ...


class QueuedEmailService:
    def __init__(
        self,
        transport: EmailTransport | None = None,
        *,
        sender: str = "no-reply@storefront.local",
        renderer: TemplateRenderer | None = None,
    ) -> None:
        self.transport = transport or LoggingTransport()
        self.sender = sender
        self.renderer = renderer or TemplateRenderer()
        self._high: deque[EmailMessage] = deque()
        self._normal: deque[EmailMessage] = deque()
        self._lock = threading.RLock()

    def _enqueue(self, message: EmailMessage) -> None:
        with self._lock:
            (self._high if message.priority < HIGH_PRIORITY_BELOW else self._normal).append(message)

    def _next(self, now: datetime) -> EmailMessage | None:
        with self._lock:
            for queue in (self._high, self._normal):
                for _ in range(len(queue)):
                    message = queue.popleft()
                    if message.scheduled_for is None or message.scheduled_for <= now:
                        return message
                    queue.append(message)
        return None

    async def send_now(self, to: str, subject: str, html: str, request_id: str) -> dict[str, Any]:
        message = EmailMessage(to=to, subject=subject, html=html, sender=self.sender)
        logger.info("[%s] Sending email to %s, subject: %s", request_id, to, subject)
        try:
            message_id = self.transport.send(message)
        except Exception as e:
            logger.exception("[%s] Email delivery failed", request_id)
            raise InternalError("Failed to send email") from e
        return {"messageId": message_id, "to": to, "sentAt": iso(utcnow())}

    async def queue_email(self, to: str, subject: str, html: str, request_id: str, *, priority: int = 5) -> str:
        message = EmailMessage(to=to, subject=subject, html=html, sender=self.sender, priority=priority)
        self._enqueue(message)
        logger.info("[%s] Email queued id=%s to=%s priority=%d", request_id, message.id, to, priority)
        return message.id

    async def queue_template(
        self,
        template: str,
        to: str,
        context: dict[str, Any],
        language: str | None,
        request_id: str,
        *,
        priority: int = 5,
    ) -> str:
        ctx = {"year": utcnow().year, **context}
        subject, html = self.renderer.render(template, ctx, language)
        return await self.queue_email(to, subject, html, request_id, priority=priority)

    async def process_queue(self, limit: int, request_id: str) -> int:
        logger.info("[%s] Processing email queue, limit: %d", request_id, limit)
        processed = 0
        failed: list[EmailMessage] = []
        now = utcnow()
        while processed + len(failed) < limit:
            message = self._next(now)
            if message is None:
                break
            try:
                self.transport.send(message)
            except Exception:
                message.attempts += 1
                if message.attempts >= MAX_ATTEMPTS:
                    logger.exception("[%s] Dropping email id=%s after %d attempts", request_id, message.id, message.attempts)
                else:
                    logger.warning("[%s] Re-queueing email id=%s attempts=%d", request_id, message.id, message.attempts)
                    failed.append(message)
                continue
            processed += 1
        for message in failed:
            self._enqueue(message)
        logger.info("[%s] Email queue processing completed, processed: %d", request_id, processed)
        return processed

    async def queue_length(self, request_id: str) -> dict[str, int]:
        with self._lock:
            high, normal = len(self._high), len(self._normal)
        return {"total": high + normal, "high": high, "normal": normal}

    async def clear_queue(self, request_id: str) -> int:
        with self._lock:
            removed = len(self._high) + len(self._normal)
            self._high.clear()
            self._normal.clear()
        logger.info("[%s] Email queue cleared, removed: %d", request_id, removed)
        return removed


__all__ = ["EmailService", "QueuedEmailService", "EmailTransport", "LoggingTransport", "EmailMessage", "MAX_ATTEMPTS"]
