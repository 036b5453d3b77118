"""Logging bootstrap + recent-records ring buffer.

Captures WARN+ log records with the associated request_id (if request context)
into an in-memory deque surfaced by ``/healthz`` in debug mode.
"""

from __future__ import annotations

import collections
import logging
import time

from flask import g, has_request_context, request

LOG_BUFFER: collections.deque[dict] = collections.deque(maxlen=200)


class RecentLogHandler(logging.Handler):
    def emit(self, record: logging.LogRecord) -> None:  # type: ignore[override]
        rid = getattr(g, "request_id", "-") if has_request_context() else "-"
        path = request.path if has_request_context() else "-"
        LOG_BUFFER.append(
            {
                "ts": time.time(),
                "level": record.levelname,
                "msg": self.format(record),
                "request_id": rid,
                "path": path,
            }
        )


def configure_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    if not any(isinstance(h, logging.StreamHandler) and not isinstance(h, RecentLogHandler) for h in root.handlers):
        stream = logging.StreamHandler()
        stream.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
        root.addHandler(stream)
    # Avoid duplicate attachment when several apps are created in one process
    if any(isinstance(h, RecentLogHandler) for h in root.handlers):
        return
    h = RecentLogHandler(level=logging.WARNING)
    h.setFormatter(logging.Formatter("%(message)s"))
    root.addHandler(h)


def recent_records(limit: int = 50) -> list[dict]:
    return list(LOG_BUFFER)[-limit:]


__all__ = ["LOG_BUFFER", "RecentLogHandler", "configure_logging", "recent_records"]
