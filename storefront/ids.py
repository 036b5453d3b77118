from __future__ import annotations

import secrets
import uuid
from datetime import UTC, datetime


def new_object_id() -> str:
    """24 hex chars, the id format used by vendors, payouts, tax rates and rewards."""
    return secrets.token_hex(12)


def new_uuid() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(UTC)


def iso(dt: datetime | None) -> str | None:
    if dt is None:
        return None
    return dt.astimezone(UTC).isoformat().replace("+00:00", "Z")


__all__ = ["new_object_id", "new_uuid", "utcnow", "iso"]
