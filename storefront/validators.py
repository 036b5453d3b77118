"""Field-format and cross-field validators.

Path-parameter checks (``object_id``, ``uuid_id``, ``country_code``) raise a
``ValidationError`` immediately because the path holds a single value. The
``check_*`` helpers record onto a ``Violations`` accumulator instead.
"""
from __future__ import annotations

import re
from datetime import datetime
from typing import Any

from .errors import ValidationError
from .parsing import Violations

OBJECT_ID_RE = re.compile(r"^[0-9a-fA-F]{24}$")
UUID_RE = re.compile(r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$")
COUNTRY_CODE_RE = re.compile(r"^[A-Z]{2,3}$")
CURRENCY_CODE_RE = re.compile(r"^[A-Z]{3}$")
SLUG_RE = re.compile(r"^[a-z0-9-]+$")
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def is_object_id(value: Any) -> bool:
    return isinstance(value, str) and bool(OBJECT_ID_RE.match(value))


def is_uuid(value: Any) -> bool:
    return isinstance(value, str) and bool(UUID_RE.match(value))


def is_country_code(value: Any) -> bool:
    return isinstance(value, str) and bool(COUNTRY_CODE_RE.match(value))


def is_currency_code(value: Any) -> bool:
    return isinstance(value, str) and bool(CURRENCY_CODE_RE.match(value))


def is_slug(value: Any) -> bool:
    return isinstance(value, str) and bool(SLUG_RE.match(value))


def is_email(value: Any) -> bool:
    return isinstance(value, str) and bool(EMAIL_RE.match(value))


def _reject(field: str, message: str) -> ValidationError:
    return ValidationError([{"field": field, "message": message}])


def object_id(value: str, *, field: str = "id", message: str = "Invalid ID format") -> str:
    if not is_object_id(value):
        raise _reject(field, message)
    return value.lower()


def uuid_id(value: str, *, field: str = "id", message: str = "Invalid ID format") -> str:
    if not is_uuid(value):
        raise _reject(field, message)
    return value.lower()


def country_code(
    value: str,
    *,
    field: str = "code",
    message: str = "Invalid country code format. Must be 2 or 3 uppercase letters",
) -> str:
    if not is_country_code(value):
        raise _reject(field, message)
    return value


def currency_code(value: str, *, field: str = "code", message: str = "Invalid currency code format") -> str:
    code = (value or "").strip().upper()
    if not is_currency_code(code):
        raise _reject(field, message)
    return code


def check_min_max(
    violations: Violations,
    low: float | None,
    high: float | None,
    *,
    field: str,
    message: str,
) -> bool:
    """``low <= high`` when both bounds are present."""
    if low is None or high is None:
        return True
    return violations.check(low <= high, field, message)


def check_date_range(
    violations: Violations,
    start: datetime | None,
    end: datetime | None,
    *,
    field: str = "startDate",
    message: str = "Start date cannot be after end date",
) -> bool:
    if start is None or end is None:
        return True
    return violations.check(start <= end, field, message)


def check_email(violations: Violations, value: str | None, *, field: str, message: str | None = None) -> bool:
    if value is None:
        return True
    return violations.check(is_email(value), field, message or f"Invalid {field} email address")


__all__ = [
    "is_object_id",
    "is_uuid",
    "is_country_code",
    "is_currency_code",
    "is_slug",
    "is_email",
    "object_id",
    "uuid_id",
    "country_code",
    "currency_code",
    "check_min_max",
    "check_date_range",
    "check_email",
]
