"""Request parsing: raw query/body/path values -> typed, defaulted values.

``ArgParser`` never raises while reading a field. Coercion failures are
recorded on a shared ``Violations`` accumulator so a handler can read every
field, run cross-field checks, and then call ``finish()`` once, before the
service adapter is touched.
"""

from __future__ import annotations

import json
import math
import re
from collections.abc import Iterator, Mapping, Sequence
from datetime import UTC, datetime
from typing import Any

from flask import request

from .api_types import FieldError
from .errors import ValidationError
from .pagination import DEFAULT_PAGE, MAX_LIMIT, PageRequest

_TRUE = {"true", "1", "yes", "on"}
_FALSE = {"false", "0", "no", "off"}


class Violations:
    """Ordered list of field violations; the first one becomes the error message."""

    def __init__(self) -> None:
        self.items: list[FieldError] = []

    def add(self, field: str | None, message: str) -> None:
        self.items.append({"field": field, "message": message})

    def check(self, ok: bool, field: str | None, message: str) -> bool:
        if not ok:
            self.add(field, message)
        return ok

    def has(self, field: str) -> bool:
        return any(v["field"] == field for v in self.items)

    def raise_if_any(self) -> None:
        if self.items:
            raise ValidationError(list(self.items))

    def __bool__(self) -> bool:
        return bool(self.items)

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self) -> Iterator[FieldError]:
        return iter(self.items)


def parse_iso_datetime(value: str) -> datetime | None:
    """ISO-8601 date or datetime; naive values are taken as UTC."""
    try:
        parsed = datetime.fromisoformat(value.strip())
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


class ArgParser:
    def __init__(
        self, source: Mapping[str, Any] | None, violations: Violations | None = None, *, prefix: str = ""
    ):
        self.source: Mapping[str, Any] = source if source is not None else {}
        self.violations = violations if violations is not None else Violations()
        self.prefix = prefix

    def nested(self, source: Mapping[str, Any], prefix: str) -> ArgParser:
        """Parser over a nested object sharing this parser's violations."""
        return ArgParser(source, self.violations, prefix=f"{self.prefix}{prefix}")

    @classmethod
    def query(cls, violations: Violations | None = None) -> ArgParser:
        return cls(request.args, violations)

    @classmethod
    def body(cls, violations: Violations | None = None) -> ArgParser:
        payload = request.get_json(silent=True)
        if payload is None:
            payload = {}
        if not isinstance(payload, dict):
            raise ValidationError([{"field": None, "message": "Request body must be a JSON object"}])
        return cls(payload, violations)

    # ---- raw access --------------------------------------------------------------

    def raw(self, name: str) -> Any:
        value = self.source.get(name)
        if isinstance(value, str) and not value.strip():
            return None
        return value

    def present(self, name: str) -> bool:
        return self.raw(name) is not None

    def _add(self, name: str, message: str) -> None:
        self.violations.add(f"{self.prefix}{name}", message)

    def _missing(self, name: str, required: bool, required_message: str | None, default: Any) -> Any:
        if required:
            self._add(name, required_message or f"{name} is required")
        return default

    def finish(self) -> None:
        self.violations.raise_if_any()

    # ---- typed readers -----------------------------------------------------------

    def string(
        self,
        name: str,
        *,
        required: bool = False,
        default: str | None = None,
        min_length: int | None = None,
        max_length: int | None = None,
        pattern: str | None = None,
        message: str | None = None,
        required_message: str | None = None,
    ) -> str | None:
        value = self.raw(name)
        if value is None:
            return self._missing(name, required, required_message, default)
        if not isinstance(value, str):
            self._add(name, message or f"{name} must be a string")
            return default
        value = value.strip()
        too_short = min_length is not None and len(value) < min_length
        too_long = max_length is not None and len(value) > max_length
        if too_short or too_long:
            if message is None:
                if min_length is not None and max_length is not None:
                    message = f"{name} must be between {min_length} and {max_length} characters"
                elif min_length is not None:
                    message = f"{name} must be at least {min_length} characters long"
                else:
                    message = f"{name} must be at most {max_length} characters long"
            self._add(name, message)
            return default
        if pattern is not None and not re.fullmatch(pattern, value):
            self._add(name, message or f"Invalid {name} format")
            return default
        return value

    def integer(
        self,
        name: str,
        *,
        required: bool = False,
        default: int | None = None,
        min_value: int | None = None,
        max_value: int | None = None,
        message: str | None = None,
        required_message: str | None = None,
    ) -> int | None:
        value = self.raw(name)
        if value is None:
            return self._missing(name, required, required_message, default)
        parsed: int | None = None
        if isinstance(value, bool):
            parsed = None
        elif isinstance(value, int):
            parsed = value
        elif isinstance(value, float) and value.is_integer():
            parsed = int(value)
        elif isinstance(value, str):
            try:
                parsed = int(value.strip())
            except ValueError:
                parsed = None
        if parsed is None:
            self._add(name, message or f"{name} must be an integer")
            return default
        if (min_value is not None and parsed < min_value) or (max_value is not None and parsed > max_value):
            self._add(name, message or _range_message(name, min_value, max_value))
            return default
        return parsed

    def number(
        self,
        name: str,
        *,
        required: bool = False,
        default: float | None = None,
        min_value: float | None = None,
        max_value: float | None = None,
        message: str | None = None,
        required_message: str | None = None,
    ) -> float | None:
        value = self.raw(name)
        if value is None:
            return self._missing(name, required, required_message, default)
        parsed: float | None = None
        if isinstance(value, bool):
            parsed = None
        elif isinstance(value, (int, float)):
            parsed = float(value)
        elif isinstance(value, str):
            try:
                parsed = float(value.strip())
            except ValueError:
                parsed = None
        if parsed is None or math.isnan(parsed) or math.isinf(parsed):
            self._add(name, message or f"{name} must be a number")
            return default
        if (min_value is not None and parsed < min_value) or (max_value is not None and parsed > max_value):
            self._add(name, message or _range_message(name, min_value, max_value))
            return default
        return int(parsed) if parsed.is_integer() and not isinstance(value, float) else parsed

    def boolean(self, name: str, *, default: bool | None = None, message: str | None = None) -> bool | None:
        value = self.raw(name)
        if value is None:
            return default
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in _TRUE:
                return True
            if lowered in _FALSE:
                return False
        self._add(name, message or f"{name} must be a boolean")
        return default

    def date(
        self,
        name: str,
        *,
        required: bool = False,
        message: str | None = None,
        required_message: str | None = None,
    ) -> datetime | None:
        value = self.raw(name)
        if value is None:
            return self._missing(name, required, required_message, None)
        parsed = parse_iso_datetime(value) if isinstance(value, str) else None
        if parsed is None:
            self._add(name, message or f"Invalid {name} date format. Use ISO 8601 format")
        return parsed

    def choice(
        self,
        name: str,
        choices: Sequence[str],
        *,
        required: bool = False,
        default: str | None = None,
        message: str | None = None,
        required_message: str | None = None,
    ) -> str | None:
        value = self.raw(name)
        if value is None:
            return self._missing(name, required, required_message, default)
        if not isinstance(value, str) or value.strip() not in choices:
            self._add(name, message or f"Invalid {name}. Must be one of: {', '.join(choices)}")
            return default
        return value.strip()

    def csv_list(self, name: str, *, message: str | None = None) -> list[str]:
        value = self.raw(name)
        if value is None:
            return []
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        if isinstance(value, list) and all(isinstance(v, str) for v in value):
            return [v.strip() for v in value if v.strip()]
        self._add(name, message or f"{name} must be a comma-separated list")
        return []

    def json_object(self, name: str, *, message: str | None = None) -> dict[str, Any] | None:
        value = self.raw(name)
        if value is None:
            return None
        if isinstance(value, dict):
            return value
        parsed: Any = None
        if isinstance(value, str):
            try:
                parsed = json.loads(value)
            except ValueError:
                parsed = None
        if not isinstance(parsed, dict):
            self._add(name, message or f"Invalid {name} format. Must be valid JSON")
            return None
        return parsed

    def page(
        self,
        *,
        default_limit: int,
        max_limit: int = MAX_LIMIT,
        strict_limit: bool = False,
        page_message: str = "Page must be greater than 0",
        limit_message: str | None = None,
    ) -> PageRequest:
        """``page`` >= 1 and ``limit`` >= 1; an oversized limit is clamped unless ``strict_limit``."""
        limit_message = limit_message or f"Limit must be between 1 and {max_limit}"
        page = self.integer("page", default=DEFAULT_PAGE, message=page_message)
        limit = self.integer("limit", default=default_limit, message=limit_message)
        if page is not None and page < 1:
            self._add("page", page_message)
            page = DEFAULT_PAGE
        if limit is not None:
            if limit < 1 or (strict_limit and limit > max_limit):
                self._add("limit", limit_message)
                limit = default_limit
            elif limit > max_limit:
                limit = max_limit
        return PageRequest(page=page or DEFAULT_PAGE, limit=limit or default_limit)


def _range_message(name: str, low: float | None, high: float | None) -> str:
    if low is not None and high is not None:
        return f"{name} must be between {low:g} and {high:g}"
    if low is not None:
        return f"{name} must be greater than or equal to {low:g}"
    return f"{name} must be less than or equal to {high:g}"


__all__ = ["ArgParser", "Violations", "parse_iso_datetime"]
