"""Success envelope builders.

Handlers never assemble JSON bodies by hand: they return one of these so that
``status`` and ``requestId`` are always present and consistent.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from flask import Response, jsonify

from .api_types import PaginationMeta, SuccessEnvelope
from .context import current_request_id
from .pagination import Page


def envelope(
    data: Any,
    *,
    message: str | None = None,
    pagination: PaginationMeta | None = None,
    results: int | None = None,
) -> SuccessEnvelope[Any]:
    body: SuccessEnvelope[Any] = {"status": "success", "requestId": current_request_id(), "data": data}
    if results is not None:
        body["results"] = results
    if pagination is not None:
        body["pagination"] = pagination
    if message:
        body["message"] = message
    return body


def success(
    data: Any,
    *,
    message: str | None = None,
    pagination: PaginationMeta | None = None,
    results: int | None = None,
    status: int = 200,
    headers: dict[str, str] | None = None,
) -> Response:
    resp = jsonify(envelope(data, message=message, pagination=pagination, results=results))
    resp.status_code = status
    for k, v in (headers or {}).items():
        resp.headers[k] = v
    return resp


def created(data: Any, *, message: str | None = None, location: str | None = None) -> Response:
    return success(data, message=message, status=201, headers={"Location": location} if location else None)


def listing(items: Sequence[Any], *, key: str | None = None, message: str | None = None) -> Response:
    """Unpaged list: ``results`` is the item count; ``key`` nests items under ``data[key]``."""
    data = {key: list(items)} if key else list(items)
    return success(data, message=message, results=len(items))


def paged(page: Page[Any], *, key: str | None = None, message: str | None = None) -> Response:
    data: Any = {key: page.items, **page.extra} if key else page.items
    return success(data, message=message, pagination=page.meta, results=len(page.items))


def no_content() -> Response:
    resp = Response(status=204)
    resp.headers["X-Request-Id"] = current_request_id()
    return resp


__all__ = ["envelope", "success", "created", "listing", "paged", "no_content"]
