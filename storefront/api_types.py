"""Response envelope contracts.

``SuccessEnvelope`` and ``ErrorEnvelope`` are the two tagged variants of every
JSON body this API returns; ``status`` is the discriminator.
"""

from __future__ import annotations

from typing import Any, Generic, Literal, NewType, TypeVar

from typing_extensions import NotRequired, TypedDict

T = TypeVar("T")

# --- Identifier NewTypes ---
RequestId = NewType("RequestId", str)
ObjectId = NewType("ObjectId", str)  # 24 hex chars


class FieldError(TypedDict):
    field: str | None
    message: str


class PaginationMeta(TypedDict):
    page: int
    limit: int
    totalPages: int
    totalResults: int
    hasNextPage: bool
    hasPrevPage: bool


class SuccessEnvelope(TypedDict, Generic[T]):  # type: ignore[misc]
    status: Literal["success"]
    requestId: str
    data: T
    results: NotRequired[int]
    pagination: NotRequired[PaginationMeta]
    message: NotRequired[str]


class ErrorEnvelope(TypedDict):
    status: Literal["error"]
    requestId: str
    message: str
    errors: NotRequired[list[FieldError]]
    requiredRoles: NotRequired[list[str]]
    incidentId: NotRequired[str]


Envelope = SuccessEnvelope[Any] | ErrorEnvelope


__all__ = [
    "RequestId",
    "ObjectId",
    "FieldError",
    "PaginationMeta",
    "SuccessEnvelope",
    "ErrorEnvelope",
    "Envelope",
]
