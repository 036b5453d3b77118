from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from typing_extensions import TypedDict

from .api_types import PaginationMeta

T = TypeVar("T")

__all__ = [
    "PageRequest",
    "Page",
    "DEFAULT_PAGE",
    "DEFAULT_LIMIT",
    "MAX_LIMIT",
    "build_page_meta",
    "paginate_sequence",
]

# ---- Contracts -----------------------------------------------------------------

class PageRequest(TypedDict):
    page: int  # 1-based
    limit: int


DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10
MAX_LIMIT = 100


@dataclass
class Page(Generic[T]):
    """One page of a service-side listing plus the unpaged total."""

    items: list[T]
    total: int
    page: int = DEFAULT_PAGE
    limit: int = DEFAULT_LIMIT
    extra: dict = field(default_factory=dict)

    @property
    def meta(self) -> PaginationMeta:
        return build_page_meta(self.page, self.limit, self.total)


def build_page_meta(page: int, limit: int, total: int) -> PaginationMeta:
    total_pages = math.ceil(total / limit) if limit > 0 else 0
    return PaginationMeta(
        page=page,
        limit=limit,
        totalPages=total_pages,
        totalResults=total,
        hasNextPage=page < total_pages,
        hasPrevPage=page > 1,
    )


def paginate_sequence(seq: Sequence[T], page_req: PageRequest) -> Page[T]:
    start = (page_req["page"] - 1) * page_req["limit"]
    end = start + page_req["limit"]
    return Page(items=list(seq[start:end]), total=len(seq), page=page_req["page"], limit=page_req["limit"])
