"""Product search over the catalog store, plus query tracking.

Popular searches and suggestions come only from queries recorded through
``track_search``; nothing is returned until real traffic has been tracked.
"""
from __future__ import annotations

import logging
import threading
from collections import Counter, deque
from datetime import datetime, timedelta
from typing import Any, Protocol

from typing_extensions import TypedDict

from .catalog import CatalogStore, Product
from .ids import iso, utcnow
from .pagination import Page, PageRequest, paginate_sequence

logger = logging.getLogger(__name__)

SORT_OPTIONS: tuple[str, ...] = (
    "relevance",
    "price_asc",
    "price_desc",
    "name_asc",
    "name_desc",
    "created_desc",
    "created_asc",
    "rating_desc",
)
# Oldest tracked queries are dropped beyond this many.
MAX_TRACKED_QUERIES = 10_000

TIMEFRAMES: dict[str, timedelta | None] = {
    "day": timedelta(days=1),
    "week": timedelta(days=7),
    "month": timedelta(days=30),
    "all": None,
}


class SearchFilters(TypedDict, total=False):
    q: str | None
    category: str | None
    vendor: str | None
    minPrice: float | None
    maxPrice: float | None
    rating: float | None
    inStock: bool | None
    featured: bool | None
    onSale: bool | None
    tags: list[str]
    attributes: dict[str, Any] | None
    createdAfter: datetime | None
    createdBefore: datetime | None
    sort: str


class SearchService(Protocol):
    async def search(self, filters: SearchFilters, page: PageRequest, request_id: str) -> Page[dict[str, Any]]: ...
    async def suggestions(self, query: str, limit: int, request_id: str) -> list[str]: ...
    async def popular_searches(self, limit: int, timeframe: str, request_id: str) -> list[dict[str, Any]]: ...
    async def track_search(self, query: str, results: int | None, user_id: str | None, request_id: str) -> dict[str, Any]: ...
    async def facets(self, filters: SearchFilters, request_id: str) -> dict[str, Any]: ...


def relevance(product: Product, q: str) -> int:
    """Name match outranks tag match outranks description match."""
    needle = q.lower()
    name = product["name"].lower()
    score = 0
    if name == needle:
        score += 100
    elif name.startswith(needle):
        score += 60
    elif needle in name:
        score += 40
    if any(needle in t.lower() for t in product["tags"]):
        score += 20
    if needle in product["description"].lower():
        score += 10
    return score


def matches(product: Product, f: SearchFilters) -> bool:
    if not product["active"]:
        return False
    q = f.get("q")
    if q and relevance(product, q) == 0:
        return False
    if f.get("category") and product["category"] != f["category"]:
        return False
    if f.get("vendor") and product["vendorId"] != f["vendor"]:
        return False
    if f.get("minPrice") is not None and product["price"] < f["minPrice"]:  # type: ignore[operator]
        return False
    if f.get("maxPrice") is not None and product["price"] > f["maxPrice"]:  # type: ignore[operator]
        return False
    if f.get("rating") is not None and product["rating"] < f["rating"]:  # type: ignore[operator]
        return False
    if f.get("inStock") is not None and (product["stock"] > 0) != f["inStock"]:
        return False
    if f.get("featured") is not None and product["featured"] != f["featured"]:
        return False
    if f.get("onSale") is not None:
        on_sale = product["compareAtPrice"] is not None and product["compareAtPrice"] > product["price"]
        if on_sale != f["onSale"]:
            return False
    tags = f.get("tags") or []
    if tags and not set(t.lower() for t in tags) & set(t.lower() for t in product["tags"]):
        return False
    for key, value in (f.get("attributes") or {}).items():
        if product["attributes"].get(key) != value:
            return False
    if f.get("createdAfter") and product["createdAt"] < f["createdAfter"]:  # type: ignore[operator]
        return False
    if f.get("createdBefore") and product["createdAt"] > f["createdBefore"]:  # type: ignore[operator]
        return False
    return True


def sort_products(rows: list[Product], sort: str, q: str | None) -> list[Product]:
    if sort == "price_asc":
        return sorted(rows, key=lambda p: p["price"])
    if sort == "price_desc":
        return sorted(rows, key=lambda p: p["price"], reverse=True)
    if sort == "name_asc":
        return sorted(rows, key=lambda p: p["name"].lower())
    if sort == "name_desc":
        return sorted(rows, key=lambda p: p["name"].lower(), reverse=True)
    if sort == "created_asc":
        return sorted(rows, key=lambda p: p["createdAt"])
    if sort == "rating_desc":
        return sorted(rows, key=lambda p: p["rating"], reverse=True)
    if sort == "relevance" and q:
        return sorted(rows, key=lambda p: (-relevance(p, q), -p["createdAt"].timestamp()))
    return sorted(rows, key=lambda p: p["createdAt"], reverse=True)


def serialize_product(p: Product) -> dict[str, Any]:
    out: dict[str, Any] = dict(p)
    out["createdAt"] = iso(p["createdAt"])
    out["inStock"] = p["stock"] > 0
    return out


class InMemorySearchService:
    def __init__(self, catalog: CatalogStore, max_tracked: int = MAX_TRACKED_QUERIES) -> None:
        self._catalog = catalog
        self._queries: deque[tuple[str, int | None, str | None, datetime]] = deque(maxlen=max_tracked)
        self._lock = threading.Lock()

    async def search(self, filters: SearchFilters, page: PageRequest, request_id: str) -> Page[dict[str, Any]]:
        logger.info("[%s] Searching products q=%r sort=%s", request_id, filters.get("q"), filters.get("sort"))
        rows = [p for p in self._catalog.products() if matches(p, filters)]
        rows = sort_products(rows, filters.get("sort") or "relevance", filters.get("q"))
        result = paginate_sequence([serialize_product(p) for p in rows], page)
        result.extra = {"query": filters.get("q")}
        return result

    async def suggestions(self, query: str, limit: int, request_id: str) -> list[str]:
        needle = query.lower()
        names = sorted(
            {p["name"] for p in self._catalog.products() if p["active"] and needle in p["name"].lower()},
            key=lambda n: (not n.lower().startswith(needle), n.lower()),
        )
        with self._lock:
            tracked = Counter(q for q, _, _, _ in self._queries if q.startswith(needle))
        out: list[str] = []
        for candidate in names + [q for q, _ in tracked.most_common()]:
            if candidate.lower() not in (o.lower() for o in out):
                out.append(candidate)
            if len(out) >= limit:
                break
        return out

    async def popular_searches(self, limit: int, timeframe: str, request_id: str) -> list[dict[str, Any]]:
        window = TIMEFRAMES[timeframe]
        since = utcnow() - window if window is not None else None
        with self._lock:
            counts = Counter(q for q, _, _, at in self._queries if since is None or at >= since)
        return [{"query": q, "count": n} for q, n in counts.most_common(limit)]

    async def track_search(self, query: str, results: int | None, user_id: str | None, request_id: str) -> dict[str, Any]:
        normalized = query.strip().lower()
        at = utcnow()
        with self._lock:
            self._queries.append((normalized, results, user_id, at))
        logger.info("[%s] Tracked search query %r results=%s", request_id, normalized, results)
        return {"query": normalized, "results": results, "trackedAt": iso(at)}

    async def facets(self, filters: SearchFilters, request_id: str) -> dict[str, Any]:
        rows = [p for p in self._catalog.products() if matches(p, filters)]
        categories = Counter(p["category"] for p in rows if p["category"])
        vendors = Counter(p["vendorId"] for p in rows if p["vendorId"])
        tags = Counter(t for p in rows for t in p["tags"])
        prices = [p["price"] for p in rows]
        return {
            "categories": [{"value": k, "count": v} for k, v in categories.most_common()],
            "vendors": [{"value": k, "count": v} for k, v in vendors.most_common()],
            "tags": [{"value": k, "count": v} for k, v in tags.most_common(20)],
            "ratings": [
                {"value": r, "count": sum(1 for p in rows if p["rating"] >= r)} for r in (4, 3, 2, 1)
            ],
            "priceRange": {"min": min(prices) if prices else 0, "max": max(prices) if prices else 0},
            "total": len(rows),
        }


__all__ = [
    "SearchService",
    "InMemorySearchService",
    "SearchFilters",
    "SORT_OPTIONS",
    "TIMEFRAMES",
    "relevance",
    "matches",
    "sort_products",
    "serialize_product",
]
