from __future__ import annotations

from flask import Blueprint, Response, current_app

from .context import get_request_context
from .envelope import listing, paged, success
from .parsing import ArgParser
from .search_service import SORT_OPTIONS, TIMEFRAMES, SearchFilters, SearchService
from .validators import check_date_range, check_min_max

bp = Blueprint("search_api", __name__, url_prefix="/search")


def _service() -> SearchService:
    return current_app.services.search  # type: ignore[attr-defined]


def _filters(args: ArgParser, *, advanced: bool) -> SearchFilters:
    min_price = args.number("minPrice", min_value=0, message="Invalid minPrice. Must be a non-negative number")
    max_price = args.number("maxPrice", min_value=0, message="Invalid maxPrice. Must be a non-negative number")
    check_min_max(args.violations, min_price, max_price, field="minPrice", message="minPrice cannot be greater than maxPrice")
    filters: SearchFilters = {
        "q": args.string("q", max_length=200),
        "category": args.string("category"),
        "vendor": args.string("vendor"),
        "minPrice": min_price,
        "maxPrice": max_price,
        "rating": args.number("rating", min_value=0, max_value=5, message="Invalid rating. Must be between 0 and 5"),
        "inStock": args.boolean("inStock"),
        "featured": args.boolean("featured"),
        "onSale": args.boolean("onSale"),
        "tags": args.csv_list("tags"),
        "attributes": args.json_object("attributes", message="Invalid attributes format. Must be valid JSON"),
        "sort": args.choice(
            "sort",
            SORT_OPTIONS,
            default="relevance",
            message=f"Invalid sort option. Must be one of: {', '.join(SORT_OPTIONS)}",
        )
        or "relevance",
    }
    if advanced:
        after = args.date("createdAfter")
        before = args.date("createdBefore")
        check_date_range(
            args.violations, after, before, field="createdAfter", message="createdAfter cannot be after createdBefore"
        )
        filters["createdAfter"] = after
        filters["createdBefore"] = before
    return filters


async def _run_search(*, advanced: bool) -> Response:
    args = ArgParser.query()
    page = args.page(default_limit=10, page_message="Page must be greater than or equal to 1")
    filters = _filters(args, advanced=advanced)
    args.finish()
    result = await _service().search(filters, page, get_request_context().request_id)
    return paged(result, key="products")


@bp.get("")
async def search_products() -> Response:
    return await _run_search(advanced=False)


@bp.get("/advanced")
async def advanced_search() -> Response:
    return await _run_search(advanced=True)


@bp.get("/suggestions")
async def suggestions() -> Response:
    args = ArgParser.query()
    q = args.string("q", required=True, required_message="Query parameter 'q' is required")
    if q is not None:
        args.violations.check(len(q) >= 2, "q", "Query must be at least 2 characters long")
    limit = args.integer("limit", default=5, min_value=1, max_value=20, message="Limit must be between 1 and 20")
    args.finish()
    items = await _service().suggestions(q or "", limit or 5, get_request_context().request_id)
    return listing(items, key="suggestions")


@bp.get("/popular")
async def popular_searches() -> Response:
    args = ArgParser.query()
    limit = args.integer("limit", default=10, min_value=1, max_value=50, message="Limit must be between 1 and 50")
    timeframe = args.choice(
        "timeframe",
        tuple(TIMEFRAMES),
        default="week",
        message=f"Invalid timeframe. Must be one of: {', '.join(TIMEFRAMES)}",
    )
    args.finish()
    items = await _service().popular_searches(limit or 10, timeframe or "week", get_request_context().request_id)
    return listing(items, key="searches")


@bp.post("/track")
async def track_search() -> Response:
    args = ArgParser.body()
    query = args.string("query", required=True, max_length=200, required_message="Query is required")
    results = args.integer("results", min_value=0, message="Results must be a non-negative integer")
    args.finish()
    ctx = get_request_context()
    tracked = await _service().track_search(query or "", results, ctx.user.id if ctx.user else None, ctx.request_id)
    return success(tracked, message="Search tracked successfully")


@bp.get("/facets")
async def facets() -> Response:
    args = ArgParser.query()
    filters = _filters(args, advanced=False)
    args.finish()
    data = await _service().facets(filters, get_request_context().request_id)
    return success(data)
