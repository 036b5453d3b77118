from __future__ import annotations

from datetime import timedelta

from flask import Blueprint, Response, current_app

from .analytics_service import (
    DEFAULT_WINDOW,
    GROUP_BY,
    INTERVALS,
    VENDOR_GROUP_BY,
    AnalyticsService,
    Window,
    window_for,
)
from .app_authz import require_admin, require_roles
from .catalog import ORDER_STATUSES
from .context import get_request_context
from .envelope import success
from .errors import AuthenticationError
from .parsing import ArgParser
from .validators import check_date_range
from .vendor_service import METRIC_PERIODS

bp = Blueprint("analytics_api", __name__, url_prefix="/analytics")
vendor_bp = Blueprint("vendor_dashboard_api", __name__, url_prefix="/vendor-dashboard")

PAYOUT_WINDOW = timedelta(days=365)


def _service() -> AnalyticsService:
    return current_app.services.analytics  # type: ignore[attr-defined]


def _rid() -> str:
    return get_request_context().request_id


def _window(args: ArgParser, default: timedelta = DEFAULT_WINDOW) -> Window:
    fmt = "Invalid date format. Use ISO 8601 format (YYYY-MM-DD)"
    start = args.date("startDate", message=fmt)
    end = args.date("endDate", message=fmt)
    check_date_range(args.violations, start, end)
    return window_for(start, end, default)


def _interval(args: ArgParser) -> str:
    return args.choice(
        "interval", INTERVALS, default="daily", message=f"Invalid interval. Must be one of: {', '.join(INTERVALS)}"
    ) or "daily"


def _limit(args: ArgParser) -> int:
    return args.integer("limit", default=10, min_value=1, max_value=100, message="Limit must be between 1 and 100") or 10


def _vendor_id() -> str:
    ctx = get_request_context()
    if ctx.vendor is None:
        raise AuthenticationError("Vendor authentication required")
    return ctx.vendor.id


# ---- store-wide (admin) ----

@bp.get("/dashboard")
@require_admin
async def dashboard() -> Response:
    args = ArgParser.query()
    window = _window(args)
    compare = args.boolean("compareWithPrevious", default=True, message="compareWithPrevious must be a boolean")
    args.finish()
    return success(await _service().dashboard(window, bool(compare), _rid()))


@bp.get("/sales")
@require_admin
async def sales() -> Response:
    args = ArgParser.query()
    window = _window(args)
    interval = _interval(args)
    group_by = args.choice(
        "groupBy", GROUP_BY, default="product", message=f"Invalid groupBy. Must be one of: {', '.join(GROUP_BY)}"
    )
    compare = args.boolean("compareWithPrevious", default=False, message="compareWithPrevious must be a boolean")
    args.finish()
    return success(await _service().sales(window, interval, group_by or "product", bool(compare), _rid()))


@bp.get("/products")
@require_admin
async def products() -> Response:
    args = ArgParser.query()
    window = _window(args)
    limit = _limit(args)
    args.finish()
    return success(await _service().products(window, limit, _rid()))


@bp.get("/users")
@require_admin
async def users() -> Response:
    args = ArgParser.query()
    window = _window(args)
    limit = _limit(args)
    args.finish()
    return success(await _service().users(window, limit, _rid()))


# ---- vendor self-service ----

@vendor_bp.get("/dashboard")
@require_roles("vendor")
async def vendor_dashboard() -> Response:
    vendor_id = _vendor_id()
    args = ArgParser.query()
    period = args.choice(
        "period", tuple(METRIC_PERIODS), default="month",
        message=f"Invalid period. Must be one of: {', '.join(METRIC_PERIODS)}",
    )
    args.finish()
    return success(await _service().vendor_dashboard(vendor_id, period or "month", _rid()))


@vendor_bp.get("/analytics/sales")
@require_roles("vendor")
async def vendor_sales() -> Response:
    vendor_id = _vendor_id()
    args = ArgParser.query()
    window = _window(args)
    interval = _interval(args)
    group_by = args.choice(
        "groupBy", VENDOR_GROUP_BY, default="product",
        message=f"Invalid groupBy. Must be one of: {', '.join(VENDOR_GROUP_BY)}",
    )
    args.finish()
    return success(await _service().vendor_sales(vendor_id, window, interval, group_by or "product", _rid()))


@vendor_bp.get("/analytics/products")
@require_roles("vendor")
async def vendor_products() -> Response:
    vendor_id = _vendor_id()
    args = ArgParser.query()
    window = _window(args)
    args.finish()
    return success(await _service().vendor_products(vendor_id, window, _rid()))


@vendor_bp.get("/analytics/orders")
@require_roles("vendor")
async def vendor_orders() -> Response:
    vendor_id = _vendor_id()
    args = ArgParser.query()
    window = _window(args)
    status = args.choice(
        "status", ORDER_STATUSES, message=f"Invalid status. Must be one of: {', '.join(ORDER_STATUSES)}"
    )
    args.finish()
    return success(await _service().vendor_orders(vendor_id, window, status, _rid()))


@vendor_bp.get("/analytics/payouts")
@require_roles("vendor")
async def vendor_payouts() -> Response:
    vendor_id = _vendor_id()
    args = ArgParser.query()
    window = _window(args, PAYOUT_WINDOW)
    args.finish()
    return success(await _service().vendor_payouts(vendor_id, window, _rid()))
