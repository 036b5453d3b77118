from __future__ import annotations

from flask import Blueprint, Response, current_app

from .app_authz import ensure_vendor_access, require_admin, require_roles, require_user
from .context import get_request_context
from .envelope import created, paged, success
from .errors import AuthorizationError, NotFoundError, ValidationError
from .parsing import ArgParser
from .roles import ADMIN_ROLES
from .validators import SLUG_RE, check_date_range, check_email, check_min_max, object_id
from .vendor_service import (
    METRIC_PERIODS,
    PAYOUT_METHODS,
    PAYOUT_STATUSES,
    VENDOR_STATUSES,
    PayoutInput,
    VendorInput,
    VendorService,
)

bp = Blueprint("vendor_api", __name__, url_prefix="/vendors")

_INVALID_VENDOR = "Invalid vendor ID format"
_INVALID_PAYOUT = "Invalid payout ID format"


def _service() -> VendorService:
    return current_app.services.vendors  # type: ignore[attr-defined]


def _rid() -> str:
    return get_request_context().request_id


def _parse_vendor_body(*, partial: bool) -> VendorInput:
    args = ArgParser.body()
    name = args.string(
        "name", required=not partial, min_length=2, max_length=100,
        message="Vendor name must be between 2 and 100 characters", required_message="Vendor name is required",
    )
    slug = args.string(
        "slug", required=not partial, max_length=100, pattern=SLUG_RE.pattern,
        message="Slug can only contain lowercase letters, numbers and hyphens", required_message="Slug is required",
    )
    email = args.string("email", required=not partial, required_message="Email is required")
    check_email(args.violations, email, field="email", message="Invalid email address")
    commission = args.number(
        "commissionRate", min_value=0, max_value=100, message="Commission rate must be between 0 and 100"
    )
    address = args.raw("address")
    if address is not None and not isinstance(address, dict):
        args.violations.add("address", "Address must be an object")
        address = None
    fields = {
        "name": name,
        "slug": slug,
        "email": email,
        "phone": args.string("phone", max_length=30),
        "description": args.string("description", max_length=2000),
        "logo": args.string("logo", max_length=500),
        "website": args.string("website", max_length=500),
        "commissionRate": commission,
        "address": address,
        "userId": args.string("userId"),
    }
    args.finish()
    return {k: v for k, v in fields.items() if v is not None}  # type: ignore[return-value]


@bp.post("")
@require_admin
async def create_vendor() -> Response:
    vendor = await _service().create_vendor(_parse_vendor_body(partial=False), _rid())
    return created(vendor, message="Vendor created successfully", location=f"/vendors/{vendor['id']}")


@bp.get("")
@require_admin
async def list_vendors() -> Response:
    args = ArgParser.query()
    page = args.page(default_limit=10)
    filters = {
        "status": args.choice("status", VENDOR_STATUSES),
        "search": args.string("search", max_length=100),
        "active": args.boolean("active"),
    }
    args.finish()
    return paged(await _service().list_vendors(filters, page, _rid()), key="vendors")


@bp.get("/slug/<slug>")
async def vendor_by_slug(slug: str) -> Response:
    if not SLUG_RE.match(slug):
        raise ValidationError([{"field": "slug", "message": "Invalid vendor slug format"}])
    vendor = await _service().get_vendor_by_slug(slug, _rid())
    ctx = get_request_context()
    if vendor["status"] != "approved" and not (ctx.user and ctx.user.is_admin):
        raise NotFoundError(message_key="vendorNotFound")
    return success(vendor)


@bp.get("/<vendor_id>")
async def get_vendor(vendor_id: str) -> Response:
    vid = object_id(vendor_id, message=_INVALID_VENDOR)
    vendor = await _service().get_vendor(vid, _rid())
    ctx = get_request_context()
    is_owner = ctx.vendor is not None and ctx.vendor.id == vid
    if vendor["status"] != "approved" and not (ctx.user and ctx.user.is_admin) and not is_owner:
        raise NotFoundError(message_key="vendorNotFound")
    return success(vendor)


@bp.patch("/<vendor_id>")
@require_user
async def update_vendor(vendor_id: str) -> Response:
    vid = object_id(vendor_id, message=_INVALID_VENDOR)
    ctx = get_request_context()
    ensure_vendor_access(ctx, vid)
    data = _parse_vendor_body(partial=True)
    if "commissionRate" in data and not (ctx.user and ctx.user.is_admin):
        raise AuthorizationError("Only administrators can change the commission rate", required=("admin",))
    vendor = await _service().update_vendor(vid, data, ctx.request_id)
    return success(vendor, message="Vendor updated successfully")


@bp.delete("/<vendor_id>")
@require_admin
async def delete_vendor(vendor_id: str) -> Response:
    deleted = await _service().delete_vendor(object_id(vendor_id, message=_INVALID_VENDOR), _rid())
    return success(deleted, message="Vendor deleted successfully")


@bp.get("/<vendor_id>/products")
async def vendor_products(vendor_id: str) -> Response:
    vid = object_id(vendor_id, message=_INVALID_VENDOR)
    args = ArgParser.query()
    page = args.page(default_limit=10)
    min_price = args.number("minPrice", min_value=0, message="Minimum price must be a non-negative number")
    max_price = args.number("maxPrice", min_value=0, message="Maximum price must be a non-negative number")
    check_min_max(
        args.violations, min_price, max_price, field="minPrice",
        message="Minimum price cannot be greater than maximum price",
    )
    filters = {
        "minPrice": min_price,
        "maxPrice": max_price,
        "category": args.string("category"),
        "inStock": args.boolean("inStock"),
    }
    args.finish()
    return paged(await _service().get_products(vid, filters, page, _rid()), key="products")


@bp.get("/<vendor_id>/metrics")
@require_user
async def vendor_metrics(vendor_id: str) -> Response:
    vid = object_id(vendor_id, message=_INVALID_VENDOR)
    ensure_vendor_access(get_request_context(), vid)
    args = ArgParser.query()
    period = args.choice(
        "period", tuple(METRIC_PERIODS), default="month",
        message=f"Invalid period. Must be one of: {', '.join(METRIC_PERIODS)}",
    )
    args.finish()
    return success(await _service().get_metrics(vid, period or "month", _rid()))


@bp.patch("/<vendor_id>/status")
@require_admin
async def update_vendor_status(vendor_id: str) -> Response:
    vid = object_id(vendor_id, message=_INVALID_VENDOR)
    args = ArgParser.body()
    status = args.choice(
        "status", VENDOR_STATUSES, required=True, required_message="Status is required",
        message=f"Invalid status. Must be one of: {', '.join(VENDOR_STATUSES)}",
    )
    notes = args.string("notes", max_length=1000)
    args.finish()
    vendor = await _service().update_status(vid, status or "", notes, _rid())
    return success(vendor, message="Vendor status updated successfully")


@bp.get("/<vendor_id>/payouts")
@require_user
async def vendor_payouts(vendor_id: str) -> Response:
    vid = object_id(vendor_id, message=_INVALID_VENDOR)
    ensure_vendor_access(get_request_context(), vid)
    args = ArgParser.query()
    page = args.page(default_limit=10)
    status = args.choice(
        "status", PAYOUT_STATUSES, message=f"Invalid payout status. Must be one of: {', '.join(PAYOUT_STATUSES)}"
    )
    args.finish()
    return paged(await _service().list_payouts(vid, status, page, _rid()), key="payouts")


@bp.post("/<vendor_id>/payouts/calculate")
@require_admin
async def calculate_payout(vendor_id: str) -> Response:
    vid = object_id(vendor_id, message=_INVALID_VENDOR)
    args = ArgParser.body()
    start = args.date(
        "startDate", required=True, required_message="Start date and end date are required",
        message="Invalid date format. Use ISO 8601 format (YYYY-MM-DD)",
    )
    end = args.date(
        "endDate", required=True, required_message="Start date and end date are required",
        message="Invalid date format. Use ISO 8601 format (YYYY-MM-DD)",
    )
    check_date_range(args.violations, start, end)
    args.finish()
    if start is None or end is None:
        raise ValidationError("Start date and end date are required")
    return success(await _service().calculate_payout(vid, start, end, _rid()))


@bp.post("/payouts")
@require_admin
async def create_payout() -> Response:
    args = ArgParser.body()
    vendor = args.string("vendor", required=True, required_message="Vendor ID is required")
    amount = args.number(
        "amount", required=True, min_value=0.01, message="Amount must be a positive number",
        required_message="Amount is required",
    )
    start = args.date("periodStart", required=True, required_message="Payout period is required")
    end = args.date("periodEnd", required=True, required_message="Payout period is required")
    check_date_range(args.violations, start, end, field="periodStart", message="Period start cannot be after period end")
    method = args.choice(
        "method", PAYOUT_METHODS, default="bank_transfer",
        message=f"Invalid payout method. Must be one of: {', '.join(PAYOUT_METHODS)}",
    )
    notes = args.string("notes", max_length=1000)
    args.finish()
    vid = object_id(vendor or "", field="vendor", message=_INVALID_VENDOR)
    data: PayoutInput = {
        "vendor": vid,
        "amount": amount or 0.0,
        "periodStart": start,  # type: ignore[typeddict-item]
        "periodEnd": end,  # type: ignore[typeddict-item]
        "method": method or "bank_transfer",
        "notes": notes,
    }
    payout = await _service().create_payout(data, _rid())
    return created(payout, message="Payout created successfully", location=f"/vendors/payouts/{payout['id']}")


@bp.get("/payouts/<payout_id>")
@require_roles(*ADMIN_ROLES, "vendor")
async def get_payout(payout_id: str) -> Response:
    pid = object_id(payout_id, message=_INVALID_PAYOUT)
    ctx = get_request_context()
    payout = await _service().get_payout(pid, _rid())
    if not ctx.user.is_admin and (ctx.vendor is None or ctx.vendor.id != payout["vendorId"]):  # type: ignore[union-attr]
        raise NotFoundError(message_key="payoutNotFound")
    return success(payout)


@bp.patch("/payouts/<payout_id>")
@require_admin
async def update_payout(payout_id: str) -> Response:
    pid = object_id(payout_id, message=_INVALID_PAYOUT)
    args = ArgParser.body()
    status = args.choice(
        "status", PAYOUT_STATUSES, required=True, required_message="Status is required",
        message=f"Invalid payout status. Must be one of: {', '.join(PAYOUT_STATUSES)}",
    )
    transaction_id = args.string("transactionId", max_length=200)
    notes = args.string("notes", max_length=1000)
    args.finish()
    payout = await _service().update_payout_status(pid, status or "", transaction_id, notes, _rid())
    return success(payout, message="Payout status updated successfully")
