from __future__ import annotations

from flask import Blueprint, Response, current_app

from .app_authz import require_admin
from .catalog import ORDER_STATUSES
from .context import get_request_context
from .errors import ValidationError
from .export_service import EXPORT_FORMATS, ExportFile, ExportFilters, ExportService
from .parsing import ArgParser
from .validators import check_date_range, is_object_id

bp = Blueprint("export_api", __name__, url_prefix="/export")


def _service() -> ExportService:
    return current_app.services.exports  # type: ignore[attr-defined]


def _format(args: ArgParser, *, csv_only_kind: str | None = None) -> str:
    fmt = (args.string("format") or "csv").lower()
    if csv_only_kind is not None and fmt != "csv":
        raise ValidationError(
            [{"field": "format", "message": f"Invalid export format: {fmt}. Only CSV is supported for {csv_only_kind}."}]
        )
    if fmt not in EXPORT_FORMATS:
        raise ValidationError([{"field": "format", "message": f"Invalid export format: {fmt}"}])
    return fmt


def _filters(args: ArgParser, *, with_status: bool) -> ExportFilters:
    start = args.date("startDate")
    end = args.date("endDate")
    check_date_range(args.violations, start, end)
    vendor_id = args.string("vendorId")
    if vendor_id is not None:
        args.violations.check(is_object_id(vendor_id), "vendorId", "Invalid vendor ID format")
    filters: ExportFilters = {"startDate": start, "endDate": end, "vendorId": vendor_id}
    if with_status:
        status = args.string("status")
        if status is not None:
            status = status.upper()
            args.violations.check(
                status in ORDER_STATUSES, "status", f"Invalid status. Must be one of: {', '.join(ORDER_STATUSES)}"
            )
        filters["status"] = status
    else:
        filters["active"] = args.boolean("active")
    args.finish()
    return filters


def _file_response(export: ExportFile) -> Response:
    resp = Response(export.content, content_type=export.mimetype)
    resp.headers["Content-Disposition"] = f"attachment; filename={export.filename}"
    resp.headers["Cache-Control"] = "no-store"
    return resp


@bp.get("/orders")
@require_admin
async def export_orders() -> Response:
    args = ArgParser.query()
    fmt = _format(args)
    filters = _filters(args, with_status=True)
    return _file_response(await _service().export_orders(fmt, filters, get_request_context().request_id))


@bp.get("/sales")
@require_admin
async def export_sales() -> Response:
    args = ArgParser.query()
    fmt = _format(args)
    filters = _filters(args, with_status=False)
    return _file_response(await _service().export_sales(fmt, filters, get_request_context().request_id))


@bp.get("/products")
@require_admin
async def export_products() -> Response:
    args = ArgParser.query()
    fmt = _format(args, csv_only_kind="products")
    filters = _filters(args, with_status=False)
    return _file_response(await _service().export_products(fmt, filters, get_request_context().request_id))


@bp.get("/customers")
@require_admin
async def export_customers() -> Response:
    args = ArgParser.query()
    fmt = _format(args, csv_only_kind="customers")
    filters = _filters(args, with_status=False)
    return _file_response(await _service().export_customers(fmt, filters, get_request_context().request_id))
