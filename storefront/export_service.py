"""Order, sales, product and customer exports built from the catalog store."""
from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol

from typing_extensions import TypedDict

from .catalog import CatalogStore, Customer, Order, Product
from .errors import ValidationError
from .export_formats import build_csv, build_pdf, build_xlsx
from .ids import utcnow

logger = logging.getLogger(__name__)

EXPORT_FORMATS: tuple[str, ...] = ("csv", "excel", "pdf")
CSV_ONLY_KINDS: tuple[str, ...] = ("products", "customers")

_MIMETYPES = {
    "csv": "text/csv; charset=utf-8",
    "excel": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "pdf": "application/pdf",
}
_EXTENSIONS = {"csv": "csv", "excel": "xlsx", "pdf": "pdf"}

ORDER_COLUMNS = (
    "Order Number",
    "Customer Name",
    "Customer Email",
    "Order Date",
    "Status",
    "Payment Status",
    "Items Count",
    "Items",
    "Subtotal",
    "Tax",
    "Shipping",
    "Total",
)
SALES_COLUMNS = ("Order Number", "Order Date", "Product", "Vendor", "Quantity", "Unit Price", "Line Total")
PRODUCT_COLUMNS = (
    "Product Name",
    "Slug",
    "Description",
    "Price",
    "Compare At Price",
    "Quantity",
    "Category",
    "Vendor",
    "Featured",
    "Active",
    "Created At",
)
CUSTOMER_COLUMNS = ("First Name", "Last Name", "Email", "Role", "Active", "Orders Count", "Total Spent", "Joined")


class ExportFilters(TypedDict, total=False):
    startDate: datetime | None
    endDate: datetime | None
    status: str | None
    vendorId: str | None
    active: bool | None


@dataclass(frozen=True)
class ExportFile:
    content: bytes
    mimetype: str
    filename: str


class ExportService(Protocol):
    async def export_orders(self, fmt: str, filters: ExportFilters, request_id: str) -> ExportFile: ...
    async def export_sales(self, fmt: str, filters: ExportFilters, request_id: str) -> ExportFile: ...
    async def export_products(self, fmt: str, filters: ExportFilters, request_id: str) -> ExportFile: ...
    async def export_customers(self, fmt: str, filters: ExportFilters, request_id: str) -> ExportFile: ...


def export_filename(kind: str, fmt: str, today: datetime | None = None) -> str:
    stamp = (today or utcnow()).strftime("%Y-%m-%d")
    return f"{kind}_export_{stamp}.{_EXTENSIONS[fmt]}"


def _in_range(created: datetime, filters: ExportFilters) -> bool:
    start, end = filters.get("startDate"), filters.get("endDate")
    if start is not None and created < start:
        return False
    if end is not None and created > end:
        return False
    return True


def _order_has_vendor(order: Order, vendor_id: str) -> bool:
    return any(item.get("vendorId") == vendor_id for item in order["items"])


def _date(value: datetime) -> str:
    return value.strftime("%Y-%m-%d")


class CatalogExportService:
    def __init__(self, catalog: CatalogStore) -> None:
        self._catalog = catalog

    def _orders(self, filters: ExportFilters, *, status: str | None = None) -> list[Order]:
        wanted = status or filters.get("status")
        vendor_id = filters.get("vendorId")
        rows = [
            o
            for o in self._catalog.orders()
            if _in_range(o["createdAt"], filters)
            and (not wanted or o["status"] == wanted)
            and (not vendor_id or _order_has_vendor(o, vendor_id))
        ]
        rows.sort(key=lambda o: o["createdAt"], reverse=True)
        return rows

    def _render(self, kind: str, fmt: str, headers: Sequence[str], rows: list[list[Any]], request_id: str) -> ExportFile:
        if fmt not in EXPORT_FORMATS or (kind in CSV_ONLY_KINDS and fmt != "csv"):
            raise ValidationError([{"field": "format", "message": f"Invalid export format: {fmt}"}])
        title = f"{kind.capitalize()} Report"
        if fmt == "excel":
            content = build_xlsx(headers, rows, sheet_title=kind.capitalize())
        elif fmt == "pdf":
            content = build_pdf(headers, rows, title=title)
        else:
            content = build_csv(headers, rows)
        logger.info("[%s] Exported %d %s rows as %s (%d bytes)", request_id, len(rows), kind, fmt, len(content))
        return ExportFile(content=content, mimetype=_MIMETYPES[fmt], filename=export_filename(kind, fmt))

    def _customer_name(self, order: Order) -> str:
        customer = self._catalog.get_customer(order["userId"])
        if customer is None:
            return "N/A"
        return f"{customer['firstName']} {customer['lastName']}"

    async def export_orders(self, fmt: str, filters: ExportFilters, request_id: str) -> ExportFile:
        rows: list[list[Any]] = []
        for o in self._orders(filters):
            rows.append([
                o["orderNumber"],
                self._customer_name(o),
                o["customerEmail"],
                _date(o["createdAt"]),
                o["status"],
                o["paymentStatus"],
                len(o["items"]),
                ", ".join(f"{i['name']} ({i['quantity']})" for i in o["items"]) or "N/A",
                o["subtotal"],
                o["tax"],
                o["shipping"],
                o["total"],
            ])
        return self._render("orders", fmt, ORDER_COLUMNS, rows, request_id)

    async def export_sales(self, fmt: str, filters: ExportFilters, request_id: str) -> ExportFile:
        vendor_id = filters.get("vendorId")
        rows: list[list[Any]] = []
        for o in self._orders(filters, status="DELIVERED"):
            for item in o["items"]:
                if vendor_id and item.get("vendorId") != vendor_id:
                    continue
                rows.append([
                    o["orderNumber"],
                    _date(o["createdAt"]),
                    item["name"],
                    item.get("vendorId") or "",
                    item["quantity"],
                    item["price"],
                    round(item["price"] * item["quantity"], 2),
                ])
        return self._render("sales", fmt, SALES_COLUMNS, rows, request_id)

    async def export_products(self, fmt: str, filters: ExportFilters, request_id: str) -> ExportFile:
        vendor_id = filters.get("vendorId")
        active = filters.get("active")
        products: list[Product] = [
            p
            for p in self._catalog.products()
            if _in_range(p["createdAt"], filters)
            and (not vendor_id or p["vendorId"] == vendor_id)
            and (active is None or p["active"] == active)
        ]
        products.sort(key=lambda p: p["name"].lower())
        rows = [
            [
                p["name"],
                p["slug"],
                p["description"],
                p["price"],
                p["compareAtPrice"] or 0,
                p["stock"],
                p["category"] or "N/A",
                p["vendorId"] or "",
                p["featured"],
                p["active"],
                _date(p["createdAt"]),
            ]
            for p in products
        ]
        return self._render("products", fmt, PRODUCT_COLUMNS, rows, request_id)

    async def export_customers(self, fmt: str, filters: ExportFilters, request_id: str) -> ExportFile:
        active = filters.get("active")
        orders = self._catalog.orders()
        customers: list[Customer] = [
            c
            for c in self._catalog.customers()
            if _in_range(c["createdAt"], filters) and (active is None or c["active"] == active)
        ]
        customers.sort(key=lambda c: c["createdAt"], reverse=True)
        rows: list[list[Any]] = []
        for c in customers:
            own = [o for o in orders if o["userId"] == c["id"]]
            rows.append([
                c["firstName"],
                c["lastName"],
                c["email"],
                c["role"],
                c["active"],
                len(own),
                round(sum(o["total"] for o in own), 2),
                _date(c["createdAt"]),
            ])
        return self._render("customers", fmt, CUSTOMER_COLUMNS, rows, request_id)


__all__ = [
    "ExportService",
    "CatalogExportService",
    "ExportFile",
    "ExportFilters",
    "EXPORT_FORMATS",
    "export_filename",
]
