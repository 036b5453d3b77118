"""Sales, product and customer analytics computed from the catalog.

Store-wide figures count only orders that have left the warehouse (SHIPPED or
DELIVERED). Vendor figures follow the vendor metrics convention instead: every
order that is not CANCELLED, restricted to the vendor's own line items.
Windows include both ends; the previous window for comparison is the span of
equal length ending at ``start``.
"""
from __future__ import annotations

import logging
from collections import Counter, defaultdict
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Protocol

from .catalog import ORDER_STATUSES, CatalogStore, Order, OrderItem
from .ids import iso, utcnow
from .vendor_service import METRIC_PERIODS, VendorService

logger = logging.getLogger(__name__)

INTERVALS: tuple[str, ...] = ("hourly", "daily", "weekly", "monthly")
GROUP_BY: tuple[str, ...] = ("product", "category", "vendor", "customer")
VENDOR_GROUP_BY: tuple[str, ...] = ("product", "category", "customer")
RECOGNIZED_STATUSES: tuple[str, ...] = ("SHIPPED", "DELIVERED")
DEFAULT_WINDOW = timedelta(days=30)
LOW_STOCK = 5


@dataclass(frozen=True)
class Window:
    start: datetime
    end: datetime

    def contains(self, when: datetime) -> bool:
        return self.start <= when <= self.end

    def previous(self) -> Window:
        span = self.end - self.start
        return Window(self.start - span, self.start)

    def to_dict(self) -> dict[str, Any]:
        return {"startDate": iso(self.start), "endDate": iso(self.end)}


def window_for(start: datetime | None, end: datetime | None, default: timedelta = DEFAULT_WINDOW) -> Window:
    end = end or utcnow()
    return Window(start or end - default, end)


# ---- pure calculations ----------------------------------------------------------

def growth(current: float, previous: float) -> float:
    """Percentage change; from zero it is 100 when anything happened, else 0."""
    if previous == 0:
        return 100.0 if current > 0 else 0.0
    return round((current - previous) / previous * 100, 2)


def bucket(when: datetime, interval: str) -> str:
    if interval == "hourly":
        return when.strftime("%Y-%m-%dT%H:00")
    if interval == "weekly":
        return (when - timedelta(days=when.weekday())).strftime("%Y-%m-%d")
    if interval == "monthly":
        return when.strftime("%Y-%m")
    return when.strftime("%Y-%m-%d")


def line_total(item: OrderItem) -> float:
    return item["price"] * item["quantity"]


def summarize(orders: list[Order], lines: dict[str, list[OrderItem]] | None = None) -> dict[str, Any]:
    """Totals over ``orders``; ``lines`` restricts each order to some of its items."""
    sales = 0.0
    items = 0
    for order in orders:
        order_lines = lines[order["id"]] if lines is not None else order["items"]
        if lines is None:
            sales += order["total"]
        else:
            sales += sum(line_total(i) for i in order_lines)
        items += sum(i["quantity"] for i in order_lines)
    count = len(orders)
    return {
        "totalSales": round(sales, 2),
        "totalOrders": count,
        "averageOrderValue": round(sales / count, 2) if count else 0,
        "totalItems": items,
    }


def trend(orders: list[Order], interval: str, lines: dict[str, list[OrderItem]] | None = None) -> list[dict[str, Any]]:
    sales: dict[str, float] = defaultdict(float)
    counts: Counter[str] = Counter()
    for order in orders:
        key = bucket(order["createdAt"], interval)
        if lines is None:
            sales[key] += order["total"]
        else:
            sales[key] += sum(line_total(i) for i in lines[order["id"]])
        counts[key] += 1
    return [{"period": key, "sales": round(sales[key], 2), "orders": counts[key]} for key in sorted(sales)]


def compare(current: dict[str, Any], previous: dict[str, Any]) -> dict[str, float]:
    return {key: growth(current[key], previous[key]) for key in ("totalSales", "totalOrders", "averageOrderValue", "totalItems")}


class AnalyticsService(Protocol):
    async def dashboard(self, window: Window, compare_previous: bool, request_id: str) -> dict[str, Any]: ...
    async def sales(
        self, window: Window, interval: str, group_by: str, compare_previous: bool, request_id: str
    ) -> dict[str, Any]: ...
    async def products(self, window: Window, limit: int, request_id: str) -> dict[str, Any]: ...
    async def users(self, window: Window, limit: int, request_id: str) -> dict[str, Any]: ...
    async def vendor_dashboard(self, vendor_id: str, period: str, request_id: str) -> dict[str, Any]: ...
    async def vendor_sales(
        self, vendor_id: str, window: Window, interval: str, group_by: str, request_id: str
    ) -> dict[str, Any]: ...
    async def vendor_products(self, vendor_id: str, window: Window, request_id: str) -> dict[str, Any]: ...
    async def vendor_orders(self, vendor_id: str, window: Window, status: str | None, request_id: str) -> dict[str, Any]: ...
    async def vendor_payouts(self, vendor_id: str, window: Window, request_id: str) -> dict[str, Any]: ...


class CatalogAnalyticsService:
    def __init__(self, catalog: CatalogStore, vendors: VendorService) -> None:
        self._catalog = catalog
        self._vendors = vendors

    # ---- selections ----

    def _recognized(self, window: Window) -> list[Order]:
        return [
            o for o in self._catalog.orders()
            if o["status"] in RECOGNIZED_STATUSES and window.contains(o["createdAt"])
        ]

    def _vendor_orders(
        self, vendor_id: str, window: Window | None, *, include_cancelled: bool = False
    ) -> tuple[list[Order], dict[str, list[OrderItem]]]:
        orders: list[Order] = []
        lines: dict[str, list[OrderItem]] = {}
        for order in self._catalog.orders():
            if order["status"] == "CANCELLED" and not include_cancelled:
                continue
            if window is not None and not window.contains(order["createdAt"]):
                continue
            own = [i for i in order["items"] if i.get("vendorId") == vendor_id]
            if own:
                orders.append(order)
                lines[order["id"]] = own
        return orders, lines

    def _product_rows(self, orders: Iterable[Order], lines: dict[str, list[OrderItem]] | None = None) -> list[dict[str, Any]]:
        rows: dict[str, dict[str, Any]] = {}
        for order in orders:
            for item in lines[order["id"]] if lines is not None else order["items"]:
                row = rows.setdefault(
                    item["productId"],
                    {"productId": item["productId"], "name": item["name"], "quantity": 0, "revenue": 0.0, "orders": 0},
                )
                row["quantity"] += item["quantity"]
                row["revenue"] = round(row["revenue"] + line_total(item), 2)
                row["orders"] += 1
        return sorted(rows.values(), key=lambda r: (-r["revenue"], r["name"]))

    def _grouped(self, orders: list[Order], group_by: str, lines: dict[str, list[OrderItem]] | None = None) -> list[dict[str, Any]]:
        if group_by == "product":
            return self._product_rows(orders, lines)
        groups: dict[str, dict[str, Any]] = {}
        for order in orders:
            for item in lines[order["id"]] if lines is not None else order["items"]:
                if group_by == "customer":
                    key = order["userId"]
                elif group_by == "vendor":
                    key = item.get("vendorId") or "unassigned"
                else:
                    product = self._catalog.get_product(item["productId"])
                    key = (product["category"] if product else None) or "uncategorized"
                row = groups.setdefault(key, {group_by: key, "sales": 0.0, "quantity": 0, "orderIds": set()})
                row["sales"] = round(row["sales"] + line_total(item), 2)
                row["quantity"] += item["quantity"]
                row["orderIds"].add(order["id"])
        out = [
            {group_by: row[group_by], "sales": row["sales"], "quantity": row["quantity"], "orders": len(row["orderIds"])}
            for row in groups.values()
        ]
        return sorted(out, key=lambda r: (-r["sales"], r[group_by]))

    def _stock(self, vendor_id: str | None = None) -> dict[str, int]:
        products = [p for p in self._catalog.products() if vendor_id is None or p["vendorId"] == vendor_id]
        return {
            "totalProducts": len(products),
            "activeProducts": sum(1 for p in products if p["active"]),
            "outOfStock": sum(1 for p in products if p["stock"] == 0),
            "lowStock": sum(1 for p in products if 0 < p["stock"] <= LOW_STOCK),
        }

    @staticmethod
    def _order_brief(order: Order, lines: list[OrderItem] | None = None) -> dict[str, Any]:
        items = lines if lines is not None else order["items"]
        return {
            "id": order["id"],
            "orderNumber": order["orderNumber"],
            "userId": order["userId"],
            "status": order["status"],
            "total": round(sum(line_total(i) for i in items), 2) if lines is not None else order["total"],
            "items": sum(i["quantity"] for i in items),
            "createdAt": iso(order["createdAt"]),
        }

    # ---- store-wide ----

    async def dashboard(self, window: Window, compare_previous: bool, request_id: str) -> dict[str, Any]:
        logger.info("[%s] Dashboard analytics %s..%s", request_id, iso(window.start), iso(window.end))
        orders = self._recognized(window)
        sales = summarize(orders)
        if compare_previous:
            sales["growth"] = compare(sales, summarize(self._recognized(window.previous())))
        in_window = [o for o in self._catalog.orders() if window.contains(o["createdAt"])]
        latest = sorted(in_window, key=lambda o: o["createdAt"], reverse=True)[:5]
        return {
            "period": window.to_dict(),
            "sales": sales,
            "customers": self._customer_summary(window),
            "products": self._stock(),
            "ordersByStatus": {s: sum(1 for o in in_window if o["status"] == s) for s in ORDER_STATUSES},
            "topProducts": self._product_rows(orders)[:5],
            "recentOrders": [self._order_brief(o) for o in latest],
        }

    async def sales(
        self, window: Window, interval: str, group_by: str, compare_previous: bool, request_id: str
    ) -> dict[str, Any]:
        logger.info("[%s] Sales analytics interval=%s groupBy=%s", request_id, interval, group_by)
        orders = self._recognized(window)
        summary = summarize(orders)
        previous_trend = None
        if compare_previous:
            earlier = self._recognized(window.previous())
            summary["growth"] = compare(summary, summarize(earlier))
            previous_trend = trend(earlier, interval)
        return {
            "summary": summary,
            "trend": {"current": trend(orders, interval), "previous": previous_trend},
            "groupedSales": self._grouped(orders, group_by),
            "period": window.to_dict(),
            "options": {"interval": interval, "groupBy": group_by, "compareWithPrevious": compare_previous},
        }

    async def products(self, window: Window, limit: int, request_id: str) -> dict[str, Any]:
        orders = self._recognized(window)
        rows = self._product_rows(orders)
        sold = {r["productId"] for r in rows}
        catalog = self._catalog.products()
        low = sorted((p for p in catalog if p["active"] and p["stock"] <= LOW_STOCK), key=lambda p: (p["stock"], p["name"]))
        return {
            "period": window.to_dict(),
            "topProducts": rows[:limit],
            "byCategory": self._grouped(orders, "category"),
            "lowStock": [{"productId": p["id"], "name": p["name"], "stock": p["stock"]} for p in low[:limit]],
            "neverSold": sum(1 for p in catalog if p["id"] not in sold),
            **self._stock(),
        }

    def _customer_summary(self, window: Window) -> dict[str, Any]:
        customers = [c for c in self._catalog.customers() if c["role"] == "customer"]
        buyers = {o["userId"] for o in self._catalog.orders() if window.contains(o["createdAt"])}
        fresh = sum(1 for c in customers if window.contains(c["createdAt"]))
        earlier = window.previous()
        before = sum(1 for c in customers if earlier.contains(c["createdAt"]) and c["createdAt"] < window.start)
        return {
            "totalCustomers": len(customers),
            "newCustomers": fresh,
            "activeCustomers": len(buyers),
            "newCustomersGrowth": growth(fresh, before),
        }

    async def users(self, window: Window, limit: int, request_id: str) -> dict[str, Any]:
        orders = [o for o in self._catalog.orders() if o["status"] != "CANCELLED" and window.contains(o["createdAt"])]
        spend: dict[str, dict[str, Any]] = {}
        for order in orders:
            row = spend.setdefault(order["userId"], {"userId": order["userId"], "orders": 0, "spent": 0.0})
            row["orders"] += 1
            row["spent"] = round(row["spent"] + order["total"], 2)
        top = sorted(spend.values(), key=lambda r: (-r["spent"], r["userId"]))[:limit]
        for row in top:
            customer = self._catalog.get_customer(row["userId"])
            row["name"] = f"{customer['firstName']} {customer['lastName']}" if customer else None
        return {
            "period": window.to_dict(),
            **self._customer_summary(window),
            "returningCustomers": sum(1 for r in spend.values() if r["orders"] > 1),
            "topCustomers": top,
        }

    # ---- per vendor ----

    async def vendor_dashboard(self, vendor_id: str, period: str, request_id: str) -> dict[str, Any]:
        await self._vendors.get_vendor(vendor_id, request_id)
        logger.info("[%s] Vendor %s dashboard, period %s", request_id, vendor_id, period)
        span = METRIC_PERIODS[period]
        now = utcnow()
        current = Window(now - span, now) if span is not None else None
        orders, lines = self._vendor_orders(vendor_id, current)
        totals = summarize(orders, lines)
        if current is not None:
            before_orders, before_lines = self._vendor_orders(vendor_id, current.previous())
            before = summarize(before_orders, before_lines)
        else:
            before = {"totalSales": 0, "totalOrders": 0, "averageOrderValue": 0}
        stock = self._stock(vendor_id)
        every, every_lines = self._vendor_orders(vendor_id, None, include_cancelled=True)
        latest = sorted(every, key=lambda o: o["createdAt"], reverse=True)[:10]
        return {
            "period": period,
            "dateRange": current.to_dict() if current else {"startDate": None, "endDate": iso(now)},
            "metrics": {
                "totalRevenue": totals["totalSales"],
                "totalOrders": totals["totalOrders"],
                "averageOrderValue": totals["averageOrderValue"],
                "totalProducts": stock["totalProducts"],
                "activeProducts": stock["activeProducts"],
            },
            "growth": {
                "revenue": growth(totals["totalSales"], before["totalSales"]) if current else 0.0,
                "orders": growth(totals["totalOrders"], before["totalOrders"]) if current else 0.0,
                "averageOrderValue": growth(totals["averageOrderValue"], before["averageOrderValue"]) if current else 0.0,
            },
            "recentOrders": [self._order_brief(o, every_lines[o["id"]]) for o in latest],
            "topProducts": self._product_rows(orders, lines)[:5],
            "productStats": stock,
        }

    async def vendor_sales(
        self, vendor_id: str, window: Window, interval: str, group_by: str, request_id: str
    ) -> dict[str, Any]:
        await self._vendors.get_vendor(vendor_id, request_id)
        orders, lines = self._vendor_orders(vendor_id, window)
        return {
            "period": window.to_dict(),
            "summary": summarize(orders, lines),
            "trend": trend(orders, interval, lines),
            "groupedSales": self._grouped(orders, group_by, lines),
            "options": {"interval": interval, "groupBy": group_by},
        }

    async def vendor_products(self, vendor_id: str, window: Window, request_id: str) -> dict[str, Any]:
        await self._vendors.get_vendor(vendor_id, request_id)
        orders, lines = self._vendor_orders(vendor_id, window)
        sold = {r["productId"]: r for r in self._product_rows(orders, lines)}
        rows = []
        for product in self._catalog.products():
            if product["vendorId"] != vendor_id:
                continue
            row = sold.get(product["id"], {"quantity": 0, "revenue": 0.0, "orders": 0})
            rows.append(
                {
                    "productId": product["id"],
                    "name": product["name"],
                    "price": product["price"],
                    "stock": product["stock"],
                    "active": product["active"],
                    "quantity": row["quantity"],
                    "revenue": row["revenue"],
                    "orders": row["orders"],
                }
            )
        rows.sort(key=lambda r: (-r["revenue"], r["name"]))
        return {"period": window.to_dict(), "products": rows, **self._stock(vendor_id)}

    async def vendor_orders(
        self, vendor_id: str, window: Window, status: str | None, request_id: str
    ) -> dict[str, Any]:
        await self._vendors.get_vendor(vendor_id, request_id)
        orders, lines = self._vendor_orders(vendor_id, window, include_cancelled=True)
        by_status = {s: sum(1 for o in orders if o["status"] == s) for s in ORDER_STATUSES}
        if status:
            orders = [o for o in orders if o["status"] == status]
        daily = Counter(bucket(o["createdAt"], "daily") for o in orders)
        latest = sorted(orders, key=lambda o: o["createdAt"], reverse=True)[:20]
        return {
            "period": window.to_dict(),
            "totalOrders": len(orders),
            "byStatus": by_status,
            "trend": [{"period": day, "orders": daily[day]} for day in sorted(daily)],
            "orders": [self._order_brief(o, lines[o["id"]]) for o in latest],
        }

    async def vendor_payouts(self, vendor_id: str, window: Window, request_id: str) -> dict[str, Any]:
        summary = await self._vendors.payout_summary(vendor_id, window.start, window.end, request_id)
        return {"period": window.to_dict(), **summary}


__all__ = [
    "AnalyticsService",
    "CatalogAnalyticsService",
    "Window",
    "window_for",
    "growth",
    "bucket",
    "INTERVALS",
    "GROUP_BY",
    "VENDOR_GROUP_BY",
]
