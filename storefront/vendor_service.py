"""Vendor accounts, storefront products, sales metrics and payouts."""
from __future__ import annotations

import logging
import threading
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Protocol

from typing_extensions import TypedDict

from .catalog import CatalogStore, Order
from .errors import BusinessError, ConflictError, NotFoundError
from .ids import iso, new_object_id, utcnow
from .pagination import Page, PageRequest, paginate_sequence
from .search_service import serialize_product

logger = logging.getLogger(__name__)

VENDOR_STATUSES: tuple[str, ...] = ("pending", "approved", "rejected", "suspended")
PAYOUT_STATUSES: tuple[str, ...] = ("pending", "processing", "completed", "failed", "cancelled")
PAYOUT_METHODS: tuple[str, ...] = ("bank_transfer", "paypal", "stripe", "check")
METRIC_PERIODS: dict[str, timedelta | None] = {
    "day": timedelta(days=1),
    "week": timedelta(days=7),
    "month": timedelta(days=30),
    "year": timedelta(days=365),
    "all": None,
}
_TERMINAL_PAYOUT = ("completed", "cancelled")
DEFAULT_COMMISSION_RATE = 10.0


class VendorInput(TypedDict, total=False):
    name: str
    slug: str
    email: str
    phone: str | None
    description: str | None
    logo: str | None
    website: str | None
    commissionRate: float
    address: dict[str, Any] | None
    userId: str | None


class VendorFilters(TypedDict, total=False):
    status: str | None
    search: str | None
    active: bool | None


class ProductFilters(TypedDict, total=False):
    minPrice: float | None
    maxPrice: float | None
    category: str | None
    inStock: bool | None


class PayoutInput(TypedDict, total=False):
    vendor: str
    amount: float
    periodStart: datetime
    periodEnd: datetime
    method: str
    notes: str | None


class VendorService(Protocol):
    async def create_vendor(self, data: VendorInput, request_id: str) -> dict[str, Any]: ...
    async def list_vendors(self, filters: VendorFilters, page: PageRequest, request_id: str) -> Page[dict[str, Any]]: ...
    async def get_vendor(self, vendor_id: str, request_id: str) -> dict[str, Any]: ...
    async def get_vendor_by_slug(self, slug: str, request_id: str) -> dict[str, Any]: ...
    async def update_vendor(self, vendor_id: str, data: VendorInput, request_id: str) -> dict[str, Any]: ...
    async def delete_vendor(self, vendor_id: str, request_id: str) -> dict[str, Any]: ...
    async def update_status(self, vendor_id: str, status: str, notes: str | None, request_id: str) -> dict[str, Any]: ...
    async def get_products(self, vendor_id: str, filters: ProductFilters, page: PageRequest, request_id: str) -> Page[dict[str, Any]]: ...
    async def get_metrics(self, vendor_id: str, period: str, request_id: str) -> dict[str, Any]: ...
    async def calculate_payout(self, vendor_id: str, start: datetime, end: datetime, request_id: str) -> dict[str, Any]: ...
    async def create_payout(self, data: PayoutInput, request_id: str) -> dict[str, Any]: ...
    async def list_payouts(self, vendor_id: str, status: str | None, page: PageRequest, request_id: str) -> Page[dict[str, Any]]: ...
    async def get_payout(self, payout_id: str, request_id: str) -> dict[str, Any]: ...
    async def update_payout_status(
        self, payout_id: str, status: str, transaction_id: str | None, notes: str | None, request_id: str
    ) -> dict[str, Any]: ...
    async def payout_summary(self, vendor_id: str, start: datetime, end: datetime, request_id: str) -> dict[str, Any]: ...


@dataclass
class _Vendor:
    id: str
    name: str
    slug: str
    email: str
    created_at: datetime
    updated_at: datetime
    status: str = "pending"
    commission_rate: float = DEFAULT_COMMISSION_RATE
    phone: str | None = None
    description: str | None = None
    logo: str | None = None
    website: str | None = None
    address: dict[str, Any] | None = None
    user_id: str | None = None
    status_notes: str | None = None
    approved_at: datetime | None = None

    @property
    def active(self) -> bool:
        return self.status == "approved"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "email": self.email,
            "phone": self.phone,
            "description": self.description,
            "logo": self.logo,
            "website": self.website,
            "address": self.address,
            "status": self.status,
            "statusNotes": self.status_notes,
            "active": self.active,
            "commissionRate": self.commission_rate,
            "userId": self.user_id,
            "approvedAt": iso(self.approved_at),
            "createdAt": iso(self.created_at),
            "updatedAt": iso(self.updated_at),
        }


@dataclass
class _Payout:
    id: str
    vendor_id: str
    amount: float
    period_start: datetime
    period_end: datetime
    method: str
    created_at: datetime
    updated_at: datetime
    status: str = "pending"
    transaction_id: str | None = None
    notes: str | None = None
    history: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "vendorId": self.vendor_id,
            "amount": self.amount,
            "periodStart": iso(self.period_start),
            "periodEnd": iso(self.period_end),
            "method": self.method,
            "status": self.status,
            "transactionId": self.transaction_id,
            "notes": self.notes,
            "history": list(self.history),
            "createdAt": iso(self.created_at),
            "updatedAt": iso(self.updated_at),
        }


def vendor_sales(orders: list[Order], vendor_id: str) -> tuple[float, int, dict[str, dict[str, Any]]]:
    """Vendor share of the given orders: (sales, order count, per-product totals)."""
    sales = 0.0
    order_ids: set[str] = set()
    products: dict[str, dict[str, Any]] = defaultdict(lambda: {"quantity": 0, "revenue": 0.0})
    for order in orders:
        for item in order["items"]:
            if item.get("vendorId") != vendor_id:
                continue
            line = item["price"] * item["quantity"]
            sales += line
            order_ids.add(order["id"])
            row = products[item["productId"]]
            row["productId"] = item["productId"]
            row["name"] = item["name"]
            row["quantity"] += item["quantity"]
            row["revenue"] = round(row["revenue"] + line, 2)
    return round(sales, 2), len(order_ids), products


class InMemoryVendorService:
    def __init__(self, catalog: CatalogStore) -> None:
        self._catalog = catalog
        self._vendors: dict[str, _Vendor] = {}
        self._payouts: dict[str, _Payout] = {}
        self._lock = threading.RLock()

    def _get(self, vendor_id: str) -> _Vendor:
        vendor = self._vendors.get(vendor_id)
        if vendor is None:
            raise NotFoundError(message_key="vendorNotFound")
        return vendor

    def _ensure_unique(self, slug: str | None, email: str | None, exclude: str | None = None) -> None:
        for other in self._vendors.values():
            if other.id == exclude:
                continue
            if slug and other.slug == slug:
                raise ConflictError("Vendor with this slug already exists")
            if email and other.email.lower() == email.lower():
                raise ConflictError("Vendor with this email already exists")

    async def create_vendor(self, data: VendorInput, request_id: str) -> dict[str, Any]:
        logger.info("[%s] Creating vendor %r", request_id, data.get("name"))
        now = utcnow()
        with self._lock:
            self._ensure_unique(data["slug"], data["email"])
            vendor = _Vendor(
                id=new_object_id(),
                name=data["name"],
                slug=data["slug"],
                email=data["email"],
                phone=data.get("phone"),
                description=data.get("description"),
                logo=data.get("logo"),
                website=data.get("website"),
                address=data.get("address"),
                commission_rate=data.get("commissionRate", DEFAULT_COMMISSION_RATE),
                user_id=data.get("userId"),
                created_at=now,
                updated_at=now,
            )
            self._vendors[vendor.id] = vendor
            return vendor.to_dict()

    async def list_vendors(self, filters: VendorFilters, page: PageRequest, request_id: str) -> Page[dict[str, Any]]:
        search = (filters.get("search") or "").lower()
        with self._lock:
            rows = [
                v
                for v in self._vendors.values()
                if (not filters.get("status") or v.status == filters["status"])
                and (filters.get("active") is None or v.active == filters["active"])
                and (not search or search in v.name.lower() or search in v.email.lower())
            ]
        rows.sort(key=lambda v: v.created_at, reverse=True)
        return paginate_sequence([v.to_dict() for v in rows], page)

    async def get_vendor(self, vendor_id: str, request_id: str) -> dict[str, Any]:
        with self._lock:
            return self._get(vendor_id).to_dict()

    async def get_vendor_by_slug(self, slug: str, request_id: str) -> dict[str, Any]:
        with self._lock:
            vendor = next((v for v in self._vendors.values() if v.slug == slug), None)
            if vendor is None:
                raise NotFoundError(message_key="vendorNotFound")
            return vendor.to_dict()

    async def update_vendor(self, vendor_id: str, data: VendorInput, request_id: str) -> dict[str, Any]:
        logger.info("[%s] Updating vendor %s", request_id, vendor_id)
        with self._lock:
            vendor = self._get(vendor_id)
            self._ensure_unique(data.get("slug"), data.get("email"), exclude=vendor_id)
            for key, attr in (
                ("name", "name"),
                ("slug", "slug"),
                ("email", "email"),
                ("phone", "phone"),
                ("description", "description"),
                ("logo", "logo"),
                ("website", "website"),
                ("address", "address"),
                ("commissionRate", "commission_rate"),
            ):
                if key in data:
                    setattr(vendor, attr, data[key])  # type: ignore[literal-required]
            vendor.updated_at = utcnow()
            return vendor.to_dict()

    async def delete_vendor(self, vendor_id: str, request_id: str) -> dict[str, Any]:
        logger.info("[%s] Deleting vendor %s", request_id, vendor_id)
        with self._lock:
            vendor = self._get(vendor_id)
            if any(p.vendor_id == vendor_id and p.status in ("pending", "processing") for p in self._payouts.values()):
                raise BusinessError("Cannot delete a vendor with open payouts")
            del self._vendors[vendor_id]
            return {"id": vendor.id, "name": vendor.name}

    async def update_status(self, vendor_id: str, status: str, notes: str | None, request_id: str) -> dict[str, Any]:
        logger.info("[%s] Vendor %s status -> %s", request_id, vendor_id, status)
        with self._lock:
            vendor = self._get(vendor_id)
            vendor.status = status
            vendor.status_notes = notes
            if status == "approved" and vendor.approved_at is None:
                vendor.approved_at = utcnow()
            vendor.updated_at = utcnow()
            return vendor.to_dict()

    async def get_products(
        self, vendor_id: str, filters: ProductFilters, page: PageRequest, request_id: str
    ) -> Page[dict[str, Any]]:
        with self._lock:
            self._get(vendor_id)
        rows = [
            p
            for p in self._catalog.products()
            if p["vendorId"] == vendor_id
            and p["active"]
            and (filters.get("minPrice") is None or p["price"] >= filters["minPrice"])  # type: ignore[operator]
            and (filters.get("maxPrice") is None or p["price"] <= filters["maxPrice"])  # type: ignore[operator]
            and (not filters.get("category") or p["category"] == filters["category"])
            and (filters.get("inStock") is None or (p["stock"] > 0) == filters["inStock"])
        ]
        rows.sort(key=lambda p: p["createdAt"], reverse=True)
        return paginate_sequence([serialize_product(p) for p in rows], page)

    async def get_metrics(self, vendor_id: str, period: str, request_id: str) -> dict[str, Any]:
        with self._lock:
            vendor = self._get(vendor_id)
        window = METRIC_PERIODS[period]
        since = utcnow() - window if window is not None else None
        orders = [
            o for o in self._catalog.orders()
            if o["status"] != "CANCELLED" and (since is None or o["createdAt"] >= since)
        ]
        sales, order_count, products = vendor_sales(orders, vendor_id)
        commission = round(sales * vendor.commission_rate / 100, 2)
        top = sorted(products.values(), key=lambda r: r["revenue"], reverse=True)[:5]
        return {
            "vendorId": vendor_id,
            "period": period,
            "totalSales": sales,
            "totalOrders": order_count,
            "averageOrderValue": round(sales / order_count, 2) if order_count else 0,
            "commissionRate": vendor.commission_rate,
            "commission": commission,
            "netEarnings": round(sales - commission, 2),
            "productCount": sum(1 for p in self._catalog.products() if p["vendorId"] == vendor_id),
            "topProducts": top,
        }

    async def calculate_payout(self, vendor_id: str, start: datetime, end: datetime, request_id: str) -> dict[str, Any]:
        with self._lock:
            vendor = self._get(vendor_id)
        orders = [
            o for o in self._catalog.orders()
            if o["status"] == "DELIVERED" and start <= o["createdAt"] <= end
        ]
        sales, order_count, _ = vendor_sales(orders, vendor_id)
        commission = round(sales * vendor.commission_rate / 100, 2)
        return {
            "vendorId": vendor_id,
            "periodStart": iso(start),
            "periodEnd": iso(end),
            "orderCount": order_count,
            "totalSales": sales,
            "commissionRate": vendor.commission_rate,
            "commission": commission,
            "payoutAmount": round(sales - commission, 2),
        }

    async def create_payout(self, data: PayoutInput, request_id: str) -> dict[str, Any]:
        logger.info("[%s] Creating payout for vendor %s", request_id, data.get("vendor"))
        now = utcnow()
        with self._lock:
            vendor = self._get(data["vendor"])
            if vendor.status != "approved":
                raise BusinessError("Payouts can only be created for approved vendors")
            payout = _Payout(
                id=new_object_id(),
                vendor_id=vendor.id,
                amount=round(data["amount"], 2),
                period_start=data["periodStart"],
                period_end=data["periodEnd"],
                method=data.get("method", "bank_transfer"),
                notes=data.get("notes"),
                created_at=now,
                updated_at=now,
            )
            payout.history.append({"status": "pending", "at": iso(now)})
            self._payouts[payout.id] = payout
            return payout.to_dict()

    async def list_payouts(
        self, vendor_id: str, status: str | None, page: PageRequest, request_id: str
    ) -> Page[dict[str, Any]]:
        with self._lock:
            self._get(vendor_id)
            rows = [p for p in self._payouts.values() if p.vendor_id == vendor_id and (not status or p.status == status)]
        rows.sort(key=lambda p: p.created_at, reverse=True)
        return paginate_sequence([p.to_dict() for p in rows], page)

    def _payout(self, payout_id: str) -> _Payout:
        payout = self._payouts.get(payout_id)
        if payout is None:
            raise NotFoundError(message_key="payoutNotFound")
        return payout

    async def get_payout(self, payout_id: str, request_id: str) -> dict[str, Any]:
        with self._lock:
            return self._payout(payout_id).to_dict()

    async def update_payout_status(
        self, payout_id: str, status: str, transaction_id: str | None, notes: str | None, request_id: str
    ) -> dict[str, Any]:
        logger.info("[%s] Payout %s status -> %s", request_id, payout_id, status)
        with self._lock:
            payout = self._payout(payout_id)
            if payout.status in _TERMINAL_PAYOUT:
                raise BusinessError(f"Cannot update a payout that is {payout.status}")
            if status == "completed" and not (transaction_id or payout.transaction_id):
                raise BusinessError("Transaction ID is required to complete a payout")
            now = utcnow()
            payout.status = status
            if transaction_id:
                payout.transaction_id = transaction_id
            if notes is not None:
                payout.notes = notes
            payout.updated_at = now
            payout.history.append({"status": status, "at": iso(now)})
            return payout.to_dict()

    async def payout_summary(self, vendor_id: str, start: datetime, end: datetime, request_id: str) -> dict[str, Any]:
        """Payouts created in ``[start, end]`` plus delivered sales not yet covered by any payout."""
        with self._lock:
            vendor = self._get(vendor_id)
            own = [p for p in self._payouts.values() if p.vendor_id == vendor_id]
        in_window = sorted((p for p in own if start <= p.created_at <= end), key=lambda p: p.created_at, reverse=True)
        by_status = {
            s: {
                "count": sum(1 for p in in_window if p.status == s),
                "amount": round(sum(p.amount for p in in_window if p.status == s), 2),
            }
            for s in PAYOUT_STATUSES
        }
        covered = [p.period_end for p in own if p.status not in ("failed", "cancelled")]
        since = max(covered) if covered else None
        uncovered = [
            o for o in self._catalog.orders()
            if o["status"] == "DELIVERED" and (since is None or o["createdAt"] > since)
        ]
        sales, order_count, _ = vendor_sales(uncovered, vendor_id)
        commission = round(sales * vendor.commission_rate / 100, 2)
        return {
            "summary": {
                "totalPayouts": len(in_window),
                "totalPaid": by_status["completed"]["amount"],
                "totalPending": round(by_status["pending"]["amount"] + by_status["processing"]["amount"], 2),
            },
            "byStatus": by_status,
            "recentPayouts": [p.to_dict() for p in in_window[:10]],
            "pendingEarnings": {
                "since": iso(since) if since else None,
                "orderCount": order_count,
                "totalSales": sales,
                "commission": commission,
                "amount": round(sales - commission, 2),
            },
        }


__all__ = [
    "VendorService",
    "InMemoryVendorService",
    "VENDOR_STATUSES",
    "PAYOUT_STATUSES",
    "PAYOUT_METHODS",
    "METRIC_PERIODS",
    "vendor_sales",
]
