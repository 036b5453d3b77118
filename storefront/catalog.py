"""In-memory catalog of products, orders and customers.

Search, vendor metrics and exports read from the same store so that the
reference adapters agree with each other. It starts empty; callers (seed
scripts, tests) populate it through the ``add_*`` methods.
"""
from __future__ import annotations

import threading
from datetime import datetime
from typing import Any

from typing_extensions import NotRequired, TypedDict

from .ids import new_object_id, utcnow

ORDER_STATUSES: tuple[str, ...] = ("PENDING", "PROCESSING", "SHIPPED", "DELIVERED", "CANCELLED")
PAYMENT_STATUSES: tuple[str, ...] = ("PENDING", "PAID", "FAILED", "REFUNDED")


class Product(TypedDict):
    id: str
    name: str
    slug: str
    description: str
    price: float
    compareAtPrice: float | None
    category: str | None
    vendorId: str | None
    rating: float
    stock: int
    featured: bool
    active: bool
    tags: list[str]
    attributes: dict[str, Any]
    createdAt: datetime


class OrderItem(TypedDict):
    productId: str
    name: str
    quantity: int
    price: float
    vendorId: NotRequired[str | None]


class Order(TypedDict):
    id: str
    orderNumber: str
    userId: str
    customerEmail: str
    status: str
    paymentStatus: str
    subtotal: float
    tax: float
    shipping: float
    total: float
    items: list[OrderItem]
    createdAt: datetime


class Customer(TypedDict):
    id: str
    firstName: str
    lastName: str
    email: str
    role: str
    active: bool
    createdAt: datetime
    birthday: NotRequired[str | None]


def _slugify(name: str) -> str:
    out = "".join(ch.lower() if ch.isalnum() else "-" for ch in name)
    return "-".join(p for p in out.split("-") if p)


class CatalogStore:
    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._products: dict[str, Product] = {}
        self._orders: dict[str, Order] = {}
        self._customers: dict[str, Customer] = {}

    # ---- products ----

    def add_product(self, name: str, price: float, **fields: Any) -> Product:
        product: Product = {
            "id": fields.pop("id", None) or new_object_id(),
            "name": name,
            "slug": fields.pop("slug", None) or _slugify(name),
            "description": fields.pop("description", ""),
            "price": float(price),
            "compareAtPrice": fields.pop("compareAtPrice", None),
            "category": fields.pop("category", None),
            "vendorId": fields.pop("vendorId", None),
            "rating": float(fields.pop("rating", 0)),
            "stock": int(fields.pop("stock", 0)),
            "featured": bool(fields.pop("featured", False)),
            "active": bool(fields.pop("active", True)),
            "tags": list(fields.pop("tags", [])),
            "attributes": dict(fields.pop("attributes", {})),
            "createdAt": fields.pop("createdAt", None) or utcnow(),
        }
        if fields:
            raise TypeError(f"unknown product fields: {sorted(fields)}")
        with self._lock:
            self._products[product["id"]] = product
        return product

    def products(self) -> list[Product]:
        with self._lock:
            return list(self._products.values())

    def get_product(self, product_id: str) -> Product | None:
        return self._products.get(product_id)

    # ---- orders ----

    def add_order(self, user_id: str, items: list[OrderItem], **fields: Any) -> Order:
        subtotal = round(sum(i["price"] * i["quantity"] for i in items), 2)
        tax = float(fields.pop("tax", 0))
        shipping = float(fields.pop("shipping", 0))
        with self._lock:
            number = len(self._orders) + 1
            order: Order = {
                "id": fields.pop("id", None) or new_object_id(),
                "orderNumber": fields.pop("orderNumber", None) or f"ORD-{number:06d}",
                "userId": user_id,
                "customerEmail": fields.pop("customerEmail", ""),
                "status": fields.pop("status", "PENDING"),
                "paymentStatus": fields.pop("paymentStatus", "PENDING"),
                "subtotal": subtotal,
                "tax": tax,
                "shipping": shipping,
                "total": round(subtotal + tax + shipping, 2),
                "items": list(items),
                "createdAt": fields.pop("createdAt", None) or utcnow(),
            }
            if fields:
                raise TypeError(f"unknown order fields: {sorted(fields)}")
            self._orders[order["id"]] = order
        return order

    def orders(self) -> list[Order]:
        with self._lock:
            return list(self._orders.values())

    def get_order(self, order_id: str) -> Order | None:
        return self._orders.get(order_id)

    # ---- customers ----

    def add_customer(self, first_name: str, last_name: str, email: str, **fields: Any) -> Customer:
        customer: Customer = {
            "id": fields.pop("id", None) or new_object_id(),
            "firstName": first_name,
            "lastName": last_name,
            "email": email,
            "role": fields.pop("role", "customer"),
            "active": bool(fields.pop("active", True)),
            "createdAt": fields.pop("createdAt", None) or utcnow(),
            "birthday": fields.pop("birthday", None),
        }
        if fields:
            raise TypeError(f"unknown customer fields: {sorted(fields)}")
        with self._lock:
            self._customers[customer["id"]] = customer
        return customer

    def customers(self) -> list[Customer]:
        with self._lock:
            return list(self._customers.values())

    def get_customer(self, customer_id: str) -> Customer | None:
        return self._customers.get(customer_id)


__all__ = ["CatalogStore", "Product", "Order", "OrderItem", "Customer", "ORDER_STATUSES", "PAYMENT_STATUSES"]
