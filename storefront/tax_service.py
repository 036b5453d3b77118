"""Tax rates and tax calculation.

A calculation picks the highest-priority active rate matching the location and
product category. When nothing matches, the criteria are relaxed one step at a
time (postal code, then state, then category), then the country's default rate
is tried, and finally a zero "No Tax" rate is returned.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol

from typing_extensions import TypedDict

from .errors import ConflictError, NotFoundError
from .ids import iso, new_object_id, utcnow

logger = logging.getLogger(__name__)


class TaxRateInput(TypedDict, total=False):
    name: str
    rate: float
    country: str
    state: str | None
    postalCode: str | None
    categoryId: str | None
    priority: int
    isDefault: bool
    active: bool
    description: str | None


class TaxLocation(TypedDict, total=False):
    country: str
    state: str | None
    postalCode: str | None
    categoryId: str | None


class TaxRateFilters(TypedDict, total=False):
    country: str | None
    state: str | None
    active: bool | None


class TaxService(Protocol):
    async def list_rates(self, filters: TaxRateFilters, request_id: str) -> list[dict[str, Any]]: ...
    async def get_rate(self, rate_id: str, request_id: str) -> dict[str, Any]: ...
    async def create_rate(self, data: TaxRateInput, request_id: str) -> dict[str, Any]: ...
    async def update_rate(self, rate_id: str, data: TaxRateInput, request_id: str) -> dict[str, Any]: ...
    async def delete_rate(self, rate_id: str, request_id: str) -> dict[str, Any]: ...
    async def applicable_rate(self, location: TaxLocation, request_id: str) -> dict[str, Any]: ...
    async def calculate(self, amount: float, location: TaxLocation, request_id: str) -> dict[str, Any]: ...


NO_TAX: dict[str, Any] = {
    "id": "default",
    "name": "No Tax",
    "rate": 0,
    "country": "GLOBAL",
    "state": None,
    "postalCode": None,
    "categoryId": None,
    "priority": 0,
    "isDefault": True,
    "active": True,
    "description": None,
}


@dataclass
class _TaxRate:
    id: str
    name: str
    rate: float
    country: str
    created_at: datetime
    updated_at: datetime
    state: str | None = None
    postal_code: str | None = None
    category_id: str | None = None
    priority: int = 0
    is_default: bool = False
    active: bool = True
    description: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "rate": self.rate,
            "country": self.country,
            "state": self.state,
            "postalCode": self.postal_code,
            "categoryId": self.category_id,
            "priority": self.priority,
            "isDefault": self.is_default,
            "active": self.active,
            "description": self.description,
            "createdAt": iso(self.created_at),
            "updatedAt": iso(self.updated_at),
        }


_FIELDS = (
    ("name", "name"),
    ("rate", "rate"),
    ("country", "country"),
    ("state", "state"),
    ("postalCode", "postal_code"),
    ("categoryId", "category_id"),
    ("priority", "priority"),
    ("isDefault", "is_default"),
    ("active", "active"),
    ("description", "description"),
)


def lookup_chain(location: TaxLocation) -> list[TaxLocation]:
    """Progressively relaxed criteria, most specific first, duplicates removed."""
    steps: list[TaxLocation] = [dict(location)]  # type: ignore[list-item]
    relaxed: TaxLocation = dict(location)  # type: ignore[assignment]
    for key in ("postalCode", "state", "categoryId"):
        if relaxed.get(key):
            relaxed = {**relaxed, key: None}  # type: ignore[misc]
            steps.append(relaxed)
    return steps


def tax_amount(amount: float, rate: float) -> float:
    return round(amount * rate / 100, 2)


class InMemoryTaxService:
    def __init__(self) -> None:
        self._rates: dict[str, _TaxRate] = {}
        self._lock = threading.RLock()

    def _get(self, rate_id: str) -> _TaxRate:
        rate = self._rates.get(rate_id)
        if rate is None:
            raise NotFoundError(message_key="taxRateNotFound")
        return rate

    def _match(self, location: TaxLocation) -> _TaxRate | None:
        candidates = [
            r
            for r in self._rates.values()
            if r.active
            and r.country == location.get("country")
            and r.state == (location.get("state") or None)
            and r.postal_code == (location.get("postalCode") or None)
            and r.category_id == (location.get("categoryId") or None)
        ]
        candidates.sort(key=lambda r: r.priority, reverse=True)
        return candidates[0] if candidates else None

    def _resolve(self, location: TaxLocation) -> dict[str, Any]:
        with self._lock:
            for step in lookup_chain(location):
                found = self._match(step)
                if found is not None:
                    return found.to_dict()
            defaults = sorted(
                (r for r in self._rates.values() if r.active and r.is_default and r.country == location.get("country")),
                key=lambda r: r.priority,
                reverse=True,
            )
            if defaults:
                return defaults[0].to_dict()
        return dict(NO_TAX)

    async def list_rates(self, filters: TaxRateFilters, request_id: str) -> list[dict[str, Any]]:
        with self._lock:
            rows = [
                r
                for r in self._rates.values()
                if (not filters.get("country") or r.country == filters["country"])
                and (not filters.get("state") or r.state == filters["state"])
                and (filters.get("active") is None or r.active == filters["active"])
            ]
        rows.sort(key=lambda r: (r.country, -r.priority, r.name))
        return [r.to_dict() for r in rows]

    async def get_rate(self, rate_id: str, request_id: str) -> dict[str, Any]:
        with self._lock:
            return self._get(rate_id).to_dict()

    async def create_rate(self, data: TaxRateInput, request_id: str) -> dict[str, Any]:
        logger.info("[%s] Creating tax rate %r for %s", request_id, data.get("name"), data.get("country"))
        now = utcnow()
        rate = _TaxRate(id=new_object_id(), name=data["name"], rate=data["rate"], country=data["country"], created_at=now, updated_at=now)
        for key, attr in _FIELDS:
            if key in data:
                setattr(rate, attr, data[key])  # type: ignore[literal-required]
        with self._lock:
            self._check_duplicate(rate)
            self._rates[rate.id] = rate
        return rate.to_dict()

    def _check_duplicate(self, rate: _TaxRate) -> None:
        for other in self._rates.values():
            if other.id == rate.id:
                continue
            same_scope = (other.country, other.state, other.postal_code, other.category_id) == (
                rate.country,
                rate.state,
                rate.postal_code,
                rate.category_id,
            )
            if same_scope and other.priority == rate.priority and other.active and rate.active:
                raise ConflictError("A tax rate with the same location, category and priority already exists")

    async def update_rate(self, rate_id: str, data: TaxRateInput, request_id: str) -> dict[str, Any]:
        logger.info("[%s] Updating tax rate %s", request_id, rate_id)
        with self._lock:
            rate = self._get(rate_id)
            previous = dict(rate.__dict__)
            for key, attr in _FIELDS:
                if key in data:
                    setattr(rate, attr, data[key])  # type: ignore[literal-required]
            try:
                self._check_duplicate(rate)
            except ConflictError:
                rate.__dict__.update(previous)
                raise
            rate.updated_at = utcnow()
            return rate.to_dict()

    async def delete_rate(self, rate_id: str, request_id: str) -> dict[str, Any]:
        logger.info("[%s] Deleting tax rate %s", request_id, rate_id)
        with self._lock:
            rate = self._get(rate_id)
            del self._rates[rate_id]
            return {"id": rate.id, "name": rate.name}

    async def applicable_rate(self, location: TaxLocation, request_id: str) -> dict[str, Any]:
        return self._resolve(location)

    async def calculate(self, amount: float, location: TaxLocation, request_id: str) -> dict[str, Any]:
        rate = self._resolve(location)
        tax = tax_amount(amount, rate["rate"])
        logger.info("[%s] Tax for %.2f in %s: %.2f (%s)", request_id, amount, location.get("country"), tax, rate["id"])
        return {
            "amount": amount,
            "taxAmount": tax,
            "taxRate": rate["rate"],
            "taxName": rate["name"],
            "taxRateId": rate["id"],
            "totalAmount": round(amount + tax, 2),
        }


__all__ = ["TaxService", "InMemoryTaxService", "TaxRateInput", "TaxLocation", "NO_TAX", "lookup_chain", "tax_amount"]
