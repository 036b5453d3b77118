"""Countries and their states/provinces."""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

from typing_extensions import TypedDict

from .errors import ConflictError, NotFoundError
from .ids import iso, utcnow
from .pagination import Page, PageRequest, paginate_sequence

logger = logging.getLogger(__name__)

REGIONS: tuple[str, ...] = ("Africa", "Americas", "Asia", "Europe", "Oceania", "Antarctic")


class CountryInput(TypedDict, total=False):
    code: str
    name: str
    nativeName: str | None
    region: str | None
    phoneCode: str | None
    currency: str | None
    active: bool


class CountryFilters(TypedDict, total=False):
    search: str | None
    region: str | None
    active: bool | None


class CountryService(Protocol):
    async def list_countries(self, filters: CountryFilters, page: PageRequest, request_id: str) -> Page[dict[str, Any]]: ...
    async def search_countries(self, query: str, region: str | None, page: PageRequest, request_id: str) -> Page[dict[str, Any]]: ...
    async def countries_by_region(self, region: str, request_id: str) -> list[dict[str, Any]]: ...
    async def get_country(self, code: str, request_id: str) -> dict[str, Any]: ...
    async def get_states(self, code: str, request_id: str) -> list[dict[str, Any]]: ...
    async def create_country(self, data: CountryInput, request_id: str) -> dict[str, Any]: ...
    async def update_country(self, code: str, data: CountryInput, request_id: str) -> dict[str, Any]: ...
    async def delete_country(self, code: str, request_id: str) -> dict[str, Any]: ...
    async def add_state(self, code: str, state_code: str, name: str, request_id: str) -> dict[str, Any]: ...
    async def remove_state(self, code: str, state_code: str, request_id: str) -> dict[str, Any]: ...


@dataclass
class _Country:
    code: str
    name: str
    created_at: datetime
    updated_at: datetime
    native_name: str | None = None
    region: str | None = None
    phone_code: str | None = None
    currency: str | None = None
    active: bool = True
    states: list[dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "name": self.name,
            "nativeName": self.native_name,
            "region": self.region,
            "phoneCode": self.phone_code,
            "currency": self.currency,
            "active": self.active,
            "states": list(self.states),
            "createdAt": iso(self.created_at),
            "updatedAt": iso(self.updated_at),
        }


_FIELDS = (
    ("name", "name"),
    ("nativeName", "native_name"),
    ("region", "region"),
    ("phoneCode", "phone_code"),
    ("currency", "currency"),
    ("active", "active"),
)


class InMemoryCountryService:
    def __init__(self) -> None:
        self._countries: dict[str, _Country] = {}
        self._lock = threading.RLock()

    def _get(self, code: str) -> _Country:
        country = self._countries.get(code)
        if country is None:
            raise NotFoundError(message_key="countryNotFound", params={"code": code})
        return country

    def _sorted(self, rows: list[_Country]) -> list[dict[str, Any]]:
        return [c.to_dict() for c in sorted(rows, key=lambda c: c.name.lower())]

    async def list_countries(self, filters: CountryFilters, page: PageRequest, request_id: str) -> Page[dict[str, Any]]:
        search = (filters.get("search") or "").lower()
        with self._lock:
            rows = [
                c
                for c in self._countries.values()
                if (not filters.get("region") or c.region == filters["region"])
                and (filters.get("active") is None or c.active == filters["active"])
                and (not search or search in c.name.lower() or search == c.code.lower())
            ]
        return paginate_sequence(self._sorted(rows), page)

    async def search_countries(
        self, query: str, region: str | None, page: PageRequest, request_id: str
    ) -> Page[dict[str, Any]]:
        needle = query.lower()
        with self._lock:
            rows = [
                c
                for c in self._countries.values()
                if c.active
                and (not region or c.region == region)
                and (
                    needle in c.name.lower()
                    or needle == c.code.lower()
                    or (c.native_name is not None and needle in c.native_name.lower())
                )
            ]
        return paginate_sequence(self._sorted(rows), page)

    async def countries_by_region(self, region: str, request_id: str) -> list[dict[str, Any]]:
        with self._lock:
            return self._sorted([c for c in self._countries.values() if c.region == region and c.active])

    async def get_country(self, code: str, request_id: str) -> dict[str, Any]:
        with self._lock:
            return self._get(code).to_dict()

    async def get_states(self, code: str, request_id: str) -> list[dict[str, Any]]:
        with self._lock:
            return sorted(self._get(code).states, key=lambda s: s["name"].lower())

    async def create_country(self, data: CountryInput, request_id: str) -> dict[str, Any]:
        code = data["code"]
        logger.info("[%s] Creating country %s", request_id, code)
        now = utcnow()
        with self._lock:
            if code in self._countries:
                raise ConflictError(f"Country with code {code} already exists")
            country = _Country(code=code, name=data["name"], created_at=now, updated_at=now)
            for key, attr in _FIELDS:
                if key in data:
                    setattr(country, attr, data[key])  # type: ignore[literal-required]
            self._countries[code] = country
            return country.to_dict()

    async def update_country(self, code: str, data: CountryInput, request_id: str) -> dict[str, Any]:
        logger.info("[%s] Updating country %s", request_id, code)
        with self._lock:
            country = self._get(code)
            for key, attr in _FIELDS:
                if key in data:
                    setattr(country, attr, data[key])  # type: ignore[literal-required]
            country.updated_at = utcnow()
            return country.to_dict()

    async def delete_country(self, code: str, request_id: str) -> dict[str, Any]:
        logger.info("[%s] Deleting country %s", request_id, code)
        with self._lock:
            country = self._get(code)
            del self._countries[code]
            return {"code": country.code, "name": country.name}

    async def add_state(self, code: str, state_code: str, name: str, request_id: str) -> dict[str, Any]:
        with self._lock:
            country = self._get(code)
            if any(s["code"] == state_code for s in country.states):
                raise ConflictError(f"State with code {state_code} already exists in {code}")
            country.states.append({"code": state_code, "name": name})
            country.updated_at = utcnow()
            return country.to_dict()

    async def remove_state(self, code: str, state_code: str, request_id: str) -> dict[str, Any]:
        with self._lock:
            country = self._get(code)
            remaining = [s for s in country.states if s["code"] != state_code]
            if len(remaining) == len(country.states):
                raise NotFoundError(f"State with code {state_code} not found in {code}")
            country.states = remaining
            country.updated_at = utcnow()
            return country.to_dict()


__all__ = ["CountryService", "InMemoryCountryService", "CountryInput", "REGIONS"]
