"""Currencies, exchange rates and conversion.

Rates are relative to the base currency, whose own rate is always 1. Changing
the base rebases every stored rate so conversions stay the same.
"""
from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol

import requests
from typing_extensions import TypedDict

from .errors import BusinessError, ConflictError, InternalError, NotFoundError
from .ids import iso, utcnow

logger = logging.getLogger(__name__)

RATE_PRECISION = 6


class CurrencyInput(TypedDict, total=False):
    code: str
    name: str
    symbol: str
    rate: float
    decimalPlaces: int
    symbolPosition: str
    active: bool


class CurrencyService(Protocol):
    async def list_currencies(self, active: bool | None, request_id: str) -> list[dict[str, Any]]: ...
    async def get_currency(self, code: str, request_id: str) -> dict[str, Any]: ...
    async def get_base_currency(self, request_id: str) -> dict[str, Any]: ...
    async def create_currency(self, data: CurrencyInput, request_id: str) -> dict[str, Any]: ...
    async def update_currency(self, code: str, data: CurrencyInput, request_id: str) -> dict[str, Any]: ...
    async def delete_currency(self, code: str, request_id: str) -> dict[str, Any]: ...
    async def set_base_currency(self, code: str, request_id: str) -> dict[str, Any]: ...
    async def convert(self, amount: float, from_code: str, to_code: str, request_id: str) -> float: ...
    async def format(self, amount: float, code: str, request_id: str) -> str: ...
    async def update_exchange_rates(self, api_key: str, request_id: str) -> dict[str, Any]: ...


@dataclass
class _Currency:
    code: str
    name: str
    symbol: str
    rate: float
    created_at: datetime
    updated_at: datetime
    decimal_places: int = 2
    symbol_position: str = "before"
    is_base: bool = False
    active: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "name": self.name,
            "symbol": self.symbol,
            "rate": self.rate,
            "decimalPlaces": self.decimal_places,
            "symbolPosition": self.symbol_position,
            "isBase": self.is_base,
            "active": self.active,
            "createdAt": iso(self.created_at),
            "updatedAt": iso(self.updated_at),
        }


def convert_amount(amount: float, from_rate: float, to_rate: float, decimals: int) -> float:
    return round(amount / from_rate * to_rate, decimals)


def format_amount(amount: float, symbol: str, decimals: int, position: str = "before") -> str:
    number = f"{amount:,.{decimals}f}"
    return f"{symbol}{number}" if position == "before" else f"{number} {symbol}"


class InMemoryCurrencyService:
    def __init__(
        self,
        api_url: str = "https://api.exchangerate-api.com/v4/latest",
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ) -> None:
        self._api_url = api_url.rstrip("/")
        self._timeout = timeout
        self._session = session or requests.Session()
        self._currencies: dict[str, _Currency] = {}
        self._lock = threading.RLock()

    def _get(self, code: str) -> _Currency:
        currency = self._currencies.get(code.upper())
        if currency is None:
            raise NotFoundError(message_key="currencyNotFound", params={"code": code.upper()})
        return currency

    def _base(self) -> _Currency:
        base = next((c for c in self._currencies.values() if c.is_base), None)
        if base is None:
            raise BusinessError("No base currency configured")
        return base

    async def list_currencies(self, active: bool | None, request_id: str) -> list[dict[str, Any]]:
        with self._lock:
            rows = [c for c in self._currencies.values() if active is None or c.active == active]
        rows.sort(key=lambda c: (not c.is_base, c.code))
        return [c.to_dict() for c in rows]

    async def get_currency(self, code: str, request_id: str) -> dict[str, Any]:
        with self._lock:
            return self._get(code).to_dict()

    async def get_base_currency(self, request_id: str) -> dict[str, Any]:
        with self._lock:
            return self._base().to_dict()

    async def create_currency(self, data: CurrencyInput, request_id: str) -> dict[str, Any]:
        code = data["code"].upper()
        logger.info("[%s] Creating currency %s", request_id, code)
        now = utcnow()
        with self._lock:
            if code in self._currencies:
                raise ConflictError(f"Currency with code {code} already exists")
            first = not self._currencies
            currency = _Currency(
                code=code,
                name=data["name"],
                symbol=data["symbol"],
                rate=1.0 if first else data.get("rate", 1.0),
                decimal_places=data.get("decimalPlaces", 2),
                symbol_position=data.get("symbolPosition", "before"),
                active=data.get("active", True),
                is_base=first,
                created_at=now,
                updated_at=now,
            )
            self._currencies[code] = currency
            return currency.to_dict()

    async def update_currency(self, code: str, data: CurrencyInput, request_id: str) -> dict[str, Any]:
        logger.info("[%s] Updating currency %s", request_id, code)
        with self._lock:
            currency = self._get(code)
            if currency.is_base and "rate" in data and data["rate"] != 1:
                raise BusinessError("Cannot change the rate of the base currency")
            if currency.is_base and data.get("active") is False:
                raise BusinessError("Cannot deactivate the base currency")
            for key, attr in (
                ("name", "name"),
                ("symbol", "symbol"),
                ("rate", "rate"),
                ("decimalPlaces", "decimal_places"),
                ("symbolPosition", "symbol_position"),
                ("active", "active"),
            ):
                if key in data:
                    setattr(currency, attr, data[key])  # type: ignore[literal-required]
            currency.updated_at = utcnow()
            return currency.to_dict()

    async def delete_currency(self, code: str, request_id: str) -> dict[str, Any]:
        logger.info("[%s] Deleting currency %s", request_id, code)
        with self._lock:
            currency = self._get(code)
            if currency.is_base:
                raise BusinessError("Cannot delete the base currency")
            del self._currencies[currency.code]
            return {"code": currency.code, "name": currency.name}

    async def set_base_currency(self, code: str, request_id: str) -> dict[str, Any]:
        logger.info("[%s] Setting base currency to %s", request_id, code)
        with self._lock:
            target = self._get(code)
            if target.is_base:
                return target.to_dict()
            if not target.active:
                raise BusinessError("Cannot set an inactive currency as base")
            divisor = target.rate
            now = utcnow()
            for currency in self._currencies.values():
                currency.rate = round(currency.rate / divisor, RATE_PRECISION)
                currency.is_base = currency.code == target.code
                currency.updated_at = now
            target.rate = 1.0
            return target.to_dict()

    async def convert(self, amount: float, from_code: str, to_code: str, request_id: str) -> float:
        with self._lock:
            source = self._get(from_code)
            target = self._get(to_code)
            if not source.active or not target.active:
                raise BusinessError("Conversion requires active currencies")
            return convert_amount(amount, source.rate, target.rate, target.decimal_places)

    async def format(self, amount: float, code: str, request_id: str) -> str:
        with self._lock:
            currency = self._get(code)
            return format_amount(amount, currency.symbol, currency.decimal_places, currency.symbol_position)

    def _fetch(self, url: str, api_key: str) -> Any:
        """Blocking provider call; run off the event loop."""
        resp = self._session.get(url, headers={"Authorization": f"Bearer {api_key}"}, timeout=self._timeout)
        resp.raise_for_status()
        return resp.json()

    async def update_exchange_rates(self, api_key: str, request_id: str) -> dict[str, Any]:
        with self._lock:
            base_code = self._base().code
        url = f"{self._api_url}/{base_code}"
        logger.info("[%s] Fetching exchange rates from %s", request_id, url)
        try:
            payload = await asyncio.to_thread(self._fetch, url, api_key)
        except (requests.RequestException, ValueError) as e:
            logger.exception("[%s] Exchange rate fetch failed", request_id)
            raise InternalError("Failed to fetch exchange rates") from e
        rates = payload.get("rates") if isinstance(payload, dict) else None
        if not isinstance(rates, dict):
            raise InternalError("Exchange rate provider returned no rates")
        updated: list[str] = []
        now = utcnow()
        with self._lock:
            for currency in self._currencies.values():
                if currency.is_base:
                    continue
                value = rates.get(currency.code)
                if isinstance(value, (int, float)) and value > 0:
                    currency.rate = round(float(value), RATE_PRECISION)
                    currency.updated_at = now
                    updated.append(currency.code)
        logger.info("[%s] Updated %d exchange rates", request_id, len(updated))
        return {"base": base_code, "updated": updated, "count": len(updated), "updatedAt": iso(now)}


__all__ = ["CurrencyService", "InMemoryCurrencyService", "CurrencyInput", "convert_amount", "format_amount"]
