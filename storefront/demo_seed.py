"""Demo data for local development: currencies, countries, tax rates, a vendor and a small catalog.

Creates rows only when the registry is empty, so repeated runs are harmless.
"""
from __future__ import annotations

import logging

from .services import ServiceRegistry

logger = logging.getLogger(__name__)

CURRENCIES = (
    {"code": "USD", "name": "US Dollar", "symbol": "$"},
    {"code": "EUR", "name": "Euro", "symbol": "€", "rate": 0.85, "symbolPosition": "after"},
    {"code": "GBP", "name": "British Pound", "symbol": "£", "rate": 0.73},
    {"code": "JPY", "name": "Japanese Yen", "symbol": "¥", "rate": 110.0, "decimalPlaces": 0},
)

COUNTRIES = (
    {"code": "US", "name": "United States", "region": "Americas", "phoneCode": "+1", "currency": "USD"},
    {"code": "ES", "name": "Spain", "nativeName": "España", "region": "Europe", "phoneCode": "+34", "currency": "EUR"},
    {"code": "GB", "name": "United Kingdom", "region": "Europe", "phoneCode": "+44", "currency": "GBP"},
    {"code": "JP", "name": "Japan", "nativeName": "日本", "region": "Asia", "phoneCode": "+81", "currency": "JPY"},
)

US_STATES = (("CA", "California"), ("NY", "New York"), ("TX", "Texas"))


async def seed_demo(services: ServiceRegistry, request_id: str = "seed") -> dict[str, int]:
    counts = {"currencies": 0, "countries": 0, "taxRates": 0, "products": 0}
    if not await services.currencies.list_currencies(None, request_id):
        for currency in CURRENCIES:
            await services.currencies.create_currency(dict(currency), request_id)  # type: ignore[arg-type]
            counts["currencies"] += 1
    first_page = await services.countries.list_countries({}, {"page": 1, "limit": 1}, request_id)
    if first_page.total == 0:
        for country in COUNTRIES:
            await services.countries.create_country(dict(country), request_id)  # type: ignore[arg-type]
            counts["countries"] += 1
        for code, name in US_STATES:
            await services.countries.add_state("US", code, name, request_id)
    if not await services.taxes.list_rates({}, request_id):
        await services.taxes.create_rate(
            {"name": "US Default", "rate": 5.0, "country": "US", "isDefault": True}, request_id
        )
        await services.taxes.create_rate(
            {"name": "California Sales Tax", "rate": 7.25, "country": "US", "state": "CA", "priority": 1}, request_id
        )
        await services.taxes.create_rate({"name": "IVA", "rate": 21.0, "country": "ES", "isDefault": True}, request_id)
        counts["taxRates"] = 3
    if not services.catalog.products():
        vendor = await services.vendors.create_vendor(  # type: ignore[union-attr]
            {"name": "Acme Supplies", "slug": "acme-supplies", "email": "sales@acme.example", "commissionRate": 10.0},
            request_id,
        )
        await services.vendors.update_status(vendor["id"], "approved", "demo vendor", request_id)  # type: ignore[union-attr]
        for name, price, category in (
            ("Wireless Mouse", 24.99, "electronics"),
            ("Mechanical Keyboard", 89.0, "electronics"),
            ("Cotton T-Shirt", 15.5, "apparel"),
        ):
            services.catalog.add_product(name, price, category=category, vendorId=vendor["id"], stock=50)
            counts["products"] += 1
    logger.info("[%s] Demo seed complete: %s", request_id, counts)
    return counts


__all__ = ["seed_demo"]
