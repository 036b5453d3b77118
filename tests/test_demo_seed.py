from __future__ import annotations

import asyncio

from storefront.demo_seed import seed_demo


def test_seed_populates_empty_registry(services):
    counts = asyncio.run(seed_demo(services))
    assert counts == {"currencies": 4, "countries": 4, "taxRates": 3, "products": 3}

    base = asyncio.run(services.currencies.get_base_currency("t"))
    assert base["code"] == "USD"
    states = asyncio.run(services.countries.get_states("US", "t"))
    assert [s["code"] for s in states] == ["CA", "NY", "TX"]
    assert all(p["vendorId"] for p in services.catalog.products())


def test_seed_is_idempotent(services):
    asyncio.run(seed_demo(services))
    assert asyncio.run(seed_demo(services)) == {"currencies": 0, "countries": 0, "taxRates": 0, "products": 0}


# GIVEN: a seeded store
# WHEN: computing tax in California through the API
# THEN: the seeded state rate applies
def test_seeded_data_is_served(client, services):
    asyncio.run(seed_demo(services))
    data = client.get("/taxes/calculate?amount=100&country=US&state=CA").get_json()["data"]
    assert data["taxName"] == "California Sales Tax"
    assert data["taxAmount"] == 7.25
    assert client.get("/vendors/slug/acme-supplies").status_code == 200
    assert client.get("/search?q=keyboard").get_json()["data"]["products"][0]["name"] == "Mechanical Keyboard"
