from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from storefront.catalog import CatalogStore
from storefront.search_service import InMemorySearchService


@pytest.fixture()
def products(services):
    catalog = services.catalog
    return [
        catalog.add_product(
            "Wireless Mouse",
            25.0,
            category="electronics",
            vendorId="v1",
            rating=4.5,
            stock=10,
            tags=["wireless", "office"],
            createdAt=datetime(2024, 1, 10, tzinfo=timezone.utc),
        ),
        catalog.add_product(
            "Mouse Pad",
            8.0,
            compareAtPrice=12.0,
            category="accessories",
            vendorId="v1",
            rating=3.8,
            stock=0,
            tags=["office"],
            createdAt=datetime(2024, 2, 10, tzinfo=timezone.utc),
        ),
        catalog.add_product(
            "Desk Lamp",
            40.0,
            description="Warm light for a tidy mouse-free desk",
            category="home",
            vendorId="v2",
            rating=4.9,
            stock=3,
            featured=True,
            attributes={"color": "black"},
            createdAt=datetime(2024, 3, 10, tzinfo=timezone.utc),
        ),
        catalog.add_product("Hidden Mouse", 1.0, active=False),
    ]


def _names(resp):
    return [p["name"] for p in resp.get_json()["data"]["products"]]


def test_search_ranks_name_matches_first(client, products):
    resp = client.get("/search?q=mouse")
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["data"]["query"] == "mouse"
    assert _names(resp) == ["Mouse Pad", "Wireless Mouse", "Desk Lamp"]
    assert body["pagination"]["totalResults"] == 3


@pytest.mark.parametrize("qs, expected", [
    ("minPrice=10&sort=price_asc", ["Wireless Mouse", "Desk Lamp"]),
    ("inStock=false", ["Mouse Pad"]),
    ("onSale=true", ["Mouse Pad"]),
    ("featured=true", ["Desk Lamp"]),
    ("tags=wireless", ["Wireless Mouse"]),
    ("vendor=v2", ["Desk Lamp"]),
    ("rating=4&sort=rating_desc", ["Desk Lamp", "Wireless Mouse"]),
    ("sort=name_asc", ["Desk Lamp", "Mouse Pad", "Wireless Mouse"]),
    ("sort=created_asc", ["Wireless Mouse", "Mouse Pad", "Desk Lamp"]),
])
def test_search_filters(client, products, qs, expected):
    assert _names(client.get(f"/search?{qs}")) == expected


def test_search_attributes_filter(client, products):
    resp = client.get("/search", query_string={"attributes": '{"color": "black"}'})
    assert _names(resp) == ["Desk Lamp"]


@pytest.mark.parametrize("qs, message", [
    ("minPrice=50&maxPrice=10", "minPrice cannot be greater than maxPrice"),
    ("minPrice=-1", "Invalid minPrice. Must be a non-negative number"),
    ("rating=7", "Invalid rating. Must be between 0 and 5"),
    ("attributes=nope", "Invalid attributes format. Must be valid JSON"),
    ("page=0", "Page must be greater than or equal to 1"),
])
def test_search_rejects_bad_input(client, qs, message):
    resp = client.get(f"/search?{qs}")
    assert resp.status_code == 400
    assert resp.get_json()["message"] == message


def test_search_rejects_unknown_sort(client):
    resp = client.get("/search?sort=random")
    assert resp.status_code == 400
    assert resp.get_json()["message"].startswith("Invalid sort option. Must be one of: relevance, price_asc")


def test_advanced_search_date_window(client, products):
    resp = client.get("/search/advanced?createdAfter=2024-02-01&createdBefore=2024-02-28")
    assert _names(resp) == ["Mouse Pad"]

    resp = client.get("/search/advanced?createdAfter=2024-03-01&createdBefore=2024-02-01")
    assert resp.status_code == 400
    assert resp.get_json()["message"] == "createdAfter cannot be after createdBefore"


def test_suggestions_validation(client):
    resp = client.get("/search/suggestions")
    assert resp.status_code == 400
    assert resp.get_json()["message"] == "Query parameter 'q' is required"
    resp = client.get("/search/suggestions?q=m")
    assert resp.get_json()["message"] == "Query must be at least 2 characters long"
    resp = client.get("/search/suggestions?q=mo&limit=50")
    assert resp.get_json()["message"] == "Limit must be between 1 and 20"


def test_suggestions_prefer_prefix_matches(client, products):
    body = client.get("/search/suggestions?q=mou").get_json()
    assert body["data"]["suggestions"] == ["Mouse Pad", "Wireless Mouse"]
    assert body["results"] == 2


# GIVEN: no tracked queries
# WHEN: popular searches are requested, then queries are tracked
# THEN: only tracked queries appear, counted after normalization
def test_popular_searches_come_from_tracking(client):
    empty = client.get("/search/popular").get_json()
    assert empty["data"]["searches"] == []

    for query in ("Mouse", "mouse ", "lamp"):
        resp = client.post("/search/track", json={"query": query, "results": 2})
        assert resp.status_code == 200
        assert resp.get_json()["message"] == "Search tracked successfully"

    body = client.get("/search/popular?timeframe=all").get_json()
    assert body["data"]["searches"] == [{"query": "mouse", "count": 2}, {"query": "lamp", "count": 1}]


def test_tracked_queries_are_bounded():
    svc = InMemorySearchService(CatalogStore(), max_tracked=3)
    for query in ("a", "a", "b", "c", "c"):
        asyncio.run(svc.track_search(query, None, None, "t"))
    popular = asyncio.run(svc.popular_searches(10, "all", "t"))
    assert popular == [{"query": "c", "count": 2}, {"query": "b", "count": 1}]


def test_popular_searches_validation(client):
    assert client.get("/search/popular?limit=51").status_code == 400
    resp = client.get("/search/popular?timeframe=year")
    assert resp.get_json()["message"] == "Invalid timeframe. Must be one of: day, week, month, all"


def test_track_requires_query(client):
    resp = client.post("/search/track", json={"results": 3})
    assert resp.status_code == 400
    assert resp.get_json()["message"] == "Query is required"


def test_facets(client, products):
    data = client.get("/search/facets").get_json()["data"]
    assert data["total"] == 3
    assert data["priceRange"] == {"min": 8.0, "max": 40.0}
    assert {"value": "v1", "count": 2} in data["vendors"]
    assert data["ratings"][0] == {"value": 4, "count": 2}
    assert data["tags"][0] == {"value": "office", "count": 2}
