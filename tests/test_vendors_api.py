from __future__ import annotations

import pytest


@pytest.fixture()
def vendor(client, admin_headers):
    resp = client.post(
        "/vendors",
        json={"name": "Acme Supplies", "slug": "acme", "email": "sales@acme.example"},
        headers=admin_headers,
    )
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()["data"]


@pytest.fixture()
def approved_vendor(client, admin_headers, vendor):
    resp = client.patch(f"/vendors/{vendor['id']}/status", json={"status": "approved"}, headers=admin_headers)
    assert resp.status_code == 200
    return resp.get_json()["data"]


def test_create_vendor_defaults(vendor):
    assert vendor["status"] == "pending"
    assert vendor["active"] is False
    assert vendor["commissionRate"] == 10.0


@pytest.mark.parametrize("body, status, message", [
    ({"name": "Acme Two", "slug": "acme", "email": "other@acme.example"}, 409, "Vendor with this slug already exists"),
    ({"name": "Acme Two", "slug": "acme-2", "email": "SALES@acme.example"}, 409, "Vendor with this email already exists"),
    ({"name": "Acme Two", "slug": "Acme Two", "email": "x@acme.example"}, 400, "Slug can only contain lowercase letters, numbers and hyphens"),
    ({"name": "Acme Two", "slug": "acme-2", "email": "not-an-email"}, 400, "Invalid email address"),
    ({"name": "Acme Two", "slug": "acme-2", "email": "x@acme.example", "commissionRate": 150}, 400, "Commission rate must be between 0 and 100"),
])
def test_create_vendor_rejections(client, admin_headers, vendor, body, status, message):
    resp = client.post("/vendors", json=body, headers=admin_headers)
    assert resp.status_code == status
    assert resp.get_json()["message"] == message


def test_pending_vendor_hidden_from_public(client, admin_headers, vendor):
    assert client.get(f"/vendors/{vendor['id']}").status_code == 404
    assert client.get("/vendors/slug/acme").status_code == 404
    assert client.get(f"/vendors/{vendor['id']}", headers=admin_headers).status_code == 200


def test_approved_vendor_is_public(client, approved_vendor):
    assert approved_vendor["approvedAt"] is not None
    resp = client.get("/vendors/slug/acme")
    assert resp.status_code == 200
    assert resp.get_json()["data"]["id"] == approved_vendor["id"]


def test_invalid_vendor_id(client):
    resp = client.get("/vendors/nope")
    assert resp.status_code == 400
    assert resp.get_json()["message"] == "Invalid vendor ID format"


def test_list_vendors_filters(client, admin_headers, approved_vendor):
    client.post(
        "/vendors", json={"name": "Beta Goods", "slug": "beta", "email": "hi@beta.example"}, headers=admin_headers
    )
    body = client.get("/vendors?status=approved", headers=admin_headers).get_json()
    assert [v["slug"] for v in body["data"]["vendors"]] == ["acme"]
    body = client.get("/vendors?search=beta", headers=admin_headers).get_json()
    assert body["pagination"]["totalResults"] == 1


# GIVEN: a vendor principal
# WHEN: updating its own profile
# THEN: ordinary fields change but the commission rate is admin-only
def test_vendor_self_update(client, vendor, vendor_headers):
    own = vendor_headers(vendor["id"])
    resp = client.patch(f"/vendors/{vendor['id']}", json={"description": "Office supplies"}, headers=own)
    assert resp.status_code == 200
    assert resp.get_json()["data"]["description"] == "Office supplies"

    resp = client.patch(f"/vendors/{vendor['id']}", json={"commissionRate": 1}, headers=own)
    assert resp.status_code == 403


def test_vendor_cannot_touch_other_vendor(client, vendor, vendor_headers):
    resp = client.patch(
        f"/vendors/{vendor['id']}", json={"description": "x"}, headers=vendor_headers("0" * 24)
    )
    assert resp.status_code == 403
    assert resp.get_json()["message"] == "You can only access your own vendor account"


def test_products_filtered_by_price(client, services, approved_vendor):
    vid = approved_vendor["id"]
    services.catalog.add_product("Pen", 2.5, vendorId=vid, stock=10)
    services.catalog.add_product("Desk", 120.0, vendorId=vid, stock=0)
    services.catalog.add_product("Foreign", 50.0, vendorId="f" * 24, stock=3)

    body = client.get(f"/vendors/{vid}/products?minPrice=10").get_json()
    assert [p["name"] for p in body["data"]["products"]] == ["Desk"]
    body = client.get(f"/vendors/{vid}/products?inStock=true").get_json()
    assert [p["name"] for p in body["data"]["products"]] == ["Pen"]

    resp = client.get(f"/vendors/{vid}/products?minPrice=10&maxPrice=5")
    assert resp.status_code == 400
    assert resp.get_json()["message"] == "Minimum price cannot be greater than maximum price"


def _deliver(services, vid, price=25.0, quantity=2, status="DELIVERED"):
    return services.catalog.add_order(
        "user-1",
        [{"productId": "p1", "name": "Mouse", "quantity": quantity, "price": price, "vendorId": vid}],
        status=status,
    )


def test_metrics(client, services, approved_vendor, vendor_headers):
    vid = approved_vendor["id"]
    _deliver(services, vid)
    _deliver(services, vid, status="CANCELLED")
    resp = client.get(f"/vendors/{vid}/metrics?period=all", headers=vendor_headers(vid))
    assert resp.status_code == 200
    data = resp.get_json()["data"]
    assert data["totalSales"] == 50.0
    assert data["totalOrders"] == 1
    assert data["commission"] == 5.0
    assert data["netEarnings"] == 45.0
    assert data["topProducts"][0]["name"] == "Mouse"


def test_metrics_requires_identity(client, approved_vendor):
    assert client.get(f"/vendors/{approved_vendor['id']}/metrics").status_code == 401


def test_payout_flow(client, services, admin_headers, approved_vendor, vendor_headers):
    vid = approved_vendor["id"]
    _deliver(services, vid)

    calc = client.post(
        f"/vendors/{vid}/payouts/calculate",
        json={"startDate": "2000-01-01", "endDate": "2100-01-01"},
        headers=admin_headers,
    )
    assert calc.status_code == 200
    assert calc.get_json()["data"]["payoutAmount"] == 45.0

    created = client.post(
        "/vendors/payouts",
        json={"vendor": vid, "amount": 45, "periodStart": "2024-01-01", "periodEnd": "2024-01-31"},
        headers=admin_headers,
    )
    assert created.status_code == 201
    payout = created.get_json()["data"]
    assert payout["status"] == "pending"
    assert payout["method"] == "bank_transfer"

    own = client.get(f"/vendors/{vid}/payouts", headers=vendor_headers(vid)).get_json()
    assert own["data"]["payouts"][0]["id"] == payout["id"]

    blocked = client.delete(f"/vendors/{vid}", headers=admin_headers)
    assert blocked.status_code == 422

    missing_tx = client.patch(f"/vendors/payouts/{payout['id']}", json={"status": "completed"}, headers=admin_headers)
    assert missing_tx.status_code == 422
    assert missing_tx.get_json()["message"] == "Transaction ID is required to complete a payout"

    done = client.patch(
        f"/vendors/payouts/{payout['id']}",
        json={"status": "completed", "transactionId": "tx-1"},
        headers=admin_headers,
    )
    assert done.status_code == 200
    assert [h["status"] for h in done.get_json()["data"]["history"]] == ["pending", "completed"]

    again = client.patch(f"/vendors/payouts/{payout['id']}", json={"status": "failed"}, headers=admin_headers)
    assert again.status_code == 422
    assert again.get_json()["message"] == "Cannot update a payout that is completed"


def test_payout_for_pending_vendor_rejected(client, admin_headers, vendor):
    resp = client.post(
        "/vendors/payouts",
        json={"vendor": vendor["id"], "amount": 10, "periodStart": "2024-01-01", "periodEnd": "2024-01-31"},
        headers=admin_headers,
    )
    assert resp.status_code == 422
    assert resp.get_json()["message"] == "Payouts can only be created for approved vendors"


def test_calculate_payout_requires_dates(client, admin_headers, vendor):
    resp = client.post(f"/vendors/{vendor['id']}/payouts/calculate", json={}, headers=admin_headers)
    assert resp.status_code == 400
    assert resp.get_json()["message"] == "Start date and end date are required"


# GIVEN: a payout owned by one vendor
# WHEN: another vendor asks for it by id
# THEN: the answer is indistinguishable from an unknown payout
def test_foreign_payout_looks_missing(client, admin_headers, user_headers, approved_vendor, vendor_headers):
    vid = approved_vendor["id"]
    payout = client.post(
        "/vendors/payouts",
        json={"vendor": vid, "amount": 10, "periodStart": "2024-01-01", "periodEnd": "2024-01-31"},
        headers=admin_headers,
    ).get_json()["data"]
    stranger = vendor_headers("b" * 24, user_id="vendor-user-2")

    foreign = client.get(f"/vendors/payouts/{payout['id']}", headers=stranger)
    unknown = client.get(f"/vendors/payouts/{'c' * 24}", headers=stranger)
    assert foreign.status_code == unknown.status_code == 404
    assert foreign.get_json()["message"] == unknown.get_json()["message"] == "Payout not found"

    assert client.get(f"/vendors/payouts/{payout['id']}", headers=user_headers).status_code == 403
    assert client.get(f"/vendors/payouts/{payout['id']}", headers=vendor_headers(vid)).status_code == 200


def test_calculate_payout_rejects_partial_dates(client, admin_headers, vendor):
    resp = client.post(
        f"/vendors/{vendor['id']}/payouts/calculate", json={"startDate": "2024-01-01"}, headers=admin_headers
    )
    assert resp.status_code == 400
    assert resp.get_json()["message"] == "Start date and end date are required"
