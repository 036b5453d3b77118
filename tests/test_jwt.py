import time

import pytest

from storefront.jwt_utils import JWTError, decode, encode


@pytest.fixture()
def secret():
    return "alpha_secret"


def test_roundtrip_keeps_identity_claims(secret):
    token = encode({"sub": "u1", "role": "vendor", "vendor_id": "v1"}, secret=secret)
    claims = decode(token, secret=secret)
    assert claims["sub"] == "u1"
    assert claims["role"] == "vendor"
    assert claims["vendor_id"] == "v1"


def test_wrong_secret_rejected(secret):
    token = encode({"sub": "u1", "role": "admin"}, secret=secret)
    with pytest.raises(JWTError):
        decode(token, secret="beta_secret")


@pytest.mark.parametrize("claim, payload", [
    ("expired", {"sub": "u1", "role": "admin", "exp": int(time.time()) - 3600}),
    ("nbf-future", {"sub": "u1", "role": "admin", "nbf": int(time.time()) + 3600}),
    ("no-role", {"sub": "u1"}),
    ("no-sub", {"role": "admin"}),
])
def test_claim_failures(claim, payload, secret):
    token = encode(payload, secret=secret)
    with pytest.raises(JWTError):
        decode(token, secret=secret)


def test_leeway_accepts_recently_expired(secret):
    token = encode({"sub": "u1", "role": "admin", "exp": int(time.time()) - 10}, secret=secret)
    assert decode(token, secret=secret, leeway=60)["sub"] == "u1"


def test_malformed_token():
    with pytest.raises(JWTError):
        decode("abc.def", secret="x")


# GIVEN: a bearer token signed with the app secret
# WHEN: calling an authenticated endpoint
# THEN: the token's subject is the current user
def test_bearer_token_authenticates(client):
    token = encode({"sub": "u-42", "role": "customer"}, secret="test")
    resp = client.get("/loyalty/program", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 200
    assert resp.get_json()["data"]["userId"] == "u-42"


# GIVEN: a bearer token signed with a different secret
# WHEN: calling an authenticated endpoint
# THEN: the caller is anonymous and gets 401
def test_invalid_bearer_is_anonymous(client):
    token = encode({"sub": "u-42", "role": "admin"}, secret="not-the-app-secret")
    resp = client.get("/loyalty/program", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 401
    assert resp.get_json()["message"] == "User authentication required"


def test_bearer_vendor_claim_binds_vendor(client, services):
    # vendor principals may read their own metrics
    import asyncio

    vendor = asyncio.run(
        services.vendors.create_vendor({"name": "Acme", "slug": "acme", "email": "a@acme.example"}, "t")
    )
    token = encode({"sub": "vu1", "role": "seller", "vendor_id": vendor["id"]}, secret="test")
    resp = client.get(f"/vendors/{vendor['id']}/metrics", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 200


def test_test_headers_ignored_outside_testing(services):
    from storefront import create_app

    app = create_app({"TESTING": False, "SECRET_KEY": "test"}, services=services)
    resp = app.test_client().get("/loyalty/program", headers={"X-User-Id": "u1", "X-User-Role": "admin"})
    assert resp.status_code == 401


@pytest.mark.parametrize("role, status", [
    ("admin", 200),
    ("superadmin", 200),
    ("customer", 403),
    ("wizard", 403),
])
def test_role_gate_on_admin_route(client, role, status):
    resp = client.get("/scheduler/status", headers={"X-User-Id": "u1", "X-User-Role": role})
    assert resp.status_code == status
    if status == 403:
        assert resp.get_json()["requiredRoles"] == ["admin", "superadmin"]
