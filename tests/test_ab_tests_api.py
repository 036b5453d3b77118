from __future__ import annotations

import uuid

import pytest

from storefront.ab_test_service import bucket_for, calculate_significance, confidence_level, determine_winner


def _payload(**overrides):
    body = {
        "name": "Checkout button",
        "type": "ui",
        "primaryGoal": "conversion",
        "variants": [
            {"name": "control", "trafficAllocation": 50},
            {"name": "green", "trafficAllocation": 50},
        ],
    }
    body.update(overrides)
    return body


@pytest.fixture()
def create_test(client, admin_headers):
    def _create(**overrides):
        resp = client.post("/ab-tests", json=_payload(**overrides), headers=admin_headers)
        assert resp.status_code == 201, resp.get_json()
        return resp.get_json()["data"]

    return _create


@pytest.fixture()
def running_test(client, admin_headers, create_test):
    test = create_test()
    resp = client.patch(f"/ab-tests/{test['id']}/start", headers=admin_headers)
    assert resp.status_code == 200
    return resp.get_json()["data"]


# GIVEN: an admin
# WHEN: creating a test with two variants summing to 100
# THEN: 201 with a DRAFT test and the first variant marked as control
def test_create_test(client, admin_headers):
    resp = client.post("/ab-tests", json=_payload(), headers=admin_headers)
    assert resp.status_code == 201
    body = resp.get_json()
    assert body["message"] == "A/B test created successfully"
    test = body["data"]
    assert test["status"] == "DRAFT"
    assert [v["isControl"] for v in test["variants"]] == [True, False]
    assert resp.headers["Location"] == f"/ab-tests/{test['id']}"


@pytest.mark.parametrize("overrides, message", [
    ({"name": "ab"}, "Name must be between 3 and 100 characters"),
    ({"type": "radio"}, "Invalid test type. Must be one of: feature, ui, pricing, content, email"),
    ({"primaryGoal": None}, "Primary goal is required"),
    ({"variants": [{"name": "only", "trafficAllocation": 100}]}, "At least two variants are required"),
    (
        {"variants": [{"name": "a", "trafficAllocation": 50}, {"name": "b", "trafficAllocation": 40}]},
        "Variant traffic allocation must add up to 100%",
    ),
    (
        {"variants": [{"name": "a", "trafficAllocation": 50}, {"name": "a", "trafficAllocation": 50}]},
        "Variant names must be unique",
    ),
    ({"startDate": "2024-05-01", "endDate": "2024-04-01"}, "Start date cannot be after end date"),
])
def test_create_validation(client, admin_headers, overrides, message):
    resp = client.post("/ab-tests", json=_payload(**overrides), headers=admin_headers)
    assert resp.status_code == 400
    assert resp.get_json()["message"] == message


def test_create_requires_admin(client, user_headers):
    resp = client.post("/ab-tests", json=_payload(), headers=user_headers)
    assert resp.status_code == 403


def test_list_rejects_page_zero(client, admin_headers):
    resp = client.get("/ab-tests?page=0", headers=admin_headers)
    assert resp.status_code == 400
    assert resp.get_json()["message"] == "Page must be greater than 0"


def test_list_rejects_oversized_limit(client, admin_headers):
    resp = client.get("/ab-tests?limit=500", headers=admin_headers)
    assert resp.status_code == 400
    assert resp.get_json()["message"] == "Limit must be between 1 and 100"


def test_list_paginates_and_filters(client, admin_headers, create_test):
    for i in range(3):
        create_test(name=f"Experiment {i}")
    create_test(name="Email subject", type="email")
    resp = client.get("/ab-tests?limit=2&type=ui", headers=admin_headers)
    body = resp.get_json()
    assert resp.status_code == 200
    assert len(body["data"]["tests"]) == 2
    assert body["results"] == 2
    assert body["pagination"]["totalResults"] == 3
    assert body["pagination"]["totalPages"] == 2
    assert body["pagination"]["hasNextPage"] is True


def test_invalid_and_unknown_ids(client, admin_headers):
    resp = client.get("/ab-tests/not-a-uuid", headers=admin_headers)
    assert resp.status_code == 400
    assert resp.get_json()["message"] == "Invalid test ID format"
    resp = client.get(f"/ab-tests/{uuid.uuid4()}", headers=admin_headers)
    assert resp.status_code == 404
    assert resp.get_json()["message"] == "A/B test not found"


def test_lifecycle_transitions(client, admin_headers, running_test):
    tid = running_test["id"]
    assert running_test["status"] == "RUNNING"
    assert running_test["startDate"] is not None

    again = client.patch(f"/ab-tests/{tid}/start", headers=admin_headers)
    assert again.status_code == 422
    assert again.get_json()["message"] == "Test is already running"

    assert client.delete(f"/ab-tests/{tid}", headers=admin_headers).status_code == 422

    paused = client.patch(f"/ab-tests/{tid}/pause", headers=admin_headers)
    assert paused.get_json()["data"]["status"] == "PAUSED"

    done = client.patch(f"/ab-tests/{tid}/complete", json={"winner": "green"}, headers=admin_headers)
    assert done.status_code == 200
    assert done.get_json()["data"]["status"] == "COMPLETED"
    assert done.get_json()["data"]["winner"] == "green"

    restart = client.patch(f"/ab-tests/{tid}/start", headers=admin_headers)
    assert restart.status_code == 422
    assert restart.get_json()["message"] == "Cannot start a completed test"


def test_variants_locked_after_start(client, admin_headers, running_test):
    resp = client.patch(
        f"/ab-tests/{running_test['id']}",
        json={"variants": [{"name": "a", "trafficAllocation": 30}, {"name": "b", "trafficAllocation": 70}]},
        headers=admin_headers,
    )
    assert resp.status_code == 422


# GIVEN: a draft test ending 2030-02-01
# WHEN: an update renames it and moves the start past the end
# THEN: the update is refused and the stored test keeps its name and dates
def test_rejected_update_leaves_test_unchanged(client, admin_headers, create_test):
    test = create_test(startDate="2030-01-01", endDate="2030-02-01")
    resp = client.patch(
        f"/ab-tests/{test['id']}",
        json={"name": "renamed", "startDate": "2031-01-01T00:00:00Z"},
        headers=admin_headers,
    )
    assert resp.status_code == 422
    assert resp.get_json()["message"] == "Start date cannot be after end date"

    after = client.get(f"/ab-tests/{test['id']}", headers=admin_headers).get_json()["data"]
    assert after["name"] == "Checkout button"
    assert after["startDate"] == test["startDate"]
    assert after["endDate"] == test["endDate"]
    assert after["updatedAt"] == test["updatedAt"]


def test_assignment_requires_running_test(client, user_headers, create_test):
    test = create_test()
    resp = client.get(f"/ab-tests/{test['id']}/assignment", headers=user_headers)
    assert resp.status_code == 422
    assert resp.get_json()["message"] == "Test is not running"


# GIVEN: a running test
# WHEN: the same user asks for an assignment twice
# THEN: they get the same variant both times
def test_assignment_is_sticky(client, user_headers, running_test):
    url = f"/ab-tests/{running_test['id']}/assignment"
    first = client.get(url, headers=user_headers).get_json()["data"]
    second = client.get(url, headers=user_headers).get_json()["data"]
    assert first["variant"] in ("control", "green")
    assert first["variantId"] == second["variantId"]

    mine = client.get("/ab-tests/assignments", headers=user_headers).get_json()
    assert mine["results"] == 1
    assert mine["data"]["assignments"][0]["variant"] == first["variant"]


def test_track_revenue_requires_amount(client, user_headers, running_test):
    resp = client.post(
        f"/ab-tests/{running_test['id']}/track", json={"eventType": "revenue"}, headers=user_headers
    )
    assert resp.status_code == 400
    assert resp.get_json()["message"] == "Amount is required for revenue events"


def test_track_requires_event_type(client, user_headers, running_test):
    resp = client.post(f"/ab-tests/{running_test['id']}/track", json={}, headers=user_headers)
    assert resp.status_code == 400
    assert resp.get_json()["message"] == "Event type is required"


def test_tracked_events_show_in_results(client, admin_headers, user_headers, other_user_headers, running_test):
    tid = running_test["id"]
    for headers in (user_headers, other_user_headers):
        resp = client.post(f"/ab-tests/{tid}/track", json={"eventType": "impression"}, headers=headers)
        assert resp.status_code == 200
        assert resp.get_json()["message"] == "Event tracked successfully"
    client.post(f"/ab-tests/{tid}/track", json={"eventType": "conversion"}, headers=user_headers)
    resp = client.post(f"/ab-tests/{tid}/track", json={"eventType": "revenue", "amount": 20}, headers=user_headers)
    assert resp.get_json()["data"]["revenue"] == 20.0

    results = client.get(f"/ab-tests/{tid}/results", headers=admin_headers).get_json()["data"]
    rows = results["resultsByVariant"]
    assert sum(r["users"] for r in rows) == 2
    assert sum(r["impressions"] for r in rows) == 2
    assert sum(r["conversions"] for r in rows) == 1

    stats = client.get(f"/ab-tests/{tid}/statistics", headers=admin_headers).get_json()["data"]
    assert stats["totalParticipants"] == 2
    assert stats["totalRevenue"] == 20.0
    assert stats["overallConversionRate"] == 50.0


def test_active_tests_lists_running_only(client, admin_headers, create_test, running_test):
    create_test(name="Still a draft")
    body = client.get("/ab-tests/active", headers=admin_headers).get_json()
    assert [t["id"] for t in body["data"]["tests"]] == [running_test["id"]]


def test_bucket_is_deterministic_and_in_range():
    a = bucket_for("t1", "u1")
    assert a == bucket_for("t1", "u1")
    assert 0 <= a < 100


def _row(name, impressions, conversions, revenue=0.0, engagements=0):
    return {
        "variant": name,
        "variantId": name,
        "users": impressions,
        "impressions": impressions,
        "conversions": conversions,
        "revenue": revenue,
        "engagements": engagements,
        "conversionRate": round(conversions / impressions * 100, 2) if impressions else 0.0,
        "averageRevenue": 0.0,
    }


def test_significance_picks_clear_winner():
    sig = calculate_significance([_row("control", 1000, 100), _row("green", 1000, 150)])
    assert sig["isSignificant"] is True
    assert sig["confidenceLevel"] == 95
    assert sig["winner"] == "green"
    assert sig["control"] == "control"
    assert sig["improvement"] == pytest.approx(50.0)


def test_significance_needs_two_variants():
    assert calculate_significance([_row("only", 10, 1)]) == {
        "isSignificant": False,
        "confidenceLevel": 0,
        "winner": None,
    }


@pytest.mark.parametrize("z, level", [(2.5, 95), (1.7, 90), (1.3, 80), (0.9, 60), (0.1, 50), (-2.0, 95)])
def test_confidence_levels(z, level):
    assert confidence_level(z) == level


def test_determine_winner_by_goal():
    rows = [_row("a", 100, 10, revenue=50.0, engagements=3), _row("b", 100, 5, revenue=80.0, engagements=9)]
    assert determine_winner(rows, "conversion") == "a"
    assert determine_winner(rows, "revenue") == "b"
    assert determine_winner(rows, "engagement") == "b"
    assert determine_winner(rows, "retention") is None
