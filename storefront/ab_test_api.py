from __future__ import annotations

from typing import Any

from flask import Blueprint, Response, current_app

from .ab_test_service import (
    EVENT_TYPES,
    PRIMARY_GOALS,
    TEST_STATUSES,
    TEST_TYPES,
    ABTestInput,
    ABTestService,
    VariantInput,
)
from .app_authz import current_user, require_admin, require_user
from .context import get_request_context
from .envelope import created, listing, paged, success
from .parsing import ArgParser
from .validators import check_date_range, uuid_id

bp = Blueprint("ab_test_api", __name__, url_prefix="/ab-tests")

_INVALID_ID = "Invalid test ID format"


def _service() -> ABTestService:
    return current_app.services.ab_tests  # type: ignore[attr-defined]


def _rid() -> str:
    return get_request_context().request_id


def _parse_variants(args: ArgParser) -> list[VariantInput] | None:
    raw = args.raw("variants")
    if raw is None:
        return None
    if not isinstance(raw, list) or len(raw) < 2:
        args.violations.add("variants", "At least two variants are required")
        return None
    variants: list[VariantInput] = []
    for i, item in enumerate(raw):
        if not isinstance(item, dict):
            args.violations.add(f"variants[{i}]", "Each variant must be an object")
            continue
        sub = args.nested(item, f"variants[{i}].")
        name = sub.string("name", required=True, max_length=100, required_message="Variant name is required")
        allocation = sub.number(
            "trafficAllocation",
            required=True,
            min_value=0,
            max_value=100,
            message="Traffic allocation must be between 0 and 100",
            required_message="Traffic allocation is required",
        )
        description = sub.string("description", max_length=500)
        is_control = sub.boolean("isControl", default=False)
        if name is not None and allocation is not None:
            variant: VariantInput = {"name": name, "trafficAllocation": allocation, "description": description}
            if is_control:
                variant["isControl"] = True
            variants.append(variant)
    if len(variants) == len(raw):
        names = [v["name"] for v in variants]
        args.violations.check(len(set(names)) == len(names), "variants", "Variant names must be unique")
        total = round(sum(v["trafficAllocation"] for v in variants), 2)
        args.violations.check(total == 100, "variants", "Variant traffic allocation must add up to 100%")
    return variants


def _parse_test_body(*, partial: bool) -> ABTestInput:
    args = ArgParser.body()
    data: ABTestInput = {}
    name = args.string(
        "name",
        required=not partial,
        min_length=3,
        max_length=100,
        message="Name must be between 3 and 100 characters",
        required_message="Name is required",
    )
    description = args.string("description", max_length=1000)
    test_type = args.choice(
        "type",
        TEST_TYPES,
        required=not partial,
        required_message="Test type is required",
        message=f"Invalid test type. Must be one of: {', '.join(TEST_TYPES)}",
    )
    goal = args.choice(
        "primaryGoal",
        PRIMARY_GOALS,
        required=not partial,
        required_message="Primary goal is required",
        message=f"Invalid primary goal. Must be one of: {', '.join(PRIMARY_GOALS)}",
    )
    start = args.date("startDate", message="Invalid startDate date format. Use ISO 8601 format")
    end = args.date("endDate", message="Invalid endDate date format. Use ISO 8601 format")
    check_date_range(args.violations, start, end)
    variants = _parse_variants(args)
    if variants is None and not partial and not args.violations.has("variants"):
        args.violations.add("variants", "At least two variants are required")
    args.finish()

    for key, value in (
        ("name", name),
        ("description", description),
        ("type", test_type),
        ("primaryGoal", goal),
        ("startDate", start),
        ("endDate", end),
        ("variants", variants),
    ):
        if value is not None:
            data[key] = value  # type: ignore[literal-required]
    return data


@bp.post("")
@require_admin
async def create_test() -> Response:
    data = _parse_test_body(partial=False)
    test = await _service().create_test(data, current_user().id, _rid())
    return created(test, message="A/B test created successfully", location=f"/ab-tests/{test['id']}")


@bp.get("")
@require_admin
async def list_tests() -> Response:
    args = ArgParser.query()
    page = args.page(default_limit=10, strict_limit=True)
    status = args.choice("status", TEST_STATUSES, message=f"Invalid status. Must be one of: {', '.join(TEST_STATUSES)}")
    test_type = args.choice("type", TEST_TYPES, message=f"Invalid test type. Must be one of: {', '.join(TEST_TYPES)}")
    args.finish()
    result = await _service().list_tests({"status": status, "type": test_type}, page, _rid())
    return paged(result, key="tests")


@bp.get("/active")
@require_admin
async def active_tests() -> Response:
    tests = await _service().get_active_tests(_rid())
    return listing(tests, key="tests")


@bp.get("/assignments")
@require_user
async def my_assignments() -> Response:
    assignments = await _service().get_user_assignments(current_user().id, _rid())
    return listing(assignments, key="assignments")


@bp.get("/<test_id>")
@require_admin
async def get_test(test_id: str) -> Response:
    test = await _service().get_test(uuid_id(test_id, message=_INVALID_ID), _rid())
    return success(test)


@bp.patch("/<test_id>")
@require_admin
async def update_test(test_id: str) -> Response:
    tid = uuid_id(test_id, message=_INVALID_ID)
    data = _parse_test_body(partial=True)
    test = await _service().update_test(tid, data, _rid())
    return success(test, message="A/B test updated successfully")


@bp.delete("/<test_id>")
@require_admin
async def delete_test(test_id: str) -> Response:
    deleted = await _service().delete_test(uuid_id(test_id, message=_INVALID_ID), _rid())
    return success(deleted, message="A/B test deleted successfully")


@bp.patch("/<test_id>/start")
@require_admin
async def start_test(test_id: str) -> Response:
    test = await _service().start_test(uuid_id(test_id, message=_INVALID_ID), _rid())
    return success(test, message="A/B test started successfully")


@bp.patch("/<test_id>/pause")
@require_admin
async def pause_test(test_id: str) -> Response:
    test = await _service().pause_test(uuid_id(test_id, message=_INVALID_ID), _rid())
    return success(test, message="A/B test paused successfully")


@bp.patch("/<test_id>/complete")
@require_admin
async def complete_test(test_id: str) -> Response:
    tid = uuid_id(test_id, message=_INVALID_ID)
    args = ArgParser.body()
    winner = args.raw("winner")
    args.violations.check(winner is None or isinstance(winner, str), "winner", "Winner must be a string")
    args.finish()
    test = await _service().complete_test(tid, winner.strip() if winner else None, _rid())
    return success(test, message="A/B test completed successfully")


@bp.get("/<test_id>/results")
@require_admin
async def test_results(test_id: str) -> Response:
    results = await _service().get_results(uuid_id(test_id, message=_INVALID_ID), _rid())
    return success(results)


def summarize(results: dict[str, Any]) -> dict[str, Any]:
    variants = results["resultsByVariant"]
    participants = sum(v["users"] for v in variants)
    impressions = sum(v["impressions"] for v in variants)
    conversions = sum(v["conversions"] for v in variants)
    revenue = round(sum(v["revenue"] for v in variants), 2)
    return {
        "testId": results["test"]["id"],
        "name": results["test"]["name"],
        "status": results["test"]["status"],
        "totalParticipants": participants,
        "totalImpressions": impressions,
        "totalConversions": conversions,
        "totalRevenue": revenue,
        "overallConversionRate": round(conversions / impressions * 100, 2) if impressions else 0,
        "averageRevenuePerUser": round(revenue / participants, 2) if participants else 0,
        "significance": results["significance"],
        "winner": results["winner"],
        "variants": variants,
    }


@bp.get("/<test_id>/statistics")
@require_admin
async def test_statistics(test_id: str) -> Response:
    results = await _service().get_results(uuid_id(test_id, message=_INVALID_ID), _rid())
    return success(summarize(results))


@bp.get("/<test_id>/assignment")
@require_user
async def my_assignment(test_id: str) -> Response:
    tid = uuid_id(test_id, message=_INVALID_ID)
    assignment = await _service().get_user_assignment(tid, current_user().id, _rid())
    return success(assignment)


@bp.post("/<test_id>/track")
@require_user
async def track_event(test_id: str) -> Response:
    tid = uuid_id(test_id, message=_INVALID_ID)
    args = ArgParser.body()
    event_type = args.choice(
        "eventType",
        EVENT_TYPES,
        required=True,
        required_message="Event type is required",
        message=f"Invalid event type. Must be one of: {', '.join(EVENT_TYPES)}",
    )
    amount = None
    if event_type == "revenue":
        if not args.present("amount"):
            args.violations.add("amount", "Amount is required for revenue events")
        else:
            amount = args.number("amount", min_value=0, message="Amount must be a non-negative number")
    args.finish()
    tracked = await _service().track_event(tid, current_user().id, event_type or "", amount, _rid())
    return success(tracked, message="Event tracked successfully")
