"""A/B testing service.

Tests move DRAFT -> RUNNING <-> PAUSED -> COMPLETED. Users are bucketed into a
variant on first assignment (deterministically, from a hash of test and user
id) and every tracked event increments the per-user counters of that
assignment; results are aggregations over those counters.
"""
from __future__ import annotations

import hashlib
import logging
import math
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal, Protocol

from typing_extensions import NotRequired, TypedDict

from .errors import BusinessError, NotFoundError
from .ids import iso, new_uuid, utcnow
from .pagination import Page, PageRequest, paginate_sequence

logger = logging.getLogger(__name__)

ABTestStatus = Literal["DRAFT", "RUNNING", "PAUSED", "COMPLETED"]
TEST_STATUSES: tuple[str, ...] = ("DRAFT", "RUNNING", "PAUSED", "COMPLETED")
TEST_TYPES: tuple[str, ...] = ("feature", "ui", "pricing", "content", "email")
PRIMARY_GOALS: tuple[str, ...] = ("conversion", "revenue", "engagement", "retention")
EVENT_TYPES: tuple[str, ...] = ("impression", "conversion", "revenue", "engagement")

# primary goal -> per-variant metric the winner is picked on
GOAL_METRIC: dict[str, str] = {
    "conversion": "conversionRate",
    "revenue": "revenue",
    "engagement": "engagements",
}


class VariantInput(TypedDict):
    name: str
    trafficAllocation: float
    description: NotRequired[str | None]
    isControl: NotRequired[bool]


class ABTestInput(TypedDict, total=False):
    name: str
    description: str | None
    type: str
    primaryGoal: str
    startDate: datetime | None
    endDate: datetime | None
    variants: list[VariantInput]


class ABTestFilters(TypedDict, total=False):
    status: str | None
    type: str | None


class VariantResult(TypedDict):
    variant: str
    variantId: str
    users: int
    impressions: int
    conversions: int
    revenue: float
    engagements: int
    conversionRate: float
    averageRevenue: float


class Significance(TypedDict):
    isSignificant: bool
    confidenceLevel: int
    winner: str | None
    control: NotRequired[str]
    variation: NotRequired[str]
    improvement: NotRequired[float]


class ABTestService(Protocol):
    async def create_test(self, data: ABTestInput, created_by: str, request_id: str) -> dict[str, Any]: ...
    async def list_tests(self, filters: ABTestFilters, page: PageRequest, request_id: str) -> Page[dict[str, Any]]: ...
    async def get_active_tests(self, request_id: str) -> list[dict[str, Any]]: ...
    async def get_test(self, test_id: str, request_id: str) -> dict[str, Any]: ...
    async def update_test(self, test_id: str, data: ABTestInput, request_id: str) -> dict[str, Any]: ...
    async def delete_test(self, test_id: str, request_id: str) -> dict[str, Any]: ...
    async def start_test(self, test_id: str, request_id: str) -> dict[str, Any]: ...
    async def pause_test(self, test_id: str, request_id: str) -> dict[str, Any]: ...
    async def complete_test(self, test_id: str, winner: str | None, request_id: str) -> dict[str, Any]: ...
    async def get_results(self, test_id: str, request_id: str) -> dict[str, Any]: ...
    async def get_user_assignment(self, test_id: str, user_id: str, request_id: str) -> dict[str, Any]: ...
    async def get_user_assignments(self, user_id: str, request_id: str) -> list[dict[str, Any]]: ...
    async def track_event(
        self, test_id: str, user_id: str, event_type: str, amount: float | None, request_id: str
    ) -> dict[str, Any] | None: ...


# ---- pure calculations ----------------------------------------------------------

def bucket_for(test_id: str, user_id: str) -> float:
    """Stable position in [0, 100) for a user within one test."""
    digest = hashlib.sha256(f"{test_id}:{user_id}".encode()).hexdigest()
    return (int(digest[:12], 16) % 10000) / 100


def select_variant(variants: list[_Variant], test_id: str, user_id: str) -> _Variant:
    position = bucket_for(test_id, user_id)
    cumulative = 0.0
    for variant in variants:
        cumulative += variant.traffic_allocation
        if position < cumulative:
            return variant
    return variants[0]


def confidence_level(z_score: float) -> int:
    z = abs(z_score)
    if z >= 1.96:
        return 95
    if z >= 1.645:
        return 90
    if z >= 1.28:
        return 80
    if z >= 0.84:
        return 60
    return 50


def calculate_significance(results: list[VariantResult]) -> Significance:
    """Two-proportion z-test between the two best variants by conversion rate."""
    if len(results) < 2:
        return {"isSignificant": False, "confidenceLevel": 0, "winner": None}
    ranked = sorted(results, key=lambda r: r["conversionRate"], reverse=True)
    variation, control = ranked[0], ranked[1]
    p1 = control["conversions"] / control["impressions"] if control["impressions"] > 0 else 0.0
    p2 = variation["conversions"] / variation["impressions"] if variation["impressions"] > 0 else 0.0
    se = 0.0
    total_impressions = control["impressions"] + variation["impressions"]
    if control["impressions"] > 0 and variation["impressions"] > 0:
        p = (control["conversions"] + variation["conversions"]) / total_impressions
        se = math.sqrt(p * (1 - p) * (1 / control["impressions"] + 1 / variation["impressions"]))
    z_score = (p2 - p1) / se if se > 0 else 0.0
    level = confidence_level(z_score)
    significant = level >= 95
    return {
        "isSignificant": significant,
        "confidenceLevel": level,
        "winner": variation["variant"] if significant else None,
        "control": control["variant"],
        "variation": variation["variant"],
        "improvement": ((p2 - p1) / p1) * 100 if p1 > 0 else 0.0,
    }


def determine_winner(results: list[VariantResult], primary_goal: str) -> str | None:
    metric = GOAL_METRIC.get(primary_goal)
    if metric is None or not results:
        return None
    best = max(results, key=lambda r: r[metric])  # type: ignore[literal-required]
    return best["variant"] if best[metric] > 0 else None  # type: ignore[literal-required]


# ---- in-memory reference implementation -------------------------------------------

@dataclass
class _Variant:
    id: str
    name: str
    traffic_allocation: float
    description: str | None = None
    is_control: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "trafficAllocation": self.traffic_allocation,
            "isControl": self.is_control,
        }


@dataclass
class _Assignment:
    user_id: str
    variant_id: str
    assigned_at: datetime
    impressions: int = 0
    conversions: int = 0
    revenue: float = 0.0
    engagements: int = 0
    last_activity: datetime | None = None


@dataclass
class _Test:
    id: str
    name: str
    type: str
    primary_goal: str
    created_by: str
    created_at: datetime
    updated_at: datetime
    description: str | None = None
    status: str = "DRAFT"
    start_date: datetime | None = None
    end_date: datetime | None = None
    winner: str | None = None
    variants: list[_Variant] = field(default_factory=list)
    assignments: dict[str, _Assignment] = field(default_factory=dict)

    def variant(self, variant_id: str) -> _Variant | None:
        return next((v for v in self.variants if v.id == variant_id), None)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "type": self.type,
            "status": self.status,
            "primaryGoal": self.primary_goal,
            "startDate": iso(self.start_date),
            "endDate": iso(self.end_date),
            "winner": self.winner,
            "variants": [v.to_dict() for v in self.variants],
            "participants": len(self.assignments),
            "createdBy": self.created_by,
            "createdAt": iso(self.created_at),
            "updatedAt": iso(self.updated_at),
        }


# request field -> attribute on _Test
_UPDATABLE: tuple[tuple[str, str], ...] = (
    ("name", "name"),
    ("description", "description"),
    ("type", "type"),
    ("primaryGoal", "primary_goal"),
    ("startDate", "start_date"),
    ("endDate", "end_date"),
)


def _build_variants(items: list[VariantInput]) -> list[_Variant]:
    variants = [
        _Variant(
            id=new_uuid(),
            name=item["name"],
            traffic_allocation=float(item["trafficAllocation"]),
            description=item.get("description"),
            is_control=bool(item.get("isControl", False)),
        )
        for item in items
    ]
    if variants and not any(v.is_control for v in variants):
        variants[0].is_control = True
    return variants


def _allocation_total(variants: list[_Variant]) -> float:
    return round(sum(v.traffic_allocation for v in variants), 2)


class InMemoryABTestService:
    def __init__(self) -> None:
        self._tests: dict[str, _Test] = {}
        self._lock = threading.RLock()

    def _get(self, test_id: str) -> _Test:
        test = self._tests.get(test_id)
        if test is None:
            raise NotFoundError(message_key="abTestNotFound")
        return test

    # ---- CRUD ----

    async def create_test(self, data: ABTestInput, created_by: str, request_id: str) -> dict[str, Any]:
        logger.info("[%s] Creating A/B test %r", request_id, data.get("name"))
        now = utcnow()
        test = _Test(
            id=new_uuid(),
            name=data["name"],
            description=data.get("description"),
            type=data["type"],
            primary_goal=data["primaryGoal"],
            start_date=data.get("startDate"),
            end_date=data.get("endDate"),
            variants=_build_variants(data.get("variants") or []),
            created_by=created_by,
            created_at=now,
            updated_at=now,
        )
        with self._lock:
            self._tests[test.id] = test
        return test.to_dict()

    async def list_tests(self, filters: ABTestFilters, page: PageRequest, request_id: str) -> Page[dict[str, Any]]:
        logger.info("[%s] Listing A/B tests filters=%s", request_id, filters)
        with self._lock:
            rows = [
                t
                for t in self._tests.values()
                if (not filters.get("status") or t.status == filters["status"])
                and (not filters.get("type") or t.type == filters["type"])
            ]
        rows.sort(key=lambda t: t.created_at, reverse=True)
        return paginate_sequence([t.to_dict() for t in rows], page)

    async def get_active_tests(self, request_id: str) -> list[dict[str, Any]]:
        now = utcnow()
        with self._lock:
            return [
                t.to_dict()
                for t in self._tests.values()
                if t.status == "RUNNING" and (t.end_date is None or t.end_date > now)
            ]

    async def get_test(self, test_id: str, request_id: str) -> dict[str, Any]:
        with self._lock:
            return self._get(test_id).to_dict()

    async def update_test(self, test_id: str, data: ABTestInput, request_id: str) -> dict[str, Any]:
        logger.info("[%s] Updating A/B test %s", request_id, test_id)
        with self._lock:
            test = self._get(test_id)
            if test.status == "COMPLETED":
                raise BusinessError("Cannot update a completed test")
            variants = None
            if "variants" in data:
                if test.status != "DRAFT":
                    raise BusinessError("Variants can only be changed while the test is a draft")
                variants = _build_variants(data["variants"])
            changes = {attr: data[key] for key, attr in _UPDATABLE if key in data}  # type: ignore[literal-required]
            start = changes.get("start_date", test.start_date)
            end = changes.get("end_date", test.end_date)
            if start and end and start > end:
                raise BusinessError("Start date cannot be after end date")
            if variants is not None:
                test.variants = variants
            for attr, value in changes.items():
                setattr(test, attr, value)
            test.updated_at = utcnow()
            return test.to_dict()

    async def delete_test(self, test_id: str, request_id: str) -> dict[str, Any]:
        logger.info("[%s] Deleting A/B test %s", request_id, test_id)
        with self._lock:
            test = self._get(test_id)
            if test.status == "RUNNING":
                raise BusinessError("Cannot delete a running test")
            del self._tests[test_id]
            return {"id": test.id, "name": test.name}

    # ---- lifecycle ----

    async def start_test(self, test_id: str, request_id: str) -> dict[str, Any]:
        logger.info("[%s] Starting A/B test %s", request_id, test_id)
        with self._lock:
            test = self._get(test_id)
            if test.status == "RUNNING":
                raise BusinessError("Test is already running")
            if test.status == "COMPLETED":
                raise BusinessError("Cannot start a completed test")
            if not test.variants:
                raise BusinessError("Test must have at least one variant")
            if _allocation_total(test.variants) != 100:
                raise BusinessError("Variant traffic allocation must add up to 100%")
            test.status = "RUNNING"
            if test.start_date is None:
                test.start_date = utcnow()
            test.updated_at = utcnow()
            return test.to_dict()

    async def pause_test(self, test_id: str, request_id: str) -> dict[str, Any]:
        logger.info("[%s] Pausing A/B test %s", request_id, test_id)
        with self._lock:
            test = self._get(test_id)
            if test.status != "RUNNING":
                raise BusinessError("Test is not running")
            test.status = "PAUSED"
            test.updated_at = utcnow()
            return test.to_dict()

    async def complete_test(self, test_id: str, winner: str | None, request_id: str) -> dict[str, Any]:
        logger.info("[%s] Completing A/B test %s winner=%s", request_id, test_id, winner)
        with self._lock:
            test = self._get(test_id)
            if test.status == "COMPLETED":
                raise BusinessError("Test is already completed")
            if winner is not None:
                match = next((v for v in test.variants if winner in (v.id, v.name)), None)
                if match is None:
                    raise BusinessError("Invalid winner variant")
                test.winner = match.name
            else:
                test.winner = determine_winner(self._results(test), test.primary_goal)
            test.status = "COMPLETED"
            test.end_date = utcnow()
            test.updated_at = test.end_date
            return test.to_dict()

    # ---- results ----

    def _results(self, test: _Test) -> list[VariantResult]:
        results: list[VariantResult] = []
        for variant in test.variants:
            rows = [a for a in test.assignments.values() if a.variant_id == variant.id]
            users = len(rows)
            impressions = sum(a.impressions for a in rows)
            conversions = sum(a.conversions for a in rows)
            revenue = round(sum(a.revenue for a in rows), 2)
            conversion_rate = (conversions / impressions) * 100 if impressions > 0 else 0.0
            average_revenue = revenue / users if users > 0 else 0.0
            results.append(
                {
                    "variant": variant.name,
                    "variantId": variant.id,
                    "users": users,
                    "impressions": impressions,
                    "conversions": conversions,
                    "revenue": revenue,
                    "engagements": sum(a.engagements for a in rows),
                    "conversionRate": round(conversion_rate, 2),
                    "averageRevenue": round(average_revenue, 2),
                }
            )
        return results

    async def get_results(self, test_id: str, request_id: str) -> dict[str, Any]:
        with self._lock:
            test = self._get(test_id)
            results = self._results(test)
            significance = calculate_significance(results)
            return {
                "test": test.to_dict(),
                "resultsByVariant": results,
                "significance": significance,
                "winner": test.winner or significance["winner"],
            }

    # ---- assignment & tracking ----

    def _assign(self, test: _Test, user_id: str) -> _Assignment:
        assignment = test.assignments.get(user_id)
        if assignment is None:
            variant = select_variant(test.variants, test.id, user_id)
            assignment = _Assignment(user_id=user_id, variant_id=variant.id, assigned_at=utcnow())
            test.assignments[user_id] = assignment
        return assignment

    def _assignment_dict(self, test: _Test, assignment: _Assignment) -> dict[str, Any]:
        variant = test.variant(assignment.variant_id)
        return {
            "testId": test.id,
            "userId": assignment.user_id,
            "variantId": assignment.variant_id,
            "variant": variant.name if variant else None,
            "variantDetails": variant.to_dict() if variant else None,
            "impressions": assignment.impressions,
            "conversions": assignment.conversions,
            "revenue": round(assignment.revenue, 2),
            "engagements": assignment.engagements,
            "assignedAt": iso(assignment.assigned_at),
            "lastActivity": iso(assignment.last_activity),
        }

    async def get_user_assignment(self, test_id: str, user_id: str, request_id: str) -> dict[str, Any]:
        with self._lock:
            test = self._get(test_id)
            if test.status != "RUNNING":
                raise BusinessError("Test is not running")
            return self._assignment_dict(test, self._assign(test, user_id))

    async def get_user_assignments(self, user_id: str, request_id: str) -> list[dict[str, Any]]:
        now = utcnow()
        out: list[dict[str, Any]] = []
        with self._lock:
            for test in self._tests.values():
                if test.status != "RUNNING" or (test.end_date is not None and test.end_date <= now):
                    continue
                if not test.variants:
                    continue
                assignment = self._assign(test, user_id)
                variant = test.variant(assignment.variant_id)
                out.append(
                    {
                        "test": {"id": test.id, "name": test.name, "type": test.type},
                        "variant": variant.name if variant else None,
                        "variantDetails": variant.to_dict() if variant else None,
                    }
                )
        return out

    async def track_event(
        self, test_id: str, user_id: str, event_type: str, amount: float | None, request_id: str
    ) -> dict[str, Any] | None:
        logger.info("[%s] Tracking %s event for test %s user %s", request_id, event_type, test_id, user_id)
        with self._lock:
            test = self._get(test_id)
            if test.status != "RUNNING":
                return None
            assignment = self._assign(test, user_id)
            if event_type == "impression":
                assignment.impressions += 1
            elif event_type == "conversion":
                assignment.conversions += 1
            elif event_type == "revenue":
                assignment.revenue += amount or 0.0
            elif event_type == "engagement":
                assignment.engagements += 1
            assignment.last_activity = utcnow()
            return self._assignment_dict(test, assignment)


__all__ = [
    "ABTestService",
    "InMemoryABTestService",
    "ABTestInput",
    "VariantResult",
    "Significance",
    "TEST_STATUSES",
    "TEST_TYPES",
    "PRIMARY_GOALS",
    "EVENT_TYPES",
    "bucket_for",
    "select_variant",
    "confidence_level",
    "calculate_significance",
    "determine_winner",
]
