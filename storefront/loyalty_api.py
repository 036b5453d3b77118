from __future__ import annotations

from flask import Blueprint, Response, current_app

from .app_authz import current_user, require_admin, require_user
from .context import get_request_context
from .envelope import created, listing, paged, success
from .errors import BusinessError, NotFoundError
from .loyalty_service import REDEMPTION_STATUSES, REWARD_TYPES, STATISTICS_PERIODS, LoyaltyService, RewardInput
from .parsing import ArgParser
from .validators import check_date_range, check_min_max, object_id

bp = Blueprint("loyalty_api", __name__, url_prefix="/loyalty")
admin_bp = Blueprint("loyalty_admin_api", __name__, url_prefix="/admin/loyalty")

# statuses an admin may close an active redemption with
CLOSED_STATUSES: tuple[str, ...] = ("USED", "CANCELLED", "EXPIRED")


def _service() -> LoyaltyService:
    return current_app.services.loyalty  # type: ignore[attr-defined]


def _rid() -> str:
    return get_request_context().request_id


@bp.get("/tiers")
async def tiers() -> Response:
    return listing(await _service().get_tiers(_rid()), key="tiers")


@bp.get("/program")
@require_user
async def my_program() -> Response:
    return success(await _service().get_program(current_user().id, _rid()))


@bp.get("/rewards")
@require_user
async def rewards() -> Response:
    return listing(await _service().list_rewards(current_user().id, _rid()), key="rewards")


@bp.get("/rewards/<reward_id>")
@require_user
async def reward(reward_id: str) -> Response:
    rid = object_id(reward_id, message="Invalid reward ID format")
    return success(await _service().get_reward(rid, _rid()))


@bp.post("/rewards/redeem")
@require_user
async def redeem() -> Response:
    args = ArgParser.body()
    reward_id = args.string("rewardId", required=True, required_message="Reward ID is required")
    args.finish()
    reward_id = object_id(reward_id or "", field="rewardId", message="Invalid reward ID format")
    redemption = await _service().redeem_reward(current_user().id, reward_id, _rid())
    return created(redemption, message="Reward redeemed successfully")


@bp.get("/history")
@require_user
async def history() -> Response:
    args = ArgParser.query()
    page = args.page(default_limit=10)
    args.finish()
    return paged(await _service().get_history(current_user().id, page, _rid()), key="transactions")


@bp.get("/redemptions")
@require_user
async def my_redemptions() -> Response:
    args = ArgParser.query()
    page = args.page(default_limit=10)
    args.finish()
    return paged(await _service().get_redemptions(current_user().id, page, _rid()), key="redemptions")


@bp.get("/redemptions/<redemption_id>")
@require_user
async def my_redemption(redemption_id: str) -> Response:
    rid = object_id(redemption_id, message="Invalid redemption ID format")
    return success(await _service().get_redemption(current_user().id, rid, _rid()))


@bp.get("/referral")
@require_user
async def referral() -> Response:
    return success(await _service().get_referral(current_user().id, _rid()))


@bp.post("/referral/apply")
@require_user
async def apply_referral() -> Response:
    args = ArgParser.body()
    code = args.string(
        "referralCode",
        required=True,
        pattern=r"(?i)REF[0-9A-Z]{8}",
        message="Invalid referral code format",
        required_message="Referral code is required",
    )
    args.finish()
    result = await _service().apply_referral(current_user().id, code or "", _rid())
    return success(result, message="Referral code applied successfully")


def _period(args: ArgParser) -> str:
    return args.choice(
        "period",
        tuple(STATISTICS_PERIODS),
        default="month",
        message=f"Invalid period. Must be one of: {', '.join(STATISTICS_PERIODS)}",
    ) or "month"


@bp.get("/dashboard")
@require_user
async def dashboard() -> Response:
    args = ArgParser.query()
    period = _period(args)
    args.finish()
    return success(await _service().get_dashboard(current_user().id, period, _rid()))


# ---- administration ----

@admin_bp.get("/programs")
@require_admin
async def programs() -> Response:
    args = ArgParser.query()
    page = args.page(default_limit=10)
    min_points = args.integer("minPoints", min_value=0, message="minPoints must be a non-negative integer")
    max_points = args.integer("maxPoints", min_value=0, message="maxPoints must be a non-negative integer")
    check_min_max(args.violations, min_points, max_points, field="minPoints", message="minPoints cannot be greater than maxPoints")
    search = args.string("search", max_length=100)
    args.finish()
    filters = {"minPoints": min_points, "maxPoints": max_points, "search": search}
    return paged(await _service().list_programs(filters, page, _rid()), key="programs")


@admin_bp.post("/points/adjust")
@require_admin
async def adjust_points() -> Response:
    args = ArgParser.body()
    user_id = args.string("userId", required=True, required_message="User ID and points are required")
    points = args.integer("points", required=True, required_message="User ID and points are required")
    if points == 0:
        args.violations.add("points", "Points must be a non-zero integer")
    reason = args.string("reason", default="Manual adjustment", max_length=200) or "Manual adjustment"
    args.finish()
    result = await _service().adjust_points(user_id or "", points or 0, reason, _rid())
    return success(result, message="Points adjusted successfully")


@admin_bp.post("/rewards")
@require_admin
async def create_reward() -> Response:
    args = ArgParser.body()
    data: RewardInput = {}
    name = args.string("name", required=True, min_length=2, max_length=100, required_message="Reward name is required")
    cost = args.integer(
        "pointsCost", required=True, min_value=1, message="Points cost must be a positive integer",
        required_message="Points cost is required",
    )
    reward_type = args.choice("type", REWARD_TYPES, required=True, required_message="Reward type is required")
    value = args.number("value", min_value=0, message="Value must be a non-negative number")
    description = args.string("description", max_length=500)
    active = args.boolean("active", default=True)
    expires = args.integer("expiresInDays", default=30, min_value=1, max_value=365, message="expiresInDays must be between 1 and 365")
    args.finish()
    data.update(
        name=name or "",
        pointsCost=cost or 0,
        type=reward_type or "",
        value=value,
        description=description,
        active=bool(active),
        expiresInDays=expires or 30,
    )
    reward = await _service().create_reward(data, _rid())
    return created(reward, message="Reward created successfully")


@admin_bp.get("/redemptions")
@require_admin
async def all_redemptions() -> Response:
    args = ArgParser.query()
    page = args.page(default_limit=10)
    status = args.choice("status", REDEMPTION_STATUSES)
    start = args.date("startDate")
    end = args.date("endDate")
    check_date_range(args.violations, start, end)
    args.finish()
    filters = {"status": status, "startDate": start, "endDate": end}
    return paged(await _service().list_all_redemptions(filters, page, _rid()), key="redemptions")


@admin_bp.get("/programs/<user_id>")
@require_admin
async def member(user_id: str) -> Response:
    return success(await _service().get_member(user_id, _rid()))


@admin_bp.get("/redemptions/<redemption_id>")
@require_admin
async def redemption_detail(redemption_id: str) -> Response:
    rid = object_id(redemption_id, message="Invalid redemption ID format")
    return success(await _service().get_redemption_by_id(rid, _rid()))


@admin_bp.put("/redemptions/<redemption_id>")
@require_admin
async def update_redemption(redemption_id: str) -> Response:
    rid = object_id(redemption_id, message="Invalid redemption ID format")
    args = ArgParser.body()
    status = args.choice(
        "status",
        CLOSED_STATUSES,
        required=True,
        required_message="Status is required",
        message=f"Invalid status. Must be one of: {', '.join(CLOSED_STATUSES)}",
    )
    notes = args.string("notes", max_length=500, message="Notes cannot exceed 500 characters")
    args.finish()
    redemption = await _service().update_redemption_status(rid, status or "", notes, _rid())
    return success(redemption, message="Redemption status updated successfully")


@admin_bp.post("/redemptions/use")
@require_admin
async def use_code() -> Response:
    args = ArgParser.body()
    code = args.string(
        "code",
        required=True,
        pattern=r"(?i)[0-9A-F]{10}",
        message="Invalid redemption code format",
        required_message="Redemption code is required",
    )
    args.finish()
    redemption = await _service().use_redemption_code(code or "", _rid())
    return success(redemption, message="Redemption code applied successfully")


@admin_bp.get("/statistics")
@require_admin
async def program_statistics() -> Response:
    return success(await _service().get_program_statistics(_rid()))


@admin_bp.get("/statistics/<user_id>")
@require_admin
async def member_statistics(user_id: str) -> Response:
    args = ArgParser.query()
    period = _period(args)
    args.finish()
    return success(await _service().get_statistics(user_id, period, _rid()))


@admin_bp.post("/orders/<order_id>/points")
@require_admin
async def award_order(order_id: str) -> Response:
    oid = object_id(order_id, message="Invalid order ID format")
    order = current_app.services.catalog.get_order(oid)  # type: ignore[attr-defined]
    if order is None:
        raise NotFoundError(message_key="orderNotFound")
    if order["status"] == "CANCELLED":
        raise BusinessError("Cancelled orders do not earn loyalty points")
    result = await _service().award_order_points(order["userId"], order["total"], order["id"], _rid())
    return success(result, message="Order points processed successfully")
