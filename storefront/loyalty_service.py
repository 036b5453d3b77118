"""Loyalty points, tiers, rewards and referrals.

Balances only change through ledger transactions (earn, redeem, referral,
adjust, expire, bonus, refund). Refunds restore spendable points without
counting towards lifetime points. Tier membership is derived from lifetime
points, which only ever grow, so spending points never demotes a member.
"""
from __future__ import annotations

import logging
import math
import secrets
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Protocol

from typing_extensions import TypedDict

from .errors import BusinessError, NotFoundError, ValidationError
from .ids import iso, new_object_id, utcnow
from .pagination import Page, PageRequest, paginate_sequence

logger = logging.getLogger(__name__)


class Tier(TypedDict):
    name: str
    minPoints: int
    benefits: list[str]
    color: str


# Static program configuration; not yet backed by storage.
TIERS: tuple[Tier, ...] = (
    {"name": "Bronze", "minPoints": 0, "benefits": ["1 point per $1 spent"], "color": "#CD7F32"},
    {"name": "Silver", "minPoints": 1000, "benefits": ["1 point per $1 spent", "Free shipping on orders over $50"], "color": "#C0C0C0"},
    {"name": "Gold", "minPoints": 5000, "benefits": ["1 point per $1 spent", "Free shipping on all orders", "Early access to sales"], "color": "#FFD700"},
    {"name": "Platinum", "minPoints": 10000, "benefits": ["1 point per $1 spent", "Free shipping on all orders", "Early access to sales", "Dedicated support"], "color": "#E5E4E2"},
)
REFERRER_BONUS = 500
REFEREE_BONUS = 100
POINTS_TTL = timedelta(days=365)
DEFAULT_REDEMPTION_TTL_DAYS = 30

REWARD_TYPES: tuple[str, ...] = ("DISCOUNT", "FREE_SHIPPING", "PRODUCT", "GIFT_CARD")
REDEMPTION_STATUSES: tuple[str, ...] = ("ACTIVE", "USED", "EXPIRED", "CANCELLED")
TRANSACTION_TYPES: tuple[str, ...] = ("EARN", "REDEEM", "REFERRAL", "ADJUST", "EXPIRE", "BONUS", "REFUND")
BIRTHDAY_BONUS = 100

# statistics period -> lookback window (None = everything)
STATISTICS_PERIODS: dict[str, timedelta | None] = {
    "week": timedelta(days=7),
    "month": timedelta(days=30),
    "year": timedelta(days=365),
    "all": None,
}


def tier_for(lifetime_points: int) -> Tier:
    current = TIERS[0]
    for tier in TIERS:
        if lifetime_points >= tier["minPoints"]:
            current = tier
    return current


def next_tier(lifetime_points: int) -> Tier | None:
    return next((t for t in TIERS if t["minPoints"] > lifetime_points), None)


def order_points(total: float) -> int:
    """One point per currency unit, never less than one."""
    return max(1, math.floor(total))


class RewardInput(TypedDict, total=False):
    name: str
    description: str | None
    pointsCost: int
    type: str
    value: float | None
    active: bool
    expiresInDays: int


class ProgramFilters(TypedDict, total=False):
    minPoints: int | None
    maxPoints: int | None
    search: str | None


class RedemptionFilters(TypedDict, total=False):
    status: str | None
    startDate: datetime | None
    endDate: datetime | None


class LoyaltyService(Protocol):
    async def get_tiers(self, request_id: str) -> list[Tier]: ...
    async def get_program(self, user_id: str, request_id: str) -> dict[str, Any]: ...
    async def list_rewards(self, user_id: str | None, request_id: str) -> list[dict[str, Any]]: ...
    async def get_reward(self, reward_id: str, request_id: str) -> dict[str, Any]: ...
    async def create_reward(self, data: RewardInput, request_id: str) -> dict[str, Any]: ...
    async def redeem_reward(self, user_id: str, reward_id: str, request_id: str) -> dict[str, Any]: ...
    async def get_history(self, user_id: str, page: PageRequest, request_id: str) -> Page[dict[str, Any]]: ...
    async def get_redemptions(self, user_id: str, page: PageRequest, request_id: str) -> Page[dict[str, Any]]: ...
    async def get_redemption(self, user_id: str, redemption_id: str, request_id: str) -> dict[str, Any]: ...
    async def get_referral(self, user_id: str, request_id: str) -> dict[str, Any]: ...
    async def apply_referral(self, user_id: str, code: str, request_id: str) -> dict[str, Any]: ...
    async def list_programs(self, filters: ProgramFilters, page: PageRequest, request_id: str) -> Page[dict[str, Any]]: ...
    async def adjust_points(self, user_id: str, points: int, reason: str, request_id: str) -> dict[str, Any]: ...
    async def list_all_redemptions(self, filters: RedemptionFilters, page: PageRequest, request_id: str) -> Page[dict[str, Any]]: ...
    async def get_member(self, user_id: str, request_id: str) -> dict[str, Any]: ...
    async def get_redemption_by_id(self, redemption_id: str, request_id: str) -> dict[str, Any]: ...
    async def update_redemption_status(
        self, redemption_id: str, status: str, notes: str | None, request_id: str
    ) -> dict[str, Any]: ...
    async def use_redemption_code(self, code: str, request_id: str) -> dict[str, Any]: ...
    async def get_statistics(self, user_id: str, period: str, request_id: str) -> dict[str, Any]: ...
    async def get_dashboard(self, user_id: str, period: str, request_id: str) -> dict[str, Any]: ...
    async def get_program_statistics(self, request_id: str) -> dict[str, Any]: ...
    async def award_order_points(self, user_id: str, order_total: float, order_id: str, request_id: str) -> dict[str, Any]: ...
    async def award_bonus(
        self, user_ids: list[str], points: int, description: str, reference_id: str, request_id: str
    ) -> dict[str, int]: ...
    async def members_with_points(self, request_id: str) -> list[dict[str, Any]]: ...
    async def expire_points(self, request_id: str) -> int: ...
    async def expire_redemptions(self, request_id: str) -> int: ...


@dataclass
class _Program:
    user_id: str
    referral_code: str
    created_at: datetime
    points: int = 0
    lifetime_points: int = 0
    referred_by: str | None = None
    referrals: int = 0

    def to_dict(self) -> dict[str, Any]:
        tier = tier_for(self.lifetime_points)
        upcoming = next_tier(self.lifetime_points)
        return {
            "userId": self.user_id,
            "points": self.points,
            "lifetimePoints": self.lifetime_points,
            "tier": tier,
            "nextTier": upcoming,
            "pointsToNextTier": upcoming["minPoints"] - self.lifetime_points if upcoming else 0,
            "referralCode": self.referral_code,
            "createdAt": iso(self.created_at),
        }


@dataclass
class _Transaction:
    id: str
    user_id: str
    type: str
    points: int
    description: str
    created_at: datetime
    reference_id: str | None = None
    expires_at: datetime | None = None
    expired: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "type": self.type,
            "points": self.points,
            "description": self.description,
            "referenceId": self.reference_id,
            "createdAt": iso(self.created_at),
            "expiresAt": iso(self.expires_at),
        }


@dataclass
class _Reward:
    id: str
    name: str
    points_cost: int
    type: str
    created_at: datetime
    description: str | None = None
    value: float | None = None
    active: bool = True
    expires_in_days: int = DEFAULT_REDEMPTION_TTL_DAYS

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "pointsCost": self.points_cost,
            "type": self.type,
            "value": self.value,
            "active": self.active,
            "expiresInDays": self.expires_in_days,
            "createdAt": iso(self.created_at),
        }


@dataclass
class _Redemption:
    id: str
    user_id: str
    reward_id: str
    reward_name: str
    points_spent: int
    code: str
    created_at: datetime
    expires_at: datetime
    status: str = "ACTIVE"
    used_at: datetime | None = None
    notes: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "rewardId": self.reward_id,
            "rewardName": self.reward_name,
            "pointsSpent": self.points_spent,
            "code": self.code,
            "status": self.status,
            "notes": self.notes,
            "createdAt": iso(self.created_at),
            "expiresAt": iso(self.expires_at),
            "usedAt": iso(self.used_at),
        }


class InMemoryLoyaltyService:
    def __init__(self) -> None:
        self._programs: dict[str, _Program] = {}
        self._transactions: list[_Transaction] = []
        self._rewards: dict[str, _Reward] = {}
        self._redemptions: dict[str, _Redemption] = {}
        self._lock = threading.RLock()

    def _program(self, user_id: str) -> _Program:
        program = self._programs.get(user_id)
        if program is None:
            program = _Program(user_id=user_id, referral_code=self._new_code(), created_at=utcnow())
            self._programs[user_id] = program
        return program

    def _new_code(self) -> str:
        taken = {p.referral_code for p in self._programs.values()}
        while True:
            code = f"REF{secrets.token_hex(4).upper()}"
            if code not in taken:
                return code

    def _post(
        self,
        program: _Program,
        kind: str,
        points: int,
        description: str,
        reference_id: str | None = None,
        *,
        lifetime: bool = True,
    ) -> _Transaction:
        now = utcnow()
        program.points += points
        if points > 0 and lifetime:
            program.lifetime_points += points
        tx = _Transaction(
            id=new_object_id(),
            user_id=program.user_id,
            type=kind,
            points=points,
            description=description,
            created_at=now,
            reference_id=reference_id,
            expires_at=now + POINTS_TTL if points > 0 else None,
        )
        self._transactions.append(tx)
        return tx

    # ---- member views ----

    async def get_tiers(self, request_id: str) -> list[Tier]:
        return list(TIERS)

    async def get_program(self, user_id: str, request_id: str) -> dict[str, Any]:
        logger.info("[%s] Loading loyalty program for user %s", request_id, user_id)
        with self._lock:
            return self._program(user_id).to_dict()

    async def list_rewards(self, user_id: str | None, request_id: str) -> list[dict[str, Any]]:
        with self._lock:
            balance = self._program(user_id).points if user_id else None
            rows = sorted((r for r in self._rewards.values() if r.active), key=lambda r: r.points_cost)
            out = []
            for reward in rows:
                item = reward.to_dict()
                if balance is not None:
                    item["canRedeem"] = balance >= reward.points_cost
                out.append(item)
            return out

    def _reward(self, reward_id: str) -> _Reward:
        reward = self._rewards.get(reward_id)
        if reward is None:
            raise NotFoundError(message_key="rewardNotFound")
        return reward

    async def get_reward(self, reward_id: str, request_id: str) -> dict[str, Any]:
        with self._lock:
            return self._reward(reward_id).to_dict()

    async def create_reward(self, data: RewardInput, request_id: str) -> dict[str, Any]:
        logger.info("[%s] Creating reward %r", request_id, data.get("name"))
        reward = _Reward(
            id=new_object_id(),
            name=data["name"],
            description=data.get("description"),
            points_cost=data["pointsCost"],
            type=data["type"],
            value=data.get("value"),
            active=data.get("active", True),
            expires_in_days=data.get("expiresInDays", DEFAULT_REDEMPTION_TTL_DAYS),
            created_at=utcnow(),
        )
        with self._lock:
            self._rewards[reward.id] = reward
        return reward.to_dict()

    async def redeem_reward(self, user_id: str, reward_id: str, request_id: str) -> dict[str, Any]:
        logger.info("[%s] User %s redeeming reward %s", request_id, user_id, reward_id)
        with self._lock:
            reward = self._reward(reward_id)
            if not reward.active:
                raise BusinessError("Reward is not available")
            program = self._program(user_id)
            if program.points < reward.points_cost:
                raise BusinessError(message_key="insufficientPoints")
            now = utcnow()
            redemption = _Redemption(
                id=new_object_id(),
                user_id=user_id,
                reward_id=reward.id,
                reward_name=reward.name,
                points_spent=reward.points_cost,
                code=secrets.token_hex(5).upper(),
                created_at=now,
                expires_at=now + timedelta(days=reward.expires_in_days),
            )
            self._redemptions[redemption.id] = redemption
            self._post(program, "REDEEM", -reward.points_cost, f"Redeemed {reward.name}", redemption.id)
            return redemption.to_dict()

    async def get_history(self, user_id: str, page: PageRequest, request_id: str) -> Page[dict[str, Any]]:
        with self._lock:
            rows = [t for t in self._transactions if t.user_id == user_id]
        rows.sort(key=lambda t: t.created_at, reverse=True)
        return paginate_sequence([t.to_dict() for t in rows], page)

    async def get_redemptions(self, user_id: str, page: PageRequest, request_id: str) -> Page[dict[str, Any]]:
        with self._lock:
            rows = [r for r in self._redemptions.values() if r.user_id == user_id]
        rows.sort(key=lambda r: r.created_at, reverse=True)
        return paginate_sequence([r.to_dict() for r in rows], page)

    async def get_redemption(self, user_id: str, redemption_id: str, request_id: str) -> dict[str, Any]:
        with self._lock:
            redemption = self._redemptions.get(redemption_id)
            if redemption is None or redemption.user_id != user_id:
                raise NotFoundError(message_key="redemptionNotFound")
            return redemption.to_dict()

    # ---- referrals ----

    async def get_referral(self, user_id: str, request_id: str) -> dict[str, Any]:
        with self._lock:
            program = self._program(user_id)
            return {
                "referralCode": program.referral_code,
                "referrals": program.referrals,
                "pointsEarned": program.referrals * REFERRER_BONUS,
                "referrerBonus": REFERRER_BONUS,
                "refereeBonus": REFEREE_BONUS,
            }

    async def apply_referral(self, user_id: str, code: str, request_id: str) -> dict[str, Any]:
        logger.info("[%s] User %s applying referral code %s", request_id, user_id, code)
        with self._lock:
            referee = self._program(user_id)
            referrer = next((p for p in self._programs.values() if p.referral_code == code.upper()), None)
            if referrer is not None and referrer.user_id == user_id:
                raise BusinessError("Cannot refer yourself")
            if referrer is None or referee.referred_by is not None:
                raise BusinessError("Invalid or already used referral code")
            referee.referred_by = referrer.user_id
            referrer.referrals += 1
            self._post(referrer, "REFERRAL", REFERRER_BONUS, f"Referral bonus for inviting {user_id}", user_id)
            self._post(referee, "REFERRAL", REFEREE_BONUS, "Welcome bonus for using a referral code", referrer.user_id)
            return {"referrerId": referrer.user_id, "pointsAwarded": REFEREE_BONUS, "program": referee.to_dict()}

    # ---- administration ----

    async def list_programs(self, filters: ProgramFilters, page: PageRequest, request_id: str) -> Page[dict[str, Any]]:
        search = (filters.get("search") or "").lower()
        with self._lock:
            rows = [
                p
                for p in self._programs.values()
                if (filters.get("minPoints") is None or p.points >= filters["minPoints"])  # type: ignore[operator]
                and (filters.get("maxPoints") is None or p.points <= filters["maxPoints"])  # type: ignore[operator]
                and (not search or search in p.user_id.lower() or search in p.referral_code.lower())
            ]
        rows.sort(key=lambda p: p.points, reverse=True)
        return paginate_sequence([p.to_dict() for p in rows], page)

    async def adjust_points(self, user_id: str, points: int, reason: str, request_id: str) -> dict[str, Any]:
        logger.info("[%s] Adjusting points for user %s by %d (%s)", request_id, user_id, points, reason)
        with self._lock:
            program = self._program(user_id)
            if points < 0 and program.points + points < 0:
                raise BusinessError(f"Insufficient points. Current: {program.points}, Required: {-points}")
            tx = self._post(program, "ADJUST", points, reason)
            return {"transaction": tx.to_dict(), "program": program.to_dict()}

    async def list_all_redemptions(
        self, filters: RedemptionFilters, page: PageRequest, request_id: str
    ) -> Page[dict[str, Any]]:
        with self._lock:
            rows = [
                r
                for r in self._redemptions.values()
                if (not filters.get("status") or r.status == filters["status"])
                and (filters.get("startDate") is None or r.created_at >= filters["startDate"])  # type: ignore[operator]
                and (filters.get("endDate") is None or r.created_at <= filters["endDate"])  # type: ignore[operator]
            ]
        rows.sort(key=lambda r: r.created_at, reverse=True)
        return paginate_sequence([r.to_dict() for r in rows], page)

    async def get_member(self, user_id: str, request_id: str) -> dict[str, Any]:
        with self._lock:
            program = self._programs.get(user_id)
            if program is None:
                raise NotFoundError(message_key="programNotFound")
            recent = sorted((t for t in self._transactions if t.user_id == user_id), key=lambda t: t.created_at, reverse=True)
            return {
                **program.to_dict(),
                "referredBy": program.referred_by,
                "referrals": program.referrals,
                "recentTransactions": [t.to_dict() for t in recent[:10]],
            }

    def _redemption(self, redemption_id: str) -> _Redemption:
        redemption = self._redemptions.get(redemption_id)
        if redemption is None:
            raise NotFoundError(message_key="redemptionNotFound")
        return redemption

    async def get_redemption_by_id(self, redemption_id: str, request_id: str) -> dict[str, Any]:
        with self._lock:
            return self._redemption(redemption_id).to_dict()

    async def update_redemption_status(
        self, redemption_id: str, status: str, notes: str | None, request_id: str
    ) -> dict[str, Any]:
        """Close an active redemption; cancelling refunds its points."""
        logger.info("[%s] Setting redemption %s to %s", request_id, redemption_id, status)
        with self._lock:
            redemption = self._redemption(redemption_id)
            if redemption.status != "ACTIVE":
                raise BusinessError(f"Redemption is already {redemption.status.lower()}")
            redemption.status = status
            if notes is not None:
                redemption.notes = notes
            if status == "USED":
                redemption.used_at = utcnow()
            elif status == "CANCELLED":
                self._post(
                    self._program(redemption.user_id),
                    "REFUND",
                    redemption.points_spent,
                    f"Refund for cancelled {redemption.reward_name}",
                    redemption.id,
                    lifetime=False,
                )
            return redemption.to_dict()

    async def use_redemption_code(self, code: str, request_id: str) -> dict[str, Any]:
        logger.info("[%s] Using redemption code %s", request_id, code)
        now = utcnow()
        with self._lock:
            redemption = next((r for r in self._redemptions.values() if r.code == code.upper()), None)
            if redemption is None or redemption.status != "ACTIVE" or redemption.expires_at <= now:
                raise ValidationError([{"field": "code", "message": "Invalid or expired redemption code"}])
            redemption.status = "USED"
            redemption.used_at = now
            return redemption.to_dict()

    def _statistics(self, user_id: str, period: str, now: datetime) -> dict[str, Any]:
        window = STATISTICS_PERIODS[period]
        since = now - window if window else None
        rows = [t for t in self._transactions if t.user_id == user_id and (since is None or t.created_at >= since)]
        by_type: dict[str, list[int]] = {}
        by_day: dict[str, int] = {}
        for tx in rows:
            entry = by_type.setdefault(tx.type, [0, 0])
            entry[0] += tx.points
            entry[1] += 1
            day = tx.created_at.date().isoformat()
            by_day[day] = by_day.get(day, 0) + tx.points
        earned = sum(t.points for t in rows if t.points > 0 and t.type != "REFUND")
        redeemed = max(0, -sum(t.points for t in rows if t.type in ("REDEEM", "REFUND")))
        return {
            "period": period,
            "totalEarned": earned,
            "totalRedeemed": redeemed,
            "netPoints": earned - redeemed,
            "pointsByType": [{"type": k, "points": v[0], "count": v[1]} for k, v in sorted(by_type.items())],
            "chartData": [{"date": d, "points": p} for d, p in sorted(by_day.items())],
        }

    async def get_statistics(self, user_id: str, period: str, request_id: str) -> dict[str, Any]:
        logger.info("[%s] Loyalty statistics for user %s, period %s", request_id, user_id, period)
        with self._lock:
            return self._statistics(user_id, period, utcnow())

    async def get_dashboard(self, user_id: str, period: str, request_id: str) -> dict[str, Any]:
        now = utcnow()
        with self._lock:
            program = self._program(user_id)
            recent = sorted((t for t in self._transactions if t.user_id == user_id), key=lambda t: t.created_at, reverse=True)
            active = [
                r.to_dict()
                for r in sorted(self._redemptions.values(), key=lambda r: r.expires_at)
                if r.user_id == user_id and r.status == "ACTIVE" and r.expires_at > now
            ]
            affordable = sum(1 for r in self._rewards.values() if r.active and r.points_cost <= program.points)
            return {
                "program": program.to_dict(),
                "statistics": self._statistics(user_id, period, now),
                "recentTransactions": [t.to_dict() for t in recent[:5]],
                "activeRedemptions": active,
                "availableRewards": affordable,
            }

    async def get_program_statistics(self, request_id: str) -> dict[str, Any]:
        with self._lock:
            programs = list(self._programs.values())
            tiers = {t["name"]: 0 for t in TIERS}
            for program in programs:
                tiers[tier_for(program.lifetime_points)["name"]] += 1
            by_type: dict[str, list[int]] = {}
            for tx in self._transactions:
                entry = by_type.setdefault(tx.type, [0, 0])
                entry[0] += tx.points
                entry[1] += 1
            statuses = {s: 0 for s in REDEMPTION_STATUSES}
            for redemption in self._redemptions.values():
                statuses[redemption.status] += 1
            return {
                "members": len(programs),
                "pointsOutstanding": sum(p.points for p in programs),
                "lifetimePointsIssued": sum(p.lifetime_points for p in programs),
                "tierDistribution": [{"tier": name, "members": n} for name, n in tiers.items()],
                "pointsByType": [{"type": k, "points": v[0], "count": v[1]} for k, v in sorted(by_type.items())],
                "redemptionsByStatus": statuses,
                "rewards": {
                    "total": len(self._rewards),
                    "active": sum(1 for r in self._rewards.values() if r.active),
                },
            }

    # ---- hooks used by orders and scheduled jobs ----

    async def award_order_points(self, user_id: str, order_total: float, order_id: str, request_id: str) -> dict[str, Any]:
        """Credit an order once; repeated calls report the original award."""
        with self._lock:
            earlier = next(
                (t for t in self._transactions if t.type == "EARN" and t.user_id == user_id and t.reference_id == order_id),
                None,
            )
            if earlier is not None:
                logger.info("[%s] Points already awarded for order %s", request_id, order_id)
                return {"orderId": order_id, "userId": user_id, "points": earlier.points, "alreadyAwarded": True}
            points = order_points(order_total)
            self._post(self._program(user_id), "EARN", points, f"Points for order {order_id}", order_id)
        logger.info("[%s] Awarded %d points to user %s for order %s", request_id, points, user_id, order_id)
        return {"orderId": order_id, "userId": user_id, "points": points, "alreadyAwarded": False}

    async def award_bonus(
        self, user_ids: list[str], points: int, description: str, reference_id: str, request_id: str
    ) -> dict[str, int]:
        """Credit ``points`` to each user at most once per ``reference_id``."""
        awarded = skipped = 0
        with self._lock:
            for user_id in user_ids:
                if any(t.type == "BONUS" and t.user_id == user_id and t.reference_id == reference_id for t in self._transactions):
                    skipped += 1
                    continue
                self._post(self._program(user_id), "BONUS", points, description, reference_id)
                awarded += 1
        logger.info("[%s] Bonus %r: awarded %d, skipped %d", request_id, reference_id, awarded, skipped)
        return {"awarded": awarded, "skipped": skipped}

    async def members_with_points(self, request_id: str) -> list[dict[str, Any]]:
        with self._lock:
            return [p.to_dict() for p in self._programs.values() if p.points > 0]

    async def expire_points(self, request_id: str) -> int:
        """Expire earned points past their TTL; returns the number of points removed."""
        now = utcnow()
        removed = 0
        with self._lock:
            for tx in list(self._transactions):
                if tx.points <= 0 or tx.expired or tx.expires_at is None or tx.expires_at > now:
                    continue
                tx.expired = True
                program = self._program(tx.user_id)
                amount = min(tx.points, program.points)
                if amount > 0:
                    self._post(program, "EXPIRE", -amount, f"Points expired from {tx.id}", tx.id)
                    removed += amount
        logger.info("[%s] Expired %d loyalty points", request_id, removed)
        return removed

    async def expire_redemptions(self, request_id: str) -> int:
        now = utcnow()
        count = 0
        with self._lock:
            for redemption in self._redemptions.values():
                if redemption.status == "ACTIVE" and redemption.expires_at <= now:
                    redemption.status = "EXPIRED"
                    count += 1
        logger.info("[%s] Expired %d redemptions", request_id, count)
        return count


__all__ = [
    "LoyaltyService",
    "InMemoryLoyaltyService",
    "TIERS",
    "REWARD_TYPES",
    "REDEMPTION_STATUSES",
    "REFERRER_BONUS",
    "REFEREE_BONUS",
    "BIRTHDAY_BONUS",
    "STATISTICS_PERIODS",
    "TRANSACTION_TYPES",
    "tier_for",
    "next_tier",
    "order_points",
]
