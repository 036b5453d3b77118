"""Named cron jobs and the registry that starts, stops and runs them.

Each running job whose next fire time has passed is executed once by
``run_pending`` and rescheduled from its cron expression. A registry built with
``tick_seconds`` drives itself: starting the first job spawns a daemon thread
that calls ``run_pending`` every tick, and the thread exits once no job is left
running. Without ``tick_seconds`` something else has to call ``run_pending``
(``scripts/run_scheduler.py`` or a test).
"""
from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any

from croniter import croniter

from . import metrics
from .errors import BusinessError, ConflictError, NotFoundError, ValidationError
from .ids import iso, new_uuid, utcnow
from .loyalty_service import BIRTHDAY_BONUS

if TYPE_CHECKING:
    from .config import Config
    from .services import ServiceRegistry

logger = logging.getLogger(__name__)

JobFunc = Callable[[str], Awaitable[Any]]


def validate_cron(expression: str) -> bool:
    return croniter.is_valid(expression)


def next_runs(expression: str, now: datetime, count: int = 5) -> list[datetime]:
    it = croniter(expression, now)
    return [it.get_next(datetime) for _ in range(count)]


@dataclass
class Job:
    name: str
    cron: str
    description: str
    func: JobFunc
    custom: bool = False
    running: bool = False
    last_run: datetime | None = None
    next_run: datetime | None = None
    last_error: str | None = None
    last_result: Any = None

    def schedule_from(self, now: datetime) -> None:
        self.next_run = croniter(self.cron, now).get_next(datetime)

    def to_status(self) -> dict[str, Any]:
        return {
            "running": self.running,
            "description": self.description,
            "cron": self.cron,
            "custom": self.custom,
            "lastRun": iso(self.last_run) if self.last_run else None,
            "nextRun": iso(self.next_run) if self.running and self.next_run else None,
            "lastError": self.last_error,
        }


class JobRegistry:
    def __init__(self, clock: Callable[[], datetime] = utcnow, tick_seconds: float | None = None) -> None:
        self._jobs: dict[str, Job] = {}
        self._lock = threading.RLock()
        self._clock = clock
        self._tick = tick_seconds
        self._driver: threading.Thread | None = None
        self._wake = threading.Event()

    def now(self) -> datetime:
        return self._clock()

    def register(self, name: str, cron: str, description: str, func: JobFunc) -> Job:
        if not validate_cron(cron):
            raise ValueError(f"invalid cron expression for {name}: {cron!r}")
        job = Job(name=name, cron=cron, description=description, func=func)
        with self._lock:
            self._jobs[name] = job
        return job

    def add_custom_job(self, name: str, cron: str, description: str, func: JobFunc) -> Job:
        """Register a job at runtime; it stays stopped until started."""
        if not validate_cron(cron):
            raise ValidationError([{"field": "cron", "message": "Invalid cron expression"}])
        with self._lock:
            if name in self._jobs:
                raise ConflictError(message_key="jobExists", params={"name": name})
            job = Job(name=name, cron=cron, description=description, func=func, custom=True)
            self._jobs[name] = job
        logger.info("Added custom job: %s (%s)", name, cron)
        return job

    def remove_custom_job(self, name: str) -> Job:
        with self._lock:
            job = self.get(name)
            if not job.custom:
                raise BusinessError(f"Job {name} is built in and cannot be removed")
            self.stop(name)
            del self._jobs[name]
        logger.info("Removed custom job: %s", name)
        return job

    def get(self, name: str) -> Job:
        job = self._jobs.get(name)
        if job is None:
            raise NotFoundError(message_key="jobNotFound", params={"name": name})
        return job

    def names(self) -> list[str]:
        return list(self._jobs)

    def start(self, name: str) -> Job:
        with self._lock:
            job = self.get(name)
            if not job.running:
                job.running = True
                job.schedule_from(self._clock())
                logger.info("Started job: %s (next run %s)", name, iso(job.next_run) if job.next_run else "-")
            self._ensure_driver()
            return job

    def stop(self, name: str) -> Job:
        with self._lock:
            job = self.get(name)
            if job.running:
                job.running = False
                job.next_run = None
                logger.info("Stopped job: %s", name)
        self._wake.set()
        return job

    def start_all(self) -> list[str]:
        return [self.start(name).name for name in self.names()]

    def stop_all(self) -> list[str]:
        return [self.stop(name).name for name in self.names()]

    def running_count(self) -> int:
        return sum(1 for job in self._jobs.values() if job.running)

    def driving(self) -> bool:
        driver = self._driver
        return driver is not None and driver.is_alive()

    def status(self) -> dict[str, dict[str, Any]]:
        with self._lock:
            return {name: job.to_status() for name, job in self._jobs.items()}

    async def run_now(self, name: str) -> Any:
        """Execute a job immediately; failures are recorded on the job and re-raised."""
        job = self.get(name)
        request_id = f"job-{new_uuid()}"
        logger.info("[%s] Running job: %s", request_id, name)
        job.last_run = self._clock()
        try:
            result = await job.func(request_id)
        except Exception as e:
            job.last_error = str(e) or e.__class__.__name__
            metrics.increment(metrics.JOB_RUNS, {"job": name, "outcome": "error"})
            logger.exception("[%s] Job %s failed", request_id, name)
            raise
        job.last_error = None
        job.last_result = result
        metrics.increment(metrics.JOB_RUNS, {"job": name, "outcome": "ok"})
        logger.info("[%s] Job %s completed: %r", request_id, name, result)
        return result

    async def run_pending(self, now: datetime | None = None) -> list[str]:
        """Run every running job that is due at ``now``; returns the names that ran."""
        now = now or self._clock()
        with self._lock:
            due = [job for job in self._jobs.values() if job.running and job.next_run is not None and job.next_run <= now]
            # rescheduled before running so an overlapping tick cannot pick them up again
            for job in due:
                job.schedule_from(now)
        ran: list[str] = []
        for job in due:
            try:
                await self.run_now(job.name)
            except Exception:
                logger.warning("Job %s failed at %s; continuing with remaining jobs", job.name, iso(now))
            ran.append(job.name)
        return ran

    # ---- background driver ----

    def _ensure_driver(self) -> None:
        if not self._tick or self.driving():
            return
        self._wake.clear()
        self._driver = threading.Thread(target=self._drive, name="job-scheduler", daemon=True)
        self._driver.start()

    def _drive(self) -> None:
        logger.info("Scheduler driver started (tick %ss)", self._tick)
        while True:
            with self._lock:
                if self.running_count() == 0:
                    self._driver = None
                    logger.info("Scheduler driver stopped: no running jobs")
                    return
            ran = asyncio.run(self.run_pending())
            if ran:
                logger.info("Ran jobs: %s", ", ".join(ran))
            self._wake.wait(self._tick)
            self._wake.clear()


def _is_birthday(birthday: str | None, today: datetime) -> bool:
    """``birthday`` is ``YYYY-MM-DD`` or ``MM-DD``; Feb 29 falls on Feb 28 in common years."""
    if not birthday:
        return False
    month_day = birthday[-5:]
    if month_day == today.strftime("%m-%d"):
        return True
    leap = today.year % 4 == 0 and (today.year % 100 != 0 or today.year % 400 == 0)
    return month_day == "02-29" and not leap and today.strftime("%m-%d") == "02-28"


def default_jobs(
    services: ServiceRegistry,
    config: Config,
    *,
    clock: Callable[[], datetime] = utcnow,
    tick_seconds: float | None = None,
) -> JobRegistry:
    """Maintenance jobs for the subsystems this application hosts."""
    registry = JobRegistry(clock=clock, tick_seconds=tick_seconds)

    async def process_email_queue(request_id: str) -> int:
        return await services.email.process_queue(50, request_id)

    async def expire_loyalty_points(request_id: str) -> int:
        return await services.loyalty.expire_points(request_id)

    async def cleanup_expired_redemptions(request_id: str) -> int:
        return await services.loyalty.expire_redemptions(request_id)

    async def update_currency_rates(request_id: str) -> dict[str, Any] | None:
        if not config.exchange_rate_api_key:
            logger.warning("[%s] EXCHANGE_RATE_API_KEY is not set; skipping rate update", request_id)
            return None
        return await services.currencies.update_exchange_rates(config.exchange_rate_api_key, request_id)

    async def award_birthday_bonuses(request_id: str) -> dict[str, int]:
        today = registry.now()
        celebrating = [c for c in services.catalog.customers() if c["active"] and _is_birthday(c.get("birthday"), today)]
        logger.info("[%s] Found %d customers with birthdays today", request_id, len(celebrating))
        totals = {"awarded": 0, "skipped": 0}
        for customer in celebrating:
            result = await services.loyalty.award_bonus(
                [customer["id"]], BIRTHDAY_BONUS, "Birthday bonus points", f"birthday-{today.year}", request_id
            )
            totals["awarded"] += result["awarded"]
            totals["skipped"] += result["skipped"]
            if result["awarded"]:
                await services.email.queue_template(
                    "birthday-bonus",
                    customer["email"],
                    {"firstName": customer["firstName"], "points": BIRTHDAY_BONUS, "storeName": config.store_name},
                    None,
                    request_id,
                )
        return totals

    async def send_weekly_loyalty_summary(request_id: str) -> int:
        sent = 0
        for member in await services.loyalty.members_with_points(request_id):
            customer = services.catalog.get_customer(member["userId"])
            if customer is None or not customer["email"]:
                continue
            stats = await services.loyalty.get_statistics(member["userId"], "week", request_id)
            if not (stats["totalEarned"] or stats["totalRedeemed"]):
                continue
            await services.email.queue_template(
                "loyalty-summary",
                customer["email"],
                {
                    "firstName": customer["firstName"],
                    "totalEarned": stats["totalEarned"],
                    "totalRedeemed": stats["totalRedeemed"],
                    "balance": member["points"],
                    "storeName": config.store_name,
                },
                None,
                request_id,
            )
            sent += 1
        logger.info("[%s] Queued %d weekly loyalty summaries", request_id, sent)
        return sent

    registry.register("processEmailQueue", "*/5 * * * *", "Process email queue every 5 minutes", process_email_queue)
    registry.register(
        "expireLoyaltyPoints", "0 0 * * *", "Expire old loyalty points daily at midnight", expire_loyalty_points
    )
    registry.register(
        "awardBirthdayBonuses", "0 8 * * *", "Award birthday bonus points daily at 8 AM", award_birthday_bonuses
    )
    registry.register(
        "updateCurrencyRates", "0 6 * * *", "Update currency exchange rates daily at 6 AM", update_currency_rates
    )
    registry.register(
        "cleanupExpiredRedemptions", "0 2 * * *", "Clean up expired redemptions daily at 2 AM", cleanup_expired_redemptions
    )
    registry.register(
        "sendWeeklyLoyaltySummary",
        "0 9 * * 0",
        "Send weekly loyalty summary every Sunday at 9 AM",
        send_weekly_loyalty_summary,
    )
    return registry


__all__ = ["Job", "JobRegistry", "default_jobs", "validate_cron", "next_runs"]
