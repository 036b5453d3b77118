from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timedelta, timezone

import pytest

from storefront.config import Config
from storefront.errors import NotFoundError
from storefront.app_factory import create_app
from storefront.scheduler import JobRegistry, _is_birthday, default_jobs

T0 = datetime(2024, 1, 1, 0, 0, tzinfo=timezone.utc)


def _registry():
    calls = []

    async def tick(request_id):
        calls.append(request_id)
        return len(calls)

    registry = JobRegistry(clock=lambda: T0)
    registry.register("tick", "*/5 * * * *", "Every five minutes", tick)
    return registry, calls


def test_register_rejects_bad_cron():
    with pytest.raises(ValueError):
        JobRegistry().register("bad", "every minute", "nope", lambda rid: None)


def test_unknown_job():
    with pytest.raises(NotFoundError):
        JobRegistry().get("ghost")


def test_start_schedules_next_run_and_stop_clears_it():
    registry, _ = _registry()
    job = registry.start("tick")
    assert job.running is True
    assert job.next_run == datetime(2024, 1, 1, 0, 5, tzinfo=timezone.utc)
    assert registry.status()["tick"]["nextRun"] is not None

    registry.stop("tick")
    status = registry.status()["tick"]
    assert status["running"] is False
    assert status["nextRun"] is None
    assert registry.running_count() == 0


# GIVEN: a started five-minute job
# WHEN: pending jobs are run before and at the due time
# THEN: it fires only when due and is rescheduled from that time
def test_run_pending_only_runs_due_jobs():
    registry, calls = _registry()
    registry.start("tick")

    assert asyncio.run(registry.run_pending(datetime(2024, 1, 1, 0, 4, tzinfo=timezone.utc))) == []
    due = datetime(2024, 1, 1, 0, 5, tzinfo=timezone.utc)
    assert asyncio.run(registry.run_pending(due)) == ["tick"]
    assert len(calls) == 1
    assert calls[0].startswith("job-")
    assert registry.get("tick").next_run == datetime(2024, 1, 1, 0, 10, tzinfo=timezone.utc)


def test_stopped_jobs_never_run():
    registry, calls = _registry()
    assert asyncio.run(registry.run_pending(datetime(2030, 1, 1, tzinfo=timezone.utc))) == []
    assert calls == []


def test_failing_job_records_error_and_keeps_schedule():
    async def boom(request_id):
        raise RuntimeError("provider offline")

    registry = JobRegistry(clock=lambda: T0)
    registry.register("boom", "0 * * * *", "Hourly", boom)
    registry.start("boom")

    with pytest.raises(RuntimeError):
        asyncio.run(registry.run_now("boom"))
    assert registry.status()["boom"]["lastError"] == "provider offline"

    ran = asyncio.run(registry.run_pending(datetime(2024, 1, 1, 1, 0, tzinfo=timezone.utc)))
    assert ran == ["boom"]
    assert registry.get("boom").next_run == datetime(2024, 1, 1, 2, 0, tzinfo=timezone.utc)


def test_start_all_and_stop_all():
    registry, _ = _registry()
    registry.register("other", "0 0 * * *", "Daily", lambda rid: None)
    assert registry.start_all() == ["tick", "other"]
    assert registry.running_count() == 2
    assert registry.stop_all() == ["tick", "other"]
    assert registry.running_count() == 0


def test_default_jobs(services):
    registry = default_jobs(services, Config())
    assert registry.names() == [
        "processEmailQueue",
        "expireLoyaltyPoints",
        "awardBirthdayBonuses",
        "updateCurrencyRates",
        "cleanupExpiredRedemptions",
        "sendWeeklyLoyaltySummary",
    ]
    assert asyncio.run(registry.run_now("updateCurrencyRates")) is None
    assert asyncio.run(registry.run_now("processEmailQueue")) == 0
    assert asyncio.run(registry.run_now("cleanupExpiredRedemptions")) == 0


def test_status_endpoint(client, admin_headers):
    jobs = client.get("/scheduler/status", headers=admin_headers).get_json()["data"]["jobs"]
    assert set(jobs) == {
        "processEmailQueue",
        "expireLoyaltyPoints",
        "awardBirthdayBonuses",
        "updateCurrencyRates",
        "cleanupExpiredRedemptions",
        "sendWeeklyLoyaltySummary",
    }
    assert jobs["sendWeeklyLoyaltySummary"]["cron"] == "0 9 * * 0"
    assert jobs["processEmailQueue"]["cron"] == "*/5 * * * *"
    assert jobs["processEmailQueue"]["running"] is False


def test_start_stop_endpoints(client, admin_headers):
    resp = client.post("/scheduler/start/processEmailQueue", headers=admin_headers)
    assert resp.status_code == 200
    assert resp.get_json()["message"] == "Job processEmailQueue started"
    assert resp.get_json()["data"]["running"] is True
    assert client.get("/healthz").get_json()["data"]["jobs"] == 1

    resp = client.post("/scheduler/stop/processEmailQueue", headers=admin_headers)
    assert resp.get_json()["message"] == "Job processEmailQueue stopped"


def test_start_all_endpoint(client, admin_headers):
    body = client.post("/scheduler/start-all", headers=admin_headers).get_json()
    assert len(body["data"]["jobs"]) == 6
    assert body["message"] == "All jobs started"
    body = client.post("/scheduler/stop-all", headers=admin_headers).get_json()
    assert body["message"] == "All jobs stopped"


def test_run_endpoint(client, services, admin_headers):
    asyncio.run(services.email.queue_email("a@example.com", "hi", "<p/>", "t"))
    resp = client.post("/scheduler/run/processEmailQueue", headers=admin_headers)
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["message"] == "Job processEmailQueue executed"
    assert body["data"]["result"] == 1
    assert body["data"]["lastRun"] is not None


def test_unknown_job_endpoint(client, admin_headers):
    resp = client.post("/scheduler/run/ghost", headers=admin_headers)
    assert resp.status_code == 404
    assert resp.get_json()["message"] == "Job ghost not found"


def test_job_messages_localized(client, admin_headers):
    resp = client.post("/scheduler/start/expireLoyaltyPoints?lang=es", headers=admin_headers)
    assert resp.get_json()["message"] == "Tarea expireLoyaltyPoints iniciada"


def test_failing_job_is_logged(caplog):
    async def boom(request_id):
        raise RuntimeError("provider offline")

    registry = JobRegistry(clock=lambda: T0)
    registry.register("boom", "0 * * * *", "Hourly", boom)
    registry.start("boom")

    with caplog.at_level(logging.INFO, logger="storefront.scheduler"):
        asyncio.run(registry.run_pending(datetime(2024, 1, 1, 1, 0, tzinfo=timezone.utc)))
    messages = [r.getMessage() for r in caplog.records]
    assert any(m.endswith("Job boom failed") for m in messages)
    assert "Job boom failed at 2024-01-01T01:00:00Z; continuing with remaining jobs" in messages


def test_missing_api_key_skips_rate_update(services, caplog):
    registry = default_jobs(services, Config(exchange_rate_api_key=None))
    with caplog.at_level(logging.WARNING, logger="storefront.scheduler"):
        assert asyncio.run(registry.run_now("updateCurrencyRates")) is None
    assert "EXCHANGE_RATE_API_KEY is not set" in caplog.text


def _wait_for(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while not predicate() and time.monotonic() < deadline:
        time.sleep(0.01)
    return predicate()


class _Clock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


# GIVEN: a self-driving registry with a five-minute job
# WHEN: the job is started and the clock moves past its fire time
# THEN: the background driver runs it, and the driver exits once the job is stopped
def test_background_driver_runs_due_jobs():
    clock = _Clock(T0)
    calls = []

    async def tick(request_id):
        calls.append(request_id)

    registry = JobRegistry(clock=clock, tick_seconds=0.01)
    registry.register("tick", "*/5 * * * *", "Every five minutes", tick)
    assert registry.driving() is False

    registry.start("tick")
    assert registry.driving() is True
    time.sleep(0.05)
    assert calls == []

    clock.now = T0 + timedelta(minutes=5)
    assert _wait_for(lambda: registry.status()["tick"]["lastRun"] is not None)
    assert registry.status()["tick"]["lastRun"] == "2024-01-01T00:05:00Z"
    assert len(calls) == 1

    registry.stop_all()
    assert _wait_for(lambda: not registry.driving())


def test_registry_without_tick_has_no_driver():
    registry, calls = _registry()
    registry.start("tick")
    assert registry.driving() is False


# GIVEN: an app whose registry drives itself
# WHEN: a job is started over HTTP and comes due
# THEN: the status endpoint reports its last run without anyone calling run_pending
def test_started_job_runs_in_web_process(services, admin_headers):
    clock = _Clock(T0)
    registry = default_jobs(services, Config(), clock=clock, tick_seconds=0.01)
    app = create_app({"TESTING": True, "SECRET_KEY": "test"}, services=services, job_registry=registry)
    client = app.test_client()
    try:
        assert client.post("/scheduler/start/processEmailQueue", headers=admin_headers).status_code == 200
        clock.now = T0 + timedelta(minutes=5)
        assert _wait_for(lambda: registry.status()["processEmailQueue"]["lastRun"] is not None)
        jobs = client.get("/scheduler/status", headers=admin_headers).get_json()["data"]["jobs"]
        assert jobs["processEmailQueue"]["lastRun"] == "2024-01-01T00:05:00Z"
    finally:
        registry.stop_all()


def test_testing_app_does_not_drive_jobs(app, client, admin_headers):
    client.post("/scheduler/start/processEmailQueue", headers=admin_headers)
    assert app.job_registry.driving() is False


def test_birthday_matching():
    assert _is_birthday("1990-01-01", T0)
    assert _is_birthday("01-01", T0)
    assert not _is_birthday("1990-01-02", T0)
    assert not _is_birthday(None, T0)
    assert _is_birthday("2000-02-29", datetime(2023, 2, 28, tzinfo=timezone.utc))
    assert not _is_birthday("2000-02-29", datetime(2024, 2, 28, tzinfo=timezone.utc))


# GIVEN: two customers, one with a birthday today
# WHEN: the birthday job runs twice on the same day
# THEN: only that customer gets 100 points and one email, once
def test_birthday_job_awards_once(services):
    services.catalog.add_customer("Ada", "Lovelace", "ada@example.com", id="user-1", birthday="1990-01-01")
    services.catalog.add_customer("Alan", "Turing", "alan@example.com", id="user-2", birthday="1990-06-23")
    services.catalog.add_customer("Inactive", "User", "old@example.com", id="user-3", birthday="01-01", active=False)
    registry = default_jobs(services, Config(), clock=lambda: T0)

    assert asyncio.run(registry.run_now("awardBirthdayBonuses")) == {"awarded": 1, "skipped": 0}
    assert asyncio.run(registry.run_now("awardBirthdayBonuses")) == {"awarded": 0, "skipped": 1}

    assert asyncio.run(services.loyalty.get_program("user-1", "t"))["points"] == 100
    assert asyncio.run(services.loyalty.get_program("user-2", "t"))["points"] == 0
    assert asyncio.run(services.email.process_queue(10, "t")) == 1
    assert services.email.transport.sent[-1].subject == "Happy Birthday!"
    assert services.email.transport.sent[-1].to == "ada@example.com"


# GIVEN: one active member with a customer record and one without
# WHEN: the weekly summary job runs
# THEN: only the member with an email address gets a summary
def test_weekly_summary_job(services):
    services.catalog.add_customer("Ada", "Lovelace", "ada@example.com", id="user-1")
    asyncio.run(services.loyalty.adjust_points("user-1", 120, "bonus", "t"))
    asyncio.run(services.loyalty.adjust_points("ghost", 80, "bonus", "t"))
    registry = default_jobs(services, Config())

    assert asyncio.run(registry.run_now("sendWeeklyLoyaltySummary")) == 1
    assert asyncio.run(services.email.process_queue(10, "t")) == 1
    message = services.email.transport.sent[-1]
    assert message.subject == "Your Weekly Loyalty Summary"
    assert "Points earned: 120" in message.html


def test_custom_job_lifecycle(client, services, admin_headers):
    body = {"name": "nightlyEmails", "cron": "0 3 * * *", "task": "processEmailQueue"}
    resp = client.post("/scheduler/jobs", json=body, headers=admin_headers)
    assert resp.status_code == 201
    data = resp.get_json()
    assert data["message"] == "Job nightlyEmails added"
    assert data["data"]["custom"] is True
    assert data["data"]["running"] is False

    duplicate = client.post("/scheduler/jobs", json=body, headers=admin_headers)
    assert duplicate.status_code == 409
    assert duplicate.get_json()["message"] == "Job nightlyEmails already exists"

    asyncio.run(services.email.queue_email("a@example.com", "hi", "<p/>", "t"))
    ran = client.post("/scheduler/run/nightlyEmails", headers=admin_headers).get_json()["data"]
    assert ran["result"] == 1

    client.post("/scheduler/start/nightlyEmails", headers=admin_headers)
    removed = client.delete("/scheduler/jobs/nightlyEmails", headers=admin_headers)
    assert removed.status_code == 200
    assert removed.get_json()["message"] == "Job nightlyEmails removed"
    assert client.post("/scheduler/run/nightlyEmails", headers=admin_headers).status_code == 404


@pytest.mark.parametrize("body, status, message", [
    ({"name": "x", "cron": "0 3 * * *", "task": "processEmailQueue"}, 400,
     "Job name must be 3-50 letters, digits, '-' or '_' and start with a letter"),
    ({"name": "nightly", "cron": "whenever", "task": "processEmailQueue"}, 400, "Invalid cron expression"),
    ({"name": "nightly", "cron": "0 3 * * *"}, 400, "Task is required"),
    ({"name": "nightly", "cron": "0 3 * * *", "task": "ghost"}, 404, "Job ghost not found"),
])
def test_custom_job_validation(client, admin_headers, body, status, message):
    resp = client.post("/scheduler/jobs", json=body, headers=admin_headers)
    assert resp.status_code == status
    assert resp.get_json()["message"] == message


def test_builtin_jobs_cannot_be_removed(client, admin_headers):
    resp = client.delete("/scheduler/jobs/processEmailQueue", headers=admin_headers)
    assert resp.status_code == 422
    assert resp.get_json()["message"] == "Job processEmailQueue is built in and cannot be removed"


def test_validate_cron_endpoint(client, admin_headers):
    ok = client.post("/scheduler/validate-cron", json={"cron": "0 9 * * 0"}, headers=admin_headers).get_json()["data"]
    assert ok["valid"] is True
    assert len(ok["nextRuns"]) == 5
    bad = client.post("/scheduler/validate-cron", json={"cron": "61 * * * *"}, headers=admin_headers).get_json()["data"]
    assert bad == {"cron": "61 * * * *", "valid": False, "nextRuns": []}
