from __future__ import annotations

from flask import Blueprint, Response, current_app

from .app_authz import require_admin
from .context import get_request_context
from .envelope import created, success
from .i18n import translate
from .ids import iso
from .parsing import ArgParser
from .scheduler import JobRegistry, next_runs, validate_cron

bp = Blueprint("scheduler_api", __name__, url_prefix="/scheduler")


def _registry() -> JobRegistry:
    return current_app.job_registry  # type: ignore[attr-defined]


def _say(key: str, **params: str) -> str:
    return translate(key, get_request_context().language, **params)


@bp.get("/status")
@require_admin
async def job_status() -> Response:
    return success({"jobs": _registry().status()})


@bp.post("/start/<job_name>")
@require_admin
async def start_job(job_name: str) -> Response:
    job = _registry().start(job_name)
    return success({"job": job.name, **job.to_status()}, message=_say("jobStarted", name=job.name))


@bp.post("/stop/<job_name>")
@require_admin
async def stop_job(job_name: str) -> Response:
    job = _registry().stop(job_name)
    return success({"job": job.name, **job.to_status()}, message=_say("jobStopped", name=job.name))


@bp.post("/run/<job_name>")
@require_admin
async def run_job(job_name: str) -> Response:
    registry = _registry()
    result = await registry.run_now(job_name)
    return success(
        {"job": job_name, "result": result, **registry.get(job_name).to_status()},
        message=_say("jobExecuted", name=job_name),
    )


@bp.post("/start-all")
@require_admin
async def start_all() -> Response:
    return success({"jobs": _registry().start_all()}, message=_say("allJobsStarted"))


@bp.post("/stop-all")
@require_admin
async def stop_all() -> Response:
    return success({"jobs": _registry().stop_all()}, message=_say("allJobsStopped"))


@bp.post("/jobs")
@require_admin
async def add_job() -> Response:
    """Schedule an existing job's task under a new name and cron expression."""
    args = ArgParser.body()
    name = args.string(
        "name",
        required=True,
        pattern=r"[A-Za-z][A-Za-z0-9_-]{2,49}",
        message="Job name must be 3-50 letters, digits, '-' or '_' and start with a letter",
        required_message="Job name is required",
    )
    cron = args.string("cron", required=True, required_message="Cron expression is required")
    task = args.string("task", required=True, required_message="Task is required")
    description = args.string("description", max_length=200)
    args.finish()
    registry = _registry()
    source = registry.get(task or "")
    job = registry.add_custom_job(name or "", cron or "", description or f"Custom schedule for {source.name}", source.func)
    return created(
        {"job": job.name, "task": source.name, **job.to_status()},
        message=_say("jobAdded", name=job.name),
    )


@bp.delete("/jobs/<job_name>")
@require_admin
async def remove_job(job_name: str) -> Response:
    job = _registry().remove_custom_job(job_name)
    return success({"job": job.name}, message=_say("jobRemoved", name=job.name))


@bp.post("/validate-cron")
@require_admin
async def check_cron() -> Response:
    args = ArgParser.body()
    cron = args.string("cron", required=True, required_message="Cron expression is required")
    args.finish()
    if not validate_cron(cron or ""):
        return success({"cron": cron, "valid": False, "nextRuns": []})
    upcoming = next_runs(cron or "", _registry().now())
    return success({"cron": cron, "valid": True, "nextRuns": [iso(t) for t in upcoming]})
