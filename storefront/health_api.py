from __future__ import annotations

from flask import Blueprint, Response, current_app

from .envelope import success
from .logging_setup import recent_records

bp = Blueprint("health_api", __name__)


@bp.get("/healthz")
async def healthz() -> Response:
    data = {"ok": True, "jobs": current_app.job_registry.running_count()}  # type: ignore[attr-defined]
    if current_app.debug:
        data["recentErrors"] = recent_records(20)
    return success(data)
