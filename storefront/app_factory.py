from __future__ import annotations

import logging
import time
from typing import Any

from dotenv import load_dotenv
from flask import Flask, Response, g, request

from .ab_test_api import bp as ab_test_bp
from .analytics_api import bp as analytics_bp
from .analytics_api import vendor_bp as vendor_dashboard_bp
from .config import Config
from .context import get_request_context
from .country_api import bp as country_bp
from .currency_api import bp as currency_bp
from .email_api import bp as email_bp
from .errors import register_error_handlers
from .export_api import bp as export_bp
from .health_api import bp as health_bp
from .logging_setup import configure_logging
from .loyalty_api import admin_bp as loyalty_admin_bp
from .loyalty_api import bp as loyalty_bp
from . import metrics
from .notification_api import bp as notification_bp
from .scheduler import JobRegistry, default_jobs
from .scheduler_api import bp as scheduler_bp
from .search_api import bp as search_bp
from .services import ServiceRegistry
from .tax_api import bp as tax_bp
from .vendor_api import bp as vendor_bp

log = logging.getLogger("storefront.request")

BLUEPRINTS = (
    health_bp,
    ab_test_bp,
    vendor_bp,
    loyalty_bp,
    loyalty_admin_bp,
    search_bp,
    tax_bp,
    currency_bp,
    country_bp,
    export_bp,
    email_bp,
    notification_bp,
    scheduler_bp,
    analytics_bp,
    vendor_dashboard_bp,
)


def create_app(
    config_override: dict[str, Any] | None = None,
    services: ServiceRegistry | None = None,
    job_registry: JobRegistry | None = None,
) -> Flask:
    load_dotenv()
    app = Flask(__name__)

    # --- Configuration ---
    cfg = Config.from_env()
    if config_override:
        known = {k: v for k, v in config_override.items() if hasattr(cfg, k)}
        if known:
            cfg.override(known)
    app.config.update(cfg.to_flask_dict())
    if config_override:
        for k, v in config_override.items():  # direct Flask config keys win over Config
            if k.isupper():
                app.config[k] = v
        if "SECRET_KEY" in config_override and "JWT_SECRET" not in config_override and not cfg.jwt_secret:
            app.config["JWT_SECRET"] = app.config["SECRET_KEY"]
    app.json.sort_keys = False  # type: ignore[attr-defined]

    configure_logging(app.config["LOG_LEVEL"])
    backend = app.config.get("METRICS_BACKEND", "noop")
    metrics.set_metrics(metrics.build_metrics(backend))
    app.logger.info("Metrics backend initialized: %s", backend)

    # --- Services & jobs ---
    app.services = services or ServiceRegistry.from_config(cfg)  # type: ignore[attr-defined]
    # tests drive jobs explicitly
    tick = None if app.config.get("TESTING") else (cfg.scheduler_tick_seconds or None)
    app.job_registry = job_registry or default_jobs(app.services, cfg, tick_seconds=tick)  # type: ignore[attr-defined]
    if app.config.get("SCHEDULER_AUTOSTART") and not app.config.get("TESTING"):
        app.job_registry.start_all()  # type: ignore[attr-defined]

    @app.before_request
    def _before_req() -> None:
        g._t0 = time.perf_counter()
        get_request_context()

    @app.after_request
    def _after_req(resp: Response) -> Response:
        dur_ms = int((time.perf_counter() - getattr(g, "_t0", time.perf_counter())) * 1000)
        ctx = get_request_context()
        resp.headers["X-Request-Id"] = ctx.request_id
        resp.headers["X-Request-Duration-ms"] = str(dur_ms)
        if "Cache-Control" not in resp.headers:
            resp.headers["Cache-Control"] = "no-store"
        metrics.increment(metrics.HTTP_REQUESTS, {"method": request.method, "status": str(resp.status_code)})
        log.info(
            {
                "request_id": ctx.request_id,
                "method": request.method,
                "path": request.path,
                "status": resp.status_code,
                "duration_ms": dur_ms,
                "user_id": ctx.user.id if ctx.user else None,
                "role": ctx.user.role if ctx.user else None,
            }
        )
        return resp

    register_error_handlers(app)
    for bp in BLUEPRINTS:
        app.register_blueprint(bp)
    return app


__all__ = ["create_app"]
