from __future__ import annotations

import os
from dataclasses import dataclass, field


def _csv(value: str) -> list[str]:
    return [p for p in [s.strip() for s in value.split(",")] if p]


def _flag(value: str | None) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Config:
    secret_key: str = "dev-secret"
    testing: bool = False
    debug: bool = False
    default_language: str = "en"
    supported_languages: list[str] = field(default_factory=lambda: ["en", "es"])
    jwt_secret: str | None = None  # falls back to secret_key
    jwt_leeway_seconds: int = 60
    exchange_rate_api_url: str = "https://api.exchangerate-api.com/v4/latest"
    exchange_rate_timeout: float = 10.0
    exchange_rate_api_key: str | None = None
    email_from: str = "no-reply@storefront.local"
    scheduler_autostart: bool = False
    scheduler_tick_seconds: float = 30.0  # 0 disables the in-process driver
    store_name: str = "Storefront"
    log_level: str = "INFO"
    metrics_backend: str = "noop"

    @classmethod
    def from_env(cls) -> Config:
        return cls(
            secret_key=os.getenv("SECRET_KEY", "dev-secret"),
            testing=_flag(os.getenv("TESTING")),
            debug=_flag(os.getenv("DEBUG")),
            default_language=os.getenv("DEFAULT_LANGUAGE", "en"),
            supported_languages=_csv(os.getenv("SUPPORTED_LANGUAGES", "en,es")),
            jwt_secret=os.getenv("JWT_SECRET") or None,
            jwt_leeway_seconds=int(os.getenv("JWT_LEEWAY", "60")),
            exchange_rate_api_url=os.getenv(
                "EXCHANGE_RATE_API_URL", "https://api.exchangerate-api.com/v4/latest"
            ),
            exchange_rate_timeout=float(os.getenv("EXCHANGE_RATE_TIMEOUT", "10")),
            exchange_rate_api_key=os.getenv("EXCHANGE_RATE_API_KEY") or None,
            email_from=os.getenv("EMAIL_FROM", "no-reply@storefront.local"),
            scheduler_autostart=_flag(os.getenv("SCHEDULER_AUTOSTART")),
            scheduler_tick_seconds=float(os.getenv("SCHEDULER_TICK_SECONDS", "30")),
            store_name=os.getenv("STORE_NAME", "Storefront"),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            metrics_backend=os.getenv("METRICS_BACKEND", "noop").lower(),
        )

    def override(self, d: dict):
        for k, v in d.items():
            if hasattr(self, k):
                setattr(self, k, v)

    def to_flask_dict(self):
        return {
            "SECRET_KEY": self.secret_key,
            "TESTING": self.testing,
            "DEBUG": self.debug,
            "DEFAULT_LANGUAGE": self.default_language,
            "SUPPORTED_LANGUAGES": list(self.supported_languages),
            "JWT_SECRET": self.jwt_secret or self.secret_key,
            "JWT_LEEWAY_SECONDS": self.jwt_leeway_seconds,
            "EXCHANGE_RATE_API_URL": self.exchange_rate_api_url,
            "EXCHANGE_RATE_TIMEOUT": self.exchange_rate_timeout,
            "EXCHANGE_RATE_API_KEY": self.exchange_rate_api_key,
            "EMAIL_FROM": self.email_from,
            "SCHEDULER_AUTOSTART": self.scheduler_autostart,
            "SCHEDULER_TICK_SECONDS": self.scheduler_tick_seconds,
            "STORE_NAME": self.store_name,
            "LOG_LEVEL": self.log_level,
            "METRICS_BACKEND": self.metrics_backend,
        }
