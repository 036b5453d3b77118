from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass

from flask import current_app, g, has_request_context, request

from .i18n import DEFAULT_LANGUAGE, negotiate_language
from .jwt_utils import JWTError, decode as jwt_decode
from .roles import ADMIN_ROLES, CanonicalRole, to_canonical

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UserRef:
    id: str
    role: CanonicalRole

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES


@dataclass(frozen=True)
class VendorRef:
    id: str


@dataclass(frozen=True)
class RequestContext:
    """Per-request metadata; built once in ``before_request`` and read-only afterwards."""

    request_id: str
    language: str
    user: UserRef | None = None
    vendor: VendorRef | None = None


def _identity_from_bearer(auth_header: str) -> tuple[UserRef | None, VendorRef | None]:
    token = auth_header.split(None, 1)[1].strip() if " " in auth_header else ""
    try:
        claims = jwt_decode(
            token,
            secret=current_app.config["JWT_SECRET"],
            leeway=current_app.config.get("JWT_LEEWAY_SECONDS", 60),
        )
    except JWTError as e:
        # Invalid bearer -> anonymous; require_user maps it to 401
        logger.info("Rejected bearer token: %s", e)
        return None, None
    user = UserRef(id=claims["sub"], role=to_canonical(claims["role"]))
    vendor_id = claims.get("vendor_id")
    vendor = VendorRef(id=vendor_id) if vendor_id and user.role == "vendor" else None
    return user, vendor


def _identity_from_test_headers() -> tuple[UserRef | None, VendorRef | None]:
    uid = (request.headers.get("X-User-Id") or "").strip()
    if not uid:
        return None, None
    user = UserRef(id=uid, role=to_canonical(request.headers.get("X-User-Role")))
    vendor_id = (request.headers.get("X-Vendor-Id") or "").strip()
    vendor = VendorRef(id=vendor_id) if vendor_id and user.role == "vendor" else None
    return user, vendor


def build_request_context() -> RequestContext:
    rid = (request.headers.get("X-Request-Id") or "").strip() or str(uuid.uuid4())
    cfg = current_app.config
    language = negotiate_language(
        request.args.get("lang"),
        request.headers.get("Accept-Language"),
        cfg.get("SUPPORTED_LANGUAGES", ["en"]),
        cfg.get("DEFAULT_LANGUAGE", DEFAULT_LANGUAGE),
    )
    auth_header = request.headers.get("Authorization", "")
    if auth_header.lower().startswith("bearer "):
        user, vendor = _identity_from_bearer(auth_header)
    elif cfg.get("TESTING"):
        user, vendor = _identity_from_test_headers()
    else:
        user, vendor = None, None
    return RequestContext(request_id=rid, language=language, user=user, vendor=vendor)


def get_request_context() -> RequestContext:
    ctx = getattr(g, "request_context", None)
    if ctx is None:
        ctx = build_request_context()
        g.request_context = ctx
        g.request_id = ctx.request_id
    return ctx


def current_request_id() -> str:
    if not has_request_context():
        return str(uuid.uuid4())
    rid = getattr(g, "request_id", None)
    if rid is None:
        rid = get_request_context().request_id
    return rid


def current_language() -> str:
    if not has_request_context():
        return DEFAULT_LANGUAGE
    ctx = getattr(g, "request_context", None)
    return ctx.language if ctx is not None else DEFAULT_LANGUAGE


__all__ = [
    "UserRef",
    "VendorRef",
    "RequestContext",
    "build_request_context",
    "get_request_context",
    "current_request_id",
    "current_language",
]
