"""Authorization helpers.

Decorators wrap async views and raise ``AuthenticationError`` (401) when the
request carries no identity and ``AuthorizationError`` (403) on a role mismatch.
The central error handler turns both into error envelopes.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from functools import wraps
from typing import ParamSpec, TypeVar

from .context import RequestContext, UserRef, get_request_context
from .errors import AuthenticationError, AuthorizationError
from .roles import ADMIN_ROLES, CanonicalRole, satisfies, to_canonical

P = ParamSpec("P")
R = TypeVar("R")


def current_user() -> UserRef:
    user = get_request_context().user
    if user is None:
        raise AuthenticationError()
    return user


def require_user(fn: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
    @wraps(fn)
    async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        current_user()
        return await fn(*args, **kwargs)

    return wrapper


def require_roles(*roles: str) -> Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R]]]:
    canonical_allowed: list[CanonicalRole] = [to_canonical(r) for r in roles]

    def decorator(fn: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
        @wraps(fn)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            user = current_user()
            if not satisfies(user.role, canonical_allowed):
                raise AuthorizationError(required=tuple(canonical_allowed))
            return await fn(*args, **kwargs)

        return wrapper

    return decorator


require_admin = require_roles(*ADMIN_ROLES)


def ensure_vendor_access(ctx: RequestContext, vendor_id: str) -> None:
    """Admins reach every vendor; a vendor principal only its own."""
    if ctx.user is None:
        raise AuthenticationError()
    if ctx.user.is_admin:
        return
    if ctx.user.role == "vendor" and ctx.vendor is not None and ctx.vendor.id == vendor_id:
        return
    raise AuthorizationError("You can only access your own vendor account", required=("admin", "vendor"))


__all__ = [
    "current_user",
    "require_user",
    "require_roles",
    "require_admin",
    "ensure_vendor_access",
]
