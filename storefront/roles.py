"""Role adapter.

CanonicalRole: roles used internally for authorization logic
AppRole: external labels accepted from tokens and mapped onto a canonical role
RoleLike: union accepted at the identity boundary; converted via to_canonical()
"""

from __future__ import annotations

from typing import Literal

CanonicalRole = Literal["customer", "vendor", "admin", "superadmin"]
AppRole = Literal["user", "seller", "administrator", "super_admin", "superuser"]
RoleLike = CanonicalRole | AppRole

CANONICAL_ROLES: tuple[CanonicalRole, ...] = ("customer", "vendor", "admin", "superadmin")

ROLE_MAP: dict[AppRole, CanonicalRole] = {
    "user": "customer",
    "seller": "vendor",
    "administrator": "admin",
    "super_admin": "superadmin",
    "superuser": "superadmin",
}

# A role satisfies itself plus everything listed here.
IMPLIED: dict[CanonicalRole, tuple[CanonicalRole, ...]] = {
    "superadmin": ("admin",),
}


def to_canonical(role: str | None) -> CanonicalRole:
    """Canonicalize; unknown or missing labels get the least privileged role."""
    value = (role or "").strip().lower()
    if value in ROLE_MAP:
        return ROLE_MAP[value]  # type: ignore[index]
    if value in CANONICAL_ROLES:
        return value  # type: ignore[return-value]
    return "customer"


def satisfies(role: CanonicalRole, allowed: tuple[CanonicalRole, ...] | list[CanonicalRole]) -> bool:
    if role in allowed:
        return True
    return any(r in allowed for r in IMPLIED.get(role, ()))


ADMIN_ROLES: tuple[CanonicalRole, ...] = ("admin", "superadmin")


__all__ = [
    "CanonicalRole",
    "AppRole",
    "RoleLike",
    "CANONICAL_ROLES",
    "ROLE_MAP",
    "ADMIN_ROLES",
    "to_canonical",
    "satisfies",
]
