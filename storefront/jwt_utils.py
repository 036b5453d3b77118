from __future__ import annotations

import base64
import hashlib
import hmac
import json
import time
from typing import Any

from typing_extensions import NotRequired, TypedDict

"""HS256 bearer tokens.

Tokens are minted by the identity provider that fronts this API; ``encode`` is
kept for tooling and tests. ``decode`` enforces the signature, ``exp``/``nbf``
with leeway, and the presence of ``sub`` and ``role``.
"""

class JWTError(Exception):
    pass

DEFAULT_ACCESS_TTL = 3600
SKEW_SECS = 30

ALG_HS256 = "HS256"


class AccessClaims(TypedDict):
    sub: str
    role: str
    iat: int
    exp: int
    vendor_id: NotRequired[str]


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")

def _b64url_decode(data: str) -> bytes:
    pad = "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(data + pad)

def _sign(msg: bytes, secret: str) -> str:
    sig = hmac.new(secret.encode(), msg, hashlib.sha256).digest()
    return _b64url(sig)


def encode(payload: dict[str, Any], *, secret: str, ttl: int = DEFAULT_ACCESS_TTL) -> str:
    now = int(time.time())
    header = {"alg": ALG_HS256, "typ": "JWT"}
    pl = payload.copy()
    pl.setdefault("iat", now)
    pl.setdefault("exp", now + ttl)
    header_b = _b64url(json.dumps(header, separators=(",",":")).encode())
    payload_b = _b64url(json.dumps(pl, separators=(",",":")).encode())
    msg = f"{header_b}.{payload_b}".encode()
    return f"{header_b}.{payload_b}.{_sign(msg, secret)}"


def decode(token: str, *, secret: str, leeway: int = SKEW_SECS, now: int | None = None) -> AccessClaims:
    try:
        header_b, payload_b, sig = token.split(".")
    except ValueError as e:
        raise JWTError("malformed token") from e
    try:
        header = json.loads(_b64url_decode(header_b))
    except (ValueError, UnicodeDecodeError) as e:
        raise JWTError("bad header") from e
    if not isinstance(header, dict) or header.get("alg") != ALG_HS256:
        raise JWTError("alg")
    expected = _sign(f"{header_b}.{payload_b}".encode(), secret)
    if not hmac.compare_digest(expected, sig):
        raise JWTError("bad signature")
    try:
        raw = json.loads(_b64url_decode(payload_b))
    except (ValueError, UnicodeDecodeError) as e:
        raise JWTError("bad payload") from e
    if not isinstance(raw, dict):
        raise JWTError("bad payload type")
    current = int(time.time()) if now is None else now
    exp = raw.get("exp")
    if not isinstance(exp, int) or current > exp + leeway:
        raise JWTError("expired")
    nbf = raw.get("nbf")
    if isinstance(nbf, int) and current + leeway < nbf:
        raise JWTError("not yet valid")
    sub = raw.get("sub")
    if isinstance(sub, int):
        sub = str(sub)
    if not isinstance(sub, str) or not sub:
        raise JWTError("missing claim sub")
    role = raw.get("role")
    if not isinstance(role, str):
        raise JWTError("missing claim role")
    claims: AccessClaims = {"sub": sub, "role": role, "iat": int(raw.get("iat") or 0), "exp": exp}
    vendor_id = raw.get("vendor_id")
    if isinstance(vendor_id, str) and vendor_id:
        claims["vendor_id"] = vendor_id
    return claims


__all__ = ["JWTError", "AccessClaims", "encode", "decode"]
