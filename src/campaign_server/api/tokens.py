"""Signed access tokens and opaque refresh tokens.

Access tokens are ``<payload>.<signature>`` where ``payload`` is the
base64url-encoded JSON ``{"user_id", "iat", "exp"}`` and ``signature`` is the
base64url HMAC-SHA256 of the encoded payload under ``[auth] token_secret``.
Padding is stripped from both parts.

Refresh tokens are random strings. Only their SHA-256 hex digest is stored,
so a leaked database does not leak usable tokens.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import secrets
import time
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class AccessTokenPayload:
    """Decoded claims of a verified access token."""

    user_id: str
    iat: int
    exp: int


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def _b64decode(text: str) -> bytes:
    return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))


def _secret() -> bytes:
    from campaign_server.config import config

    return config.auth.token_secret.encode("utf-8")


def _sign(encoded_payload: str) -> str:
    digest = hmac.new(_secret(), encoded_payload.encode("ascii"), hashlib.sha256).digest()
    return _b64encode(digest)


def sign_access_token(user_id: str, ttl_seconds: float, *, now: float | None = None) -> str:
    """Return a signed access token for ``user_id`` valid for ``ttl_seconds``."""
    issued = int(now if now is not None else time.time())
    payload = {"user_id": user_id, "iat": issued, "exp": issued + max(1, int(ttl_seconds))}
    encoded = _b64encode(json.dumps(payload, separators=(",", ":")).encode("utf-8"))
    return f"{encoded}.{_sign(encoded)}"


def verify_access_token(token: str, *, now: float | None = None) -> AccessTokenPayload | None:
    """Return the payload of a valid, unexpired token, otherwise ``None``."""
    parts = token.split(".")
    if len(parts) != 2:
        return None
    encoded, signature = parts
    if not hmac.compare_digest(_sign(encoded), signature):
        return None
    try:
        payload = json.loads(_b64decode(encoded))
    except ValueError:
        return None
    if not isinstance(payload, dict):
        return None

    user_id = payload.get("user_id")
    exp = payload.get("exp")
    if not isinstance(user_id, str) or not isinstance(exp, int):
        return None
    current = now if now is not None else time.time()
    if exp <= current:
        return None
    return AccessTokenPayload(user_id=user_id, iat=int(payload.get("iat", 0)), exp=exp)


def generate_refresh_token() -> str:
    """Return a new random refresh token (48 bytes of entropy)."""
    return secrets.token_urlsafe(48)


def hash_refresh_token(token: str) -> str:
    """Return the storage digest for a refresh token."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()
