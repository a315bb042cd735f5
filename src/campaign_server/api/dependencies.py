"""FastAPI dependencies: the request transaction and the authenticated user.

Every request runs inside one write scope: the connection commits when the
handler returns and rolls back when it raises, including ``ServiceError``.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from typing import Annotated

from fastapi import Depends, HTTPException, Request

from campaign_server.api.tokens import verify_access_token
from campaign_server.config import config
from campaign_server.db import users_repo
from campaign_server.db.connection import connection_scope
from campaign_server.services.permissions import User
from campaign_server.services.system import property_number

ACCESS_TTL_PROPERTY = "auth.access_token_ttl_minutes"
REFRESH_TTL_PROPERTY = "auth.refresh_token_ttl_days"


def get_db() -> Iterator[sqlite3.Connection]:
    with connection_scope(write=True) as conn:
        yield conn


# Function scope: the commit (or rollback) finishes before the response is sent.
Connection = Annotated[sqlite3.Connection, Depends(get_db, scope="function")]


def bearer_token(request: Request) -> str | None:
    """Return the token from ``Authorization: Bearer <token>``, if any."""
    header = request.headers.get("authorization") or ""
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def resolve_user(conn: sqlite3.Connection, token: str) -> User | None:
    """Return the user a valid access token belongs to."""
    payload = verify_access_token(token)
    if payload is None:
        return None
    row = users_repo.get_user(conn, payload.user_id)
    return User.from_row(row) if row is not None else None


def get_current_user(request: Request, conn: Connection) -> User:
    token = bearer_token(request)
    user = resolve_user(conn, token) if token else None
    if user is None:
        raise HTTPException(status_code=401, detail="Unauthorized.")
    return user


CurrentUser = Annotated[User, Depends(get_current_user)]


# ============================================================================
# TOKEN LIFETIMES
# ============================================================================


def access_token_ttl_seconds(conn: sqlite3.Connection) -> float:
    minutes = property_number(conn, ACCESS_TTL_PROPERTY, config.auth.access_token_ttl_minutes)
    return minutes * 60


def refresh_token_ttl_seconds(conn: sqlite3.Connection) -> float:
    days = property_number(conn, REFRESH_TTL_PROPERTY, config.auth.refresh_token_ttl_days)
    return days * 24 * 60 * 60
