"""Refresh token persistence.

Rows store only the SHA-256 digest of the token handed to the client.
"""

from __future__ import annotations

import sqlite3
from datetime import UTC, datetime, timedelta
from typing import Any

from campaign_server.db import query


def create_refresh_token(
    conn: sqlite3.Connection, user_id: str, token_hash: str, ttl_seconds: float
) -> str:
    """Store a refresh token digest that expires after ``ttl_seconds``."""
    now = datetime.now(UTC)
    expires_at = now + timedelta(seconds=max(1.0, ttl_seconds))
    return query.insert(
        conn,
        "refresh_tokens",
        {
            "user_id": user_id,
            "token_hash": token_hash,
            "expires_at": expires_at.isoformat(),
            "created_at": now.isoformat(),
        },
        operation="tokens.create_refresh_token",
    )


def get_active_refresh_token(conn: sqlite3.Connection, token_hash: str) -> dict[str, Any] | None:
    """Return the token row when it exists, is not revoked and has not expired."""
    row = query.fetch_one(
        conn,
        "SELECT * FROM refresh_tokens WHERE token_hash = ?",
        (token_hash,),
        operation="tokens.get_refresh_token",
    )
    if row is None or row["revoked_at"] is not None:
        return None
    if query.parse_timestamp(row["expires_at"]) <= datetime.now(UTC):
        return None
    return row


def revoke_refresh_token(conn: sqlite3.Connection, token_hash: str) -> int:
    """Mark a token revoked; returns the number of rows touched."""
    return query.execute(
        conn,
        "UPDATE refresh_tokens SET revoked_at = ? WHERE token_hash = ? AND revoked_at IS NULL",
        (query.utc_now(), token_hash),
        operation="tokens.revoke_refresh_token",
    )


def prune_refresh_tokens(conn: sqlite3.Connection, user_id: str) -> int:
    """Delete the user's revoked and expired refresh tokens; returns the count removed."""
    return query.execute(
        conn,
        "DELETE FROM refresh_tokens WHERE user_id = ? AND (revoked_at IS NOT NULL OR expires_at <= ?)",
        (user_id, query.utc_now()),
        operation="tokens.prune_refresh_tokens",
    )
