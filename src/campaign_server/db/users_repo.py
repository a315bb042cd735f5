"""User account repository operations.

Functions take an open connection so they can join the caller's transaction.
``password_hash`` never leaves this module except through
:func:`get_user_with_hash`, which the login flow uses.
"""

from __future__ import annotations

import sqlite3
from typing import Any

from campaign_server.db import query

_PUBLIC_COLUMNS = "id, email, name, role, created_at, updated_at"


def normalize_email(email: str) -> str:
    """Return the canonical (trimmed, lowercased) form of ``email``."""
    return email.strip().lower()


def create_user(
    conn: sqlite3.Connection,
    email: str,
    password: str,
    *,
    name: str | None = None,
    role: str = "USER",
) -> str:
    """Insert a user and return its id.

    The caller is responsible for the uniqueness check; a duplicate email
    surfaces as a :class:`~campaign_server.db.errors.DatabaseWriteError`.
    """
    from campaign_server.api.password import hash_password

    now = query.utc_now()
    return query.insert(
        conn,
        "users",
        {
            "email": normalize_email(email),
            "name": name,
            "password_hash": hash_password(password),
            "role": role,
            "created_at": now,
            "updated_at": now,
        },
        operation="users.create_user",
    )


def get_user(conn: sqlite3.Connection, user_id: str) -> dict[str, Any] | None:
    """Return the public user row for ``user_id``."""
    return query.fetch_one(
        conn,
        f"SELECT {_PUBLIC_COLUMNS} FROM users WHERE id = ?",  # nosec B608
        (user_id,),
        operation="users.get_user",
    )


def get_user_by_email(conn: sqlite3.Connection, email: str) -> dict[str, Any] | None:
    """Return the public user row for ``email``."""
    return query.fetch_one(
        conn,
        f"SELECT {_PUBLIC_COLUMNS} FROM users WHERE email = ?",  # nosec B608
        (normalize_email(email),),
        operation="users.get_user_by_email",
    )


def get_user_with_hash(conn: sqlite3.Connection, email: str) -> dict[str, Any] | None:
    """Return the user row including ``password_hash`` for credential checks."""
    return query.fetch_one(
        conn,
        "SELECT * FROM users WHERE email = ?",
        (normalize_email(email),),
        operation="users.get_user_with_hash",
    )


def list_users(conn: sqlite3.Connection) -> list[dict[str, Any]]:
    """Return all users ordered by email."""
    return query.fetch_all(
        conn,
        f"SELECT {_PUBLIC_COLUMNS} FROM users ORDER BY email",  # nosec B608
        operation="users.list_users",
    )


def update_user(
    conn: sqlite3.Connection,
    user_id: str,
    *,
    email: str | None = None,
    name: str | None = None,
    role: str | None = None,
    password: str | None = None,
) -> None:
    """Update the given columns of a user; ``None`` leaves a column unchanged."""
    from campaign_server.api.password import hash_password

    values: dict[str, Any] = {}
    if email is not None:
        values["email"] = normalize_email(email)
    if name is not None:
        values["name"] = name
    if role is not None:
        values["role"] = role
    if password is not None:
        values["password_hash"] = hash_password(password)
    if values:
        query.update(conn, "users", user_id, values, operation="users.update_user")


def delete_user(conn: sqlite3.Connection, user_id: str) -> bool:
    """Delete a user; returns False when it did not exist."""
    return query.delete(conn, "users", user_id, operation="users.delete_user") > 0


def user_has_control(conn: sqlite3.Connection, user_id: str, control_key: str) -> bool:
    """Return True when one of the user's system roles grants ``control_key``."""
    return query.exists(
        conn,
        """
        SELECT 1
        FROM system_user_roles ur
        JOIN system_role_controls rc ON rc.role_id = ur.role_id
        JOIN system_controls c ON c.id = rc.control_id
        WHERE ur.user_id = ? AND c.key = ?
        """,
        (user_id, control_key),
        operation="users.user_has_control",
    )
