"""Small SQL helpers shared by repositories and services.

Every helper takes an explicit connection plus a stable ``operation`` label.
``sqlite3`` failures are re-raised as typed DB errors carrying that label so
the API boundary can log them and answer with a 500.
"""

from __future__ import annotations

import json
import sqlite3
import uuid
from collections.abc import Iterable, Mapping, Sequence
from datetime import UTC, datetime
from typing import Any, NoReturn

from campaign_server.db.errors import (
    DatabaseError,
    DatabaseOperationContext,
    DatabaseReadError,
    DatabaseWriteError,
)

Params = Sequence[Any] | Mapping[str, Any]


def _raise_read_error(operation: str, exc: Exception, *, details: str | None = None) -> NoReturn:
    """Raise a typed read error while preserving typed DB errors."""
    if isinstance(exc, DatabaseError):
        raise exc
    raise DatabaseReadError(
        context=DatabaseOperationContext(operation=operation, details=details),
        cause=exc,
    ) from exc


def _raise_write_error(operation: str, exc: Exception, *, details: str | None = None) -> NoReturn:
    """Raise a typed write error while preserving typed DB errors."""
    if isinstance(exc, DatabaseError):
        raise exc
    raise DatabaseWriteError(
        context=DatabaseOperationContext(operation=operation, details=details),
        cause=exc,
    ) from exc


# ============================================================================
# VALUE HELPERS
# ============================================================================


def new_id() -> str:
    """Return a fresh opaque row identifier."""
    return uuid.uuid4().hex


def utc_now() -> str:
    """Return the current UTC time as an ISO-8601 string."""
    return datetime.now(UTC).isoformat()


def parse_timestamp(value: str) -> datetime:
    """Parse a timestamp written by :func:`utc_now`."""
    return datetime.fromisoformat(value)


def dump_json(value: Any) -> str | None:
    """Serialize ``value`` for a JSON column; ``None`` stays NULL."""
    if value is None:
        return None
    return json.dumps(value)


def load_json(value: str | None, default: Any = None) -> Any:
    """Deserialize a JSON column, returning ``default`` for NULL or bad data."""
    if value is None:
        return default
    try:
        return json.loads(value)
    except (TypeError, ValueError):
        return default


def placeholders(values: Iterable[Any]) -> str:
    """Return ``?, ?, ...`` for an ``IN (...)`` clause."""
    return ", ".join("?" for _ in values)


# ============================================================================
# QUERY HELPERS
# ============================================================================


def fetch_one(
    conn: sqlite3.Connection, sql: str, params: Params = (), *, operation: str
) -> dict[str, Any] | None:
    """Return the first row as a dict, or ``None``."""
    try:
        row = conn.execute(sql, params).fetchone()
    except sqlite3.Error as exc:
        _raise_read_error(operation, exc)
    return dict(row) if row is not None else None


def fetch_all(
    conn: sqlite3.Connection, sql: str, params: Params = (), *, operation: str
) -> list[dict[str, Any]]:
    """Return every row as a list of dicts."""
    try:
        rows = conn.execute(sql, params).fetchall()
    except sqlite3.Error as exc:
        _raise_read_error(operation, exc)
    return [dict(row) for row in rows]


def fetch_value(
    conn: sqlite3.Connection, sql: str, params: Params = (), *, operation: str
) -> Any:
    """Return the first column of the first row, or ``None``."""
    try:
        row = conn.execute(sql, params).fetchone()
    except sqlite3.Error as exc:
        _raise_read_error(operation, exc)
    return row[0] if row is not None else None


def exists(conn: sqlite3.Connection, sql: str, params: Params = (), *, operation: str) -> bool:
    """Return True when ``sql`` yields at least one row."""
    return fetch_value(conn, sql, params, operation=operation) is not None


def execute(
    conn: sqlite3.Connection, sql: str, params: Params = (), *, operation: str
) -> int:
    """Run a mutation and return the affected row count."""
    try:
        cursor = conn.execute(sql, params)
    except sqlite3.Error as exc:
        _raise_write_error(operation, exc)
    return cursor.rowcount


def insert(
    conn: sqlite3.Connection, table: str, values: dict[str, Any], *, operation: str
) -> str:
    """Insert ``values`` into ``table`` and return the row id.

    An ``id`` is generated when the caller does not supply one. Table and
    column names always come from code, never from request data.
    """
    row = dict(values)
    row.setdefault("id", new_id())
    columns = ", ".join(row)
    sql = f"INSERT INTO {table} ({columns}) VALUES ({placeholders(row)})"  # nosec B608
    execute(conn, sql, tuple(row.values()), operation=operation)
    return row["id"]


def update(
    conn: sqlite3.Connection,
    table: str,
    row_id: str,
    values: dict[str, Any],
    *,
    operation: str,
    touch: bool = True,
) -> int:
    """Update columns of a single row by id.

    Args:
        touch: Also set ``updated_at`` to the current time.
    """
    changes = dict(values)
    if touch:
        changes["updated_at"] = utc_now()
    if not changes:
        return 0
    assignments = ", ".join(f"{column} = ?" for column in changes)
    sql = f"UPDATE {table} SET {assignments} WHERE id = ?"  # nosec B608
    return execute(conn, sql, (*changes.values(), row_id), operation=operation)


def delete(conn: sqlite3.Connection, table: str, row_id: str, *, operation: str) -> int:
    """Delete a single row by id."""
    return execute(conn, f"DELETE FROM {table} WHERE id = ?", (row_id,), operation=operation)  # nosec B608
