"""Audit trail persistence (``system_audits``)."""

from __future__ import annotations

import sqlite3
from typing import Any

from campaign_server.db import query


def record(
    conn: sqlite3.Connection,
    entity_key: str,
    entity_id: str,
    action: str,
    actor_id: str | None,
    details: dict[str, Any] | None = None,
) -> str:
    """Append an audit entry inside the caller's transaction."""
    return query.insert(
        conn,
        "system_audits",
        {
            "entity_key": entity_key,
            "entity_id": entity_id,
            "action": action,
            "actor_id": actor_id,
            "details_json": query.dump_json(details),
            "created_at": query.utc_now(),
        },
        operation="audit.record",
    )


def list_entries(
    conn: sqlite3.Connection,
    *,
    entity_key: str | None = None,
    entity_id: str | None = None,
    limit: int = 200,
) -> list[dict[str, Any]]:
    """Return audit entries newest first, with the actor's name and email."""
    clauses: list[str] = []
    params: list[Any] = []
    if entity_key:
        clauses.append("a.entity_key = ?")
        params.append(entity_key)
    if entity_id:
        clauses.append("a.entity_id = ?")
        params.append(entity_id)
    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    rows = query.fetch_all(
        conn,
        f"""
        SELECT a.*, u.name AS actor_name, u.email AS actor_email
        FROM system_audits a
        LEFT JOIN users u ON u.id = a.actor_id
        {where}
        ORDER BY a.created_at DESC
        LIMIT ?
        """,  # nosec B608
        (*params, limit),
        operation="audit.list_entries",
    )
    return [
        {
            "id": row["id"],
            "entity_key": row["entity_key"],
            "entity_id": row["entity_id"],
            "action": row["action"],
            "created_at": row["created_at"],
            "details": query.load_json(row["details_json"]),
            "actor": (
                {"id": row["actor_id"], "name": row["actor_name"], "email": row["actor_email"]}
                if row["actor_id"]
                else None
            ),
        }
        for row in rows
    ]
