"""Character service."""

from __future__ import annotations

import sqlite3
from typing import Any

from campaign_server.db import query
from campaign_server.services import permissions
from campaign_server.services.errors import bad_request, forbidden, not_found
from campaign_server.services.permissions import User

_ACCESS_CLAUSE = """
    (ch.player_id = :user
     OR EXISTS (SELECT 1 FROM worlds w WHERE w.id = ch.world_id AND w.primary_architect_id = :user)
     OR EXISTS (SELECT 1 FROM world_architects wa WHERE wa.world_id = ch.world_id AND wa.user_id = :user)
     OR EXISTS (
        SELECT 1 FROM character_campaigns cc
        JOIN campaigns c ON c.id = cc.campaign_id
        WHERE cc.character_id = ch.id AND c.gm_user_id = :user
     ))
"""


def require_character(conn: sqlite3.Connection, character_id: str) -> dict[str, Any]:
    character = query.fetch_one(
        conn, "SELECT * FROM characters WHERE id = ?", (character_id,), operation="characters.get"
    )
    if character is None:
        raise not_found("Character not found.")
    return character


def campaign_ids(conn: sqlite3.Connection, character_id: str) -> list[str]:
    rows = query.fetch_all(
        conn,
        "SELECT campaign_id FROM character_campaigns WHERE character_id = ? ORDER BY created_at",
        (character_id,),
        operation="characters.campaign_ids",
    )
    return [row["campaign_id"] for row in rows]


def can_view(conn: sqlite3.Connection, user: User, character: dict[str, Any]) -> bool:
    """Owner, world architect or GM of a campaign the character plays in."""
    if user.is_admin or character["player_id"] == user.id:
        return True
    if permissions.is_world_architect(conn, user.id, character["world_id"]):
        return True
    return query.exists(
        conn,
        """
        SELECT 1 FROM character_campaigns cc
        JOIN campaigns c ON c.id = cc.campaign_id
        WHERE cc.character_id = ? AND c.gm_user_id = ?
        """,
        (character["id"], user.id),
        operation="characters.is_gm_of",
    )


def _ensure_can_edit(conn: sqlite3.Connection, user: User, character: dict[str, Any]) -> None:
    if user.is_admin or character["player_id"] == user.id:
        return
    if permissions.is_world_architect(conn, user.id, character["world_id"]):
        return
    raise forbidden()


def list_characters(
    conn: sqlite3.Connection,
    user: User,
    *,
    world_id: str | None = None,
    campaign_id: str | None = None,
    character_id: str | None = None,
) -> list[dict[str, Any]]:
    clauses: list[str] = []
    params: dict[str, Any] = {"user": user.id}
    if not user.is_admin:
        clauses.append(_ACCESS_CLAUSE)
    if world_id:
        clauses.append("ch.world_id = :world")
        params["world"] = world_id
    if campaign_id:
        clauses.append(
            "EXISTS (SELECT 1 FROM character_campaigns cc "
            "WHERE cc.character_id = ch.id AND cc.campaign_id = :campaign)"
        )
        params["campaign"] = campaign_id
    if character_id:
        clauses.append("ch.id = :character")
        params["character"] = character_id
    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    return query.fetch_all(
        conn,
        f"SELECT ch.* FROM characters ch {where} ORDER BY ch.name",  # nosec B608
        params,
        operation="characters.list",
    )


def get_character(conn: sqlite3.Connection, user: User, character_id: str) -> dict[str, Any]:
    character = require_character(conn, character_id)
    if not can_view(conn, user, character):
        raise forbidden()
    return {**character, "campaign_ids": campaign_ids(conn, character_id)}


def create_character(conn: sqlite3.Connection, user: User, data: dict[str, Any]) -> dict[str, Any]:
    world_id = data.get("world_id")
    name = (data.get("name") or "").strip()
    if not world_id or not name:
        raise bad_request("world_id and name are required.")

    campaign_id = data.get("campaign_id")
    if campaign_id:
        campaign_world = query.fetch_value(
            conn,
            "SELECT world_id FROM campaigns WHERE id = ?",
            (campaign_id,),
            operation="characters.campaign_world",
        )
        if campaign_world is None:
            raise not_found("Campaign not found.")
        if campaign_world != world_id:
            raise bad_request("Campaign world mismatch.")
        allowed = user.is_admin or permissions.can_create_character_in_campaign(
            conn, user.id, campaign_id
        )
    else:
        allowed = user.is_admin or permissions.can_create_character_in_world(
            conn, user.id, world_id
        )
    if not allowed:
        raise forbidden()

    player_id = data.get("player_id") if user.is_admin and data.get("player_id") else user.id
    now = query.utc_now()
    character_id = query.insert(
        conn,
        "characters",
        {
            "world_id": world_id,
            "player_id": player_id,
            "name": name,
            "description": data.get("description"),
            "status_key": data.get("status_key"),
            "created_at": now,
            "updated_at": now,
        },
        operation="characters.create",
    )
    if campaign_id:
        query.execute(
            conn,
            "INSERT INTO character_campaigns (character_id, campaign_id, status, created_at) "
            "VALUES (?, ?, 'ACTIVE', ?)",
            (character_id, campaign_id, now),
            operation="characters.join_campaign",
        )
    return require_character(conn, character_id)


def update_character(
    conn: sqlite3.Connection, user: User, character_id: str, data: dict[str, Any]
) -> dict[str, Any]:
    character = require_character(conn, character_id)
    _ensure_can_edit(conn, user, character)
    if data.get("world_id") and data["world_id"] != character["world_id"]:
        raise bad_request("Character world cannot be changed.")
    values = {key: data[key] for key in ("name", "description", "status_key") if key in data}
    if user.is_admin and data.get("player_id"):
        values["player_id"] = data["player_id"]
    query.update(conn, "characters", character_id, values, operation="characters.update")
    return require_character(conn, character_id)


def delete_character(conn: sqlite3.Connection, user: User, character_id: str) -> None:
    character = require_character(conn, character_id)
    _ensure_can_edit(conn, user, character)
    query.delete(conn, "characters", character_id, operation="characters.delete")
