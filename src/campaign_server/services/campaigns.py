"""Campaign service: CRUD, GM assignment, roster and character creators."""

from __future__ import annotations

import sqlite3
from typing import Any

from campaign_server.db import query
from campaign_server.services import permissions
from campaign_server.services.errors import bad_request, forbidden, not_found
from campaign_server.services.permissions import User

_ACCESS_CLAUSE = """
    (c.gm_user_id = :user
     OR c.created_by_id = :user
     OR EXISTS (SELECT 1 FROM worlds w WHERE w.id = c.world_id AND w.primary_architect_id = :user)
     OR EXISTS (SELECT 1 FROM world_architects wa WHERE wa.world_id = c.world_id AND wa.user_id = :user)
     OR EXISTS (
        SELECT 1 FROM character_campaigns cc
        JOIN characters ch ON ch.id = cc.character_id
        WHERE cc.campaign_id = c.id AND ch.player_id = :user
     ))
"""


def normalize_roster_status(status: str | None) -> str:
    return "INACTIVE" if status == "INACTIVE" else "ACTIVE"


def require_campaign(conn: sqlite3.Connection, campaign_id: str) -> dict[str, Any]:
    campaign = query.fetch_one(
        conn, "SELECT * FROM campaigns WHERE id = ?", (campaign_id,), operation="campaigns.get"
    )
    if campaign is None:
        raise not_found("Campaign not found.")
    return campaign


def _ensure_can_manage(conn: sqlite3.Connection, user: User, campaign_id: str) -> None:
    if user.is_admin or permissions.can_manage_campaign(conn, user.id, campaign_id):
        return
    raise forbidden()


def _ensure_world_gm(conn: sqlite3.Connection, user: User, world_id: str, gm_user_id: str) -> None:
    """Non-architects may only pick existing world GMs; others upsert the GM row."""
    if not user.is_admin and not permissions.is_world_architect(conn, user.id, world_id):
        if not permissions.is_world_game_master(conn, gm_user_id, world_id):
            raise forbidden("GM must be assigned to this world.")
        return
    query.execute(
        conn,
        "INSERT OR IGNORE INTO world_game_masters (world_id, user_id) VALUES (?, ?)",
        (world_id, gm_user_id),
        operation="campaigns.upsert_world_gm",
    )


def _characters_in_world(conn: sqlite3.Connection, character_ids: list[str], world_id: str) -> list[str]:
    if not character_ids:
        return []
    rows = query.fetch_all(
        conn,
        f"SELECT id FROM characters WHERE world_id = ? AND id IN ({query.placeholders(character_ids)})",  # nosec B608
        (world_id, *character_ids),
        operation="campaigns.characters_in_world",
    )
    return [row["id"] for row in rows]


def _roster_ids(conn: sqlite3.Connection, campaign_id: str) -> list[str]:
    rows = query.fetch_all(
        conn,
        "SELECT character_id FROM character_campaigns WHERE campaign_id = ? ORDER BY created_at",
        (campaign_id,),
        operation="campaigns.roster_ids",
    )
    return [row["character_id"] for row in rows]


def _add_to_roster(
    conn: sqlite3.Connection, campaign_id: str, character_id: str, status: str = "ACTIVE"
) -> None:
    query.execute(
        conn,
        """
        INSERT INTO character_campaigns (character_id, campaign_id, status, created_at)
        VALUES (?, ?, ?, ?)
        ON CONFLICT (character_id, campaign_id) DO UPDATE SET status = excluded.status
        """,
        (character_id, campaign_id, status, query.utc_now()),
        operation="campaigns.add_to_roster",
    )


def list_campaigns(
    conn: sqlite3.Connection,
    user: User,
    *,
    world_id: str | None = None,
    character_id: str | None = None,
) -> list[dict[str, Any]]:
    clauses: list[str] = []
    params: dict[str, Any] = {"user": user.id}
    if not user.is_admin:
        clauses.append(_ACCESS_CLAUSE)
    if world_id:
        clauses.append("c.world_id = :world")
        params["world"] = world_id
    if character_id:
        clauses.append(
            "EXISTS (SELECT 1 FROM character_campaigns cc "
            "WHERE cc.campaign_id = c.id AND cc.character_id = :character)"
        )
        params["character"] = character_id
    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    return query.fetch_all(
        conn,
        f"SELECT c.* FROM campaigns c {where} ORDER BY c.name",  # nosec B608
        params,
        operation="campaigns.list",
    )


def get_campaign(conn: sqlite3.Connection, user: User, campaign_id: str) -> dict[str, Any]:
    campaign = require_campaign(conn, campaign_id)
    if not user.is_admin and not permissions.can_access_campaign(conn, user.id, campaign_id):
        raise forbidden()
    creators = query.fetch_all(
        conn,
        "SELECT user_id FROM campaign_character_creators WHERE campaign_id = ? ORDER BY user_id",
        (campaign_id,),
        operation="campaigns.character_creators",
    )
    return {
        **campaign,
        "character_ids": _roster_ids(conn, campaign_id),
        "character_creator_ids": [row["user_id"] for row in creators],
    }


def create_campaign(conn: sqlite3.Connection, user: User, data: dict[str, Any]) -> dict[str, Any]:
    world_id = data.get("world_id")
    name = (data.get("name") or "").strip()
    if not world_id or not name:
        raise bad_request("world_id and name are required.")
    if not query.exists(conn, "SELECT 1 FROM worlds WHERE id = ?", (world_id,), operation="campaigns.world_exists"):
        raise not_found("World not found.")
    if not user.is_admin and not permissions.can_create_campaign(conn, user.id, world_id):
        raise forbidden()

    gm_user_id = data.get("gm_user_id") or user.id
    _ensure_world_gm(conn, user, world_id, gm_user_id)

    now = query.utc_now()
    campaign_id = query.insert(
        conn,
        "campaigns",
        {
            "world_id": world_id,
            "name": name,
            "description": data.get("description"),
            "owner_id": user.id,
            "created_by_id": user.id,
            "gm_user_id": gm_user_id,
            "created_at": now,
            "updated_at": now,
        },
        operation="campaigns.create",
    )
    for character_id in _characters_in_world(conn, data.get("character_ids") or [], world_id):
        _add_to_roster(conn, campaign_id, character_id)
    return require_campaign(conn, campaign_id)


def update_campaign(
    conn: sqlite3.Connection, user: User, campaign_id: str, data: dict[str, Any]
) -> dict[str, Any]:
    campaign = require_campaign(conn, campaign_id)
    _ensure_can_manage(conn, user, campaign_id)
    world_id = campaign["world_id"]
    if data.get("world_id") and data["world_id"] != world_id:
        raise bad_request("Campaign world cannot be changed.")

    values = {key: data[key] for key in ("name", "description") if key in data}
    gm_user_id = data.get("gm_user_id")
    if gm_user_id and gm_user_id != campaign["gm_user_id"]:
        allowed = (
            user.is_admin
            or permissions.is_world_architect(conn, user.id, world_id)
            or permissions.is_world_game_master(conn, user.id, world_id)
            or campaign["gm_user_id"] == user.id
        )
        if not allowed:
            raise forbidden("Only admins, architects, GMs, or the current GM can change GM.")
        _ensure_world_gm(conn, user, world_id, gm_user_id)
        values["gm_user_id"] = gm_user_id
    query.update(conn, "campaigns", campaign_id, values, operation="campaigns.update")

    if isinstance(data.get("character_ids"), list):
        valid_ids = _characters_in_world(conn, data["character_ids"], world_id)
        for character_id in _roster_ids(conn, campaign_id):
            if character_id not in valid_ids:
                remove_from_roster(conn, campaign_id, character_id)
        existing = set(_roster_ids(conn, campaign_id))
        for character_id in valid_ids:
            if character_id not in existing:
                _add_to_roster(conn, campaign_id, character_id)
    return require_campaign(conn, campaign_id)


def delete_campaign(conn: sqlite3.Connection, user: User, campaign_id: str) -> None:
    require_campaign(conn, campaign_id)
    _ensure_can_manage(conn, user, campaign_id)
    query.delete(conn, "campaigns", campaign_id, operation="campaigns.delete")


# ============================================================================
# ROSTER
# ============================================================================


def list_roster(conn: sqlite3.Connection, user: User, campaign_id: str) -> list[dict[str, Any]]:
    require_campaign(conn, campaign_id)
    if not user.is_admin and not permissions.can_access_campaign(conn, user.id, campaign_id):
        raise forbidden()
    return query.fetch_all(
        conn,
        """
        SELECT ch.id, ch.name, ch.player_id, cc.status
        FROM character_campaigns cc
        JOIN characters ch ON ch.id = cc.character_id
        WHERE cc.campaign_id = ?
        ORDER BY ch.name
        """,
        (campaign_id,),
        operation="campaigns.list_roster",
    )


def add_character(
    conn: sqlite3.Connection,
    user: User,
    campaign_id: str,
    character_id: str | None,
    status: str | None = None,
) -> dict[str, Any]:
    campaign = require_campaign(conn, campaign_id)
    _ensure_can_manage(conn, user, campaign_id)
    character_world = query.fetch_value(
        conn,
        "SELECT world_id FROM characters WHERE id = ?",
        (character_id,),
        operation="campaigns.character_world",
    )
    if character_world is None or character_world != campaign["world_id"]:
        raise bad_request("World mismatch.")
    normalized = normalize_roster_status(status)
    _add_to_roster(conn, campaign_id, character_id, normalized)
    return {"character_id": character_id, "campaign_id": campaign_id, "status": normalized}


def update_roster_status(
    conn: sqlite3.Connection, user: User, campaign_id: str, character_id: str, status: str | None
) -> dict[str, Any]:
    require_campaign(conn, campaign_id)
    _ensure_can_manage(conn, user, campaign_id)
    normalized = normalize_roster_status(status)
    updated = query.execute(
        conn,
        "UPDATE character_campaigns SET status = ? WHERE campaign_id = ? AND character_id = ?",
        (normalized, campaign_id, character_id),
        operation="campaigns.update_roster_status",
    )
    if not updated:
        raise not_found("Character is not in the campaign.")
    return {"character_id": character_id, "campaign_id": campaign_id, "status": normalized}


def remove_from_roster(conn: sqlite3.Connection, campaign_id: str, character_id: str) -> None:
    query.execute(
        conn,
        "DELETE FROM character_campaigns WHERE campaign_id = ? AND character_id = ?",
        (campaign_id, character_id),
        operation="campaigns.remove_from_roster",
    )


def remove_character(conn: sqlite3.Connection, user: User, campaign_id: str, character_id: str) -> None:
    require_campaign(conn, campaign_id)
    _ensure_can_manage(conn, user, campaign_id)
    remove_from_roster(conn, campaign_id, character_id)


def add_character_creator(
    conn: sqlite3.Connection, user: User, campaign_id: str, member_id: str | None
) -> None:
    require_campaign(conn, campaign_id)
    _ensure_can_manage(conn, user, campaign_id)
    if not member_id:
        raise bad_request("user_id is required.")
    query.execute(
        conn,
        "INSERT OR IGNORE INTO campaign_character_creators (campaign_id, user_id) VALUES (?, ?)",
        (campaign_id, member_id),
        operation="campaigns.add_character_creator",
    )


def remove_character_creator(
    conn: sqlite3.Connection, user: User, campaign_id: str, member_id: str
) -> None:
    require_campaign(conn, campaign_id)
    _ensure_can_manage(conn, user, campaign_id)
    query.execute(
        conn,
        "DELETE FROM campaign_character_creators WHERE campaign_id = ? AND user_id = ?",
        (campaign_id, member_id),
        operation="campaigns.remove_character_creator",
    )
