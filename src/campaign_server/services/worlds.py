"""World service: CRUD and membership management."""

from __future__ import annotations

import sqlite3
from typing import Any

from campaign_server.db import query
from campaign_server.services import permissions
from campaign_server.services.errors import bad_request, forbidden, not_found
from campaign_server.services.permissions import EntityPermissionScope, User

# Membership route segment -> join table.
MEMBER_TABLES = {
    "architects": "world_architects",
    "game-masters": "world_game_masters",
    "campaign-creators": "world_campaign_creators",
    "character-creators": "world_character_creators",
}

_UPDATABLE = ("name", "description", "dm_label_key", "theme_key")


def require_world(conn: sqlite3.Connection, world_id: str) -> dict[str, Any]:
    world = query.fetch_one(
        conn, "SELECT * FROM worlds WHERE id = ?", (world_id,), operation="worlds.get"
    )
    if world is None:
        raise not_found("World not found.")
    return world


def _ensure_can_manage(conn: sqlite3.Connection, user: User, world_id: str) -> None:
    if user.is_admin or permissions.is_world_architect(conn, user.id, world_id):
        return
    raise forbidden()


def _validate_scope(value: str | None) -> str | None:
    if value is None:
        return None
    try:
        return EntityPermissionScope(value).value
    except ValueError as exc:
        raise bad_request("Invalid entity permission scope.") from exc


def _add_member(conn: sqlite3.Connection, table: str, world_id: str, user_id: str) -> None:
    query.execute(
        conn,
        f"INSERT OR IGNORE INTO {table} (world_id, user_id) VALUES (?, ?)",  # nosec B608
        (world_id, user_id),
        operation="worlds.add_member",
    )


def _replace_character_creators(
    conn: sqlite3.Connection, world_id: str, user_ids: list[str]
) -> None:
    query.execute(
        conn,
        "DELETE FROM world_character_creators WHERE world_id = ?",
        (world_id,),
        operation="worlds.clear_character_creators",
    )
    for user_id in user_ids:
        _add_member(conn, "world_character_creators", world_id, user_id)


def _character_creator_ids(conn: sqlite3.Connection, world_id: str) -> list[str]:
    rows = query.fetch_all(
        conn,
        "SELECT user_id FROM world_character_creators WHERE world_id = ? ORDER BY user_id",
        (world_id,),
        operation="worlds.character_creators",
    )
    return [row["user_id"] for row in rows]


def list_worlds(conn: sqlite3.Connection, user: User) -> list[dict[str, Any]]:
    """Worlds the user belongs to (all worlds for admins), ordered by name."""
    if user.is_admin:
        return query.fetch_all(
            conn, "SELECT * FROM worlds ORDER BY name", operation="worlds.list"
        )
    return query.fetch_all(
        conn,
        """
        SELECT * FROM worlds w
        WHERE w.primary_architect_id = :user
           OR EXISTS (SELECT 1 FROM world_architects x WHERE x.world_id = w.id AND x.user_id = :user)
           OR EXISTS (SELECT 1 FROM world_game_masters x WHERE x.world_id = w.id AND x.user_id = :user)
           OR EXISTS (SELECT 1 FROM world_campaign_creators x WHERE x.world_id = w.id AND x.user_id = :user)
           OR EXISTS (SELECT 1 FROM world_character_creators x WHERE x.world_id = w.id AND x.user_id = :user)
        ORDER BY w.name
        """,
        {"user": user.id},
        operation="worlds.list",
    )


def get_world(conn: sqlite3.Connection, user: User, world_id: str) -> dict[str, Any]:
    world = require_world(conn, world_id)
    can_read = user.is_admin or permissions.is_world_architect(conn, user.id, world_id)
    if not can_read:
        can_read = query.exists(
            conn,
            """
            SELECT 1 FROM world_game_masters WHERE world_id = :world AND user_id = :user
            UNION ALL
            SELECT 1 FROM world_campaign_creators WHERE world_id = :world AND user_id = :user
            UNION ALL
            SELECT 1 FROM world_character_creators WHERE world_id = :world AND user_id = :user
            """,
            {"world": world_id, "user": user.id},
            operation="worlds.can_read",
        )
    if not can_read:
        raise forbidden()
    return {**world, "character_creator_ids": _character_creator_ids(conn, world_id)}


def is_world_admin(conn: sqlite3.Connection, user: User, world_id: str) -> bool:
    return user.is_admin or permissions.is_world_architect(conn, user.id, world_id)


def create_world(conn: sqlite3.Connection, user: User, data: dict[str, Any]) -> dict[str, Any]:
    name = (data.get("name") or "").strip()
    if not name:
        raise bad_request("name is required.")
    primary_architect_id = data.get("primary_architect_id")
    if primary_architect_id and not user.is_admin:
        raise forbidden("Only admins can set the primary architect.")
    architect_id = primary_architect_id or user.id

    now = query.utc_now()
    values: dict[str, Any] = {
        "name": name,
        "description": data.get("description"),
        "dm_label_key": data.get("dm_label_key"),
        "theme_key": data.get("theme_key"),
        "primary_architect_id": architect_id,
        "created_at": now,
        "updated_at": now,
    }
    scope = _validate_scope(data.get("entity_permission_scope"))
    if scope is not None:
        values["entity_permission_scope"] = scope
    world_id = query.insert(conn, "worlds", values, operation="worlds.create")
    _add_member(conn, "world_architects", world_id, architect_id)
    for creator_id in data.get("character_creator_ids") or []:
        _add_member(conn, "world_character_creators", world_id, creator_id)
    return require_world(conn, world_id)


def update_world(
    conn: sqlite3.Connection, user: User, world_id: str, data: dict[str, Any]
) -> dict[str, Any]:
    require_world(conn, world_id)
    _ensure_can_manage(conn, user, world_id)
    primary_architect_id = data.get("primary_architect_id")
    if primary_architect_id and not user.is_admin:
        raise forbidden("Only admins can change the primary architect.")

    values = {key: data[key] for key in _UPDATABLE if key in data}
    if primary_architect_id:
        values["primary_architect_id"] = primary_architect_id
    scope = _validate_scope(data.get("entity_permission_scope"))
    if scope is not None:
        values["entity_permission_scope"] = scope
    query.update(conn, "worlds", world_id, values, operation="worlds.update")

    if primary_architect_id:
        _add_member(conn, "world_architects", world_id, primary_architect_id)
    if isinstance(data.get("character_creator_ids"), list):
        _replace_character_creators(conn, world_id, data["character_creator_ids"])
    return require_world(conn, world_id)


def delete_world(conn: sqlite3.Connection, user: User, world_id: str) -> None:
    """Delete a world and, through cascades, everything that belongs to it."""
    require_world(conn, world_id)
    _ensure_can_manage(conn, user, world_id)
    # Clear self references first so the cascade does not trip on parent rows.
    query.execute(
        conn,
        "UPDATE locations SET parent_location_id = NULL WHERE world_id = ?",
        (world_id,),
        operation="worlds.detach_locations",
    )
    query.execute(
        conn,
        "DELETE FROM relationships WHERE world_id = ?",
        (world_id,),
        operation="worlds.delete_relationships",
    )
    query.execute(
        conn,
        "DELETE FROM entities WHERE world_id = ?",
        (world_id,),
        operation="worlds.delete_entities",
    )
    query.execute(
        conn,
        "DELETE FROM locations WHERE world_id = ?",
        (world_id,),
        operation="worlds.delete_locations",
    )
    query.delete(conn, "worlds", world_id, operation="worlds.delete")


def list_members(
    conn: sqlite3.Connection, user: User, world_id: str, member_type: str
) -> list[dict[str, Any]]:
    table = MEMBER_TABLES[member_type]
    require_world(conn, world_id)
    _ensure_can_manage(conn, user, world_id)
    return query.fetch_all(
        conn,
        f"""
        SELECT u.id, u.email, u.name FROM {table} m
        JOIN users u ON u.id = m.user_id
        WHERE m.world_id = ?
        ORDER BY u.email
        """,  # nosec B608
        (world_id,),
        operation="worlds.list_members",
    )


def add_member(
    conn: sqlite3.Connection, user: User, world_id: str, member_type: str, user_id: str | None
) -> None:
    table = MEMBER_TABLES[member_type]
    require_world(conn, world_id)
    _ensure_can_manage(conn, user, world_id)
    if not user_id:
        raise bad_request("user_id is required.")
    if not query.exists(conn, "SELECT 1 FROM users WHERE id = ?", (user_id,), operation="worlds.user_exists"):
        raise not_found("User not found.")
    _add_member(conn, table, world_id, user_id)


def remove_member(
    conn: sqlite3.Connection, user: User, world_id: str, member_type: str, user_id: str
) -> None:
    table = MEMBER_TABLES[member_type]
    world = require_world(conn, world_id)
    _ensure_can_manage(conn, user, world_id)
    if member_type == "architects" and world["primary_architect_id"] == user_id:
        raise bad_request("Cannot remove the primary architect.")
    query.execute(
        conn,
        f"DELETE FROM {table} WHERE world_id = ? AND user_id = ?",  # nosec B608
        (world_id, user_id),
        operation="worlds.remove_member",
    )
