"""Context summary and per-record capability checks for the client shell."""

from __future__ import annotations

import sqlite3
from collections.abc import Callable
from dataclasses import asdict, dataclass
from typing import Any

from campaign_server.db import query
from campaign_server.services import entity_types, permissions, records
from campaign_server.services.errors import bad_request, not_found
from campaign_server.services.permissions import User


def context_summary(
    conn: sqlite3.Connection,
    user: User,
    *,
    world_id: str | None = None,
    campaign_id: str | None = None,
    character_id: str | None = None,
) -> dict[str, Any]:
    """Role labels for the header: world role, campaign role and character owner."""
    world_role = campaign_role = owner_label = None

    if world_id and query.exists(
        conn, "SELECT 1 FROM worlds WHERE id = ?", (world_id,), operation="context.world"
    ):
        world_role = "Architect" if permissions.is_world_architect(conn, user.id, world_id) else "Member"

    if campaign_id:
        gm_user_id = query.fetch_one(
            conn, "SELECT gm_user_id FROM campaigns WHERE id = ?", (campaign_id,), operation="context.campaign"
        )
        if gm_user_id is not None:
            campaign_role = "GM" if gm_user_id["gm_user_id"] == user.id else "Player"

    if character_id:
        character = query.fetch_one(
            conn,
            """
            SELECT c.world_id, u.id AS player_id, u.name, u.email
            FROM characters c JOIN users u ON u.id = c.player_id
            WHERE c.id = ?
            """,
            (character_id,),
            operation="context.character",
        )
        if character is not None and _can_see_owner(conn, user, character_id, character["world_id"]):
            owner_label = character["name"] or character["email"] or character["player_id"]

    return {"world_role": world_role, "campaign_role": campaign_role, "character_owner_label": owner_label}


def _can_see_owner(conn: sqlite3.Connection, user: User, character_id: str, world_id: str) -> bool:
    if user.is_admin or permissions.is_world_architect(conn, user.id, world_id):
        return True
    return query.exists(
        conn,
        """
        SELECT 1 FROM character_campaigns cc JOIN campaigns c ON c.id = cc.campaign_id
        WHERE cc.character_id = ? AND c.gm_user_id = ?
        """,
        (character_id, user.id),
        operation="context.character_gm",
    )


# ============================================================================
# CAPABILITIES
# ============================================================================


@dataclass
class Capabilities:
    can_create: bool = False
    can_edit: bool = False
    can_delete: bool = False


@dataclass
class PermissionQuery:
    """Parsed ``/api/permissions`` parameters."""

    entity_key: str | None
    record_id: str | None = None
    world_id: str | None = None
    campaign_id: str | None = None
    character_id: str | None = None
    entity_type_id: str | None = None
    is_template: bool = False


def _world_of(conn: sqlite3.Connection, sql: str, record_id: str, message: str) -> str:
    row = query.fetch_one(conn, sql, (record_id,), operation="context.record_world")
    if row is None:
        raise not_found(message)
    return row["world_id"]


def _manages_relationships(conn: sqlite3.Connection, user: User, world_id: str) -> bool:
    return records.can_administer(conn, user, world_id) or permissions.is_world_game_master(
        conn, user.id, world_id
    )


def _architect(conn: sqlite3.Connection, user: User, world_id: str) -> bool:
    return user.is_admin or permissions.is_world_architect(conn, user.id, world_id)


def _worlds(conn: sqlite3.Connection, user: User, q: PermissionQuery, caps: Capabilities) -> None:
    caps.can_create = True
    if q.record_id:
        caps.can_edit = caps.can_delete = _architect(conn, user, q.record_id)


def _campaigns(conn: sqlite3.Connection, user: User, q: PermissionQuery, caps: Capabilities) -> None:
    if q.world_id:
        caps.can_create = user.is_admin or permissions.can_create_campaign(conn, user.id, q.world_id)
    if q.record_id:
        caps.can_edit = caps.can_delete = user.is_admin or permissions.can_manage_campaign(
            conn, user.id, q.record_id
        )


def _characters(conn: sqlite3.Connection, user: User, q: PermissionQuery, caps: Capabilities) -> None:
    if q.campaign_id:
        caps.can_create = user.is_admin or permissions.can_create_character_in_campaign(
            conn, user.id, q.campaign_id
        )
    elif q.world_id:
        caps.can_create = user.is_admin or permissions.can_create_character_in_world(conn, user.id, q.world_id)
    if q.record_id:
        character = query.fetch_one(
            conn,
            "SELECT world_id, player_id FROM characters WHERE id = ?",
            (q.record_id,),
            operation="context.character_record",
        )
        if character is None:
            raise not_found("Character not found.")
        caps.can_edit = caps.can_delete = (
            character["player_id"] == user.id or _architect(conn, user, character["world_id"])
        )


def _entity_types(conn: sqlite3.Connection, user: User, q: PermissionQuery, caps: Capabilities) -> None:
    if q.record_id:
        entity_type = query.fetch_one(
            conn, "SELECT * FROM entity_types WHERE id = ?", (q.record_id,), operation="context.entity_type"
        )
        if entity_type is None:
            raise not_found("Entity type not found.")
        caps.can_edit = caps.can_delete = entity_types.can_manage(conn, user, entity_type)
    if q.is_template:
        caps.can_create = user.is_admin
    elif q.world_id:
        caps.can_create = _architect(conn, user, q.world_id)


def _entity_fields(conn: sqlite3.Connection, user: User, q: PermissionQuery, caps: Capabilities) -> None:
    entity_type_id = q.entity_type_id
    if q.record_id:
        entity_type_id = query.fetch_value(
            conn, "SELECT entity_type_id FROM entity_fields WHERE id = ?", (q.record_id,), operation="context.field"
        )
        if entity_type_id is None:
            raise not_found("Entity field not found.")
    if not entity_type_id:
        return
    entity_type = entity_types.require_entity_type(conn, entity_type_id)
    can_manage = entity_types.can_manage(conn, user, entity_type)
    caps.can_create = can_manage
    if q.record_id:
        caps.can_edit = caps.can_delete = can_manage


def _location_types(conn: sqlite3.Connection, user: User, q: PermissionQuery, caps: Capabilities) -> None:
    if q.world_id:
        caps.can_create = _architect(conn, user, q.world_id)
    if q.record_id:
        world_id = _world_of(
            conn, "SELECT world_id FROM location_types WHERE id = ?", q.record_id, "Location type not found."
        )
        caps.can_edit = caps.can_delete = _architect(conn, user, world_id)


def _location_type_fields(
    conn: sqlite3.Connection, user: User, q: PermissionQuery, caps: Capabilities
) -> None:
    if q.world_id:
        caps.can_create = _architect(conn, user, q.world_id)
    if q.record_id:
        world_id = _world_of(
            conn,
            """
            SELECT t.world_id FROM location_type_fields f
            JOIN location_types t ON t.id = f.location_type_id WHERE f.id = ?
            """,
            q.record_id,
            "Location field not found.",
        )
        caps.can_edit = caps.can_delete = _architect(conn, user, world_id)


def _location_type_rules(
    conn: sqlite3.Connection, user: User, q: PermissionQuery, caps: Capabilities
) -> None:
    if q.world_id:
        caps.can_create = _architect(conn, user, q.world_id)
    if q.record_id:
        world_id = _world_of(
            conn,
            """
            SELECT t.world_id FROM location_type_rules r
            JOIN location_types t ON t.id = r.parent_type_id WHERE r.id = ?
            """,
            q.record_id,
            "Location type rule not found.",
        )
        caps.can_edit = caps.can_delete = _architect(conn, user, world_id)


def _relationship_types(
    conn: sqlite3.Connection, user: User, q: PermissionQuery, caps: Capabilities
) -> None:
    if q.record_id:
        world_id = _world_of(
            conn,
            "SELECT world_id FROM relationship_types WHERE id = ?",
            q.record_id,
            "Relationship type not found.",
        )
        caps.can_edit = caps.can_delete = _manages_relationships(conn, user, world_id)
    if q.world_id:
        caps.can_create = _manages_relationships(conn, user, q.world_id)


def _relationship_type_rules(
    conn: sqlite3.Connection, user: User, q: PermissionQuery, caps: Capabilities
) -> None:
    if q.record_id:
        world_id = _world_of(
            conn,
            """
            SELECT t.world_id FROM relationship_type_rules r
            JOIN relationship_types t ON t.id = r.relationship_type_id WHERE r.id = ?
            """,
            q.record_id,
            "Relationship type rule not found.",
        )
        caps.can_edit = caps.can_delete = _manages_relationships(conn, user, world_id)
    if q.world_id:
        caps.can_create = _manages_relationships(conn, user, q.world_id)


def _world_records(kind: records.RecordKind) -> Callable[..., None]:
    def check(conn: sqlite3.Connection, user: User, q: PermissionQuery, caps: Capabilities) -> None:
        if q.world_id:
            caps.can_create = user.is_admin or permissions.can_create_records_in_world(conn, user.id, q.world_id)
        if q.record_id:
            row = records.require_row(conn, kind, q.record_id)
            caps.can_edit = records.can_write(
                conn, kind, user, row, campaign_id=q.campaign_id, character_id=q.character_id
            )
            caps.can_delete = records.can_administer(conn, user, row["world_id"])

    return check


_CHECKS: dict[str, Callable[[sqlite3.Connection, User, PermissionQuery, Capabilities], None]] = {
    "worlds": _worlds,
    "campaigns": _campaigns,
    "characters": _characters,
    "entity_types": _entity_types,
    "entity_fields": _entity_fields,
    "location_types": _location_types,
    "location_type_fields": _location_type_fields,
    "location_type_rules": _location_type_rules,
    "relationship_types": _relationship_types,
    "relationship_type_rules": _relationship_type_rules,
    "entities": _world_records(records.ENTITIES),
    "locations": _world_records(records.LOCATIONS),
}


def record_permissions(conn: sqlite3.Connection, user: User, q: PermissionQuery) -> dict[str, bool]:
    """Return ``{can_create, can_edit, can_delete}`` for one entity key.

    Pack and template keys, and any key without a dedicated rule, are admin-only.
    """
    if not q.entity_key:
        raise bad_request("entity_key is required.")
    caps = Capabilities()
    check = _CHECKS.get(q.entity_key)
    if check is not None:
        check(conn, user, q, caps)
    else:
        caps.can_create = caps.can_edit = caps.can_delete = user.is_admin
    return asdict(caps)
