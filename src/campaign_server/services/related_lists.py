"""Related lists: child tables shown under a parent record's form.

A related list definition (``system_related_lists`` plus its
``system_related_list_fields``) names a parent entity key and a *join kind*.
The join kind decides where the rows come from and whether the list can be
edited in place. ``RELATED`` fields are read from the related record and
``JOIN`` fields from the join row (or a computed column such as a rule's
type names).

Only membership joins accept ``add_item``/``remove_item``. Entity fields can
be removed from their type here, but are created through the field
endpoints.
"""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from typing import Any

from campaign_server.db import query
from campaign_server.services import campaigns, entity_types, permissions, worlds
from campaign_server.services.errors import bad_request, conflict, forbidden, not_found
from campaign_server.services.permissions import User

FIELD_SOURCES = ("RELATED", "JOIN")

# Never exposed through a related list, whatever the definition names.
_HIDDEN_COLUMNS = frozenset({"password_hash"})


@dataclass(frozen=True)
class JoinKind:
    """How one ``join_entity_key`` reads (and optionally edits) its rows.

    ``items_sql`` takes the parent id as its only parameter and must select a
    ``related_id`` column. ``editable`` joins support add and remove;
    world memberships also name their ``member_type``.
    """

    items_sql: str
    join_columns: tuple[str, ...] = ()
    flags: tuple[str, ...] = ()
    editable: bool = False
    member_type: str | None = None


def _world_members(table: str, member_type: str) -> JoinKind:
    return JoinKind(
        items_sql=f"""
            SELECT u.*, u.id AS related_id FROM {table} m
            JOIN users u ON u.id = m.user_id
            WHERE m.world_id = ?
            ORDER BY u.email
        """,  # nosec B608
        editable=True,
        member_type=member_type,
    )


def _pack_templates(table: str, flags: tuple[str, ...]) -> JoinKind:
    return JoinKind(
        items_sql=f"""
            SELECT t.*, t.id AS related_id FROM {table} t
            WHERE t.pack_id = ?
            ORDER BY t.name
        """,  # nosec B608
        flags=flags,
    )


JOIN_KINDS: dict[str, JoinKind] = {
    "character_campaign": JoinKind(
        items_sql="""
            SELECT c.*, c.id AS related_id,
                   COALESCE(u.name, u.email, '-') AS player_name,
                   cc.status
            FROM character_campaigns cc
            JOIN characters c ON c.id = cc.character_id
            LEFT JOIN users u ON u.id = c.player_id
            WHERE cc.campaign_id = ?
            ORDER BY c.name
        """,
        join_columns=("status",),
        editable=True,
    ),
    "world_architect": _world_members("world_architects", "architects"),
    "world_game_master": _world_members("world_game_masters", "game-masters"),
    "world_campaign_creator": _world_members("world_campaign_creators", "campaign-creators"),
    "world_character_creator": _world_members("world_character_creators", "character-creators"),
    "campaign_character_creator": JoinKind(
        items_sql="""
            SELECT u.*, u.id AS related_id FROM campaign_character_creators m
            JOIN users u ON u.id = m.user_id
            WHERE m.campaign_id = ?
            ORDER BY u.email
        """,
        editable=True,
    ),
    "entity_field": JoinKind(
        items_sql="""
            SELECT f.*, f.id AS related_id FROM entity_fields f
            WHERE f.entity_type_id = ?
            ORDER BY f.list_order, f.label
        """,
        flags=("required",),
    ),
    "pack_entity_type_template": _pack_templates("entity_type_templates", ("is_core",)),
    "pack_location_type_template": _pack_templates("location_type_templates", ("is_core",)),
    "pack_relationship_type_template": _pack_templates("relationship_type_templates", ("is_peerable",)),
    "relationship_type_rule_from": JoinKind(
        items_sql="""
            SELECT r.id AS related_id, rt.name AS relationship_type_name, et.name AS to_entity_type_name
            FROM relationship_type_rules r
            JOIN relationship_types rt ON rt.id = r.relationship_type_id
            JOIN entity_types et ON et.id = r.to_entity_type_id
            WHERE r.from_entity_type_id = ?
            ORDER BY rt.name, et.name
        """,
        join_columns=("relationship_type_name", "to_entity_type_name"),
    ),
    "relationship_type_rule_to": JoinKind(
        items_sql="""
            SELECT r.id AS related_id, rt.name AS relationship_type_name, et.name AS from_entity_type_name
            FROM relationship_type_rules r
            JOIN relationship_types rt ON rt.id = r.relationship_type_id
            JOIN entity_types et ON et.id = r.from_entity_type_id
            WHERE r.to_entity_type_id = ?
            ORDER BY rt.name, et.name
        """,
        join_columns=("relationship_type_name", "from_entity_type_name"),
    ),
    "relationship_type_rule": JoinKind(
        items_sql="""
            SELECT r.id AS related_id, f.name AS from_entity_type_name, t.name AS to_entity_type_name
            FROM relationship_type_rules r
            JOIN entity_types f ON f.id = r.from_entity_type_id
            JOIN entity_types t ON t.id = r.to_entity_type_id
            WHERE r.relationship_type_id = ?
            ORDER BY f.name, t.name
        """,
        join_columns=("from_entity_type_name", "to_entity_type_name"),
    ),
    "location_type_rule_parent": JoinKind(
        items_sql="""
            SELECT r.id AS related_id, c.name AS child_type_name, r.allowed
            FROM location_type_rules r
            JOIN location_types c ON c.id = r.child_type_id
            WHERE r.parent_type_id = ?
            ORDER BY c.name
        """,
        join_columns=("child_type_name", "allowed"),
        flags=("allowed",),
    ),
    "location_type_rule_child": JoinKind(
        items_sql="""
            SELECT r.id AS related_id, p.name AS parent_type_name, r.allowed
            FROM location_type_rules r
            JOIN location_types p ON p.id = r.parent_type_id
            WHERE r.child_type_id = ?
            ORDER BY p.name
        """,
        join_columns=("parent_type_name", "allowed"),
        flags=("allowed",),
    ),
}


# ============================================================================
# DEFINITIONS
# ============================================================================


def _list_fields(conn: sqlite3.Connection, related_list_id: str) -> list[dict[str, Any]]:
    return query.fetch_all(
        conn,
        "SELECT * FROM system_related_list_fields WHERE related_list_id = ? ORDER BY list_order, field_key",
        (related_list_id,),
        operation="related_lists.fields",
    )


def _present(conn: sqlite3.Connection, row: dict[str, Any]) -> dict[str, Any]:
    return {**row, "admin_only": bool(row["admin_only"]), "fields": _list_fields(conn, row["id"])}


def _find(conn: sqlite3.Connection, key: str) -> dict[str, Any] | None:
    return query.fetch_one(
        conn, "SELECT * FROM system_related_lists WHERE key = ?", (key,), operation="related_lists.find"
    )


def _require_visible(conn: sqlite3.Connection, user: User, key: str) -> dict[str, Any]:
    related_list = _find(conn, key)
    if related_list is None:
        raise not_found("Related list not found.")
    if related_list["admin_only"] and not user.is_admin:
        raise forbidden()
    return related_list


def list_for_entity(conn: sqlite3.Connection, user: User, entity_key: str | None) -> list[dict[str, Any]]:
    """Related lists shown under ``entity_key`` forms, with their fields."""
    if not entity_key:
        raise bad_request("entity_key is required.")
    admin_filter = "" if user.is_admin else "AND admin_only = 0"
    rows = query.fetch_all(
        conn,
        f"""
        SELECT * FROM system_related_lists
        WHERE parent_entity_key = ? {admin_filter}
        ORDER BY list_order, title
        """,  # nosec B608
        (entity_key,),
        operation="related_lists.for_entity",
    )
    return [_present(conn, row) for row in rows]


# ============================================================================
# PARENT ACCESS
# ============================================================================


def _parent_world(conn: sqlite3.Connection, table: str, parent_id: str) -> str | None:
    return query.fetch_value(
        conn,
        f"SELECT world_id FROM {table} WHERE id = ?",  # nosec B608
        (parent_id,),
        operation=f"related_lists.{table}_world",
    )


def _can_use_parent(
    conn: sqlite3.Connection, user: User, parent_entity_key: str, parent_id: str, *, manage: bool
) -> bool:
    """Whether ``user`` may read (or with ``manage``, edit) lists under the parent."""
    if user.is_admin:
        return True
    if parent_entity_key == "campaigns":
        if manage:
            return permissions.can_manage_campaign(conn, user.id, parent_id)
        return permissions.can_access_campaign(conn, user.id, parent_id)
    if parent_entity_key == "worlds":
        if manage:
            return permissions.is_world_architect(conn, user.id, parent_id)
        return permissions.can_access_world(conn, user.id, parent_id)
    if parent_entity_key == "entity_types":
        entity_type = query.fetch_one(
            conn,
            "SELECT * FROM entity_types WHERE id = ?",
            (parent_id,),
            operation="related_lists.entity_type",
        )
        if entity_type is None:
            return False
        if manage:
            return entity_types.can_manage(conn, user, entity_type)
        return entity_types.can_access(conn, user, entity_type)
    if parent_entity_key in ("location_types", "relationship_types"):
        world_id = _parent_world(conn, parent_entity_key, parent_id)
        if world_id is None:
            return False
        if manage:
            return permissions.is_world_architect(conn, user.id, world_id)
        return permissions.can_access_world(conn, user.id, world_id)
    return False


def _require_parent(
    conn: sqlite3.Connection, user: User, related_list: dict[str, Any], parent_id: str, *, manage: bool
) -> None:
    if not _can_use_parent(conn, user, related_list["parent_entity_key"], parent_id, manage=manage):
        raise forbidden()


# ============================================================================
# ITEMS
# ============================================================================


def _flag(row: dict[str, Any], column: str, flags: tuple[str, ...]) -> Any:
    value = row[column]
    return bool(value) if column in flags and value is not None else value


def list_items(
    conn: sqlite3.Connection, user: User, key: str, *, parent_id: str | None
) -> dict[str, list[dict[str, Any]]]:
    """Rows of one related list as ``{"items": [{related_id, related_data, join_data}]}``."""
    if not parent_id:
        raise bad_request("parent_id is required.")
    related_list = _require_visible(conn, user, key)
    _require_parent(conn, user, related_list, parent_id, manage=False)

    kind = JOIN_KINDS.get(related_list["join_entity_key"])
    if kind is None:
        return {"items": []}
    related_keys = {
        field["field_key"]
        for field in _list_fields(conn, related_list["id"])
        if field["source"] == "RELATED" and field["field_key"] not in _HIDDEN_COLUMNS
    }
    related_keys.add("id")

    rows = query.fetch_all(conn, kind.items_sql, (parent_id,), operation=f"related_lists.items.{key}")
    items = []
    for row in rows:
        items.append(
            {
                "related_id": row["related_id"],
                "related_data": {
                    column: _flag(row, column, kind.flags)
                    for column in row
                    if column in related_keys and column not in kind.join_columns
                },
                "join_data": {column: _flag(row, column, kind.flags) for column in kind.join_columns},
            }
        )
    return {"items": items}


def _require_pair(data: dict[str, Any]) -> tuple[str, str]:
    parent_id, related_id = data.get("parent_id"), data.get("related_id")
    if not parent_id or not related_id:
        raise bad_request("parent_id and related_id are required.")
    return parent_id, related_id


def _require_editable(conn: sqlite3.Connection, user: User, key: str, parent_id: str) -> dict[str, Any]:
    related_list = _require_visible(conn, user, key)
    _require_parent(conn, user, related_list, parent_id, manage=True)
    return related_list


def add_item(conn: sqlite3.Connection, user: User, key: str, data: dict[str, Any]) -> dict[str, Any]:
    """Link ``related_id`` to ``parent_id`` through a membership join."""
    parent_id, related_id = _require_pair(data)
    related_list = _require_editable(conn, user, key, parent_id)
    join_key = related_list["join_entity_key"]
    kind = JOIN_KINDS.get(join_key)

    if join_key == "entity_field":
        raise bad_request("Use /api/entity-fields to create fields.")
    if kind is None or not kind.editable:
        raise bad_request("Unsupported related list.")

    if join_key == "character_campaign":
        roster = query.fetch_one(
            conn,
            "SELECT * FROM character_campaigns WHERE campaign_id = ? AND character_id = ?",
            (parent_id, related_id),
            operation="related_lists.roster_entry",
        )
        if roster is not None:
            return roster
        return campaigns.add_character(conn, user, parent_id, related_id)
    if join_key == "campaign_character_creator":
        if not query.exists(
            conn, "SELECT 1 FROM users WHERE id = ?", (related_id,), operation="related_lists.user_exists"
        ):
            raise not_found("User not found.")
        campaigns.add_character_creator(conn, user, parent_id, related_id)
        return {"campaign_id": parent_id, "user_id": related_id}
    worlds.add_member(conn, user, parent_id, kind.member_type, related_id)
    return {"world_id": parent_id, "user_id": related_id}


def remove_item(conn: sqlite3.Connection, user: User, key: str, data: dict[str, Any]) -> None:
    parent_id, related_id = _require_pair(data)
    related_list = _require_editable(conn, user, key, parent_id)
    join_key = related_list["join_entity_key"]
    kind = JOIN_KINDS.get(join_key)

    if join_key == "entity_field":
        removed = query.execute(
            conn,
            "DELETE FROM entity_fields WHERE id = ? AND entity_type_id = ?",
            (related_id, parent_id),
            operation="related_lists.remove_field",
        )
        if not removed:
            raise not_found("Field not found.")
        return
    if kind is None or not kind.editable:
        raise bad_request("Unsupported related list.")

    if join_key == "character_campaign":
        campaigns.remove_character(conn, user, parent_id, related_id)
    elif join_key == "campaign_character_creator":
        campaigns.remove_character_creator(conn, user, parent_id, related_id)
    else:
        worlds.remove_member(conn, user, parent_id, kind.member_type, related_id)


# ============================================================================
# ADMINISTRATION
# ============================================================================

_LIST_REQUIRED = (
    "key",
    "title",
    "parent_entity_key",
    "related_entity_key",
    "join_entity_key",
    "parent_field_key",
    "related_field_key",
)


def _require_list(conn: sqlite3.Connection, related_list_id: str) -> dict[str, Any]:
    row = query.fetch_one(
        conn,
        "SELECT * FROM system_related_lists WHERE id = ?",
        (related_list_id,),
        operation="related_lists.get",
    )
    if row is None:
        raise not_found("Related list not found.")
    return row


def _key_taken(conn: sqlite3.Connection, key: str, exclude_id: str | None = None) -> bool:
    return query.exists(
        conn,
        "SELECT 1 FROM system_related_lists WHERE key = ? AND id IS NOT ?",
        (key, exclude_id),
        operation="related_lists.key_taken",
    )


def list_definitions(conn: sqlite3.Connection, user: User) -> list[dict[str, Any]]:
    permissions.require_system_admin(conn, user)
    rows = query.fetch_all(
        conn,
        "SELECT * FROM system_related_lists ORDER BY parent_entity_key, list_order, title",
        operation="related_lists.list",
    )
    return [_present(conn, row) for row in rows]


def get_definition(conn: sqlite3.Connection, user: User, related_list_id: str) -> dict[str, Any]:
    permissions.require_system_admin(conn, user)
    return _present(conn, _require_list(conn, related_list_id))


def create_definition(conn: sqlite3.Connection, user: User, data: dict[str, Any]) -> dict[str, Any]:
    permissions.require_system_admin(conn, user)
    if any(not data.get(key) for key in _LIST_REQUIRED):
        raise bad_request("Missing required fields.")
    if _key_taken(conn, data["key"]):
        raise conflict("Related list key already exists.")
    now = query.utc_now()
    related_list_id = query.insert(
        conn,
        "system_related_lists",
        {
            **{key: data[key] for key in _LIST_REQUIRED},
            "list_order": int(data.get("list_order") or 0),
            "admin_only": int(bool(data.get("admin_only"))),
            "created_at": now,
            "updated_at": now,
        },
        operation="related_lists.create",
    )
    return _present(conn, _require_list(conn, related_list_id))


def update_definition(
    conn: sqlite3.Connection, user: User, related_list_id: str, data: dict[str, Any]
) -> dict[str, Any]:
    permissions.require_system_admin(conn, user)
    current = _require_list(conn, related_list_id)
    columns = {key: data[key] for key in _LIST_REQUIRED if data.get(key)}
    new_key = columns.get("key", current["key"])
    if new_key != current["key"] and _key_taken(conn, new_key, related_list_id):
        raise conflict("Related list key already exists.")
    if data.get("list_order") is not None:
        columns["list_order"] = int(data["list_order"])
    if data.get("admin_only") is not None:
        columns["admin_only"] = int(bool(data["admin_only"]))
    query.update(conn, "system_related_lists", related_list_id, columns, operation="related_lists.update")
    return _present(conn, _require_list(conn, related_list_id))


def delete_definition(conn: sqlite3.Connection, user: User, related_list_id: str) -> None:
    permissions.require_system_admin(conn, user)
    _require_list(conn, related_list_id)
    query.delete(conn, "system_related_lists", related_list_id, operation="related_lists.delete")


def _require_list_field(conn: sqlite3.Connection, field_id: str) -> dict[str, Any]:
    row = query.fetch_one(
        conn,
        "SELECT * FROM system_related_list_fields WHERE id = ?",
        (field_id,),
        operation="related_list_fields.get",
    )
    if row is None:
        raise not_found("Related list field not found.")
    return row


def _validate_source(source: str | None) -> str:
    if source not in FIELD_SOURCES:
        raise bad_request("Invalid source.")
    return source


def list_definition_fields(
    conn: sqlite3.Connection, user: User, *, related_list_id: str | None = None
) -> list[dict[str, Any]]:
    permissions.require_system_admin(conn, user)
    if related_list_id:
        return _list_fields(conn, related_list_id)
    return query.fetch_all(
        conn,
        "SELECT * FROM system_related_list_fields ORDER BY related_list_id, list_order",
        operation="related_list_fields.list",
    )


def create_definition_field(conn: sqlite3.Connection, user: User, data: dict[str, Any]) -> dict[str, Any]:
    permissions.require_system_admin(conn, user)
    if not data.get("related_list_id") or not data.get("field_key") or not data.get("label"):
        raise bad_request("Missing required fields.")
    _require_list(conn, data["related_list_id"])
    source = _validate_source(data.get("source") or "RELATED")
    if query.exists(
        conn,
        "SELECT 1 FROM system_related_list_fields WHERE related_list_id = ? AND field_key = ?",
        (data["related_list_id"], data["field_key"]),
        operation="related_list_fields.key_taken",
    ):
        raise conflict("Field key already exists.")
    field_id = query.insert(
        conn,
        "system_related_list_fields",
        {
            "related_list_id": data["related_list_id"],
            "field_key": data["field_key"],
            "label": data["label"],
            "source": source,
            "list_order": int(data.get("list_order") or 0),
            "width": data.get("width"),
        },
        operation="related_list_fields.create",
    )
    return _require_list_field(conn, field_id)


def update_definition_field(
    conn: sqlite3.Connection, user: User, field_id: str, data: dict[str, Any]
) -> dict[str, Any]:
    permissions.require_system_admin(conn, user)
    _require_list_field(conn, field_id)
    columns = {key: data[key] for key in ("field_key", "label") if data.get(key)}
    if data.get("source") is not None:
        columns["source"] = _validate_source(data["source"])
    if data.get("list_order") is not None:
        columns["list_order"] = int(data["list_order"])
    if "width" in data:
        columns["width"] = data["width"]
    query.update(
        conn,
        "system_related_list_fields",
        field_id,
        columns,
        operation="related_list_fields.update",
        touch=False,
    )
    return _require_list_field(conn, field_id)


def delete_definition_field(conn: sqlite3.Connection, user: User, field_id: str) -> None:
    permissions.require_system_admin(conn, user)
    _require_list_field(conn, field_id)
    query.delete(conn, "system_related_list_fields", field_id, operation="related_list_fields.delete")
