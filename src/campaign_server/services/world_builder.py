"""Guided World Builder: seed a world's type system from a template pack.

Only world architects use the builder; administrators are turned away
because the types it creates belong to the architect's world. The client
sends the pack's templates back after the architect has toggled and renamed
them, so :func:`apply_pack` trusts the payload's shape, not the stored pack.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Any

from campaign_server.db import query
from campaign_server.db.errors import DatabaseError
from campaign_server.services import entity_types, packs, permissions
from campaign_server.services.errors import ServiceError, bad_request, forbidden, not_found
from campaign_server.services.permissions import User

logger = logging.getLogger(__name__)

_SAVEPOINT = "world_builder_apply"


def ensure_architect_only(conn: sqlite3.Connection, user: User, world_id: str | None) -> str:
    """Gate the pack browsing endpoints and return the world id."""
    if user.is_admin:
        raise forbidden("Admins cannot use the guided builder.")
    if not world_id:
        raise bad_request("world_id is required.")
    if not permissions.is_world_architect(conn, user.id, world_id):
        raise forbidden()
    return world_id


def list_packs(conn: sqlite3.Connection, user: User, *, world_id: str | None) -> list[dict[str, Any]]:
    ensure_architect_only(conn, user, world_id)
    return packs.active_packs(conn)


def get_pack(conn: sqlite3.Connection, user: User, pack_id: str, *, world_id: str | None) -> dict[str, Any]:
    ensure_architect_only(conn, user, world_id)
    pack = _active_pack(conn, pack_id)
    return packs.pack_with_templates(conn, pack["id"])


def _active_pack(conn: sqlite3.Connection, pack_id: str) -> dict[str, Any]:
    pack = query.fetch_one(conn, "SELECT * FROM packs WHERE id = ?", (pack_id,), operation="world_builder.pack")
    if pack is None or not pack["is_active"]:
        raise not_found("Pack not found.")
    return pack


def _as_list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


# ============================================================================
# APPLY
# ============================================================================


def _create_choice_list(
    conn: sqlite3.Connection, world_id: str, name: str, choices: list[dict[str, Any]], now: str
) -> str:
    list_id = query.insert(
        conn,
        "choice_lists",
        {"name": name, "scope": "WORLD", "world_id": world_id, "created_at": now, "updated_at": now},
        operation="world_builder.choice_list",
    )
    seen: set[str] = set()
    for index, choice in enumerate(choices):
        value = choice.get("value")
        if not value or value in seen:
            continue
        seen.add(value)
        query.insert(
            conn,
            "choice_options",
            {
                "choice_list_id": list_id,
                "value": value,
                "label": choice.get("label") or value,
                "sort_order": choice.get("sort_order", index),
                "created_at": now,
                "updated_at": now,
            },
            operation="world_builder.choice_option",
        )
    return list_id


def _field_choice_list(
    conn: sqlite3.Connection, world_id: str, type_name: str, label: str, field: dict[str, Any], now: str
) -> str | None:
    choices = _as_list(field.get("choices"))
    if not choices:
        return None
    return _create_choice_list(conn, world_id, f"{type_name} - {label}", choices, now)


def _apply_entity_types(
    conn: sqlite3.Connection, user: User, world_id: str, entries: list[dict[str, Any]], now: str
) -> dict[str, str]:
    type_ids: dict[str, str] = {}
    for entry in entries:
        entity_type_id = query.insert(
            conn,
            "entity_types",
            {
                "world_id": world_id,
                "name": entry["name"],
                "description": entry.get("description"),
                "is_template": 0,
                "created_by_id": user.id,
                "created_at": now,
                "updated_at": now,
            },
            operation="world_builder.entity_type",
        )
        type_ids[entry["key"]] = entity_type_id
        section_id = entity_types.create_default_section(conn, entity_type_id)

        for order, field in enumerate(_as_list(entry.get("fields"))):
            if not field.get("enabled"):
                continue
            query.insert(
                conn,
                "entity_fields",
                {
                    "entity_type_id": entity_type_id,
                    "field_key": field["field_key"],
                    "label": field["label"],
                    "field_type": field["field_type"],
                    "required": int(bool(field.get("required"))),
                    "list_order": order,
                    "form_order": order,
                    "form_section_id": section_id,
                    "form_column": 1,
                    "choice_list_id": _field_choice_list(
                        conn, world_id, entry["name"], field["label"], field, now
                    ),
                    "created_at": now,
                    "updated_at": now,
                },
                operation="world_builder.entity_field",
            )
    return type_ids


def _apply_location_types(
    conn: sqlite3.Connection, world_id: str, entries: list[dict[str, Any]], now: str
) -> dict[str, str]:
    type_ids: dict[str, str] = {}
    for entry in entries:
        location_type_id = query.insert(
            conn,
            "location_types",
            {
                "world_id": world_id,
                "name": entry["name"],
                "description": entry.get("description"),
                "created_at": now,
                "updated_at": now,
            },
            operation="world_builder.location_type",
        )
        type_ids[entry["key"]] = location_type_id

        for order, field in enumerate(_as_list(entry.get("fields"))):
            if not field.get("enabled"):
                continue
            query.insert(
                conn,
                "location_type_fields",
                {
                    "location_type_id": location_type_id,
                    "field_key": field["field_key"],
                    "field_label": field["field_label"],
                    "field_type": field["field_type"],
                    "required": int(bool(field.get("required"))),
                    "list_order": order,
                    "form_order": order,
                    "choice_list_id": _field_choice_list(
                        conn, world_id, entry["name"], field["field_label"], field, now
                    ),
                    "created_at": now,
                    "updated_at": now,
                },
                operation="world_builder.location_field",
            )
    return type_ids


def _apply_location_rules(
    conn: sqlite3.Connection, type_ids: dict[str, str], rules: list[dict[str, Any]], now: str
) -> None:
    seen: set[tuple[str, str]] = set()
    for rule in rules:
        parent_id = type_ids.get(rule.get("parent_key") or "")
        child_id = type_ids.get(rule.get("child_key") or "")
        if not parent_id or not child_id or (parent_id, child_id) in seen:
            continue
        seen.add((parent_id, child_id))
        allowed = rule.get("allowed")
        query.insert(
            conn,
            "location_type_rules",
            {
                "parent_type_id": parent_id,
                "child_type_id": child_id,
                "allowed": int(True if allowed is None else bool(allowed)),
                "created_at": now,
                "updated_at": now,
            },
            operation="world_builder.location_rule",
        )


def _apply_relationship_types(
    conn: sqlite3.Connection,
    world_id: str,
    type_ids: dict[str, str],
    entries: list[dict[str, Any]],
    now: str,
) -> int:
    created = 0
    for entry in entries:
        if not entry.get("enabled"):
            continue
        relationship_type_id = query.insert(
            conn,
            "relationship_types",
            {
                "world_id": world_id,
                "name": entry["name"],
                "description": entry.get("description"),
                "is_peerable": int(bool(entry.get("is_peerable"))),
                "from_label": entry["from_label"],
                "to_label": entry["to_label"],
                "past_from_label": entry.get("past_from_label"),
                "past_to_label": entry.get("past_to_label"),
                "created_at": now,
                "updated_at": now,
            },
            operation="world_builder.relationship_type",
        )
        created += 1

        seen: set[tuple[str, str]] = set()
        for mapping in _as_list(entry.get("role_mappings")):
            from_id = type_ids.get(mapping.get("from_type_key") or "")
            to_id = type_ids.get(mapping.get("to_type_key") or "")
            if not from_id or not to_id or (from_id, to_id) in seen:
                continue
            seen.add((from_id, to_id))
            query.insert(
                conn,
                "relationship_type_rules",
                {
                    "relationship_type_id": relationship_type_id,
                    "from_entity_type_id": from_id,
                    "to_entity_type_id": to_id,
                    "created_at": now,
                },
                operation="world_builder.relationship_rule",
            )
    return created


def apply_pack(conn: sqlite3.Connection, user: User, data: dict[str, Any]) -> dict[str, Any]:
    """Create the architect's selection of a pack inside a world.

    Everything is written under one savepoint: a failure part-way through
    leaves the world untouched and answers 500 "Failed to apply pack.".

    Returns:
        ``{"ok": True, "created": {"entity_types", "location_types", "relationships"}}``
    """
    if user.is_admin:
        raise forbidden("Admins cannot apply packs to worlds.")
    world_id = data.get("world_id")
    pack_id = data.get("pack_id")
    if not world_id or not pack_id:
        raise bad_request("world_id and pack_id are required.")
    if not permissions.is_world_architect(conn, user.id, world_id):
        raise forbidden()
    _active_pack(conn, pack_id)

    now = query.utc_now()
    query.execute(conn, f"SAVEPOINT {_SAVEPOINT}", operation="world_builder.begin")
    try:
        entity_type_ids = _apply_entity_types(conn, user, world_id, _as_list(data.get("entity_types")), now)
        location_type_ids = _apply_location_types(conn, world_id, _as_list(data.get("location_types")), now)
        _apply_location_rules(conn, location_type_ids, _as_list(data.get("location_rules")), now)
        relationships = _apply_relationship_types(
            conn, world_id, entity_type_ids, _as_list(data.get("relationship_types")), now
        )
    except (DatabaseError, KeyError, TypeError, AttributeError) as exc:
        query.execute(conn, f"ROLLBACK TO {_SAVEPOINT}", operation="world_builder.rollback")
        query.execute(conn, f"RELEASE {_SAVEPOINT}", operation="world_builder.release")
        logger.exception("Failed to apply pack %s to world %s", pack_id, world_id)
        raise ServiceError(500, "Failed to apply pack.") from exc
    query.execute(conn, f"RELEASE {_SAVEPOINT}", operation="world_builder.release")

    logger.info(
        "Applied pack %s to world %s: %d entity types, %d location types, %d relationship types",
        pack_id,
        world_id,
        len(entity_type_ids),
        len(location_type_ids),
        relationships,
    )
    return {
        "ok": True,
        "created": {
            "entity_types": len(entity_type_ids),
            "location_types": len(location_type_ids),
            "relationships": relationships,
        },
    }
