"""Location types, their fields and parent/child placement rules."""

from __future__ import annotations

import sqlite3
from collections import deque
from typing import Any

from campaign_server.db import query
from campaign_server.services import permissions, records
from campaign_server.services.errors import bad_request, conflict, forbidden, not_found
from campaign_server.services.permissions import User
from campaign_server.services.records import LOCATIONS
from campaign_server.services.validation import choice_lists_with_options, resolve_choice_list

CHOICE_LIST_MESSAGE = "Choice list must belong to the location type world."

_TYPE_COLUMNS = ("name", "description", "icon", "colour")
_FIELD_COLUMNS = ("field_key", "field_label", "field_type", "list_order", "form_order")


def require_location_type(conn: sqlite3.Connection, location_type_id: str) -> dict[str, Any]:
    location_type = query.fetch_one(
        conn,
        "SELECT * FROM location_types WHERE id = ?",
        (location_type_id,),
        operation="location_types.get",
    )
    if location_type is None:
        raise not_found("Location type not found.")
    return location_type


def _present(row: dict[str, Any]) -> dict[str, Any]:
    payload = records.serialize(row)
    payload["menu"] = bool(payload["menu"])
    return payload


def _ensure_architect(conn: sqlite3.Connection, user: User, world_id: str, message: str = "Forbidden.") -> None:
    if not user.is_admin and not permissions.is_world_architect(conn, user.id, world_id):
        raise forbidden(message)


def _ensure_world_access(conn: sqlite3.Connection, user: User, world_id: str) -> None:
    if not user.is_admin and not permissions.can_access_world(conn, user.id, world_id):
        raise forbidden()


# ============================================================================
# TYPES
# ============================================================================


def list_location_types(
    conn: sqlite3.Connection, user: User, *, world_id: str | None = None
) -> list[dict[str, Any]]:
    if not world_id:
        if not user.is_admin:
            return []
        rows = query.fetch_all(
            conn, "SELECT * FROM location_types ORDER BY name", operation="location_types.list"
        )
    else:
        _ensure_world_access(conn, user, world_id)
        rows = query.fetch_all(
            conn,
            "SELECT * FROM location_types WHERE world_id = ? ORDER BY name",
            (world_id,),
            operation="location_types.list",
        )
    return [_present(row) for row in rows]


def get_location_type(conn: sqlite3.Connection, user: User, location_type_id: str) -> dict[str, Any]:
    location_type = require_location_type(conn, location_type_id)
    _ensure_world_access(conn, user, location_type["world_id"])
    return _present(location_type)


def create_location_type(conn: sqlite3.Connection, user: User, data: dict[str, Any]) -> dict[str, Any]:
    world_id = data.get("world_id")
    name = (data.get("name") or "").strip()
    if not world_id or not name:
        raise bad_request("world_id and name are required.")
    _ensure_architect(conn, user, world_id, "Only world architects can create location types.")
    now = query.utc_now()
    location_type_id = query.insert(
        conn,
        "location_types",
        {
            "world_id": world_id,
            "name": name,
            "description": data.get("description"),
            "icon": data.get("icon"),
            "colour": data.get("colour"),
            "menu": int(bool(data.get("menu"))),
            "metadata_json": query.dump_json(data.get("metadata")),
            "created_at": now,
            "updated_at": now,
        },
        operation="location_types.create",
    )
    return _present(require_location_type(conn, location_type_id))


def update_location_type(
    conn: sqlite3.Connection, user: User, location_type_id: str, data: dict[str, Any]
) -> dict[str, Any]:
    location_type = require_location_type(conn, location_type_id)
    _ensure_architect(conn, user, location_type["world_id"])
    values = {key: data[key] for key in _TYPE_COLUMNS if key in data}
    if "menu" in data:
        values["menu"] = int(bool(data["menu"]))
    if "metadata" in data:
        values["metadata_json"] = query.dump_json(data["metadata"])
    query.update(conn, "location_types", location_type_id, values, operation="location_types.update")
    return _present(require_location_type(conn, location_type_id))


def delete_location_type(conn: sqlite3.Connection, user: User, location_type_id: str) -> None:
    location_type = require_location_type(conn, location_type_id)
    _ensure_architect(conn, user, location_type["world_id"])
    if query.exists(
        conn,
        "SELECT 1 FROM locations WHERE location_type_id = ?",
        (location_type_id,),
        operation="location_types.in_use",
    ):
        raise conflict("Location type is in use.")
    query.delete(conn, "location_types", location_type_id, operation="location_types.delete")


def location_type_stats(
    conn: sqlite3.Connection,
    user: User,
    *,
    world_id: str | None,
    campaign_id: str | None = None,
    character_id: str | None = None,
) -> list[dict[str, Any]]:
    """Visible location counts for the world's menu location types."""
    if not world_id:
        return []
    _ensure_world_access(conn, user, world_id)
    clause = records.access_clause(
        conn, LOCATIONS, user, world_id, campaign_id=campaign_id, character_id=character_id
    )
    visibility, params = (f"AND {clause[0]}", clause[1]) if clause else ("", [])
    return query.fetch_all(
        conn,
        f"""
        SELECT t.id, t.name,
               (SELECT COUNT(*) FROM locations r
                WHERE r.location_type_id = t.id AND r.world_id = t.world_id {visibility}) AS count
        FROM location_types t
        WHERE t.world_id = ? AND t.menu = 1
        ORDER BY t.name
        """,  # nosec B608
        (*params, world_id),
        operation="location_types.stats",
    )


# ============================================================================
# FIELDS
# ============================================================================


def _require_field(conn: sqlite3.Connection, field_id: str) -> dict[str, Any]:
    field = query.fetch_one(
        conn,
        "SELECT * FROM location_type_fields WHERE id = ?",
        (field_id,),
        operation="location_types.get_field",
    )
    if field is None:
        raise not_found("Field not found.")
    return field


def _present_fields(conn: sqlite3.Connection, rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    lists = choice_lists_with_options(
        conn, sorted({row["choice_list_id"] for row in rows if row["choice_list_id"]})
    )
    payload = []
    for row in rows:
        item = records.serialize(row)
        item["required"] = bool(item["required"])
        item["choice_list"] = lists.get(row["choice_list_id"] or "")
        payload.append(item)
    return payload


def list_fields(
    conn: sqlite3.Connection, user: User, *, location_type_id: str | None
) -> list[dict[str, Any]]:
    if not location_type_id:
        raise bad_request("location_type_id is required.")
    location_type = require_location_type(conn, location_type_id)
    _ensure_world_access(conn, user, location_type["world_id"])
    rows = query.fetch_all(
        conn,
        "SELECT * FROM location_type_fields WHERE location_type_id = ? ORDER BY form_order",
        (location_type_id,),
        operation="location_types.list_fields",
    )
    return _present_fields(conn, rows)


def get_field(conn: sqlite3.Connection, user: User, field_id: str) -> dict[str, Any]:
    field = _require_field(conn, field_id)
    location_type = require_location_type(conn, field["location_type_id"])
    _ensure_world_access(conn, user, location_type["world_id"])
    return _present_fields(conn, [field])[0]


def create_field(conn: sqlite3.Connection, user: User, data: dict[str, Any]) -> dict[str, Any]:
    location_type_id = data.get("location_type_id")
    if not (location_type_id and data.get("field_key") and data.get("field_label") and data.get("field_type")):
        raise bad_request("location_type_id, field_key, field_label, and field_type are required.")
    location_type = require_location_type(conn, location_type_id)
    _ensure_architect(conn, user, location_type["world_id"])
    choice_list_id = resolve_choice_list(
        conn, data["field_type"], data.get("choice_list_id"), location_type["world_id"], CHOICE_LIST_MESSAGE
    )
    if query.exists(
        conn,
        "SELECT 1 FROM location_type_fields WHERE location_type_id = ? AND field_key = ?",
        (location_type_id, data["field_key"]),
        operation="location_types.field_key_exists",
    ):
        raise conflict("Field key already exists.")

    now = query.utc_now()
    field_id = query.insert(
        conn,
        "location_type_fields",
        {
            "location_type_id": location_type_id,
            "field_key": data["field_key"],
            "field_label": data["field_label"],
            "field_type": data["field_type"],
            "required": int(bool(data.get("required"))),
            "default_value_json": query.dump_json(data.get("default_value")),
            "validation_rules_json": query.dump_json(data.get("validation_rules")),
            "list_order": data.get("list_order") or 0,
            "form_order": data.get("form_order") or 0,
            "choice_list_id": choice_list_id,
            "created_at": now,
            "updated_at": now,
        },
        operation="location_types.create_field",
    )
    return get_field(conn, user, field_id)


def update_field(
    conn: sqlite3.Connection, user: User, field_id: str, data: dict[str, Any]
) -> dict[str, Any]:
    field = _require_field(conn, field_id)
    location_type = require_location_type(conn, field["location_type_id"])
    _ensure_architect(conn, user, location_type["world_id"])
    values: dict[str, Any] = {key: data[key] for key in _FIELD_COLUMNS if key in data}
    if "required" in data:
        values["required"] = int(bool(data["required"]))
    for key in ("default_value", "validation_rules"):
        if key in data:
            values[f"{key}_json"] = query.dump_json(data[key])
    if "field_type" in data or "choice_list_id" in data:
        values["choice_list_id"] = resolve_choice_list(
            conn,
            data.get("field_type") or field["field_type"],
            data.get("choice_list_id", field["choice_list_id"]),
            location_type["world_id"],
            CHOICE_LIST_MESSAGE,
        )
    query.update(conn, "location_type_fields", field_id, values, operation="location_types.update_field")
    return get_field(conn, user, field_id)


def delete_field(conn: sqlite3.Connection, user: User, field_id: str) -> None:
    field = _require_field(conn, field_id)
    location_type = require_location_type(conn, field["location_type_id"])
    _ensure_architect(conn, user, location_type["world_id"])
    query.delete(conn, "location_type_fields", field_id, operation="location_types.delete_field")


# ============================================================================
# RULES
# ============================================================================


def _require_rule(conn: sqlite3.Connection, rule_id: str) -> dict[str, Any]:
    rule = query.fetch_one(
        conn,
        """
        SELECT r.*, t.world_id FROM location_type_rules r
        JOIN location_types t ON t.id = r.parent_type_id
        WHERE r.id = ?
        """,
        (rule_id,),
        operation="location_types.get_rule",
    )
    if rule is None:
        raise not_found("Location type rule not found.")
    return rule


def _present_rule(rule: dict[str, Any]) -> dict[str, Any]:
    payload = {key: value for key, value in rule.items() if key != "world_id"}
    payload["allowed"] = bool(payload["allowed"])
    return payload


def list_rules(conn: sqlite3.Connection, user: User, *, world_id: str | None = None) -> list[dict[str, Any]]:
    if world_id:
        _ensure_architect(conn, user, world_id)
    elif not user.is_admin:
        return []
    where, params = ("WHERE t.world_id = ?", (world_id,)) if world_id else ("", ())
    rows = query.fetch_all(
        conn,
        f"""
        SELECT r.*, t.world_id FROM location_type_rules r
        JOIN location_types t ON t.id = r.parent_type_id
        {where}
        ORDER BY r.created_at DESC
        """,  # nosec B608
        params,
        operation="location_types.list_rules",
    )
    return [_present_rule(row) for row in rows]


def get_rule(conn: sqlite3.Connection, user: User, rule_id: str) -> dict[str, Any]:
    rule = _require_rule(conn, rule_id)
    _ensure_architect(conn, user, rule["world_id"])
    return _present_rule(rule)


def create_rule(conn: sqlite3.Connection, user: User, data: dict[str, Any]) -> dict[str, Any]:
    parent_type_id = data.get("parent_type_id")
    child_type_id = data.get("child_type_id")
    if not parent_type_id or not child_type_id:
        raise bad_request("parent_type_id and child_type_id are required.")
    parent_type = require_location_type(conn, parent_type_id)
    child_type = require_location_type(conn, child_type_id)
    if parent_type["world_id"] != child_type["world_id"]:
        raise bad_request("Location types must belong to the same world.")
    _ensure_architect(conn, user, parent_type["world_id"])
    if query.exists(
        conn,
        "SELECT 1 FROM location_type_rules WHERE parent_type_id = ? AND child_type_id = ?",
        (parent_type_id, child_type_id),
        operation="location_types.rule_exists",
    ):
        raise conflict("Rule already exists.")
    allowed = data.get("allowed")
    now = query.utc_now()
    rule_id = query.insert(
        conn,
        "location_type_rules",
        {
            "parent_type_id": parent_type_id,
            "child_type_id": child_type_id,
            "allowed": int(True if allowed is None else bool(allowed)),
            "created_at": now,
            "updated_at": now,
        },
        operation="location_types.create_rule",
    )
    return _present_rule(_require_rule(conn, rule_id))


def update_rule(conn: sqlite3.Connection, user: User, rule_id: str, data: dict[str, Any]) -> dict[str, Any]:
    rule = _require_rule(conn, rule_id)
    _ensure_architect(conn, user, rule["world_id"])
    if data.get("allowed") is not None:
        query.update(
            conn,
            "location_type_rules",
            rule_id,
            {"allowed": int(bool(data["allowed"]))},
            operation="location_types.update_rule",
        )
    return _present_rule(_require_rule(conn, rule_id))


def delete_rule(conn: sqlite3.Connection, user: User, rule_id: str) -> None:
    rule = _require_rule(conn, rule_id)
    _ensure_architect(conn, user, rule["world_id"])
    query.delete(conn, "location_type_rules", rule_id, operation="location_types.delete_rule")


def allowed_parent_type_ids(conn: sqlite3.Connection, child_type_id: str, world_id: str) -> set[str]:
    """Parent types a location of ``child_type_id`` may sit under.

    Allowed rules are followed transitively upwards (a Building allowed in a
    Settlement allowed in a Region may also sit in the Region). Types that a
    rule explicitly denies as a direct parent are removed afterwards.
    """
    rules = query.fetch_all(
        conn,
        """
        SELECT r.parent_type_id, r.child_type_id, r.allowed FROM location_type_rules r
        JOIN location_types t ON t.id = r.parent_type_id
        WHERE t.world_id = ?
        """,
        (world_id,),
        operation="location_types.world_rules",
    )
    allowed_by_child: dict[str, set[str]] = {}
    denied_by_child: dict[str, set[str]] = {}
    for rule in rules:
        target = allowed_by_child if rule["allowed"] else denied_by_child
        target.setdefault(rule["child_type_id"], set()).add(rule["parent_type_id"])

    allowed: set[str] = set()
    visited = {child_type_id}
    pending = deque([child_type_id])
    while pending:
        current = pending.popleft()
        for parent_id in allowed_by_child.get(current, ()):
            allowed.add(parent_id)
            if parent_id not in visited:
                visited.add(parent_id)
                pending.append(parent_id)
    return allowed - denied_by_child.get(child_type_id, set())
