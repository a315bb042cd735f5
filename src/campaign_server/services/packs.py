"""Template packs and the templates they carry.

Every operation here is restricted to system administrators. A pack owns
entity, location and relationship type templates; the World Builder copies
those into a world. Deleting a pack removes its templates through the
schema's ``ON DELETE CASCADE`` rules.
"""

from __future__ import annotations

import json
import sqlite3
from dataclasses import dataclass
from typing import Any

from campaign_server.db import query
from campaign_server.services import permissions
from campaign_server.services.errors import bad_request, not_found
from campaign_server.services.permissions import User
from campaign_server.services.validation import FIELD_TYPES

PACK_POSTURES = ("opinionated", "minimal")


@dataclass(frozen=True)
class TemplateKind:
    """Table layout of one template resource.

    Attributes:
        table: Backing table.
        parent_column: Column naming the owning pack or template.
        parent_table: Table ``parent_column`` points at.
        required: Keys a create payload must carry, in message order.
        columns: Writable columns besides ``parent_column``.
        booleans: Columns stored as 0/1.
        not_found_message: Detail for a missing row.
        order_by: ORDER BY clause for listings.
        timestamps: Whether the table has ``updated_at``.
    """

    table: str
    parent_column: str
    parent_table: str
    required: tuple[str, ...]
    columns: tuple[str, ...]
    booleans: tuple[str, ...] = ()
    not_found_message: str = "Template not found."
    order_by: str = "name"
    timestamps: bool = True


_TYPE_TEMPLATE_COLUMNS = ("name", "description", "category", "is_core")
_FIELD_TEMPLATE_COLUMNS = (
    "field_key",
    "field_label",
    "field_type",
    "required",
    "default_enabled",
    "choice_list_id",
)

ENTITY_TYPE_TEMPLATES = TemplateKind(
    table="entity_type_templates",
    parent_column="pack_id",
    parent_table="packs",
    required=("pack_id", "name"),
    columns=_TYPE_TEMPLATE_COLUMNS,
    booleans=("is_core",),
)
ENTITY_TYPE_TEMPLATE_FIELDS = TemplateKind(
    table="entity_type_template_fields",
    parent_column="template_id",
    parent_table="entity_type_templates",
    required=("template_id", "field_key", "field_label", "field_type"),
    columns=_FIELD_TEMPLATE_COLUMNS,
    booleans=("required", "default_enabled"),
    not_found_message="Template field not found.",
    order_by="field_label",
)
LOCATION_TYPE_TEMPLATES = TemplateKind(
    table="location_type_templates",
    parent_column="pack_id",
    parent_table="packs",
    required=("pack_id", "name"),
    columns=_TYPE_TEMPLATE_COLUMNS,
    booleans=("is_core",),
)
LOCATION_TYPE_TEMPLATE_FIELDS = TemplateKind(
    table="location_type_template_fields",
    parent_column="template_id",
    parent_table="location_type_templates",
    required=("template_id", "field_key", "field_label", "field_type"),
    columns=_FIELD_TEMPLATE_COLUMNS,
    booleans=("required", "default_enabled"),
    not_found_message="Template field not found.",
    order_by="field_label",
)
LOCATION_TYPE_RULE_TEMPLATES = TemplateKind(
    table="location_type_rule_templates",
    parent_column="pack_id",
    parent_table="packs",
    required=("pack_id", "parent_template_id", "child_template_id"),
    columns=("parent_template_id", "child_template_id"),
    not_found_message="Rule not found.",
    order_by="created_at DESC",
    timestamps=False,
)
RELATIONSHIP_TYPE_TEMPLATES = TemplateKind(
    table="relationship_type_templates",
    parent_column="pack_id",
    parent_table="packs",
    required=("pack_id", "name", "from_label", "to_label"),
    columns=(
        "name",
        "description",
        "is_peerable",
        "from_label",
        "to_label",
        "past_from_label",
        "past_to_label",
    ),
    booleans=("is_peerable",),
)
RELATIONSHIP_TYPE_TEMPLATE_ROLES = TemplateKind(
    table="relationship_type_template_roles",
    parent_column="template_id",
    parent_table="relationship_type_templates",
    required=("template_id", "from_role", "to_role"),
    columns=("from_role", "to_role"),
    not_found_message="Role not found.",
    order_by="created_at",
    timestamps=False,
)

TEMPLATE_KINDS: dict[str, TemplateKind] = {
    kind.table: kind
    for kind in (
        ENTITY_TYPE_TEMPLATES,
        ENTITY_TYPE_TEMPLATE_FIELDS,
        LOCATION_TYPE_TEMPLATES,
        LOCATION_TYPE_TEMPLATE_FIELDS,
        LOCATION_TYPE_RULE_TEMPLATES,
        RELATIONSHIP_TYPE_TEMPLATES,
        RELATIONSHIP_TYPE_TEMPLATE_ROLES,
    )
}

_PARENT_NOT_FOUND = {
    "packs": "Pack not found.",
    "entity_type_templates": "Template not found.",
    "location_type_templates": "Template not found.",
    "relationship_type_templates": "Template not found.",
}


def required_message(keys: tuple[str, ...]) -> str:
    """Render ``a and b are required.`` / ``a, b, and c are required.``."""
    if len(keys) == 1:
        return f"{keys[0]} is required."
    if len(keys) == 2:
        return f"{keys[0]} and {keys[1]} are required."
    return f"{', '.join(keys[:-1])}, and {keys[-1]} are required."


def parse_optional_json(value: Any) -> Any:
    """Accept decoded JSON or a JSON string; ``""`` means unset.

    Raises:
        ServiceError: 400 when ``value`` is a string that does not parse.
    """
    if isinstance(value, str):
        if not value.strip():
            return None
        try:
            return json.loads(value)
        except ValueError as exc:
            raise bad_request("validation_rules must be valid JSON.") from exc
    return value


# ============================================================================
# PACKS
# ============================================================================


def _present_pack(row: dict[str, Any]) -> dict[str, Any]:
    return {**row, "is_active": bool(row["is_active"])}


def require_pack(conn: sqlite3.Connection, pack_id: str) -> dict[str, Any]:
    pack = query.fetch_one(conn, "SELECT * FROM packs WHERE id = ?", (pack_id,), operation="packs.get")
    if pack is None:
        raise not_found("Pack not found.")
    return pack


def list_packs(conn: sqlite3.Connection, user: User) -> list[dict[str, Any]]:
    permissions.require_system_admin(conn, user)
    rows = query.fetch_all(conn, "SELECT * FROM packs ORDER BY name", operation="packs.list")
    return [_present_pack(row) for row in rows]


def active_packs(conn: sqlite3.Connection) -> list[dict[str, Any]]:
    rows = query.fetch_all(
        conn, "SELECT * FROM packs WHERE is_active = 1 ORDER BY name", operation="packs.list_active"
    )
    return [_present_pack(row) for row in rows]


def get_pack(conn: sqlite3.Connection, user: User, pack_id: str) -> dict[str, Any]:
    permissions.require_system_admin(conn, user)
    return _present_pack(require_pack(conn, pack_id))


def _validate_posture(posture: str) -> str:
    if posture not in PACK_POSTURES:
        raise bad_request("Invalid pack posture.")
    return posture


def create_pack(conn: sqlite3.Connection, user: User, data: dict[str, Any]) -> dict[str, Any]:
    permissions.require_system_admin(conn, user)
    name = data.get("name")
    posture = data.get("posture")
    if not name or not posture:
        raise bad_request("name and posture are required.")
    now = query.utc_now()
    is_active = data.get("is_active")
    pack_id = query.insert(
        conn,
        "packs",
        {
            "name": name,
            "description": data.get("description"),
            "posture": _validate_posture(posture),
            "is_active": int(True if is_active is None else bool(is_active)),
            "created_by_id": user.id,
            "created_at": now,
            "updated_at": now,
        },
        operation="packs.create",
    )
    return _present_pack(require_pack(conn, pack_id))


def update_pack(conn: sqlite3.Connection, user: User, pack_id: str, data: dict[str, Any]) -> dict[str, Any]:
    permissions.require_system_admin(conn, user)
    require_pack(conn, pack_id)
    columns: dict[str, Any] = {}
    for key in ("name", "description"):
        if data.get(key) is not None:
            columns[key] = data[key]
    if data.get("posture") is not None:
        columns["posture"] = _validate_posture(data["posture"])
    if data.get("is_active") is not None:
        columns["is_active"] = int(bool(data["is_active"]))
    query.update(conn, "packs", pack_id, columns, operation="packs.update")
    return _present_pack(require_pack(conn, pack_id))


def delete_pack(conn: sqlite3.Connection, user: User, pack_id: str) -> None:
    permissions.require_system_admin(conn, user)
    require_pack(conn, pack_id)
    query.delete(conn, "packs", pack_id, operation="packs.delete")


# ============================================================================
# TEMPLATES
# ============================================================================


def _present(kind: TemplateKind, row: dict[str, Any]) -> dict[str, Any]:
    payload: dict[str, Any] = {}
    for column, value in row.items():
        if column == "validation_rules_json":
            payload["validation_rules"] = query.load_json(value)
        elif column in kind.booleans:
            payload[column] = bool(value)
        else:
            payload[column] = value
    return payload


def _require_template(conn: sqlite3.Connection, kind: TemplateKind, template_id: str) -> dict[str, Any]:
    row = query.fetch_one(
        conn,
        f"SELECT * FROM {kind.table} WHERE id = ?",  # nosec B608
        (template_id,),
        operation=f"{kind.table}.get",
    )
    if row is None:
        raise not_found(kind.not_found_message)
    return row


def _parent_pack_id(conn: sqlite3.Connection, kind: TemplateKind, parent_id: str) -> str:
    """Return the pack owning ``parent_id``; 400 when the parent is missing."""
    if kind.parent_table == "packs":
        found = query.fetch_value(
            conn, "SELECT id FROM packs WHERE id = ?", (parent_id,), operation=f"{kind.table}.parent"
        )
    else:
        found = query.fetch_value(
            conn,
            f"SELECT pack_id FROM {kind.parent_table} WHERE id = ?",  # nosec B608
            (parent_id,),
            operation=f"{kind.table}.parent",
        )
    if found is None:
        raise bad_request(_PARENT_NOT_FOUND[kind.parent_table])
    return found


def _check_rule_templates(conn: sqlite3.Connection, values: dict[str, Any], pack_id: str) -> None:
    for column in ("parent_template_id", "child_template_id"):
        owner = query.fetch_value(
            conn,
            "SELECT pack_id FROM location_type_templates WHERE id = ?",
            (values[column],),
            operation="location_type_rule_templates.owner",
        )
        if owner != pack_id:
            raise bad_request("Location type templates must belong to the pack.")


def _columns_from(kind: TemplateKind, data: dict[str, Any], *, partial: bool) -> dict[str, Any]:
    columns: dict[str, Any] = {}
    for column in kind.columns:
        if column not in data or (partial and data[column] is None):
            continue
        value = data[column]
        if column in kind.booleans:
            value = int(bool(value))
        elif column == "field_type" and value not in FIELD_TYPES:
            raise bad_request("Invalid field type.")
        columns[column] = value
    if kind.table.endswith("_fields") and "validation_rules" in data:
        columns["validation_rules_json"] = query.dump_json(parse_optional_json(data["validation_rules"]))
    return columns


def list_templates(
    conn: sqlite3.Connection, kind: TemplateKind, user: User, *, parent_id: str | None = None
) -> list[dict[str, Any]]:
    permissions.require_system_admin(conn, user)
    where, params = (f"WHERE {kind.parent_column} = ?", (parent_id,)) if parent_id else ("", ())
    rows = query.fetch_all(
        conn,
        f"SELECT * FROM {kind.table} {where} ORDER BY {kind.order_by}",  # nosec B608
        params,
        operation=f"{kind.table}.list",
    )
    return [_present(kind, row) for row in rows]


def get_template(conn: sqlite3.Connection, kind: TemplateKind, user: User, template_id: str) -> dict[str, Any]:
    permissions.require_system_admin(conn, user)
    return _present(kind, _require_template(conn, kind, template_id))


def create_template(
    conn: sqlite3.Connection, kind: TemplateKind, user: User, data: dict[str, Any]
) -> dict[str, Any]:
    permissions.require_system_admin(conn, user)
    if any(not data.get(key) for key in kind.required):
        raise bad_request(required_message(kind.required))
    parent_id = data[kind.parent_column]
    pack_id = _parent_pack_id(conn, kind, parent_id)

    values = _columns_from(kind, data, partial=False)
    if kind is LOCATION_TYPE_RULE_TEMPLATES:
        _check_rule_templates(conn, values, pack_id)
    if "default_enabled" in kind.columns and data.get("default_enabled") is None:
        values["default_enabled"] = 1

    now = query.utc_now()
    values.update({kind.parent_column: parent_id, "created_at": now})
    if kind.timestamps:
        values["updated_at"] = now
    template_id = query.insert(conn, kind.table, values, operation=f"{kind.table}.create")
    return _present(kind, _require_template(conn, kind, template_id))


def update_template(
    conn: sqlite3.Connection, kind: TemplateKind, user: User, template_id: str, data: dict[str, Any]
) -> dict[str, Any]:
    permissions.require_system_admin(conn, user)
    current = _require_template(conn, kind, template_id)
    values = _columns_from(kind, data, partial=True)
    parent_id = data.get(kind.parent_column) or current[kind.parent_column]
    pack_id = _parent_pack_id(conn, kind, parent_id)
    if parent_id != current[kind.parent_column]:
        values[kind.parent_column] = parent_id
    if kind is LOCATION_TYPE_RULE_TEMPLATES:
        _check_rule_templates(conn, {**current, **values}, pack_id)
    query.update(
        conn, kind.table, template_id, values, operation=f"{kind.table}.update", touch=kind.timestamps
    )
    return _present(kind, _require_template(conn, kind, template_id))


def delete_template(conn: sqlite3.Connection, kind: TemplateKind, user: User, template_id: str) -> None:
    permissions.require_system_admin(conn, user)
    _require_template(conn, kind, template_id)
    query.delete(conn, kind.table, template_id, operation=f"{kind.table}.delete")


# ============================================================================
# NESTED READ
# ============================================================================


def pack_with_templates(conn: sqlite3.Connection, pack_id: str) -> dict[str, Any]:
    """Return a pack with all templates nested under it."""
    pack = _present_pack(require_pack(conn, pack_id))

    def children(kind: TemplateKind, parent_id: str) -> list[dict[str, Any]]:
        rows = query.fetch_all(
            conn,
            f"SELECT * FROM {kind.table} WHERE {kind.parent_column} = ? ORDER BY {kind.order_by}",  # nosec B608
            (parent_id,),
            operation=f"{kind.table}.nested",
        )
        return [_present(kind, row) for row in rows]

    pack["entity_type_templates"] = [
        {**template, "fields": children(ENTITY_TYPE_TEMPLATE_FIELDS, template["id"])}
        for template in children(ENTITY_TYPE_TEMPLATES, pack_id)
    ]
    pack["location_type_templates"] = [
        {**template, "fields": children(LOCATION_TYPE_TEMPLATE_FIELDS, template["id"])}
        for template in children(LOCATION_TYPE_TEMPLATES, pack_id)
    ]
    pack["location_type_rule_templates"] = children(LOCATION_TYPE_RULE_TEMPLATES, pack_id)
    pack["relationship_type_templates"] = [
        {**template, "roles": children(RELATIONSHIP_TYPE_TEMPLATE_ROLES, template["id"])}
        for template in children(RELATIONSHIP_TYPE_TEMPLATES, pack_id)
    ]
    pack["choice_lists"] = [
        {
            **choice_list,
            "options": query.fetch_all(
                conn,
                """
                SELECT value, label, sort_order FROM choice_options
                WHERE choice_list_id = ? AND is_active = 1
                ORDER BY sort_order, label
                """,
                (choice_list["id"],),
                operation="packs.nested_options",
            ),
        }
        for choice_list in query.fetch_all(
            conn,
            "SELECT * FROM choice_lists WHERE scope = 'PACK' AND pack_id = ? ORDER BY name",
            (pack_id,),
            operation="packs.nested_choice_lists",
        )
    ]
    return pack
