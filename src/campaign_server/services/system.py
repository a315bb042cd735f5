"""System administration: properties, preferences, system choices, roles,
controls, the field dictionary, users and the audit log.

Everything except the caller's own preferences requires a system
administrator (see :func:`~campaign_server.services.permissions.require_system_admin`).
"""

from __future__ import annotations

import json
import math
import sqlite3
from dataclasses import dataclass
from typing import Any

from campaign_server.api.password_policy import validate_password_strength
from campaign_server.db import audit_repo, query, users_repo
from campaign_server.services import permissions
from campaign_server.services.errors import bad_request, conflict, not_found
from campaign_server.services.permissions import Role, User

VALUE_TYPES = ("STRING", "INTEGER", "BOOLEAN", "JSON", "DECIMAL")
_BOOLEAN_VALUES = {"true": True, "false": False, "1": True, "0": False}


def value_matches_type(value: str, value_type: str) -> bool:
    """True when the stored string ``value`` parses as ``value_type``."""
    if value_type == "STRING":
        return True
    if value_type == "INTEGER":
        try:
            int(value.strip())
        except ValueError:
            return False
        return True
    if value_type == "DECIMAL":
        try:
            return math.isfinite(float(value))
        except ValueError:
            return False
    if value_type == "BOOLEAN":
        return value.strip().lower() in _BOOLEAN_VALUES
    if value_type == "JSON":
        try:
            json.loads(value)
        except ValueError:
            return False
        return True
    return False


def coerce_value(value: str, value_type: str) -> Any:
    """Decode a stored setting into its Python value."""
    if value_type == "INTEGER":
        return int(value.strip())
    if value_type == "DECIMAL":
        return float(value)
    if value_type == "BOOLEAN":
        return _BOOLEAN_VALUES[value.strip().lower()]
    if value_type == "JSON":
        return json.loads(value)
    return value


def _checked_value(value: Any, value_type: str) -> str:
    if value_type not in VALUE_TYPES:
        raise bad_request("Invalid value type.")
    if isinstance(value, bool):
        text = "true" if value else "false"
    elif isinstance(value, (dict, list)):
        text = json.dumps(value)
    else:
        text = str(value)
    if not value_matches_type(text, value_type):
        raise bad_request("Value does not match value type.")
    return text


def property_number(conn: sqlite3.Connection, key: str, default: float) -> float:
    """Read a numeric system property, falling back to ``default``.

    Missing, non-numeric, non-finite and non-positive values all fall back.
    """
    raw = query.fetch_value(
        conn, "SELECT value FROM system_properties WHERE key = ?", (key,), operation="system.property_number"
    )
    if raw is None:
        return default
    try:
        number = float(raw)
    except ValueError:
        return default
    return number if math.isfinite(number) and number > 0 else default


# ============================================================================
# PROPERTIES AND PREFERENCE DEFAULTS
# ============================================================================


@dataclass(frozen=True)
class SettingTable:
    """A ``key``/``value``/``value_type`` table administered the same way."""

    table: str
    not_found_message: str
    duplicate_message: str


PROPERTIES = SettingTable("system_properties", "Property not found.", "Property key already exists.")
PREFERENCE_DEFAULTS = SettingTable(
    "system_user_preference_defaults",
    "Preference default not found.",
    "Preference key already exists.",
)


def _require_setting(conn: sqlite3.Connection, store: SettingTable, setting_id: str) -> dict[str, Any]:
    row = query.fetch_one(
        conn,
        f"SELECT * FROM {store.table} WHERE id = ?",  # nosec B608
        (setting_id,),
        operation=f"{store.table}.get",
    )
    if row is None:
        raise not_found(store.not_found_message)
    return row


def _key_taken(conn: sqlite3.Connection, store: SettingTable, key: str, exclude_id: str | None = None) -> bool:
    return query.exists(
        conn,
        f"SELECT 1 FROM {store.table} WHERE key = ? AND id IS NOT ?",  # nosec B608
        (key, exclude_id),
        operation=f"{store.table}.key_taken",
    )


def list_settings(conn: sqlite3.Connection, store: SettingTable, user: User) -> list[dict[str, Any]]:
    permissions.require_system_admin(conn, user)
    return query.fetch_all(
        conn, f"SELECT * FROM {store.table} ORDER BY key", operation=f"{store.table}.list"  # nosec B608
    )


def get_setting(conn: sqlite3.Connection, store: SettingTable, user: User, setting_id: str) -> dict[str, Any]:
    permissions.require_system_admin(conn, user)
    return _require_setting(conn, store, setting_id)


def create_setting(
    conn: sqlite3.Connection, store: SettingTable, user: User, data: dict[str, Any]
) -> dict[str, Any]:
    permissions.require_system_admin(conn, user)
    key = data.get("key")
    value_type = data.get("value_type")
    if not key or not value_type or data.get("value") is None:
        raise bad_request("key, value_type, and value are required.")
    value = _checked_value(data["value"], value_type)
    if _key_taken(conn, store, key):
        raise conflict(store.duplicate_message)
    now = query.utc_now()
    setting_id = query.insert(
        conn,
        store.table,
        {
            "key": key,
            "value": value,
            "value_type": value_type,
            "description": data.get("description"),
            "created_at": now,
            "updated_at": now,
        },
        operation=f"{store.table}.create",
    )
    return _require_setting(conn, store, setting_id)


def update_setting(
    conn: sqlite3.Connection, store: SettingTable, user: User, setting_id: str, data: dict[str, Any]
) -> dict[str, Any]:
    permissions.require_system_admin(conn, user)
    current = _require_setting(conn, store, setting_id)
    columns: dict[str, Any] = {}
    if data.get("key") and data["key"] != current["key"]:
        if _key_taken(conn, store, data["key"], setting_id):
            raise conflict(store.duplicate_message)
        columns["key"] = data["key"]
    value_type = data.get("value_type") or current["value_type"]
    value = data["value"] if data.get("value") is not None else current["value"]
    if "value_type" in data or "value" in data:
        columns["value"] = _checked_value(value, value_type)
        columns["value_type"] = value_type
    if "description" in data:
        columns["description"] = data["description"]
    query.update(conn, store.table, setting_id, columns, operation=f"{store.table}.update")
    return _require_setting(conn, store, setting_id)


def delete_setting(conn: sqlite3.Connection, store: SettingTable, user: User, setting_id: str) -> None:
    permissions.require_system_admin(conn, user)
    _require_setting(conn, store, setting_id)
    query.delete(conn, store.table, setting_id, operation=f"{store.table}.delete")


# ============================================================================
# USER PREFERENCES
# ============================================================================


def get_my_preferences(conn: sqlite3.Connection, user: User) -> list[dict[str, Any]]:
    """Defaults merged with the caller's overrides, one entry per key."""
    rows = query.fetch_all(
        conn,
        """
        SELECT d.key, d.value_type AS default_type, d.value AS default_value, d.description,
               p.value AS user_value, p.value_type AS user_type
        FROM system_user_preference_defaults d
        LEFT JOIN system_user_preferences p ON p.key = d.key AND p.user_id = ?
        UNION ALL
        SELECT p.key, NULL, NULL, NULL, p.value, p.value_type
        FROM system_user_preferences p
        WHERE p.user_id = ?
          AND p.key NOT IN (SELECT key FROM system_user_preference_defaults)
        ORDER BY 1
        """,
        (user.id, user.id),
        operation="system.my_preferences",
    )
    return [
        {
            "key": row["key"],
            "value_type": row["user_type"] or row["default_type"],
            "value": row["user_value"] if row["user_value"] is not None else row["default_value"],
            "default_value": row["default_value"],
            "description": row["description"],
            "is_default": row["user_value"] is None,
        }
        for row in rows
    ]


def set_my_preference(conn: sqlite3.Connection, user: User, key: str, data: dict[str, Any]) -> dict[str, Any]:
    """Store the caller's override for ``key``.

    The value type comes from the matching default when one exists.
    """
    if data.get("value") is None:
        raise bad_request("value is required.")
    default_type = query.fetch_value(
        conn,
        "SELECT value_type FROM system_user_preference_defaults WHERE key = ?",
        (key,),
        operation="system.preference_default_type",
    )
    value_type = default_type or data.get("value_type") or "STRING"
    value = _checked_value(data["value"], value_type)
    now = query.utc_now()
    query.execute(
        conn,
        """
        INSERT INTO system_user_preferences (id, user_id, key, value, value_type, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT (user_id, key) DO UPDATE SET
            value = excluded.value,
            value_type = excluded.value_type,
            updated_at = excluded.updated_at
        """,
        (query.new_id(), user.id, key, value, value_type, now, now),
        operation="system.set_preference",
    )
    return {"key": key, "value": value, "value_type": value_type, "is_default": False}


# ============================================================================
# SYSTEM CHOICES
# ============================================================================


def _present_choice(row: dict[str, Any]) -> dict[str, Any]:
    return {**row, "is_active": bool(row["is_active"])}


def _require_choice(conn: sqlite3.Connection, choice_id: str) -> dict[str, Any]:
    row = query.fetch_one(
        conn, "SELECT * FROM system_choices WHERE id = ?", (choice_id,), operation="system_choices.get"
    )
    if row is None:
        raise not_found("Choice not found.")
    return row


def _choice_taken(
    conn: sqlite3.Connection, list_key: str, value: str, exclude_id: str | None = None
) -> bool:
    return query.exists(
        conn,
        "SELECT 1 FROM system_choices WHERE list_key = ? AND value = ? AND id IS NOT ?",
        (list_key, value, exclude_id),
        operation="system_choices.taken",
    )


def list_choices(conn: sqlite3.Connection, user: User) -> list[dict[str, Any]]:
    permissions.require_system_admin(conn, user)
    rows = query.fetch_all(
        conn, "SELECT * FROM system_choices ORDER BY list_key, sort_order", operation="system_choices.list"
    )
    return [_present_choice(row) for row in rows]


def get_choice(conn: sqlite3.Connection, user: User, choice_id: str) -> dict[str, Any]:
    permissions.require_system_admin(conn, user)
    return _present_choice(_require_choice(conn, choice_id))


def create_choice(conn: sqlite3.Connection, user: User, data: dict[str, Any]) -> dict[str, Any]:
    permissions.require_system_admin(conn, user)
    list_key, value, label = data.get("list_key"), data.get("value"), data.get("label")
    if not list_key or not value or not label:
        raise bad_request("list_key, value, and label are required.")
    if _choice_taken(conn, list_key, value):
        raise conflict("Choice value already exists.")
    now = query.utc_now()
    is_active = data.get("is_active")
    choice_id = query.insert(
        conn,
        "system_choices",
        {
            "list_key": list_key,
            "value": value,
            "label": label,
            "sort_order": int(data.get("sort_order") or 0),
            "is_active": int(True if is_active is None else bool(is_active)),
            "created_at": now,
            "updated_at": now,
        },
        operation="system_choices.create",
    )
    return _present_choice(_require_choice(conn, choice_id))


def update_choice(conn: sqlite3.Connection, user: User, choice_id: str, data: dict[str, Any]) -> dict[str, Any]:
    permissions.require_system_admin(conn, user)
    current = _require_choice(conn, choice_id)
    columns = {key: data[key] for key in ("list_key", "value", "label") if data.get(key)}
    if "list_key" in columns or "value" in columns:
        list_key = columns.get("list_key", current["list_key"])
        value = columns.get("value", current["value"])
        if _choice_taken(conn, list_key, value, choice_id):
            raise conflict("Choice value already exists.")
    if data.get("sort_order") is not None:
        columns["sort_order"] = int(data["sort_order"])
    if data.get("is_active") is not None:
        columns["is_active"] = int(bool(data["is_active"]))
    query.update(conn, "system_choices", choice_id, columns, operation="system_choices.update")
    return _present_choice(_require_choice(conn, choice_id))


def delete_choice(conn: sqlite3.Connection, user: User, choice_id: str) -> None:
    permissions.require_system_admin(conn, user)
    _require_choice(conn, choice_id)
    query.delete(conn, "system_choices", choice_id, operation="system_choices.delete")


# ============================================================================
# ROLES AND CONTROLS
# ============================================================================


def _role_control_ids(conn: sqlite3.Connection, role_id: str) -> list[str]:
    rows = query.fetch_all(
        conn,
        "SELECT control_id FROM system_role_controls WHERE role_id = ? ORDER BY control_id",
        (role_id,),
        operation="system_roles.control_ids",
    )
    return [row["control_id"] for row in rows]


def _require_role(conn: sqlite3.Connection, role_id: str) -> dict[str, Any]:
    role = query.fetch_one(conn, "SELECT * FROM system_roles WHERE id = ?", (role_id,), operation="system_roles.get")
    if role is None:
        raise not_found("Role not found.")
    role["control_ids"] = _role_control_ids(conn, role_id)
    return role


def list_roles(conn: sqlite3.Connection, user: User) -> list[dict[str, Any]]:
    permissions.require_system_admin(conn, user)
    roles = query.fetch_all(conn, "SELECT * FROM system_roles ORDER BY name", operation="system_roles.list")
    for role in roles:
        role["control_ids"] = _role_control_ids(conn, role["id"])
    return roles


def get_role(conn: sqlite3.Connection, user: User, role_id: str) -> dict[str, Any]:
    permissions.require_system_admin(conn, user)
    return _require_role(conn, role_id)


def create_role(conn: sqlite3.Connection, user: User, data: dict[str, Any]) -> dict[str, Any]:
    permissions.require_system_admin(conn, user)
    if not data.get("key") or not data.get("name"):
        raise bad_request("key and name are required.")
    if query.exists(
        conn, "SELECT 1 FROM system_roles WHERE key = ?", (data["key"],), operation="system_roles.key_taken"
    ):
        raise conflict("Role key already exists.")
    now = query.utc_now()
    role_id = query.insert(
        conn,
        "system_roles",
        {
            "key": data["key"],
            "name": data["name"],
            "description": data.get("description"),
            "created_at": now,
            "updated_at": now,
        },
        operation="system_roles.create",
    )
    return _require_role(conn, role_id)


def update_role(conn: sqlite3.Connection, user: User, role_id: str, data: dict[str, Any]) -> dict[str, Any]:
    permissions.require_system_admin(conn, user)
    current = _require_role(conn, role_id)
    columns = {key: data[key] for key in ("name", "description") if data.get(key) is not None}
    if data.get("key") and data["key"] != current["key"]:
        if query.exists(
            conn,
            "SELECT 1 FROM system_roles WHERE key = ? AND id <> ?",
            (data["key"], role_id),
            operation="system_roles.key_taken",
        ):
            raise conflict("Role key already exists.")
        columns["key"] = data["key"]
    query.update(conn, "system_roles", role_id, columns, operation="system_roles.update")
    return _require_role(conn, role_id)


def delete_role(conn: sqlite3.Connection, user: User, role_id: str) -> None:
    permissions.require_system_admin(conn, user)
    _require_role(conn, role_id)
    query.delete(conn, "system_roles", role_id, operation="system_roles.delete")


def _known_ids(conn: sqlite3.Connection, table: str, ids: list[str]) -> set[str]:
    if not ids:
        return set()
    rows = query.fetch_all(
        conn,
        f"SELECT id FROM {table} WHERE id IN ({query.placeholders(ids)})",  # nosec B608
        ids,
        operation=f"{table}.known_ids",
    )
    return {row["id"] for row in rows}


def _id_list(value: Any, key: str) -> list[str]:
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise bad_request(f"{key} must be a list of ids.")
    return list(dict.fromkeys(value))


def set_role_controls(conn: sqlite3.Connection, user: User, role_id: str, data: dict[str, Any]) -> dict[str, Any]:
    """Replace the controls a role grants."""
    permissions.require_system_admin(conn, user)
    _require_role(conn, role_id)
    control_ids = _id_list(data.get("control_ids"), "control_ids")
    if _known_ids(conn, "system_controls", control_ids) != set(control_ids):
        raise bad_request("Unknown control ids.")
    query.execute(
        conn, "DELETE FROM system_role_controls WHERE role_id = ?", (role_id,), operation="system_roles.clear_controls"
    )
    for control_id in control_ids:
        query.execute(
            conn,
            "INSERT INTO system_role_controls (role_id, control_id) VALUES (?, ?)",
            (role_id, control_id),
            operation="system_roles.add_control",
        )
    return _require_role(conn, role_id)


def _require_control(conn: sqlite3.Connection, control_id: str) -> dict[str, Any]:
    control = query.fetch_one(
        conn, "SELECT * FROM system_controls WHERE id = ?", (control_id,), operation="system_controls.get"
    )
    if control is None:
        raise not_found("Control not found.")
    return control


def list_controls(conn: sqlite3.Connection, user: User) -> list[dict[str, Any]]:
    permissions.require_system_admin(conn, user)
    return query.fetch_all(conn, "SELECT * FROM system_controls ORDER BY key", operation="system_controls.list")


def get_control(conn: sqlite3.Connection, user: User, control_id: str) -> dict[str, Any]:
    permissions.require_system_admin(conn, user)
    return _require_control(conn, control_id)


def create_control(conn: sqlite3.Connection, user: User, data: dict[str, Any]) -> dict[str, Any]:
    permissions.require_system_admin(conn, user)
    key = data.get("key")
    if not key:
        raise bad_request("key is required.")
    if query.exists(conn, "SELECT 1 FROM system_controls WHERE key = ?", (key,), operation="system_controls.key_taken"):
        raise conflict("Control key already exists.")
    now = query.utc_now()
    control_id = query.insert(
        conn,
        "system_controls",
        {"key": key, "description": data.get("description"), "created_at": now, "updated_at": now},
        operation="system_controls.create",
    )
    return _require_control(conn, control_id)


def update_control(
    conn: sqlite3.Connection, user: User, control_id: str, data: dict[str, Any]
) -> dict[str, Any]:
    permissions.require_system_admin(conn, user)
    current = _require_control(conn, control_id)
    columns: dict[str, Any] = {}
    if data.get("key") and data["key"] != current["key"]:
        if query.exists(
            conn,
            "SELECT 1 FROM system_controls WHERE key = ? AND id <> ?",
            (data["key"], control_id),
            operation="system_controls.key_taken",
        ):
            raise conflict("Control key already exists.")
        columns["key"] = data["key"]
    if "description" in data:
        columns["description"] = data["description"]
    query.update(conn, "system_controls", control_id, columns, operation="system_controls.update")
    return _require_control(conn, control_id)


def delete_control(conn: sqlite3.Connection, user: User, control_id: str) -> None:
    permissions.require_system_admin(conn, user)
    _require_control(conn, control_id)
    query.delete(conn, "system_controls", control_id, operation="system_controls.delete")


# ============================================================================
# DICTIONARY
# ============================================================================
# Field catalogue per entity key. The entry flagged ``is_label`` picks the
# column reference pickers display; at most one entry per key carries it.


def _present_entry(row: dict[str, Any]) -> dict[str, Any]:
    return {**row, "is_label": bool(row["is_label"])}


def _require_entry(conn: sqlite3.Connection, entry_id: str) -> dict[str, Any]:
    row = query.fetch_one(
        conn, "SELECT * FROM system_dictionary WHERE id = ?", (entry_id,), operation="system_dictionary.get"
    )
    if row is None:
        raise not_found("Dictionary entry not found.")
    return row


def _entry_taken(conn: sqlite3.Connection, entity_key: str, field_key: str, exclude_id: str | None = None) -> bool:
    return query.exists(
        conn,
        "SELECT 1 FROM system_dictionary WHERE entity_key = ? AND field_key = ? AND id IS NOT ?",
        (entity_key, field_key, exclude_id),
        operation="system_dictionary.key_taken",
    )


def _clear_other_labels(conn: sqlite3.Connection, entity_key: str, entry_id: str) -> None:
    query.execute(
        conn,
        "UPDATE system_dictionary SET is_label = 0 WHERE entity_key = ? AND id <> ?",
        (entity_key, entry_id),
        operation="system_dictionary.clear_labels",
    )


def list_dictionary(
    conn: sqlite3.Connection, user: User, *, entity_key: str | None = None
) -> list[dict[str, Any]]:
    permissions.require_system_admin(conn, user)
    where, params = ("WHERE entity_key = ?", (entity_key,)) if entity_key else ("", ())
    rows = query.fetch_all(
        conn,
        f"SELECT * FROM system_dictionary {where} ORDER BY entity_key, field_key",  # nosec B608
        params,
        operation="system_dictionary.list",
    )
    return [_present_entry(row) for row in rows]


def create_dictionary_entry(conn: sqlite3.Connection, user: User, data: dict[str, Any]) -> dict[str, Any]:
    permissions.require_system_admin(conn, user)
    if any(not data.get(key) for key in ("entity_key", "field_key", "label", "field_type")):
        raise bad_request("entity_key, field_key, label, and field_type are required.")
    if _entry_taken(conn, data["entity_key"], data["field_key"]):
        raise conflict("Dictionary entry already exists.")
    entry_id = query.insert(
        conn,
        "system_dictionary",
        {
            "entity_key": data["entity_key"],
            "field_key": data["field_key"],
            "label": data["label"],
            "field_type": data["field_type"],
            "reference_entity_key": data.get("reference_entity_key"),
            "is_label": int(bool(data.get("is_label"))),
        },
        operation="system_dictionary.create",
    )
    if data.get("is_label"):
        _clear_other_labels(conn, data["entity_key"], entry_id)
    return _present_entry(_require_entry(conn, entry_id))


def update_dictionary_entry(
    conn: sqlite3.Connection, user: User, entry_id: str, data: dict[str, Any]
) -> dict[str, Any]:
    permissions.require_system_admin(conn, user)
    current = _require_entry(conn, entry_id)
    columns = {key: data[key] for key in ("entity_key", "field_key", "label", "field_type") if data.get(key)}
    entity_key = columns.get("entity_key", current["entity_key"])
    field_key = columns.get("field_key", current["field_key"])
    if (entity_key, field_key) != (current["entity_key"], current["field_key"]) and _entry_taken(
        conn, entity_key, field_key, entry_id
    ):
        raise conflict("Dictionary entry already exists.")
    if "reference_entity_key" in data:
        columns["reference_entity_key"] = data["reference_entity_key"]
    if data.get("is_label") is not None:
        columns["is_label"] = int(bool(data["is_label"]))
    query.update(conn, "system_dictionary", entry_id, columns, operation="system_dictionary.update", touch=False)
    if columns.get("is_label"):
        _clear_other_labels(conn, entity_key, entry_id)
    return _present_entry(_require_entry(conn, entry_id))


def delete_dictionary_entry(conn: sqlite3.Connection, user: User, entry_id: str) -> None:
    permissions.require_system_admin(conn, user)
    _require_entry(conn, entry_id)
    query.delete(conn, "system_dictionary", entry_id, operation="system_dictionary.delete")


# ============================================================================
# USERS
# ============================================================================


def _user_role_ids(conn: sqlite3.Connection, user_id: str) -> list[str]:
    rows = query.fetch_all(
        conn,
        "SELECT role_id FROM system_user_roles WHERE user_id = ? ORDER BY role_id",
        (user_id,),
        operation="system_users.role_ids",
    )
    return [row["role_id"] for row in rows]


def _require_user(conn: sqlite3.Connection, user_id: str) -> dict[str, Any]:
    row = users_repo.get_user(conn, user_id)
    if row is None:
        raise not_found("User not found.")
    row["role_ids"] = _user_role_ids(conn, user_id)
    return row


def _validate_role(role: str) -> str:
    if role not in {item.value for item in Role}:
        raise bad_request("Invalid role.")
    return role


def _check_password(password: str) -> None:
    result = validate_password_strength(password)
    if not result.is_valid:
        raise bad_request("; ".join(result.errors))


def _email_taken(conn: sqlite3.Connection, email: str, exclude_id: str | None = None) -> bool:
    existing = users_repo.get_user_by_email(conn, email)
    return existing is not None and existing["id"] != exclude_id


def list_users(conn: sqlite3.Connection, user: User) -> list[dict[str, Any]]:
    permissions.require_system_admin(conn, user)
    return users_repo.list_users(conn)


def get_user(conn: sqlite3.Connection, user: User, user_id: str) -> dict[str, Any]:
    permissions.require_system_admin(conn, user)
    return _require_user(conn, user_id)


def create_user(conn: sqlite3.Connection, user: User, data: dict[str, Any]) -> dict[str, Any]:
    permissions.require_system_admin(conn, user)
    email = (data.get("email") or "").strip()
    name = data.get("name")
    password = data.get("password")
    if not email or not name or not password:
        raise bad_request("email, name, and password are required.")
    role = _validate_role(data.get("role") or Role.USER.value)
    _check_password(password)
    if _email_taken(conn, email):
        raise conflict("Email already in use.")
    user_id = users_repo.create_user(conn, email, password, name=name, role=role)
    return _require_user(conn, user_id)


def update_user(conn: sqlite3.Connection, user: User, user_id: str, data: dict[str, Any]) -> dict[str, Any]:
    permissions.require_system_admin(conn, user)
    _require_user(conn, user_id)
    email = (data.get("email") or "").strip() or None
    if email and _email_taken(conn, email, user_id):
        raise conflict("Email already in use.")
    role = _validate_role(data["role"]) if data.get("role") else None
    password = data.get("password") or None
    if password:
        _check_password(password)
    users_repo.update_user(conn, user_id, email=email, name=data.get("name"), role=role, password=password)
    return _require_user(conn, user_id)


def delete_user(conn: sqlite3.Connection, user: User, user_id: str) -> None:
    permissions.require_system_admin(conn, user)
    if user_id == user.id:
        raise bad_request("Cannot delete the current user.")
    _require_user(conn, user_id)
    users_repo.delete_user(conn, user_id)


def set_user_roles(conn: sqlite3.Connection, user: User, user_id: str, data: dict[str, Any]) -> dict[str, Any]:
    """Replace the system roles held by ``user_id``."""
    permissions.require_system_admin(conn, user)
    _require_user(conn, user_id)
    role_ids = _id_list(data.get("role_ids"), "role_ids")
    if _known_ids(conn, "system_roles", role_ids) != set(role_ids):
        raise bad_request("Unknown role ids.")
    query.execute(
        conn, "DELETE FROM system_user_roles WHERE user_id = ?", (user_id,), operation="system_users.clear_roles"
    )
    for role_id in role_ids:
        query.execute(
            conn,
            "INSERT INTO system_user_roles (user_id, role_id) VALUES (?, ?)",
            (user_id, role_id),
            operation="system_users.add_role",
        )
    return _require_user(conn, user_id)


# ============================================================================
# AUDIT
# ============================================================================


def list_audit(
    conn: sqlite3.Connection, user: User, *, entity_key: str | None = None, entity_id: str | None = None
) -> list[dict[str, Any]]:
    permissions.require_system_admin(conn, user)
    return audit_repo.list_entries(conn, entity_key=entity_key, entity_id=entity_id)
