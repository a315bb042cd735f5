"""Seeded view metadata, view administration and per-user list view preferences."""

from __future__ import annotations

import sqlite3
from dataclasses import asdict
from typing import Any

from campaign_server.db import query
from campaign_server.services import permissions
from campaign_server.services.errors import bad_request, conflict, forbidden, not_found
from campaign_server.services.filters import normalize_filters
from campaign_server.services.permissions import User

_VIEW_FIELD_FLAGS = ("list_visible", "form_visible", "required", "read_only", "allow_multiple")


def _view_fields(conn: sqlite3.Connection, view_id: str) -> list[dict[str, Any]]:
    rows = query.fetch_all(
        conn,
        "SELECT * FROM system_view_fields WHERE view_id = ? ORDER BY list_order, form_order",
        (view_id,),
        operation="views.fields",
    )
    for row in rows:
        for flag in _VIEW_FIELD_FLAGS:
            row[flag] = bool(row[flag])
    return rows


def _present_view(conn: sqlite3.Connection, view: dict[str, Any]) -> dict[str, Any]:
    fields = _view_fields(conn, view["id"])
    if view["entity_key"] == "campaigns":
        for field in fields:
            if field["field_key"] == "gm_user_id" and not field["reference_scope"]:
                field["reference_scope"] = "world_gm"
    return {**view, "admin_only": bool(view["admin_only"]), "fields": fields}


def list_views(conn: sqlite3.Connection, user: User) -> list[dict[str, Any]]:
    where = "" if user.is_admin else "WHERE admin_only = 0"
    views = query.fetch_all(
        conn,
        f"SELECT * FROM system_views {where} ORDER BY title",  # nosec B608
        operation="views.list",
    )
    return [_present_view(conn, view) for view in views]


def get_view(conn: sqlite3.Connection, user: User, key: str) -> dict[str, Any]:
    view = query.fetch_one(conn, "SELECT * FROM system_views WHERE key = ?", (key,), operation="views.get")
    if view is None:
        raise not_found("View not found.")
    if view["admin_only"] and not user.is_admin:
        raise forbidden()
    return _present_view(conn, view)


# ============================================================================
# VIEW ADMINISTRATION
# ============================================================================

VIEW_TYPES = ("LIST", "FORM")
_VIEW_REQUIRED = ("key", "title", "entity_key", "view_type", "endpoint")
_VIEW_FIELD_TEXT = (
    "field_key",
    "label",
    "field_type",
    "placeholder",
    "options_list_key",
    "reference_entity_key",
    "reference_scope",
    "width",
)


def _require_view(conn: sqlite3.Connection, view_id: str) -> dict[str, Any]:
    view = query.fetch_one(conn, "SELECT * FROM system_views WHERE id = ?", (view_id,), operation="views.get_by_id")
    if view is None:
        raise not_found("View not found.")
    return view


def _view_key_taken(conn: sqlite3.Connection, key: str, exclude_id: str | None = None) -> bool:
    return query.exists(
        conn,
        "SELECT 1 FROM system_views WHERE key = ? AND id IS NOT ?",
        (key, exclude_id),
        operation="views.key_taken",
    )


def create_view(conn: sqlite3.Connection, user: User, data: dict[str, Any]) -> dict[str, Any]:
    permissions.require_system_admin(conn, user)
    if any(not data.get(key) for key in _VIEW_REQUIRED):
        raise bad_request("key, title, entity_key, view_type, and endpoint are required.")
    if data["view_type"] not in VIEW_TYPES:
        raise bad_request("Invalid view_type.")
    if _view_key_taken(conn, data["key"]):
        raise conflict("View key already exists.")
    now = query.utc_now()
    view_id = query.insert(
        conn,
        "system_views",
        {
            **{key: data[key] for key in _VIEW_REQUIRED},
            "description": data.get("description"),
            "admin_only": int(bool(data.get("admin_only"))),
            "created_at": now,
            "updated_at": now,
        },
        operation="views.create",
    )
    return _present_view(conn, _require_view(conn, view_id))


def update_view(conn: sqlite3.Connection, user: User, view_id: str, data: dict[str, Any]) -> dict[str, Any]:
    """Apply the provided columns; an unknown ``view_type`` is ignored."""
    permissions.require_system_admin(conn, user)
    current = _require_view(conn, view_id)
    columns = {key: data[key] for key in _VIEW_REQUIRED if data.get(key)}
    if columns.get("view_type") not in (None, *VIEW_TYPES):
        del columns["view_type"]
    new_key = columns.get("key", current["key"])
    if new_key != current["key"] and _view_key_taken(conn, new_key, view_id):
        raise conflict("View key already exists.")
    if "description" in data:
        columns["description"] = data["description"]
    if data.get("admin_only") is not None:
        columns["admin_only"] = int(bool(data["admin_only"]))
    query.update(conn, "system_views", view_id, columns, operation="views.update")
    return _present_view(conn, _require_view(conn, view_id))


def delete_view(conn: sqlite3.Connection, user: User, view_id: str) -> None:
    permissions.require_system_admin(conn, user)
    _require_view(conn, view_id)
    query.delete(conn, "system_views", view_id, operation="views.delete")


def _require_view_field(conn: sqlite3.Connection, field_id: str) -> dict[str, Any]:
    field = query.fetch_one(
        conn, "SELECT * FROM system_view_fields WHERE id = ?", (field_id,), operation="view_fields.get"
    )
    if field is None:
        raise not_found("View field not found.")
    for flag in _VIEW_FIELD_FLAGS:
        field[flag] = bool(field[flag])
    return field


def _view_field_columns(data: dict[str, Any]) -> dict[str, Any]:
    columns = {key: data[key] for key in _VIEW_FIELD_TEXT if key in data}
    for key in ("list_order", "form_order"):
        if data.get(key) is not None:
            columns[key] = int(data[key])
    for flag in _VIEW_FIELD_FLAGS:
        if data.get(flag) is not None:
            columns[flag] = int(bool(data[flag]))
    return columns


def list_view_fields(
    conn: sqlite3.Connection, user: User, *, view_id: str | None = None
) -> list[dict[str, Any]]:
    permissions.require_system_admin(conn, user)
    if view_id:
        return _view_fields(conn, view_id)
    rows = query.fetch_all(
        conn,
        "SELECT * FROM system_view_fields ORDER BY view_id, list_order, form_order",
        operation="view_fields.list",
    )
    for row in rows:
        for flag in _VIEW_FIELD_FLAGS:
            row[flag] = bool(row[flag])
    return rows


def create_view_field(conn: sqlite3.Connection, user: User, data: dict[str, Any]) -> dict[str, Any]:
    permissions.require_system_admin(conn, user)
    if not data.get("view_id") or not data.get("field_key") or not data.get("label") or not data.get("field_type"):
        raise bad_request("view_id, field_key, label, and field_type are required.")
    _require_view(conn, data["view_id"])
    if query.exists(
        conn,
        "SELECT 1 FROM system_view_fields WHERE view_id = ? AND field_key = ?",
        (data["view_id"], data["field_key"]),
        operation="view_fields.key_taken",
    ):
        raise conflict("Field key already exists.")
    field_id = query.insert(
        conn,
        "system_view_fields",
        {"view_id": data["view_id"], **_view_field_columns(data)},
        operation="view_fields.create",
    )
    return _require_view_field(conn, field_id)


def update_view_field(
    conn: sqlite3.Connection, user: User, field_id: str, data: dict[str, Any]
) -> dict[str, Any]:
    permissions.require_system_admin(conn, user)
    current = _require_view_field(conn, field_id)
    columns = _view_field_columns(data)
    for key in ("field_key", "label", "field_type"):
        if key in columns and not columns[key]:
            raise bad_request(f"{key} cannot be empty.")
    if columns.get("field_key", current["field_key"]) != current["field_key"] and query.exists(
        conn,
        "SELECT 1 FROM system_view_fields WHERE view_id = ? AND field_key = ?",
        (current["view_id"], columns["field_key"]),
        operation="view_fields.key_taken",
    ):
        raise conflict("Field key already exists.")
    query.update(conn, "system_view_fields", field_id, columns, operation="view_fields.update", touch=False)
    return _require_view_field(conn, field_id)


def delete_view_field(conn: sqlite3.Connection, user: User, field_id: str) -> None:
    permissions.require_system_admin(conn, user)
    _require_view_field(conn, field_id)
    query.delete(conn, "system_view_fields", field_id, operation="view_fields.delete")


# ============================================================================
# LIST VIEW PREFERENCES
# ============================================================================


def _present_columns(row: dict[str, Any] | None) -> dict[str, Any] | None:
    if row is None:
        return None
    payload = {key: value for key, value in row.items() if not key.endswith("_json")}
    payload["columns"] = query.load_json(row["columns_json"])
    filters = query.load_json(row["filters_json"])
    payload["filters"] = asdict(normalize_filters(filters)) if filters is not None else None
    return payload


def _require_view_key(view_key: str | None) -> str:
    if not view_key:
        raise bad_request("view_key is required.")
    return view_key


def _columns_payload(data: dict[str, Any]) -> dict[str, Any]:
    values: dict[str, Any] = {}
    columns = data.get("columns")
    if columns is not None:
        if not isinstance(columns, list) or not all(isinstance(item, str) for item in columns):
            raise bad_request("columns must be a list of field keys.")
        values["columns_json"] = query.dump_json(columns)
    if data.get("filters") is not None:
        values["filters_json"] = query.dump_json(asdict(normalize_filters(data["filters"])))
    return values


def _find_preference(
    conn: sqlite3.Connection, user_id: str, view_key: str, entity_type_id: str | None
) -> dict[str, Any] | None:
    return query.fetch_one(
        conn,
        """
        SELECT * FROM user_list_view_preferences
        WHERE user_id = ? AND view_key = ? AND entity_type_id IS ?
        """,
        (user_id, view_key, entity_type_id),
        operation="list_view_preferences.find",
    )


def _find_default(conn: sqlite3.Connection, entity_type_id: str | None) -> dict[str, Any] | None:
    if not entity_type_id:
        return None
    return query.fetch_one(
        conn,
        "SELECT * FROM entity_type_list_view_defaults WHERE entity_type_id = ?",
        (entity_type_id,),
        operation="list_view_defaults.find",
    )


def get_list_view_preference(
    conn: sqlite3.Connection, user: User, *, view_key: str | None, entity_type_id: str | None = None
) -> dict[str, Any]:
    """Return ``{"user": ..., "defaults": ...}``; the client falls back to defaults."""
    view_key = _require_view_key(view_key)
    return {
        "user": _present_columns(_find_preference(conn, user.id, view_key, entity_type_id)),
        "defaults": _present_columns(_find_default(conn, entity_type_id)),
    }


def save_list_view_preference(
    conn: sqlite3.Connection,
    user: User,
    data: dict[str, Any],
    *,
    view_key: str | None,
    entity_type_id: str | None = None,
) -> dict[str, Any]:
    view_key = _require_view_key(view_key)
    values = _columns_payload(data)
    existing = _find_preference(conn, user.id, view_key, entity_type_id)
    if existing is not None:
        query.update(
            conn, "user_list_view_preferences", existing["id"], values, operation="list_view_preferences.update"
        )
    else:
        now = query.utc_now()
        query.insert(
            conn,
            "user_list_view_preferences",
            {
                "user_id": user.id,
                "view_key": view_key,
                "entity_type_id": entity_type_id,
                "created_at": now,
                "updated_at": now,
                **values,
            },
            operation="list_view_preferences.create",
        )
    return _present_columns(_find_preference(conn, user.id, view_key, entity_type_id))


def delete_list_view_preference(
    conn: sqlite3.Connection, user: User, *, view_key: str | None, entity_type_id: str | None = None
) -> None:
    view_key = _require_view_key(view_key)
    query.execute(
        conn,
        """
        DELETE FROM user_list_view_preferences
        WHERE user_id = ? AND view_key = ? AND entity_type_id IS ?
        """,
        (user.id, view_key, entity_type_id),
        operation="list_view_preferences.delete",
    )


# ============================================================================
# ENTITY TYPE LIST DEFAULTS
# ============================================================================


def _require_entity_type_id(conn: sqlite3.Connection, entity_type_id: str | None) -> str:
    if not entity_type_id:
        raise bad_request("entity_type_id is required.")
    if not query.exists(
        conn, "SELECT 1 FROM entity_types WHERE id = ?", (entity_type_id,), operation="list_view_defaults.type"
    ):
        raise not_found("Entity type not found.")
    return entity_type_id


def get_entity_type_list_defaults(
    conn: sqlite3.Connection, user: User, *, entity_type_id: str | None
) -> dict[str, Any] | None:
    permissions.require_system_admin(conn, user)
    entity_type_id = _require_entity_type_id(conn, entity_type_id)
    return _present_columns(_find_default(conn, entity_type_id))


def save_entity_type_list_defaults(
    conn: sqlite3.Connection, user: User, data: dict[str, Any], *, entity_type_id: str | None
) -> dict[str, Any]:
    permissions.require_system_admin(conn, user)
    entity_type_id = _require_entity_type_id(conn, entity_type_id)
    values = _columns_payload(data)
    existing = _find_default(conn, entity_type_id)
    if existing is not None:
        query.update(
            conn, "entity_type_list_view_defaults", existing["id"], values, operation="list_view_defaults.update"
        )
    else:
        now = query.utc_now()
        query.insert(
            conn,
            "entity_type_list_view_defaults",
            {"entity_type_id": entity_type_id, "created_at": now, "updated_at": now, **values},
            operation="list_view_defaults.create",
        )
    return _present_columns(_find_default(conn, entity_type_id))
