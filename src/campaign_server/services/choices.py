"""Choice lists and options used by CHOICE fields, plus read access to system choices.

PACK lists belong to a template pack and are admin-only. WORLD lists belong
to a world and may also be managed by that world's architects.
"""

from __future__ import annotations

import sqlite3
from typing import Any

from campaign_server.db import query
from campaign_server.services import permissions
from campaign_server.services.errors import bad_request, conflict, forbidden, not_found
from campaign_server.services.permissions import User

CHOICE_SCOPES = ("PACK", "WORLD")


def _ensure_can_manage(conn: sqlite3.Connection, user: User, choice_list: dict[str, Any]) -> None:
    if user.is_admin:
        return
    if choice_list["scope"] != "WORLD" or not choice_list["world_id"]:
        raise forbidden()
    if not permissions.is_world_architect(conn, user.id, choice_list["world_id"]):
        raise forbidden()


def require_choice_list(conn: sqlite3.Connection, choice_list_id: str) -> dict[str, Any]:
    choice_list = query.fetch_one(
        conn, "SELECT * FROM choice_lists WHERE id = ?", (choice_list_id,), operation="choice_lists.get"
    )
    if choice_list is None:
        raise not_found("Choice list not found.")
    return choice_list


# ============================================================================
# LISTS
# ============================================================================


def list_choice_lists(
    conn: sqlite3.Connection,
    user: User,
    *,
    scope: str | None = None,
    pack_id: str | None = None,
    world_id: str | None = None,
) -> list[dict[str, Any]]:
    """Non-admins only ever see the WORLD lists of a world they architect."""
    if not user.is_admin:
        if not world_id:
            return []
        if not permissions.is_world_architect(conn, user.id, world_id):
            raise forbidden()
        scope, pack_id = "WORLD", None

    clauses: list[str] = []
    params: list[Any] = []
    if scope in CHOICE_SCOPES:
        clauses.append("scope = ?")
        params.append(scope)
    if pack_id:
        clauses.append("pack_id = ?")
        params.append(pack_id)
    if world_id:
        clauses.append("world_id = ?")
        params.append(world_id)
    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    return query.fetch_all(
        conn,
        f"SELECT * FROM choice_lists {where} ORDER BY name",  # nosec B608
        params,
        operation="choice_lists.list",
    )


def get_choice_list(conn: sqlite3.Connection, user: User, choice_list_id: str) -> dict[str, Any]:
    choice_list = require_choice_list(conn, choice_list_id)
    _ensure_can_manage(conn, user, choice_list)
    return choice_list


def create_choice_list(conn: sqlite3.Connection, user: User, data: dict[str, Any]) -> dict[str, Any]:
    name = data.get("name")
    scope = data.get("scope")
    if not name or not scope:
        raise bad_request("name and scope are required.")
    if scope not in CHOICE_SCOPES:
        raise bad_request("Invalid choice list scope.")
    pack_id = data.get("pack_id") if scope == "PACK" else None
    world_id = data.get("world_id") if scope == "WORLD" else None
    if scope == "PACK" and not pack_id:
        raise bad_request("pack_id is required for pack-scoped lists.")
    if scope == "WORLD" and not world_id:
        raise bad_request("world_id is required for world-scoped lists.")
    _ensure_can_manage(conn, user, {"scope": scope, "world_id": world_id})

    now = query.utc_now()
    choice_list_id = query.insert(
        conn,
        "choice_lists",
        {
            "name": name,
            "description": data.get("description"),
            "scope": scope,
            "pack_id": pack_id,
            "world_id": world_id,
            "created_at": now,
            "updated_at": now,
        },
        operation="choice_lists.create",
    )
    return require_choice_list(conn, choice_list_id)


def update_choice_list(
    conn: sqlite3.Connection, user: User, choice_list_id: str, data: dict[str, Any]
) -> dict[str, Any]:
    choice_list = require_choice_list(conn, choice_list_id)
    _ensure_can_manage(conn, user, choice_list)
    columns = {key: data[key] for key in ("name", "description") if data.get(key) is not None}
    query.update(conn, "choice_lists", choice_list_id, columns, operation="choice_lists.update")
    return require_choice_list(conn, choice_list_id)


def delete_choice_list(conn: sqlite3.Connection, user: User, choice_list_id: str) -> None:
    choice_list = require_choice_list(conn, choice_list_id)
    _ensure_can_manage(conn, user, choice_list)
    query.execute(
        conn,
        "DELETE FROM choice_options WHERE choice_list_id = ?",
        (choice_list_id,),
        operation="choice_lists.delete_options",
    )
    query.delete(conn, "choice_lists", choice_list_id, operation="choice_lists.delete")


# ============================================================================
# OPTIONS
# ============================================================================


def _present_option(row: dict[str, Any]) -> dict[str, Any]:
    payload = {key: value for key, value in row.items() if key not in ("scope", "world_id")}
    payload["is_active"] = bool(payload["is_active"])
    return payload


def _require_option(conn: sqlite3.Connection, option_id: str) -> dict[str, Any]:
    option = query.fetch_one(
        conn,
        """
        SELECT o.*, l.scope, l.world_id FROM choice_options o
        JOIN choice_lists l ON l.id = o.choice_list_id
        WHERE o.id = ?
        """,
        (option_id,),
        operation="choice_options.get",
    )
    if option is None:
        raise not_found("Choice option not found.")
    return option


def _value_taken(
    conn: sqlite3.Connection, choice_list_id: str, value: str, exclude_id: str | None = None
) -> bool:
    return query.exists(
        conn,
        "SELECT 1 FROM choice_options WHERE choice_list_id = ? AND value = ? AND id IS NOT ?",
        (choice_list_id, value, exclude_id),
        operation="choice_options.value_taken",
    )


def list_choice_options(
    conn: sqlite3.Connection, user: User, *, choice_list_id: str | None = None
) -> list[dict[str, Any]]:
    if not user.is_admin:
        if not choice_list_id:
            return []
        choice_list = query.fetch_one(
            conn,
            "SELECT scope, world_id FROM choice_lists WHERE id = ?",
            (choice_list_id,),
            operation="choice_options.list_scope",
        )
        if choice_list is None:
            raise forbidden()
        _ensure_can_manage(conn, user, choice_list)
    where, params = ("WHERE choice_list_id = ?", (choice_list_id,)) if choice_list_id else ("", ())
    rows = query.fetch_all(
        conn,
        f"SELECT * FROM choice_options {where} ORDER BY sort_order, label",  # nosec B608
        params,
        operation="choice_options.list",
    )
    return [_present_option(row) for row in rows]


def get_choice_option(conn: sqlite3.Connection, user: User, option_id: str) -> dict[str, Any]:
    option = _require_option(conn, option_id)
    _ensure_can_manage(conn, user, option)
    return _present_option(option)


def create_choice_option(conn: sqlite3.Connection, user: User, data: dict[str, Any]) -> dict[str, Any]:
    choice_list_id = data.get("choice_list_id")
    value = data.get("value")
    label = data.get("label")
    if not choice_list_id or not value or not label:
        raise bad_request("choice_list_id, value, and label are required.")
    choice_list = require_choice_list(conn, choice_list_id)
    _ensure_can_manage(conn, user, choice_list)
    if _value_taken(conn, choice_list_id, value):
        raise conflict("Option value already exists.")

    now = query.utc_now()
    is_active = data.get("is_active")
    option_id = query.insert(
        conn,
        "choice_options",
        {
            "choice_list_id": choice_list_id,
            "value": value,
            "label": label,
            "sort_order": int(data.get("sort_order") or 0),
            "is_active": int(True if is_active is None else bool(is_active)),
            "created_at": now,
            "updated_at": now,
        },
        operation="choice_options.create",
    )
    return _present_option(_require_option(conn, option_id))


def update_choice_option(
    conn: sqlite3.Connection, user: User, option_id: str, data: dict[str, Any]
) -> dict[str, Any]:
    option = _require_option(conn, option_id)
    _ensure_can_manage(conn, user, option)
    columns: dict[str, Any] = {}
    if data.get("value") is not None and data["value"] != option["value"]:
        if _value_taken(conn, option["choice_list_id"], data["value"], option_id):
            raise conflict("Option value already exists.")
        columns["value"] = data["value"]
    if data.get("label") is not None:
        columns["label"] = data["label"]
    if data.get("sort_order") is not None:
        columns["sort_order"] = int(data["sort_order"])
    if data.get("is_active") is not None:
        columns["is_active"] = int(bool(data["is_active"]))
    query.update(conn, "choice_options", option_id, columns, operation="choice_options.update")
    return _present_option(_require_option(conn, option_id))


def delete_choice_option(conn: sqlite3.Connection, user: User, option_id: str) -> None:
    option = _require_option(conn, option_id)
    _ensure_can_manage(conn, user, option)
    query.delete(conn, "choice_options", option_id, operation="choice_options.delete")


# ============================================================================
# SYSTEM CHOICES
# ============================================================================


def list_system_choices(conn: sqlite3.Connection, list_key: str | None) -> list[dict[str, Any]]:
    """Active system choices for a list key; any signed-in user may read them."""
    if not list_key:
        raise bad_request("list_key is required.")
    return query.fetch_all(
        conn,
        """
        SELECT id, list_key, value, label, sort_order FROM system_choices
        WHERE list_key = ? AND is_active = 1
        ORDER BY sort_order, label
        """,
        (list_key,),
        operation="system_choices.active",
    )
