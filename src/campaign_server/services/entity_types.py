"""Entity types, their form sections and field definitions.

An entity type either belongs to a world or is a template (``world_id`` is
NULL, ``is_template`` set). Templates are admin-managed and can be copied
into a world by any architect.
"""

from __future__ import annotations

import sqlite3
from typing import Any

from campaign_server.db import query
from campaign_server.services import permissions, records
from campaign_server.services.errors import bad_request, conflict, forbidden, not_found
from campaign_server.services.permissions import User
from campaign_server.services.records import ENTITIES
from campaign_server.services.validation import choice_lists_with_options, resolve_choice_list

SECTION_LAYOUTS = ("ONE_COLUMN", "TWO_COLUMN")
CHOICE_LIST_MESSAGE = "Choice list must belong to the entity type world."

_FIELD_COLUMNS = (
    "field_key",
    "label",
    "field_type",
    "description",
    "required",
    "list_order",
    "form_order",
    "form_section_id",
    "form_column",
    "reference_entity_type_id",
    "reference_location_type_key",
)


def require_entity_type(conn: sqlite3.Connection, entity_type_id: str) -> dict[str, Any]:
    entity_type = query.fetch_one(
        conn, "SELECT * FROM entity_types WHERE id = ?", (entity_type_id,), operation="entity_types.get"
    )
    if entity_type is None:
        raise not_found("Entity type not found.")
    return entity_type


def _present(row: dict[str, Any]) -> dict[str, Any]:
    return {**row, "is_template": bool(row["is_template"])}


def can_access(conn: sqlite3.Connection, user: User, entity_type: dict[str, Any]) -> bool:
    if user.is_admin or entity_type["is_template"]:
        return True
    return bool(entity_type["world_id"]) and permissions.can_access_world(
        conn, user.id, entity_type["world_id"]
    )


def can_manage(conn: sqlite3.Connection, user: User, entity_type: dict[str, Any]) -> bool:
    if user.is_admin:
        return True
    if entity_type["is_template"] or not entity_type["world_id"]:
        return False
    return permissions.is_world_architect(conn, user.id, entity_type["world_id"])


def _ensure_can_edit(
    conn: sqlite3.Connection, user: User, entity_type: dict[str, Any], template_message: str
) -> None:
    if entity_type["is_template"] and not user.is_admin:
        raise forbidden(template_message)
    if not can_manage(conn, user, entity_type):
        raise forbidden()


# ============================================================================
# TYPES
# ============================================================================


def list_entity_types(
    conn: sqlite3.Connection,
    user: User,
    *,
    world_id: str | None = None,
    include_templates: bool = False,
    templates_only: bool = False,
) -> list[dict[str, Any]]:
    if not user.is_admin and world_id and not permissions.is_world_architect(conn, user.id, world_id):
        raise forbidden()
    if not user.is_admin and not world_id and not templates_only:
        return []

    if templates_only:
        where, params = "WHERE is_template = 1", ()
    elif world_id and include_templates:
        where, params = "WHERE world_id = ? OR is_template = 1", (world_id,)
    elif world_id:
        where, params = "WHERE world_id = ?", (world_id,)
    elif user.is_admin:
        where, params = "", ()
    else:
        where, params = "WHERE is_template = 1", ()
    rows = query.fetch_all(
        conn,
        f"SELECT * FROM entity_types {where} ORDER BY name",  # nosec B608
        params,
        operation="entity_types.list",
    )
    return [_present(row) for row in rows]


def get_entity_type(conn: sqlite3.Connection, user: User, entity_type_id: str) -> dict[str, Any]:
    entity_type = require_entity_type(conn, entity_type_id)
    if not can_access(conn, user, entity_type):
        raise forbidden()
    return _present(entity_type)


def _create_section(
    conn: sqlite3.Connection, entity_type_id: str, title: str, layout: str, sort_order: int
) -> str:
    now = query.utc_now()
    return query.insert(
        conn,
        "entity_form_sections",
        {
            "entity_type_id": entity_type_id,
            "title": title,
            "layout": layout,
            "sort_order": sort_order,
            "created_at": now,
            "updated_at": now,
        },
        operation="entity_types.create_section",
    )


def create_default_section(conn: sqlite3.Connection, entity_type_id: str) -> str:
    return _create_section(conn, entity_type_id, "General", "ONE_COLUMN", 1)


def _copy_structure(conn: sqlite3.Connection, source_id: str, target_id: str) -> None:
    """Copy sections and fields of ``source_id`` onto ``target_id``."""
    sections = query.fetch_all(
        conn,
        "SELECT * FROM entity_form_sections WHERE entity_type_id = ? ORDER BY sort_order",
        (source_id,),
        operation="entity_types.source_sections",
    )
    section_map: dict[str, str] = {}
    default_section: str | None = None
    if sections:
        for section in sections:
            section_map[section["id"]] = _create_section(
                conn, target_id, section["title"], section["layout"], section["sort_order"]
            )
    else:
        default_section = create_default_section(conn, target_id)

    fields = query.fetch_all(
        conn,
        "SELECT * FROM entity_fields WHERE entity_type_id = ?",
        (source_id,),
        operation="entity_types.source_fields",
    )
    now = query.utc_now()
    for field in fields:
        values = {column: field[column] for column in _FIELD_COLUMNS}
        values["form_section_id"] = section_map.get(field["form_section_id"] or "", default_section)
        query.insert(
            conn,
            "entity_fields",
            {
                **values,
                "entity_type_id": target_id,
                "choice_list_id": field["choice_list_id"],
                "conditions_json": field["conditions_json"],
                "created_at": now,
                "updated_at": now,
            },
            operation="entity_types.copy_field",
        )


def create_entity_type(conn: sqlite3.Connection, user: User, data: dict[str, Any]) -> dict[str, Any]:
    name = (data.get("name") or "").strip()
    if not name:
        raise bad_request("name is required.")
    is_template = bool(data.get("is_template"))
    world_id = data.get("world_id")
    if is_template and not user.is_admin:
        raise forbidden("Only admins can create templates.")
    if not is_template:
        if not world_id:
            raise bad_request("world_id is required.")
        if not user.is_admin and not permissions.is_world_architect(conn, user.id, world_id):
            raise forbidden("Only world architects can create entity types.")

    source = None
    source_type_id = data.get("source_type_id")
    if source_type_id:
        source = query.fetch_one(
            conn,
            "SELECT * FROM entity_types WHERE id = ?",
            (source_type_id,),
            operation="entity_types.source",
        )
        if source is None:
            raise not_found("Source entity type not found.")
        if not user.is_admin and not source["is_template"]:
            raise forbidden("Only templates can be copied by non-admins.")

    now = query.utc_now()
    entity_type_id = query.insert(
        conn,
        "entity_types",
        {
            "world_id": None if is_template else world_id,
            "name": name,
            "description": data.get("description"),
            "is_template": int(is_template),
            "created_by_id": user.id,
            "created_at": now,
            "updated_at": now,
        },
        operation="entity_types.create",
    )
    if source is not None:
        _copy_structure(conn, source["id"], entity_type_id)
    else:
        create_default_section(conn, entity_type_id)
    return _present(require_entity_type(conn, entity_type_id))


def update_entity_type(
    conn: sqlite3.Connection, user: User, entity_type_id: str, data: dict[str, Any]
) -> dict[str, Any]:
    entity_type = require_entity_type(conn, entity_type_id)
    _ensure_can_edit(conn, user, entity_type, "Only admins can edit templates.")
    values = {key: data[key] for key in ("name", "description") if key in data}
    query.update(conn, "entity_types", entity_type_id, values, operation="entity_types.update")
    return _present(require_entity_type(conn, entity_type_id))


def delete_entity_type(conn: sqlite3.Connection, user: User, entity_type_id: str) -> None:
    entity_type = require_entity_type(conn, entity_type_id)
    _ensure_can_edit(conn, user, entity_type, "Only admins can delete templates.")
    if query.exists(
        conn,
        "SELECT 1 FROM entities WHERE entity_type_id = ?",
        (entity_type_id,),
        operation="entity_types.in_use",
    ):
        raise conflict("Entity type is in use.")
    query.delete(conn, "entity_types", entity_type_id, operation="entity_types.delete")


def entity_type_stats(
    conn: sqlite3.Connection,
    user: User,
    *,
    world_id: str | None,
    campaign_id: str | None = None,
    character_id: str | None = None,
) -> list[dict[str, Any]]:
    """Visible entity counts per world entity type."""
    if not world_id:
        return []
    if not user.is_admin and not permissions.can_access_world(conn, user.id, world_id):
        raise forbidden()
    clause = records.access_clause(
        conn, ENTITIES, user, world_id, campaign_id=campaign_id, character_id=character_id
    )
    visibility, params = (f"AND {clause[0]}", clause[1]) if clause else ("", [])
    return query.fetch_all(
        conn,
        f"""
        SELECT t.id, t.name,
               (SELECT COUNT(*) FROM entities r
                WHERE r.entity_type_id = t.id AND r.world_id = t.world_id {visibility}) AS count
        FROM entity_types t
        WHERE t.world_id = ?
        ORDER BY t.name
        """,  # nosec B608
        (*params, world_id),
        operation="entity_types.stats",
    )


# ============================================================================
# FORM SECTIONS
# ============================================================================


def _require_section(conn: sqlite3.Connection, section_id: str) -> dict[str, Any]:
    section = query.fetch_one(
        conn,
        "SELECT * FROM entity_form_sections WHERE id = ?",
        (section_id,),
        operation="entity_types.get_section",
    )
    if section is None:
        raise not_found("Section not found.")
    return section


def _validate_layout(layout: str | None) -> str:
    layout = layout or "ONE_COLUMN"
    if layout not in SECTION_LAYOUTS:
        raise bad_request("Invalid section layout.")
    return layout


def list_sections(conn: sqlite3.Connection, user: User, entity_type_id: str | None) -> list[dict[str, Any]]:
    """Sections in sort order; a managed type without any gets a General section."""
    if not entity_type_id:
        raise bad_request("entity_type_id is required.")
    entity_type = require_entity_type(conn, entity_type_id)
    if not can_access(conn, user, entity_type):
        raise forbidden()
    sections = query.fetch_all(
        conn,
        "SELECT * FROM entity_form_sections WHERE entity_type_id = ? ORDER BY sort_order",
        (entity_type_id,),
        operation="entity_types.list_sections",
    )
    if not sections and can_manage(conn, user, entity_type):
        section_id = create_default_section(conn, entity_type_id)
        sections = [_require_section(conn, section_id)]
    return sections


def create_section(conn: sqlite3.Connection, user: User, data: dict[str, Any]) -> dict[str, Any]:
    entity_type_id = data.get("entity_type_id")
    title = (data.get("title") or "").strip()
    if not entity_type_id or not title:
        raise bad_request("entity_type_id and title are required.")
    entity_type = require_entity_type(conn, entity_type_id)
    if not can_manage(conn, user, entity_type):
        raise forbidden()
    section_id = _create_section(
        conn, entity_type_id, title, _validate_layout(data.get("layout")), data.get("sort_order") or 0
    )
    return _require_section(conn, section_id)


def update_section(
    conn: sqlite3.Connection, user: User, section_id: str, data: dict[str, Any]
) -> dict[str, Any]:
    section = _require_section(conn, section_id)
    if not can_manage(conn, user, require_entity_type(conn, section["entity_type_id"])):
        raise forbidden()
    values = {key: data[key] for key in ("title", "sort_order") if data.get(key) is not None}
    if data.get("layout") is not None:
        values["layout"] = _validate_layout(data["layout"])
    query.update(conn, "entity_form_sections", section_id, values, operation="entity_types.update_section")
    return _require_section(conn, section_id)


def delete_section(conn: sqlite3.Connection, user: User, section_id: str) -> None:
    section = _require_section(conn, section_id)
    if not can_manage(conn, user, require_entity_type(conn, section["entity_type_id"])):
        raise forbidden()
    query.delete(conn, "entity_form_sections", section_id, operation="entity_types.delete_section")


# ============================================================================
# FIELDS
# ============================================================================


def _require_field(conn: sqlite3.Connection, field_id: str) -> dict[str, Any]:
    field = query.fetch_one(
        conn, "SELECT * FROM entity_fields WHERE id = ?", (field_id,), operation="entity_types.get_field"
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
    conn: sqlite3.Connection,
    user: User,
    *,
    entity_type_id: str | None = None,
    world_id: str | None = None,
) -> list[dict[str, Any]]:
    """Fields of one type, or of every type the caller architects."""
    if not entity_type_id:
        if world_id and not user.is_admin and not permissions.is_world_architect(conn, user.id, world_id):
            raise forbidden()
        clauses: list[str] = []
        params: dict[str, Any] = {"user": user.id}
        if world_id:
            clauses.append("t.world_id = :world")
            params["world"] = world_id
        elif not user.is_admin:
            clauses.append(
                "(EXISTS (SELECT 1 FROM worlds w WHERE w.id = t.world_id AND w.primary_architect_id = :user) "
                "OR EXISTS (SELECT 1 FROM world_architects wa WHERE wa.world_id = t.world_id AND wa.user_id = :user))"
            )
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = query.fetch_all(
            conn,
            f"SELECT f.* FROM entity_fields f JOIN entity_types t ON t.id = f.entity_type_id {where} "  # nosec B608
            "ORDER BY f.form_order",
            params,
            operation="entity_types.list_world_fields",
        )
        return _present_fields(conn, rows)

    entity_type = require_entity_type(conn, entity_type_id)
    if not can_access(conn, user, entity_type):
        raise forbidden()
    rows = query.fetch_all(
        conn,
        "SELECT * FROM entity_fields WHERE entity_type_id = ? ORDER BY form_order",
        (entity_type_id,),
        operation="entity_types.list_fields",
    )
    return _present_fields(conn, rows)


def get_field(conn: sqlite3.Connection, user: User, field_id: str) -> dict[str, Any]:
    field = _require_field(conn, field_id)
    if not can_access(conn, user, require_entity_type(conn, field["entity_type_id"])):
        raise forbidden()
    return _present_fields(conn, [field])[0]


def create_field(conn: sqlite3.Connection, user: User, data: dict[str, Any]) -> dict[str, Any]:
    entity_type_id = data.get("entity_type_id")
    if not (entity_type_id and data.get("field_key") and data.get("label") and data.get("field_type")):
        raise bad_request("entity_type_id, field_key, label, and field_type are required.")
    entity_type = require_entity_type(conn, entity_type_id)
    _ensure_can_edit(conn, user, entity_type, "Only admins can edit templates.")
    choice_list_id = resolve_choice_list(
        conn, data["field_type"], data.get("choice_list_id"), entity_type["world_id"], CHOICE_LIST_MESSAGE
    )
    if query.exists(
        conn,
        "SELECT 1 FROM entity_fields WHERE entity_type_id = ? AND field_key = ?",
        (entity_type_id, data["field_key"]),
        operation="entity_types.field_key_exists",
    ):
        raise conflict("Field key already exists.")

    now = query.utc_now()
    field_id = query.insert(
        conn,
        "entity_fields",
        {
            "entity_type_id": entity_type_id,
            "field_key": data["field_key"],
            "label": data["label"],
            "field_type": data["field_type"],
            "description": data.get("description"),
            "required": int(bool(data.get("required"))),
            "list_order": data.get("list_order") or 0,
            "form_order": data.get("form_order") or 0,
            "form_section_id": data.get("form_section_id"),
            "form_column": data.get("form_column") or 1,
            "reference_entity_type_id": data.get("reference_entity_type_id"),
            "reference_location_type_key": data.get("reference_location_type_key"),
            "choice_list_id": choice_list_id,
            "conditions_json": query.dump_json(data.get("conditions")),
            "created_at": now,
            "updated_at": now,
        },
        operation="entity_types.create_field",
    )
    return get_field(conn, user, field_id)


def update_field(
    conn: sqlite3.Connection, user: User, field_id: str, data: dict[str, Any]
) -> dict[str, Any]:
    field = _require_field(conn, field_id)
    entity_type = require_entity_type(conn, field["entity_type_id"])
    if not can_manage(conn, user, entity_type):
        raise forbidden()

    values: dict[str, Any] = {key: data[key] for key in _FIELD_COLUMNS if key in data}
    if "required" in values:
        values["required"] = int(bool(values["required"]))
    if "field_type" in data or "choice_list_id" in data:
        values["choice_list_id"] = resolve_choice_list(
            conn,
            data.get("field_type") or field["field_type"],
            data.get("choice_list_id", field["choice_list_id"]),
            entity_type["world_id"],
            CHOICE_LIST_MESSAGE,
        )
    if "conditions" in data:
        values["conditions_json"] = query.dump_json(data["conditions"])
    query.update(conn, "entity_fields", field_id, values, operation="entity_types.update_field")
    return get_field(conn, user, field_id)


def delete_field(conn: sqlite3.Connection, user: User, field_id: str) -> None:
    field = _require_field(conn, field_id)
    if not can_manage(conn, user, require_entity_type(conn, field["entity_type_id"])):
        raise forbidden()
    query.delete(conn, "entity_fields", field_id, operation="entity_types.delete_field")
