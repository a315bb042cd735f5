"""Shared machinery for typed world records (entities and locations).

Entities and locations have the same shape: a world, a type with dynamic
fields, a field-value table, and READ/WRITE access rows scoped GLOBAL,
CAMPAIGN or CHARACTER. :class:`RecordKind` captures the table layout so the
visibility, value and access rules below are written once.

Visibility:
    - Admins see every record.
    - World architects see every record in the world unless they are acting
      as a character (``character_id`` given).
    - Everyone else needs a READ access row that is GLOBAL, or matches the
      context campaign, or matches the context character.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from typing import Any

from campaign_server.db import audit_repo, query
from campaign_server.db.errors import DatabaseError
from campaign_server.services import permissions
from campaign_server.services.errors import ServiceError, bad_request, forbidden, not_found
from campaign_server.services.filters import (
    ValueTable,
    build_where_clause,
    parse_field_keys,
    parse_filters_param,
)
from campaign_server.services.permissions import User
from campaign_server.services.validation import (
    is_all_null,
    is_empty,
    response_value,
    storage_columns,
    stored_value,
)

logger = logging.getLogger(__name__)

ACCESS_TYPES = ("READ", "WRITE")


@dataclass(frozen=True)
class RecordKind:
    """Table layout of a typed record kind.

    Attributes:
        key: Plural key used for audits, references and permissions.
        table: Record table.
        type_table: Type definition table.
        type_column: Column in ``table`` referencing the type.
        field_table: Field definition table.
        field_parent_column: Column in ``field_table`` referencing the type.
        field_label_column: Label column in ``field_table``.
        value_table: Field value table.
        access_table: Access row table.
        fk_column: Column in value/access tables referencing the record.
        not_found_message: 404 message for a missing record.
    """

    key: str
    table: str
    type_table: str
    type_column: str
    field_table: str
    field_parent_column: str
    field_label_column: str
    value_table: str
    access_table: str
    fk_column: str
    not_found_message: str

    @property
    def values(self) -> ValueTable:
        return ValueTable(self.value_table, self.fk_column, self.field_table)


ENTITIES = RecordKind(
    key="entities",
    table="entities",
    type_table="entity_types",
    type_column="entity_type_id",
    field_table="entity_fields",
    field_parent_column="entity_type_id",
    field_label_column="label",
    value_table="entity_field_values",
    access_table="entity_access",
    fk_column="entity_id",
    not_found_message="Entity not found.",
)

LOCATIONS = RecordKind(
    key="locations",
    table="locations",
    type_table="location_types",
    type_column="location_type_id",
    field_table="location_type_fields",
    field_parent_column="location_type_id",
    field_label_column="field_label",
    value_table="location_field_values",
    access_table="location_access",
    fk_column="location_id",
    not_found_message="Location not found.",
)


# ============================================================================
# ROWS
# ============================================================================


def serialize(row: dict[str, Any]) -> dict[str, Any]:
    """Decode ``*_json`` columns into their plain keys."""
    payload: dict[str, Any] = {}
    for column, value in row.items():
        if column.endswith("_json"):
            payload[column[: -len("_json")]] = query.load_json(value)
        else:
            payload[column] = value
    return payload


def get_row(conn: sqlite3.Connection, kind: RecordKind, record_id: str) -> dict[str, Any] | None:
    return query.fetch_one(
        conn,
        f"SELECT * FROM {kind.table} WHERE id = ?",  # nosec B608
        (record_id,),
        operation=f"{kind.key}.get",
    )


def require_row(conn: sqlite3.Connection, kind: RecordKind, record_id: str) -> dict[str, Any]:
    row = get_row(conn, kind, record_id)
    if row is None:
        raise not_found(kind.not_found_message)
    return row


# ============================================================================
# VISIBILITY
# ============================================================================


def access_clause(
    conn: sqlite3.Connection,
    kind: RecordKind,
    user: User,
    world_id: str,
    *,
    campaign_id: str | None = None,
    character_id: str | None = None,
    alias: str = "r",
) -> tuple[str, list[Any]] | None:
    """Return the READ visibility clause for ``alias``, or ``None`` for no restriction."""
    if user.is_admin:
        return None
    if not character_id and permissions.is_world_architect(conn, user.id, world_id):
        return None

    scopes = ["a.scope_type = 'GLOBAL'"]
    params: list[Any] = []
    if campaign_id:
        scopes.append("(a.scope_type = 'CAMPAIGN' AND a.scope_id = ?)")
        params.append(campaign_id)
    if character_id:
        scopes.append("(a.scope_type = 'CHARACTER' AND a.scope_id = ?)")
        params.append(character_id)
    sql = (
        f"EXISTS (SELECT 1 FROM {kind.access_table} a "
        f"WHERE a.{kind.fk_column} = {alias}.id AND a.access_type = 'READ' "
        f"AND ({' OR '.join(scopes)}))"
    )
    return sql, params


def is_visible(
    conn: sqlite3.Connection,
    kind: RecordKind,
    user: User,
    row: dict[str, Any],
    *,
    campaign_id: str | None = None,
    character_id: str | None = None,
) -> bool:
    clause = access_clause(
        conn, kind, user, row["world_id"], campaign_id=campaign_id, character_id=character_id
    )
    if clause is None:
        return True
    sql, params = clause
    return query.exists(
        conn,
        f"SELECT 1 FROM {kind.table} r WHERE r.id = ? AND {sql}",  # nosec B608
        (row["id"], *params),
        operation=f"{kind.key}.is_visible",
    )


def get_accessible(
    conn: sqlite3.Connection,
    kind: RecordKind,
    user: User,
    record_id: str,
    *,
    campaign_id: str | None = None,
    character_id: str | None = None,
) -> dict[str, Any] | None:
    """Return the record when ``user`` may read it in the given context."""
    row = get_row(conn, kind, record_id)
    if row is None:
        return None
    if not is_visible(conn, kind, user, row, campaign_id=campaign_id, character_id=character_id):
        return None
    return row


def can_write(
    conn: sqlite3.Connection,
    kind: RecordKind,
    user: User,
    row: dict[str, Any],
    *,
    campaign_id: str | None = None,
    character_id: str | None = None,
) -> bool:
    """Admin, world architect, or a WRITE row in a matching scope."""
    if user.is_admin or permissions.is_world_architect(conn, user.id, row["world_id"]):
        return True
    scopes = ["scope_type = 'GLOBAL'"]
    params: list[Any] = [row["id"]]
    if campaign_id:
        scopes.append("(scope_type = 'CAMPAIGN' AND scope_id = ?)")
        params.append(campaign_id)
    if character_id:
        scopes.append("(scope_type = 'CHARACTER' AND scope_id = ?)")
        params.append(character_id)
    return query.exists(
        conn,
        f"SELECT 1 FROM {kind.access_table} "  # nosec B608
        f"WHERE {kind.fk_column} = ? AND access_type = 'WRITE' AND ({' OR '.join(scopes)})",
        tuple(params),
        operation=f"{kind.key}.can_write",
    )


def can_administer(conn: sqlite3.Connection, user: User, world_id: str) -> bool:
    """Access editing, audit viewing and deletes: admin, architect or any GM."""
    return (
        user.is_admin
        or permissions.is_world_architect(conn, user.id, world_id)
        or permissions.is_any_world_gm(conn, user.id, world_id)
    )


# ============================================================================
# FIELDS AND VALUES
# ============================================================================


def list_fields(conn: sqlite3.Connection, kind: RecordKind, type_id: str) -> list[dict[str, Any]]:
    return query.fetch_all(
        conn,
        f"""
        SELECT id, field_key, {kind.field_label_column} AS label, field_type, choice_list_id
        FROM {kind.field_table}
        WHERE {kind.field_parent_column} = ?
        ORDER BY list_order, field_key
        """,  # nosec B608
        (type_id,),
        operation=f"{kind.key}.list_fields",
    )


def fields_by_key(conn: sqlite3.Connection, kind: RecordKind, type_id: str) -> dict[str, dict[str, Any]]:
    return {field["field_key"]: field for field in list_fields(conn, kind, type_id)}


def load_values(
    conn: sqlite3.Connection,
    kind: RecordKind,
    record_ids: list[str],
    field_keys: list[str] | None = None,
) -> dict[str, dict[str, Any]]:
    """Return ``{record_id: {field_key: value}}`` for the given records."""
    if not record_ids:
        return {}
    sql = (
        f"SELECT v.*, f.field_key FROM {kind.value_table} v "  # nosec B608
        f"JOIN {kind.field_table} f ON f.id = v.field_id "
        f"WHERE v.{kind.fk_column} IN ({query.placeholders(record_ids)})"
    )
    params: list[Any] = list(record_ids)
    if field_keys:
        sql += f" AND f.field_key IN ({query.placeholders(field_keys)})"
        params.extend(field_keys)
    result: dict[str, dict[str, Any]] = {record_id: {} for record_id in record_ids}
    for row in query.fetch_all(conn, sql, params, operation=f"{kind.key}.load_values"):
        result[row[kind.fk_column]][row["field_key"]] = response_value(row)
    return result


def write_values(
    conn: sqlite3.Connection,
    kind: RecordKind,
    record_id: str,
    fields: dict[str, dict[str, Any]],
    values: dict[str, Any],
) -> list[dict[str, Any]]:
    """Upsert submitted values and return the list of changed fields.

    A value that normalizes to all-NULL columns deletes the stored row.
    """
    existing = {
        row["field_id"]: row
        for row in query.fetch_all(
            conn,
            f"SELECT * FROM {kind.value_table} WHERE {kind.fk_column} = ?",  # nosec B608
            (record_id,),
            operation=f"{kind.key}.existing_values",
        )
    }
    changes: list[dict[str, Any]] = []
    for key, raw in values.items():
        field_def = fields.get(key)
        if field_def is None:
            continue
        columns = storage_columns(field_def["field_type"], raw)
        previous = existing.get(field_def["id"])
        before = stored_value(previous) if previous else None
        after = stored_value(columns)

        if is_all_null(columns):
            if previous is not None:
                query.delete(conn, kind.value_table, previous["id"], operation=f"{kind.key}.delete_value")
        elif previous is not None:
            query.update(
                conn, kind.value_table, previous["id"], columns, operation=f"{kind.key}.update_value", touch=False
            )
        else:
            query.insert(
                conn,
                kind.value_table,
                {kind.fk_column: record_id, "field_id": field_def["id"], **columns},
                operation=f"{kind.key}.insert_value",
            )

        if before != after:
            changes.append({"field_key": key, "label": field_def["label"], "from": before, "to": after})
    return changes


def check_references(
    conn: sqlite3.Connection,
    user: User,
    world_id: str,
    fields: dict[str, dict[str, Any]],
    values: dict[str, Any],
    *,
    campaign_id: str | None,
    character_id: str | None,
) -> None:
    """Raise 400 when a reference field points at a record the user cannot read.

    Referenced records must also live in ``world_id``.
    """
    for key, raw in values.items():
        field_def = fields.get(key)
        if field_def is None or is_empty(raw):
            continue
        if field_def["field_type"] == "ENTITY_REFERENCE":
            target_kind, message = ENTITIES, "One or more referenced entities are not accessible."
        elif field_def["field_type"] == "LOCATION_REFERENCE":
            target_kind, message = LOCATIONS, "One or more referenced locations are not accessible."
        else:
            continue
        target = get_accessible(
            conn, target_kind, user, str(raw), campaign_id=campaign_id, character_id=character_id
        )
        if target is None or target["world_id"] != world_id:
            raise bad_request(message)


# ============================================================================
# ACCESS ROWS
# ============================================================================


def build_access_entries(
    access: dict[str, Any] | None, context_campaign_id: str | None
) -> list[tuple[str, str, str | None]]:
    """Expand an access payload into ``(access_type, scope_type, scope_id)`` rows.

    ``None`` means "use the default": READ and WRITE for the context campaign,
    or GLOBAL when there is no campaign context.
    """
    if access is None:
        if context_campaign_id:
            return [(access_type, "CAMPAIGN", context_campaign_id) for access_type in ACCESS_TYPES]
        return [(access_type, "GLOBAL", None) for access_type in ACCESS_TYPES]

    entries: list[tuple[str, str, str | None]] = []
    for access_type in ACCESS_TYPES:
        scopes = access.get(access_type.lower()) or {}
        if scopes.get("global"):
            entries.append((access_type, "GLOBAL", None))
        for campaign_id in scopes.get("campaigns") or []:
            entries.append((access_type, "CAMPAIGN", str(campaign_id)))
        for character_id in scopes.get("characters") or []:
            entries.append((access_type, "CHARACTER", str(character_id)))
    return entries


def replace_access(
    conn: sqlite3.Connection,
    kind: RecordKind,
    record_id: str,
    entries: list[tuple[str, str, str | None]],
) -> None:
    query.execute(
        conn,
        f"DELETE FROM {kind.access_table} WHERE {kind.fk_column} = ?",  # nosec B608
        (record_id,),
        operation=f"{kind.key}.clear_access",
    )
    for access_type, scope_type, scope_id in dict.fromkeys(entries):
        query.insert(
            conn,
            kind.access_table,
            {
                kind.fk_column: record_id,
                "access_type": access_type,
                "scope_type": scope_type,
                "scope_id": scope_id,
            },
            operation=f"{kind.key}.insert_access",
        )


def read_access(conn: sqlite3.Connection, kind: RecordKind, record_id: str) -> dict[str, Any]:
    """Return ``{"read": {...}, "write": {...}}`` in the same shape clients submit."""
    rows = query.fetch_all(
        conn,
        f"SELECT access_type, scope_type, scope_id FROM {kind.access_table} "  # nosec B608
        f"WHERE {kind.fk_column} = ? ORDER BY scope_type, scope_id",
        (record_id,),
        operation=f"{kind.key}.read_access",
    )
    result = {
        access_type.lower(): {"global": False, "campaigns": [], "characters": []}
        for access_type in ACCESS_TYPES
    }
    for row in rows:
        bucket = result[row["access_type"].lower()]
        if row["scope_type"] == "GLOBAL":
            bucket["global"] = True
        elif row["scope_type"] == "CAMPAIGN":
            bucket["campaigns"].append(row["scope_id"])
        else:
            bucket["characters"].append(row["scope_id"])
    return result


# ============================================================================
# SHARED OPERATIONS
# ============================================================================


def list_records(
    conn: sqlite3.Connection,
    kind: RecordKind,
    user: User,
    *,
    world_id: str | None,
    type_id: str | None,
    campaign_id: str | None = None,
    character_id: str | None = None,
    filters: str | None = None,
    field_keys: str | None = None,
    extra: dict[str, Any] | None = None,
) -> list[dict[str, Any]]:
    """List visible records ordered by name.

    Args:
        extra: Additional equality filters on record columns.
    """
    group = parse_filters_param(filters)
    keys = parse_field_keys(field_keys)
    if (group is not None or keys) and not type_id:
        raise bad_request(f"{kind.type_column} is required for list filters.")

    if not user.is_admin:
        if not world_id or not permissions.can_access_world(conn, user.id, world_id):
            return []

    clauses: list[str] = []
    params: list[Any] = []
    if world_id:
        clauses.append("r.world_id = ?")
        params.append(world_id)
        visibility = access_clause(
            conn, kind, user, world_id, campaign_id=campaign_id, character_id=character_id
        )
        if visibility is not None:
            clauses.append(visibility[0])
            params.extend(visibility[1])
    if type_id:
        clauses.append(f"r.{kind.type_column} = ?")
        params.append(type_id)
    for column, value in (extra or {}).items():
        if value:
            clauses.append(f"r.{column} = ?")
            params.append(value)
    if group is not None and type_id:
        compiled = build_where_clause(
            group, fields_by_key(conn, kind, type_id), kind.values, alias="r"
        )
        if compiled is not None:
            clauses.append(compiled[0])
            params.extend(compiled[1])

    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    rows = query.fetch_all(
        conn,
        f"SELECT r.* FROM {kind.table} r {where} ORDER BY r.name",  # nosec B608
        params,
        operation=f"{kind.key}.list",
    )
    payload = [serialize(row) for row in rows]
    if keys:
        values = load_values(conn, kind, [row["id"] for row in rows], keys)
        for item in payload:
            item["field_values"] = values.get(item["id"], {})
    return payload


def get_record(
    conn: sqlite3.Connection,
    kind: RecordKind,
    user: User,
    record_id: str,
    *,
    campaign_id: str | None = None,
    character_id: str | None = None,
) -> dict[str, Any]:
    """Return a record with its field values and capability flags."""
    row = require_row(conn, kind, record_id)
    payload = serialize(row)
    payload["field_values"] = load_values(conn, kind, [record_id]).get(record_id, {})
    if not user.is_admin:
        if not permissions.can_access_world(conn, user.id, row["world_id"]):
            raise forbidden()
        if not is_visible(conn, kind, user, row, campaign_id=campaign_id, character_id=character_id):
            raise forbidden()
    allowed = can_administer(conn, user, row["world_id"])
    payload["access_allowed"] = allowed
    payload["audit_allowed"] = allowed
    return payload


def get_access(conn: sqlite3.Connection, kind: RecordKind, user: User, record_id: str) -> dict[str, Any]:
    row = require_row(conn, kind, record_id)
    if not can_administer(conn, user, row["world_id"]):
        raise forbidden()
    return read_access(conn, kind, record_id)


def update_access(
    conn: sqlite3.Connection,
    kind: RecordKind,
    user: User,
    record_id: str,
    access: dict[str, Any],
) -> dict[str, Any]:
    """Replace access rows; audits ``access_update`` when the set changes."""
    row = require_row(conn, kind, record_id)
    if not can_administer(conn, user, row["world_id"]):
        raise forbidden()
    before = read_access(conn, kind, record_id)
    replace_access(conn, kind, record_id, build_access_entries(access, None))
    after = read_access(conn, kind, record_id)
    if before != after:
        audit_repo.record(
            conn, kind.key, record_id, "access_update", user.id, {"from": before, "to": after}
        )
    return after


def get_audit(conn: sqlite3.Connection, kind: RecordKind, user: User, record_id: str) -> list[dict[str, Any]]:
    row = require_row(conn, kind, record_id)
    if not can_administer(conn, user, row["world_id"]):
        raise forbidden()
    return audit_repo.list_entries(conn, entity_key=kind.key, entity_id=record_id)


def delete_record(conn: sqlite3.Connection, kind: RecordKind, user: User, row: dict[str, Any]) -> None:
    """Audit and delete a record; dependent rows go with it via cascades."""
    try:
        audit_repo.record(conn, kind.key, row["id"], "delete", user.id, {"name": row["name"]})
        query.delete(conn, kind.table, row["id"], operation=f"{kind.key}.delete")
    except DatabaseError as exc:
        logger.exception("Failed to delete %s %s", kind.key, row["id"])
        raise ServiceError(500, "Delete failed.") from exc
