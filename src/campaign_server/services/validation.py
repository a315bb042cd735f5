"""Dynamic field value validation and storage mapping.

Entity and location types declare typed fields. Submitted values arrive as
``{field_key: value}`` and are stored in one of the typed ``value_*`` columns
of the record's field-value table.
"""

from __future__ import annotations

import sqlite3
from typing import Any

from campaign_server.db import query
from campaign_server.services.errors import bad_request
from campaign_server.services.filters import finite_number

FIELD_TYPES = frozenset(
    {"TEXT", "NUMBER", "BOOLEAN", "CHOICE", "ENTITY_REFERENCE", "LOCATION_REFERENCE"}
)
STRING_TYPES = frozenset({"TEXT", "CHOICE", "ENTITY_REFERENCE", "LOCATION_REFERENCE"})
VALUE_COLUMNS = ("value_string", "value_text", "value_boolean", "value_number", "value_json")


def is_empty(value: Any) -> bool:
    return value is None or value == ""


def active_choice_values(conn: sqlite3.Connection, choice_list_id: str) -> set[str]:
    rows = query.fetch_all(
        conn,
        "SELECT value FROM choice_options WHERE choice_list_id = ? AND is_active = 1",
        (choice_list_id,),
        operation="validation.choice_values",
    )
    return {row["value"] for row in rows}


def resolve_choice_list(
    conn: sqlite3.Connection,
    field_type: str,
    choice_list_id: str | None,
    world_id: str | None,
    message: str,
) -> str | None:
    """Return the choice list to store for a field definition.

    Non-CHOICE fields never keep a list. CHOICE fields need a WORLD-scoped
    list belonging to ``world_id``; ``message`` is the 400 detail otherwise.
    """
    if field_type not in FIELD_TYPES:
        raise bad_request("Invalid field type.")
    if field_type != "CHOICE":
        return None
    if not choice_list_id:
        raise bad_request("choice_list_id is required for choice fields.")
    choice_list = query.fetch_one(
        conn,
        "SELECT scope, world_id FROM choice_lists WHERE id = ?",
        (choice_list_id,),
        operation="validation.choice_list",
    )
    if choice_list is None or choice_list["scope"] != "WORLD" or choice_list["world_id"] != world_id:
        raise bad_request(message)
    return choice_list_id


def choice_lists_with_options(
    conn: sqlite3.Connection, list_ids: list[str]
) -> dict[str, dict[str, Any]]:
    """Return ``{list_id: {id, name, options}}`` with options in sort order."""
    if not list_ids:
        return {}
    lists = query.fetch_all(
        conn,
        f"SELECT id, name FROM choice_lists WHERE id IN ({query.placeholders(list_ids)})",  # nosec B608
        list_ids,
        operation="validation.choice_lists",
    )
    result = {row["id"]: {**row, "options": []} for row in lists}
    options = query.fetch_all(
        conn,
        f"""
        SELECT id, choice_list_id, value, label, sort_order, is_active FROM choice_options
        WHERE choice_list_id IN ({query.placeholders(list_ids)})
        ORDER BY sort_order, label
        """,  # nosec B608
        list_ids,
        operation="validation.choice_options",
    )
    for option in options:
        option["is_active"] = bool(option["is_active"])
        result[option["choice_list_id"]]["options"].append(option)
    return result


def validate_field_input(
    conn: sqlite3.Connection,
    fields_by_key: dict[str, dict[str, Any]],
    values: dict[str, Any],
) -> None:
    """Reject unknown choice values and non-numeric NUMBER values.

    Unknown field keys and empty values are ignored. Raises 400 listing the
    offending field keys, choices first.
    """
    invalid_choices: list[str] = []
    invalid_numbers: list[str] = []
    choice_cache: dict[str, set[str]] = {}

    for key, raw in values.items():
        field_def = fields_by_key.get(key)
        if field_def is None or is_empty(raw):
            continue
        field_type = field_def["field_type"]
        if field_type == "CHOICE":
            list_id = field_def.get("choice_list_id")
            if not list_id:
                invalid_choices.append(key)
                continue
            if list_id not in choice_cache:
                choice_cache[list_id] = active_choice_values(conn, list_id)
            if str(raw) not in choice_cache[list_id]:
                invalid_choices.append(key)
        elif field_type == "NUMBER":
            if isinstance(raw, bool) or finite_number(raw) is None:
                invalid_numbers.append(key)

    if invalid_choices:
        raise bad_request(f"Invalid choice values for: {', '.join(invalid_choices)}")
    if invalid_numbers:
        raise bad_request(f"Invalid number values for: {', '.join(invalid_numbers)}")


def normalize_field_value(field_type: str, raw: Any) -> str | float | bool | None:
    """Coerce ``raw`` to the Python value stored for ``field_type``."""
    if field_type in STRING_TYPES:
        return None if is_empty(raw) else str(raw)
    if field_type == "NUMBER":
        return None if is_empty(raw) else finite_number(raw)
    if field_type == "BOOLEAN":
        if isinstance(raw, str):
            return raw.lower() in ("true", "1", "yes", "on")
        return bool(raw)
    return str(raw) if not is_empty(raw) else None


def storage_columns(field_type: str, raw: Any) -> dict[str, Any]:
    """Return the ``value_*`` column mapping for a submitted value."""
    columns: dict[str, Any] = dict.fromkeys(VALUE_COLUMNS)
    value = normalize_field_value(field_type, raw)
    if field_type == "BOOLEAN":
        columns["value_boolean"] = int(bool(value))
    elif field_type == "NUMBER":
        columns["value_number"] = value
    else:
        columns["value_string"] = value
    return columns


def stored_value(row: dict[str, Any]) -> Any:
    """Return the display value of a stored row (number first).

    Used for change tracking, where a number and its string form must compare
    equal to the submitted value.
    """
    if row.get("value_number") is not None:
        return row["value_number"]
    if row.get("value_string") is not None:
        return row["value_string"]
    if row.get("value_text") is not None:
        return row["value_text"]
    if row.get("value_boolean") is not None:
        return bool(row["value_boolean"])
    if row.get("value_json") is not None:
        return row["value_json"]
    return None


def response_value(row: dict[str, Any]) -> Any:
    """Return the API value of a stored row (string first)."""
    if row.get("value_string") is not None:
        return row["value_string"]
    if row.get("value_text") is not None:
        return row["value_text"]
    if row.get("value_boolean") is not None:
        return bool(row["value_boolean"])
    if row.get("value_number") is not None:
        return row["value_number"]
    if row.get("value_json") is not None:
        return query.load_json(row["value_json"])
    return None


def is_all_null(columns: dict[str, Any]) -> bool:
    return all(columns.get(column) is None for column in VALUE_COLUMNS)
