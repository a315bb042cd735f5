"""Seed data loader.

The seed file is a YAML document bundled with the package (see
``campaign_server/data/seed.yaml``). :func:`load_seed` parses and shape-checks
it; :func:`apply_seed` writes it into an open connection.

Seeding is idempotent. Rows are matched on their natural key (``key``,
``list_key``+``value``, pack ``name``...) and existing rows are left as they
are so edits made through the admin API survive a re-run of ``init-db``.

:func:`load_seed` raises :exc:`FileNotFoundError` when the file is missing and
:exc:`ValueError` when a top-level section has the wrong shape.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Any

import yaml

from campaign_server.db import query

_LIST_SECTIONS = (
    "system_properties",
    "user_preference_defaults",
    "system_controls",
    "system_roles",
    "views",
    "related_lists",
    "packs",
)
_MAPPING_SECTIONS = ("system_choices", "dictionary")


def load_seed(path: Path | str | None = None) -> dict[str, Any]:
    """Load and validate the seed document.

    Args:
        path: Seed file location. Defaults to ``config.seed.path``.

    Returns:
        The parsed mapping with every known section present.
    """
    if path is None:
        from campaign_server.config import config

        path = config.seed.path
    seed_path = Path(path)

    with seed_path.open(encoding="utf-8") as fh:
        raw = yaml.safe_load(fh)

    if not isinstance(raw, dict):
        raise ValueError(f"{seed_path.name} must be a YAML mapping at the top level.")

    for section in _LIST_SECTIONS:
        value = raw.setdefault(section, [])
        if not isinstance(value, list):
            raise ValueError(f"{seed_path.name}: '{section}' must be a list.")
    for section in _MAPPING_SECTIONS:
        value = raw.setdefault(section, {})
        if not isinstance(value, dict):
            raise ValueError(f"{seed_path.name}: '{section}' must be a mapping.")

    return raw


def apply_seed(conn: sqlite3.Connection, data: dict[str, Any]) -> None:
    """Write seed ``data`` into ``conn`` without overwriting existing rows."""
    now = query.utc_now()

    for prop in data.get("system_properties", []):
        _insert_if_missing(
            conn,
            "system_properties",
            "key = ?",
            (prop["key"],),
            {
                "key": prop["key"],
                "value": str(prop["value"]),
                "value_type": prop.get("value_type", "STRING"),
                "description": prop.get("description"),
                "created_at": now,
                "updated_at": now,
            },
        )

    for pref in data.get("user_preference_defaults", []):
        _insert_if_missing(
            conn,
            "system_user_preference_defaults",
            "key = ?",
            (pref["key"],),
            {
                "key": pref["key"],
                "value": str(pref["value"]),
                "value_type": pref.get("value_type", "STRING"),
                "description": pref.get("description"),
                "created_at": now,
                "updated_at": now,
            },
        )

    for list_key, options in data.get("system_choices", {}).items():
        for index, option in enumerate(options):
            _insert_if_missing(
                conn,
                "system_choices",
                "list_key = ? AND value = ?",
                (list_key, option["value"]),
                {
                    "list_key": list_key,
                    "value": option["value"],
                    "label": option["label"],
                    "sort_order": option.get("sort_order", index),
                    "is_active": 1,
                    "created_at": now,
                    "updated_at": now,
                },
            )

    control_ids: dict[str, str] = {}
    for control in data.get("system_controls", []):
        control_ids[control["key"]] = _insert_if_missing(
            conn,
            "system_controls",
            "key = ?",
            (control["key"],),
            {
                "key": control["key"],
                "description": control.get("description"),
                "created_at": now,
                "updated_at": now,
            },
        )

    for role in data.get("system_roles", []):
        role_id = _insert_if_missing(
            conn,
            "system_roles",
            "key = ?",
            (role["key"],),
            {
                "key": role["key"],
                "name": role["name"],
                "description": role.get("description"),
                "created_at": now,
                "updated_at": now,
            },
        )
        for control_key in role.get("controls", []):
            if control_key not in control_ids:
                raise ValueError(f"seed: role '{role['key']}' names unknown control '{control_key}'.")
            query.execute(
                conn,
                "INSERT OR IGNORE INTO system_role_controls (role_id, control_id) VALUES (?, ?)",
                (role_id, control_ids[control_key]),
                operation="seed.role_controls",
            )

    for entity_key, fields in data.get("dictionary", {}).items():
        for field in fields:
            _insert_if_missing(
                conn,
                "system_dictionary",
                "entity_key = ? AND field_key = ?",
                (entity_key, field["field_key"]),
                {
                    "entity_key": entity_key,
                    "field_key": field["field_key"],
                    "label": field["label"],
                    "field_type": field["field_type"],
                    "reference_entity_key": field.get("reference_entity_key"),
                    "is_label": int(bool(field.get("is_label", False))),
                },
            )

    for view in data.get("views", []):
        _seed_view(conn, view, now)

    for related_list in data.get("related_lists", []):
        _seed_related_list(conn, related_list, now)

    for pack in data.get("packs", []):
        _seed_pack(conn, pack, now)


def _insert_if_missing(
    conn: sqlite3.Connection,
    table: str,
    where: str,
    params: tuple[Any, ...],
    values: dict[str, Any],
) -> str:
    """Return the id of the row matching ``where``, inserting ``values`` if absent."""
    existing = query.fetch_value(
        conn,
        f"SELECT id FROM {table} WHERE {where}",  # nosec B608
        params,
        operation=f"seed.{table}",
    )
    if existing is not None:
        return existing
    return query.insert(conn, table, values, operation=f"seed.{table}")


def _seed_view(conn: sqlite3.Connection, view: dict[str, Any], now: str) -> None:
    existing = query.fetch_value(
        conn, "SELECT id FROM system_views WHERE key = ?", (view["key"],), operation="seed.views"
    )
    if existing is not None:
        return
    view_id = query.insert(
        conn,
        "system_views",
        {
            "key": view["key"],
            "title": view["title"],
            "entity_key": view["entity_key"],
            "view_type": view.get("view_type", "LIST"),
            "endpoint": view["endpoint"],
            "description": view.get("description"),
            "admin_only": int(bool(view.get("admin_only", False))),
            "created_at": now,
            "updated_at": now,
        },
        operation="seed.views",
    )
    for index, field in enumerate(view.get("fields", [])):
        query.insert(
            conn,
            "system_view_fields",
            {
                "view_id": view_id,
                "field_key": field["field_key"],
                "label": field["label"],
                "field_type": field["field_type"],
                "list_order": field.get("list_order", index),
                "form_order": field.get("form_order", index),
                "list_visible": int(field.get("list_visible", True)),
                "form_visible": int(field.get("form_visible", True)),
                "required": int(field.get("required", False)),
                "read_only": int(field.get("read_only", False)),
                "placeholder": field.get("placeholder"),
                "options_list_key": field.get("options_list_key"),
                "reference_entity_key": field.get("reference_entity_key"),
                "reference_scope": field.get("reference_scope"),
                "allow_multiple": int(field.get("allow_multiple", False)),
                "width": field.get("width"),
            },
            operation="seed.view_fields",
        )


def _seed_related_list(conn: sqlite3.Connection, related_list: dict[str, Any], now: str) -> None:
    existing = query.fetch_value(
        conn,
        "SELECT id FROM system_related_lists WHERE key = ?",
        (related_list["key"],),
        operation="seed.related_lists",
    )
    if existing is not None:
        return
    list_id = query.insert(
        conn,
        "system_related_lists",
        {
            "key": related_list["key"],
            "title": related_list["title"],
            "parent_entity_key": related_list["parent_entity_key"],
            "related_entity_key": related_list["related_entity_key"],
            "join_entity_key": related_list["join_entity_key"],
            "parent_field_key": related_list["parent_field_key"],
            "related_field_key": related_list["related_field_key"],
            "list_order": related_list.get("list_order", 0),
            "admin_only": int(bool(related_list.get("admin_only", False))),
            "created_at": now,
            "updated_at": now,
        },
        operation="seed.related_lists",
    )
    for index, field in enumerate(related_list.get("fields", []), start=1):
        query.insert(
            conn,
            "system_related_list_fields",
            {
                "related_list_id": list_id,
                "field_key": field["field_key"],
                "label": field["label"],
                "source": field.get("source", "RELATED"),
                "list_order": field.get("list_order", index),
                "width": field.get("width"),
            },
            operation="seed.related_list_fields",
        )


def _seed_pack(conn: sqlite3.Connection, pack: dict[str, Any], now: str) -> None:
    existing = query.fetch_value(
        conn, "SELECT id FROM packs WHERE name = ?", (pack["name"],), operation="seed.packs"
    )
    if existing is not None:
        return
    stamps = {"created_at": now, "updated_at": now}
    pack_id = query.insert(
        conn,
        "packs",
        {
            "name": pack["name"],
            "description": pack.get("description"),
            "posture": pack.get("posture", "opinionated"),
            "is_active": 1,
            **stamps,
        },
        operation="seed.packs",
    )

    choice_list_ids: dict[str, str] = {}
    for choice_list in pack.get("choice_lists", []):
        list_id = query.insert(
            conn,
            "choice_lists",
            {"name": choice_list["name"], "scope": "PACK", "pack_id": pack_id, **stamps},
            operation="seed.choice_lists",
        )
        choice_list_ids[choice_list["name"]] = list_id
        for index, option in enumerate(choice_list.get("options", [])):
            query.insert(
                conn,
                "choice_options",
                {
                    "choice_list_id": list_id,
                    "value": option["value"],
                    "label": option["label"],
                    "sort_order": index,
                    **stamps,
                },
                operation="seed.choice_options",
            )

    for kind in ("entity", "location"):
        template_ids: dict[str, str] = {}
        for template in pack.get(f"{kind}_types", []):
            template_id = query.insert(
                conn,
                f"{kind}_type_templates",
                {
                    "pack_id": pack_id,
                    "name": template["name"],
                    "description": template.get("description"),
                    "category": template.get("category"),
                    "is_core": int(bool(template.get("is_core", False))),
                    **stamps,
                },
                operation=f"seed.{kind}_type_templates",
            )
            template_ids[template["name"]] = template_id
            for field in template.get("fields", []):
                choice_list = field.get("choice_list")
                if choice_list is not None and choice_list not in choice_list_ids:
                    raise ValueError(f"seed: unknown choice list '{choice_list}'.")
                query.insert(
                    conn,
                    f"{kind}_type_template_fields",
                    {
                        "template_id": template_id,
                        "field_key": field["field_key"],
                        "field_label": field["field_label"],
                        "field_type": field["field_type"],
                        "required": int(bool(field.get("required", False))),
                        "default_enabled": int(bool(field.get("default_enabled", True))),
                        "choice_list_id": choice_list_ids.get(choice_list) if choice_list else None,
                        **stamps,
                    },
                    operation=f"seed.{kind}_type_template_fields",
                )
        if kind == "location":
            for rule in pack.get("location_rules", []):
                query.insert(
                    conn,
                    "location_type_rule_templates",
                    {
                        "pack_id": pack_id,
                        "parent_template_id": template_ids[rule["parent"]],
                        "child_template_id": template_ids[rule["child"]],
                        "created_at": now,
                    },
                    operation="seed.location_type_rule_templates",
                )

    for rel in pack.get("relationship_types", []):
        template_id = query.insert(
            conn,
            "relationship_type_templates",
            {
                "pack_id": pack_id,
                "name": rel["name"],
                "description": rel.get("description"),
                "is_peerable": int(bool(rel.get("is_peerable", False))),
                "from_label": rel["from_label"],
                "to_label": rel["to_label"],
                "past_from_label": rel.get("past_from_label"),
                "past_to_label": rel.get("past_to_label"),
                **stamps,
            },
            operation="seed.relationship_type_templates",
        )
        for role in rel.get("roles", []):
            query.insert(
                conn,
                "relationship_type_template_roles",
                {
                    "template_id": template_id,
                    "from_role": role["from_role"],
                    "to_role": role["to_role"],
                    "created_at": now,
                },
                operation="seed.relationship_type_template_roles",
            )
