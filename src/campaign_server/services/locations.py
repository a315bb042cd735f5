"""Location service: hierarchical world locations with typed fields."""

from __future__ import annotations

import sqlite3
from typing import Any

from campaign_server.db import audit_repo, query
from campaign_server.services import permissions, records
from campaign_server.services.errors import bad_request, conflict, forbidden
from campaign_server.services.location_types import allowed_parent_type_ids
from campaign_server.services.permissions import User
from campaign_server.services.records import LOCATIONS
from campaign_server.services.validation import validate_field_input

LOCATION_STATUSES = ("ACTIVE", "INACTIVE")


def list_locations(
    conn: sqlite3.Connection,
    user: User,
    *,
    world_id: str | None = None,
    location_type_id: str | None = None,
    parent_location_id: str | None = None,
    campaign_id: str | None = None,
    character_id: str | None = None,
    filters: str | None = None,
    field_keys: str | None = None,
) -> list[dict[str, Any]]:
    return records.list_records(
        conn,
        LOCATIONS,
        user,
        world_id=world_id,
        type_id=location_type_id,
        campaign_id=campaign_id,
        character_id=character_id,
        filters=filters,
        field_keys=field_keys,
        extra={"parent_location_id": parent_location_id},
    )


def get_location(
    conn: sqlite3.Connection,
    user: User,
    location_id: str,
    *,
    campaign_id: str | None = None,
    character_id: str | None = None,
) -> dict[str, Any]:
    return records.get_record(
        conn, LOCATIONS, user, location_id, campaign_id=campaign_id, character_id=character_id
    )


def has_cycle(conn: sqlite3.Connection, location_id: str, parent_id: str | None) -> bool:
    """True when walking up from ``parent_id`` reaches ``location_id`` or loops."""
    seen: set[str] = set()
    current = parent_id
    while current:
        if current == location_id or current in seen:
            return True
        seen.add(current)
        current = query.fetch_value(
            conn,
            "SELECT parent_location_id FROM locations WHERE id = ?",
            (current,),
            operation="locations.parent_of",
        )
    return False


def _check_parent_rule(
    conn: sqlite3.Connection, location_type_id: str, world_id: str, parent: dict[str, Any]
) -> None:
    if parent["location_type_id"] not in allowed_parent_type_ids(conn, location_type_id, world_id):
        raise bad_request("Location type rule does not allow this parent.")


def _validate_status(status: str | None) -> str:
    status = status or "ACTIVE"
    if status not in LOCATION_STATUSES:
        raise bad_request("Invalid location status.")
    return status


def create_location(conn: sqlite3.Connection, user: User, data: dict[str, Any]) -> dict[str, Any]:
    world_id = data.get("world_id")
    location_type_id = data.get("location_type_id")
    name = (data.get("name") or "").strip()
    if not world_id or not location_type_id or not name:
        raise bad_request("world_id, location_type_id, and name are required.")
    campaign_id = data.get("context_campaign_id")
    character_id = data.get("context_character_id")

    type_world = query.fetch_value(
        conn,
        "SELECT world_id FROM location_types WHERE id = ?",
        (location_type_id,),
        operation="locations.type_world",
    )
    if type_world != world_id:
        raise bad_request("Location type must belong to the selected world.")

    parent_id = data.get("parent_location_id")
    if parent_id:
        parent = records.get_row(conn, LOCATIONS, parent_id)
        if parent is None or parent["world_id"] != world_id:
            raise bad_request("Parent location must belong to the selected world.")
        _check_parent_rule(conn, location_type_id, world_id, parent)
    if not user.is_admin and not permissions.can_create_records_in_world(conn, user.id, world_id):
        raise forbidden()

    values = data.get("field_values") or {}
    fields = records.fields_by_key(conn, LOCATIONS, location_type_id)
    records.check_references(
        conn, user, world_id, fields, values, campaign_id=campaign_id, character_id=character_id
    )
    validate_field_input(conn, fields, values)

    now = query.utc_now()
    location_id = query.insert(
        conn,
        "locations",
        {
            "world_id": world_id,
            "location_type_id": location_type_id,
            "parent_location_id": parent_id,
            "name": name,
            "description": data.get("description"),
            "status": _validate_status(data.get("status")),
            "metadata_json": query.dump_json(data.get("metadata")),
            "created_by_id": user.id,
            "created_at": now,
            "updated_at": now,
        },
        operation="locations.create",
    )
    records.write_values(conn, LOCATIONS, location_id, fields, values)
    access = data.get("access")
    records.replace_access(
        conn, LOCATIONS, location_id, records.build_access_entries(access, campaign_id)
    )
    audit_repo.record(
        conn,
        LOCATIONS.key,
        location_id,
        "create",
        user.id,
        {
            "name": name,
            "world_id": world_id,
            "location_type_id": location_type_id,
            "parent_location_id": parent_id,
            "access": access,
        },
    )
    return records.serialize(records.require_row(conn, LOCATIONS, location_id))


def update_location(
    conn: sqlite3.Connection,
    user: User,
    location_id: str,
    data: dict[str, Any],
    *,
    campaign_id: str | None = None,
    character_id: str | None = None,
) -> dict[str, Any]:
    location = records.require_row(conn, LOCATIONS, location_id)
    if not records.can_write(
        conn, LOCATIONS, user, location, campaign_id=campaign_id, character_id=character_id
    ):
        raise forbidden()

    changes: list[dict[str, Any]] = []
    columns: dict[str, Any] = {}
    for key, label in (("name", "Name"), ("description", "Description"), ("status", "Status")):
        if key in data and data[key] != location[key]:
            if key == "status":
                _validate_status(data[key])
            changes.append({"field_key": key, "label": label, "from": location[key], "to": data[key]})
            columns[key] = data[key]
    if "metadata" in data:
        columns["metadata_json"] = query.dump_json(data["metadata"])

    if "parent_location_id" in data and data["parent_location_id"] != location["parent_location_id"]:
        parent_id = data["parent_location_id"]
        if parent_id == location_id:
            raise bad_request("Location cannot be its own parent.")
        if parent_id:
            parent = records.get_row(conn, LOCATIONS, parent_id)
            if parent is None or parent["world_id"] != location["world_id"]:
                raise bad_request("Parent location must belong to the same world.")
            _check_parent_rule(conn, location["location_type_id"], location["world_id"], parent)
            if has_cycle(conn, location_id, parent_id):
                raise bad_request("Location parent would create a cycle.")
        changes.append(
            {
                "field_key": "parent_location_id",
                "label": "Parent",
                "from": location["parent_location_id"],
                "to": parent_id,
            }
        )
        columns["parent_location_id"] = parent_id

    values = data.get("field_values") or {}
    fields = records.fields_by_key(conn, LOCATIONS, location["location_type_id"])
    records.check_references(
        conn,
        user,
        location["world_id"],
        fields,
        values,
        campaign_id=campaign_id,
        character_id=character_id,
    )
    validate_field_input(conn, fields, values)

    query.update(conn, "locations", location_id, columns, operation="locations.update")
    changes.extend(records.write_values(conn, LOCATIONS, location_id, fields, values))
    if changes:
        audit_repo.record(conn, LOCATIONS.key, location_id, "update", user.id, {"changes": changes})
    return records.serialize(records.require_row(conn, LOCATIONS, location_id))


def delete_location(conn: sqlite3.Connection, user: User, location_id: str) -> None:
    location = records.require_row(conn, LOCATIONS, location_id)
    if not records.can_administer(conn, user, location["world_id"]):
        raise forbidden()
    if query.exists(
        conn,
        "SELECT 1 FROM locations WHERE parent_location_id = ?",
        (location_id,),
        operation="locations.has_children",
    ):
        raise conflict("Location has child locations.")
    if query.exists(
        conn,
        "SELECT 1 FROM entities WHERE current_location_id = ?",
        (location_id,),
        operation="locations.has_entities",
    ):
        raise conflict("Location has entities assigned.")
    records.delete_record(conn, LOCATIONS, user, location)
