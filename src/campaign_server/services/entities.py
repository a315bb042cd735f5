"""Entity service: list, read, create, update and delete world entities."""

from __future__ import annotations

import sqlite3
from typing import Any

from campaign_server.db import audit_repo, query
from campaign_server.services import permissions, records
from campaign_server.services.errors import bad_request, forbidden
from campaign_server.services.permissions import User
from campaign_server.services.records import ENTITIES, LOCATIONS
from campaign_server.services.validation import validate_field_input


def list_entities(
    conn: sqlite3.Connection,
    user: User,
    *,
    world_id: str | None = None,
    entity_type_id: str | None = None,
    campaign_id: str | None = None,
    character_id: str | None = None,
    filters: str | None = None,
    field_keys: str | None = None,
) -> list[dict[str, Any]]:
    return records.list_records(
        conn,
        ENTITIES,
        user,
        world_id=world_id,
        type_id=entity_type_id,
        campaign_id=campaign_id,
        character_id=character_id,
        filters=filters,
        field_keys=field_keys,
    )


def get_entity(
    conn: sqlite3.Connection,
    user: User,
    entity_id: str,
    *,
    campaign_id: str | None = None,
    character_id: str | None = None,
) -> dict[str, Any]:
    return records.get_record(
        conn, ENTITIES, user, entity_id, campaign_id=campaign_id, character_id=character_id
    )


def _check_location(
    conn: sqlite3.Connection,
    user: User,
    world_id: str,
    location_id: str,
    message: str,
    *,
    campaign_id: str | None,
    character_id: str | None,
) -> None:
    location = records.get_row(conn, LOCATIONS, location_id)
    if location is None or location["world_id"] != world_id:
        raise bad_request(message)
    if not user.is_admin and not records.is_visible(
        conn, LOCATIONS, user, location, campaign_id=campaign_id, character_id=character_id
    ):
        raise forbidden("Location is not accessible.")


def create_entity(conn: sqlite3.Connection, user: User, data: dict[str, Any]) -> dict[str, Any]:
    """Create an entity with its field values and access rows.

    ``context_campaign_id``/``context_character_id`` describe the screen the
    entity was created from; they drive reference checks and default access.
    """
    world_id = data.get("world_id")
    entity_type_id = data.get("entity_type_id")
    name = (data.get("name") or "").strip()
    if not world_id or not entity_type_id or not name:
        raise bad_request("world_id, entity_type_id, and name are required.")
    campaign_id = data.get("context_campaign_id")
    character_id = data.get("context_character_id")

    entity_type = query.fetch_one(
        conn,
        "SELECT world_id, is_template FROM entity_types WHERE id = ?",
        (entity_type_id,),
        operation="entities.entity_type",
    )
    if entity_type is None or entity_type["is_template"] or entity_type["world_id"] != world_id:
        raise bad_request("Entity type must belong to the selected world.")

    location_id = data.get("current_location_id")
    if location_id:
        location = records.get_row(conn, LOCATIONS, location_id)
        if location is None or location["world_id"] != world_id:
            raise bad_request("Location must belong to the selected world.")
    if not user.is_admin and not permissions.can_create_records_in_world(conn, user.id, world_id):
        raise forbidden()
    if location_id:
        _check_location(
            conn,
            user,
            world_id,
            location_id,
            "Location must belong to the selected world.",
            campaign_id=campaign_id,
            character_id=character_id,
        )

    values = data.get("field_values") or {}
    fields = records.fields_by_key(conn, ENTITIES, entity_type_id)
    records.check_references(
        conn, user, world_id, fields, values, campaign_id=campaign_id, character_id=character_id
    )
    validate_field_input(conn, fields, values)

    now = query.utc_now()
    entity_id = query.insert(
        conn,
        "entities",
        {
            "world_id": world_id,
            "entity_type_id": entity_type_id,
            "name": name,
            "description": data.get("description"),
            "current_location_id": location_id,
            "created_by_id": user.id,
            "created_at": now,
            "updated_at": now,
        },
        operation="entities.create",
    )
    records.write_values(conn, ENTITIES, entity_id, fields, values)
    access = data.get("access")
    records.replace_access(
        conn, ENTITIES, entity_id, records.build_access_entries(access, campaign_id)
    )
    audit_repo.record(
        conn,
        ENTITIES.key,
        entity_id,
        "create",
        user.id,
        {
            "name": name,
            "description": data.get("description"),
            "world_id": world_id,
            "entity_type_id": entity_type_id,
            "current_location_id": location_id,
            "access": access,
        },
    )
    return records.serialize(records.require_row(conn, ENTITIES, entity_id))


def update_entity(
    conn: sqlite3.Connection,
    user: User,
    entity_id: str,
    data: dict[str, Any],
    *,
    campaign_id: str | None = None,
    character_id: str | None = None,
) -> dict[str, Any]:
    """Update columns and field values; audits the list of changes."""
    entity = records.require_row(conn, ENTITIES, entity_id)
    if not records.can_write(
        conn, ENTITIES, user, entity, campaign_id=campaign_id, character_id=character_id
    ):
        raise forbidden()

    values = data.get("field_values") or {}
    fields = records.fields_by_key(conn, ENTITIES, entity["entity_type_id"])
    records.check_references(
        conn,
        user,
        entity["world_id"],
        fields,
        values,
        campaign_id=campaign_id,
        character_id=character_id,
    )
    validate_field_input(conn, fields, values)

    changes: list[dict[str, Any]] = []
    columns: dict[str, Any] = {}
    for key, label in (("name", "Name"), ("description", "Description")):
        if key in data and data[key] != entity[key]:
            changes.append({"field_key": key, "label": label, "from": entity[key], "to": data[key]})
            columns[key] = data[key]
    if "current_location_id" in data and data["current_location_id"] != entity["current_location_id"]:
        if data["current_location_id"]:
            _check_location(
                conn,
                user,
                entity["world_id"],
                data["current_location_id"],
                "Location must belong to the entity world.",
                campaign_id=campaign_id,
                character_id=character_id,
            )
        changes.append(
            {
                "field_key": "current_location_id",
                "label": "Location",
                "from": entity["current_location_id"],
                "to": data["current_location_id"],
            }
        )
        columns["current_location_id"] = data["current_location_id"]

    query.update(conn, "entities", entity_id, columns, operation="entities.update")
    changes.extend(records.write_values(conn, ENTITIES, entity_id, fields, values))
    if changes:
        audit_repo.record(conn, ENTITIES.key, entity_id, "update", user.id, {"changes": changes})
    return records.serialize(records.require_row(conn, ENTITIES, entity_id))


def delete_entity(conn: sqlite3.Connection, user: User, entity_id: str) -> None:
    entity = records.require_row(conn, ENTITIES, entity_id)
    if not records.can_administer(conn, user, entity["world_id"]):
        raise forbidden()
    records.delete_record(conn, ENTITIES, user, entity)
