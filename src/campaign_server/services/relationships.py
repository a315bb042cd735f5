"""Relationship types, their entity-type pairing rules, and relationships.

A relationship links two entities in the same world under a relationship
type. Peerable types ("Ally of") store both directions as two rows sharing a
``peer_group_id``; visibility changes, expiry and deletes act on the group.
"""

from __future__ import annotations

import json
import sqlite3
from typing import Any

from campaign_server.db import query
from campaign_server.services import permissions, records
from campaign_server.services.errors import bad_request, conflict, forbidden, not_found
from campaign_server.services.permissions import User
from campaign_server.services.records import ENTITIES

VISIBILITY_SCOPES = ("GLOBAL", "CAMPAIGN", "CHARACTER")
_TYPE_COLUMNS = ("name", "description", "from_label", "to_label", "past_from_label", "past_to_label")
_STATUS_FILTERS = {"active": "ACTIVE", "expired": "EXPIRED", "all": None}
_UNSET = object()


def can_manage(conn: sqlite3.Connection, user: User, world_id: str) -> bool:
    return records.can_administer(conn, user, world_id)


def _ensure_can_manage(conn: sqlite3.Connection, user: User, world_id: str) -> None:
    if not can_manage(conn, user, world_id):
        raise forbidden()


def normalize_visibility_scope(value: Any) -> str | None:
    if isinstance(value, str) and value in VISIBILITY_SCOPES:
        return value
    return None


def validate_visibility(
    conn: sqlite3.Connection, world_id: str, scope: str, ref_id: str | None
) -> tuple[str, str | None]:
    """Check that a CAMPAIGN/CHARACTER ref exists in ``world_id``."""
    if scope == "GLOBAL":
        return scope, None
    if not ref_id:
        raise bad_request("visibility_ref_id is required for this visibility scope.")
    table, message = (
        ("campaigns", "Campaign must belong to the same world.")
        if scope == "CAMPAIGN"
        else ("characters", "Character must belong to the same world.")
    )
    ref_world = query.fetch_value(
        conn,
        f"SELECT world_id FROM {table} WHERE id = ?",  # nosec B608
        (ref_id,),
        operation="relationships.visibility_ref",
    )
    if ref_world != world_id:
        raise bad_request(message)
    return scope, ref_id


def parse_metadata(value: Any) -> Any:
    """Accept metadata as JSON text or a decoded value.

    Returns ``_UNSET`` when the value should leave the stored metadata alone.
    """
    if isinstance(value, str):
        if not value.strip():
            return _UNSET
        try:
            return json.loads(value)
        except ValueError as exc:
            raise bad_request("Metadata must be valid JSON.") from exc
    return value


def normalize_id_list(value: Any) -> list[str]:
    """Deduplicated, stripped ids from a single id or a list of ids."""
    if not value:
        return []
    raw = value if isinstance(value, list) else [value]
    ids = [item.strip() for item in raw if isinstance(item, str) and item.strip()]
    return list(dict.fromkeys(ids))


# ============================================================================
# RELATIONSHIP TYPES
# ============================================================================


def require_relationship_type(conn: sqlite3.Connection, relationship_type_id: str) -> dict[str, Any]:
    relationship_type = query.fetch_one(
        conn,
        "SELECT * FROM relationship_types WHERE id = ?",
        (relationship_type_id,),
        operation="relationship_types.get",
    )
    if relationship_type is None:
        raise not_found("Relationship type not found.")
    return relationship_type


def _present_type(row: dict[str, Any]) -> dict[str, Any]:
    payload = records.serialize(row)
    payload["is_peerable"] = bool(payload["is_peerable"])
    return payload


def list_relationship_types(
    conn: sqlite3.Connection, user: User, *, world_id: str | None = None
) -> list[dict[str, Any]]:
    if not user.is_admin:
        if not world_id:
            return []
        if not permissions.can_access_world(conn, user.id, world_id):
            raise forbidden()
    where, params = ("WHERE world_id = ?", (world_id,)) if world_id else ("", ())
    rows = query.fetch_all(
        conn,
        f"SELECT * FROM relationship_types {where} ORDER BY name",  # nosec B608
        params,
        operation="relationship_types.list",
    )
    return [_present_type(row) for row in rows]


def get_relationship_type(conn: sqlite3.Connection, user: User, relationship_type_id: str) -> dict[str, Any]:
    relationship_type = require_relationship_type(conn, relationship_type_id)
    if not user.is_admin and not permissions.can_access_world(
        conn, user.id, relationship_type["world_id"]
    ):
        raise forbidden()
    return _present_type(relationship_type)


def create_relationship_type(conn: sqlite3.Connection, user: User, data: dict[str, Any]) -> dict[str, Any]:
    world_id = data.get("world_id")
    if not world_id or not data.get("name") or not data.get("from_label") or not data.get("to_label"):
        raise bad_request("world_id, name, from_label, and to_label are required.")
    _ensure_can_manage(conn, user, world_id)
    if not query.exists(
        conn, "SELECT 1 FROM worlds WHERE id = ?", (world_id,), operation="relationship_types.world"
    ):
        raise bad_request("World not found.")
    metadata = parse_metadata(data.get("metadata"))

    now = query.utc_now()
    values = {column: data.get(column) for column in _TYPE_COLUMNS}
    relationship_type_id = query.insert(
        conn,
        "relationship_types",
        {
            "world_id": world_id,
            **values,
            "is_peerable": int(bool(data.get("is_peerable"))),
            "metadata_json": None if metadata is _UNSET else query.dump_json(metadata),
            "created_at": now,
            "updated_at": now,
        },
        operation="relationship_types.create",
    )
    return _present_type(require_relationship_type(conn, relationship_type_id))


def update_relationship_type(
    conn: sqlite3.Connection, user: User, relationship_type_id: str, data: dict[str, Any]
) -> dict[str, Any]:
    relationship_type = require_relationship_type(conn, relationship_type_id)
    _ensure_can_manage(conn, user, relationship_type["world_id"])
    columns = {column: data[column] for column in _TYPE_COLUMNS if column in data}
    if data.get("is_peerable") is not None:
        columns["is_peerable"] = int(bool(data["is_peerable"]))
    if "metadata" in data:
        metadata = parse_metadata(data["metadata"])
        if metadata is not _UNSET:
            columns["metadata_json"] = query.dump_json(metadata)
    query.update(
        conn, "relationship_types", relationship_type_id, columns, operation="relationship_types.update"
    )
    return _present_type(require_relationship_type(conn, relationship_type_id))


def delete_relationship_type(conn: sqlite3.Connection, user: User, relationship_type_id: str) -> None:
    relationship_type = require_relationship_type(conn, relationship_type_id)
    _ensure_can_manage(conn, user, relationship_type["world_id"])
    if query.exists(
        conn,
        "SELECT 1 FROM relationships WHERE relationship_type_id = ?",
        (relationship_type_id,),
        operation="relationship_types.in_use",
    ):
        raise bad_request("Relationship type is in use.")
    if query.exists(
        conn,
        "SELECT 1 FROM relationship_type_rules WHERE relationship_type_id = ?",
        (relationship_type_id,),
        operation="relationship_types.has_rules",
    ):
        raise bad_request("Relationship type has rules.")
    query.delete(conn, "relationship_types", relationship_type_id, operation="relationship_types.delete")


# ============================================================================
# RULES
# ============================================================================


def _require_rule(conn: sqlite3.Connection, rule_id: str) -> dict[str, Any]:
    rule = query.fetch_one(
        conn,
        """
        SELECT r.*, t.world_id FROM relationship_type_rules r
        JOIN relationship_types t ON t.id = r.relationship_type_id
        WHERE r.id = ?
        """,
        (rule_id,),
        operation="relationship_rules.get",
    )
    if rule is None:
        raise not_found("Relationship type rule not found.")
    return rule


def _present_rule(rule: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in rule.items() if key != "world_id"}


def _check_rule_types(
    conn: sqlite3.Connection, world_id: str, from_ids: list[str], to_ids: list[str]
) -> None:
    type_ids = list(dict.fromkeys(from_ids + to_ids))
    rows = query.fetch_all(
        conn,
        f"SELECT id, world_id, is_template FROM entity_types WHERE id IN ({query.placeholders(type_ids)})",  # nosec B608
        type_ids,
        operation="relationship_rules.entity_types",
    )
    if len(rows) != len(type_ids):
        raise not_found("Entity type not found.")
    if any(row["is_template"] for row in rows):
        raise bad_request("Rules can only target world entity types.")
    if any(row["world_id"] != world_id for row in rows):
        raise bad_request("Entity types must belong to the same world as the relationship type.")


def _existing_pairs(
    conn: sqlite3.Connection, relationship_type_id: str, *, exclude_rule_id: str | None = None
) -> set[tuple[str, str]]:
    rows = query.fetch_all(
        conn,
        "SELECT id, from_entity_type_id, to_entity_type_id FROM relationship_type_rules "
        "WHERE relationship_type_id = ?",
        (relationship_type_id,),
        operation="relationship_rules.pairs",
    )
    return {
        (row["from_entity_type_id"], row["to_entity_type_id"])
        for row in rows
        if row["id"] != exclude_rule_id
    }


def _insert_rule(conn: sqlite3.Connection, relationship_type_id: str, pair: tuple[str, str]) -> str:
    return query.insert(
        conn,
        "relationship_type_rules",
        {
            "relationship_type_id": relationship_type_id,
            "from_entity_type_id": pair[0],
            "to_entity_type_id": pair[1],
            "created_at": query.utc_now(),
        },
        operation="relationship_rules.create",
    )


def list_rules(
    conn: sqlite3.Connection,
    user: User,
    *,
    world_id: str | None = None,
    relationship_type_id: str | None = None,
) -> Any:
    """List rules for one relationship type, or every rule in a world.

    For a single type the response is ``{relationship_type, rules}`` with the
    entity type names resolved.
    """
    if relationship_type_id:
        relationship_type = require_relationship_type(conn, relationship_type_id)
        _ensure_can_manage(conn, user, relationship_type["world_id"])
        rules = query.fetch_all(
            conn,
            """
            SELECT r.*, f.name AS from_entity_type_name, t.name AS to_entity_type_name
            FROM relationship_type_rules r
            JOIN entity_types f ON f.id = r.from_entity_type_id
            JOIN entity_types t ON t.id = r.to_entity_type_id
            WHERE r.relationship_type_id = ?
            ORDER BY r.created_at DESC
            """,
            (relationship_type_id,),
            operation="relationship_rules.list_for_type",
        )
        summary = {
            key: relationship_type[key] for key in ("id", "name", "from_label", "to_label", "world_id")
        }
        return {"relationship_type": summary, "rules": rules}

    if not world_id:
        if not user.is_admin:
            return []
        return query.fetch_all(
            conn,
            "SELECT * FROM relationship_type_rules ORDER BY created_at DESC",
            operation="relationship_rules.list_all",
        )
    _ensure_can_manage(conn, user, world_id)
    return query.fetch_all(
        conn,
        """
        SELECT r.* FROM relationship_type_rules r
        JOIN relationship_types t ON t.id = r.relationship_type_id
        WHERE t.world_id = ?
        ORDER BY r.created_at DESC
        """,
        (world_id,),
        operation="relationship_rules.list_world",
    )


def get_rule(conn: sqlite3.Connection, user: User, rule_id: str) -> dict[str, Any]:
    rule = _require_rule(conn, rule_id)
    _ensure_can_manage(conn, user, rule["world_id"])
    return _present_rule(rule)


def create_rules(conn: sqlite3.Connection, user: User, data: dict[str, Any]) -> dict[str, Any]:
    """Create one rule per (from, to) pair; existing pairs are skipped."""
    relationship_type_id = data.get("relationship_type_id")
    from_ids = normalize_id_list(data.get("from_entity_type_id"))
    to_ids = normalize_id_list(data.get("to_entity_type_id"))
    if not relationship_type_id or not from_ids or not to_ids:
        raise bad_request(
            "relationship_type_id, from_entity_type_id, and to_entity_type_id are required."
        )
    relationship_type = require_relationship_type(conn, relationship_type_id)
    world_id = relationship_type["world_id"]
    _check_rule_types(conn, world_id, from_ids, to_ids)
    _ensure_can_manage(conn, user, world_id)

    taken = _existing_pairs(conn, relationship_type_id)
    pairs = [(f, t) for f in from_ids for t in to_ids if (f, t) not in taken]
    if not pairs:
        raise conflict("Rule already exists for this type pair.")
    created = [_present_rule(_require_rule(conn, _insert_rule(conn, relationship_type_id, pair))) for pair in pairs]
    return {
        "id": created[0]["id"],
        "created_count": len(created),
        "skipped_count": len(from_ids) * len(to_ids) - len(created),
        "created": created,
    }


def update_rule(conn: sqlite3.Connection, user: User, rule_id: str, data: dict[str, Any]) -> dict[str, Any]:
    """Repoint a rule; several pairs update this rule and add the rest."""
    rule = _require_rule(conn, rule_id)
    relationship_type_id = data.get("relationship_type_id") or rule["relationship_type_id"]
    raw_from = data.get("from_entity_type_id")
    raw_to = data.get("to_entity_type_id")
    from_ids = normalize_id_list(raw_from if raw_from is not None else rule["from_entity_type_id"])
    to_ids = normalize_id_list(raw_to if raw_to is not None else rule["to_entity_type_id"])
    if not from_ids or not to_ids:
        raise bad_request("from_entity_type_id and to_entity_type_id are required.")

    relationship_type = require_relationship_type(conn, relationship_type_id)
    world_id = relationship_type["world_id"]
    _check_rule_types(conn, world_id, from_ids, to_ids)
    _ensure_can_manage(conn, user, world_id)

    pairs = list(dict.fromkeys((f, t) for f in from_ids for t in to_ids))
    taken = _existing_pairs(conn, relationship_type_id, exclude_rule_id=rule_id)
    available = [pair for pair in pairs if pair not in taken]
    if not available:
        if len(pairs) > 1:
            raise conflict("All selected pairs already exist. Remove duplicates or delete this rule.")
        raise conflict("Rule already exists for this type pair.")

    primary, *extra = available
    query.update(
        conn,
        "relationship_type_rules",
        rule_id,
        {
            "relationship_type_id": relationship_type_id,
            "from_entity_type_id": primary[0],
            "to_entity_type_id": primary[1],
        },
        operation="relationship_rules.update",
        touch=False,
    )
    if len(pairs) == 1:
        return _present_rule(_require_rule(conn, rule_id))
    for pair in extra:
        _insert_rule(conn, relationship_type_id, pair)
    return {
        "ok": True,
        "updated_id": rule_id,
        "created_count": len(extra),
        "skipped_count": len(pairs) - 1 - len(extra),
    }


def delete_rule(conn: sqlite3.Connection, user: User, rule_id: str) -> None:
    rule = _require_rule(conn, rule_id)
    _ensure_can_manage(conn, user, rule["world_id"])
    query.delete(conn, "relationship_type_rules", rule_id, operation="relationship_rules.delete")


def _rule_exists(conn: sqlite3.Connection, relationship_type_id: str, from_type: str, to_type: str) -> bool:
    return query.exists(
        conn,
        "SELECT 1 FROM relationship_type_rules "
        "WHERE relationship_type_id = ? AND from_entity_type_id = ? AND to_entity_type_id = ?",
        (relationship_type_id, from_type, to_type),
        operation="relationship_rules.exists",
    )


# ============================================================================
# RELATIONSHIPS
# ============================================================================


def require_relationship(conn: sqlite3.Connection, relationship_id: str) -> dict[str, Any]:
    relationship = query.fetch_one(
        conn,
        "SELECT * FROM relationships WHERE id = ?",
        (relationship_id,),
        operation="relationships.get",
    )
    if relationship is None:
        raise not_found("Relationship not found.")
    return relationship


def _relationship_exists(
    conn: sqlite3.Connection, world_id: str, relationship_type_id: str, from_id: str, to_id: str
) -> bool:
    return query.exists(
        conn,
        "SELECT 1 FROM relationships WHERE world_id = ? AND relationship_type_id = ? "
        "AND from_entity_id = ? AND to_entity_id = ?",
        (world_id, relationship_type_id, from_id, to_id),
        operation="relationships.exists",
    )


def create_relationship(conn: sqlite3.Connection, user: User, data: dict[str, Any]) -> dict[str, Any]:
    relationship_type_id = data.get("relationship_type_id")
    from_id = data.get("from_entity_id")
    to_id = data.get("to_entity_id")
    if not relationship_type_id or not from_id or not to_id:
        raise bad_request("relationship_type_id, from_entity_id, and to_entity_id are required.")
    if from_id == to_id:
        raise bad_request("from_entity_id and to_entity_id must be different.")
    campaign_id = data.get("context_campaign_id")
    character_id = data.get("context_character_id")

    relationship_type = query.fetch_one(
        conn,
        "SELECT id, world_id, is_peerable FROM relationship_types WHERE id = ?",
        (relationship_type_id,),
        operation="relationships.type",
    )
    from_entity = records.get_row(conn, ENTITIES, from_id)
    to_entity = records.get_row(conn, ENTITIES, to_id)
    if relationship_type is None or from_entity is None or to_entity is None:
        raise not_found("Relationship type or entity not found.")
    world_id = relationship_type["world_id"]
    if from_entity["world_id"] != world_id or to_entity["world_id"] != world_id:
        raise bad_request("Entities must belong to the same world as the relationship type.")
    _ensure_can_manage(conn, user, world_id)
    for entity in (from_entity, to_entity):
        if not records.is_visible(
            conn, ENTITIES, user, entity, campaign_id=campaign_id, character_id=character_id
        ):
            raise forbidden("Entities are not accessible.")

    from_type, to_type = from_entity["entity_type_id"], to_entity["entity_type_id"]
    if not _rule_exists(conn, relationship_type_id, from_type, to_type):
        raise bad_request("Relationship type rule does not allow this pairing.")
    peerable = bool(relationship_type["is_peerable"])
    if peerable and not _rule_exists(conn, relationship_type_id, to_type, from_type):
        raise bad_request("Peer relationships require a reverse rule.")
    if _relationship_exists(conn, world_id, relationship_type_id, from_id, to_id) or (
        peerable and _relationship_exists(conn, world_id, relationship_type_id, to_id, from_id)
    ):
        raise conflict("Relationship already exists.")

    default_scope = "CHARACTER" if character_id else "CAMPAIGN" if campaign_id else "GLOBAL"
    scope = normalize_visibility_scope(data.get("visibility_scope")) or default_scope
    ref_id = None
    if scope != "GLOBAL":
        ref_id = data.get("visibility_ref_id") or (campaign_id if scope == "CAMPAIGN" else character_id)
    scope, ref_id = validate_visibility(conn, world_id, scope, ref_id)

    now = query.utc_now()
    row = {
        "world_id": world_id,
        "relationship_type_id": relationship_type_id,
        "peer_group_id": query.new_id() if peerable else None,
        "status": "ACTIVE",
        "visibility_scope": scope,
        "visibility_ref_id": ref_id,
        "created_by_id": user.id,
        "created_at": now,
        "updated_at": now,
    }
    relationship_id = query.insert(
        conn,
        "relationships",
        {**row, "from_entity_id": from_id, "to_entity_id": to_id},
        operation="relationships.create",
    )
    if peerable:
        query.insert(
            conn,
            "relationships",
            {**row, "from_entity_id": to_id, "to_entity_id": from_id},
            operation="relationships.create_peer",
        )
    return require_relationship(conn, relationship_id)


def _update_group(
    conn: sqlite3.Connection, relationship: dict[str, Any], columns: dict[str, Any], operation: str
) -> None:
    """Apply ``columns`` to the relationship, or to every row of its peer group."""
    if not relationship["peer_group_id"]:
        query.update(conn, "relationships", relationship["id"], columns, operation=operation)
        return
    changes = {**columns, "updated_at": query.utc_now()}
    assignments = ", ".join(f"{column} = ?" for column in changes)
    query.execute(
        conn,
        f"UPDATE relationships SET {assignments} WHERE peer_group_id = ?",  # nosec B608
        (*changes.values(), relationship["peer_group_id"]),
        operation=operation,
    )


def update_relationship(
    conn: sqlite3.Connection, user: User, relationship_id: str, data: dict[str, Any]
) -> dict[str, Any]:
    relationship = require_relationship(conn, relationship_id)
    _ensure_can_manage(conn, user, relationship["world_id"])
    scope = normalize_visibility_scope(data.get("visibility_scope"))
    if not scope:
        raise bad_request("visibility_scope is required.")
    ref_id = None if scope == "GLOBAL" else data.get("visibility_ref_id")
    scope, ref_id = validate_visibility(conn, relationship["world_id"], scope, ref_id)
    _update_group(
        conn,
        relationship,
        {"visibility_scope": scope, "visibility_ref_id": ref_id},
        "relationships.update_visibility",
    )
    return require_relationship(conn, relationship_id)


def expire_relationship(conn: sqlite3.Connection, user: User, relationship_id: str) -> dict[str, Any]:
    relationship = require_relationship(conn, relationship_id)
    _ensure_can_manage(conn, user, relationship["world_id"])
    _update_group(
        conn,
        relationship,
        {"status": "EXPIRED", "expired_at": query.utc_now()},
        "relationships.expire",
    )
    return require_relationship(conn, relationship_id)


def delete_relationship(conn: sqlite3.Connection, user: User, relationship_id: str) -> None:
    relationship = require_relationship(conn, relationship_id)
    _ensure_can_manage(conn, user, relationship["world_id"])
    if relationship["peer_group_id"]:
        query.execute(
            conn,
            "DELETE FROM relationships WHERE peer_group_id = ?",
            (relationship["peer_group_id"],),
            operation="relationships.delete_group",
        )
    else:
        query.delete(conn, "relationships", relationship_id, operation="relationships.delete")


# ============================================================================
# PER-ENTITY LISTING
# ============================================================================


def _direction_rank(direction: str) -> int:
    return {"peer": 0, "outgoing": 1}.get(direction, 2)


def list_entity_relationships(
    conn: sqlite3.Connection,
    user: User,
    entity_id: str,
    *,
    campaign_id: str | None = None,
    character_id: str | None = None,
    status: str | None = None,
    relationship_type_id: str | None = None,
    visibility_scope: str | None = None,
) -> dict[str, Any]:
    """Relationships touching ``entity_id`` as seen from that entity.

    Peer pairs collapse into one item. Both ends must be readable by the
    caller, and relationship visibility applies unless the caller manages
    relationships in the world.
    """
    entity = records.require_row(conn, ENTITIES, entity_id)
    world_id = entity["world_id"]
    if not user.is_admin and not records.is_visible(
        conn, ENTITIES, user, entity, campaign_id=campaign_id, character_id=character_id
    ):
        raise forbidden()

    clauses = ["rel.world_id = ?", "(rel.from_entity_id = ? OR rel.to_entity_id = ?)"]
    params: list[Any] = [world_id, entity_id, entity_id]

    status_key = (status or "active").lower()
    if status_key not in _STATUS_FILTERS:
        raise bad_request("Invalid status filter.")
    if _STATUS_FILTERS[status_key]:
        clauses.append("rel.status = ?")
        params.append(_STATUS_FILTERS[status_key])

    managing = can_manage(conn, user, world_id)
    if not managing:
        scopes = ["rel.visibility_scope = 'GLOBAL'"]
        if campaign_id:
            scopes.append("(rel.visibility_scope = 'CAMPAIGN' AND rel.visibility_ref_id = ?)")
            params.append(campaign_id)
        if character_id:
            scopes.append("(rel.visibility_scope = 'CHARACTER' AND rel.visibility_ref_id = ?)")
            params.append(character_id)
        clauses.append(f"({' OR '.join(scopes)})")
    if relationship_type_id:
        clauses.append("rel.relationship_type_id = ?")
        params.append(relationship_type_id)
    if visibility_scope:
        scope = normalize_visibility_scope(visibility_scope)
        if not scope:
            raise bad_request("Invalid visibility scope filter.")
        clauses.append("rel.visibility_scope = ?")
        params.append(scope)
    for alias in ("fe", "te"):
        visibility = records.access_clause(
            conn, ENTITIES, user, world_id, campaign_id=campaign_id, character_id=character_id, alias=alias
        )
        if visibility is not None:
            clauses.append(visibility[0])
            params.extend(visibility[1])

    rows = query.fetch_all(
        conn,
        f"""
        SELECT rel.*, t.name AS type_name, t.from_label, t.to_label,
               t.past_from_label, t.past_to_label,
               fe.name AS from_name, fe.entity_type_id AS from_type_id,
               te.name AS to_name, te.entity_type_id AS to_type_id
        FROM relationships rel
        JOIN relationship_types t ON t.id = rel.relationship_type_id
        JOIN entities fe ON fe.id = rel.from_entity_id
        JOIN entities te ON te.id = rel.to_entity_id
        WHERE {' AND '.join(clauses)}
        ORDER BY rel.created_at DESC
        """,  # nosec B608
        params,
        operation="relationships.list_for_entity",
    )

    chosen: list[dict[str, Any]] = []
    peers: dict[str, dict[str, Any]] = {}
    for row in rows:
        group = row["peer_group_id"]
        if not group:
            chosen.append(row)
        elif group not in peers or (
            row["from_entity_id"] == entity_id and peers[group]["from_entity_id"] != entity_id
        ):
            peers[group] = row
    chosen.extend(peers.values())

    items = []
    for row in chosen:
        expired = row["status"] == "EXPIRED"
        from_label = (expired and row["past_from_label"]) or row["from_label"]
        to_label = (expired and row["past_to_label"]) or row["to_label"]
        outgoing = row["from_entity_id"] == entity_id
        peer = bool(row["peer_group_id"])
        direction = "peer" if peer else "outgoing" if outgoing else "incoming"
        prefix = "to" if outgoing else "from"
        items.append(
            {
                "id": row["peer_group_id"] or row["id"],
                "relationship_id": row["id"],
                "relationship_type_id": row["relationship_type_id"],
                "relationship_type_name": row["type_name"],
                "label": from_label if peer or outgoing else to_label,
                "direction": direction,
                "status": row["status"],
                "visibility_scope": row["visibility_scope"],
                "visibility_ref_id": row["visibility_ref_id"],
                "is_peer": peer,
                "created_at": row["created_at"],
                "expired_at": row["expired_at"],
                "related_entity_id": row[f"{prefix}_entity_id"],
                "related_entity_name": row[f"{prefix}_name"],
                "related_entity_type_id": row[f"{prefix}_type_id"],
            }
        )
    items.sort(
        key=lambda item: (
            item["status"] != "ACTIVE",
            not item["is_peer"],
            _direction_rank(item["direction"]),
            item["relationship_type_name"].lower(),
            item["related_entity_name"].lower(),
        )
    )
    return {"can_manage": managing, "relationships": items}
