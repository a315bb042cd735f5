"""Reference lookups for picker widgets.

``search`` answers ``GET /api/references``: up to :data:`REFERENCE_LIMIT`
``{"id", "label"}`` pairs for one entity key, matched by a case-insensitive
label substring or by an explicit id list. Non-admin results are narrowed to
what the caller could open through the regular endpoints.
"""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass, field
from typing import Any

from campaign_server.db import query
from campaign_server.services import permissions, records
from campaign_server.services.errors import bad_request, forbidden
from campaign_server.services.location_types import allowed_parent_type_ids
from campaign_server.services.permissions import User
from campaign_server.services.records import ENTITIES, LOCATIONS

REFERENCE_LIMIT = 25

_LABELS = {
    "users": "COALESCE(NULLIF(t.name, ''), t.email, t.id)",
    "worlds": "t.name",
    "campaigns": "t.name",
    "characters": "t.name",
    "entity_types": "t.name",
    "entities": "t.name",
    "location_types": "t.name",
    "locations": "t.name",
    "entity_fields": "t.label",
    "location_type_fields": "t.field_label",
    "relationship_types": "t.name",
    "choice_lists": "t.name",
    "choice_options": "t.label",
    "packs": "t.name",
    "entity_type_templates": "t.name",
    "entity_type_template_fields": "t.field_label",
    "location_type_templates": "t.name",
    "location_type_template_fields": "t.field_label",
    "location_type_rule_templates": "t.id",
    "relationship_type_templates": "t.name",
    "relationship_type_template_roles": "t.from_role || ' / ' || t.to_role",
}

ADMIN_ONLY_KEYS = frozenset(
    {
        "packs",
        "entity_type_templates",
        "entity_type_template_fields",
        "location_type_templates",
        "location_type_template_fields",
        "location_type_rule_templates",
        "relationship_type_templates",
        "relationship_type_template_roles",
    }
)

# Membership predicates used to narrow worlds for non-admins, keyed by scope.
_ARCHITECT_SQL = (
    "t.primary_architect_id = :user OR EXISTS "
    "(SELECT 1 FROM world_architects x WHERE x.world_id = t.id AND x.user_id = :user)"
)
_WORLD_MEMBERSHIP = {
    "character_create": ("world_character_creators",),
    "campaign_create": ("world_game_masters", "world_campaign_creators"),
    None: ("world_game_masters", "world_campaign_creators", "world_character_creators"),
}


@dataclass
class ReferenceQuery:
    """Parsed ``/api/references`` parameters."""

    entity_key: str
    query: str | None = None
    ids: list[str] = field(default_factory=list)
    scope: str | None = None
    world_id: str | None = None
    campaign_id: str | None = None
    character_id: str | None = None
    entity_type_id: str | None = None
    entity_type_ids: list[str] = field(default_factory=list)
    location_type_id: str | None = None
    include_entity_type_id: bool = False


class _Clauses:
    """Accumulates ``AND``-joined SQL with named parameters."""

    def __init__(self, user_id: str) -> None:
        self.sql: list[str] = []
        self.params: dict[str, Any] = {"user": user_id}

    def add(self, sql: str, **params: Any) -> None:
        self.sql.append(sql)
        self.params.update(params)

    def add_in(self, column: str, values: list[str], prefix: str) -> None:
        names = [f"{prefix}{index}" for index in range(len(values))]
        self.sql.append(f"{column} IN ({', '.join(':' + name for name in names)})")
        self.params.update(zip(names, values))

    def add_positional(self, sql: str, values: list[Any], prefix: str) -> None:
        """Add a clause written with ``?`` placeholders by renaming them."""
        for index, value in enumerate(values):
            name = f"{prefix}{index}"
            sql = sql.replace("?", f":{name}", 1)
            self.params[name] = value
        self.sql.append(sql)


def _label_expression(conn: sqlite3.Connection, key: str) -> str:
    """SQL for the display label of ``key``.

    The dictionary entry flagged ``is_label`` wins when it names a real column
    of the table; empty values still fall back to the built-in label.
    """
    default = _LABELS[key]
    column = query.fetch_value(
        conn,
        "SELECT field_key FROM system_dictionary WHERE entity_key = ? AND is_label = 1",
        (key,),
        operation="references.dictionary_label",
    )
    if column is None:
        return default
    table_columns = {
        row["name"]
        for row in query.fetch_all(conn, f"PRAGMA table_info({key})", operation="references.columns")  # nosec B608
    }
    if column not in table_columns:
        return default
    return f"COALESCE(NULLIF(t.{column}, ''), {default})"


def split_ids(raw: str | None) -> list[str]:
    if not raw:
        return []
    return [item.strip() for item in raw.split(",") if item.strip()]


def search(conn: sqlite3.Connection, user: User, params: ReferenceQuery) -> list[dict[str, Any]]:
    """Return ``[{"id", "label"}]`` ordered by label.

    Raises:
        ServiceError: 400 for an unknown key, 403 for admin-only keys or a
            world the caller may not inspect.
    """
    key = params.entity_key
    if not key:
        raise bad_request("entity_key is required.")
    if key not in _LABELS:
        raise bad_request("Unsupported entity key.")
    if key in ADMIN_ONLY_KEYS and not user.is_admin:
        raise forbidden()

    clauses = _Clauses(user.id)
    label = _label_expression(conn, key)
    if params.ids:
        clauses.add_in("t.id", params.ids, "id")
    elif params.query and params.query.strip():
        clauses.add(f"instr(lower({label}), lower(:q)) > 0", q=params.query.strip())

    scoped = _SCOPERS.get(key, _no_scope)(conn, user, params, clauses)
    if scoped is False:
        return []

    extra = ", t.entity_type_id" if key == "entities" and params.include_entity_type_id else ""
    where = f"WHERE {' AND '.join(f'({clause})' for clause in clauses.sql)}" if clauses.sql else ""
    rows = query.fetch_all(
        conn,
        f"SELECT t.id, {label} AS label{extra} FROM {key} t {where} "  # nosec B608
        "ORDER BY label COLLATE NOCASE LIMIT :limit",
        {**clauses.params, "limit": REFERENCE_LIMIT},
        operation=f"references.{key}",
    )
    results = []
    for row in rows:
        item = {"id": row["id"], "label": str(row["label"]) if row["label"] else row["id"]}
        if extra:
            item["entity_type_id"] = row["entity_type_id"]
        results.append(item)
    return results


# ============================================================================
# PER-KEY SCOPING
# ============================================================================
# Each scoper adds clauses and returns False when the answer is empty.


def _no_scope(conn: sqlite3.Connection, user: User, params: ReferenceQuery, clauses: _Clauses) -> bool:
    return True


def _can_access_world(conn: sqlite3.Connection, user: User, world_id: str) -> bool:
    return user.is_admin or permissions.can_access_world(conn, user.id, world_id)


def _is_architect(conn: sqlite3.Connection, user: User, world_id: str) -> bool:
    return user.is_admin or permissions.is_world_architect(conn, user.id, world_id)


def _scope_users(conn: sqlite3.Connection, user: User, params: ReferenceQuery, clauses: _Clauses) -> bool:
    if params.scope != "world_gm" or params.ids:
        return True
    if not params.world_id:
        return False
    if not _is_architect(conn, user, params.world_id):
        clauses.add(
            "t.id IN (SELECT user_id FROM world_game_masters WHERE world_id = :world)",
            world=params.world_id,
        )
    return True


def _scope_worlds(conn: sqlite3.Connection, user: User, params: ReferenceQuery, clauses: _Clauses) -> bool:
    if not user.is_admin and not params.ids:
        tables = _WORLD_MEMBERSHIP.get(params.scope, _WORLD_MEMBERSHIP[None])
        membership = " OR ".join(
            f"EXISTS (SELECT 1 FROM {table} m WHERE m.world_id = t.id AND m.user_id = :user)"
            for table in tables
        )
        clauses.add(f"{_ARCHITECT_SQL} OR {membership}")
    if params.world_id:
        clauses.add("t.id = :world", world=params.world_id)
    return True


def _scope_campaigns(conn: sqlite3.Connection, user: User, params: ReferenceQuery, clauses: _Clauses) -> bool:
    if params.world_id:
        clauses.add("t.world_id = :world", world=params.world_id)
    if params.character_id:
        clauses.add(
            "EXISTS (SELECT 1 FROM character_campaigns cc "
            "WHERE cc.campaign_id = t.id AND cc.character_id = :character)",
            character=params.character_id,
        )
    if not user.is_admin:
        clauses.add(
            """
            t.gm_user_id = :user OR t.created_by_id = :user
            OR EXISTS (SELECT 1 FROM worlds w WHERE w.id = t.world_id AND w.primary_architect_id = :user)
            OR EXISTS (SELECT 1 FROM world_architects wa WHERE wa.world_id = t.world_id AND wa.user_id = :user)
            OR EXISTS (
                SELECT 1 FROM character_campaigns cc JOIN characters c ON c.id = cc.character_id
                WHERE cc.campaign_id = t.id AND c.player_id = :user
            )
            """
        )
    return True


def _scope_characters(conn: sqlite3.Connection, user: User, params: ReferenceQuery, clauses: _Clauses) -> bool:
    campaign = None
    if params.campaign_id:
        campaign = query.fetch_one(
            conn,
            "SELECT world_id, gm_user_id FROM campaigns WHERE id = ?",
            (params.campaign_id,),
            operation="references.campaign",
        )
    is_campaign_gm = bool(campaign and campaign["gm_user_id"] == user.id)
    expand = bool(campaign and (is_campaign_gm or _is_architect(conn, user, campaign["world_id"])))

    if expand and campaign:
        clauses.add("t.world_id = :campaign_world", campaign_world=campaign["world_id"])
    else:
        if params.world_id:
            clauses.add("t.world_id = :world", world=params.world_id)
        if params.campaign_id:
            clauses.add(
                "EXISTS (SELECT 1 FROM character_campaigns cc "
                "WHERE cc.character_id = t.id AND cc.campaign_id = :campaign)",
                campaign=params.campaign_id,
            )

    if user.is_admin:
        return True
    if params.campaign_id and not is_campaign_gm:
        clauses.add("t.player_id = :user")
        return True
    options = [
        "t.player_id = :user",
        "EXISTS (SELECT 1 FROM worlds w WHERE w.id = t.world_id AND w.primary_architect_id = :user)",
        "EXISTS (SELECT 1 FROM world_architects wa WHERE wa.world_id = t.world_id AND wa.user_id = :user)",
        "EXISTS (SELECT 1 FROM character_campaigns cc JOIN campaigns c ON c.id = cc.campaign_id "
        "WHERE cc.character_id = t.id AND c.gm_user_id = :user)",
    ]
    clauses.add(" OR ".join(options))
    return True


def _scope_entity_types(conn: sqlite3.Connection, user: User, params: ReferenceQuery, clauses: _Clauses) -> bool:
    if params.scope == "entity_type":
        if params.world_id:
            clauses.add("t.world_id = :world", world=params.world_id)
        elif not user.is_admin:
            return False
    elif params.scope == "entity_type_source":
        if not user.is_admin:
            clauses.add("t.is_template = 1")
    elif not params.ids and not user.is_admin:
        clauses.add(
            """
            t.is_template = 1
            OR EXISTS (SELECT 1 FROM worlds w WHERE w.id = t.world_id AND w.primary_architect_id = :user)
            OR EXISTS (SELECT 1 FROM world_architects wa WHERE wa.world_id = t.world_id AND wa.user_id = :user)
            """
        )
    return True


def _scope_entities(conn: sqlite3.Connection, user: User, params: ReferenceQuery, clauses: _Clauses) -> bool:
    if params.world_id:
        clauses.add("t.world_id = :world", world=params.world_id)
    if params.entity_type_ids:
        clauses.add_in("t.entity_type_id", params.entity_type_ids, "type")
    elif params.entity_type_id:
        clauses.add("t.entity_type_id = :entity_type", entity_type=params.entity_type_id)
    return _record_access(conn, user, params, clauses, ENTITIES, params.world_id)


def _record_access(
    conn: sqlite3.Connection,
    user: User,
    params: ReferenceQuery,
    clauses: _Clauses,
    kind: records.RecordKind,
    world_id: str | None,
) -> bool:
    if user.is_admin:
        return True
    if not world_id or not permissions.can_access_world(conn, user.id, world_id):
        return False
    access = records.access_clause(
        conn,
        kind,
        user,
        world_id,
        campaign_id=params.campaign_id,
        character_id=params.character_id,
        alias="t",
    )
    if access is not None:
        sql, values = access
        clauses.add_positional(sql, values, "access")
    return True


def _scope_location_types(
    conn: sqlite3.Connection, user: User, params: ReferenceQuery, clauses: _Clauses
) -> bool:
    if params.world_id:
        clauses.add("t.world_id = :world", world=params.world_id)
    if user.is_admin:
        return True
    return bool(params.world_id) and permissions.can_access_world(conn, user.id, params.world_id)


def _scope_locations(conn: sqlite3.Connection, user: User, params: ReferenceQuery, clauses: _Clauses) -> bool:
    world_id = params.world_id
    if params.scope == "location_parent":
        if not params.location_type_id:
            return False
        if not world_id:
            world_id = query.fetch_value(
                conn,
                "SELECT world_id FROM location_types WHERE id = ?",
                (params.location_type_id,),
                operation="references.location_type_world",
            )
        if not world_id:
            return False
        parent_types = sorted(allowed_parent_type_ids(conn, params.location_type_id, world_id))
        if not parent_types:
            return False
        clauses.add_in("t.location_type_id", parent_types, "parent_type")
    elif params.location_type_id:
        clauses.add("t.location_type_id = :location_type", location_type=params.location_type_id)
    if world_id:
        clauses.add("t.world_id = :world", world=world_id)
    return _record_access(conn, user, params, clauses, LOCATIONS, world_id)


def _scope_entity_fields(conn: sqlite3.Connection, user: User, params: ReferenceQuery, clauses: _Clauses) -> bool:
    if params.world_id:
        if not _is_architect(conn, user, params.world_id):
            raise forbidden()
        clauses.add(
            "t.entity_type_id IN (SELECT id FROM entity_types WHERE world_id = :world)",
            world=params.world_id,
        )
        return True
    return user.is_admin or bool(params.ids)


def _scope_location_type_fields(
    conn: sqlite3.Connection, user: User, params: ReferenceQuery, clauses: _Clauses
) -> bool:
    if params.world_id:
        clauses.add(
            "t.location_type_id IN (SELECT id FROM location_types WHERE world_id = :world)",
            world=params.world_id,
        )
    if user.is_admin:
        return True
    return bool(params.world_id) and permissions.is_world_architect(conn, user.id, params.world_id)


def _scope_relationship_types(
    conn: sqlite3.Connection, user: User, params: ReferenceQuery, clauses: _Clauses
) -> bool:
    if params.world_id:
        if not _can_access_world(conn, user, params.world_id):
            raise forbidden()
        clauses.add("t.world_id = :world", world=params.world_id)
        return True
    if params.scope == "relationship_type":
        return user.is_admin
    return user.is_admin or bool(params.ids)


def _scope_choice_lists(conn: sqlite3.Connection, user: User, params: ReferenceQuery, clauses: _Clauses) -> bool:
    if params.world_id:
        clauses.add("t.world_id = :world", world=params.world_id)
    if user.is_admin:
        return True
    if not params.world_id or not permissions.is_world_architect(conn, user.id, params.world_id):
        return False
    clauses.add("t.scope = 'WORLD'")
    return True


def _scope_choice_options(
    conn: sqlite3.Connection, user: User, params: ReferenceQuery, clauses: _Clauses
) -> bool:
    if params.world_id:
        clauses.add(
            "t.choice_list_id IN (SELECT id FROM choice_lists WHERE world_id = :world)",
            world=params.world_id,
        )
    if user.is_admin:
        return True
    return bool(params.world_id) and permissions.is_world_architect(conn, user.id, params.world_id)


_SCOPERS = {
    "users": _scope_users,
    "worlds": _scope_worlds,
    "campaigns": _scope_campaigns,
    "characters": _scope_characters,
    "entity_types": _scope_entity_types,
    "entities": _scope_entities,
    "location_types": _scope_location_types,
    "locations": _scope_locations,
    "entity_fields": _scope_entity_fields,
    "location_type_fields": _scope_location_type_fields,
    "relationship_types": _scope_relationship_types,
    "choice_lists": _scope_choice_lists,
    "choice_options": _scope_choice_options,
}
