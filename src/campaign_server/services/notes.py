"""Notes attached to entities and locations.

Notes are written in a campaign context (or, for architects, outside any
campaign) and carry one of three visibilities:

    SHARED   everyone who can read the record in that campaign
    PRIVATE  the author, the campaign GM, architects and world GMs
    GM       the campaign GM, plus architects when ``share_with_architect``
             is set and players whose characters the note is shared with

Bodies tag other records with ``@[Label](entity:<id>)`` or
``@[Label](location:<id>)``; tags are re-extracted on every write.
"""

from __future__ import annotations

import re
import sqlite3
from dataclasses import dataclass
from typing import Any

from campaign_server.db import query
from campaign_server.services import permissions, records
from campaign_server.services.errors import bad_request, forbidden, not_found
from campaign_server.services.permissions import User
from campaign_server.services.records import ENTITIES, LOCATIONS, RecordKind

NOTE_VISIBILITIES = ("PRIVATE", "SHARED", "GM")
TAG_PATTERN = re.compile(r"@\[(.+?)\]\((entity|location):([^)]+)\)")
TAG_KINDS = {"ENTITY": ENTITIES, "LOCATION": LOCATIONS}


def extract_tags(body: str) -> list[dict[str, str]]:
    """Return ``[{tag_type, target_id, label}]`` in body order."""
    tags = []
    for label, raw_type, target_id in TAG_PATTERN.findall(body or ""):
        tag_type = "LOCATION" if raw_type == "location" else "ENTITY"
        tags.append({"tag_type": tag_type, "target_id": target_id, "label": label})
    return tags


def accessible_ids(
    conn: sqlite3.Connection,
    kind: RecordKind,
    user: User,
    world_id: str,
    ids: list[str],
    *,
    campaign_id: str | None,
    character_id: str | None,
) -> set[str]:
    """Subset of ``ids`` that are records of ``kind`` in ``world_id`` readable by ``user``."""
    ids = list(dict.fromkeys(ids))
    if not ids:
        return set()
    sql = (
        f"SELECT r.id FROM {kind.table} r "  # nosec B608
        f"WHERE r.world_id = ? AND r.id IN ({query.placeholders(ids)})"
    )
    params: list[Any] = [world_id, *ids]
    visibility = records.access_clause(
        conn, kind, user, world_id, campaign_id=campaign_id, character_id=character_id
    )
    if visibility is not None:
        sql += f" AND {visibility[0]}"
        params.extend(visibility[1])
    rows = query.fetch_all(conn, sql, params, operation=f"{kind.key}.accessible_ids")
    return {row["id"] for row in rows}


@dataclass
class _Viewer:
    """Roles of the caller that decide which notes they see."""

    user: User
    campaign_id: str | None
    is_architect: bool
    is_world_gm: bool
    is_campaign_gm: bool
    character_ids: set[str]

    @classmethod
    def load(cls, conn: sqlite3.Connection, user: User, world_id: str, campaign_id: str | None) -> _Viewer:
        character_ids: set[str] = set()
        if campaign_id:
            rows = query.fetch_all(
                conn,
                """
                SELECT cc.character_id FROM character_campaigns cc
                JOIN characters c ON c.id = cc.character_id
                WHERE cc.campaign_id = ? AND c.player_id = ?
                """,
                (campaign_id, user.id),
                operation="notes.viewer_characters",
            )
            character_ids = {row["character_id"] for row in rows}
        return cls(
            user=user,
            campaign_id=campaign_id,
            is_architect=permissions.is_world_architect(conn, user.id, world_id),
            is_world_gm=permissions.is_world_game_master(conn, user.id, world_id),
            is_campaign_gm=bool(campaign_id) and permissions.is_campaign_gm(conn, user.id, campaign_id),
            character_ids=character_ids,
        )

    def can_see(self, note: dict[str, Any]) -> bool:
        if self.user.is_admin:
            return True
        if note["visibility"] == "GM":
            if not self.campaign_id:
                return False
            if self.is_campaign_gm or (note["share_with_architect"] and self.is_architect):
                return True
            return bool(self.character_ids & set(note["share_character_ids"]))
        if note["visibility"] == "SHARED" or note["author_id"] == self.user.id:
            return True
        return bool(self.campaign_id and self.is_campaign_gm) or self.is_architect or self.is_world_gm


def _note_rows(conn: sqlite3.Connection, where: str, params: tuple[Any, ...]) -> list[dict[str, Any]]:
    rows = query.fetch_all(
        conn,
        f"""
        SELECT n.*, u.name AS author_name, u.email AS author_email,
               ch.name AS character_name, cp.gm_user_id AS campaign_gm_id
        FROM notes n
        JOIN users u ON u.id = n.author_id
        LEFT JOIN characters ch ON ch.id = n.character_id
        LEFT JOIN campaigns cp ON cp.id = n.campaign_id
        WHERE {where}
        ORDER BY n.created_at DESC
        """,  # nosec B608
        params,
        operation="notes.list",
    )
    if not rows:
        return rows
    note_ids = [row["id"] for row in rows]
    in_clause = query.placeholders(note_ids)
    tags: dict[str, list[dict[str, Any]]] = {note_id: [] for note_id in note_ids}
    for tag in query.fetch_all(
        conn,
        f"SELECT * FROM note_tags WHERE note_id IN ({in_clause}) ORDER BY rowid",  # nosec B608
        note_ids,
        operation="notes.tags",
    ):
        tags[tag["note_id"]].append(tag)
    shares: dict[str, list[str]] = {note_id: [] for note_id in note_ids}
    for share in query.fetch_all(
        conn,
        f"SELECT note_id, character_id FROM note_shares WHERE note_id IN ({in_clause})",  # nosec B608
        note_ids,
        operation="notes.shares",
    ):
        shares[share["note_id"]].append(share["character_id"])
    for row in rows:
        row["tags"] = tags[row["id"]]
        row["share_character_ids"] = shares[row["id"]]
    return rows


def _present(
    conn: sqlite3.Connection,
    user: User,
    world_id: str,
    notes: list[dict[str, Any]],
    *,
    campaign_id: str | None,
    character_id: str | None,
    include_target: bool = False,
) -> list[dict[str, Any]]:
    architect_ids = {
        row["user_id"]
        for row in query.fetch_all(
            conn,
            """
            SELECT primary_architect_id AS user_id FROM worlds WHERE id = ?
            UNION SELECT user_id FROM world_architects WHERE world_id = ?
            """,
            (world_id, world_id),
            operation="notes.architect_ids",
        )
    }
    readable = {
        tag_type: accessible_ids(
            conn,
            kind,
            user,
            world_id,
            [tag["target_id"] for note in notes for tag in note["tags"] if tag["tag_type"] == tag_type],
            campaign_id=campaign_id,
            character_id=character_id,
        )
        for tag_type, kind in TAG_KINDS.items()
    }

    payload = []
    for note in notes:
        author_base = note["author_name"] or note["author_email"]
        author_label = (
            f"{note['character_name']} played by {author_base}" if note["character_name"] else author_base
        )
        role_label = None
        if note["visibility"] == "GM":
            role_label = "GM"
        elif note["visibility"] == "SHARED":
            if note["author_id"] in architect_ids:
                role_label = "Architect"
            elif note["campaign_gm_id"] and note["campaign_gm_id"] == note["author_id"]:
                role_label = "GM"
        item = {
            "id": note["id"],
            "body": note["body"],
            "visibility": note["visibility"],
            "share_with_architect": bool(note["share_with_architect"]),
            "share_character_ids": note["share_character_ids"],
            "campaign_id": note["campaign_id"],
            "character_id": note["character_id"],
            "created_at": note["created_at"],
            "author": {"id": note["author_id"], "name": note["author_name"], "email": note["author_email"]},
            "author_label": author_label,
            "author_role_label": role_label,
            "tags": [
                {
                    "id": tag["id"],
                    "tag_type": tag["tag_type"],
                    "target_id": tag["target_id"],
                    "label": tag["label"],
                    "can_access": tag["target_id"] in readable[tag["tag_type"]],
                }
                for tag in note["tags"]
            ],
        }
        if include_target:
            item["entity"] = _target_summary(conn, ENTITIES, note["entity_id"])
            item["location"] = _target_summary(conn, LOCATIONS, note["location_id"])
        payload.append(item)
    return payload


def _target_summary(conn: sqlite3.Connection, kind: RecordKind, record_id: str | None) -> dict[str, Any] | None:
    if not record_id:
        return None
    return query.fetch_one(
        conn,
        f"SELECT id, name FROM {kind.table} WHERE id = ?",  # nosec B608
        (record_id,),
        operation=f"{kind.key}.summary",
    )


def _require_readable(
    conn: sqlite3.Connection,
    kind: RecordKind,
    user: User,
    record_id: str,
    *,
    campaign_id: str | None,
    character_id: str | None,
) -> dict[str, Any]:
    row = records.require_row(conn, kind, record_id)
    if not records.is_visible(conn, kind, user, row, campaign_id=campaign_id, character_id=character_id):
        raise forbidden()
    return row


# ============================================================================
# READ
# ============================================================================


def list_notes(
    conn: sqlite3.Connection,
    kind: RecordKind,
    user: User,
    record_id: str,
    *,
    campaign_id: str | None = None,
    character_id: str | None = None,
) -> list[dict[str, Any]]:
    """Notes on a record written in the given campaign context, newest first."""
    row = _require_readable(
        conn, kind, user, record_id, campaign_id=campaign_id, character_id=character_id
    )
    viewer = _Viewer.load(conn, user, row["world_id"], campaign_id)
    notes = _note_rows(
        conn, f"n.{kind.fk_column} = ? AND n.campaign_id IS ?", (record_id, campaign_id)
    )
    return _present(
        conn,
        user,
        row["world_id"],
        [note for note in notes if viewer.can_see(note)],
        campaign_id=campaign_id,
        character_id=character_id,
    )


def list_mentions(
    conn: sqlite3.Connection,
    kind: RecordKind,
    user: User,
    record_id: str,
    *,
    campaign_id: str | None = None,
    character_id: str | None = None,
) -> list[dict[str, Any]]:
    """Notes on other readable records that tag this record."""
    row = _require_readable(
        conn, kind, user, record_id, campaign_id=campaign_id, character_id=character_id
    )
    world_id = row["world_id"]
    tag_type = "ENTITY" if kind is ENTITIES else "LOCATION"
    notes = _note_rows(
        conn,
        "n.campaign_id IS ? AND EXISTS (SELECT 1 FROM note_tags t "
        "WHERE t.note_id = n.id AND t.tag_type = ? AND t.target_id = ?)",
        (campaign_id, tag_type, record_id),
    )
    readable_entities = accessible_ids(
        conn,
        ENTITIES,
        user,
        world_id,
        [note["entity_id"] for note in notes if note["entity_id"]],
        campaign_id=campaign_id,
        character_id=character_id,
    )
    readable_locations = accessible_ids(
        conn,
        LOCATIONS,
        user,
        world_id,
        [note["location_id"] for note in notes if note["location_id"]],
        campaign_id=campaign_id,
        character_id=character_id,
    )
    viewer = _Viewer.load(conn, user, world_id, campaign_id)
    visible = [
        note
        for note in notes
        if (note["entity_id"] in readable_entities or note["location_id"] in readable_locations)
        and viewer.can_see(note)
    ]
    return _present(
        conn,
        user,
        world_id,
        visible,
        campaign_id=campaign_id,
        character_id=character_id,
        include_target=True,
    )


# ============================================================================
# WRITE
# ============================================================================


def _check_content(
    conn: sqlite3.Connection,
    user: User,
    world_id: str,
    visibility: str,
    body: str,
    share_ids: list[str],
    *,
    campaign_id: str | None,
    character_id: str | None,
) -> list[dict[str, str]]:
    """Validate shares and tags; returns the extracted tags."""
    if share_ids:
        if visibility != "GM":
            raise bad_request("GM note sharing is not available for this note.")
        rostered = {
            row["character_id"]
            for row in query.fetch_all(
                conn,
                f"SELECT character_id FROM character_campaigns "  # nosec B608
                f"WHERE campaign_id = ? AND character_id IN ({query.placeholders(share_ids)})",
                (campaign_id, *share_ids),
                operation="notes.share_roster",
            )
        }
        if any(share_id not in rostered for share_id in share_ids):
            raise bad_request("One or more shared characters are not in the campaign.")

    tags = extract_tags(body)
    for tag_type, kind in TAG_KINDS.items():
        wanted = [tag["target_id"] for tag in tags if tag["tag_type"] == tag_type]
        readable = accessible_ids(
            conn, kind, user, world_id, wanted, campaign_id=campaign_id, character_id=character_id
        )
        if any(target_id not in readable for target_id in wanted):
            noun = "entities" if kind is ENTITIES else "locations"
            raise bad_request(f"One or more tagged {noun} are not accessible.")
    return tags


def _write_children(
    conn: sqlite3.Connection, note_id: str, tags: list[dict[str, str]], share_ids: list[str]
) -> None:
    query.execute(conn, "DELETE FROM note_tags WHERE note_id = ?", (note_id,), operation="notes.clear_tags")
    for tag in tags:
        query.insert(conn, "note_tags", {"note_id": note_id, **tag}, operation="notes.insert_tag")
    query.execute(
        conn, "DELETE FROM note_shares WHERE note_id = ?", (note_id,), operation="notes.clear_shares"
    )
    for character_id in dict.fromkeys(share_ids):
        query.execute(
            conn,
            "INSERT INTO note_shares (note_id, character_id) VALUES (?, ?)",
            (note_id, character_id),
            operation="notes.insert_share",
        )


def _share_ids(data: dict[str, Any]) -> list[str]:
    raw = data.get("share_character_ids")
    return [str(item) for item in raw if item] if isinstance(raw, list) else []


def _single_note(
    conn: sqlite3.Connection,
    user: User,
    world_id: str,
    note_id: str,
    *,
    campaign_id: str | None,
    character_id: str | None,
) -> dict[str, Any]:
    note = _note_rows(conn, "n.id = ?", (note_id,))[0]
    presented = _present(conn, user, world_id, [note], campaign_id=campaign_id, character_id=character_id)[0]
    for tag in presented["tags"]:
        tag["can_access"] = True
    return presented


def create_note(
    conn: sqlite3.Connection,
    kind: RecordKind,
    user: User,
    record_id: str,
    data: dict[str, Any],
) -> dict[str, Any]:
    body = data.get("body") or ""
    if not body.strip():
        raise bad_request("Note body is required.")
    campaign_id = data.get("campaign_id")
    character_id = data.get("character_id")
    row = _require_readable(
        conn, kind, user, record_id, campaign_id=campaign_id, character_id=character_id
    )
    world_id = row["world_id"]

    visibility = data.get("visibility")
    if visibility not in NOTE_VISIBILITIES:
        visibility = "SHARED"
    if visibility == "SHARED" and not campaign_id:
        raise bad_request("Shared notes require a campaign context.")
    if visibility == "GM" and not campaign_id:
        raise bad_request("GM notes require a campaign context.")

    campaign = None
    if campaign_id:
        campaign = query.fetch_one(
            conn,
            "SELECT world_id, gm_user_id FROM campaigns WHERE id = ?",
            (campaign_id,),
            operation="notes.campaign",
        )
        if campaign is None:
            raise bad_request("Campaign not found.")
        if campaign["world_id"] != world_id:
            raise bad_request("Campaign world mismatch.")
    character = None
    if character_id:
        character = query.fetch_one(
            conn,
            "SELECT world_id, player_id FROM characters WHERE id = ?",
            (character_id,),
            operation="notes.character",
        )
        if character is None:
            raise bad_request("Character not found.")
        if character["world_id"] != world_id:
            raise bad_request("Character world mismatch.")
    if campaign_id and character_id and not query.exists(
        conn,
        "SELECT 1 FROM character_campaigns WHERE campaign_id = ? AND character_id = ?",
        (campaign_id, character_id),
        operation="notes.character_in_campaign",
    ):
        raise bad_request("Character is not in the campaign.")

    is_architect = permissions.is_world_architect(conn, user.id, world_id)
    is_campaign_gm = bool(campaign) and campaign["gm_user_id"] == user.id
    can_author = (
        user.is_admin
        or is_architect
        or permissions.is_world_game_master(conn, user.id, world_id)
        or is_campaign_gm
    )
    if not campaign_id and not user.is_admin and not is_architect:
        raise forbidden("Campaign context required.")
    if not can_author and (character is None or not campaign_id or character["player_id"] != user.id):
        raise forbidden("Player context required.")
    if visibility == "GM" and not is_campaign_gm:
        raise forbidden("Only the campaign GM can write GM notes.")

    share_ids = _share_ids(data)
    tags = _check_content(
        conn,
        user,
        world_id,
        visibility,
        body,
        share_ids,
        campaign_id=campaign_id,
        character_id=character_id,
    )
    now = query.utc_now()
    note_id = query.insert(
        conn,
        "notes",
        {
            kind.fk_column: record_id,
            "author_id": user.id,
            "campaign_id": campaign_id,
            "character_id": character_id,
            "visibility": visibility,
            "share_with_architect": int(visibility == "GM" and bool(data.get("share_with_architect"))),
            "body": body,
            "created_at": now,
            "updated_at": now,
        },
        operation="notes.create",
    )
    _write_children(conn, note_id, tags, share_ids if visibility == "GM" else [])
    return _single_note(conn, user, world_id, note_id, campaign_id=campaign_id, character_id=character_id)


def _require_note(conn: sqlite3.Connection, note_id: str) -> dict[str, Any]:
    note = query.fetch_one(conn, "SELECT * FROM notes WHERE id = ?", (note_id,), operation="notes.get")
    if note is None:
        raise not_found("Note not found.")
    return note


def update_note(conn: sqlite3.Connection, user: User, note_id: str, data: dict[str, Any]) -> dict[str, Any]:
    body = data.get("body") or ""
    if not body.strip():
        raise bad_request("Note body is required.")
    note = _require_note(conn, note_id)
    if note["author_id"] != user.id:
        raise forbidden()

    kind = ENTITIES if note["entity_id"] else LOCATIONS
    record_id = note[kind.fk_column]
    campaign_id, character_id = note["campaign_id"], note["character_id"]
    target = records.get_row(conn, kind, record_id)
    if target is None:
        raise not_found("Note target not found.")
    if not records.is_visible(conn, kind, user, target, campaign_id=campaign_id, character_id=character_id):
        raise forbidden()
    world_id = target["world_id"]

    visibility = data.get("visibility")
    if visibility not in NOTE_VISIBILITIES:
        visibility = note["visibility"]
    if visibility == "SHARED" and not campaign_id:
        raise bad_request("Shared notes require a campaign context.")
    if visibility == "GM":
        if not campaign_id:
            raise bad_request("GM notes require a campaign context.")
        if not permissions.is_campaign_gm(conn, user.id, campaign_id):
            raise forbidden("Only the campaign GM can edit GM notes.")

    share_ids = _share_ids(data)
    tags = _check_content(
        conn,
        user,
        world_id,
        visibility,
        body,
        share_ids,
        campaign_id=campaign_id,
        character_id=character_id,
    )
    query.update(
        conn,
        "notes",
        note_id,
        {
            "body": body,
            "visibility": visibility,
            "share_with_architect": int(visibility == "GM" and bool(data.get("share_with_architect"))),
        },
        operation="notes.update",
    )
    _write_children(conn, note_id, tags, share_ids if visibility == "GM" else [])
    return _single_note(conn, user, world_id, note_id, campaign_id=campaign_id, character_id=character_id)


def delete_note(conn: sqlite3.Connection, user: User, note_id: str) -> None:
    note = _require_note(conn, note_id)
    if note["author_id"] != user.id:
        raise forbidden()
    query.delete(conn, "notes", note_id, operation="notes.delete")
