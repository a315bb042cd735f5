"""Campaign play sessions, per-author drafts, published session notes and the timeline."""

from __future__ import annotations

import re
import sqlite3
from typing import Any

from campaign_server.db import query
from campaign_server.services import permissions, records
from campaign_server.services.errors import bad_request, forbidden, not_found
from campaign_server.services.notes import TAG_PATTERN
from campaign_server.services.permissions import User
from campaign_server.services.records import ENTITIES, LOCATIONS, RecordKind

SESSION_NOTE_VISIBILITIES = ("SHARED", "PRIVATE")

_REFERENCE_KINDS = {"entity": ENTITIES, "location": LOCATIONS}
_NEWLINES = re.compile(r"\r\n")


def resolve_visibility(value: Any) -> str:
    return "PRIVATE" if value == "PRIVATE" else "SHARED"


def extract_references(text: str) -> list[dict[str, str]]:
    """Unique ``[{target_type, target_id, label}]`` in first-seen order."""
    references: list[dict[str, str]] = []
    seen: set[tuple[str, str]] = set()
    for label, raw_type, target_id in TAG_PATTERN.findall(text or ""):
        target_type = "location" if raw_type == "location" else "entity"
        if (target_type, target_id) in seen:
            continue
        seen.add((target_type, target_id))
        references.append({"target_type": target_type, "target_id": target_id, "label": label})
    return references


def normalize_content(value: Any) -> dict[str, Any] | None:
    """Return the canonical draft/note document, or ``None`` when malformed."""
    if not isinstance(value, dict) or not isinstance(value.get("text"), str):
        return None
    text = _NEWLINES.sub("\n", value["text"])
    return {
        "version": 1,
        "format": "markdown",
        "text": text,
        "references": extract_references(text),
    }


# ============================================================================
# SESSIONS
# ============================================================================


def _can_access(conn: sqlite3.Connection, user: User, campaign_id: str) -> bool:
    return user.is_admin or permissions.can_access_campaign(conn, user.id, campaign_id)


def _require_campaign_access(conn: sqlite3.Connection, user: User, campaign_id: str) -> None:
    if not _can_access(conn, user, campaign_id):
        raise forbidden()


_SESSION_SELECT = """
    SELECT s.*, (SELECT COUNT(*) FROM session_notes n WHERE n.session_id = s.id) AS note_count
    FROM sessions s
"""


def require_session(conn: sqlite3.Connection, session_id: str) -> dict[str, Any]:
    session = query.fetch_one(
        conn, f"{_SESSION_SELECT} WHERE s.id = ?", (session_id,), operation="sessions.get"  # nosec B608
    )
    if session is None:
        raise not_found("Session not found.")
    if not session["campaign_id"]:
        raise bad_request("Session is missing a campaign context.")
    return session


def list_sessions(
    conn: sqlite3.Connection, user: User, *, world_id: str | None = None, campaign_id: str | None = None
) -> list[dict[str, Any]]:
    if not world_id or not campaign_id:
        raise bad_request("world_id and campaign_id are required.")
    _require_campaign_access(conn, user, campaign_id)
    return query.fetch_all(
        conn,
        f"{_SESSION_SELECT} WHERE s.world_id = ? AND s.campaign_id = ? ORDER BY s.created_at DESC",  # nosec B608
        (world_id, campaign_id),
        operation="sessions.list",
    )


def get_session(conn: sqlite3.Connection, user: User, session_id: str) -> dict[str, Any]:
    session = require_session(conn, session_id)
    _require_campaign_access(conn, user, session["campaign_id"])
    return session


def create_session(conn: sqlite3.Connection, user: User, data: dict[str, Any]) -> dict[str, Any]:
    world_id = data.get("world_id")
    campaign_id = data.get("campaign_id")
    title = (data.get("title") or "").strip()
    if not world_id or not campaign_id or not title:
        raise bad_request("world_id, campaign_id, and title are required.")
    _require_campaign_access(conn, user, campaign_id)
    campaign_world = query.fetch_value(
        conn, "SELECT world_id FROM campaigns WHERE id = ?", (campaign_id,), operation="sessions.campaign"
    )
    if campaign_world != world_id:
        raise bad_request("Campaign world mismatch.")
    now = query.utc_now()
    session_id = query.insert(
        conn,
        "sessions",
        {
            "world_id": world_id,
            "campaign_id": campaign_id,
            "title": title,
            "started_at": data.get("started_at") or None,
            "ended_at": data.get("ended_at") or None,
            "created_at": now,
            "updated_at": now,
        },
        operation="sessions.create",
    )
    return require_session(conn, session_id)


def update_session(conn: sqlite3.Connection, user: User, session_id: str, data: dict[str, Any]) -> dict[str, Any]:
    session = require_session(conn, session_id)
    _require_campaign_access(conn, user, session["campaign_id"])
    columns: dict[str, Any] = {}
    if data.get("title"):
        columns["title"] = data["title"].strip()
    for key in ("started_at", "ended_at"):
        if key in data:
            columns[key] = data[key] or None
    query.update(conn, "sessions", session_id, columns, operation="sessions.update")
    return require_session(conn, session_id)


def delete_session(conn: sqlite3.Connection, user: User, session_id: str) -> None:
    session = require_session(conn, session_id)
    _require_campaign_access(conn, user, session["campaign_id"])
    query.delete(conn, "sessions", session_id, operation="sessions.delete")


def _session_for_user(conn: sqlite3.Connection, user: User, session_id: str) -> dict[str, Any]:
    """Session note endpoints hide inaccessible sessions behind a 404."""
    session = query.fetch_one(
        conn,
        "SELECT id, world_id, campaign_id, title FROM sessions WHERE id = ?",
        (session_id,),
        operation="sessions.for_user",
    )
    if session is None or not session["campaign_id"] or not _can_access(conn, user, session["campaign_id"]):
        raise not_found("Session not found.")
    return session


def _can_see_private(conn: sqlite3.Connection, user: User, session: dict[str, Any]) -> bool:
    return (
        user.is_admin
        or permissions.is_campaign_gm(conn, user.id, session["campaign_id"])
        or permissions.is_world_architect(conn, user.id, session["world_id"])
        or permissions.is_world_game_master(conn, user.id, session["world_id"])
    )


# ============================================================================
# DRAFTS
# ============================================================================


def _present_draft(draft: dict[str, Any] | None) -> dict[str, Any]:
    if draft is None:
        return {"content": None, "visibility": "SHARED", "last_saved_at": None}
    return {
        "content": query.load_json(draft["content_json"]),
        "visibility": draft["visibility"],
        "last_saved_at": draft["last_saved_at"],
    }


def _load_draft(conn: sqlite3.Connection, session_id: str, author_id: str) -> dict[str, Any] | None:
    return query.fetch_one(
        conn,
        "SELECT * FROM session_note_drafts WHERE session_id = ? AND author_id = ?",
        (session_id, author_id),
        operation="session_drafts.get",
    )


def _clear_draft(conn: sqlite3.Connection, session_id: str, author_id: str) -> None:
    query.execute(
        conn,
        "DELETE FROM session_note_drafts WHERE session_id = ? AND author_id = ?",
        (session_id, author_id),
        operation="session_drafts.delete",
    )


def get_draft(conn: sqlite3.Connection, user: User, session_id: str) -> dict[str, Any]:
    session = _session_for_user(conn, user, session_id)
    return _present_draft(_load_draft(conn, session["id"], user.id))


def save_draft(conn: sqlite3.Connection, user: User, session_id: str, data: dict[str, Any]) -> dict[str, Any]:
    session = _session_for_user(conn, user, session_id)
    content = normalize_content(data.get("content"))
    if content is None:
        raise bad_request("Invalid draft content.")
    query.execute(
        conn,
        """
        INSERT INTO session_note_drafts (id, session_id, author_id, content_json, visibility, last_saved_at)
        VALUES (?, ?, ?, ?, ?, ?)
        ON CONFLICT (session_id, author_id) DO UPDATE SET
            content_json = excluded.content_json,
            visibility = excluded.visibility,
            last_saved_at = excluded.last_saved_at
        """,
        (
            query.new_id(),
            session["id"],
            user.id,
            query.dump_json(content),
            resolve_visibility(data.get("visibility")),
            query.utc_now(),
        ),
        operation="session_drafts.upsert",
    )
    return _present_draft(_load_draft(conn, session["id"], user.id))


def delete_draft(conn: sqlite3.Connection, user: User, session_id: str) -> None:
    session = _session_for_user(conn, user, session_id)
    _clear_draft(conn, session["id"], user.id)


# ============================================================================
# SESSION NOTES
# ============================================================================


def _note_rows(conn: sqlite3.Connection, where: str, params: tuple[Any, ...]) -> list[dict[str, Any]]:
    rows = query.fetch_all(
        conn,
        f"""
        SELECT n.*, u.name AS author_name, u.email AS author_email,
               s.world_id, s.campaign_id, s.title AS session_title
        FROM session_notes n
        JOIN users u ON u.id = n.author_id
        JOIN sessions s ON s.id = n.session_id
        WHERE {where}
        ORDER BY n.created_at DESC
        """,  # nosec B608
        params,
        operation="session_notes.list",
    )
    if not rows:
        return rows
    note_ids = [row["id"] for row in rows]
    references: dict[str, list[dict[str, Any]]] = {note_id: [] for note_id in note_ids}
    for ref in query.fetch_all(
        conn,
        f"SELECT * FROM session_note_references WHERE session_note_id IN ({query.placeholders(note_ids)}) "  # nosec B608
        "ORDER BY rowid",
        note_ids,
        operation="session_notes.references",
    ):
        references[ref["session_note_id"]].append(ref)
    for row in rows:
        row["references"] = references[row["id"]]
    return rows


def _present_note(note: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": note["id"],
        "content": query.load_json(note["content_json"]),
        "visibility": note["visibility"],
        "created_at": note["created_at"],
        "updated_at": note["updated_at"],
        "author": {"id": note["author_id"], "name": note["author_name"], "email": note["author_email"]},
        "session": {
            "id": note["session_id"],
            "world_id": note["world_id"],
            "campaign_id": note["campaign_id"],
            "title": note["session_title"],
        },
        "references": [
            {
                "id": ref["id"],
                "target_type": ref["target_type"].lower(),
                "target_id": ref["target_id"],
                "label": ref["label"],
            }
            for ref in note["references"]
        ],
    }


def _check_references(
    conn: sqlite3.Connection, user: User, session: dict[str, Any], references: list[dict[str, str]]
) -> None:
    for reference in references:
        kind = _REFERENCE_KINDS[reference["target_type"]]
        if records.get_accessible(
            conn, kind, user, reference["target_id"], campaign_id=session["campaign_id"]
        ) is None:
            noun = "entities" if kind is ENTITIES else "locations"
            raise bad_request(f"One or more referenced {noun} are not accessible.")


def _write_references(conn: sqlite3.Connection, note_id: str, references: list[dict[str, str]]) -> None:
    query.execute(
        conn,
        "DELETE FROM session_note_references WHERE session_note_id = ?",
        (note_id,),
        operation="session_notes.clear_references",
    )
    for reference in references:
        query.insert(
            conn,
            "session_note_references",
            {
                "session_note_id": note_id,
                "target_type": reference["target_type"].upper(),
                "target_id": reference["target_id"],
                "label": reference["label"],
            },
            operation="session_notes.insert_reference",
        )


def _published_content(data: dict[str, Any]) -> dict[str, Any]:
    content = normalize_content(data.get("content"))
    if content is None or not content["text"].strip():
        raise bad_request("Session note content is required.")
    return content


def list_session_notes(conn: sqlite3.Connection, user: User, session_id: str) -> list[dict[str, Any]]:
    session = _session_for_user(conn, user, session_id)
    where, params = "n.session_id = ?", (session["id"],)
    if not _can_see_private(conn, user, session):
        where += " AND (n.visibility = 'SHARED' OR n.author_id = ?)"
        params = (session["id"], user.id)
    return [_present_note(note) for note in _note_rows(conn, where, params)]


def create_session_note(
    conn: sqlite3.Connection, user: User, session_id: str, data: dict[str, Any]
) -> dict[str, Any]:
    """Publish a note: clears the author's draft and adds a timeline entry."""
    session = _session_for_user(conn, user, session_id)
    content = _published_content(data)
    _check_references(conn, user, session, content["references"])

    now = query.utc_now()
    note_id = query.insert(
        conn,
        "session_notes",
        {
            "session_id": session["id"],
            "author_id": user.id,
            "content_json": query.dump_json(content),
            "visibility": resolve_visibility(data.get("visibility")),
            "created_at": now,
            "updated_at": now,
        },
        operation="session_notes.create",
    )
    _write_references(conn, note_id, content["references"])
    _clear_draft(conn, session["id"], user.id)
    query.insert(
        conn,
        "session_timeline_entries",
        {"session_id": session["id"], "type": "NOTE_PUBLISHED", "note_id": note_id, "created_at": now},
        operation="session_timeline.create",
    )
    return _present_note(_note_rows(conn, "n.id = ?", (note_id,))[0])


def update_session_note(
    conn: sqlite3.Connection, user: User, note_id: str, data: dict[str, Any]
) -> dict[str, Any]:
    note = query.fetch_one(
        conn, "SELECT * FROM session_notes WHERE id = ?", (note_id,), operation="session_notes.get"
    )
    if note is None:
        raise not_found("Session note not found.")
    if note["author_id"] != user.id:
        raise forbidden()
    session = _session_for_user(conn, user, note["session_id"])
    content = _published_content(data)
    _check_references(conn, user, session, content["references"])
    query.update(
        conn,
        "session_notes",
        note_id,
        {"content_json": query.dump_json(content), "visibility": resolve_visibility(data.get("visibility"))},
        operation="session_notes.update",
    )
    _write_references(conn, note_id, content["references"])
    return _present_note(_note_rows(conn, "n.id = ?", (note_id,))[0])


def get_timeline(conn: sqlite3.Connection, user: User, session_id: str) -> list[dict[str, Any]]:
    """Published-note entries, oldest first, limited to notes the caller may see."""
    session = _session_for_user(conn, user, session_id)
    visible = {note["id"]: note for note in list_session_notes(conn, user, session_id)}
    entries = query.fetch_all(
        conn,
        "SELECT * FROM session_timeline_entries WHERE session_id = ? ORDER BY created_at, rowid",
        (session["id"],),
        operation="session_timeline.list",
    )
    return [
        {**entry, "note": visible[entry["note_id"]]}
        for entry in entries
        if entry["note_id"] in visible
    ]


def list_record_session_notes(
    conn: sqlite3.Connection, kind: RecordKind, user: User, record_id: str
) -> list[dict[str, Any]]:
    """Session notes referencing a record, filtered by campaign access and privacy."""
    target_type = "ENTITY" if kind is ENTITIES else "LOCATION"
    notes = _note_rows(
        conn,
        "EXISTS (SELECT 1 FROM session_note_references r WHERE r.session_note_id = n.id "
        "AND r.target_type = ? AND r.target_id = ?) AND s.campaign_id IS NOT NULL",
        (target_type, record_id),
    )
    visible = []
    for note in notes:
        if not _can_access(conn, user, note["campaign_id"]):
            continue
        if note["visibility"] == "PRIVATE" and note["author_id"] != user.id and not _can_see_private(
            conn, user, note
        ):
            continue
        visible.append(_present_note(note))
    return visible
