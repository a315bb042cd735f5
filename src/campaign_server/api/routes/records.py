"""Sub-resources shared by entities and locations.

Both kinds expose the same notes, mentions, session notes, access and audit
endpoints under their own prefix; :func:`add_record_routes` registers them
for one :class:`~campaign_server.services.records.RecordKind`.
"""

from fastapi import APIRouter

from campaign_server.api.dependencies import Connection, CurrentUser
from campaign_server.api.models import AccessRequest, NoteRequest
from campaign_server.services import notes, records, sessions
from campaign_server.services.records import RecordKind


def add_record_routes(api: APIRouter, kind: RecordKind) -> None:
    @api.get("/{record_id}/notes")
    def list_notes(
        record_id: str,
        conn: Connection,
        user: CurrentUser,
        campaign_id: str | None = None,
        character_id: str | None = None,
    ):
        return notes.list_notes(
            conn, kind, user, record_id, campaign_id=campaign_id, character_id=character_id
        )

    @api.post("/{record_id}/notes", status_code=201)
    def create_note(record_id: str, data: NoteRequest, conn: Connection, user: CurrentUser):
        return notes.create_note(conn, kind, user, record_id, data.model_dump(exclude_unset=True))

    @api.get("/{record_id}/mentions")
    def list_mentions(
        record_id: str,
        conn: Connection,
        user: CurrentUser,
        campaign_id: str | None = None,
        character_id: str | None = None,
    ):
        return notes.list_mentions(
            conn, kind, user, record_id, campaign_id=campaign_id, character_id=character_id
        )

    @api.get("/{record_id}/session-notes")
    def list_session_notes(record_id: str, conn: Connection, user: CurrentUser):
        return sessions.list_record_session_notes(conn, kind, user, record_id)

    @api.get("/{record_id}/access")
    def get_access(record_id: str, conn: Connection, user: CurrentUser):
        return records.get_access(conn, kind, user, record_id)

    @api.put("/{record_id}/access")
    def update_access(record_id: str, data: AccessRequest, conn: Connection, user: CurrentUser):
        """Replace the access rows with ``{read, write}`` from the body."""
        return records.update_access(conn, kind, user, record_id, data.model_dump(exclude_unset=True))

    @api.get("/{record_id}/audit")
    def get_audit(record_id: str, conn: Connection, user: CurrentUser):
        return records.get_audit(conn, kind, user, record_id)
