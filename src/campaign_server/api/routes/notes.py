"""Note edit and delete endpoints (listing and creation hang off each record)."""

from fastapi import APIRouter

from campaign_server.api.dependencies import Connection, CurrentUser
from campaign_server.api.models import NoteRequest, OkResponse
from campaign_server.services import notes


def router() -> APIRouter:
    api = APIRouter(prefix="/api/notes", tags=["notes"])

    @api.put("/{note_id}")
    def update_note(note_id: str, data: NoteRequest, conn: Connection, user: CurrentUser):
        return notes.update_note(conn, user, note_id, data.model_dump(exclude_unset=True))

    @api.delete("/{note_id}", response_model=OkResponse)
    def delete_note(note_id: str, conn: Connection, user: CurrentUser):
        notes.delete_note(conn, user, note_id)
        return OkResponse()

    return api
