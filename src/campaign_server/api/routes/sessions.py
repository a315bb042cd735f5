"""Play session endpoints: sessions, per-author drafts, session notes and timeline."""

from fastapi import APIRouter

from campaign_server.api.dependencies import Connection, CurrentUser
from campaign_server.api.models import OkResponse, SessionContentRequest, SessionRequest
from campaign_server.services import sessions


def router() -> APIRouter:
    api = APIRouter(prefix="/api", tags=["sessions"])

    @api.get("/sessions")
    def list_sessions(
        conn: Connection,
        user: CurrentUser,
        world_id: str | None = None,
        campaign_id: str | None = None,
    ):
        return sessions.list_sessions(conn, user, world_id=world_id, campaign_id=campaign_id)

    @api.post("/sessions", status_code=201)
    def create_session(data: SessionRequest, conn: Connection, user: CurrentUser):
        return sessions.create_session(conn, user, data.model_dump(exclude_unset=True))

    @api.get("/sessions/{session_id}")
    def get_session(session_id: str, conn: Connection, user: CurrentUser):
        return sessions.get_session(conn, user, session_id)

    @api.put("/sessions/{session_id}")
    def update_session(session_id: str, data: SessionRequest, conn: Connection, user: CurrentUser):
        return sessions.update_session(conn, user, session_id, data.model_dump(exclude_unset=True))

    @api.delete("/sessions/{session_id}", response_model=OkResponse)
    def delete_session(session_id: str, conn: Connection, user: CurrentUser):
        sessions.delete_session(conn, user, session_id)
        return OkResponse()

    # ========================================================================
    # DRAFTS
    # ========================================================================

    @api.get("/sessions/{session_id}/draft")
    def get_draft(session_id: str, conn: Connection, user: CurrentUser):
        return sessions.get_draft(conn, user, session_id)

    @api.put("/sessions/{session_id}/draft")
    def save_draft(session_id: str, data: SessionContentRequest, conn: Connection, user: CurrentUser):
        return sessions.save_draft(conn, user, session_id, data.model_dump(exclude_unset=True))

    @api.delete("/sessions/{session_id}/draft", response_model=OkResponse)
    def delete_draft(session_id: str, conn: Connection, user: CurrentUser):
        sessions.delete_draft(conn, user, session_id)
        return OkResponse()

    # ========================================================================
    # SESSION NOTES
    # ========================================================================

    @api.get("/sessions/{session_id}/notes")
    def list_session_notes(session_id: str, conn: Connection, user: CurrentUser):
        return sessions.list_session_notes(conn, user, session_id)

    @api.post("/sessions/{session_id}/notes", status_code=201)
    def create_session_note(session_id: str, data: SessionContentRequest, conn: Connection, user: CurrentUser):
        return sessions.create_session_note(conn, user, session_id, data.model_dump(exclude_unset=True))

    @api.get("/sessions/{session_id}/timeline")
    def get_timeline(session_id: str, conn: Connection, user: CurrentUser):
        return sessions.get_timeline(conn, user, session_id)

    @api.put("/session-notes/{note_id}")
    def update_session_note(note_id: str, data: SessionContentRequest, conn: Connection, user: CurrentUser):
        return sessions.update_session_note(conn, user, note_id, data.model_dump(exclude_unset=True))

    return api
