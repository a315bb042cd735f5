"""Guided World Builder endpoints (world architects only)."""

from fastapi import APIRouter

from campaign_server.api.dependencies import Connection, CurrentUser
from campaign_server.api.models import ApplyPackRequest, ApplyPackResponse
from campaign_server.services import world_builder


def router() -> APIRouter:
    api = APIRouter(prefix="/api/world-builder", tags=["world-builder"])

    @api.get("/packs")
    def list_packs(conn: Connection, user: CurrentUser, world_id: str | None = None):
        return world_builder.list_packs(conn, user, world_id=world_id)

    @api.get("/packs/{pack_id}")
    def get_pack(pack_id: str, conn: Connection, user: CurrentUser, world_id: str | None = None):
        """Active pack with its templates nested for the builder screens."""
        return world_builder.get_pack(conn, user, pack_id, world_id=world_id)

    @api.post("/apply", response_model=ApplyPackResponse)
    def apply_pack(data: ApplyPackRequest, conn: Connection, user: CurrentUser):
        return world_builder.apply_pack(conn, user, data.model_dump(exclude_unset=True))

    return api
