"""World endpoints, including the membership sets a world administers."""

from fastapi import APIRouter, HTTPException

from campaign_server.api.dependencies import Connection, CurrentUser
from campaign_server.api.models import MemberRequest, OkResponse, WorldAdminResponse, WorldRequest
from campaign_server.services import worlds


def _member_type(member_type: str) -> str:
    if member_type not in worlds.MEMBER_TABLES:
        raise HTTPException(status_code=404, detail="Not found.")
    return member_type


def router() -> APIRouter:
    api = APIRouter(prefix="/api/worlds", tags=["worlds"])

    @api.get("")
    def list_worlds(conn: Connection, user: CurrentUser):
        return worlds.list_worlds(conn, user)

    @api.post("", status_code=201)
    def create_world(data: WorldRequest, conn: Connection, user: CurrentUser):
        return worlds.create_world(conn, user, data.model_dump(exclude_unset=True))

    @api.get("/{world_id}")
    def get_world(world_id: str, conn: Connection, user: CurrentUser):
        return worlds.get_world(conn, user, world_id)

    @api.get("/{world_id}/world-admin", response_model=WorldAdminResponse)
    def world_admin(world_id: str, conn: Connection, user: CurrentUser):
        """Whether the caller may administer the world (admin or architect)."""
        return WorldAdminResponse(can_manage=worlds.is_world_admin(conn, user, world_id))

    @api.put("/{world_id}")
    def update_world(world_id: str, data: WorldRequest, conn: Connection, user: CurrentUser):
        return worlds.update_world(conn, user, world_id, data.model_dump(exclude_unset=True))

    @api.delete("/{world_id}", response_model=OkResponse)
    def delete_world(world_id: str, conn: Connection, user: CurrentUser):
        worlds.delete_world(conn, user, world_id)
        return OkResponse()

    # ========================================================================
    # MEMBERSHIP (architects, game-masters, campaign-creators, character-creators)
    # ========================================================================

    @api.get("/{world_id}/{member_type}")
    def list_members(world_id: str, member_type: str, conn: Connection, user: CurrentUser):
        return worlds.list_members(conn, user, world_id, _member_type(member_type))

    @api.post("/{world_id}/{member_type}", response_model=OkResponse, status_code=201)
    def add_member(
        world_id: str, member_type: str, request: MemberRequest, conn: Connection, user: CurrentUser
    ):
        worlds.add_member(conn, user, world_id, _member_type(member_type), request.user_id)
        return OkResponse()

    @api.delete("/{world_id}/{member_type}/{user_id}", response_model=OkResponse)
    def remove_member(
        world_id: str, member_type: str, user_id: str, conn: Connection, user: CurrentUser
    ):
        worlds.remove_member(conn, user, world_id, _member_type(member_type), user_id)
        return OkResponse()

    return api
