"""Character endpoints."""

from fastapi import APIRouter

from campaign_server.api.dependencies import Connection, CurrentUser
from campaign_server.api.models import CharacterRequest, OkResponse
from campaign_server.services import characters


def router() -> APIRouter:
    api = APIRouter(prefix="/api/characters", tags=["characters"])

    @api.get("")
    def list_characters(
        conn: Connection,
        user: CurrentUser,
        world_id: str | None = None,
        campaign_id: str | None = None,
        character_id: str | None = None,
    ):
        return characters.list_characters(
            conn, user, world_id=world_id, campaign_id=campaign_id, character_id=character_id
        )

    @api.post("", status_code=201)
    def create_character(data: CharacterRequest, conn: Connection, user: CurrentUser):
        return characters.create_character(conn, user, data.model_dump(exclude_unset=True))

    @api.get("/{character_id}")
    def get_character(character_id: str, conn: Connection, user: CurrentUser):
        return characters.get_character(conn, user, character_id)

    @api.put("/{character_id}")
    def update_character(character_id: str, data: CharacterRequest, conn: Connection, user: CurrentUser):
        return characters.update_character(conn, user, character_id, data.model_dump(exclude_unset=True))

    @api.delete("/{character_id}", response_model=OkResponse)
    def delete_character(character_id: str, conn: Connection, user: CurrentUser):
        characters.delete_character(conn, user, character_id)
        return OkResponse()

    return api
