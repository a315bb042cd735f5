"""Entity endpoints.

``campaign_id`` and ``character_id`` query parameters carry the caller's
play context; they select which access rows apply.
"""

from fastapi import APIRouter

from campaign_server.api.dependencies import Connection, CurrentUser
from campaign_server.api.models import EntityRequest, OkResponse
from campaign_server.api.routes.records import add_record_routes
from campaign_server.services import entities, relationships
from campaign_server.services.records import ENTITIES


def router() -> APIRouter:
    api = APIRouter(prefix="/api/entities", tags=["entities"])

    @api.get("")
    def list_entities(
        conn: Connection,
        user: CurrentUser,
        world_id: str | None = None,
        entity_type_id: str | None = None,
        campaign_id: str | None = None,
        character_id: str | None = None,
        filters: str | None = None,
        field_keys: str | None = None,
    ):
        """List visible entities; ``filters`` is a JSON rule group."""
        return entities.list_entities(
            conn,
            user,
            world_id=world_id,
            entity_type_id=entity_type_id,
            campaign_id=campaign_id,
            character_id=character_id,
            filters=filters,
            field_keys=field_keys,
        )

    @api.post("", status_code=201)
    def create_entity(data: EntityRequest, conn: Connection, user: CurrentUser):
        return entities.create_entity(conn, user, data.model_dump(exclude_unset=True))

    @api.get("/{entity_id}")
    def get_entity(
        entity_id: str,
        conn: Connection,
        user: CurrentUser,
        campaign_id: str | None = None,
        character_id: str | None = None,
    ):
        return entities.get_entity(conn, user, entity_id, campaign_id=campaign_id, character_id=character_id)

    @api.put("/{entity_id}")
    def update_entity(
        entity_id: str,
        data: EntityRequest,
        conn: Connection,
        user: CurrentUser,
        campaign_id: str | None = None,
        character_id: str | None = None,
    ):
        return entities.update_entity(
            conn,
            user,
            entity_id,
            data.model_dump(exclude_unset=True),
            campaign_id=campaign_id or data.context_campaign_id,
            character_id=character_id or data.context_character_id,
        )

    @api.delete("/{entity_id}", response_model=OkResponse)
    def delete_entity(entity_id: str, conn: Connection, user: CurrentUser):
        entities.delete_entity(conn, user, entity_id)
        return OkResponse()

    @api.get("/{entity_id}/relationships")
    def list_relationships(
        entity_id: str,
        conn: Connection,
        user: CurrentUser,
        campaign_id: str | None = None,
        character_id: str | None = None,
        status: str | None = None,
        relationship_type_id: str | None = None,
        visibility_scope: str | None = None,
    ):
        return relationships.list_entity_relationships(
            conn,
            user,
            entity_id,
            campaign_id=campaign_id,
            character_id=character_id,
            status=status,
            relationship_type_id=relationship_type_id,
            visibility_scope=visibility_scope,
        )

    add_record_routes(api, ENTITIES)
    return api
