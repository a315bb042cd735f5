"""Location endpoints."""

from fastapi import APIRouter

from campaign_server.api.dependencies import Connection, CurrentUser
from campaign_server.api.models import LocationRequest, OkResponse
from campaign_server.api.routes.records import add_record_routes
from campaign_server.services import locations
from campaign_server.services.records import LOCATIONS


def router() -> APIRouter:
    api = APIRouter(prefix="/api/locations", tags=["locations"])

    @api.get("")
    def list_locations(
        conn: Connection,
        user: CurrentUser,
        world_id: str | None = None,
        location_type_id: str | None = None,
        parent_location_id: str | None = None,
        campaign_id: str | None = None,
        character_id: str | None = None,
        filters: str | None = None,
        field_keys: str | None = None,
    ):
        return locations.list_locations(
            conn,
            user,
            world_id=world_id,
            location_type_id=location_type_id,
            parent_location_id=parent_location_id,
            campaign_id=campaign_id,
            character_id=character_id,
            filters=filters,
            field_keys=field_keys,
        )

    @api.post("", status_code=201)
    def create_location(data: LocationRequest, conn: Connection, user: CurrentUser):
        return locations.create_location(conn, user, data.model_dump(exclude_unset=True))

    @api.get("/{location_id}")
    def get_location(
        location_id: str,
        conn: Connection,
        user: CurrentUser,
        campaign_id: str | None = None,
        character_id: str | None = None,
    ):
        return locations.get_location(
            conn, user, location_id, campaign_id=campaign_id, character_id=character_id
        )

    @api.put("/{location_id}")
    def update_location(
        location_id: str,
        data: LocationRequest,
        conn: Connection,
        user: CurrentUser,
        campaign_id: str | None = None,
        character_id: str | None = None,
    ):
        return locations.update_location(
            conn,
            user,
            location_id,
            data.model_dump(exclude_unset=True),
            campaign_id=campaign_id or data.context_campaign_id,
            character_id=character_id or data.context_character_id,
        )

    @api.delete("/{location_id}", response_model=OkResponse)
    def delete_location(location_id: str, conn: Connection, user: CurrentUser):
        locations.delete_location(conn, user, location_id)
        return OkResponse()

    add_record_routes(api, LOCATIONS)
    return api
