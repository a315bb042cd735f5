"""Location type endpoints: types, per-type stats, fields and parent rules."""

from fastapi import APIRouter

from campaign_server.api.dependencies import Connection, CurrentUser
from campaign_server.api.models import (
    LocationTypeFieldRequest,
    LocationTypeRequest,
    LocationTypeRuleRequest,
    OkResponse,
)
from campaign_server.services import location_types


def router() -> APIRouter:
    api = APIRouter(prefix="/api", tags=["location-types"])

    @api.get("/location-types")
    def list_location_types(conn: Connection, user: CurrentUser, world_id: str | None = None):
        return location_types.list_location_types(conn, user, world_id=world_id)

    @api.post("/location-types", status_code=201)
    def create_location_type(data: LocationTypeRequest, conn: Connection, user: CurrentUser):
        return location_types.create_location_type(conn, user, data.model_dump(exclude_unset=True))

    @api.get("/location-types/{location_type_id}")
    def get_location_type(location_type_id: str, conn: Connection, user: CurrentUser):
        return location_types.get_location_type(conn, user, location_type_id)

    @api.put("/location-types/{location_type_id}")
    def update_location_type(location_type_id: str, data: LocationTypeRequest, conn: Connection, user: CurrentUser):
        return location_types.update_location_type(conn, user, location_type_id, data.model_dump(exclude_unset=True))

    @api.delete("/location-types/{location_type_id}", response_model=OkResponse)
    def delete_location_type(location_type_id: str, conn: Connection, user: CurrentUser):
        location_types.delete_location_type(conn, user, location_type_id)
        return OkResponse()

    @api.get("/location-type-stats")
    def location_type_stats(
        conn: Connection,
        user: CurrentUser,
        world_id: str | None = None,
        campaign_id: str | None = None,
        character_id: str | None = None,
    ):
        return location_types.location_type_stats(
            conn, user, world_id=world_id, campaign_id=campaign_id, character_id=character_id
        )

    # ========================================================================
    # FIELDS
    # ========================================================================

    @api.get("/location-type-fields")
    def list_fields(conn: Connection, user: CurrentUser, location_type_id: str | None = None):
        return location_types.list_fields(conn, user, location_type_id=location_type_id)

    @api.post("/location-type-fields", status_code=201)
    def create_field(data: LocationTypeFieldRequest, conn: Connection, user: CurrentUser):
        return location_types.create_field(conn, user, data.model_dump(exclude_unset=True))

    @api.get("/location-type-fields/{field_id}")
    def get_field(field_id: str, conn: Connection, user: CurrentUser):
        return location_types.get_field(conn, user, field_id)

    @api.put("/location-type-fields/{field_id}")
    def update_field(field_id: str, data: LocationTypeFieldRequest, conn: Connection, user: CurrentUser):
        return location_types.update_field(conn, user, field_id, data.model_dump(exclude_unset=True))

    @api.delete("/location-type-fields/{field_id}", response_model=OkResponse)
    def delete_field(field_id: str, conn: Connection, user: CurrentUser):
        location_types.delete_field(conn, user, field_id)
        return OkResponse()

    # ========================================================================
    # PARENT RULES
    # ========================================================================

    @api.get("/location-type-rules")
    def list_rules(conn: Connection, user: CurrentUser, world_id: str | None = None):
        return location_types.list_rules(conn, user, world_id=world_id)

    @api.post("/location-type-rules", status_code=201)
    def create_rule(data: LocationTypeRuleRequest, conn: Connection, user: CurrentUser):
        return location_types.create_rule(conn, user, data.model_dump(exclude_unset=True))

    @api.get("/location-type-rules/{rule_id}")
    def get_rule(rule_id: str, conn: Connection, user: CurrentUser):
        return location_types.get_rule(conn, user, rule_id)

    @api.put("/location-type-rules/{rule_id}")
    def update_rule(rule_id: str, data: LocationTypeRuleRequest, conn: Connection, user: CurrentUser):
        return location_types.update_rule(conn, user, rule_id, data.model_dump(exclude_unset=True))

    @api.delete("/location-type-rules/{rule_id}", response_model=OkResponse)
    def delete_rule(rule_id: str, conn: Connection, user: CurrentUser):
        location_types.delete_rule(conn, user, rule_id)
        return OkResponse()

    return api
