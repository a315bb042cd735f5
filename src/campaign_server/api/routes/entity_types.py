"""Entity type endpoints: types, per-type stats, form sections and fields."""

from fastapi import APIRouter

from campaign_server.api.dependencies import Connection, CurrentUser
from campaign_server.api.models import EntityFieldRequest, EntityFormSectionRequest, EntityTypeRequest, OkResponse
from campaign_server.services import entity_types


def router() -> APIRouter:
    api = APIRouter(prefix="/api", tags=["entity-types"])

    @api.get("/entity-types")
    def list_entity_types(
        conn: Connection,
        user: CurrentUser,
        world_id: str | None = None,
        include_templates: bool = False,
        templates: bool = False,
    ):
        return entity_types.list_entity_types(
            conn, user, world_id=world_id, include_templates=include_templates, templates_only=templates
        )

    @api.post("/entity-types", status_code=201)
    def create_entity_type(data: EntityTypeRequest, conn: Connection, user: CurrentUser):
        return entity_types.create_entity_type(conn, user, data.model_dump(exclude_unset=True))

    @api.get("/entity-types/{entity_type_id}")
    def get_entity_type(entity_type_id: str, conn: Connection, user: CurrentUser):
        return entity_types.get_entity_type(conn, user, entity_type_id)

    @api.put("/entity-types/{entity_type_id}")
    def update_entity_type(entity_type_id: str, data: EntityTypeRequest, conn: Connection, user: CurrentUser):
        return entity_types.update_entity_type(conn, user, entity_type_id, data.model_dump(exclude_unset=True))

    @api.delete("/entity-types/{entity_type_id}", response_model=OkResponse)
    def delete_entity_type(entity_type_id: str, conn: Connection, user: CurrentUser):
        entity_types.delete_entity_type(conn, user, entity_type_id)
        return OkResponse()

    @api.get("/entity-type-stats")
    def entity_type_stats(
        conn: Connection,
        user: CurrentUser,
        world_id: str | None = None,
        campaign_id: str | None = None,
        character_id: str | None = None,
    ):
        return entity_types.entity_type_stats(
            conn, user, world_id=world_id, campaign_id=campaign_id, character_id=character_id
        )

    # ========================================================================
    # FORM SECTIONS
    # ========================================================================

    @api.get("/entity-form-sections")
    def list_sections(conn: Connection, user: CurrentUser, entity_type_id: str | None = None):
        return entity_types.list_sections(conn, user, entity_type_id)

    @api.post("/entity-form-sections", status_code=201)
    def create_section(data: EntityFormSectionRequest, conn: Connection, user: CurrentUser):
        return entity_types.create_section(conn, user, data.model_dump(exclude_unset=True))

    @api.put("/entity-form-sections/{section_id}")
    def update_section(section_id: str, data: EntityFormSectionRequest, conn: Connection, user: CurrentUser):
        return entity_types.update_section(conn, user, section_id, data.model_dump(exclude_unset=True))

    @api.delete("/entity-form-sections/{section_id}", response_model=OkResponse)
    def delete_section(section_id: str, conn: Connection, user: CurrentUser):
        entity_types.delete_section(conn, user, section_id)
        return OkResponse()

    # ========================================================================
    # FIELDS
    # ========================================================================

    @api.get("/entity-fields")
    def list_fields(
        conn: Connection,
        user: CurrentUser,
        entity_type_id: str | None = None,
        world_id: str | None = None,
    ):
        return entity_types.list_fields(conn, user, entity_type_id=entity_type_id, world_id=world_id)

    @api.post("/entity-fields", status_code=201)
    def create_field(data: EntityFieldRequest, conn: Connection, user: CurrentUser):
        return entity_types.create_field(conn, user, data.model_dump(exclude_unset=True))

    @api.get("/entity-fields/{field_id}")
    def get_field(field_id: str, conn: Connection, user: CurrentUser):
        return entity_types.get_field(conn, user, field_id)

    @api.put("/entity-fields/{field_id}")
    def update_field(field_id: str, data: EntityFieldRequest, conn: Connection, user: CurrentUser):
        return entity_types.update_field(conn, user, field_id, data.model_dump(exclude_unset=True))

    @api.delete("/entity-fields/{field_id}", response_model=OkResponse)
    def delete_field(field_id: str, conn: Connection, user: CurrentUser):
        entity_types.delete_field(conn, user, field_id)
        return OkResponse()

    return api
