"""Relationship endpoints: types, type rules and relationships between entities.

The per-entity listing lives under ``/api/entities/{id}/relationships``.
"""

from fastapi import APIRouter

from campaign_server.api.dependencies import Connection, CurrentUser
from campaign_server.api.models import (
    OkResponse,
    RelationshipRequest,
    RelationshipRuleRequest,
    RelationshipTypeRequest,
)
from campaign_server.services import relationships


def router() -> APIRouter:
    api = APIRouter(prefix="/api", tags=["relationships"])

    @api.get("/relationship-types")
    def list_relationship_types(conn: Connection, user: CurrentUser, world_id: str | None = None):
        return relationships.list_relationship_types(conn, user, world_id=world_id)

    @api.post("/relationship-types", status_code=201)
    def create_relationship_type(data: RelationshipTypeRequest, conn: Connection, user: CurrentUser):
        return relationships.create_relationship_type(conn, user, data.model_dump(exclude_unset=True))

    @api.get("/relationship-types/{relationship_type_id}")
    def get_relationship_type(relationship_type_id: str, conn: Connection, user: CurrentUser):
        return relationships.get_relationship_type(conn, user, relationship_type_id)

    @api.put("/relationship-types/{relationship_type_id}")
    def update_relationship_type(
        relationship_type_id: str, data: RelationshipTypeRequest, conn: Connection, user: CurrentUser
    ):
        return relationships.update_relationship_type(conn, user, relationship_type_id, data.model_dump(exclude_unset=True))

    @api.delete("/relationship-types/{relationship_type_id}", response_model=OkResponse)
    def delete_relationship_type(relationship_type_id: str, conn: Connection, user: CurrentUser):
        relationships.delete_relationship_type(conn, user, relationship_type_id)
        return OkResponse()

    # ========================================================================
    # TYPE RULES
    # ========================================================================

    @api.get("/relationship-type-rules")
    def list_rules(
        conn: Connection,
        user: CurrentUser,
        world_id: str | None = None,
        relationship_type_id: str | None = None,
    ):
        return relationships.list_rules(
            conn, user, world_id=world_id, relationship_type_id=relationship_type_id
        )

    @api.post("/relationship-type-rules", status_code=201)
    def create_rules(data: RelationshipRuleRequest, conn: Connection, user: CurrentUser):
        return relationships.create_rules(conn, user, data.model_dump(exclude_unset=True))

    @api.get("/relationship-type-rules/{rule_id}")
    def get_rule(rule_id: str, conn: Connection, user: CurrentUser):
        return relationships.get_rule(conn, user, rule_id)

    @api.put("/relationship-type-rules/{rule_id}")
    def update_rule(rule_id: str, data: RelationshipRuleRequest, conn: Connection, user: CurrentUser):
        return relationships.update_rule(conn, user, rule_id, data.model_dump(exclude_unset=True))

    @api.delete("/relationship-type-rules/{rule_id}", response_model=OkResponse)
    def delete_rule(rule_id: str, conn: Connection, user: CurrentUser):
        relationships.delete_rule(conn, user, rule_id)
        return OkResponse()

    # ========================================================================
    # RELATIONSHIPS
    # ========================================================================

    @api.post("/relationships", status_code=201)
    def create_relationship(data: RelationshipRequest, conn: Connection, user: CurrentUser):
        return relationships.create_relationship(conn, user, data.model_dump(exclude_unset=True))

    @api.put("/relationships/{relationship_id}")
    def update_relationship(relationship_id: str, data: RelationshipRequest, conn: Connection, user: CurrentUser):
        """Change visibility for the relationship and its peer."""
        return relationships.update_relationship(conn, user, relationship_id, data.model_dump(exclude_unset=True))

    @api.post("/relationships/{relationship_id}/expire")
    def expire_relationship(relationship_id: str, conn: Connection, user: CurrentUser):
        return relationships.expire_relationship(conn, user, relationship_id)

    @api.delete("/relationships/{relationship_id}", response_model=OkResponse)
    def delete_relationship(relationship_id: str, conn: Connection, user: CurrentUser):
        relationships.delete_relationship(conn, user, relationship_id)
        return OkResponse()

    return api
