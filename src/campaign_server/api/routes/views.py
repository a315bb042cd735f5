"""Metadata endpoints for the generic list/form client.

Covers view definitions and their admin editing, related lists, list view
preferences, per-type list defaults, reference lookups, capability checks and
the header context.
"""

from fastapi import APIRouter

from campaign_server.api.dependencies import Connection, CurrentUser
from campaign_server.api.models import (
    CapabilitiesResponse,
    ContextSummaryResponse,
    ListViewPreferenceRequest,
    OkResponse,
    RelatedListFieldRequest,
    RelatedListItemRequest,
    RelatedListRequest,
    ViewFieldRequest,
    ViewRequest,
)
from campaign_server.services import context, references, related_lists, views
from campaign_server.services.context import PermissionQuery
from campaign_server.services.references import ReferenceQuery


def router() -> APIRouter:
    api = APIRouter(prefix="/api", tags=["views"])

    @api.get("/views")
    def list_views(conn: Connection, user: CurrentUser):
        return views.list_views(conn, user)

    @api.get("/views/{key}")
    def get_view(key: str, conn: Connection, user: CurrentUser):
        return views.get_view(conn, user, key)

    @api.post("/views", status_code=201)
    def create_view(data: ViewRequest, conn: Connection, user: CurrentUser):
        return views.create_view(conn, user, data.model_dump(exclude_unset=True))

    @api.put("/views/{view_id}")
    def update_view(view_id: str, data: ViewRequest, conn: Connection, user: CurrentUser):
        return views.update_view(conn, user, view_id, data.model_dump(exclude_unset=True))

    @api.delete("/views/{view_id}", response_model=OkResponse)
    def delete_view(view_id: str, conn: Connection, user: CurrentUser):
        views.delete_view(conn, user, view_id)
        return OkResponse()

    @api.get("/system/view-fields")
    def list_view_fields(conn: Connection, user: CurrentUser, view_id: str | None = None):
        return views.list_view_fields(conn, user, view_id=view_id)

    @api.post("/system/view-fields", status_code=201)
    def create_view_field(data: ViewFieldRequest, conn: Connection, user: CurrentUser):
        return views.create_view_field(conn, user, data.model_dump(exclude_unset=True))

    @api.put("/system/view-fields/{field_id}")
    def update_view_field(field_id: str, data: ViewFieldRequest, conn: Connection, user: CurrentUser):
        return views.update_view_field(conn, user, field_id, data.model_dump(exclude_unset=True))

    @api.delete("/system/view-fields/{field_id}", response_model=OkResponse)
    def delete_view_field(field_id: str, conn: Connection, user: CurrentUser):
        views.delete_view_field(conn, user, field_id)
        return OkResponse()

    # ========================================================================
    # RELATED LISTS
    # ========================================================================

    @api.get("/related-lists")
    def list_related_lists(conn: Connection, user: CurrentUser, entity_key: str | None = None):
        return related_lists.list_for_entity(conn, user, entity_key)

    @api.get("/related-lists/{key}")
    def list_related_items(key: str, conn: Connection, user: CurrentUser, parent_id: str | None = None):
        return related_lists.list_items(conn, user, key, parent_id=parent_id)

    @api.post("/related-lists/{key}", status_code=201)
    def add_related_item(key: str, data: RelatedListItemRequest, conn: Connection, user: CurrentUser):
        return related_lists.add_item(conn, user, key, data.model_dump(exclude_unset=True))

    @api.delete("/related-lists/{key}", response_model=OkResponse)
    def remove_related_item(key: str, data: RelatedListItemRequest, conn: Connection, user: CurrentUser):
        """Unlink ``related_id`` from ``parent_id``; both come in the JSON body."""
        related_lists.remove_item(conn, user, key, data.model_dump(exclude_unset=True))
        return OkResponse()

    @api.get("/system/related-lists")
    def list_related_list_definitions(conn: Connection, user: CurrentUser):
        return related_lists.list_definitions(conn, user)

    @api.post("/system/related-lists", status_code=201)
    def create_related_list(data: RelatedListRequest, conn: Connection, user: CurrentUser):
        return related_lists.create_definition(conn, user, data.model_dump(exclude_unset=True))

    @api.get("/system/related-lists/{related_list_id}")
    def get_related_list(related_list_id: str, conn: Connection, user: CurrentUser):
        return related_lists.get_definition(conn, user, related_list_id)

    @api.put("/system/related-lists/{related_list_id}")
    def update_related_list(
        related_list_id: str, data: RelatedListRequest, conn: Connection, user: CurrentUser
    ):
        return related_lists.update_definition(
            conn, user, related_list_id, data.model_dump(exclude_unset=True)
        )

    @api.delete("/system/related-lists/{related_list_id}", response_model=OkResponse)
    def delete_related_list(related_list_id: str, conn: Connection, user: CurrentUser):
        related_lists.delete_definition(conn, user, related_list_id)
        return OkResponse()

    @api.get("/system/related-list-fields")
    def list_related_list_fields(
        conn: Connection, user: CurrentUser, related_list_id: str | None = None
    ):
        return related_lists.list_definition_fields(conn, user, related_list_id=related_list_id)

    @api.post("/system/related-list-fields", status_code=201)
    def create_related_list_field(data: RelatedListFieldRequest, conn: Connection, user: CurrentUser):
        return related_lists.create_definition_field(conn, user, data.model_dump(exclude_unset=True))

    @api.put("/system/related-list-fields/{field_id}")
    def update_related_list_field(
        field_id: str, data: RelatedListFieldRequest, conn: Connection, user: CurrentUser
    ):
        return related_lists.update_definition_field(
            conn, user, field_id, data.model_dump(exclude_unset=True)
        )

    @api.delete("/system/related-list-fields/{field_id}", response_model=OkResponse)
    def delete_related_list_field(field_id: str, conn: Connection, user: CurrentUser):
        related_lists.delete_definition_field(conn, user, field_id)
        return OkResponse()

    # ========================================================================
    # LIST VIEW PREFERENCES AND DEFAULTS
    # ========================================================================

    @api.get("/list-view-preferences")
    def get_list_view_preference(
        conn: Connection,
        user: CurrentUser,
        view_key: str | None = None,
        entity_type_id: str | None = None,
    ):
        return views.get_list_view_preference(conn, user, view_key=view_key, entity_type_id=entity_type_id)

    @api.put("/list-view-preferences")
    def save_list_view_preference(
        data: ListViewPreferenceRequest,
        conn: Connection,
        user: CurrentUser,
        view_key: str | None = None,
        entity_type_id: str | None = None,
    ):
        return views.save_list_view_preference(
            conn,
            user,
            data.model_dump(exclude_unset=True),
            view_key=view_key or data.view_key,
            entity_type_id=entity_type_id or data.entity_type_id,
        )

    @api.delete("/list-view-preferences", response_model=OkResponse)
    def delete_list_view_preference(
        conn: Connection,
        user: CurrentUser,
        view_key: str | None = None,
        entity_type_id: str | None = None,
    ):
        views.delete_list_view_preference(conn, user, view_key=view_key, entity_type_id=entity_type_id)
        return OkResponse()

    @api.get("/entity-type-list-defaults")
    def get_entity_type_list_defaults(
        conn: Connection, user: CurrentUser, entity_type_id: str | None = None
    ):
        return views.get_entity_type_list_defaults(conn, user, entity_type_id=entity_type_id)

    @api.put("/entity-type-list-defaults")
    def save_entity_type_list_defaults(
        data: ListViewPreferenceRequest,
        conn: Connection,
        user: CurrentUser,
        entity_type_id: str | None = None,
    ):
        return views.save_entity_type_list_defaults(
            conn,
            user,
            data.model_dump(exclude_unset=True),
            entity_type_id=entity_type_id or data.entity_type_id,
        )

    # ========================================================================
    # REFERENCES, PERMISSIONS AND CONTEXT
    # ========================================================================

    @api.get("/references")
    def search_references(
        conn: Connection,
        user: CurrentUser,
        entity_key: str | None = None,
        query: str | None = None,
        ids: str | None = None,
        scope: str | None = None,
        world_id: str | None = None,
        campaign_id: str | None = None,
        character_id: str | None = None,
        entity_type_id: str | None = None,
        entity_type_ids: str | None = None,
        location_type_id: str | None = None,
        include_entity_type_id: bool = False,
    ):
        """Up to 25 ``{id, label}`` matches for a reference picker."""
        params = ReferenceQuery(
            entity_key=entity_key or "",
            query=query,
            ids=references.split_ids(ids),
            scope=scope,
            world_id=world_id,
            campaign_id=campaign_id,
            character_id=character_id,
            entity_type_id=entity_type_id,
            entity_type_ids=references.split_ids(entity_type_ids),
            location_type_id=location_type_id,
            include_entity_type_id=include_entity_type_id,
        )
        return references.search(conn, user, params)

    @api.get("/permissions", response_model=CapabilitiesResponse)
    def record_permissions(
        conn: Connection,
        user: CurrentUser,
        entity_key: str | None = None,
        record_id: str | None = None,
        world_id: str | None = None,
        campaign_id: str | None = None,
        character_id: str | None = None,
        entity_type_id: str | None = None,
        is_template: bool = False,
    ):
        params = PermissionQuery(
            entity_key=entity_key,
            record_id=record_id,
            world_id=world_id,
            campaign_id=campaign_id,
            character_id=character_id,
            entity_type_id=entity_type_id,
            is_template=is_template,
        )
        return context.record_permissions(conn, user, params)

    @api.get("/context/summary", response_model=ContextSummaryResponse)
    def context_summary(
        conn: Connection,
        user: CurrentUser,
        world_id: str | None = None,
        campaign_id: str | None = None,
        character_id: str | None = None,
    ):
        return context.context_summary(
            conn, user, world_id=world_id, campaign_id=campaign_id, character_id=character_id
        )

    return api
