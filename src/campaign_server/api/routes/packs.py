"""Pack and template administration endpoints (system admin only).

Every template resource has the same five operations; listings filter on the
owning row through ``?pack_id=`` or ``?template_id=``.
"""

from fastapi import APIRouter, Request

from campaign_server.api.dependencies import Connection, CurrentUser
from campaign_server.api.models import OkResponse, PackRequest, TemplateRequest
from campaign_server.services import packs
from campaign_server.services.packs import TemplateKind

TEMPLATE_PATHS: dict[str, TemplateKind] = {
    "entity-type-templates": packs.ENTITY_TYPE_TEMPLATES,
    "entity-type-template-fields": packs.ENTITY_TYPE_TEMPLATE_FIELDS,
    "location-type-templates": packs.LOCATION_TYPE_TEMPLATES,
    "location-type-template-fields": packs.LOCATION_TYPE_TEMPLATE_FIELDS,
    "location-type-rule-templates": packs.LOCATION_TYPE_RULE_TEMPLATES,
    "relationship-type-templates": packs.RELATIONSHIP_TYPE_TEMPLATES,
    "relationship-type-template-roles": packs.RELATIONSHIP_TYPE_TEMPLATE_ROLES,
}


def _add_template_routes(api: APIRouter, path: str, kind: TemplateKind) -> None:
    tag = [path]

    @api.get(f"/{path}", tags=tag)
    def list_templates(request: Request, conn: Connection, user: CurrentUser):
        parent_id = request.query_params.get(kind.parent_column)
        return packs.list_templates(conn, kind, user, parent_id=parent_id)

    @api.post(f"/{path}", status_code=201, tags=tag)
    def create_template(data: TemplateRequest, conn: Connection, user: CurrentUser):
        return packs.create_template(conn, kind, user, data.model_dump(exclude_unset=True))

    @api.get(f"/{path}/{{template_id}}", tags=tag)
    def get_template(template_id: str, conn: Connection, user: CurrentUser):
        return packs.get_template(conn, kind, user, template_id)

    @api.put(f"/{path}/{{template_id}}", tags=tag)
    def update_template(template_id: str, data: TemplateRequest, conn: Connection, user: CurrentUser):
        return packs.update_template(conn, kind, user, template_id, data.model_dump(exclude_unset=True))

    @api.delete(f"/{path}/{{template_id}}", response_model=OkResponse, tags=tag)
    def delete_template(template_id: str, conn: Connection, user: CurrentUser):
        packs.delete_template(conn, kind, user, template_id)
        return OkResponse()


def router() -> APIRouter:
    api = APIRouter(prefix="/api")

    @api.get("/packs", tags=["packs"])
    def list_packs(conn: Connection, user: CurrentUser):
        return packs.list_packs(conn, user)

    @api.post("/packs", status_code=201, tags=["packs"])
    def create_pack(data: PackRequest, conn: Connection, user: CurrentUser):
        return packs.create_pack(conn, user, data.model_dump(exclude_unset=True))

    @api.get("/packs/{pack_id}", tags=["packs"])
    def get_pack(pack_id: str, conn: Connection, user: CurrentUser):
        return packs.get_pack(conn, user, pack_id)

    @api.put("/packs/{pack_id}", tags=["packs"])
    def update_pack(pack_id: str, data: PackRequest, conn: Connection, user: CurrentUser):
        return packs.update_pack(conn, user, pack_id, data.model_dump(exclude_unset=True))

    @api.delete("/packs/{pack_id}", response_model=OkResponse, tags=["packs"])
    def delete_pack(pack_id: str, conn: Connection, user: CurrentUser):
        """Delete a pack; its templates go with it."""
        packs.delete_pack(conn, user, pack_id)
        return OkResponse()

    for path, kind in TEMPLATE_PATHS.items():
        _add_template_routes(api, path, kind)

    return api
