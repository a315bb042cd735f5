"""Choice list and option endpoints, plus the read-only system choices lookup."""

from fastapi import APIRouter

from campaign_server.api.dependencies import Connection, CurrentUser
from campaign_server.api.models import ChoiceListRequest, ChoiceOptionRequest, OkResponse
from campaign_server.services import choices


def router() -> APIRouter:
    api = APIRouter(prefix="/api", tags=["choices"])

    @api.get("/choices")
    def list_system_choices(conn: Connection, user: CurrentUser, list_key: str | None = None):
        """Active system choices for ``list_key``, in sort order."""
        return choices.list_system_choices(conn, list_key)

    @api.get("/choice-lists")
    def list_choice_lists(
        conn: Connection,
        user: CurrentUser,
        scope: str | None = None,
        pack_id: str | None = None,
        world_id: str | None = None,
    ):
        return choices.list_choice_lists(conn, user, scope=scope, pack_id=pack_id, world_id=world_id)

    @api.post("/choice-lists", status_code=201)
    def create_choice_list(data: ChoiceListRequest, conn: Connection, user: CurrentUser):
        return choices.create_choice_list(conn, user, data.model_dump(exclude_unset=True))

    @api.get("/choice-lists/{choice_list_id}")
    def get_choice_list(choice_list_id: str, conn: Connection, user: CurrentUser):
        return choices.get_choice_list(conn, user, choice_list_id)

    @api.put("/choice-lists/{choice_list_id}")
    def update_choice_list(choice_list_id: str, data: ChoiceListRequest, conn: Connection, user: CurrentUser):
        return choices.update_choice_list(conn, user, choice_list_id, data.model_dump(exclude_unset=True))

    @api.delete("/choice-lists/{choice_list_id}", response_model=OkResponse)
    def delete_choice_list(choice_list_id: str, conn: Connection, user: CurrentUser):
        choices.delete_choice_list(conn, user, choice_list_id)
        return OkResponse()

    # ========================================================================
    # OPTIONS
    # ========================================================================

    @api.get("/choice-options")
    def list_choice_options(conn: Connection, user: CurrentUser, choice_list_id: str | None = None):
        return choices.list_choice_options(conn, user, choice_list_id=choice_list_id)

    @api.post("/choice-options", status_code=201)
    def create_choice_option(data: ChoiceOptionRequest, conn: Connection, user: CurrentUser):
        return choices.create_choice_option(conn, user, data.model_dump(exclude_unset=True))

    @api.get("/choice-options/{option_id}")
    def get_choice_option(option_id: str, conn: Connection, user: CurrentUser):
        return choices.get_choice_option(conn, user, option_id)

    @api.put("/choice-options/{option_id}")
    def update_choice_option(option_id: str, data: ChoiceOptionRequest, conn: Connection, user: CurrentUser):
        return choices.update_choice_option(conn, user, option_id, data.model_dump(exclude_unset=True))

    @api.delete("/choice-options/{option_id}", response_model=OkResponse)
    def delete_choice_option(option_id: str, conn: Connection, user: CurrentUser):
        choices.delete_choice_option(conn, user, option_id)
        return OkResponse()

    return api
