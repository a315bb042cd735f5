"""Campaign endpoints: CRUD, the character roster and character creators."""

from fastapi import APIRouter

from campaign_server.api.dependencies import Connection, CurrentUser
from campaign_server.api.models import CampaignRequest, MemberRequest, OkResponse, RosterRequest
from campaign_server.services import campaigns


def router() -> APIRouter:
    api = APIRouter(prefix="/api/campaigns", tags=["campaigns"])

    @api.get("")
    def list_campaigns(
        conn: Connection,
        user: CurrentUser,
        world_id: str | None = None,
        character_id: str | None = None,
    ):
        return campaigns.list_campaigns(conn, user, world_id=world_id, character_id=character_id)

    @api.post("", status_code=201)
    def create_campaign(data: CampaignRequest, conn: Connection, user: CurrentUser):
        return campaigns.create_campaign(conn, user, data.model_dump(exclude_unset=True))

    @api.get("/{campaign_id}")
    def get_campaign(campaign_id: str, conn: Connection, user: CurrentUser):
        return campaigns.get_campaign(conn, user, campaign_id)

    @api.put("/{campaign_id}")
    def update_campaign(campaign_id: str, data: CampaignRequest, conn: Connection, user: CurrentUser):
        return campaigns.update_campaign(conn, user, campaign_id, data.model_dump(exclude_unset=True))

    @api.delete("/{campaign_id}", response_model=OkResponse)
    def delete_campaign(campaign_id: str, conn: Connection, user: CurrentUser):
        campaigns.delete_campaign(conn, user, campaign_id)
        return OkResponse()

    # ========================================================================
    # ROSTER
    # ========================================================================

    @api.get("/{campaign_id}/roster")
    def list_roster(campaign_id: str, conn: Connection, user: CurrentUser):
        return campaigns.list_roster(conn, user, campaign_id)

    @api.post("/{campaign_id}/roster", status_code=201)
    def add_to_roster(campaign_id: str, request: RosterRequest, conn: Connection, user: CurrentUser):
        return campaigns.add_character(conn, user, campaign_id, request.character_id, request.status)

    @api.put("/{campaign_id}/roster/{character_id}")
    def update_roster_status(
        campaign_id: str, character_id: str, request: RosterRequest, conn: Connection, user: CurrentUser
    ):
        return campaigns.update_roster_status(conn, user, campaign_id, character_id, request.status)

    @api.delete("/{campaign_id}/roster/{character_id}", response_model=OkResponse)
    def remove_from_roster(campaign_id: str, character_id: str, conn: Connection, user: CurrentUser):
        campaigns.remove_character(conn, user, campaign_id, character_id)
        return OkResponse()

    # ========================================================================
    # CHARACTER CREATORS
    # ========================================================================

    @api.post("/{campaign_id}/character-creators", response_model=OkResponse, status_code=201)
    def add_character_creator(
        campaign_id: str, request: MemberRequest, conn: Connection, user: CurrentUser
    ):
        campaigns.add_character_creator(conn, user, campaign_id, request.user_id)
        return OkResponse()

    @api.delete("/{campaign_id}/character-creators/{user_id}", response_model=OkResponse)
    def remove_character_creator(campaign_id: str, user_id: str, conn: Connection, user: CurrentUser):
        campaigns.remove_character_creator(conn, user, campaign_id, user_id)
        return OkResponse()

    return api
