"""System administration endpoints.

Everything here requires a system admin except the caller's own preference
endpoints under ``/api/system/user-preferences/me``.
"""

from fastapi import APIRouter

from campaign_server.api.dependencies import Connection, CurrentUser
from campaign_server.api.models import (
    ControlRequest,
    DictionaryEntryRequest,
    OkResponse,
    RoleControlsRequest,
    RoleRequest,
    SettingRequest,
    SystemChoiceRequest,
    SystemUserRequest,
    UserRolesRequest,
)
from campaign_server.services import system
from campaign_server.services.system import SettingTable


def _add_setting_routes(api: APIRouter, path: str, store: SettingTable) -> None:
    @api.get(path)
    def list_settings(conn: Connection, user: CurrentUser):
        return system.list_settings(conn, store, user)

    @api.post(path, status_code=201)
    def create_setting(data: SettingRequest, conn: Connection, user: CurrentUser):
        return system.create_setting(conn, store, user, data.model_dump(exclude_unset=True))

    @api.get(f"{path}/{{setting_id}}")
    def get_setting(setting_id: str, conn: Connection, user: CurrentUser):
        return system.get_setting(conn, store, user, setting_id)

    @api.put(f"{path}/{{setting_id}}")
    def update_setting(setting_id: str, data: SettingRequest, conn: Connection, user: CurrentUser):
        return system.update_setting(conn, store, user, setting_id, data.model_dump(exclude_unset=True))

    @api.delete(f"{path}/{{setting_id}}", response_model=OkResponse)
    def delete_setting(setting_id: str, conn: Connection, user: CurrentUser):
        system.delete_setting(conn, store, user, setting_id)
        return OkResponse()


def router() -> APIRouter:
    api = APIRouter(prefix="/api/system", tags=["system"])

    # Registered before the generic /user-preferences/{id} routes.
    @api.get("/user-preferences/me")
    def get_my_preferences(conn: Connection, user: CurrentUser):
        """Preference defaults merged with the caller's overrides."""
        return system.get_my_preferences(conn, user)

    @api.put("/user-preferences/me/{key}")
    def set_my_preference(key: str, data: SettingRequest, conn: Connection, user: CurrentUser):
        return system.set_my_preference(conn, user, key, data.model_dump(exclude_unset=True))

    _add_setting_routes(api, "/properties", system.PROPERTIES)
    _add_setting_routes(api, "/user-preferences", system.PREFERENCE_DEFAULTS)

    # ========================================================================
    # SYSTEM CHOICES
    # ========================================================================

    @api.get("/choices")
    def list_choices(conn: Connection, user: CurrentUser):
        return system.list_choices(conn, user)

    @api.post("/choices", status_code=201)
    def create_choice(data: SystemChoiceRequest, conn: Connection, user: CurrentUser):
        return system.create_choice(conn, user, data.model_dump(exclude_unset=True))

    @api.get("/choices/{choice_id}")
    def get_choice(choice_id: str, conn: Connection, user: CurrentUser):
        return system.get_choice(conn, user, choice_id)

    @api.put("/choices/{choice_id}")
    def update_choice(choice_id: str, data: SystemChoiceRequest, conn: Connection, user: CurrentUser):
        return system.update_choice(conn, user, choice_id, data.model_dump(exclude_unset=True))

    @api.delete("/choices/{choice_id}", response_model=OkResponse)
    def delete_choice(choice_id: str, conn: Connection, user: CurrentUser):
        system.delete_choice(conn, user, choice_id)
        return OkResponse()

    # ========================================================================
    # ROLES AND CONTROLS
    # ========================================================================

    @api.get("/roles")
    def list_roles(conn: Connection, user: CurrentUser):
        return system.list_roles(conn, user)

    @api.post("/roles", status_code=201)
    def create_role(data: RoleRequest, conn: Connection, user: CurrentUser):
        return system.create_role(conn, user, data.model_dump(exclude_unset=True))

    @api.get("/roles/{role_id}")
    def get_role(role_id: str, conn: Connection, user: CurrentUser):
        return system.get_role(conn, user, role_id)

    @api.put("/roles/{role_id}")
    def update_role(role_id: str, data: RoleRequest, conn: Connection, user: CurrentUser):
        return system.update_role(conn, user, role_id, data.model_dump(exclude_unset=True))

    @api.delete("/roles/{role_id}", response_model=OkResponse)
    def delete_role(role_id: str, conn: Connection, user: CurrentUser):
        system.delete_role(conn, user, role_id)
        return OkResponse()

    @api.put("/roles/{role_id}/controls")
    def set_role_controls(role_id: str, data: RoleControlsRequest, conn: Connection, user: CurrentUser):
        """Replace the role's controls with ``control_ids``."""
        return system.set_role_controls(conn, user, role_id, data.model_dump(exclude_unset=True))

    @api.get("/controls")
    def list_controls(conn: Connection, user: CurrentUser):
        return system.list_controls(conn, user)

    @api.post("/controls", status_code=201)
    def create_control(data: ControlRequest, conn: Connection, user: CurrentUser):
        return system.create_control(conn, user, data.model_dump(exclude_unset=True))

    @api.get("/controls/{control_id}")
    def get_control(control_id: str, conn: Connection, user: CurrentUser):
        return system.get_control(conn, user, control_id)

    @api.put("/controls/{control_id}")
    def update_control(control_id: str, data: ControlRequest, conn: Connection, user: CurrentUser):
        return system.update_control(conn, user, control_id, data.model_dump(exclude_unset=True))

    @api.delete("/controls/{control_id}", response_model=OkResponse)
    def delete_control(control_id: str, conn: Connection, user: CurrentUser):
        system.delete_control(conn, user, control_id)
        return OkResponse()

    # ========================================================================
    # DICTIONARY
    # ========================================================================

    @api.get("/dictionary")
    def list_dictionary(conn: Connection, user: CurrentUser, entity_key: str | None = None):
        return system.list_dictionary(conn, user, entity_key=entity_key)

    @api.post("/dictionary", status_code=201)
    def create_dictionary_entry(data: DictionaryEntryRequest, conn: Connection, user: CurrentUser):
        return system.create_dictionary_entry(conn, user, data.model_dump(exclude_unset=True))

    @api.put("/dictionary/{entry_id}")
    def update_dictionary_entry(
        entry_id: str, data: DictionaryEntryRequest, conn: Connection, user: CurrentUser
    ):
        return system.update_dictionary_entry(conn, user, entry_id, data.model_dump(exclude_unset=True))

    @api.delete("/dictionary/{entry_id}", response_model=OkResponse)
    def delete_dictionary_entry(entry_id: str, conn: Connection, user: CurrentUser):
        system.delete_dictionary_entry(conn, user, entry_id)
        return OkResponse()

    # ========================================================================
    # USERS
    # ========================================================================

    @api.get("/users")
    def list_users(conn: Connection, user: CurrentUser):
        return system.list_users(conn, user)

    @api.post("/users", status_code=201)
    def create_user(data: SystemUserRequest, conn: Connection, user: CurrentUser):
        return system.create_user(conn, user, data.model_dump(exclude_unset=True))

    @api.get("/users/{user_id}")
    def get_user(user_id: str, conn: Connection, user: CurrentUser):
        return system.get_user(conn, user, user_id)

    @api.put("/users/{user_id}")
    def update_user(user_id: str, data: SystemUserRequest, conn: Connection, user: CurrentUser):
        return system.update_user(conn, user, user_id, data.model_dump(exclude_unset=True))

    @api.delete("/users/{user_id}", response_model=OkResponse)
    def delete_user(user_id: str, conn: Connection, user: CurrentUser):
        system.delete_user(conn, user, user_id)
        return OkResponse()

    @api.put("/users/{user_id}/roles")
    def set_user_roles(user_id: str, data: UserRolesRequest, conn: Connection, user: CurrentUser):
        """Replace the user's system roles with ``role_ids``."""
        return system.set_user_roles(conn, user, user_id, data.model_dump(exclude_unset=True))

    # ========================================================================
    # AUDIT
    # ========================================================================

    @api.get("/audit")
    def list_audit(
        conn: Connection,
        user: CurrentUser,
        entity_key: str | None = None,
        entity_id: str | None = None,
    ):
        return system.list_audit(conn, user, entity_key=entity_key, entity_id=entity_id)

    return api
