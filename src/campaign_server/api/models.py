"""
Pydantic models for API requests and responses.

Request models declare the type of every key a route accepts so that a
wrongly typed value is rejected with a 422 before it reaches the service
layer. Routes hand the service ``model_dump(exclude_unset=True)``, which keeps
the difference between "key omitted" and "key sent as null" that partial
updates rely on.

Optional fields default to ``None`` so that a missing value reaches the
service and produces its own 400 message instead of a generic 422. Keys the
service validates itself (JSON blobs, id lists with their own error message)
are typed ``Any``.
"""

from typing import Any

from pydantic import BaseModel

# ============================================================================
# REQUEST MODELS (Client → Server)
# ============================================================================


class LoginRequest(BaseModel):
    """
    Login request.

    Attributes:
        email: Account email (matched case-insensitively)
        password: Plain text password (verified against the bcrypt hash)
    """

    email: str | None = None
    password: str | None = None


class MemberRequest(BaseModel):
    """Add a user to a world or campaign membership set."""

    user_id: str | None = None


class RosterRequest(BaseModel):
    """
    Add a character to a campaign roster or change its status.

    Attributes:
        character_id: Character to add (ignored on status updates)
        status: ACTIVE or INACTIVE; anything else is stored as ACTIVE
    """

    character_id: str | None = None
    status: str | None = None


class AccessRequest(BaseModel):
    """
    Record access replacement.

    Attributes:
        read: ``{global, campaigns, characters}`` scopes granting READ
        write: Same shape for WRITE
    """

    read: dict[str, Any] | None = None
    write: dict[str, Any] | None = None


# ----------------------------------------------------------------------------
# Worlds, campaigns and characters
# ----------------------------------------------------------------------------


class WorldRequest(BaseModel):
    """
    Create or update a world.

    Attributes:
        primary_architect_id: Admin only; defaults to the caller on create
        entity_permission_scope: GLOBAL or CAMPAIGN_ONLY
        character_creator_ids: Replaces the world's character creator set
    """

    name: str | None = None
    description: str | None = None
    dm_label_key: str | None = None
    theme_key: str | None = None
    primary_architect_id: str | None = None
    entity_permission_scope: str | None = None
    character_creator_ids: list[str] | None = None


class CampaignRequest(BaseModel):
    world_id: str | None = None
    name: str | None = None
    description: str | None = None
    gm_user_id: str | None = None
    character_ids: list[str] | None = None


class CharacterRequest(BaseModel):
    world_id: str | None = None
    campaign_id: str | None = None
    name: str | None = None
    description: str | None = None
    status_key: str | None = None
    player_id: str | None = None


# ----------------------------------------------------------------------------
# Entities, locations and their type metadata
# ----------------------------------------------------------------------------


class EntityRequest(BaseModel):
    """
    Create or update an entity.

    Attributes:
        field_values: ``{field_key: value}``, validated per field type
        access: ``{read, write}`` scopes; omitted means the default scope
    """

    world_id: str | None = None
    entity_type_id: str | None = None
    name: str | None = None
    description: str | None = None
    context_campaign_id: str | None = None
    context_character_id: str | None = None
    current_location_id: str | None = None
    field_values: dict[str, Any] | None = None
    access: dict[str, Any] | None = None


class LocationRequest(BaseModel):
    world_id: str | None = None
    location_type_id: str | None = None
    name: str | None = None
    description: str | None = None
    status: str | None = None
    parent_location_id: str | None = None
    context_campaign_id: str | None = None
    context_character_id: str | None = None
    field_values: dict[str, Any] | None = None
    metadata: Any = None
    access: dict[str, Any] | None = None


class EntityTypeRequest(BaseModel):
    world_id: str | None = None
    name: str | None = None
    description: str | None = None
    is_template: bool | None = None
    source_type_id: str | None = None


class EntityFormSectionRequest(BaseModel):
    entity_type_id: str | None = None
    title: str | None = None
    layout: str | None = None
    sort_order: int | None = None


class EntityFieldRequest(BaseModel):
    """
    Create or update an entity type field.

    Attributes:
        conditions: Visibility rules, stored as JSON
        reference_location_type_key: Location type name for LOCATION_REFERENCE fields
    """

    entity_type_id: str | None = None
    field_key: str | None = None
    label: str | None = None
    field_type: str | None = None
    description: str | None = None
    required: bool | None = None
    list_order: int | None = None
    form_order: int | None = None
    form_section_id: str | None = None
    form_column: int | None = None
    choice_list_id: str | None = None
    reference_entity_type_id: str | None = None
    reference_location_type_key: str | None = None
    conditions: Any = None


class LocationTypeRequest(BaseModel):
    world_id: str | None = None
    name: str | None = None
    description: str | None = None
    icon: str | None = None
    colour: str | None = None
    menu: bool | None = None
    metadata: Any = None


class LocationTypeFieldRequest(BaseModel):
    location_type_id: str | None = None
    field_key: str | None = None
    field_label: str | None = None
    field_type: str | None = None
    required: bool | None = None
    list_order: int | None = None
    form_order: int | None = None
    choice_list_id: str | None = None
    default_value: Any = None
    validation_rules: Any = None


class LocationTypeRuleRequest(BaseModel):
    parent_type_id: str | None = None
    child_type_id: str | None = None
    allowed: bool | None = None


# ----------------------------------------------------------------------------
# Relationships
# ----------------------------------------------------------------------------


class RelationshipTypeRequest(BaseModel):
    world_id: str | None = None
    name: str | None = None
    description: str | None = None
    from_label: str | None = None
    to_label: str | None = None
    past_from_label: str | None = None
    past_to_label: str | None = None
    is_peerable: bool | None = None
    metadata: Any = None


class RelationshipRuleRequest(BaseModel):
    """
    Create or update relationship type rules.

    Attributes:
        from_entity_type_id: One id, or a list to create one rule per pair
        to_entity_type_id: One id, or a list to create one rule per pair
    """

    relationship_type_id: str | None = None
    from_entity_type_id: str | list[str] | None = None
    to_entity_type_id: str | list[str] | None = None


class RelationshipRequest(BaseModel):
    relationship_type_id: str | None = None
    from_entity_id: str | None = None
    to_entity_id: str | None = None
    context_campaign_id: str | None = None
    context_character_id: str | None = None
    visibility_scope: str | None = None
    visibility_ref_id: str | None = None


# ----------------------------------------------------------------------------
# Notes and sessions
# ----------------------------------------------------------------------------


class NoteRequest(BaseModel):
    """
    Create or update a record note.

    Attributes:
        body: Note text; ``@[Name](kind:id)`` tokens become mentions
        visibility: PRIVATE, SHARED or GM
        share_with_architect: Only honoured for GM notes
        share_character_ids: Characters a SHARED note is shared with
    """

    body: str | None = None
    campaign_id: str | None = None
    character_id: str | None = None
    visibility: str | None = None
    share_with_architect: bool | None = None
    share_character_ids: list[str] | None = None


class SessionRequest(BaseModel):
    world_id: str | None = None
    campaign_id: str | None = None
    title: str | None = None
    started_at: str | None = None
    ended_at: str | None = None


class SessionContentRequest(BaseModel):
    """Draft or session note body: a rich text document plus its visibility."""

    content: Any = None
    visibility: str | None = None


# ----------------------------------------------------------------------------
# Choice lists, packs and the world builder
# ----------------------------------------------------------------------------


class ChoiceListRequest(BaseModel):
    name: str | None = None
    scope: str | None = None
    pack_id: str | None = None
    world_id: str | None = None
    description: str | None = None


class ChoiceOptionRequest(BaseModel):
    choice_list_id: str | None = None
    value: str | None = None
    label: str | None = None
    sort_order: int | None = None
    is_active: bool | None = None


class PackRequest(BaseModel):
    name: str | None = None
    description: str | None = None
    posture: str | None = None
    is_active: bool | None = None


class TemplateRequest(BaseModel):
    """
    Create or update any pack template resource.

    One model covers type, field, rule and relationship templates; each
    resource reads the keys its table has and ignores the rest.
    """

    pack_id: str | None = None
    template_id: str | None = None
    name: str | None = None
    description: str | None = None
    category: str | None = None
    is_core: bool | None = None
    field_key: str | None = None
    field_label: str | None = None
    field_type: str | None = None
    required: bool | None = None
    default_enabled: bool | None = None
    choice_list_id: str | None = None
    validation_rules: Any = None
    parent_template_id: str | None = None
    child_template_id: str | None = None
    is_peerable: bool | None = None
    from_label: str | None = None
    to_label: str | None = None
    past_from_label: str | None = None
    past_to_label: str | None = None
    from_role: str | None = None
    to_role: str | None = None


class ApplyPackRequest(BaseModel):
    """
    World builder selection.

    Attributes:
        entity_types: ``{template_id, name?, fields?}`` selections
        location_types: ``{template_id, name?, fields?}`` selections
        location_rules: ``{parent_template_id, child_template_id}`` pairs
        relationship_types: ``{template_id, name?, ...}`` selections
    """

    world_id: str | None = None
    pack_id: str | None = None
    entity_types: list[Any] | None = None
    location_types: list[Any] | None = None
    location_rules: list[Any] | None = None
    relationship_types: list[Any] | None = None


# ----------------------------------------------------------------------------
# System administration
# ----------------------------------------------------------------------------


class SettingRequest(BaseModel):
    """
    System property or user preference.

    Attributes:
        value: Stored as text; checked against ``value_type``
        value_type: STRING, INTEGER, BOOLEAN, JSON or DECIMAL
    """

    key: str | None = None
    value: Any = None
    value_type: str | None = None
    description: str | None = None


class SystemChoiceRequest(BaseModel):
    list_key: str | None = None
    value: str | None = None
    label: str | None = None
    sort_order: int | None = None
    is_active: bool | None = None


class RoleRequest(BaseModel):
    key: str | None = None
    name: str | None = None
    description: str | None = None


class ControlRequest(BaseModel):
    key: str | None = None
    description: str | None = None


class RoleControlsRequest(BaseModel):
    control_ids: Any = None


class SystemUserRequest(BaseModel):
    email: str | None = None
    name: str | None = None
    password: str | None = None
    role: str | None = None


class UserRolesRequest(BaseModel):
    role_ids: Any = None


class DictionaryEntryRequest(BaseModel):
    """
    System dictionary entry.

    Attributes:
        is_label: Marks the column used as the display label of ``entity_key``
        reference_entity_key: Target of a reference field
    """

    entity_key: str | None = None
    field_key: str | None = None
    label: str | None = None
    field_type: str | None = None
    reference_entity_key: str | None = None
    is_label: bool | None = None


# ----------------------------------------------------------------------------
# Views and related lists
# ----------------------------------------------------------------------------


class ListViewPreferenceRequest(BaseModel):
    """
    List columns and filters.

    Attributes:
        columns: Ordered field keys
        filters: ``{logic, rules}`` filter tree
    """

    view_key: str | None = None
    entity_type_id: str | None = None
    columns: Any = None
    filters: Any = None


class ViewRequest(BaseModel):
    key: str | None = None
    title: str | None = None
    entity_key: str | None = None
    view_type: str | None = None
    endpoint: str | None = None
    description: str | None = None
    admin_only: bool | None = None


class ViewFieldRequest(BaseModel):
    view_id: str | None = None
    field_key: str | None = None
    label: str | None = None
    field_type: str | None = None
    list_order: int | None = None
    form_order: int | None = None
    list_visible: bool | None = None
    form_visible: bool | None = None
    required: bool | None = None
    read_only: bool | None = None
    placeholder: str | None = None
    options_list_key: str | None = None
    reference_entity_key: str | None = None
    reference_scope: str | None = None
    allow_multiple: bool | None = None
    width: str | None = None


class RelatedListItemRequest(BaseModel):
    """Link (or unlink) ``related_id`` to the parent record ``parent_id``."""

    parent_id: str | None = None
    related_id: str | None = None


class RelatedListRequest(BaseModel):
    key: str | None = None
    title: str | None = None
    parent_entity_key: str | None = None
    related_entity_key: str | None = None
    join_entity_key: str | None = None
    parent_field_key: str | None = None
    related_field_key: str | None = None
    list_order: int | None = None
    admin_only: bool | None = None


class RelatedListFieldRequest(BaseModel):
    """
    Column of a related list.

    Attributes:
        source: RELATED reads the linked record, JOIN reads the link row
    """

    related_list_id: str | None = None
    field_key: str | None = None
    label: str | None = None
    source: str | None = None
    list_order: int | None = None
    width: str | None = None


# ============================================================================
# RESPONSE MODELS (Server → Client)
# ============================================================================


class UserResponse(BaseModel):
    id: str
    email: str
    name: str | None = None
    role: str


class LoginResponse(BaseModel):
    """
    Successful login.

    Attributes:
        token: Signed access token for the ``Authorization: Bearer`` header
        user: The authenticated account
    """

    token: str
    user: UserResponse


class TokenResponse(BaseModel):
    token: str


class OkResponse(BaseModel):
    ok: bool = True


class HealthResponse(BaseModel):
    status: str
    version: str


class WorldAdminResponse(BaseModel):
    can_manage: bool


class CapabilitiesResponse(BaseModel):
    """Create/edit/delete capabilities of the caller for one record kind."""

    can_create: bool
    can_edit: bool
    can_delete: bool


class ContextSummaryResponse(BaseModel):
    world_role: str | None = None
    campaign_role: str | None = None
    character_owner_label: str | None = None


class CreatedCounts(BaseModel):
    entity_types: int
    location_types: int
    relationships: int


class ApplyPackResponse(BaseModel):
    ok: bool
    created: CreatedCounts
