"""
Tests for world and campaign permission predicates.

Tests cover:
- Architect, GM and player membership derivation
- Campaign management and access
- Record creation under each entity permission scope
- System administration through the ADMIN role or a granted control
"""

import pytest

from campaign_server.db import query
from campaign_server.services import campaigns, characters, permissions, worlds
from campaign_server.services.errors import ServiceError


@pytest.fixture
def table(conn, users):
    """Eldoria with a GM-run campaign and the player's rostered character."""
    world = worlds.create_world(conn, users["architect"], {"name": "Eldoria"})
    campaign = campaigns.create_campaign(
        conn,
        users["architect"],
        {"world_id": world["id"], "name": "The Sunken Crown", "gm_user_id": users["gm"].id},
    )
    character = characters.create_character(
        conn,
        users["admin"],
        {
            "world_id": world["id"],
            "campaign_id": campaign["id"],
            "name": "Brisa Vell",
            "player_id": users["player"].id,
        },
    )
    return {"world": world["id"], "campaign": campaign["id"], "character": character["id"]}


# ============================================================================
# USER
# ============================================================================


@pytest.mark.unit
def test_user_labels_and_roles():
    admin = permissions.User(id="1", email="a@example.com", name=None, role="ADMIN")
    user = permissions.User.from_row({"id": "2", "email": "u@example.com", "name": "Una", "role": "USER"})

    assert admin.is_admin is True
    assert admin.label == "a@example.com"
    assert user.is_admin is False
    assert user.label == "Una"
    assert user.to_dict() == {"id": "2", "email": "u@example.com", "name": "Una", "role": "USER"}


# ============================================================================
# WORLD MEMBERSHIP
# ============================================================================


@pytest.mark.services
def test_world_roles(conn, users, table):
    world_id = table["world"]

    assert permissions.is_world_architect(conn, users["architect"].id, world_id)
    assert not permissions.is_world_architect(conn, users["gm"].id, world_id)
    assert permissions.is_world_game_master(conn, users["gm"].id, world_id)
    assert permissions.is_world_gm(conn, users["gm"].id, world_id)
    assert permissions.is_world_player(conn, users["player"].id, world_id)
    assert not permissions.is_world_player(conn, users["gm"].id, world_id)


@pytest.mark.services
@pytest.mark.parametrize("name,expected", [("architect", True), ("gm", True), ("player", True), ("outsider", False)])
def test_can_access_world(conn, users, table, name, expected):
    assert permissions.can_access_world(conn, users[name].id, table["world"]) is expected


@pytest.mark.services
def test_admin_role_is_not_world_membership(conn, users, table):
    assert not permissions.can_access_world(conn, users["admin"].id, table["world"])


@pytest.mark.services
def test_secondary_architect_counts(conn, users, table):
    worlds.add_member(conn, users["architect"], table["world"], "architects", users["outsider"].id)

    assert permissions.is_world_architect(conn, users["outsider"].id, table["world"])


# ============================================================================
# CAMPAIGNS
# ============================================================================


@pytest.mark.services
@pytest.mark.parametrize(
    "name,manage,access",
    [("architect", True, True), ("gm", True, True), ("player", False, True), ("outsider", False, False)],
)
def test_campaign_predicates(conn, users, table, name, manage, access):
    user_id = users[name].id

    assert permissions.can_manage_campaign(conn, user_id, table["campaign"]) is manage
    assert permissions.can_access_campaign(conn, user_id, table["campaign"]) is access


@pytest.mark.services
def test_campaign_character_creator(conn, users, table):
    assert not permissions.can_create_character_in_campaign(conn, users["outsider"].id, table["campaign"])

    campaigns.add_character_creator(conn, users["gm"], table["campaign"], users["outsider"].id)

    assert permissions.can_create_character_in_campaign(conn, users["outsider"].id, table["campaign"])


# ============================================================================
# RECORD CREATION SCOPE
# ============================================================================


@pytest.mark.services
@pytest.mark.parametrize(
    "scope,gm,player",
    [
        ("ARCHITECT", False, False),
        ("ARCHITECT_GM", True, False),
        ("ARCHITECT_GM_PLAYER", True, True),
    ],
)
def test_can_create_records_follows_world_scope(conn, users, table, scope, gm, player):
    query.execute(
        conn,
        "UPDATE worlds SET entity_permission_scope = ? WHERE id = ?",
        (scope, table["world"]),
        operation="test.set_scope",
    )

    assert permissions.can_create_records_in_world(conn, users["architect"].id, table["world"])
    assert permissions.can_create_records_in_world(conn, users["gm"].id, table["world"]) is gm
    assert permissions.can_create_records_in_world(conn, users["player"].id, table["world"]) is player
    assert not permissions.can_create_records_in_world(conn, users["outsider"].id, table["world"])


# ============================================================================
# SYSTEM ADMINISTRATION
# ============================================================================


@pytest.mark.services
def test_system_admin_through_role_control(conn, users):
    role_id = query.fetch_value(
        conn, "SELECT id FROM system_roles WHERE key = 'system_admin'", operation="test.role"
    )

    with pytest.raises(ServiceError) as exc_info:
        permissions.require_system_admin(conn, users["gm"])
    query.execute(
        conn,
        "INSERT INTO system_user_roles (user_id, role_id) VALUES (?, ?)",
        (users["gm"].id, role_id),
        operation="test.grant_role",
    )

    assert exc_info.value.status_code == 403
    assert permissions.is_system_admin(conn, users["admin"])
    assert permissions.is_system_admin(conn, users["gm"])
    permissions.require_system_admin(conn, users["gm"])
