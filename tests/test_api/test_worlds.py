"""
API tests for world endpoints (campaign_server/api/routes/worlds.py).

Tests cover:
- World creation, primary architect rules and permission scope validation
- Listing and reading by membership
- Update/delete restricted to admins and architects
- Membership sets (architects, game masters, campaign and character creators)
"""

import pytest

# ============================================================================
# CREATE
# ============================================================================


@pytest.mark.api
def test_create_world_makes_caller_primary_architect(test_client, auth_headers, db_with_users):
    response = test_client.post(
        "/api/worlds",
        json={"name": "  Karth  ", "character_creator_ids": [db_with_users["player"]]},
        headers=auth_headers("architect"),
    )

    assert response.status_code == 201
    world = response.json()
    assert world["name"] == "Karth"
    assert world["primary_architect_id"] == db_with_users["architect"]
    assert world["entity_permission_scope"] == "ARCHITECT_GM_PLAYER"

    architects = test_client.get(
        f"/api/worlds/{world['id']}/architects", headers=auth_headers("architect")
    ).json()
    assert [row["id"] for row in architects] == [db_with_users["architect"]]


@pytest.mark.api
def test_create_world_requires_name(test_client, auth_headers):
    response = test_client.post("/api/worlds", json={"name": "  "}, headers=auth_headers("architect"))

    assert response.status_code == 400
    assert response.json()["detail"] == "name is required."


@pytest.mark.api
@pytest.mark.parametrize(
    "body",
    [
        {"name": 5},
        {"name": "Karth", "character_creator_ids": "not-a-list"},
        {"name": "Karth", "description": {"text": "nested"}},
    ],
)
def test_create_world_rejects_wrongly_typed_body(test_client, auth_headers, body):
    response = test_client.post("/api/worlds", json=body, headers=auth_headers("architect"))

    assert response.status_code == 422


@pytest.mark.api
def test_only_admin_sets_primary_architect(test_client, auth_headers, db_with_users):
    body = {"name": "Delegated", "primary_architect_id": db_with_users["architect"]}

    denied = test_client.post("/api/worlds", json=body, headers=auth_headers("gm"))
    allowed = test_client.post("/api/worlds", json=body, headers=auth_headers("admin"))

    assert denied.status_code == 403
    assert denied.json()["detail"] == "Only admins can set the primary architect."
    assert allowed.status_code == 201
    assert allowed.json()["primary_architect_id"] == db_with_users["architect"]


@pytest.mark.api
def test_create_world_rejects_unknown_scope(test_client, auth_headers):
    response = test_client.post(
        "/api/worlds",
        json={"name": "Odd", "entity_permission_scope": "EVERYONE"},
        headers=auth_headers("architect"),
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid entity permission scope."


# ============================================================================
# READ
# ============================================================================


@pytest.mark.api
def test_list_worlds_by_membership(test_client, auth_headers, world):
    admin_view = test_client.get("/api/worlds", headers=auth_headers("admin")).json()
    architect_view = test_client.get("/api/worlds", headers=auth_headers("architect")).json()
    outsider_view = test_client.get("/api/worlds", headers=auth_headers("outsider")).json()

    assert [w["id"] for w in admin_view] == [world["id"]]
    assert [w["id"] for w in architect_view] == [world["id"]]
    assert outsider_view == []


@pytest.mark.api
def test_get_world_missing_before_forbidden(test_client, auth_headers, world):
    missing = test_client.get("/api/worlds/does-not-exist", headers=auth_headers("outsider"))
    forbidden = test_client.get(f"/api/worlds/{world['id']}", headers=auth_headers("outsider"))

    assert missing.status_code == 404
    assert missing.json()["detail"] == "World not found."
    assert forbidden.status_code == 403
    assert forbidden.json()["detail"] == "Forbidden."


@pytest.mark.api
def test_get_world_includes_character_creators(test_client, auth_headers, world, db_with_users):
    test_client.post(
        f"/api/worlds/{world['id']}/character-creators",
        json={"user_id": db_with_users["player"]},
        headers=auth_headers("architect"),
    )

    response = test_client.get(f"/api/worlds/{world['id']}", headers=auth_headers("player"))

    assert response.status_code == 200
    assert response.json()["character_creator_ids"] == [db_with_users["player"]]


@pytest.mark.api
def test_world_admin_flag(test_client, auth_headers, world):
    path = f"/api/worlds/{world['id']}/world-admin"

    assert test_client.get(path, headers=auth_headers("architect")).json() == {"can_manage": True}
    assert test_client.get(path, headers=auth_headers("admin")).json() == {"can_manage": True}
    assert test_client.get(path, headers=auth_headers("gm")).json() == {"can_manage": False}


# ============================================================================
# UPDATE AND DELETE
# ============================================================================


@pytest.mark.api
def test_update_world_by_architect(test_client, auth_headers, world):
    response = test_client.put(
        f"/api/worlds/{world['id']}",
        json={"description": "Rewritten", "entity_permission_scope": "ARCHITECT"},
        headers=auth_headers("architect"),
    )

    assert response.status_code == 200
    assert response.json()["description"] == "Rewritten"
    assert response.json()["entity_permission_scope"] == "ARCHITECT"


@pytest.mark.api
def test_update_world_forbidden_for_non_architect(test_client, auth_headers, world):
    response = test_client.put(
        f"/api/worlds/{world['id']}", json={"name": "Taken"}, headers=auth_headers("gm")
    )

    assert response.status_code == 403


@pytest.mark.api
def test_delete_world_cascades(test_client, auth_headers, world, campaign, character):
    response = test_client.delete(f"/api/worlds/{world['id']}", headers=auth_headers("architect"))

    assert response.status_code == 200
    assert response.json() == {"ok": True}
    assert test_client.get(
        f"/api/campaigns/{campaign['id']}", headers=auth_headers("admin")
    ).status_code == 404
    assert test_client.get(
        f"/api/characters/{character['id']}", headers=auth_headers("admin")
    ).status_code == 404


# ============================================================================
# MEMBERSHIP
# ============================================================================


@pytest.mark.api
def test_add_and_remove_game_master(test_client, auth_headers, world, db_with_users):
    path = f"/api/worlds/{world['id']}/game-masters"
    headers = auth_headers("architect")

    added = test_client.post(path, json={"user_id": db_with_users["gm"]}, headers=headers)
    assert added.status_code == 201
    assert [row["id"] for row in test_client.get(path, headers=headers).json()] == [db_with_users["gm"]]

    removed = test_client.delete(f"{path}/{db_with_users['gm']}", headers=headers)
    assert removed.json() == {"ok": True}
    assert test_client.get(path, headers=headers).json() == []


@pytest.mark.api
def test_add_member_validation(test_client, auth_headers, world):
    path = f"/api/worlds/{world['id']}/campaign-creators"
    headers = auth_headers("architect")

    missing_id = test_client.post(path, json={}, headers=headers)
    unknown_user = test_client.post(path, json={"user_id": "ghost"}, headers=headers)

    assert missing_id.status_code == 400
    assert missing_id.json()["detail"] == "user_id is required."
    assert unknown_user.status_code == 404
    assert unknown_user.json()["detail"] == "User not found."


@pytest.mark.api
def test_unknown_member_type_is_not_found(test_client, auth_headers, world):
    response = test_client.get(f"/api/worlds/{world['id']}/wizards", headers=auth_headers("architect"))

    assert response.status_code == 404


@pytest.mark.api
def test_cannot_remove_primary_architect(test_client, auth_headers, world, db_with_users):
    response = test_client.delete(
        f"/api/worlds/{world['id']}/architects/{db_with_users['architect']}",
        headers=auth_headers("architect"),
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Cannot remove the primary architect."


@pytest.mark.api
def test_membership_management_requires_architect(test_client, auth_headers, world, db_with_users):
    response = test_client.post(
        f"/api/worlds/{world['id']}/architects",
        json={"user_id": db_with_users["outsider"]},
        headers=auth_headers("outsider"),
    )

    assert response.status_code == 403
