"""
API tests for related lists (campaign_server/api/routes/views.py).

Tests cover:
- Listing the related lists of a parent entity, admin-only lists hidden
- Item reads: argument validation, parent access and row shapes
- Editing membership joins in place, entity fields removal
- Admin CRUD for list definitions and their fields
"""

import pytest

# ============================================================================
# HELPERS
# ============================================================================


def remove_item(client, headers, key, parent_id, related_id):
    return client.request(
        "DELETE",
        f"/api/related-lists/{key}",
        json={"parent_id": parent_id, "related_id": related_id},
        headers=headers,
    )


# ============================================================================
# LISTS PER ENTITY
# ============================================================================


@pytest.mark.api
def test_related_lists_for_entity(test_client, auth_headers):
    worlds = test_client.get("/api/related-lists", params={"entity_key": "worlds"}, headers=auth_headers("player"))
    packs_as_player = test_client.get(
        "/api/related-lists", params={"entity_key": "packs"}, headers=auth_headers("player")
    )
    packs_as_admin = test_client.get(
        "/api/related-lists", params={"entity_key": "packs"}, headers=auth_headers("admin")
    )
    missing = test_client.get("/api/related-lists", headers=auth_headers("player"))

    assert [row["key"] for row in worlds.json()] == ["world.character_creators", "world.game_masters"]
    assert [field["field_key"] for field in worlds.json()[0]["fields"]] == ["name", "email"]
    assert packs_as_player.json() == []
    assert len(packs_as_admin.json()) == 3
    assert missing.status_code == 400
    assert missing.json()["detail"] == "entity_key is required."


# ============================================================================
# ITEMS
# ============================================================================


@pytest.mark.api
def test_list_items_checks_arguments_in_order(test_client, auth_headers, world):
    headers = auth_headers("player")

    no_parent = test_client.get("/api/related-lists/nope", headers=headers)
    unknown = test_client.get("/api/related-lists/nope", params={"parent_id": world["id"]}, headers=headers)
    admin_only = test_client.get(
        "/api/related-lists/packs.entity_type_templates", params={"parent_id": "any"}, headers=headers
    )
    outsider = test_client.get(
        "/api/related-lists/world.game_masters", params={"parent_id": world["id"]}, headers=auth_headers("outsider")
    )

    assert no_parent.status_code == 400
    assert no_parent.json()["detail"] == "parent_id is required."
    assert unknown.status_code == 404
    assert unknown.json()["detail"] == "Related list not found."
    assert admin_only.status_code == 403
    assert outsider.status_code == 403


@pytest.mark.api
def test_campaign_characters_items(test_client, auth_headers, campaign, character):
    response = test_client.get(
        "/api/related-lists/campaign.characters", params={"parent_id": campaign["id"]}, headers=auth_headers("gm")
    )

    assert response.status_code == 200
    [item] = response.json()["items"]
    assert item["related_id"] == character["id"]
    assert item["related_data"] == {"id": character["id"], "name": "Brisa Vell", "player_name": "Player"}
    assert item["join_data"] == {"status": "ACTIVE"}


@pytest.mark.api
def test_world_member_items_hide_password_hash(test_client, auth_headers, world, db_with_users):
    headers = auth_headers("architect")
    test_client.post(
        f"/api/worlds/{world['id']}/game-masters", json={"user_id": db_with_users["gm"]}, headers=headers
    )

    response = test_client.get(
        "/api/related-lists/world.game_masters", params={"parent_id": world["id"]}, headers=headers
    )

    [item] = response.json()["items"]
    assert item["related_data"] == {"id": db_with_users["gm"], "name": "Gm", "email": "gm@example.com"}
    assert "password_hash" not in item["related_data"]


@pytest.mark.api
def test_location_rule_items_report_allowed_as_bool(test_client, auth_headers, world):
    headers = auth_headers("architect")
    region = test_client.post(
        "/api/location-types", json={"world_id": world["id"], "name": "Region"}, headers=headers
    ).json()
    town = test_client.post(
        "/api/location-types", json={"world_id": world["id"], "name": "Town"}, headers=headers
    ).json()
    test_client.post(
        "/api/location-type-rules",
        json={"parent_type_id": region["id"], "child_type_id": town["id"], "allowed": False},
        headers=headers,
    )

    response = test_client.get(
        "/api/related-lists/location_types.parent_rules", params={"parent_id": region["id"]}, headers=headers
    )

    [item] = response.json()["items"]
    assert item["join_data"] == {"child_type_name": "Town", "allowed": False}


# ============================================================================
# EDITING
# ============================================================================


@pytest.mark.api
def test_add_and_remove_world_game_master(test_client, auth_headers, world, db_with_users):
    headers = auth_headers("architect")
    body = {"parent_id": world["id"], "related_id": db_with_users["gm"]}

    added = test_client.post("/api/related-lists/world.game_masters", json=body, headers=headers)
    listed = test_client.get(f"/api/worlds/{world['id']}/game-masters", headers=headers)
    removed = remove_item(test_client, headers, "world.game_masters", world["id"], db_with_users["gm"])
    after = test_client.get(f"/api/worlds/{world['id']}/game-masters", headers=headers)

    assert added.status_code == 201
    assert added.json() == {"world_id": world["id"], "user_id": db_with_users["gm"]}
    assert [row["id"] for row in listed.json()] == [db_with_users["gm"]]
    assert removed.json() == {"ok": True}
    assert after.json() == []


@pytest.mark.api
def test_editing_requires_managing_the_parent(test_client, auth_headers, world, campaign, db_with_users):
    body = {"parent_id": world["id"], "related_id": db_with_users["player"]}

    as_gm = test_client.post("/api/related-lists/world.game_masters", json=body, headers=auth_headers("gm"))
    missing_pair = test_client.post(
        "/api/related-lists/world.game_masters", json={"parent_id": world["id"]}, headers=auth_headers("architect")
    )

    assert as_gm.status_code == 403
    assert missing_pair.status_code == 400
    assert missing_pair.json()["detail"] == "parent_id and related_id are required."


@pytest.mark.api
def test_add_character_to_campaign_roster(test_client, auth_headers, world, campaign, db_with_users):
    headers = auth_headers("gm")
    extra = test_client.post(
        "/api/characters",
        json={"world_id": world["id"], "name": "Odo Marsh", "player_id": db_with_users["player"]},
        headers=auth_headers("admin"),
    ).json()
    body = {"parent_id": campaign["id"], "related_id": extra["id"]}

    first = test_client.post("/api/related-lists/campaign.characters", json=body, headers=headers)
    again = test_client.post("/api/related-lists/campaign.characters", json=body, headers=headers)
    roster = test_client.get(
        "/api/related-lists/campaign.characters", params={"parent_id": campaign["id"]}, headers=headers
    )

    assert first.status_code == 201
    assert again.status_code == 201
    assert [item["related_id"] for item in roster.json()["items"]] == [extra["id"]]


@pytest.mark.api
def test_entity_fields_are_removed_but_not_added(test_client, auth_headers, world, entity_type):
    headers = auth_headers("architect")
    field = test_client.post(
        "/api/entity-fields",
        json={"entity_type_id": entity_type["id"], "field_key": "mood", "label": "Mood", "field_type": "TEXT"},
        headers=headers,
    ).json()
    other_type = test_client.post(
        "/api/entity-types", json={"world_id": world["id"], "name": "Faction"}, headers=headers
    ).json()

    added = test_client.post(
        "/api/related-lists/entity_types.fields",
        json={"parent_id": entity_type["id"], "related_id": field["id"]},
        headers=headers,
    )
    wrong_parent = remove_item(test_client, headers, "entity_types.fields", other_type["id"], field["id"])
    removed = remove_item(test_client, headers, "entity_types.fields", entity_type["id"], field["id"])

    assert added.status_code == 400
    assert added.json()["detail"] == "Use /api/entity-fields to create fields."
    assert wrong_parent.status_code == 404
    assert wrong_parent.json()["detail"] == "Field not found."
    assert removed.json() == {"ok": True}


@pytest.mark.api
def test_read_only_lists_reject_edits(test_client, auth_headers, world):
    headers = auth_headers("architect")
    region = test_client.post(
        "/api/location-types", json={"world_id": world["id"], "name": "Region"}, headers=headers
    ).json()

    response = test_client.post(
        "/api/related-lists/location_types.parent_rules",
        json={"parent_id": region["id"], "related_id": region["id"]},
        headers=headers,
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Unsupported related list."


# ============================================================================
# ADMINISTRATION
# ============================================================================


@pytest.mark.api
def test_related_list_definition_crud(test_client, auth_headers):
    headers = auth_headers("admin")
    body = {
        "key": "campaign.creators",
        "title": "Character Creators",
        "parent_entity_key": "campaigns",
        "related_entity_key": "users",
        "join_entity_key": "campaign_character_creator",
        "parent_field_key": "campaign_id",
        "related_field_key": "user_id",
        "list_order": 2,
    }

    created = test_client.post("/api/system/related-lists", json=body, headers=headers)
    duplicate = test_client.post("/api/system/related-lists", json=body, headers=headers)
    incomplete = test_client.post("/api/system/related-lists", json={"key": "x"}, headers=headers)
    list_id = created.json()["id"]
    updated = test_client.put(f"/api/system/related-lists/{list_id}", json={"title": "Creators"}, headers=headers)
    deleted = test_client.delete(f"/api/system/related-lists/{list_id}", headers=headers)
    missing = test_client.get(f"/api/system/related-lists/{list_id}", headers=headers)

    assert created.status_code == 201
    assert created.json()["fields"] == []
    assert created.json()["admin_only"] is False
    assert duplicate.status_code == 409
    assert duplicate.json()["detail"] == "Related list key already exists."
    assert incomplete.status_code == 400
    assert updated.json()["title"] == "Creators"
    assert deleted.json() == {"ok": True}
    assert missing.status_code == 404


@pytest.mark.api
def test_related_list_field_crud(test_client, auth_headers):
    headers = auth_headers("admin")
    definition = next(
        row
        for row in test_client.get("/api/system/related-lists", headers=headers).json()
        if row["key"] == "world.game_masters"
    )
    body = {"related_list_id": definition["id"], "field_key": "role", "label": "Role", "list_order": 3}

    created = test_client.post("/api/system/related-list-fields", json=body, headers=headers)
    duplicate = test_client.post("/api/system/related-list-fields", json=body, headers=headers)
    bad_source = test_client.put(
        f"/api/system/related-list-fields/{created.json()['id']}", json={"source": "OTHER"}, headers=headers
    )
    listed = test_client.get(
        "/api/system/related-list-fields", params={"related_list_id": definition["id"]}, headers=headers
    )
    deleted = test_client.delete(f"/api/system/related-list-fields/{created.json()['id']}", headers=headers)

    assert created.status_code == 201
    assert created.json()["source"] == "RELATED"
    assert duplicate.status_code == 409
    assert bad_source.status_code == 400
    assert bad_source.json()["detail"] == "Invalid source."
    assert [field["field_key"] for field in listed.json()] == ["name", "email", "role"]
    assert deleted.json() == {"ok": True}


@pytest.mark.api
def test_related_list_admin_requires_admin(test_client, auth_headers):
    response = test_client.get("/api/system/related-lists", headers=auth_headers("architect"))

    assert response.status_code == 403
