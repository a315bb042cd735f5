"""
API tests for client metadata endpoints (campaign_server/api/routes/views.py).

Tests cover:
- Seeded view definitions and admin-only views
- List view preferences and entity type list defaults
- Reference lookups: validation, scoping and the result cap
- Capability checks and the header context summary
"""

import pytest

# ============================================================================
# VIEWS
# ============================================================================


@pytest.mark.api
def test_views_hide_admin_only_for_users(test_client, auth_headers):
    player_views = test_client.get("/api/views", headers=auth_headers("player")).json()
    admin_views = test_client.get("/api/views", headers=auth_headers("admin")).json()

    assert [v["title"] for v in player_views] == ["Campaigns", "Characters", "Entities", "Locations", "Worlds"]
    assert len(admin_views) == 7


@pytest.mark.api
def test_get_view(test_client, auth_headers):
    headers = auth_headers("player")

    view = test_client.get("/api/views/campaigns.list", headers=headers).json()
    missing = test_client.get("/api/views/spells.list", headers=headers)
    admin_only = test_client.get("/api/views/system.users.list", headers=headers)

    gm_field = next(f for f in view["fields"] if f["field_key"] == "gm_user_id")
    description = next(f for f in view["fields"] if f["field_key"] == "description")
    assert gm_field["reference_scope"] == "world_gm"
    assert description["list_visible"] is False
    assert missing.status_code == 404
    assert missing.json()["detail"] == "View not found."
    assert admin_only.status_code == 403


@pytest.mark.api
def test_view_crud(test_client, auth_headers):
    headers = auth_headers("admin")
    body = {
        "key": "sessions.list",
        "title": "Sessions",
        "entity_key": "sessions",
        "view_type": "LIST",
        "endpoint": "/api/sessions",
    }

    created = test_client.post("/api/views", json=body, headers=headers)
    duplicate = test_client.post("/api/views", json=body, headers=headers)
    bad_type = test_client.post("/api/views", json={**body, "key": "x", "view_type": "GRID"}, headers=headers)
    incomplete = test_client.post("/api/views", json={"key": "x"}, headers=headers)
    view_id = created.json()["id"]
    updated = test_client.put(
        f"/api/views/{view_id}", json={"title": "Play Sessions", "view_type": "GRID"}, headers=headers
    )
    fetched = test_client.get("/api/views/sessions.list", headers=auth_headers("player"))
    deleted = test_client.delete(f"/api/views/{view_id}", headers=headers)
    gone = test_client.delete(f"/api/views/{view_id}", headers=headers)

    assert created.status_code == 201
    assert created.json()["fields"] == []
    assert duplicate.status_code == 409
    assert duplicate.json()["detail"] == "View key already exists."
    assert bad_type.json()["detail"] == "Invalid view_type."
    assert incomplete.json()["detail"] == "key, title, entity_key, view_type, and endpoint are required."
    assert updated.json()["title"] == "Play Sessions"
    assert updated.json()["view_type"] == "LIST"
    assert fetched.json()["title"] == "Play Sessions"
    assert deleted.json() == {"ok": True}
    assert gone.status_code == 404


@pytest.mark.api
def test_view_editing_requires_admin(test_client, auth_headers):
    response = test_client.post(
        "/api/views",
        json={"key": "k", "title": "T", "entity_key": "e", "view_type": "LIST", "endpoint": "/api/e"},
        headers=auth_headers("architect"),
    )

    assert response.status_code == 403


@pytest.mark.api
def test_view_field_crud(test_client, auth_headers):
    headers = auth_headers("admin")
    view = test_client.get("/api/views/worlds.list", headers=headers).json()
    body = {
        "view_id": view["id"],
        "field_key": "theme_key",
        "label": "Theme",
        "field_type": "TEXT",
        "list_order": 9,
        "list_visible": False,
    }

    created = test_client.post("/api/system/view-fields", json=body, headers=headers)
    duplicate = test_client.post("/api/system/view-fields", json=body, headers=headers)
    field_id = created.json()["id"]
    blank_label = test_client.put(f"/api/system/view-fields/{field_id}", json={"label": ""}, headers=headers)
    updated = test_client.put(
        f"/api/system/view-fields/{field_id}", json={"label": "Theme Key", "required": True}, headers=headers
    )
    listed = test_client.get("/api/system/view-fields", params={"view_id": view["id"]}, headers=headers)
    deleted = test_client.delete(f"/api/system/view-fields/{field_id}", headers=headers)
    view_after = test_client.get("/api/views/worlds.list", headers=headers).json()

    assert created.status_code == 201
    assert created.json()["list_visible"] is False
    assert duplicate.status_code == 409
    assert blank_label.status_code == 400
    assert blank_label.json()["detail"] == "label cannot be empty."
    assert updated.json()["label"] == "Theme Key"
    assert updated.json()["required"] is True
    assert listed.json()[-1]["field_key"] == "theme_key"
    assert deleted.json() == {"ok": True}
    assert "theme_key" not in [field["field_key"] for field in view_after["fields"]]


# ============================================================================
# LIST VIEW PREFERENCES
# ============================================================================


@pytest.mark.api
def test_list_view_preference_validation(test_client, auth_headers):
    headers = auth_headers("player")

    missing = test_client.get("/api/list-view-preferences", headers=headers)
    bad_columns = test_client.put(
        "/api/list-view-preferences", json={"view_key": "entities.list", "columns": "name"}, headers=headers
    )

    assert missing.status_code == 400
    assert missing.json()["detail"] == "view_key is required."
    assert bad_columns.json()["detail"] == "columns must be a list of field keys."


@pytest.mark.api
def test_list_view_preference_round_trip(test_client, auth_headers):
    headers = auth_headers("player")
    rules = [{"field_key": "name", "operator": "contains", "value": "ira"}]

    saved = test_client.put(
        "/api/list-view-preferences",
        json={"view_key": "entities.list", "columns": ["name", "description"], "filters": rules},
        headers=headers,
    ).json()
    fetched = test_client.get(
        "/api/list-view-preferences", params={"view_key": "entities.list"}, headers=headers
    ).json()
    other_user = test_client.get(
        "/api/list-view-preferences", params={"view_key": "entities.list"}, headers=auth_headers("gm")
    ).json()

    assert saved["columns"] == ["name", "description"]
    assert saved["filters"] == {"logic": "AND", "rules": rules}
    assert fetched["user"]["columns"] == ["name", "description"]
    assert fetched["defaults"] is None
    assert other_user == {"user": None, "defaults": None}


@pytest.mark.api
def test_delete_list_view_preference(test_client, auth_headers):
    headers = auth_headers("player")
    test_client.put(
        "/api/list-view-preferences", json={"view_key": "worlds.list", "columns": ["name"]}, headers=headers
    )

    deleted = test_client.delete("/api/list-view-preferences", params={"view_key": "worlds.list"}, headers=headers)
    fetched = test_client.get("/api/list-view-preferences", params={"view_key": "worlds.list"}, headers=headers)

    assert deleted.json() == {"ok": True}
    assert fetched.json()["user"] is None


@pytest.mark.api
def test_entity_type_list_defaults(test_client, auth_headers, entity_type):
    admin = auth_headers("admin")

    denied = test_client.put(
        "/api/entity-type-list-defaults",
        json={"entity_type_id": entity_type["id"], "columns": ["name"]},
        headers=auth_headers("architect"),
    )
    missing = test_client.get(
        "/api/entity-type-list-defaults", params={"entity_type_id": "nope"}, headers=admin
    )
    saved = test_client.put(
        "/api/entity-type-list-defaults",
        json={"entity_type_id": entity_type["id"], "columns": ["name", "age"]},
        headers=admin,
    )
    preference = test_client.get(
        "/api/list-view-preferences",
        params={"view_key": "entities.list", "entity_type_id": entity_type["id"]},
        headers=auth_headers("player"),
    ).json()

    assert denied.status_code == 403
    assert missing.status_code == 404
    assert missing.json()["detail"] == "Entity type not found."
    assert saved.json()["columns"] == ["name", "age"]
    assert preference == {"user": None, "defaults": saved.json()}


# ============================================================================
# REFERENCES
# ============================================================================


@pytest.mark.api
@pytest.mark.parametrize(
    "params,status,detail",
    [
        ({}, 400, "entity_key is required."),
        ({"entity_key": "spells"}, 400, "Unsupported entity key."),
        ({"entity_key": "packs"}, 403, "Forbidden."),
    ],
)
def test_reference_validation(test_client, auth_headers, params, status, detail):
    response = test_client.get("/api/references", params=params, headers=auth_headers("player"))

    assert response.status_code == status
    assert response.json()["detail"] == detail


@pytest.mark.api
def test_world_references_follow_membership(test_client, auth_headers, world):
    architect = test_client.get(
        "/api/references", params={"entity_key": "worlds"}, headers=auth_headers("architect")
    ).json()
    outsider = test_client.get(
        "/api/references", params={"entity_key": "worlds"}, headers=auth_headers("outsider")
    ).json()

    assert architect == [{"id": world["id"], "label": "Eldoria"}]
    assert outsider == []


@pytest.mark.api
def test_reference_labels_follow_dictionary(test_client, auth_headers, world):
    admin = auth_headers("admin")
    bare = test_client.post("/api/worlds", json={"name": "Karth"}, headers=auth_headers("architect")).json()
    description = test_client.post(
        "/api/system/dictionary",
        json={
            "entity_key": "worlds",
            "field_key": "description",
            "label": "Description",
            "field_type": "TEXTAREA",
            "is_label": True,
        },
        headers=admin,
    )

    labels = test_client.get(
        "/api/references", params={"entity_key": "worlds"}, headers=auth_headers("architect")
    ).json()

    assert description.status_code == 201
    assert {row["id"]: row["label"] for row in labels} == {world["id"]: "A test world", bare["id"]: "Karth"}


@pytest.mark.api
def test_world_gm_user_references(test_client, auth_headers, world, campaign, db_with_users):
    params = {"entity_key": "users", "scope": "world_gm", "world_id": world["id"]}

    as_player = test_client.get("/api/references", params=params, headers=auth_headers("player")).json()
    as_architect = test_client.get("/api/references", params=params, headers=auth_headers("architect")).json()

    assert as_player == [{"id": db_with_users["gm"], "label": "Gm"}]
    assert len(as_architect) == 5


@pytest.mark.api
def test_entity_references_query_and_limit(test_client, auth_headers, world, entity_type):
    headers = auth_headers("architect")
    for index in range(30):
        test_client.post(
            "/api/entities",
            json={"world_id": world["id"], "entity_type_id": entity_type["id"], "name": f"Sailor {index:02d}"},
            headers=headers,
        )
    test_client.post(
        "/api/entities",
        json={"world_id": world["id"], "entity_type_id": entity_type["id"], "name": "Harbourmaster"},
        headers=headers,
    )

    capped = test_client.get(
        "/api/references", params={"entity_key": "entities", "world_id": world["id"]}, headers=headers
    ).json()
    matched = test_client.get(
        "/api/references",
        params={"entity_key": "entities", "world_id": world["id"], "query": "HARBOUR", "include_entity_type_id": True},
        headers=headers,
    ).json()
    no_world = test_client.get(
        "/api/references", params={"entity_key": "entities"}, headers=headers
    ).json()

    assert len(capped) == 25
    assert [(m["label"], m["entity_type_id"]) for m in matched] == [("Harbourmaster", entity_type["id"])]
    assert no_world == []


# ============================================================================
# PERMISSIONS
# ============================================================================


@pytest.mark.api
def test_permissions_require_entity_key(test_client, auth_headers):
    response = test_client.get("/api/permissions", headers=auth_headers("player"))

    assert response.status_code == 400
    assert response.json()["detail"] == "entity_key is required."


@pytest.mark.api
def test_world_permissions(test_client, auth_headers, world):
    params = {"entity_key": "worlds", "record_id": world["id"]}

    architect = test_client.get("/api/permissions", params=params, headers=auth_headers("architect")).json()
    outsider = test_client.get("/api/permissions", params=params, headers=auth_headers("outsider")).json()

    assert architect == {"can_create": True, "can_edit": True, "can_delete": True}
    assert outsider == {"can_create": True, "can_edit": False, "can_delete": False}


@pytest.mark.api
def test_campaign_permissions(test_client, auth_headers, world, campaign):
    params = {"entity_key": "campaigns", "world_id": world["id"], "record_id": campaign["id"]}

    gm = test_client.get("/api/permissions", params=params, headers=auth_headers("gm")).json()
    outsider = test_client.get("/api/permissions", params=params, headers=auth_headers("outsider")).json()

    assert gm["can_edit"] is True
    assert outsider == {"can_create": False, "can_edit": False, "can_delete": False}


@pytest.mark.api
def test_unknown_keys_are_admin_only(test_client, auth_headers):
    params = {"entity_key": "packs"}

    player = test_client.get("/api/permissions", params=params, headers=auth_headers("player")).json()
    admin = test_client.get("/api/permissions", params=params, headers=auth_headers("admin")).json()

    assert player == {"can_create": False, "can_edit": False, "can_delete": False}
    assert admin == {"can_create": True, "can_edit": True, "can_delete": True}


@pytest.mark.api
def test_entity_type_template_permissions(test_client, auth_headers, world):
    params = {"entity_key": "entity_types", "world_id": world["id"], "is_template": True}

    architect = test_client.get("/api/permissions", params=params, headers=auth_headers("architect")).json()

    assert architect["can_create"] is False


# ============================================================================
# CONTEXT SUMMARY
# ============================================================================


@pytest.mark.api
def test_context_summary_roles(test_client, auth_headers, world, campaign, character):
    params = {"world_id": world["id"], "campaign_id": campaign["id"], "character_id": character["id"]}

    architect = test_client.get("/api/context/summary", params=params, headers=auth_headers("architect")).json()
    gm = test_client.get("/api/context/summary", params=params, headers=auth_headers("gm")).json()
    player = test_client.get("/api/context/summary", params=params, headers=auth_headers("player")).json()

    assert architect == {"world_role": "Architect", "campaign_role": "Player", "character_owner_label": "Player"}
    assert gm == {"world_role": "Member", "campaign_role": "GM", "character_owner_label": "Player"}
    assert player["character_owner_label"] is None


@pytest.mark.api
def test_context_summary_ignores_unknown_ids(test_client, auth_headers):
    response = test_client.get(
        "/api/context/summary",
        params={"world_id": "nope", "campaign_id": "nope", "character_id": "nope"},
        headers=auth_headers("player"),
    )

    assert response.json() == {"world_role": None, "campaign_role": None, "character_owner_label": None}
