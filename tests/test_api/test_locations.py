"""
API tests for locations and location types.

Tests cover:
- Location type CRUD, menu stats and typed fields
- Parent/child placement rules, including transitive and denied parents
- Hierarchy edits: self-parenting and cycles
- Campaign-scoped visibility and delete guards
"""

import pytest

# ============================================================================
# HELPERS
# ============================================================================


@pytest.fixture
def atlas(test_client, auth_headers, world):
    """Region, Settlement and Building types with Settlement-in-Region and Building-in-Settlement rules."""
    headers = auth_headers("architect")
    types = {}
    for name, menu in (("Region", True), ("Settlement", True), ("Building", False)):
        response = test_client.post(
            "/api/location-types", json={"world_id": world["id"], "name": name, "menu": menu}, headers=headers
        )
        assert response.status_code == 201, response.text
        types[name] = response.json()["id"]
    for parent, child in (("Region", "Settlement"), ("Settlement", "Building")):
        response = test_client.post(
            "/api/location-type-rules",
            json={"parent_type_id": types[parent], "child_type_id": types[child]},
            headers=headers,
        )
        assert response.status_code == 201, response.text
    return types


def create_location(client, headers, world, type_id, name, **extra):
    return client.post(
        "/api/locations",
        json={"world_id": world["id"], "location_type_id": type_id, "name": name, **extra},
        headers=headers,
    )


# ============================================================================
# LOCATION TYPES
# ============================================================================


@pytest.mark.api
def test_location_type_access(test_client, auth_headers, world, atlas):
    params = {"world_id": world["id"]}

    as_architect = test_client.get("/api/location-types", params=params, headers=auth_headers("architect"))
    as_outsider = test_client.get("/api/location-types", params=params, headers=auth_headers("outsider"))
    no_world = test_client.get("/api/location-types", headers=auth_headers("architect"))
    denied = test_client.post(
        "/api/location-types", json={"world_id": world["id"], "name": "Dungeon"}, headers=auth_headers("gm")
    )

    assert [t["name"] for t in as_architect.json()] == ["Building", "Region", "Settlement"]
    assert as_architect.json()[1]["menu"] is True
    assert as_outsider.status_code == 403
    assert no_world.json() == []
    assert denied.status_code == 403
    assert denied.json()["detail"] == "Only world architects can create location types."


@pytest.mark.api
def test_update_location_type(test_client, auth_headers, atlas):
    response = test_client.put(
        f"/api/location-types/{atlas['Building']}",
        json={"colour": "#aa3300", "menu": True, "metadata": {"icon_set": "classic"}},
        headers=auth_headers("architect"),
    )

    body = response.json()
    assert body["colour"] == "#aa3300"
    assert body["menu"] is True
    assert body["metadata"] == {"icon_set": "classic"}


@pytest.mark.api
def test_location_type_in_use_cannot_be_deleted(test_client, auth_headers, world, atlas):
    headers = auth_headers("architect")
    create_location(test_client, headers, world, atlas["Region"], "Northmarch")

    in_use = test_client.delete(f"/api/location-types/{atlas['Region']}", headers=headers)
    unused = test_client.delete(f"/api/location-types/{atlas['Building']}", headers=headers)

    assert in_use.status_code == 409
    assert in_use.json()["detail"] == "Location type is in use."
    assert unused.json() == {"ok": True}


@pytest.mark.api
def test_location_type_stats_count_menu_types(test_client, auth_headers, world, atlas):
    headers = auth_headers("architect")
    north = create_location(test_client, headers, world, atlas["Region"], "Northmarch").json()
    create_location(test_client, headers, world, atlas["Region"], "Saltreach")
    create_location(test_client, headers, world, atlas["Settlement"], "Gullhaven", parent_location_id=north["id"])

    stats = test_client.get(
        "/api/location-type-stats", params={"world_id": world["id"]}, headers=headers
    ).json()

    assert [(s["name"], s["count"]) for s in stats] == [("Region", 2), ("Settlement", 1)]


@pytest.mark.api
def test_location_type_fields(test_client, auth_headers, world, atlas):
    headers = auth_headers("architect")

    missing = test_client.get("/api/location-type-fields", headers=headers)
    created = test_client.post(
        "/api/location-type-fields",
        json={
            "location_type_id": atlas["Settlement"],
            "field_key": "population",
            "field_label": "Population",
            "field_type": "NUMBER",
            "required": True,
            "validation_rules": {"min": 0},
        },
        headers=headers,
    )
    duplicate = test_client.post(
        "/api/location-type-fields",
        json={
            "location_type_id": atlas["Settlement"],
            "field_key": "population",
            "field_label": "Population",
            "field_type": "NUMBER",
        },
        headers=headers,
    )
    listed = test_client.get(
        "/api/location-type-fields", params={"location_type_id": atlas["Settlement"]}, headers=headers
    ).json()

    assert missing.json()["detail"] == "location_type_id is required."
    assert created.status_code == 201
    assert created.json()["required"] is True
    assert created.json()["validation_rules"] == {"min": 0}
    assert duplicate.status_code == 409
    assert [f["field_key"] for f in listed] == ["population"]


# ============================================================================
# PLACEMENT RULES
# ============================================================================


@pytest.mark.api
def test_rule_validation(test_client, auth_headers, world, atlas):
    headers = auth_headers("architect")
    other_world = test_client.post("/api/worlds", json={"name": "Vharos"}, headers=headers).json()
    foreign = test_client.post(
        "/api/location-types", json={"world_id": other_world["id"], "name": "Plane"}, headers=headers
    ).json()

    duplicate = test_client.post(
        "/api/location-type-rules",
        json={"parent_type_id": atlas["Region"], "child_type_id": atlas["Settlement"]},
        headers=headers,
    )
    cross_world = test_client.post(
        "/api/location-type-rules",
        json={"parent_type_id": atlas["Region"], "child_type_id": foreign["id"]},
        headers=headers,
    )
    as_gm = test_client.get(
        "/api/location-type-rules", params={"world_id": world["id"]}, headers=auth_headers("gm")
    )

    assert duplicate.status_code == 409
    assert duplicate.json()["detail"] == "Rule already exists."
    assert cross_world.json()["detail"] == "Location types must belong to the same world."
    assert as_gm.status_code == 403


@pytest.mark.api
def test_parent_rules_apply_transitively(test_client, auth_headers, world, atlas):
    headers = auth_headers("architect")
    north = create_location(test_client, headers, world, atlas["Region"], "Northmarch").json()

    inn = create_location(test_client, headers, world, atlas["Building"], "Lantern Inn", parent_location_id=north["id"])
    region_under_inn = create_location(
        test_client, headers, world, atlas["Region"], "Pocket Realm", parent_location_id=inn.json()["id"]
    )

    assert inn.status_code == 201
    assert region_under_inn.status_code == 400
    assert region_under_inn.json()["detail"] == "Location type rule does not allow this parent."


@pytest.mark.api
def test_denied_rule_blocks_direct_parent(test_client, auth_headers, world, atlas):
    headers = auth_headers("architect")
    test_client.post(
        "/api/location-type-rules",
        json={"parent_type_id": atlas["Region"], "child_type_id": atlas["Building"], "allowed": False},
        headers=headers,
    )
    north = create_location(test_client, headers, world, atlas["Region"], "Northmarch").json()

    response = create_location(
        test_client, headers, world, atlas["Building"], "Lantern Inn", parent_location_id=north["id"]
    )

    assert response.status_code == 400


# ============================================================================
# LOCATIONS
# ============================================================================


@pytest.mark.api
def test_create_location_validation(test_client, auth_headers, world, atlas):
    headers = auth_headers("architect")
    test_client.post(
        "/api/location-type-fields",
        json={
            "location_type_id": atlas["Settlement"],
            "field_key": "population",
            "field_label": "Population",
            "field_type": "NUMBER",
        },
        headers=headers,
    )

    missing = test_client.post("/api/locations", json={"world_id": world["id"]}, headers=headers)
    bad_status = create_location(test_client, headers, world, atlas["Region"], "Northmarch", status="RUINED")
    bad_number = create_location(
        test_client, headers, world, atlas["Settlement"], "Gullhaven", field_values={"population": "many"}
    )
    created = create_location(
        test_client, headers, world, atlas["Settlement"], "Gullhaven", field_values={"population": 1200}
    )
    fetched = test_client.get(f"/api/locations/{created.json()['id']}", headers=headers).json()

    assert missing.json()["detail"] == "world_id, location_type_id, and name are required."
    assert bad_status.json()["detail"] == "Invalid location status."
    assert bad_number.json()["detail"] == "Invalid number values for: population"
    assert fetched["status"] == "ACTIVE"
    assert fetched["field_values"] == {"population": 1200.0}
    assert fetched["access_allowed"] is True


@pytest.mark.api
def test_update_rejects_self_parent_and_cycles(test_client, auth_headers, world, atlas):
    headers = auth_headers("architect")
    test_client.post(
        "/api/location-type-rules",
        json={"parent_type_id": atlas["Region"], "child_type_id": atlas["Region"]},
        headers=headers,
    )
    outer = create_location(test_client, headers, world, atlas["Region"], "Northmarch").json()
    inner = create_location(
        test_client, headers, world, atlas["Region"], "Frostvale", parent_location_id=outer["id"]
    ).json()

    own_parent = test_client.put(
        f"/api/locations/{outer['id']}", json={"parent_location_id": outer["id"]}, headers=headers
    )
    cycle = test_client.put(
        f"/api/locations/{outer['id']}", json={"parent_location_id": inner["id"]}, headers=headers
    )
    detached = test_client.put(
        f"/api/locations/{inner['id']}", json={"parent_location_id": None}, headers=headers
    )

    assert own_parent.json()["detail"] == "Location cannot be its own parent."
    assert cycle.json()["detail"] == "Location parent would create a cycle."
    assert detached.json()["parent_location_id"] is None


@pytest.mark.api
def test_update_records_audit_changes(test_client, auth_headers, world, atlas):
    headers = auth_headers("architect")
    north = create_location(test_client, headers, world, atlas["Region"], "Northmarch").json()

    test_client.put(f"/api/locations/{north['id']}", json={"status": "INACTIVE"}, headers=headers)
    audit = test_client.get(f"/api/locations/{north['id']}/audit", headers=headers).json()

    update = next(entry for entry in audit if entry["action"] == "update")
    assert update["details"]["changes"] == [
        {"field_key": "status", "label": "Status", "from": "ACTIVE", "to": "INACTIVE"}
    ]


@pytest.mark.api
def test_campaign_locations_need_campaign_context(test_client, auth_headers, world, campaign, character, atlas):
    create_location(test_client, auth_headers("architect"), world, atlas["Region"], "Northmarch")
    create_location(
        test_client,
        auth_headers("gm"),
        world,
        atlas["Region"],
        "Smugglers' Coast",
        context_campaign_id=campaign["id"],
    )
    headers = auth_headers("player")

    without_context = test_client.get("/api/locations", params={"world_id": world["id"]}, headers=headers)
    with_context = test_client.get(
        "/api/locations", params={"world_id": world["id"], "campaign_id": campaign["id"]}, headers=headers
    )

    assert [row["name"] for row in without_context.json()] == ["Northmarch"]
    assert [row["name"] for row in with_context.json()] == ["Northmarch", "Smugglers' Coast"]


@pytest.mark.api
def test_list_by_parent(test_client, auth_headers, world, atlas):
    headers = auth_headers("architect")
    north = create_location(test_client, headers, world, atlas["Region"], "Northmarch").json()
    create_location(test_client, headers, world, atlas["Settlement"], "Gullhaven", parent_location_id=north["id"])
    create_location(test_client, headers, world, atlas["Region"], "Saltreach")

    response = test_client.get(
        "/api/locations", params={"world_id": world["id"], "parent_location_id": north["id"]}, headers=headers
    )

    assert [row["name"] for row in response.json()] == ["Gullhaven"]


@pytest.mark.api
def test_delete_location_guards(test_client, auth_headers, world, campaign, character, atlas):
    headers = auth_headers("architect")
    north = create_location(test_client, headers, world, atlas["Region"], "Northmarch").json()
    town = create_location(
        test_client, headers, world, atlas["Settlement"], "Gullhaven", parent_location_id=north["id"]
    ).json()

    as_player = test_client.delete(f"/api/locations/{town['id']}", headers=auth_headers("player"))
    with_children = test_client.delete(f"/api/locations/{north['id']}", headers=headers)
    deleted = test_client.delete(f"/api/locations/{town['id']}", headers=headers)
    gone = test_client.get(f"/api/locations/{town['id']}", headers=headers)

    assert as_player.status_code == 403
    assert with_children.status_code == 409
    assert with_children.json()["detail"] == "Location has child locations."
    assert deleted.json() == {"ok": True}
    assert gone.status_code == 404
    assert gone.json()["detail"] == "Location not found."
