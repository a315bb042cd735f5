"""
API tests for template packs and the guided World Builder.

Tests cover:
- Pack CRUD restricted to system administrators
- Template resources: required keys, parents, field types, JSON rules
- Cascading pack delete
- World Builder gating, nested pack read and apply
"""

import pytest

# ============================================================================
# HELPERS
# ============================================================================


def seeded_pack(client, headers):
    packs = client.get("/api/packs", headers=headers).json()
    return next(pack for pack in packs if pack["name"] == "Classic Fantasy")


def new_pack(client, headers, name="Weird West", **extra):
    response = client.post(
        "/api/packs", json={"name": name, "posture": "minimal", **extra}, headers=headers
    )
    assert response.status_code == 201
    return response.json()


# ============================================================================
# PACKS
# ============================================================================


@pytest.mark.api
def test_packs_are_admin_only(test_client, auth_headers):
    response = test_client.get("/api/packs", headers=auth_headers("architect"))

    assert response.status_code == 403


@pytest.mark.api
def test_seeded_pack_is_listed(test_client, auth_headers):
    pack = seeded_pack(test_client, auth_headers("admin"))

    assert pack["posture"] == "opinionated"
    assert pack["is_active"] is True


@pytest.mark.api
@pytest.mark.parametrize(
    "body,detail",
    [
        ({"name": "Half"}, "name and posture are required."),
        ({"name": "Odd", "posture": "chaotic"}, "Invalid pack posture."),
    ],
)
def test_create_pack_validation(test_client, auth_headers, body, detail):
    response = test_client.post("/api/packs", json=body, headers=auth_headers("admin"))

    assert response.status_code == 400
    assert response.json()["detail"] == detail


@pytest.mark.api
def test_update_pack(test_client, auth_headers):
    headers = auth_headers("admin")
    pack = new_pack(test_client, headers)

    response = test_client.put(
        f"/api/packs/{pack['id']}", json={"is_active": False, "description": "Dust"}, headers=headers
    )

    assert response.json()["is_active"] is False
    assert response.json()["description"] == "Dust"


# ============================================================================
# TEMPLATES
# ============================================================================


@pytest.mark.api
def test_entity_type_template_validation(test_client, auth_headers):
    headers = auth_headers("admin")

    missing = test_client.post("/api/entity-type-templates", json={"name": "Gunslinger"}, headers=headers)
    orphan = test_client.post(
        "/api/entity-type-templates", json={"pack_id": "nope", "name": "Gunslinger"}, headers=headers
    )

    assert missing.json()["detail"] == "pack_id and name are required."
    assert orphan.status_code == 400
    assert orphan.json()["detail"] == "Pack not found."


@pytest.mark.api
def test_template_fields(test_client, auth_headers):
    headers = auth_headers("admin")
    pack = new_pack(test_client, headers)
    template = test_client.post(
        "/api/entity-type-templates",
        json={"pack_id": pack["id"], "name": "Gunslinger", "is_core": True},
        headers=headers,
    ).json()
    body = {"template_id": template["id"], "field_key": "draw", "field_label": "Draw Speed"}

    bad_type = test_client.post(
        "/api/entity-type-template-fields", json={**body, "field_type": "DATE"}, headers=headers
    )
    bad_rules = test_client.post(
        "/api/entity-type-template-fields",
        json={**body, "field_type": "NUMBER", "validation_rules": "{nope"},
        headers=headers,
    )
    created = test_client.post(
        "/api/entity-type-template-fields",
        json={**body, "field_type": "NUMBER", "validation_rules": '{"min": 0}'},
        headers=headers,
    )

    assert template["is_core"] is True
    assert bad_type.json()["detail"] == "Invalid field type."
    assert bad_rules.json()["detail"] == "validation_rules must be valid JSON."
    assert created.status_code == 201
    field = created.json()
    assert field["default_enabled"] is True
    assert field["required"] is False
    assert field["validation_rules"] == {"min": 0}

    listed = test_client.get(
        "/api/entity-type-template-fields", params={"template_id": template["id"]}, headers=headers
    ).json()
    assert [row["field_key"] for row in listed] == ["draw"]


@pytest.mark.api
def test_location_rule_templates_must_share_pack(test_client, auth_headers):
    headers = auth_headers("admin")
    home = new_pack(test_client, headers, name="Home")
    away = new_pack(test_client, headers, name="Away")

    def location_template(pack, name):
        return test_client.post(
            "/api/location-type-templates", json={"pack_id": pack["id"], "name": name}, headers=headers
        ).json()

    town = location_template(home, "Town")
    saloon = location_template(away, "Saloon")

    response = test_client.post(
        "/api/location-type-rule-templates",
        json={"pack_id": home["id"], "parent_template_id": town["id"], "child_template_id": saloon["id"]},
        headers=headers,
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Location type templates must belong to the pack."


@pytest.mark.api
def test_delete_pack_removes_templates(test_client, auth_headers):
    headers = auth_headers("admin")
    pack = new_pack(test_client, headers)
    template = test_client.post(
        "/api/relationship-type-templates",
        json={"pack_id": pack["id"], "name": "Rides With", "from_label": "rides with", "to_label": "rides with"},
        headers=headers,
    ).json()

    assert test_client.delete(f"/api/packs/{pack['id']}", headers=headers).json() == {"ok": True}
    missing = test_client.get(f"/api/relationship-type-templates/{template['id']}", headers=headers)
    assert missing.status_code == 404
    assert missing.json()["detail"] == "Template not found."


# ============================================================================
# WORLD BUILDER
# ============================================================================


@pytest.mark.api
def test_builder_gating(test_client, auth_headers, world, campaign):
    admin = test_client.get(
        "/api/world-builder/packs", params={"world_id": world["id"]}, headers=auth_headers("admin")
    )
    no_world = test_client.get("/api/world-builder/packs", headers=auth_headers("architect"))
    gm = test_client.get("/api/world-builder/packs", params={"world_id": world["id"]}, headers=auth_headers("gm"))

    assert admin.status_code == 403
    assert admin.json()["detail"] == "Admins cannot use the guided builder."
    assert no_world.json()["detail"] == "world_id is required."
    assert gm.status_code == 403


@pytest.mark.api
def test_builder_lists_active_packs_with_templates(test_client, auth_headers, world):
    admin = auth_headers("admin")
    new_pack(test_client, admin, name="Dormant", is_active=False)
    pack = seeded_pack(test_client, admin)
    architect = auth_headers("architect")

    listed = test_client.get("/api/world-builder/packs", params={"world_id": world["id"]}, headers=architect)
    nested = test_client.get(
        f"/api/world-builder/packs/{pack['id']}", params={"world_id": world["id"]}, headers=architect
    ).json()

    assert [p["name"] for p in listed.json()] == ["Classic Fantasy"]
    npc = next(t for t in nested["entity_type_templates"] if t["name"] == "NPC")
    assert {f["field_key"] for f in npc["fields"]} == {"occupation", "age", "alignment"}
    assert [o["value"] for o in nested["choice_lists"][0]["options"]] == ["lawful", "neutral", "chaotic"]
    assert len(nested["location_type_rule_templates"]) == 2


@pytest.mark.api
def test_apply_pack_selection(test_client, auth_headers, world):
    pack = seeded_pack(test_client, auth_headers("admin"))
    architect = auth_headers("architect")
    payload = {
        "world_id": world["id"],
        "pack_id": pack["id"],
        "entity_types": [
            {
                "key": "npc",
                "name": "Townsfolk",
                "fields": [
                    {"field_key": "occupation", "label": "Occupation", "field_type": "TEXT", "enabled": True},
                    {"field_key": "age", "label": "Age", "field_type": "NUMBER", "enabled": False},
                    {
                        "field_key": "alignment",
                        "label": "Alignment",
                        "field_type": "CHOICE",
                        "enabled": True,
                        "choices": [
                            {"value": "lawful", "label": "Lawful"},
                            {"value": "lawful", "label": "Duplicate"},
                            {"value": "chaotic"},
                        ],
                    },
                ],
            },
            {"key": "faction", "name": "Faction", "fields": []},
        ],
        "location_types": [
            {"key": "region", "name": "Region", "fields": []},
            {"key": "settlement", "name": "Settlement", "fields": []},
        ],
        "location_rules": [
            {"parent_key": "region", "child_key": "settlement"},
            {"parent_key": "region", "child_key": "settlement"},
        ],
        "relationship_types": [
            {
                "enabled": True,
                "name": "Member Of",
                "from_label": "is a member of",
                "to_label": "has member",
                "role_mappings": [{"from_type_key": "npc", "to_type_key": "faction"}],
            },
            {"enabled": False, "name": "Ally", "from_label": "a", "to_label": "b"},
        ],
    }

    response = test_client.post("/api/world-builder/apply", json=payload, headers=architect)

    assert response.status_code == 200
    assert response.json() == {
        "ok": True,
        "created": {"entity_types": 2, "location_types": 2, "relationships": 1},
    }
    types = test_client.get("/api/entity-types", params={"world_id": world["id"]}, headers=architect).json()
    townsfolk = next(t for t in types if t["name"] == "Townsfolk")
    fields = test_client.get(
        "/api/entity-fields", params={"entity_type_id": townsfolk["id"]}, headers=architect
    ).json()
    assert [f["field_key"] for f in fields] == ["occupation", "alignment"]
    alignment = fields[1]["choice_list"]
    assert alignment["name"] == "Townsfolk - Alignment"
    assert [(o["value"], o["label"]) for o in alignment["options"]] == [
        ("lawful", "Lawful"),
        ("chaotic", "chaotic"),
    ]
    rules = test_client.get(
        "/api/relationship-type-rules", params={"world_id": world["id"]}, headers=architect
    ).json()
    assert len(rules) == 1


@pytest.mark.api
def test_apply_failure_leaves_world_untouched(test_client, auth_headers, world):
    pack = seeded_pack(test_client, auth_headers("admin"))
    architect = auth_headers("architect")

    response = test_client.post(
        "/api/world-builder/apply",
        json={
            "world_id": world["id"],
            "pack_id": pack["id"],
            "entity_types": [{"key": "ok", "name": "Fine"}, {"key": "broken"}],
        },
        headers=architect,
    )

    assert response.status_code == 500
    assert response.json()["detail"] == "Failed to apply pack."
    assert test_client.get(
        "/api/entity-types", params={"world_id": world["id"]}, headers=architect
    ).json() == []


@pytest.mark.api
def test_apply_rejects_admins_and_inactive_packs(test_client, auth_headers, world):
    admin = auth_headers("admin")
    dormant = new_pack(test_client, admin, name="Dormant", is_active=False)

    as_admin = test_client.post(
        "/api/world-builder/apply", json={"world_id": world["id"], "pack_id": dormant["id"]}, headers=admin
    )
    inactive = test_client.post(
        "/api/world-builder/apply",
        json={"world_id": world["id"], "pack_id": dormant["id"]},
        headers=auth_headers("architect"),
    )

    assert as_admin.json()["detail"] == "Admins cannot apply packs to worlds."
    assert inactive.status_code == 404
    assert inactive.json()["detail"] == "Pack not found."
