"""
API tests for relationship types, type rules and relationships.

Tests cover:
- Relationship type validation and management rights
- Rule creation across type pairs, duplicates and template rejection
- Directed and peer relationships, expiry labels and deletion
- Relationship visibility scopes in the per-entity listing
"""

import pytest

# ============================================================================
# FIXTURES
# ============================================================================


@pytest.fixture
def faction_type(test_client, auth_headers, world):
    response = test_client.post(
        "/api/entity-types",
        json={"name": "Faction", "world_id": world["id"]},
        headers=auth_headers("architect"),
    )
    return response.json()


@pytest.fixture
def member_of(test_client, auth_headers, world, entity_type, faction_type):
    """Directed "Member Of" type with an NPC -> Faction rule."""
    headers = auth_headers("architect")
    relationship_type = test_client.post(
        "/api/relationship-types",
        json={
            "world_id": world["id"],
            "name": "Member Of",
            "from_label": "is a member of",
            "to_label": "has member",
            "past_from_label": "was a member of",
            "past_to_label": "had member",
        },
        headers=headers,
    ).json()
    test_client.post(
        "/api/relationship-type-rules",
        json={
            "relationship_type_id": relationship_type["id"],
            "from_entity_type_id": entity_type["id"],
            "to_entity_type_id": faction_type["id"],
        },
        headers=headers,
    )
    return relationship_type


@pytest.fixture
def people(test_client, auth_headers, world, entity_type, faction_type):
    headers = auth_headers("architect")

    def make(name, type_id):
        return test_client.post(
            "/api/entities",
            json={"world_id": world["id"], "entity_type_id": type_id, "name": name},
            headers=headers,
        ).json()

    return {
        "mira": make("Mira", entity_type["id"]),
        "tam": make("Tam", entity_type["id"]),
        "guild": make("Lamplighters Guild", faction_type["id"]),
    }


def relate(client, headers, relationship_type, source, target, **extra):
    return client.post(
        "/api/relationships",
        json={
            "relationship_type_id": relationship_type["id"],
            "from_entity_id": source["id"],
            "to_entity_id": target["id"],
            **extra,
        },
        headers=headers,
    )


def listing(client, headers, entity, **params):
    return client.get(f"/api/entities/{entity['id']}/relationships", params=params, headers=headers)


# ============================================================================
# TYPES AND RULES
# ============================================================================


@pytest.mark.api
def test_relationship_type_validation(test_client, auth_headers, world):
    missing = test_client.post(
        "/api/relationship-types",
        json={"world_id": world["id"], "name": "Rivals"},
        headers=auth_headers("architect"),
    )
    outsider = test_client.post(
        "/api/relationship-types",
        json={"world_id": world["id"], "name": "Rivals", "from_label": "a", "to_label": "b"},
        headers=auth_headers("outsider"),
    )
    bad_metadata = test_client.post(
        "/api/relationship-types",
        json={
            "world_id": world["id"],
            "name": "Rivals",
            "from_label": "a",
            "to_label": "b",
            "metadata": "{oops",
        },
        headers=auth_headers("architect"),
    )

    assert missing.status_code == 400
    assert missing.json()["detail"] == "world_id, name, from_label, and to_label are required."
    assert outsider.status_code == 403
    assert bad_metadata.status_code == 400
    assert bad_metadata.json()["detail"] == "Metadata must be valid JSON."


@pytest.mark.api
def test_metadata_is_decoded(test_client, auth_headers, world):
    response = test_client.post(
        "/api/relationship-types",
        json={
            "world_id": world["id"],
            "name": "Sworn",
            "from_label": "swore to",
            "to_label": "was sworn by",
            "metadata": '{"colour": "red"}',
            "is_peerable": False,
        },
        headers=auth_headers("architect"),
    )

    assert response.json()["metadata"] == {"colour": "red"}
    assert response.json()["is_peerable"] is False


@pytest.mark.api
def test_rules_for_several_pairs(test_client, auth_headers, member_of, entity_type, faction_type):
    headers = auth_headers("architect")

    response = test_client.post(
        "/api/relationship-type-rules",
        json={
            "relationship_type_id": member_of["id"],
            "from_entity_type_id": [entity_type["id"], faction_type["id"]],
            "to_entity_type_id": faction_type["id"],
        },
        headers=headers,
    )

    assert response.status_code == 201
    assert response.json()["created_count"] == 1
    assert response.json()["skipped_count"] == 1

    listed = test_client.get(
        "/api/relationship-type-rules", params={"relationship_type_id": member_of["id"]}, headers=headers
    ).json()
    assert listed["relationship_type"]["name"] == "Member Of"
    assert {rule["from_entity_type_name"] for rule in listed["rules"]} == {"NPC", "Faction"}


@pytest.mark.api
def test_duplicate_rule_conflicts(test_client, auth_headers, member_of, entity_type, faction_type):
    response = test_client.post(
        "/api/relationship-type-rules",
        json={
            "relationship_type_id": member_of["id"],
            "from_entity_type_id": entity_type["id"],
            "to_entity_type_id": faction_type["id"],
        },
        headers=auth_headers("architect"),
    )

    assert response.status_code == 409
    assert response.json()["detail"] == "Rule already exists for this type pair."


@pytest.mark.api
def test_rules_reject_templates(test_client, auth_headers, member_of, entity_type):
    template = test_client.post(
        "/api/entity-types", json={"name": "Monster", "is_template": True}, headers=auth_headers("admin")
    ).json()

    response = test_client.post(
        "/api/relationship-type-rules",
        json={
            "relationship_type_id": member_of["id"],
            "from_entity_type_id": entity_type["id"],
            "to_entity_type_id": template["id"],
        },
        headers=auth_headers("architect"),
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Rules can only target world entity types."


@pytest.mark.api
def test_delete_type_with_rules_or_relationships(test_client, auth_headers, member_of, people):
    headers = auth_headers("architect")

    has_rules = test_client.delete(f"/api/relationship-types/{member_of['id']}", headers=headers)
    relate(test_client, headers, member_of, people["mira"], people["guild"])
    in_use = test_client.delete(f"/api/relationship-types/{member_of['id']}", headers=headers)

    assert has_rules.status_code == 400
    assert has_rules.json()["detail"] == "Relationship type has rules."
    assert in_use.status_code == 400
    assert in_use.json()["detail"] == "Relationship type is in use."


# ============================================================================
# RELATIONSHIPS
# ============================================================================


@pytest.mark.api
def test_directed_relationship_labels(test_client, auth_headers, member_of, people):
    headers = auth_headers("architect")

    created = relate(test_client, headers, member_of, people["mira"], people["guild"])

    assert created.status_code == 201
    assert created.json()["visibility_scope"] == "GLOBAL"
    outgoing = listing(test_client, headers, people["mira"]).json()
    incoming = listing(test_client, headers, people["guild"]).json()
    assert outgoing["can_manage"] is True
    assert [(r["label"], r["direction"], r["related_entity_name"]) for r in outgoing["relationships"]] == [
        ("is a member of", "outgoing", "Lamplighters Guild")
    ]
    assert [(r["label"], r["direction"]) for r in incoming["relationships"]] == [("has member", "incoming")]


@pytest.mark.api
@pytest.mark.parametrize(
    "pair,status,detail",
    [
        (("mira", "mira"), 400, "from_entity_id and to_entity_id must be different."),
        (("guild", "mira"), 400, "Relationship type rule does not allow this pairing."),
    ],
)
def test_relationship_pairing_rules(test_client, auth_headers, member_of, people, pair, status, detail):
    response = relate(
        test_client, auth_headers("architect"), member_of, people[pair[0]], people[pair[1]]
    )

    assert response.status_code == status
    assert response.json()["detail"] == detail


@pytest.mark.api
def test_duplicate_relationship_conflicts(test_client, auth_headers, member_of, people):
    headers = auth_headers("architect")
    relate(test_client, headers, member_of, people["mira"], people["guild"])

    response = relate(test_client, headers, member_of, people["mira"], people["guild"])

    assert response.status_code == 409
    assert response.json()["detail"] == "Relationship already exists."


@pytest.mark.api
def test_expired_relationships_use_past_labels(test_client, auth_headers, member_of, people):
    headers = auth_headers("architect")
    relationship = relate(test_client, headers, member_of, people["mira"], people["guild"]).json()

    expired = test_client.post(f"/api/relationships/{relationship['id']}/expire", headers=headers)

    assert expired.json()["status"] == "EXPIRED"
    assert expired.json()["expired_at"]
    assert listing(test_client, headers, people["mira"]).json()["relationships"] == []
    history = listing(test_client, headers, people["mira"], status="all").json()["relationships"]
    assert [r["label"] for r in history] == ["was a member of"]
    assert listing(test_client, headers, people["mira"], status="bogus").status_code == 400


@pytest.mark.api
def test_peer_relationships(test_client, auth_headers, world, entity_type, people):
    headers = auth_headers("architect")
    ally = test_client.post(
        "/api/relationship-types",
        json={
            "world_id": world["id"],
            "name": "Ally",
            "from_label": "is allied with",
            "to_label": "is allied with",
            "is_peerable": True,
        },
        headers=headers,
    ).json()
    test_client.post(
        "/api/relationship-type-rules",
        json={
            "relationship_type_id": ally["id"],
            "from_entity_type_id": entity_type["id"],
            "to_entity_type_id": entity_type["id"],
        },
        headers=headers,
    )

    created = relate(test_client, headers, ally, people["mira"], people["tam"])
    reverse = relate(test_client, headers, ally, people["tam"], people["mira"])

    assert created.json()["peer_group_id"]
    assert reverse.status_code == 409
    for person, other in (("mira", "Tam"), ("tam", "Mira")):
        items = listing(test_client, headers, people[person]).json()["relationships"]
        assert [(r["direction"], r["related_entity_name"], r["is_peer"]) for r in items] == [
            ("peer", other, True)
        ]

    test_client.delete(f"/api/relationships/{created.json()['id']}", headers=headers)
    assert listing(test_client, headers, people["tam"]).json()["relationships"] == []


@pytest.mark.api
def test_peer_type_requires_reverse_rule(test_client, auth_headers, world, entity_type, faction_type, people):
    headers = auth_headers("architect")
    sworn = test_client.post(
        "/api/relationship-types",
        json={
            "world_id": world["id"],
            "name": "Sworn",
            "from_label": "is sworn to",
            "to_label": "is sworn to",
            "is_peerable": True,
        },
        headers=headers,
    ).json()
    test_client.post(
        "/api/relationship-type-rules",
        json={
            "relationship_type_id": sworn["id"],
            "from_entity_type_id": entity_type["id"],
            "to_entity_type_id": faction_type["id"],
        },
        headers=headers,
    )

    response = relate(test_client, headers, sworn, people["mira"], people["guild"])

    assert response.status_code == 400
    assert response.json()["detail"] == "Peer relationships require a reverse rule."


# ============================================================================
# VISIBILITY
# ============================================================================


@pytest.mark.api
def test_campaign_scoped_relationship_visibility(
    test_client, auth_headers, campaign, character, member_of, people
):
    architect = auth_headers("architect")
    relate(
        test_client,
        architect,
        member_of,
        people["mira"],
        people["guild"],
        context_campaign_id=campaign["id"],
    )
    player = auth_headers("player")

    hidden = listing(test_client, player, people["mira"]).json()
    shown = listing(test_client, player, people["mira"], campaign_id=campaign["id"]).json()

    assert hidden == {"can_manage": False, "relationships": []}
    assert [r["visibility_scope"] for r in shown["relationships"]] == ["CAMPAIGN"]


@pytest.mark.api
def test_update_visibility_validates_reference(test_client, auth_headers, member_of, people):
    headers = auth_headers("architect")
    relationship = relate(test_client, headers, member_of, people["mira"], people["guild"]).json()
    path = f"/api/relationships/{relationship['id']}"

    no_scope = test_client.put(path, json={}, headers=headers)
    no_ref = test_client.put(path, json={"visibility_scope": "CAMPAIGN"}, headers=headers)
    wrong_ref = test_client.put(
        path, json={"visibility_scope": "CHARACTER", "visibility_ref_id": "elsewhere"}, headers=headers
    )

    assert no_scope.json()["detail"] == "visibility_scope is required."
    assert no_ref.json()["detail"] == "visibility_ref_id is required for this visibility scope."
    assert wrong_ref.json()["detail"] == "Character must belong to the same world."
