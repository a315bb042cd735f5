"""
API tests for record notes and mentions.

Tests cover:
- Campaign/player context rules for authoring
- SHARED, PRIVATE and GM visibility including character shares
- Author and role labels
- Tag extraction, tag access checks and mentions
- Author-only edit and delete
"""

import pytest

# ============================================================================
# FIXTURES
# ============================================================================


@pytest.fixture
def npc(test_client, auth_headers, world, entity_type):
    return test_client.post(
        "/api/entities",
        json={"world_id": world["id"], "entity_type_id": entity_type["id"], "name": "Mira"},
        headers=auth_headers("architect"),
    ).json()


def post_note(client, headers, entity, **body):
    return client.post(f"/api/entities/{entity['id']}/notes", json=body, headers=headers)


def list_notes(client, headers, entity, **params):
    return client.get(f"/api/entities/{entity['id']}/notes", params=params, headers=headers).json()


# ============================================================================
# AUTHORING CONTEXT
# ============================================================================


@pytest.mark.api
def test_architect_private_note_outside_campaign(test_client, auth_headers, npc):
    headers = auth_headers("architect")

    response = post_note(test_client, headers, npc, body="Knows the tide tables.", visibility="PRIVATE")

    assert response.status_code == 201
    note = response.json()
    assert note["campaign_id"] is None
    assert note["author_label"] == "Architect"
    assert [n["id"] for n in list_notes(test_client, headers, npc)] == [note["id"]]


@pytest.mark.api
@pytest.mark.parametrize(
    "body,status,detail",
    [
        ({"body": "  "}, 400, "Note body is required."),
        ({"body": "Hello"}, 400, "Shared notes require a campaign context."),
        ({"body": "Hello", "visibility": "GM"}, 400, "GM notes require a campaign context."),
        ({"body": "Hello", "visibility": "PRIVATE"}, 403, "Campaign context required."),
    ],
)
def test_note_context_rules(test_client, auth_headers, character, npc, body, status, detail):
    response = post_note(test_client, auth_headers("player"), npc, **body)

    assert response.status_code == status
    assert response.json()["detail"] == detail


@pytest.mark.api
def test_player_needs_own_character(test_client, auth_headers, campaign, character, npc):
    headers = auth_headers("player")

    without_character = post_note(test_client, headers, npc, body="Hm.", campaign_id=campaign["id"])
    with_character = post_note(
        test_client, headers, npc, body="She owes me.", campaign_id=campaign["id"], character_id=character["id"]
    )

    assert without_character.status_code == 403
    assert without_character.json()["detail"] == "Player context required."
    assert with_character.status_code == 201
    assert with_character.json()["author_label"] == "Brisa Vell played by Player"
    assert with_character.json()["author_role_label"] is None


@pytest.mark.api
def test_only_campaign_gm_writes_gm_notes(test_client, auth_headers, campaign, character, npc):
    response = post_note(
        test_client,
        auth_headers("player"),
        npc,
        body="Secret",
        visibility="GM",
        campaign_id=campaign["id"],
        character_id=character["id"],
    )

    assert response.status_code == 403
    assert response.json()["detail"] == "Only the campaign GM can write GM notes."


# ============================================================================
# VISIBILITY
# ============================================================================


@pytest.mark.api
def test_gm_note_shares(test_client, auth_headers, campaign, character, npc):
    gm = auth_headers("gm")
    shared = post_note(
        test_client,
        gm,
        npc,
        body="She is the smuggler.",
        visibility="GM",
        campaign_id=campaign["id"],
        share_character_ids=[character["id"]],
    ).json()
    post_note(test_client, gm, npc, body="Real name: Mirabel.", visibility="GM", campaign_id=campaign["id"])

    player_view = list_notes(test_client, auth_headers("player"), npc, campaign_id=campaign["id"])
    gm_view = list_notes(test_client, gm, npc, campaign_id=campaign["id"])

    assert [n["id"] for n in player_view] == [shared["id"]]
    assert shared["author_role_label"] == "GM"
    assert shared["share_character_ids"] == [character["id"]]
    assert len(gm_view) == 2


@pytest.mark.api
def test_gm_note_share_with_architect(test_client, auth_headers, campaign, npc):
    gm = auth_headers("gm")
    post_note(
        test_client,
        gm,
        npc,
        body="Architect may know.",
        visibility="GM",
        campaign_id=campaign["id"],
        share_with_architect=True,
    )
    post_note(test_client, gm, npc, body="Table only.", visibility="GM", campaign_id=campaign["id"])

    architect_view = list_notes(test_client, auth_headers("architect"), npc, campaign_id=campaign["id"])

    assert [n["body"] for n in architect_view] == ["Architect may know."]


@pytest.mark.api
def test_share_validation(test_client, auth_headers, world, campaign, character, npc):
    gm = auth_headers("gm")
    loner = test_client.post(
        "/api/characters", json={"world_id": world["id"], "name": "Loner"}, headers=auth_headers("architect")
    ).json()

    not_gm = post_note(
        test_client, gm, npc, body="x", campaign_id=campaign["id"], share_character_ids=[character["id"]]
    )
    off_roster = post_note(
        test_client,
        gm,
        npc,
        body="x",
        visibility="GM",
        campaign_id=campaign["id"],
        share_character_ids=[loner["id"]],
    )

    assert not_gm.json()["detail"] == "GM note sharing is not available for this note."
    assert off_roster.json()["detail"] == "One or more shared characters are not in the campaign."


@pytest.mark.api
def test_private_player_note_visible_to_gm_and_architect(test_client, auth_headers, campaign, character, npc):
    post_note(
        test_client,
        auth_headers("player"),
        npc,
        body="I do not trust her.",
        visibility="PRIVATE",
        campaign_id=campaign["id"],
        character_id=character["id"],
    )

    for name in ("gm", "architect", "player"):
        notes = list_notes(test_client, auth_headers(name), npc, campaign_id=campaign["id"])
        assert [n["body"] for n in notes] == ["I do not trust her."], name


@pytest.mark.api
def test_notes_are_scoped_to_campaign_context(test_client, auth_headers, campaign, npc):
    gm = auth_headers("gm")
    post_note(test_client, gm, npc, body="Table talk.", campaign_id=campaign["id"])

    assert list_notes(test_client, gm, npc) == []
    assert [n["body"] for n in list_notes(test_client, gm, npc, campaign_id=campaign["id"])] == ["Table talk."]


# ============================================================================
# TAGS AND MENTIONS
# ============================================================================


@pytest.mark.api
def test_tags_and_mentions(test_client, auth_headers, world, campaign, entity_type, npc):
    architect = auth_headers("architect")
    tam = test_client.post(
        "/api/entities",
        json={"world_id": world["id"], "entity_type_id": entity_type["id"], "name": "Tam"},
        headers=architect,
    ).json()

    note = post_note(
        test_client,
        auth_headers("gm"),
        npc,
        body=f"Sails with @[Tam](entity:{tam['id']}) on feast days.",
        campaign_id=campaign["id"],
    ).json()

    assert [(t["tag_type"], t["target_id"], t["label"]) for t in note["tags"]] == [("ENTITY", tam["id"], "Tam")]
    mentions = test_client.get(
        f"/api/entities/{tam['id']}/mentions", params={"campaign_id": campaign["id"]}, headers=architect
    ).json()
    assert [m["id"] for m in mentions] == [note["id"]]
    assert mentions[0]["entity"] == {"id": npc["id"], "name": "Mira"}
    assert mentions[0]["tags"][0]["can_access"] is True


@pytest.mark.api
def test_tagging_inaccessible_entity_is_rejected(test_client, auth_headers, world, campaign, character, entity_type, npc):
    sealed = test_client.post(
        "/api/entities",
        json={
            "world_id": world["id"],
            "entity_type_id": entity_type["id"],
            "name": "Sealed",
            "access": {"read": {}, "write": {}},
        },
        headers=auth_headers("architect"),
    ).json()

    response = post_note(
        test_client,
        auth_headers("player"),
        npc,
        body=f"What is @[this](entity:{sealed['id']})?",
        campaign_id=campaign["id"],
        character_id=character["id"],
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "One or more tagged entities are not accessible."


# ============================================================================
# EDIT AND DELETE
# ============================================================================


@pytest.mark.api
def test_only_author_edits_and_deletes(test_client, auth_headers, campaign, npc):
    gm = auth_headers("gm")
    note = post_note(test_client, gm, npc, body="First draft.", campaign_id=campaign["id"]).json()

    foreign_edit = test_client.put(f"/api/notes/{note['id']}", json={"body": "Hijack"}, headers=auth_headers("architect"))
    edited = test_client.put(f"/api/notes/{note['id']}", json={"body": "Second draft."}, headers=gm)
    deleted = test_client.delete(f"/api/notes/{note['id']}", headers=gm)

    assert foreign_edit.status_code == 403
    assert edited.json()["body"] == "Second draft."
    assert deleted.json() == {"ok": True}
    assert test_client.delete(f"/api/notes/{note['id']}", headers=gm).status_code == 404
