"""
API tests for play sessions (campaign_server/api/routes/sessions.py).

Tests cover:
- Session CRUD and campaign access
- Per-author drafts and content normalization
- Publishing notes: draft clearing, references, timeline
- PRIVATE session note visibility
"""

import pytest

# ============================================================================
# FIXTURES
# ============================================================================


@pytest.fixture
def session(test_client, auth_headers, world, campaign):
    response = test_client.post(
        "/api/sessions",
        json={"world_id": world["id"], "campaign_id": campaign["id"], "title": "Session 1: Low Tide"},
        headers=auth_headers("gm"),
    )
    assert response.status_code == 201
    return response.json()


def publish(client, headers, session, text, **extra):
    return client.post(
        f"/api/sessions/{session['id']}/notes", json={"content": {"text": text}, **extra}, headers=headers
    )


# ============================================================================
# SESSIONS
# ============================================================================


@pytest.mark.api
def test_create_session_validation(test_client, auth_headers, world, campaign):
    headers = auth_headers("gm")
    other_world = test_client.post("/api/worlds", json={"name": "Other"}, headers=auth_headers("admin")).json()

    missing = test_client.post("/api/sessions", json={"world_id": world["id"]}, headers=headers)
    mismatch = test_client.post(
        "/api/sessions",
        json={"world_id": other_world["id"], "campaign_id": campaign["id"], "title": "Lost"},
        headers=headers,
    )

    assert missing.json()["detail"] == "world_id, campaign_id, and title are required."
    assert mismatch.status_code == 400
    assert mismatch.json()["detail"] == "Campaign world mismatch."


@pytest.mark.api
def test_list_sessions_requires_context_and_access(test_client, auth_headers, world, campaign, session):
    missing = test_client.get("/api/sessions", params={"world_id": world["id"]}, headers=auth_headers("gm"))
    outsider = test_client.get(
        "/api/sessions",
        params={"world_id": world["id"], "campaign_id": campaign["id"]},
        headers=auth_headers("outsider"),
    )
    listed = test_client.get(
        "/api/sessions",
        params={"world_id": world["id"], "campaign_id": campaign["id"]},
        headers=auth_headers("gm"),
    )

    assert missing.json()["detail"] == "world_id and campaign_id are required."
    assert outsider.status_code == 403
    assert [(s["id"], s["note_count"]) for s in listed.json()] == [(session["id"], 0)]


@pytest.mark.api
def test_update_and_delete_session(test_client, auth_headers, session):
    headers = auth_headers("gm")

    updated = test_client.put(
        f"/api/sessions/{session['id']}",
        json={"title": "Session 1: High Tide", "started_at": "2026-03-01T18:00:00+00:00"},
        headers=headers,
    )
    deleted = test_client.delete(f"/api/sessions/{session['id']}", headers=headers)

    assert updated.json()["title"] == "Session 1: High Tide"
    assert updated.json()["started_at"] == "2026-03-01T18:00:00+00:00"
    assert deleted.json() == {"ok": True}
    assert test_client.get(f"/api/sessions/{session['id']}", headers=headers).status_code == 404


# ============================================================================
# DRAFTS
# ============================================================================


@pytest.mark.api
def test_draft_round_trip(test_client, auth_headers, session):
    headers = auth_headers("gm")
    path = f"/api/sessions/{session['id']}/draft"

    empty = test_client.get(path, headers=headers).json()
    saved = test_client.put(
        path, json={"content": {"text": "line one\r\nline two"}, "visibility": "PRIVATE"}, headers=headers
    ).json()

    assert empty == {"content": None, "visibility": "SHARED", "last_saved_at": None}
    assert saved["visibility"] == "PRIVATE"
    assert saved["last_saved_at"]
    assert saved["content"] == {
        "version": 1,
        "format": "markdown",
        "text": "line one\nline two",
        "references": [],
    }


@pytest.mark.api
def test_drafts_are_per_author(test_client, auth_headers, campaign, character, session):
    path = f"/api/sessions/{session['id']}/draft"
    test_client.put(path, json={"content": {"text": "GM thoughts"}}, headers=auth_headers("gm"))

    player_draft = test_client.get(path, headers=auth_headers("player")).json()

    assert player_draft["content"] is None


@pytest.mark.api
def test_invalid_draft_and_hidden_session(test_client, auth_headers, session):
    path = f"/api/sessions/{session['id']}/draft"

    invalid = test_client.put(path, json={"content": "plain string"}, headers=auth_headers("gm"))
    hidden = test_client.get(path, headers=auth_headers("outsider"))

    assert invalid.status_code == 400
    assert invalid.json()["detail"] == "Invalid draft content."
    assert hidden.status_code == 404
    assert hidden.json()["detail"] == "Session not found."


# ============================================================================
# PUBLISHED NOTES
# ============================================================================


@pytest.mark.api
def test_publish_clears_draft_and_adds_timeline(test_client, auth_headers, world, entity_type, session):
    headers = auth_headers("gm")
    npc = test_client.post(
        "/api/entities",
        json={"world_id": world["id"], "entity_type_id": entity_type["id"], "name": "Mira"},
        headers=auth_headers("architect"),
    ).json()
    test_client.put(f"/api/sessions/{session['id']}/draft", json={"content": {"text": "wip"}}, headers=headers)

    text = f"Met @[Mira](entity:{npc['id']}) twice: @[Mira](entity:{npc['id']})."
    published = publish(test_client, headers, session, text)

    assert published.status_code == 201
    note = published.json()
    assert note["references"][0]["target_type"] == "entity"
    assert len(note["references"]) == 1
    assert note["session"]["title"] == "Session 1: Low Tide"
    assert test_client.get(f"/api/sessions/{session['id']}/draft", headers=headers).json()["content"] is None

    timeline = test_client.get(f"/api/sessions/{session['id']}/timeline", headers=headers).json()
    assert [(entry["type"], entry["note"]["id"]) for entry in timeline] == [("NOTE_PUBLISHED", note["id"])]

    by_record = test_client.get(f"/api/entities/{npc['id']}/session-notes", headers=headers).json()
    assert [n["id"] for n in by_record] == [note["id"]]


@pytest.mark.api
def test_publish_requires_text(test_client, auth_headers, session):
    response = publish(test_client, auth_headers("gm"), session, "   ")

    assert response.status_code == 400
    assert response.json()["detail"] == "Session note content is required."


@pytest.mark.api
def test_publish_rejects_inaccessible_reference(test_client, auth_headers, world, campaign, character, entity_type, session):
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

    response = publish(test_client, auth_headers("player"), session, f"@[Sealed](entity:{sealed['id']})")

    assert response.status_code == 400
    assert response.json()["detail"] == "One or more referenced entities are not accessible."


@pytest.mark.api
def test_private_notes_hidden_from_other_players(test_client, auth_headers, world, campaign, character, session):
    gm = auth_headers("gm")
    player = auth_headers("player")
    publish(test_client, gm, session, "GM only recap", visibility="PRIVATE")
    publish(test_client, gm, session, "Shared recap")
    own = publish(test_client, player, session, "My private thoughts", visibility="PRIVATE").json()

    player_view = test_client.get(f"/api/sessions/{session['id']}/notes", headers=player).json()
    gm_view = test_client.get(f"/api/sessions/{session['id']}/notes", headers=gm).json()
    player_timeline = test_client.get(f"/api/sessions/{session['id']}/timeline", headers=player).json()

    assert {n["content"]["text"] for n in player_view} == {"Shared recap", "My private thoughts"}
    assert len(gm_view) == 3
    assert own["id"] in {entry["note_id"] for entry in player_timeline}
    assert len(player_timeline) == 2


@pytest.mark.api
def test_only_author_updates_session_note(test_client, auth_headers, campaign, character, session):
    note = publish(test_client, auth_headers("gm"), session, "Original").json()

    foreign = test_client.put(
        f"/api/session-notes/{note['id']}", json={"content": {"text": "Mine now"}}, headers=auth_headers("player")
    )
    own = test_client.put(
        f"/api/session-notes/{note['id']}",
        json={"content": {"text": "Revised"}, "visibility": "PRIVATE"},
        headers=auth_headers("gm"),
    )

    assert foreign.status_code == 403
    assert own.json()["content"]["text"] == "Revised"
    assert own.json()["visibility"] == "PRIVATE"
