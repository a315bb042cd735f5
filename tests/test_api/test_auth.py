"""
API tests for authentication endpoints (campaign_server/api/routes/auth.py).

Tests cover:
- Login validation and credential checks
- /me with missing, invalid and valid tokens
- Refresh token rotation through the httpOnly cookie
- Logout revocation
- Bearer protection of the rest of the API
"""

import pytest

from campaign_server.api.tokens import hash_refresh_token
from campaign_server.config import config
from campaign_server.db import query, tokens_repo
from campaign_server.db.connection import connection_scope
from tests.constants import TEST_PASSWORD

COOKIE = config.auth.refresh_cookie_name


# ============================================================================
# LOGIN
# ============================================================================


@pytest.mark.api
def test_login_returns_token_user_and_cookie(test_client, db_with_users):
    response = test_client.post(
        "/api/auth/login", json={"email": "Architect@Example.com", "password": TEST_PASSWORD}
    )

    assert response.status_code == 200
    data = response.json()
    assert data["token"]
    assert data["user"] == {
        "id": db_with_users["architect"],
        "email": "architect@example.com",
        "name": "Architect",
        "role": "USER",
    }
    assert COOKIE in response.cookies
    assert "httponly" in response.headers["set-cookie"].lower()


@pytest.mark.api
def test_login_requires_email_and_password(test_client, db_with_users):
    response = test_client.post("/api/auth/login", json={"email": "architect@example.com"})

    assert response.status_code == 400
    assert response.json()["detail"] == "Email and password are required."


@pytest.mark.api
@pytest.mark.parametrize(
    "email,secret",
    [("architect@example.com", "Wrong#Secret88"), ("nobody@example.com", TEST_PASSWORD)],
)
def test_login_rejects_bad_credentials(test_client, db_with_users, email, secret):
    response = test_client.post("/api/auth/login", json={"email": email, "password": secret})

    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid credentials."


# ============================================================================
# CURRENT USER
# ============================================================================


@pytest.mark.api
def test_me_with_valid_token(test_client, auth_headers, db_with_users):
    response = test_client.get("/api/auth/me", headers=auth_headers("admin"))

    assert response.status_code == 200
    assert response.json()["id"] == db_with_users["admin"]
    assert response.json()["role"] == "ADMIN"


@pytest.mark.api
def test_me_without_token(test_client, db_with_users):
    response = test_client.get("/api/auth/me")

    assert response.status_code == 401
    assert response.json()["detail"] == "Missing token."


@pytest.mark.api
def test_me_with_invalid_token(test_client, db_with_users):
    response = test_client.get("/api/auth/me", headers={"Authorization": "Bearer forged.token"})

    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid token."


@pytest.mark.api
@pytest.mark.parametrize("header", [None, "Bearer ", "Basic abc", "Bearer nonsense"])
def test_protected_routes_reject_missing_or_bad_bearer(test_client, db_with_users, header):
    headers = {"Authorization": header} if header is not None else {}

    response = test_client.get("/api/worlds", headers=headers)

    assert response.status_code == 401
    assert response.json()["detail"] == "Unauthorized."


# ============================================================================
# REFRESH AND LOGOUT
# ============================================================================


@pytest.mark.api
def test_refresh_without_cookie(test_client, db_with_users):
    response = test_client.post("/api/auth/refresh")

    assert response.status_code == 401
    assert response.json()["detail"] == "Missing refresh token."


@pytest.mark.api
def test_refresh_rotates_token(test_client, db_with_users):
    login = test_client.post(
        "/api/auth/login", json={"email": "player@example.com", "password": TEST_PASSWORD}
    )
    old_refresh = login.cookies[COOKIE]

    response = test_client.post("/api/auth/refresh")

    assert response.status_code == 200
    new_token = response.json()["token"]
    me = test_client.get("/api/auth/me", headers={"Authorization": f"Bearer {new_token}"})
    assert me.json()["email"] == "player@example.com"
    assert response.cookies[COOKIE] != old_refresh

    # The previous refresh token was revoked by the rotation.
    test_client.cookies.clear()
    test_client.cookies.set(COOKIE, old_refresh)
    replay = test_client.post("/api/auth/refresh")
    assert replay.status_code == 401
    assert replay.json()["detail"] == "Invalid refresh token."


@pytest.mark.api
def test_logout_revokes_refresh_token(test_client, db_with_users):
    login = test_client.post(
        "/api/auth/login", json={"email": "player@example.com", "password": TEST_PASSWORD}
    )
    refresh_token = login.cookies[COOKIE]

    response = test_client.post("/api/auth/logout")
    assert response.status_code == 200
    assert response.json() == {"ok": True}

    test_client.cookies.clear()
    test_client.cookies.set(COOKIE, refresh_token)
    assert test_client.post("/api/auth/refresh").status_code == 401


@pytest.mark.api
def test_logout_without_cookie_is_ok(test_client, db_with_users):
    response = test_client.post("/api/auth/logout")

    assert response.status_code == 200
    assert response.json() == {"ok": True}


@pytest.mark.api
def test_refresh_rejects_expired_token(test_client, db_with_users):
    test_client.post("/api/auth/login", json={"email": "player@example.com", "password": TEST_PASSWORD})
    with connection_scope(write=True) as conn:
        query.execute(
            conn,
            "UPDATE refresh_tokens SET expires_at = ?",
            ("2000-01-01T00:00:00+00:00",),
            operation="test.expire_tokens",
        )

    response = test_client.post("/api/auth/refresh")

    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid refresh token."


@pytest.mark.api
def test_refresh_token_cannot_be_rotated_twice(test_client, db_with_users, monkeypatch):
    login = test_client.post(
        "/api/auth/login", json={"email": "player@example.com", "password": TEST_PASSWORD}
    )
    old_refresh = login.cookies[COOKIE]
    with connection_scope() as conn:
        stale_row = tokens_repo.get_active_refresh_token(conn, hash_refresh_token(old_refresh))
    assert test_client.post("/api/auth/refresh").status_code == 200

    # A second request that looked the token up before the first one rotated it.
    monkeypatch.setattr(tokens_repo, "get_active_refresh_token", lambda conn, token_hash: stale_row)
    test_client.cookies.clear()
    test_client.cookies.set(COOKIE, old_refresh)
    replay = test_client.post("/api/auth/refresh")

    assert replay.status_code == 401
    assert replay.json()["detail"] == "Invalid refresh token."
    assert COOKIE not in replay.cookies


@pytest.mark.api
def test_login_prunes_revoked_refresh_tokens(test_client, db_with_users):
    credentials = {"email": "player@example.com", "password": TEST_PASSWORD}
    test_client.post("/api/auth/login", json=credentials)
    test_client.post("/api/auth/logout")

    test_client.post("/api/auth/login", json=credentials)

    with connection_scope() as conn:
        rows = query.fetch_all(
            conn,
            "SELECT revoked_at FROM refresh_tokens WHERE user_id = ?",
            (db_with_users["player"],),
            operation="test.refresh_tokens",
        )
    assert rows == [{"revoked_at": None}]
