"""
Shared pytest fixtures for the campaign server test suite.

This module provides fixtures that are automatically available to all test files:
- Temporary test databases (schema plus bundled seed data)
- FastAPI TestClient instances
- Test user accounts and bearer-token headers
- A small world with a campaign, a rostered character and an entity type

Every fixture is function-scoped so tests never share database state.
"""

import shutil
import tempfile
from collections.abc import Callable, Generator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from campaign_server.api import password
from campaign_server.config import use_test_database
from campaign_server.db import users_repo
from campaign_server.db.connection import connection_scope
from campaign_server.db.schema import init_database
from campaign_server.services.permissions import User
from tests.constants import TEST_PASSWORD, TEST_USERS

# ============================================================================
# SPEED
# ============================================================================


@pytest.fixture(autouse=True)
def fast_bcrypt(monkeypatch):
    """Use the minimum bcrypt cost so password hashing does not dominate runtime."""
    monkeypatch.setattr(password, "BCRYPT_ROUNDS", 4)


# ============================================================================
# DATABASE FIXTURES
# ============================================================================


@pytest.fixture(scope="function")
def temp_db_path() -> Generator[Path, None, None]:
    """
    Create a temporary database file for testing.

    Uses the config system's use_test_database context manager so every
    connection opened during the test points at the temporary file.

    Yields:
        Path to temporary database file
    """
    temp_dir = tempfile.mkdtemp()
    temp_db = Path(temp_dir) / "test_campaign.db"

    with use_test_database(temp_db):
        yield temp_db

    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture(scope="function")
def test_db(temp_db_path: Path, monkeypatch) -> Generator[None, None, None]:
    """
    Initialize a test database with schema and seed data but no users.

    Admin bootstrap variables are cleared so a developer's environment
    cannot leak an account into the test database.
    """
    monkeypatch.delenv("CAMPAIGN_ADMIN_EMAIL", raising=False)
    monkeypatch.delenv("CAMPAIGN_ADMIN_PASSWORD", raising=False)
    init_database(skip_admin=True)

    yield


@pytest.fixture(scope="function")
def db_with_users(test_db) -> dict[str, str]:
    """
    Create the standard test accounts.

    - admin (role: ADMIN)
    - architect, gm, player, outsider (role: USER)

    All users have password TEST_PASSWORD.

    Returns:
        Dict mapping fixture names to user ids
    """
    ids: dict[str, str] = {}
    with connection_scope(write=True) as conn:
        for key, (email, role) in TEST_USERS.items():
            ids[key] = users_repo.create_user(
                conn, email, TEST_PASSWORD, name=key.title(), role=role
            )
    return ids


@pytest.fixture
def users(db_with_users) -> dict[str, User]:
    """The standard test accounts as :class:`User` objects, for service tests."""
    with connection_scope() as conn:
        return {
            key: User.from_row(users_repo.get_user(conn, user_id))
            for key, user_id in db_with_users.items()
        }


@pytest.fixture
def conn(test_db):
    """A write-scoped connection for direct service calls; commits on success."""
    with connection_scope(write=True) as connection:
        yield connection


# ============================================================================
# API FIXTURES
# ============================================================================


@pytest.fixture(scope="function")
def test_client(test_db) -> TestClient:
    """
    Create a FastAPI TestClient backed by the temporary database.

    Example:
        def test_health(test_client):
            response = test_client.get("/health")
            assert response.status_code == 200
    """
    from campaign_server.api.server import create_app

    return TestClient(create_app())


def login(client: TestClient, email: str, secret: str = TEST_PASSWORD) -> str:
    """Log in through the API and return the access token."""
    response = client.post("/api/auth/login", json={"email": email, "password": secret})
    assert response.status_code == 200, response.text
    return response.json()["token"]


@pytest.fixture
def auth_headers(test_client: TestClient, db_with_users) -> Callable[[str], dict[str, str]]:
    """
    Return a helper producing ``Authorization`` headers for a test account.

    Example:
        response = test_client.get("/api/worlds", headers=auth_headers("architect"))
    """
    cache: dict[str, dict[str, str]] = {}

    def headers_for(key: str) -> dict[str, str]:
        if key not in cache:
            token = login(test_client, TEST_USERS[key][0])
            cache[key] = {"Authorization": f"Bearer {token}"}
        return cache[key]

    return headers_for


# ============================================================================
# CAMPAIGN DATA FIXTURES
# ============================================================================


@pytest.fixture
def world(test_client, auth_headers) -> dict:
    """A world whose primary architect is the ``architect`` account."""
    response = test_client.post(
        "/api/worlds",
        json={"name": "Eldoria", "description": "A test world"},
        headers=auth_headers("architect"),
    )
    assert response.status_code == 201, response.text
    return response.json()


@pytest.fixture
def campaign(test_client, auth_headers, world, db_with_users) -> dict:
    """A campaign in ``world`` run by the ``gm`` account."""
    response = test_client.post(
        "/api/campaigns",
        json={"world_id": world["id"], "name": "The Sunken Crown", "gm_user_id": db_with_users["gm"]},
        headers=auth_headers("architect"),
    )
    assert response.status_code == 201, response.text
    return response.json()


@pytest.fixture
def character(test_client, auth_headers, world, campaign, db_with_users) -> dict:
    """A character owned by ``player`` and rostered in ``campaign``."""
    response = test_client.post(
        "/api/characters",
        json={
            "world_id": world["id"],
            "campaign_id": campaign["id"],
            "name": "Brisa Vell",
            "player_id": db_with_users["player"],
        },
        headers=auth_headers("admin"),
    )
    assert response.status_code == 201, response.text
    return response.json()


@pytest.fixture
def entity_type(test_client, auth_headers, world) -> dict:
    """An ``NPC`` entity type in ``world``."""
    response = test_client.post(
        "/api/entity-types",
        json={"world_id": world["id"], "name": "NPC"},
        headers=auth_headers("architect"),
    )
    assert response.status_code == 201, response.text
    return response.json()
