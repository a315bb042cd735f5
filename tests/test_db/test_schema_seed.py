"""
Tests for schema creation, seed loading and admin bootstrap.

Tests cover:
- init_database table creation and pragmas
- Seed document validation and idempotent application
- Bootstrap admin from environment variables
"""

from pathlib import Path

import pytest

from campaign_server.db import query
from campaign_server.db.connection import connection_scope
from campaign_server.db.schema import bootstrap_admin_from_env, init_database
from campaign_server.db.seed import apply_seed, load_seed
from tests.constants import TEST_PASSWORD


def _count(conn, table: str) -> int:
    return query.fetch_value(conn, f"SELECT COUNT(*) FROM {table}", operation="test.count")


# ============================================================================
# SCHEMA
# ============================================================================


@pytest.mark.db
def test_init_database_creates_core_tables(test_db):
    with connection_scope() as conn:
        tables = {
            row["name"]
            for row in query.fetch_all(
                conn, "SELECT name FROM sqlite_master WHERE type = 'table'", operation="test.tables"
            )
        }

    for table in (
        "users",
        "refresh_tokens",
        "worlds",
        "campaigns",
        "characters",
        "entity_types",
        "entities",
        "locations",
        "relationships",
        "notes",
        "sessions",
        "packs",
        "system_views",
        "system_related_lists",
        "system_related_list_fields",
        "system_audits",
    ):
        assert table in tables


@pytest.mark.db
def test_connections_enforce_foreign_keys(test_db):
    with connection_scope() as conn:
        assert query.fetch_value(conn, "PRAGMA foreign_keys", operation="test.pragma") == 1


@pytest.mark.db
def test_init_database_is_idempotent(test_db):
    with connection_scope() as conn:
        before = {t: _count(conn, t) for t in ("system_choices", "system_views", "system_related_lists", "packs")}

    init_database(skip_admin=True)

    with connection_scope() as conn:
        after = {t: _count(conn, t) for t in ("system_choices", "system_views", "system_related_lists", "packs")}
    assert before == after


@pytest.mark.db
def test_init_database_without_seed_leaves_tables_empty(temp_db_path):
    init_database(skip_admin=True, seed=False)

    with connection_scope() as conn:
        assert _count(conn, "system_properties") == 0
        assert _count(conn, "packs") == 0


# ============================================================================
# SEED DATA
# ============================================================================


@pytest.mark.db
def test_bundled_seed_loads_expected_rows(test_db):
    with connection_scope() as conn:
        keys = {
            row["key"]
            for row in query.fetch_all(conn, "SELECT key FROM system_properties", operation="test.props")
        }
        scopes = query.fetch_all(
            conn,
            "SELECT value FROM system_choices WHERE list_key = 'world_entity_permission_scope'",
            operation="test.choices",
        )
        pack = query.fetch_one(conn, "SELECT * FROM packs WHERE name = 'Classic Fantasy'", operation="test.pack")

    assert {"auth.access_token_ttl_minutes", "auth.refresh_token_ttl_days"} <= keys
    assert {row["value"] for row in scopes} == {"ARCHITECT", "ARCHITECT_GM", "ARCHITECT_GM_PLAYER"}
    assert pack is not None
    assert pack["posture"] == "opinionated"


@pytest.mark.db
def test_bundled_seed_loads_related_lists(test_db):
    with connection_scope() as conn:
        roster = query.fetch_one(
            conn, "SELECT * FROM system_related_lists WHERE key = 'campaign.characters'", operation="test.list"
        )
        fields = query.fetch_all(
            conn,
            "SELECT field_key, source FROM system_related_list_fields WHERE related_list_id = ? ORDER BY list_order",
            (roster["id"],),
            operation="test.list_fields",
        )
        admin_only = query.fetch_value(
            conn, "SELECT COUNT(*) FROM system_related_lists WHERE admin_only = 1", operation="test.admin_only"
        )

    assert roster["join_entity_key"] == "character_campaign"
    assert [(row["field_key"], row["source"]) for row in fields] == [
        ("name", "RELATED"),
        ("player_name", "RELATED"),
        ("status", "JOIN"),
    ]
    assert admin_only == 3


@pytest.mark.db
def test_apply_seed_keeps_edited_rows(test_db):
    with connection_scope(write=True) as conn:
        query.execute(
            conn,
            "UPDATE system_properties SET value = '5' WHERE key = 'auth.access_token_ttl_minutes'",
            operation="test.edit",
        )
        apply_seed(conn, load_seed())

    with connection_scope() as conn:
        value = query.fetch_value(
            conn,
            "SELECT value FROM system_properties WHERE key = 'auth.access_token_ttl_minutes'",
            operation="test.read",
        )
    assert value == "5"


@pytest.mark.unit
def test_load_seed_missing_file(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        load_seed(tmp_path / "missing.yaml")


@pytest.mark.unit
def test_load_seed_rejects_non_mapping(tmp_path: Path):
    seed_file = tmp_path / "seed.yaml"
    seed_file.write_text("- just\n- a list\n", encoding="utf-8")

    with pytest.raises(ValueError, match="mapping at the top level"):
        load_seed(seed_file)


@pytest.mark.unit
def test_load_seed_rejects_wrong_section_shape(tmp_path: Path):
    seed_file = tmp_path / "seed.yaml"
    seed_file.write_text("views:\n  key: not-a-list\n", encoding="utf-8")

    with pytest.raises(ValueError, match="'views' must be a list."):
        load_seed(seed_file)


@pytest.mark.unit
def test_load_seed_fills_missing_sections(tmp_path: Path):
    seed_file = tmp_path / "seed.yaml"
    seed_file.write_text("version: 1\n", encoding="utf-8")

    data = load_seed(seed_file)

    assert data["packs"] == []
    assert data["system_choices"] == {}


# ============================================================================
# ADMIN BOOTSTRAP
# ============================================================================


@pytest.mark.db
def test_bootstrap_admin_without_env_creates_nothing(test_db, capsys):
    assert bootstrap_admin_from_env() is False
    assert "no admin created" in capsys.readouterr().out


@pytest.mark.db
def test_bootstrap_admin_rejects_short_password(test_db, monkeypatch):
    monkeypatch.setenv("CAMPAIGN_ADMIN_EMAIL", "root@example.com")
    monkeypatch.setenv("CAMPAIGN_ADMIN_PASSWORD", "short")

    assert bootstrap_admin_from_env() is False


@pytest.mark.db
def test_bootstrap_admin_only_when_no_users(test_db, monkeypatch):
    monkeypatch.setenv("CAMPAIGN_ADMIN_EMAIL", "root@example.com")
    monkeypatch.setenv("CAMPAIGN_ADMIN_PASSWORD", TEST_PASSWORD)

    assert bootstrap_admin_from_env() is True
    assert bootstrap_admin_from_env() is False

    with connection_scope() as conn:
        assert _count(conn, "users") == 1
