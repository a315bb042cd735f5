"""Schema creation for the SQLite backend.

The schema layer is isolated from service code so schema changes are
reviewable without wading through permission and query logic.

Conventions:
    - Primary keys are opaque hex strings generated by ``query.new_id``.
    - Timestamps are ISO-8601 UTC text written by ``query.utc_now``.
    - Booleans are ``INTEGER`` constrained to 0/1.
    - JSON payloads are ``TEXT`` columns with a ``_json`` suffix.
    - Child rows use ``ON DELETE CASCADE`` so whole-record deletes stay a
      single statement inside a write scope.
"""

from __future__ import annotations

import logging
import os

from campaign_server.db import query
from campaign_server.db.connection import connection_scope

logger = logging.getLogger(__name__)

TABLE_STATEMENTS = (
    # ------------------------------------------------------------------
    # Users and auth
    # ------------------------------------------------------------------
    """
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        email TEXT UNIQUE NOT NULL,
        name TEXT,
        password_hash TEXT NOT NULL,
        role TEXT NOT NULL DEFAULT 'USER' CHECK (role IN ('ADMIN', 'USER')),
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS refresh_tokens (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        token_hash TEXT UNIQUE NOT NULL,
        expires_at TEXT NOT NULL,
        revoked_at TEXT,
        created_at TEXT NOT NULL
    )
    """,
    # ------------------------------------------------------------------
    # Worlds and membership
    # ------------------------------------------------------------------
    """
    CREATE TABLE IF NOT EXISTS worlds (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        description TEXT,
        dm_label_key TEXT,
        theme_key TEXT,
        primary_architect_id TEXT NOT NULL REFERENCES users(id),
        entity_permission_scope TEXT NOT NULL DEFAULT 'ARCHITECT_GM_PLAYER'
            CHECK (entity_permission_scope IN ('ARCHITECT', 'ARCHITECT_GM', 'ARCHITECT_GM_PLAYER')),
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS world_architects (
        world_id TEXT NOT NULL REFERENCES worlds(id) ON DELETE CASCADE,
        user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        PRIMARY KEY (world_id, user_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS world_game_masters (
        world_id TEXT NOT NULL REFERENCES worlds(id) ON DELETE CASCADE,
        user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        PRIMARY KEY (world_id, user_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS world_campaign_creators (
        world_id TEXT NOT NULL REFERENCES worlds(id) ON DELETE CASCADE,
        user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        PRIMARY KEY (world_id, user_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS world_character_creators (
        world_id TEXT NOT NULL REFERENCES worlds(id) ON DELETE CASCADE,
        user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        PRIMARY KEY (world_id, user_id)
    )
    """,
    # ------------------------------------------------------------------
    # Campaigns and characters
    # ------------------------------------------------------------------
    """
    CREATE TABLE IF NOT EXISTS campaigns (
        id TEXT PRIMARY KEY,
        world_id TEXT NOT NULL REFERENCES worlds(id) ON DELETE CASCADE,
        name TEXT NOT NULL,
        description TEXT,
        owner_id TEXT REFERENCES users(id) ON DELETE SET NULL,
        created_by_id TEXT REFERENCES users(id) ON DELETE SET NULL,
        gm_user_id TEXT REFERENCES users(id) ON DELETE SET NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS campaign_character_creators (
        campaign_id TEXT NOT NULL REFERENCES campaigns(id) ON DELETE CASCADE,
        user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        PRIMARY KEY (campaign_id, user_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS characters (
        id TEXT PRIMARY KEY,
        world_id TEXT NOT NULL REFERENCES worlds(id) ON DELETE CASCADE,
        player_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        name TEXT NOT NULL,
        description TEXT,
        status_key TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS character_campaigns (
        character_id TEXT NOT NULL REFERENCES characters(id) ON DELETE CASCADE,
        campaign_id TEXT NOT NULL REFERENCES campaigns(id) ON DELETE CASCADE,
        status TEXT NOT NULL DEFAULT 'ACTIVE' CHECK (status IN ('ACTIVE', 'INACTIVE')),
        created_at TEXT NOT NULL,
        PRIMARY KEY (character_id, campaign_id)
    )
    """,
    # ------------------------------------------------------------------
    # Packs and choice lists
    # ------------------------------------------------------------------
    """
    CREATE TABLE IF NOT EXISTS packs (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        description TEXT,
        posture TEXT NOT NULL DEFAULT 'opinionated' CHECK (posture IN ('opinionated', 'minimal')),
        is_active INTEGER NOT NULL DEFAULT 1 CHECK (is_active IN (0, 1)),
        created_by_id TEXT REFERENCES users(id) ON DELETE SET NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS choice_lists (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        description TEXT,
        scope TEXT NOT NULL CHECK (scope IN ('PACK', 'WORLD')),
        pack_id TEXT REFERENCES packs(id) ON DELETE CASCADE,
        world_id TEXT REFERENCES worlds(id) ON DELETE CASCADE,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS choice_options (
        id TEXT PRIMARY KEY,
        choice_list_id TEXT NOT NULL REFERENCES choice_lists(id) ON DELETE CASCADE,
        value TEXT NOT NULL,
        label TEXT NOT NULL,
        sort_order INTEGER NOT NULL DEFAULT 0,
        is_active INTEGER NOT NULL DEFAULT 1 CHECK (is_active IN (0, 1)),
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        UNIQUE (choice_list_id, value)
    )
    """,
    # ------------------------------------------------------------------
    # Entity types and entities
    # ------------------------------------------------------------------
    """
    CREATE TABLE IF NOT EXISTS entity_types (
        id TEXT PRIMARY KEY,
        world_id TEXT REFERENCES worlds(id) ON DELETE CASCADE,
        name TEXT NOT NULL,
        description TEXT,
        is_template INTEGER NOT NULL DEFAULT 0 CHECK (is_template IN (0, 1)),
        created_by_id TEXT REFERENCES users(id) ON DELETE SET NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS entity_form_sections (
        id TEXT PRIMARY KEY,
        entity_type_id TEXT NOT NULL REFERENCES entity_types(id) ON DELETE CASCADE,
        title TEXT NOT NULL,
        layout TEXT NOT NULL DEFAULT 'ONE_COLUMN' CHECK (layout IN ('ONE_COLUMN', 'TWO_COLUMN')),
        sort_order INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS entity_fields (
        id TEXT PRIMARY KEY,
        entity_type_id TEXT NOT NULL REFERENCES entity_types(id) ON DELETE CASCADE,
        field_key TEXT NOT NULL,
        label TEXT NOT NULL,
        field_type TEXT NOT NULL,
        description TEXT,
        required INTEGER NOT NULL DEFAULT 0 CHECK (required IN (0, 1)),
        list_order INTEGER NOT NULL DEFAULT 0,
        form_order INTEGER NOT NULL DEFAULT 0,
        form_section_id TEXT REFERENCES entity_form_sections(id) ON DELETE SET NULL,
        form_column INTEGER NOT NULL DEFAULT 1,
        reference_entity_type_id TEXT REFERENCES entity_types(id) ON DELETE SET NULL,
        reference_location_type_key TEXT,
        choice_list_id TEXT REFERENCES choice_lists(id) ON DELETE SET NULL,
        conditions_json TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        UNIQUE (entity_type_id, field_key)
    )
    """,
    # ------------------------------------------------------------------
    # Location types and locations
    # ------------------------------------------------------------------
    """
    CREATE TABLE IF NOT EXISTS location_types (
        id TEXT PRIMARY KEY,
        world_id TEXT NOT NULL REFERENCES worlds(id) ON DELETE CASCADE,
        name TEXT NOT NULL,
        description TEXT,
        icon TEXT,
        colour TEXT,
        menu INTEGER NOT NULL DEFAULT 0 CHECK (menu IN (0, 1)),
        metadata_json TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS location_type_fields (
        id TEXT PRIMARY KEY,
        location_type_id TEXT NOT NULL REFERENCES location_types(id) ON DELETE CASCADE,
        field_key TEXT NOT NULL,
        field_label TEXT NOT NULL,
        field_type TEXT NOT NULL,
        required INTEGER NOT NULL DEFAULT 0 CHECK (required IN (0, 1)),
        default_value_json TEXT,
        validation_rules_json TEXT,
        list_order INTEGER NOT NULL DEFAULT 0,
        form_order INTEGER NOT NULL DEFAULT 0,
        choice_list_id TEXT REFERENCES choice_lists(id) ON DELETE SET NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        UNIQUE (location_type_id, field_key)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS location_type_rules (
        id TEXT PRIMARY KEY,
        parent_type_id TEXT NOT NULL REFERENCES location_types(id) ON DELETE CASCADE,
        child_type_id TEXT NOT NULL REFERENCES location_types(id) ON DELETE CASCADE,
        allowed INTEGER NOT NULL DEFAULT 1 CHECK (allowed IN (0, 1)),
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        UNIQUE (parent_type_id, child_type_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS locations (
        id TEXT PRIMARY KEY,
        world_id TEXT NOT NULL REFERENCES worlds(id) ON DELETE CASCADE,
        location_type_id TEXT NOT NULL REFERENCES location_types(id),
        parent_location_id TEXT REFERENCES locations(id),
        name TEXT NOT NULL,
        description TEXT,
        status TEXT NOT NULL DEFAULT 'ACTIVE' CHECK (status IN ('ACTIVE', 'INACTIVE')),
        metadata_json TEXT,
        created_by_id TEXT REFERENCES users(id) ON DELETE SET NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS location_field_values (
        id TEXT PRIMARY KEY,
        location_id TEXT NOT NULL REFERENCES locations(id) ON DELETE CASCADE,
        field_id TEXT NOT NULL REFERENCES location_type_fields(id) ON DELETE CASCADE,
        value_string TEXT,
        value_text TEXT,
        value_boolean INTEGER,
        value_number REAL,
        value_json TEXT,
        UNIQUE (location_id, field_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS location_access (
        id TEXT PRIMARY KEY,
        location_id TEXT NOT NULL REFERENCES locations(id) ON DELETE CASCADE,
        access_type TEXT NOT NULL CHECK (access_type IN ('READ', 'WRITE')),
        scope_type TEXT NOT NULL CHECK (scope_type IN ('GLOBAL', 'CAMPAIGN', 'CHARACTER')),
        scope_id TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS entities (
        id TEXT PRIMARY KEY,
        world_id TEXT NOT NULL REFERENCES worlds(id) ON DELETE CASCADE,
        entity_type_id TEXT NOT NULL REFERENCES entity_types(id),
        name TEXT NOT NULL,
        description TEXT,
        current_location_id TEXT REFERENCES locations(id) ON DELETE SET NULL,
        created_by_id TEXT REFERENCES users(id) ON DELETE SET NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS entity_field_values (
        id TEXT PRIMARY KEY,
        entity_id TEXT NOT NULL REFERENCES entities(id) ON DELETE CASCADE,
        field_id TEXT NOT NULL REFERENCES entity_fields(id) ON DELETE CASCADE,
        value_string TEXT,
        value_text TEXT,
        value_boolean INTEGER,
        value_number REAL,
        value_json TEXT,
        UNIQUE (entity_id, field_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS entity_access (
        id TEXT PRIMARY KEY,
        entity_id TEXT NOT NULL REFERENCES entities(id) ON DELETE CASCADE,
        access_type TEXT NOT NULL CHECK (access_type IN ('READ', 'WRITE')),
        scope_type TEXT NOT NULL CHECK (scope_type IN ('GLOBAL', 'CAMPAIGN', 'CHARACTER')),
        scope_id TEXT
    )
    """,
    # ------------------------------------------------------------------
    # Relationships
    # ------------------------------------------------------------------
    """
    CREATE TABLE IF NOT EXISTS relationship_types (
        id TEXT PRIMARY KEY,
        world_id TEXT NOT NULL REFERENCES worlds(id) ON DELETE CASCADE,
        name TEXT NOT NULL,
        description TEXT,
        from_label TEXT NOT NULL,
        to_label TEXT NOT NULL,
        past_from_label TEXT,
        past_to_label TEXT,
        is_peerable INTEGER NOT NULL DEFAULT 0 CHECK (is_peerable IN (0, 1)),
        metadata_json TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS relationship_type_rules (
        id TEXT PRIMARY KEY,
        relationship_type_id TEXT NOT NULL
            REFERENCES relationship_types(id) ON DELETE CASCADE,
        from_entity_type_id TEXT NOT NULL REFERENCES entity_types(id) ON DELETE CASCADE,
        to_entity_type_id TEXT NOT NULL REFERENCES entity_types(id) ON DELETE CASCADE,
        created_at TEXT NOT NULL,
        UNIQUE (relationship_type_id, from_entity_type_id, to_entity_type_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS relationships (
        id TEXT PRIMARY KEY,
        world_id TEXT NOT NULL REFERENCES worlds(id) ON DELETE CASCADE,
        relationship_type_id TEXT NOT NULL REFERENCES relationship_types(id),
        from_entity_id TEXT NOT NULL REFERENCES entities(id) ON DELETE CASCADE,
        to_entity_id TEXT NOT NULL REFERENCES entities(id) ON DELETE CASCADE,
        peer_group_id TEXT,
        status TEXT NOT NULL DEFAULT 'ACTIVE' CHECK (status IN ('ACTIVE', 'EXPIRED')),
        visibility_scope TEXT NOT NULL DEFAULT 'GLOBAL'
            CHECK (visibility_scope IN ('GLOBAL', 'CAMPAIGN', 'CHARACTER')),
        visibility_ref_id TEXT,
        created_by_id TEXT REFERENCES users(id) ON DELETE SET NULL,
        expired_at TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        UNIQUE (world_id, relationship_type_id, from_entity_id, to_entity_id),
        CHECK (from_entity_id <> to_entity_id)
    )
    """,
    # ------------------------------------------------------------------
    # Notes
    # ------------------------------------------------------------------
    """
    CREATE TABLE IF NOT EXISTS notes (
        id TEXT PRIMARY KEY,
        entity_id TEXT REFERENCES entities(id) ON DELETE CASCADE,
        location_id TEXT REFERENCES locations(id) ON DELETE CASCADE,
        author_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        campaign_id TEXT REFERENCES campaigns(id) ON DELETE CASCADE,
        character_id TEXT REFERENCES characters(id) ON DELETE SET NULL,
        visibility TEXT NOT NULL DEFAULT 'SHARED'
            CHECK (visibility IN ('PRIVATE', 'SHARED', 'GM')),
        body TEXT NOT NULL,
        share_with_architect INTEGER NOT NULL DEFAULT 0 CHECK (share_with_architect IN (0, 1)),
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        CHECK ((entity_id IS NULL) <> (location_id IS NULL))
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS note_tags (
        id TEXT PRIMARY KEY,
        note_id TEXT NOT NULL REFERENCES notes(id) ON DELETE CASCADE,
        tag_type TEXT NOT NULL CHECK (tag_type IN ('ENTITY', 'LOCATION')),
        target_id TEXT NOT NULL,
        label TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS note_shares (
        note_id TEXT NOT NULL REFERENCES notes(id) ON DELETE CASCADE,
        character_id TEXT NOT NULL REFERENCES characters(id) ON DELETE CASCADE,
        PRIMARY KEY (note_id, character_id)
    )
    """,
    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------
    """
    CREATE TABLE IF NOT EXISTS sessions (
        id TEXT PRIMARY KEY,
        world_id TEXT NOT NULL REFERENCES worlds(id) ON DELETE CASCADE,
        campaign_id TEXT REFERENCES campaigns(id) ON DELETE CASCADE,
        title TEXT NOT NULL,
        started_at TEXT,
        ended_at TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS session_notes (
        id TEXT PRIMARY KEY,
        session_id TEXT NOT NULL REFERENCES sessions(id) ON DELETE CASCADE,
        author_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        content_json TEXT NOT NULL,
        visibility TEXT NOT NULL DEFAULT 'SHARED' CHECK (visibility IN ('SHARED', 'PRIVATE')),
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS session_note_drafts (
        id TEXT PRIMARY KEY,
        session_id TEXT NOT NULL REFERENCES sessions(id) ON DELETE CASCADE,
        author_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        content_json TEXT NOT NULL,
        visibility TEXT NOT NULL DEFAULT 'SHARED' CHECK (visibility IN ('SHARED', 'PRIVATE')),
        last_saved_at TEXT NOT NULL,
        UNIQUE (session_id, author_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS session_note_references (
        id TEXT PRIMARY KEY,
        session_note_id TEXT NOT NULL REFERENCES session_notes(id) ON DELETE CASCADE,
        target_type TEXT NOT NULL CHECK (target_type IN ('ENTITY', 'LOCATION')),
        target_id TEXT NOT NULL,
        label TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS session_timeline_entries (
        id TEXT PRIMARY KEY,
        session_id TEXT NOT NULL REFERENCES sessions(id) ON DELETE CASCADE,
        type TEXT NOT NULL CHECK (type IN ('NOTE_PUBLISHED')),
        note_id TEXT REFERENCES session_notes(id) ON DELETE CASCADE,
        created_at TEXT NOT NULL
    )
    """,
    # ------------------------------------------------------------------
    # Pack templates
    # ------------------------------------------------------------------
    """
    CREATE TABLE IF NOT EXISTS entity_type_templates (
        id TEXT PRIMARY KEY,
        pack_id TEXT NOT NULL REFERENCES packs(id) ON DELETE CASCADE,
        name TEXT NOT NULL,
        description TEXT,
        category TEXT,
        is_core INTEGER NOT NULL DEFAULT 0 CHECK (is_core IN (0, 1)),
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS entity_type_template_fields (
        id TEXT PRIMARY KEY,
        template_id TEXT NOT NULL REFERENCES entity_type_templates(id) ON DELETE CASCADE,
        field_key TEXT NOT NULL,
        field_label TEXT NOT NULL,
        field_type TEXT NOT NULL,
        required INTEGER NOT NULL DEFAULT 0 CHECK (required IN (0, 1)),
        default_enabled INTEGER NOT NULL DEFAULT 1 CHECK (default_enabled IN (0, 1)),
        validation_rules_json TEXT,
        choice_list_id TEXT REFERENCES choice_lists(id) ON DELETE SET NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        UNIQUE (template_id, field_key)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS location_type_templates (
        id TEXT PRIMARY KEY,
        pack_id TEXT NOT NULL REFERENCES packs(id) ON DELETE CASCADE,
        name TEXT NOT NULL,
        description TEXT,
        category TEXT,
        is_core INTEGER NOT NULL DEFAULT 0 CHECK (is_core IN (0, 1)),
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS location_type_template_fields (
        id TEXT PRIMARY KEY,
        template_id TEXT NOT NULL REFERENCES location_type_templates(id) ON DELETE CASCADE,
        field_key TEXT NOT NULL,
        field_label TEXT NOT NULL,
        field_type TEXT NOT NULL,
        required INTEGER NOT NULL DEFAULT 0 CHECK (required IN (0, 1)),
        default_enabled INTEGER NOT NULL DEFAULT 1 CHECK (default_enabled IN (0, 1)),
        validation_rules_json TEXT,
        choice_list_id TEXT REFERENCES choice_lists(id) ON DELETE SET NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        UNIQUE (template_id, field_key)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS location_type_rule_templates (
        id TEXT PRIMARY KEY,
        pack_id TEXT NOT NULL REFERENCES packs(id) ON DELETE CASCADE,
        parent_template_id TEXT NOT NULL
            REFERENCES location_type_templates(id) ON DELETE CASCADE,
        child_template_id TEXT NOT NULL
            REFERENCES location_type_templates(id) ON DELETE CASCADE,
        created_at TEXT NOT NULL,
        UNIQUE (pack_id, parent_template_id, child_template_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS relationship_type_templates (
        id TEXT PRIMARY KEY,
        pack_id TEXT NOT NULL REFERENCES packs(id) ON DELETE CASCADE,
        name TEXT NOT NULL,
        description TEXT,
        is_peerable INTEGER NOT NULL DEFAULT 0 CHECK (is_peerable IN (0, 1)),
        from_label TEXT NOT NULL,
        to_label TEXT NOT NULL,
        past_from_label TEXT,
        past_to_label TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS relationship_type_template_roles (
        id TEXT PRIMARY KEY,
        template_id TEXT NOT NULL
            REFERENCES relationship_type_templates(id) ON DELETE CASCADE,
        from_role TEXT NOT NULL,
        to_role TEXT NOT NULL,
        created_at TEXT NOT NULL
    )
    """,
    # ------------------------------------------------------------------
    # System configuration
    # ------------------------------------------------------------------
    """
    CREATE TABLE IF NOT EXISTS system_properties (
        id TEXT PRIMARY KEY,
        key TEXT UNIQUE NOT NULL,
        value TEXT NOT NULL,
        value_type TEXT NOT NULL DEFAULT 'STRING',
        description TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS system_user_preference_defaults (
        id TEXT PRIMARY KEY,
        key TEXT UNIQUE NOT NULL,
        value TEXT NOT NULL,
        value_type TEXT NOT NULL DEFAULT 'STRING',
        description TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS system_user_preferences (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        key TEXT NOT NULL,
        value TEXT NOT NULL,
        value_type TEXT NOT NULL DEFAULT 'STRING',
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        UNIQUE (user_id, key)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS system_choices (
        id TEXT PRIMARY KEY,
        list_key TEXT NOT NULL,
        value TEXT NOT NULL,
        label TEXT NOT NULL,
        sort_order INTEGER NOT NULL DEFAULT 0,
        is_active INTEGER NOT NULL DEFAULT 1 CHECK (is_active IN (0, 1)),
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        UNIQUE (list_key, value)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS system_roles (
        id TEXT PRIMARY KEY,
        key TEXT UNIQUE NOT NULL,
        name TEXT NOT NULL,
        description TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS system_controls (
        id TEXT PRIMARY KEY,
        key TEXT UNIQUE NOT NULL,
        description TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS system_role_controls (
        role_id TEXT NOT NULL REFERENCES system_roles(id) ON DELETE CASCADE,
        control_id TEXT NOT NULL REFERENCES system_controls(id) ON DELETE CASCADE,
        PRIMARY KEY (role_id, control_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS system_user_roles (
        user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        role_id TEXT NOT NULL REFERENCES system_roles(id) ON DELETE CASCADE,
        PRIMARY KEY (user_id, role_id)
    )
    """,
    # ------------------------------------------------------------------
    # Views and list preferences
    # ------------------------------------------------------------------
    """
    CREATE TABLE IF NOT EXISTS system_views (
        id TEXT PRIMARY KEY,
        key TEXT UNIQUE NOT NULL,
        title TEXT NOT NULL,
        entity_key TEXT NOT NULL,
        view_type TEXT NOT NULL CHECK (view_type IN ('LIST', 'FORM')),
        endpoint TEXT NOT NULL,
        description TEXT,
        admin_only INTEGER NOT NULL DEFAULT 0 CHECK (admin_only IN (0, 1)),
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS system_view_fields (
        id TEXT PRIMARY KEY,
        view_id TEXT NOT NULL REFERENCES system_views(id) ON DELETE CASCADE,
        field_key TEXT NOT NULL,
        label TEXT NOT NULL,
        field_type TEXT NOT NULL,
        list_order INTEGER NOT NULL DEFAULT 0,
        form_order INTEGER NOT NULL DEFAULT 0,
        list_visible INTEGER NOT NULL DEFAULT 1 CHECK (list_visible IN (0, 1)),
        form_visible INTEGER NOT NULL DEFAULT 1 CHECK (form_visible IN (0, 1)),
        required INTEGER NOT NULL DEFAULT 0 CHECK (required IN (0, 1)),
        read_only INTEGER NOT NULL DEFAULT 0 CHECK (read_only IN (0, 1)),
        placeholder TEXT,
        options_list_key TEXT,
        reference_entity_key TEXT,
        reference_scope TEXT,
        allow_multiple INTEGER NOT NULL DEFAULT 0 CHECK (allow_multiple IN (0, 1)),
        width TEXT,
        UNIQUE (view_id, field_key)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS system_related_lists (
        id TEXT PRIMARY KEY,
        key TEXT UNIQUE NOT NULL,
        title TEXT NOT NULL,
        parent_entity_key TEXT NOT NULL,
        related_entity_key TEXT NOT NULL,
        join_entity_key TEXT NOT NULL,
        parent_field_key TEXT NOT NULL,
        related_field_key TEXT NOT NULL,
        list_order INTEGER NOT NULL DEFAULT 0,
        admin_only INTEGER NOT NULL DEFAULT 0 CHECK (admin_only IN (0, 1)),
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS system_related_list_fields (
        id TEXT PRIMARY KEY,
        related_list_id TEXT NOT NULL REFERENCES system_related_lists(id) ON DELETE CASCADE,
        field_key TEXT NOT NULL,
        label TEXT NOT NULL,
        source TEXT NOT NULL DEFAULT 'RELATED' CHECK (source IN ('RELATED', 'JOIN')),
        list_order INTEGER NOT NULL DEFAULT 0,
        width TEXT,
        UNIQUE (related_list_id, field_key)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS system_dictionary (
        id TEXT PRIMARY KEY,
        entity_key TEXT NOT NULL,
        field_key TEXT NOT NULL,
        label TEXT NOT NULL,
        field_type TEXT NOT NULL,
        reference_entity_key TEXT,
        is_label INTEGER NOT NULL DEFAULT 0 CHECK (is_label IN (0, 1)),
        UNIQUE (entity_key, field_key)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS user_list_view_preferences (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        view_key TEXT NOT NULL,
        entity_type_id TEXT REFERENCES entity_types(id) ON DELETE CASCADE,
        columns_json TEXT,
        filters_json TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS entity_type_list_view_defaults (
        id TEXT PRIMARY KEY,
        entity_type_id TEXT UNIQUE NOT NULL REFERENCES entity_types(id) ON DELETE CASCADE,
        columns_json TEXT,
        filters_json TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    # ------------------------------------------------------------------
    # Audit
    # ------------------------------------------------------------------
    """
    CREATE TABLE IF NOT EXISTS system_audits (
        id TEXT PRIMARY KEY,
        entity_key TEXT NOT NULL,
        entity_id TEXT NOT NULL,
        action TEXT NOT NULL,
        actor_id TEXT REFERENCES users(id) ON DELETE SET NULL,
        details_json TEXT,
        created_at TEXT NOT NULL
    )
    """,
)

# Hot-path index rationale:
# 1. list endpoints filter by world and order by name.
# 2. access filters look up the access tables by record id on every list row.
# 3. field-value filters join values by record id.
# 4. notes, relationships and audits are fetched per owning record.
HOT_PATH_INDEX_STATEMENTS = (
    "CREATE INDEX IF NOT EXISTS idx_campaigns_world ON campaigns(world_id)",
    "CREATE INDEX IF NOT EXISTS idx_characters_world_player ON characters(world_id, player_id)",
    "CREATE INDEX IF NOT EXISTS idx_entities_world_name ON entities(world_id, name)",
    "CREATE INDEX IF NOT EXISTS idx_entities_type ON entities(entity_type_id)",
    "CREATE INDEX IF NOT EXISTS idx_entity_access_entity ON entity_access(entity_id, access_type)",
    "CREATE INDEX IF NOT EXISTS idx_entity_values_entity ON entity_field_values(entity_id)",
    "CREATE INDEX IF NOT EXISTS idx_locations_world_name ON locations(world_id, name)",
    "CREATE INDEX IF NOT EXISTS idx_locations_parent ON locations(parent_location_id)",
    (
        "CREATE INDEX IF NOT EXISTS idx_location_access_location "
        "ON location_access(location_id, access_type)"
    ),
    "CREATE INDEX IF NOT EXISTS idx_location_values_location ON location_field_values(location_id)",
    "CREATE INDEX IF NOT EXISTS idx_relationships_from ON relationships(from_entity_id)",
    "CREATE INDEX IF NOT EXISTS idx_relationships_to ON relationships(to_entity_id)",
    "CREATE INDEX IF NOT EXISTS idx_notes_entity ON notes(entity_id, created_at)",
    "CREATE INDEX IF NOT EXISTS idx_notes_location ON notes(location_id, created_at)",
    "CREATE INDEX IF NOT EXISTS idx_session_notes_session ON session_notes(session_id, created_at)",
    "CREATE INDEX IF NOT EXISTS idx_audits_entity ON system_audits(entity_key, entity_id)",
)


def init_database(*, skip_admin: bool = False, seed: bool = True) -> None:
    """Initialize the SQLite database schema and baseline data.

    Behavior:
    - Creates required tables and indexes if missing.
    - Loads the bundled seed data (system properties, choices, controls,
      views and the default pack) idempotently.
    - Optionally creates a bootstrap admin from environment variables.

    Args:
        skip_admin: When True, skip bootstrap admin creation.
        seed: When False, leave the database empty apart from the schema.
    """
    from campaign_server.db.seed import apply_seed, load_seed

    with connection_scope(write=True) as conn:
        for statement in TABLE_STATEMENTS:
            query.execute(conn, statement, operation="schema.create_table")
        for statement in HOT_PATH_INDEX_STATEMENTS:
            query.execute(conn, statement, operation="schema.create_index")
        if seed:
            apply_seed(conn, load_seed())

    if not skip_admin:
        bootstrap_admin_from_env()


def bootstrap_admin_from_env() -> bool:
    """Create the first admin from ``CAMPAIGN_ADMIN_EMAIL``/``CAMPAIGN_ADMIN_PASSWORD``.

    Only runs when the users table is empty.

    Returns:
        True when an admin account was created.
    """
    from campaign_server.db import users_repo

    with connection_scope() as conn:
        user_count = query.fetch_value(
            conn, "SELECT COUNT(*) FROM users", operation="schema.count_users"
        )
    if user_count:
        return False

    admin_email = os.environ.get("CAMPAIGN_ADMIN_EMAIL")
    admin_password = os.environ.get("CAMPAIGN_ADMIN_PASSWORD")

    if not (admin_email and admin_password):
        print("\n" + "=" * 60)
        print("DATABASE INITIALIZED (no admin created)")
        print("=" * 60)
        print("To create an admin, either:")
        print("  1. Set CAMPAIGN_ADMIN_EMAIL and CAMPAIGN_ADMIN_PASSWORD environment variables")
        print("     and run: campaign-server init-db")
        print("  2. Run interactively: campaign-server create-admin")
        print("=" * 60 + "\n")
        return False

    if len(admin_password) < 8:
        logger.warning("CAMPAIGN_ADMIN_PASSWORD must be at least 8 characters. Skipping.")
        return False

    with connection_scope(write=True) as conn:
        users_repo.create_user(
            conn, admin_email, admin_password, name="Administrator", role="ADMIN"
        )

    print("\n" + "=" * 60)
    print("ADMIN CREATED FROM ENVIRONMENT VARIABLES")
    print("=" * 60)
    print(f"Email: {admin_email}")
    print("=" * 60 + "\n")
    return True
