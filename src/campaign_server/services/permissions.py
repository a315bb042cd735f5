"""
World and campaign permission predicates.

Accounts carry one global role (``ADMIN`` or ``USER``). Everything else is
derived from membership rows:

    Architect       -> worlds.primary_architect_id or a world_architects row
    World GM        -> a world_game_masters row
    Campaign GM     -> campaigns.gm_user_id
    Player          -> owner of a character in the world

Admins bypass most predicates at the call site (``user.is_admin or ...``);
the predicates themselves never special-case the admin role so they can be
reused for labelling (for example the "Architect"/"Member" context summary).

System administration is either the ``ADMIN`` role or a system role that
carries the ``system.manage`` control.
"""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from enum import Enum
from typing import Any

from campaign_server.db import query, users_repo
from campaign_server.services.errors import forbidden

SYSTEM_MANAGE_CONTROL = "system.manage"

# ============================================================================
# ROLE DEFINITIONS
# ============================================================================


class Role(Enum):
    """Global account roles as stored in ``users.role``."""

    ADMIN = "ADMIN"
    USER = "USER"


class EntityPermissionScope(Enum):
    """Who may create entities and locations in a world, besides architects."""

    ARCHITECT = "ARCHITECT"
    ARCHITECT_GM = "ARCHITECT_GM"
    ARCHITECT_GM_PLAYER = "ARCHITECT_GM_PLAYER"


@dataclass(frozen=True, slots=True)
class User:
    """The authenticated account a request acts for.

    Attributes:
        id: User id.
        email: Login email.
        name: Display name, may be empty.
        role: Global role value (see :class:`Role`).
    """

    id: str
    email: str
    name: str | None
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN.value

    @property
    def label(self) -> str:
        return self.name or self.email

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "email": self.email, "name": self.name, "role": self.role}

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> User:
        return cls(id=row["id"], email=row["email"], name=row.get("name"), role=row["role"])


def _exists(conn: sqlite3.Connection, sql: str, params: tuple[Any, ...], operation: str) -> bool:
    return query.exists(conn, sql, params, operation=f"permissions.{operation}")


# ============================================================================
# WORLD PREDICATES
# ============================================================================


def is_world_architect(conn: sqlite3.Connection, user_id: str, world_id: str) -> bool:
    """Primary architect or listed architect of ``world_id``."""
    return _exists(
        conn,
        """
        SELECT 1 FROM worlds WHERE id = ? AND primary_architect_id = ?
        UNION ALL
        SELECT 1 FROM world_architects WHERE world_id = ? AND user_id = ?
        """,
        (world_id, user_id, world_id, user_id),
        "is_world_architect",
    )


def is_world_game_master(conn: sqlite3.Connection, user_id: str, world_id: str) -> bool:
    """Listed game master of ``world_id``."""
    return _exists(
        conn,
        "SELECT 1 FROM world_game_masters WHERE world_id = ? AND user_id = ?",
        (world_id, user_id),
        "is_world_game_master",
    )


def is_world_gm(conn: sqlite3.Connection, user_id: str, world_id: str) -> bool:
    """GM of any campaign in ``world_id``."""
    return _exists(
        conn,
        "SELECT 1 FROM campaigns WHERE world_id = ? AND gm_user_id = ?",
        (world_id, user_id),
        "is_world_gm",
    )


def is_world_player(conn: sqlite3.Connection, user_id: str, world_id: str) -> bool:
    """Owner of a character in ``world_id``."""
    return _exists(
        conn,
        "SELECT 1 FROM characters WHERE world_id = ? AND player_id = ?",
        (world_id, user_id),
        "is_world_player",
    )


def is_any_world_gm(conn: sqlite3.Connection, user_id: str, world_id: str) -> bool:
    """World game master or GM of one of the world's campaigns."""
    return is_world_game_master(conn, user_id, world_id) or is_world_gm(conn, user_id, world_id)


def can_access_world(conn: sqlite3.Connection, user_id: str, world_id: str) -> bool:
    """Any membership in ``world_id``: architect, GM, creator or player."""
    if is_world_architect(conn, user_id, world_id):
        return True
    if _exists(
        conn,
        """
        SELECT 1 FROM world_game_masters WHERE world_id = ? AND user_id = ?
        UNION ALL
        SELECT 1 FROM world_campaign_creators WHERE world_id = ? AND user_id = ?
        UNION ALL
        SELECT 1 FROM world_character_creators WHERE world_id = ? AND user_id = ?
        """,
        (world_id, user_id) * 3,
        "can_access_world",
    ):
        return True
    return is_world_gm(conn, user_id, world_id) or is_world_player(conn, user_id, world_id)


def can_create_campaign(conn: sqlite3.Connection, user_id: str, world_id: str) -> bool:
    return is_world_architect(conn, user_id, world_id) or is_world_game_master(
        conn, user_id, world_id
    )


def can_create_character_in_world(conn: sqlite3.Connection, user_id: str, world_id: str) -> bool:
    return is_world_architect(conn, user_id, world_id) or _exists(
        conn,
        "SELECT 1 FROM world_character_creators WHERE world_id = ? AND user_id = ?",
        (world_id, user_id),
        "can_create_character_in_world",
    )


def can_create_records_in_world(conn: sqlite3.Connection, user_id: str, world_id: str) -> bool:
    """Entity/location creation, governed by ``worlds.entity_permission_scope``."""
    if is_world_architect(conn, user_id, world_id):
        return True
    scope = query.fetch_value(
        conn,
        "SELECT entity_permission_scope FROM worlds WHERE id = ?",
        (world_id,),
        operation="permissions.world_scope",
    )
    if scope == EntityPermissionScope.ARCHITECT_GM.value:
        return is_world_gm(conn, user_id, world_id)
    if scope == EntityPermissionScope.ARCHITECT_GM_PLAYER.value:
        return is_world_gm(conn, user_id, world_id) or is_world_player(conn, user_id, world_id)
    return False


# ============================================================================
# CAMPAIGN PREDICATES
# ============================================================================


def is_campaign_gm(conn: sqlite3.Connection, user_id: str, campaign_id: str) -> bool:
    return _exists(
        conn,
        "SELECT 1 FROM campaigns WHERE id = ? AND gm_user_id = ?",
        (campaign_id, user_id),
        "is_campaign_gm",
    )


def _campaign_world(conn: sqlite3.Connection, campaign_id: str) -> str | None:
    return query.fetch_value(
        conn,
        "SELECT world_id FROM campaigns WHERE id = ?",
        (campaign_id,),
        operation="permissions.campaign_world",
    )


def can_manage_campaign(conn: sqlite3.Connection, user_id: str, campaign_id: str) -> bool:
    """Campaign GM or architect of the campaign's world."""
    if is_campaign_gm(conn, user_id, campaign_id):
        return True
    world_id = _campaign_world(conn, campaign_id)
    return world_id is not None and is_world_architect(conn, user_id, world_id)


def can_access_campaign(conn: sqlite3.Connection, user_id: str, campaign_id: str) -> bool:
    """GM, creator, world architect or owner of a rostered character."""
    if _exists(
        conn,
        """
        SELECT 1 FROM campaigns WHERE id = ? AND (gm_user_id = ? OR created_by_id = ?)
        UNION ALL
        SELECT 1
        FROM character_campaigns cc
        JOIN characters ch ON ch.id = cc.character_id
        WHERE cc.campaign_id = ? AND ch.player_id = ?
        """,
        (campaign_id, user_id, user_id, campaign_id, user_id),
        "can_access_campaign",
    ):
        return True
    world_id = _campaign_world(conn, campaign_id)
    return world_id is not None and is_world_architect(conn, user_id, world_id)


def can_create_character_in_campaign(
    conn: sqlite3.Connection, user_id: str, campaign_id: str
) -> bool:
    if can_manage_campaign(conn, user_id, campaign_id):
        return True
    return _exists(
        conn,
        "SELECT 1 FROM campaign_character_creators WHERE campaign_id = ? AND user_id = ?",
        (campaign_id, user_id),
        "can_create_character_in_campaign",
    )


# ============================================================================
# SYSTEM ADMINISTRATION
# ============================================================================


def is_system_admin(conn: sqlite3.Connection, user: User) -> bool:
    """ADMIN role or a system role granting ``system.manage``."""
    return user.is_admin or users_repo.user_has_control(conn, user.id, SYSTEM_MANAGE_CONTROL)


def require_system_admin(conn: sqlite3.Connection, user: User) -> None:
    """Raise 403 unless ``user`` is a system administrator."""
    if not is_system_admin(conn, user):
        raise forbidden()
