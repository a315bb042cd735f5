"""Password hashing with bcrypt.

bcrypt only considers the first 72 bytes of its input; longer passwords are
truncated consistently on both hash and verify so behaviour does not depend
on the installed bcrypt release.
"""

from __future__ import annotations

import bcrypt

BCRYPT_ROUNDS = 12
_MAX_BCRYPT_BYTES = 72


def _encode(password: str) -> bytes:
    return password.encode("utf-8")[:_MAX_BCRYPT_BYTES]


def hash_password(password: str) -> str:
    """Return a salted bcrypt hash for ``password``."""
    return bcrypt.hashpw(_encode(password), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Return True when ``password`` matches ``password_hash``.

    Malformed stored hashes verify as False instead of raising.
    """
    try:
        return bcrypt.checkpw(_encode(password), password_hash.encode("utf-8"))
    except ValueError:
        return False
