"""Campaign Server.

A metadata-driven campaign management backend for tabletop role-playing
games: worlds, campaigns, characters, custom entity and location types,
relationships, notes and play sessions.

``__version__`` is read from the installed package metadata at import time.
The single source of truth is the ``version`` field in ``pyproject.toml``.
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

try:
    __version__: str = version("campaign_server")
except PackageNotFoundError:
    __version__ = "0.1.0"
