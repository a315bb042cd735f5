"""SQLite persistence layer for the campaign server."""
