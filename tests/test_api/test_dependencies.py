"""
Tests for request-scoped dependencies (campaign_server/api/dependencies.py).

Tests cover:
- The request transaction is committed before the response body goes out
- A failed handler rolls its writes back
"""

import asyncio
import json
import sqlite3
from contextlib import closing

import pytest

from campaign_server.api.server import create_app


def count_worlds(db_path) -> int:
    with closing(sqlite3.connect(db_path)) as other:
        return other.execute("SELECT COUNT(*) FROM worlds").fetchone()[0]


def call_app(app, method: str, path: str, body: dict, headers: dict[str, str], on_body):
    """Drive ``app`` over raw ASGI, calling ``on_body()`` when the response body is sent."""
    raw = json.dumps(body).encode("utf-8")
    scope = {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": method,
        "scheme": "http",
        "path": path,
        "raw_path": path.encode("ascii"),
        "root_path": "",
        "query_string": b"",
        "headers": [
            (b"host", b"testserver"),
            (b"content-type", b"application/json"),
            (b"content-length", str(len(raw)).encode("ascii")),
            *((key.lower().encode("latin-1"), value.encode("latin-1")) for key, value in headers.items()),
        ],
        "client": ("testclient", 50000),
        "server": ("testserver", 80),
    }
    messages = [{"type": "http.request", "body": raw, "more_body": False}]
    status: list[int] = []

    async def receive():
        if messages:
            return messages.pop(0)
        return {"type": "http.disconnect"}

    async def send(message):
        if message["type"] == "http.response.start":
            status.append(message["status"])
        elif message["type"] == "http.response.body":
            on_body()

    asyncio.run(app(scope, receive, send))
    return status[0]


@pytest.mark.api
def test_write_is_committed_before_response_body(auth_headers, temp_db_path):
    headers = auth_headers("architect")
    seen: list[int] = []

    status = call_app(
        create_app(),
        "POST",
        "/api/worlds",
        {"name": "Eldoria"},
        headers,
        lambda: seen.append(count_worlds(temp_db_path)),
    )

    assert status == 201
    assert seen[0] == 1


@pytest.mark.api
def test_failed_request_rolls_back(test_client, auth_headers, temp_db_path):
    response = test_client.post("/api/worlds", json={"description": "No name"}, headers=auth_headers("architect"))

    assert response.status_code == 400
    assert count_worlds(temp_db_path) == 0
