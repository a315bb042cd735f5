"""Authentication endpoints: login, current user, logout and token refresh.

Access tokens travel in the ``Authorization`` header. Refresh tokens live in
an httpOnly cookie and are rotated on every refresh; only their SHA-256
digest is stored.
"""

import logging
import sqlite3

from fastapi import APIRouter, HTTPException, Request, Response

from campaign_server.api.dependencies import (
    Connection,
    access_token_ttl_seconds,
    bearer_token,
    refresh_token_ttl_seconds,
    resolve_user,
)
from campaign_server.api.models import (
    LoginRequest,
    LoginResponse,
    OkResponse,
    TokenResponse,
    UserResponse,
)
from campaign_server.api.password import verify_password
from campaign_server.api.tokens import (
    generate_refresh_token,
    hash_refresh_token,
    sign_access_token,
)
from campaign_server.config import config
from campaign_server.db import tokens_repo, users_repo

logger = logging.getLogger(__name__)


def _set_refresh_cookie(response: Response, token: str, ttl_seconds: float) -> None:
    response.set_cookie(
        config.auth.refresh_cookie_name,
        token,
        max_age=max(1, int(ttl_seconds)),
        httponly=True,
        samesite="lax",
        secure=config.is_production,
        path="/",
    )


def _issue_tokens(conn: sqlite3.Connection, response: Response, user_id: str) -> str:
    """Create an access token plus a fresh refresh cookie; returns the access token."""
    access_token = sign_access_token(user_id, access_token_ttl_seconds(conn))
    refresh_ttl = refresh_token_ttl_seconds(conn)
    refresh_token = generate_refresh_token()
    tokens_repo.prune_refresh_tokens(conn, user_id)
    tokens_repo.create_refresh_token(conn, user_id, hash_refresh_token(refresh_token), refresh_ttl)
    _set_refresh_cookie(response, refresh_token, refresh_ttl)
    return access_token


def router() -> APIRouter:
    api = APIRouter(prefix="/api/auth", tags=["auth"])

    @api.post("/login", response_model=LoginResponse)
    def login(request: LoginRequest, response: Response, conn: Connection):
        """Verify credentials and start a session."""
        if not request.email or not request.password:
            raise HTTPException(status_code=400, detail="Email and password are required.")

        user = users_repo.get_user_with_hash(conn, request.email)
        if user is None or not verify_password(request.password, user["password_hash"]):
            logger.info("Failed login for %s", request.email)
            raise HTTPException(status_code=401, detail="Invalid credentials.")

        token = _issue_tokens(conn, response, user["id"])
        return LoginResponse(
            token=token,
            user=UserResponse(id=user["id"], email=user["email"], name=user["name"], role=user["role"]),
        )

    @api.get("/me", response_model=UserResponse)
    def me(request: Request, conn: Connection):
        token = bearer_token(request)
        if not token:
            raise HTTPException(status_code=401, detail="Missing token.")
        user = resolve_user(conn, token)
        if user is None:
            raise HTTPException(status_code=401, detail="Invalid token.")
        return UserResponse(**user.to_dict())

    @api.post("/logout", response_model=OkResponse)
    def logout(request: Request, response: Response, conn: Connection):
        """Revoke the refresh cookie's token (if any) and clear the cookie."""
        refresh_token = request.cookies.get(config.auth.refresh_cookie_name)
        if refresh_token:
            tokens_repo.revoke_refresh_token(conn, hash_refresh_token(refresh_token))
        response.delete_cookie(config.auth.refresh_cookie_name, path="/")
        return OkResponse()

    @api.post("/refresh", response_model=TokenResponse)
    def refresh(request: Request, response: Response, conn: Connection):
        """Rotate the refresh token and return a new access token."""
        refresh_token = request.cookies.get(config.auth.refresh_cookie_name)
        if not refresh_token:
            raise HTTPException(status_code=401, detail="Missing refresh token.")

        token_hash = hash_refresh_token(refresh_token)
        stored = tokens_repo.get_active_refresh_token(conn, token_hash)
        if stored is None:
            raise HTTPException(status_code=401, detail="Invalid refresh token.")

        # A concurrent refresh may have rotated the same token first.
        if tokens_repo.revoke_refresh_token(conn, token_hash) != 1:
            raise HTTPException(status_code=401, detail="Invalid refresh token.")
        return TokenResponse(token=_issue_tokens(conn, response, stored["user_id"]))

    return api
