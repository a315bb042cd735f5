"""Unit tests for access and refresh tokens (campaign_server/api/tokens.py)."""

import pytest

from campaign_server.api import tokens
from campaign_server.api.password import hash_password, verify_password
from campaign_server.config import config


@pytest.mark.unit
def test_signed_token_verifies_with_claims():
    token = tokens.sign_access_token("user-1", 60, now=1_000)

    payload = tokens.verify_access_token(token, now=1_030)

    assert payload == tokens.AccessTokenPayload(user_id="user-1", iat=1_000, exp=1_060)


@pytest.mark.unit
def test_token_expires_at_exp():
    token = tokens.sign_access_token("user-1", 60, now=1_000)

    assert tokens.verify_access_token(token, now=1_060) is None


@pytest.mark.unit
def test_tampered_payload_is_rejected():
    token = tokens.sign_access_token("user-1", 60)
    other = tokens.sign_access_token("user-2", 60)

    forged = f"{other.split('.')[0]}.{token.split('.')[1]}"

    assert tokens.verify_access_token(forged) is None


@pytest.mark.unit
@pytest.mark.parametrize("token", ["", "abc", "a.b.c", "not-base64.sig"])
def test_malformed_tokens_are_rejected(token):
    assert tokens.verify_access_token(token) is None


@pytest.mark.unit
def test_changing_secret_invalidates_tokens(monkeypatch):
    token = tokens.sign_access_token("user-1", 60)

    monkeypatch.setattr(config.auth, "token_secret", "rotated-secret")

    assert tokens.verify_access_token(token) is None


@pytest.mark.unit
def test_refresh_tokens_are_random_and_hashed():
    first, second = tokens.generate_refresh_token(), tokens.generate_refresh_token()

    assert first != second
    digest = tokens.hash_refresh_token(first)
    assert len(digest) == 64
    assert digest == tokens.hash_refresh_token(first)
    assert digest != first


@pytest.mark.unit
def test_password_hash_round_trip_and_bad_hash():
    hashed = hash_password("Lantern#Quest72")

    assert verify_password("Lantern#Quest72", hashed)
    assert not verify_password("wrong-password", hashed)
    assert verify_password("anything", "not-a-bcrypt-hash") is False
