"""Access token verification."""

import jwt
import pytest

from goalrewards.auth.jwt import create_access_token, reset_keys, verify_token
from goalrewards.config import get_settings


@pytest.fixture(autouse=True)
def _fresh_keys():
    get_settings.cache_clear()
    reset_keys()
    yield
    reset_keys()


def test_round_trip():
    payload = verify_token(create_access_token(42, role="admin"))
    assert payload["sub"] == "42"
    assert payload["role"] == "admin"
    assert payload["iss"] == get_settings().jwt_issuer


def test_rejects_refresh_tokens():
    settings = get_settings()
    token = jwt.encode(
        {"sub": "1", "type": "refresh", "iss": settings.jwt_issuer},
        settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
    )
    with pytest.raises(jwt.InvalidTokenError, match="Expected an access token"):
        verify_token(token)


def test_rejects_wrong_secret():
    settings = get_settings()
    token = jwt.encode(
        {"sub": "1", "type": "access", "iss": settings.jwt_issuer},
        "not-the-secret",
        algorithm=settings.jwt_algorithm,
    )
    with pytest.raises(jwt.InvalidTokenError):
        verify_token(token)
