"""Tests for session JWT validation."""

import time

import pytest
from jose import jwt

from propredict.services.auth import AuthService

SECRET = "unit-test-secret"


def token(secret=SECRET, **claims):
    payload = {"sub": "user-1", "email": "fan@example.com", "aud": "authenticated", "exp": int(time.time()) + 3600}
    payload.update(claims)
    return jwt.encode({k: v for k, v in payload.items() if v is not None}, secret, algorithm="HS256")


@pytest.fixture
def auth():
    return AuthService(secret=SECRET, audience="authenticated")


class TestAuthService:
    def test_valid_token(self, auth):
        assert auth.get_user_info(token()) == {"sub": "user-1", "email": "fan@example.com"}

    def test_expired_token(self, auth):
        with pytest.raises(ValueError, match="expired"):
            auth.validate_token(token(exp=int(time.time()) - 10))

    def test_wrong_audience(self, auth):
        with pytest.raises(ValueError):
            auth.validate_token(token(aud="anon"))

    def test_wrong_secret(self, auth):
        with pytest.raises(ValueError):
            auth.validate_token(token(secret="someone-else"))

    def test_missing_email_is_blank(self, auth):
        assert auth.get_user_info(token(email=None))["email"] == ""

    def test_unconfigured_secret(self):
        with pytest.raises(ValueError, match="not configured"):
            AuthService(secret="").validate_token(token())

    def test_service_role(self, auth):
        assert auth.is_service_role("test-service-role")
        assert not auth.is_service_role("test-service-role-2")
