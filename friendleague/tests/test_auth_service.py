"""
Unit tests for access token handling.
"""
from datetime import timedelta

from jose import jwt

from friendleague.services import auth_service


class TestJWTTokens:
    """Tests for JWT token creation and verification."""

    def test_verify_token_valid(self):
        """A freshly issued token round-trips its claims."""
        token = auth_service.create_access_token({"user_id": 42})

        decoded = auth_service.verify_token(token)
        assert decoded is not None
        assert decoded["user_id"] == 42
        assert decoded["type"] == "access"
        assert "exp" in decoded

    def test_verify_token_invalid(self):
        """Garbage is rejected."""
        assert auth_service.verify_token("invalid_token_string") is None

    def test_verify_token_expired(self):
        """Expired tokens are rejected."""
        token = auth_service.create_access_token({"user_id": 1}, expires_delta=timedelta(seconds=-1))
        assert auth_service.verify_token(token) is None

    def test_verify_token_wrong_secret(self):
        """Tokens signed with another key are rejected."""
        token = jwt.encode(
            {"user_id": 1, "type": "access"}, "some-other-secret", algorithm=auth_service.JWT_ALGORITHM
        )
        assert auth_service.verify_token(token) is None

    def test_verify_token_wrong_type(self):
        """Only access tokens authenticate requests."""
        token = jwt.encode(
            {"user_id": 1, "type": "refresh"},
            auth_service.JWT_SECRET_KEY,
            algorithm=auth_service.JWT_ALGORITHM,
        )
        assert auth_service.verify_token(token) is None
