"""
Tests for Exception Classes.

Tests that all exceptions have correct attributes and messages.
"""

from uuid import uuid4

import pytest

from app.exceptions import (
    AccountInactiveError,
    CommunityPlatformError,
    DuplicateEmailError,
    InvalidCredentialsError,
    InvalidTokenError,
    PasswordPolicyError,
    PasswordResetTokenError,
    ResourceNotFoundError,
    SessionExpiredError,
    SessionInvalidError,
)


class TestHierarchy:
    """Tests for the exception hierarchy."""

    @pytest.mark.parametrize(
        "exc",
        [
            DuplicateEmailError(),
            InvalidCredentialsError(),
            InvalidTokenError(),
            SessionInvalidError(),
            SessionExpiredError(uuid4()),
            AccountInactiveError(uuid4()),
            ResourceNotFoundError("session", "abc"),
            PasswordPolicyError(8),
            PasswordResetTokenError("expired"),
        ],
    )
    def test_all_inherit_from_base(self, exc):
        assert isinstance(exc, CommunityPlatformError)


class TestInvalidCredentialsError:
    """Tests for the anti-enumeration login error."""

    def test_fixed_message(self):
        assert str(InvalidCredentialsError()) == "Invalid email or password"

    def test_message_never_varies(self):
        assert str(InvalidCredentialsError()) == str(InvalidCredentialsError())


class TestInvalidTokenError:
    """Tests for InvalidTokenError."""

    def test_default_message(self):
        error = InvalidTokenError()
        assert error.message == "Invalid or malformed token"
        assert str(error) == error.message

    def test_custom_message(self):
        assert InvalidTokenError("Token has expired").message == "Token has expired"


class TestAttributes:
    """Tests for typed exception attributes."""

    def test_session_expired_keeps_id(self):
        session_id = uuid4()
        assert SessionExpiredError(session_id).session_id == session_id

    def test_account_inactive_keeps_principal(self):
        principal_id = uuid4()
        error = AccountInactiveError(principal_id)
        assert error.principal_id == principal_id
        assert str(principal_id) in str(error)

    def test_resource_not_found(self):
        error = ResourceNotFoundError("session", "abc")
        assert error.resource_type == "session"
        assert error.resource_id == "abc"
        assert str(error) == "session not found: abc"

    def test_password_policy_mentions_length(self):
        error = PasswordPolicyError(12)
        assert error.min_length == 12
        assert "12 characters" in str(error)

    def test_password_reset_reason(self):
        assert PasswordResetTokenError("already_used").reason == "already_used"
