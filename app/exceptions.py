"""
Exception Classes - Strongly typed exception hierarchy.

NO DICTIONARIES - All exceptions have typed attributes.

Login failures are deliberately collapsed into InvalidCredentialsError so a
client can never tell a missing account from a wrong password or a disabled
account.
"""

from uuid import UUID


class CommunityPlatformError(Exception):
    """Base exception for all auth and session errors."""

    pass


class DuplicateEmailError(CommunityPlatformError):
    """Raised when joining with an email bound to a non-deleted credential."""

    def __init__(self) -> None:
        super().__init__("Email is already registered")


class InvalidCredentialsError(CommunityPlatformError):
    """Raised for every login failure, whatever the underlying cause."""

    MESSAGE = "Invalid email or password"

    def __init__(self) -> None:
        super().__init__(self.MESSAGE)


class InvalidTokenError(CommunityPlatformError):
    """Raised when a token fails signature, issuer or claim verification."""

    def __init__(self, message: str = "Invalid or malformed token") -> None:
        self.message = message
        super().__init__(message)


class SessionInvalidError(CommunityPlatformError):
    """Raised when no open session matches the presented refresh token."""

    def __init__(self) -> None:
        super().__init__("Session not found or already revoked")


class SessionExpiredError(CommunityPlatformError):
    """Raised when the matching session exists but its expiry has passed."""

    def __init__(self, session_id: UUID) -> None:
        self.session_id = session_id
        super().__init__("Session expired")


class AccountInactiveError(CommunityPlatformError):
    """Raised when the principal behind a valid session is suspended or deleted."""

    def __init__(self, principal_id: UUID) -> None:
        self.principal_id = principal_id
        super().__init__(f"Account {principal_id} is not active")


class ResourceNotFoundError(CommunityPlatformError):
    """Raised when a requested resource doesn't exist."""

    def __init__(self, resource_type: str, resource_id: str) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(f"{resource_type} not found: {resource_id}")


class PasswordPolicyError(CommunityPlatformError):
    """Raised when a new password does not meet complexity requirements."""

    def __init__(self, min_length: int) -> None:
        self.min_length = min_length
        super().__init__(
            "Password does not meet minimum complexity requirements. "
            f"Must be at least {min_length} characters, "
            "including at least one letter and one number."
        )


class PasswordResetTokenError(CommunityPlatformError):
    """Raised when a password reset token is unknown, used, expired or orphaned."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Invalid password reset token: {reason}")
