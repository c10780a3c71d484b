"""
API Models - Pydantic models for request/response validation.

NO DICTIONARIES - All data structures are strongly typed.
"""

import re
from enum import Enum
from typing import Literal
from uuid import UUID

from pydantic import AliasChoices, BaseModel, Field, field_validator

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class Role(str, Enum):
    """Actor roles. Each role has its own principal table and auth endpoints."""

    GUEST = "guest"
    MEMBER = "member"
    ADMIN = "admin"
    ADMIN_USER = "adminUser"


class PrincipalStatus(str, Enum):
    """Principal status enumeration."""

    ACTIVE = "active"
    SUSPENDED = "suspended"


class TokenType(str, Enum):
    """Distinguishes access tokens from refresh tokens."""

    ACCESS = "access"
    REFRESH = "refresh"


class SessionSortField(str, Enum):
    """Sortable session columns."""

    CREATED_AT = "created_at"
    EXPIRES_AT = "expires_at"


def _validate_email(value: str) -> str:
    """Reject strings that are obviously not email addresses (case preserved)."""
    if not _EMAIL_PATTERN.match(value):
        raise ValueError("email must be a valid email address")
    return value


# ============================================================================
# Auth Requests
# ============================================================================


class JoinRequest(BaseModel):
    """POST /auth/{role}/join request body for credentialed roles."""

    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=1, max_length=128)
    display_name: str | None = Field(None, min_length=1, max_length=255)
    device_info: str | None = Field(None, max_length=512)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        """Ensure email is syntactically valid."""
        return _validate_email(v)


class GuestJoinRequest(BaseModel):
    """POST /auth/guest/join request body - no credentials."""

    device_info: str | None = Field(None, max_length=512)


class LoginRequest(BaseModel):
    """POST /auth/{role}/login request body."""

    email: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=1, max_length=128)
    device_info: str | None = Field(None, max_length=512)


class RefreshRequest(BaseModel):
    """
    POST /auth/{role}/refresh and /logout request body.

    The legacy field name "token" is accepted as an alias of "refresh_token".
    """

    refresh_token: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("refresh_token", "token"),
    )


class PasswordResetRequest(BaseModel):
    """POST /auth/{role}/password/reset/request request body."""

    email: str = Field(..., min_length=1, max_length=255)


class PasswordResetCompleteRequest(BaseModel):
    """POST /auth/{role}/password/reset/complete request body."""

    reset_token: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=1, max_length=128)


# ============================================================================
# Auth Responses
# ============================================================================


class AuthorizationTokenResponse(BaseModel):
    """Issued token pair with ISO-8601 expiry timestamps."""

    access: str
    refresh: str
    expired_at: str
    refreshable_until: str


class PrincipalResponse(BaseModel):
    """Principal fields shared by every role."""

    id: UUID
    role: Role
    email: str | None = None
    display_name: str | None = None
    status: PrincipalStatus
    created_at: str
    updated_at: str
    deleted_at: str | None = None
    last_login_at: str | None = None
    guest_identifier: str | None = None


class AuthorizedPrincipalResponse(PrincipalResponse):
    """Principal fields plus the freshly issued tokens."""

    token: AuthorizationTokenResponse


class LogoutResponse(BaseModel):
    """POST /auth/{role}/logout response."""

    session_id: UUID
    revoked_at: str


class PasswordResetRequestResponse(BaseModel):
    """Identical acknowledgement whether or not the account exists."""

    message: str = "If the account exists, a password reset has been initiated."
    reset_token: str | None = None  # Only populated when expose_reset_tokens is enabled


class PasswordResetCompleteResponse(BaseModel):
    """POST /auth/{role}/password/reset/complete response."""

    status: str = "Your password has been reset. Please log in with your new password."


# ============================================================================
# Session Models
# ============================================================================


class SessionResponse(BaseModel):
    """Ledger entry as exposed to clients - never includes token material."""

    id: UUID
    owner_id: UUID
    owner_role: Role
    issued_at: str
    expires_at: str
    revoked_at: str | None = None
    revoked_reason: str | None = None
    replaced_by_id: UUID | None = None
    device_info: str | None = None
    ip_address: str | None = None
    created_at: str


class PaginationInfo(BaseModel):
    """Pagination block for list responses."""

    current: int
    limit: int
    records: int
    pages: int


class SessionPageResponse(BaseModel):
    """Paginated session list."""

    pagination: PaginationInfo
    data: list[SessionResponse]


# ============================================================================
# Admin Models
# ============================================================================


class AuditLogResponse(BaseModel):
    """Immutable audit trail entry."""

    id: UUID
    actor_id: UUID | None = None
    actor_role: Role | None = None
    event_type: str
    event_detail: str | None = None
    ip_address: str | None = None
    created_at: str


class AuditLogPageResponse(BaseModel):
    """Paginated audit log list."""

    pagination: PaginationInfo
    data: list[AuditLogResponse]


class PrincipalUpdateRequest(BaseModel):
    """PATCH /admin/principals/{role}/{principal_id} request body."""

    status: PrincipalStatus | None = None
    display_name: str | None = Field(None, min_length=1, max_length=255)
    deleted: bool | None = Field(None, description="true soft-deletes the principal")


# ============================================================================
# Health Models
# ============================================================================


class HealthResponse(BaseModel):
    """GET /health response."""

    status: Literal["healthy", "unhealthy"]
    database: Literal["connected", "disconnected"]
    timestamp: str
