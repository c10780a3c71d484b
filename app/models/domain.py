"""
Domain Models - Internal business logic models using dataclasses.

NO DICTIONARIES - All data structures are strongly typed immutable dataclasses.
"""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from app.models.api import PrincipalStatus, Role, TokenType


def to_iso(value: datetime | None) -> str | None:
    """Render an optional timestamp as an ISO-8601 string."""
    return value.isoformat() if value is not None else None


@dataclass(frozen=True)
class ClientContext:
    """Optional request context recorded alongside sessions and audit entries."""

    device_info: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None


@dataclass(frozen=True)
class TokenPayload:
    """Verified claims of a signed token."""

    principal_id: UUID
    role: Role
    token_type: TokenType
    jti: str
    issued_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class IssuedTokens:
    """A freshly signed access/refresh token pair and their expiries."""

    access: str
    refresh: str
    issued_at: datetime
    access_expires_at: datetime
    refresh_expires_at: datetime

    def __post_init__(self) -> None:
        """Validate token pair constraints."""
        if self.access == self.refresh:
            raise ValueError("Access and refresh tokens must differ")
        if self.refresh_expires_at <= self.access_expires_at:
            raise ValueError("Refresh token must outlive the access token")


@dataclass(frozen=True)
class PrincipalData:
    """Immutable principal snapshot, role-independent."""

    principal_id: UUID
    role: Role
    credential_id: UUID | None
    email: str | None
    display_name: str | None
    status: PrincipalStatus
    created_at: datetime
    updated_at: datetime
    deleted_at: datetime | None
    last_login_at: datetime | None
    guest_identifier: str | None = None

    @property
    def is_active(self) -> bool:
        """Authentication requires status active and no soft delete."""
        return self.status == PrincipalStatus.ACTIVE and self.deleted_at is None


@dataclass(frozen=True)
class AuthorizedPrincipal:
    """Result of join/login/refresh: the principal, its tokens, and the ledger row."""

    principal: PrincipalData
    tokens: IssuedTokens
    session_id: UUID


@dataclass(frozen=True)
class SessionData:
    """Immutable ledger entry snapshot."""

    session_id: UUID
    owner_id: UUID
    owner_role: Role
    issued_at: datetime
    expires_at: datetime
    revoked_at: datetime | None
    revoked_reason: str | None
    replaced_by_id: UUID | None
    device_info: str | None
    ip_address: str | None
    created_at: datetime

    def is_valid(self, now: datetime) -> bool:
        """A session is valid iff it is not revoked and has not expired."""
        return self.revoked_at is None and self.expires_at > now


@dataclass(frozen=True)
class AuditLogData:
    """Immutable audit log entry snapshot."""

    log_id: UUID
    actor_id: UUID | None
    actor_role: Role | None
    event_type: str
    event_detail: str | None
    ip_address: str | None
    created_at: datetime


@dataclass(frozen=True)
class SessionQuery:
    """Filters for the admin session search."""

    owner_id: UUID | None = None
    owner_role: Role | None = None
    active_only: bool = False
    expired_only: bool = False
    created_from: datetime | None = None
    created_to: datetime | None = None
    sort_by: str = "created_at"
    descending: bool = True
    page: int = 1
    limit: int = 100

    def __post_init__(self) -> None:
        """Validate pagination constraints."""
        if self.page < 1:
            raise ValueError(f"page must be >= 1: {self.page}")
        if not 1 <= self.limit <= 1000:
            raise ValueError(f"limit must be between 1 and 1000: {self.limit}")
        if self.active_only and self.expired_only:
            raise ValueError("active_only and expired_only are mutually exclusive")


@dataclass(frozen=True)
class Page:
    """One page of results plus the total record count."""

    items: list
    total: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        """Number of pages for the total record count."""
        return (self.total + self.limit - 1) // self.limit
