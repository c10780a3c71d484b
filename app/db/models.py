"""
Database Models - SQLAlchemy ORM models with strict typing.

NO DICTIONARIES - All columns use Mapped[] type annotations.

Column types are dialect-portable (Uuid, DateTime(timezone=True)); production
runs on PostgreSQL, the in-process test suite on SQLite.
"""

from datetime import UTC, datetime
from uuid import UUID, uuid4

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    Uuid,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, declared_attr, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


def ensure_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive timestamps read back from drivers that drop tzinfo."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class Credential(Base):
    """
    ORM model for credentials table.

    Email + password hash backing every non-guest principal.
    """

    __tablename__ = "credentials"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    # Case-sensitive; unique among non-deleted rows (partial index below)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index(
            "uq_credentials_email_active",
            "email",
            unique=True,
            postgresql_where=text("deleted_at IS NULL"),
            sqlite_where=text("deleted_at IS NULL"),
        ),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<Credential(id={self.id}, email={self.email}, deleted={self.deleted_at is not None})>"


class PrincipalMixin:
    """Columns shared by every per-role principal table."""

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    @declared_attr
    def credential_id(cls) -> Mapped[UUID | None]:
        """Owning credential; always null for guests."""
        return mapped_column(Uuid, ForeignKey("credentials.id"), nullable=True, unique=True)

    display_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_login_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<{type(self).__name__}(id={self.id}, status={self.status})>"


class Guest(PrincipalMixin, Base):
    """
    ORM model for guests table.

    Anonymous visitors; no credential, tracked by a generated identifier.
    """

    __tablename__ = "guests"

    guest_identifier: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)


class Member(PrincipalMixin, Base):
    """ORM model for members table."""

    __tablename__ = "members"


class Admin(PrincipalMixin, Base):
    """ORM model for admins table."""

    __tablename__ = "admins"


class AdminUser(PrincipalMixin, Base):
    """ORM model for admin_users table."""

    __tablename__ = "admin_users"


class AuthSession(Base):
    """
    ORM model for sessions table.

    Ledger of issued refresh tokens. Only the SHA-256 hash of the refresh
    token is stored. A row is valid iff revoked_at is null and expires_at is
    in the future; rotation revokes the row and links it to its successor.
    """

    __tablename__ = "sessions"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    owner_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)
    owner_role: Mapped[str] = mapped_column(String(20), nullable=False)

    refresh_token_hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)

    issued_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    revoked_reason: Mapped[str | None] = mapped_column(String(50), nullable=True)
    replaced_by_id: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)

    # Request context
    device_info: Mapped[str | None] = mapped_column(String(512), nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        Index("idx_sessions_owner", "owner_role", "owner_id"),
        Index("idx_sessions_expires_at", "expires_at"),
        Index("idx_sessions_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<AuthSession(id={self.id}, owner={self.owner_role}/{self.owner_id}, "
            f"revoked={self.revoked_at is not None})>"
        )


class AuditLog(Base):
    """
    ORM model for audit_logs table.

    Immutable audit trail of authentication and session events.
    """

    __tablename__ = "audit_logs"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    # Actor (nullable for system actions)
    actor_id: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)
    actor_role: Mapped[str | None] = mapped_column(String(20), nullable=True)

    event_type: Mapped[str] = mapped_column(String(100), nullable=False)
    event_detail: Mapped[str | None] = mapped_column(Text, nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        Index("idx_audit_logs_actor", "actor_id"),
        Index("idx_audit_logs_event_type", "event_type"),
        Index("idx_audit_logs_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<AuditLog(id={self.id}, event={self.event_type}, actor={self.actor_id})>"


class PasswordReset(Base):
    """
    ORM model for password_resets table.

    One-time reset tokens, stored hashed.
    """

    __tablename__ = "password_resets"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    credential_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("credentials.id"), nullable=False, index=True
    )
    token_hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<PasswordReset(id={self.id}, used={self.used_at is not None})>"
