"""initial auth schema

Revision ID: 2026_10_17_0001
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "2026_10_17_0001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

PRINCIPAL_TABLES = ("guests", "members", "admins", "admin_users")


def _principal_columns() -> list[sa.Column]:
    return [
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "credential_id",
            sa.Uuid(),
            sa.ForeignKey("credentials.id", ondelete="RESTRICT"),
            nullable=True,
            unique=True,
        ),
        sa.Column("display_name", sa.String(255), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("NOW()")
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("NOW()")
        ),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    """Create credentials, per-role principals, sessions, audit_logs, password_resets."""

    # ========================================================================
    # Credentials
    # ========================================================================
    op.create_table(
        "credentials",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("NOW()")
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("NOW()")
        ),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
    )
    # Email is unique among non-deleted credentials only
    op.create_index(
        "uq_credentials_email_active",
        "credentials",
        ["email"],
        unique=True,
        postgresql_where=sa.text("deleted_at IS NULL"),
    )

    # ========================================================================
    # Principals (one table per role)
    # ========================================================================
    for table in PRINCIPAL_TABLES:
        extra: list[sa.Column] = []
        if table == "guests":
            extra = [
                sa.Column("guest_identifier", sa.String(64), nullable=False, unique=True),
                sa.Column("ip_address", sa.String(45), nullable=True),
                sa.Column("user_agent", sa.Text(), nullable=True),
            ]
        op.create_table(
            table,
            *_principal_columns(),
            *extra,
            sa.CheckConstraint(
                "status IN ('active', 'suspended')", name=f"ck_{table}_status"
            ),
        )

    # ========================================================================
    # Sessions (refresh-token ledger)
    # ========================================================================
    op.create_table(
        "sessions",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("owner_id", sa.Uuid(), nullable=False),
        sa.Column("owner_role", sa.String(20), nullable=False),
        sa.Column("refresh_token_hash", sa.String(64), nullable=False, unique=True),
        sa.Column("issued_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("revoked_reason", sa.String(50), nullable=True),
        sa.Column("replaced_by_id", sa.Uuid(), nullable=True),
        sa.Column("device_info", sa.String(512), nullable=True),
        sa.Column("ip_address", sa.String(45), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("NOW()")
        ),
        sa.CheckConstraint(
            "owner_role IN ('guest', 'member', 'admin', 'adminUser')", name="ck_sessions_owner_role"
        ),
        sa.CheckConstraint("expires_at > issued_at", name="ck_sessions_expiry_after_issue"),
    )
    op.create_index("idx_sessions_owner", "sessions", ["owner_role", "owner_id"])
    op.create_index("idx_sessions_expires_at", "sessions", ["expires_at"])
    op.create_index("idx_sessions_created_at", "sessions", ["created_at"])

    # ========================================================================
    # Audit logs
    # ========================================================================
    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("actor_id", sa.Uuid(), nullable=True),
        sa.Column("actor_role", sa.String(20), nullable=True),
        sa.Column("event_type", sa.String(100), nullable=False),
        sa.Column("event_detail", sa.Text(), nullable=True),
        sa.Column("ip_address", sa.String(45), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("NOW()")
        ),
    )
    op.create_index("idx_audit_logs_actor", "audit_logs", ["actor_id"])
    op.create_index("idx_audit_logs_event_type", "audit_logs", ["event_type"])
    op.create_index("idx_audit_logs_created_at", "audit_logs", ["created_at"])

    # ========================================================================
    # Password resets
    # ========================================================================
    op.create_table(
        "password_resets",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "credential_id",
            sa.Uuid(),
            sa.ForeignKey("credentials.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("token_hash", sa.String(64), nullable=False, unique=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("NOW()")
        ),
    )
    op.create_index(
        "ix_password_resets_credential_id", "password_resets", ["credential_id"]
    )


def downgrade() -> None:
    """Drop the auth schema."""
    op.drop_index("ix_password_resets_credential_id", table_name="password_resets")
    op.drop_table("password_resets")

    op.drop_index("idx_audit_logs_created_at", table_name="audit_logs")
    op.drop_index("idx_audit_logs_event_type", table_name="audit_logs")
    op.drop_index("idx_audit_logs_actor", table_name="audit_logs")
    op.drop_table("audit_logs")

    op.drop_index("idx_sessions_created_at", table_name="sessions")
    op.drop_index("idx_sessions_expires_at", table_name="sessions")
    op.drop_index("idx_sessions_owner", table_name="sessions")
    op.drop_table("sessions")

    for table in reversed(PRINCIPAL_TABLES):
        op.drop_table(table)

    op.drop_index("uq_credentials_email_active", table_name="credentials")
    op.drop_table("credentials")
