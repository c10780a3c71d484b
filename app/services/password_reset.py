"""
Password Reset Service - one-time reset tokens for credentialed roles.

Reset tokens are random, shown once, and stored only as SHA-256 hashes.
Issuing or completing a reset retires every other unused token of the
credential, and completing one revokes every open session of the principal.
"""

import base64
import hashlib
import secrets
from datetime import UTC, datetime, timedelta
from uuid import UUID, uuid4

from sqlalchemy import delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from app.db.models import PasswordReset, ensure_utc
from app.exceptions import PasswordResetTokenError
from app.models.api import Role
from app.models.domain import PrincipalData
from app.observability.metrics import metrics
from app.services.audit_log import AuditLogWriter
from app.services.credential_store import CredentialStore
from app.services.passwords import PasswordVerifier
from app.services.principal_store import PrincipalAdapter, get_role_profile
from app.services.session_ledger import REVOKE_REASON_PASSWORD_RESET, SessionLedger

logger = get_logger(__name__)


class PasswordResetService:
    """Issue and redeem password reset tokens."""

    def __init__(
        self,
        session: AsyncSession,
        password_verifier: PasswordVerifier,
        ttl_minutes: int = 30,
    ) -> None:
        self.session = session
        self.password_verifier = password_verifier
        self.ttl = timedelta(minutes=ttl_minutes)
        self.credentials = CredentialStore(session)
        self.ledger = SessionLedger(session)
        self.audit = AuditLogWriter(session)

    @staticmethod
    def generate_token() -> str:
        """Generate a URL-safe reset token: prt_{random}."""
        random_bytes = secrets.token_bytes(32)
        return "prt_" + base64.urlsafe_b64encode(random_bytes).decode("utf-8").rstrip("=")

    @staticmethod
    def hash_token(token: str) -> str:
        return hashlib.sha256(token.encode()).hexdigest()

    async def _claim(self, reset_id: UUID, now: datetime) -> bool:
        """Mark one reset used. False when another redemption got there first."""
        stmt = (
            update(PasswordReset)
            .where(PasswordReset.id == reset_id, PasswordReset.used_at.is_(None))
            .values(used_at=now)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1  # type: ignore[attr-defined]

    async def _retire_outstanding(self, credential_id: UUID, now: datetime) -> int:
        """Mark every unused reset of a credential as used. Returns the number retired."""
        stmt = (
            update(PasswordReset)
            .where(PasswordReset.credential_id == credential_id, PasswordReset.used_at.is_(None))
            .values(used_at=now)
        )
        result = await self.session.execute(stmt)
        return result.rowcount or 0  # type: ignore[attr-defined]

    async def _find_active_principal(
        self, role: Role, credential_id: UUID
    ) -> PrincipalData | None:
        adapter = PrincipalAdapter(self.session, get_role_profile(role))
        principal = await adapter.find_by_credential(credential_id)
        if principal is None or not principal.is_active:
            return None
        return principal

    async def request_reset(
        self, role: Role, email: str, ip_address: str | None = None
    ) -> str | None:
        """
        Create a reset token when the email belongs to an active principal of the role.

        Returns the plaintext token, or None when no reset was created. Callers
        must respond identically in both cases.
        """
        if not get_role_profile(role).requires_credential:
            return None

        credential = await self.credentials.find_by_email(email)
        principal = (
            await self._find_active_principal(role, credential.id) if credential else None
        )
        if credential is None or principal is None:
            logger.info("password_reset_request_ignored", role=role.value)
            return None

        token = self.generate_token()
        now = datetime.now(UTC)
        # Only the newest token stays redeemable
        superseded = await self._retire_outstanding(credential.id, now)
        self.session.add(
            PasswordReset(
                id=uuid4(),
                credential_id=credential.id,
                token_hash=self.hash_token(token),
                expires_at=now + self.ttl,
                used_at=None,
                created_at=now,
            )
        )
        self.audit.record(
            "password_reset_requested",
            principal.principal_id,
            role,
            ip_address=ip_address,
            now=now,
        )
        await self.session.commit()

        logger.info(
            "password_reset_issued",
            role=role.value,
            principal_id=str(principal.principal_id),
            token_hash=self.hash_token(token)[:16],
            expires_at=(now + self.ttl).isoformat(),
            superseded=superseded,
        )
        return token

    async def complete_reset(
        self,
        role: Role,
        reset_token: str,
        new_password: str,
        ip_address: str | None = None,
    ) -> PrincipalData:
        """
        Redeem a reset token and set a new password.

        Raises:
            PasswordResetTokenError: unknown, already used, expired, or not
                bound to an active principal of the role
            PasswordPolicyError: new password too weak
        """
        stmt = select(PasswordReset).where(PasswordReset.token_hash == self.hash_token(reset_token))
        reset = (await self.session.execute(stmt)).scalar_one_or_none()
        if reset is None:
            raise PasswordResetTokenError("unknown")
        if reset.used_at is not None:
            raise PasswordResetTokenError("already_used")

        now = datetime.now(UTC)
        if ensure_utc(reset.expires_at) <= now:
            raise PasswordResetTokenError("expired")

        credential = await self.credentials.get(reset.credential_id)
        if credential is None or credential.deleted_at is not None:
            raise PasswordResetTokenError("account_unavailable")
        principal = await self._find_active_principal(role, credential.id)
        if principal is None:
            raise PasswordResetTokenError("account_unavailable")

        self.password_verifier.check_policy(new_password)

        if not await self._claim(reset.id, now):
            await self.session.rollback()
            logger.warning("password_reset_conflict", role=role.value, reset_id=str(reset.id))
            raise PasswordResetTokenError("already_used")

        await self.credentials.update_password_hash(
            credential, self.password_verifier.hash(new_password)
        )
        await self._retire_outstanding(credential.id, now)
        revoked = await self.ledger.revoke_all_for_owner(
            principal.principal_id, role, REVOKE_REASON_PASSWORD_RESET, now
        )
        self.audit.record(
            "password_reset_completed",
            principal.principal_id,
            role,
            event_detail=f"{revoked} sessions revoked",
            ip_address=ip_address,
            now=now,
        )
        await self.session.commit()
        metrics.record_revocations(REVOKE_REASON_PASSWORD_RESET, revoked)

        logger.info(
            "password_reset_completed",
            role=role.value,
            principal_id=str(principal.principal_id),
            sessions_revoked=revoked,
        )
        return principal


async def purge_password_resets(session: AsyncSession, older_than: datetime) -> int:
    """Delete reset rows that expired or were used before older_than. Does not commit."""
    stmt = delete(PasswordReset).where(
        or_(PasswordReset.expires_at < older_than, PasswordReset.used_at < older_than)
    )
    result = await session.execute(stmt)
    return result.rowcount or 0  # type: ignore[attr-defined]
