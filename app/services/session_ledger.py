"""
Session Ledger.

Persists one row per issued refresh token and enforces the session state
machine: issued -> (revoked | expired), both terminal.

SECURITY: This is a critical security component.
- Refresh tokens are hashed before storage (never stores raw tokens)
- Revocation is a conditional UPDATE, so two concurrent refreshes of the same
  token cannot both succeed
- Rotation revokes the old row and inserts its successor in the caller's
  transaction
"""

import hashlib
from datetime import UTC, datetime
from uuid import UUID, uuid4

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from app.db.models import AuthSession, ensure_utc
from app.exceptions import SessionInvalidError
from app.models.api import Role
from app.models.domain import ClientContext, IssuedTokens, Page, SessionData, SessionQuery

logger = get_logger(__name__)

REVOKE_REASON_ROTATED = "rotated"
REVOKE_REASON_LOGOUT = "logout"
REVOKE_REASON_REVOKED = "revoked"
REVOKE_REASON_PASSWORD_RESET = "password_reset"
REVOKE_REASON_ACCOUNT_DISABLED = "account_disabled"


class SessionLedger:
    """
    Ledger of refresh-token sessions. Does not commit; callers own the transaction.

    Usage:
        ledger = SessionLedger(db)
        row = await ledger.open(principal_id, Role.MEMBER, tokens, context)
        ...
        new_row = await ledger.rotate(row, new_tokens, now)
        await db.commit()
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    @staticmethod
    def hash_token(token: str) -> str:
        """
        Hash a token using SHA-256.

        We never store raw tokens - only hashes. A compromised database does
        not leak usable refresh tokens.
        """
        return hashlib.sha256(token.encode()).hexdigest()

    async def open(
        self,
        owner_id: UUID,
        owner_role: Role,
        tokens: IssuedTokens,
        context: ClientContext | None = None,
        session_id: UUID | None = None,
    ) -> AuthSession:
        """Insert a new session row bound to the pair's refresh token."""
        context = context or ClientContext()
        row = AuthSession(
            id=session_id or uuid4(),
            owner_id=owner_id,
            owner_role=owner_role.value,
            refresh_token_hash=self.hash_token(tokens.refresh),
            issued_at=tokens.issued_at,
            expires_at=tokens.refresh_expires_at,
            revoked_at=None,
            revoked_reason=None,
            replaced_by_id=None,
            device_info=context.device_info,
            ip_address=context.ip_address,
            created_at=tokens.issued_at,
        )
        self.session.add(row)
        await self.session.flush()
        return row

    async def find_by_refresh_token(self, token: str) -> AuthSession | None:
        """Find the session row for a refresh token, in any state."""
        stmt = select(AuthSession).where(AuthSession.refresh_token_hash == self.hash_token(token))
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get(self, session_id: UUID) -> AuthSession | None:
        """Get a session row by ID."""
        return await self.session.get(AuthSession, session_id)

    async def revoke(
        self,
        session_id: UUID,
        reason: str,
        now: datetime | None = None,
        replaced_by_id: UUID | None = None,
    ) -> bool:
        """
        Revoke an open session.

        Returns True if this call revoked it, False if it was already revoked
        (or does not exist).
        """
        now = now or datetime.now(UTC)
        stmt = (
            update(AuthSession)
            .where(AuthSession.id == session_id, AuthSession.revoked_at.is_(None))
            .values(revoked_at=now, revoked_reason=reason, replaced_by_id=replaced_by_id)
        )
        result = await self.session.execute(stmt)
        revoked = result.rowcount == 1  # type: ignore[attr-defined]
        if revoked:
            logger.info("session_revoked", session_id=str(session_id), reason=reason)
        return revoked

    async def rotate(
        self,
        current: AuthSession,
        tokens: IssuedTokens,
        now: datetime | None = None,
    ) -> AuthSession:
        """
        Revoke current and insert its successor bound to the new refresh token.

        Raises:
            SessionInvalidError: current was revoked concurrently (lost the race)
        """
        now = now or datetime.now(UTC)
        successor_id = uuid4()

        if not await self.revoke(current.id, REVOKE_REASON_ROTATED, now, successor_id):
            logger.warning("session_rotation_conflict", session_id=str(current.id))
            raise SessionInvalidError()

        successor = await self.open(
            owner_id=current.owner_id,
            owner_role=Role(current.owner_role),
            tokens=tokens,
            context=ClientContext(device_info=current.device_info, ip_address=current.ip_address),
            session_id=successor_id,
        )
        logger.info(
            "session_rotated",
            previous_session_id=str(current.id),
            session_id=str(successor_id),
            token_hash=successor.refresh_token_hash[:16],
        )
        return successor

    async def revoke_all_for_owner(
        self,
        owner_id: UUID,
        owner_role: Role,
        reason: str,
        now: datetime | None = None,
    ) -> int:
        """Revoke every open session of a principal. Returns the number revoked."""
        now = now or datetime.now(UTC)
        stmt = (
            update(AuthSession)
            .where(
                AuthSession.owner_id == owner_id,
                AuthSession.owner_role == owner_role.value,
                AuthSession.revoked_at.is_(None),
            )
            .values(revoked_at=now, revoked_reason=reason)
        )
        result = await self.session.execute(stmt)
        count = result.rowcount or 0  # type: ignore[attr-defined]
        logger.info(
            "owner_sessions_revoked",
            owner_id=str(owner_id),
            owner_role=owner_role.value,
            reason=reason,
            count=count,
        )
        return count

    async def search(self, query: SessionQuery, now: datetime | None = None) -> Page:
        """Filtered, sorted, paginated session listing."""
        now = now or datetime.now(UTC)
        stmt = select(AuthSession)

        if query.owner_id is not None:
            stmt = stmt.where(AuthSession.owner_id == query.owner_id)
        if query.owner_role is not None:
            stmt = stmt.where(AuthSession.owner_role == query.owner_role.value)
        if query.active_only:
            stmt = stmt.where(AuthSession.revoked_at.is_(None), AuthSession.expires_at > now)
        if query.expired_only:
            stmt = stmt.where(AuthSession.expires_at <= now)
        if query.created_from is not None:
            stmt = stmt.where(AuthSession.created_at >= query.created_from)
        if query.created_to is not None:
            stmt = stmt.where(AuthSession.created_at <= query.created_to)

        count_stmt = select(func.count()).select_from(stmt.subquery())
        total = (await self.session.execute(count_stmt)).scalar_one()

        sort_column = (
            AuthSession.expires_at if query.sort_by == "expires_at" else AuthSession.created_at
        )
        stmt = (
            stmt.order_by(sort_column.desc() if query.descending else sort_column.asc())
            .offset((query.page - 1) * query.limit)
            .limit(query.limit)
        )
        result = await self.session.execute(stmt)
        rows = result.scalars().all()

        return Page(
            items=[self.to_data(row) for row in rows],
            total=total,
            page=query.page,
            limit=query.limit,
        )

    async def purge(self, older_than: datetime) -> int:
        """
        Delete sessions that ended (expired or revoked) before older_than.

        Returns the number of rows deleted.
        """
        stmt = delete(AuthSession).where(
            or_(
                AuthSession.expires_at < older_than,
                AuthSession.revoked_at < older_than,
            )
        )
        result = await self.session.execute(stmt)
        return result.rowcount or 0  # type: ignore[attr-defined]

    @staticmethod
    def to_data(row: AuthSession) -> SessionData:
        """Convert ORM row to immutable snapshot."""
        return SessionData(
            session_id=row.id,
            owner_id=row.owner_id,
            owner_role=Role(row.owner_role),
            issued_at=ensure_utc(row.issued_at),
            expires_at=ensure_utc(row.expires_at),
            revoked_at=ensure_utc(row.revoked_at),
            revoked_reason=row.revoked_reason,
            replaced_by_id=row.replaced_by_id,
            device_info=row.device_info,
            ip_address=row.ip_address,
            created_at=ensure_utc(row.created_at),
        )
