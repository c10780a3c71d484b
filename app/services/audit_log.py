"""
Audit Log Service - immutable trail of authentication and session events.

Entries are added to the caller's transaction so an event is recorded if and
only if the state change it describes commits.
"""

from datetime import UTC, datetime
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import AuditLog, ensure_utc
from app.models.api import Role
from app.models.domain import AuditLogData, Page


class AuditLogWriter:
    """Append-only access to the audit_logs table. Does not commit."""

    def __init__(self, session: AsyncSession):
        self.session = session

    def record(
        self,
        event_type: str,
        actor_id: UUID | None,
        actor_role: Role | None,
        event_detail: str | None = None,
        ip_address: str | None = None,
        now: datetime | None = None,
    ) -> AuditLog:
        """Stage an audit entry in the current transaction."""
        entry = AuditLog(
            id=uuid4(),
            actor_id=actor_id,
            actor_role=actor_role.value if actor_role else None,
            event_type=event_type,
            event_detail=event_detail,
            ip_address=ip_address,
            created_at=now or datetime.now(UTC),
        )
        self.session.add(entry)
        return entry

    async def search(
        self,
        actor_id: UUID | None = None,
        event_type: str | None = None,
        created_from: datetime | None = None,
        created_to: datetime | None = None,
        page: int = 1,
        limit: int = 100,
    ) -> Page:
        """Filtered audit log listing, newest first."""
        stmt = select(AuditLog)
        if actor_id is not None:
            stmt = stmt.where(AuditLog.actor_id == actor_id)
        if event_type is not None:
            stmt = stmt.where(AuditLog.event_type == event_type)
        if created_from is not None:
            stmt = stmt.where(AuditLog.created_at >= created_from)
        if created_to is not None:
            stmt = stmt.where(AuditLog.created_at <= created_to)

        count_stmt = select(func.count()).select_from(stmt.subquery())
        total = (await self.session.execute(count_stmt)).scalar_one()

        stmt = stmt.order_by(AuditLog.created_at.desc()).offset((page - 1) * limit).limit(limit)
        result = await self.session.execute(stmt)

        return Page(
            items=[self.to_data(row) for row in result.scalars().all()],
            total=total,
            page=page,
            limit=limit,
        )

    @staticmethod
    def to_data(row: AuditLog) -> AuditLogData:
        """Convert ORM row to immutable snapshot."""
        return AuditLogData(
            log_id=row.id,
            actor_id=row.actor_id,
            actor_role=Role(row.actor_role) if row.actor_role else None,
            event_type=row.event_type,
            event_detail=row.event_detail,
            ip_address=row.ip_address,
            created_at=ensure_utc(row.created_at),
        )
