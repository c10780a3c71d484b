"""
Principal Store - per-role principal tables behind one adapter interface.

Each role (guest, member, admin, adminUser) keeps its own table; RoleProfile
captures the handful of ways the roles differ so the lifecycle code is
written once.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from app.db.models import Admin, AdminUser, Credential, Guest, Member, PrincipalMixin, ensure_utc
from app.models.api import PrincipalStatus, Role
from app.models.domain import PrincipalData

logger = get_logger(__name__)


@dataclass(frozen=True)
class RoleProfile:
    """How a role's principals are stored and authenticated."""

    role: Role
    model: type[PrincipalMixin]
    requires_credential: bool
    stamps_last_login: bool


ROLE_PROFILES: dict[Role, RoleProfile] = {
    Role.GUEST: RoleProfile(Role.GUEST, Guest, requires_credential=False, stamps_last_login=False),
    Role.MEMBER: RoleProfile(Role.MEMBER, Member, requires_credential=True, stamps_last_login=True),
    Role.ADMIN: RoleProfile(Role.ADMIN, Admin, requires_credential=True, stamps_last_login=False),
    Role.ADMIN_USER: RoleProfile(
        Role.ADMIN_USER, AdminUser, requires_credential=True, stamps_last_login=False
    ),
}


def get_role_profile(role: Role) -> RoleProfile:
    """Look up the profile for a role."""
    return ROLE_PROFILES[role]


@dataclass(frozen=True)
class PrincipalPatch:
    """Partial update for a principal. None leaves a field unchanged."""

    status: PrincipalStatus | None = None
    display_name: str | None = None
    deleted: bool | None = None
    last_login_at: datetime | None = None


class PrincipalAdapter:
    """CRUD wrapper over one role's principal table. Does not commit."""

    def __init__(self, session: AsyncSession, profile: RoleProfile):
        self.session = session
        self.profile = profile
        self.model = profile.model

    def _select_with_email(self):
        return select(self.model, Credential.email).outerjoin(
            Credential, self.model.credential_id == Credential.id
        )

    async def find_by_id(self, principal_id: UUID) -> PrincipalData | None:
        """Find a principal by ID, including soft-deleted rows."""
        stmt = self._select_with_email().where(self.model.id == principal_id)
        result = await self.session.execute(stmt)
        row = result.one_or_none()
        if row is None:
            return None
        principal, email = row
        return self.to_data(principal, email)

    async def find_by_credential(self, credential_id: UUID) -> PrincipalData | None:
        """Find the principal bound to a credential, including soft-deleted rows."""
        stmt = self._select_with_email().where(self.model.credential_id == credential_id)
        result = await self.session.execute(stmt)
        row = result.one_or_none()
        if row is None:
            return None
        principal, email = row
        return self.to_data(principal, email)

    async def create(
        self,
        credential_id: UUID | None,
        display_name: str | None = None,
        email: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> PrincipalData:
        """
        Insert an active principal.

        Raises:
            ValueError: credential presence does not match the role
        """
        if self.profile.requires_credential and credential_id is None:
            raise ValueError(f"{self.profile.role.value} principals require a credential")
        if not self.profile.requires_credential and credential_id is not None:
            raise ValueError(f"{self.profile.role.value} principals cannot hold a credential")

        now = datetime.now(UTC)
        principal = self.model(
            id=uuid4(),
            credential_id=credential_id,
            display_name=display_name,
            status=PrincipalStatus.ACTIVE.value,
            created_at=now,
            updated_at=now,
            deleted_at=None,
            last_login_at=None,
        )
        if isinstance(principal, Guest):
            principal.guest_identifier = str(uuid4())
            principal.ip_address = ip_address
            principal.user_agent = user_agent

        self.session.add(principal)
        await self.session.flush()

        logger.debug("principal_created", role=self.profile.role.value, principal_id=str(principal.id))
        return self.to_data(principal, email)

    async def update(self, principal_id: UUID, patch: PrincipalPatch) -> PrincipalData | None:
        """Apply a partial update. Returns None when the principal does not exist."""
        principal = await self.session.get(self.model, principal_id)
        if principal is None:
            return None

        now = datetime.now(UTC)
        if patch.status is not None:
            principal.status = patch.status.value
        if patch.display_name is not None:
            principal.display_name = patch.display_name
        if patch.deleted is not None:
            principal.deleted_at = now if patch.deleted else None
        if patch.last_login_at is not None:
            principal.last_login_at = patch.last_login_at
        principal.updated_at = now
        await self.session.flush()

        email = None
        if principal.credential_id is not None:
            credential = await self.session.get(Credential, principal.credential_id)
            email = credential.email if credential else None
        return self.to_data(principal, email)

    def to_data(self, principal: PrincipalMixin, email: str | None) -> PrincipalData:
        """Convert ORM row to immutable snapshot."""
        return PrincipalData(
            principal_id=principal.id,
            role=self.profile.role,
            credential_id=principal.credential_id,
            email=email,
            display_name=principal.display_name,
            status=PrincipalStatus(principal.status),
            created_at=ensure_utc(principal.created_at),
            updated_at=ensure_utc(principal.updated_at),
            deleted_at=ensure_utc(principal.deleted_at),
            last_login_at=ensure_utc(principal.last_login_at),
            guest_identifier=getattr(principal, "guest_identifier", None),
        )
