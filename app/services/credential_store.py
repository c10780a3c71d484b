"""
Credential Store - email/password-hash records backing non-guest principals.
"""

from datetime import UTC, datetime
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from app.db.models import Credential
from app.exceptions import DuplicateEmailError

logger = get_logger(__name__)


class CredentialStore:
    """CRUD wrapper over the credentials table. Does not commit."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def find_by_email(self, email: str) -> Credential | None:
        """Find the non-deleted credential for an email (exact, case-sensitive match)."""
        stmt = select(Credential).where(
            Credential.email == email,
            Credential.deleted_at.is_(None),
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get(self, credential_id: UUID) -> Credential | None:
        """Get a credential by ID, deleted or not."""
        return await self.session.get(Credential, credential_id)

    async def create(self, email: str, password_hash: str) -> Credential:
        """
        Insert a credential.

        The pre-check gives the common case a clean failure; the partial unique
        index on email is what actually guards concurrent joins.

        Raises:
            DuplicateEmailError: email already bound to a non-deleted credential
        """
        if await self.find_by_email(email) is not None:
            logger.info("credential_duplicate_email", stage="precheck")
            raise DuplicateEmailError()

        now = datetime.now(UTC)
        credential = Credential(
            id=uuid4(),
            email=email,
            password_hash=password_hash,
            created_at=now,
            updated_at=now,
            deleted_at=None,
        )
        self.session.add(credential)
        try:
            await self.session.flush()
        except IntegrityError as e:
            # Race condition - same email inserted by a concurrent join
            logger.warning("credential_duplicate_email", stage="insert", error=str(e.orig))
            await self.session.rollback()
            raise DuplicateEmailError() from e

        return credential

    async def update_password_hash(self, credential: Credential, password_hash: str) -> None:
        """Replace the stored password hash."""
        credential.password_hash = password_hash
        credential.updated_at = datetime.now(UTC)
        await self.session.flush()

    async def soft_delete(self, credential: Credential) -> None:
        """Soft-delete a credential, releasing its email for reuse."""
        if credential.deleted_at is not None:
            return
        now = datetime.now(UTC)
        credential.deleted_at = now
        credential.updated_at = now
        await self.session.flush()

    async def restore(self, credential: Credential) -> None:
        """
        Undo a soft delete, reclaiming the email.

        Raises:
            DuplicateEmailError: the email was bound to another credential meanwhile
        """
        if credential.deleted_at is None:
            return
        if await self.find_by_email(credential.email) is not None:
            logger.info("credential_duplicate_email", stage="restore_precheck")
            await self.session.rollback()
            raise DuplicateEmailError()

        credential.deleted_at = None
        credential.updated_at = datetime.now(UTC)
        try:
            await self.session.flush()
        except IntegrityError as e:
            logger.warning("credential_duplicate_email", stage="restore", error=str(e.orig))
            await self.session.rollback()
            raise DuplicateEmailError() from e
