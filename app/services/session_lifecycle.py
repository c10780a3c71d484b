"""
Session Lifecycle Service - join, login, refresh and logout for every role.

One implementation serves guest, member, admin and adminUser; the per-role
differences live in RoleProfile (see principal_store).

Each public operation runs in a single transaction on the injected
AsyncSession: credential, principal, ledger and audit writes commit together
or not at all.
"""

import time
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import NoReturn
from uuid import UUID

from opentelemetry.trace import Span
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from app.exceptions import (
    AccountInactiveError,
    CommunityPlatformError,
    InvalidCredentialsError,
    InvalidTokenError,
    ResourceNotFoundError,
    SessionExpiredError,
    SessionInvalidError,
)
from app.models.api import PrincipalStatus, Role, TokenType
from app.models.domain import (
    AuthorizedPrincipal,
    ClientContext,
    Page,
    PrincipalData,
    SessionData,
    SessionQuery,
)
from app.observability.metrics import metrics
from app.observability.tracing import get_tracer, set_auth_attributes, set_span_error
from app.services.audit_log import AuditLogWriter
from app.services.credential_store import CredentialStore
from app.services.passwords import PasswordVerifier
from app.services.principal_store import PrincipalAdapter, PrincipalPatch, get_role_profile
from app.services.session_ledger import (
    REVOKE_REASON_ACCOUNT_DISABLED,
    REVOKE_REASON_LOGOUT,
    REVOKE_REASON_REVOKED,
    SessionLedger,
)
from app.services.token_issuer import TokenIssuer

logger = get_logger(__name__)
tracer = get_tracer(__name__)


@contextmanager
def _track(operation: str, role: Role) -> Iterator[Span]:
    """Trace an auth operation and record its outcome and duration."""
    start = time.perf_counter()
    with tracer.start_as_current_span(
        f"auth.{operation}", record_exception=False, set_status_on_exception=False
    ) as span:
        set_auth_attributes(span, role.value)
        try:
            yield span
        except CommunityPlatformError as e:
            set_span_error(span, e)
            metrics.record_auth_operation(
                operation, role.value, type(e).__name__, time.perf_counter() - start
            )
            raise
    metrics.record_auth_operation(operation, role.value, "success", time.perf_counter() - start)


class SessionLifecycleManager:
    """
    Account and session lifecycle for all roles.

    Usage:
        manager = SessionLifecycleManager(db, token_issuer, password_verifier)
        result = await manager.join(Role.MEMBER, email, password, display_name)
        result = await manager.refresh(Role.MEMBER, result.tokens.refresh)
    """

    def __init__(
        self,
        session: AsyncSession,
        token_issuer: TokenIssuer,
        password_verifier: PasswordVerifier,
    ) -> None:
        self.session = session
        self.token_issuer = token_issuer
        self.password_verifier = password_verifier
        self.credentials = CredentialStore(session)
        self.ledger = SessionLedger(session)
        self.audit = AuditLogWriter(session)

    def principals(self, role: Role) -> PrincipalAdapter:
        """Principal adapter for a role."""
        return PrincipalAdapter(self.session, get_role_profile(role))

    # ========================================================================
    # Join / Login / Refresh / Logout
    # ========================================================================

    async def join(
        self,
        role: Role,
        email: str | None = None,
        password: str | None = None,
        display_name: str | None = None,
        context: ClientContext | None = None,
    ) -> AuthorizedPrincipal:
        """
        Create a principal of the role and open its first session.

        Guests need no email or password. Credentialed roles require both.

        Raises:
            PasswordPolicyError: password too weak
            DuplicateEmailError: email bound to a non-deleted credential
        """
        context = context or ClientContext()
        profile = get_role_profile(role)

        with _track("join", role) as span:
            if profile.requires_credential:
                if not email or password is None:
                    raise ValueError(f"{role.value} join requires email and password")
                self.password_verifier.check_policy(password)
                credential = await self.credentials.create(
                    email, self.password_verifier.hash(password)
                )
                principal = await self.principals(role).create(
                    credential_id=credential.id,
                    display_name=display_name,
                    email=credential.email,
                )
            else:
                principal = await self.principals(role).create(
                    credential_id=None,
                    display_name=display_name,
                    ip_address=context.ip_address,
                    user_agent=context.user_agent,
                )

            tokens = self.token_issuer.issue(principal.principal_id, role)
            row = await self.ledger.open(principal.principal_id, role, tokens, context)
            set_auth_attributes(span, role.value, principal.principal_id, row.id)
            self.audit.record(
                "join",
                principal.principal_id,
                role,
                ip_address=context.ip_address,
                now=tokens.issued_at,
            )
            await self.session.commit()

        logger.info(
            "principal_joined",
            role=role.value,
            principal_id=str(principal.principal_id),
            session_id=str(row.id),
        )
        return AuthorizedPrincipal(principal=principal, tokens=tokens, session_id=row.id)

    async def login(
        self,
        role: Role,
        email: str,
        password: str,
        context: ClientContext | None = None,
    ) -> AuthorizedPrincipal:
        """
        Authenticate email/password for a credentialed role.

        Every failure raises the same InvalidCredentialsError; the actual
        reason is only logged.

        Raises:
            InvalidCredentialsError: unknown email, wrong password, no principal
                of this role, or inactive principal
        """
        context = context or ClientContext()
        profile = get_role_profile(role)

        with _track("login", role) as span:
            if not profile.requires_credential:
                raise InvalidCredentialsError()

            credential = await self.credentials.find_by_email(email)
            if credential is None:
                self.password_verifier.burn_verification(password)
                self._login_failed(role, "no_credential")

            if not self.password_verifier.verify(password, credential.password_hash):
                self._login_failed(role, "password_mismatch")

            adapter = self.principals(role)
            principal = await adapter.find_by_credential(credential.id)
            if principal is None:
                self._login_failed(role, "no_principal")
            if not principal.is_active:
                self._login_failed(role, "inactive", principal.principal_id)

            tokens = self.token_issuer.issue(principal.principal_id, role)
            if profile.stamps_last_login:
                principal = await adapter.update(
                    principal.principal_id, PrincipalPatch(last_login_at=tokens.issued_at)
                )
            row = await self.ledger.open(principal.principal_id, role, tokens, context)
            set_auth_attributes(span, role.value, principal.principal_id, row.id)
            self.audit.record(
                "login",
                principal.principal_id,
                role,
                ip_address=context.ip_address,
                now=tokens.issued_at,
            )
            await self.session.commit()

        logger.info(
            "principal_logged_in",
            role=role.value,
            principal_id=str(principal.principal_id),
            session_id=str(row.id),
        )
        return AuthorizedPrincipal(principal=principal, tokens=tokens, session_id=row.id)

    def _login_failed(
        self, role: Role, reason: str, principal_id: UUID | None = None
    ) -> NoReturn:
        logger.info(
            "login_failed",
            role=role.value,
            reason=reason,
            principal_id=str(principal_id) if principal_id else None,
        )
        raise InvalidCredentialsError()

    async def refresh(
        self,
        role: Role,
        refresh_token: str,
        context: ClientContext | None = None,
    ) -> AuthorizedPrincipal:
        """
        Exchange a refresh token for a new token pair (rotation).

        The presented token's session is revoked and a successor session bound
        to the new refresh token is opened in the same transaction.

        Raises:
            InvalidTokenError: bad signature, issuer, claims, type or role
            SessionInvalidError: no open session for the token (unknown, revoked,
                or revoked concurrently)
            SessionExpiredError: session expiry has passed
            AccountInactiveError: owning principal suspended or deleted
        """
        context = context or ClientContext()

        with _track("refresh", role) as span:
            payload = self.token_issuer.verify(
                refresh_token, TokenType.REFRESH, expected_role=role, verify_expiry=False
            )

            current = await self.ledger.find_by_refresh_token(refresh_token)
            if (
                current is None
                or current.revoked_at is not None
                or current.owner_id != payload.principal_id
                or current.owner_role != role.value
            ):
                logger.warning(
                    "refresh_rejected",
                    role=role.value,
                    reason="session_invalid",
                    token_hash=SessionLedger.hash_token(refresh_token)[:16],
                )
                raise SessionInvalidError()

            now = datetime.now(UTC)
            # Revoked rows are already rejected, so an invalid session here is expired
            if not SessionLedger.to_data(current).is_valid(now):
                logger.info("refresh_rejected", role=role.value, reason="session_expired")
                raise SessionExpiredError(current.id)

            principal = await self.principals(role).find_by_id(payload.principal_id)
            if principal is None or not principal.is_active:
                logger.info(
                    "refresh_rejected",
                    role=role.value,
                    reason="account_inactive",
                    principal_id=str(payload.principal_id),
                )
                raise AccountInactiveError(payload.principal_id)

            tokens = self.token_issuer.issue(principal.principal_id, role)
            try:
                successor = await self.ledger.rotate(current, tokens, now)
            except SessionInvalidError:
                await self.session.rollback()
                raise
            set_auth_attributes(span, role.value, principal.principal_id, successor.id)
            self.audit.record(
                "refresh",
                principal.principal_id,
                role,
                event_detail=f"session {current.id} -> {successor.id}",
                ip_address=context.ip_address,
                now=now,
            )
            await self.session.commit()

        metrics.record_rotation(role.value)
        return AuthorizedPrincipal(principal=principal, tokens=tokens, session_id=successor.id)

    async def logout(
        self,
        role: Role,
        refresh_token: str,
        context: ClientContext | None = None,
    ) -> SessionData:
        """
        Revoke the session bound to a refresh token.

        Idempotent: an already revoked session is returned unchanged.

        Raises:
            InvalidTokenError: token fails verification
            ResourceNotFoundError: no session matches the token
        """
        context = context or ClientContext()

        with _track("logout", role):
            payload = self.token_issuer.verify(
                refresh_token, TokenType.REFRESH, expected_role=role, verify_expiry=False
            )
            row = await self.ledger.find_by_refresh_token(refresh_token)
            if row is None or row.owner_id != payload.principal_id:
                raise ResourceNotFoundError("session", payload.jti)

            return await self._revoke(row.id, REVOKE_REASON_LOGOUT, payload.principal_id, role, context)

    # ========================================================================
    # Access-token authentication
    # ========================================================================

    async def authenticate(self, access_token: str) -> PrincipalData:
        """
        Resolve a bearer access token to its principal.

        Raises:
            InvalidTokenError: token invalid, expired, a refresh token, or its
                principal no longer exists
            AccountInactiveError: principal suspended or deleted
        """
        payload = self.token_issuer.verify(access_token, TokenType.ACCESS)
        principal = await self.principals(payload.role).find_by_id(payload.principal_id)
        if principal is None:
            raise InvalidTokenError("Token principal no longer exists")
        if not principal.is_active:
            raise AccountInactiveError(principal.principal_id)
        return principal

    # ========================================================================
    # Session management
    # ========================================================================

    async def list_sessions(
        self,
        owner: PrincipalData,
        active_only: bool = False,
        page: int = 1,
        limit: int = 100,
    ) -> Page:
        """The owner's sessions, newest first."""
        query = SessionQuery(
            owner_id=owner.principal_id,
            owner_role=owner.role,
            active_only=active_only,
            page=page,
            limit=limit,
        )
        return await self.ledger.search(query)

    async def get_session(self, owner: PrincipalData, session_id: UUID) -> SessionData:
        """
        One of the owner's sessions.

        Raises:
            ResourceNotFoundError: no such session, or owned by someone else
        """
        row = await self.ledger.get(session_id)
        if row is None or row.owner_id != owner.principal_id or row.owner_role != owner.role.value:
            raise ResourceNotFoundError("session", str(session_id))
        return SessionLedger.to_data(row)

    async def revoke_session(self, owner: PrincipalData, session_id: UUID) -> SessionData:
        """
        Revoke one of the owner's sessions. Idempotent.

        Raises:
            ResourceNotFoundError: no such session, or owned by someone else
        """
        await self.get_session(owner, session_id)
        return await self._revoke(session_id, REVOKE_REASON_REVOKED, owner.principal_id, owner.role)

    async def search_sessions(self, query: SessionQuery) -> Page:
        """Admin session search across all principals."""
        return await self.ledger.search(query)

    async def admin_revoke_session(self, actor: PrincipalData, session_id: UUID) -> SessionData:
        """
        Revoke any session. Idempotent.

        Raises:
            ResourceNotFoundError: no such session
        """
        if await self.ledger.get(session_id) is None:
            raise ResourceNotFoundError("session", str(session_id))
        return await self._revoke(session_id, REVOKE_REASON_REVOKED, actor.principal_id, actor.role)

    async def _revoke(
        self,
        session_id: UUID,
        reason: str,
        actor_id: UUID,
        actor_role: Role,
        context: ClientContext | None = None,
    ) -> SessionData:
        if await self.ledger.revoke(session_id, reason):
            self.audit.record(
                reason,
                actor_id,
                actor_role,
                event_detail=f"session {session_id}",
                ip_address=context.ip_address if context else None,
            )
            await self.session.commit()
            metrics.record_revocations(reason)

        row = await self.ledger.get(session_id)
        if row is None:
            raise ResourceNotFoundError("session", str(session_id))
        await self.session.refresh(row)
        return SessionLedger.to_data(row)

    # ========================================================================
    # Principal administration
    # ========================================================================

    async def update_principal(
        self,
        actor: PrincipalData,
        role: Role,
        principal_id: UUID,
        patch: PrincipalPatch,
    ) -> PrincipalData:
        """
        Apply an admin patch to a principal.

        Suspending or soft-deleting revokes all of the principal's open sessions.
        Soft-deleting also soft-deletes the credential, releasing the email;
        undeleting reclaims it.

        Raises:
            ResourceNotFoundError: no such principal of the role
            DuplicateEmailError: undelete of an account whose email was taken since
        """
        updated = await self.principals(role).update(principal_id, patch)
        if updated is None:
            raise ResourceNotFoundError(role.value, str(principal_id))

        if patch.deleted is not None and updated.credential_id is not None:
            credential = await self.credentials.get(updated.credential_id)
            if credential is not None:
                if patch.deleted:
                    await self.credentials.soft_delete(credential)
                else:
                    await self.credentials.restore(credential)

        revoked = 0
        if patch.status == PrincipalStatus.SUSPENDED or patch.deleted:
            revoked = await self.ledger.revoke_all_for_owner(
                principal_id, role, REVOKE_REASON_ACCOUNT_DISABLED
            )

        changes = []
        if patch.status is not None:
            changes.append(f"status={patch.status.value}")
        if patch.display_name is not None:
            changes.append("display_name")
        if patch.deleted is not None:
            changes.append(f"deleted={patch.deleted}")
        self.audit.record(
            "principal_updated",
            actor.principal_id,
            actor.role,
            event_detail=f"{role.value} {principal_id}: {', '.join(changes)}",
        )
        await self.session.commit()
        metrics.record_revocations(REVOKE_REASON_ACCOUNT_DISABLED, revoked)

        logger.info(
            "principal_updated",
            actor_id=str(actor.principal_id),
            role=role.value,
            principal_id=str(principal_id),
            changes=changes,
            sessions_revoked=revoked,
        )
        return updated
