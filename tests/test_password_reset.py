"""
Tests for Password Reset Service.

Tests token generation, request acknowledgement and token redemption.
"""

from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest
from sqlalchemy import select, update

from app.db.models import AuditLog, AuthSession, PasswordReset
from app.exceptions import PasswordPolicyError, PasswordResetTokenError
from app.models.api import PrincipalStatus, Role
from app.services.credential_store import CredentialStore
from app.services.password_reset import PasswordResetService, purge_password_resets
from app.services.principal_store import PrincipalAdapter, PrincipalPatch, get_role_profile
from app.services.session_ledger import SessionLedger
from tests.conftest import STRONG_PASSWORD

NEW_PASSWORD = "brand-new-secret-7"


@pytest.fixture
def service_in(session_factory, password_verifier):
    """Run a PasswordResetService method in its own session."""

    async def _call(method: str, *args, **kwargs):
        async with session_factory() as session:
            service = PasswordResetService(session, password_verifier)
            return await getattr(service, method)(*args, **kwargs)

    return _call


@pytest.fixture
async def member(session_factory, password_verifier, token_issuer):
    """An active member with one open session."""
    async with session_factory() as session:
        credential = await CredentialStore(session).create(
            "alice@example.com", password_verifier.hash(STRONG_PASSWORD)
        )
        principal = await PrincipalAdapter(session, get_role_profile(Role.MEMBER)).create(
            credential.id, email=credential.email
        )
        await SessionLedger(session).open(
            principal.principal_id,
            Role.MEMBER,
            token_issuer.issue(principal.principal_id, Role.MEMBER),
        )
        await session.commit()
    return principal


class TestGenerateToken:
    """Tests for reset token format."""

    def test_prefix(self):
        assert PasswordResetService.generate_token().startswith("prt_")

    def test_unique(self):
        tokens = {PasswordResetService.generate_token() for _ in range(50)}
        assert len(tokens) == 50

    def test_url_safe(self):
        token = PasswordResetService.generate_token()
        assert "=" not in token
        assert "+" not in token
        assert "/" not in token


class TestRequestReset:
    """Tests for starting a reset."""

    async def test_known_member_gets_token(self, service_in, session_factory, member):
        token = await service_in("request_reset", Role.MEMBER, "alice@example.com")

        assert token is not None
        async with session_factory() as session:
            stored = (await session.execute(select(PasswordReset))).scalar_one()
            assert stored.token_hash == PasswordResetService.hash_token(token)
            assert stored.used_at is None
            events = (await session.execute(select(AuditLog.event_type))).scalars().all()
            assert "password_reset_requested" in events

    async def test_unknown_email_ignored(self, service_in, member):
        assert await service_in("request_reset", Role.MEMBER, "nobody@example.com") is None

    async def test_wrong_role_ignored(self, service_in, member):
        """A member email does not reset an admin account."""
        assert await service_in("request_reset", Role.ADMIN, "alice@example.com") is None

    async def test_guest_ignored(self, service_in):
        assert await service_in("request_reset", Role.GUEST, "guest@example.com") is None

    async def test_suspended_member_ignored(self, service_in, session_factory, member):
        async with session_factory() as session:
            await PrincipalAdapter(session, get_role_profile(Role.MEMBER)).update(
                member.principal_id, PrincipalPatch(status=PrincipalStatus.SUSPENDED)
            )
            await session.commit()

        assert await service_in("request_reset", Role.MEMBER, "alice@example.com") is None


class TestCompleteReset:
    """Tests for redeeming a reset token."""

    async def test_reset_changes_password_and_revokes_sessions(
        self, service_in, session_factory, password_verifier, member
    ):
        token = await service_in("request_reset", Role.MEMBER, "alice@example.com")

        principal = await service_in("complete_reset", Role.MEMBER, token, NEW_PASSWORD)

        assert principal.principal_id == member.principal_id
        async with session_factory() as session:
            credential = await CredentialStore(session).find_by_email("alice@example.com")
            assert password_verifier.verify(NEW_PASSWORD, credential.password_hash)
            assert not password_verifier.verify(STRONG_PASSWORD, credential.password_hash)

            reset = (await session.execute(select(PasswordReset))).scalar_one()
            assert reset.used_at is not None

            sessions = (await session.execute(select(AuthSession))).scalars().all()
            assert sessions
            assert all(row.revoked_reason == "password_reset" for row in sessions)

    async def test_token_single_use(self, service_in, member):
        token = await service_in("request_reset", Role.MEMBER, "alice@example.com")
        await service_in("complete_reset", Role.MEMBER, token, NEW_PASSWORD)

        with pytest.raises(PasswordResetTokenError) as exc_info:
            await service_in("complete_reset", Role.MEMBER, token, "another-pass-9")
        assert exc_info.value.reason == "already_used"

    async def test_concurrent_redemption_only_one_wins(
        self, service_in, session_factory, password_verifier, member
    ):
        """A redemption that read the reset row before a rival committed still fails."""
        token = await service_in("request_reset", Role.MEMBER, "alice@example.com")

        async with session_factory() as stale:
            # Load the still-unused row into this session before the rival redeems
            row = (await stale.execute(select(PasswordReset))).scalar_one()
            assert row.used_at is None

            await service_in("complete_reset", Role.MEMBER, token, NEW_PASSWORD)

            with pytest.raises(PasswordResetTokenError) as exc_info:
                await PasswordResetService(stale, password_verifier).complete_reset(
                    Role.MEMBER, token, "rival-password-22"
                )
            assert exc_info.value.reason == "already_used"

        async with session_factory() as session:
            credential = await CredentialStore(session).find_by_email("alice@example.com")
            assert password_verifier.verify(NEW_PASSWORD, credential.password_hash)
            events = (await session.execute(select(AuditLog.event_type))).scalars().all()
            assert events.count("password_reset_completed") == 1

    async def test_new_request_supersedes_older_token(self, service_in, member):
        first = await service_in("request_reset", Role.MEMBER, "alice@example.com")
        second = await service_in("request_reset", Role.MEMBER, "alice@example.com")

        with pytest.raises(PasswordResetTokenError) as exc_info:
            await service_in("complete_reset", Role.MEMBER, first, NEW_PASSWORD)
        assert exc_info.value.reason == "already_used"

        await service_in("complete_reset", Role.MEMBER, second, NEW_PASSWORD)

    async def test_completion_retires_outstanding_tokens(
        self, service_in, session_factory, password_verifier, member
    ):
        token = await service_in("request_reset", Role.MEMBER, "alice@example.com")
        leaked = PasswordResetService.generate_token()
        async with session_factory() as session:
            stored = (await session.execute(select(PasswordReset))).scalar_one()
            now = datetime.now(UTC)
            session.add(
                PasswordReset(
                    id=uuid4(),
                    credential_id=stored.credential_id,
                    token_hash=PasswordResetService.hash_token(leaked),
                    expires_at=now + timedelta(minutes=30),
                    used_at=None,
                    created_at=now,
                )
            )
            await session.commit()

        await service_in("complete_reset", Role.MEMBER, token, NEW_PASSWORD)

        with pytest.raises(PasswordResetTokenError) as exc_info:
            await service_in("complete_reset", Role.MEMBER, leaked, "takeover-pass-2")
        assert exc_info.value.reason == "already_used"
        async with session_factory() as session:
            credential = await CredentialStore(session).find_by_email("alice@example.com")
            assert password_verifier.verify(NEW_PASSWORD, credential.password_hash)
            unused = (
                await session.execute(select(PasswordReset).where(PasswordReset.used_at.is_(None)))
            ).scalars().all()
            assert unused == []

    async def test_unknown_token(self, service_in):
        with pytest.raises(PasswordResetTokenError) as exc_info:
            await service_in("complete_reset", Role.MEMBER, "prt_unknown", NEW_PASSWORD)
        assert exc_info.value.reason == "unknown"

    async def test_expired_token(self, service_in, session_factory, member):
        token = await service_in("request_reset", Role.MEMBER, "alice@example.com")
        async with session_factory() as session:
            await session.execute(
                update(PasswordReset).values(expires_at=datetime.now(UTC) - timedelta(minutes=1))
            )
            await session.commit()

        with pytest.raises(PasswordResetTokenError) as exc_info:
            await service_in("complete_reset", Role.MEMBER, token, NEW_PASSWORD)
        assert exc_info.value.reason == "expired"

    async def test_wrong_role(self, service_in, member):
        token = await service_in("request_reset", Role.MEMBER, "alice@example.com")

        with pytest.raises(PasswordResetTokenError) as exc_info:
            await service_in("complete_reset", Role.ADMIN, token, NEW_PASSWORD)
        assert exc_info.value.reason == "account_unavailable"

    async def test_weak_new_password(self, service_in, member):
        token = await service_in("request_reset", Role.MEMBER, "alice@example.com")

        with pytest.raises(PasswordPolicyError):
            await service_in("complete_reset", Role.MEMBER, token, "weak")

        # Token is still usable after a policy rejection
        await service_in("complete_reset", Role.MEMBER, token, NEW_PASSWORD)


class TestPurge:
    """Tests for purging old reset rows."""

    async def test_purge_expired(self, service_in, session_factory, member):
        await service_in("request_reset", Role.MEMBER, "alice@example.com")
        async with session_factory() as session:
            await session.execute(
                update(PasswordReset).values(expires_at=datetime.now(UTC) - timedelta(days=2))
            )
            await session.commit()

        async with session_factory() as session:
            deleted = await purge_password_resets(session, datetime.now(UTC) - timedelta(days=1))
            await session.commit()

        assert deleted == 1
