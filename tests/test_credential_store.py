"""
Tests for Credential Store.

Tests email lookup, duplicate handling and soft delete.
"""

from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import IntegrityError

from app.exceptions import DuplicateEmailError
from app.services.credential_store import CredentialStore
from tests.conftest import create_mock_credential, make_result


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


class TestCreate:
    """Tests for inserting credentials."""

    async def test_create_and_find(self, db):
        store = CredentialStore(db)
        credential = await store.create("alice@example.com", "$argon2id$hash")

        found = await store.find_by_email("alice@example.com")
        assert found is not None
        assert found.id == credential.id
        assert found.deleted_at is None

    async def test_duplicate_email_precheck(self, db):
        """Second create with the same email raises DuplicateEmailError."""
        store = CredentialStore(db)
        await store.create("alice@example.com", "$argon2id$hash")

        with pytest.raises(DuplicateEmailError):
            await store.create("alice@example.com", "$argon2id$other")

    async def test_email_is_case_sensitive(self, db):
        """Emails differing only in case are distinct."""
        store = CredentialStore(db)
        await store.create("alice@example.com", "$argon2id$hash")
        await store.create("Alice@example.com", "$argon2id$hash")

        assert await store.find_by_email("ALICE@example.com") is None

    async def test_integrity_error_maps_to_duplicate(self, db_session):
        """A concurrent insert caught by the unique index becomes DuplicateEmailError."""
        db_session.execute = AsyncMock(return_value=make_result(scalar=None))
        db_session.flush = AsyncMock(side_effect=IntegrityError("stmt", {}, Exception("dup")))
        store = CredentialStore(db_session)

        with pytest.raises(DuplicateEmailError):
            await store.create("alice@example.com", "$argon2id$hash")

        db_session.rollback.assert_awaited_once()

    async def test_precheck_hit_skips_insert(self, db_session):
        db_session.execute = AsyncMock(return_value=make_result(scalar=create_mock_credential()))
        store = CredentialStore(db_session)

        with pytest.raises(DuplicateEmailError):
            await store.create("alice@example.com", "$argon2id$hash")

        db_session.add.assert_not_called()


class TestSoftDelete:
    """Tests for soft delete and email reuse."""

    async def test_soft_deleted_email_not_found(self, db):
        store = CredentialStore(db)
        credential = await store.create("bob@example.com", "$argon2id$hash")
        await store.soft_delete(credential)

        assert await store.find_by_email("bob@example.com") is None
        assert (await store.get(credential.id)).deleted_at is not None

    async def test_soft_deleted_email_can_rejoin(self, db):
        """Uniqueness only applies among non-deleted credentials."""
        store = CredentialStore(db)
        first = await store.create("bob@example.com", "$argon2id$hash")
        await store.soft_delete(first)

        second = await store.create("bob@example.com", "$argon2id$hash")
        assert second.id != first.id

    async def test_soft_delete_keeps_first_timestamp(self, db):
        store = CredentialStore(db)
        credential = await store.create("bob@example.com", "$argon2id$hash")
        await store.soft_delete(credential)
        deleted_at = credential.deleted_at

        await store.soft_delete(credential)

        assert credential.deleted_at == deleted_at

    async def test_restore_reclaims_email(self, db):
        store = CredentialStore(db)
        credential = await store.create("bob@example.com", "$argon2id$hash")
        await store.soft_delete(credential)

        await store.restore(credential)

        assert (await store.find_by_email("bob@example.com")).id == credential.id

    async def test_restore_after_email_reused(self, db):
        store = CredentialStore(db)
        first = await store.create("bob@example.com", "$argon2id$hash")
        await store.soft_delete(first)
        await store.create("bob@example.com", "$argon2id$hash")

        with pytest.raises(DuplicateEmailError):
            await store.restore(first)


class TestUpdatePasswordHash:
    """Tests for replacing the stored hash."""

    async def test_update_password_hash(self, db):
        store = CredentialStore(db)
        credential = await store.create("carol@example.com", "$argon2id$old")

        await store.update_password_hash(credential, "$argon2id$new")

        assert (await store.find_by_email("carol@example.com")).password_hash == "$argon2id$new"
