"""
Password Service - Argon2id hashing, verification and complexity policy.
"""

import re

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError
from structlog import get_logger

from app.exceptions import PasswordPolicyError

logger = get_logger(__name__)

_LETTER = re.compile(r"[A-Za-z]")
_DIGIT = re.compile(r"[0-9]")


class PasswordVerifier:
    """One-way password hashing and constant-time verification."""

    def __init__(self, min_length: int = 8, hasher: PasswordHasher | None = None):
        self.min_length = min_length
        self.password_hasher = hasher or PasswordHasher()
        # Verified against when no credential exists, so both login failure
        # paths spend the same hashing time.
        self._dummy_hash = self.password_hasher.hash("dummy-password-for-timing")

    def check_policy(self, password: str) -> None:
        """
        Enforce password complexity.

        Raises:
            PasswordPolicyError: shorter than min_length, or missing a letter or a digit
        """
        if (
            len(password) < self.min_length
            or not _LETTER.search(password)
            or not _DIGIT.search(password)
        ):
            raise PasswordPolicyError(self.min_length)

    def hash(self, password: str) -> str:
        """Hash a password for storage."""
        return self.password_hasher.hash(password)

    def verify(self, password: str, password_hash: str) -> bool:
        """Return True when password matches password_hash."""
        try:
            return self.password_hasher.verify(password_hash, password)
        except VerifyMismatchError:
            return False
        except (InvalidHashError, VerificationError) as e:
            logger.warning("password_hash_unverifiable", error=type(e).__name__)
            return False

    def burn_verification(self, password: str) -> None:
        """Spend one verification on a throwaway hash (no account to check against)."""
        self.verify(password, self._dummy_hash)
