"""
Token Issuer - Signs and verifies access/refresh JWTs.

Every token carries {id, type} (principal id and role), a unique jti and the
configured issuer. Refresh tokens additionally carry tokenType="refresh".
"""

from datetime import UTC, datetime, timedelta
from uuid import UUID, uuid4

import jwt
from structlog import get_logger

from app.exceptions import InvalidTokenError
from app.models.api import Role, TokenType
from app.models.domain import IssuedTokens, TokenPayload

logger = get_logger(__name__)

_REQUIRED_CLAIMS = ["id", "type", "jti", "iat", "exp", "iss"]


class TokenIssuer:
    """Pure token service; the only side input is the wall clock."""

    def __init__(
        self,
        secret: str,
        issuer: str,
        access_ttl_seconds: int = 3600,
        refresh_ttl_seconds: int = 604800,
        algorithm: str = "HS256",
    ):
        if not secret:
            # Misconfiguration, not a client error
            raise ValueError("Token signing secret is required")
        self.secret = secret
        self.issuer = issuer
        self.access_ttl = timedelta(seconds=access_ttl_seconds)
        self.refresh_ttl = timedelta(seconds=refresh_ttl_seconds)
        self.algorithm = algorithm

    def issue(self, principal_id: UUID, role: Role, now: datetime | None = None) -> IssuedTokens:
        """Sign a new access/refresh token pair for a principal."""
        now = now or datetime.now(UTC)
        # JWT timestamps have one-second resolution
        now = now.replace(microsecond=0)
        access_expires_at = now + self.access_ttl
        refresh_expires_at = now + self.refresh_ttl

        access = self._sign(principal_id, role, TokenType.ACCESS, now, access_expires_at)
        refresh = self._sign(principal_id, role, TokenType.REFRESH, now, refresh_expires_at)

        return IssuedTokens(
            access=access,
            refresh=refresh,
            issued_at=now,
            access_expires_at=access_expires_at,
            refresh_expires_at=refresh_expires_at,
        )

    def _sign(
        self,
        principal_id: UUID,
        role: Role,
        token_type: TokenType,
        issued_at: datetime,
        expires_at: datetime,
    ) -> str:
        payload: dict[str, str | datetime] = {
            "id": str(principal_id),
            "type": role.value,
            "jti": uuid4().hex,
            "iss": self.issuer,
            "iat": issued_at,
            "exp": expires_at,
        }
        if token_type == TokenType.REFRESH:
            payload["tokenType"] = TokenType.REFRESH.value
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def verify(
        self,
        token: str,
        expected_type: TokenType,
        expected_role: Role | None = None,
        verify_expiry: bool = True,
    ) -> TokenPayload:
        """
        Verify signature, issuer and claims of a token.

        Refresh-token expiry is normally checked against the session ledger
        instead (verify_expiry=False), which owns the authoritative expiry.

        Raises:
            InvalidTokenError: malformed, bad signature, wrong issuer, expired
                (when verify_expiry), wrong token type or wrong role
        """
        try:
            claims = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                issuer=self.issuer,
                options={"require": _REQUIRED_CLAIMS, "verify_exp": verify_expiry},
            )
        except jwt.ExpiredSignatureError as e:
            logger.info("token_expired", token_type=expected_type.value)
            raise InvalidTokenError("Token has expired") from e
        except jwt.InvalidTokenError as e:
            logger.warning("token_invalid", token_type=expected_type.value, error=str(e))
            raise InvalidTokenError() from e

        actual_type = (
            TokenType.REFRESH
            if claims.get("tokenType") == TokenType.REFRESH.value
            else TokenType.ACCESS
        )
        if actual_type != expected_type:
            logger.warning(
                "token_type_mismatch", expected=expected_type.value, actual=actual_type.value
            )
            raise InvalidTokenError(f"Expected a {expected_type.value} token")

        try:
            role = Role(claims["type"])
            principal_id = UUID(str(claims["id"]))
        except ValueError as e:
            raise InvalidTokenError("Invalid token payload") from e

        if expected_role is not None and role != expected_role:
            logger.warning("token_role_mismatch", expected=expected_role.value, actual=role.value)
            raise InvalidTokenError("Token does not belong to this role")

        return TokenPayload(
            principal_id=principal_id,
            role=role,
            token_type=actual_type,
            jti=str(claims["jti"]),
            issued_at=datetime.fromtimestamp(int(claims["iat"]), UTC),
            expires_at=datetime.fromtimestamp(int(claims["exp"]), UTC),
        )
