"""
FastAPI Dependencies - Service wiring, bearer authentication and role checks.

NO DICTIONARIES - All dependencies return typed objects.
"""

from collections.abc import Awaitable, Callable

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from app.config import settings
from app.db.session import get_write_db
from app.exceptions import AccountInactiveError, InvalidTokenError
from app.models.api import Role
from app.models.domain import ClientContext, PrincipalData
from app.services.password_reset import PasswordResetService
from app.services.passwords import PasswordVerifier
from app.services.session_lifecycle import SessionLifecycleManager
from app.services.token_issuer import TokenIssuer

logger = get_logger(__name__)

# Bearer token scheme for access tokens
bearer_scheme = HTTPBearer(auto_error=False)

# Process-wide stateless services (PasswordVerifier pre-computes a hash)
_token_issuer: TokenIssuer | None = None
_password_verifier: PasswordVerifier | None = None


def get_token_issuer() -> TokenIssuer:
    """Get or create the token issuer from settings."""
    global _token_issuer
    if _token_issuer is None:
        _token_issuer = TokenIssuer(
            secret=settings.JWT_SECRET_KEY,
            issuer=settings.jwt_issuer,
            access_ttl_seconds=settings.access_token_ttl_seconds,
            refresh_ttl_seconds=settings.refresh_token_ttl_seconds,
            algorithm=settings.jwt_algorithm,
        )
    return _token_issuer


def get_password_verifier() -> PasswordVerifier:
    """Get or create the password verifier."""
    global _password_verifier
    if _password_verifier is None:
        _password_verifier = PasswordVerifier(min_length=settings.password_min_length)
    return _password_verifier


def get_lifecycle_manager(
    db: AsyncSession = Depends(get_write_db),
    token_issuer: TokenIssuer = Depends(get_token_issuer),
    password_verifier: PasswordVerifier = Depends(get_password_verifier),
) -> SessionLifecycleManager:
    """Session lifecycle manager bound to the request's database session."""
    return SessionLifecycleManager(db, token_issuer, password_verifier)


def get_password_reset_service(
    db: AsyncSession = Depends(get_write_db),
    password_verifier: PasswordVerifier = Depends(get_password_verifier),
) -> PasswordResetService:
    """Password reset service bound to the request's database session."""
    return PasswordResetService(
        db, password_verifier, ttl_minutes=settings.password_reset_ttl_minutes
    )


def client_context(request: Request, device_info: str | None = None) -> ClientContext:
    """Build the client context for a request (IP honours X-Forwarded-For)."""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        ip_address = forwarded_for.split(",")[0].strip()
    else:
        ip_address = request.client.host if request.client else None
    return ClientContext(
        device_info=device_info,
        ip_address=ip_address,
        user_agent=request.headers.get("User-Agent"),
    )


async def get_current_principal(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    manager: SessionLifecycleManager = Depends(get_lifecycle_manager),
) -> PrincipalData:
    """
    Authenticate the caller from an access token.

    Accepts: Authorization: Bearer {access_token}

    Raises:
        HTTPException 401 if no token, or the token is invalid, expired or a
            refresh token
        HTTPException 403 if the principal is suspended or deleted
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        return await manager.authenticate(credentials.credentials)
    except InvalidTokenError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=exc.message,
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc
    except AccountInactiveError as exc:
        logger.warning("bearer_auth_inactive_principal", principal_id=str(exc.principal_id))
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is not active",
        ) from exc


def require_roles(*roles: Role) -> Callable[..., Awaitable[PrincipalData]]:
    """
    FastAPI dependency factory restricting an endpoint to roles.

    Usage:
        @router.get("/admin/sessions")
        async def search(
            actor: PrincipalData = Depends(require_roles(Role.ADMIN, Role.ADMIN_USER))
        ):
            pass
    """

    async def role_checker(
        principal: PrincipalData = Depends(get_current_principal),
    ) -> PrincipalData:
        """Check the authenticated principal's role."""
        if principal.role not in roles:
            logger.warning(
                "insufficient_role",
                principal_id=str(principal.principal_id),
                role=principal.role.value,
                required=[r.value for r in roles],
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requires role: {' or '.join(r.value for r in roles)}",
            )
        return principal

    return role_checker


require_admin = require_roles(Role.ADMIN, Role.ADMIN_USER)
