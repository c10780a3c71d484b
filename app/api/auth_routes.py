"""
Auth API Routes - join, login, refresh, logout and password reset per role.

NO DICTIONARIES - All requests/responses use Pydantic models.
"""

from fastapi import APIRouter, Depends, HTTPException, Request, status
from structlog import get_logger

from app.api.dependencies import (
    client_context,
    get_lifecycle_manager,
    get_password_reset_service,
)
from app.api.responses import authorized_response
from app.config import settings
from app.exceptions import (
    AccountInactiveError,
    DuplicateEmailError,
    InvalidCredentialsError,
    InvalidTokenError,
    PasswordPolicyError,
    PasswordResetTokenError,
    ResourceNotFoundError,
    SessionExpiredError,
    SessionInvalidError,
)
from app.models.api import (
    AuthorizedPrincipalResponse,
    GuestJoinRequest,
    JoinRequest,
    LoginRequest,
    LogoutResponse,
    PasswordResetCompleteRequest,
    PasswordResetCompleteResponse,
    PasswordResetRequest,
    PasswordResetRequestResponse,
    RefreshRequest,
    Role,
)
from app.models.domain import to_iso
from app.services.password_reset import PasswordResetService
from app.services.session_lifecycle import SessionLifecycleManager

logger = get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def _unauthorized(exc: Exception) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=str(exc),
        headers={"WWW-Authenticate": "Bearer"},
    )


@router.post("/guest/join", response_model=AuthorizedPrincipalResponse)
async def join_guest(
    http_request: Request,
    request: GuestJoinRequest | None = None,
    manager: SessionLifecycleManager = Depends(get_lifecycle_manager),
) -> AuthorizedPrincipalResponse:
    """
    Create a guest principal and issue its first token pair.

    No credentials; the caller's IP and User-Agent are recorded.
    """
    device_info = request.device_info if request else None
    result = await manager.join(
        Role.GUEST, context=client_context(http_request, device_info)
    )
    return authorized_response(result)


@router.post("/{role}/join", response_model=AuthorizedPrincipalResponse)
async def join(
    role: Role,
    request: JoinRequest,
    http_request: Request,
    manager: SessionLifecycleManager = Depends(get_lifecycle_manager),
) -> AuthorizedPrincipalResponse:
    """
    Register a member, admin or adminUser and issue its first token pair.
    """
    try:
        result = await manager.join(
            role,
            email=request.email,
            password=request.password,
            display_name=request.display_name,
            context=client_context(http_request, request.device_info),
        )
        return authorized_response(result)

    except PasswordPolicyError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc

    except DuplicateEmailError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(exc),
        ) from exc


@router.post("/{role}/login", response_model=AuthorizedPrincipalResponse)
async def login(
    role: Role,
    request: LoginRequest,
    http_request: Request,
    manager: SessionLifecycleManager = Depends(get_lifecycle_manager),
) -> AuthorizedPrincipalResponse:
    """
    Authenticate with email and password.

    Any failure returns the same 401 response.
    """
    try:
        result = await manager.login(
            role,
            email=request.email,
            password=request.password,
            context=client_context(http_request, request.device_info),
        )
        return authorized_response(result)

    except InvalidCredentialsError as exc:
        raise _unauthorized(exc) from exc


@router.post("/{role}/refresh", response_model=AuthorizedPrincipalResponse)
async def refresh(
    role: Role,
    request: RefreshRequest,
    http_request: Request,
    manager: SessionLifecycleManager = Depends(get_lifecycle_manager),
) -> AuthorizedPrincipalResponse:
    """
    Exchange a refresh token for a new token pair.

    The presented refresh token is revoked and cannot be used again.
    """
    try:
        result = await manager.refresh(
            role, request.refresh_token, context=client_context(http_request)
        )
        return authorized_response(result)

    except (
        InvalidTokenError,
        SessionInvalidError,
        SessionExpiredError,
        AccountInactiveError,
    ) as exc:
        raise _unauthorized(exc) from exc


@router.post("/{role}/logout", response_model=LogoutResponse)
async def logout(
    role: Role,
    request: RefreshRequest,
    http_request: Request,
    manager: SessionLifecycleManager = Depends(get_lifecycle_manager),
) -> LogoutResponse:
    """
    Revoke the session bound to a refresh token.

    Logging out an already revoked session succeeds without changes.
    """
    try:
        session = await manager.logout(
            role, request.refresh_token, context=client_context(http_request)
        )
        return LogoutResponse(session_id=session.session_id, revoked_at=to_iso(session.revoked_at))

    except InvalidTokenError as exc:
        raise _unauthorized(exc) from exc

    except ResourceNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Session not found",
        ) from exc


@router.post("/{role}/password/reset/request", response_model=PasswordResetRequestResponse)
async def request_password_reset(
    role: Role,
    request: PasswordResetRequest,
    http_request: Request,
    service: PasswordResetService = Depends(get_password_reset_service),
) -> PasswordResetRequestResponse:
    """
    Start a password reset.

    The response is identical whether or not the account exists.
    """
    token = await service.request_reset(
        role, request.email, ip_address=client_context(http_request).ip_address
    )
    if settings.expose_reset_tokens:
        return PasswordResetRequestResponse(reset_token=token)
    return PasswordResetRequestResponse()


@router.post("/{role}/password/reset/complete", response_model=PasswordResetCompleteResponse)
async def complete_password_reset(
    role: Role,
    request: PasswordResetCompleteRequest,
    http_request: Request,
    service: PasswordResetService = Depends(get_password_reset_service),
) -> PasswordResetCompleteResponse:
    """
    Set a new password with a reset token. All open sessions are revoked.
    """
    try:
        await service.complete_reset(
            role,
            request.reset_token,
            request.new_password,
            ip_address=client_context(http_request).ip_address,
        )
        return PasswordResetCompleteResponse()

    except PasswordResetTokenError as exc:
        logger.info("password_reset_rejected", role=role.value, reason=exc.reason)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid or expired password reset token",
        ) from exc

    except PasswordPolicyError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
