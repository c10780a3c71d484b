"""
Admin API routes for sessions, audit logs and principals.

Auth: Authorization: Bearer {access_token} of an admin or adminUser.
"""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from app.api.dependencies import get_lifecycle_manager, require_admin
from app.api.responses import audit_log_response, pagination, principal_response, session_response
from app.db.session import get_read_db
from app.exceptions import DuplicateEmailError, ResourceNotFoundError
from app.models.api import (
    AuditLogPageResponse,
    PrincipalResponse,
    PrincipalUpdateRequest,
    Role,
    SessionPageResponse,
    SessionResponse,
    SessionSortField,
)
from app.models.domain import PrincipalData, SessionQuery
from app.services.audit_log import AuditLogWriter
from app.services.principal_store import PrincipalPatch
from app.services.session_lifecycle import SessionLifecycleManager

logger = get_logger(__name__)
router = APIRouter(prefix="/admin", tags=["admin"])


# ============================================================================
# Sessions
# ============================================================================


@router.get("/sessions", response_model=SessionPageResponse)
async def search_sessions(
    owner_id: UUID | None = Query(None, description="Filter by owning principal"),
    owner_role: Role | None = Query(None, description="Filter by owner role"),
    active_only: bool = Query(False, description="Only unrevoked, unexpired sessions"),
    expired_only: bool = Query(False, description="Only sessions past their expiry"),
    created_from: datetime | None = Query(None, description="Created at or after (ISO 8601)"),
    created_to: datetime | None = Query(None, description="Created at or before (ISO 8601)"),
    sort_by: SessionSortField = Query(SessionSortField.CREATED_AT),
    order: str = Query("desc", pattern="^(asc|desc)$"),
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(100, ge=1, le=1000, description="Items per page"),
    admin: PrincipalData = Depends(require_admin),
    manager: SessionLifecycleManager = Depends(get_lifecycle_manager),
) -> SessionPageResponse:
    """
    Search sessions across all principals.

    Accessible by: admin, adminUser
    """
    if active_only and expired_only:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="active_only and expired_only are mutually exclusive",
        )

    query = SessionQuery(
        owner_id=owner_id,
        owner_role=owner_role,
        active_only=active_only,
        expired_only=expired_only,
        created_from=created_from,
        created_to=created_to,
        sort_by=sort_by.value,
        descending=order == "desc",
        page=page,
        limit=limit,
    )
    result = await manager.search_sessions(query)
    return SessionPageResponse(
        pagination=pagination(result),
        data=[session_response(s) for s in result.items],
    )


@router.delete("/sessions/{session_id}", response_model=SessionResponse)
async def revoke_session(
    session_id: UUID,
    admin: PrincipalData = Depends(require_admin),
    manager: SessionLifecycleManager = Depends(get_lifecycle_manager),
) -> SessionResponse:
    """
    Revoke any session.

    Accessible by: admin, adminUser
    """
    try:
        session = await manager.admin_revoke_session(admin, session_id)
    except ResourceNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Session not found",
        ) from exc

    logger.info(
        "admin_session_revoked",
        admin_id=str(admin.principal_id),
        session_id=str(session_id),
    )
    return session_response(session)


# ============================================================================
# Audit Logs
# ============================================================================


@router.get("/audit-logs", response_model=AuditLogPageResponse)
async def list_audit_logs(
    actor_id: UUID | None = Query(None, description="Filter by actor"),
    event_type: str | None = Query(None, description="Filter by event type (e.g. login)"),
    created_from: datetime | None = Query(None, description="Created at or after (ISO 8601)"),
    created_to: datetime | None = Query(None, description="Created at or before (ISO 8601)"),
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(100, ge=1, le=1000, description="Items per page"),
    db: AsyncSession = Depends(get_read_db),
    admin: PrincipalData = Depends(require_admin),
) -> AuditLogPageResponse:
    """
    List audit log entries, newest first.

    Accessible by: admin, adminUser
    """
    result = await AuditLogWriter(db).search(
        actor_id=actor_id,
        event_type=event_type,
        created_from=created_from,
        created_to=created_to,
        page=page,
        limit=limit,
    )
    return AuditLogPageResponse(
        pagination=pagination(result),
        data=[audit_log_response(entry) for entry in result.items],
    )


# ============================================================================
# Principals
# ============================================================================


@router.patch("/principals/{role}/{principal_id}", response_model=PrincipalResponse)
async def update_principal(
    role: Role,
    principal_id: UUID,
    request: PrincipalUpdateRequest,
    admin: PrincipalData = Depends(require_admin),
    manager: SessionLifecycleManager = Depends(get_lifecycle_manager),
) -> PrincipalResponse:
    """
    Suspend, reactivate, rename or soft-delete a principal.

    Suspending or deleting revokes all of the principal's open sessions.
    Deleting releases the email; undeleting is 409 if the email was taken since.

    Accessible by: admin, adminUser
    """
    patch = PrincipalPatch(
        status=request.status,
        display_name=request.display_name,
        deleted=request.deleted,
    )
    try:
        updated = await manager.update_principal(admin, role, principal_id, patch)
    except ResourceNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{role.value} not found",
        ) from exc

    except DuplicateEmailError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(exc),
        ) from exc

    return principal_response(updated)
