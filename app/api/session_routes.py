"""
Session API Routes - the caller's own sessions.

Auth: Authorization: Bearer {access_token}, any role.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.api.dependencies import get_current_principal, get_lifecycle_manager
from app.api.responses import pagination, session_response
from app.exceptions import ResourceNotFoundError
from app.models.api import SessionPageResponse, SessionResponse
from app.models.domain import PrincipalData
from app.services.session_lifecycle import SessionLifecycleManager

router = APIRouter(prefix="/sessions", tags=["sessions"])


@router.get("", response_model=SessionPageResponse)
async def list_my_sessions(
    active_only: bool = Query(False, description="Only unrevoked, unexpired sessions"),
    page: int = Query(1, ge=1),
    limit: int = Query(100, ge=1, le=1000),
    principal: PrincipalData = Depends(get_current_principal),
    manager: SessionLifecycleManager = Depends(get_lifecycle_manager),
) -> SessionPageResponse:
    """List the caller's sessions, newest first."""
    result = await manager.list_sessions(principal, active_only=active_only, page=page, limit=limit)
    return SessionPageResponse(
        pagination=pagination(result),
        data=[session_response(s) for s in result.items],
    )


@router.get("/{session_id}", response_model=SessionResponse)
async def get_my_session(
    session_id: UUID,
    principal: PrincipalData = Depends(get_current_principal),
    manager: SessionLifecycleManager = Depends(get_lifecycle_manager),
) -> SessionResponse:
    """Get one of the caller's sessions."""
    try:
        return session_response(await manager.get_session(principal, session_id))
    except ResourceNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Session not found",
        ) from exc


@router.delete("/{session_id}", response_model=SessionResponse)
async def revoke_my_session(
    session_id: UUID,
    principal: PrincipalData = Depends(get_current_principal),
    manager: SessionLifecycleManager = Depends(get_lifecycle_manager),
) -> SessionResponse:
    """Revoke one of the caller's sessions. Revoking twice is a no-op."""
    try:
        return session_response(await manager.revoke_session(principal, session_id))
    except ResourceNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Session not found",
        ) from exc
