"""
Response builders - domain dataclasses to Pydantic response models.
"""

from app.models.api import (
    AuditLogResponse,
    AuthorizationTokenResponse,
    AuthorizedPrincipalResponse,
    PaginationInfo,
    PrincipalResponse,
    SessionResponse,
)
from app.models.domain import (
    AuditLogData,
    AuthorizedPrincipal,
    Page,
    PrincipalData,
    SessionData,
    to_iso,
)


def principal_response(principal: PrincipalData) -> PrincipalResponse:
    return PrincipalResponse(**_principal_fields(principal))


def authorized_response(result: AuthorizedPrincipal) -> AuthorizedPrincipalResponse:
    tokens = result.tokens
    return AuthorizedPrincipalResponse(
        **_principal_fields(result.principal),
        token=AuthorizationTokenResponse(
            access=tokens.access,
            refresh=tokens.refresh,
            expired_at=tokens.access_expires_at.isoformat(),
            refreshable_until=tokens.refresh_expires_at.isoformat(),
        ),
    )


def _principal_fields(principal: PrincipalData) -> dict:
    return {
        "id": principal.principal_id,
        "role": principal.role,
        "email": principal.email,
        "display_name": principal.display_name,
        "status": principal.status,
        "created_at": principal.created_at.isoformat(),
        "updated_at": principal.updated_at.isoformat(),
        "deleted_at": to_iso(principal.deleted_at),
        "last_login_at": to_iso(principal.last_login_at),
        "guest_identifier": principal.guest_identifier,
    }


def session_response(session: SessionData) -> SessionResponse:
    return SessionResponse(
        id=session.session_id,
        owner_id=session.owner_id,
        owner_role=session.owner_role,
        issued_at=session.issued_at.isoformat(),
        expires_at=session.expires_at.isoformat(),
        revoked_at=to_iso(session.revoked_at),
        revoked_reason=session.revoked_reason,
        replaced_by_id=session.replaced_by_id,
        device_info=session.device_info,
        ip_address=session.ip_address,
        created_at=session.created_at.isoformat(),
    )


def audit_log_response(entry: AuditLogData) -> AuditLogResponse:
    return AuditLogResponse(
        id=entry.log_id,
        actor_id=entry.actor_id,
        actor_role=entry.actor_role,
        event_type=entry.event_type,
        event_detail=entry.event_detail,
        ip_address=entry.ip_address,
        created_at=entry.created_at.isoformat(),
    )


def pagination(page: Page) -> PaginationInfo:
    """Pagination block {current, limit, records, pages}."""
    return PaginationInfo(
        current=page.page,
        limit=page.limit,
        records=page.total,
        pages=page.pages,
    )
