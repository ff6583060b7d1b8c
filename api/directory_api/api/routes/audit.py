from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status

from directory_api.core.security import get_human_principal
from directory_api.schemas.audit import AuditLogCreateRequest, AuditLogOut, AuditLogPageOut
from directory_api.services.audit import AuditService, get_audit_service
from directory_api.services.repository import AuditLogFilters, RepositoryUnavailableError

router = APIRouter()


@router.get("/audit-logs", response_model=AuditLogPageOut)
async def list_audit_logs(
    principal=Depends(get_human_principal),
    audit: AuditService = Depends(get_audit_service),
    actor_id: str | None = Query(default=None, min_length=1),
    action: str | None = Query(default=None, min_length=1),
    entity_type: str | None = Query(default=None, min_length=1),
    entity_id: str | None = Query(default=None, min_length=1),
    start_time: datetime | None = Query(default=None),
    end_time: datetime | None = Query(default=None),
    page: str | None = Query(default=None),
    limit: str | None = Query(default=None),
) -> AuditLogPageOut:
    try:
        principal.require_scopes({"audit:read"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    filters = AuditLogFilters(
        actor_id=actor_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        start_time=start_time,
        end_time=end_time,
    )
    try:
        result = await audit.get_logs(filters, page=page, limit=limit)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return AuditLogPageOut(**result)


@router.post("/audit-logs", response_model=AuditLogOut, status_code=status.HTTP_201_CREATED)
async def create_audit_log(
    payload: AuditLogCreateRequest,
    principal=Depends(get_human_principal),
    audit: AuditService = Depends(get_audit_service),
) -> AuditLogOut:
    try:
        principal.require_scopes({"audit:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    entry = await audit.log_action(
        actor_id=principal.actor_id,
        action=payload.action,
        entity_type=payload.entity_type,
        entity_id=payload.entity_id,
        detail=payload.detail,
        source_address=principal.source_address,
    )
    if entry is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="audit log unavailable")

    return AuditLogOut(**entry)


@router.get("/audit-logs/users/{actor_id}", response_model=AuditLogPageOut)
async def list_user_audit_logs(
    actor_id: str,
    principal=Depends(get_human_principal),
    audit: AuditService = Depends(get_audit_service),
    page: str | None = Query(default=None),
    limit: str | None = Query(default=None),
) -> AuditLogPageOut:
    try:
        principal.require_scopes({"audit:read"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        result = await audit.get_user_trail(actor_id, page=page, limit=limit)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return AuditLogPageOut(**result)


@router.get("/audit-trail/{entity_type}/{entity_id}", response_model=list[AuditLogOut])
async def get_entity_audit_trail(
    entity_type: str,
    entity_id: str,
    principal=Depends(get_human_principal),
    audit: AuditService = Depends(get_audit_service),
) -> list[AuditLogOut]:
    try:
        principal.require_scopes({"audit:read"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        rows = await audit.get_entity_trail(entity_type, entity_id)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return [AuditLogOut(**row) for row in rows]
