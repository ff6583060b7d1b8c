from fastapi import APIRouter, Depends, HTTPException, Query, status

from directory_api.core.security import get_human_principal
from directory_api.schemas.moderation import (
    ApproveItemRequest,
    AutoApprovalOut,
    AutoApprovalRequest,
    ItemType,
    PendingCountsOut,
    PendingItemsOut,
    RejectItemRequest,
    TransitionOut,
)
from directory_api.services.moderation import ModerationWorkflow, get_moderation_workflow
from directory_api.services.pending import PendingQueueReader, get_pending_reader
from directory_api.services.repository import (
    RepositoryConflictError,
    RepositoryNotFoundError,
    RepositoryUnavailableError,
    RepositoryValidationError,
)

router = APIRouter()


@router.post("/approve", response_model=TransitionOut)
async def approve_item(
    payload: ApproveItemRequest,
    principal=Depends(get_human_principal),
    workflow: ModerationWorkflow = Depends(get_moderation_workflow),
) -> TransitionOut:
    try:
        principal.require_scopes({"moderation:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        result = await workflow.approve(
            payload.item_type,
            payload.item_id,
            principal.actor_id,
            source_address=principal.source_address,
        )
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except RepositoryConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return TransitionOut(changed=result.changed, message=result.message, data=result.data)


@router.post("/reject", response_model=TransitionOut)
async def reject_item(
    payload: RejectItemRequest,
    principal=Depends(get_human_principal),
    workflow: ModerationWorkflow = Depends(get_moderation_workflow),
) -> TransitionOut:
    try:
        principal.require_scopes({"moderation:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        result = await workflow.reject(
            payload.item_type,
            payload.item_id,
            principal.actor_id,
            payload.reason,
            source_address=principal.source_address,
        )
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except RepositoryConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return TransitionOut(changed=result.changed, message=result.message, data=result.data)


@router.get("/pending", response_model=PendingItemsOut)
async def list_pending(
    principal=Depends(get_human_principal),
    reader: PendingQueueReader = Depends(get_pending_reader),
    item_type: ItemType | None = Query(default=None, alias="type"),
    page: str | None = Query(default=None),
    limit: str | None = Query(default=None),
) -> PendingItemsOut:
    try:
        principal.require_scopes({"moderation:read"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        result = await reader.list_pending(item_type, page=page, limit=limit)
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return PendingItemsOut(**result)


@router.get("/pending/counts", response_model=PendingCountsOut)
async def count_pending(
    principal=Depends(get_human_principal),
    reader: PendingQueueReader = Depends(get_pending_reader),
) -> PendingCountsOut:
    try:
        principal.require_scopes({"moderation:read"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        counts = await reader.count_pending()
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return PendingCountsOut(**counts)


@router.get("/auto-approval", response_model=AutoApprovalOut)
async def get_auto_approval(
    principal=Depends(get_human_principal),
    workflow: ModerationWorkflow = Depends(get_moderation_workflow),
) -> AutoApprovalOut:
    try:
        principal.require_scopes({"admin:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        enabled = await workflow.get_auto_approval()
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return AutoApprovalOut(enabled=enabled)


@router.post("/auto-approval", response_model=AutoApprovalOut)
async def set_auto_approval(
    payload: AutoApprovalRequest,
    principal=Depends(get_human_principal),
    workflow: ModerationWorkflow = Depends(get_moderation_workflow),
) -> AutoApprovalOut:
    try:
        principal.require_scopes({"admin:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        result = await workflow.set_auto_approval(
            payload.enabled,
            principal.actor_id,
            source_address=principal.source_address,
        )
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return AutoApprovalOut(**result)
