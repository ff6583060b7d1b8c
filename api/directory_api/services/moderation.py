from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from fastapi import Depends
from opentelemetry import trace

from directory_api.core.config import get_settings
from directory_api.services.audit import AuditService, get_audit_service
from directory_api.services.entities import TRANSITION_TARGETS, EntityKind, resolve_kind
from directory_api.services.notifications import NotificationGateway, get_notification_gateway
from directory_api.services.repository import (
    RepositoryConflictError,
    RepositoryNotFoundError,
    RepositoryValidationError,
    get_repository,
)

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

AUTO_APPROVAL_SETTING_KEY = "auto_approval"

_VERBS = {"APPROVED": "approved", "REJECTED": "rejected"}


@dataclass(slots=True)
class TransitionResult:
    changed: bool
    message: str
    data: dict[str, Any]


class ModerationWorkflow:
    """Moves businesses, professionals and jobs between PENDING, APPROVED and REJECTED.

    A transition persists the new status, then writes one audit entry, then sends one notification
    to the owner. Only the load and the persist can fail the call; the audit write and the
    notification are best effort.
    """

    def __init__(
        self,
        repository: Any,
        audit: AuditService,
        notifier: NotificationGateway,
        brand_name: str = "Anunciar Grajaú",
    ) -> None:
        self.repository = repository
        self.audit = audit
        self.notifier = notifier
        self.brand_name = brand_name

    async def approve(
        self,
        entity_type: str,
        entity_id: str,
        actor_id: str,
        *,
        source_address: str | None = None,
    ) -> TransitionResult:
        return await self.transition(
            entity_type,
            entity_id,
            "APPROVED",
            actor_id,
            source_address=source_address,
        )

    async def reject(
        self,
        entity_type: str,
        entity_id: str,
        actor_id: str,
        reason: str | None,
        *,
        source_address: str | None = None,
    ) -> TransitionResult:
        return await self.transition(
            entity_type,
            entity_id,
            "REJECTED",
            actor_id,
            reason=reason,
            source_address=source_address,
        )

    async def transition(
        self,
        entity_type: str,
        entity_id: str,
        target_status: str,
        actor_id: str,
        reason: str | None = None,
        *,
        source_address: str | None = None,
    ) -> TransitionResult:
        kind = resolve_kind(entity_type)
        if kind is None:
            raise RepositoryValidationError(f"invalid item type: {entity_type}")
        if target_status not in TRANSITION_TARGETS:
            raise RepositoryValidationError(f"invalid target status: {target_status}")

        with tracer.start_as_current_span("moderation.transition") as span:
            span.set_attribute("moderation.entity_type", kind.tag)
            span.set_attribute("moderation.entity_id", entity_id)
            span.set_attribute("moderation.target_status", target_status)

            entity = await self.repository.get_entity(kind=kind, entity_id=entity_id)
            if entity is None:
                raise RepositoryNotFoundError(f"{kind.tag} not found")

            normalized_reason = reason.strip() if isinstance(reason, str) else None
            if target_status == "REJECTED" and not normalized_reason:
                raise RepositoryValidationError("reason is required when rejecting")

            if entity["status"] == target_status:
                span.set_attribute("moderation.changed", False)
                return self._unchanged(kind, target_status, entity)

            updated = await self.repository.update_entity_status(
                kind=kind,
                entity_id=entity_id,
                status=target_status,
                expected_status=entity["status"],
            )
            if updated is None:
                current = await self.repository.get_entity(kind=kind, entity_id=entity_id)
                if current is None:
                    raise RepositoryNotFoundError(f"{kind.tag} not found")
                if current["status"] == target_status:
                    span.set_attribute("moderation.changed", False)
                    return self._unchanged(kind, target_status, current)
                raise RepositoryConflictError(
                    f"{kind.tag} status changed concurrently: {entity['status']} -> {current['status']}"
                )
            span.set_attribute("moderation.changed", True)

            verb = _VERBS[target_status]
            detail = f"{kind.describe(entity)} {verb}"
            if target_status == "REJECTED":
                detail = f"{detail}. Reason: {normalized_reason}"
            await self.audit.log_action(
                actor_id=actor_id,
                action=kind.audit_action(target_status),
                entity_type=kind.audit_entity_type,
                entity_id=entity_id,
                detail=detail,
                source_address=source_address,
            )

            await self._notify_owner(kind, target_status, updated, normalized_reason)

            logger.info(
                "moderation transition entity_type=%s entity_id=%s from=%s to=%s actor_id=%s",
                kind.tag,
                entity_id,
                entity["status"],
                target_status,
                actor_id,
            )
            return TransitionResult(
                changed=True,
                message=f"{kind.tag} {verb} successfully",
                data=updated,
            )

    async def get_auto_approval(self) -> bool:
        setting = await self.repository.get_setting(AUTO_APPROVAL_SETTING_KEY)
        if not setting:
            return False
        return bool(setting["value"].get("enabled", False))

    async def set_auto_approval(
        self,
        enabled: bool,
        actor_id: str,
        *,
        source_address: str | None = None,
    ) -> dict[str, Any]:
        await self.repository.upsert_setting(AUTO_APPROVAL_SETTING_KEY, {"enabled": bool(enabled)})
        state = "enabled" if enabled else "disabled"
        await self.audit.log_action(
            actor_id=actor_id,
            action="UPDATE_AUTO_APPROVAL_SETTING",
            entity_type="SETTINGS",
            detail=f"auto approval {state}",
            source_address=source_address,
        )
        return {"enabled": bool(enabled), "message": f"auto approval {state} successfully"}

    async def _notify_owner(
        self,
        kind: EntityKind,
        target_status: str,
        entity: dict[str, Any],
        reason: str | None,
    ) -> None:
        if target_status == "APPROVED":
            request = kind.approved_template(entity, self.brand_name)
        else:
            request = kind.rejected_template(entity, reason or "", self.brand_name)

        result = await self.notifier.send(request)
        if not result.ok:
            logger.warning(
                "moderation notification failed entity_type=%s entity_id=%s error=%s",
                kind.tag,
                entity.get("id"),
                result.error,
            )

    @staticmethod
    def _unchanged(kind: EntityKind, target_status: str, entity: dict[str, Any]) -> TransitionResult:
        return TransitionResult(
            changed=False,
            message=f"{kind.tag} already {_VERBS[target_status]}",
            data=entity,
        )


def get_moderation_workflow(
    repository=Depends(get_repository),
    audit: AuditService = Depends(get_audit_service),
    notifier=Depends(get_notification_gateway),
) -> ModerationWorkflow:
    return ModerationWorkflow(
        repository,
        audit,
        notifier,
        brand_name=get_settings().brand_name,
    )
