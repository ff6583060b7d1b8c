from __future__ import annotations

import logging
from typing import Any

from fastapi import Depends

from directory_api.core.config import get_settings
from directory_api.core.paging import page_count, page_window, resolve_page
from directory_api.services.repository import AuditLogFilters, RepositoryError, get_repository

logger = logging.getLogger(__name__)


class AuditService:
    """Append-only record of administrative actions.

    ``log_action`` never raises: a failed write is logged and reported as ``None`` so the enclosing
    operation carries on.
    """

    def __init__(self, repository: Any, default_limit: int = 20, max_limit: int = 100) -> None:
        self.repository = repository
        self.default_limit = default_limit
        self.max_limit = max_limit

    async def log_action(
        self,
        *,
        actor_id: str,
        action: str,
        entity_type: str,
        entity_id: str | None = None,
        detail: str | None = None,
        source_address: str | None = None,
    ) -> dict[str, Any] | None:
        try:
            return await self.repository.insert_audit_log(
                actor_id=actor_id,
                action=action,
                entity_type=entity_type.upper(),
                entity_id=entity_id,
                detail=detail,
                source_address=source_address,
            )
        except RepositoryError:
            logger.exception(
                "audit write failed actor_id=%s action=%s entity_type=%s entity_id=%s",
                actor_id,
                action,
                entity_type,
                entity_id,
            )
            return None

    async def get_logs(
        self,
        filters: AuditLogFilters,
        page: Any = None,
        limit: Any = None,
    ) -> dict[str, Any]:
        current_page, page_size = resolve_page(page, limit, default_limit=self.default_limit, max_limit=self.max_limit)
        offset, take = page_window(current_page, page_size)
        normalized = AuditLogFilters(
            actor_id=filters.actor_id,
            action=filters.action,
            entity_type=filters.entity_type.upper() if filters.entity_type else None,
            entity_id=filters.entity_id,
            start_time=filters.start_time,
            end_time=filters.end_time,
        )

        logs = await self.repository.list_audit_logs(filters=normalized, limit=take, offset=offset)
        total = await self.repository.count_audit_logs(filters=normalized)
        return {
            "logs": logs,
            "total": total,
            "page_count": page_count(total, page_size),
            "current_page": current_page,
        }

    async def get_entity_trail(self, entity_type: str, entity_id: str) -> list[dict[str, Any]]:
        filters = AuditLogFilters(entity_type=entity_type.upper(), entity_id=entity_id)
        return await self.repository.list_audit_logs(filters=filters, limit=None, offset=0)

    async def get_user_trail(self, actor_id: str, page: Any = None, limit: Any = None) -> dict[str, Any]:
        return await self.get_logs(AuditLogFilters(actor_id=actor_id), page=page, limit=limit)


def get_audit_service(repository=Depends(get_repository)) -> AuditService:
    settings = get_settings()
    return AuditService(
        repository,
        default_limit=settings.audit_default_limit,
        max_limit=settings.max_page_limit,
    )
