from __future__ import annotations

import asyncio
from typing import Any

from fastapi import Depends
from opentelemetry import trace

from directory_api.core.config import get_settings
from directory_api.core.paging import page_count, page_window, resolve_page
from directory_api.services.entities import ENTITY_KINDS, EntityKind, resolve_kind
from directory_api.services.repository import RepositoryValidationError, get_repository

tracer = trace.get_tracer(__name__)


class PendingQueueReader:
    """Read side of the moderation queue: entities still waiting for a decision."""

    def __init__(self, repository: Any, default_limit: int = 10, max_limit: int = 100) -> None:
        self.repository = repository
        self.default_limit = default_limit
        self.max_limit = max_limit

    async def list_pending(
        self,
        entity_type: str | None = None,
        page: Any = None,
        limit: Any = None,
    ) -> dict[str, Any]:
        kinds = self._select_kinds(entity_type)
        current_page, page_size = resolve_page(page, limit, default_limit=self.default_limit, max_limit=self.max_limit)
        offset, take = page_window(current_page, page_size)

        with tracer.start_as_current_span("pending.list") as span:
            span.set_attribute("pending.entity_type", entity_type or "all")
            results = await asyncio.gather(*(self._read_kind(kind, take, offset) for kind in kinds))

        payload: dict[str, Any] = {kind.collection: [] for kind in ENTITY_KINDS.values()}
        total = 0
        for kind, (items, count) in zip(kinds, results):
            payload[kind.collection] = items
            total += count

        payload["total"] = total
        payload["page_count"] = page_count(total, page_size)
        payload["current_page"] = current_page
        return payload

    async def count_pending(self) -> dict[str, int]:
        kinds = list(ENTITY_KINDS.values())
        counts = await asyncio.gather(
            *(self.repository.count_entities(kind=kind, status="PENDING") for kind in kinds)
        )
        summary = {kind.tag: count for kind, count in zip(kinds, counts)}
        summary["total"] = sum(counts)
        return summary

    async def _read_kind(self, kind: EntityKind, limit: int, offset: int) -> tuple[list[dict[str, Any]], int]:
        items, count = await asyncio.gather(
            self.repository.list_entities(kind=kind, status="PENDING", limit=limit, offset=offset),
            self.repository.count_entities(kind=kind, status="PENDING"),
        )
        return items, count

    @staticmethod
    def _select_kinds(entity_type: str | None) -> list[EntityKind]:
        if entity_type is None or not entity_type.strip():
            return list(ENTITY_KINDS.values())
        kind = resolve_kind(entity_type)
        if kind is None:
            raise RepositoryValidationError(f"invalid item type: {entity_type}")
        return [kind]


def get_pending_reader(repository=Depends(get_repository)) -> PendingQueueReader:
    settings = get_settings()
    return PendingQueueReader(
        repository,
        default_limit=settings.pending_default_limit,
        max_limit=settings.max_page_limit,
    )
