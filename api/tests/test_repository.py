from __future__ import annotations

import asyncio
from typing import Any

import pytest

from directory_api.services.repository import (
    AuditLogFilters,
    PostgresRepository,
    RepositoryUnavailableError,
)


class StubPool:
    def __init__(self, *, row: Any = None, rows: list[Any] | None = None) -> None:
        self.row = row
        self.rows = rows or []
        self.calls: list[tuple[str, tuple[Any, ...]]] = []

    async def fetchrow(self, query: str, *args: Any) -> Any:
        self.calls.append((query, args))
        return self.row

    async def fetch(self, query: str, *args: Any) -> list[Any]:
        self.calls.append((query, args))
        return self.rows


def _repository(monkeypatch: pytest.MonkeyPatch, pool: StubPool) -> PostgresRepository:
    repository = PostgresRepository("postgresql://stub", min_pool_size=1, max_pool_size=1)

    async def _get_pool() -> StubPool:
        return pool

    monkeypatch.setattr(repository, "_get_pool", _get_pool)
    return repository


def test_audit_insert_without_returned_row_is_unavailable(monkeypatch: pytest.MonkeyPatch) -> None:
    repository = _repository(monkeypatch, StubPool(row=None))

    with pytest.raises(RepositoryUnavailableError):
        asyncio.run(
            repository.insert_audit_log(
                actor_id="admin-1",
                action="APPROVE_JOB",
                entity_type="JOB",
                entity_id="job-1",
                detail=None,
                source_address=None,
            )
        )


def test_setting_upsert_without_returned_row_is_unavailable(monkeypatch: pytest.MonkeyPatch) -> None:
    repository = _repository(monkeypatch, StubPool(row=None))

    with pytest.raises(RepositoryUnavailableError):
        asyncio.run(repository.upsert_setting("auto_approval", {"enabled": True}))


def test_unbounded_audit_listing_passes_null_limit(monkeypatch: pytest.MonkeyPatch) -> None:
    pool = StubPool(rows=[])
    repository = _repository(monkeypatch, pool)

    rows = asyncio.run(
        repository.list_audit_logs(
            filters=AuditLogFilters(entity_type="JOB", entity_id="job-1"),
            limit=None,
            offset=0,
        )
    )

    assert rows == []
    query, args = pool.calls[0]
    assert "limit $7" in query
    assert args == (None, None, "JOB", "job-1", None, None, None, 0)
