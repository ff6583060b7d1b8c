from __future__ import annotations

import asyncio
import json
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from functools import lru_cache
from typing import Any

import asyncpg  # type: ignore[import-untyped]

from directory_api.core.config import get_settings
from directory_api.services.entities import MODERATION_STATUSES, EntityKind


class RepositoryError(Exception):
    """Base repository error."""


class RepositoryUnavailableError(RepositoryError):
    """Raised when the database is unavailable, not configured, or a query fails."""


class RepositoryNotFoundError(RepositoryError):
    """Raised when the requested entity does not exist."""


class RepositoryConflictError(RepositoryError):
    """Raised when an operation violates state transition rules."""


class RepositoryValidationError(RepositoryError):
    """Raised when payload validation fails before persistence."""


@dataclass(slots=True)
class AuditLogFilters:
    actor_id: str | None = None
    action: str | None = None
    entity_type: str | None = None
    entity_id: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None


_AUDIT_COLUMNS = """
    id::text as id,
    actor_id,
    action,
    entity_type,
    entity_id,
    detail,
    source_address,
    created_at
"""

_AUDIT_FILTER_SQL = """
    ($1::text is null or actor_id = $1::text)
    and ($2::text is null or action = $2::text)
    and ($3::text is null or entity_type = $3::text)
    and ($4::text is null or entity_id = $4::text)
    and ($5::timestamptz is null or created_at >= $5::timestamptz)
    and ($6::timestamptz is null or created_at <= $6::timestamptz)
"""


class PostgresRepository:
    def __init__(
        self,
        database_url: str | None,
        min_pool_size: int,
        max_pool_size: int,
        command_timeout_seconds: float = 15.0,
    ) -> None:
        self.database_url = database_url
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self.command_timeout_seconds = command_timeout_seconds
        self._pool: asyncpg.Pool | None = None

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    async def ping(self) -> None:
        pool = await self._get_pool()
        with self._query_errors():
            await pool.fetchval("select 1")

    async def get_entity(self, *, kind: EntityKind, entity_id: str) -> dict[str, Any] | None:
        pool = await self._get_pool()
        with self._query_errors():
            row = await pool.fetchrow(f"{kind.select_sql} where e.id = $1", entity_id)
        return self._entity_row_to_dict(row) if row else None

    async def update_entity_status(
        self,
        *,
        kind: EntityKind,
        entity_id: str,
        status: str,
        expected_status: str,
    ) -> dict[str, Any] | None:
        """Swap the status only while it still holds ``expected_status``.

        Returns the updated entity, or ``None`` when the row is gone or its status moved on.
        """
        if status not in MODERATION_STATUSES:
            raise RepositoryValidationError(f"invalid moderation status: {status}")

        pool = await self._get_pool()
        with self._query_errors():
            async with pool.acquire() as conn:
                async with conn.transaction():
                    updated_id = await conn.fetchval(
                        f"""
                        update {kind.table}
                        set
                          status = $2,
                          updated_at = now()
                        where id = $1
                          and status = $3
                        returning id::text
                        """,
                        entity_id,
                        status,
                        expected_status,
                    )
                    if not updated_id:
                        return None
                    row = await conn.fetchrow(f"{kind.select_sql} where e.id = $1", entity_id)
        return self._entity_row_to_dict(row) if row else None

    async def list_entities(self, *, kind: EntityKind, status: str, limit: int, offset: int) -> list[dict[str, Any]]:
        pool = await self._get_pool()
        with self._query_errors():
            rows = await pool.fetch(
                f"""
                {kind.select_sql}
                where e.status = $1
                order by e.created_at desc, e.id asc
                limit $2
                offset $3
                """,
                status,
                limit,
                offset,
            )
        return [self._entity_row_to_dict(row) for row in rows]

    async def count_entities(self, *, kind: EntityKind, status: str) -> int:
        pool = await self._get_pool()
        with self._query_errors():
            total = await pool.fetchval(f"select count(*) from {kind.table} where status = $1", status)
        return int(total or 0)

    async def insert_audit_log(
        self,
        *,
        actor_id: str,
        action: str,
        entity_type: str,
        entity_id: str | None,
        detail: str | None,
        source_address: str | None,
    ) -> dict[str, Any]:
        pool = await self._get_pool()
        with self._query_errors():
            row = await pool.fetchrow(
                f"""
                insert into audit_logs (
                  actor_id,
                  action,
                  entity_type,
                  entity_id,
                  detail,
                  source_address
                )
                values ($1, $2, $3, $4, $5, $6)
                returning {_AUDIT_COLUMNS}
                """,
                actor_id,
                action,
                entity_type,
                entity_id,
                detail,
                source_address,
            )
        if not row:
            raise RepositoryUnavailableError("failed to insert audit log")
        return self._audit_row_to_dict(row)

    async def list_audit_logs(
        self,
        *,
        filters: AuditLogFilters,
        limit: int | None,
        offset: int,
    ) -> list[dict[str, Any]]:
        # A null limit reads every matching row.
        pool = await self._get_pool()
        with self._query_errors():
            rows = await pool.fetch(
                f"""
                select {_AUDIT_COLUMNS}
                from audit_logs
                where {_AUDIT_FILTER_SQL}
                order by created_at desc, id desc
                limit $7
                offset $8
                """,
                *self._audit_filter_args(filters),
                limit,
                offset,
            )
        return [self._audit_row_to_dict(row) for row in rows]

    async def count_audit_logs(self, *, filters: AuditLogFilters) -> int:
        pool = await self._get_pool()
        with self._query_errors():
            total = await pool.fetchval(
                f"select count(*) from audit_logs where {_AUDIT_FILTER_SQL}",
                *self._audit_filter_args(filters),
            )
        return int(total or 0)

    async def get_user_by_clerk_id(self, clerk_id: str) -> dict[str, Any] | None:
        pool = await self._get_pool()
        with self._query_errors():
            row = await pool.fetchrow(
                """
                select
                  id::text as id,
                  clerk_id,
                  email,
                  name,
                  role::text as role,
                  status::text as status
                from users
                where clerk_id = $1
                """,
                clerk_id,
            )
        if not row:
            return None
        return {
            "id": row["id"],
            "clerk_id": row["clerk_id"],
            "email": row["email"],
            "name": row["name"],
            "role": row["role"],
            "status": row["status"],
        }

    async def get_setting(self, key: str) -> dict[str, Any] | None:
        pool = await self._get_pool()
        with self._query_errors():
            row = await pool.fetchrow("select key, value, updated_at from app_settings where key = $1", key)
        return self._setting_row_to_dict(row) if row else None

    async def upsert_setting(self, key: str, value: dict[str, Any]) -> dict[str, Any]:
        pool = await self._get_pool()
        with self._query_errors():
            row = await pool.fetchrow(
                """
                insert into app_settings (key, value)
                values ($1, $2::jsonb)
                on conflict (key) do update
                set
                  value = excluded.value,
                  updated_at = now()
                returning key, value, updated_at
                """,
                key,
                json.dumps(value),
            )
        if not row:
            raise RepositoryUnavailableError("failed to upsert setting")
        return self._setting_row_to_dict(row)

    async def _get_pool(self) -> asyncpg.Pool:
        if not self.database_url:
            raise RepositoryUnavailableError("DIRECTORY_DATABASE_URL is required")

        if self._pool is not None:
            return self._pool

        try:
            self._pool = await asyncpg.create_pool(
                dsn=self.database_url,
                min_size=self.min_pool_size,
                max_size=self.max_pool_size,
                command_timeout=self.command_timeout_seconds,
            )
            return self._pool
        except Exception as exc:  # pragma: no cover - depends on environment
            raise RepositoryUnavailableError("database unavailable") from exc

    @staticmethod
    @contextmanager
    def _query_errors() -> Iterator[None]:
        try:
            yield
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError) as exc:
            raise RepositoryUnavailableError("database query failed") from exc

    @staticmethod
    def _audit_filter_args(filters: AuditLogFilters) -> tuple[Any, ...]:
        return (
            filters.actor_id,
            filters.action,
            filters.entity_type,
            filters.entity_id,
            filters.start_time,
            filters.end_time,
        )

    @staticmethod
    def _entity_row_to_dict(row: asyncpg.Record) -> dict[str, Any]:
        return {
            "id": row["id"],
            "kind": row["kind"],
            "status": row["status"],
            "owner_id": row["owner_id"],
            "owner_email": row["owner_email"],
            "owner_name": row["owner_name"],
            "display_name": row["display_name"],
            "context_name": row["context_name"],
            "created_at": row["created_at"],
            "updated_at": row["updated_at"],
        }

    @staticmethod
    def _audit_row_to_dict(row: asyncpg.Record) -> dict[str, Any]:
        return {
            "id": row["id"],
            "actor_id": row["actor_id"],
            "action": row["action"],
            "entity_type": row["entity_type"],
            "entity_id": row["entity_id"],
            "detail": row["detail"],
            "source_address": row["source_address"],
            "created_at": row["created_at"],
        }

    @staticmethod
    def _setting_row_to_dict(row: asyncpg.Record) -> dict[str, Any]:
        value = row["value"]
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except json.JSONDecodeError:
                value = {}
        if not isinstance(value, dict):
            value = {}
        return {"key": row["key"], "value": value, "updated_at": row["updated_at"]}


@lru_cache
def get_repository() -> PostgresRepository:
    settings = get_settings()
    return PostgresRepository(
        database_url=settings.database_url,
        min_pool_size=settings.database_pool_min_size,
        max_pool_size=settings.database_pool_max_size,
        command_timeout_seconds=settings.database_command_timeout_seconds,
    )
