from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
from fastapi.testclient import TestClient

os.environ.setdefault("DIRECTORY_OTEL_ENABLED", "false")

import directory_api.core.security as security  # noqa: E402
from directory_api.core.config import get_settings  # noqa: E402
from directory_api.main import app  # noqa: E402
from directory_api.services.audit import AuditService  # noqa: E402
from directory_api.services.entities import EntityKind  # noqa: E402
from directory_api.services.moderation import ModerationWorkflow  # noqa: E402
from directory_api.services.notifications import (  # noqa: E402
    DeliveryResult,
    NotificationRequest,
    get_notification_gateway,
)
from directory_api.services.repository import (  # noqa: E402
    AuditLogFilters,
    RepositoryUnavailableError,
    RepositoryValidationError,
    get_repository,
)

BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class FakeDirectoryRepository:
    def __init__(self) -> None:
        self.entities: dict[str, dict[str, dict[str, Any]]] = {"business": {}, "professional": {}, "job": {}}
        self.audit_logs: list[dict[str, Any]] = []
        self.users: dict[str, dict[str, Any]] = {}
        self.app_settings: dict[str, dict[str, Any]] = {}
        self.status_writes: list[tuple[str, str, str]] = []
        self.fail_audit_writes = False
        self.fail_entity_reads = False
        self.fail_status_writes = False
        self.fail_setting_writes = False
        self.entity_windows: list[tuple[str, int, int]] = []
        self.concurrent_status: str | None = None
        self._audit_seq = 0

    def add_entity(
        self,
        kind: str,
        entity_id: str,
        *,
        status: str = "PENDING",
        display_name: str = "Acme",
        context_name: str | None = None,
        owner_email: str = "owner@example.com",
        owner_name: str = "Owner",
        created_offset_minutes: int = 0,
    ) -> dict[str, Any]:
        created_at = BASE_TIME + timedelta(minutes=created_offset_minutes)
        row = {
            "id": entity_id,
            "kind": kind,
            "status": status,
            "owner_id": f"owner-of-{entity_id}",
            "owner_email": owner_email,
            "owner_name": owner_name,
            "display_name": display_name,
            "context_name": context_name,
            "created_at": created_at,
            "updated_at": created_at,
        }
        self.entities[kind][entity_id] = row
        return row

    def add_user(self, clerk_id: str, user_id: str, *, role: str, status: str = "APPROVED") -> None:
        self.users[clerk_id] = {
            "id": user_id,
            "clerk_id": clerk_id,
            "email": f"{user_id}@example.com",
            "name": user_id,
            "role": role,
            "status": status,
        }

    async def get_entity(self, *, kind: EntityKind, entity_id: str) -> dict[str, Any] | None:
        if self.fail_entity_reads:
            raise RepositoryUnavailableError("database query failed")
        row = self.entities[kind.tag].get(entity_id)
        return dict(row) if row else None

    async def update_entity_status(
        self,
        *,
        kind: EntityKind,
        entity_id: str,
        status: str,
        expected_status: str,
    ) -> dict[str, Any] | None:
        if self.fail_status_writes:
            raise RepositoryUnavailableError("database query failed")
        row = self.entities[kind.tag].get(entity_id)
        if row is None:
            return None
        if self.concurrent_status is not None:
            # Another request committed between our read and this write.
            row["status"] = self.concurrent_status
            self.concurrent_status = None
        if row["status"] != expected_status:
            return None
        row["status"] = status
        row["updated_at"] = row["updated_at"] + timedelta(seconds=1)
        self.status_writes.append((kind.tag, entity_id, status))
        return dict(row)

    async def list_entities(self, *, kind: EntityKind, status: str, limit: int, offset: int) -> list[dict[str, Any]]:
        self.entity_windows.append((kind.tag, limit, offset))
        rows = [row for row in self.entities[kind.tag].values() if row["status"] == status]
        rows.sort(key=lambda row: row["id"])
        rows.sort(key=lambda row: row["created_at"], reverse=True)
        return [dict(row) for row in rows[offset : offset + limit]]

    async def count_entities(self, *, kind: EntityKind, status: str) -> int:
        return sum(1 for row in self.entities[kind.tag].values() if row["status"] == status)

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
        if self.fail_audit_writes:
            raise RepositoryUnavailableError("database query failed")
        self._audit_seq += 1
        row = {
            "id": f"audit-{self._audit_seq:04d}",
            "actor_id": actor_id,
            "action": action,
            "entity_type": entity_type,
            "entity_id": entity_id,
            "detail": detail,
            "source_address": source_address,
            "created_at": BASE_TIME + timedelta(seconds=self._audit_seq),
        }
        self.audit_logs.append(row)
        return dict(row)

    async def list_audit_logs(
        self,
        *,
        filters: AuditLogFilters,
        limit: int | None,
        offset: int,
    ) -> list[dict[str, Any]]:
        rows = [row for row in self.audit_logs if self._matches(row, filters)]
        rows.sort(key=lambda row: (row["created_at"], row["id"]), reverse=True)
        end = None if limit is None else offset + limit
        return [dict(row) for row in rows[offset:end]]

    async def count_audit_logs(self, *, filters: AuditLogFilters) -> int:
        return sum(1 for row in self.audit_logs if self._matches(row, filters))

    async def get_user_by_clerk_id(self, clerk_id: str) -> dict[str, Any] | None:
        return self.users.get(clerk_id)

    async def get_setting(self, key: str) -> dict[str, Any] | None:
        return self.app_settings.get(key)

    async def upsert_setting(self, key: str, value: dict[str, Any]) -> dict[str, Any]:
        if self.fail_setting_writes:
            raise RepositoryUnavailableError("failed to upsert setting")
        if not isinstance(value, dict):
            raise RepositoryValidationError("setting value must be an object")
        row = {"key": key, "value": dict(value), "updated_at": BASE_TIME}
        self.app_settings[key] = row
        return row

    async def ping(self) -> None:
        if self.fail_entity_reads:
            raise RepositoryUnavailableError("database query failed")

    async def close(self) -> None:
        return None

    @staticmethod
    def _matches(row: dict[str, Any], filters: AuditLogFilters) -> bool:
        if filters.actor_id and row["actor_id"] != filters.actor_id:
            return False
        if filters.action and row["action"] != filters.action:
            return False
        if filters.entity_type and row["entity_type"] != filters.entity_type:
            return False
        if filters.entity_id and row["entity_id"] != filters.entity_id:
            return False
        if filters.start_time and row["created_at"] < filters.start_time:
            return False
        if filters.end_time and row["created_at"] > filters.end_time:
            return False
        return True


class RecordingNotifier:
    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.sent: list[NotificationRequest] = []

    async def send(self, request: NotificationRequest) -> DeliveryResult:
        self.sent.append(request)
        if self.fail:
            return DeliveryResult(ok=False, error="notification transport unavailable")
        return DeliveryResult(ok=True, message_id=f"msg-{len(self.sent)}")


@pytest.fixture
def repository() -> FakeDirectoryRepository:
    return FakeDirectoryRepository()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def audit_service(repository: FakeDirectoryRepository) -> AuditService:
    return AuditService(repository)


@pytest.fixture
def workflow(
    repository: FakeDirectoryRepository,
    audit_service: AuditService,
    notifier: RecordingNotifier,
) -> ModerationWorkflow:
    return ModerationWorkflow(repository, audit_service, notifier)


@pytest.fixture
def api_client(repository: FakeDirectoryRepository, notifier: RecordingNotifier) -> TestClient:
    os.environ["DIRECTORY_CLERK_SECRET_KEY"] = "sk_test_secret"
    get_settings.cache_clear()

    app.dependency_overrides[get_repository] = lambda: repository
    app.dependency_overrides[get_notification_gateway] = lambda: notifier

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()
    os.environ.pop("DIRECTORY_CLERK_SECRET_KEY", None)
    get_settings.cache_clear()


def mock_clerk_session(monkeypatch: pytest.MonkeyPatch, clerk_user_id: str | None) -> None:
    async def _fake_fetch(**_: Any) -> dict[str, Any]:
        if clerk_user_id is None:
            return {"sessions": []}
        return {
            "last_active_session_id": "sess_1",
            "sessions": [{"id": "sess_1", "status": "active", "user_id": clerk_user_id}],
        }

    monkeypatch.setattr(security, "_fetch_clerk_client", _fake_fetch)


AUTH_HEADERS = {"Authorization": "Bearer session-token"}
