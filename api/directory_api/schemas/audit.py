from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class AuditLogOut(BaseModel):
    id: str
    actor_id: str
    action: str
    entity_type: str
    entity_id: str | None = None
    detail: str | None = None
    source_address: str | None = None
    created_at: datetime


class AuditLogPageOut(BaseModel):
    logs: list[AuditLogOut] = Field(default_factory=list)
    total: int
    page_count: int
    current_page: int


class AuditLogCreateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    action: str = Field(min_length=1, max_length=100)
    entity_type: str = Field(alias="entityType", min_length=1, max_length=50)
    entity_id: str | None = Field(default=None, alias="entityId")
    detail: str | None = Field(default=None, max_length=2000)
