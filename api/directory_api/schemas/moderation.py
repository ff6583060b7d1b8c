from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

ItemType = Literal["business", "professional", "job"]
ModerationStatus = Literal["PENDING", "APPROVED", "REJECTED"]


class ApproveItemRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    item_id: str = Field(alias="itemId", min_length=1)
    item_type: ItemType = Field(alias="itemType")


class RejectItemRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    item_id: str = Field(alias="itemId", min_length=1)
    item_type: ItemType = Field(alias="itemType")
    reason: str | None = Field(default=None, max_length=500)


class ModeratedEntityOut(BaseModel):
    id: str
    kind: ItemType
    status: ModerationStatus
    owner_id: str | None = None
    owner_email: str | None = None
    owner_name: str | None = None
    display_name: str | None = None
    context_name: str | None = None
    created_at: datetime
    updated_at: datetime


class TransitionOut(BaseModel):
    changed: bool
    message: str
    data: ModeratedEntityOut


class PendingItemsOut(BaseModel):
    businesses: list[ModeratedEntityOut] = Field(default_factory=list)
    professionals: list[ModeratedEntityOut] = Field(default_factory=list)
    jobs: list[ModeratedEntityOut] = Field(default_factory=list)
    total: int
    page_count: int
    current_page: int


class PendingCountsOut(BaseModel):
    business: int
    professional: int
    job: int
    total: int


class AutoApprovalRequest(BaseModel):
    enabled: bool


class AutoApprovalOut(BaseModel):
    enabled: bool
    message: str | None = None
