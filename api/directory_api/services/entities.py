"""Registry of moderatable entity kinds.

Each kind carries what the store needs to read it (table and row projection), what the audit trail
records for it, and which notification templates announce its transitions. Adding a kind means adding
an entry here.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from directory_api.services import notifications
from directory_api.services.notifications import NotificationRequest

MODERATION_STATUSES = ("PENDING", "APPROVED", "REJECTED")
TRANSITION_TARGETS = {"APPROVED", "REJECTED"}


@dataclass(frozen=True, slots=True)
class EntityKind:
    tag: str
    audit_entity_type: str
    collection: str
    table: str
    select_sql: str
    describe: Callable[[dict[str, Any]], str]
    approved_template: Callable[[dict[str, Any], str], NotificationRequest]
    rejected_template: Callable[[dict[str, Any], str, str], NotificationRequest]

    def audit_action(self, target_status: str) -> str:
        verb = "APPROVE" if target_status == "APPROVED" else "REJECT"
        return f"{verb}_{self.audit_entity_type}"


def _describe_business(entity: dict[str, Any]) -> str:
    return f'business "{entity.get("display_name")}"'


def _describe_professional(entity: dict[str, Any]) -> str:
    return f'professional "{entity.get("display_name")}" ({entity.get("context_name")})'


def _describe_job(entity: dict[str, Any]) -> str:
    return f'job "{entity.get("display_name")}" from business "{entity.get("context_name")}"'


ENTITY_KINDS: dict[str, EntityKind] = {
    "business": EntityKind(
        tag="business",
        audit_entity_type="BUSINESS",
        collection="businesses",
        table="businesses",
        select_sql="""
            select
              e.id::text as id,
              'business' as kind,
              e.status::text as status,
              u.id::text as owner_id,
              u.email as owner_email,
              u.name as owner_name,
              e.name as display_name,
              null::text as context_name,
              e.created_at,
              e.updated_at
            from businesses e
            join users u on u.id = e.user_id
        """,
        describe=_describe_business,
        approved_template=notifications.business_approved,
        rejected_template=notifications.business_rejected,
    ),
    "professional": EntityKind(
        tag="professional",
        audit_entity_type="PROFESSIONAL",
        collection="professionals",
        table="professionals",
        select_sql="""
            select
              e.id::text as id,
              'professional' as kind,
              e.status::text as status,
              u.id::text as owner_id,
              u.email as owner_email,
              u.name as owner_name,
              u.name as display_name,
              e.occupation as context_name,
              e.created_at,
              e.updated_at
            from professionals e
            join users u on u.id = e.user_id
        """,
        describe=_describe_professional,
        approved_template=notifications.professional_approved,
        rejected_template=notifications.professional_rejected,
    ),
    "job": EntityKind(
        tag="job",
        audit_entity_type="JOB",
        collection="jobs",
        table="jobs",
        select_sql="""
            select
              e.id::text as id,
              'job' as kind,
              e.status::text as status,
              u.id::text as owner_id,
              u.email as owner_email,
              u.name as owner_name,
              e.title as display_name,
              b.name as context_name,
              e.created_at,
              e.updated_at
            from jobs e
            join businesses b on b.id = e.business_id
            join users u on u.id = b.user_id
        """,
        describe=_describe_job,
        approved_template=notifications.job_approved,
        rejected_template=notifications.job_rejected,
    ),
}


def resolve_kind(entity_type: str | None) -> EntityKind | None:
    if not isinstance(entity_type, str):
        return None
    return ENTITY_KINDS.get(entity_type.strip().lower())
