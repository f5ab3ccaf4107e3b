from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status

from grc_api.api.deps import (
    changes_for_update,
    get_audit_emitter,
    optional_org_id,
    require_org_id,
    require_principal,
    session_rest,
    writer_rest,
)
from grc_api.api.schemas.policies import SYSTEM_COLUMNS, PolicyCreateIn, PolicyPatchIn, PolicyPublishIn
from grc_api.core.audit import AuditEmitter
from grc_api.core.errors import StoreError
from grc_api.core.logging import get_logger
from grc_api.core.supabase_jwt import Principal
from grc_api.core.supabase_rest import Row, SupabaseRest
from grc_api.services.records import archive_row, fetch_row_or_404, insert_row, list_rows, update_row
from grc_api.services.stats import percentage

router = APIRouter(prefix="/policies", tags=["policies"])
logger = get_logger("api.policies")

ARCHIVED_STATUS = "archived"
ACKNOWLEDGEMENT_DUE_DAYS = 14

POLICY_LIST_COLUMNS = """
    *,
    policy_acknowledgements(id, status, user_id)
"""
POLICY_DETAIL_COLUMNS = """
    *,
    policy_acknowledgements(id, status, due_date, acknowledged_at, user_id)
"""


def acknowledgement_stats(policy: Row) -> dict[str, int]:
    acknowledgements = policy.get("policy_acknowledgements") or []
    statuses = [row.get("status") for row in acknowledgements if isinstance(row, dict)]
    acknowledged = statuses.count("acknowledged")
    return {
        "total": len(statuses),
        "acknowledged": acknowledged,
        "pending": statuses.count("pending"),
        "overdue": statuses.count("overdue"),
        "completion_rate": percentage(acknowledged, len(statuses)),
    }


def next_version(old: Row, changes: dict[str, Any]) -> int | None:
    """New version number when the policy text changes, otherwise ``None``."""
    content = changes.get("content_markdown")
    if not content or content == old.get("content_markdown"):
        return None
    return int(old.get("version") or 1) + 1


def default_due_date(today: date) -> date:
    return today + timedelta(days=ACKNOWLEDGEMENT_DUE_DAYS)


@router.get("")
async def list_policies(
    org_id: str = Depends(require_org_id),
    status_filter: str | None = Query(default=None, alias="status"),
    policy_type: str | None = Query(default=None),
    rest: SupabaseRest = Depends(session_rest),
) -> dict[str, Any]:
    rows = await list_rows(
        rest,
        "policies",
        filters={"org_id": org_id, "status": status_filter, "policy_type": policy_type},
        order="title",
        columns=POLICY_LIST_COLUMNS,
    )
    return {"data": [{**row, "acknowledgement_stats": acknowledgement_stats(row)} for row in rows]}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_policy(
    payload: PolicyCreateIn,
    background_tasks: BackgroundTasks,
    principal: Principal = Depends(require_principal),
    rest: SupabaseRest = Depends(writer_rest),
    audit: AuditEmitter = Depends(get_audit_emitter),
) -> dict[str, Any]:
    row = await insert_row(
        rest,
        "policies",
        payload.insert_payload(status="draft", version=1, owner_id=principal.user_id),
    )
    audit.record(
        background_tasks,
        rest,
        org_id=payload.org_id,
        action="create",
        resource_type="policies",
        resource_id=row.get("id"),
        changes={"new": row},
    )
    return {"data": row}


@router.get("/{policy_id}")
async def get_policy(
    policy_id: str,
    org_id: str | None = Depends(optional_org_id),
    rest: SupabaseRest = Depends(session_rest),
) -> dict[str, Any]:
    row = await fetch_row_or_404(
        rest, "policies", policy_id, label="Policy", org_id=org_id, columns=POLICY_DETAIL_COLUMNS
    )
    return {"data": row}


@router.patch("/{policy_id}")
async def update_policy(
    policy_id: str,
    payload: PolicyPatchIn,
    background_tasks: BackgroundTasks,
    rest: SupabaseRest = Depends(writer_rest),
    audit: AuditEmitter = Depends(get_audit_emitter),
) -> dict[str, Any]:
    changes = changes_for_update(payload.changes(), extra_immutable=SYSTEM_COLUMNS)
    old = await fetch_row_or_404(rest, "policies", policy_id, label="Policy")
    version = next_version(old, changes)
    if version is not None:
        changes["version"] = version

    row = await update_row(rest, "policies", policy_id, changes, label="Policy")
    audit.record(
        background_tasks,
        rest,
        org_id=row.get("org_id"),
        action="update",
        resource_type="policies",
        resource_id=row.get("id"),
        changes={"old": old, "new": row},
    )
    return {"data": row}


@router.delete("/{policy_id}")
async def archive_policy(
    policy_id: str,
    background_tasks: BackgroundTasks,
    rest: SupabaseRest = Depends(writer_rest),
    audit: AuditEmitter = Depends(get_audit_emitter),
) -> dict[str, bool]:
    row = await archive_row(rest, "policies", policy_id, status=ARCHIVED_STATUS, label="Policy")
    audit.record(
        background_tasks,
        rest,
        org_id=row.get("org_id"),
        action="archive",
        resource_type="policies",
        resource_id=row.get("id"),
        changes={"status": ARCHIVED_STATUS},
    )
    return {"success": True}


async def _acknowledgement_targets(rest: SupabaseRest, org_id: Any, user_ids: list[str] | None) -> list[str]:
    if user_ids:
        return list(dict.fromkeys(user_ids))
    members = await (
        rest.table("organization_members")
        .select("user_id")
        .eq("org_id", org_id)
        .eq("is_external_auditor", False)
        .execute()
    )
    return [str(row["user_id"]) for row in members.rows if row.get("user_id")]


async def _request_acknowledgements(
    rest: SupabaseRest,
    policy_id: str,
    user_ids: list[str],
    due_date: date,
) -> int:
    """Replace pending acknowledgements; returns how many were created."""
    rows = [
        {"policy_id": policy_id, "user_id": user_id, "status": "pending", "due_date": due_date.isoformat()}
        for user_id in user_ids
    ]
    try:
        await (
            rest.table("policy_acknowledgements")
            .delete()
            .eq("policy_id", policy_id)
            .eq("status", "pending")
            .execute()
        )
        created = await rest.table("policy_acknowledgements").insert(rows).execute()
    except StoreError as exc:
        logger.warning(
            "policy.acknowledgements_failed",
            extra={"component": "policies", "policy_id": policy_id, "error": exc.message},
        )
        return 0
    return len(created.rows)


@router.post("/{policy_id}/publish")
async def publish_policy(
    policy_id: str,
    background_tasks: BackgroundTasks,
    payload: PolicyPublishIn | None = None,
    rest: SupabaseRest = Depends(writer_rest),
    audit: AuditEmitter = Depends(get_audit_emitter),
) -> dict[str, Any]:
    payload = payload or PolicyPublishIn()
    policy = await fetch_row_or_404(rest, "policies", policy_id, label="Policy")
    now = datetime.now(timezone.utc)
    await update_row(
        rest,
        "policies",
        policy_id,
        {"status": "active", "published_at": now.isoformat()},
        label="Policy",
    )

    targets = await _acknowledgement_targets(rest, policy.get("org_id"), payload.user_ids)
    created = 0
    if targets:
        due_date = payload.due_date or default_due_date(now.date())
        created = await _request_acknowledgements(rest, policy_id, targets, due_date)

    audit.record(
        background_tasks,
        rest,
        org_id=policy.get("org_id"),
        action="publish",
        resource_type="policies",
        resource_id=policy_id,
        changes={"status": "active", "acknowledgements_created": created, "target_users": len(targets)},
    )
    return {"success": True, "data": {"policy_id": policy_id, "acknowledgements_created": created}}
