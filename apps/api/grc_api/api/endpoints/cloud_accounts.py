from __future__ import annotations

from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends, status

from grc_api.api.deps import (
    changes_for_update,
    get_audit_emitter,
    optional_org_id,
    require_org_id,
    session_rest,
    writer_rest,
)
from grc_api.api.schemas.cloud import CloudAccountCreateIn, CloudAccountPatchIn
from grc_api.core.audit import AuditEmitter
from grc_api.core.supabase_rest import SupabaseRest
from grc_api.services.records import fetch_row_or_404, insert_row, list_rows, update_row
from grc_api.services.stats import attach_counts

router = APIRouter(tags=["cloud-accounts"])


@router.get("/cloud-accounts")
async def list_cloud_accounts(
    org_id: str = Depends(require_org_id),
    rest: SupabaseRest = Depends(session_rest),
) -> dict[str, Any]:
    rows = await list_rows(rest, "cloud_accounts", filters={"org_id": org_id}, order="created_at", desc=True)
    counted = await attach_counts(
        rest, rows, table="cspm_findings", foreign_key="cloud_account_id", org_id=org_id
    )
    return {"data": counted}


@router.post("/cloud-accounts", status_code=status.HTTP_201_CREATED)
async def create_cloud_account(
    payload: CloudAccountCreateIn,
    background_tasks: BackgroundTasks,
    rest: SupabaseRest = Depends(writer_rest),
    audit: AuditEmitter = Depends(get_audit_emitter),
) -> dict[str, Any]:
    row = await insert_row(rest, "cloud_accounts", payload.insert_payload(sync_status="pending"))
    audit.record(
        background_tasks,
        rest,
        org_id=payload.org_id,
        action="create",
        resource_type="cloud_accounts",
        resource_id=row.get("id"),
        changes={"new": row},
    )
    return {"data": row}


@router.get("/cloud-accounts/{account_id}")
async def get_cloud_account(
    account_id: str,
    org_id: str | None = Depends(optional_org_id),
    rest: SupabaseRest = Depends(session_rest),
) -> dict[str, Any]:
    row = await fetch_row_or_404(
        rest,
        "cloud_accounts",
        account_id,
        label="Cloud account",
        org_id=org_id,
        columns="*, cspm_findings(*)",
    )
    return {"data": row}


@router.patch("/cloud-accounts/{account_id}")
async def update_cloud_account(
    account_id: str,
    payload: CloudAccountPatchIn,
    background_tasks: BackgroundTasks,
    rest: SupabaseRest = Depends(writer_rest),
    audit: AuditEmitter = Depends(get_audit_emitter),
) -> dict[str, Any]:
    changes = changes_for_update(payload.changes())
    old = await fetch_row_or_404(rest, "cloud_accounts", account_id, label="Cloud account")
    row = await update_row(rest, "cloud_accounts", account_id, changes, label="Cloud account")
    audit.record(
        background_tasks,
        rest,
        org_id=row.get("org_id"),
        action="update",
        resource_type="cloud_accounts",
        resource_id=row.get("id"),
        changes={"old": old, "new": row},
    )
    return {"data": row}
