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
from grc_api.api.schemas.integrations import IntegrationCreateIn, IntegrationPatchIn
from grc_api.core.audit import AuditEmitter
from grc_api.core.supabase_rest import SupabaseRest
from grc_api.services.records import fetch_row_or_404, insert_row, list_rows, update_row
from grc_api.services.stats import integration_stats

router = APIRouter(prefix="/integrations", tags=["integrations"])


@router.get("")
async def list_integrations(
    org_id: str = Depends(require_org_id),
    rest: SupabaseRest = Depends(session_rest),
) -> dict[str, Any]:
    rows = await list_rows(rest, "integrations", filters={"org_id": org_id}, order="name")
    return {"data": rows, "stats": integration_stats(rows)}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_integration(
    payload: IntegrationCreateIn,
    background_tasks: BackgroundTasks,
    rest: SupabaseRest = Depends(writer_rest),
    audit: AuditEmitter = Depends(get_audit_emitter),
) -> dict[str, Any]:
    row = await insert_row(
        rest,
        "integrations",
        payload.insert_payload(status="pending", sync_status="pending"),
    )
    audit.record(
        background_tasks,
        rest,
        org_id=payload.org_id,
        action="create",
        resource_type="integrations",
        resource_id=row.get("id"),
        changes={"new": row},
    )
    return {"data": row}


@router.get("/{integration_id}")
async def get_integration(
    integration_id: str,
    org_id: str | None = Depends(optional_org_id),
    rest: SupabaseRest = Depends(session_rest),
) -> dict[str, Any]:
    row = await fetch_row_or_404(rest, "integrations", integration_id, label="Integration", org_id=org_id)
    return {"data": row}


@router.patch("/{integration_id}")
async def update_integration(
    integration_id: str,
    payload: IntegrationPatchIn,
    background_tasks: BackgroundTasks,
    rest: SupabaseRest = Depends(writer_rest),
    audit: AuditEmitter = Depends(get_audit_emitter),
) -> dict[str, Any]:
    changes = changes_for_update(payload.changes())
    old = await fetch_row_or_404(rest, "integrations", integration_id, label="Integration")
    row = await update_row(rest, "integrations", integration_id, changes, label="Integration")
    audit.record(
        background_tasks,
        rest,
        org_id=row.get("org_id"),
        action="update",
        resource_type="integrations",
        resource_id=row.get("id"),
        changes={"old": old, "new": row},
    )
    return {"data": row}
