from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends, status

from grc_api.api.deps import (
    changes_for_update,
    get_audit_emitter,
    optional_org_id,
    privileged_rest,
    require_org_id,
    session_rest,
    writer_rest,
)
from grc_api.api.schemas.findings import FindingCreateIn, FindingPatchIn
from grc_api.core.audit import AuditEmitter
from grc_api.core.supabase_rest import SupabaseRest
from grc_api.services.records import fetch_row_or_404, insert_row, list_rows, update_row

router = APIRouter(tags=["findings"])


@router.get("/findings")
async def list_findings(
    org_id: str = Depends(require_org_id),
    rest: SupabaseRest = Depends(privileged_rest),
) -> dict[str, Any]:
    rows = await list_rows(rest, "findings", filters={"org_id": org_id}, order="first_detected_at", desc=True)
    return {"data": rows}


@router.post("/findings", status_code=status.HTTP_201_CREATED)
async def create_finding(
    payload: FindingCreateIn,
    background_tasks: BackgroundTasks,
    rest: SupabaseRest = Depends(writer_rest),
    audit: AuditEmitter = Depends(get_audit_emitter),
) -> dict[str, Any]:
    row = await insert_row(
        rest,
        "findings",
        payload.insert_payload(
            status="open",
            first_detected_at=datetime.now(timezone.utc).isoformat(),
        ),
    )
    audit.record(
        background_tasks,
        rest,
        org_id=payload.org_id,
        action="finding.created",
        resource_type="findings",
        resource_id=row.get("id"),
        changes={"new": row},
    )
    return {"data": row}


@router.get("/findings/{finding_id}")
async def get_finding(
    finding_id: str,
    org_id: str | None = Depends(optional_org_id),
    rest: SupabaseRest = Depends(session_rest),
) -> dict[str, Any]:
    return {"data": await fetch_row_or_404(rest, "findings", finding_id, label="Finding", org_id=org_id)}


@router.patch("/findings/{finding_id}")
async def update_finding(
    finding_id: str,
    payload: FindingPatchIn,
    background_tasks: BackgroundTasks,
    rest: SupabaseRest = Depends(writer_rest),
    audit: AuditEmitter = Depends(get_audit_emitter),
) -> dict[str, Any]:
    changes = changes_for_update(payload.changes())
    old = await fetch_row_or_404(rest, "findings", finding_id, label="Finding")
    row = await update_row(rest, "findings", finding_id, changes, label="Finding")
    audit.record(
        background_tasks,
        rest,
        org_id=row.get("org_id"),
        action="update",
        resource_type="findings",
        resource_id=finding_id,
        changes={"old": old, "new": row},
    )
    return {"data": row}
