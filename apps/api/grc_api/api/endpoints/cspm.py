from __future__ import annotations

from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends, status

from grc_api.api.deps import get_audit_emitter, require_org_id, session_rest, writer_rest
from grc_api.api.schemas.cloud import CspmFindingCreateIn
from grc_api.core.audit import AuditEmitter
from grc_api.core.supabase_rest import SupabaseRest
from grc_api.services.records import insert_row, list_rows
from grc_api.services.stats import cspm_stats

router = APIRouter(prefix="/cspm", tags=["cspm"])


@router.get("/findings")
async def list_cspm_findings(
    org_id: str = Depends(require_org_id),
    severity: str | None = None,
    cloud_account_id: str | None = None,
    rest: SupabaseRest = Depends(session_rest),
) -> dict[str, Any]:
    rows = await list_rows(
        rest,
        "cspm_findings",
        filters={"org_id": org_id, "severity": severity, "cloud_account_id": cloud_account_id},
        order="created_at",
        desc=True,
    )
    return {"data": rows}


@router.post("/findings", status_code=status.HTTP_201_CREATED)
async def create_cspm_finding(
    payload: CspmFindingCreateIn,
    background_tasks: BackgroundTasks,
    rest: SupabaseRest = Depends(writer_rest),
    audit: AuditEmitter = Depends(get_audit_emitter),
) -> dict[str, Any]:
    row = await insert_row(rest, "cspm_findings", payload.insert_payload())
    audit.record(
        background_tasks,
        rest,
        org_id=payload.org_id,
        action="finding.created",
        resource_type="cspm_findings",
        resource_id=row.get("id"),
        changes={"new": row},
    )
    return {"data": row}


@router.get("/stats")
async def get_cspm_stats(
    org_id: str = Depends(require_org_id),
    rest: SupabaseRest = Depends(session_rest),
) -> dict[str, Any]:
    return {"data": await cspm_stats(rest, org_id)}
