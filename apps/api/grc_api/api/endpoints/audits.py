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
from grc_api.api.schemas.audits import (
    AuditCreateIn,
    AuditFindingCreateIn,
    AuditPatchIn,
    ReadinessItemCreateIn,
)
from grc_api.core.audit import AuditEmitter
from grc_api.core.supabase_rest import SupabaseRest
from grc_api.services.records import archive_row, fetch_row_or_404, insert_row, list_rows, update_row
from grc_api.services.stats import attach_counts

router = APIRouter(tags=["audits"])

ARCHIVED_STATUS = "closed"


@router.get("/audits")
async def list_audits(
    org_id: str = Depends(require_org_id),
    rest: SupabaseRest = Depends(session_rest),
) -> dict[str, Any]:
    rows = await list_rows(rest, "audits", filters={"org_id": org_id}, order="created_at", desc=True)
    counted = await attach_counts(rest, rows, table="audit_findings", foreign_key="audit_id", org_id=org_id)
    return {"data": counted}


@router.post("/audits", status_code=status.HTTP_201_CREATED)
async def create_audit(
    payload: AuditCreateIn,
    background_tasks: BackgroundTasks,
    rest: SupabaseRest = Depends(writer_rest),
    audit: AuditEmitter = Depends(get_audit_emitter),
) -> dict[str, Any]:
    row = await insert_row(rest, "audits", payload.insert_payload(status="planning"))
    audit.record(
        background_tasks,
        rest,
        org_id=payload.org_id,
        action="create",
        resource_type="audits",
        resource_id=row.get("id"),
        changes={"new": row},
    )
    return {"data": row}


@router.get("/audits/{audit_id}")
async def get_audit(
    audit_id: str,
    org_id: str | None = Depends(optional_org_id),
    rest: SupabaseRest = Depends(session_rest),
) -> dict[str, Any]:
    row = await fetch_row_or_404(
        rest, "audits", audit_id, label="Audit", org_id=org_id, columns="*, audit_findings(*)"
    )
    return {"data": row}


@router.patch("/audits/{audit_id}")
async def update_audit(
    audit_id: str,
    payload: AuditPatchIn,
    background_tasks: BackgroundTasks,
    rest: SupabaseRest = Depends(writer_rest),
    audit: AuditEmitter = Depends(get_audit_emitter),
) -> dict[str, Any]:
    changes = changes_for_update(payload.changes())
    old = await fetch_row_or_404(rest, "audits", audit_id, label="Audit")
    row = await update_row(rest, "audits", audit_id, changes, label="Audit")
    audit.record(
        background_tasks,
        rest,
        org_id=row.get("org_id"),
        action="update",
        resource_type="audits",
        resource_id=row.get("id"),
        changes={"old": old, "new": row},
    )
    return {"data": row}


@router.delete("/audits/{audit_id}")
async def archive_audit(
    audit_id: str,
    background_tasks: BackgroundTasks,
    rest: SupabaseRest = Depends(writer_rest),
    audit: AuditEmitter = Depends(get_audit_emitter),
) -> dict[str, bool]:
    row = await archive_row(rest, "audits", audit_id, status=ARCHIVED_STATUS, label="Audit")
    audit.record(
        background_tasks,
        rest,
        org_id=row.get("org_id"),
        action="archive",
        resource_type="audits",
        resource_id=row.get("id"),
        changes={"status": ARCHIVED_STATUS},
    )
    return {"success": True}


@router.get("/audits/{audit_id}/findings")
async def list_audit_findings(
    audit_id: str,
    org_id: str | None = Depends(optional_org_id),
    rest: SupabaseRest = Depends(session_rest),
) -> dict[str, Any]:
    rows = await list_rows(
        rest,
        "audit_findings",
        filters={"audit_id": audit_id, "org_id": org_id},
        order="created_at",
        desc=True,
    )
    return {"data": rows}


@router.post("/audits/{audit_id}/findings", status_code=status.HTTP_201_CREATED)
async def create_audit_finding(
    audit_id: str,
    payload: AuditFindingCreateIn,
    background_tasks: BackgroundTasks,
    rest: SupabaseRest = Depends(writer_rest),
    audit: AuditEmitter = Depends(get_audit_emitter),
) -> dict[str, Any]:
    row = await insert_row(
        rest,
        "audit_findings",
        payload.insert_payload(audit_id=audit_id, status="open"),
    )
    audit.record(
        background_tasks,
        rest,
        org_id=payload.org_id,
        action="finding.created",
        resource_type="audit_findings",
        resource_id=row.get("id"),
        changes={"new": row},
    )
    return {"data": row}


@router.get("/audits/{audit_id}/readiness")
async def list_readiness_items(
    audit_id: str,
    org_id: str | None = Depends(optional_org_id),
    rest: SupabaseRest = Depends(session_rest),
) -> dict[str, Any]:
    rows = await list_rows(
        rest,
        "audit_readiness_items",
        filters={"audit_id": audit_id, "org_id": org_id},
        order="created_at",
        desc=True,
    )
    return {"data": rows}


@router.post("/audits/{audit_id}/readiness", status_code=status.HTTP_201_CREATED)
async def create_readiness_item(
    audit_id: str,
    payload: ReadinessItemCreateIn,
    background_tasks: BackgroundTasks,
    rest: SupabaseRest = Depends(writer_rest),
    audit: AuditEmitter = Depends(get_audit_emitter),
) -> dict[str, Any]:
    row = await insert_row(rest, "audit_readiness_items", payload.insert_payload(audit_id=audit_id))
    audit.record(
        background_tasks,
        rest,
        org_id=payload.org_id,
        action="readiness.created",
        resource_type="audit_readiness_items",
        resource_id=row.get("id"),
        changes={"new": row},
    )
    return {"data": row}
