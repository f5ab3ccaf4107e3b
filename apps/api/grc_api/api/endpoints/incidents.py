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
from grc_api.api.schemas.incidents import IncidentCreateIn, IncidentPatchIn, TimelineEventCreateIn
from grc_api.core.audit import AuditEmitter
from grc_api.core.supabase_rest import SupabaseRest
from grc_api.services.records import archive_row, fetch_row_or_404, insert_row, list_rows, update_row

router = APIRouter(prefix="/incidents", tags=["incidents"])

ARCHIVED_STATUS = "closed"


@router.get("")
async def list_incidents(
    org_id: str = Depends(require_org_id),
    rest: SupabaseRest = Depends(session_rest),
) -> dict[str, Any]:
    rows = await list_rows(rest, "incidents", filters={"org_id": org_id}, order="detected_at", desc=True)
    return {"data": rows}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_incident(
    payload: IncidentCreateIn,
    background_tasks: BackgroundTasks,
    rest: SupabaseRest = Depends(writer_rest),
    audit: AuditEmitter = Depends(get_audit_emitter),
) -> dict[str, Any]:
    # Status is left to the store default.
    row = await insert_row(rest, "incidents", payload.insert_payload())
    audit.record(
        background_tasks,
        rest,
        org_id=payload.org_id,
        action="create",
        resource_type="incidents",
        resource_id=row.get("id"),
        changes={"new": row},
    )
    return {"data": row}


@router.get("/{incident_id}")
async def get_incident(
    incident_id: str,
    org_id: str | None = Depends(optional_org_id),
    rest: SupabaseRest = Depends(session_rest),
) -> dict[str, Any]:
    row = await fetch_row_or_404(
        rest, "incidents", incident_id, label="Incident", org_id=org_id, columns="*, incident_timeline(*)"
    )
    return {"data": row}


@router.patch("/{incident_id}")
async def update_incident(
    incident_id: str,
    payload: IncidentPatchIn,
    background_tasks: BackgroundTasks,
    rest: SupabaseRest = Depends(writer_rest),
    audit: AuditEmitter = Depends(get_audit_emitter),
) -> dict[str, Any]:
    changes = changes_for_update(payload.changes())
    old = await fetch_row_or_404(rest, "incidents", incident_id, label="Incident")
    row = await update_row(rest, "incidents", incident_id, changes, label="Incident")
    audit.record(
        background_tasks,
        rest,
        org_id=row.get("org_id"),
        action="update",
        resource_type="incidents",
        resource_id=row.get("id"),
        changes={"old": old, "new": row},
    )
    return {"data": row}


@router.delete("/{incident_id}")
async def archive_incident(
    incident_id: str,
    background_tasks: BackgroundTasks,
    rest: SupabaseRest = Depends(writer_rest),
    audit: AuditEmitter = Depends(get_audit_emitter),
) -> dict[str, bool]:
    row = await archive_row(rest, "incidents", incident_id, status=ARCHIVED_STATUS, label="Incident")
    audit.record(
        background_tasks,
        rest,
        org_id=row.get("org_id"),
        action="archive",
        resource_type="incidents",
        resource_id=row.get("id"),
        changes={"status": ARCHIVED_STATUS},
    )
    return {"success": True}


@router.get("/{incident_id}/timeline")
async def list_timeline(incident_id: str, rest: SupabaseRest = Depends(session_rest)) -> dict[str, Any]:
    rows = await list_rows(rest, "incident_timeline", filters={"incident_id": incident_id}, order="created_at")
    return {"data": rows}


@router.post("/{incident_id}/timeline", status_code=status.HTTP_201_CREATED)
async def add_timeline_event(
    incident_id: str,
    payload: TimelineEventCreateIn,
    rest: SupabaseRest = Depends(writer_rest),
) -> dict[str, Any]:
    row = await insert_row(rest, "incident_timeline", payload.insert_payload(incident_id=incident_id))
    return {"data": row}
