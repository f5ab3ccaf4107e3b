from __future__ import annotations

from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends, status

from grc_api.api.deps import (
    changes_for_update,
    get_audit_emitter,
    optional_org_id,
    privileged_rest,
    require_org_id,
    require_principal,
    session_rest,
    writer_rest,
)
from grc_api.api.schemas.controls import ControlCreateIn, ControlPatchIn
from grc_api.core.audit import AuditEmitter
from grc_api.core.errors import ConflictError, StoreError
from grc_api.core.supabase_jwt import Principal
from grc_api.core.supabase_rest import SupabaseRest
from grc_api.services.records import fetch_row_or_404, insert_row, list_rows, update_row

router = APIRouter(prefix="/controls", tags=["controls"])

CONTROL_DETAIL_COLUMNS = """
    *,
    control_requirement_mappings(
        id, coverage_percentage, mapping_notes,
        framework_requirements(id, code, title, category, frameworks(id, code, name))
    ),
    evidence_control_links(
        evidence(id, title, description, collected_at, source, file_type, hash)
    ),
    risk_control_links(
        effectiveness, notes,
        risks(id, title, category, inherent_risk_score, residual_risk_score, status)
    )
"""


@router.get("")
async def list_controls(
    org_id: str = Depends(require_org_id),
    rest: SupabaseRest = Depends(privileged_rest),
) -> dict[str, Any]:
    rows = await list_rows(rest, "controls", filters={"org_id": org_id}, order="code")
    return {"data": rows}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_control(
    payload: ControlCreateIn,
    background_tasks: BackgroundTasks,
    principal: Principal = Depends(require_principal),
    rest: SupabaseRest = Depends(writer_rest),
    audit: AuditEmitter = Depends(get_audit_emitter),
) -> dict[str, Any]:
    try:
        row = await insert_row(
            rest,
            "controls",
            payload.insert_payload(owner_id=payload.owner_id or principal.user_id),
        )
    except StoreError as exc:
        if exc.is_unique_violation:
            raise ConflictError("A control with this code already exists in this organization") from exc
        raise

    audit.record(
        background_tasks,
        rest,
        org_id=payload.org_id,
        action="control.created",
        resource_type="controls",
        resource_id=row.get("id"),
        changes={"new": row},
    )
    return {"data": row}


@router.get("/{control_id}")
async def get_control(
    control_id: str,
    org_id: str | None = Depends(optional_org_id),
    rest: SupabaseRest = Depends(session_rest),
) -> dict[str, Any]:
    row = await fetch_row_or_404(
        rest, "controls", control_id, label="Control", org_id=org_id, columns=CONTROL_DETAIL_COLUMNS
    )
    return {"data": row}


@router.patch("/{control_id}")
async def update_control(
    control_id: str,
    payload: ControlPatchIn,
    background_tasks: BackgroundTasks,
    rest: SupabaseRest = Depends(writer_rest),
    audit: AuditEmitter = Depends(get_audit_emitter),
) -> dict[str, Any]:
    changes = changes_for_update(payload.changes())
    old = await fetch_row_or_404(rest, "controls", control_id, label="Control")
    row = await update_row(rest, "controls", control_id, changes, label="Control")
    audit.record(
        background_tasks,
        rest,
        org_id=row.get("org_id"),
        action="update",
        resource_type="controls",
        resource_id=row.get("id"),
        changes={"old": old, "new": row},
    )
    return {"data": row}
