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
    require_principal,
    session_rest,
    writer_rest,
)
from grc_api.api.schemas.risks import (
    DEFAULT_IMPACT,
    DEFAULT_LIKELIHOOD,
    REVIEW_FIELDS,
    RiskCreateIn,
    RiskPatchIn,
    TreatmentCreateIn,
)
from grc_api.core.audit import AuditEmitter
from grc_api.core.errors import StoreError
from grc_api.core.logging import get_logger
from grc_api.core.supabase_jwt import Principal
from grc_api.core.supabase_rest import SupabaseRest
from grc_api.services.records import archive_row, fetch_row_or_404, insert_row, list_rows, update_row

router = APIRouter(prefix="/risks", tags=["risks"])
logger = get_logger("api.risks")

ARCHIVED_STATUS = "closed"

RISK_DETAIL_COLUMNS = """
    *,
    risk_control_links(
        id, effectiveness, notes,
        controls(id, code, name, status, effectiveness_score)
    ),
    risk_treatments(
        id, action, description, status, due_date, cost_estimate, created_at, completed_at
    )
"""


def build_risk_row(payload: RiskCreateIn, principal: Principal) -> dict[str, Any]:
    likelihood = payload.inherent_likelihood or DEFAULT_LIKELIHOOD
    impact = payload.inherent_impact or DEFAULT_IMPACT
    return {
        "org_id": payload.org_id,
        "title": payload.title,
        "description": payload.description,
        "category": payload.category,
        "risk_source": payload.risk_source,
        "inherent_likelihood": likelihood,
        "inherent_impact": impact,
        "inherent_risk_score": likelihood * impact,
        "risk_response": payload.risk_appetite,
        "status": "open",
        "owner_id": payload.owner_id or principal.user_id,
        "review_date": (
            payload.target_resolution_date.isoformat() if payload.target_resolution_date else None
        ),
    }


@router.get("")
async def list_risks(
    org_id: str = Depends(require_org_id),
    rest: SupabaseRest = Depends(privileged_rest),
) -> dict[str, Any]:
    rows = await list_rows(rest, "risks", filters={"org_id": org_id}, order="inherent_risk_score", desc=True)
    return {"data": rows}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_risk(
    payload: RiskCreateIn,
    background_tasks: BackgroundTasks,
    principal: Principal = Depends(require_principal),
    rest: SupabaseRest = Depends(writer_rest),
    audit: AuditEmitter = Depends(get_audit_emitter),
) -> dict[str, Any]:
    row = await insert_row(rest, "risks", build_risk_row(payload, principal))
    audit.record(
        background_tasks,
        rest,
        org_id=payload.org_id,
        action="risk.created",
        resource_type="risks",
        resource_id=row.get("id"),
        changes={"new": row},
    )
    return {"data": row}


@router.get("/{risk_id}")
async def get_risk(
    risk_id: str,
    org_id: str | None = Depends(optional_org_id),
    rest: SupabaseRest = Depends(session_rest),
) -> dict[str, Any]:
    row = await fetch_row_or_404(rest, "risks", risk_id, label="Risk", org_id=org_id, columns=RISK_DETAIL_COLUMNS)
    return {"data": row}


@router.patch("/{risk_id}")
async def update_risk(
    risk_id: str,
    payload: RiskPatchIn,
    background_tasks: BackgroundTasks,
    rest: SupabaseRest = Depends(writer_rest),
    audit: AuditEmitter = Depends(get_audit_emitter),
) -> dict[str, Any]:
    changes = changes_for_update(payload.changes())
    if any(changes.get(field) for field in REVIEW_FIELDS):
        changes["last_reviewed_at"] = datetime.now(timezone.utc).isoformat()

    old = await fetch_row_or_404(rest, "risks", risk_id, label="Risk")
    row = await update_row(rest, "risks", risk_id, changes, label="Risk")
    audit.record(
        background_tasks,
        rest,
        org_id=row.get("org_id"),
        action="update",
        resource_type="risks",
        resource_id=row.get("id"),
        changes={"old": old, "new": row},
    )
    return {"data": row}


@router.delete("/{risk_id}")
async def archive_risk(
    risk_id: str,
    background_tasks: BackgroundTasks,
    rest: SupabaseRest = Depends(writer_rest),
    audit: AuditEmitter = Depends(get_audit_emitter),
) -> dict[str, bool]:
    row = await archive_row(rest, "risks", risk_id, status=ARCHIVED_STATUS, label="Risk")
    audit.record(
        background_tasks,
        rest,
        org_id=row.get("org_id"),
        action="archive",
        resource_type="risks",
        resource_id=row.get("id"),
        changes={"status": ARCHIVED_STATUS},
    )
    return {"success": True}


@router.get("/{risk_id}/treatments")
async def list_treatments(risk_id: str, rest: SupabaseRest = Depends(session_rest)) -> dict[str, Any]:
    rows = await list_rows(rest, "risk_treatments", filters={"risk_id": risk_id}, order="created_at", desc=True)
    return {"data": rows}


@router.post("/{risk_id}/treatments", status_code=status.HTTP_201_CREATED)
async def create_treatment(
    risk_id: str,
    payload: TreatmentCreateIn,
    background_tasks: BackgroundTasks,
    principal: Principal = Depends(require_principal),
    rest: SupabaseRest = Depends(writer_rest),
    audit: AuditEmitter = Depends(get_audit_emitter),
) -> dict[str, Any]:
    risk = await fetch_row_or_404(rest, "risks", risk_id, label="Risk", columns="id, org_id, risk_response")
    treatment = await insert_row(
        rest,
        "risk_treatments",
        payload.insert_payload(
            risk_id=risk_id,
            responsible_user_id=payload.responsible_user_id or principal.user_id,
            status="not_started",
        ),
    )

    # Only the first treatment decides the risk response.
    try:
        await (
            rest.table("risks")
            .update({"risk_response": payload.action})
            .eq("id", risk_id)
            .is_("risk_response", None)
            .execute()
        )
    except StoreError as exc:
        logger.warning(
            "risk.response_update_failed",
            extra={"component": "risks", "risk_id": risk_id, "error": exc.message},
        )

    audit.record(
        background_tasks,
        rest,
        org_id=risk.get("org_id"),
        action="treatment.created",
        resource_type="risk_treatments",
        resource_id=treatment.get("id"),
        changes={"new": treatment},
    )
    return {"data": treatment}
