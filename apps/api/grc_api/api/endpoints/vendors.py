from __future__ import annotations

from datetime import date, datetime, timezone
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
from grc_api.api.schemas.vendors import AssessmentCreateIn, AssessmentPatchIn, VendorCreateIn, VendorPatchIn
from grc_api.core.audit import AuditEmitter
from grc_api.core.errors import NotFoundError, StoreError, ValidationError
from grc_api.core.logging import get_logger
from grc_api.core.supabase_jwt import Principal
from grc_api.core.supabase_rest import SupabaseRest
from grc_api.services.records import archive_row, fetch_row_or_404, insert_row, list_rows, update_row

router = APIRouter(prefix="/vendors", tags=["vendors"])
logger = get_logger("api.vendors")

ARCHIVED_STATUS = "inactive"

VENDOR_LIST_COLUMNS = """
    *,
    vendor_assessments(id, assessment_date, score, risk_rating, status, issues_count)
"""
VENDOR_DETAIL_COLUMNS = """
    *,
    vendor_assessments(
        id, assessment_date, assessment_type, questionnaire_template, score, risk_rating,
        summary, issues_count, documents, status, completed_at
    )
"""


def next_assessment_date(today: date) -> date:
    """Same calendar day one year out; 29 February rolls to 28 February."""
    try:
        return today.replace(year=today.year + 1)
    except ValueError:
        return today.replace(year=today.year + 1, day=28)


async def _update_vendor_quietly(rest: SupabaseRest, vendor_id: str, changes: dict[str, Any], *, event: str) -> None:
    """Follow-up write on the parent vendor. Store failures are logged, not raised."""
    try:
        await rest.table("vendors").update(changes).eq("id", vendor_id).execute()
    except StoreError as exc:
        logger.warning(event, extra={"component": "vendors", "vendor_id": vendor_id, "error": exc.message})


@router.get("")
async def list_vendors(
    org_id: str = Depends(require_org_id),
    vendor_status: str | None = Query(default=None, alias="status"),
    risk_level: str | None = None,
    rest: SupabaseRest = Depends(session_rest),
) -> dict[str, Any]:
    rows = await list_rows(
        rest,
        "vendors",
        filters={"org_id": org_id, "status": vendor_status, "risk_level": risk_level},
        order="name",
        columns=VENDOR_LIST_COLUMNS,
    )
    return {"data": rows}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_vendor(
    payload: VendorCreateIn,
    background_tasks: BackgroundTasks,
    rest: SupabaseRest = Depends(writer_rest),
    audit: AuditEmitter = Depends(get_audit_emitter),
) -> dict[str, Any]:
    row = await insert_row(rest, "vendors", payload.insert_payload(status="pending_review"))
    audit.record(
        background_tasks,
        rest,
        org_id=payload.org_id,
        action="create",
        resource_type="vendors",
        resource_id=row.get("id"),
        changes={"new": row},
    )
    return {"data": row}


@router.get("/{vendor_id}")
async def get_vendor(
    vendor_id: str,
    org_id: str | None = Depends(optional_org_id),
    rest: SupabaseRest = Depends(session_rest),
) -> dict[str, Any]:
    row = await fetch_row_or_404(
        rest, "vendors", vendor_id, label="Vendor", org_id=org_id, columns=VENDOR_DETAIL_COLUMNS
    )
    return {"data": row}


@router.patch("/{vendor_id}")
async def update_vendor(
    vendor_id: str,
    payload: VendorPatchIn,
    background_tasks: BackgroundTasks,
    rest: SupabaseRest = Depends(writer_rest),
    audit: AuditEmitter = Depends(get_audit_emitter),
) -> dict[str, Any]:
    changes = changes_for_update(payload.changes())
    old = await fetch_row_or_404(rest, "vendors", vendor_id, label="Vendor")
    row = await update_row(rest, "vendors", vendor_id, changes, label="Vendor")
    audit.record(
        background_tasks,
        rest,
        org_id=row.get("org_id"),
        action="update",
        resource_type="vendors",
        resource_id=row.get("id"),
        changes={"old": old, "new": row},
    )
    return {"data": row}


@router.delete("/{vendor_id}")
async def archive_vendor(
    vendor_id: str,
    background_tasks: BackgroundTasks,
    rest: SupabaseRest = Depends(writer_rest),
    audit: AuditEmitter = Depends(get_audit_emitter),
) -> dict[str, bool]:
    row = await archive_row(rest, "vendors", vendor_id, status=ARCHIVED_STATUS, label="Vendor")
    audit.record(
        background_tasks,
        rest,
        org_id=row.get("org_id"),
        action="archive",
        resource_type="vendors",
        resource_id=row.get("id"),
        changes={"status": ARCHIVED_STATUS},
    )
    return {"success": True}


@router.get("/{vendor_id}/assessments")
async def list_assessments(vendor_id: str, rest: SupabaseRest = Depends(session_rest)) -> dict[str, Any]:
    rows = await list_rows(
        rest, "vendor_assessments", filters={"vendor_id": vendor_id}, order="assessment_date", desc=True
    )
    return {"data": rows}


@router.post("/{vendor_id}/assessments", status_code=status.HTTP_201_CREATED)
async def create_assessment(
    vendor_id: str,
    payload: AssessmentCreateIn,
    principal: Principal = Depends(require_principal),
    rest: SupabaseRest = Depends(writer_rest),
) -> dict[str, Any]:
    now = datetime.now(timezone.utc)
    assessment = await insert_row(
        rest,
        "vendor_assessments",
        payload.insert_payload(
            vendor_id=vendor_id,
            assessment_date=now.date().isoformat(),
            status="in_progress",
            assessor_id=principal.user_id,
        ),
    )
    stamp = {
        "last_assessed_at": now.isoformat(),
        "next_assessment_date": next_assessment_date(now.date()).isoformat(),
    }
    await _update_vendor_quietly(rest, vendor_id, stamp, event="vendor.assessment_stamp_failed")
    return {"data": assessment}


@router.patch("/{vendor_id}/assessments")
async def update_assessment(
    vendor_id: str,
    payload: AssessmentPatchIn,
    rest: SupabaseRest = Depends(writer_rest),
) -> dict[str, Any]:
    changes = payload.assessment_changes()
    if payload.status == "completed":
        changes["completed_at"] = datetime.now(timezone.utc).isoformat()
    if not changes:
        raise ValidationError("No fields to update")

    assessment = await (
        rest.table("vendor_assessments")
        .update(changes)
        .eq("id", payload.assessment_id)
        .eq("vendor_id", vendor_id)
        .maybe_single()
    )
    if assessment is None:
        raise NotFoundError("Assessment not found")

    if payload.risk_rating:
        await _update_vendor_quietly(
            rest, vendor_id, {"risk_level": payload.risk_rating}, event="vendor.risk_level_update_failed"
        )
    return {"data": assessment}
