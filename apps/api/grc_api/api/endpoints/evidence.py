from __future__ import annotations

import hashlib
import json
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status

from grc_api.api.deps import get_audit_emitter, require_org_id, require_principal, session_rest, writer_rest
from grc_api.api.schemas.evidence import EvidenceCreateIn
from grc_api.core.audit import AuditEmitter
from grc_api.core.errors import ConflictError, ForbiddenError, StoreError
from grc_api.core.logging import get_logger
from grc_api.core.settings import Settings, get_settings
from grc_api.core.supabase_jwt import Principal
from grc_api.core.supabase_rest import SupabaseRest
from grc_api.services.coverage import evidence_mapping
from grc_api.services.records import fetch_row_or_404, insert_row

router = APIRouter(prefix="/evidence", tags=["evidence"])
logger = get_logger("api.evidence")

EVIDENCE_LIST_COLUMNS = """
    *,
    evidence_control_links(controls(id, code, name))
"""
EVIDENCE_DETAIL_COLUMNS = """
    *,
    evidence_control_links(linked_at, controls(id, code, name, status, category))
"""


def content_hash(payload: Any, file_path: str | None) -> str:
    """SHA-256 of the JSON payload when present, otherwise of the file path."""
    if payload is not None:
        content = json.dumps(payload, separators=(",", ":"), ensure_ascii=False)
    else:
        content = file_path or ""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


@router.get("")
async def list_evidence(
    org_id: str = Depends(require_org_id),
    control_id: str | None = Query(default=None),
    source: str | None = Query(default=None),
    limit: int = Query(default=50, ge=1),
    offset: int = Query(default=0, ge=0),
    settings: Settings = Depends(get_settings),
    rest: SupabaseRest = Depends(session_rest),
) -> dict[str, Any]:
    limit = min(limit, settings.INVENTORY_MAX_PAGE_SIZE)
    query = rest.table("evidence").select(EVIDENCE_LIST_COLUMNS, count="exact").eq("org_id", org_id)
    if source:
        query = query.eq("source", source)

    if control_id:
        links = await (
            rest.table("evidence_control_links").select("evidence_id").eq("control_id", control_id).execute()
        )
        evidence_ids = [row["evidence_id"] for row in links.rows if row.get("evidence_id")]
        if not evidence_ids:
            return {"data": [], "count": 0, "limit": limit, "offset": offset}
        query = query.in_("id", evidence_ids)

    result = await query.order("collected_at", desc=True).range(offset, offset + limit - 1).execute()
    rows = result.rows
    return {
        "data": rows,
        "count": result.count if result.count is not None else len(rows),
        "limit": limit,
        "offset": offset,
    }


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_evidence(
    payload: EvidenceCreateIn,
    background_tasks: BackgroundTasks,
    principal: Principal = Depends(require_principal),
    rest: SupabaseRest = Depends(writer_rest),
    audit: AuditEmitter = Depends(get_audit_emitter),
) -> dict[str, Any]:
    record = payload.insert_payload(
        hash=content_hash(payload.payload, payload.file_path),
        collector_user_id=principal.user_id,
        collected_at=datetime.now(timezone.utc).isoformat(),
    )
    control_ids = record.pop("control_ids")
    try:
        evidence = await insert_row(rest, "evidence", record)
    except StoreError as exc:
        if exc.is_unique_violation:
            raise ConflictError("Evidence with this content already exists") from exc
        raise

    if control_ids:
        links = [
            {"evidence_id": evidence.get("id"), "control_id": control_id, "linked_by": principal.user_id}
            for control_id in dict.fromkeys(control_ids)
        ]
        try:
            await rest.table("evidence_control_links").insert(links).execute()
        except StoreError as exc:
            logger.warning(
                "evidence.link_failed",
                extra={"component": "evidence", "evidence_id": evidence.get("id"), "error": exc.message},
            )

    audit.record(
        background_tasks,
        rest,
        org_id=payload.org_id,
        action="create",
        resource_type="evidence",
        resource_id=evidence.get("id"),
        changes={"new": evidence},
    )
    return {"data": evidence}


@router.get("/mapping")
async def get_evidence_mapping(
    org_id: str = Depends(require_org_id),
    rest: SupabaseRest = Depends(session_rest),
) -> dict[str, Any]:
    return {"data": await evidence_mapping(rest, org_id)}


@router.get("/{evidence_id}")
async def get_evidence(
    evidence_id: str,
    background_tasks: BackgroundTasks,
    rest: SupabaseRest = Depends(session_rest),
    audit: AuditEmitter = Depends(get_audit_emitter),
) -> dict[str, Any]:
    row = await fetch_row_or_404(rest, "evidence", evidence_id, label="Evidence", columns=EVIDENCE_DETAIL_COLUMNS)
    # Reads of evidence are part of the audit trail.
    audit.record(
        background_tasks,
        rest,
        org_id=row.get("org_id"),
        action="access",
        resource_type="evidence",
        resource_id=row.get("id"),
        changes=None,
    )
    return {"data": row}


@router.delete("/{evidence_id}")
async def delete_evidence(evidence_id: str) -> None:
    raise ForbiddenError("Evidence records are immutable and cannot be deleted")
