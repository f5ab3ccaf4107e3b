from __future__ import annotations

from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status

from grc_api.api.deps import (
    changes_for_update,
    get_audit_emitter,
    optional_org_id,
    require_org_id,
    session_rest,
    writer_rest,
)
from grc_api.api.schemas.assets import AssetCreateIn, AssetPatchIn
from grc_api.core.audit import AuditEmitter
from grc_api.core.errors import NotFoundError
from grc_api.core.supabase_rest import SupabaseRest
from grc_api.services.records import fetch_row_or_404, insert_row, list_rows, update_row

router = APIRouter(tags=["assets"])


@router.get("/assets")
async def list_assets(
    org_id: str = Depends(require_org_id),
    asset_type: str | None = Query(default=None, alias="type"),
    criticality: str | None = None,
    rest: SupabaseRest = Depends(session_rest),
) -> dict[str, Any]:
    rows = await list_rows(
        rest,
        "assets",
        filters={"org_id": org_id, "type": asset_type, "criticality": criticality},
        order="name",
    )
    return {"data": rows}


@router.post("/assets", status_code=status.HTTP_201_CREATED)
async def create_asset(
    payload: AssetCreateIn,
    background_tasks: BackgroundTasks,
    rest: SupabaseRest = Depends(writer_rest),
    audit: AuditEmitter = Depends(get_audit_emitter),
) -> dict[str, Any]:
    row = await insert_row(rest, "assets", payload.insert_payload())
    audit.record(
        background_tasks,
        rest,
        org_id=payload.org_id,
        action="create",
        resource_type="assets",
        resource_id=row.get("id"),
        changes={"new": row},
    )
    return {"data": row}


@router.get("/assets/{asset_id}")
async def get_asset(
    asset_id: str,
    org_id: str | None = Depends(optional_org_id),
    rest: SupabaseRest = Depends(session_rest),
) -> dict[str, Any]:
    row = await fetch_row_or_404(rest, "assets", asset_id, label="Asset", org_id=org_id)
    return {"data": row}


@router.patch("/assets/{asset_id}")
async def update_asset(
    asset_id: str,
    payload: AssetPatchIn,
    background_tasks: BackgroundTasks,
    rest: SupabaseRest = Depends(writer_rest),
    audit: AuditEmitter = Depends(get_audit_emitter),
) -> dict[str, Any]:
    changes = changes_for_update(payload.changes())
    old = await fetch_row_or_404(rest, "assets", asset_id, label="Asset")
    row = await update_row(rest, "assets", asset_id, changes, label="Asset")
    audit.record(
        background_tasks,
        rest,
        org_id=row.get("org_id"),
        action="update",
        resource_type="assets",
        resource_id=row.get("id"),
        changes={"old": old, "new": row},
    )
    return {"data": row}


@router.delete("/assets/{asset_id}")
async def delete_asset(
    asset_id: str,
    background_tasks: BackgroundTasks,
    rest: SupabaseRest = Depends(writer_rest),
    audit: AuditEmitter = Depends(get_audit_emitter),
) -> dict[str, bool]:
    row = await rest.table("assets").delete().eq("id", asset_id).maybe_single()
    if row is None:
        raise NotFoundError("Asset not found")
    audit.record(
        background_tasks,
        rest,
        org_id=row.get("org_id"),
        action="delete",
        resource_type="assets",
        resource_id=row.get("id"),
        changes={"deleted": True},
    )
    return {"success": True}
