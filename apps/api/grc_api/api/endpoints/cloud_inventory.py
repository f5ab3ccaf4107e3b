from __future__ import annotations

import math
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends, Query

from grc_api.api.deps import (
    get_audit_emitter,
    optional_org_id,
    privileged_rest,
    require_org_id,
    writer_rest,
)
from grc_api.api.schemas.assets import ClassificationPatchIn
from grc_api.core.audit import AuditEmitter
from grc_api.core.errors import ValidationError
from grc_api.core.logging import get_logger
from grc_api.core.settings import Settings, get_settings
from grc_api.core.supabase_rest import SupabaseRest, filter_text, ilike_condition
from grc_api.services.records import fetch_row_or_404, update_row
from grc_api.services.stats import inventory_stats

router = APIRouter(tags=["cloud-inventory"])
logger = get_logger("api.cloud_inventory")

SEARCH_COLUMNS = ("resource_name", "resource_arn", "resource_id")
DEFAULT_OVERRIDE_REASON = "Manual override"


def effective_limit(requested: int | None, settings: Settings) -> int:
    limit = requested if requested is not None else settings.INVENTORY_DEFAULT_PAGE_SIZE
    return min(limit, settings.INVENTORY_MAX_PAGE_SIZE)


def page_descriptor(page: int, limit: int, total: int) -> dict[str, int]:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "totalPages": math.ceil(total / limit) if limit else 0,
    }


@router.get("/cloud-inventory")
async def list_cloud_inventory(
    org_id: str = Depends(require_org_id),
    service: str | None = None,
    provider: str | None = None,
    region: str | None = None,
    environment: str | None = None,
    criticality: str | None = None,
    lifecycle_state: str | None = None,
    internet_exposed: str | None = None,
    data_classification: str | None = None,
    account_id: str | None = None,
    resource_type: str | None = None,
    search: str | None = None,
    page: int = Query(default=1, ge=1),
    limit: int | None = Query(default=None, ge=1),
    settings: Settings = Depends(get_settings),
    rest: SupabaseRest = Depends(privileged_rest),
) -> dict[str, Any]:
    equality_values = {
        "service": service,
        "provider": provider,
        "region": region,
        "environment": environment,
        "criticality": criticality,
        "lifecycle_state": lifecycle_state,
        "data_classification": data_classification,
        "account_id": account_id,
        "resource_type": resource_type,
    }

    query = rest.table("assets").select(count="exact").eq("org_id", org_id)
    for column, value in equality_values.items():
        if value:
            query = query.eq(column, value)
    if internet_exposed in ("true", "false"):
        query = query.eq("internet_exposed", internet_exposed == "true")
    term = (search or "").strip()
    if term:
        query = query.or_(*(ilike_condition(column, term) for column in SEARCH_COLUMNS))

    page_size = effective_limit(limit, settings)
    offset = (page - 1) * page_size
    result = await query.order("last_seen_at", desc=True).range(offset, offset + page_size - 1).execute()

    rows = result.rows
    total = result.count if result.count else len(rows)
    return {"data": rows, "pagination": page_descriptor(page, page_size, total)}


@router.get("/cloud-inventory/stats")
async def cloud_inventory_stats(
    org_id: str = Depends(require_org_id),
    rest: SupabaseRest = Depends(privileged_rest),
) -> dict[str, Any]:
    return {"data": await inventory_stats(rest, org_id)}


@router.get("/cloud-inventory/{asset_id}")
async def get_cloud_asset(
    asset_id: str,
    org_id: str | None = Depends(optional_org_id),
    settings: Settings = Depends(get_settings),
    rest: SupabaseRest = Depends(privileged_rest),
) -> dict[str, Any]:
    asset = await fetch_row_or_404(rest, "assets", asset_id, label="Asset", org_id=org_id)
    findings = await (
        rest.table("findings")
        .select("id, title, severity, status, first_detected_at")
        .eq("asset_id", asset_id)
        .order("first_detected_at", desc=True)
        .limit(settings.CLOUD_ASSET_FINDINGS_LIMIT)
        .execute()
    )
    overrides = await rest.table("asset_overrides").select().eq("asset_id", asset_id).execute()
    return {"data": {**asset, "findings": findings.rows, "overrides": overrides.rows}}


@router.patch("/cloud-inventory/{asset_id}")
async def override_classification(
    asset_id: str,
    payload: ClassificationPatchIn,
    background_tasks: BackgroundTasks,
    org_id: str | None = Depends(optional_org_id),
    rest: SupabaseRest = Depends(writer_rest),
    audit: AuditEmitter = Depends(get_audit_emitter),
) -> dict[str, Any]:
    changes = payload.classification_changes()
    if not changes:
        raise ValidationError("No valid fields to update")

    old = await fetch_row_or_404(rest, "assets", asset_id, label="Asset", org_id=org_id)
    asset = await update_row(rest, "assets", asset_id, changes, label="Asset", org_id=org_id)

    reason = payload.reason or DEFAULT_OVERRIDE_REASON
    overrides = [
        {
            "asset_id": asset_id,
            "field_name": field,
            "override_value": filter_text(value),
            "reason": reason,
        }
        for field, value in changes.items()
    ]
    await rest.table("asset_overrides").upsert(overrides, on_conflict="asset_id,field_name").execute()
    logger.info(
        "classification.override",
        extra={"component": "cloud_inventory", "asset_id": asset_id, "fields": sorted(changes)},
    )

    audit.record(
        background_tasks,
        rest,
        org_id=asset.get("org_id"),
        action="classification.override",
        resource_type="assets",
        resource_id=asset_id,
        changes={"old": old, "new": asset},
    )
    return {"data": asset}
