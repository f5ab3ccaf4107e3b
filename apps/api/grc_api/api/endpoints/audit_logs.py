from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query

from grc_api.api.deps import privileged_rest, require_org_id
from grc_api.core.settings import Settings, get_settings
from grc_api.core.supabase_rest import SupabaseRest

router = APIRouter(tags=["audit-logs"])


@router.get("/audit-logs")
async def list_audit_logs(
    org_id: str = Depends(require_org_id),
    limit: int | None = Query(default=None, ge=1),
    settings: Settings = Depends(get_settings),
    rest: SupabaseRest = Depends(privileged_rest),
) -> dict[str, Any]:
    effective = min(limit or settings.AUDIT_LOG_DEFAULT_LIMIT, settings.AUDIT_LOG_MAX_LIMIT)
    result = await (
        rest.table("audit_logs")
        .select()
        .eq("org_id", org_id)
        .order("performed_at", desc=True)
        .limit(effective)
        .execute()
    )
    return {"data": result.rows}
