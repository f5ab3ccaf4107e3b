from typing import Any

from fastapi import APIRouter, Depends

from grc_api.api.deps import require_org_id, session_rest
from grc_api.core.supabase_rest import SupabaseRest
from grc_api.services.stats import dashboard_summary

router = APIRouter(tags=["dashboard"])


@router.get("/dashboard")
async def get_dashboard(
    org_id: str = Depends(require_org_id),
    rest: SupabaseRest = Depends(session_rest),
) -> dict[str, Any]:
    return {"data": await dashboard_summary(rest, org_id)}
