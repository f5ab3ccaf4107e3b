from typing import Any

from fastapi import APIRouter, Depends, Query

from grc_api.api.deps import require_org_id, session_rest
from grc_api.core.errors import ValidationError
from grc_api.core.supabase_rest import SupabaseRest
from grc_api.services.coverage import portfolio_coverage

router = APIRouter(prefix="/compliance", tags=["compliance"])


def parse_framework_ids(raw: str | None) -> list[str]:
    if raw is None:
        raise ValidationError("framework_ids is required")
    framework_ids = list(dict.fromkeys(part.strip() for part in raw.split(",") if part.strip()))
    if not framework_ids:
        raise ValidationError("At least one framework_id is required")
    return framework_ids


@router.get("/portfolio")
async def get_portfolio(
    org_id: str = Depends(require_org_id),
    framework_ids: str | None = Query(default=None),
    rest: SupabaseRest = Depends(session_rest),
) -> dict[str, Any]:
    return {"data": await portfolio_coverage(rest, org_id, parse_framework_ids(framework_ids))}
