from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, status

from grc_api.api.deps import changes_for_update, privileged_rest, require_principal, session_rest, writer_rest
from grc_api.api.schemas.frameworks import FrameworkCreateIn, FrameworkPatchIn
from grc_api.core.errors import ForbiddenError
from grc_api.core.logging import get_logger
from grc_api.core.supabase_jwt import Principal
from grc_api.core.supabase_rest import SupabaseRest
from grc_api.services.records import fetch_row_or_404, insert_row, list_rows, update_row

router = APIRouter(prefix="/frameworks", tags=["frameworks"])
logger = get_logger("api.frameworks")

FRAMEWORK_DETAIL_COLUMNS = """
    *,
    framework_requirements(
        id, code, title, description, category, is_mandatory, sort_order, typical_evidence_types
    )
"""


@router.get("")
async def list_frameworks(rest: SupabaseRest = Depends(privileged_rest)) -> dict[str, Any]:
    rows = await list_rows(
        rest, "frameworks", filters={}, order="name", columns="*, framework_requirements(count)"
    )
    return {"data": rows}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_framework(
    payload: FrameworkCreateIn,
    principal: Principal = Depends(require_principal),
    rest: SupabaseRest = Depends(writer_rest),
) -> dict[str, Any]:
    row = await insert_row(
        rest,
        "frameworks",
        payload.insert_payload(is_custom=True, created_by=principal.user_id),
    )
    logger.info("framework.created", extra={"component": "frameworks", "framework_id": row.get("id")})
    return {"data": row}


@router.get("/{framework_id}")
async def get_framework(framework_id: str, rest: SupabaseRest = Depends(session_rest)) -> dict[str, Any]:
    row = await fetch_row_or_404(
        rest, "frameworks", framework_id, label="Framework", columns=FRAMEWORK_DETAIL_COLUMNS
    )
    return {"data": row}


@router.patch("/{framework_id}")
async def update_framework(
    framework_id: str,
    payload: FrameworkPatchIn,
    rest: SupabaseRest = Depends(writer_rest),
) -> dict[str, Any]:
    changes = changes_for_update(payload.changes(), extra_immutable=("is_custom", "created_by"))
    existing = await fetch_row_or_404(rest, "frameworks", framework_id, label="Framework", columns="is_custom")
    if not existing.get("is_custom"):
        raise ForbiddenError("Cannot modify built-in frameworks")
    row = await update_row(rest, "frameworks", framework_id, changes, label="Framework")
    return {"data": row}


@router.get("/{framework_id}/domains")
async def list_framework_domains(framework_id: str, rest: SupabaseRest = Depends(session_rest)) -> dict[str, Any]:
    rows = await list_rows(
        rest,
        "framework_domains",
        filters={"framework_id": framework_id},
        order="display_order",
        columns="*, framework_requirements(count)",
    )
    return {"data": rows}


@router.get("/{framework_id}/requirements")
async def list_framework_requirements(
    framework_id: str,
    rest: SupabaseRest = Depends(session_rest),
) -> dict[str, Any]:
    rows = await list_rows(
        rest,
        "framework_requirements",
        filters={"framework_id": framework_id},
        order="display_order",
        columns="*, domain:framework_domains(id, code, name)",
    )
    return {"data": rows}
