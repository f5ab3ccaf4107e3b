from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends, status

from grc_api.api.deps import changes_for_update, get_audit_emitter, require_principal, session_rest, writer_rest
from grc_api.api.schemas.organizations import OrganizationCreateIn, OrganizationPatchIn
from grc_api.auth.roles import enforce_org_admin
from grc_api.core.audit import AuditEmitter
from grc_api.core.errors import ConflictError, StoreError
from grc_api.core.logging import get_logger
from grc_api.core.supabase_jwt import Principal
from grc_api.core.supabase_rest import Row, SupabaseRest
from grc_api.services.records import fetch_row_or_404, insert_row, update_row
from grc_api.services.stats import organization_stats, parse_timestamp

router = APIRouter(prefix="/organizations", tags=["organizations"])
logger = get_logger("api.organizations")

MEMBERSHIP_COLUMNS = """
    role,
    is_external_auditor,
    access_expires_at,
    organizations(id, name, slug, industry, stage, subscription_tier, created_at)
"""


def _membership_active(membership: Row, now: datetime) -> bool:
    expires_at = parse_timestamp(membership.get("access_expires_at"))
    return expires_at is None or expires_at > now


def _organization_from_membership(membership: Row) -> Row:
    organization = membership.get("organizations")
    base = organization if isinstance(organization, dict) else {}
    return {
        **base,
        "role": membership.get("role"),
        "is_external_auditor": membership.get("is_external_auditor"),
    }


@router.get("")
async def list_organizations(
    principal: Principal = Depends(require_principal),
    rest: SupabaseRest = Depends(writer_rest),
) -> dict[str, Any]:
    result = await (
        rest.table("organization_members").select(MEMBERSHIP_COLUMNS).eq("user_id", principal.user_id).execute()
    )
    now = datetime.now(timezone.utc)
    organizations = [
        _organization_from_membership(membership)
        for membership in result.rows
        if _membership_active(membership, now)
    ]
    return {"data": organizations}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_organization(
    payload: OrganizationCreateIn,
    background_tasks: BackgroundTasks,
    principal: Principal = Depends(require_principal),
    rest: SupabaseRest = Depends(writer_rest),
    audit: AuditEmitter = Depends(get_audit_emitter),
) -> dict[str, Any]:
    try:
        organization = await insert_row(rest, "organizations", payload.insert_payload(subscription_tier="free"))
    except StoreError as exc:
        if exc.is_unique_violation:
            raise ConflictError("An organization with this slug already exists") from exc
        raise

    try:
        await insert_row(
            rest,
            "organization_members",
            {
                "org_id": organization.get("id"),
                "user_id": principal.user_id,
                "role": "owner",
                "invited_by": principal.user_id,
            },
        )
    except StoreError as exc:
        logger.error(
            "organization.owner_membership_failed",
            extra={"component": "organizations", "org_id": organization.get("id"), "error": exc.message},
        )
        await rest.table("organizations").delete().eq("id", organization.get("id")).execute()
        raise StoreError("Failed to create organization") from exc

    audit.record(
        background_tasks,
        rest,
        org_id=organization.get("id"),
        action="create",
        resource_type="organizations",
        resource_id=organization.get("id"),
        changes={"new": organization},
    )
    return {"data": organization}


@router.get("/{organization_id}")
async def get_organization(
    organization_id: str,
    rest: SupabaseRest = Depends(session_rest),
) -> dict[str, Any]:
    organization = await fetch_row_or_404(rest, "organizations", organization_id, label="Organization")
    stats = await organization_stats(rest, organization_id)
    return {"data": {**organization, "stats": stats}}


@router.patch("/{organization_id}")
async def update_organization(
    organization_id: str,
    payload: OrganizationPatchIn,
    background_tasks: BackgroundTasks,
    principal: Principal = Depends(require_principal),
    rest: SupabaseRest = Depends(writer_rest),
    audit: AuditEmitter = Depends(get_audit_emitter),
) -> dict[str, Any]:
    await enforce_org_admin(rest, principal, organization_id)
    changes = changes_for_update(payload.changes(), extra_immutable=("slug",))
    old = await fetch_row_or_404(rest, "organizations", organization_id, label="Organization")
    organization = await update_row(rest, "organizations", organization_id, changes, label="Organization")
    audit.record(
        background_tasks,
        rest,
        org_id=organization_id,
        action="update",
        resource_type="organizations",
        resource_id=organization_id,
        changes={"old": old, "new": organization},
    )
    return {"data": organization}
