from __future__ import annotations

from dataclasses import dataclass

from grc_api.core.errors import ForbiddenError
from grc_api.core.supabase_jwt import Principal
from grc_api.core.supabase_rest import SupabaseRest

ORG_ADMIN_ROLES: frozenset[str] = frozenset({"owner", "admin"})


@dataclass(frozen=True)
class OrgRoleContext:
    org_id: str
    user_id: str
    role: str


async def select_member_role(rest: SupabaseRest, org_id: str, user_id: str) -> str | None:
    row = await (
        rest.table("organization_members")
        .select("role")
        .eq("org_id", org_id)
        .eq("user_id", user_id)
        .maybe_single()
    )
    if row is None:
        return None
    role = row.get("role")
    return role.strip().lower() if isinstance(role, str) and role.strip() else None


async def enforce_org_admin(rest: SupabaseRest, principal: Principal, org_id: str) -> OrgRoleContext:
    role = await select_member_role(rest, org_id, principal.user_id)
    if role not in ORG_ADMIN_ROLES:
        raise ForbiddenError()
    return OrgRoleContext(org_id=org_id, user_id=principal.user_id, role=role)
