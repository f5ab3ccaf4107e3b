from __future__ import annotations

from typing import Any

from fastapi import Depends, Query, Request
from starlette.requests import HTTPConnection

from grc_api.core.audit import AuditEmitter
from grc_api.core.errors import AuthorizationError, ValidationError
from grc_api.core.logging import bind_log_context, get_logger
from grc_api.core.settings import Settings, get_settings
from grc_api.core.supabase_jwt import AuthFailure, Principal, authenticate, extract_access_token
from grc_api.core.supabase_rest import SupabaseRest, SupabaseStore

logger = get_logger("api.access")

IMMUTABLE_COLUMNS = ("id", "org_id", "created_at")


def get_store(request: Request) -> SupabaseStore:
    store = getattr(request.app.state, "store", None)
    if not isinstance(store, SupabaseStore):
        raise RuntimeError("Supabase store is not initialised; is the application lifespan running?")
    return store


def get_audit_emitter(request: Request) -> AuditEmitter:
    emitter = getattr(request.app.state, "audit_emitter", None)
    return emitter if isinstance(emitter, AuditEmitter) else AuditEmitter()


def optional_principal(
    connection: HTTPConnection,
    settings: Settings = Depends(get_settings),
) -> Principal | None:
    token = extract_access_token(connection, settings.AUTH_COOKIE_NAME)
    if token is None:
        return None
    result = authenticate(token, settings)
    if not isinstance(result, Principal):
        return None
    bind_log_context(user_id=result.user_id)
    return result


def require_principal(
    connection: HTTPConnection,
    settings: Settings = Depends(get_settings),
) -> Principal:
    token = extract_access_token(connection, settings.AUTH_COOKIE_NAME)
    result = authenticate(token, settings)
    if isinstance(result, AuthFailure):
        logger.info(
            "auth.rejected",
            extra={"component": "auth", "reason": result.reason, "path": connection.url.path},
        )
        raise AuthorizationError()
    bind_log_context(user_id=result.user_id)
    return result


def require_org_id(
    org_id: str | None = Query(default=None),
    org_id_alias: str | None = Query(default=None, alias="orgId"),
) -> str:
    value = (org_id or org_id_alias or "").strip()
    if not value:
        raise ValidationError("org_id is required")
    bind_log_context(org_id=value)
    return value


def optional_org_id(
    org_id: str | None = Query(default=None),
    org_id_alias: str | None = Query(default=None, alias="orgId"),
) -> str | None:
    value = (org_id or org_id_alias or "").strip()
    bind_log_context(org_id=value)
    return value or None


def session_rest(
    store: SupabaseStore = Depends(get_store),
    principal: Principal | None = Depends(optional_principal),
) -> SupabaseRest:
    """Reads act with the caller's session when there is one, otherwise the anon key."""
    return store.session(principal.access_token if principal else None)


def privileged_rest(
    store: SupabaseStore = Depends(get_store),
    principal: Principal | None = Depends(optional_principal),
) -> SupabaseRest:
    """Service-role access; degrades to the caller's session without a service-role key."""
    return store.privileged(principal.access_token if principal else None)


def writer_rest(
    store: SupabaseStore = Depends(get_store),
    principal: Principal = Depends(require_principal),
) -> SupabaseRest:
    return store.session(principal.access_token)


def changes_for_update(payload: dict[str, Any], *, extra_immutable: tuple[str, ...] = ()) -> dict[str, Any]:
    blocked = set(IMMUTABLE_COLUMNS) | set(extra_immutable)
    changes = {key: value for key, value in payload.items() if key not in blocked}
    if not changes:
        raise ValidationError("No fields to update")
    return changes
