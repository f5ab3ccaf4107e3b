from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from fastapi import BackgroundTasks

from grc_api.core.errors import AuditError, StoreError
from grc_api.core.logging import get_logger
from grc_api.core.supabase_rest import SupabaseRest

logger = get_logger("audit.emitter")

AUDIT_RPC = "log_audit_event"


@dataclass(frozen=True)
class AuditEntry:
    org_id: str
    action: str
    resource_type: str
    resource_id: str
    changes: dict[str, Any] | None

    def rpc_params(self) -> dict[str, Any]:
        return {
            "p_org_id": self.org_id,
            "p_action": self.action,
            "p_resource_type": self.resource_type,
            "p_resource_id": self.resource_id,
            "p_changes": self.changes,
        }


class AuditEmitter:
    """Best-effort audit trail.

    ``record`` schedules the ``log_audit_event`` call to run after the
    response has been sent. A failed call is logged and dropped; it never
    reaches the caller and never undoes the write it describes.
    """

    async def emit(self, rest: SupabaseRest, entry: AuditEntry) -> None:
        try:
            await rest.rpc(AUDIT_RPC, entry.rpc_params())
        except StoreError as exc:
            raise AuditError(f"Failed to record audit event {entry.action}: {exc.message}") from exc

    async def _emit_quietly(self, rest: SupabaseRest, entry: AuditEntry) -> None:
        try:
            await self.emit(rest, entry)
        except AuditError as exc:
            logger.warning(
                "audit.emit_failed",
                extra={
                    "component": "audit",
                    "org_id": entry.org_id,
                    "action": entry.action,
                    "resource_type": entry.resource_type,
                    "resource_id": entry.resource_id,
                    "error": exc.message,
                },
            )
        except Exception:
            logger.exception(
                "audit.emit_failed",
                extra={
                    "component": "audit",
                    "org_id": entry.org_id,
                    "action": entry.action,
                    "resource_type": entry.resource_type,
                    "resource_id": entry.resource_id,
                },
            )

    def record(
        self,
        background_tasks: BackgroundTasks,
        rest: SupabaseRest,
        *,
        org_id: Any,
        action: str,
        resource_type: str,
        resource_id: Any,
        changes: dict[str, Any] | None,
    ) -> AuditEntry | None:
        if not org_id or not resource_id:
            logger.warning(
                "audit.skipped",
                extra={"component": "audit", "action": action, "resource_type": resource_type},
            )
            return None

        entry = AuditEntry(
            org_id=str(org_id),
            action=action,
            resource_type=resource_type,
            resource_id=str(resource_id),
            changes=changes,
        )
        background_tasks.add_task(self._emit_quietly, rest, entry)
        return entry
