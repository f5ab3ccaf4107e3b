from typing import Literal

from pydantic import Field

from grc_api.api.schemas.common import CreateIn, FindingStatus, PatchIn, RequiredStr, Severity

SyncStatus = Literal["pending", "syncing", "connected", "error", "disconnected"]


class CloudAccountCreateIn(CreateIn):
    org_id: RequiredStr
    provider: RequiredStr
    account_id: RequiredStr
    account_name: str | None = None
    regions: list[str] = Field(default_factory=list)


class CloudAccountPatchIn(PatchIn):
    account_name: str | None = None
    regions: list[str] | None = None
    sync_status: SyncStatus | None = None


class CspmFindingCreateIn(CreateIn):
    org_id: RequiredStr
    cloud_account_id: RequiredStr
    title: RequiredStr
    severity: Severity
    description: str | None = None
    resource_id: str | None = None
    status: FindingStatus = "open"
