from typing import Literal

from grc_api.api.schemas.cloud import SyncStatus
from grc_api.api.schemas.common import CreateIn, PatchIn, RequiredStr

IntegrationStatus = Literal["pending", "active", "inactive", "error"]


class IntegrationCreateIn(CreateIn):
    org_id: RequiredStr
    name: RequiredStr
    type: RequiredStr
    api_key: str | None = None
    description: str | None = None


class IntegrationPatchIn(PatchIn):
    name: str | None = None
    status: IntegrationStatus | None = None
    sync_status: SyncStatus | None = None
