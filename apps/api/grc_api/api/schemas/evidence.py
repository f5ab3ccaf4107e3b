from typing import Any

from pydantic import Field

from grc_api.api.schemas.common import CreateIn, RequiredStr


class EvidenceCreateIn(CreateIn):
    org_id: RequiredStr
    source: RequiredStr
    title: str | None = None
    description: str | None = None
    payload: Any = None
    file_path: str | None = None
    file_type: str | None = None
    file_size_bytes: int | None = Field(default=None, ge=0)
    integration_id: str | None = None
    audit_notes: str | None = None
    control_ids: list[str] = Field(default_factory=list)
