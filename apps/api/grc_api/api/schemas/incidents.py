from typing import Literal

from pydantic import Field

from grc_api.api.schemas.common import CreateIn, PatchIn, RequiredStr, Severity

IncidentStatus = Literal["open", "investigating", "contained", "resolved", "closed"]


class IncidentCreateIn(CreateIn):
    org_id: RequiredStr
    title: RequiredStr
    severity: Severity
    incident_type: str | None = None
    description: str | None = None
    commander: str | None = None
    affected_systems: list[str] = Field(default_factory=list)


class IncidentPatchIn(PatchIn):
    title: str | None = None
    severity: Severity | None = None
    status: IncidentStatus | None = None


class TimelineEventCreateIn(CreateIn):
    event_type: RequiredStr
    description: RequiredStr
    author: str | None = None
