from datetime import date
from typing import Literal

from pydantic import Field

from grc_api.api.schemas.common import CreateIn, PatchIn, RequiredStr, Severity

AuditStatus = Literal[
    "planning",
    "planned",
    "in_progress",
    "fieldwork",
    "reporting",
    "completed",
    "cancelled",
    "closed",
]


class AuditCreateIn(CreateIn):
    org_id: RequiredStr
    name: RequiredStr
    audit_type: RequiredStr
    auditor: str | None = None
    lead_auditor_name: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    description: str | None = None
    scope: list[str] = Field(default_factory=list)
    frameworks: list[str] = Field(default_factory=list)


class AuditPatchIn(PatchIn):
    name: str | None = None
    status: AuditStatus | None = None
    start_date: date | None = None
    end_date: date | None = None


class AuditFindingCreateIn(CreateIn):
    org_id: RequiredStr
    title: RequiredStr
    severity: Severity
    description: str | None = None
    control_ref: str | None = None
    remediation_plan: str | None = None
    due_date: date | None = None
    assigned_to: str | None = None


class ReadinessItemCreateIn(CreateIn):
    org_id: RequiredStr
    title: RequiredStr
    category: RequiredStr
    assigned_to: str | None = None
    due_date: date | None = None
    notes: str | None = None
