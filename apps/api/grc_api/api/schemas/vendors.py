from datetime import date
from typing import Any, Literal

from pydantic import BaseModel, Field

from grc_api.api.schemas.common import CreateIn, PatchIn, RequiredStr, RiskLevel

VendorStatus = Literal["pending_review", "prospect", "active", "inactive", "terminated"]
AssessmentStatus = Literal["in_progress", "completed", "cancelled"]


class VendorCreateIn(CreateIn):
    org_id: RequiredStr
    name: RequiredStr
    industry: str | None = None
    contact_email: str | None = None
    contact_name: str | None = None
    website: str | None = None
    description: str | None = None
    risk_level: RiskLevel = "medium"
    data_shared: list[str] | None = None
    criticality: str | None = None
    contract_end_date: date | None = None


class VendorPatchIn(PatchIn):
    name: str | None = None
    status: VendorStatus | None = None
    risk_level: RiskLevel | None = None


class AssessmentCreateIn(CreateIn):
    assessment_type: str = "initial"
    questionnaire_template: str | None = None
    summary: str | None = None
    documents: list[Any] | None = None


class AssessmentPatchIn(BaseModel):
    assessment_id: RequiredStr
    score: float | None = None
    risk_rating: RiskLevel | None = None
    summary: str | None = None
    issues_count: int | None = Field(default=None, ge=0)
    status: AssessmentStatus | None = None

    def assessment_changes(self) -> dict[str, Any]:
        data = self.model_dump(mode="json", exclude_unset=True, exclude={"assessment_id"})
        return {key: value for key, value in data.items() if value is not None}
