from datetime import date
from typing import Literal

from pydantic import Field

from grc_api.api.schemas.common import CreateIn, PatchIn, RequiredStr

RiskStatus = Literal["open", "identified", "assessed", "treating", "monitoring", "closed"]
TreatmentAction = Literal["mitigate", "transfer", "accept", "avoid"]

DEFAULT_LIKELIHOOD = 3
DEFAULT_IMPACT = 3

# Patching any of these marks the risk as reviewed.
REVIEW_FIELDS = ("status", "inherent_likelihood", "inherent_impact")


class RiskCreateIn(CreateIn):
    org_id: RequiredStr
    title: RequiredStr
    description: str | None = None
    category: str | None = None
    risk_source: str | None = None
    inherent_likelihood: int | None = Field(default=None, ge=1, le=5)
    inherent_impact: int | None = Field(default=None, ge=1, le=5)
    risk_appetite: str | None = None
    owner_id: str | None = None
    target_resolution_date: date | None = None


class RiskPatchIn(PatchIn):
    title: str | None = None
    status: RiskStatus | None = None
    inherent_likelihood: int | None = Field(default=None, ge=1, le=5)
    inherent_impact: int | None = Field(default=None, ge=1, le=5)


class TreatmentCreateIn(CreateIn):
    action: TreatmentAction
    description: str | None = None
    due_date: date | None = None
    cost_estimate: float | None = None
    responsible_user_id: str | None = None
