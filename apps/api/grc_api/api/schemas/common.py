from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field

RequiredStr = Annotated[str, Field(min_length=1)]

Severity = Literal["low", "medium", "high", "critical"]
Criticality = Literal["low", "medium", "high", "critical"]
RiskLevel = Literal["low", "medium", "high", "critical"]
FindingStatus = Literal["open", "in_progress", "remediated", "verified", "closed", "accepted"]


class CreateIn(BaseModel):
    """Request body for a single-row insert. Unknown keys are ignored."""

    def insert_payload(self, **overrides: Any) -> dict[str, Any]:
        return {**self.model_dump(mode="json"), **overrides}


class PatchIn(BaseModel):
    """Partial update. Known columns are type-checked, other columns pass through."""

    model_config = ConfigDict(extra="allow")

    def changes(self) -> dict[str, Any]:
        data = self.model_dump(mode="json", exclude_unset=True)
        data.update(self.model_extra or {})
        return data
