from pydantic import BaseModel, ConfigDict

from grc_api.api.schemas.common import CreateIn, Criticality, PatchIn, RequiredStr

CLASSIFICATION_FIELDS = (
    "criticality",
    "environment",
    "data_classification",
    "team",
    "internet_exposed",
    "lifecycle_state",
)


class AssetCreateIn(CreateIn):
    org_id: RequiredStr
    name: RequiredStr
    type: RequiredStr
    criticality: Criticality = "medium"
    owner: str | None = None
    description: str | None = None
    cloud_account_id: str | None = None


class AssetPatchIn(PatchIn):
    name: str | None = None
    type: str | None = None
    criticality: Criticality | None = None
    owner: str | None = None
    description: str | None = None


class ClassificationPatchIn(BaseModel):
    """Manual classification override. Fields outside the allow-list are dropped."""

    model_config = ConfigDict(extra="ignore")

    criticality: Criticality | None = None
    environment: str | None = None
    data_classification: str | None = None
    team: str | None = None
    internet_exposed: bool | None = None
    lifecycle_state: str | None = None
    reason: str | None = None

    def classification_changes(self) -> dict[str, object]:
        return {
            field: getattr(self, field)
            for field in CLASSIFICATION_FIELDS
            if field in self.model_fields_set
        }
