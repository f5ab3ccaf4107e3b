from typing import Literal

from pydantic import field_validator

from grc_api.api.schemas.common import CreateIn, PatchIn, RequiredStr

ControlStatus = Literal[
    "not_tested",
    "not_implemented",
    "in_progress",
    "implemented",
    "effective",
    "ineffective",
    "not_applicable",
]


class ControlCreateIn(CreateIn):
    org_id: RequiredStr
    code: RequiredStr
    name: RequiredStr
    description: str | None = None
    category: str | None = None
    control_type: str = "preventive"
    control_nature: str = "manual"
    frequency: str | None = None
    status: ControlStatus = "not_tested"
    owner_id: str | None = None
    implementation_details: str | None = None

    @field_validator("code")
    @classmethod
    def upper_code(cls, value: str) -> str:
        return value.upper()


class ControlPatchIn(PatchIn):
    name: str | None = None
    description: str | None = None
    status: ControlStatus | None = None
    owner_id: str | None = None
