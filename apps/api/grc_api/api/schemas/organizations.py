import re

from pydantic import field_validator

from grc_api.api.schemas.common import CreateIn, PatchIn, RequiredStr

SLUG_PATTERN = re.compile(r"^[a-z0-9-]+$")


class OrganizationCreateIn(CreateIn):
    name: RequiredStr
    slug: RequiredStr
    industry: str | None = None
    stage: str | None = None

    @field_validator("slug")
    @classmethod
    def validate_slug(cls, value: str) -> str:
        if not SLUG_PATTERN.match(value):
            raise ValueError("slug must contain only lowercase letters, numbers, and hyphens")
        return value


class OrganizationPatchIn(PatchIn):
    name: str | None = None
    industry: str | None = None
    stage: str | None = None
