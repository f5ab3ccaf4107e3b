from grc_api.api.schemas.common import CreateIn, PatchIn, RequiredStr


class FrameworkCreateIn(CreateIn):
    code: RequiredStr
    name: RequiredStr
    description: str | None = None
    category: str | None = None


class FrameworkPatchIn(PatchIn):
    name: str | None = None
    description: str | None = None
    category: str | None = None
