from grc_api.api.schemas.common import CreateIn, FindingStatus, PatchIn, RequiredStr, Severity


class FindingCreateIn(CreateIn):
    org_id: RequiredStr
    title: RequiredStr
    severity: Severity
    description: str | None = None
    policy_id: str | None = None
    asset_id: str | None = None
    remediation_guidance: str | None = None


class FindingPatchIn(PatchIn):
    title: str | None = None
    severity: Severity | None = None
    status: FindingStatus | None = None
    remediation_guidance: str | None = None
