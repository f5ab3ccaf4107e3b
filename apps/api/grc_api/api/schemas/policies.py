from datetime import date
from typing import Literal

from pydantic import BaseModel

from grc_api.api.schemas.common import CreateIn, PatchIn, RequiredStr

PolicyStatus = Literal["draft", "in_review", "approved", "active", "archived"]

# Callers cannot set these directly; version follows content changes.
SYSTEM_COLUMNS = ("version", "published_at")


class PolicyCreateIn(CreateIn):
    org_id: RequiredStr
    title: RequiredStr
    policy_type: str | None = None
    content_markdown: str | None = None
    review_date: date | None = None


class PolicyPatchIn(PatchIn):
    title: str | None = None
    status: PolicyStatus | None = None
    content_markdown: str | None = None
    review_date: date | None = None


class PolicyPublishIn(BaseModel):
    user_ids: list[str] | None = None
    due_date: date | None = None
