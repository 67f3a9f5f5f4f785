"""
Request/response schemas for the policy endpoints.

Clock and timestamp fields are plain strings on purpose: a malformed value
must reach the evaluators (which fail closed) rather than bounce as a 422.
"""
from typing import Optional
from pydantic import BaseModel, Field


class ClassifyRequest(BaseModel):
    text: Optional[str] = None


class ClassifyResponse(BaseModel):
    intent: str
    normalized: str


class OutboundGateRequest(BaseModel):
    local_hhmm: Optional[str] = None
    jurisdiction: Optional[str] = None
    last_footer_at: Optional[str] = None
    now: Optional[str] = None


class OutboundGateResponse(BaseModel):
    blocked_by_quiet_hours: bool
    footer_required: bool


class RenderRequest(BaseModel):
    template: Optional[str] = None
    kind: Optional[str] = None  # OPENER, NUDGE, RESLOT
    variables: dict[str, Optional[str]] = Field(default_factory=dict)
    max_length: Optional[int] = Field(default=None, gt=0)


class RenderResponse(BaseModel):
    body: str
    length: int
    segments: int


class PrepareRequest(BaseModel):
    account_id: str
    phone: str
    template: Optional[str] = None
    kind: Optional[str] = None
    variables: dict[str, Optional[str]] = Field(default_factory=dict)
    is_reply: bool = False
    category: Optional[str] = None  # "reminder" applies the reminder caps


class PrepareResponse(BaseModel):
    allowed: bool
    phone: str
    rule: str = ""
    reason: str = ""
    body: Optional[str] = None
    footer_included: bool = False
    segments: int = 0


class MarkSentRequest(BaseModel):
    account_id: str
    phone: str
    footer_included: bool = False
    category: Optional[str] = None


class MarkSentResponse(BaseModel):
    status: str = "recorded"
    footer_advanced: bool


class ImportContactRequest(BaseModel):
    account_id: str
    phone: str
    first_name: Optional[str] = Field(default=None, max_length=100)
    state_code: Optional[str] = Field(default=None, max_length=2)
    region: str = "US"


class ImportContactResponse(BaseModel):
    lead_id: str
    phone: str


class SuppressionRequest(BaseModel):
    phone: str
    reason: str = Field(default="manual", max_length=100)


class SuppressionResponse(BaseModel):
    phone: str
    added: bool
