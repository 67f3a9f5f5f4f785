"""
Policy endpoints - JSON wrappers around the compliance engine.

Stateless checks (classify, outbound-gate, render) never touch the database.
prepare/sent run the full outbound path against the contact record; contacts
and suppressions maintain the records that path reads.
"""
import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from revive.database import get_db
from revive.schemas.policy import (
    ClassifyRequest,
    ClassifyResponse,
    ImportContactRequest,
    ImportContactResponse,
    MarkSentRequest,
    MarkSentResponse,
    OutboundGateRequest,
    OutboundGateResponse,
    PrepareRequest,
    PrepareResponse,
    RenderRequest,
    RenderResponse,
    SuppressionRequest,
    SuppressionResponse,
)
from revive.schemas.policy_config import PolicyConfig
from revive.services.compliance import (
    classify_inbound,
    evaluate_outbound_gate,
    normalize_inbound_text,
)
from revive.services.consent import add_global_suppression, import_contact
from revive.services.outbound import mark_sent, prepare_outbound
from revive.utils.phone import InvalidPhoneInput, normalize_phone
from revive.utils.segments import count_segments
from revive.utils.templates import TemplateTooLong, render_template, select_template

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/policy", tags=["policy"])

# Rules answered with 409 instead of allowed=false
ACCOUNT_BLOCK_RULES = ("paused", "blackout")


def get_policy_config() -> PolicyConfig:
    """Dependency: the policy built from settings."""
    return PolicyConfig.from_settings()


def _parse_account(account_id: str) -> uuid.UUID:
    try:
        return uuid.UUID(account_id)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid account id")


def _resolve_template(template: Optional[str], kind: Optional[str], config: PolicyConfig) -> Optional[str]:
    if template or not kind:
        return template
    try:
        return select_template(kind, config.templates)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


def _too_long(e: TemplateTooLong) -> HTTPException:
    return HTTPException(
        status_code=422,
        detail={"error": "template_too_long", "length": e.length, "max_length": e.max_length},
    )


@router.post("/classify", response_model=ClassifyResponse)
async def classify(payload: ClassifyRequest):
    intent = classify_inbound(payload.text)
    return ClassifyResponse(intent=intent.value, normalized=normalize_inbound_text(payload.text))


@router.post("/outbound-gate", response_model=OutboundGateResponse)
async def outbound_gate(
    payload: OutboundGateRequest,
    config: PolicyConfig = Depends(get_policy_config),
):
    """Quiet hours + footer need. Malformed clock/timestamps fail closed."""
    decision = evaluate_outbound_gate(
        payload.local_hhmm,
        payload.jurisdiction,
        payload.last_footer_at,
        payload.now,
        config,
    )
    return OutboundGateResponse(
        blocked_by_quiet_hours=decision.blocked_by_quiet_hours,
        footer_required=decision.footer_required,
    )


@router.post("/render", response_model=RenderResponse)
async def render(
    payload: RenderRequest,
    config: PolicyConfig = Depends(get_policy_config),
):
    template = _resolve_template(payload.template, payload.kind, config)
    try:
        body = render_template(template, payload.variables, payload.max_length or config.max_message_length)
    except TemplateTooLong as e:
        raise _too_long(e)
    return RenderResponse(body=body, length=len(body), segments=count_segments(body))


@router.post("/prepare", response_model=PrepareResponse)
async def prepare(
    payload: PrepareRequest,
    db: AsyncSession = Depends(get_db),
    config: PolicyConfig = Depends(get_policy_config),
):
    """Run a send through account gates, consent, pacing, quiet hours and rendering."""
    account = _parse_account(payload.account_id)
    template = _resolve_template(payload.template, payload.kind, config)
    try:
        prepared = await prepare_outbound(
            db,
            account,
            payload.phone,
            template_text=template,
            variables=payload.variables,
            is_reply=payload.is_reply,
            config=config,
            category=payload.category,
        )
    except InvalidPhoneInput:
        raise HTTPException(status_code=400, detail="Invalid phone number")
    except TemplateTooLong as e:
        raise _too_long(e)

    if prepared.rule in ACCOUNT_BLOCK_RULES:
        raise HTTPException(status_code=409, detail={"error": prepared.rule, "reason": prepared.reason})

    return PrepareResponse(
        allowed=prepared.allowed,
        phone=prepared.phone,
        rule=prepared.rule,
        reason=prepared.reason,
        body=prepared.body,
        footer_included=prepared.footer_included,
        segments=prepared.segments,
    )


@router.post("/sent", response_model=MarkSentResponse)
async def sent(
    payload: MarkSentRequest,
    db: AsyncSession = Depends(get_db),
):
    """Record a completed carrier send so footer freshness and spacing advance."""
    account = _parse_account(payload.account_id)
    try:
        advanced = await mark_sent(
            db, account, payload.phone, payload.footer_included, category=payload.category,
        )
    except InvalidPhoneInput:
        raise HTTPException(status_code=400, detail="Invalid phone number")
    return MarkSentResponse(footer_advanced=advanced)


@router.post("/contacts", response_model=ImportContactResponse)
async def contacts(
    payload: ImportContactRequest,
    db: AsyncSession = Depends(get_db),
):
    """Import or refresh a contact. The number must be valid for its region."""
    account = _parse_account(payload.account_id)
    try:
        lead_id, phone = await import_contact(
            db,
            account,
            payload.phone,
            first_name=payload.first_name,
            state_code=payload.state_code,
            default_region=payload.region,
        )
    except InvalidPhoneInput:
        raise HTTPException(status_code=400, detail="Invalid phone number")
    return ImportContactResponse(lead_id=str(lead_id), phone=phone)


@router.post("/suppressions", response_model=SuppressionResponse)
async def suppressions(
    payload: SuppressionRequest,
    db: AsyncSession = Depends(get_db),
):
    """Add a number to the global suppression list (all accounts)."""
    try:
        added = await add_global_suppression(db, payload.phone, payload.reason)
    except InvalidPhoneInput:
        raise HTTPException(status_code=400, detail="Invalid phone number")
    return SuppressionResponse(phone=normalize_phone(payload.phone), added=added)
