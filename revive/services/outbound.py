"""
Outbound send preparation - runs a send request through the full gate.

Order matters: account pause first, then consent (an opted-out or globally
suppressed contact is never texted), blackout dates, send spacing, quiet
hours, the rolling send caps, then rendering + footer. The caller does the
actual carrier send and reports back through mark_sent(), which also feeds
the rolling caps.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Union

from sqlalchemy import select, update, and_, or_, func
from sqlalchemy.ext.asyncio import AsyncSession

from revive.models import EventLog, Lead
from revive.schemas.policy_config import DEFAULT_POLICY, PolicyConfig
from revive.services.compliance import (
    ComplianceResult,
    check_account_active,
    check_blackout_date,
    check_quiet_hours,
    check_reminder_caps,
    check_send_spacing,
    check_strict_state_cap,
    footer_required,
)
from revive.services.consent import is_globally_suppressed
from revive.utils.phone import mask_phone_for_log, require_phone
from revive.utils.segments import count_segments
from revive.utils.templates import TemplateTooLong, ensure_length, render_template
from revive.utils.timezone import local_date, local_hhmm

logger = logging.getLogger(__name__)

REMINDER_CATEGORY = "reminder"
MESSAGE_SENT = "message_sent"
REMINDER_SENT = "reminder_sent"


@dataclass(frozen=True)
class PreparedMessage:
    allowed: bool
    phone: str
    rule: str = ""
    reason: str = ""
    body: Optional[str] = None
    footer_included: bool = False
    segments: int = 0
    lead_id: Optional[uuid.UUID] = None

    def __bool__(self) -> bool:
        return self.allowed


def compose_message(
    template_text: Optional[str],
    variables: Optional[dict],
    footer_required: bool,
    config: PolicyConfig = DEFAULT_POLICY,
) -> tuple[str, bool]:
    """
    Render the template and append the opt-out footer when it is due and the
    template doesn't already carry it. Length is checked again after the
    footer. Returns (body, footer_included).
    """
    body = render_template(template_text, variables, config.max_message_length)
    has_footer = config.footer_text.lower() in body.lower()

    if footer_required and not has_footer:
        body = f"{body} {config.footer_text}"
        ensure_length(body, config.max_message_length)
        has_footer = True

    return body, has_footer


async def _find_lead(db: AsyncSession, account_id: uuid.UUID, phone: str) -> Optional[Lead]:
    result = await db.execute(
        select(Lead)
        .where(and_(Lead.account_id == account_id, Lead.phone == phone))
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _block(
    db: AsyncSession,
    account_id: uuid.UUID,
    phone: str,
    lead: Optional[Lead],
    check: ComplianceResult,
) -> PreparedMessage:
    db.add(EventLog(
        lead_id=lead.id if lead else None,
        account_id=account_id,
        phone=phone,
        action="send_blocked",
        status="blocked",
        message=check.reason,
        data={"rule": check.rule},
    ))
    await db.commit()
    logger.warning(
        "Send to %s BLOCKED: %s", mask_phone_for_log(phone), check.reason,
        extra={"account_id": str(account_id), "reason": check.rule},
    )
    return PreparedMessage(
        allowed=False,
        phone=phone,
        rule=check.rule,
        reason=check.reason,
        lead_id=lead.id if lead else None,
    )


async def _sends_since(
    db: AsyncSession,
    account_id: uuid.UUID,
    phone: str,
    since: datetime,
    actions: tuple[str, ...] = (MESSAGE_SENT, REMINDER_SENT),
) -> int:
    result = await db.execute(
        select(func.count(EventLog.id)).where(
            EventLog.account_id == account_id,
            EventLog.phone == phone,
            EventLog.action.in_(actions),
            EventLog.created_at >= since,
        )
    )
    return result.scalar_one()


async def prepare_outbound(
    db: AsyncSession,
    account_id: Union[str, uuid.UUID],
    raw_phone: str,
    template_text: Optional[str] = None,
    variables: Optional[dict] = None,
    now: Optional[datetime] = None,
    is_reply: bool = False,
    config: PolicyConfig = DEFAULT_POLICY,
    category: Optional[str] = None,
) -> PreparedMessage:
    """
    Decide whether a message may go to this contact right now and build its
    final text. Blocked sends are audited and returned with allowed=False.
    category="reminder" additionally applies the reminder caps.

    Raises InvalidPhoneInput for an unaddressable number and TemplateTooLong
    when the rendered text (with footer) is over the limit.
    """
    phone = require_phone(raw_phone)
    account = account_id if isinstance(account_id, uuid.UUID) else uuid.UUID(str(account_id))
    now = now or datetime.now(timezone.utc)

    active = check_account_active(config)
    if not active:
        return await _block(db, account, phone, None, active)

    lead = await _find_lead(db, account, phone)
    if lead is None:
        return await _block(db, account, phone, None, ComplianceResult(
            False, "No contact record for this phone number", "unknown_contact",
        ))

    if lead.opted_out:
        return await _block(db, account, phone, lead, ComplianceResult(
            False, "Phone number has opted out", "opted_out",
        ))

    if await is_globally_suppressed(db, phone):
        return await _block(db, account, phone, lead, ComplianceResult(
            False, "Phone number is on the global suppression list", "suppressed",
        ))

    blackout = check_blackout_date(local_date(now, lead.state_code), config)
    if not blackout:
        return await _block(db, account, phone, lead, blackout)

    spacing = check_send_spacing(lead.last_sent_at, now, is_reply, config)
    if not spacing:
        return await _block(db, account, phone, lead, spacing)

    quiet = check_quiet_hours(local_hhmm(now, lead.state_code), lead.state_code, config)
    if not quiet:
        return await _block(db, account, phone, lead, quiet)

    if not is_reply and lead.state_code:
        sent_today = await _sends_since(db, account, phone, now - timedelta(hours=24))
        state_cap = check_strict_state_cap(lead.state_code, sent_today, is_reply, config)
        if not state_cap:
            return await _block(db, account, phone, lead, state_cap)

    if category == REMINDER_CATEGORY:
        reminders = (REMINDER_SENT,)
        caps = check_reminder_caps(
            await _sends_since(db, account, phone, now - timedelta(days=1), reminders),
            await _sends_since(db, account, phone, now - timedelta(days=7), reminders),
            config,
        )
        if not caps:
            return await _block(db, account, phone, lead, caps)

    values = dict(variables or {})
    if not values.get("first_name"):
        values["first_name"] = lead.first_name or ""
    if not values.get("brand"):
        values["brand"] = config.brand_name

    try:
        body, footer_included = compose_message(
            template_text, values, footer_required(lead.last_footer_at, now, config), config,
        )
    except TemplateTooLong as e:
        await _block(db, account, phone, lead, ComplianceResult(False, str(e), "too_long"))
        raise

    return PreparedMessage(
        allowed=True,
        phone=phone,
        reason="All compliance checks passed",
        body=body,
        footer_included=footer_included,
        segments=count_segments(body),
        lead_id=lead.id,
    )


async def mark_sent(
    db: AsyncSession,
    account_id: Union[str, uuid.UUID],
    raw_phone: str,
    footer_included: bool,
    sent_at: Optional[datetime] = None,
    category: Optional[str] = None,
) -> bool:
    """
    Record a completed send. Timestamps only move forward, so a late report
    of an older send can't make the footer look fresher than it is. Every
    report is also logged as a sent event at its own time for the rolling caps.
    Returns True if last_footer_at was advanced.
    """
    phone = require_phone(raw_phone)
    account = account_id if isinstance(account_id, uuid.UUID) else uuid.UUID(str(account_id))
    sent_at = sent_at or datetime.now(timezone.utc)
    contact = and_(Lead.account_id == account, Lead.phone == phone)

    await db.execute(
        update(Lead)
        .where(contact, or_(Lead.last_sent_at.is_(None), Lead.last_sent_at < sent_at))
        .values(last_sent_at=sent_at)
        .execution_options(synchronize_session=False)
    )

    footer_advanced = False
    if footer_included:
        result = await db.execute(
            update(Lead)
            .where(contact, or_(Lead.last_footer_at.is_(None), Lead.last_footer_at < sent_at))
            .values(last_footer_at=sent_at)
            .execution_options(synchronize_session=False)
        )
        footer_advanced = result.rowcount == 1

    lead_id = (await db.execute(select(Lead.id).where(contact))).scalar_one_or_none()
    db.add(EventLog(
        lead_id=lead_id,
        account_id=account,
        phone=phone,
        action=REMINDER_SENT if category == REMINDER_CATEGORY else MESSAGE_SENT,
        data={"footer_included": footer_included, "category": category},
        created_at=sent_at,
    ))

    await db.commit()
    return footer_advanced
