"""
Consent state machine - applies inbound verdicts to the persisted lead record.

States: subscribed -> opted_out. Opt-out is terminal from the inbound side;
only unsuppress() (an administrative override) goes back. The global
suppression list sits beside it and blocks a number for every account.

Every transition is a single conditional UPDATE keyed by (account_id, phone)
with the expected current state in the WHERE clause. Two webhooks for the
same contact can race; exactly one of them sees rowcount == 1. No lock needed.
"""
import enum
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Union

from sqlalchemy import delete, select, update, and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from revive.models import EventLog, Lead, Suppression
from revive.services.compliance import ConsentIntent, classify_inbound
from revive.utils.metrics import Timer
from revive.utils.phone import InvalidPhoneInput, mask_phone_for_log, require_phone, to_e164

logger = logging.getLogger(__name__)

OPT_OUT_METHOD_KEYWORD = "sms_keyword"


class ConsentState(str, enum.Enum):
    SUBSCRIBED = "subscribed"
    OPTED_OUT = "opted_out"


@dataclass(frozen=True)
class InboundOutcome:
    account_id: uuid.UUID
    phone: str
    intent: ConsentIntent
    previous_state: ConsentState
    state: ConsentState
    lead_id: Optional[uuid.UUID] = None

    @property
    def changed(self) -> bool:
        return self.previous_state != self.state


def next_state(state: ConsentState, intent: ConsentIntent) -> ConsentState:
    """Pure transition function. Only an opt-out verdict moves the state."""
    if intent == ConsentIntent.OPT_OUT:
        return ConsentState.OPTED_OUT
    return state


def state_from_flag(opted_out: Optional[bool]) -> ConsentState:
    return ConsentState.OPTED_OUT if opted_out else ConsentState.SUBSCRIBED


def _account_uuid(account_id: Union[str, uuid.UUID]) -> uuid.UUID:
    if isinstance(account_id, uuid.UUID):
        return account_id
    return uuid.UUID(str(account_id))


def _contact_filter(account_id: uuid.UUID, phone: str):
    return and_(Lead.account_id == account_id, Lead.phone == phone)


async def ensure_contact(db: AsyncSession, account_id: uuid.UUID, phone: str) -> uuid.UUID:
    """
    Return the lead id for (account, phone), creating a subscribed lead if
    this is the first time we see the number. Commits its own insert; a
    concurrent insert of the same key loses on the unique constraint and
    re-reads the winner's row.
    """
    result = await db.execute(select(Lead.id).where(_contact_filter(account_id, phone)))
    lead_id = result.scalar_one_or_none()
    if lead_id is not None:
        return lead_id

    lead = Lead(account_id=account_id, phone=phone, opted_out=False)
    db.add(lead)
    try:
        await db.commit()
        lead_id = lead.id
        # Later writes are conditional UPDATEs; don't keep a stale copy around
        db.expunge(lead)
        logger.info("New contact %s for account %s", mask_phone_for_log(phone), str(account_id)[:8])
        return lead_id
    except IntegrityError:
        await db.rollback()
        logger.debug("Contact %s created concurrently, re-reading", mask_phone_for_log(phone))

    result = await db.execute(select(Lead.id).where(_contact_filter(account_id, phone)))
    return result.scalar_one()


async def _set_opted_out(
    db: AsyncSession,
    account_id: uuid.UUID,
    phone: str,
    expected: bool,
    new_value: bool,
    now: datetime,
    method: Optional[str],
) -> bool:
    """Compare-and-set on leads.opted_out. True if this call made the change."""
    values = {"opted_out": new_value, "updated_at": now}
    if new_value:
        values.update(opted_out_at=now, opt_out_method=method)
    else:
        values.update(opted_out_at=None, opt_out_method=None)

    result = await db.execute(
        update(Lead)
        .where(_contact_filter(account_id, phone), Lead.opted_out.is_(expected))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def _current_state(db: AsyncSession, account_id: uuid.UUID, phone: str) -> ConsentState:
    result = await db.execute(select(Lead.opted_out).where(_contact_filter(account_id, phone)))
    return state_from_flag(result.scalar_one_or_none())


async def get_consent_state(
    db: AsyncSession,
    account_id: Union[str, uuid.UUID],
    raw_phone: str,
) -> ConsentState:
    """Consent state of a contact. Unknown contacts are subscribed."""
    return await _current_state(db, _account_uuid(account_id), require_phone(raw_phone))


async def apply_inbound(
    db: AsyncSession,
    account_id: Union[str, uuid.UUID],
    raw_phone: str,
    body: str,
    now: Optional[datetime] = None,
) -> InboundOutcome:
    """
    Process one inbound message: canonicalize the sender, classify the body,
    apply the consent transition atomically and audit the verdict.

    Raises InvalidPhoneInput when the sender can't be normalized.
    """
    timer = Timer().start()
    phone = require_phone(raw_phone)
    account = _account_uuid(account_id)
    intent = classify_inbound(body)
    now = now or datetime.now(timezone.utc)

    lead_id = await ensure_contact(db, account, phone)

    if intent == ConsentIntent.OPT_OUT:
        flipped = await _set_opted_out(
            db, account, phone, expected=False, new_value=True, now=now, method=OPT_OUT_METHOD_KEYWORD,
        )
        previous = ConsentState.SUBSCRIBED if flipped else ConsentState.OPTED_OUT
        state = ConsentState.OPTED_OUT
    else:
        previous = await _current_state(db, account, phone)
        state = next_state(previous, intent)

    await db.execute(
        update(Lead)
        .where(Lead.id == lead_id)
        .values(last_inbound_at=now)
        .execution_options(synchronize_session=False)
    )

    outcome = InboundOutcome(
        account_id=account,
        phone=phone,
        intent=intent,
        previous_state=previous,
        state=state,
        lead_id=lead_id,
    )

    if intent != ConsentIntent.NONE:
        db.add(_inbound_event(outcome, body, timer.stop()))

    await db.commit()

    logger.info(
        "Inbound from %s classified %s (%s -> %s)",
        mask_phone_for_log(phone), intent.value, previous.value, state.value,
        extra={"account_id": str(account), "intent": intent.value},
    )
    return outcome


def _inbound_event(outcome: InboundOutcome, body: str, duration_ms: int) -> EventLog:
    if outcome.intent == ConsentIntent.OPT_OUT:
        action = "opt_out" if outcome.changed else "opt_out_repeat"
        status = "success" if outcome.changed else "skipped"
        message = f"Contact opted out via SMS: '{body}'"
    else:
        action = "help_request"
        status = "success"
        message = f"Help requested via SMS: '{body}'"

    return EventLog(
        lead_id=outcome.lead_id,
        account_id=outcome.account_id,
        phone=outcome.phone,
        action=action,
        status=status,
        duration_ms=duration_ms,
        message=message,
        data={
            "intent": outcome.intent.value,
            "previous_state": outcome.previous_state.value,
            "state": outcome.state.value,
        },
    )


async def unsuppress(
    db: AsyncSession,
    account_id: Union[str, uuid.UUID],
    raw_phone: str,
    actor: str = "admin",
    now: Optional[datetime] = None,
) -> bool:
    """
    Administrative override: opted_out -> subscribed, and the number comes
    off the global suppression list.
    Returns False if there was nothing to clear.
    """
    phone = require_phone(raw_phone)
    account = _account_uuid(account_id)
    now = now or datetime.now(timezone.utc)

    opt_out_cleared = await _set_opted_out(
        db, account, phone, expected=True, new_value=False, now=now, method=None,
    )
    result = await db.execute(delete(Suppression).where(Suppression.phone == phone))
    global_cleared = result.rowcount > 0

    changed = opt_out_cleared or global_cleared
    if changed:
        result = await db.execute(select(Lead.id).where(_contact_filter(account, phone)))
        db.add(EventLog(
            lead_id=result.scalar_one_or_none(),
            account_id=account,
            phone=phone,
            action="unsuppress",
            message=f"Opt-out cleared by {actor}",
            data={"actor": actor, "opt_out": opt_out_cleared, "global": global_cleared},
        ))
        logger.info("Contact %s unsuppressed by %s", mask_phone_for_log(phone), actor)
    await db.commit()
    return changed


async def import_contact(
    db: AsyncSession,
    account_id: Union[str, uuid.UUID],
    raw_phone: str,
    first_name: Optional[str] = None,
    state_code: Optional[str] = None,
    default_region: str = "US",
) -> tuple[uuid.UUID, str]:
    """
    Add or refresh a lead from an import. Import is stricter than inbound:
    the number must be a valid, dialable number for its region.
    Returns (lead_id, canonical phone). Existing consent is never touched.
    """
    phone = to_e164(raw_phone, default_region)
    if phone is None:
        raise InvalidPhoneInput(f"Not a valid phone number: {raw_phone!r}")
    account = _account_uuid(account_id)

    lead_id = await ensure_contact(db, account, phone)

    values = {}
    if first_name and first_name.strip():
        values["first_name"] = first_name.strip()
    if state_code and state_code.strip():
        values["state_code"] = state_code.strip().upper()
    if values:
        await db.execute(
            update(Lead)
            .where(Lead.id == lead_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await db.commit()

    logger.info("Imported contact %s", mask_phone_for_log(phone), extra={"account_id": str(account)})
    return lead_id, phone


# === GLOBAL SUPPRESSION ===

async def is_globally_suppressed(db: AsyncSession, phone: str) -> bool:
    """True if the canonical phone is on the cross-account suppression list."""
    result = await db.execute(select(Suppression.id).where(Suppression.phone == phone))
    return result.scalar_one_or_none() is not None


async def add_global_suppression(
    db: AsyncSession,
    raw_phone: str,
    reason: str = "manual",
) -> bool:
    """
    Put a number on the global suppression list.
    Returns False if it was already there (including a concurrent insert).
    """
    phone = require_phone(raw_phone)
    if await is_globally_suppressed(db, phone):
        return False

    db.add(Suppression(phone=phone, reason=reason))
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        logger.debug("Suppression for %s added concurrently", mask_phone_for_log(phone))
        return False

    logger.info("Globally suppressed %s (%s)", mask_phone_for_log(phone), reason)
    return True
