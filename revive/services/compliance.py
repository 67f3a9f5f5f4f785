"""
Compliance engine - THE GATEKEEPER.
Every outbound SMS MUST pass through this before sending, and every inbound
SMS is classified here before anything else looks at it.

All functions in this module are pure: no I/O, no clock reads unless `now`
is omitted, no shared state. Policy values arrive as a PolicyConfig.

Checks performed:
1. Inbound intent (opt-out / help / ordinary reply)
2. Quiet hours (08:00-21:00 local, 08:00-20:00 in strict states)
3. Footer freshness (opt-out footer at least every 30 days)
4. Send spacing, reminder caps and the strict-state daily cap
5. Account gates (paused account, blackout dates)

Malformed clock or date input never raises out of here: quiet hours are
reported in effect and the footer is reported due.
"""
import enum
import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Optional, Union

from revive.schemas.policy_config import DEFAULT_POLICY, PolicyConfig
from revive.utils.timezone import UnparseableTimestamp, parse_hhmm, within_window

logger = logging.getLogger(__name__)

# Substring match on letters-only text. "stopall" is listed for clarity even
# though "stop" already covers it. False positives ("endless") are accepted.
OPT_OUT_KEYWORDS = ("pause", "stopall", "stop", "unsubscribe", "cancel", "end", "quit", "remove")
HELP_KEYWORDS = ("help",)

# Digit/symbol look-alikes folded before non-letters are stripped ("St0p" → "stop")
_LOOKALIKES = str.maketrans({
    "0": "o",
    "1": "i",
    "3": "e",
    "4": "a",
    "5": "s",
    "7": "t",
    "$": "s",
    "@": "a",
})
_NON_LETTERS = re.compile(r"[^a-z]")

Timestamp = Union[datetime, str, None]


class ConsentIntent(str, enum.Enum):
    OPT_OUT = "opt_out"
    HELP = "help"
    NONE = "none"


class ComplianceResult:
    """Result of a compliance check."""

    def __init__(self, allowed: bool, reason: str = "", rule: str = ""):
        self.allowed = allowed
        self.reason = reason
        self.rule = rule

    def __bool__(self) -> bool:
        return self.allowed

    def __repr__(self) -> str:
        status = "ALLOWED" if self.allowed else "BLOCKED"
        return f"<ComplianceResult {status}: {self.reason}>"


@dataclass(frozen=True)
class OutboundGateDecision:
    blocked_by_quiet_hours: bool
    footer_required: bool


# === INBOUND CLASSIFICATION ===

def normalize_inbound_text(text: Optional[str]) -> str:
    """Lower-case, fold look-alikes, keep only a-z. "S T O P!" → "stop"."""
    lowered = (text or "").lower().translate(_LOOKALIKES)
    return _NON_LETTERS.sub("", lowered)


def is_opt_out(text: Optional[str]) -> bool:
    normalized = normalize_inbound_text(text)
    return any(keyword in normalized for keyword in OPT_OUT_KEYWORDS)


def is_help(text: Optional[str]) -> bool:
    normalized = normalize_inbound_text(text)
    return any(keyword in normalized for keyword in HELP_KEYWORDS)


def classify_inbound(text: Optional[str]) -> ConsentIntent:
    """
    Classify an inbound message. Opt-out wins over help:
    "help me stop these" is an opt-out.
    """
    if is_opt_out(text):
        return ConsentIntent.OPT_OUT
    if is_help(text):
        return ConsentIntent.HELP
    return ConsentIntent.NONE


# === QUIET HOURS ===

def is_quiet_hours(
    local_hhmm: Optional[str],
    jurisdiction: Optional[str] = None,
    config: PolicyConfig = DEFAULT_POLICY,
) -> bool:
    """
    True when `local_hhmm` falls OUTSIDE the permitted window, i.e. sending
    must be blocked. Both window boundaries are permitted.
    """
    try:
        hour, minute = parse_hhmm(local_hhmm)
    except UnparseableTimestamp as e:
        logger.warning("Quiet hours fail-closed: %s", str(e))
        return True

    start_min, end_min = config.window_minutes(jurisdiction)
    return not within_window(hour * 60 + minute, start_min, end_min)


def check_quiet_hours(
    local_hhmm: Optional[str],
    jurisdiction: Optional[str] = None,
    config: PolicyConfig = DEFAULT_POLICY,
) -> ComplianceResult:
    if is_quiet_hours(local_hhmm, jurisdiction, config):
        start_min, end_min = config.window_minutes(jurisdiction)
        return ComplianceResult(
            False,
            f"Quiet hours: sending allowed {start_min // 60:02d}:{start_min % 60:02d}-"
            f"{end_min // 60:02d}:{end_min % 60:02d} local. Current: {local_hhmm}",
            "quiet_hours",
        )
    return ComplianceResult(True, "Within allowed hours")


# === FOOTER POLICY ===

def _parse_timestamp(value: Union[datetime, str]) -> datetime:
    """datetime or ISO-8601 string → aware datetime (naive is taken as UTC)."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip())
        except ValueError as e:
            raise UnparseableTimestamp(f"Not an ISO-8601 timestamp: {value!r}") from e
    else:
        raise UnparseableTimestamp(f"Unsupported timestamp type: {type(value).__name__}")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def footer_required(
    last_footer_at: Timestamp,
    now: Timestamp = None,
    config: PolicyConfig = DEFAULT_POLICY,
) -> bool:
    """
    True when the next outbound message must carry the opt-out footer:
    never sent, unparseable history, or older than the freshness window.
    """
    if not last_footer_at:
        return True

    try:
        last = _parse_timestamp(last_footer_at)
        current = _parse_timestamp(now) if now else datetime.now(timezone.utc)
    except UnparseableTimestamp as e:
        logger.warning("Footer policy fail-closed: %s", str(e))
        return True

    return (current - last) > timedelta(days=config.footer_freshness_days)


def evaluate_outbound_gate(
    local_hhmm: Optional[str],
    jurisdiction: Optional[str],
    last_footer_at: Timestamp,
    now: Timestamp = None,
    config: PolicyConfig = DEFAULT_POLICY,
) -> OutboundGateDecision:
    """The outbound gate: quiet hours and footer need in one call."""
    return OutboundGateDecision(
        blocked_by_quiet_hours=is_quiet_hours(local_hhmm, jurisdiction, config),
        footer_required=footer_required(last_footer_at, now, config),
    )


# === SEND PACING ===

def check_send_spacing(
    last_sent_at: Optional[datetime],
    now: Optional[datetime] = None,
    is_reply: bool = False,
    config: PolicyConfig = DEFAULT_POLICY,
) -> ComplianceResult:
    """
    Minimum gap between outbound sends to one contact.
    Replies to an inbound message don't count against the gap.
    """
    if is_reply:
        return ComplianceResult(True, "Reply to inbound - no spacing applies")
    if last_sent_at is None or config.min_hours_between_sends <= 0:
        return ComplianceResult(True, "No recent send")

    current = _parse_timestamp(now) if now else datetime.now(timezone.utc)
    elapsed = current - _parse_timestamp(last_sent_at)
    if elapsed < timedelta(hours=config.min_hours_between_sends):
        hours = elapsed.total_seconds() / 3600
        return ComplianceResult(
            False,
            f"Last send {hours:.1f}h ago (minimum {config.min_hours_between_sends}h)",
            "send_spacing",
        )
    return ComplianceResult(True, "Spacing satisfied")


def check_reminder_caps(
    day_count: int,
    week_count: int,
    config: PolicyConfig = DEFAULT_POLICY,
) -> ComplianceResult:
    """Hold reminders once the rolling 24h or 7d count reaches its cap."""
    if day_count >= config.reminder_cap_daily or week_count >= config.reminder_cap_weekly:
        return ComplianceResult(
            False,
            f"Reminder cap reached (day {day_count}/{config.reminder_cap_daily}, "
            f"week {week_count}/{config.reminder_cap_weekly})",
            "reminder_cap",
        )
    return ComplianceResult(True, "Under reminder caps")


def check_strict_state_cap(
    jurisdiction: Optional[str],
    sent_last_24h: int,
    is_reply: bool = False,
    config: PolicyConfig = DEFAULT_POLICY,
) -> ComplianceResult:
    """Strict jurisdictions allow at most strict_state_daily_cap sends per rolling 24h."""
    code = (jurisdiction or "").strip().upper()
    if is_reply or code not in config.strict_jurisdictions:
        return ComplianceResult(True, "No state cap applies")
    if sent_last_24h >= config.strict_state_daily_cap:
        return ComplianceResult(
            False,
            f"{code} allows {config.strict_state_daily_cap} messages per 24h ({sent_last_24h} sent)",
            "strict_state_cap",
        )
    return ComplianceResult(True, "Under state cap")


# === ACCOUNT GATES ===

def check_account_active(config: PolicyConfig = DEFAULT_POLICY) -> ComplianceResult:
    """A paused account sends nothing, replies included."""
    if config.paused:
        return ComplianceResult(False, "Account is paused", "paused")
    return ComplianceResult(True, "Account active")


def check_blackout_date(
    local_day: date,
    config: PolicyConfig = DEFAULT_POLICY,
) -> ComplianceResult:
    """Block every send on a configured blackout date (contact-local calendar)."""
    if local_day in config.blackout_dates:
        return ComplianceResult(False, f"{local_day.isoformat()} is a blackout date", "blackout")
    return ComplianceResult(True, "Not a blackout date")
