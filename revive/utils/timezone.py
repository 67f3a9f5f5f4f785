"""
Timezone and clock utilities for compliance and scheduling.
Maps state codes to timezones and parses local "HH:MM" clock strings.
"""
import re
from datetime import date, datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

_HHMM = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*$")

DEFAULT_TIMEZONE = "America/New_York"

# State to timezone mapping (simplified - uses most populous timezone per state)
STATE_TIMEZONE_MAP = {
    "AL": "America/Chicago",
    "AK": "America/Anchorage",
    "AZ": "America/Phoenix",
    "AR": "America/Chicago",
    "CA": "America/Los_Angeles",
    "CO": "America/Denver",
    "CT": "America/New_York",
    "DE": "America/New_York",
    "FL": "America/New_York",
    "GA": "America/New_York",
    "HI": "Pacific/Honolulu",
    "ID": "America/Boise",
    "IL": "America/Chicago",
    "IN": "America/Indiana/Indianapolis",
    "IA": "America/Chicago",
    "KS": "America/Chicago",
    "KY": "America/New_York",
    "LA": "America/Chicago",
    "ME": "America/New_York",
    "MD": "America/New_York",
    "MA": "America/New_York",
    "MI": "America/Detroit",
    "MN": "America/Chicago",
    "MS": "America/Chicago",
    "MO": "America/Chicago",
    "MT": "America/Denver",
    "NE": "America/Chicago",
    "NV": "America/Los_Angeles",
    "NH": "America/New_York",
    "NJ": "America/New_York",
    "NM": "America/Denver",
    "NY": "America/New_York",
    "NC": "America/New_York",
    "ND": "America/Chicago",
    "OH": "America/New_York",
    "OK": "America/Chicago",
    "OR": "America/Los_Angeles",
    "PA": "America/New_York",
    "RI": "America/New_York",
    "SC": "America/New_York",
    "SD": "America/Chicago",
    "TN": "America/Chicago",
    "TX": "America/Chicago",
    "UT": "America/Denver",
    "VT": "America/New_York",
    "VA": "America/New_York",
    "WA": "America/Los_Angeles",
    "WV": "America/New_York",
    "WI": "America/Chicago",
    "WY": "America/Denver",
    "DC": "America/New_York",
}


class UnparseableTimestamp(ValueError):
    """Raised when a clock string or timestamp cannot be parsed."""
    pass


def get_timezone_for_state(state_code: Optional[str]) -> Optional[str]:
    """Get timezone string for a US state code."""
    if not state_code:
        return None
    return STATE_TIMEZONE_MAP.get(state_code.strip().upper())


def get_zoneinfo(state_code: Optional[str] = None, timezone_str: Optional[str] = None) -> ZoneInfo:
    """Get ZoneInfo object, defaulting to Eastern if unknown."""
    if timezone_str:
        return ZoneInfo(timezone_str)
    if state_code:
        tz_str = get_timezone_for_state(state_code)
        if tz_str:
            return ZoneInfo(tz_str)
    return ZoneInfo(DEFAULT_TIMEZONE)


def parse_hhmm(value: Optional[str]) -> tuple[int, int]:
    """
    Parse a 24h "HH:MM" clock string into (hour, minute).
    Raises UnparseableTimestamp on anything else, including 24:00 and 12:60.
    """
    match = _HHMM.match(value or "")
    if not match:
        raise UnparseableTimestamp(f"Not an HH:MM clock time: {value!r}")
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise UnparseableTimestamp(f"Clock time out of range: {value!r}")
    return hour, minute


def to_minutes(value: str) -> int:
    """Minutes since local midnight for an "HH:MM" string."""
    hour, minute = parse_hhmm(value)
    return hour * 60 + minute


def within_window(now_min: int, start_min: int, end_min: int) -> bool:
    """Inclusive clock window check; windows with start > end wrap midnight."""
    if start_min <= end_min:
        return start_min <= now_min <= end_min
    return now_min >= start_min or now_min <= end_min


def _local(now: Optional[datetime], state_code: Optional[str], timezone_str: Optional[str]) -> datetime:
    tz = get_zoneinfo(state_code, timezone_str)
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(tz)


def local_hhmm(
    now: Optional[datetime] = None,
    state_code: Optional[str] = None,
    timezone_str: Optional[str] = None,
) -> str:
    """Format the contact's local wall-clock time as "HH:MM"."""
    return _local(now, state_code, timezone_str).strftime("%H:%M")


def local_date(
    now: Optional[datetime] = None,
    state_code: Optional[str] = None,
    timezone_str: Optional[str] = None,
) -> date:
    """The contact's local calendar date."""
    return _local(now, state_code, timezone_str).date()
