"""
Phone number normalization.

normalize_phone() produces the canonical contact key: "+" followed by digits.
It is deliberately deterministic (no carrier metadata) so that the same raw
input maps to the same key on every host. to_e164() is the stricter,
region-aware validator used when importing leads.
"""
import logging
import re
from typing import Optional

import phonenumbers

logger = logging.getLogger(__name__)

_NON_DIGITS = re.compile(r"\D")


class InvalidPhoneInput(Exception):
    """Raised when a raw phone string normalizes to an empty key."""
    pass


def normalize_phone(raw: Optional[str]) -> str:
    """
    Canonicalize a raw phone string.

    - +1 (555) 123-4567 → +15551234567
    - 1-555-123-4567    → +15551234567
    - 555.123.4567      → +15551234567
    - 44 20 7946 0958   → +442079460958

    Returns "" when no digits remain. Idempotent on its own output.
    """
    cleaned = (raw or "").strip()
    digits = _NON_DIGITS.sub("", cleaned)
    if not digits:
        return ""

    if cleaned.startswith("+"):
        return f"+{digits}"
    if len(digits) == 11 and digits.startswith("1"):
        return f"+{digits}"
    if len(digits) == 10:
        return f"+1{digits}"
    return f"+{digits}"


def require_phone(raw: Optional[str]) -> str:
    """normalize_phone() that raises InvalidPhoneInput instead of returning ""."""
    phone = normalize_phone(raw)
    if not phone:
        raise InvalidPhoneInput(f"Unaddressable phone input: {raw!r}")
    return phone


def to_e164(raw: Optional[str], default_region: str = "US") -> Optional[str]:
    """
    Parse and validate with the phonenumbers library.
    Returns the E.164 string, or None if the number is not a valid number.
    """
    if not raw or not raw.strip():
        return None
    try:
        parsed = phonenumbers.parse(raw.strip(), default_region)
    except phonenumbers.NumberParseException:
        return None
    if not phonenumbers.is_valid_number(parsed):
        return None
    return phonenumbers.format_number(parsed, phonenumbers.PhoneNumberFormat.E164)


def mask_phone_for_log(phone: Optional[str]) -> str:
    """Mask phone for logging - show first 6 characters + ***."""
    if not phone:
        return "unknown"
    if len(phone) > 6:
        return phone[:6] + "***"
    return phone
