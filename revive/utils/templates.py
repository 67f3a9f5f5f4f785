"""
SMS template engine - default outreach templates and {{token}} substitution.
Rendered text is validated AFTER all substitutions; over-length output is an
error, never truncated (truncation could cut the opt-out language).
"""
import logging
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_MAX_LENGTH = 160

DEFAULT_TEMPLATES = {
    "opener": (
        "Hi {{first_name}}, {{brand}} here re your earlier inquiry. "
        "We can hold {{slotA}} or {{slotB}}. Reply YES to book. Txt STOP to opt out"
    ),
    "nudge": (
        "{{brand}}: still want to book a quick {{appt_noun}}? "
        "We can hold {{slotA}} or {{slotB}}. Reply A/B or send a time. Txt STOP to opt out"
    ),
    "reslot": (
        "{{brand}}: no problem. What works, early next week or later this week? "
        "You can reply with a window. Txt STOP to opt out"
    ),
}

TEMPLATE_KINDS = ("OPENER", "NUDGE", "RESLOT")

# token -> default used when the variable is missing or empty
PLACEHOLDERS = {
    "first_name": "",
    "brand": "",
    "slotA": "",
    "slotB": "",
    "appt_noun": "appointment",
}


class TemplateTooLong(Exception):
    """Rendered message exceeds the configured maximum length."""

    def __init__(self, length: int, max_length: int):
        self.length = length
        self.max_length = max_length
        super().__init__(f"Message is {length} characters (max {max_length})")


def render_template(
    template: Optional[str],
    variables: Optional[dict] = None,
    max_length: int = DEFAULT_MAX_LENGTH,
) -> str:
    """
    Substitute every {{token}} occurrence, then enforce max_length.
    A blank template falls back to the default opener.
    """
    text = template if template and template.strip() else DEFAULT_TEMPLATES["opener"]
    values = variables or {}

    for token, default in PLACEHOLDERS.items():
        value = values.get(token)
        text = text.replace("{{" + token + "}}", str(value) if value else default)

    rendered = text.strip()
    ensure_length(rendered, max_length)
    return rendered


def ensure_length(body: str, max_length: int = DEFAULT_MAX_LENGTH) -> str:
    """Raise TemplateTooLong when body is longer than max_length."""
    if len(body) > max_length:
        logger.warning("Rendered message too long: %d > %d", len(body), max_length)
        raise TemplateTooLong(len(body), max_length)
    return body


def select_template(kind: str, overrides=None) -> str:
    """
    Pick the template text for OPENER / NUDGE / RESLOT.
    overrides is a TemplateOverrides (or dict) of tenant templates.
    """
    key = (kind or "").strip().lower()
    if key.upper() not in TEMPLATE_KINDS:
        raise ValueError(f"Unknown template kind: {kind!r}")

    if isinstance(overrides, dict):
        custom = overrides.get(key)
    else:
        custom = getattr(overrides, key, None)
    return custom if custom and custom.strip() else DEFAULT_TEMPLATES[key]
