"""
Policy configuration schema - the explicit value passed into every decision function.
Built from settings once; tenants override individual fields with with_overrides().
"""
from datetime import date
from typing import Optional
from pydantic import BaseModel, Field, field_validator

from revive.utils.timezone import parse_hhmm, to_minutes


class TemplateOverrides(BaseModel):
    opener: Optional[str] = None
    nudge: Optional[str] = None
    reslot: Optional[str] = None


class PolicyConfig(BaseModel):
    model_config = {"frozen": True}

    brand_name: str = "OutboundRevive"
    paused: bool = False
    blackout_dates: frozenset[date] = Field(default_factory=frozenset)

    quiet_hours_start: str = "08:00"
    quiet_hours_end: str = "21:00"
    quiet_hours_strict_end: str = "20:00"
    strict_jurisdictions: frozenset[str] = Field(default_factory=lambda: frozenset({"FL", "OK"}))

    footer_freshness_days: float = 30.0
    footer_text: str = "Txt STOP to opt out"
    max_message_length: int = 160

    min_hours_between_sends: int = 24
    reminder_cap_daily: int = 1
    reminder_cap_weekly: int = 3
    strict_state_daily_cap: int = 3

    templates: TemplateOverrides = Field(default_factory=TemplateOverrides)

    @field_validator("quiet_hours_start", "quiet_hours_end", "quiet_hours_strict_end")
    @classmethod
    def _valid_clock(cls, value: str) -> str:
        parse_hhmm(value)
        return value.strip()

    @field_validator("strict_jurisdictions", mode="before")
    @classmethod
    def _upper_codes(cls, value):
        if isinstance(value, str):
            value = value.split(",")
        return frozenset(code.strip().upper() for code in value if code and code.strip())

    @field_validator("blackout_dates", mode="before")
    @classmethod
    def _split_dates(cls, value):
        if isinstance(value, str):
            value = [part.strip() for part in value.split(",") if part.strip()]
        return value

    @field_validator("max_message_length")
    @classmethod
    def _positive_length(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("max_message_length must be positive")
        return value

    def window_minutes(self, jurisdiction: Optional[str] = None) -> tuple[int, int]:
        """(start, end) of the permitted sending window in local minutes."""
        code = (jurisdiction or "").strip().upper()
        end = self.quiet_hours_strict_end if code in self.strict_jurisdictions else self.quiet_hours_end
        return to_minutes(self.quiet_hours_start), to_minutes(end)

    def with_overrides(self, overrides: Optional[dict]) -> "PolicyConfig":
        """Return a validated copy with per-tenant overrides applied."""
        if not overrides:
            return self
        merged = self.model_dump()
        merged.update(overrides)
        return PolicyConfig.model_validate(merged)

    @classmethod
    def from_settings(cls, settings=None) -> "PolicyConfig":
        if settings is None:
            from revive.config import get_settings
            settings = get_settings()
        return cls(
            brand_name=settings.brand_name,
            paused=settings.account_paused,
            blackout_dates=settings.blackout_dates,
            quiet_hours_start=settings.quiet_hours_start,
            quiet_hours_end=settings.quiet_hours_end,
            quiet_hours_strict_end=settings.quiet_hours_strict_end,
            strict_jurisdictions=settings.strict_quiet_hour_states,
            footer_freshness_days=settings.footer_freshness_days,
            footer_text=settings.footer_text,
            max_message_length=settings.max_message_length,
            min_hours_between_sends=settings.min_hours_between_sends,
            reminder_cap_daily=settings.reminder_cap_daily,
            reminder_cap_weekly=settings.reminder_cap_weekly,
            strict_state_daily_cap=settings.strict_state_daily_cap,
        )


DEFAULT_POLICY = PolicyConfig()
