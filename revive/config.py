"""
Application configuration using pydantic-settings.
All config is validated at startup - fail fast if anything is missing.

Policy defaults here only seed PolicyConfig; decision functions never read
settings directly.
"""
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # Application
    app_env: str = "development"
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_base_url: str = "http://localhost:8000"
    log_level: str = "INFO"

    # Database
    database_url: str
    database_pool_size: int = 20
    database_max_overflow: int = 10

    # Twilio (inbound webhook signature only - sending lives elsewhere)
    twilio_auth_token: str = ""
    twilio_validate_signatures: bool = True

    # Tenant defaults
    brand_name: str = "OutboundRevive"
    support_contact: str = "support@outboundrevive.com"
    account_paused: bool = False
    blackout_dates: str = ""  # Comma-separated YYYY-MM-DD, contact-local dates

    # Auto-replies to inbound keywords (TwiML)
    opt_out_reply: str = "You're paused and won't receive more texts from {brand_name}."
    help_reply: str = "Reply PAUSE to stop. For help contact {support_contact}."

    # Quiet hours (local clock, inclusive window)
    quiet_hours_start: str = "08:00"
    quiet_hours_end: str = "21:00"
    quiet_hours_strict_end: str = "20:00"
    strict_quiet_hour_states: str = "FL,OK"  # Comma-separated state codes

    # Footer + message shape
    footer_freshness_days: float = 30.0
    footer_text: str = "Txt STOP to opt out"
    max_message_length: int = 160

    # Send pacing
    min_hours_between_sends: int = 24
    reminder_cap_daily: int = 1
    reminder_cap_weekly: int = 3
    strict_state_daily_cap: int = 3  # Sends per rolling 24h in strict states

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
