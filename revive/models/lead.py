"""
Lead model - one contact per (account, canonical phone).
Carries the consent and footer state the policy engine reads and writes.

Consent: opted_out=False is "subscribed", True is "opted_out". Opt-out is
monotonic; only an administrative unsuppress clears it.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import String, Boolean, DateTime, Index, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship
from revive.database import Base


class Lead(Base):
    __tablename__ = "leads"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    account_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), nullable=False
    )

    # Contact info - phone is always the canonical key from normalize_phone()
    phone: Mapped[str] = mapped_column(String(32), nullable=False)
    first_name: Mapped[Optional[str]] = mapped_column(String(100))
    state_code: Mapped[Optional[str]] = mapped_column(String(2))

    # Consent
    opted_out: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    opted_out_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    opt_out_method: Mapped[Optional[str]] = mapped_column(
        String(30)
    )  # sms_keyword, manual, api

    # Messaging history
    last_footer_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    last_sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    last_inbound_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc)
    )

    events: Mapped[list["EventLog"]] = relationship(back_populates="lead")

    __table_args__ = (
        UniqueConstraint("account_id", "phone", name="uq_leads_account_phone"),
        Index("ix_leads_opted_out", "opted_out"),
    )

    def __repr__(self) -> str:
        masked = self.phone[:6] + "***" if self.phone else "unknown"
        return f"<Lead {masked} opted_out={self.opted_out}>"
