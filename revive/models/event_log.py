"""
Event log model - audit trail for every consent decision, blocked send and
recorded send. Sent events also feed the rolling send caps.
Repeat opt-outs are logged too: the state doesn't change but the request happened.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import String, Text, Integer, DateTime, ForeignKey, Index
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship
from revive.database import Base


class EventLog(Base):
    __tablename__ = "event_logs"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    lead_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("leads.id")
    )
    account_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), nullable=False
    )
    phone: Mapped[Optional[str]] = mapped_column(String(32))

    # Event details
    action: Mapped[str] = mapped_column(
        String(100), nullable=False
    )  # opt_out, opt_out_repeat, help_request, unsuppress, send_blocked, message_sent, reminder_sent
    status: Mapped[str] = mapped_column(
        String(20), default="success"
    )  # success, skipped, blocked

    duration_ms: Mapped[Optional[int]] = mapped_column(Integer)
    message: Mapped[Optional[str]] = mapped_column(Text)

    # Context data
    data: Mapped[Optional[dict]] = mapped_column(JSONB)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    lead: Mapped[Optional["Lead"]] = relationship(back_populates="events")

    __table_args__ = (
        Index("ix_events_lead_id", "lead_id"),
        Index("ix_events_account_id", "account_id"),
        Index("ix_events_action", "action"),
        Index("ix_events_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<EventLog {self.action} status={self.status}>"
