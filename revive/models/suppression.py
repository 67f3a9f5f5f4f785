"""
Global suppression model - numbers that are never texted from any account.
Keyed by canonical phone alone; unlike Lead.opted_out it is not per tenant.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import String, DateTime
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column
from revive.database import Base


class Suppression(Base):
    __tablename__ = "global_suppressions"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    phone: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    reason: Mapped[Optional[str]] = mapped_column(String(100))  # manual, carrier_block, litigator

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    def __repr__(self) -> str:
        masked = self.phone[:6] + "***" if self.phone else "unknown"
        return f"<Suppression {masked} reason={self.reason}>"
