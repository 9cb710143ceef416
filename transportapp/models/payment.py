from sqlalchemy import String, Integer, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from transportapp.db.session import Base

AUDIT_PENDING = "PENDING"
AUDIT_VERIFIED = "VERIFIED"
AUDIT_REJECTED = "REJECTED"

class Payment(Base):
    """Manual payment audit row (cash at counter, bank transfer)."""
    __tablename__ = "payments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    reservation_id: Mapped[int] = mapped_column(ForeignKey("reservations.id"), index=True)
    method: Mapped[str] = mapped_column(String(12))  # CASH|TRANSFER
    status: Mapped[str] = mapped_column(String(12), default=AUDIT_PENDING)  # PENDING|VERIFIED|REJECTED
    reference: Mapped[str | None] = mapped_column(String(80), nullable=True)
    verified_by: Mapped[str | None] = mapped_column(String(320), nullable=True)
    verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
