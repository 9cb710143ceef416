from sqlalchemy import String, Integer, Date, DateTime, ForeignKey, UniqueConstraint, Text
from sqlalchemy.orm import Mapped, mapped_column
from datetime import date, datetime, timezone
from transportapp.db.session import Base

TRIP_OPEN = "OPEN"
TRIP_CANCELLED = "CANCELLED"

class Trip(Base):
    __tablename__ = "trips"
    __table_args__ = (
        UniqueConstraint("template_id", "trip_date", name="uq_trip_template_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    template_id: Mapped[int] = mapped_column(ForeignKey("departure_templates.id"), index=True)
    trip_date: Mapped[date] = mapped_column(Date, index=True)
    status: Mapped[str] = mapped_column(String(12), default=TRIP_OPEN)  # OPEN|CANCELLED
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
