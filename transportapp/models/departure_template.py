from sqlalchemy import String, Integer, Boolean, DateTime
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from transportapp.db.session import Base

DIRECTIONS = ("VIC_TO_LLE", "LLE_TO_VIC")

class DepartureTemplate(Base):
    __tablename__ = "departure_templates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    direction: Mapped[str] = mapped_column(String(12), index=True)  # VIC_TO_LLE|LLE_TO_VIC
    depart_time: Mapped[str] = mapped_column(String(5))  # HH:MM, 24h
    capacity_passengers: Mapped[int] = mapped_column(Integer, default=6)
    # never deleted; deactivate instead
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))


def direction_label(direction: str) -> str:
    return "Victoria → Llera" if direction == "VIC_TO_LLE" else "Llera → Victoria"
