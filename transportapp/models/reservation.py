from decimal import Decimal
from sqlalchemy import String, Integer, Date, DateTime, ForeignKey, Numeric, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from datetime import date, datetime, timezone
from transportapp.db.session import Base

TYPE_PASSENGER = "PASSENGER"
TYPE_PACKAGE = "PACKAGE"
RESERVATION_TYPES = (TYPE_PASSENGER, TYPE_PACKAGE)

METHOD_COUNTER = "COUNTER"
METHOD_TRANSFER = "TRANSFER"
METHOD_ONLINE = "ONLINE"
PAYMENT_METHODS = (METHOD_COUNTER, METHOD_TRANSFER, METHOD_ONLINE)

STATUS_PENDING_PAYMENT = "PENDING_PAYMENT"
STATUS_PAY_AT_BOARDING = "PAY_AT_BOARDING"
STATUS_PAID = "PAID"
STATUS_CANCELLED = "CANCELLED"
STATUS_EXPIRED = "EXPIRED"

# statuses that still hold seats
ACTIVE_STATUSES = (STATUS_PENDING_PAYMENT, STATUS_PAY_AT_BOARDING, STATUS_PAID)
# statuses a payment may still move out of
PAYABLE_STATUSES = (STATUS_PENDING_PAYMENT, STATUS_PAY_AT_BOARDING)
TERMINAL_STATUSES = (STATUS_PAID, STATUS_CANCELLED, STATUS_EXPIRED)

class Reservation(Base):
    __tablename__ = "reservations"
    __table_args__ = (
        UniqueConstraint("folio_date", "daily_seq", name="uq_reservation_folio_date_daily_seq"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    trip_id: Mapped[int] = mapped_column(ForeignKey("trips.id"), index=True)

    type: Mapped[str] = mapped_column(String(12), default=TYPE_PASSENGER)  # PASSENGER|PACKAGE
    seats: Mapped[int] = mapped_column(Integer, default=1)  # quantity hint only for PACKAGE
    customer_name: Mapped[str] = mapped_column(String(120))
    phone: Mapped[str] = mapped_column(String(40), default="")
    package_details: Mapped[str | None] = mapped_column(Text, nullable=True)

    payment_method: Mapped[str] = mapped_column(String(12))  # COUNTER|TRANSFER|ONLINE
    transfer_ref: Mapped[str | None] = mapped_column(String(80), nullable=True)
    status: Mapped[str] = mapped_column(String(20), index=True)

    # price snapshot, never recomputed
    unit_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0)
    amount_total: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0)
    currency: Mapped[str] = mapped_column(String(3), default="mxn")
    pricing_version: Mapped[int] = mapped_column(Integer, default=0)

    # null only for rows created before tokens existed
    public_token: Mapped[str | None] = mapped_column(String(64), unique=True, nullable=True)

    gateway_session_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    gateway_payment_intent_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    folio_date: Mapped[date] = mapped_column(Date)
    daily_seq: Mapped[int] = mapped_column(Integer)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    paid_via: Mapped[str | None] = mapped_column(String(12), nullable=True)  # CASH|TRANSFER|ONLINE
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    refunded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


def folio_for(reservation_id: int | None, folio_date: date | str | None, daily_seq: int | None) -> str:
    """RES-YYYYMMDD-### from the trip date and per-day sequence (legacy rows fall back to the id)."""
    ymd = str(folio_date or "").replace("-", "")
    n = daily_seq if daily_seq and daily_seq > 0 else (reservation_id or 0)
    seq = str(n).zfill(3) if n > 0 else "000"
    return f"RES-{ymd}-{seq}"
