"""Reservation state machine.

    PENDING_PAYMENT / PAY_AT_BOARDING -> PAID | CANCELLED | EXPIRED (online only)
    PAID -> CANCELLED (online only, refund handled manually)

Every write runs in one transaction holding a row lock on the trip or the
reservation it touches. Gateway-driven transitions are compare-and-set
updates guarded on the current status, so webhook deliveries, checkout
returns and admin actions can arrive in any order, any number of times.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy import select, update, func
from sqlalchemy.orm import Session

from transportapp.core.config import settings
from transportapp.core.errors import (
    CapacityExceeded, InvalidTransition, NotFound, TripDisabled, ValidationError,
)
from transportapp.models.departure_template import DepartureTemplate, DIRECTIONS, direction_label
from transportapp.models.passenger import ReservationPassenger
from transportapp.models.payment import Payment, AUDIT_PENDING, AUDIT_VERIFIED, AUDIT_REJECTED
from transportapp.models.reservation import (
    Reservation, RESERVATION_TYPES, PAYMENT_METHODS, PAYABLE_STATUSES,
    TYPE_PASSENGER, TYPE_PACKAGE, METHOD_COUNTER, METHOD_TRANSFER, METHOD_ONLINE,
    STATUS_PENDING_PAYMENT, STATUS_PAY_AT_BOARDING, STATUS_PAID, STATUS_CANCELLED, STATUS_EXPIRED,
    folio_for,
)
from transportapp.models.ticket import Ticket
from transportapp.models.trip import Trip, TRIP_OPEN
from transportapp.services import trip_service
from transportapp.services.audit_service import log_audit
from transportapp.services.settings_service import get_pricing, compute_totals
from transportapp.services.ticket_service import (
    ensure_ticket, get_ticket_code, insert_with_retry, make_public_token,
)
from transportapp.utils import timezone as tz

log = logging.getLogger(__name__)

MANUAL_METHODS = ("CASH", "TRANSFER")


@dataclass
class ReservationInput:
    trip_date: str
    customer_name: str
    direction: str = ""
    depart_time: str = ""
    template_id: int | None = None
    type: str = TYPE_PASSENGER
    seats: int = 1
    phone: str = ""
    package_details: str = ""
    payment_method: str = METHOD_COUNTER
    transfer_ref: str | None = None
    passenger_names: list[str] = field(default_factory=list)


@dataclass
class PaidResult:
    reservation_id: int
    status: str
    changed: bool
    ticket_code: str | None = None


def _validate(data: ReservationInput) -> ReservationInput:
    """Normalize input; raises ValidationError before any lock is taken."""
    rtype = (data.type or TYPE_PASSENGER).strip().upper()
    if rtype not in RESERVATION_TYPES:
        raise ValidationError("invalid reservation type")
    method = (data.payment_method or METHOD_COUNTER).strip().upper()
    if method not in PAYMENT_METHODS:
        raise ValidationError("invalid payment method")

    name = (data.customer_name or "").strip()
    if not name:
        raise ValidationError("contact name is required")
    details = (data.package_details or "").strip()
    names = [str(n).strip() for n in (data.passenger_names or []) if str(n).strip()]

    if rtype == TYPE_PACKAGE:
        if not details:
            raise ValidationError("package details are required")
        names = []
        # quantity hint only
        seats = max(0, int(data.seats or 0))
    else:
        seats = max(1, min(settings.MAX_CAPACITY, int(data.seats or 1)))
        if names and len(names) != seats:
            raise ValidationError(f"passenger names must be exactly {seats} (one per seat) or omitted")

    try:
        trip_date = tz.parse_date(data.trip_date)
    except (TypeError, ValueError):
        raise ValidationError("trip_date must be YYYY-MM-DD")
    if trip_date < tz.today():
        raise ValidationError("cannot reserve a past date")

    direction = (data.direction or "").strip().upper()
    depart_time = tz.to_hhmm(data.depart_time) if data.depart_time else ""
    if data.template_id is None:
        if direction not in DIRECTIONS:
            raise ValidationError("invalid direction")
        if not depart_time:
            raise ValidationError("departure time is required")
    if trip_date == tz.today() and depart_time and depart_time <= tz.now_hhmm():
        raise ValidationError("that departure already left, pick another time")

    return ReservationInput(
        trip_date=trip_date.isoformat(),
        customer_name=name,
        direction=direction,
        depart_time=depart_time,
        template_id=data.template_id,
        type=rtype,
        seats=seats,
        phone=(data.phone or "").strip(),
        package_details=details if rtype == TYPE_PACKAGE else "",
        payment_method=method,
        transfer_ref=(data.transfer_ref or "").strip() or None,
        passenger_names=names,
    )


def _resolve_template(db: Session, data: ReservationInput) -> DepartureTemplate:
    if data.template_id is not None:
        template = db.get(DepartureTemplate, data.template_id)
    else:
        template = db.execute(
            select(DepartureTemplate).where(
                DepartureTemplate.active == True,  # noqa: E712
                DepartureTemplate.direction == data.direction,
                DepartureTemplate.depart_time == data.depart_time,
            )
        ).scalars().first()
    if not template or not template.active:
        raise ValidationError("invalid departure")
    if data.trip_date == tz.today().isoformat() and tz.to_hhmm(template.depart_time) <= tz.now_hhmm():
        raise ValidationError("that departure already left, pick another time")
    return template


def _next_daily_seq(db: Session, folio_date) -> int:
    return int(db.execute(
        select(func.coalesce(func.max(Reservation.daily_seq), 0) + 1).where(Reservation.folio_date == folio_date)
    ).scalar_one())


def create_reservation(db: Session, data: ReservationInput) -> Reservation:
    """Create a reservation atomically (row + roster + token + daily sequence).

    The trip row stays locked from the availability check until commit, so
    writers on the same trip are serialized and other trips run in parallel.
    """
    data = _validate(data)
    trip_date = tz.parse_date(data.trip_date)
    status = STATUS_PAY_AT_BOARDING if data.payment_method == METHOD_COUNTER else STATUS_PENDING_PAYMENT

    try:
        pricing = get_pricing(db)
        template = _resolve_template(db, data)
        trip = trip_service.get_or_create_trip(db, template.id, trip_date)
        trip = trip_service.lock_trip(db, trip.id)
        if trip.status != TRIP_OPEN:
            raise TripDisabled("that departure is disabled for this date, pick another time")

        available = trip_service.compute_available(db, trip.id, authoritative=True)
        if data.type == TYPE_PASSENGER and data.seats > available:
            raise CapacityExceeded(data.seats, available)

        unit, total = compute_totals(data.type, data.seats, pricing)

        def _insert(token: str) -> Reservation:
            r = Reservation(
                trip_id=trip.id,
                type=data.type,
                seats=data.seats,
                customer_name=data.customer_name,
                phone=data.phone,
                package_details=data.package_details or None,
                payment_method=data.payment_method,
                transfer_ref=data.transfer_ref,
                status=status,
                unit_price=unit,
                amount_total=total,
                currency=settings.CURRENCY,
                pricing_version=pricing.version,
                public_token=token,
                folio_date=trip_date,
                daily_seq=_next_daily_seq(db, trip_date),
            )
            db.add(r)
            return r

        # a token or (folio_date, daily_seq) collision regenerates both
        reservation = insert_with_retry(db, make_public_token, _insert, what="public token / daily sequence")

        for name in data.passenger_names:
            db.add(ReservationPassenger(reservation_id=reservation.id, passenger_name=name))
        if data.payment_method == METHOD_TRANSFER:
            db.add(Payment(reservation_id=reservation.id, method="TRANSFER", status=AUDIT_PENDING, reference=data.transfer_ref))

        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(reservation)
    log.info("reservation %s created trip=%s type=%s seats=%s method=%s",
             reservation.id, reservation.trip_id, reservation.type, reservation.seats, reservation.payment_method)

    from transportapp.services.notification_service import notify_new_reservation
    notify_new_reservation(db, reservation)
    return reservation


def lock_reservation(db: Session, reservation_id: int) -> Reservation:
    r = db.execute(
        select(Reservation).where(Reservation.id == reservation_id).with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if not r:
        raise NotFound("reservation not found")
    return r


def _reject_pending_audits(db: Session, reservation_id: int) -> int:
    return db.execute(
        update(Payment)
        .where(Payment.reservation_id == reservation_id, Payment.status == AUDIT_PENDING)
        .values(status=AUDIT_REJECTED)
        .execution_options(synchronize_session=False)
    ).rowcount


def cancel_reservation(db: Session, reservation_id: int, actor: str = "system") -> Reservation:
    """Cancel; no-op when already CANCELLED or EXPIRED. PAID is cancellable only for ONLINE."""
    try:
        r = lock_reservation(db, reservation_id)
        if r.status in (STATUS_CANCELLED, STATUS_EXPIRED):
            db.commit()
            return r
        if r.status == STATUS_PAID and r.payment_method != METHOD_ONLINE:
            raise InvalidTransition("cash/transfer payments must be reversed before cancelling")
        previous = r.status
        r.status = STATUS_CANCELLED
        r.cancelled_at = datetime.now(timezone.utc)
        rejected = _reject_pending_audits(db, r.id)
        log_audit(db, actor, "reservation.cancel", "reservation", r.id, {"from": previous, "rejectedAudits": rejected})
        db.commit()
    except Exception:
        db.rollback()
        raise
    log.info("reservation %s cancelled by %s (was %s)", reservation_id, actor, previous)
    return r


def mark_paid(db: Session, reservation_id: int, method: str, actor: str) -> PaidResult:
    """Admin confirmation of a cash/transfer payment; issues the ticket.

    Idempotent: an already PAID reservation just gets its ticket ensured.
    CANCELLED and EXPIRED reservations are left untouched.
    """
    method = (method or "").strip().upper()
    if method not in MANUAL_METHODS:
        method = "CASH"
    try:
        r = lock_reservation(db, reservation_id)
        if r.status in (STATUS_CANCELLED, STATUS_EXPIRED):
            db.commit()
            return PaidResult(r.id, r.status, changed=False)

        changed = False
        if r.status != STATUS_PAID:
            now = datetime.now(timezone.utc)
            r.status = STATUS_PAID
            r.paid_at = now
            r.paid_via = method
            pending = db.execute(
                select(Payment).where(Payment.reservation_id == r.id, Payment.status == AUDIT_PENDING)
            ).scalars().all()
            for p in pending:
                p.status = AUDIT_VERIFIED
                p.method = method
                p.verified_by = actor
                p.verified_at = now
            if not pending:
                db.add(Payment(reservation_id=r.id, method=method, status=AUDIT_VERIFIED,
                               reference=r.transfer_ref, verified_by=actor, verified_at=now))
            log_audit(db, actor, "reservation.mark_paid", "reservation", r.id, {"method": method})
            changed = True
        db.flush()
        code = ensure_ticket(db, r.id)
        db.commit()
    except Exception:
        db.rollback()
        raise
    if changed:
        log.info("reservation %s marked PAID (%s) by %s, ticket %s", reservation_id, method, actor, code)
    return PaidResult(reservation_id, STATUS_PAID, changed=changed, ticket_code=code)


def confirm_refund(db: Session, reservation_id: int, actor: str) -> Reservation:
    """Record that an online payment was refunded out of band; finalizes the cancellation."""
    try:
        r = lock_reservation(db, reservation_id)
        if r.payment_method != METHOD_ONLINE:
            raise InvalidTransition("only online payments are refunded through the gateway")
        if r.status == STATUS_PAID:
            r.status = STATUS_CANCELLED
            r.cancelled_at = datetime.now(timezone.utc)
        elif not (r.status == STATUS_CANCELLED and r.paid_at is not None):
            raise InvalidTransition("reservation was never paid online")
        if r.refunded_at is None:
            r.refunded_at = datetime.now(timezone.utc)
            log_audit(db, actor, "reservation.refund_confirmed", "reservation", r.id,
                      {"paymentIntent": r.gateway_payment_intent_id})
        db.commit()
    except Exception:
        db.rollback()
        raise
    return r


# -------------------------
# Gateway-driven transitions (compare-and-set, no explicit lock)
# -------------------------
def apply_gateway_paid(db: Session, reservation_id: int, session_id: str | None, payment_intent_id: str | None) -> PaidResult:
    """Move an ONLINE reservation to PAID if it is still payable, then ensure the ticket.

    Replays and late duplicates match zero rows and only re-read the ticket.
    """
    try:
        values = {
            "status": STATUS_PAID,
            "paid_at": datetime.now(timezone.utc),
            "paid_via": METHOD_ONLINE,
            "gateway_session_id": func.coalesce(Reservation.gateway_session_id, session_id),
        }
        if payment_intent_id:
            values["gateway_payment_intent_id"] = payment_intent_id
        changed = db.execute(
            update(Reservation)
            .where(
                Reservation.id == reservation_id,
                Reservation.payment_method == METHOD_ONLINE,
                Reservation.status.in_(PAYABLE_STATUSES),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        ).rowcount == 1
        status = db.execute(select(Reservation.status).where(Reservation.id == reservation_id)).scalar_one_or_none()
        if status is None:
            raise NotFound("reservation not found")
        code = ensure_ticket(db, reservation_id) if status == STATUS_PAID else None
        db.commit()
    except Exception:
        db.rollback()
        raise
    if changed:
        log.info("reservation %s PAID online (session=%s)", reservation_id, session_id)
    elif status != STATUS_PAID:
        log.warning("payment for reservation %s arrived while %s; left unchanged", reservation_id, status)
    return PaidResult(reservation_id, status, changed=changed, ticket_code=code)


def apply_gateway_failed(db: Session, reservation_id: int, session_id: str, payment_intent_id: str | None) -> bool:
    """Async payment failed: back to PENDING_PAYMENT with no session, so a retry opens a fresh one.

    Events for a session that is no longer the stored one are ignored.
    """
    try:
        changed = db.execute(
            update(Reservation)
            .where(
                Reservation.id == reservation_id,
                Reservation.gateway_session_id == session_id,
                Reservation.payment_method == METHOD_ONLINE,
                Reservation.status == STATUS_PENDING_PAYMENT,
            )
            .values(
                gateway_session_id=None,
                gateway_payment_intent_id=func.coalesce(Reservation.gateway_payment_intent_id, payment_intent_id),
            )
            .execution_options(synchronize_session=False)
        ).rowcount == 1
        db.commit()
    except Exception:
        db.rollback()
        raise
    return changed


def apply_session_expired(db: Session, reservation_id: int, session_id: str) -> bool:
    """Checkout session expired unpaid: EXPIRED frees the seats."""
    try:
        changed = db.execute(
            update(Reservation)
            .where(
                Reservation.id == reservation_id,
                Reservation.gateway_session_id == session_id,
                Reservation.payment_method == METHOD_ONLINE,
                Reservation.status == STATUS_PENDING_PAYMENT,
            )
            .values(status=STATUS_EXPIRED, gateway_session_id=None)
            .execution_options(synchronize_session=False)
        ).rowcount == 1
        db.commit()
    except Exception:
        db.rollback()
        raise
    if changed:
        log.info("reservation %s EXPIRED (checkout session expired)", reservation_id)
    return changed


def store_session_id(db: Session, reservation_id: int, session_id: str, expected: str | None) -> bool:
    """Persist a new checkout session id only if the stored one is still `expected`."""
    cond = Reservation.gateway_session_id.is_(None) if expected is None else Reservation.gateway_session_id == expected
    try:
        changed = db.execute(
            update(Reservation)
            .where(
                Reservation.id == reservation_id,
                Reservation.payment_method == METHOD_ONLINE,
                Reservation.status == STATUS_PENDING_PAYMENT,
                cond,
            )
            .values(gateway_session_id=session_id)
            .execution_options(synchronize_session=False)
        ).rowcount == 1
        db.commit()
    except Exception:
        db.rollback()
        raise
    return changed


# -------------------------
# Reads
# -------------------------
def get_by_token(db: Session, token: str) -> Reservation:
    token = (token or "").strip()
    r = db.execute(select(Reservation).where(Reservation.public_token == token)).scalar_one_or_none() if token else None
    if not r:
        raise NotFound("reservation not found")
    return r


def passenger_names(db: Session, r: Reservation) -> list[str]:
    """Roster names; synthesized as "Passenger N" when the customer skipped them."""
    if r.type != TYPE_PASSENGER:
        return []
    names = db.execute(
        select(ReservationPassenger.passenger_name)
        .where(ReservationPassenger.reservation_id == r.id)
        .order_by(ReservationPassenger.id.asc())
    ).scalars().all()
    if names:
        return list(names)
    return [f"Passenger {i}" for i in range(1, max(1, r.seats or 1) + 1)]


def gateway_link(r: Reservation) -> str | None:
    if r.payment_method != METHOD_ONLINE:
        return None
    base = settings.STRIPE_DASHBOARD_URL.rstrip("/")
    if r.gateway_payment_intent_id:
        return f"{base}/payments/{r.gateway_payment_intent_id}"
    if r.gateway_session_id:
        return f"{base}/checkout/sessions/{r.gateway_session_id}"
    return None


def get_by_ticket_code(db: Session, code: str) -> Reservation:
    code = (code or "").strip().upper()
    r = db.execute(
        select(Reservation).join(Ticket, Ticket.reservation_id == Reservation.id).where(Ticket.code == code)
    ).scalar_one_or_none() if code else None
    if not r:
        raise NotFound("ticket not found")
    return r


def build_view(db: Session, r: Reservation) -> dict:
    """Public, token-scoped rendering of a reservation (no internal ids)."""
    trip = db.get(Trip, r.trip_id)
    template = db.get(DepartureTemplate, trip.template_id) if trip else None
    direction = template.direction if template else ""
    return {
        "folio": folio_for(r.id, r.folio_date, r.daily_seq),
        "status": r.status,
        "type": r.type,
        "seats": r.seats,
        "direction": direction,
        "routeLabel": direction_label(direction) if direction else "",
        "tripDate": trip.trip_date.isoformat() if trip else str(r.folio_date),
        "departTime": template.depart_time if template else "",
        "customerName": r.customer_name,
        "phone": r.phone or "",
        "packageDetails": r.package_details,
        "paymentMethod": r.payment_method,
        "unitPrice": str(r.unit_price),
        "amountTotal": str(r.amount_total),
        "currency": r.currency,
        "passengers": passenger_names(db, r),
        "ticketCode": get_ticket_code(db, r.id) if r.status == STATUS_PAID else None,
        "canPayOnline": r.payment_method == METHOD_ONLINE and r.status == STATUS_PENDING_PAYMENT,
    }
