"""Enable / disable a departure on one date."""
import logging
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from transportapp.core.errors import NotFound, ValidationError
from transportapp.models.departure_template import DepartureTemplate
from transportapp.models.payment import Payment, AUDIT_PENDING, AUDIT_REJECTED
from transportapp.models.reservation import (
    Reservation, STATUS_CANCELLED, STATUS_PENDING_PAYMENT, STATUS_PAY_AT_BOARDING,
)
from transportapp.models.trip import TRIP_OPEN, TRIP_CANCELLED
from transportapp.services import trip_service
from transportapp.services.audit_service import log_audit
from transportapp.utils import timezone as tz

log = logging.getLogger(__name__)

# PAID reservations survive a disabled trip; refunds are handled by hand
CANCELLABLE_ON_DISABLE = (STATUS_PENDING_PAYMENT, STATUS_PAY_AT_BOARDING)


def _template_and_date(db: Session, template_id: int, trip_date):
    try:
        d = tz.parse_date(trip_date)
    except (TypeError, ValueError):
        raise ValidationError("date must be YYYY-MM-DD")
    template = db.get(DepartureTemplate, template_id)
    if not template:
        raise NotFound("departure template not found")
    return template, d


def disable_trip(db: Session, template_id: int, trip_date, actor: str, notes: str | None = None) -> dict:
    """Mark the trip CANCELLED and cancel its unpaid reservations, atomically.

    Holds the trip row lock, so no reservation can slip in between the status
    change and the sweep. Repeating the call is harmless.
    """
    template, d = _template_and_date(db, template_id, trip_date)
    try:
        trip = trip_service.get_or_create_trip(db, template.id, d)
        trip = trip_service.lock_trip(db, trip.id)
        now = datetime.now(timezone.utc)
        trip.status = TRIP_CANCELLED
        trip.updated_at = now
        if notes is not None:
            trip.notes = notes

        ids = db.execute(
            select(Reservation.id).where(
                Reservation.trip_id == trip.id,
                Reservation.status.in_(CANCELLABLE_ON_DISABLE),
            )
        ).scalars().all()
        cancelled = 0
        if ids:
            cancelled = db.execute(
                update(Reservation)
                .where(Reservation.id.in_(ids), Reservation.status.in_(CANCELLABLE_ON_DISABLE))
                .values(status=STATUS_CANCELLED, cancelled_at=now)
                .execution_options(synchronize_session=False)
            ).rowcount
            db.execute(
                update(Payment)
                .where(Payment.reservation_id.in_(ids), Payment.status == AUDIT_PENDING)
                .values(status=AUDIT_REJECTED)
                .execution_options(synchronize_session=False)
            )
        log_audit(db, actor, "trip.disable", "trip", trip.id,
                  {"templateId": template.id, "date": d.isoformat(), "cancelled": cancelled})
        db.commit()
    except Exception:
        db.rollback()
        raise
    log.info("trip %s (%s %s) disabled by %s, %d reservations cancelled",
             trip.id, template.depart_time, d, actor, cancelled)
    return {"tripId": trip.id, "status": TRIP_CANCELLED, "cancelledReservations": cancelled}


def enable_trip(db: Session, template_id: int, trip_date, actor: str) -> dict:
    """Reopen the trip. Reservations cancelled by a disable stay cancelled."""
    template, d = _template_and_date(db, template_id, trip_date)
    try:
        trip = trip_service.get_or_create_trip(db, template.id, d)
        trip = trip_service.lock_trip(db, trip.id)
        if trip.status != TRIP_OPEN:
            trip.status = TRIP_OPEN
            trip.updated_at = datetime.now(timezone.utc)
            log_audit(db, actor, "trip.enable", "trip", trip.id, {"templateId": template.id, "date": d.isoformat()})
        db.commit()
    except Exception:
        db.rollback()
        raise
    return {"tripId": trip.id, "status": TRIP_OPEN}
