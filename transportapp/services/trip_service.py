"""Trip catalog and seat ledger.

A trip is a departure template materialized for one date. Trips are created
lazily by the write path only; availability listings never create them.

Seats are never stored as a counter: remaining capacity is always derived
from committed reservation rows, so nothing has to be "given back" when a
reservation is cancelled or expires.
"""
import logging
from datetime import date

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from transportapp.core.config import settings
from transportapp.core.errors import NotFound
from transportapp.models.departure_template import DepartureTemplate
from transportapp.models.passenger import ReservationPassenger
from transportapp.models.reservation import Reservation, TYPE_PASSENGER, TYPE_PACKAGE, ACTIVE_STATUSES
from transportapp.models.trip import Trip, TRIP_OPEN
from transportapp.utils import timezone as tz

log = logging.getLogger(__name__)


def effective_capacity(template_capacity: int | None) -> int:
    return max(0, min(int(template_capacity or 0), settings.MAX_CAPACITY))


def _find_trip(db: Session, template_id: int, trip_date: date) -> Trip | None:
    return db.execute(
        select(Trip).where(Trip.template_id == template_id, Trip.trip_date == trip_date)
    ).scalar_one_or_none()


def get_or_create_trip(db: Session, template_id: int, trip_date: date) -> Trip:
    """Fetch the (template, date) trip, inserting it as OPEN on first access.

    A concurrent insert of the same pair loses on the unique key; the loser
    re-reads the winner's row. Runs inside the caller's transaction.
    """
    trip = _find_trip(db, template_id, trip_date)
    if trip:
        return trip
    try:
        with db.begin_nested():
            trip = Trip(template_id=template_id, trip_date=trip_date, status=TRIP_OPEN)
            db.add(trip)
            db.flush()
        return trip
    except IntegrityError:
        log.info("trip insert raced for template=%s date=%s, re-reading", template_id, trip_date)
        trip = _find_trip(db, template_id, trip_date)
        if not trip:
            raise
        return trip


def lock_trip(db: Session, trip_id: int) -> Trip:
    """SELECT ... FOR UPDATE on the trip row; held until the caller commits or rolls back."""
    trip = db.execute(
        select(Trip).where(Trip.id == trip_id).with_for_update().execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if not trip:
        raise NotFound("trip not found")
    return trip


def _roster_counts():
    return (
        select(ReservationPassenger.reservation_id, func.count(ReservationPassenger.id).label("n"))
        .group_by(ReservationPassenger.reservation_id)
        .subquery()
    )


def _seat_expr(roster):
    # roster size if present, else declared seats, else 1
    return func.coalesce(roster.c.n, func.nullif(Reservation.seats, 0), 1)


def used_seats(db: Session, trip_id: int) -> int:
    roster = _roster_counts()
    total = db.execute(
        select(func.coalesce(func.sum(_seat_expr(roster)), 0))
        .select_from(Reservation)
        .outerjoin(roster, roster.c.reservation_id == Reservation.id)
        .where(
            Reservation.trip_id == trip_id,
            Reservation.type == TYPE_PASSENGER,
            Reservation.status.in_(ACTIVE_STATUSES),
        )
    ).scalar_one()
    return int(total or 0)


def compute_available(db: Session, trip_id: int, authoritative: bool = False) -> int:
    """Remaining PASSENGER seats for a trip.

    Advisory mode reads without locks and may be stale. Authoritative mode
    takes (or re-takes) the trip row lock first; use it right before
    committing a reservation.
    """
    if authoritative:
        trip = lock_trip(db, trip_id)
    else:
        trip = db.get(Trip, trip_id)
        if not trip:
            raise NotFound("trip not found")
    template = db.get(DepartureTemplate, trip.template_id)
    capacity = effective_capacity(template.capacity_passengers if template else 0)
    return max(0, capacity - used_seats(db, trip_id))


def list_availability(db: Session, trip_date, direction: str, seats_wanted: int = 1) -> list[dict]:
    """Advisory availability for every active departure in a direction on a date."""
    d = tz.parse_date(trip_date)
    seats_wanted = max(0, min(settings.MAX_CAPACITY, int(seats_wanted)))
    today = tz.today()
    if d < today:
        return []
    now_hhmm = tz.now_hhmm() if d == today else None

    templates = db.execute(
        select(DepartureTemplate)
        .where(DepartureTemplate.active == True, DepartureTemplate.direction == direction)  # noqa: E712
        .order_by(DepartureTemplate.depart_time.asc())
    ).scalars().all()
    if not templates:
        return []

    trips = {
        t.template_id: t
        for t in db.execute(
            select(Trip).where(Trip.template_id.in_([t.id for t in templates]), Trip.trip_date == d)
        ).scalars().all()
    }

    results = []
    for template in templates:
        depart = tz.to_hhmm(template.depart_time)
        if now_hhmm and depart <= now_hhmm:
            continue
        trip = trips.get(template.id)
        # no trip row yet means OPEN with the full capacity
        if trip and trip.status != TRIP_OPEN:
            continue
        available = effective_capacity(template.capacity_passengers)
        if trip:
            available = max(0, available - used_seats(db, trip.id))
        if seats_wanted > 0 and available < seats_wanted:
            continue
        results.append({"time": template.depart_time, "available": available, "templateId": template.id})
    return results


def trip_agenda(db: Session, trip_date) -> list[dict]:
    """Per-trip seat and package usage for one day (admin agenda)."""
    d = tz.parse_date(trip_date)
    rows = db.execute(
        select(Trip, DepartureTemplate)
        .join(DepartureTemplate, DepartureTemplate.id == Trip.template_id)
        .where(Trip.trip_date == d)
        .order_by(DepartureTemplate.depart_time.asc())
    ).all()
    out = []
    for trip, template in rows:
        packages = db.execute(
            select(func.coalesce(func.sum(func.coalesce(func.nullif(Reservation.seats, 0), 1)), 0))
            .where(
                Reservation.trip_id == trip.id,
                Reservation.type == TYPE_PACKAGE,
                Reservation.status.in_(ACTIVE_STATUSES),
            )
        ).scalar_one()
        used = used_seats(db, trip.id)
        out.append({
            "tripId": trip.id,
            "tripDate": trip.trip_date.isoformat(),
            "direction": template.direction,
            "departTime": template.depart_time,
            "status": trip.status,
            "capacity": effective_capacity(template.capacity_passengers),
            "usedSeats": used,
            "packages": int(packages or 0),
        })
    return out
