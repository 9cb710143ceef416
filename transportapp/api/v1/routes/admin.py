from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session

from transportapp.db.session import get_db
from transportapp.api.deps import require_roles
from transportapp.core.errors import NotFound, ValidationError
from transportapp.models.departure_template import DepartureTemplate
from transportapp.models.reservation import Reservation, PAYABLE_STATUSES, folio_for
from transportapp.models.trip import Trip
from transportapp.models.user import User
from transportapp.schemas.admin import MarkPaidRequest, TripToggleRequest, PricingUpdate
from transportapp.services import reservation_service, trip_service, trip_lifecycle
from transportapp.services.audit_service import log_audit
from transportapp.services.settings_service import get_pricing, set_pricing
from transportapp.services.ticket_service import get_ticket_code
from transportapp.utils import timezone as tz

router = APIRouter(tags=["admin"])

staff_only = require_roles("admin", "staff")


def _row(db: Session, r: Reservation) -> dict:
    return {
        "id": r.id,
        "folio": folio_for(r.id, r.folio_date, r.daily_seq),
        "type": r.type,
        "seats": r.seats,
        "status": r.status,
        "paymentMethod": r.payment_method,
        "paidVia": r.paid_via,
        "customerName": r.customer_name,
        "phone": r.phone,
        "packageDetails": r.package_details,
        "transferRef": r.transfer_ref,
        "amountTotal": str(r.amount_total),
        "passengers": reservation_service.passenger_names(db, r),
        "ticketCode": get_ticket_code(db, r.id),
        "createdAt": r.created_at.isoformat() if r.created_at else None,
        "refundedAt": r.refunded_at.isoformat() if r.refunded_at else None,
    }


@router.get("/admin/agenda")
def agenda(date: str | None = None, db: Session = Depends(get_db), me: User = Depends(staff_only)):
    try:
        d = tz.parse_date(date) if date else tz.today()
    except ValueError:
        raise ValidationError("date must be YYYY-MM-DD")
    return {"date": d.isoformat(), "trips": trip_service.trip_agenda(db, d)}


@router.get("/admin/trips/{trip_id}")
def trip_detail(trip_id: int, only_pending: bool = False,
                db: Session = Depends(get_db), me: User = Depends(staff_only)):
    trip = db.get(Trip, trip_id)
    if not trip:
        raise NotFound("trip not found")
    template = db.get(DepartureTemplate, trip.template_id)
    q = select(Reservation).where(Reservation.trip_id == trip.id)
    if only_pending:
        q = q.where(Reservation.status.in_(PAYABLE_STATUSES))
    rows = db.execute(q.order_by(Reservation.daily_seq.asc())).scalars().all()
    return {
        "tripId": trip.id,
        "tripDate": trip.trip_date.isoformat(),
        "direction": template.direction if template else None,
        "departTime": template.depart_time if template else None,
        "status": trip.status,
        "notes": trip.notes,
        "capacity": trip_service.effective_capacity(template.capacity_passengers if template else 0),
        "usedSeats": trip_service.used_seats(db, trip.id),
        "reservations": [_row(db, r) for r in rows],
    }


@router.post("/admin/trips/disable")
def disable_trip(body: TripToggleRequest, db: Session = Depends(get_db), me: User = Depends(staff_only)):
    return trip_lifecycle.disable_trip(db, body.templateId, body.date, actor=me.email, notes=body.notes)


@router.post("/admin/trips/enable")
def enable_trip(body: TripToggleRequest, db: Session = Depends(get_db), me: User = Depends(staff_only)):
    return trip_lifecycle.enable_trip(db, body.templateId, body.date, actor=me.email)


@router.post("/admin/reservations/{reservation_id}/mark-paid")
def mark_paid(reservation_id: int, body: MarkPaidRequest | None = None,
              db: Session = Depends(get_db), me: User = Depends(staff_only)):
    method = body.method if body else "CASH"
    result = reservation_service.mark_paid(db, reservation_id, method, actor=me.email)
    return {"id": result.reservation_id, "status": result.status, "changed": result.changed,
            "ticketCode": result.ticket_code}


@router.post("/admin/reservations/{reservation_id}/cancel")
def cancel(reservation_id: int, db: Session = Depends(get_db), me: User = Depends(staff_only)):
    r = reservation_service.cancel_reservation(db, reservation_id, actor=me.email)
    return {"id": r.id, "status": r.status}


@router.post("/admin/reservations/{reservation_id}/refund-confirmed")
def refund_confirmed(reservation_id: int, db: Session = Depends(get_db), me: User = Depends(staff_only)):
    r = reservation_service.confirm_refund(db, reservation_id, actor=me.email)
    return {"id": r.id, "status": r.status, "refundedAt": r.refunded_at.isoformat() if r.refunded_at else None}


@router.get("/admin/reservations/{reservation_id}/gateway-link")
def gateway_link(reservation_id: int, db: Session = Depends(get_db), me: User = Depends(staff_only)):
    r = db.get(Reservation, reservation_id)
    if not r:
        raise NotFound("reservation not found")
    url = reservation_service.gateway_link(r)
    if not url:
        raise HTTPException(status_code=404, detail="No gateway payment for this reservation")
    return {"url": url}


@router.get("/admin/pricing")
def read_pricing(db: Session = Depends(get_db), me: User = Depends(staff_only)):
    return get_pricing(db).as_dict()


@router.put("/admin/pricing")
def update_pricing(body: PricingUpdate, db: Session = Depends(get_db), me: User = Depends(require_roles("admin"))):
    try:
        pricing = set_pricing(db, body.passenger, body.package)
    except ValueError as e:
        raise ValidationError(str(e))
    log_audit(db, me.email, "settings.pricing", "settings", "PRICING", pricing.as_dict())
    db.commit()
    return pricing.as_dict()
