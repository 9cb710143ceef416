from typing import Optional
from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from transportapp.db.session import get_db
from transportapp.api.deps import get_gateway
from transportapp.core.config import settings
from transportapp.core.errors import ValidationError
from transportapp.models.departure_template import DIRECTIONS
from transportapp.models.reservation import folio_for
from transportapp.schemas.reservation import ReservationCreate, ReservationCreated, AvailabilitySlot, ReservationView
from transportapp.services import reservation_service, trip_service
from transportapp.services.checkout_service import reconcile_return
from transportapp.services.settings_service import get_pricing
from transportapp.services.ticket_service import ensure_public_token

router = APIRouter(tags=["public"])


def _base_url(req: Request) -> str:
    return (settings.BASE_URL or str(req.base_url)).rstrip("/")


@router.get("/availability", response_model=list[AvailabilitySlot])
def availability(date: str, direction: str, seats: int = 1, db: Session = Depends(get_db)):
    """Departures that still have room for `seats` passengers. Advisory; may be stale."""
    direction = (direction or "").strip().upper()
    if direction not in DIRECTIONS:
        raise ValidationError("invalid direction")
    try:
        return trip_service.list_availability(db, date, direction, seats)
    except ValueError:
        raise ValidationError("date must be YYYY-MM-DD")


@router.get("/pricing")
def pricing(db: Session = Depends(get_db)):
    return get_pricing(db).as_dict()


@router.post("/reservations", response_model=ReservationCreated, status_code=201)
def create_reservation(body: ReservationCreate, req: Request, db: Session = Depends(get_db)):
    r = reservation_service.create_reservation(db, reservation_service.ReservationInput(
        trip_date=body.tripDate,
        direction=body.direction,
        depart_time=body.departTime,
        template_id=body.templateId,
        type=body.type,
        seats=body.seats,
        customer_name=body.customerName,
        phone=body.phone,
        package_details=body.packageDetails,
        payment_method=body.paymentMethod,
        transfer_ref=body.transferRef,
        passenger_names=body.passengerNames,
    ))
    return ReservationCreated(
        folio=folio_for(r.id, r.folio_date, r.daily_seq),
        status=r.status,
        publicToken=r.public_token,
        publicUrl=f"{_base_url(req)}/api/v1/reservations/t/{r.public_token}",
        unitPrice=str(r.unit_price),
        amountTotal=str(r.amount_total),
        currency=r.currency,
        pricingVersion=r.pricing_version,
    )


@router.get("/reservations/t/{token}", response_model=ReservationView)
def reservation_by_token(token: str, session_id: Optional[str] = None,
                         db: Session = Depends(get_db), gateway=Depends(get_gateway)):
    r = reservation_service.get_by_token(db, token)
    if session_id:
        # returning from checkout; settle now rather than wait for the webhook
        reconcile_return(db, gateway, r, session_id)
        r = reservation_service.get_by_token(db, token)
    return reservation_service.build_view(db, r)


@router.get("/reservations/{reservation_id}")
def legacy_reservation(reservation_id: int, req: Request, db: Session = Depends(get_db)):
    """Old id-based links: backfill a token if needed and redirect to the token URL."""
    token = ensure_public_token(db, reservation_id)
    db.commit()
    url = f"/api/v1/reservations/t/{token}"
    if req.url.query:
        url = f"{url}?{req.url.query}"
    return RedirectResponse(url=url, status_code=302)
