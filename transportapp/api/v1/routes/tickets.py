from fastapi import APIRouter, Depends
from fastapi.responses import Response
from sqlalchemy.orm import Session

from transportapp.db.session import get_db
from transportapp.core.errors import InvalidTransition
from transportapp.models.reservation import STATUS_PAID
from transportapp.services import reservation_service
from transportapp.services.ticket_service import render_ticket_pdf_bytes

router = APIRouter(tags=["tickets"])


def _paid_view(db: Session, code: str) -> dict:
    r = reservation_service.get_by_ticket_code(db, code)
    if r.status != STATUS_PAID:
        # ticket outlived a cancellation
        raise InvalidTransition(f"reservation is {r.status.lower()}, ticket is no longer valid")
    return reservation_service.build_view(db, r)


@router.get("/tickets/{code}")
def get_ticket(code: str, db: Session = Depends(get_db)):
    return _paid_view(db, code)


@router.get("/tickets/{code}/pdf")
def get_ticket_pdf(code: str, db: Session = Depends(get_db)):
    v = _paid_view(db, code)
    pdf = render_ticket_pdf_bytes(
        folio=v["folio"],
        code=v["ticketCode"],
        route_label=v["routeLabel"],
        date_str=v["tripDate"],
        depart_time=v["departTime"],
        contact_name=v["customerName"],
        phone=v["phone"],
        reservation_type=v["type"],
        passengers=v["passengers"],
        package_details=v["packageDetails"] or "",
    )
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'inline; filename="ticket-{v["folio"]}.pdf"'},
    )
