from __future__ import annotations

import io
import logging
import secrets
from datetime import datetime, timezone

from reportlab.lib.pagesizes import A6
from reportlab.pdfgen import canvas
from sqlalchemy import select, update, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from transportapp.core.config import settings
from transportapp.core.errors import IdentifierCollision, InvalidTransition, NotFound
from transportapp.models.reservation import Reservation, STATUS_PAID
from transportapp.models.ticket import Ticket

log = logging.getLogger(__name__)


def make_ticket_code() -> str:
    # 10 hex chars
    return secrets.token_hex(5).upper()


def make_public_token() -> str:
    return secrets.token_urlsafe(24)


def insert_with_retry(db: Session, generate, attempt, what: str, limit: int | None = None):
    """generate -> attempt insert in a savepoint -> on unique conflict regenerate, up to `limit` tries.

    Only the failed savepoint is rolled back; the caller's transaction stays usable.
    Raises IdentifierCollision when every attempt collided.
    """
    limit = limit or settings.IDENTIFIER_RETRY_LIMIT
    for i in range(limit):
        value = generate()
        try:
            with db.begin_nested():
                result = attempt(value)
                db.flush()
            return result
        except IntegrityError:
            log.warning("%s collision (attempt %d/%d), regenerating", what, i + 1, limit)
    raise IdentifierCollision(f"could not allocate a unique {what} after {limit} attempts")


def get_ticket_code(db: Session, reservation_id: int) -> str | None:
    return db.execute(
        select(Ticket.code).where(Ticket.reservation_id == reservation_id)
    ).scalar_one_or_none()


def ensure_ticket(db: Session, reservation_id: int) -> str:
    """Return the reservation's ticket code, issuing it on first call.

    Safe to race: the loser of two concurrent inserts hits the unique key on
    reservation_id, re-reads, and returns the winner's code. Does not commit.
    """
    status = db.execute(
        select(Reservation.status).where(Reservation.id == reservation_id)
    ).scalar_one_or_none()
    if status is None:
        raise NotFound("reservation not found")
    if status != STATUS_PAID:
        raise InvalidTransition(f"tickets are issued only for PAID reservations (status={status})")

    limit = settings.IDENTIFIER_RETRY_LIMIT
    for i in range(limit):
        existing = get_ticket_code(db, reservation_id)
        if existing:
            return existing
        code = make_ticket_code()
        try:
            with db.begin_nested():
                db.add(Ticket(reservation_id=reservation_id, code=code))
                db.flush()
            log.info("ticket %s issued for reservation %s", code, reservation_id)
            return code
        except IntegrityError:
            # either another issuer won for this reservation, or the code itself collided
            winner = get_ticket_code(db, reservation_id)
            if winner:
                return winner
            log.warning("ticket code collision for reservation %s (attempt %d/%d)", reservation_id, i + 1, limit)
    raise IdentifierCollision(f"could not issue a ticket for reservation {reservation_id}")


def ensure_public_token(db: Session, reservation_id: int) -> str:
    """Return the reservation's public token, backfilling one for legacy rows. Does not commit."""
    row = db.execute(
        select(Reservation.id, Reservation.public_token).where(Reservation.id == reservation_id)
    ).first()
    if row is None:
        raise NotFound("reservation not found")
    existing = (row.public_token or "").strip()
    if existing:
        return existing

    def _attempt(token: str) -> str:
        # only fills an empty slot; a concurrent writer that got there first wins
        db.execute(
            update(Reservation)
            .where(Reservation.id == reservation_id, or_(Reservation.public_token.is_(None), Reservation.public_token == ""))
            .values(public_token=token)
            .execution_options(synchronize_session=False)
        )
        return token

    insert_with_retry(db, make_public_token, _attempt, what="public token")
    final = db.execute(
        select(Reservation.public_token).where(Reservation.id == reservation_id)
    ).scalar_one()
    return final


def render_ticket_pdf_bytes(*, folio: str, code: str, route_label: str, date_str: str, depart_time: str,
                            contact_name: str, phone: str, reservation_type: str,
                            passengers: list[str], package_details: str = "") -> bytes:
    """Return A6 PDF bytes, one page per passenger (a single page for packages). Pure function."""
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=A6)
    w, h = A6

    pages = passengers if reservation_type == "PASSENGER" and passengers else [None]
    total = len(pages)
    for idx, passenger in enumerate(pages, start=1):
        c.setFont("Helvetica-Bold", 13)
        c.drawString(20, h - 36, "TICKET PAGADO")
        c.setFont("Helvetica-Bold", 11)
        c.drawString(20, h - 56, f"Folio: {folio}")
        c.setFont("Helvetica", 9)
        c.drawString(20, h - 70, f"Código: {code}")
        if passenger is not None:
            c.drawString(20, h - 82, f"Pasajero {idx}/{total}")

        y = h - 104
        rows = [
            ("Ruta", route_label),
            ("Fecha", date_str),
            ("Hora", depart_time),
            ("Contacto", contact_name or "-"),
            ("Teléfono", phone or "-"),
        ]
        if passenger is not None:
            rows.append(("Pasajero", passenger))
        else:
            rows.append(("Detalle", (package_details or "-")[:60]))
        for label, value in rows:
            c.setFont("Helvetica-Bold", 9)
            c.drawString(20, y, label)
            c.setFont("Helvetica", 9)
            c.drawString(80, y, str(value))
            y -= 16

        c.setFont("Helvetica", 8)
        c.drawString(20, 30, "Presenta este ticket al abordar.")
        c.drawString(20, 18, f"Generado: {datetime.now(timezone.utc).isoformat(timespec='seconds')}")
        c.showPage()
    c.save()
    return buf.getvalue()
