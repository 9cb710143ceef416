import pytest
from sqlalchemy import select, update

from transportapp.core.errors import IdentifierCollision, InvalidTransition
from transportapp.models.reservation import Reservation
from transportapp.services import reservation_service as rs
from transportapp.services import ticket_service


def _paid(db, make_input, **kw):
    r = rs.create_reservation(db, make_input(**kw))
    rs.mark_paid(db, r.id, "CASH", actor="admin")
    return r


def test_ticket_requires_paid_status(db, make_input):
    r = rs.create_reservation(db, make_input())
    with pytest.raises(InvalidTransition):
        ticket_service.ensure_ticket(db, r.id)


def test_ticket_code_collision_regenerates(db, make_input, monkeypatch):
    codes = iter(["AAAAAAAAAA", "AAAAAAAAAA", "BBBBBBBBBB"])
    monkeypatch.setattr(ticket_service, "make_ticket_code", lambda: next(codes))
    a = _paid(db, make_input)
    b = _paid(db, make_input)
    assert ticket_service.get_ticket_code(db, a.id) == "AAAAAAAAAA"
    assert ticket_service.get_ticket_code(db, b.id) == "BBBBBBBBBB"


def test_public_token_collision_regenerates(db, make_input, monkeypatch):
    first = rs.create_reservation(db, make_input())
    tokens = iter([first.public_token, "fresh-token"])
    monkeypatch.setattr(rs, "make_public_token", lambda: next(tokens))
    second = rs.create_reservation(db, make_input())
    assert second.public_token == "fresh-token"


def test_exhausted_token_retries_leave_nothing_behind(db, make_input, monkeypatch):
    first = rs.create_reservation(db, make_input())
    taken = first.public_token
    monkeypatch.setattr(rs, "make_public_token", lambda: taken)
    with pytest.raises(IdentifierCollision):
        rs.create_reservation(db, make_input())
    assert len(db.execute(select(Reservation)).scalars().all()) == 1


def test_missing_public_token_is_backfilled_once(db, make_input):
    r = rs.create_reservation(db, make_input())
    db.execute(update(Reservation).where(Reservation.id == r.id).values(public_token=None))
    db.commit()
    token = ticket_service.ensure_public_token(db, r.id)
    db.commit()
    assert token
    assert ticket_service.ensure_public_token(db, r.id) == token


def test_pdf_has_one_page_per_passenger():
    pdf = ticket_service.render_ticket_pdf_bytes(
        folio="RES-20260101-001", code="ABCDEF1234", route_label="Victoria → Llera",
        date_str="2026-01-01", depart_time="08:00", contact_name="Ana", phone="834",
        reservation_type="PASSENGER", passengers=["Ana", "Luis", "Passenger 3"],
    )
    assert pdf.startswith(b"%PDF")
    assert b"/Count 3" in pdf
