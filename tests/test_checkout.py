from decimal import Decimal

import pytest

from transportapp.core.errors import AlreadyPaid, InvalidTransition
from transportapp.models.reservation import Reservation
from transportapp.services import reservation_service as rs
from transportapp.services.checkout_service import ensure_checkout_session, reconcile_return


@pytest.fixture
def online(db, make_input):
    r = rs.create_reservation(db, make_input(payment_method="ONLINE", seats=2))
    return r.id, r.public_token


def test_open_session_is_reused(db, gateway, online):
    _, token = online
    a = ensure_checkout_session(db, gateway, token, base_url="http://x")
    b = ensure_checkout_session(db, gateway, token, base_url="http://x")
    assert a["sessionId"] == b["sessionId"]
    assert len(gateway.created) == 1
    assert gateway.created[0]["amount"] == Decimal("240.00")
    assert "{CHECKOUT_SESSION_ID}" in gateway.created[0]["success_url"]


def test_expired_session_is_replaced(db, gateway, online):
    rid, token = online
    first = ensure_checkout_session(db, gateway, token, base_url="http://x")
    gateway.let_expire(first["sessionId"])
    second = ensure_checkout_session(db, gateway, token, base_url="http://x")
    assert second["sessionId"] != first["sessionId"]
    assert db.get(Reservation, rid).gateway_session_id == second["sessionId"]


def test_paid_session_settles_and_refuses_a_new_one(db, gateway, online):
    rid, token = online
    first = ensure_checkout_session(db, gateway, token, base_url="http://x")
    gateway.pay(first["sessionId"])
    with pytest.raises(AlreadyPaid):
        ensure_checkout_session(db, gateway, token, base_url="http://x")
    assert db.get(Reservation, rid).status == "PAID"
    with pytest.raises(AlreadyPaid):
        ensure_checkout_session(db, gateway, token, base_url="http://x")


def test_only_pending_online_reservations_can_check_out(db, gateway, make_input, online):
    counter = rs.create_reservation(db, make_input(payment_method="COUNTER"))
    with pytest.raises(InvalidTransition):
        ensure_checkout_session(db, gateway, counter.public_token, base_url="http://x")

    rid, token = online
    rs.cancel_reservation(db, rid, actor="admin")
    with pytest.raises(InvalidTransition):
        ensure_checkout_session(db, gateway, token, base_url="http://x")


def test_losing_the_session_race_adopts_the_stored_session(db, gateway, online, monkeypatch):
    rid, token = online
    winner = gateway.create_session(reservation_id=rid, folio="f", description="d", amount=1, currency="mxn",
                                    success_url="s", cancel_url="c")
    real_store = rs.store_session_id

    def _store_after_competitor(db_, reservation_id, session_id, expected):
        # a concurrent request stored its session first
        real_store(db_, reservation_id, winner.id, expected)
        return real_store(db_, reservation_id, session_id, expected)

    monkeypatch.setattr(rs, "store_session_id", _store_after_competitor)
    out = ensure_checkout_session(db, gateway, token, base_url="http://x")
    assert out["sessionId"] == winner.id
    assert len(gateway.expired) == 1 and gateway.expired[0] != winner.id


def test_return_with_paid_session_settles_immediately(db, gateway, online):
    rid, token = online
    s = ensure_checkout_session(db, gateway, token, base_url="http://x")
    gateway.pay(s["sessionId"], intent="pi_ret")
    r = rs.get_by_token(db, token)
    assert reconcile_return(db, gateway, r, s["sessionId"]) is True
    r = db.get(Reservation, rid)
    db.refresh(r)
    assert (r.status, r.gateway_payment_intent_id) == ("PAID", "pi_ret")


def test_return_with_unpaid_session_changes_nothing(db, gateway, online):
    rid, token = online
    s = ensure_checkout_session(db, gateway, token, base_url="http://x")
    r = rs.get_by_token(db, token)
    assert reconcile_return(db, gateway, r, s["sessionId"]) is False
    assert db.get(Reservation, rid).status == "PENDING_PAYMENT"
