from jose import jwt
from sqlalchemy import select, update

from transportapp.core.config import settings
from transportapp.core.security import create_access_token
from transportapp.db.session import SessionLocal
from transportapp.models.reservation import Reservation
from transportapp.models.user import User

from conftest import reservation_id


def _create(client, template, tomorrow, **kw):
    body = {
        "tripDate": tomorrow.isoformat(), "direction": template.direction, "departTime": template.depart_time,
        "customerName": "Ana", "phone": "834", "seats": 1,
    }
    body.update(kw)
    return client.post("/api/v1/reservations", json=body)


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok", "db": "ok"}


def test_create_and_view_by_token(client, template, tomorrow):
    r = _create(client, template, tomorrow, seats=2, passengerNames=["Ana", "Luis"])
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["status"] == "PAY_AT_BOARDING"
    # only the public token identifies a reservation publicly
    assert "id" not in body
    assert body["amountTotal"] == "240.00"
    assert body["publicUrl"].endswith(f"/reservations/t/{body['publicToken']}")

    view = client.get(f"/api/v1/reservations/t/{body['publicToken']}").json()
    assert view["folio"] == body["folio"]
    assert view["passengers"] == ["Ana", "Luis"]
    assert view["routeLabel"] == "Victoria → Llera"
    assert view["ticketCode"] is None


def test_domain_errors_map_to_status_codes(client, template, tomorrow):
    assert _create(client, template, tomorrow, customerName="").status_code == 400
    assert client.get("/api/v1/reservations/t/does-not-exist").status_code == 404

    assert _create(client, template, tomorrow, seats=5).status_code == 201
    full = _create(client, template, tomorrow, seats=2)
    assert full.status_code == 409
    assert full.json()["error"] == "CAPACITY_EXCEEDED"
    assert full.json()["available"] == 1


def test_availability_endpoint_validates_direction(client, template, tomorrow):
    assert client.get("/api/v1/availability", params={"date": tomorrow.isoformat(), "direction": "UP"}).status_code == 400
    ok = client.get("/api/v1/availability", params={"date": tomorrow.isoformat(), "direction": "lle_to_vic"})
    assert [s["time"] for s in ok.json()] == ["09:00"]


def test_legacy_links_redirect_to_token_urls(client, template, tomorrow):
    body = _create(client, template, tomorrow, paymentMethod="ONLINE").json()
    rid = reservation_id(body["publicToken"])
    db = SessionLocal()
    try:
        db.execute(update(Reservation).where(Reservation.id == rid).values(public_token=None))
        db.commit()
    finally:
        db.close()

    r = client.get(f"/api/v1/reservations/{rid}?session_id=cs_1", follow_redirects=False)
    assert r.status_code == 302
    location = r.headers["location"]
    assert location.startswith("/api/v1/reservations/t/") and location.endswith("?session_id=cs_1")

    c = client.post(f"/api/v1/checkout/{rid}/create-session", follow_redirects=False)
    assert c.status_code == 307
    token = location.split("/t/")[1].split("?")[0]
    assert c.headers["location"] == f"/api/v1/checkout/t/{token}/create-session"


def test_checkout_return_settles_and_exposes_ticket(client, gateway, template, tomorrow):
    token = _create(client, template, tomorrow, paymentMethod="ONLINE").json()["publicToken"]
    sid = client.post(f"/api/v1/checkout/t/{token}/create-session").json()["sessionId"]
    gateway.pay(sid)

    view = client.get(f"/api/v1/reservations/t/{token}", params={"session_id": sid}).json()
    assert view["status"] == "PAID"
    code = view["ticketCode"]
    assert code

    assert client.get(f"/api/v1/tickets/{code}").json()["folio"] == view["folio"]
    pdf = client.get(f"/api/v1/tickets/{code}/pdf")
    assert pdf.status_code == 200
    assert pdf.headers["content-type"] == "application/pdf"
    assert pdf.content.startswith(b"%PDF")

    again = client.post(f"/api/v1/checkout/t/{token}/create-session")
    assert again.status_code == 409
    assert again.json()["error"] == "ALREADY_PAID"


def test_admin_endpoints_require_auth(client):
    assert client.get("/api/v1/admin/agenda").status_code == 401
    assert client.post("/api/v1/admin/reservations/1/cancel").status_code == 401


def test_admin_mark_paid_cancel_and_agenda(client, admin_headers, template, tomorrow):
    a = reservation_id(_create(client, template, tomorrow, seats=2).json()["publicToken"])
    b = reservation_id(_create(client, template, tomorrow, type="PACKAGE", packageDetails="caja").json()["publicToken"])

    paid = client.post(f"/api/v1/admin/reservations/{a}/mark-paid", json={"method": "CASH"}, headers=admin_headers)
    assert paid.status_code == 200
    assert paid.json()["ticketCode"]
    assert client.post(f"/api/v1/admin/reservations/{a}/cancel", headers=admin_headers).status_code == 409

    assert client.post(f"/api/v1/admin/reservations/{b}/cancel", headers=admin_headers).json()["status"] == "CANCELLED"

    agenda = client.get("/api/v1/admin/agenda", params={"date": tomorrow.isoformat()}, headers=admin_headers).json()
    [trip] = agenda["trips"]
    assert (trip["usedSeats"], trip["packages"], trip["capacity"]) == (2, 0, 6)

    detail = client.get(f"/api/v1/admin/trips/{trip['tripId']}", headers=admin_headers).json()
    assert [r["status"] for r in detail["reservations"]] == ["PAID", "CANCELLED"]
    pending = client.get(f"/api/v1/admin/trips/{trip['tripId']}", params={"only_pending": True}, headers=admin_headers)
    assert pending.json()["reservations"] == []


def test_admin_disable_and_enable_trip(client, admin_headers, template, tomorrow):
    _create(client, template, tomorrow)
    r = client.post("/api/v1/admin/trips/disable", json={"templateId": template.id, "date": tomorrow.isoformat()},
                    headers=admin_headers)
    assert r.json()["cancelledReservations"] == 1
    assert _create(client, template, tomorrow).json()["error"] == "TRIP_DISABLED"

    client.post("/api/v1/admin/trips/enable", json={"templateId": template.id, "date": tomorrow.isoformat()},
                headers=admin_headers)
    assert _create(client, template, tomorrow).status_code == 201


def test_pricing_update_bumps_version(client, admin_headers, template, tomorrow):
    assert client.get("/api/v1/pricing").json() == {"passenger": "120.00", "package": "120.00", "version": 0}
    r = client.put("/api/v1/admin/pricing", json={"passenger": "150", "package": "80.5"}, headers=admin_headers)
    assert r.json() == {"passenger": "150.00", "package": "80.50", "version": 1}
    assert client.put("/api/v1/admin/pricing", json={"passenger": "0", "package": "1"},
                      headers=admin_headers).status_code == 400

    body = _create(client, template, tomorrow, type="PACKAGE", packageDetails="sobre").json()
    assert (body["amountTotal"], body["pricingVersion"]) == ("80.50", 1)


def test_gateway_link_for_online_payments(client, admin_headers, gateway, template, tomorrow):
    online = _create(client, template, tomorrow, paymentMethod="ONLINE").json()
    counter = _create(client, template, tomorrow).json()
    sid = client.post(f"/api/v1/checkout/t/{online['publicToken']}/create-session").json()["sessionId"]

    online_id, counter_id = reservation_id(online["publicToken"]), reservation_id(counter["publicToken"])
    link = client.get(f"/api/v1/admin/reservations/{online_id}/gateway-link", headers=admin_headers).json()
    assert link["url"].endswith(f"/checkout/sessions/{sid}")
    assert client.get(f"/api/v1/admin/reservations/{counter_id}/gateway-link",
                      headers=admin_headers).status_code == 404


def test_login_and_me(client, admin_headers):
    r = client.post("/api/v1/auth/login", json={"email": "ADMIN@example.com", "password": "admin12345"})
    assert r.status_code == 200
    me = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {r.json()['access_token']}"})
    assert me.json()["role"] == "admin"
    assert client.post("/api/v1/auth/login", json={"email": "admin@example.com", "password": "nope"}).status_code == 401
    assert r.json()["expires_in"] == 30 * 60
    assert "refresh_token" not in r.json()


def test_expired_and_foreign_tokens_are_rejected(client, admin_headers):
    db = SessionLocal()
    try:
        uid = db.execute(select(User.id).where(User.email == "admin@example.com")).scalar_one()
    finally:
        db.close()

    expired = create_access_token(uid, expires_minutes=-1)
    foreign = jwt.encode({"sub": uid, "use": "staff"}, "another-secret", algorithm="HS256")
    wrong_use = jwt.encode({"sub": uid, "use": "refresh"}, settings.SECRET_KEY, algorithm="HS256")
    for token in (expired, foreign, wrong_use):
        r = client.get("/api/v1/admin/agenda", headers={"Authorization": f"Bearer {token}"})
        assert r.status_code == 401
    assert client.get("/api/v1/admin/agenda", headers=admin_headers).status_code == 200
