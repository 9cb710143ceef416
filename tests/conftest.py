import hashlib
import hmac
import itertools
import json
import os
import tempfile
import time
import uuid
from datetime import timedelta
from types import SimpleNamespace

_tmp = tempfile.mkdtemp(prefix="transportapp-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_tmp, 'test.db')}"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_secret"
os.environ["STRIPE_SECRET_KEY"] = ""
os.environ["BASE_URL"] = "http://testserver"
os.environ["TG_BOT_TOKEN"] = ""
os.environ["TG_CHAT_ID"] = ""

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import select  # noqa: E402

from transportapp.api.deps import get_gateway  # noqa: E402
from transportapp.core.security import create_access_token, hash_password  # noqa: E402
from transportapp.db.session import Base, SessionLocal, engine  # noqa: E402
from transportapp.main import app  # noqa: E402
from transportapp.models.departure_template import DepartureTemplate  # noqa: E402
from transportapp.models.reservation import Reservation  # noqa: E402
from transportapp.models.user import User  # noqa: E402
from transportapp.services.payment_gateway import CheckoutSession  # noqa: E402
from transportapp.services.reservation_service import ReservationInput  # noqa: E402
from transportapp.utils import timezone as tz  # noqa: E402

WEBHOOK_SECRET = "whsec_test_secret"


class FakeGateway:
    """In-memory stand-in for StripeGateway."""

    def __init__(self):
        self.sessions: dict[str, CheckoutSession] = {}
        self.created = []
        self.expired = []
        self._ids = itertools.count(1)

    def create_session(self, *, reservation_id, folio, description, amount, currency,
                       success_url, cancel_url, customer_phone="", idempotency_key=None):
        sid = f"cs_test_{next(self._ids)}"
        s = CheckoutSession(
            id=sid, status="open", payment_status="unpaid",
            url=f"https://checkout.example/{sid}", client_secret=f"{sid}_secret",
            reservation_id=reservation_id,
        )
        self.sessions[sid] = s
        self.created.append({"id": sid, "amount": amount, "success_url": success_url, "key": idempotency_key})
        return s

    def retrieve_session(self, session_id):
        return self.sessions[session_id]

    def expire_session(self, session_id):
        self.expired.append(session_id)
        s = self.sessions.get(session_id)
        if s and s.status == "open":
            s.status = "expired"

    # test helpers
    def pay(self, session_id, intent="pi_test_1"):
        s = self.sessions[session_id]
        s.status, s.payment_status, s.payment_intent = "complete", "paid", intent
        return s

    def let_expire(self, session_id):
        self.sessions[session_id].status = "expired"


@pytest.fixture(autouse=True)
def _schema():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db():
    s = SessionLocal()
    try:
        yield s
    finally:
        s.close()


@pytest.fixture
def tomorrow():
    return tz.today() + timedelta(days=1)


@pytest.fixture
def template(db):
    t = DepartureTemplate(direction="VIC_TO_LLE", depart_time="08:00", capacity_passengers=6, active=True)
    db.add(t)
    db.add(DepartureTemplate(direction="VIC_TO_LLE", depart_time="10:00", capacity_passengers=6, active=True))
    db.add(DepartureTemplate(direction="LLE_TO_VIC", depart_time="09:00", capacity_passengers=6, active=True))
    db.commit()
    info = SimpleNamespace(id=t.id, direction=t.direction, depart_time=t.depart_time)
    # release the SQLite write lock before other sessions run
    db.close()
    return info


@pytest.fixture
def make_input(template, tomorrow):
    def _make(**kw):
        data = dict(
            trip_date=tomorrow.isoformat(),
            direction=template.direction,
            depart_time=template.depart_time,
            customer_name="Ana López",
            phone="8341234567",
        )
        data.update(kw)
        return ReservationInput(**data)
    return _make


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def client(gateway):
    app.dependency_overrides[get_gateway] = lambda: gateway
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers():
    s = SessionLocal()
    try:
        user = User(id=str(uuid.uuid4()), email="admin@example.com", full_name="Admin", role="admin",
                    password_hash=hash_password("admin12345"), is_active=True)
        s.add(user)
        s.commit()
        uid = user.id
    finally:
        s.close()
    return {"Authorization": f"Bearer {create_access_token(uid)}"}


def sign(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    t = int(timestamp if timestamp is not None else time.time())
    sig = hmac.new(secret.encode(), f"{t}.{payload.decode()}".encode(), hashlib.sha256).hexdigest()
    return f"t={t},v1={sig}"


def stripe_event(event_type: str, session_id: str, reservation_id: int, payment_status: str = "paid",
                 payment_intent: str | None = "pi_test_1") -> bytes:
    return json.dumps({
        "id": f"evt_{uuid.uuid4().hex[:12]}",
        "type": event_type,
        "data": {"object": {
            "id": session_id,
            "object": "checkout.session",
            "payment_status": payment_status,
            "payment_intent": payment_intent,
            "client_reference_id": str(reservation_id),
            "metadata": {"reservation_id": str(reservation_id)},
        }},
    }).encode()


def reservation_id(token: str) -> int:
    """Internal id behind a public token, for admin URLs and webhook payloads."""
    s = SessionLocal()
    try:
        return s.execute(select(Reservation.id).where(Reservation.public_token == token)).scalar_one()
    finally:
        s.close()
