"""Online checkout: one live gateway session per reservation, reused across retries."""
import logging

from sqlalchemy.orm import Session

from transportapp.core.config import settings
from transportapp.core.errors import AlreadyPaid, InvalidTransition, GatewayUnavailable
from transportapp.models.reservation import (
    Reservation, METHOD_ONLINE, STATUS_PAID, STATUS_PENDING_PAYMENT, folio_for,
)
from transportapp.services import reservation_service
from transportapp.services.payment_gateway import CheckoutSession

log = logging.getLogger(__name__)


def _public_url(base_url: str, token: str) -> str:
    return f"{base_url.rstrip('/')}/reservations/t/{token}"


def _check_payable(r: Reservation) -> None:
    if r.payment_method != METHOD_ONLINE:
        raise InvalidTransition("reservation is not an online payment")
    if r.status == STATUS_PAID:
        raise AlreadyPaid("reservation is already paid")
    if r.status != STATUS_PENDING_PAYMENT:
        raise InvalidTransition(f"reservation is {r.status.lower()}, it can no longer be paid")


def _session_payload(session: CheckoutSession) -> dict:
    return {
        "sessionId": session.id,
        "url": session.url,
        "clientSecret": session.client_secret,
        "publishableKey": settings.STRIPE_PUBLISHABLE_KEY or None,
    }


def ensure_checkout_session(db: Session, gateway, token: str, base_url: str | None = None) -> dict:
    """Return the reservation's open checkout session, creating one if needed.

    The stored session id is replaced only by compare-and-set against the id
    that was read, so two concurrent callers end up sharing one session.
    """
    r = reservation_service.get_by_token(db, token)
    _check_payable(r)
    rid, stored = r.id, r.gateway_session_id
    folio = folio_for(r.id, r.folio_date, r.daily_seq)
    amount, currency, phone = r.amount_total, r.currency, r.phone or ""
    description = f"{r.type} x{r.seats} on {r.folio_date}"
    public_token = r.public_token
    # no transaction stays open across gateway calls
    db.commit()

    if stored:
        current = gateway.retrieve_session(stored)
        if current.is_paid:
            reservation_service.apply_gateway_paid(db, rid, current.id, current.payment_intent)
            raise AlreadyPaid("reservation is already paid")
        if current.is_open:
            return _session_payload(current)
        log.info("checkout session %s for reservation %s is %s, opening a new one", stored, rid, current.status)

    base = (base_url or (f"{settings.BASE_URL.rstrip('/')}/api/v1" if settings.BASE_URL else "")).rstrip("/")
    if not base:
        raise GatewayUnavailable("BASE_URL is not configured")
    return_url = _public_url(base, public_token)
    session = gateway.create_session(
        reservation_id=rid,
        folio=folio,
        description=description,
        amount=amount,
        currency=currency,
        success_url=f"{return_url}?session_id={{CHECKOUT_SESSION_ID}}",
        cancel_url=return_url,
        customer_phone=phone,
        idempotency_key=f"reservation-{rid}-after-{stored or 'none'}",
    )

    if reservation_service.store_session_id(db, rid, session.id, expected=stored):
        return _session_payload(session)

    # lost the race (or the reservation moved on meanwhile)
    gateway.expire_session(session.id)
    r = db.get(Reservation, rid)
    db.refresh(r)
    _check_payable(r)
    winner = r.gateway_session_id
    db.commit()
    if not winner:
        raise InvalidTransition("checkout could not be started, try again")
    return _session_payload(gateway.retrieve_session(winner))


def reconcile_return(db: Session, gateway, reservation: Reservation, session_id: str | None) -> bool:
    """Customer came back from checkout: settle synchronously if the session is paid.

    The webhook stays authoritative; this only shortens the wait. Gateway
    errors are logged and the page renders the stored status.
    """
    session_id = (session_id or "").strip()
    if not session_id or reservation.payment_method != METHOD_ONLINE or reservation.status == STATUS_PAID:
        return False
    rid = reservation.id
    db.commit()
    try:
        session = gateway.retrieve_session(session_id)
    except GatewayUnavailable as e:
        log.warning("return reconciliation for reservation %s skipped: %s", rid, e.message)
        return False
    if session.reservation_id is not None and session.reservation_id != rid:
        log.warning("session %s belongs to reservation %s, not %s", session_id, session.reservation_id, rid)
        return False
    if not session.is_paid:
        return False
    return reservation_service.apply_gateway_paid(db, rid, session.id, session.payment_intent).changed
