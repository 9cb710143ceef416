"""Stripe webhook reconciliation.

Deliveries are at-least-once and unordered. Each handled event maps to one
compare-and-set transition, so replaying an event changes nothing.
"""
import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from transportapp.core.errors import ReservationError
from transportapp.models.reservation import Reservation
from transportapp.services import reservation_service
from transportapp.services.payment_gateway import verify_webhook

log = logging.getLogger(__name__)

PAID_EVENTS = ("checkout.session.completed", "checkout.session.async_payment_succeeded")
FAILED_EVENT = "checkout.session.async_payment_failed"
EXPIRED_EVENT = "checkout.session.expired"


def _reservation_id(db: Session, session: dict) -> int | None:
    metadata = session.get("metadata")
    if not isinstance(metadata, dict):
        metadata = {}
    for raw in (metadata.get("reservation_id"), metadata.get("reservationId"), session.get("client_reference_id")):
        if raw is not None and str(raw).strip().isdigit():
            return int(str(raw).strip())
    sid = session.get("id")
    if isinstance(sid, str) and sid:
        return db.execute(
            select(Reservation.id).where(Reservation.gateway_session_id == sid)
        ).scalar_one_or_none()
    return None


def handle_event(db: Session, event: dict) -> dict:
    """Apply one verified event. Returns a small outcome dict for logging and tests."""
    etype = event.get("type") or ""
    data = event.get("data")
    session = data.get("object") if isinstance(data, dict) else None
    if etype not in PAID_EVENTS + (FAILED_EVENT, EXPIRED_EVENT):
        return {"handled": False, "type": etype}
    if not isinstance(session, dict):
        log.warning("webhook %s (%s) has no checkout session object", event.get("id"), etype)
        return {"handled": False, "type": etype}

    rid = _reservation_id(db, session)
    if rid is None:
        log.warning("webhook %s (%s) carries no reservation reference", event.get("id"), etype)
        return {"handled": False, "type": etype}

    sid = session.get("id") if isinstance(session.get("id"), str) else None
    intent = session.get("payment_intent")
    if isinstance(intent, dict):
        intent = intent.get("id")
    if not isinstance(intent, str):
        intent = None

    if etype in PAID_EVENTS:
        if session.get("payment_status") != "paid":
            # completed but async payment still processing
            return {"handled": True, "type": etype, "reservationId": rid, "changed": False}
        result = reservation_service.apply_gateway_paid(db, rid, sid, intent)
        return {"handled": True, "type": etype, "reservationId": rid, "changed": result.changed,
                "ticketCode": result.ticket_code}
    if etype == FAILED_EVENT:
        changed = reservation_service.apply_gateway_failed(db, rid, sid, intent)
    else:
        changed = reservation_service.apply_session_expired(db, rid, sid)
    return {"handled": True, "type": etype, "reservationId": rid, "changed": changed}


def process_webhook(db: Session, payload: bytes, sig_header: str | None) -> dict:
    """Verify then apply.

    Signature problems propagate (400). Once verified, business errors and
    malformed payloads are logged and acknowledged so the gateway stops
    redelivering. Database errors propagate and the delivery is retried.
    """
    event = verify_webhook(payload, sig_header)
    log.info("webhook %s received: %s", event.get("id"), event.get("type"))
    try:
        outcome = handle_event(db, event)
    except ReservationError as e:
        log.error("webhook %s (%s) not applied: %s", event.get("id"), event.get("type"), e.message)
        return {"received": True, "handled": False}
    except SQLAlchemyError:
        # storage trouble is transient: let the gateway redeliver
        db.rollback()
        raise
    except Exception:
        db.rollback()
        log.exception("webhook %s (%s) failed while applying", event.get("id"), event.get("type"))
        return {"received": True, "handled": False}
    return {"received": True, **outcome}
