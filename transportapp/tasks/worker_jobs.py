import logging

from sqlalchemy import select, or_
from sqlalchemy.orm import Session
from sqlalchemy.exc import ProgrammingError, OperationalError

from transportapp.db.session import SessionLocal
from transportapp.models.reservation import Reservation
from transportapp.services.notification_service import send_telegram
from transportapp.services.ticket_service import ensure_public_token

log = logging.getLogger(__name__)


def send_admin_notification(text: str, buttons: list | None = None) -> dict:
    return {"sent": send_telegram(text, buttons)}


def backfill_public_tokens(limit: int = 200, db: Session | None = None) -> dict:
    """Give legacy reservations a public token so their links keep working."""
    own = db is None
    db = db or SessionLocal()
    try:
        try:
            ids = db.execute(
                select(Reservation.id)
                .where(or_(Reservation.public_token.is_(None), Reservation.public_token == ""))
                .order_by(Reservation.id.asc())
                .limit(limit)
            ).scalars().all()
        except (ProgrammingError, OperationalError):
            # DB not migrated yet; don't crash the worker.
            db.rollback()
            return {"skipped": True, "reason": "missing_tables"}
        for rid in ids:
            ensure_public_token(db, rid)
            db.commit()
        if ids:
            log.info("backfilled public tokens for %d reservations", len(ids))
        return {"backfilled": len(ids)}
    finally:
        if own:
            db.close()
