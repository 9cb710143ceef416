import logging
import uuid

from sqlalchemy.orm import Session
from sqlalchemy import text, select
from sqlalchemy.exc import ProgrammingError, OperationalError

from transportapp.db.session import SessionLocal
from transportapp.core.config import settings
from transportapp.core.security import hash_password
from transportapp.models.user import User
from transportapp.models.departure_template import DepartureTemplate

log = logging.getLogger(__name__)

# hourly departures each way, 06:00 to 19:00
DEFAULT_TIMES = [f"{h:02d}:00" for h in range(6, 20)]


def ensure_user(db: Session, email: str, password: str, role: str, name: str):
    u = db.query(User).filter(User.email == email).first()
    if u:
        return
    db.add(
        User(
            id=str(uuid.uuid4()),
            email=email,
            full_name=name,
            role=role,
            password_hash=hash_password(password),
            is_active=True,
        )
    )
    db.commit()


def ensure_templates(db: Session, times: list[str] | None = None) -> int:
    added = 0
    for direction in ("VIC_TO_LLE", "LLE_TO_VIC"):
        for t in times or DEFAULT_TIMES:
            exists = db.execute(
                select(DepartureTemplate.id).where(DepartureTemplate.direction == direction, DepartureTemplate.depart_time == t)
            ).first()
            if exists:
                continue
            db.add(DepartureTemplate(direction=direction, depart_time=t,
                                     capacity_passengers=settings.MAX_CAPACITY, active=True))
            added += 1
    db.commit()
    return added


def run(db=None):
    if db is None:
        db = SessionLocal()
    try:
        # If migrations haven't been applied yet, seeding must not crash the API.
        try:
            db.execute(text("SELECT 1 FROM users LIMIT 1"))
        except (ProgrammingError, OperationalError):
            db.rollback()
            log.warning("[seed] users table not found yet. Skipping seeding (run alembic upgrade head).")
            return

        ensure_user(db, "admin@transportapp.mx", "admin12345", "admin", "Admin")
        ensure_user(db, "staff@transportapp.mx", "staff12345", "staff", "Counter staff")
        added = ensure_templates(db)
        if added:
            log.info("[seed] %d departure templates created", added)
    finally:
        db.close()


if __name__ == "__main__":
    from transportapp.core.logging import setup_logging
    setup_logging()
    run()
