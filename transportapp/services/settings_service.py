import json
import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from transportapp.core.config import settings
from transportapp.models.setting import Setting
from transportapp.models.reservation import TYPE_PASSENGER

log = logging.getLogger(__name__)

PRICING_KEY = "PRICING"
CENT = Decimal("0.01")


def money(value) -> Decimal:
    return Decimal(str(value or 0)).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class Pricing:
    passenger: Decimal
    package: Decimal
    version: int = 0

    def as_dict(self) -> dict:
        return {"passenger": str(self.passenger), "package": str(self.package), "version": self.version}


def default_pricing() -> Pricing:
    return Pricing(passenger=money(settings.DEFAULT_PASSENGER_PRICE), package=money(settings.DEFAULT_PACKAGE_PRICE), version=0)


def get_pricing(db: Session) -> Pricing:
    """Current pricing; falls back to configured defaults when the row is missing or unreadable."""
    try:
        s = db.get(Setting, PRICING_KEY)
    except SQLAlchemyError:
        log.exception("pricing lookup failed, using defaults")
        return default_pricing()
    if not s:
        return default_pricing()
    try:
        data = json.loads(s.value or "{}")
        return Pricing(
            passenger=money(data.get("passenger", settings.DEFAULT_PASSENGER_PRICE)),
            package=money(data.get("package", settings.DEFAULT_PACKAGE_PRICE)),
            version=int(s.version or 0),
        )
    except (json.JSONDecodeError, TypeError, ValueError, InvalidOperation):
        log.warning("PRICING setting is malformed, using defaults")
        return default_pricing()


def set_pricing(db: Session, passenger, package) -> Pricing:
    """Store new prices under the next version. The caller commits."""
    try:
        passenger_price, package_price = money(passenger), money(package)
    except InvalidOperation:
        raise ValueError("prices must be numbers")
    if passenger_price <= 0 or package_price <= 0:
        raise ValueError("prices must be > 0")
    s = db.execute(select(Setting).where(Setting.key == PRICING_KEY).with_for_update()).scalar_one_or_none()
    if not s:
        s = Setting(key=PRICING_KEY, version=0)
        db.add(s)
    pricing = Pricing(passenger=passenger_price, package=package_price, version=(s.version or 0) + 1)
    s.value = json.dumps({"passenger": str(pricing.passenger), "package": str(pricing.package)})
    s.version = pricing.version
    db.flush()
    log.info("pricing updated to version %s", pricing.version)
    return pricing


def compute_totals(reservation_type: str, seats: int, pricing: Pricing) -> tuple[Decimal, Decimal]:
    """(unit, total): PASSENGER is priced per seat, PACKAGE is a flat fee."""
    if reservation_type == TYPE_PASSENGER:
        unit = pricing.passenger
        return unit, money(unit * max(1, int(seats or 1)))
    return pricing.package, pricing.package
