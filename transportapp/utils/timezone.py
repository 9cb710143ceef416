"""
Business-local time helpers.

Dates and departure times are compared in the operator's timezone
(``LOCAL_TZ``), never in UTC, so "today" doesn't shift at midnight UTC.
"""
import re
from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

from transportapp.core.config import settings

TIMEZONE = ZoneInfo(settings.LOCAL_TZ)

_AMPM = re.compile(r"^(\d{1,2}):(\d{2})\s*(AM|PM)$", re.IGNORECASE)


def now() -> datetime:
    return datetime.now(TIMEZONE)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def today() -> date:
    return now().date()


def now_hhmm() -> str:
    return now().strftime("%H:%M")


def to_hhmm(value) -> str:
    """Normalize "6:30 AM", "06:30" or "06:30:00" to 24h "HH:MM"."""
    s = str(value or "").strip()
    m = _AMPM.match(s)
    if m:
        hh, mm, ap = int(m.group(1)), m.group(2), m.group(3).upper()
        if ap == "AM" and hh == 12:
            hh = 0
        elif ap == "PM" and hh != 12:
            hh += 12
        return f"{hh:02d}:{mm}"
    parts = s.split(":")
    if len(parts) >= 2:
        return f"{parts[0].zfill(2)}:{parts[1][:2].zfill(2)}"
    return s


def parse_date(value) -> date:
    if isinstance(value, date):
        return value
    return datetime.strptime(str(value).strip(), "%Y-%m-%d").date()
