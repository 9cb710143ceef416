"""Admin chat notifications over the Telegram Bot API.

Best effort: a failed notification is logged and never fails the business
operation that triggered it. Sending happens in the Celery worker.
"""
import html
import logging
import time

import requests
from sqlalchemy.orm import Session

from transportapp.core.config import settings
from transportapp.models.departure_template import DepartureTemplate, direction_label
from transportapp.models.reservation import Reservation, folio_for
from transportapp.models.trip import Trip

log = logging.getLogger(__name__)

MAX_CHUNK = 3500


def configured() -> bool:
    return bool(settings.TG_BOT_TOKEN and settings.TG_CHAT_ID)


def escape(value) -> str:
    return html.escape(str(value if value is not None else ""), quote=True)


def chunk_text(text: str, max_len: int = MAX_CHUNK) -> list[str]:
    """Split on newlines where possible so each chunk stays under Telegram's limit."""
    s = str(text or "")
    if len(s) <= max_len:
        return [s] if s else []
    chunks = []
    i = 0
    while i < len(s):
        end = min(i + max_len, len(s))
        if end < len(s):
            nl = s.rfind("\n", i, end)
            if nl > i + 200:
                end = nl
        chunks.append(s[i:end])
        i = end
    return [c for c in chunks if c]


def _post(payload: dict) -> requests.Response:
    url = f"https://api.telegram.org/bot{settings.TG_BOT_TOKEN}/sendMessage"
    return requests.post(url, json=payload, timeout=settings.NOTIFY_TIMEOUT_SECONDS)


def _retry_after(resp: requests.Response) -> int:
    try:
        return int(((resp.json() or {}).get("parameters") or {}).get("retry_after") or 0)
    except ValueError:
        return 0


def send_telegram(text: str, buttons: list[dict] | None = None) -> bool:
    """Send `text` (HTML) to the admin chat. Returns False on any failure."""
    if not configured():
        log.debug("telegram not configured, notification skipped")
        return False
    chunks = chunk_text((text or "").strip())
    for idx, chunk in enumerate(chunks):
        payload = {
            "chat_id": settings.TG_CHAT_ID,
            "text": chunk,
            "parse_mode": "HTML",
            "disable_web_page_preview": True,
        }
        # buttons go on the last chunk
        if buttons and idx == len(chunks) - 1:
            payload["reply_markup"] = {"inline_keyboard": [[
                {"text": b["text"], "url": b["url"]} for b in buttons if b.get("text") and b.get("url")
            ]]}
        try:
            resp = _post(payload)
            if resp.status_code == 429 and _retry_after(resp) > 0:
                time.sleep(_retry_after(resp) + 1)
                resp = _post(payload)
        except requests.RequestException as e:
            log.error("telegram notify failed: %s", e)
            return False
        if not resp.ok:
            log.error("telegram sendMessage failed: status=%s body=%s", resp.status_code, resp.text[:300])
            return False
    return True


def build_new_reservation_text(db: Session, r: Reservation) -> tuple[str, list[dict]]:
    trip = db.get(Trip, r.trip_id)
    template = db.get(DepartureTemplate, trip.template_id) if trip else None
    folio = folio_for(r.id, r.folio_date, r.daily_seq)
    lines = [
        f"<b>New reservation {escape(folio)}</b>",
        f"Route: {escape(direction_label(template.direction) if template else '-')}",
        f"Date: {escape(r.folio_date)} {escape(template.depart_time if template else '')}",
        f"Type: {escape(r.type)}" + (f" x{r.seats}" if r.type == "PASSENGER" else ""),
        f"Contact: {escape(r.customer_name)} {escape(r.phone or '')}",
        f"Payment: {escape(r.payment_method)} ({escape(r.status)})",
        f"Total: {escape(r.amount_total)} {escape((r.currency or '').upper())}",
    ]
    if r.package_details:
        lines.append(f"Package: {escape(r.package_details)}")
    if r.transfer_ref:
        lines.append(f"Transfer ref: {escape(r.transfer_ref)}")
    buttons = []
    if settings.BASE_URL and r.public_token:
        buttons.append({"text": "Open", "url": f"{settings.BASE_URL.rstrip('/')}/api/v1/reservations/t/{r.public_token}"})
    return "\n".join(lines), buttons


def notify_new_reservation(db: Session, r: Reservation) -> None:
    """Queue the admin notification for a freshly committed reservation."""
    if not configured():
        return
    try:
        text, buttons = build_new_reservation_text(db, r)
        from transportapp.tasks.jobs import send_admin_notification
        send_admin_notification.delay(text, buttons)
    except Exception:
        log.exception("could not queue notification for reservation %s", r.id)
