import pytest
import requests

from transportapp.core.config import settings
from transportapp.services import notification_service as ns
from transportapp.services import reservation_service as rs
from transportapp.tasks import jobs, worker_jobs


class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload or {"ok": status_code == 200}
        self.text = str(self._payload)

    @property
    def ok(self):
        return 200 <= self.status_code < 300

    def json(self):
        return self._payload


queued = []


@pytest.fixture
def telegram(monkeypatch):
    monkeypatch.setattr(settings, "TG_BOT_TOKEN", "123:abc")
    monkeypatch.setattr(settings, "TG_CHAT_ID", "-100200")
    calls, sleeps, replies = [], [], []
    queued.clear()

    def fake_post(url, json=None, timeout=None):
        calls.append({"url": url, "json": json, "timeout": timeout})
        return replies.pop(0) if replies else FakeResponse()

    monkeypatch.setattr(ns.requests, "post", fake_post)
    monkeypatch.setattr(ns.time, "sleep", sleeps.append)
    # keep the broker out of unit tests
    monkeypatch.setattr(jobs.send_admin_notification, "delay", lambda *a: queued.append(a))
    return calls, sleeps, replies


def test_skipped_when_not_configured(monkeypatch):
    monkeypatch.setattr(settings, "TG_BOT_TOKEN", "")
    assert ns.send_telegram("hello") is False


def test_sends_html_message_with_timeout(telegram):
    calls, _, _ = telegram
    assert ns.send_telegram("<b>hi</b>", buttons=[{"text": "Open", "url": "https://x"}]) is True
    [call] = calls
    assert call["url"].endswith("/bot123:abc/sendMessage")
    assert call["timeout"] == settings.NOTIFY_TIMEOUT_SECONDS
    assert call["json"]["parse_mode"] == "HTML"
    assert call["json"]["reply_markup"]["inline_keyboard"] == [[{"text": "Open", "url": "https://x"}]]


def test_rate_limit_is_retried_once_after_retry_after(telegram):
    calls, sleeps, replies = telegram
    replies.extend([FakeResponse(429, {"ok": False, "parameters": {"retry_after": 2}}), FakeResponse(200)])
    assert ns.send_telegram("hi") is True
    assert len(calls) == 2
    assert sleeps == [3]


def test_second_failure_gives_up(telegram):
    calls, _, replies = telegram
    replies.extend([FakeResponse(429, {"ok": False, "parameters": {"retry_after": 1}}), FakeResponse(429)])
    assert ns.send_telegram("hi") is False
    assert len(calls) == 2


def test_network_errors_are_contained(telegram, monkeypatch):
    def boom(*a, **kw):
        raise requests.ConnectionError("down")
    monkeypatch.setattr(ns.requests, "post", boom)
    assert ns.send_telegram("hi") is False


def test_long_messages_are_chunked_with_buttons_on_last(telegram):
    calls, _, _ = telegram
    text = "\n".join(f"line {i} " + "x" * 80 for i in range(100))
    ns.send_telegram(text, buttons=[{"text": "Open", "url": "https://x"}])
    assert len(calls) > 1
    assert all(len(c["json"]["text"]) <= ns.MAX_CHUNK for c in calls)
    assert "reply_markup" in calls[-1]["json"]
    assert all("reply_markup" not in c["json"] for c in calls[:-1])


def test_user_text_is_escaped(db, make_input, telegram):
    r = rs.create_reservation(db, make_input(customer_name="<script>Ana</script>"))
    text, buttons = ns.build_new_reservation_text(db, r)
    assert "&lt;script&gt;Ana&lt;/script&gt;" in text
    assert buttons and buttons[0]["url"].endswith(r.public_token)


def test_new_reservation_enqueues_notification(make_input, db, telegram):
    rs.create_reservation(db, make_input())
    assert len(queued) == 1
    assert "New reservation RES-" in queued[0][0]


def test_notification_failure_never_fails_the_reservation(make_input, db, telegram, monkeypatch):
    def broken(*a):
        raise ConnectionError("broker down")
    monkeypatch.setattr(jobs.send_admin_notification, "delay", broken)
    r = rs.create_reservation(db, make_input())
    assert r.id


def test_worker_job_sends(telegram):
    calls, _, _ = telegram
    assert worker_jobs.send_admin_notification("hi") == {"sent": True}
    assert len(calls) == 1


def test_backfill_job_fills_missing_tokens(db, make_input):
    from sqlalchemy import update
    from transportapp.models.reservation import Reservation

    r = rs.create_reservation(db, make_input())
    db.execute(update(Reservation).where(Reservation.id == r.id).values(public_token=None))
    db.commit()
    assert worker_jobs.backfill_public_tokens(db=db) == {"backfilled": 1}
    db.refresh(r)
    assert r.public_token
    assert worker_jobs.backfill_public_tokens(db=db) == {"backfilled": 0}
