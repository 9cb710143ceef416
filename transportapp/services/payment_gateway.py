"""Stripe Checkout adapter.

Only this module talks to the Stripe SDK. The rest of the app sees
`CheckoutSession` values and domain errors, and tests swap in a fake with the
same three methods.
"""
import json
import logging
from dataclasses import dataclass
from decimal import Decimal

import stripe

from transportapp.core.config import settings
from transportapp.core.errors import GatewaySignatureInvalid, GatewayUnavailable

log = logging.getLogger(__name__)


@dataclass
class CheckoutSession:
    id: str
    status: str | None = None            # open | complete | expired
    payment_status: str | None = None    # paid | unpaid | no_payment_required
    url: str | None = None
    client_secret: str | None = None
    payment_intent: str | None = None
    reservation_id: int | None = None

    @property
    def is_paid(self) -> bool:
        return self.payment_status == "paid"

    @property
    def is_open(self) -> bool:
        return self.status == "open" and not self.is_paid


def _field(obj, key):
    try:
        return obj[key]
    except (KeyError, TypeError):
        return getattr(obj, key, None)


def _to_session(obj) -> CheckoutSession:
    intent = _field(obj, "payment_intent")
    if intent is not None and not isinstance(intent, str):
        intent = _field(intent, "id")
    metadata = _field(obj, "metadata") or {}
    rid = _field(metadata, "reservation_id") or _field(obj, "client_reference_id")
    return CheckoutSession(
        id=_field(obj, "id"),
        status=_field(obj, "status"),
        payment_status=_field(obj, "payment_status"),
        url=_field(obj, "url"),
        client_secret=_field(obj, "client_secret"),
        payment_intent=intent,
        reservation_id=int(rid) if rid and str(rid).isdigit() else None,
    )


def to_minor_units(amount) -> int:
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1")))


class StripeGateway:
    def __init__(self, secret_key: str | None = None, timeout: int | None = None):
        self.secret_key = secret_key if secret_key is not None else settings.STRIPE_SECRET_KEY
        self.timeout = timeout or settings.STRIPE_TIMEOUT_SECONDS
        self._client = None

    @property
    def configured(self) -> bool:
        return bool(self.secret_key)

    def _stripe(self):
        if not self.configured:
            raise GatewayUnavailable("online payments are not configured")
        if self._client is None:
            stripe.api_key = self.secret_key
            stripe.max_network_retries = 1
            stripe.default_http_client = stripe.RequestsClient(timeout=self.timeout)
            self._client = stripe
        return self._client

    def create_session(self, *, reservation_id: int, folio: str, description: str, amount, currency: str,
                       success_url: str, cancel_url: str, customer_phone: str = "",
                       idempotency_key: str | None = None) -> CheckoutSession:
        s = self._stripe()
        try:
            obj = s.checkout.Session.create(
                mode="payment",
                payment_method_types=["card"],
                line_items=[{
                    "quantity": 1,
                    "price_data": {
                        "currency": currency,
                        "unit_amount": to_minor_units(amount),
                        "product_data": {"name": f"Reservation {folio}", "description": description[:250]},
                    },
                }],
                success_url=success_url,
                cancel_url=cancel_url,
                client_reference_id=str(reservation_id),
                metadata={"reservation_id": str(reservation_id), "folio": folio, "phone": customer_phone[:40]},
                idempotency_key=idempotency_key,
            )
        except stripe.StripeError as e:
            log.error("stripe create session failed for reservation %s: %s", reservation_id, e)
            raise GatewayUnavailable("payment provider unavailable, try again")
        session = _to_session(obj)
        log.info("checkout session %s created for reservation %s", session.id, reservation_id)
        return session

    def retrieve_session(self, session_id: str) -> CheckoutSession:
        s = self._stripe()
        try:
            return _to_session(s.checkout.Session.retrieve(session_id))
        except stripe.StripeError as e:
            log.error("stripe retrieve session %s failed: %s", session_id, e)
            raise GatewayUnavailable("payment provider unavailable, try again")

    def expire_session(self, session_id: str) -> None:
        s = self._stripe()
        try:
            s.checkout.Session.expire(session_id)
        except stripe.StripeError as e:
            # already completed/expired sessions cannot be expired again
            log.warning("stripe expire session %s failed: %s", session_id, e)


def verify_webhook(payload: bytes, sig_header: str | None, secret: str | None = None) -> dict:
    """Check the Stripe-Signature header against the raw body and return the parsed event."""
    secret = secret if secret is not None else settings.STRIPE_WEBHOOK_SECRET
    if not secret:
        raise GatewayUnavailable("webhook secret not configured")
    if not sig_header:
        raise GatewaySignatureInvalid("missing Stripe-Signature header")
    try:
        body = payload.decode("utf-8")
        stripe.WebhookSignature.verify_header(body, sig_header, secret, stripe.Webhook.DEFAULT_TOLERANCE)
        event = json.loads(body)
    except (stripe.SignatureVerificationError, UnicodeDecodeError, ValueError) as e:
        log.warning("webhook signature rejected: %s", e)
        raise GatewaySignatureInvalid("invalid webhook signature")
    if not isinstance(event, dict):
        raise GatewaySignatureInvalid("invalid webhook payload")
    return event


_gateway: StripeGateway | None = None


def get_gateway() -> StripeGateway:
    global _gateway
    if _gateway is None:
        _gateway = StripeGateway()
    return _gateway
