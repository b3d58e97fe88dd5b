import json
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import urlencode, urlparse, parse_qsl, urlunparse

import stripe

from services.catalog import SERVICE_TYPES, service_name
from services.errors import ExternalServiceError, WebhookSignatureError

logger = logging.getLogger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"
CHECKOUT_ASYNC_SUCCEEDED = "checkout.session.async_payment_succeeded"
CHECKOUT_ASYNC_FAILED = "checkout.session.async_payment_failed"
CHECKOUT_EXPIRED = "checkout.session.expired"

PAID_SESSION_STATUSES = ("paid", "no_payment_required")

# Stripe accepts 30 min to 24 h; kept just past the abandonment window
CHECKOUT_SESSION_TTL_SECONDS = 31 * 60


@dataclass(frozen=True)
class CheckoutSession:
    session_id: str
    redirect_url: str


@dataclass(frozen=True)
class CheckoutStatus:
    session_id: str
    payment_status: str
    payment_intent_id: Optional[str] = None

    @property
    def is_paid(self) -> bool:
        return self.payment_status in PAID_SESSION_STATUSES


@dataclass(frozen=True)
class Receipt:
    payment_intent_id: str
    charge_id: Optional[str]
    receipt_url: Optional[str]
    payment_method_label: Optional[str]
    paid_at: Optional[datetime]

    def to_dict(self):
        return {
            "payment_intent_id": self.payment_intent_id,
            "charge_id": self.charge_id,
            "receipt_url": self.receipt_url,
            "payment_method": self.payment_method_label,
            "paid_at": self.paid_at.isoformat() if self.paid_at else None,
        }


@dataclass(frozen=True)
class WebhookEvent:
    type: str
    session_id: Optional[str]
    payment_intent_id: Optional[str]
    payment_status: Optional[str] = None


def append_query(url: str, params: dict) -> str:
    if not url:
        return url
    parts = urlparse(url)
    query = dict(parse_qsl(parts.query))
    query.update({k: str(v) for k, v in params.items() if v is not None})
    return urlunparse(parts._replace(query=urlencode(query)))


def _field(obj, key):
    if obj is None:
        return None
    try:
        return obj[key]
    except (KeyError, TypeError, IndexError):
        return None


class StripePaymentBridge:
    """Hosted Checkout, receipt lookup and webhook verification via Stripe."""

    def __init__(self, secret_key, webhook_secret, currency="sek"):
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        self.currency = (currency or "sek").lower()

    @classmethod
    def from_config(cls, config):
        return cls(
            secret_key=config.get("STRIPE_SECRET_KEY"),
            webhook_secret=config.get("STRIPE_WEBHOOK_SECRET"),
            currency=config.get("STRIPE_CURRENCY", "sek"),
        )

    def _authenticate(self):
        if not self.secret_key:
            raise ExternalServiceError("Stripe secret key not configured (STRIPE_SECRET_KEY)")
        stripe.api_key = self.secret_key

    def create_checkout_session(self, booking, success_url, cancel_url) -> CheckoutSession:
        self._authenticate()

        name = service_name(booking.service_type)
        amount = booking.amount or SERVICE_TYPES[booking.service_type]["price"]
        params = dict(
            mode="payment",
            payment_method_types=["card"],
            line_items=[{
                "price_data": {
                    "currency": self.currency,
                    "product_data": {
                        "name": name,
                        "description": f"{name} - {booking.date.isoformat()} {booking.time}",
                    },
                    "unit_amount": int(amount) * 100,  # öre
                },
                "quantity": 1,
            }],
            success_url=success_url,
            cancel_url=cancel_url,
            expires_at=int(time.time()) + CHECKOUT_SESSION_TTL_SECONDS,
            metadata={
                "booking_id": str(booking.id),
                "user_id": str(booking.user_id),
                "service_type": booking.service_type,
            },
        )
        if booking.user is not None and booking.user.email:
            params["customer_email"] = booking.user.email

        try:
            session = stripe.checkout.Session.create(**params)
        except stripe.StripeError as exc:
            logger.error("stripe checkout session failed for booking %s: %s", booking.id, exc)
            raise ExternalServiceError("Could not create payment") from exc

        return CheckoutSession(session_id=session["id"], redirect_url=session["url"])

    def retrieve_checkout_session(self, session_id) -> CheckoutStatus:
        self._authenticate()
        try:
            session = stripe.checkout.Session.retrieve(session_id)
        except stripe.StripeError as exc:
            logger.error("stripe session lookup failed for %s: %s", session_id, exc)
            raise ExternalServiceError("Could not check payment status") from exc

        intent = _field(session, "payment_intent")
        if intent is not None and not isinstance(intent, str):
            intent = _field(intent, "id")
        return CheckoutStatus(
            session_id=session_id,
            payment_status=_field(session, "payment_status") or "unpaid",
            payment_intent_id=intent,
        )

    def retrieve_payment_receipt(self, payment_intent_id) -> Optional[Receipt]:
        if not payment_intent_id:
            return None
        self._authenticate()
        try:
            intent = stripe.PaymentIntent.retrieve(payment_intent_id, expand=["latest_charge"])
        except stripe.StripeError as exc:
            raise ExternalServiceError("Could not fetch receipt") from exc

        charge = _field(intent, "latest_charge")
        if charge is None or isinstance(charge, str):
            return None

        card = _field(_field(charge, "payment_method_details"), "card")
        brand = _field(card, "brand")
        label = f"{brand.upper()} •••• {_field(card, 'last4')}" if brand else "Kort"
        created = _field(charge, "created")
        return Receipt(
            payment_intent_id=payment_intent_id,
            charge_id=_field(charge, "id"),
            receipt_url=_field(charge, "receipt_url"),
            payment_method_label=label,
            paid_at=datetime.fromtimestamp(created, tz=timezone.utc) if created else None,
        )

    def verify_and_parse_webhook(self, payload: bytes, signature) -> WebhookEvent:
        if not self.webhook_secret:
            raise ExternalServiceError("Webhook secret not configured")
        if not signature:
            raise WebhookSignatureError("No signature")

        raw = payload.decode("utf-8") if isinstance(payload, bytes) else payload
        try:
            stripe.WebhookSignature.verify_header(raw, signature, self.webhook_secret)
            event = json.loads(raw)
        except (stripe.SignatureVerificationError, ValueError) as exc:
            raise WebhookSignatureError("Invalid webhook signature") from exc

        obj = (event.get("data") or {}).get("object") or {}
        return WebhookEvent(
            type=event.get("type", ""),
            session_id=obj.get("id"),
            payment_intent_id=obj.get("payment_intent"),
            payment_status=obj.get("payment_status"),
        )
