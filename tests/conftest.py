import json
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from app import create_app
from config import Config
from models import db
from models.user import User
from security.password import hash_password
from services import get_lifecycle
from services.errors import ExternalServiceError, WebhookSignatureError
from services.payments import CheckoutSession, CheckoutStatus, Receipt, WebhookEvent

STOCKHOLM = ZoneInfo("Europe/Stockholm")
PASSWORD = "secret123"
COACH_EMAIL = "coach@example.com"


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = "test"
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    COACH_EMAIL = COACH_EMAIL
    BCRYPT_ROUNDS = 4
    STRIPE_SECRET_KEY = "sk_test_dummy"
    STRIPE_WEBHOOK_SECRET = "whsec_test_dummy"
    APP_BASE_URL = "https://tngolf.test"
    SMTP_HOST = None


class FixedClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def set(self, *args):
        self.now = datetime(*args, tzinfo=STOCKHOLM)

    def advance(self, **delta):
        self.now = self.now + timedelta(**delta)


class FakePaymentBridge:
    """In-memory stand-in for StripePaymentBridge."""

    def __init__(self):
        self.sessions = {}
        self.created = []
        self.fail_checkout = False
        self.receipt_error = None
        self._counter = 0

    def create_checkout_session(self, booking, success_url, cancel_url):
        if self.fail_checkout:
            raise ExternalServiceError("Could not create payment")
        self._counter += 1
        session_id = f"cs_test_{self._counter}"
        self.created.append({
            "booking_id": booking.id,
            "amount": booking.amount,
            "success_url": success_url,
            "cancel_url": cancel_url,
        })
        self.sessions[session_id] = CheckoutStatus(session_id, "unpaid")
        return CheckoutSession(session_id, f"https://checkout.stripe.test/{session_id}")

    def complete(self, session_id, payment_intent_id="pi_test_1"):
        self.sessions[session_id] = CheckoutStatus(session_id, "paid", payment_intent_id)

    def retrieve_checkout_session(self, session_id):
        if session_id not in self.sessions:
            raise ExternalServiceError("Could not check payment status")
        return self.sessions[session_id]

    def retrieve_payment_receipt(self, payment_intent_id):
        if self.receipt_error is not None:
            raise self.receipt_error
        if not payment_intent_id:
            return None
        return Receipt(
            payment_intent_id=payment_intent_id,
            charge_id="ch_test_1",
            receipt_url=f"https://pay.stripe.test/receipts/{payment_intent_id}",
            payment_method_label="VISA •••• 4242",
            paid_at=datetime(2025, 6, 1, 10, 0, tzinfo=timezone.utc),
        )

    def verify_and_parse_webhook(self, payload, signature):
        if signature != "valid":
            raise WebhookSignatureError("Invalid webhook signature")
        event = json.loads(payload)
        obj = event["data"]["object"]
        return WebhookEvent(
            type=event["type"],
            session_id=obj.get("id"),
            payment_intent_id=obj.get("payment_intent"),
            payment_status=obj.get("payment_status"),
        )


class RecordingNotifier:
    def __init__(self):
        self.sent = []
        self.failures = 0  # fail this many sends before succeeding

    def _record(self, kind, booking, user, **extra):
        self.sent.append({"kind": kind, "booking_id": booking.id, "to": user.email if user else None, **extra})
        if self.failures > 0:
            self.failures -= 1
            return False, "smtp unavailable"
        return True, None

    def kinds(self):
        return [s["kind"] for s in self.sent]

    def notify_booking_confirmed(self, booking, user, receipt_url=None):
        return self._record("confirmed", booking, user, receipt_url=receipt_url)

    def notify_booking_cancelled(self, booking, user):
        return self._record("cancelled", booking, user)

    def notify_cancellation_requested(self, booking, user):
        return self._record("cancellation_requested", booking, user)

    def notify_new_paid_booking_pending_confirmation(self, booking, user, receipt_url=None):
        return self._record("paid_pending_confirmation", booking, user, receipt_url=receipt_url)


@pytest.fixture
def clock():
    return FixedClock(datetime(2025, 6, 1, 12, 0, tzinfo=STOCKHOLM))


@pytest.fixture
def payments():
    return FakePaymentBridge()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def app(clock, payments, notifier):
    app = create_app(TestConfig)
    app.extensions["booking_clock"] = clock
    app.extensions["payment_bridge"] = payments
    app.extensions["notifier"] = notifier

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def lifecycle(app):
    return get_lifecycle()


def make_user(email, name=None, password=PASSWORD):
    user = User(email=email, name=name, password_hash=hash_password(password))
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture
def customer(app):
    return make_user("anna@example.com", name="Anna")


@pytest.fixture
def other_customer(app):
    return make_user("bertil@example.com", name="Bertil")


@pytest.fixture
def coach(app):
    return make_user(COACH_EMAIL, name="Coach")


@pytest.fixture
def login(client):
    def _login(email, password=PASSWORD):
        """Log in and return the CSRF header for state-changing requests."""
        resp = client.post("/auth/login", json={"email": email, "password": password})
        assert resp.status_code == 200, resp.get_json()
        return {"X-CSRF-Token": client.get_cookie("csrf_token").value}
    return _login


@pytest.fixture
def checkout_event():
    def _event(event_type, session_id, payment_intent=None, payment_status=None):
        obj = {"id": session_id, "object": "checkout.session"}
        if payment_intent is not None:
            obj["payment_intent"] = payment_intent
        if payment_status is not None:
            obj["payment_status"] = payment_status
        return json.dumps({"id": "evt_test", "type": event_type, "data": {"object": obj}})
    return _event
