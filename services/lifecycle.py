import logging
from contextlib import contextmanager
from datetime import timedelta, timezone

from sqlalchemy.exc import IntegrityError

from models.booking import BOOKING_STATUSES
from services.availability import AvailabilityCalculator
from services.catalog import (
    SERVICE_TYPES,
    is_excluded_day,
    is_slot_time,
    parse_date,
    service_price,
    slot_start,
)
from services.effects import (
    BOOKING_CANCELLED,
    BOOKING_CONFIRMED,
    CANCELLATION_REQUESTED,
    PAID_PENDING_CONFIRMATION,
    Notification,
    TransitionResult,
)
from services.errors import ConflictError, NotFoundError, StoreError, ValidationError
from services.payments import CHECKOUT_SESSION_TTL_SECONDS, append_query
from services.store import is_slot_conflict

logger = logging.getLogger(__name__)

SLOT_TAKEN = "This time is already booked"
SLOT_BLOCKED = "This time is already blocked"


class BookingLifecycle:
    """State machine for a booking plus the conflict check guarding every claim.

    Transitions stage their writes on the store and commit once. A unique
    violation on a slot claim at commit time is the final arbiter between
    concurrent claims and surfaces as ConflictError. Notifications are not
    sent here; they are returned as effects for EffectDispatcher.

    Payment completion marks the booking paid and leaves it pending; the coach
    confirms it explicitly.
    """

    def __init__(self, store, policy, payments, clock, settings):
        self.store = store
        self.policy = policy
        self.payments = payments
        self.clock = clock
        self.settings = settings
        self.availability = AvailabilityCalculator(store, settings, clock)

    # ---------- helpers ----------
    def now(self):
        return self.clock().astimezone(self.settings.timezone)

    def today(self):
        return self.now().date()

    def _utcnow(self):
        # naive UTC, same as the models' created_at defaults
        return self.clock().astimezone(timezone.utc).replace(tzinfo=None)

    @contextmanager
    def _transaction(self):
        try:
            yield
            self.store.commit()
        except IntegrityError as exc:
            self.store.rollback()
            if is_slot_conflict(exc):
                raise ConflictError(SLOT_TAKEN) from exc
            logger.error("store write failed: %s", exc.orig)
            raise StoreError("Could not save the booking") from exc
        except Exception:
            self.store.rollback()
            raise

    def _get_booking(self, booking_id):
        booking = self.store.get_booking(booking_id)
        if booking is None:
            raise NotFoundError("Booking not found")
        return booking

    def _parse_slot(self, date_value, time_value):
        if not date_value or not time_value:
            raise ValidationError("Date and time are required")
        try:
            day = parse_date(date_value)
        except ValueError:
            raise ValidationError("Invalid date. Use YYYY-MM-DD")
        if not is_slot_time(time_value):
            raise ValidationError("Invalid time")
        return day, time_value

    def _slot_taken(self, day, time, exclude_id=None) -> bool:
        return self.availability.is_occupied(day, time, exclude_id=exclude_id)

    # ---------- queries ----------
    def available_slots(self, start=None, end=None, service_type=None):
        try:
            start = parse_date(start) if start else None
            end = parse_date(end) if end else None
        except ValueError:
            raise ValidationError("Invalid date. Use YYYY-MM-DD")
        return self.availability.open_slots(start, end, service_type=service_type)

    def list_my_bookings(self, actor):
        self.policy.require_user(actor)
        return self.store.list_bookings(user_id=actor.id)

    def list_bookings(self, actor, status=None):
        self.policy.require_coach(actor)
        if status and status not in BOOKING_STATUSES:
            raise ValidationError("Invalid status")
        return self.store.list_bookings(status=status)

    def list_blocked_slots(self, actor):
        self.policy.require_coach(actor)
        return self.store.list_blocked_slots()

    def get_receipt(self, actor, booking_id):
        self.policy.require_user(actor)
        booking = self._get_booking(booking_id)
        self.policy.require_owner(actor, booking)

        receipt = None
        if booking.stripe_payment_intent_id:
            try:
                receipt = self.payments.retrieve_payment_receipt(booking.stripe_payment_intent_id)
            except Exception as exc:
                logger.warning("receipt lookup failed for booking %s: %s", booking.id, exc)
        return booking, receipt

    # ---------- customer transitions ----------
    def sweep_stale_bookings(self):
        """Delete unpaid bookings whose checkout was abandoned.

        A booking with an open checkout session is kept at least as long as
        Stripe can still complete that session.
        """
        now = self._utcnow()
        cutoff = now - timedelta(minutes=self.settings.pending_payment_ttl_minutes)
        hold = max(self.settings.checkout_hold_minutes, CHECKOUT_SESSION_TTL_SECONDS // 60 + 1)
        with self._transaction():
            removed = self.store.delete_stale_pending_bookings(
                cutoff, checkout_older_than=now - timedelta(minutes=hold)
            )
        if removed:
            logger.info("swept %d abandoned pending bookings: %s", len(removed), removed)
        return removed

    def create_booking(self, actor, service_type, date, time, notes=None, payment_method=None):
        self.policy.require_user(actor)
        if not service_type or not date or not time:
            raise ValidationError("Service, date and time are required")
        if service_type not in SERVICE_TYPES:
            raise ValidationError("Invalid service type")
        day, time = self._parse_slot(date, time)
        if is_excluded_day(day, self.settings.excluded_weekday):
            raise ValidationError("Bookings are not available on this weekday")
        if day < self.today():
            raise ValidationError("Cannot book a date in the past")

        self.sweep_stale_bookings()

        if self._slot_taken(day, time):
            raise ConflictError(SLOT_TAKEN)

        online = payment_method in self.settings.online_payment_methods
        with self._transaction():
            booking = self.store.create_booking(
                user_id=actor.id,
                service_type=service_type,
                date=day,
                time=time,
                notes=(notes or "").strip() or None,
                status="pending",
                payment_method=payment_method or None,
                payment_status="pending" if online else None,
                amount=service_price(service_type) if online else None,
                created_at=self._utcnow(),
            )
        return TransitionResult(booking=booking, requires_payment=online)

    def initiate_payment(self, actor, booking_id):
        self.policy.require_user(actor)
        booking = self._get_booking(booking_id)
        self.policy.require_owner(actor, booking)

        if booking.payment_status == "paid":
            raise ValidationError("Booking is already paid")
        if booking.status == "cancelled":
            raise ValidationError("Booking is cancelled")
        if booking.payment_status not in ("pending", "failed"):
            raise ValidationError("Booking does not use online payment")
        price = service_price(booking.service_type)
        if price is None:
            raise ValidationError("Invalid service type")
        if self._slot_taken(booking.date, booking.time, exclude_id=booking.id):
            raise ConflictError(SLOT_TAKEN)

        base = f"{self.settings.app_base_url}/boka"
        success_url = append_query(base, {"booking": booking.id, "payment": "success"})
        cancel_url = append_query(base, {"booking": booking.id, "payment": "cancelled"})

        with self._transaction():
            self.store.update_booking(
                booking.id,
                amount=price,
                payment_status="pending",
                payment_started_at=self._utcnow(),
            )
            checkout = self.payments.create_checkout_session(booking, success_url, cancel_url)
            self.store.update_booking(booking.id, stripe_session_id=checkout.session_id)

        return TransitionResult(booking=booking, requires_payment=True, redirect_url=checkout.redirect_url)

    def request_cancellation(self, actor, booking_id):
        self.policy.require_user(actor)
        booking = self._get_booking(booking_id)
        self.policy.require_owner(actor, booking)

        if booking.status == "cancelled":
            raise ValidationError("Booking is already cancelled")
        if booking.cancellation_request == "pending":
            raise ValidationError("A cancellation request is already pending")

        starts_at = slot_start(booking.date, booking.time, self.settings.timezone)
        hours_left = (starts_at - self.now()).total_seconds() / 3600
        notice = self.settings.cancellation_notice_hours
        if hours_left <= notice:
            raise ValidationError(f"Cancellation must be requested more than {notice} hours before the booking")

        with self._transaction():
            self.store.update_booking(
                booking.id,
                cancellation_request="pending",
                cancellation_requested_at=self._utcnow(),
            )
        return TransitionResult(
            booking=booking,
            effects=[Notification(CANCELLATION_REQUESTED, booking, booking.user)],
        )

    # ---------- payment outcomes ----------
    def record_payment_completed(self, session_id, payment_intent_id=None):
        booking = self.store.get_booking_by_session(session_id)
        if booking is None:
            logger.error("paid checkout session %s has no booking (intent %s)", session_id, payment_intent_id)
            return TransitionResult()
        return self._mark_paid(booking, payment_intent_id)

    def record_payment_failed(self, session_id):
        booking = self.store.get_booking_by_session(session_id)
        if booking is None or booking.payment_status == "paid":
            return TransitionResult(booking=booking)
        with self._transaction():
            self.store.update_booking(booking.id, payment_status="failed")
        return TransitionResult(booking=booking)

    def reconcile_payment(self, actor, booking_id, session_id=None):
        """Ask Stripe directly when the webhook has not arrived yet."""
        self.policy.require_user(actor)
        booking = self._get_booking(booking_id)
        self.policy.require_owner(actor, booking)

        session_id = session_id or booking.stripe_session_id
        if not session_id:
            raise ValidationError("Booking has no payment session")
        if booking.stripe_session_id and session_id != booking.stripe_session_id:
            raise ValidationError("Payment session does not belong to this booking")
        if booking.payment_status == "paid":
            return TransitionResult(booking=booking)

        status = self.payments.retrieve_checkout_session(session_id)
        if not status.is_paid:
            return TransitionResult(booking=booking)
        return self._mark_paid(booking, status.payment_intent_id)

    def _mark_paid(self, booking, payment_intent_id):
        if booking.payment_status == "paid":
            return TransitionResult(booking=booking)
        if self._slot_taken(booking.date, booking.time, exclude_id=booking.id):
            return self._record_paid_conflict(booking, payment_intent_id)

        booking_id = booking.id
        try:
            with self._transaction():
                self.store.update_booking(
                    booking_id,
                    payment_status="paid",
                    stripe_payment_intent_id=payment_intent_id or booking.stripe_payment_intent_id,
                )
        except ConflictError:
            return self._record_paid_conflict(self._get_booking(booking_id), payment_intent_id)

        return TransitionResult(
            booking=booking,
            effects=[Notification(PAID_PENDING_CONFIRMATION, booking, booking.user, booking.stripe_payment_intent_id)],
        )

    def _record_paid_conflict(self, booking, payment_intent_id):
        with self._transaction():
            self.store.update_booking(
                booking.id,
                payment_status="failed",
                stripe_payment_intent_id=payment_intent_id or booking.stripe_payment_intent_id,
            )
        logger.warning(
            "booking %s was paid but %s %s is already taken; payment %s needs a refund",
            booking.id, booking.date, booking.time, booking.stripe_payment_intent_id,
        )
        return TransitionResult(booking=booking, conflict=True)

    # ---------- coach transitions ----------
    def confirm_booking(self, actor, booking_id):
        self.policy.require_coach(actor)
        booking = self._get_booking(booking_id)

        if booking.status == "cancelled":
            raise ValidationError("Cancelled bookings cannot be confirmed")
        if booking.status == "confirmed":
            return TransitionResult(booking=booking)
        if self._slot_taken(booking.date, booking.time, exclude_id=booking.id):
            raise ConflictError(SLOT_TAKEN)

        with self._transaction():
            self.store.update_booking(booking.id, status="confirmed")

        effects = []
        if booking.payment_status == "paid":
            effects.append(Notification(BOOKING_CONFIRMED, booking, booking.user, booking.stripe_payment_intent_id))
        return TransitionResult(booking=booking, effects=effects)

    def cancel_booking(self, actor, booking_id):
        self.policy.require_coach(actor)
        booking = self._get_booking(booking_id)
        if booking.status == "cancelled":
            raise ValidationError("Booking is already cancelled")

        with self._transaction():
            self.store.update_booking(booking.id, status="cancelled")
        return TransitionResult(
            booking=booking,
            effects=[Notification(BOOKING_CANCELLED, booking, booking.user)],
        )

    def delete_booking(self, actor, booking_id):
        self.policy.require_coach(actor)
        booking = self._get_booking(booking_id)
        if booking.status != "cancelled":
            raise ValidationError("Only cancelled bookings can be deleted")

        with self._transaction():
            self.store.delete_booking(booking.id)
        return TransitionResult()

    def block_slot(self, actor, date, time, reason=None):
        self.policy.require_coach(actor)
        day, time = self._parse_slot(date, time)

        if self.store.find_blocked_slot(day, time) is not None:
            raise ConflictError(SLOT_BLOCKED)
        if self.store.find_booking_conflict(day, time) is not None:
            raise ConflictError(SLOT_TAKEN)

        with self._transaction():
            slot = self.store.create_blocked_slot(day, time, reason=(reason or "").strip() or None)
        return slot

    def unblock_slot(self, actor, slot_id):
        self.policy.require_coach(actor)
        slot = self.store.get_blocked_slot(slot_id)
        if slot is None:
            raise NotFoundError("Blocked slot not found")

        with self._transaction():
            self.store.delete_blocked_slot(slot.id)
