import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from utils.audit import log_event

logger = logging.getLogger(__name__)

BOOKING_CONFIRMED = "booking_confirmed"
BOOKING_CANCELLED = "booking_cancelled"
CANCELLATION_REQUESTED = "cancellation_requested"
PAID_PENDING_CONFIRMATION = "paid_pending_confirmation"

_NOTIFIER_METHODS = {
    BOOKING_CONFIRMED: "notify_booking_confirmed",
    BOOKING_CANCELLED: "notify_booking_cancelled",
    CANCELLATION_REQUESTED: "notify_cancellation_requested",
    PAID_PENDING_CONFIRMATION: "notify_new_paid_booking_pending_confirmation",
}

_WITH_RECEIPT = {BOOKING_CONFIRMED, PAID_PENDING_CONFIRMATION}


@dataclass
class Notification:
    kind: str
    booking: Any
    user: Any
    payment_intent_id: Optional[str] = None


@dataclass
class TransitionResult:
    booking: Any = None
    effects: List[Notification] = field(default_factory=list)
    requires_payment: bool = False
    redirect_url: Optional[str] = None
    conflict: bool = False


class EffectDispatcher:
    """Runs the notifications a transition asked for.

    Sends happen after the store mutation has committed. Failures are retried
    up to `max_attempts`, then logged and audited; they never propagate.
    """

    def __init__(self, notifier, payments=None, max_attempts=2):
        self.notifier = notifier
        self.payments = payments
        self.max_attempts = max(1, int(max_attempts))

    def dispatch(self, effects):
        results = []
        for effect in effects or []:
            results.append(self._run(effect))
        return results

    def _receipt_url(self, effect):
        if effect.kind not in _WITH_RECEIPT or not effect.payment_intent_id or self.payments is None:
            return None
        try:
            receipt = self.payments.retrieve_payment_receipt(effect.payment_intent_id)
        except Exception as exc:
            logger.warning("receipt lookup failed for booking %s: %s", effect.booking.id, exc)
            return None
        return receipt.receipt_url if receipt else None

    def _run(self, effect):
        method_name = _NOTIFIER_METHODS.get(effect.kind)
        if method_name is None:
            logger.error("unknown notification kind %r", effect.kind)
            return False

        kwargs = {}
        if effect.kind in _WITH_RECEIPT:
            kwargs["receipt_url"] = self._receipt_url(effect)

        send = getattr(self.notifier, method_name)
        ok, error = False, None
        for attempt in range(1, self.max_attempts + 1):
            try:
                ok, error = send(effect.booking, effect.user, **kwargs)
            except Exception as exc:
                ok, error = False, str(exc)
            if ok:
                break
            logger.warning(
                "%s for booking %s failed (attempt %d/%d): %s",
                method_name, effect.booking.id, attempt, self.max_attempts, error,
            )

        try:
            log_event(
                "NOTIFICATION_SENT" if ok else "NOTIFICATION_FAILED",
                entity="booking",
                entity_id=effect.booking.id,
                metadata={"kind": effect.kind, "sent": ok, "error": error},
            )
        except SQLAlchemyError:
            logger.exception("could not audit %s for booking %s", effect.kind, effect.booking.id)
        return ok
