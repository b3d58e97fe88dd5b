import logging

from flask import Blueprint, request, jsonify, current_app

from services import get_dispatcher, get_lifecycle
from services.payments import (
    CHECKOUT_ASYNC_FAILED,
    CHECKOUT_ASYNC_SUCCEEDED,
    CHECKOUT_COMPLETED,
    CHECKOUT_EXPIRED,
    PAID_SESSION_STATUSES,
)
from utils.audit import log_event

logger = logging.getLogger(__name__)

webhook_bp = Blueprint("webhook", __name__, url_prefix="/webhooks")


@webhook_bp.post("/stripe")
def stripe_webhook():
    bridge = current_app.extensions["payment_bridge"]
    # WebhookSignatureError / ExternalServiceError are rendered by the app error handler
    event = bridge.verify_and_parse_webhook(request.get_data(), request.headers.get("Stripe-Signature"))

    lifecycle = get_lifecycle()

    if event.type in (CHECKOUT_COMPLETED, CHECKOUT_ASYNC_SUCCEEDED):
        # delayed methods complete the session first and pay later
        if event.payment_status is not None and event.payment_status not in PAID_SESSION_STATUSES:
            logger.info("checkout %s completed with payment_status=%s", event.session_id, event.payment_status)
            return jsonify(received=True), 200

        result = lifecycle.record_payment_completed(event.session_id, event.payment_intent_id)
        if result.booking is not None:
            log_event(
                "PAYMENT_CONFLICT" if result.conflict else "PAYMENT_PAID",
                entity="booking",
                entity_id=result.booking.id,
                metadata={"stripe_session_id": event.session_id, "payment_intent": event.payment_intent_id},
            )
        get_dispatcher().dispatch(result.effects)

    elif event.type in (CHECKOUT_ASYNC_FAILED, CHECKOUT_EXPIRED):
        result = lifecycle.record_payment_failed(event.session_id)
        if result.booking is not None:
            log_event(
                "PAYMENT_FAILED",
                entity="booking",
                entity_id=result.booking.id,
                metadata={"stripe_session_id": event.session_id, "event": event.type},
            )

    return jsonify(received=True), 200
