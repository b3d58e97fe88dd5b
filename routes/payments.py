from flask import Blueprint, request, jsonify, g

from services import get_dispatcher, get_lifecycle
from utils.auth_context import login_required
from utils.audit import log_event

payments_bp = Blueprint("payments", __name__, url_prefix="/payments")


def _booking_id(data):
    value = data.get("booking_id")
    return value if value is not None else data.get("bookingId")


@payments_bp.post("/checkout")
@login_required
def start_checkout():
    data = request.get_json(silent=True) or {}
    booking_id = _booking_id(data)
    if not booking_id:
        return jsonify(error="booking_id required", code="validation_error"), 400

    result = get_lifecycle().initiate_payment(g.user, booking_id)

    log_event(
        "PAYMENT_SESSION_CREATED",
        user_id=g.user.id,
        entity="booking",
        entity_id=result.booking.id,
        metadata={"stripe_session_id": result.booking.stripe_session_id},
    )
    return jsonify(url=result.redirect_url, session_id=result.booking.stripe_session_id), 200


@payments_bp.post("/check")
@login_required
def check_payment():
    """Fallback when the customer is back from Checkout before the webhook."""
    data = request.get_json(silent=True) or {}
    booking_id = _booking_id(data)
    if not booking_id:
        return jsonify(error="booking_id required", code="validation_error"), 400
    session_id = data.get("session_id") or data.get("sessionId")

    result = get_lifecycle().reconcile_payment(g.user, booking_id, session_id=session_id)
    booking = result.booking

    if result.conflict:
        log_event("PAYMENT_CONFLICT", entity="booking", entity_id=booking.id)
        return jsonify(
            error="This time was booked by someone else before your payment completed",
            code="conflict",
            payment_status=booking.payment_status,
        ), 409

    sent = get_dispatcher().dispatch(result.effects)
    if result.effects:
        log_event("PAYMENT_PAID", user_id=g.user.id, entity="booking", entity_id=booking.id, metadata={"via": "check"})

    return jsonify(
        payment_status=booking.payment_status,
        booking_status=booking.status,
        coach_notified=all(sent) if sent else None,
    ), 200
