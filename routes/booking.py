from flask import Blueprint, request, jsonify, g

from services import get_dispatcher, get_lifecycle
from services.catalog import service_name
from utils.auth_context import login_required
from utils.audit import log_event

booking_bp = Blueprint("booking", __name__, url_prefix="/bookings")


def _field(data, snake, camel):
    value = data.get(snake)
    return value if value is not None else data.get(camel)


# ---------- PUBLIC: open slots ----------
@booking_bp.get("/available")
def available():
    slots = get_lifecycle().available_slots(
        start=request.args.get("start"),
        end=request.args.get("end"),
        service_type=request.args.get("serviceType") or request.args.get("service_type"),
    )
    return jsonify(slots), 200


# ---------- USER: my bookings ----------
@booking_bp.get("")
@login_required
def my_bookings():
    bookings = get_lifecycle().list_my_bookings(g.user)
    return jsonify([b.to_dict() for b in bookings]), 200


@booking_bp.post("")
@login_required
def create_booking():
    data = request.get_json(silent=True) or {}
    result = get_lifecycle().create_booking(
        g.user,
        service_type=_field(data, "service_type", "serviceType"),
        date=data.get("date"),
        time=data.get("time"),
        notes=data.get("notes"),
        payment_method=_field(data, "payment_method", "paymentMethod"),
    )
    booking = result.booking

    log_event(
        "BOOKING_CREATE",
        user_id=g.user.id,
        entity="booking",
        entity_id=booking.id,
        metadata={"date": booking.date.isoformat(), "time": booking.time, "payment_method": booking.payment_method},
    )
    return jsonify(booking=booking.to_dict(), requires_payment=result.requires_payment), 201


@booking_bp.post("/<int:booking_id>/cancel")
@login_required
def request_cancellation(booking_id):
    result = get_lifecycle().request_cancellation(g.user, booking_id)

    log_event("BOOKING_CANCEL_REQUEST", user_id=g.user.id, entity="booking", entity_id=booking_id)
    get_dispatcher().dispatch(result.effects)
    return jsonify(message="Cancellation request sent", booking=result.booking.to_dict()), 200


@booking_bp.get("/<int:booking_id>/receipt")
@login_required
def receipt(booking_id):
    booking, found = get_lifecycle().get_receipt(g.user, booking_id)
    return jsonify(
        booking=booking.to_dict(),
        service_name=service_name(booking.service_type),
        receipt=found.to_dict() if found else None,
    ), 200
