from flask import Blueprint, jsonify, g, request

from security.rbac import coach_required
from services import get_dispatcher, get_lifecycle
from utils.audit import log_event

admin_bp = Blueprint("admin", __name__, url_prefix="/admin")


# ---------- COACH: bookings ----------
@admin_bp.get("/bookings")
@coach_required
def list_bookings():
    bookings = get_lifecycle().list_bookings(g.user, status=request.args.get("status"))
    return jsonify([b.to_dict(include_user=True) for b in bookings]), 200


@admin_bp.patch("/bookings/<int:booking_id>")
@coach_required
def update_booking(booking_id):
    data = request.get_json(silent=True) or {}
    status = data.get("status")

    lifecycle = get_lifecycle()
    if status == "confirmed":
        result = lifecycle.confirm_booking(g.user, booking_id)
        action = "BOOKING_CONFIRM"
    elif status == "cancelled":
        result = lifecycle.cancel_booking(g.user, booking_id)
        action = "BOOKING_CANCEL"
    else:
        return jsonify(error="status must be 'confirmed' or 'cancelled'", code="validation_error"), 400

    log_event(action, user_id=g.user.id, entity="booking", entity_id=booking_id)
    sent = get_dispatcher().dispatch(result.effects)

    return jsonify(
        booking=result.booking.to_dict(include_user=True),
        notified=all(sent) if sent else None,
    ), 200


@admin_bp.delete("/bookings/<int:booking_id>")
@coach_required
def delete_booking(booking_id):
    get_lifecycle().delete_booking(g.user, booking_id)
    log_event("BOOKING_DELETE", user_id=g.user.id, entity="booking", entity_id=booking_id)
    return jsonify(message="Booking deleted"), 200


# ---------- COACH: blocked slots ----------
@admin_bp.get("/blocked-slots")
@coach_required
def list_blocked_slots():
    slots = get_lifecycle().list_blocked_slots(g.user)
    return jsonify([s.to_dict() for s in slots]), 200


@admin_bp.post("/blocked-slots")
@coach_required
def block_slot():
    data = request.get_json(silent=True) or {}
    slot = get_lifecycle().block_slot(g.user, data.get("date"), data.get("time"), reason=data.get("reason"))

    log_event(
        "SLOT_BLOCK",
        user_id=g.user.id,
        entity="blocked_slot",
        entity_id=slot.id,
        metadata={"date": slot.date.isoformat(), "time": slot.time},
    )
    return jsonify(slot.to_dict()), 201


@admin_bp.delete("/blocked-slots/<int:slot_id>")
@coach_required
def unblock_slot(slot_id):
    get_lifecycle().unblock_slot(g.user, slot_id)
    log_event("SLOT_UNBLOCK", user_id=g.user.id, entity="blocked_slot", entity_id=slot_id)
    return jsonify(message="Slot unblocked"), 200
