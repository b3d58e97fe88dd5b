import pytest

from models.booking import Booking
from models.slot_claim import SlotClaim
from services.effects import (
    BOOKING_CANCELLED,
    BOOKING_CONFIRMED,
    CANCELLATION_REQUESTED,
    PAID_PENDING_CONFIRMATION,
)
from services.errors import (
    AuthorizationError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    StoreError,
    ValidationError,
)

DAY = "2025-06-10"  # Tuesday


def _online(lifecycle, user, time="14:00", day=DAY):
    return lifecycle.create_booking(user, "golftraning", day, time, payment_method="online").booking


def _paid(lifecycle, payments, user, time="14:00", intent="pi_test_1"):
    booking = _online(lifecycle, user, time)
    lifecycle.initiate_payment(user, booking.id)
    lifecycle.record_payment_completed(booking.stripe_session_id, intent)
    return booking


# ---------- create ----------
def test_create_online_booking_waits_for_payment(lifecycle, customer):
    result = lifecycle.create_booking(
        customer, "golftraning", DAY, "14:00", notes="  first lesson ", payment_method="online"
    )

    booking = result.booking
    assert result.requires_payment is True
    assert booking.status == "pending"
    assert booking.payment_status == "pending"
    assert booking.amount == 1079
    assert booking.notes == "first lesson"
    assert booking.claim is None
    assert result.effects == []


def test_create_without_online_payment(lifecycle, customer):
    result = lifecycle.create_booking(customer, "mental-traning", DAY, "10:45", payment_method="on_site")

    assert result.requires_payment is False
    assert result.booking.payment_status is None
    assert result.booking.amount is None


@pytest.mark.parametrize(
    "service, day, time",
    [
        ("golftraning", "2025-06-08", "14:00"),  # Sunday
        ("golftraning", "2025-05-31", "14:00"),  # past
        ("golftraning", DAY, "14:15"),  # off grid
        ("golftraning", "not-a-date", "14:00"),
        ("yoga", DAY, "14:00"),
        ("", DAY, "14:00"),
        ("golftraning", DAY, None),
    ],
)
def test_create_rejects_invalid_input_before_writing(lifecycle, customer, service, day, time):
    with pytest.raises(ValidationError):
        lifecycle.create_booking(customer, service, day, time)
    assert Booking.query.count() == 0


def test_create_requires_a_user(lifecycle):
    with pytest.raises(AuthorizationError):
        lifecycle.create_booking(None, "golftraning", DAY, "14:00")


def test_two_unpaid_attempts_on_one_slot_both_succeed(lifecycle, customer, other_customer):
    first = _online(lifecycle, customer)
    second = _online(lifecycle, other_customer)
    assert first.id != second.id
    assert SlotClaim.query.count() == 0


def test_create_conflicts_with_a_confirmed_booking(lifecycle, customer, other_customer, coach):
    first = lifecycle.create_booking(customer, "golftraning", DAY, "14:00").booking
    lifecycle.confirm_booking(coach, first.id)

    with pytest.raises(ConflictError):
        lifecycle.create_booking(other_customer, "golftraning", DAY, "14:00")
    assert Booking.query.count() == 1


def test_create_conflicts_with_a_paid_booking(lifecycle, payments, customer, other_customer):
    _paid(lifecycle, payments, customer)

    with pytest.raises(ConflictError):
        _online(lifecycle, other_customer)


def test_create_conflicts_with_a_blocked_slot(lifecycle, customer, coach):
    lifecycle.block_slot(coach, DAY, "14:00")

    with pytest.raises(ConflictError):
        _online(lifecycle, customer)


# ---------- stale sweep ----------
def test_abandoned_checkout_is_swept_on_next_create(lifecycle, clock, customer, other_customer):
    stale = _online(lifecycle, customer)
    stale_id = stale.id
    clock.advance(minutes=31)

    lifecycle.create_booking(other_customer, "golftraning", DAY, "15:00")

    assert lifecycle.store.get_booking(stale_id) is None


def test_sweep_keeps_recent_paid_and_offline_bookings(lifecycle, payments, clock, customer):
    recent = _online(lifecycle, customer, "10:00")
    paid = _paid(lifecycle, payments, customer, "10:30")
    offline = lifecycle.create_booking(customer, "golftraning", DAY, "11:00").booking
    recent_id = recent.id
    clock.advance(minutes=29)
    assert lifecycle.sweep_stale_bookings() == []

    clock.advance(minutes=2)
    assert lifecycle.sweep_stale_bookings() == [recent_id]
    assert lifecycle.store.get_booking(paid.id) is not None
    assert lifecycle.store.get_booking(offline.id) is not None


def test_open_checkout_outlives_the_creation_window(lifecycle, clock, customer, other_customer):
    booking = _online(lifecycle, customer)
    booking_id = booking.id
    clock.advance(minutes=25)
    lifecycle.initiate_payment(customer, booking_id)
    session_id = booking.stripe_session_id
    clock.advance(minutes=6)

    lifecycle.create_booking(other_customer, "golftraning", DAY, "15:00")
    result = lifecycle.record_payment_completed(session_id, "pi_paid")

    assert result.booking is not None
    assert result.booking.id == booking_id
    assert result.booking.payment_status == "paid"


def test_retried_checkout_is_judged_by_its_own_start(lifecycle, clock, customer, other_customer):
    booking = _online(lifecycle, customer)
    booking_id = booking.id
    lifecycle.initiate_payment(customer, booking_id)
    lifecycle.record_payment_failed(booking.stripe_session_id)
    clock.advance(hours=2)

    lifecycle.initiate_payment(customer, booking_id)
    retry_session = booking.stripe_session_id
    clock.advance(minutes=1)
    lifecycle.create_booking(other_customer, "golftraning", DAY, "15:00")
    result = lifecycle.record_payment_completed(retry_session, "pi_retry")

    assert retry_session == "cs_test_2"
    assert result.booking is not None
    assert result.booking.payment_status == "paid"


def test_open_checkout_is_swept_once_the_hold_passes(lifecycle, clock, customer):
    booking = _online(lifecycle, customer)
    booking_id = booking.id
    lifecycle.initiate_payment(customer, booking_id)

    clock.advance(minutes=59)
    assert lifecycle.sweep_stale_bookings() == []

    clock.advance(minutes=2)
    assert lifecycle.sweep_stale_bookings() == [booking_id]


# ---------- payment ----------
def test_initiate_payment_records_the_session(lifecycle, payments, customer):
    booking = _online(lifecycle, customer)

    result = lifecycle.initiate_payment(customer, booking.id)

    assert result.redirect_url == "https://checkout.stripe.test/cs_test_1"
    assert booking.stripe_session_id == "cs_test_1"
    created = payments.created[0]
    assert created["amount"] == 1079
    assert created["success_url"] == f"https://tngolf.test/boka?booking={booking.id}&payment=success"
    assert created["cancel_url"] == f"https://tngolf.test/boka?booking={booking.id}&payment=cancelled"


def test_initiate_payment_guards(lifecycle, payments, customer, other_customer, coach):
    booking = _online(lifecycle, customer)

    with pytest.raises(AuthorizationError):
        lifecycle.initiate_payment(other_customer, booking.id)
    with pytest.raises(NotFoundError):
        lifecycle.initiate_payment(customer, 9999)

    offline = lifecycle.create_booking(customer, "golftraning", DAY, "15:00").booking
    with pytest.raises(ValidationError):
        lifecycle.initiate_payment(customer, offline.id)

    lifecycle.initiate_payment(customer, booking.id)
    lifecycle.record_payment_completed(booking.stripe_session_id, "pi_1")
    with pytest.raises(ValidationError):
        lifecycle.initiate_payment(customer, booking.id)


def test_initiate_payment_fails_when_slot_was_taken(lifecycle, customer, other_customer, coach):
    mine = _online(lifecycle, customer)
    theirs = lifecycle.create_booking(other_customer, "golftraning", DAY, "14:00").booking
    lifecycle.confirm_booking(coach, theirs.id)

    with pytest.raises(ConflictError):
        lifecycle.initiate_payment(customer, mine.id)


def test_checkout_failure_leaves_booking_untouched(lifecycle, payments, customer):
    booking = _online(lifecycle, customer)
    payments.fail_checkout = True

    with pytest.raises(ExternalServiceError):
        lifecycle.initiate_payment(customer, booking.id)
    assert booking.stripe_session_id is None
    assert booking.payment_status == "pending"


def test_payment_completion_marks_paid_but_not_confirmed(lifecycle, customer):
    booking = _online(lifecycle, customer)
    lifecycle.initiate_payment(customer, booking.id)

    result = lifecycle.record_payment_completed(booking.stripe_session_id, "pi_test_9")

    assert booking.payment_status == "paid"
    assert booking.status == "pending"
    assert booking.stripe_payment_intent_id == "pi_test_9"
    assert booking.claim is not None
    assert [e.kind for e in result.effects] == [PAID_PENDING_CONFIRMATION]
    assert result.effects[0].payment_intent_id == "pi_test_9"


def test_payment_completion_is_idempotent(lifecycle, customer):
    booking = _online(lifecycle, customer)
    lifecycle.initiate_payment(customer, booking.id)
    lifecycle.record_payment_completed(booking.stripe_session_id, "pi_1")

    again = lifecycle.record_payment_completed(booking.stripe_session_id, "pi_1")

    assert again.effects == []
    assert SlotClaim.query.count() == 1


def test_payment_for_unknown_session_is_ignored(lifecycle):
    result = lifecycle.record_payment_completed("cs_unknown", "pi_1")
    assert result.booking is None
    assert result.effects == []


def test_failed_payment_keeps_booking_pending(lifecycle, customer):
    booking = _online(lifecycle, customer)
    lifecycle.initiate_payment(customer, booking.id)

    lifecycle.record_payment_failed(booking.stripe_session_id)

    assert booking.payment_status == "failed"
    assert booking.status == "pending"
    # a failed attempt can be retried
    lifecycle.initiate_payment(customer, booking.id)
    assert booking.payment_status == "pending"


def test_reconcile_asks_the_payment_provider(lifecycle, payments, customer):
    booking = _online(lifecycle, customer)
    lifecycle.initiate_payment(customer, booking.id)

    unpaid = lifecycle.reconcile_payment(customer, booking.id)
    assert unpaid.effects == []
    assert booking.payment_status == "pending"

    payments.complete(booking.stripe_session_id, "pi_test_2")
    paid = lifecycle.reconcile_payment(customer, booking.id, booking.stripe_session_id)
    assert booking.payment_status == "paid"
    assert [e.kind for e in paid.effects] == [PAID_PENDING_CONFIRMATION]


def test_reconcile_rejects_foreign_session(lifecycle, customer):
    booking = _online(lifecycle, customer)
    lifecycle.initiate_payment(customer, booking.id)

    with pytest.raises(ValidationError):
        lifecycle.reconcile_payment(customer, booking.id, "cs_someone_else")


def test_second_payment_loses_to_first(lifecycle, customer, other_customer):
    first = _online(lifecycle, customer)
    second = _online(lifecycle, other_customer)
    lifecycle.initiate_payment(customer, first.id)
    lifecycle.initiate_payment(other_customer, second.id)

    lifecycle.record_payment_completed(first.stripe_session_id, "pi_first")
    result = lifecycle.record_payment_completed(second.stripe_session_id, "pi_second")

    assert result.conflict is True
    assert result.effects == []
    assert second.payment_status == "failed"
    assert second.stripe_payment_intent_id == "pi_second"
    assert first.payment_status == "paid"


# ---------- store-level arbitration ----------
def test_slot_claim_rejects_concurrent_confirm(lifecycle, monkeypatch, customer, other_customer, coach):
    first = lifecycle.create_booking(customer, "golftraning", DAY, "14:00").booking
    second = lifecycle.create_booking(other_customer, "golftraning", DAY, "14:00").booking
    lifecycle.confirm_booking(coach, first.id)

    # both requests passed the read check before either committed
    monkeypatch.setattr(lifecycle, "_slot_taken", lambda *args, **kwargs: False)

    with pytest.raises(ConflictError):
        lifecycle.confirm_booking(coach, second.id)
    assert lifecycle.store.get_booking(second.id).status == "pending"
    assert SlotClaim.query.count() == 1


def test_slot_claim_turns_racing_payment_into_conflict(lifecycle, monkeypatch, customer, other_customer, coach):
    first = lifecycle.create_booking(customer, "golftraning", DAY, "14:00").booking
    second = _online(lifecycle, other_customer)
    lifecycle.initiate_payment(other_customer, second.id)
    lifecycle.confirm_booking(coach, first.id)

    monkeypatch.setattr(lifecycle, "_slot_taken", lambda *args, **kwargs: False)
    result = lifecycle.record_payment_completed(second.stripe_session_id, "pi_late")

    assert result.conflict is True
    reloaded = lifecycle.store.get_booking(second.id)
    assert reloaded.payment_status == "failed"
    assert reloaded.stripe_payment_intent_id == "pi_late"


def test_slot_claim_rejects_block_racing_a_booking(lifecycle, monkeypatch, customer, coach):
    booking = lifecycle.create_booking(customer, "golftraning", DAY, "14:00").booking
    lifecycle.confirm_booking(coach, booking.id)
    monkeypatch.setattr(lifecycle.store, "find_booking_conflict", lambda *args, **kwargs: None)

    with pytest.raises(ConflictError):
        lifecycle.block_slot(coach, DAY, "14:00")
    assert lifecycle.store.list_blocked_slots() == []


def test_non_slot_integrity_error_is_a_store_failure(lifecycle, payments, customer, other_customer):
    first = _online(lifecycle, customer, "10:00")
    second = _online(lifecycle, other_customer, "11:00")
    second_id = second.id
    lifecycle.initiate_payment(customer, first.id)
    payments._counter = 0  # the provider hands out an id already on file

    with pytest.raises(StoreError):
        lifecycle.initiate_payment(other_customer, second_id)
    assert lifecycle.store.get_booking(second_id).stripe_session_id is None


# ---------- coach ----------
def test_confirm_paid_booking_notifies_customer(lifecycle, payments, customer, coach):
    booking = _paid(lifecycle, payments, customer, intent="pi_conf")

    result = lifecycle.confirm_booking(coach, booking.id)

    assert booking.status == "confirmed"
    assert [e.kind for e in result.effects] == [BOOKING_CONFIRMED]
    assert result.effects[0].user.email == customer.email
    assert result.effects[0].payment_intent_id == "pi_conf"


def test_confirm_unpaid_booking_is_silent(lifecycle, customer, coach):
    booking = lifecycle.create_booking(customer, "golftraning", DAY, "14:00").booking

    result = lifecycle.confirm_booking(coach, booking.id)

    assert booking.status == "confirmed"
    assert booking.claim is not None
    assert result.effects == []


def test_confirm_guards(lifecycle, customer, coach):
    booking = lifecycle.create_booking(customer, "golftraning", DAY, "14:00").booking

    with pytest.raises(AuthorizationError):
        lifecycle.confirm_booking(customer, booking.id)
    with pytest.raises(NotFoundError):
        lifecycle.confirm_booking(coach, 4242)

    lifecycle.cancel_booking(coach, booking.id)
    with pytest.raises(ValidationError):
        lifecycle.confirm_booking(coach, booking.id)


def test_cancel_releases_unpaid_slot(lifecycle, customer, coach):
    booking = lifecycle.create_booking(customer, "golftraning", DAY, "14:00").booking
    lifecycle.confirm_booking(coach, booking.id)

    result = lifecycle.cancel_booking(coach, booking.id)

    assert booking.status == "cancelled"
    assert [e.kind for e in result.effects] == [BOOKING_CANCELLED]
    assert SlotClaim.query.count() == 0
    with pytest.raises(ValidationError):
        lifecycle.cancel_booking(coach, booking.id)


def test_delete_only_cancelled_bookings(lifecycle, customer, coach):
    booking = lifecycle.create_booking(customer, "golftraning", DAY, "14:00").booking
    booking_id = booking.id

    with pytest.raises(ValidationError):
        lifecycle.delete_booking(coach, booking.id)
    with pytest.raises(AuthorizationError):
        lifecycle.delete_booking(customer, booking.id)

    lifecycle.cancel_booking(coach, booking_id)
    lifecycle.delete_booking(coach, booking_id)
    assert lifecycle.store.get_booking(booking_id) is None

    with pytest.raises(NotFoundError):
        lifecycle.delete_booking(coach, booking_id)


def test_block_slot_conflicts(lifecycle, payments, customer, coach):
    _online(lifecycle, customer, "10:00")
    assert lifecycle.block_slot(coach, DAY, "10:00", reason="Tournament").reason == "Tournament"

    with pytest.raises(ConflictError):
        lifecycle.block_slot(coach, DAY, "10:00")

    _paid(lifecycle, payments, customer, "11:00")
    with pytest.raises(ConflictError):
        lifecycle.block_slot(coach, DAY, "11:00")

    with pytest.raises(ValidationError):
        lifecycle.block_slot(coach, DAY, "09:00")
    with pytest.raises(AuthorizationError):
        lifecycle.block_slot(customer, DAY, "12:00")


def test_unblock_slot(lifecycle, customer, coach):
    slot = lifecycle.block_slot(coach, DAY, "14:00")
    slot_id = slot.id

    lifecycle.unblock_slot(coach, slot_id)

    assert lifecycle.store.list_blocked_slots() == []
    assert SlotClaim.query.count() == 0
    lifecycle.create_booking(customer, "golftraning", DAY, "14:00")
    with pytest.raises(NotFoundError):
        lifecycle.unblock_slot(coach, slot_id)


def test_list_bookings_is_coach_only(lifecycle, customer, other_customer, coach):
    lifecycle.create_booking(customer, "golftraning", DAY, "14:00")
    lifecycle.create_booking(other_customer, "golftraning", DAY, "15:00")

    assert len(lifecycle.list_bookings(coach)) == 2
    assert len(lifecycle.list_bookings(coach, status="confirmed")) == 0
    assert [b.user_id for b in lifecycle.list_my_bookings(customer)] == [customer.id]
    with pytest.raises(AuthorizationError):
        lifecycle.list_bookings(customer)
    with pytest.raises(ValidationError):
        lifecycle.list_bookings(coach, status="done")


# ---------- cancellation request ----------
def test_cancellation_request_needs_more_than_48_hours(lifecycle, clock, customer):
    booking = lifecycle.create_booking(customer, "golftraning", DAY, "14:00").booking

    clock.set(2025, 6, 8, 14, 0)  # exactly 48 h before
    with pytest.raises(ValidationError):
        lifecycle.request_cancellation(customer, booking.id)
    assert booking.cancellation_request is None

    clock.set(2025, 6, 8, 13, 59)
    result = lifecycle.request_cancellation(customer, booking.id)

    assert booking.cancellation_request == "pending"
    assert booking.cancellation_requested_at is not None
    assert booking.status == "pending"
    assert [e.kind for e in result.effects] == [CANCELLATION_REQUESTED]


def test_cancellation_request_guards(lifecycle, customer, other_customer, coach):
    booking = lifecycle.create_booking(customer, "golftraning", DAY, "14:00").booking

    with pytest.raises(AuthorizationError):
        lifecycle.request_cancellation(other_customer, booking.id)

    lifecycle.request_cancellation(customer, booking.id)
    with pytest.raises(ValidationError):
        lifecycle.request_cancellation(customer, booking.id)

    lifecycle.cancel_booking(coach, booking.id)
    with pytest.raises(ValidationError):
        lifecycle.request_cancellation(customer, booking.id)


# ---------- receipt ----------
def test_receipt_is_best_effort(lifecycle, payments, customer, other_customer):
    booking = _paid(lifecycle, payments, customer, intent="pi_rcpt")

    _, receipt = lifecycle.get_receipt(customer, booking.id)
    assert receipt.receipt_url.endswith("pi_rcpt")

    payments.receipt_error = ExternalServiceError("Could not fetch receipt")
    found, receipt = lifecycle.get_receipt(customer, booking.id)
    assert found.id == booking.id
    assert receipt is None

    with pytest.raises(AuthorizationError):
        lifecycle.get_receipt(other_customer, booking.id)
