from sqlalchemy import and_, or_

from models.booking import Booking
from models.blocked_slot import BlockedSlot
from models.slot_claim import SlotClaim

# unique keys whose violation means a second holder for one slot
SLOT_CONFLICT_MARKERS = (
    "uq_slot_claim_once",
    "uq_blocked_slot_date_time",
    "slot_claims.date, slot_claims.time",
    "blocked_slots.date, blocked_slots.time",
)


def is_slot_conflict(exc) -> bool:
    # postgres names the constraint, sqlite lists its columns
    text = str(getattr(exc, "orig", exc))
    return any(marker in text for marker in SLOT_CONFLICT_MARKERS)


def occupying_filter():
    return or_(Booking.status == "confirmed", Booking.payment_status == "paid")


class ReservationStore:
    """Bookings, blocked slots and their slot claims on top of a SQLAlchemy session.

    Writes are staged on the session; nothing is committed until `commit()`.
    """

    def __init__(self, session):
        self.session = session

    # ---------- bookings ----------
    def get_booking(self, booking_id):
        if booking_id is None:
            return None
        try:
            booking_id = int(booking_id)
        except (TypeError, ValueError):
            return None
        return self.session.get(Booking, booking_id)

    def get_booking_by_session(self, session_id):
        if not session_id:
            return None
        return self.session.query(Booking).filter_by(stripe_session_id=session_id).first()

    def list_bookings(self, user_id=None, status=None):
        q = self.session.query(Booking)
        if user_id is not None:
            q = q.filter(Booking.user_id == user_id)
        if status:
            q = q.filter(Booking.status == status)
        return q.order_by(Booking.date.asc(), Booking.time.asc(), Booking.id.asc()).all()

    def list_occupying_bookings(self, start=None, end=None):
        q = self.session.query(Booking).filter(occupying_filter())
        if start is not None:
            q = q.filter(Booking.date >= start)
        if end is not None:
            q = q.filter(Booking.date <= end)
        return q.all()

    def find_booking_conflict(self, day, time, exclude_id=None):
        q = self.session.query(Booking).filter(
            Booking.date == day,
            Booking.time == time,
            occupying_filter(),
        )
        if exclude_id is not None:
            q = q.filter(Booking.id != exclude_id)
        return q.first()

    def create_booking(self, **fields):
        booking = Booking(**fields)
        self.session.add(booking)
        self._sync_claim(booking)
        self.session.flush()
        return booking

    def update_booking(self, booking_id, **patch):
        booking = self.get_booking(booking_id)
        if booking is None:
            return None
        for key, value in patch.items():
            setattr(booking, key, value)
        self._sync_claim(booking)
        return booking

    def delete_booking(self, booking_id):
        booking = self.get_booking(booking_id)
        if booking is None:
            return False
        self.session.delete(booking)
        return True

    def delete_stale_pending_bookings(self, older_than, checkout_older_than=None):
        """Hard-delete unpaid bookings nobody is paying for (cutoffs are naive UTC).

        A booking without a checkout goes stale by `created_at`; once a checkout
        session has been opened it goes stale by `payment_started_at` instead.
        """
        if checkout_older_than is None:
            checkout_older_than = older_than
        stale = (
            self.session.query(Booking)
            .filter(
                Booking.status == "pending",
                Booking.payment_status == "pending",
                or_(
                    and_(Booking.payment_started_at.is_(None), Booking.created_at < older_than),
                    Booking.payment_started_at < checkout_older_than,
                ),
            )
            .all()
        )
        for booking in stale:
            self.session.delete(booking)
        return [b.id for b in stale]

    def _sync_claim(self, booking):
        if booking.occupies_slot:
            if booking.claim is None:
                booking.claim = SlotClaim(date=booking.date, time=booking.time)
        elif booking.claim is not None:
            booking.claim = None

    # ---------- blocked slots ----------
    def list_blocked_slots(self, start=None, end=None):
        q = self.session.query(BlockedSlot)
        if start is not None:
            q = q.filter(BlockedSlot.date >= start)
        if end is not None:
            q = q.filter(BlockedSlot.date <= end)
        return q.order_by(BlockedSlot.date.asc(), BlockedSlot.time.asc()).all()

    def get_blocked_slot(self, slot_id):
        try:
            slot_id = int(slot_id)
        except (TypeError, ValueError):
            return None
        return self.session.get(BlockedSlot, slot_id)

    def find_blocked_slot(self, day, time):
        return self.session.query(BlockedSlot).filter_by(date=day, time=time).first()

    def create_blocked_slot(self, day, time, reason=None):
        slot = BlockedSlot(date=day, time=time, reason=reason)
        slot.claim = SlotClaim(date=day, time=time)
        self.session.add(slot)
        self.session.flush()
        return slot

    def delete_blocked_slot(self, slot_id):
        slot = self.get_blocked_slot(slot_id)
        if slot is None:
            return False
        self.session.delete(slot)
        return True

    # ---------- transaction ----------
    def commit(self):
        self.session.commit()

    def rollback(self):
        self.session.rollback()
