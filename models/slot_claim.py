from datetime import datetime
from models.db import db


class SlotClaim(db.Model):
    """One row per occupied (date, time).

    A paid/confirmed booking or an admin block holds the slot through its
    claim; the unique key makes a second concurrent claim fail at commit.
    """

    __tablename__ = "slot_claims"

    id = db.Column(db.Integer, primary_key=True)
    date = db.Column(db.Date, nullable=False)
    time = db.Column(db.String(5), nullable=False)

    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=True, unique=True)
    blocked_slot_id = db.Column(db.Integer, db.ForeignKey("blocked_slots.id"), nullable=True, unique=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    booking = db.relationship("Booking", back_populates="claim")
    blocked_slot = db.relationship("BlockedSlot", back_populates="claim")

    __table_args__ = (
        # Hard business-rule: only one holder per slot (prevents double booking)
        db.UniqueConstraint("date", "time", name="uq_slot_claim_once"),
        db.CheckConstraint(
            "(booking_id IS NULL) <> (blocked_slot_id IS NULL)",
            name="ck_slot_claim_single_holder",
        ),
    )
