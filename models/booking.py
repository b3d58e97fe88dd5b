from datetime import datetime
from models.db import db

BOOKING_STATUSES = ("pending", "confirmed", "cancelled")
PAYMENT_STATUSES = ("pending", "paid", "failed")


class Booking(db.Model):
    __tablename__ = "bookings"

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    service_type = db.Column(db.String(40), nullable=False)
    # calendar day in the booking timezone, no time-of-day component
    date = db.Column(db.Date, nullable=False, index=True)
    time = db.Column(db.String(5), nullable=False)  # slot label, e.g. "14:00"
    notes = db.Column(db.Text, nullable=True)

    status = db.Column(db.String(20), nullable=False, default="pending")
    # status values: pending, confirmed, cancelled

    payment_status = db.Column(db.String(20), nullable=True)
    # payment_status values: NULL (no online payment), pending, paid, failed
    payment_method = db.Column(db.String(20), nullable=True)
    amount = db.Column(db.Integer, nullable=True)  # whole SEK

    stripe_session_id = db.Column(db.String(255), nullable=True, unique=True, index=True)
    stripe_payment_intent_id = db.Column(db.String(255), nullable=True)
    payment_started_at = db.Column(db.DateTime, nullable=True)  # last checkout session opened

    cancellation_request = db.Column(db.String(20), nullable=True)  # NULL or "pending"
    cancellation_requested_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

    user = db.relationship("User", back_populates="bookings")
    claim = db.relationship(
        "SlotClaim",
        back_populates="booking",
        uselist=False,
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        db.Index("ix_bookings_date_time", "date", "time"),
        db.CheckConstraint(
            "status IN ('pending', 'confirmed', 'cancelled')",
            name="ck_bookings_status",
        ),
        db.CheckConstraint(
            "payment_status IS NULL OR payment_status IN ('pending', 'paid', 'failed')",
            name="ck_bookings_payment_status",
        ),
    )

    @property
    def occupies_slot(self) -> bool:
        # A paid booking keeps holding its slot even after it is cancelled,
        # until the coach deletes it.
        return self.status == "confirmed" or self.payment_status == "paid"

    def to_dict(self, include_user=False):
        out = {
            "id": self.id,
            "user_id": self.user_id,
            "service_type": self.service_type,
            "date": self.date.isoformat(),
            "time": self.time,
            "notes": self.notes,
            "status": self.status,
            "payment_status": self.payment_status,
            "payment_method": self.payment_method,
            "amount": self.amount,
            "cancellation_request": self.cancellation_request,
            "cancellation_requested_at": (
                self.cancellation_requested_at.isoformat() if self.cancellation_requested_at else None
            ),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_user and self.user is not None:
            out["user"] = {"name": self.user.name, "email": self.user.email}
        return out
