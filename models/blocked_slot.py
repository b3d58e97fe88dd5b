from datetime import datetime
from models.db import db


class BlockedSlot(db.Model):
    __tablename__ = "blocked_slots"

    id = db.Column(db.Integer, primary_key=True)
    date = db.Column(db.Date, nullable=False, index=True)
    time = db.Column(db.String(5), nullable=False)
    reason = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    claim = db.relationship(
        "SlotClaim",
        back_populates="blocked_slot",
        uselist=False,
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        db.UniqueConstraint("date", "time", name="uq_blocked_slot_date_time"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "date": self.date.isoformat(),
            "time": self.time,
            "reason": self.reason,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
