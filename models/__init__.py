from .db import db
from .user import User
from .audit_log import AuditLog
from .session import Session
from .booking import Booking
from .blocked_slot import BlockedSlot
from .slot_claim import SlotClaim
