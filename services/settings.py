from dataclasses import dataclass
from datetime import datetime, tzinfo
from typing import Tuple
from zoneinfo import ZoneInfo


@dataclass(frozen=True)
class BookingSettings:
    timezone: tzinfo
    horizon_months: int = 3
    excluded_weekday: int = 6
    pending_payment_ttl_minutes: int = 30
    checkout_hold_minutes: int = 60
    cancellation_notice_hours: int = 48
    online_payment_methods: Tuple[str, ...] = ("online", "stripe")
    app_base_url: str = "http://localhost:3000"

    @classmethod
    def from_config(cls, config):
        return cls(
            timezone=ZoneInfo(config.get("BOOKING_TIMEZONE", "Europe/Stockholm")),
            horizon_months=int(config.get("BOOKING_HORIZON_MONTHS", 3)),
            excluded_weekday=int(config.get("BOOKING_EXCLUDED_WEEKDAY", 6)),
            pending_payment_ttl_minutes=int(config.get("PENDING_PAYMENT_TTL_MINUTES", 30)),
            checkout_hold_minutes=int(config.get("CHECKOUT_HOLD_MINUTES", 60)),
            cancellation_notice_hours=int(config.get("CANCELLATION_NOTICE_HOURS", 48)),
            online_payment_methods=tuple(config.get("ONLINE_PAYMENT_METHODS", ("online", "stripe"))),
            app_base_url=(config.get("APP_BASE_URL") or "http://localhost:3000").rstrip("/"),
        )


def make_clock(tz: tzinfo):
    """Return a callable giving the current aware time in `tz`."""
    def clock() -> datetime:
        return datetime.now(tz)
    return clock
