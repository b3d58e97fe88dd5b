"""Bookable services, the time-of-day grid and the date horizon.

Everything here is pure: callers pass in "today" and the rule settings.
"""
import calendar
from datetime import date, datetime, timedelta

# Literal grid shown in the booking calendar; the spacing is irregular.
TIME_SLOTS = (
    "10:00", "10:30", "10:45", "11:00", "11:30", "11:45",
    "12:00", "12:30", "13:00", "13:30", "14:00", "14:30",
    "15:00", "15:30", "16:00", "16:30", "17:00", "17:30", "18:00",
)

_SLOT_ORDER = {label: i for i, label in enumerate(TIME_SLOTS)}

# Prices in whole SEK. Booking creation, checkout and receipts all read from here.
SERVICE_TYPES = {
    "golftraning": {
        "name": "Golfträning",
        "price": 1079,
        "description": "Personlig golfträning för att förbättra ditt tekniska spel",
    },
    "mental-traning": {
        "name": "Mental träning (Golf & Mind)",
        "price": 1079,
        "description": "Arbeta med din mentala styrka och fokus",
    },
    "gruppträning": {
        "name": "Gruppträning",
        "price": 1079,
        "description": "Träna tillsammans med andra golfspelare",
    },
}


def service_name(service_type: str) -> str:
    service = SERVICE_TYPES.get(service_type)
    return service["name"] if service else service_type


def service_price(service_type: str):
    service = SERVICE_TYPES.get(service_type)
    return service["price"] if service else None


def is_slot_time(label) -> bool:
    return label in _SLOT_ORDER


def parse_date(value) -> date:
    """Parse "YYYY-MM-DD" (a longer ISO timestamp is cut to its date part)."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or len(value) < 10:
        raise ValueError(f"Invalid date: {value!r}")
    return date.fromisoformat(value[:10])


def add_months(day: date, months: int) -> date:
    # clamps to the end of the target month (Nov 30 + 3 months -> Feb 28/29)
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def is_excluded_day(day: date, excluded_weekday: int) -> bool:
    return day.weekday() == excluded_weekday


def booking_horizon(today: date, months: int = 3, excluded_weekday: int = 6):
    """Every bookable day from tomorrow through today + `months`, inclusive."""
    end = add_months(today, months)
    current = today + timedelta(days=1)
    days = []
    while current <= end:
        if not is_excluded_day(current, excluded_weekday):
            days.append(current)
        current += timedelta(days=1)
    return days


def slot_start(day: date, label: str, tz) -> datetime:
    hour, minute = (int(part) for part in label.split(":"))
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=tz)
