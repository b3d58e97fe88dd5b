from services.catalog import TIME_SLOTS, booking_horizon


class AvailabilityCalculator:
    """Answers "which (date, time) pairs are still open" from store contents.

    A slot is taken when a booking on it is confirmed or paid (whatever its
    status), or when the coach has blocked it. Unpaid pending bookings do not
    hold a slot, so several customers may be mid-checkout on the same time;
    the first one to become paid or confirmed wins it.

    The result is a point-in-time snapshot; nothing is locked.
    """

    def __init__(self, store, settings, clock):
        self.store = store
        self.settings = settings
        self.clock = clock

    def today(self):
        return self.clock().astimezone(self.settings.timezone).date()

    def horizon(self):
        return booking_horizon(
            self.today(),
            months=self.settings.horizon_months,
            excluded_weekday=self.settings.excluded_weekday,
        )

    def occupied(self, start=None, end=None):
        taken = set()
        for booking in self.store.list_occupying_bookings(start, end):
            taken.add((booking.date, booking.time))
        for block in self.store.list_blocked_slots(start, end):
            taken.add((block.date, block.time))
        return taken

    def is_occupied(self, day, time, exclude_id=None) -> bool:
        """Conflict predicate shared with BookingLifecycle."""
        if self.store.find_blocked_slot(day, time) is not None:
            return True
        return self.store.find_booking_conflict(day, time, exclude_id=exclude_id) is not None

    def open_slots(self, start=None, end=None, service_type=None):
        # service_type is accepted for API compatibility; occupancy is shared by all services
        days = [
            d for d in self.horizon()
            if (start is None or d >= start) and (end is None or d <= end)
        ]
        if not days:
            return []

        taken = self.occupied(days[0], days[-1])
        out = []
        for day in days:
            times = [t for t in TIME_SLOTS if (day, t) not in taken]
            if times:
                out.append({"date": day.isoformat(), "times": times})
        return out
