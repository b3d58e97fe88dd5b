from flask import current_app

from models import db
from services.effects import EffectDispatcher
from services.lifecycle import BookingLifecycle
from services.settings import BookingSettings
from services.store import ReservationStore


def get_lifecycle() -> BookingLifecycle:
    """Build a lifecycle bound to the current app's collaborators and db session."""
    ext = current_app.extensions
    return BookingLifecycle(
        store=ReservationStore(db.session),
        policy=ext["coach_policy"],
        payments=ext["payment_bridge"],
        clock=ext["booking_clock"],
        settings=BookingSettings.from_config(current_app.config),
    )


def get_dispatcher() -> EffectDispatcher:
    ext = current_app.extensions
    return EffectDispatcher(
        ext["notifier"],
        payments=ext["payment_bridge"],
        max_attempts=current_app.config.get("NOTIFY_MAX_ATTEMPTS", 2),
    )
