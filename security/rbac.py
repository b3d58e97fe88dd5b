from functools import wraps
from flask import current_app, g, jsonify

from services.errors import AuthorizationError


def normalize_email(value: str) -> str:
    return (value or "").strip().lower()


class CoachPolicy:
    """Capability check for the single coach account, identified by email."""

    def __init__(self, coach_email: str):
        self.coach_email = normalize_email(coach_email)

    def is_coach(self, user) -> bool:
        if user is None or not self.coach_email:
            return False
        return normalize_email(getattr(user, "email", None)) == self.coach_email

    def require_user(self, user):
        if user is None:
            raise AuthorizationError("Authentication required")

    def require_coach(self, user):
        if not self.is_coach(user):
            raise AuthorizationError("Forbidden")

    def require_owner(self, user, booking):
        if user is None or booking.user_id != user.id:
            raise AuthorizationError("You do not have access to this booking")


def current_policy() -> CoachPolicy:
    return current_app.extensions["coach_policy"]


def coach_required(fn):
    """
    Usage: @coach_required
    """
    @wraps(fn)
    def wrapper(*args, **kwargs):
        user = getattr(g, "user", None)
        if user is None:
            return jsonify(error="Authentication required"), 401
        if not getattr(g, "is_coach", False):
            return jsonify(error="Forbidden", code="forbidden"), 403
        return fn(*args, **kwargs)
    return wrapper
