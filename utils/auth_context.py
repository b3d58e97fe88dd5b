from functools import wraps
from flask import current_app, g, jsonify

from models import db
from models.user import User
from security.session import get_session_from_request


def load_current_user():
    """Resolve the cookie session into g.user, g.session and g.is_coach."""
    g.user = None
    g.session = None
    g.is_coach = False

    sess = get_session_from_request()
    if sess is None:
        return

    user = db.session.get(User, sess.user_id)
    if user is None:
        return
    g.session = sess
    g.user = user
    g.is_coach = current_app.extensions["coach_policy"].is_coach(user)


def login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if getattr(g, "user", None) is None:
            return jsonify(error="Authentication required", code="unauthenticated"), 401
        return fn(*args, **kwargs)
    return wrapper
