import hmac
import secrets
from flask import request, jsonify, current_app, g

CSRF_HEADER = "X-CSRF-Token"
SAFE_METHODS = frozenset(("GET", "HEAD", "OPTIONS"))

# Auth bootstrap endpoints run before a token exists; Stripe signs its own calls.
CSRF_EXEMPT_PATHS = frozenset((
    "/auth/login",
    "/auth/register",
    "/health",
    "/webhooks/stripe",
))


def _cookie_name():
    return current_app.config.get("CSRF_COOKIE_NAME", "csrf_token")


def issue_csrf_token(resp):
    resp.set_cookie(
        _cookie_name(),
        secrets.token_urlsafe(32),
        httponly=False,  # read by the frontend and echoed back in the header
        secure=current_app.config.get("SESSION_COOKIE_SECURE", False),
        samesite=current_app.config.get("SESSION_COOKIE_SAMESITE", "Lax"),
        path="/",
    )
    return resp


def clear_csrf_token(resp):
    resp.delete_cookie(_cookie_name(), path="/")
    return resp


def csrf_protect():
    """before_request hook: double-submit check for cookie-authenticated writes."""
    if request.method in SAFE_METHODS or request.path in CSRF_EXEMPT_PATHS:
        return None
    if getattr(g, "user", None) is None:
        return None

    cookie_token = request.cookies.get(_cookie_name())
    header_token = request.headers.get(CSRF_HEADER)
    if not cookie_token or not header_token or not hmac.compare_digest(cookie_token, header_token):
        return jsonify(error="CSRF validation failed", code="csrf_failed"), 403
    return None
