from routes.health import health_bp
from routes.auth import auth_bp
from routes.booking import booking_bp
from routes.payments import payments_bp
from routes.stripe_webhook import webhook_bp
from routes.admin import admin_bp

__all__ = ["health_bp", "auth_bp", "booking_bp", "payments_bp", "webhook_bp", "admin_bp"]
