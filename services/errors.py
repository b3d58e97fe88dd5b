class BookingError(Exception):
    """Base for errors a booking transition reports back to its caller."""

    status_code = 400
    code = "booking_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self):
        return {"error": self.message, "code": self.code}


class ValidationError(BookingError):
    status_code = 400
    code = "validation_error"


class ConflictError(BookingError):
    status_code = 409
    code = "conflict"


class NotFoundError(BookingError):
    status_code = 404
    code = "not_found"


class AuthorizationError(BookingError):
    status_code = 403
    code = "forbidden"


class WebhookSignatureError(AuthorizationError):
    status_code = 400
    code = "invalid_signature"


class ExternalServiceError(BookingError):
    status_code = 502
    code = "external_service_error"


class StoreError(BookingError):
    status_code = 500
    code = "store_error"
