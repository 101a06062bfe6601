"""
Error taxonomy for the booking core.

Every error carries a machine-stable ``code`` and the HTTP status it maps to.
Routes do not catch these; the handler registered in ``create_app`` renders
them as ``{"error": message, "code": code}``.
"""


class BookingError(Exception):
    status = 400
    code = "BAD_REQUEST"

    def __init__(self, message: str, code: str = None, status: int = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status is not None:
            self.status = status

    def to_dict(self):
        return {"error": self.message, "code": self.code}


class ValidationError(BookingError):
    status = 400
    code = "VALIDATION_ERROR"


class ConflictError(BookingError):
    status = 409
    code = "CONFLICT"


class NotFoundError(BookingError):
    # Also raised for bookings owned by someone else
    status = 404
    code = "NOT_FOUND"


class StateError(BookingError):
    status = 409
    code = "INVALID_STATE"


class GatewayError(BookingError):
    status = 502
    code = "GATEWAY_ERROR"


class SignatureError(BookingError):
    status = 400
    code = "INVALID_SIGNATURE"
