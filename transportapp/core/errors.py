"""Domain errors raised by the reservation services.

Routes never build HTTP errors for these by hand; ``transportapp.main``
registers one handler that renders ``status_code`` / ``code`` / message.
"""


class ReservationError(Exception):
    status_code = 400
    code = "RESERVATION_ERROR"

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.message = message or self.code


class ValidationError(ReservationError):
    status_code = 400
    code = "VALIDATION_ERROR"


class NotFound(ReservationError):
    status_code = 404
    code = "NOT_FOUND"


class TripDisabled(ReservationError):
    status_code = 409
    code = "TRIP_DISABLED"


class CapacityExceeded(ReservationError):
    status_code = 409
    code = "CAPACITY_EXCEEDED"

    def __init__(self, requested: int, available: int):
        super().__init__(f"requested {requested} seats, only {available} available")
        self.requested = requested
        self.available = available


class InvalidTransition(ReservationError):
    status_code = 409
    code = "INVALID_TRANSITION"


class AlreadyPaid(ReservationError):
    status_code = 409
    code = "ALREADY_PAID"


class IdentifierCollision(ReservationError):
    status_code = 500
    code = "IDENTIFIER_COLLISION"


class GatewaySignatureInvalid(ReservationError):
    status_code = 400
    code = "INVALID_SIGNATURE"


class GatewayUnavailable(ReservationError):
    status_code = 503
    code = "GATEWAY_UNAVAILABLE"
