"""
Booking engine error taxonomy.

Every error raised by the services derives from ``BookingError`` and knows the
HTTP status and machine-readable code it maps to; ``app.py`` renders them.
"""


class BookingError(Exception):
    status_code = 400
    code = "BOOKING_ERROR"

    def __init__(self, message, code=None, **details):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.details = details

    def to_dict(self):
        body = {"error": self.message, "code": self.code}
        body.update(self.details)
        return body


class ValidationError(BookingError):
    """Malformed request: bad interval, zero duration, midnight-crossing rule..."""
    status_code = 400
    code = "VALIDATION_ERROR"


class NotFoundError(BookingError):
    status_code = 404
    code = "NOT_FOUND"


class ExpiredHoldError(NotFoundError):
    """Operating on a HOLD past its TTL. Clients treat it like a missing booking."""
    code = "HOLD_EXPIRED"


class ConflictError(BookingError):
    """The slot was taken by someone else. Retry after re-fetching availability."""
    status_code = 409
    code = "CONFLICT"

    def __init__(self, message, code=None, **details):
        details.setdefault("retryable", True)
        super().__init__(message, code=code, **details)


class RecurrenceConflictError(ConflictError):
    code = "RECURRENCE_CONFLICT"


class InvalidTransitionError(BookingError):
    status_code = 409
    code = "INVALID_TRANSITION"


class SharesFullError(InvalidTransitionError):
    code = "SHARES_FULL"


class PricingUnavailableError(BookingError):
    """No rate rule and no default rate covers part of the interval."""
    status_code = 422
    code = "PRICING_UNAVAILABLE"


class PaymentProviderError(BookingError):
    """The card provider refused or could not be reached. Nothing was changed."""
    status_code = 502
    code = "PAYMENT_PROVIDER_ERROR"
