"""
Domain-specific exception hierarchy for the booking application.
"""


class BookingError(Exception):
    """Base class for all application-level errors."""


class InvalidRequestError(BookingError):
    """Raised when request input is malformed or out of range."""


class StorageError(BookingError):
    """Raised when the backing store cannot be read or written."""


class AvailabilityUnavailableError(BookingError):
    """Raised when slots cannot be computed because the store failed."""


class NotFoundError(BookingError):
    """Raised when a referenced record does not exist."""


class AppointmentConflictError(BookingError):
    """Raised when a pending appointment already starts at the requested instant."""


class ReferentialIntegrityError(BookingError):
    """Raised when a record cannot be removed because others still reference it."""
