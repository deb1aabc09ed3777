"""
This file contains custom, application-specific exceptions.

Every BookingError carries the HTTP status it is rendered with by the
exception handler registered in main.py.
"""
from fastapi import status


class BookingError(Exception):
    """Base class for all booking-engine errors."""
    status_code: int = status.HTTP_400_BAD_REQUEST
    default_message: str = "Booking request failed."

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(BookingError):
    """Raised for a missing required field or an unparseable date/time."""
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Missing required appointment details."


class SlotConflict(BookingError):
    """Raised when the target (date, time) slot is already taken."""
    status_code = status.HTTP_409_CONFLICT
    default_message = "This time slot is no longer available."


class NoSlotsAvailable(BookingError):
    """Raised when a booking request produced zero appointments."""
    status_code = status.HTTP_409_CONFLICT
    default_message = "None of the requested dates are available."


class LimitReached(BookingError):
    """Raised when a self-service cancel/reschedule was already used."""
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "This action can only be used once. Please contact us for further changes."


class OwnershipError(BookingError):
    """Raised when an appointment does not belong to the requesting client.

    Rendered as 404 so the existence of other clients' appointments is not leaked.
    """
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Appointment not found."


class DuplicatePerson(BookingError):
    """Raised on a tutoring re-submission of an identical (name, email, category)."""
    status_code = status.HTTP_409_CONFLICT
    default_message = "This person is already registered under this category."


class PaymentNotCompleted(BookingError):
    """Raised when the external payment confirmation is not in a completed state."""
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Payment has not been completed."


class LedgerDuplicate(Exception):
    """Internal: a ledger entry already exists for the idempotency key."""
    pass
