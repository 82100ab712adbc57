# pilates_studio/core/exceptions.py
"""
Domain-specific exceptions for the studio booking core.

These exceptions carry a stable machine ``code`` and a human message so the
API layer can render them without knowing which service raised them.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import HTTPException, status

HTTP_422_UNPROCESSABLE: int = getattr(status, "HTTP_422_UNPROCESSABLE_CONTENT", 422)


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message,
                "code": self.code,
                "details": self.details,
            },
        )


class ValidationException(DomainException):
    """Raised when business validation fails."""

    status_code = status.HTTP_400_BAD_REQUEST


class ForbiddenException(DomainException):
    """Raised when the actor lacks permission for an action."""

    status_code = status.HTTP_403_FORBIDDEN

    def __init__(
        self,
        message: str = "You do not have permission to perform this action",
        code: Optional[str] = "FORBIDDEN",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, code=code, details=details)


class NotFoundException(DomainException):
    """Raised when a requested resource is not found."""

    status_code = status.HTTP_404_NOT_FOUND

    def __init__(
        self,
        message: str,
        code: Optional[str] = "NOT_FOUND",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, code=code, details=details)


class ConflictException(DomainException):
    """Raised when there's a conflict with existing data."""

    status_code = status.HTTP_409_CONFLICT


class BusinessRuleException(DomainException):
    """Raised when a business rule is violated."""

    status_code = HTTP_422_UNPROCESSABLE


class ServiceException(DomainException):
    """Raised when a service operation fails."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class RepositoryException(Exception):
    """Raised by repositories when the storage layer fails."""


# Booking rules


class LessonFullException(ConflictException):
    """No seat left on the lesson at admission time."""

    def __init__(self, lesson_id: str) -> None:
        super().__init__(
            "This lesson is full",
            code="LESSON_FULL",
            details={"lesson_id": lesson_id},
        )


class BookingWindowClosedException(BusinessRuleException):
    """Booking attempted inside the pre-lesson cutoff."""

    def __init__(self, lesson_id: str, closed_at: datetime) -> None:
        super().__init__(
            "Bookings for this lesson are closed",
            code="BOOKING_WINDOW_CLOSED",
            details={"lesson_id": lesson_id, "closed_at": closed_at.isoformat()},
        )


class TrialAlreadyUsedException(BusinessRuleException):
    """The once-per-account trial has already been claimed."""

    def __init__(self, user_id: str) -> None:
        super().__init__(
            "Your trial lesson has already been used",
            code="TRIAL_ALREADY_USED",
            details={"user_id": user_id},
        )


class InsufficientTicketBalanceException(BusinessRuleException):
    """No usable ticket for the lesson's category."""

    def __init__(self, user_id: Optional[str], ticket_group_id: Optional[str]) -> None:
        super().__init__(
            "You have no usable ticket for this lesson",
            code="INSUFFICIENT_TICKET_BALANCE",
            details={"user_id": user_id, "ticket_group_id": ticket_group_id},
        )


class ConsentRequiredException(BusinessRuleException):
    """Consent must be given before booking."""

    def __init__(self) -> None:
        super().__init__(
            "Please agree to the studio consent form before booking",
            code="CONSENT_REQUIRED",
        )


# Cancellation rules


class AlreadyCancelledException(ConflictException):
    """Reservation is already in a terminal state."""

    def __init__(self, reservation_id: str, payment_status: str) -> None:
        super().__init__(
            "This reservation has already been cancelled",
            code="ALREADY_CANCELLED",
            details={"reservation_id": reservation_id, "payment_status": payment_status},
        )


class TooLateToCancelException(BusinessRuleException):
    """The lesson has already started or ended."""

    def __init__(self, reservation_id: str) -> None:
        super().__init__(
            "This lesson has already started and can no longer be cancelled",
            code="TOO_LATE_TO_CANCEL",
            details={"reservation_id": reservation_id},
        )


# Waitlist rules


class DuplicateWaitlistEntryException(ConflictException):
    """User already waits for this lesson."""

    def __init__(self, lesson_id: str, user_id: str) -> None:
        super().__init__(
            "You are already on the waiting list for this lesson",
            code="DUPLICATE_WAITLIST_ENTRY",
            details={"lesson_id": lesson_id, "user_id": user_id},
        )


# Lesson administration


class LessonHasActiveBookingsException(ConflictException):
    """Lesson cannot be deleted while seats or waitlist entries are held."""

    def __init__(self, lesson_id: str, reservations: int, waiting: int) -> None:
        super().__init__(
            "This lesson still has active reservations or waiting members",
            code="LESSON_HAS_ACTIVE_BOOKINGS",
            details={
                "lesson_id": lesson_id,
                "active_reservations": reservations,
                "waiting_list_entries": waiting,
            },
        )


class CapacityBelowActiveReservationsException(ConflictException):
    """Capacity edit would leave the lesson oversold."""

    def __init__(self, lesson_id: str, requested: int, active: int) -> None:
        super().__init__(
            f"Capacity cannot be lower than the {active} active reservations",
            code="CAPACITY_BELOW_ACTIVE_RESERVATIONS",
            details={
                "lesson_id": lesson_id,
                "requested_capacity": requested,
                "active_reservations": active,
            },
        )
