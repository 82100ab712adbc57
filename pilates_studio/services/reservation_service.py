# pilates_studio/services/reservation_service.py
"""
Reservation service: the lifecycle of a single booking.

Creation runs entirely under the lesson's row lock so the seat count, the
trial rule, the ticket decrement and the insert commit together or not at
all. Cancellation flips the row with a conditional update, returns the
ticket when the member cancelled in time, and only after commit hands the
freed seat to the waitlist and notifies the member.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol

from sqlalchemy.orm import Session

from ..core import timezone_utils
from ..core.config import settings
from ..core.exceptions import (
    AlreadyCancelledException,
    BookingWindowClosedException,
    ConflictException,
    ConsentRequiredException,
    DomainException,
    ForbiddenException,
    LessonFullException,
    NotFoundException,
    RepositoryException,
    TooLateToCancelException,
    TrialAlreadyUsedException,
    ValidationException,
)
from ..core.enums import RoleName
from ..models.lesson import Lesson
from ..models.reservation import (
    PaymentMethod,
    Reservation,
    ReservationType,
    initial_payment_status,
)
from ..models.user import User
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.base_repository import is_integrity_error
from ..repositories.lesson_repository import LessonRepository
from ..repositories.reservation_repository import ReservationRepository
from ..repositories.user_repository import UserRepository
from ..repositories.waiting_list_repository import WaitingListRepository
from .base import BaseService, ensure_admin
from .capacity_ledger import CapacityLedger
from .notification_service import NotificationService
from .ticket_account_service import TicketAccountService
from .waitlist_service import PromotionResult, WaitlistService


class WaitlistPromoter(Protocol):
    def promote_next(self, lesson_id: str) -> PromotionResult:
        ...


@dataclass
class GuestInfo:
    """Contact details of a booker without an account."""

    name: str
    email: str
    phone: Optional[str] = None


@dataclass
class CancellationOutcome:
    """
    Result of a cancellation request.

    ``requires_confirmation`` is the soft late-cancellation answer: nothing
    was changed and the caller must retry with ``force_cancel=True``.
    """

    reservation: Reservation
    cancelled: bool
    requires_confirmation: bool
    is_late_cancellation: bool
    ticket_returned: bool
    deadline: datetime
    message: str
    promoted_reservation_id: Optional[str] = None


LATE_CANCELLATION_MESSAGE = (
    "The free cancellation deadline has passed. If you cancel now your ticket "
    "will not be returned."
)


class ReservationService(BaseService):
    def __init__(
        self,
        db: Session,
        notification_service: Optional[NotificationService] = None,
        ticket_account: Optional[TicketAccountService] = None,
        promoter: Optional[WaitlistPromoter] = None,
    ):
        super().__init__(db)
        self.lesson_repository = LessonRepository(db)
        self.reservation_repository = ReservationRepository(db)
        self.user_repository = UserRepository(db)
        self.waiting_list_repository = WaitingListRepository(db)
        self.notification_service = notification_service or NotificationService()
        self.ticket_account = ticket_account or TicketAccountService(db)
        self.capacity_ledger = CapacityLedger(
            db, self.lesson_repository, self.reservation_repository
        )
        self.promoter: WaitlistPromoter = promoter or WaitlistService(
            db,
            notification_service=self.notification_service,
            ticket_account=self.ticket_account,
            capacity_ledger=self.capacity_ledger,
        )

    # Creation

    @BaseService.measure_operation("create_reservation")
    def create_reservation(
        self,
        *,
        lesson_id: str,
        reservation_type: ReservationType,
        payment_method: PaymentMethod,
        actor: Optional[User] = None,
        guest: Optional[GuestInfo] = None,
        agree_to_consent: bool = False,
    ) -> Reservation:
        """
        Book a seat for a member (``actor``) or a guest.

        Checks run in a fixed order and the first failure wins: lesson
        exists, seat free, booking window open, trial unused, ticket
        available (and consumed), consent given.
        """
        reservation_type = ReservationType(reservation_type)
        payment_method = PaymentMethod(payment_method)
        self._validate_request(reservation_type, payment_method, actor, guest)

        try:
            with self.transaction():
                reservation, lesson = self._reserve(
                    lesson_id=lesson_id,
                    reservation_type=reservation_type,
                    payment_method=payment_method,
                    user=actor,
                    guest=guest,
                    agree_to_consent=agree_to_consent,
                )
        except DomainException as exc:
            prometheus_metrics.record_reservation(reservation_type.value, exc.code)
            raise

        self._after_reservation(reservation, lesson)
        return reservation

    @BaseService.measure_operation("register_and_reserve")
    def register_and_reserve(
        self,
        *,
        guest: GuestInfo,
        lesson_id: str,
        reservation_type: ReservationType,
        payment_method: PaymentMethod,
        agree_to_consent: bool = False,
    ) -> Reservation:
        """
        Create a member account and its first reservation in one transaction.

        If the booking is refused the account is not created either.
        """
        reservation_type = ReservationType(reservation_type)
        payment_method = PaymentMethod(payment_method)
        self._validate_request(reservation_type, payment_method, None, guest)
        email = guest.email.strip().lower()

        try:
            with self.transaction():
                if self.user_repository.get_by_email(email) is not None:
                    raise ConflictException(
                        "An account with this email already exists",
                        code="EMAIL_ALREADY_REGISTERED",
                        details={"email": email},
                    )
                try:
                    user = self.user_repository.create(
                        email=email,
                        name=guest.name.strip(),
                        phone=guest.phone,
                        role=RoleName.MEMBER.value,
                    )
                except RepositoryException as exc:
                    if is_integrity_error(exc):
                        raise ConflictException(
                            "An account with this email already exists",
                            code="EMAIL_ALREADY_REGISTERED",
                            details={"email": email},
                        ) from exc
                    raise
                reservation, lesson = self._reserve(
                    lesson_id=lesson_id,
                    reservation_type=reservation_type,
                    payment_method=payment_method,
                    user=user,
                    guest=None,
                    agree_to_consent=agree_to_consent,
                )
        except DomainException as exc:
            prometheus_metrics.record_reservation(reservation_type.value, exc.code)
            raise

        self._after_reservation(reservation, lesson)
        return reservation

    def _validate_request(
        self,
        reservation_type: ReservationType,
        payment_method: PaymentMethod,
        actor: Optional[User],
        guest: Optional[GuestInfo],
    ) -> None:
        if (reservation_type == ReservationType.TICKET) != (payment_method == PaymentMethod.TICKET):
            raise ValidationException(
                "Ticket reservations must be paid with a ticket, and only they can be",
                code="PAYMENT_METHOD_MISMATCH",
                details={
                    "reservation_type": reservation_type.value,
                    "payment_method": payment_method.value,
                },
            )
        if actor is None and guest is None:
            raise ValidationException("Either a member or guest details are required")
        if actor is None and reservation_type == ReservationType.TICKET:
            raise ValidationException(
                "Guests cannot pay with a ticket", code="GUEST_TICKET_NOT_ALLOWED"
            )

    def _reserve(
        self,
        *,
        lesson_id: str,
        reservation_type: ReservationType,
        payment_method: PaymentMethod,
        user: Optional[User],
        guest: Optional[GuestInfo],
        agree_to_consent: bool,
    ) -> tuple[Reservation, Lesson]:
        """Admission checks and insert. Caller owns the transaction."""
        now = timezone_utils.utc_now()

        lesson = self.lesson_repository.get_for_update(lesson_id)
        if lesson is None:
            raise NotFoundException(f"Lesson {lesson_id} not found", details={"lesson_id": lesson_id})

        if self.capacity_ledger.available_for(lesson) <= 0:
            raise LessonFullException(lesson.id)

        closes_at = timezone_utils.booking_closes_at(lesson.start_time)
        if now > closes_at:
            raise BookingWindowClosedException(lesson.id, closes_at)

        if user is not None and self.reservation_repository.has_active_for_lesson(user.id, lesson.id):
            raise ConflictException(
                "You already have a reservation for this lesson",
                code="ALREADY_RESERVED",
                details={"lesson_id": lesson.id},
            )

        if reservation_type == ReservationType.TRIAL and user is not None:
            self._ensure_trial_available(user, lesson)

        if reservation_type == ReservationType.TICKET:
            self.ticket_account.consume_for_lesson(user.id, lesson.ticket_group_id)

        already_consented = user is not None and user.has_consented
        if settings.consent_required and not already_consented and not agree_to_consent:
            raise ConsentRequiredException()
        if user is not None and agree_to_consent:
            user.record_consent(now)

        contact_name = user.name if user is not None else guest.name
        contact_email = user.email if user is not None else guest.email
        contact_phone = user.phone if user is not None else guest.phone
        reservation = self.reservation_repository.create(
            lesson_id=lesson.id,
            user_id=user.id if user is not None else None,
            customer_name=contact_name,
            customer_email=contact_email,
            customer_phone=contact_phone,
            reservation_type=reservation_type.value,
            payment_method=payment_method.value,
            payment_status=initial_payment_status(payment_method).value,
            created_at=now,
        )

        if user is not None:
            entry = self.waiting_list_repository.get_entry(lesson_id=lesson.id, user_id=user.id)
            if entry is not None:
                self.waiting_list_repository.delete_entry(entry)

        return reservation, lesson

    def _ensure_trial_available(self, user: User, lesson: Lesson) -> None:
        """One trial per account: a held trial seat or a queued trial claim elsewhere blocks it."""
        self.user_repository.get_for_update(user.id)
        if self.reservation_repository.count_active_trials(user.id) > 0:
            raise TrialAlreadyUsedException(user.id)
        if self.waiting_list_repository.has_pending_trial_claim(user.id, exclude_lesson_id=lesson.id):
            raise TrialAlreadyUsedException(user.id)

    def _after_reservation(self, reservation: Reservation, lesson: Lesson) -> None:
        prometheus_metrics.record_reservation(reservation.reservation_type, "created")
        self.log_operation(
            "create_reservation",
            reservation_id=reservation.id,
            lesson_id=lesson.id,
            user_id=reservation.user_id,
            reservation_type=reservation.reservation_type,
        )
        self.notification_service.reservation_confirmed(reservation, lesson)

    # Cancellation

    @BaseService.measure_operation("cancel_reservation")
    def cancel_reservation(
        self, reservation_id: str, *, actor: User, force_cancel: bool = False
    ) -> CancellationOutcome:
        """
        Cancel a reservation on behalf of ``actor``.

        Admins go through :meth:`admin_cancel_reservation`. For members the
        ticket comes back only up to the deadline (21:00 studio time the day
        before the lesson). After it, a ticket reservation is cancelled only
        with ``force_cancel``; without it the outcome asks for confirmation
        and nothing changes.
        """
        if actor.is_admin:
            return self.admin_cancel_reservation(reservation_id, actor=actor)

        now = timezone_utils.utc_now()
        with self.transaction():
            reservation = self._load_for_cancellation(reservation_id)
            if reservation.user_id != actor.id:
                raise ForbiddenException("You can only cancel your own reservations")
            lesson = reservation.lesson
            if lesson.starts_at_utc <= now:
                raise TooLateToCancelException(reservation.id)

            deadline = timezone_utils.cancellation_deadline(lesson.start_time)
            is_late = now > deadline
            if reservation.is_ticket_funded and is_late and not force_cancel:
                prometheus_metrics.record_cancellation("confirmation_required")
                return CancellationOutcome(
                    reservation=reservation,
                    cancelled=False,
                    requires_confirmation=True,
                    is_late_cancellation=True,
                    ticket_returned=False,
                    deadline=deadline,
                    message=LATE_CANCELLATION_MESSAGE,
                )

            self._mark_cancelled(reservation, actor, now)
            ticket_returned = False
            if reservation.is_ticket_funded and not is_late:
                ticket_returned = self._refund_ticket(reservation, lesson)

        prometheus_metrics.record_cancellation("late" if is_late else "free")
        if is_late and reservation.is_ticket_funded:
            message = "Reservation cancelled. The ticket was not returned."
        elif ticket_returned:
            message = "Reservation cancelled. Your ticket has been returned."
        else:
            message = "Reservation cancelled."
        outcome = CancellationOutcome(
            reservation=reservation,
            cancelled=True,
            requires_confirmation=False,
            is_late_cancellation=is_late,
            ticket_returned=ticket_returned,
            deadline=deadline,
            message=message,
        )
        self._post_cancellation_actions(outcome, lesson, actor)
        return outcome

    @BaseService.measure_operation("admin_cancel_reservation")
    def admin_cancel_reservation(self, reservation_id: str, *, actor: User) -> CancellationOutcome:
        """
        Admin override: any live reservation, any time, ticket always returned.
        """
        ensure_admin(actor)
        now = timezone_utils.utc_now()
        with self.transaction():
            reservation = self._load_for_cancellation(reservation_id)
            lesson = reservation.lesson
            deadline = timezone_utils.cancellation_deadline(lesson.start_time)
            self._mark_cancelled(reservation, actor, now)
            ticket_returned = False
            if reservation.is_ticket_funded and reservation.user_id is not None:
                ticket_returned = self._refund_ticket(reservation, lesson)

        prometheus_metrics.record_cancellation("admin")
        outcome = CancellationOutcome(
            reservation=reservation,
            cancelled=True,
            requires_confirmation=False,
            is_late_cancellation=now > deadline,
            ticket_returned=ticket_returned,
            deadline=deadline,
            message=(
                "Reservation cancelled by the studio. The ticket has been returned."
                if ticket_returned
                else "Reservation cancelled by the studio."
            ),
        )
        self._post_cancellation_actions(outcome, lesson, actor)
        return outcome

    def _load_for_cancellation(self, reservation_id: str) -> Reservation:
        reservation = self.reservation_repository.get_with_lesson(reservation_id)
        if reservation is None:
            raise NotFoundException(
                f"Reservation {reservation_id} not found",
                details={"reservation_id": reservation_id},
            )
        if reservation.is_terminal:
            raise AlreadyCancelledException(reservation.id, reservation.payment_status)
        return reservation

    def _mark_cancelled(self, reservation: Reservation, actor: User, now: datetime) -> None:
        if not self.reservation_repository.mark_cancelled(
            reservation_id=reservation.id, cancelled_by_id=actor.id, when=now
        ):
            # Another request cancelled it between our read and this write
            raise AlreadyCancelledException(reservation.id, reservation.payment_status)

    def _refund_ticket(self, reservation: Reservation, lesson: Lesson) -> bool:
        return self.ticket_account.refund(reservation.user_id, lesson.ticket_group_id) is not None

    def _post_cancellation_actions(
        self, outcome: CancellationOutcome, lesson: Lesson, actor: User
    ) -> None:
        """Fill the freed seat and notify; failures here never undo the cancellation."""
        reservation = outcome.reservation
        self.log_operation(
            "cancel_reservation",
            reservation_id=reservation.id,
            lesson_id=lesson.id,
            cancelled_by=actor.id,
            late=outcome.is_late_cancellation,
            ticket_returned=outcome.ticket_returned,
        )
        try:
            result = self.promoter.promote_next(lesson.id)
            if result.reservation is not None:
                outcome.promoted_reservation_id = result.reservation.id
        except Exception as exc:
            self.logger.error(
                f"Waitlist promotion failed after cancelling {reservation.id}: {exc}",
                exc_info=True,
            )

        self.notification_service.reservation_cancelled(
            reservation,
            lesson,
            ticket_returned=outcome.ticket_returned,
            late=outcome.is_late_cancellation,
        )

    # Admin correction

    @BaseService.measure_operation("delete_reservation")
    def delete_reservation(self, reservation_id: str, *, actor: User) -> None:
        """Remove a reservation row outright. No ticket moves."""
        ensure_admin(actor)
        with self.transaction():
            reservation = self.reservation_repository.get_by_id(reservation_id)
            if reservation is None:
                raise NotFoundException(
                    f"Reservation {reservation_id} not found",
                    details={"reservation_id": reservation_id},
                )
            held_seat = reservation.holds_seat
            lesson_id = reservation.lesson_id
            self.reservation_repository.delete(reservation_id)

        self.log_operation("delete_reservation", reservation_id=reservation_id, actor_id=actor.id)
        if held_seat:
            try:
                self.promoter.promote_next(lesson_id)
            except Exception as exc:
                self.logger.error(
                    f"Waitlist promotion failed after deleting {reservation_id}: {exc}",
                    exc_info=True,
                )

    # Reads

    def get_reservation(self, reservation_id: str, *, actor: User) -> Reservation:
        reservation = self.reservation_repository.get_with_lesson(reservation_id)
        if reservation is None:
            raise NotFoundException(
                f"Reservation {reservation_id} not found",
                details={"reservation_id": reservation_id},
            )
        if reservation.user_id != actor.id and not actor.is_admin:
            raise ForbiddenException("You can only view your own reservations")
        return reservation

    def list_member_reservations(self, actor: User) -> List[Reservation]:
        return self.reservation_repository.list_for_user(actor.id)

    def list_reservations(
        self,
        *,
        actor: User,
        lesson_id: Optional[str] = None,
        include_cancelled: bool = False,
        skip: int = 0,
        limit: int = 100,
    ) -> List[Reservation]:
        ensure_admin(actor)
        return self.reservation_repository.list_for_lesson(
            lesson_id, include_cancelled=include_cancelled, skip=skip, limit=limit
        )

    def get_trial_status(self, actor: User) -> Dict[str, Any]:
        has_used_trial = self.reservation_repository.count_active_trials(actor.id) > 0
        has_pending_claim = self.waiting_list_repository.has_pending_trial_claim(actor.id)
        return {
            "has_used_trial": has_used_trial,
            "has_pending_trial_claim": has_pending_claim,
            "can_book_trial": not (has_used_trial or has_pending_claim),
        }

    def get_consent_status(self, actor: User) -> Dict[str, Any]:
        return {
            "consent_required": settings.consent_required,
            "has_consented": actor.has_consented,
            "consent_agreed_at": actor.consent_agreed_at,
        }
