# pilates_studio/services/waitlist_service.py
"""
Waitlist service: queueing for full lessons and filling freed seats.

Promotion runs once per freed seat. It is serialized per lesson by the
lesson row lock, and additionally by a Redis mutex when one is
configured, so two cancellations on the same lesson cannot both promote
into what is really a single seat.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from sqlalchemy.orm import Session

from ..core import lesson_lock, timezone_utils
from ..core.exceptions import (
    ConflictException,
    DuplicateWaitlistEntryException,
    ForbiddenException,
    InsufficientTicketBalanceException,
    NotFoundException,
    RepositoryException,
    TrialAlreadyUsedException,
)
from ..models.lesson import Lesson
from ..models.reservation import (
    PaymentMethod,
    Reservation,
    ReservationType,
    initial_payment_status,
)
from ..models.user import User
from ..models.waiting_list import WaitingListEntry
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


class PromotionOutcome(str, Enum):
    PROMOTED = "promoted"
    FULL = "full"
    EMPTY = "empty"
    STARTED = "started"
    LOCK_BUSY = "lock_busy"


@dataclass
class PromotionResult:
    outcome: PromotionOutcome
    reservation: Optional[Reservation] = None
    removed_user_ids: List[str] = field(default_factory=list)

    @property
    def promoted(self) -> bool:
        return self.reservation is not None


@dataclass
class _Removal:
    user: User
    reason: str


class WaitlistService(BaseService):
    def __init__(
        self,
        db: Session,
        notification_service: Optional[NotificationService] = None,
        ticket_account: Optional[TicketAccountService] = None,
        capacity_ledger: Optional[CapacityLedger] = None,
    ):
        super().__init__(db)
        self.lesson_repository = LessonRepository(db)
        self.reservation_repository = ReservationRepository(db)
        self.user_repository = UserRepository(db)
        self.waiting_list_repository = WaitingListRepository(db)
        self.notification_service = notification_service or NotificationService()
        self.ticket_account = ticket_account or TicketAccountService(db)
        self.capacity_ledger = capacity_ledger or CapacityLedger(
            db, self.lesson_repository, self.reservation_repository
        )

    # Queue membership

    @BaseService.measure_operation("join_waitlist")
    def join(self, lesson_id: str, actor: User) -> WaitingListEntry:
        """
        Queue the actor for a lesson.

        Members without any reservation history queue with their trial; they
        may hold only one trial claim at a time. Everyone else must already
        hold a usable ticket for the lesson's group.
        """
        if actor.is_admin:
            raise ForbiddenException("Only members can join a waiting list")

        with self.transaction():
            lesson = self.lesson_repository.get_by_id(lesson_id)
            if lesson is None:
                raise NotFoundException(f"Lesson {lesson_id} not found", details={"lesson_id": lesson_id})
            if self.waiting_list_repository.get_entry(lesson_id=lesson_id, user_id=actor.id):
                raise DuplicateWaitlistEntryException(lesson_id, actor.id)
            if self.reservation_repository.has_active_for_lesson(actor.id, lesson_id):
                raise ConflictException(
                    "You already have a reservation for this lesson",
                    code="ALREADY_RESERVED",
                    details={"lesson_id": lesson_id},
                )

            self.user_repository.get_for_update(actor.id)
            trial_claim = not self.reservation_repository.has_active_history(actor.id)
            if trial_claim:
                if self.reservation_repository.count_active_trials(
                    actor.id
                ) > 0 or self.waiting_list_repository.has_pending_trial_claim(actor.id):
                    raise TrialAlreadyUsedException(actor.id)
            elif not self.ticket_account.has_usable_ticket(actor.id, lesson.ticket_group_id):
                raise InsufficientTicketBalanceException(actor.id, lesson.ticket_group_id)

            try:
                entry = self.waiting_list_repository.create(
                    lesson_id=lesson_id,
                    user_id=actor.id,
                    is_trial_claim=trial_claim,
                    created_at=timezone_utils.utc_now(),
                )
            except RepositoryException as exc:
                if is_integrity_error(exc):
                    raise DuplicateWaitlistEntryException(lesson_id, actor.id) from exc
                raise

        position = self.position_of(entry)
        self.log_operation(
            "join_waitlist", lesson_id=lesson_id, user_id=actor.id, trial_claim=trial_claim
        )
        self.notification_service.waitlist_joined(actor, lesson, position)
        return entry

    @BaseService.measure_operation("leave_waitlist")
    def leave(self, lesson_id: str, actor: User) -> None:
        with self.transaction():
            entry = self.waiting_list_repository.get_entry(lesson_id=lesson_id, user_id=actor.id)
            if entry is None:
                raise NotFoundException(
                    "You are not on the waiting list for this lesson",
                    details={"lesson_id": lesson_id},
                )
            lesson = entry.lesson
            self.waiting_list_repository.delete_entry(entry)

        self.log_operation("leave_waitlist", lesson_id=lesson_id, user_id=actor.id)
        self.notification_service.waitlist_left(actor, lesson)

    def position_of(self, entry: WaitingListEntry) -> int:
        """1-based queue position."""
        queue = self.waiting_list_repository.list_for_lesson(entry.lesson_id)
        for index, queued in enumerate(queue, start=1):
            if queued.id == entry.id:
                return index
        return len(queue)

    def list_for_lesson(self, lesson_id: str, actor: User) -> List[WaitingListEntry]:
        ensure_admin(actor)
        return self.waiting_list_repository.list_for_lesson(lesson_id)

    def list_for_member(self, actor: User) -> List[WaitingListEntry]:
        return self.waiting_list_repository.list_for_user(actor.id)

    # Promotion

    @BaseService.measure_operation("promote_next")
    def promote_next(self, lesson_id: str) -> PromotionResult:
        """
        Give one free seat to the longest-waiting member who can take it.

        Entries whose member can no longer pay (no usable ticket left) are
        removed and the next entry is tried within the same transaction.
        """
        with lesson_lock.lesson_lock(lesson_id) as acquired:
            if not acquired:
                self.logger.warning(
                    "Promotion skipped, lesson mutex busy", extra={"lesson_id": lesson_id}
                )
                prometheus_metrics.record_promotion(PromotionOutcome.LOCK_BUSY.value)
                return PromotionResult(outcome=PromotionOutcome.LOCK_BUSY)

            removals: List[_Removal] = []
            with self.transaction():
                lesson = self.lesson_repository.get_for_update(lesson_id)
                if lesson is None:
                    raise NotFoundException(
                        f"Lesson {lesson_id} not found", details={"lesson_id": lesson_id}
                    )
                result = self._promote_locked(lesson, removals)

        prometheus_metrics.record_promotion(result.outcome.value)
        for removal in removals:
            self.notification_service.waitlist_removed(removal.user, lesson, removal.reason)
        if result.reservation is not None:
            self.log_operation(
                "promote_next",
                lesson_id=lesson_id,
                reservation_id=result.reservation.id,
                user_id=result.reservation.user_id,
            )
            self.notification_service.waitlist_promoted(result.reservation, lesson)
        return result

    def _promote_locked(self, lesson: Lesson, removals: List[_Removal]) -> PromotionResult:
        now = timezone_utils.utc_now()
        if lesson.starts_at_utc <= now:
            return PromotionResult(outcome=PromotionOutcome.STARTED)
        if self.capacity_ledger.available_for(lesson) <= 0:
            return PromotionResult(outcome=PromotionOutcome.FULL)

        for entry in self.waiting_list_repository.list_for_lesson(lesson.id):
            user = entry.user
            if self.reservation_repository.has_active_for_lesson(user.id, lesson.id):
                self.waiting_list_repository.delete_entry(entry)
                continue

            reservation = self._reserve_for_entry(entry, user, lesson)
            if reservation is None:
                removals.append(_Removal(user=user, reason="no_usable_ticket"))
                self.logger.info(
                    "Removed waiting member without a usable ticket",
                    extra={"lesson_id": lesson.id, "user_id": user.id},
                )
                self.waiting_list_repository.delete_entry(entry)
                continue

            self.waiting_list_repository.delete_entry(entry)
            return PromotionResult(
                outcome=PromotionOutcome.PROMOTED,
                reservation=reservation,
                removed_user_ids=[r.user.id for r in removals],
            )

        return PromotionResult(
            outcome=PromotionOutcome.EMPTY,
            removed_user_ids=[r.user.id for r in removals],
        )

    def _reserve_for_entry(
        self, entry: WaitingListEntry, user: User, lesson: Lesson
    ) -> Optional[Reservation]:
        """Book the seat for a waiting member, or None if they cannot pay for it."""
        if entry.is_trial_claim:
            self.user_repository.get_for_update(user.id)
        trial_still_open = (
            entry.is_trial_claim
            and not self.reservation_repository.has_active_history(user.id)
        )
        if trial_still_open:
            reservation_type = ReservationType.TRIAL
            payment_method = PaymentMethod.PAY_AT_STUDIO
        else:
            try:
                self.ticket_account.consume_for_lesson(user.id, lesson.ticket_group_id)
            except InsufficientTicketBalanceException:
                return None
            reservation_type = ReservationType.TICKET
            payment_method = PaymentMethod.TICKET

        return self.reservation_repository.create(
            lesson_id=lesson.id,
            user_id=user.id,
            customer_name=user.name,
            customer_email=user.email,
            customer_phone=user.phone,
            reservation_type=reservation_type.value,
            payment_method=payment_method.value,
            payment_status=initial_payment_status(payment_method).value,
        )
