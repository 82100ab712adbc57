# pilates_studio/services/lesson_service.py
"""
Lesson administration and the public schedule.

Capacity edits are guarded: a lesson cannot be shrunk below the seats
already taken, and seats added to a lesson are offered to its waitlist.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..core import timezone_utils
from ..core.exceptions import (
    CapacityBelowActiveReservationsException,
    LessonHasActiveBookingsException,
    NotFoundException,
    ValidationException,
)
from ..models.lesson import Lesson
from ..models.user import User
from ..repositories.lesson_repository import LessonRepository
from ..repositories.reservation_repository import ReservationRepository
from ..repositories.ticket_repository import TicketGroupRepository
from ..repositories.waiting_list_repository import WaitingListRepository
from .base import BaseService, ensure_admin
from .capacity_ledger import CapacityLedger
from .waitlist_service import WaitlistService

_EDITABLE_FIELDS = (
    "title",
    "description",
    "instructor_name",
    "location",
    "start_time",
    "end_time",
    "max_capacity",
    "price",
    "ticket_group_id",
)


@dataclass
class LessonAvailability:
    lesson: Lesson
    available_spots: int
    waiting_count: int = 0

    @property
    def is_full(self) -> bool:
        return self.available_spots == 0


class LessonService(BaseService):
    def __init__(self, db: Session, waitlist_service: Optional[WaitlistService] = None):
        super().__init__(db)
        self.lesson_repository = LessonRepository(db)
        self.reservation_repository = ReservationRepository(db)
        self.waiting_list_repository = WaitingListRepository(db)
        self.ticket_group_repository = TicketGroupRepository(db)
        self.capacity_ledger = CapacityLedger(
            db, self.lesson_repository, self.reservation_repository
        )
        self.waitlist_service = waitlist_service or WaitlistService(
            db, capacity_ledger=self.capacity_ledger
        )

    def _validate(self, values: Dict[str, Any]) -> Dict[str, Any]:
        cleaned = dict(values)
        for key in ("start_time", "end_time"):
            if cleaned.get(key) is not None:
                cleaned[key] = timezone_utils.ensure_utc(cleaned[key])
        if cleaned["end_time"] <= cleaned["start_time"]:
            raise ValidationException(
                "Lesson must end after it starts",
                code="INVALID_LESSON_TIME",
                details={
                    "start_time": cleaned["start_time"].isoformat(),
                    "end_time": cleaned["end_time"].isoformat(),
                },
            )
        if cleaned["max_capacity"] is None or cleaned["max_capacity"] <= 0:
            raise ValidationException(
                "Capacity must be a positive number",
                code="INVALID_CAPACITY",
                details={"max_capacity": cleaned["max_capacity"]},
            )
        group_id = cleaned.get("ticket_group_id")
        if group_id is not None and self.ticket_group_repository.get_by_id(group_id) is None:
            raise NotFoundException(
                f"Ticket group {group_id} not found", details={"ticket_group_id": group_id}
            )
        return cleaned

    @BaseService.measure_operation("create_lesson")
    def create_lesson(
        self,
        *,
        actor: User,
        title: str,
        start_time: datetime,
        end_time: datetime,
        max_capacity: int,
        price: int = 0,
        ticket_group_id: Optional[str] = None,
        description: Optional[str] = None,
        instructor_name: Optional[str] = None,
        location: Optional[str] = None,
    ) -> Lesson:
        ensure_admin(actor)
        values = self._validate(
            {
                "title": title,
                "description": description,
                "instructor_name": instructor_name,
                "location": location,
                "start_time": start_time,
                "end_time": end_time,
                "max_capacity": max_capacity,
                "price": price,
                "ticket_group_id": ticket_group_id,
            }
        )
        with self.transaction():
            lesson = self.lesson_repository.create(**values)
        self.log_operation("create_lesson", lesson_id=lesson.id)
        return lesson

    @BaseService.measure_operation("update_lesson")
    def update_lesson(self, lesson_id: str, *, actor: User, **changes: Any) -> Lesson:
        """
        Apply an admin edit.

        Lowering capacity below the active reservations is refused. Raising
        it offers each new seat to the waitlist once the edit is committed.
        """
        ensure_admin(actor)
        unknown = set(changes) - set(_EDITABLE_FIELDS)
        if unknown:
            raise ValidationException(
                "Unknown lesson fields", details={"fields": sorted(unknown)}
            )

        with self.transaction():
            lesson = self.lesson_repository.get_for_update(lesson_id)
            if lesson is None:
                raise NotFoundException(f"Lesson {lesson_id} not found", details={"lesson_id": lesson_id})
            merged = {field: getattr(lesson, field) for field in _EDITABLE_FIELDS}
            merged.update(changes)
            values = self._validate(merged)

            previous_free = self.capacity_ledger.available_for(lesson)
            active = self.reservation_repository.count_active_for_lesson(lesson.id)
            if values["max_capacity"] < active:
                raise CapacityBelowActiveReservationsException(
                    lesson.id, values["max_capacity"], active
                )
            for field in changes:
                setattr(lesson, field, values[field])
            self.db.flush()
            new_free = CapacityLedger.seats_left(lesson.max_capacity, active)

        self.log_operation("update_lesson", lesson_id=lesson.id, fields=sorted(changes))
        for _ in range(max(0, new_free - previous_free)):
            if not self._offer_seat(lesson.id):
                break
        return lesson

    def _offer_seat(self, lesson_id: str) -> bool:
        try:
            return self.waitlist_service.promote_next(lesson_id).promoted
        except Exception as exc:
            self.logger.error(
                f"Waitlist promotion failed after capacity change on {lesson_id}: {exc}",
                exc_info=True,
            )
            return False

    @BaseService.measure_operation("delete_lesson")
    def delete_lesson(self, lesson_id: str, *, actor: User) -> None:
        """Delete a lesson nobody holds a seat on or waits for."""
        ensure_admin(actor)
        with self.transaction():
            lesson = self.lesson_repository.get_for_update(lesson_id)
            if lesson is None:
                raise NotFoundException(f"Lesson {lesson_id} not found", details={"lesson_id": lesson_id})
            active = self.reservation_repository.count_active_for_lesson(lesson.id)
            waiting = self.waiting_list_repository.count_for_lesson(lesson.id)
            if active or waiting:
                raise LessonHasActiveBookingsException(lesson.id, active, waiting)
            self.db.delete(lesson)
            self.db.flush()
        self.log_operation("delete_lesson", lesson_id=lesson_id)

    def get_lesson(self, lesson_id: str) -> LessonAvailability:
        lesson = self.lesson_repository.get_by_id(lesson_id)
        if lesson is None:
            raise NotFoundException(f"Lesson {lesson_id} not found", details={"lesson_id": lesson_id})
        return LessonAvailability(
            lesson=lesson,
            available_spots=self.capacity_ledger.available_for(lesson),
            waiting_count=self.waiting_list_repository.count_for_lesson(lesson.id),
        )

    def list_lessons(
        self,
        *,
        starts_from: Optional[datetime] = None,
        starts_before: Optional[datetime] = None,
        ticket_group_id: Optional[str] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[LessonAvailability]:
        lessons = self.lesson_repository.list_lessons(
            starts_from=timezone_utils.ensure_utc(starts_from) if starts_from else None,
            starts_before=timezone_utils.ensure_utc(starts_before) if starts_before else None,
            ticket_group_id=ticket_group_id,
            skip=skip,
            limit=limit,
        )
        free = self.capacity_ledger.availability_for(lessons)
        return [LessonAvailability(lesson=lesson, available_spots=free[lesson.id]) for lesson in lessons]
