# pilates_studio/services/capacity_ledger.py
"""
Capacity ledger: free seats per lesson.

Free seats are never stored. They are recomputed from the reservations
table every time, and callers that act on the answer must ask inside the
same transaction that holds the lesson row lock.
"""

from typing import Dict, Iterable, Optional

from sqlalchemy.orm import Session

from ..core.exceptions import NotFoundException
from ..models.lesson import Lesson
from ..repositories.lesson_repository import LessonRepository
from ..repositories.reservation_repository import ReservationRepository
from .base import BaseService


class CapacityLedger(BaseService):
    def __init__(
        self,
        db: Session,
        lesson_repository: Optional[LessonRepository] = None,
        reservation_repository: Optional[ReservationRepository] = None,
    ):
        super().__init__(db)
        self.lesson_repository = lesson_repository or LessonRepository(db)
        self.reservation_repository = reservation_repository or ReservationRepository(db)

    def check_availability(self, lesson_id: str) -> int:
        """Free seats on the lesson; 0 means full."""
        lesson = self.lesson_repository.get_by_id(lesson_id)
        if lesson is None:
            raise NotFoundException(f"Lesson {lesson_id} not found", details={"lesson_id": lesson_id})
        return self.available_for(lesson)

    def available_for(self, lesson: Lesson) -> int:
        active = self.reservation_repository.count_active_for_lesson(lesson.id)
        return self.seats_left(lesson.max_capacity, active)

    def availability_for(self, lessons: Iterable[Lesson]) -> Dict[str, int]:
        """Free seats for several lessons with one grouped count."""
        lesson_list = list(lessons)
        counts = self.reservation_repository.active_counts_for_lessons(
            lesson.id for lesson in lesson_list
        )
        return {
            lesson.id: self.seats_left(lesson.max_capacity, counts.get(lesson.id, 0))
            for lesson in lesson_list
        }

    @staticmethod
    def seats_left(max_capacity: int, active_reservations: int) -> int:
        return max(0, max_capacity - active_reservations)
