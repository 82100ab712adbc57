# pilates_studio/repositories/lesson_repository.py
"""Lesson data access, including the row lock that serializes seat changes per lesson."""

from datetime import datetime
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.lesson import Lesson
from .base_repository import BaseRepository


class LessonRepository(BaseRepository[Lesson]):
    def __init__(self, db: Session):
        super().__init__(db, Lesson)

    def get_for_update(self, lesson_id: str) -> Optional[Lesson]:
        """
        Load a lesson holding its row lock until the surrounding transaction ends.

        Every write that depends on the lesson's free seats goes through here
        first. sqlite has no row locks; its single writer gives the same order.
        """
        try:
            return (
                self.db.query(Lesson)
                .filter(Lesson.id == lesson_id)
                .populate_existing()
                .with_for_update()
                .first()
            )
        except SQLAlchemyError as exc:
            self.logger.error("Failed to lock lesson %s: %s", lesson_id, exc)
            raise RepositoryException(f"Failed to lock lesson: {exc}") from exc

    def list_lessons(
        self,
        *,
        starts_from: Optional[datetime] = None,
        starts_before: Optional[datetime] = None,
        ticket_group_id: Optional[str] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[Lesson]:
        query = self.db.query(Lesson)
        if starts_from is not None:
            query = query.filter(Lesson.start_time >= starts_from)
        if starts_before is not None:
            query = query.filter(Lesson.start_time < starts_before)
        if ticket_group_id is not None:
            query = query.filter(Lesson.ticket_group_id == ticket_group_id)
        query = query.order_by(Lesson.start_time.asc(), Lesson.id.asc()).offset(skip).limit(limit)
        return self._execute_query(query)


__all__ = ["LessonRepository"]
