# pilates_studio/repositories/lesson_template_repository.py
from typing import List

from sqlalchemy.orm import Session

from ..models.lesson_template import LessonTemplate
from .base_repository import BaseRepository


class LessonTemplateRepository(BaseRepository[LessonTemplate]):
    def __init__(self, db: Session):
        super().__init__(db, LessonTemplate)

    def list_for_owner(self, user_id: str) -> List[LessonTemplate]:
        """An admin's templates, newest first."""
        query = (
            self.db.query(LessonTemplate)
            .filter(LessonTemplate.created_by == user_id)
            .order_by(LessonTemplate.created_at.desc(), LessonTemplate.id.desc())
        )
        return self._execute_query(query)


__all__ = ["LessonTemplateRepository"]
