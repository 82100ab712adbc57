# pilates_studio/repositories/waiting_list_repository.py
"""Waiting list queries. Queue order is created_at, then id."""

from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from ..core.exceptions import RepositoryException
from ..models.waiting_list import WaitingListEntry
from .base_repository import BaseRepository


class WaitingListRepository(BaseRepository[WaitingListEntry]):
    def __init__(self, db: Session):
        super().__init__(db, WaitingListEntry)

    def get_entry(self, *, lesson_id: str, user_id: str) -> Optional[WaitingListEntry]:
        return (
            self.db.query(WaitingListEntry)
            .filter(WaitingListEntry.lesson_id == lesson_id, WaitingListEntry.user_id == user_id)
            .first()
        )

    def list_for_lesson(self, lesson_id: str) -> List[WaitingListEntry]:
        query = (
            self.db.query(WaitingListEntry)
            .options(joinedload(WaitingListEntry.user))
            .filter(WaitingListEntry.lesson_id == lesson_id)
            .order_by(WaitingListEntry.created_at.asc(), WaitingListEntry.id.asc())
        )
        return self._execute_query(query)

    def list_for_user(self, user_id: str) -> List[WaitingListEntry]:
        query = (
            self.db.query(WaitingListEntry)
            .options(joinedload(WaitingListEntry.lesson))
            .filter(WaitingListEntry.user_id == user_id)
            .order_by(WaitingListEntry.created_at.asc())
        )
        return self._execute_query(query)

    def count_for_lesson(self, lesson_id: str) -> int:
        return self.count(lesson_id=lesson_id)

    def has_pending_trial_claim(self, user_id: str, *, exclude_lesson_id: Optional[str] = None) -> bool:
        """Whether the user already waits somewhere with their trial."""
        query = self.db.query(WaitingListEntry.id).filter(
            WaitingListEntry.user_id == user_id,
            WaitingListEntry.is_trial_claim.is_(True),
        )
        if exclude_lesson_id is not None:
            query = query.filter(WaitingListEntry.lesson_id != exclude_lesson_id)
        return query.first() is not None

    def delete_entry(self, entry: WaitingListEntry) -> None:
        try:
            self.db.delete(entry)
            self.db.flush()
        except SQLAlchemyError as exc:
            self.logger.error("Failed to delete waiting list entry %s: %s", entry.id, exc)
            raise RepositoryException(f"Failed to delete waiting list entry: {exc}") from exc


__all__ = ["WaitingListRepository"]
