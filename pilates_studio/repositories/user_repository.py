# pilates_studio/repositories/user_repository.py
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.user import User
from .base_repository import BaseRepository


class UserRepository(BaseRepository[User]):
    def __init__(self, db: Session):
        super().__init__(db, User)

    def get_by_email(self, email: str) -> Optional[User]:
        return self.db.query(User).filter(func.lower(User.email) == email.strip().lower()).first()

    def get_for_update(self, user_id: str) -> Optional[User]:
        """
        Lock a member's row for the rest of the transaction.

        Trial checks span lessons, so they serialize on the member rather
        than on the lesson. Always taken after the lesson lock.
        """
        try:
            return (
                self.db.query(User)
                .filter(User.id == user_id)
                .populate_existing()
                .with_for_update()
                .first()
            )
        except SQLAlchemyError as exc:
            self.logger.error("Failed to lock user %s: %s", user_id, exc)
            raise RepositoryException(f"Failed to lock user: {exc}") from exc


__all__ = ["UserRepository"]
