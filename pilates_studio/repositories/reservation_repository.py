# pilates_studio/repositories/reservation_repository.py
"""Reservation queries. "Active" always means payment_status != CANCELLED."""

from datetime import datetime
from typing import Dict, Iterable, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from ..core.exceptions import RepositoryException
from ..models.lesson import Lesson
from ..models.reservation import (
    TERMINAL_PAYMENT_STATUSES,
    PaymentStatus,
    Reservation,
    ReservationType,
)
from .base_repository import BaseRepository

_CANCELLED = PaymentStatus.CANCELLED.value


class ReservationRepository(BaseRepository[Reservation]):
    def __init__(self, db: Session):
        super().__init__(db, Reservation)

    def get_with_lesson(self, reservation_id: str) -> Optional[Reservation]:
        try:
            return (
                self.db.query(Reservation)
                .options(joinedload(Reservation.lesson))
                .filter(Reservation.id == reservation_id)
                .first()
            )
        except SQLAlchemyError as exc:
            self.logger.error("Failed to load reservation %s: %s", reservation_id, exc)
            raise RepositoryException(f"Failed to load reservation: {exc}") from exc

    def count_active_for_lesson(self, lesson_id: str) -> int:
        try:
            return (
                self.db.query(func.count(Reservation.id))
                .filter(
                    Reservation.lesson_id == lesson_id,
                    Reservation.payment_status != _CANCELLED,
                )
                .scalar()
                or 0
            )
        except SQLAlchemyError as exc:
            self.logger.error("Failed to count reservations for lesson %s: %s", lesson_id, exc)
            raise RepositoryException(f"Failed to count reservations: {exc}") from exc

    def active_counts_for_lessons(self, lesson_ids: Iterable[str]) -> Dict[str, int]:
        ids = list(lesson_ids)
        if not ids:
            return {}
        try:
            rows = (
                self.db.query(Reservation.lesson_id, func.count(Reservation.id))
                .filter(
                    Reservation.lesson_id.in_(ids),
                    Reservation.payment_status != _CANCELLED,
                )
                .group_by(Reservation.lesson_id)
                .all()
            )
        except SQLAlchemyError as exc:
            self.logger.error("Failed to count reservations for lessons: %s", exc)
            raise RepositoryException(f"Failed to count reservations: {exc}") from exc
        return {lesson_id: count for lesson_id, count in rows}

    def count_active_trials(self, user_id: str) -> int:
        return (
            self.db.query(func.count(Reservation.id))
            .filter(
                Reservation.user_id == user_id,
                Reservation.reservation_type == ReservationType.TRIAL.value,
                Reservation.payment_status != _CANCELLED,
            )
            .scalar()
            or 0
        )

    def has_active_history(self, user_id: str) -> bool:
        """Whether the user holds or has held any non-cancelled reservation."""
        return (
            self.db.query(Reservation.id)
            .filter(Reservation.user_id == user_id, Reservation.payment_status != _CANCELLED)
            .first()
            is not None
        )

    def has_active_for_lesson(self, user_id: str, lesson_id: str) -> bool:
        return (
            self.db.query(Reservation.id)
            .filter(
                Reservation.user_id == user_id,
                Reservation.lesson_id == lesson_id,
                Reservation.payment_status != _CANCELLED,
            )
            .first()
            is not None
        )

    def mark_cancelled(
        self, *, reservation_id: str, cancelled_by_id: Optional[str], when: datetime
    ) -> bool:
        """
        Flip a live reservation to CANCELLED.

        Returns False when the row was already terminal, so concurrent
        cancellations of one reservation cannot both refund.
        """
        try:
            updated = (
                self.db.query(Reservation)
                .filter(
                    Reservation.id == reservation_id,
                    Reservation.payment_status.notin_(sorted(TERMINAL_PAYMENT_STATUSES)),
                )
                .update(
                    {
                        Reservation.payment_status: _CANCELLED,
                        Reservation.cancelled_at: when,
                        Reservation.cancelled_by_id: cancelled_by_id,
                    },
                    synchronize_session="fetch",
                )
            )
        except SQLAlchemyError as exc:
            self.logger.error("Failed to cancel reservation %s: %s", reservation_id, exc)
            raise RepositoryException(f"Failed to cancel reservation: {exc}") from exc
        return updated == 1

    def list_for_user(self, user_id: str, *, include_cancelled: bool = True) -> List[Reservation]:
        query = (
            self.db.query(Reservation)
            .options(joinedload(Reservation.lesson))
            .join(Lesson, Reservation.lesson_id == Lesson.id)
            .filter(Reservation.user_id == user_id)
        )
        if not include_cancelled:
            query = query.filter(Reservation.payment_status != _CANCELLED)
        return self._execute_query(query.order_by(Lesson.start_time.desc()))

    def list_for_lesson(
        self,
        lesson_id: Optional[str] = None,
        *,
        include_cancelled: bool = False,
        skip: int = 0,
        limit: int = 100,
    ) -> List[Reservation]:
        query = self.db.query(Reservation).options(joinedload(Reservation.lesson))
        if lesson_id is not None:
            query = query.filter(Reservation.lesson_id == lesson_id)
        if not include_cancelled:
            query = query.filter(Reservation.payment_status != _CANCELLED)
        query = query.order_by(Reservation.created_at.asc(), Reservation.id.asc())
        return self._execute_query(query.offset(skip).limit(limit))


__all__ = ["ReservationRepository"]
