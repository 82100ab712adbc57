# pilates_studio/models/waiting_list.py
"""
Waiting list entry: one member queued for one full lesson.

Entries are served first-in first-out by ``created_at`` (ties broken by id).
``is_trial_claim`` marks entries made by members with no reservation
history; promoting one books their trial.
"""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..core import timezone_utils
from ..database import Base


class WaitingListEntry(Base):
    __tablename__ = "waiting_list_entries"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    lesson_id = Column(
        String(26), ForeignKey("lessons.id", ondelete="CASCADE"), nullable=False
    )
    user_id = Column(
        String(26), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    is_trial_claim = Column(Boolean, nullable=False, default=False)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: timezone_utils.utc_now(),
        server_default=func.now(),
    )

    lesson = relationship("Lesson", back_populates="waiting_list_entries")
    user = relationship("User", back_populates="waiting_list_entries")

    __table_args__ = (
        UniqueConstraint("lesson_id", "user_id", name="uq_waiting_list_lesson_user"),
        Index("ix_waiting_list_lesson_created", "lesson_id", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<WaitingListEntry {self.id}: lesson={self.lesson_id} user={self.user_id} "
            f"trial={self.is_trial_claim}>"
        )
