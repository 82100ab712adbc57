# pilates_studio/models/lesson.py
"""
Lesson model.

A lesson is a scheduled class with a fixed number of seats. Free seats are
never stored: they are derived from the lesson's non-cancelled reservations
(see ``CapacityLedger``).
"""

from datetime import datetime

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..core import timezone_utils
from ..database import Base


class Lesson(Base):
    __tablename__ = "lessons"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    instructor_name = Column(String(100), nullable=True)
    location = Column(String(200), nullable=True)
    start_time = Column(DateTime(timezone=True), nullable=False, index=True)
    end_time = Column(DateTime(timezone=True), nullable=False)
    max_capacity = Column(Integer, nullable=False)
    price = Column(Integer, nullable=False, default=0)
    ticket_group_id = Column(
        String(26), ForeignKey("ticket_groups.id", ondelete="SET NULL"), nullable=True, index=True
    )
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: timezone_utils.utc_now(),
        server_default=func.now(),
    )
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=func.now())

    ticket_group = relationship("TicketGroup", back_populates="lessons")
    reservations = relationship("Reservation", back_populates="lesson", cascade="all, delete-orphan")
    waiting_list_entries = relationship(
        "WaitingListEntry",
        back_populates="lesson",
        cascade="all, delete-orphan",
        order_by="WaitingListEntry.created_at",
    )

    __table_args__ = (
        CheckConstraint("end_time > start_time", name="ck_lessons_time_order"),
        CheckConstraint("max_capacity > 0", name="ck_lessons_capacity_positive"),
        CheckConstraint("price >= 0", name="ck_lessons_price_non_negative"),
    )

    def __repr__(self) -> str:
        return (
            f"<Lesson {self.id}: {self.title} {self.start_time}-{self.end_time} "
            f"capacity={self.max_capacity}>"
        )

    @property
    def starts_at_utc(self) -> datetime:
        return timezone_utils.ensure_utc(self.start_time)
