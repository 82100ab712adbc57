# pilates_studio/models/lesson_template.py
"""
Lesson template model.

An admin-owned preset for a recurring class. Times are studio wall-clock
times of day; a concrete lesson is made by pairing a template with a date.
"""

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, String, Text, Time
from sqlalchemy.sql import func
import ulid

from ..core import timezone_utils
from ..database import Base


class LessonTemplate(Base):
    __tablename__ = "lesson_templates"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    name = Column(String(100), nullable=False)
    template_description = Column(Text, nullable=True)
    title = Column(String(200), nullable=False)
    lesson_description = Column(Text, nullable=True)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    max_capacity = Column(Integer, nullable=False)
    price = Column(Integer, nullable=False, default=0)
    instructor_name = Column(String(100), nullable=True)
    location = Column(String(200), nullable=True)
    ticket_group_id = Column(
        String(26), ForeignKey("ticket_groups.id", ondelete="SET NULL"), nullable=True
    )
    created_by = Column(
        String(26), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: timezone_utils.utc_now(),
        server_default=func.now(),
    )
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=func.now())

    __table_args__ = (
        CheckConstraint("end_time > start_time", name="ck_lesson_templates_time_order"),
        CheckConstraint("max_capacity > 0", name="ck_lesson_templates_capacity_positive"),
        CheckConstraint("price >= 0", name="ck_lesson_templates_price_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<LessonTemplate {self.id}: {self.name} {self.start_time}-{self.end_time}>"
