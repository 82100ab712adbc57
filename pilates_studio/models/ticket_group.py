# pilates_studio/models/ticket_group.py
"""Ticket group: the category that ties lessons to the tickets that can pay for them."""

from sqlalchemy import Column, DateTime, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..core import timezone_utils
from ..database import Base


class TicketGroup(Base):
    __tablename__ = "ticket_groups"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    name = Column(String(100), unique=True, nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: timezone_utils.utc_now(),
        server_default=func.now(),
    )

    lessons = relationship("Lesson", back_populates="ticket_group")
    tickets = relationship("Ticket", back_populates="ticket_group")

    def __repr__(self) -> str:
        return f"<TicketGroup {self.id}: {self.name}>"
