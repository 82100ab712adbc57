# pilates_studio/models/ticket.py
"""
Ticket model: a prepaid bundle of lesson credits for one ticket group.

``remaining_count`` is only ever changed through conditional UPDATE
statements in ``TicketRepository`` so it cannot go below zero.
"""

from datetime import datetime

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..core import timezone_utils
from ..database import Base


class Ticket(Base):
    __tablename__ = "tickets"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    user_id = Column(
        String(26), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    ticket_group_id = Column(
        String(26), ForeignKey("ticket_groups.id", ondelete="SET NULL"), nullable=True
    )
    name = Column(String(100), nullable=False)
    remaining_count = Column(Integer, nullable=False, default=0)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: timezone_utils.utc_now(),
        server_default=func.now(),
    )
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=func.now())

    user = relationship("User", back_populates="tickets")
    ticket_group = relationship("TicketGroup", back_populates="tickets")

    __table_args__ = (
        CheckConstraint("remaining_count >= 0", name="ck_tickets_remaining_non_negative"),
        Index("ix_tickets_user_group_expiry", "user_id", "ticket_group_id", "expires_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<Ticket {self.id}: user={self.user_id} group={self.ticket_group_id} "
            f"remaining={self.remaining_count} expires={self.expires_at}>"
        )

    def usable_at(self, now: datetime) -> bool:
        return self.remaining_count > 0 and timezone_utils.ensure_utc(self.expires_at) > now
