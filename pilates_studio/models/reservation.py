# pilates_studio/models/reservation.py
"""
Reservation model.

A reservation holds one seat on a lesson for as long as its payment status
is not CANCELLED. Rows are kept after cancellation; only an admin
correction removes one physically.
"""

from enum import Enum

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Index, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..core import timezone_utils
from ..database import Base


class ReservationType(str, Enum):
    TRIAL = "TRIAL"
    DROP_IN = "DROP_IN"
    TICKET = "TICKET"


class PaymentMethod(str, Enum):
    PAY_NOW = "PAY_NOW"
    PAY_AT_STUDIO = "PAY_AT_STUDIO"
    TICKET = "TICKET"


class PaymentStatus(str, Enum):
    PENDING = "PENDING"  # Due at the studio
    PAID = "PAID"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


TERMINAL_PAYMENT_STATUSES = frozenset({PaymentStatus.CANCELLED.value, PaymentStatus.REFUNDED.value})


def initial_payment_status(payment_method: PaymentMethod | str) -> PaymentStatus:
    """Tickets and online payments settle at creation; studio payments stay pending."""
    if PaymentMethod(payment_method) == PaymentMethod.PAY_AT_STUDIO:
        return PaymentStatus.PENDING
    return PaymentStatus.PAID


class Reservation(Base):
    __tablename__ = "reservations"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    lesson_id = Column(
        String(26), ForeignKey("lessons.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id = Column(
        String(26), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )

    # Contact snapshot, filled for members and guests alike
    customer_name = Column(String(100), nullable=False)
    customer_email = Column(String(255), nullable=False)
    customer_phone = Column(String(30), nullable=True)

    reservation_type = Column(String(20), nullable=False)
    payment_method = Column(String(20), nullable=False)
    payment_status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value)

    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_by_id = Column(String(26), nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: timezone_utils.utc_now(),
        server_default=func.now(),
    )
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=func.now())

    lesson = relationship("Lesson", back_populates="reservations")
    user = relationship("User", back_populates="reservations")

    __table_args__ = (
        CheckConstraint(
            "reservation_type IN ('TRIAL', 'DROP_IN', 'TICKET')",
            name="ck_reservations_type",
        ),
        CheckConstraint(
            "payment_method IN ('PAY_NOW', 'PAY_AT_STUDIO', 'TICKET')",
            name="ck_reservations_payment_method",
        ),
        CheckConstraint(
            "payment_status IN ('PENDING', 'PAID', 'CANCELLED', 'REFUNDED')",
            name="ck_reservations_payment_status",
        ),
        Index("ix_reservations_lesson_status", "lesson_id", "payment_status"),
        Index("ix_reservations_user_type_status", "user_id", "reservation_type", "payment_status"),
    )

    def __repr__(self) -> str:
        return (
            f"<Reservation {self.id}: lesson={self.lesson_id} user={self.user_id} "
            f"type={self.reservation_type} status={self.payment_status}>"
        )

    @property
    def holds_seat(self) -> bool:
        return self.payment_status != PaymentStatus.CANCELLED.value

    @property
    def is_terminal(self) -> bool:
        return self.payment_status in TERMINAL_PAYMENT_STATUSES

    @property
    def is_ticket_funded(self) -> bool:
        return self.reservation_type == ReservationType.TICKET.value
