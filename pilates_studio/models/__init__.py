"""
Database models.

Importing this package registers every mapper on ``Base.metadata``.
"""

from .lesson import Lesson
from .lesson_template import LessonTemplate
from .reservation import (
    PaymentMethod,
    PaymentStatus,
    Reservation,
    ReservationType,
    initial_payment_status,
)
from .ticket import Ticket
from .ticket_group import TicketGroup
from .user import User
from .waiting_list import WaitingListEntry

__all__ = [
    "Lesson",
    "LessonTemplate",
    "PaymentMethod",
    "PaymentStatus",
    "Reservation",
    "ReservationType",
    "Ticket",
    "TicketGroup",
    "User",
    "WaitingListEntry",
    "initial_payment_status",
]
