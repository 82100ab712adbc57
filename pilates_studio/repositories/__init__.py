"""Repository layer: all database access for the booking core."""

from .base_repository import BaseRepository
from .lesson_repository import LessonRepository
from .lesson_template_repository import LessonTemplateRepository
from .reservation_repository import ReservationRepository
from .ticket_repository import TicketGroupRepository, TicketRepository
from .user_repository import UserRepository
from .waiting_list_repository import WaitingListRepository

__all__ = [
    "BaseRepository",
    "LessonRepository",
    "LessonTemplateRepository",
    "ReservationRepository",
    "TicketGroupRepository",
    "TicketRepository",
    "UserRepository",
    "WaitingListRepository",
]
