"""Service layer: business rules of the booking core."""

from .base import BaseService
from .capacity_ledger import CapacityLedger
from .lesson_service import LessonAvailability, LessonService
from .lesson_template_service import LessonTemplateService
from .notification_service import (
    LoggingNotificationSender,
    NotificationKind,
    NotificationSender,
    NotificationService,
    RecordingNotificationSender,
)
from .reservation_service import CancellationOutcome, GuestInfo, ReservationService
from .ticket_account_service import TicketAccountService
from .waitlist_service import PromotionOutcome, PromotionResult, WaitlistService

__all__ = [
    "BaseService",
    "CancellationOutcome",
    "CapacityLedger",
    "GuestInfo",
    "LessonAvailability",
    "LessonService",
    "LessonTemplateService",
    "LoggingNotificationSender",
    "NotificationKind",
    "NotificationSender",
    "NotificationService",
    "PromotionOutcome",
    "PromotionResult",
    "RecordingNotificationSender",
    "ReservationService",
    "TicketAccountService",
    "WaitlistService",
]
