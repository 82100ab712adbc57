# pilates_studio/services/notification_service.py
"""
Member notifications.

The booking core only decides *that* a member should hear about something
and with which facts. Rendering and delivery belong to a
``NotificationSender``; the default one writes to the log. Sending never
raises into the caller: a failed notification must not undo a booking or a
cancellation.
"""

from dataclasses import asdict, dataclass, field
from enum import Enum
import logging
from typing import Any, Dict, List, Optional, Protocol

from ..core import timezone_utils
from ..models.lesson import Lesson
from ..models.reservation import Reservation
from ..models.user import User

logger = logging.getLogger(__name__)


class NotificationKind(str, Enum):
    RESERVATION_CONFIRMED = "reservation_confirmed"
    RESERVATION_CANCELLED = "reservation_cancelled"
    WAITLIST_JOINED = "waitlist_joined"
    WAITLIST_LEFT = "waitlist_left"
    WAITLIST_PROMOTED = "waitlist_promoted"
    WAITLIST_REMOVED = "waitlist_removed"


@dataclass
class Notification:
    kind: NotificationKind
    recipient_email: str
    recipient_name: str
    context: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["kind"] = self.kind.value
        return data


class NotificationSender(Protocol):
    def send(self, notification: Notification) -> None:
        ...


class LoggingNotificationSender:
    """Default sender: records the notification in the application log."""

    def send(self, notification: Notification) -> None:
        logger.info(
            "notification %s -> %s",
            notification.kind.value,
            notification.recipient_email,
            extra={"notification": notification.to_dict()},
        )


class RecordingNotificationSender:
    """Keeps notifications in memory; used by tests and local tooling."""

    def __init__(self) -> None:
        self.sent: List[Notification] = []

    def send(self, notification: Notification) -> None:
        self.sent.append(notification)

    def kinds(self) -> List[NotificationKind]:
        return [n.kind for n in self.sent]


def _lesson_context(lesson: Lesson) -> Dict[str, Any]:
    local_start = timezone_utils.to_studio_time(lesson.start_time)
    return {
        "lesson_id": lesson.id,
        "lesson_title": lesson.title,
        "lesson_start": local_start.isoformat(),
        "location": lesson.location,
        "instructor_name": lesson.instructor_name,
    }


class NotificationService:
    def __init__(self, sender: Optional[NotificationSender] = None):
        self.sender: NotificationSender = sender or LoggingNotificationSender()

    def notify(
        self,
        kind: NotificationKind,
        *,
        email: str,
        name: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """Send one notification. Returns False instead of raising on failure."""
        notification = Notification(
            kind=kind, recipient_email=email, recipient_name=name, context=context or {}
        )
        try:
            self.sender.send(notification)
            return True
        except Exception as exc:
            logger.error(
                "Failed to send %s notification to %s: %s",
                kind.value,
                email,
                exc,
                exc_info=True,
            )
            return False

    def reservation_confirmed(self, reservation: Reservation, lesson: Lesson) -> bool:
        return self.notify(
            NotificationKind.RESERVATION_CONFIRMED,
            email=reservation.customer_email,
            name=reservation.customer_name,
            context={
                **_lesson_context(lesson),
                "reservation_id": reservation.id,
                "reservation_type": reservation.reservation_type,
                "payment_method": reservation.payment_method,
                "payment_status": reservation.payment_status,
            },
        )

    def reservation_cancelled(
        self, reservation: Reservation, lesson: Lesson, *, ticket_returned: bool, late: bool
    ) -> bool:
        return self.notify(
            NotificationKind.RESERVATION_CANCELLED,
            email=reservation.customer_email,
            name=reservation.customer_name,
            context={
                **_lesson_context(lesson),
                "reservation_id": reservation.id,
                "ticket_returned": ticket_returned,
                "late_cancellation": late,
            },
        )

    def waitlist_joined(self, user: User, lesson: Lesson, position: int) -> bool:
        return self.notify(
            NotificationKind.WAITLIST_JOINED,
            email=user.email,
            name=user.name,
            context={**_lesson_context(lesson), "position": position},
        )

    def waitlist_left(self, user: User, lesson: Lesson) -> bool:
        return self.notify(
            NotificationKind.WAITLIST_LEFT,
            email=user.email,
            name=user.name,
            context=_lesson_context(lesson),
        )

    def waitlist_promoted(self, reservation: Reservation, lesson: Lesson) -> bool:
        return self.notify(
            NotificationKind.WAITLIST_PROMOTED,
            email=reservation.customer_email,
            name=reservation.customer_name,
            context={
                **_lesson_context(lesson),
                "reservation_id": reservation.id,
                "reservation_type": reservation.reservation_type,
            },
        )

    def waitlist_removed(self, user: User, lesson: Lesson, reason: str) -> bool:
        return self.notify(
            NotificationKind.WAITLIST_REMOVED,
            email=user.email,
            name=user.name,
            context={**_lesson_context(lesson), "reason": reason},
        )
