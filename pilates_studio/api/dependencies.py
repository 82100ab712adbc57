# pilates_studio/api/dependencies.py
"""
FastAPI dependency providers.

Authentication proper lives in front of this service: the gateway (or the
session layer of the web app) resolves who is calling and forwards the
user id in the ``X-Actor-Id`` header. Everything below trusts that header
and turns it into the ``actor`` the services authorize against.
"""

from functools import lru_cache
import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from ..core.ulid_helper import is_valid_ulid
from ..database import get_db
from ..models.user import User
from ..repositories.user_repository import UserRepository
from ..services.lesson_service import LessonService
from ..services.lesson_template_service import LessonTemplateService
from ..services.notification_service import NotificationService
from ..services.reservation_service import ReservationService
from ..services.ticket_account_service import TicketAccountService
from ..services.waitlist_service import WaitlistService

logger = logging.getLogger(__name__)

ACTOR_HEADER = "X-Actor-Id"


def _resolve_actor(actor_id: Optional[str], db: Session) -> Optional[User]:
    if actor_id is None:
        return None
    if not is_valid_ulid(actor_id):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"message": "Invalid actor id", "code": "INVALID_ACTOR"},
        )
    user = UserRepository(db).get_by_id(actor_id)
    if user is None:
        logger.warning("Unknown actor id %s", actor_id)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"message": "Unknown actor", "code": "INVALID_ACTOR"},
        )
    return user


def get_optional_user(
    actor_id: Optional[str] = Header(None, alias=ACTOR_HEADER),
    db: Session = Depends(get_db),
) -> Optional[User]:
    """The calling user, or None for guest requests."""
    return _resolve_actor(actor_id, db)


def get_current_user(user: Optional[User] = Depends(get_optional_user)) -> User:
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"message": "Not authenticated", "code": "NOT_AUTHENTICATED"},
        )
    return user


def get_current_admin(user: User = Depends(get_current_user)) -> User:
    if not user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"message": "Admin access required", "code": "FORBIDDEN"},
        )
    return user


@lru_cache(maxsize=1)
def get_notification_service() -> NotificationService:
    """Process-wide notification service with the default sender."""
    return NotificationService()


def get_ticket_account_service(db: Session = Depends(get_db)) -> TicketAccountService:
    return TicketAccountService(db)


def get_waitlist_service(
    db: Session = Depends(get_db),
    notification_service: NotificationService = Depends(get_notification_service),
) -> WaitlistService:
    return WaitlistService(db, notification_service=notification_service)


def get_reservation_service(
    db: Session = Depends(get_db),
    notification_service: NotificationService = Depends(get_notification_service),
) -> ReservationService:
    return ReservationService(db, notification_service=notification_service)


def get_lesson_service(
    db: Session = Depends(get_db),
    notification_service: NotificationService = Depends(get_notification_service),
) -> LessonService:
    return LessonService(db, WaitlistService(db, notification_service=notification_service))


def get_lesson_template_service(
    db: Session = Depends(get_db),
    lesson_service: LessonService = Depends(get_lesson_service),
) -> LessonTemplateService:
    return LessonTemplateService(db, lesson_service)
