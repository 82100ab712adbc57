"""
Shared fixtures.

Every test gets its own in-memory sqlite database and a frozen studio clock.
Services commit, so isolation comes from a fresh engine rather than a
rolled-back outer transaction.
"""

from __future__ import annotations

from datetime import datetime, timedelta
import os
from typing import Callable, Iterator, Optional

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")

from fastapi.testclient import TestClient
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from pilates_studio.api.dependencies import get_notification_service
from pilates_studio.core import lesson_lock, timezone_utils
from pilates_studio.core.config import settings
from pilates_studio.core.enums import RoleName
from pilates_studio.database import Base, enable_sqlite_foreign_keys, get_db
import pilates_studio.models  # noqa: F401
from pilates_studio.models import (
    Lesson,
    PaymentMethod,
    Reservation,
    ReservationType,
    Ticket,
    TicketGroup,
    User,
    WaitingListEntry,
    initial_payment_status,
)
from pilates_studio.services.lesson_service import LessonService
from pilates_studio.services.notification_service import (
    NotificationService,
    RecordingNotificationSender,
)
from pilates_studio.services.reservation_service import ReservationService
from pilates_studio.services.ticket_account_service import TicketAccountService
from pilates_studio.services.waitlist_service import WaitlistService
from studio_builders import BASE_NOW, DEFAULT_LESSON_START, FrozenClock


@pytest.fixture(autouse=True)
def _studio_settings(monkeypatch) -> None:
    """Pin the policy settings and keep Redis out of unit runs."""
    monkeypatch.setattr(settings, "studio_timezone", "Asia/Tokyo")
    monkeypatch.setattr(settings, "booking_cutoff_minutes", 30)
    monkeypatch.setattr(settings, "free_cancellation_hour", 21)
    monkeypatch.setattr(settings, "ticket_validity_months", 5)
    monkeypatch.setattr(settings, "consent_required", True)
    monkeypatch.setattr(settings, "redis_url", None)
    monkeypatch.setattr(lesson_lock, "_SYNC_REDIS", None)
    monkeypatch.setattr(lesson_lock, "_SYNC_REDIS_FAILED_AT", None)


@pytest.fixture
def clock(monkeypatch) -> FrozenClock:
    frozen = FrozenClock(BASE_NOW)
    monkeypatch.setattr(timezone_utils, "utc_now", lambda: frozen.now)
    return frozen


@pytest.fixture
def engine():
    test_engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        future=True,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    enable_sqlite_foreign_keys(test_engine)
    Base.metadata.create_all(test_engine)
    yield test_engine
    Base.metadata.drop_all(test_engine)
    test_engine.dispose()


@pytest.fixture
def db(engine, clock) -> Iterator[Session]:
    TestingSessionLocal = sessionmaker(
        bind=engine, autocommit=False, autoflush=False, expire_on_commit=False
    )
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


# Notifications


@pytest.fixture
def notification_sender() -> RecordingNotificationSender:
    return RecordingNotificationSender()


@pytest.fixture
def notification_service(notification_sender) -> NotificationService:
    return NotificationService(notification_sender)


# Builders


@pytest.fixture
def make_user(db) -> Callable[..., User]:
    counter = {"n": 0}

    def _make(
        name: Optional[str] = None,
        *,
        email: Optional[str] = None,
        role: RoleName = RoleName.MEMBER,
        consented: bool = True,
        phone: Optional[str] = None,
    ) -> User:
        counter["n"] += 1
        label = name or f"member{counter['n']}"
        user = User(
            email=email or f"{label.lower()}@example.com",
            name=label,
            phone=phone,
            role=role.value,
            consent_agreed_at=timezone_utils.utc_now() if consented else None,
        )
        db.add(user)
        db.commit()
        return user

    return _make


@pytest.fixture
def member(make_user) -> User:
    return make_user("Aiko")


@pytest.fixture
def admin(make_user) -> User:
    return make_user("Studio Admin", email="admin@example.com", role=RoleName.ADMIN)


@pytest.fixture
def make_group(db) -> Callable[..., TicketGroup]:
    def _make(name: str = "Mat", description: Optional[str] = None) -> TicketGroup:
        group = TicketGroup(name=name, description=description)
        db.add(group)
        db.commit()
        return group

    return _make


@pytest.fixture
def make_lesson(db) -> Callable[..., Lesson]:
    def _make(
        *,
        title: str = "Morning Mat",
        start_time: datetime = DEFAULT_LESSON_START,
        duration_minutes: int = 60,
        max_capacity: int = 5,
        price: int = 3000,
        ticket_group: Optional[TicketGroup] = None,
    ) -> Lesson:
        lesson = Lesson(
            title=title,
            start_time=start_time,
            end_time=start_time + timedelta(minutes=duration_minutes),
            max_capacity=max_capacity,
            price=price,
            ticket_group_id=ticket_group.id if ticket_group else None,
            instructor_name="Mika",
            location="Studio A",
        )
        db.add(lesson)
        db.commit()
        return lesson

    return _make


@pytest.fixture
def make_ticket(db) -> Callable[..., Ticket]:
    def _make(
        user: User,
        *,
        group: Optional[TicketGroup] = None,
        remaining: int = 1,
        expires_at: Optional[datetime] = None,
        name: str = "4-class pass",
    ) -> Ticket:
        ticket = Ticket(
            user_id=user.id,
            ticket_group_id=group.id if group else None,
            name=name,
            remaining_count=remaining,
            expires_at=expires_at or timezone_utils.add_months(timezone_utils.utc_now(), 3),
        )
        db.add(ticket)
        db.commit()
        return ticket

    return _make


@pytest.fixture
def make_reservation(db) -> Callable[..., Reservation]:
    """Insert a reservation row directly, bypassing admission checks."""

    def _make(
        lesson: Lesson,
        user: Optional[User] = None,
        *,
        reservation_type: ReservationType = ReservationType.DROP_IN,
        payment_method: PaymentMethod = PaymentMethod.PAY_AT_STUDIO,
        payment_status: Optional[str] = None,
        guest_name: str = "Walk-in Guest",
        guest_email: str = "guest@example.com",
    ) -> Reservation:
        reservation = Reservation(
            lesson_id=lesson.id,
            user_id=user.id if user else None,
            customer_name=user.name if user else guest_name,
            customer_email=user.email if user else guest_email,
            reservation_type=reservation_type.value,
            payment_method=payment_method.value,
            payment_status=payment_status or initial_payment_status(payment_method).value,
        )
        db.add(reservation)
        db.commit()
        return reservation

    return _make


@pytest.fixture
def make_waiting_entry(db) -> Callable[..., WaitingListEntry]:
    def _make(
        lesson: Lesson,
        user: User,
        *,
        joined_at: Optional[datetime] = None,
        is_trial_claim: bool = False,
    ) -> WaitingListEntry:
        entry = WaitingListEntry(
            lesson_id=lesson.id,
            user_id=user.id,
            is_trial_claim=is_trial_claim,
            created_at=joined_at or timezone_utils.utc_now(),
        )
        db.add(entry)
        db.commit()
        return entry

    return _make


# Services


@pytest.fixture
def ticket_account(db) -> TicketAccountService:
    return TicketAccountService(db)


@pytest.fixture
def waitlist_service(db, notification_service, ticket_account) -> WaitlistService:
    return WaitlistService(
        db, notification_service=notification_service, ticket_account=ticket_account
    )


@pytest.fixture
def reservation_service(
    db, notification_service, ticket_account, waitlist_service
) -> ReservationService:
    return ReservationService(
        db,
        notification_service=notification_service,
        ticket_account=ticket_account,
        promoter=waitlist_service,
    )


@pytest.fixture
def lesson_service(db, waitlist_service) -> LessonService:
    return LessonService(db, waitlist_service)


# HTTP


@pytest.fixture
def client(db, notification_service) -> Iterator[TestClient]:
    from pilates_studio.main import app

    def override_get_db():
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notification_service] = lambda: notification_service
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
