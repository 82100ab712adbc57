from __future__ import annotations

from datetime import timedelta

import pytest

from pilates_studio.core.exceptions import (
    CapacityBelowActiveReservationsException,
    ForbiddenException,
    LessonHasActiveBookingsException,
    NotFoundException,
    ValidationException,
)
from pilates_studio.models import Lesson, Reservation
from studio_builders import DEFAULT_LESSON_START, studio_time


class TestLessonAdministration:
    def test_create_lesson(self, admin, make_group, lesson_service) -> None:
        group = make_group()

        lesson = lesson_service.create_lesson(
            actor=admin,
            title="Reformer Basics",
            start_time=DEFAULT_LESSON_START,
            end_time=DEFAULT_LESSON_START + timedelta(hours=1),
            max_capacity=6,
            price=4500,
            ticket_group_id=group.id,
        )

        assert lesson.id
        assert lesson_service.get_lesson(lesson.id).available_spots == 6

    def test_create_requires_admin(self, member, lesson_service) -> None:
        with pytest.raises(ForbiddenException):
            lesson_service.create_lesson(
                actor=member,
                title="Mat",
                start_time=DEFAULT_LESSON_START,
                end_time=DEFAULT_LESSON_START + timedelta(hours=1),
                max_capacity=4,
            )

    def test_create_rejects_inverted_times(self, admin, lesson_service) -> None:
        with pytest.raises(ValidationException) as exc_info:
            lesson_service.create_lesson(
                actor=admin,
                title="Mat",
                start_time=DEFAULT_LESSON_START,
                end_time=DEFAULT_LESSON_START,
                max_capacity=4,
            )

        assert exc_info.value.code == "INVALID_LESSON_TIME"

    def test_create_rejects_zero_capacity(self, admin, lesson_service) -> None:
        with pytest.raises(ValidationException):
            lesson_service.create_lesson(
                actor=admin,
                title="Mat",
                start_time=DEFAULT_LESSON_START,
                end_time=DEFAULT_LESSON_START + timedelta(hours=1),
                max_capacity=0,
            )

    def test_create_with_unknown_group(self, admin, lesson_service) -> None:
        with pytest.raises(NotFoundException):
            lesson_service.create_lesson(
                actor=admin,
                title="Mat",
                start_time=DEFAULT_LESSON_START,
                end_time=DEFAULT_LESSON_START + timedelta(hours=1),
                max_capacity=4,
                ticket_group_id="01HZY3D5PQ0000000000000000",
            )


class TestCapacityChanges:
    def test_capacity_cannot_drop_below_active_reservations(self, db, admin, make_lesson, make_reservation, lesson_service) -> None:
        lesson = make_lesson(max_capacity=3)
        make_reservation(lesson)
        make_reservation(lesson)

        with pytest.raises(CapacityBelowActiveReservationsException):
            lesson_service.update_lesson(lesson.id, actor=admin, max_capacity=1)

        db.refresh(lesson)
        assert lesson.max_capacity == 3

    def test_capacity_down_to_active_count_is_allowed(self, admin, make_lesson, make_reservation, lesson_service) -> None:
        lesson = make_lesson(max_capacity=3)
        make_reservation(lesson)

        updated = lesson_service.update_lesson(lesson.id, actor=admin, max_capacity=1)

        assert updated.max_capacity == 1
        assert lesson_service.get_lesson(lesson.id).is_full is True

    def test_added_seats_go_to_waitlist(
        self, db, admin, make_user, make_lesson, make_ticket, make_reservation, make_waiting_entry, lesson_service
    ) -> None:
        lesson = make_lesson(max_capacity=1)
        make_reservation(lesson)
        waiting = []
        for index, name in enumerate(["B", "C", "D"]):
            user = make_user(name)
            make_ticket(user)
            make_waiting_entry(lesson, user, joined_at=studio_time(2026, 4, 30, 10, index))
            waiting.append(user)

        lesson_service.update_lesson(lesson.id, actor=admin, max_capacity=3)

        seated = {
            r.user_id
            for r in db.query(Reservation).filter(Reservation.lesson_id == lesson.id).all()
            if r.user_id
        }
        assert seated == {waiting[0].id, waiting[1].id}
        assert lesson_service.get_lesson(lesson.id).waiting_count == 1

    def test_unknown_field_is_rejected(self, admin, make_lesson, lesson_service) -> None:
        with pytest.raises(ValidationException):
            lesson_service.update_lesson(make_lesson().id, actor=admin, room="B")

    def test_update_moves_time(self, admin, make_lesson, lesson_service) -> None:
        lesson = make_lesson()
        new_start = DEFAULT_LESSON_START + timedelta(days=1)

        updated = lesson_service.update_lesson(
            lesson.id, actor=admin, start_time=new_start, end_time=new_start + timedelta(hours=1)
        )

        assert updated.starts_at_utc == new_start


class TestDeletion:
    def test_delete_unbooked_lesson(self, db, admin, make_lesson, make_reservation, lesson_service) -> None:
        lesson = make_lesson()
        make_reservation(lesson, payment_status="CANCELLED")

        lesson_service.delete_lesson(lesson.id, actor=admin)

        assert db.query(Lesson).filter(Lesson.id == lesson.id).count() == 0

    def test_delete_refused_with_active_reservation(self, admin, make_lesson, make_reservation, lesson_service) -> None:
        lesson = make_lesson()
        make_reservation(lesson)

        with pytest.raises(LessonHasActiveBookingsException):
            lesson_service.delete_lesson(lesson.id, actor=admin)

    def test_delete_refused_with_waiting_members(self, admin, member, make_lesson, make_waiting_entry, lesson_service) -> None:
        lesson = make_lesson()
        make_waiting_entry(lesson, member)

        with pytest.raises(LessonHasActiveBookingsException):
            lesson_service.delete_lesson(lesson.id, actor=admin)


class TestSchedule:
    def test_list_lessons_in_start_order_with_free_seats(self, make_lesson, make_reservation, lesson_service) -> None:
        later = make_lesson(title="Later", start_time=DEFAULT_LESSON_START + timedelta(days=2), max_capacity=2)
        sooner = make_lesson(title="Sooner", max_capacity=2)
        make_reservation(later)

        listed = lesson_service.list_lessons()

        assert [(item.lesson.id, item.available_spots) for item in listed] == [
            (sooner.id, 2),
            (later.id, 1),
        ]

    def test_list_lessons_by_window_and_group(self, make_group, make_lesson, lesson_service) -> None:
        group = make_group()
        make_lesson(title="Ungrouped")
        grouped = make_lesson(title="Grouped", ticket_group=group)
        make_lesson(title="Next week", ticket_group=group, start_time=DEFAULT_LESSON_START + timedelta(days=7))

        listed = lesson_service.list_lessons(
            starts_from=DEFAULT_LESSON_START,
            starts_before=DEFAULT_LESSON_START + timedelta(days=1),
            ticket_group_id=group.id,
        )

        assert [item.lesson.id for item in listed] == [grouped.id]

    def test_get_unknown_lesson(self, lesson_service) -> None:
        with pytest.raises(NotFoundException):
            lesson_service.get_lesson("01HZY3D5PQ0000000000000000")
