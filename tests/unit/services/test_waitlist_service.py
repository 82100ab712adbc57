from __future__ import annotations

from datetime import timedelta
from unittest.mock import patch

import pytest

from pilates_studio.core import lesson_lock
from pilates_studio.core.exceptions import (
    ConflictException,
    DuplicateWaitlistEntryException,
    ForbiddenException,
    InsufficientTicketBalanceException,
    NotFoundException,
    TrialAlreadyUsedException,
)
from pilates_studio.models import (
    PaymentMethod,
    PaymentStatus,
    Reservation,
    ReservationType,
    WaitingListEntry,
)
from pilates_studio.services.notification_service import NotificationKind
from pilates_studio.services.waitlist_service import PromotionOutcome
from studio_builders import studio_time


def active_count(db, lesson) -> int:
    return (
        db.query(Reservation)
        .filter(
            Reservation.lesson_id == lesson.id,
            Reservation.payment_status != PaymentStatus.CANCELLED.value,
        )
        .count()
    )


def queued_user_ids(db, lesson) -> list:
    entries = (
        db.query(WaitingListEntry)
        .filter(WaitingListEntry.lesson_id == lesson.id)
        .order_by(WaitingListEntry.created_at)
        .all()
    )
    return [e.user_id for e in entries]


class TestJoinAndLeave:
    def test_member_with_history_needs_a_ticket(self, member, make_lesson, make_reservation, waitlist_service) -> None:
        make_reservation(make_lesson(title="Earlier"), member)
        lesson = make_lesson()

        with pytest.raises(InsufficientTicketBalanceException):
            waitlist_service.join(lesson.id, member)

    def test_member_with_ticket_joins_as_ticket_holder(self, member, make_lesson, make_reservation, make_ticket, waitlist_service, notification_sender) -> None:
        make_reservation(make_lesson(title="Earlier"), member)
        make_ticket(member)
        lesson = make_lesson()

        entry = waitlist_service.join(lesson.id, member)

        assert entry.is_trial_claim is False
        assert notification_sender.sent[-1].kind == NotificationKind.WAITLIST_JOINED
        assert notification_sender.sent[-1].context["position"] == 1

    def test_newcomer_joins_with_trial_claim(self, member, make_lesson, waitlist_service) -> None:
        entry = waitlist_service.join(make_lesson().id, member)

        assert entry.is_trial_claim is True

    def test_join_locks_member_row_before_trial_check(self, member, make_lesson, waitlist_service) -> None:
        repo = waitlist_service.user_repository

        with patch.object(repo, "get_for_update", wraps=repo.get_for_update) as mock_lock:
            waitlist_service.join(make_lesson().id, member)

        mock_lock.assert_called_once_with(member.id)

    def test_waitlist_claim_blocks_second_trial(self, member, make_lesson, make_user, make_reservation, waitlist_service, reservation_service) -> None:
        full = make_lesson(title="Full", max_capacity=1)
        make_reservation(full, make_user("Holder"))
        other = make_lesson(title="Other")

        waitlist_service.join(full.id, member)

        with pytest.raises(TrialAlreadyUsedException):
            reservation_service.create_reservation(
                lesson_id=other.id,
                reservation_type=ReservationType.TRIAL,
                payment_method=PaymentMethod.PAY_AT_STUDIO,
                actor=member,
            )

    def test_only_one_trial_claim_at_a_time(self, member, make_lesson, waitlist_service) -> None:
        waitlist_service.join(make_lesson(title="First").id, member)

        with pytest.raises(TrialAlreadyUsedException):
            waitlist_service.join(make_lesson(title="Second").id, member)

    def test_duplicate_join(self, member, make_lesson, waitlist_service) -> None:
        lesson = make_lesson()
        waitlist_service.join(lesson.id, member)

        with pytest.raises(DuplicateWaitlistEntryException):
            waitlist_service.join(lesson.id, member)

    def test_cannot_wait_for_a_booked_lesson(self, member, make_lesson, make_reservation, waitlist_service) -> None:
        lesson = make_lesson()
        make_reservation(lesson, member)

        with pytest.raises(ConflictException) as exc_info:
            waitlist_service.join(lesson.id, member)

        assert exc_info.value.code == "ALREADY_RESERVED"

    def test_admin_cannot_join(self, admin, make_lesson, waitlist_service) -> None:
        with pytest.raises(ForbiddenException):
            waitlist_service.join(make_lesson().id, admin)

    def test_unknown_lesson(self, member, waitlist_service) -> None:
        with pytest.raises(NotFoundException):
            waitlist_service.join("01HZY3D5PQ0000000000000000", member)

    def test_leave(self, db, member, make_lesson, make_waiting_entry, waitlist_service, notification_sender) -> None:
        lesson = make_lesson()
        make_waiting_entry(lesson, member)

        waitlist_service.leave(lesson.id, member)

        assert queued_user_ids(db, lesson) == []
        assert notification_sender.kinds() == [NotificationKind.WAITLIST_LEFT]

    def test_leave_when_not_queued(self, member, make_lesson, waitlist_service) -> None:
        with pytest.raises(NotFoundException):
            waitlist_service.leave(make_lesson().id, member)

    def test_queue_order_and_positions(self, admin, make_user, make_lesson, make_waiting_entry, waitlist_service) -> None:
        lesson = make_lesson()
        later = make_waiting_entry(lesson, make_user("Late"), joined_at=studio_time(2026, 4, 30, 10, 5))
        earlier = make_waiting_entry(lesson, make_user("Early"), joined_at=studio_time(2026, 4, 30, 10))

        queue = waitlist_service.list_for_lesson(lesson.id, admin)

        assert [e.id for e in queue] == [earlier.id, later.id]
        assert waitlist_service.position_of(later) == 2

    def test_members_cannot_see_the_queue(self, member, make_lesson, waitlist_service) -> None:
        with pytest.raises(ForbiddenException):
            waitlist_service.list_for_lesson(make_lesson().id, member)


class TestPromotion:
    def test_earliest_waiting_member_gets_freed_seat(
        self,
        db,
        make_user,
        make_lesson,
        make_ticket,
        make_reservation,
        make_waiting_entry,
        reservation_service,
        notification_sender,
    ) -> None:
        lesson = make_lesson(max_capacity=2)
        user_a, user_b, user_c = make_user("A"), make_user("B"), make_user("C")
        make_ticket(user_a)
        ticket_b = make_ticket(user_b)
        make_ticket(user_c)
        reservation_a = reservation_service.create_reservation(
            lesson_id=lesson.id,
            reservation_type=ReservationType.TICKET,
            payment_method=PaymentMethod.TICKET,
            actor=user_a,
        )
        make_reservation(lesson, make_user("Filler"))
        make_waiting_entry(lesson, user_b, joined_at=studio_time(2026, 4, 30, 10))
        make_waiting_entry(lesson, user_c, joined_at=studio_time(2026, 4, 30, 10, 5))

        outcome = reservation_service.cancel_reservation(reservation_a.id, actor=user_a)

        promoted = db.query(Reservation).filter(Reservation.id == outcome.promoted_reservation_id).one()
        assert promoted.user_id == user_b.id
        assert promoted.reservation_type == ReservationType.TICKET.value
        assert promoted.payment_status == PaymentStatus.PAID.value
        assert queued_user_ids(db, lesson) == [user_c.id]
        assert active_count(db, lesson) == lesson.max_capacity
        db.refresh(ticket_b)
        assert ticket_b.remaining_count == 0
        assert NotificationKind.WAITLIST_PROMOTED in notification_sender.kinds()

    def test_member_without_usable_ticket_is_skipped(
        self, db, clock, make_user, make_lesson, make_ticket, make_waiting_entry, waitlist_service, notification_sender
    ) -> None:
        lesson = make_lesson(max_capacity=1)
        expired_holder, next_in_line = make_user("Expired"), make_user("Next")
        make_ticket(expired_holder, expires_at=clock.now + timedelta(days=1))
        make_ticket(next_in_line)
        make_waiting_entry(lesson, expired_holder, joined_at=studio_time(2026, 4, 30, 10))
        make_waiting_entry(lesson, next_in_line, joined_at=studio_time(2026, 4, 30, 10, 5))
        clock.advance(days=2)

        result = waitlist_service.promote_next(lesson.id)

        assert result.outcome == PromotionOutcome.PROMOTED
        assert result.reservation.user_id == next_in_line.id
        assert result.removed_user_ids == [expired_holder.id]
        assert queued_user_ids(db, lesson) == []
        removed = [n for n in notification_sender.sent if n.kind == NotificationKind.WAITLIST_REMOVED]
        assert [n.recipient_email for n in removed] == [expired_holder.email]

    def test_queue_of_unpayable_members_empties(self, db, make_user, make_lesson, make_waiting_entry, waitlist_service) -> None:
        lesson = make_lesson()
        make_waiting_entry(lesson, make_user("NoTicket"))

        result = waitlist_service.promote_next(lesson.id)

        assert result.outcome == PromotionOutcome.EMPTY
        assert result.promoted is False
        assert queued_user_ids(db, lesson) == []

    def test_trial_claim_promotes_to_trial(self, member, make_lesson, make_waiting_entry, waitlist_service) -> None:
        lesson = make_lesson()
        make_waiting_entry(lesson, member, is_trial_claim=True)

        result = waitlist_service.promote_next(lesson.id)

        reservation = result.reservation
        assert reservation.reservation_type == ReservationType.TRIAL.value
        assert reservation.payment_method == PaymentMethod.PAY_AT_STUDIO.value
        assert reservation.payment_status == PaymentStatus.PENDING.value

    def test_trial_claim_promotion_locks_member_row(self, member, make_lesson, make_waiting_entry, waitlist_service) -> None:
        lesson = make_lesson()
        make_waiting_entry(lesson, member, is_trial_claim=True)
        repo = waitlist_service.user_repository

        with patch.object(repo, "get_for_update", wraps=repo.get_for_update) as mock_lock:
            waitlist_service.promote_next(lesson.id)

        mock_lock.assert_called_once_with(member.id)

    def test_stale_trial_claim_falls_back_to_ticket(
        self, member, make_lesson, make_reservation, make_ticket, make_waiting_entry, waitlist_service
    ) -> None:
        lesson = make_lesson()
        make_waiting_entry(lesson, member, is_trial_claim=True)
        make_reservation(make_lesson(title="Booked meanwhile"), member)
        make_ticket(member)

        result = waitlist_service.promote_next(lesson.id)

        assert result.reservation.reservation_type == ReservationType.TICKET.value

    def test_full_lesson_promotes_nobody(self, db, make_user, make_lesson, make_ticket, make_reservation, make_waiting_entry, waitlist_service) -> None:
        lesson = make_lesson(max_capacity=1)
        make_reservation(lesson, make_user("Holder"))
        waiting = make_user("Waiting")
        make_ticket(waiting)
        make_waiting_entry(lesson, waiting)

        result = waitlist_service.promote_next(lesson.id)

        assert result.outcome == PromotionOutcome.FULL
        assert queued_user_ids(db, lesson) == [waiting.id]

    def test_started_lesson_promotes_nobody(self, db, clock, member, make_lesson, make_ticket, make_waiting_entry, waitlist_service) -> None:
        lesson = make_lesson()
        make_ticket(member)
        make_waiting_entry(lesson, member)
        clock.set(studio_time(2026, 5, 10, 10, 5))

        result = waitlist_service.promote_next(lesson.id)

        assert result.outcome == PromotionOutcome.STARTED
        assert queued_user_ids(db, lesson) == [member.id]

    def test_busy_lesson_mutex_skips_promotion(self, db, monkeypatch, member, make_lesson, make_ticket, make_waiting_entry, waitlist_service) -> None:
        lesson = make_lesson()
        make_ticket(member)
        make_waiting_entry(lesson, member)
        monkeypatch.setattr(lesson_lock, "acquire_lesson_lock", lambda *args, **kwargs: False)

        result = waitlist_service.promote_next(lesson.id)

        assert result.outcome == PromotionOutcome.LOCK_BUSY
        assert queued_user_ids(db, lesson) == [member.id]

    def test_entry_of_member_already_seated_is_dropped(
        self, db, member, make_user, make_lesson, make_ticket, make_reservation, make_waiting_entry, waitlist_service
    ) -> None:
        lesson = make_lesson(max_capacity=3)
        make_reservation(lesson, member)
        make_waiting_entry(lesson, member, joined_at=studio_time(2026, 4, 30, 10))
        other = make_user("Other")
        make_ticket(other)
        make_waiting_entry(lesson, other, joined_at=studio_time(2026, 4, 30, 11))

        result = waitlist_service.promote_next(lesson.id)

        assert result.reservation.user_id == other.id
        assert queued_user_ids(db, lesson) == []

    def test_unknown_lesson(self, waitlist_service) -> None:
        with pytest.raises(NotFoundException):
            waitlist_service.promote_next("01HZY3D5PQ0000000000000000")
