from __future__ import annotations

from pilates_studio.models import PaymentStatus, Reservation, Ticket
from studio_builders import actor_headers, studio_time

RESERVATIONS_URL = "/api/v1/reservations"
PROBLEM_JSON = "application/problem+json"


def trial_payload(lesson) -> dict:
    return {
        "lesson_id": lesson.id,
        "reservation_type": "TRIAL",
        "payment_method": "PAY_AT_STUDIO",
    }


class TestCreateReservationRoute:
    def test_member_books_trial(self, client, member, make_lesson) -> None:
        lesson = make_lesson()

        response = client.post(RESERVATIONS_URL, json=trial_payload(lesson), headers=actor_headers(member))

        assert response.status_code == 201
        body = response.json()
        assert body["lesson_id"] == lesson.id
        assert body["user_id"] == member.id
        assert body["reservation_type"] == "TRIAL"
        assert body["payment_status"] == "PENDING"
        assert body["customer_email"] == member.email

    def test_full_lesson_is_a_problem_response(self, client, make_user, make_lesson, make_reservation) -> None:
        lesson = make_lesson(max_capacity=1)
        make_reservation(lesson)

        response = client.post(
            RESERVATIONS_URL, json=trial_payload(lesson), headers=actor_headers(make_user())
        )

        assert response.status_code == 409
        assert response.headers["content-type"].startswith(PROBLEM_JSON)
        problem = response.json()
        assert problem["code"] == "LESSON_FULL"
        assert problem["status"] == 409
        assert problem["instance"] == RESERVATIONS_URL
        assert problem["errors"] == {"lesson_id": lesson.id}

    def test_guest_books_drop_in(self, client, make_lesson) -> None:
        payload = {
            "lesson_id": make_lesson().id,
            "reservation_type": "DROP_IN",
            "payment_method": "PAY_NOW",
            "agree_to_consent": True,
            "guest": {"name": "Walk In", "email": "walkin@example.com"},
        }

        response = client.post(RESERVATIONS_URL, json=payload)

        assert response.status_code == 201
        assert response.json()["user_id"] is None
        assert response.json()["payment_status"] == "PAID"

    def test_anonymous_request_without_guest_details(self, client, make_lesson) -> None:
        response = client.post(RESERVATIONS_URL, json=trial_payload(make_lesson()))

        assert response.status_code == 400

    def test_ticket_type_with_wrong_payment_method(self, client, member, make_lesson) -> None:
        payload = {
            "lesson_id": make_lesson().id,
            "reservation_type": "TICKET",
            "payment_method": "PAY_NOW",
        }

        response = client.post(RESERVATIONS_URL, json=payload, headers=actor_headers(member))

        assert response.status_code == 422
        assert response.json()["code"] == "validation_error"

    def test_unknown_fields_are_rejected(self, client, member, make_lesson) -> None:
        payload = {**trial_payload(make_lesson()), "discount": 100}

        response = client.post(RESERVATIONS_URL, json=payload, headers=actor_headers(member))

        assert response.status_code == 422

    def test_consent_required(self, client, make_user, make_lesson) -> None:
        newcomer = make_user("Newcomer", consented=False)

        response = client.post(
            RESERVATIONS_URL, json=trial_payload(make_lesson()), headers=actor_headers(newcomer)
        )

        assert response.status_code == 422
        assert response.json()["code"] == "CONSENT_REQUIRED"

    def test_new_member_signup_and_booking(self, client, make_lesson) -> None:
        payload = {
            "name": "Hana",
            "email": "hana@example.com",
            "lesson_id": make_lesson().id,
            "reservation_type": "TRIAL",
            "payment_method": "PAY_AT_STUDIO",
            "agree_to_consent": True,
        }

        first = client.post(f"{RESERVATIONS_URL}/new-member", json=payload)
        second = client.post(f"{RESERVATIONS_URL}/new-member", json=payload)

        assert first.status_code == 201
        assert first.json()["user_id"]
        assert second.status_code == 409
        assert second.json()["code"] == "EMAIL_ALREADY_REGISTERED"


class TestActorResolution:
    def test_unknown_actor(self, client, make_lesson) -> None:
        response = client.post(
            RESERVATIONS_URL,
            json=trial_payload(make_lesson()),
            headers={"X-Actor-Id": "01HZY3D5PQ0000000000000000"},
        )

        assert response.status_code == 401
        assert response.json()["code"] == "INVALID_ACTOR"

    def test_malformed_actor(self, client) -> None:
        response = client.get(RESERVATIONS_URL, headers={"X-Actor-Id": "not-a-ulid"})

        assert response.status_code == 401

    def test_listing_requires_a_member(self, client) -> None:
        response = client.get(RESERVATIONS_URL)

        assert response.status_code == 401
        assert response.json()["code"] == "NOT_AUTHENTICATED"


class TestCancellationRoutes:
    def _ticket_booking(self, client, member, make_lesson, make_ticket):
        ticket = make_ticket(member, remaining=1)
        lesson = make_lesson()
        response = client.post(
            RESERVATIONS_URL,
            json={"lesson_id": lesson.id, "reservation_type": "TICKET", "payment_method": "TICKET"},
            headers=actor_headers(member),
        )
        assert response.status_code == 201
        return response.json()["id"], ticket

    def test_late_cancel_asks_for_confirmation(self, client, db, clock, member, make_lesson, make_ticket) -> None:
        reservation_id, ticket = self._ticket_booking(client, member, make_lesson, make_ticket)
        clock.set(studio_time(2026, 5, 9, 22))
        url = f"{RESERVATIONS_URL}/{reservation_id}/cancel"

        soft = client.post(url, json={}, headers=actor_headers(member))

        assert soft.status_code == 200
        assert soft.json()["requires_confirmation"] is True
        assert soft.json()["cancelled"] is False
        assert soft.json()["reservation"]["payment_status"] == "PAID"

        forced = client.post(url, json={"force_cancel": True}, headers=actor_headers(member))

        assert forced.status_code == 200
        assert forced.json()["cancelled"] is True
        assert forced.json()["ticket_returned"] is False
        db.refresh(ticket)
        assert ticket.remaining_count == 0

    def test_on_time_cancel_returns_ticket(self, client, db, clock, member, make_lesson, make_ticket) -> None:
        reservation_id, ticket = self._ticket_booking(client, member, make_lesson, make_ticket)
        clock.set(studio_time(2026, 5, 8, 20))

        response = client.post(
            f"{RESERVATIONS_URL}/{reservation_id}/cancel", json={}, headers=actor_headers(member)
        )

        assert response.status_code == 200
        assert response.json()["ticket_returned"] is True
        assert db.get(Ticket, ticket.id).remaining_count == 1

    def test_repeat_cancel_conflicts(self, client, member, make_lesson, make_reservation) -> None:
        reservation = make_reservation(make_lesson(), member)
        url = f"{RESERVATIONS_URL}/{reservation.id}/cancel"

        client.post(url, json={}, headers=actor_headers(member))
        response = client.post(url, json={}, headers=actor_headers(member))

        assert response.status_code == 409
        assert response.json()["code"] == "ALREADY_CANCELLED"

    def test_unknown_reservation(self, client, member) -> None:
        response = client.post(
            f"{RESERVATIONS_URL}/01HZY3D5PQ0000000000000000/cancel",
            json={},
            headers=actor_headers(member),
        )

        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    def test_admin_deletes_reservation(self, client, db, admin, member, make_lesson, make_reservation) -> None:
        reservation = make_reservation(make_lesson(), member)

        forbidden = client.delete(f"{RESERVATIONS_URL}/{reservation.id}", headers=actor_headers(member))
        deleted = client.delete(f"{RESERVATIONS_URL}/{reservation.id}", headers=actor_headers(admin))

        assert forbidden.status_code == 403
        assert deleted.status_code == 204
        assert db.get(Reservation, reservation.id) is None


class TestReadRoutes:
    def test_member_sees_own_reservations(self, client, member, make_user, make_lesson, make_reservation) -> None:
        lesson = make_lesson()
        mine = make_reservation(lesson, member)
        make_reservation(lesson, make_user("Other"))

        response = client.get(RESERVATIONS_URL, headers=actor_headers(member))

        assert response.status_code == 200
        assert [r["id"] for r in response.json()] == [mine.id]

    def test_other_members_reservation_is_forbidden(self, client, member, make_user, make_lesson, make_reservation) -> None:
        reservation = make_reservation(make_lesson(), member)

        response = client.get(
            f"{RESERVATIONS_URL}/{reservation.id}", headers=actor_headers(make_user("Other"))
        )

        assert response.status_code == 403

    def test_cancelled_reservation_shows_cancel_time(self, client, clock, member, make_lesson, make_reservation) -> None:
        reservation = make_reservation(make_lesson(), member)
        client.post(f"{RESERVATIONS_URL}/{reservation.id}/cancel", json={}, headers=actor_headers(member))

        body = client.get(f"{RESERVATIONS_URL}/{reservation.id}", headers=actor_headers(member)).json()

        assert body["payment_status"] == PaymentStatus.CANCELLED.value
        assert body["cancelled_at"] is not None
