# pilates_studio/routes/reservations.py
"""
Reservation routes - API v1

Endpoints:
    POST / - Book a lesson (member, or guest with contact details)
    POST /new-member - Create an account and book its first lesson
    GET / - The caller's reservations
    GET /{reservation_id} - One reservation (owner or admin)
    POST /{reservation_id}/cancel - Cancel; late ticket cancellations need force_cancel
    DELETE /{reservation_id} - Admin correction: remove the row
"""

import asyncio
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Path, Response, status

from ..api.dependencies import (
    get_current_admin,
    get_current_user,
    get_optional_user,
    get_reservation_service,
)
from ..core.exceptions import DomainException
from ..models.user import User
from ..schemas.reservation import (
    CancellationRequest,
    CancellationResponse,
    NewMemberReservationCreate,
    ReservationCreate,
    ReservationResponse,
)
from ..services.reservation_service import CancellationOutcome, GuestInfo, ReservationService
from . import ULID_PATH_PATTERN, handle_domain_exception

logger = logging.getLogger(__name__)

router = APIRouter(tags=["reservations-v1"])


def cancellation_response(outcome: CancellationOutcome) -> CancellationResponse:
    return CancellationResponse(
        cancelled=outcome.cancelled,
        requires_confirmation=outcome.requires_confirmation,
        is_late_cancellation=outcome.is_late_cancellation,
        ticket_returned=outcome.ticket_returned,
        deadline=outcome.deadline,
        message=outcome.message,
        promoted_reservation_id=outcome.promoted_reservation_id,
        reservation=ReservationResponse.model_validate(outcome.reservation),
    )


@router.post("", response_model=ReservationResponse, status_code=status.HTTP_201_CREATED)
async def create_reservation(
    payload: ReservationCreate,
    current_user: Optional[User] = Depends(get_optional_user),
    reservation_service: ReservationService = Depends(get_reservation_service),
) -> ReservationResponse:
    guest = None
    if current_user is None and payload.guest is not None:
        guest = GuestInfo(
            name=payload.guest.name, email=str(payload.guest.email), phone=payload.guest.phone
        )
    try:
        reservation = await asyncio.to_thread(
            reservation_service.create_reservation,
            lesson_id=payload.lesson_id,
            reservation_type=payload.reservation_type,
            payment_method=payload.payment_method,
            actor=current_user,
            guest=guest,
            agree_to_consent=payload.agree_to_consent,
        )
    except DomainException as e:
        handle_domain_exception(e)
    return ReservationResponse.model_validate(reservation)


@router.post(
    "/new-member", response_model=ReservationResponse, status_code=status.HTTP_201_CREATED
)
async def register_and_reserve(
    payload: NewMemberReservationCreate,
    reservation_service: ReservationService = Depends(get_reservation_service),
) -> ReservationResponse:
    try:
        reservation = await asyncio.to_thread(
            reservation_service.register_and_reserve,
            guest=GuestInfo(name=payload.name, email=str(payload.email), phone=payload.phone),
            lesson_id=payload.lesson_id,
            reservation_type=payload.reservation_type,
            payment_method=payload.payment_method,
            agree_to_consent=payload.agree_to_consent,
        )
    except DomainException as e:
        handle_domain_exception(e)
    return ReservationResponse.model_validate(reservation)


@router.get("", response_model=List[ReservationResponse])
async def list_my_reservations(
    current_user: User = Depends(get_current_user),
    reservation_service: ReservationService = Depends(get_reservation_service),
) -> List[ReservationResponse]:
    reservations = await asyncio.to_thread(
        reservation_service.list_member_reservations, current_user
    )
    return [ReservationResponse.model_validate(r) for r in reservations]


@router.get("/{reservation_id}", response_model=ReservationResponse)
async def get_reservation(
    reservation_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    current_user: User = Depends(get_current_user),
    reservation_service: ReservationService = Depends(get_reservation_service),
) -> ReservationResponse:
    try:
        reservation = await asyncio.to_thread(
            reservation_service.get_reservation, reservation_id, actor=current_user
        )
    except DomainException as e:
        handle_domain_exception(e)
    return ReservationResponse.model_validate(reservation)


@router.post("/{reservation_id}/cancel", response_model=CancellationResponse)
async def cancel_reservation(
    payload: CancellationRequest,
    reservation_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    current_user: User = Depends(get_current_user),
    reservation_service: ReservationService = Depends(get_reservation_service),
) -> CancellationResponse:
    """
    Cancel a reservation.

    A late cancellation of a ticket reservation without ``force_cancel``
    answers 200 with ``requires_confirmation=true`` and changes nothing.
    """
    try:
        outcome = await asyncio.to_thread(
            reservation_service.cancel_reservation,
            reservation_id,
            actor=current_user,
            force_cancel=payload.force_cancel,
        )
    except DomainException as e:
        handle_domain_exception(e)
    return cancellation_response(outcome)


@router.delete("/{reservation_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_reservation(
    reservation_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    current_user: User = Depends(get_current_admin),
    reservation_service: ReservationService = Depends(get_reservation_service),
) -> Response:
    try:
        await asyncio.to_thread(
            reservation_service.delete_reservation, reservation_id, actor=current_user
        )
    except DomainException as e:
        handle_domain_exception(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
