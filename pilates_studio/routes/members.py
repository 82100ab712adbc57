# pilates_studio/routes/members.py
"""
Member self-service routes - API v1

Endpoints:
    GET /me/tickets - Own tickets, soonest expiry first
    GET /me/trial-status - Whether the trial is still available
    GET /me/consent-status - Whether consent has been recorded
    GET /me/waiting-list - Lessons the caller is queued for
"""

import asyncio
from typing import List

from fastapi import APIRouter, Depends

from ..api.dependencies import (
    get_current_user,
    get_reservation_service,
    get_ticket_account_service,
    get_waitlist_service,
)
from ..core import timezone_utils
from ..models.ticket import Ticket
from ..models.user import User
from ..schemas.reservation import ConsentStatusResponse, TrialStatusResponse
from ..schemas.ticket import TicketResponse
from ..schemas.waiting_list import WaitingListEntryResponse
from ..services.reservation_service import ReservationService
from ..services.ticket_account_service import TicketAccountService
from ..services.waitlist_service import WaitlistService

router = APIRouter(tags=["members-v1"])


def ticket_response(ticket: Ticket) -> TicketResponse:
    return TicketResponse(
        id=ticket.id,
        user_id=ticket.user_id,
        ticket_group_id=ticket.ticket_group_id,
        name=ticket.name,
        remaining_count=ticket.remaining_count,
        expires_at=ticket.expires_at,
        is_usable=ticket.usable_at(timezone_utils.utc_now()),
    )


@router.get("/me/tickets", response_model=List[TicketResponse])
async def list_my_tickets(
    current_user: User = Depends(get_current_user),
    ticket_service: TicketAccountService = Depends(get_ticket_account_service),
) -> List[TicketResponse]:
    tickets = await asyncio.to_thread(ticket_service.list_for_user, current_user.id)
    return [ticket_response(t) for t in tickets]


@router.get("/me/trial-status", response_model=TrialStatusResponse)
async def get_trial_status(
    current_user: User = Depends(get_current_user),
    reservation_service: ReservationService = Depends(get_reservation_service),
) -> TrialStatusResponse:
    status = await asyncio.to_thread(reservation_service.get_trial_status, current_user)
    return TrialStatusResponse(**status)


@router.get("/me/consent-status", response_model=ConsentStatusResponse)
async def get_consent_status(
    current_user: User = Depends(get_current_user),
    reservation_service: ReservationService = Depends(get_reservation_service),
) -> ConsentStatusResponse:
    return ConsentStatusResponse(**reservation_service.get_consent_status(current_user))


@router.get("/me/waiting-list", response_model=List[WaitingListEntryResponse])
async def list_my_waiting_list(
    current_user: User = Depends(get_current_user),
    waitlist_service: WaitlistService = Depends(get_waitlist_service),
) -> List[WaitingListEntryResponse]:
    entries = await asyncio.to_thread(waitlist_service.list_for_member, current_user)
    return [WaitingListEntryResponse.model_validate(e) for e in entries]
