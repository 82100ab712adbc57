# pilates_studio/routes/admin.py
"""
Studio admin routes - API v1

Endpoints:
    POST /tickets - Grant a ticket to a member
    POST /tickets/{ticket_id}/adjust - Correct a ticket balance
    GET /users/{user_id}/tickets - A member's tickets
    POST /ticket-groups - Create a ticket group
    GET /ticket-groups - List ticket groups
    GET /reservations - All reservations, optionally per lesson
    POST /reservations/{reservation_id}/cancel - Cancel with refund, no deadline
"""

import asyncio
from typing import List, Optional

from fastapi import APIRouter, Depends, Path, Query, status

from ..api.dependencies import (
    get_current_admin,
    get_reservation_service,
    get_ticket_account_service,
)
from ..core.exceptions import DomainException
from ..models.user import User
from ..schemas.lesson import TicketGroupCreate, TicketGroupResponse
from ..schemas.reservation import CancellationResponse, ReservationResponse
from ..schemas.ticket import TicketAdjustRequest, TicketGrantRequest, TicketResponse
from ..services.reservation_service import ReservationService
from ..services.ticket_account_service import TicketAccountService
from . import ULID_PATH_PATTERN, handle_domain_exception
from .members import ticket_response
from .reservations import cancellation_response

router = APIRouter(tags=["admin-v1"])


@router.post("/tickets", response_model=TicketResponse, status_code=status.HTTP_201_CREATED)
async def grant_ticket(
    payload: TicketGrantRequest,
    current_user: User = Depends(get_current_admin),
    ticket_service: TicketAccountService = Depends(get_ticket_account_service),
) -> TicketResponse:
    try:
        ticket = await asyncio.to_thread(
            ticket_service.grant,
            actor=current_user,
            user_id=payload.user_id,
            ticket_group_id=payload.ticket_group_id,
            count=payload.count,
            name=payload.name,
        )
    except DomainException as e:
        handle_domain_exception(e)
    return ticket_response(ticket)


@router.post("/tickets/{ticket_id}/adjust", response_model=TicketResponse)
async def adjust_ticket(
    payload: TicketAdjustRequest,
    ticket_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    current_user: User = Depends(get_current_admin),
    ticket_service: TicketAccountService = Depends(get_ticket_account_service),
) -> TicketResponse:
    try:
        ticket = await asyncio.to_thread(
            ticket_service.adjust, actor=current_user, ticket_id=ticket_id, delta=payload.delta
        )
    except DomainException as e:
        handle_domain_exception(e)
    return ticket_response(ticket)


@router.get("/users/{user_id}/tickets", response_model=List[TicketResponse])
async def list_user_tickets(
    user_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    current_user: User = Depends(get_current_admin),
    ticket_service: TicketAccountService = Depends(get_ticket_account_service),
) -> List[TicketResponse]:
    try:
        tickets = await asyncio.to_thread(
            ticket_service.list_for_member, actor=current_user, user_id=user_id
        )
    except DomainException as e:
        handle_domain_exception(e)
    return [ticket_response(t) for t in tickets]


@router.post(
    "/ticket-groups", response_model=TicketGroupResponse, status_code=status.HTTP_201_CREATED
)
async def create_ticket_group(
    payload: TicketGroupCreate,
    current_user: User = Depends(get_current_admin),
    ticket_service: TicketAccountService = Depends(get_ticket_account_service),
) -> TicketGroupResponse:
    try:
        group = await asyncio.to_thread(
            ticket_service.create_ticket_group,
            actor=current_user,
            name=payload.name,
            description=payload.description,
        )
    except DomainException as e:
        handle_domain_exception(e)
    return TicketGroupResponse.model_validate(group)


@router.get("/ticket-groups", response_model=List[TicketGroupResponse])
async def list_ticket_groups(
    current_user: User = Depends(get_current_admin),
    ticket_service: TicketAccountService = Depends(get_ticket_account_service),
) -> List[TicketGroupResponse]:
    groups = await asyncio.to_thread(ticket_service.list_ticket_groups)
    return [TicketGroupResponse.model_validate(g) for g in groups]


@router.get("/reservations", response_model=List[ReservationResponse])
async def list_reservations(
    lesson_id: Optional[str] = Query(None),
    include_cancelled: bool = Query(False),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    current_user: User = Depends(get_current_admin),
    reservation_service: ReservationService = Depends(get_reservation_service),
) -> List[ReservationResponse]:
    try:
        reservations = await asyncio.to_thread(
            reservation_service.list_reservations,
            actor=current_user,
            lesson_id=lesson_id,
            include_cancelled=include_cancelled,
            skip=skip,
            limit=limit,
        )
    except DomainException as e:
        handle_domain_exception(e)
    return [ReservationResponse.model_validate(r) for r in reservations]


@router.post("/reservations/{reservation_id}/cancel", response_model=CancellationResponse)
async def admin_cancel_reservation(
    reservation_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    current_user: User = Depends(get_current_admin),
    reservation_service: ReservationService = Depends(get_reservation_service),
) -> CancellationResponse:
    try:
        outcome = await asyncio.to_thread(
            reservation_service.admin_cancel_reservation, reservation_id, actor=current_user
        )
    except DomainException as e:
        handle_domain_exception(e)
    return cancellation_response(outcome)
