# pilates_studio/routes/lessons.py
"""
Lesson routes - API v1

Endpoints:
    GET / - Schedule with free seats
    GET /{lesson_id} - One lesson with free seats and queue length
    POST / - Create a lesson (admin)
    PATCH /{lesson_id} - Edit a lesson (admin)
    DELETE /{lesson_id} - Delete an unbooked lesson (admin)
    POST /{lesson_id}/waiting-list - Join the waiting list
    DELETE /{lesson_id}/waiting-list - Leave the waiting list
    GET /{lesson_id}/waiting-list - Queue in order (admin)
    GET /{lesson_id}/reservations - Reservations on the lesson (admin)
"""

import asyncio
from datetime import datetime
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Path, Query, Response, status

from ..api.dependencies import (
    get_current_admin,
    get_current_user,
    get_lesson_service,
    get_reservation_service,
    get_waitlist_service,
)
from ..core.exceptions import DomainException
from ..models.user import User
from ..schemas.lesson import LessonCreate, LessonResponse, LessonUpdate
from ..schemas.reservation import ReservationResponse
from ..schemas.waiting_list import WaitingListEntryResponse
from ..services.lesson_service import LessonAvailability, LessonService
from ..services.reservation_service import ReservationService
from ..services.waitlist_service import WaitlistService
from . import ULID_PATH_PATTERN, handle_domain_exception

logger = logging.getLogger(__name__)

router = APIRouter(tags=["lessons-v1"])


def lesson_response(availability: LessonAvailability) -> LessonResponse:
    lesson = availability.lesson
    return LessonResponse(
        id=lesson.id,
        title=lesson.title,
        description=lesson.description,
        instructor_name=lesson.instructor_name,
        location=lesson.location,
        start_time=lesson.start_time,
        end_time=lesson.end_time,
        max_capacity=lesson.max_capacity,
        price=lesson.price,
        ticket_group_id=lesson.ticket_group_id,
        available_spots=availability.available_spots,
        waiting_count=availability.waiting_count,
        is_full=availability.is_full,
    )


@router.get("", response_model=List[LessonResponse])
async def list_lessons(
    starts_from: Optional[datetime] = Query(None),
    starts_before: Optional[datetime] = Query(None),
    ticket_group_id: Optional[str] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    lesson_service: LessonService = Depends(get_lesson_service),
) -> List[LessonResponse]:
    lessons = await asyncio.to_thread(
        lesson_service.list_lessons,
        starts_from=starts_from,
        starts_before=starts_before,
        ticket_group_id=ticket_group_id,
        skip=skip,
        limit=limit,
    )
    return [lesson_response(item) for item in lessons]


@router.get("/{lesson_id}", response_model=LessonResponse)
async def get_lesson(
    lesson_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    lesson_service: LessonService = Depends(get_lesson_service),
) -> LessonResponse:
    try:
        availability = await asyncio.to_thread(lesson_service.get_lesson, lesson_id)
    except DomainException as e:
        handle_domain_exception(e)
    return lesson_response(availability)


@router.post("", response_model=LessonResponse, status_code=status.HTTP_201_CREATED)
async def create_lesson(
    payload: LessonCreate,
    current_user: User = Depends(get_current_admin),
    lesson_service: LessonService = Depends(get_lesson_service),
) -> LessonResponse:
    try:
        lesson = await asyncio.to_thread(
            lesson_service.create_lesson, actor=current_user, **payload.model_dump()
        )
    except DomainException as e:
        handle_domain_exception(e)
    return lesson_response(LessonAvailability(lesson=lesson, available_spots=lesson.max_capacity))


@router.patch("/{lesson_id}", response_model=LessonResponse)
async def update_lesson(
    payload: LessonUpdate,
    lesson_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    current_user: User = Depends(get_current_admin),
    lesson_service: LessonService = Depends(get_lesson_service),
) -> LessonResponse:
    try:
        await asyncio.to_thread(
            lesson_service.update_lesson,
            lesson_id,
            actor=current_user,
            **payload.model_dump(exclude_unset=True),
        )
        availability = await asyncio.to_thread(lesson_service.get_lesson, lesson_id)
    except DomainException as e:
        handle_domain_exception(e)
    return lesson_response(availability)


@router.delete("/{lesson_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_lesson(
    lesson_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    current_user: User = Depends(get_current_admin),
    lesson_service: LessonService = Depends(get_lesson_service),
) -> Response:
    try:
        await asyncio.to_thread(lesson_service.delete_lesson, lesson_id, actor=current_user)
    except DomainException as e:
        handle_domain_exception(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{lesson_id}/waiting-list",
    response_model=WaitingListEntryResponse,
    status_code=status.HTTP_201_CREATED,
)
async def join_waiting_list(
    lesson_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    current_user: User = Depends(get_current_user),
    waitlist_service: WaitlistService = Depends(get_waitlist_service),
) -> WaitingListEntryResponse:
    try:
        entry = await asyncio.to_thread(waitlist_service.join, lesson_id, current_user)
        position = await asyncio.to_thread(waitlist_service.position_of, entry)
    except DomainException as e:
        handle_domain_exception(e)
    response = WaitingListEntryResponse.model_validate(entry)
    response.position = position
    return response


@router.delete("/{lesson_id}/waiting-list", status_code=status.HTTP_204_NO_CONTENT)
async def leave_waiting_list(
    lesson_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    current_user: User = Depends(get_current_user),
    waitlist_service: WaitlistService = Depends(get_waitlist_service),
) -> Response:
    try:
        await asyncio.to_thread(waitlist_service.leave, lesson_id, current_user)
    except DomainException as e:
        handle_domain_exception(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{lesson_id}/waiting-list", response_model=List[WaitingListEntryResponse])
async def list_waiting_list(
    lesson_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    current_user: User = Depends(get_current_admin),
    waitlist_service: WaitlistService = Depends(get_waitlist_service),
) -> List[WaitingListEntryResponse]:
    try:
        entries = await asyncio.to_thread(waitlist_service.list_for_lesson, lesson_id, current_user)
    except DomainException as e:
        handle_domain_exception(e)
    responses = []
    for position, entry in enumerate(entries, start=1):
        response = WaitingListEntryResponse.model_validate(entry)
        response.position = position
        responses.append(response)
    return responses


@router.get("/{lesson_id}/reservations", response_model=List[ReservationResponse])
async def list_lesson_reservations(
    lesson_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    include_cancelled: bool = Query(False),
    current_user: User = Depends(get_current_admin),
    reservation_service: ReservationService = Depends(get_reservation_service),
) -> List[ReservationResponse]:
    try:
        reservations = await asyncio.to_thread(
            reservation_service.list_reservations,
            actor=current_user,
            lesson_id=lesson_id,
            include_cancelled=include_cancelled,
        )
    except DomainException as e:
        handle_domain_exception(e)
    return [ReservationResponse.model_validate(r) for r in reservations]
