# pilates_studio/routes/lesson_templates.py
"""
Lesson template routes - API v1 (admin)

Endpoints:
    GET / - The caller's templates, newest first
    POST / - Create a template
    GET /{template_id} - One template
    PATCH /{template_id} - Edit a template
    DELETE /{template_id} - Delete a template
    POST /{template_id}/lessons - Create a lesson from a template on a date
"""

import asyncio
from typing import List

from fastapi import APIRouter, Depends, Path, Response, status

from ..api.dependencies import get_current_admin, get_lesson_template_service
from ..core.exceptions import DomainException
from ..models.user import User
from ..schemas.lesson import LessonResponse
from ..schemas.lesson_template import (
    LessonFromTemplateRequest,
    LessonTemplateCreate,
    LessonTemplateResponse,
    LessonTemplateUpdate,
)
from ..services.lesson_service import LessonAvailability
from ..services.lesson_template_service import LessonTemplateService
from . import ULID_PATH_PATTERN, handle_domain_exception
from .lessons import lesson_response

router = APIRouter(tags=["lesson-templates-v1"])


@router.get("", response_model=List[LessonTemplateResponse])
async def list_templates(
    current_user: User = Depends(get_current_admin),
    template_service: LessonTemplateService = Depends(get_lesson_template_service),
) -> List[LessonTemplateResponse]:
    templates = await asyncio.to_thread(template_service.list_templates, actor=current_user)
    return [LessonTemplateResponse.model_validate(t) for t in templates]


@router.post("", response_model=LessonTemplateResponse, status_code=status.HTTP_201_CREATED)
async def create_template(
    payload: LessonTemplateCreate,
    current_user: User = Depends(get_current_admin),
    template_service: LessonTemplateService = Depends(get_lesson_template_service),
) -> LessonTemplateResponse:
    try:
        template = await asyncio.to_thread(
            template_service.create_template, actor=current_user, **payload.model_dump()
        )
    except DomainException as e:
        handle_domain_exception(e)
    return LessonTemplateResponse.model_validate(template)


@router.get("/{template_id}", response_model=LessonTemplateResponse)
async def get_template(
    template_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    current_user: User = Depends(get_current_admin),
    template_service: LessonTemplateService = Depends(get_lesson_template_service),
) -> LessonTemplateResponse:
    try:
        template = await asyncio.to_thread(
            template_service.get_template, template_id, actor=current_user
        )
    except DomainException as e:
        handle_domain_exception(e)
    return LessonTemplateResponse.model_validate(template)


@router.patch("/{template_id}", response_model=LessonTemplateResponse)
async def update_template(
    payload: LessonTemplateUpdate,
    template_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    current_user: User = Depends(get_current_admin),
    template_service: LessonTemplateService = Depends(get_lesson_template_service),
) -> LessonTemplateResponse:
    try:
        template = await asyncio.to_thread(
            template_service.update_template,
            template_id,
            actor=current_user,
            **payload.model_dump(exclude_unset=True),
        )
    except DomainException as e:
        handle_domain_exception(e)
    return LessonTemplateResponse.model_validate(template)


@router.delete("/{template_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_template(
    template_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    current_user: User = Depends(get_current_admin),
    template_service: LessonTemplateService = Depends(get_lesson_template_service),
) -> Response:
    try:
        await asyncio.to_thread(template_service.delete_template, template_id, actor=current_user)
    except DomainException as e:
        handle_domain_exception(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{template_id}/lessons", response_model=LessonResponse, status_code=status.HTTP_201_CREATED
)
async def create_lesson_from_template(
    payload: LessonFromTemplateRequest,
    template_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    current_user: User = Depends(get_current_admin),
    template_service: LessonTemplateService = Depends(get_lesson_template_service),
) -> LessonResponse:
    try:
        lesson = await asyncio.to_thread(
            template_service.create_lesson_from_template,
            template_id,
            actor=current_user,
            lesson_date=payload.lesson_date,
        )
    except DomainException as e:
        handle_domain_exception(e)
    return lesson_response(LessonAvailability(lesson=lesson, available_spots=lesson.max_capacity))
