# pilates_studio/services/lesson_template_service.py
"""
Lesson templates: admin presets that stamp out lessons on a chosen date.

Template times are studio wall-clock times, so a template for a 10:00 class
yields a 10:00 lesson at the studio whatever the UTC offset on that date.
"""

from datetime import date, time
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..core import timezone_utils
from ..core.exceptions import NotFoundException, ValidationException
from ..models.lesson import Lesson
from ..models.lesson_template import LessonTemplate
from ..models.user import User
from ..repositories.lesson_template_repository import LessonTemplateRepository
from ..repositories.ticket_repository import TicketGroupRepository
from .base import BaseService, ensure_admin
from .lesson_service import LessonService

_TEMPLATE_FIELDS = (
    "name",
    "template_description",
    "title",
    "lesson_description",
    "start_time",
    "end_time",
    "max_capacity",
    "price",
    "instructor_name",
    "location",
    "ticket_group_id",
)


class LessonTemplateService(BaseService):
    def __init__(self, db: Session, lesson_service: Optional[LessonService] = None):
        super().__init__(db)
        self.template_repository = LessonTemplateRepository(db)
        self.ticket_group_repository = TicketGroupRepository(db)
        self.lesson_service = lesson_service or LessonService(db)

    def _validate(self, values: Dict[str, Any]) -> Dict[str, Any]:
        if not (values.get("name") or "").strip():
            raise ValidationException("Template name is required", code="INVALID_TEMPLATE")
        if not (values.get("title") or "").strip():
            raise ValidationException("Lesson title is required", code="INVALID_TEMPLATE")
        if values["end_time"] <= values["start_time"]:
            raise ValidationException(
                "Lesson must end after it starts",
                code="INVALID_LESSON_TIME",
                details={
                    "start_time": values["start_time"].isoformat(),
                    "end_time": values["end_time"].isoformat(),
                },
            )
        if values["max_capacity"] is None or values["max_capacity"] <= 0:
            raise ValidationException(
                "Capacity must be a positive number",
                code="INVALID_CAPACITY",
                details={"max_capacity": values["max_capacity"]},
            )
        if (values.get("price") or 0) < 0:
            raise ValidationException("Price cannot be negative", details={"price": values["price"]})
        group_id = values.get("ticket_group_id")
        if group_id is not None and self.ticket_group_repository.get_by_id(group_id) is None:
            raise NotFoundException(
                f"Ticket group {group_id} not found", details={"ticket_group_id": group_id}
            )
        return values

    def _get_or_404(self, template_id: str) -> LessonTemplate:
        template = self.template_repository.get_by_id(template_id)
        if template is None:
            raise NotFoundException(
                f"Lesson template {template_id} not found", details={"template_id": template_id}
            )
        return template

    @BaseService.measure_operation("create_lesson_template")
    def create_template(
        self,
        *,
        actor: User,
        name: str,
        title: str,
        start_time: time,
        end_time: time,
        max_capacity: int,
        price: int = 0,
        template_description: Optional[str] = None,
        lesson_description: Optional[str] = None,
        instructor_name: Optional[str] = None,
        location: Optional[str] = None,
        ticket_group_id: Optional[str] = None,
    ) -> LessonTemplate:
        ensure_admin(actor)
        values = self._validate(
            {
                "name": name,
                "template_description": template_description,
                "title": title,
                "lesson_description": lesson_description,
                "start_time": start_time,
                "end_time": end_time,
                "max_capacity": max_capacity,
                "price": price,
                "instructor_name": instructor_name,
                "location": location,
                "ticket_group_id": ticket_group_id,
            }
        )
        with self.transaction():
            template = self.template_repository.create(created_by=actor.id, **values)
        self.log_operation("create_lesson_template", template_id=template.id)
        return template

    @BaseService.measure_operation("update_lesson_template")
    def update_template(self, template_id: str, *, actor: User, **changes: Any) -> LessonTemplate:
        ensure_admin(actor)
        unknown = set(changes) - set(_TEMPLATE_FIELDS)
        if unknown:
            raise ValidationException(
                "Unknown template fields", details={"fields": sorted(unknown)}
            )
        with self.transaction():
            template = self._get_or_404(template_id)
            merged = {field: getattr(template, field) for field in _TEMPLATE_FIELDS}
            merged.update(changes)
            values = self._validate(merged)
            for field in changes:
                setattr(template, field, values[field])
            self.db.flush()
        self.log_operation("update_lesson_template", template_id=template_id, fields=sorted(changes))
        return template

    @BaseService.measure_operation("delete_lesson_template")
    def delete_template(self, template_id: str, *, actor: User) -> None:
        """Lessons already made from the template are unaffected."""
        ensure_admin(actor)
        with self.transaction():
            self._get_or_404(template_id)
            self.template_repository.delete(template_id)
        self.log_operation("delete_lesson_template", template_id=template_id)

    def get_template(self, template_id: str, *, actor: User) -> LessonTemplate:
        ensure_admin(actor)
        return self._get_or_404(template_id)

    def list_templates(self, *, actor: User) -> List[LessonTemplate]:
        ensure_admin(actor)
        return self.template_repository.list_for_owner(actor.id)

    def create_lesson_from_template(
        self, template_id: str, *, actor: User, lesson_date: date
    ) -> Lesson:
        """Create a lesson on ``lesson_date`` (studio calendar) from a template."""
        ensure_admin(actor)
        template = self._get_or_404(template_id)
        lesson = self.lesson_service.create_lesson(
            actor=actor,
            title=template.title,
            description=template.lesson_description,
            instructor_name=template.instructor_name,
            location=template.location,
            start_time=timezone_utils.studio_datetime(lesson_date, template.start_time),
            end_time=timezone_utils.studio_datetime(lesson_date, template.end_time),
            max_capacity=template.max_capacity,
            price=template.price,
            ticket_group_id=template.ticket_group_id,
        )
        self.log_operation(
            "create_lesson_from_template", template_id=template_id, lesson_id=lesson.id
        )
        return lesson
