"""Lesson template DTOs. Times are studio wall-clock times of day."""

from datetime import date, time
from typing import Optional

from pydantic import Field, model_validator

from .base import StandardizedModel, StrictRequestModel, UtcDatetime


class LessonTemplateCreate(StrictRequestModel):
    name: str = Field(..., min_length=1, max_length=100)
    template_description: Optional[str] = None
    title: str = Field(..., min_length=1, max_length=200)
    lesson_description: Optional[str] = None
    start_time: time
    end_time: time
    max_capacity: int = Field(..., gt=0)
    price: int = Field(0, ge=0)
    instructor_name: Optional[str] = Field(None, max_length=100)
    location: Optional[str] = Field(None, max_length=200)
    ticket_group_id: Optional[str] = None

    @model_validator(mode="after")
    def _end_after_start(self) -> "LessonTemplateCreate":
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class LessonTemplateUpdate(StrictRequestModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    template_description: Optional[str] = None
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    lesson_description: Optional[str] = None
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    max_capacity: Optional[int] = Field(None, gt=0)
    price: Optional[int] = Field(None, ge=0)
    instructor_name: Optional[str] = Field(None, max_length=100)
    location: Optional[str] = Field(None, max_length=200)
    ticket_group_id: Optional[str] = None


class LessonFromTemplateRequest(StrictRequestModel):
    lesson_date: date = Field(..., description="Studio calendar date of the new lesson")


class LessonTemplateResponse(StandardizedModel):
    id: str
    name: str
    template_description: Optional[str] = None
    title: str
    lesson_description: Optional[str] = None
    start_time: time
    end_time: time
    max_capacity: int
    price: int
    instructor_name: Optional[str] = None
    location: Optional[str] = None
    ticket_group_id: Optional[str] = None
    created_by: str
    created_at: UtcDatetime
