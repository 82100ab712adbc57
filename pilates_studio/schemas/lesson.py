"""Lesson and ticket group DTOs."""

from typing import Optional

from pydantic import Field, model_validator

from .base import StandardizedModel, StrictRequestModel, UtcDatetime


class LessonCreate(StrictRequestModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    instructor_name: Optional[str] = Field(None, max_length=100)
    location: Optional[str] = Field(None, max_length=200)
    start_time: UtcDatetime
    end_time: UtcDatetime
    max_capacity: int = Field(..., gt=0, description="Seats on the lesson")
    price: int = Field(0, ge=0, description="Drop-in price in the studio currency")
    ticket_group_id: Optional[str] = Field(
        None, description="Ticket group whose tickets can pay for this lesson"
    )

    @model_validator(mode="after")
    def _end_after_start(self) -> "LessonCreate":
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class LessonUpdate(StrictRequestModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    instructor_name: Optional[str] = Field(None, max_length=100)
    location: Optional[str] = Field(None, max_length=200)
    start_time: Optional[UtcDatetime] = None
    end_time: Optional[UtcDatetime] = None
    max_capacity: Optional[int] = Field(None, gt=0)
    price: Optional[int] = Field(None, ge=0)
    ticket_group_id: Optional[str] = None


class LessonResponse(StandardizedModel):
    id: str
    title: str
    description: Optional[str] = None
    instructor_name: Optional[str] = None
    location: Optional[str] = None
    start_time: UtcDatetime
    end_time: UtcDatetime
    max_capacity: int
    price: int
    ticket_group_id: Optional[str] = None
    available_spots: int = Field(..., description="Free seats right now; 0 means full")
    waiting_count: int = 0
    is_full: bool


class TicketGroupCreate(StrictRequestModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None


class TicketGroupResponse(StandardizedModel):
    id: str
    name: str
    description: Optional[str] = None
