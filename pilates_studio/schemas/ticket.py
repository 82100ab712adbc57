"""Ticket DTOs."""

from typing import Optional

from pydantic import Field

from .base import StandardizedModel, StrictRequestModel, UtcDatetime


class TicketGrantRequest(StrictRequestModel):
    user_id: str
    ticket_group_id: Optional[str] = None
    count: int = Field(..., gt=0, description="Credits on the new ticket")
    name: Optional[str] = Field(None, max_length=100)


class TicketAdjustRequest(StrictRequestModel):
    delta: int = Field(..., description="Credits to add; negative removes, stopping at zero")


class TicketResponse(StandardizedModel):
    id: str
    user_id: str
    ticket_group_id: Optional[str] = None
    name: str
    remaining_count: int
    expires_at: UtcDatetime
    is_usable: bool = False
