"""Waiting list DTOs."""

from typing import Optional

from .base import StandardizedModel, UtcDatetime


class WaitingListEntryResponse(StandardizedModel):
    id: str
    lesson_id: str
    user_id: str
    is_trial_claim: bool
    created_at: UtcDatetime
    position: Optional[int] = None
