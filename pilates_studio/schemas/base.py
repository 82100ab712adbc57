"""
Base schemas shared by request and response DTOs.
"""

from datetime import datetime
from typing import Annotated

from pydantic import AfterValidator, BaseModel, ConfigDict

from ..core.timezone_utils import ensure_utc

# sqlite returns naive datetimes for values we always store in UTC
UtcDatetime = Annotated[datetime, AfterValidator(ensure_utc)]


class StandardizedModel(BaseModel):
    """Response base: reads ORM objects and serializes enums by value."""

    model_config = ConfigDict(use_enum_values=True, populate_by_name=True, from_attributes=True)


class StrictRequestModel(BaseModel):
    """Request DTO base that always forbids unexpected fields."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)
