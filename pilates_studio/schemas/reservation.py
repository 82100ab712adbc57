"""Reservation DTOs."""

from typing import Optional

from pydantic import EmailStr, Field, model_validator

from ..models.reservation import PaymentMethod, PaymentStatus, ReservationType
from .base import StandardizedModel, StrictRequestModel, UtcDatetime


def _check_ticket_pairing(reservation_type: ReservationType, payment_method: PaymentMethod) -> None:
    if (reservation_type == ReservationType.TICKET) != (payment_method == PaymentMethod.TICKET):
        raise ValueError("reservation_type TICKET must be paid with payment_method TICKET")


class GuestDetails(StrictRequestModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    phone: Optional[str] = Field(None, max_length=30)


class ReservationCreate(StrictRequestModel):
    lesson_id: str
    reservation_type: ReservationType
    payment_method: PaymentMethod
    agree_to_consent: bool = Field(
        False, description="Accept the studio consent form as part of this booking"
    )
    guest: Optional[GuestDetails] = Field(
        None, description="Contact details when booking without an account"
    )

    @model_validator(mode="after")
    def _ticket_pairing(self) -> "ReservationCreate":
        _check_ticket_pairing(self.reservation_type, self.payment_method)
        return self


class NewMemberReservationCreate(GuestDetails):
    lesson_id: str
    reservation_type: ReservationType
    payment_method: PaymentMethod
    agree_to_consent: bool = False

    @model_validator(mode="after")
    def _ticket_pairing(self) -> "NewMemberReservationCreate":
        _check_ticket_pairing(self.reservation_type, self.payment_method)
        return self


class ReservationResponse(StandardizedModel):
    id: str
    lesson_id: str
    user_id: Optional[str] = None
    customer_name: str
    customer_email: str
    customer_phone: Optional[str] = None
    reservation_type: ReservationType
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    created_at: UtcDatetime
    cancelled_at: Optional[UtcDatetime] = None


class CancellationRequest(StrictRequestModel):
    force_cancel: bool = Field(
        False, description="Confirm a late cancellation that forfeits the ticket"
    )


class CancellationResponse(StandardizedModel):
    cancelled: bool
    requires_confirmation: bool
    is_late_cancellation: bool
    ticket_returned: bool
    deadline: UtcDatetime = Field(..., description="Free cancellation deadline")
    message: str
    promoted_reservation_id: Optional[str] = None
    reservation: ReservationResponse


class TrialStatusResponse(StandardizedModel):
    has_used_trial: bool
    has_pending_trial_claim: bool
    can_book_trial: bool


class ConsentStatusResponse(StandardizedModel):
    consent_required: bool
    has_consented: bool
    consent_agreed_at: Optional[UtcDatetime] = None
