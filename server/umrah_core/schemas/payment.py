"""Payment-related Pydantic schemas."""

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from ..models.payment import PaymentRecordStatus
from .booking import Booking


class SubmitPaymentRequest(BaseModel):
    """Request schema for submitting a payment against a booking."""

    booking_id: UUID = Field(..., description="Booking being paid")
    amount: int = Field(..., gt=0, description="Amount in whole currency units")
    payment_method: str | None = Field(None, max_length=50, description="Transfer, cash, card")
    proof_url: str | None = Field(None, max_length=2000, description="Uploaded proof of payment")
    notes: str | None = Field(None, max_length=2000, description="Customer notes")


class VerifyPaymentRequest(BaseModel):
    """Request schema for approving or rejecting a pending payment."""

    payment_id: UUID = Field(..., description="Payment to resolve")
    outcome: Literal["paid", "failed"] = Field(..., description="Verification outcome")
    notes: str | None = Field(None, max_length=2000, description="Verifier notes")


class ListPaymentsRequest(BaseModel):
    """Request schema for listing a booking's payments."""

    booking_id: UUID = Field(..., description="Booking to list payments for")


class SendRemindersRequest(BaseModel):
    """Request schema for payment reminders."""

    days_until_departure: int = Field(30, ge=0, le=365, description="Departure window in days")


class Payment(BaseModel):
    """Payment response schema."""

    id: UUID
    booking_id: UUID
    payment_code: str
    amount: int
    status: PaymentRecordStatus
    payment_method: str | None = None
    proof_url: str | None = None
    notes: str | None = None
    verified_at: datetime | None = None
    verified_by: str | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class VerifyPaymentResponse(BaseModel):
    """Resolved payment together with the booking state it produced."""

    payment: Payment
    booking: Booking


class ListPaymentsResponse(BaseModel):
    """Response schema for payment listings."""

    items: list[Payment]


class SendRemindersResponse(BaseModel):
    """Bookings a reminder was sent for."""

    notified: int = Field(..., description="Reminders handed to the notification sender")
    booking_codes: list[str] = Field(default_factory=list)
