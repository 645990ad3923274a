"""Savings and installment plan Pydantic schemas."""

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from ..models.payment import PaymentRecordStatus, PlanStatus, PlanType


class CreatePlanRequest(BaseModel):
    """Request schema for opening a savings or installment plan."""

    customer_id: str = Field(..., min_length=1, max_length=64, description="Plan owner")
    package_id: str | None = Field(None, max_length=64, description="Package being saved for")
    plan_type: PlanType = Field(PlanType.SAVINGS, description="Savings or installment")
    target_amount: int = Field(..., gt=0, description="Amount to reach in whole currency units")
    monthly_amount: int | None = Field(None, gt=0, description="Expected monthly deposit")
    tenor_months: int | None = Field(None, ge=1, le=120, description="Planned duration in months")
    notes: str | None = Field(None, max_length=2000)


class PlanRequest(BaseModel):
    """Request schema addressing a single plan."""

    plan_id: UUID = Field(..., description="Plan to address")


class CancelPlanRequest(PlanRequest):
    """Request schema for cancelling a plan."""

    reason: str | None = Field(None, max_length=500)


class SubmitPlanPaymentRequest(BaseModel):
    """Request schema for submitting a deposit to a plan."""

    plan_id: UUID = Field(..., description="Plan being paid")
    amount: int = Field(..., gt=0, description="Amount in whole currency units")
    payment_method: str | None = Field(None, max_length=50)
    proof_url: str | None = Field(None, max_length=2000)
    notes: str | None = Field(None, max_length=2000)


class VerifyPlanPaymentRequest(BaseModel):
    """Request schema for approving or rejecting a plan deposit."""

    payment_id: UUID = Field(..., description="Plan payment to resolve")
    outcome: Literal["paid", "failed"] = Field(..., description="Verification outcome")
    notes: str | None = Field(None, max_length=2000)


class PlanPayment(BaseModel):
    """Plan payment response schema."""

    id: UUID
    plan_id: UUID
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


class SavingsPlan(BaseModel):
    """Plan response schema."""

    id: UUID
    customer_id: str
    package_id: str | None = None
    plan_type: PlanType
    target_amount: int
    paid_amount: int
    remaining_amount: int
    monthly_amount: int | None = None
    tenor_months: int | None = None
    status: PlanStatus
    notes: str | None = None
    version: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class VerifyPlanPaymentResponse(BaseModel):
    """Resolved plan payment together with the plan state it produced."""

    payment: PlanPayment
    plan: SavingsPlan


class ListPlanPaymentsResponse(BaseModel):
    """Response schema for plan payment listings."""

    items: list[PlanPayment]
