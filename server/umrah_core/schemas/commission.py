"""Agent and commission Pydantic schemas."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from ..models.commission import CommissionStatus


class CreateAgentRequest(BaseModel):
    """Request schema for registering an agent."""

    agent_code: str = Field(..., min_length=1, max_length=32, description="Unique agent code")
    name: str = Field(..., min_length=1, max_length=255, description="Agent display name")
    commission_rate: Decimal = Field(
        ...,
        ge=0,
        le=100,
        max_digits=5,
        decimal_places=2,
        description="Commission percentage of the booking price"
    )
    is_active: bool = Field(True, description="Inactive agents earn no new commission")


class AgentRequest(BaseModel):
    """Request schema addressing a single agent."""

    agent_id: UUID = Field(..., description="Agent to address")


class ListCommissionsRequest(AgentRequest):
    """Request schema for listing an agent's commissions."""

    status: CommissionStatus | None = Field(None, description="Filter by status")


class MarkCommissionPaidRequest(BaseModel):
    """Request schema for disbursing a commission."""

    commission_id: UUID = Field(..., description="Commission to pay out")
    notes: str | None = Field(None, max_length=2000)


class Agent(BaseModel):
    """Agent response schema."""

    id: UUID
    agent_code: str
    name: str
    commission_rate: Decimal
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class Commission(BaseModel):
    """Commission response schema."""

    id: UUID
    agent_id: UUID
    booking_id: UUID
    commission_amount: int
    commission_rate: Decimal
    status: CommissionStatus
    paid_at: datetime | None = None
    paid_by: str | None = None
    notes: str | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ListCommissionsResponse(BaseModel):
    """Response schema for commission listings."""

    items: list[Commission]


class AgentSummary(BaseModel):
    """Commission totals of an agent."""

    agent_id: UUID
    pending_total: int = Field(..., description="Commission earned but not yet paid out")
    paid_total: int = Field(..., description="Commission paid out")
    pending_count: int
    paid_count: int
    void_count: int = Field(..., description="Commissions voided by cancellation or refund")
    wallet_balance: int
