"""Departure-related Pydantic schemas."""

from datetime import date, datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..core.config import settings
from ..models.departure import DepartureStatus
from ..models.inventory import MovementKind
from .common import PageRequest, PaginatedResponse


class RoomPrices(BaseModel):
    """Per person price by room type in whole currency units."""

    quad: int | None = Field(None, ge=0, description="Price per person in a quad room")
    triple: int | None = Field(None, ge=0, description="Price per person in a triple room")
    double: int | None = Field(None, ge=0, description="Price per person in a double room")
    single: int | None = Field(None, ge=0, description="Price per person in a single room")


class CreateDepartureRequest(BaseModel):
    """Request schema for creating a departure."""

    package_id: str | None = Field(None, max_length=64, description="Catalogue package reference")
    departure_date: date = Field(..., description="Departure date")
    return_date: date | None = Field(None, description="Return date")
    quota: int = Field(..., ge=1, le=1000, description="Seats available for sale")
    prices: RoomPrices = Field(default_factory=RoomPrices, description="Room type prices")
    currency: str = Field(
        default_factory=lambda: settings.default_currency,
        pattern=r"^[A-Z]{3}$",
        description="ISO 4217 currency code"
    )
    hotel_makkah_id: str | None = Field(None, max_length=64, description="Hotel in Makkah")
    hotel_madinah_id: str | None = Field(None, max_length=64, description="Hotel in Madinah")

    @model_validator(mode="after")
    def check_dates(self) -> "CreateDepartureRequest":
        if self.return_date and self.return_date < self.departure_date:
            raise ValueError("return_date must not be before departure_date")
        return self


class GetDepartureRequest(BaseModel):
    """Request schema for reading a departure or its availability."""

    departure_id: UUID = Field(..., description="Departure to retrieve")


class SeatMovementRequest(BaseModel):
    """Request schema for reserving or releasing seats outside a booking."""

    departure_id: UUID = Field(..., description="Departure to change")
    pax_count: int = Field(..., ge=1, le=100, description="Number of seats")
    reason: str = Field("manual", min_length=1, max_length=500, description="Why the seats move")


class AdjustQuotaRequest(BaseModel):
    """Request schema for adjusting a departure quota."""

    departure_id: UUID = Field(..., description="Departure to adjust")
    delta: int = Field(..., ge=-1000, le=1000, description="Quota change, positive or negative")
    reason: str = Field(..., min_length=1, max_length=500, description="Reason for the adjustment")

    @model_validator(mode="after")
    def check_delta(self) -> "AdjustQuotaRequest":
        if self.delta == 0:
            raise ValueError("delta must not be zero")
        return self


class SetDepartureStatusRequest(BaseModel):
    """Request schema for closing, reopening or departing a departure."""

    departure_id: UUID = Field(..., description="Departure to change")
    status: Literal["open", "closed", "departed"] = Field(..., description="Requested status")


class SearchDeparturesRequest(PageRequest):
    """Request schema for searching departures."""

    package_id: str | None = Field(None, description="Filter by package")
    date_from: date | None = Field(None, description="Earliest departure date")
    date_to: date | None = Field(None, description="Latest departure date")
    status: DepartureStatus | None = Field(None, description="Filter by status")
    available_only: bool = Field(False, description="Only departures with free seats")


class Departure(BaseModel):
    """Departure response schema."""

    id: UUID = Field(..., description="Unique departure ID")
    package_id: str | None = Field(None, description="Catalogue package reference")
    departure_date: date = Field(..., description="Departure date")
    return_date: date | None = Field(None, description="Return date")
    quota: int = Field(..., description="Seats available for sale")
    booked_count: int = Field(..., description="Seats already booked")
    available: int = Field(..., description="Seats still free")
    status: DepartureStatus = Field(..., description="Departure status")
    prices: RoomPrices = Field(..., description="Room type prices")
    currency: str = Field(..., description="ISO 4217 currency code")
    hotel_makkah_id: str | None = Field(None, description="Hotel in Makkah")
    hotel_madinah_id: str | None = Field(None, description="Hotel in Madinah")


class Availability(BaseModel):
    """Seat availability of a departure."""

    departure_id: UUID = Field(..., description="Departure ID")
    quota: int = Field(..., description="Seats available for sale")
    booked: int = Field(..., description="Seats already booked")
    available: int = Field(..., description="Seats still free")
    status: DepartureStatus = Field(..., description="Departure status")


class InventoryMovement(BaseModel):
    """Inventory audit trail entry."""

    id: UUID
    departure_id: UUID
    kind: MovementKind
    delta: int
    booking_id: UUID | None = None
    reason: str
    actor: str
    quota_before: int
    quota_after: int
    booked_before: int
    booked_after: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SearchDeparturesResponse(PaginatedResponse):
    """Response schema for departure search."""

    items: list[Departure] = Field(..., description="Found departures")


class ListMovementsResponse(BaseModel):
    """Response schema for a departure's inventory audit trail."""

    items: list[InventoryMovement] = Field(..., description="Movements, newest first")


class SeatMovementResponse(BaseModel):
    """Result of a seat or quota movement."""

    movement: InventoryMovement | None = Field(None, description="Audit entry, absent when nothing moved")
    availability: Availability = Field(..., description="Availability after the movement")
