"""Booking-related Pydantic schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from ..models.booking import BookingStatus, Gender, PassengerType, PaymentStatus
from ..models.departure import RoomType
from .common import PageRequest, PaginatedResponse


class PassengerInput(BaseModel):
    """A traveller supplied by the customer directory."""

    customer_id: str = Field(..., min_length=1, max_length=64, description="Customer ID")
    full_name: str | None = Field(None, max_length=255, description="Name as on the passport")
    gender: Gender = Field(..., description="Passenger gender")
    passenger_type: PassengerType = Field(PassengerType.ADULT, description="Age category")
    room_preference: RoomType | None = Field(None, description="Defaults to the booking room type")
    is_main_passenger: bool = Field(False, description="Primary contact of the booking")


class CreateBookingRequest(BaseModel):
    """Request schema for creating a booking."""

    departure_id: UUID = Field(..., description="Departure to book")
    customer_id: str = Field(..., min_length=1, max_length=64, description="Booking customer")
    agent_id: UUID | None = Field(None, description="Agent who brought the booking")
    room_type: RoomType = Field(..., description="Room type priced for the booking")
    passengers: list[PassengerInput] = Field(..., min_length=1, max_length=50, description="Travellers")
    discount_amount: int = Field(0, ge=0, description="Discount in whole currency units")
    addons_price: int = Field(0, ge=0, description="Add-on charges in whole currency units")
    notes: str | None = Field(None, max_length=2000, description="Free text notes")


class GetBookingRequest(BaseModel):
    """Request schema for getting a booking."""

    booking_id: UUID = Field(..., description="Booking to retrieve")


class BookingCommandRequest(BaseModel):
    """Request schema for lifecycle commands on a booking."""

    booking_id: UUID = Field(..., description="Booking to transition")
    reason: str | None = Field(None, max_length=500, description="Why the command was issued")


class ListBookingsRequest(PageRequest):
    """Request schema for listing bookings."""

    departure_id: UUID | None = Field(None, description="Filter by departure")
    customer_id: str | None = Field(None, description="Filter by customer")
    booking_status: BookingStatus | None = Field(None, description="Filter by booking status")


class ListOutstandingRequest(BaseModel):
    """Request schema for bookings with an unpaid balance."""

    days_until_departure: int = Field(30, ge=0, le=365, description="Departure window in days")


class Passenger(BaseModel):
    """Passenger response schema."""

    id: UUID
    booking_id: UUID
    departure_id: UUID
    customer_id: str
    full_name: str | None = None
    gender: Gender
    passenger_type: PassengerType
    room_preference: RoomType
    is_main_passenger: bool
    roommate_id: UUID | None = None
    room_number: str | None = None

    model_config = ConfigDict(from_attributes=True)


class Booking(BaseModel):
    """Booking response schema."""

    id: UUID = Field(..., description="Unique booking ID")
    booking_code: str = Field(..., description="Human readable booking code")
    departure_id: UUID
    customer_id: str
    agent_id: UUID | None = None
    room_type: RoomType
    total_pax: int
    base_price: int
    discount_amount: int
    addons_price: int
    total_price: int
    paid_amount: int
    remaining_amount: int
    booking_status: BookingStatus
    payment_status: PaymentStatus
    notes: str | None = None
    version: int
    created_at: datetime
    passengers: list[Passenger] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class ListBookingsResponse(PaginatedResponse):
    """Response schema for booking listings."""

    items: list[Booking] = Field(..., description="Found bookings")
