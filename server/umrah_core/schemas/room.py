"""Roommate pairing and room allocation Pydantic schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..models.booking import Gender
from ..models.departure import RoomType
from .booking import Passenger


class PairRequest(BaseModel):
    """Request schema for pairing two passengers as roommates."""

    passenger_a_id: UUID = Field(..., description="First passenger")
    passenger_b_id: UUID = Field(..., description="Second passenger")
    room_number: str | None = Field(None, max_length=20, description="Room the pair will share")

    @model_validator(mode="after")
    def check_distinct(self) -> "PairRequest":
        if self.passenger_a_id == self.passenger_b_id:
            raise ValueError("a passenger cannot be paired with themselves")
        return self


class UnpairRequest(BaseModel):
    """Request schema for dissolving a pair."""

    passenger_id: UUID = Field(..., description="Either passenger of the pair")


class DepartureRoomsRequest(BaseModel):
    """Request schema scoped to a departure, optionally one hotel."""

    departure_id: UUID = Field(..., description="Departure to look at")
    hotel_id: str | None = Field(None, max_length=64, description="Restrict to one hotel")


class CreateRoomRequest(BaseModel):
    """Request schema for adding a room to a departure."""

    departure_id: UUID = Field(..., description="Departure the room is allocated to")
    hotel_id: str = Field(..., min_length=1, max_length=64, description="Hotel of the room")
    room_number: str = Field(..., min_length=1, max_length=20, description="Room number")
    room_type: RoomType = Field(..., description="Room type, determines capacity")
    floor: int | None = Field(None, ge=0, le=200, description="Floor")


class RoomRequest(BaseModel):
    """Request schema addressing a single room."""

    room_id: UUID = Field(..., description="Room to address")


class AssignRoomRequest(BaseModel):
    """Request schema for placing a customer in a room."""

    room_id: UUID = Field(..., description="Room to place the customer in")
    customer_id: str = Field(..., min_length=1, max_length=64, description="Customer to place")
    bed_number: int | None = Field(None, ge=1, le=4, description="Bed within the room")


class UnassignRoomRequest(BaseModel):
    """Request schema for removing a customer from a room."""

    room_id: UUID = Field(..., description="Room to remove the customer from")
    customer_id: str = Field(..., min_length=1, max_length=64, description="Customer to remove")


class PairResponse(BaseModel):
    """Both passengers of a pair after the change."""

    passengers: list[Passenger]


class PairingCandidatesResponse(BaseModel):
    """Passengers eligible for pairing on a departure."""

    items: list[Passenger]


class RoomOccupant(BaseModel):
    """Room occupant response schema."""

    customer_id: str
    gender: Gender
    bed_number: int | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class Room(BaseModel):
    """Room response schema."""

    id: UUID
    departure_id: UUID
    hotel_id: str
    room_number: str
    room_type: RoomType
    capacity: int
    floor: int | None = None
    occupant_count: int
    gender: Gender | None = None
    occupants: list[RoomOccupant] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class RoomingListResponse(BaseModel):
    """Rooms of a departure with their occupants."""

    departure_id: UUID
    rooms: list[Room]
    total_capacity: int
    total_occupants: int
