"""Room router for roommate pairing and room allocation."""

import logging

from fastapi import APIRouter, HTTPException, Response
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import Actor, DatabaseSession
from ..core.exceptions import ProblemDetailsException
from ..schemas.booking import Passenger
from ..schemas.common import CONFLICT_RESPONSES
from ..schemas.room import (
    AssignRoomRequest,
    CreateRoomRequest,
    DepartureRoomsRequest,
    PairingCandidatesResponse,
    PairRequest,
    PairResponse,
    Room,
    RoomingListResponse,
    RoomRequest,
    UnassignRoomRequest,
    UnpairRequest,
)
from ..services.room_service import RoomService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/room", tags=["room"])


def _room_response(room, status_code: int = 200) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=Room.model_validate(room).model_dump(mode="json"))


def _pair_response(passengers) -> JSONResponse:
    response_data = PairResponse(passengers=[Passenger.model_validate(p) for p in passengers])
    return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))


def _internal_error(message: str, e: Exception, **context) -> HTTPException:
    logger.error(message, extra={**context, "error": str(e)}, exc_info=True)
    return HTTPException(status_code=500, detail="Internal server error")


@router.post("/pairing-candidates", response_model=PairingCandidatesResponse, responses=CONFLICT_RESPONSES)
async def list_pairing_candidates(
    request: DepartureRoomsRequest,
    db: AsyncSession = DatabaseSession
) -> JSONResponse:
    """Passengers on a departure who prefer a double room, grouped by gender."""
    room_service = RoomService(db)

    try:
        passengers = await room_service.list_pairing_candidates(request.departure_id)
        response_data = PairingCandidatesResponse(items=[Passenger.model_validate(p) for p in passengers])
        return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise _internal_error(
            "Unexpected error in pairing candidate listing", e, departure_id=str(request.departure_id)
        ) from e


@router.post("/pair", response_model=PairResponse, responses=CONFLICT_RESPONSES)
async def pair_passengers(
    request: PairRequest,
    db: AsyncSession = DatabaseSession,
    actor: str = Actor
) -> JSONResponse:
    """
    Pair two passengers as roommates.

    Both must share gender and departure and neither may already be paired.
    """
    room_service = RoomService(db)

    try:
        return _pair_response(await room_service.pair(request, actor))

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise _internal_error(
            "Unexpected error in passenger pairing", e,
            passenger_a_id=str(request.passenger_a_id), passenger_b_id=str(request.passenger_b_id)
        ) from e


@router.post("/unpair", response_model=PairResponse, responses=CONFLICT_RESPONSES)
async def unpair_passenger(
    request: UnpairRequest,
    db: AsyncSession = DatabaseSession,
    actor: str = Actor
) -> JSONResponse:
    """Dissolve a passenger's pairing on both sides."""
    room_service = RoomService(db)

    try:
        return _pair_response(await room_service.unpair(request.passenger_id, actor))

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise _internal_error(
            "Unexpected error in passenger unpairing", e, passenger_id=str(request.passenger_id)
        ) from e


@router.post("/create", response_model=Room, status_code=201, responses=CONFLICT_RESPONSES)
async def create_room(
    request: CreateRoomRequest,
    db: AsyncSession = DatabaseSession,
    actor: str = Actor
) -> JSONResponse:
    """Add an empty room to a departure's hotel."""
    room_service = RoomService(db)

    try:
        return _room_response(await room_service.create_room(request, actor), status_code=201)

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise _internal_error(
            "Unexpected error in room creation", e,
            departure_id=str(request.departure_id), hotel_id=request.hotel_id, room_number=request.room_number
        ) from e


@router.post("/assign", response_model=Room, responses=CONFLICT_RESPONSES)
async def assign_room(
    request: AssignRoomRequest,
    db: AsyncSession = DatabaseSession,
    actor: str = Actor
) -> JSONResponse:
    """
    Place a customer in a room.

    Rejected when the room is full, occupied by the other gender, or the
    customer does not travel on the room's departure.
    """
    room_service = RoomService(db)

    try:
        return _room_response(await room_service.assign(request, actor))

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise _internal_error(
            "Unexpected error in room assignment", e,
            room_id=str(request.room_id), customer_id=request.customer_id
        ) from e


@router.post("/unassign", response_model=Room, responses=CONFLICT_RESPONSES)
async def unassign_room(
    request: UnassignRoomRequest,
    db: AsyncSession = DatabaseSession,
    actor: str = Actor
) -> JSONResponse:
    """Remove a customer from a room."""
    room_service = RoomService(db)

    try:
        return _room_response(await room_service.unassign(request.room_id, request.customer_id, actor))

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise _internal_error(
            "Unexpected error in room unassignment", e,
            room_id=str(request.room_id), customer_id=request.customer_id
        ) from e


@router.post("/delete", status_code=204, responses=CONFLICT_RESPONSES)
async def delete_room(
    request: RoomRequest,
    db: AsyncSession = DatabaseSession,
    actor: str = Actor
) -> Response:
    """Delete an empty room."""
    room_service = RoomService(db)

    try:
        await room_service.delete_room(request.room_id, actor)
        return Response(status_code=204)

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise _internal_error("Unexpected error in room deletion", e, room_id=str(request.room_id)) from e


@router.post("/rooming-list", response_model=RoomingListResponse, responses=CONFLICT_RESPONSES)
async def get_rooming_list(
    request: DepartureRoomsRequest,
    db: AsyncSession = DatabaseSession
) -> JSONResponse:
    """Rooms of a departure with their occupants, optionally for one hotel."""
    room_service = RoomService(db)

    try:
        rooms = await room_service.get_rooming_list(request.departure_id, request.hotel_id)
        response_data = RoomingListResponse(
            departure_id=request.departure_id,
            rooms=[Room.model_validate(room) for room in rooms],
            total_capacity=sum(room.capacity for room in rooms),
            total_occupants=sum(room.occupant_count for room in rooms),
        )
        return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise _internal_error(
            "Unexpected error in rooming list", e, departure_id=str(request.departure_id)
        ) from e
