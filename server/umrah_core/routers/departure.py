"""Departure router for departure and seat inventory operations."""

import logging

from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import Actor, DatabaseSession
from ..core.exceptions import ProblemDetailsException
from ..models.departure import DepartureStatus
from ..schemas.common import CONFLICT_RESPONSES
from ..schemas.departure import (
    AdjustQuotaRequest,
    Availability,
    CreateDepartureRequest,
    Departure,
    GetDepartureRequest,
    InventoryMovement,
    ListMovementsResponse,
    RoomPrices,
    SearchDeparturesRequest,
    SearchDeparturesResponse,
    SeatMovementRequest,
    SeatMovementResponse,
    SetDepartureStatusRequest,
)
from ..services.departure_service import DepartureService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/departure", tags=["departure"])


def _convert_departure_to_schema(departure_model) -> Departure:
    """Convert departure model to schema with room prices grouped."""
    return Departure(
        id=departure_model.id,
        package_id=departure_model.package_id,
        departure_date=departure_model.departure_date,
        return_date=departure_model.return_date,
        quota=departure_model.quota,
        booked_count=departure_model.booked_count,
        available=departure_model.available,
        status=departure_model.status,
        prices=RoomPrices(
            quad=departure_model.price_quad,
            triple=departure_model.price_triple,
            double=departure_model.price_double,
            single=departure_model.price_single,
        ),
        currency=departure_model.currency,
        hotel_makkah_id=departure_model.hotel_makkah_id,
        hotel_madinah_id=departure_model.hotel_madinah_id,
    )


async def _movement_response(departure_service: DepartureService, departure_id, movement) -> JSONResponse:
    availability = await departure_service.get_availability(departure_id)
    response_data = SeatMovementResponse(
        movement=InventoryMovement.model_validate(movement) if movement else None,
        availability=Availability(**availability),
    )
    return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))


def _internal_error(message: str, e: Exception, **context) -> HTTPException:
    logger.error(message, extra={**context, "error": str(e)}, exc_info=True)
    return HTTPException(status_code=500, detail="Internal server error")


@router.post("/create", response_model=Departure)
async def create_departure(
    request: CreateDepartureRequest,
    db: AsyncSession = DatabaseSession
) -> JSONResponse:
    """Create a new departure with its seat quota and room prices."""
    departure_service = DepartureService(db)

    try:
        departure = await departure_service.create_departure(request)
        response_data = _convert_departure_to_schema(departure)
        return JSONResponse(status_code=201, content=response_data.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise _internal_error(
            "Unexpected error in departure creation", e,
            departure_date=request.departure_date.isoformat(), quota=request.quota
        ) from e


@router.post("/get", response_model=Departure, responses=CONFLICT_RESPONSES)
async def get_departure(
    request: GetDepartureRequest,
    db: AsyncSession = DatabaseSession
) -> JSONResponse:
    """Get departure details."""
    departure_service = DepartureService(db)

    try:
        departure = await departure_service.get_departure_by_id_or_raise(request.departure_id, fresh=True)
        response_data = _convert_departure_to_schema(departure)
        return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise _internal_error(
            "Unexpected error in departure retrieval", e, departure_id=str(request.departure_id)
        ) from e


@router.post("/availability", response_model=Availability, responses=CONFLICT_RESPONSES)
async def get_availability(
    request: GetDepartureRequest,
    db: AsyncSession = DatabaseSession
) -> JSONResponse:
    """Get the live seat availability of a departure."""
    departure_service = DepartureService(db)

    try:
        availability = await departure_service.get_availability(request.departure_id)
        response_data = Availability(**availability)
        return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise _internal_error(
            "Unexpected error in availability lookup", e, departure_id=str(request.departure_id)
        ) from e


@router.post("/search", response_model=SearchDeparturesResponse)
async def search_departures(
    request: SearchDeparturesRequest,
    db: AsyncSession = DatabaseSession
) -> JSONResponse:
    """
    Search departures based on criteria.

    Supports filtering by package, date range, status and availability.
    Uses cursor-based pagination.
    """
    departure_service = DepartureService(db)

    try:
        departures, next_cursor = await departure_service.search_departures(request)
        response_data = SearchDeparturesResponse(
            items=[_convert_departure_to_schema(departure) for departure in departures],
            next_cursor=next_cursor
        )

        logger.info(
            "Departure search completed",
            extra={
                "total_found": len(departures),
                "has_next_page": next_cursor is not None,
                "package_id": request.package_id,
                "available_only": request.available_only
            }
        )

        return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise _internal_error("Unexpected error in departure search", e, package_id=request.package_id) from e


@router.post("/reserve", response_model=SeatMovementResponse, responses=CONFLICT_RESPONSES)
async def reserve_seats(
    request: SeatMovementRequest,
    db: AsyncSession = DatabaseSession,
    actor: str = Actor
) -> JSONResponse:
    """
    Take seats from a departure without a booking.

    Fails with a conflict when the departure is closed or lacks free seats.
    """
    departure_service = DepartureService(db)

    try:
        movement = await departure_service.reserve(
            request.departure_id, request.pax_count, actor, reason=request.reason
        )
        return await _movement_response(departure_service, request.departure_id, movement)

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise _internal_error(
            "Unexpected error in seat reservation", e,
            departure_id=str(request.departure_id), pax_count=request.pax_count
        ) from e


@router.post("/release", response_model=SeatMovementResponse, responses=CONFLICT_RESPONSES)
async def release_seats(
    request: SeatMovementRequest,
    db: AsyncSession = DatabaseSession,
    actor: str = Actor
) -> JSONResponse:
    """Give seats back to a departure. The booked count never goes below zero."""
    departure_service = DepartureService(db)

    try:
        movement = await departure_service.release(
            request.departure_id, request.pax_count, actor, reason=request.reason
        )
        return await _movement_response(departure_service, request.departure_id, movement)

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise _internal_error(
            "Unexpected error in seat release", e,
            departure_id=str(request.departure_id), pax_count=request.pax_count
        ) from e


@router.post("/adjust-quota", response_model=SeatMovementResponse, responses=CONFLICT_RESPONSES)
async def adjust_quota(
    request: AdjustQuotaRequest,
    db: AsyncSession = DatabaseSession,
    actor: str = Actor
) -> JSONResponse:
    """
    Grow or shrink the quota of a departure.

    The quota can never drop below the seats already booked.
    """
    departure_service = DepartureService(db)

    try:
        movement = await departure_service.adjust_quota(request, actor)
        return await _movement_response(departure_service, request.departure_id, movement)

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise _internal_error(
            "Unexpected error in quota adjustment", e,
            departure_id=str(request.departure_id), delta=request.delta
        ) from e


@router.post("/set-status", response_model=Departure, responses=CONFLICT_RESPONSES)
async def set_departure_status(
    request: SetDepartureStatusRequest,
    db: AsyncSession = DatabaseSession,
    actor: str = Actor
) -> JSONResponse:
    """Close, reopen or mark a departure as departed."""
    departure_service = DepartureService(db)

    try:
        departure = await departure_service.set_status(
            request.departure_id, DepartureStatus(request.status), actor
        )
        response_data = _convert_departure_to_schema(departure)
        return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise _internal_error(
            "Unexpected error in departure status change", e,
            departure_id=str(request.departure_id), status=request.status
        ) from e


@router.post("/movements", response_model=ListMovementsResponse, responses=CONFLICT_RESPONSES)
async def list_movements(
    request: GetDepartureRequest,
    db: AsyncSession = DatabaseSession
) -> JSONResponse:
    """Get the inventory audit trail of a departure, newest first."""
    departure_service = DepartureService(db)

    try:
        movements = await departure_service.list_movements(request.departure_id)
        response_data = ListMovementsResponse(
            items=[InventoryMovement.model_validate(movement) for movement in movements]
        )
        return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise _internal_error(
            "Unexpected error in movement listing", e, departure_id=str(request.departure_id)
        ) from e
